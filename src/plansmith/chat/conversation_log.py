"""Append-only record of the dialogue."""

from __future__ import annotations

from typing import Iterable, Iterator, Sequence

from .message_model import Turn


class ConversationLog:
    """Ordered, append-only sequence of :class:`Turn` objects.

    The log is owned by :class:`~plansmith.session.plan_session.PlanSession`;
    the only way to shrink it is :meth:`clear`, which the session calls on reset.
    """

    def __init__(self, turns: Iterable[Turn] | None = None) -> None:
        self._turns: list[Turn] = list(turns or ())

    def append(self, turn: Turn) -> int:
        """Add ``turn`` at the end and return its index."""

        if turn is None:
            raise ValueError("Cannot append None to the conversation log")
        self._turns.append(turn)
        return len(self._turns) - 1

    def all(self) -> Sequence[Turn]:
        """Return a read-only view of every turn in order."""

        return tuple(self._turns)

    def size(self) -> int:
        return len(self._turns)

    def last(self) -> Turn | None:
        return self._turns[-1] if self._turns else None

    def clear(self) -> None:
        self._turns.clear()

    def __len__(self) -> int:
        return len(self._turns)

    def __iter__(self) -> Iterator[Turn]:
        return iter(tuple(self._turns))
