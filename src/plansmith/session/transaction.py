"""Edit transactions over a private copy of the structured plan.

A transaction deep-copies the committed plan when it opens, collects
mutations against that copy, and either hands the copy back in one step
(commit) or throws it away (cancel).
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum, auto
from typing import Any, Callable

from ..plans import editing
from ..plans.plan_model import StructuredPlan

LOGGER = logging.getLogger(__name__)

PlanCommitter = Callable[["EditTransaction", StructuredPlan], None]
PlanUpdater = Callable[[StructuredPlan], Any]


# -----------------------------------------------------------------------------
# Transaction State
# -----------------------------------------------------------------------------


class EditState(Enum):
    """State of an edit transaction."""

    ACTIVE = auto()
    COMMITTED = auto()
    CANCELLED = auto()
    DISCARDED = auto()  # Closed by a session reset


# -----------------------------------------------------------------------------
# Transaction Errors
# -----------------------------------------------------------------------------


class TransactionError(Exception):
    """Invalid use of an edit transaction (a caller bug, not an I/O fault)."""

    def __init__(
        self,
        message: str,
        *,
        transaction_id: str | None = None,
    ) -> None:
        super().__init__(message)
        self.transaction_id = transaction_id


class NoPlanToEditError(TransactionError):
    """Raised when an edit is opened before any plan exists."""


# -----------------------------------------------------------------------------
# Edit Transaction
# -----------------------------------------------------------------------------


@dataclass(eq=False)
class EditTransaction:
    """A scoped, cancellable mutation context over a plan copy.

    Example:
        tx = EditTransaction.open(plan, committer=session_commit)
        tx.set_field("title", "Launch plan")
        tx.append_entry("risks")
        tx.commit()
    """

    working_copy: StructuredPlan
    committer: PlanCommitter | None = None
    base_revision: int = 0
    transaction_id: str = field(default_factory=lambda: f"edit-{uuid.uuid4().hex[:12]}")
    state: EditState = EditState.ACTIVE
    opened_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    closed_at: datetime | None = None
    mutation_count: int = 0

    @classmethod
    def open(
        cls,
        plan: StructuredPlan | None,
        *,
        committer: PlanCommitter | None = None,
        base_revision: int = 0,
    ) -> "EditTransaction":
        """Open a transaction over a deep copy of ``plan``.

        Raises:
            NoPlanToEditError: If ``plan`` is None.
        """

        if plan is None:
            raise NoPlanToEditError("No plan to edit")
        tx = cls(working_copy=plan.clone(), committer=committer, base_revision=base_revision)
        LOGGER.debug("Edit transaction %s opened at revision %s", tx.transaction_id, base_revision)
        return tx

    # ------------------------------------------------------------------
    # Query
    # ------------------------------------------------------------------

    @property
    def is_active(self) -> bool:
        return self.state == EditState.ACTIVE

    @property
    def plan(self) -> StructuredPlan:
        """The private working copy. Only valid while the transaction is active."""

        self._require_active("read")
        return self.working_copy

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def mutate(self, updater: PlanUpdater) -> Any:
        """Apply ``updater`` to the working copy and return its result.

        No shape validation happens here; the shape was fixed by :meth:`open`.
        """

        self._require_active("mutate")
        result = updater(self.working_copy)
        self.mutation_count += 1
        return result

    def set_field(self, path: str, value: Any) -> None:
        self.mutate(lambda plan: editing.set_field(plan, path, value))

    def append_entry(self, path: str, value: Any = None) -> int:
        return self.mutate(lambda plan: editing.append_entry(plan, path, value))

    def update_entry(self, path: str, index: int, value: Any) -> None:
        self.mutate(lambda plan: editing.update_entry(plan, path, index, value))

    def remove_entry(self, path: str, index: int) -> Any:
        return self.mutate(lambda plan: editing.remove_entry(plan, path, index))

    def move_entry(self, path: str, source: int, destination: int) -> None:
        self.mutate(lambda plan: editing.move_entry(plan, path, source, destination))

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def commit(self) -> StructuredPlan:
        """Hand the working copy to the committer and close the transaction.

        Returns:
            A copy of the newly committed plan. The committed instance itself
            belongs to the committer.

        Raises:
            TransactionError: If the transaction is not active.
        """

        self._require_active("commit")
        if self.committer is not None:
            self.committer(self, self.working_copy)
        self._close(EditState.COMMITTED)
        LOGGER.info(
            "Edit transaction %s committed (%d mutation(s))",
            self.transaction_id,
            self.mutation_count,
        )
        return self.working_copy.clone()

    def cancel(self) -> None:
        """Discard the working copy without touching the committed plan."""

        self._require_active("cancel")
        self._close(EditState.CANCELLED)
        LOGGER.info(
            "Edit transaction %s cancelled (%d mutation(s) discarded)",
            self.transaction_id,
            self.mutation_count,
        )

    def discard(self, reason: str | None = None) -> bool:
        """Close the transaction on behalf of its owner; no-op if already closed."""

        if not self.is_active:
            return False
        self._close(EditState.DISCARDED)
        LOGGER.info(
            "Edit transaction %s discarded: %s",
            self.transaction_id,
            reason or "no reason provided",
        )
        return True

    # ------------------------------------------------------------------
    # Private Helpers
    # ------------------------------------------------------------------

    def _require_active(self, action: str) -> None:
        if self.state != EditState.ACTIVE:
            raise TransactionError(
                f"Cannot {action}: transaction is {self.state.name}",
                transaction_id=self.transaction_id,
            )

    def _close(self, state: EditState) -> None:
        self.state = state
        self.closed_at = datetime.now(timezone.utc)


__all__ = [
    "EditState",
    "EditTransaction",
    "NoPlanToEditError",
    "PlanCommitter",
    "PlanUpdater",
    "TransactionError",
]
