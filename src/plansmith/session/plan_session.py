"""Plan session orchestration.

``PlanSession`` owns the conversation log and the single committed plan. It
interleaves three flows on one asyncio loop:

* ``send_message`` appends turns and fetches assistant replies,
* background synthesis rebuilds the plan from the whole conversation,
* edit transactions mutate a private plan copy and commit it wholesale.

The committed plan is written by two actors (synthesis completion and edit
commit). A synthesis result is only applied when no commit or reset happened
after its request was issued; otherwise it is dropped as stale.
"""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Any, Callable, Coroutine, Sequence, TypeVar

from ..ai.gateway import SynthesisGateway
from ..ai.prompts import APOLOGY_REPLY, DEFAULT_GREETING
from ..chat.conversation_log import ConversationLog
from ..chat.message_model import Turn
from ..plans.plan_model import StructuredPlan
from ..services.persistence import (
    PersistenceError,
    PersistenceStore,
    SessionRecordKeys,
    SessionSnapshotCodec,
)
from .transaction import EditTransaction, TransactionError

__all__ = ["PlanListener", "PlanSession", "SynthesisOutcome"]

LOGGER = logging.getLogger(__name__)

PlanListener = Callable[[StructuredPlan | None], None]
_T = TypeVar("_T")


class SynthesisOutcome(str, Enum):
    """Result of a synthesis request."""

    SKIPPED = "skipped"  # Not enough conversation yet
    BUSY = "busy"  # Another synthesis is in flight
    NO_RESULT = "no_result"  # Gateway returned nothing usable
    STALE = "stale"  # A commit or reset happened while waiting
    APPLIED = "applied"


class PlanSession:
    """Coordinates dialogue turns, background synthesis and plan edits."""

    def __init__(
        self,
        gateway: SynthesisGateway,
        store: PersistenceStore,
        *,
        session_id: str = "default",
        greeting: str = DEFAULT_GREETING,
        min_turns_for_synthesis: int = 3,
        on_plan_changed: PlanListener | None = None,
    ) -> None:
        self._gateway = gateway
        self._store = store
        self._keys = SessionRecordKeys(session_id)
        self._greeting = greeting
        self._min_turns = max(0, int(min_turns_for_synthesis))
        self._listener = on_plan_changed

        self._log = ConversationLog()
        self._plan: StructuredPlan | None = None
        self._active_edit: EditTransaction | None = None
        self._pending_sends = 0
        self._synthesizing = False
        self._generation = 0  # Bumped by commits and resets
        self._revision = 0  # Bumped by every committed plan change
        self._resets = 0
        self._background: set[asyncio.Task[Any]] = set()

        self._rehydrate()

    # ------------------------------------------------------------------
    # Observation
    # ------------------------------------------------------------------

    @property
    def session_id(self) -> str:
        return self._keys.session_id

    @property
    def turns(self) -> Sequence[Turn]:
        return self._log.all()

    @property
    def sending(self) -> bool:
        return self._pending_sends > 0

    @property
    def synthesizing(self) -> bool:
        return self._synthesizing

    @property
    def active_edit(self) -> EditTransaction | None:
        tx = self._active_edit
        return tx if tx is not None and tx.is_active else None

    @property
    def revision(self) -> int:
        return self._revision

    def current_plan(self) -> StructuredPlan | None:
        """Return the committed plan. Callers must treat it as read-only."""

        return self._plan

    # ------------------------------------------------------------------
    # Dialogue
    # ------------------------------------------------------------------

    async def send_message(self, text: str) -> str:
        """Append a user turn, fetch the reply, append it and return it.

        The user turn is appended before any network wait. Gateway failures
        become an apology turn. Resynthesis is scheduled in the background and
        never awaited here.
        """

        history = self._log.all()
        self._append(Turn.user(text))
        resets = self._resets
        self._pending_sends += 1
        try:
            reply = await self._gateway.converse(history, text)
        except Exception as exc:
            LOGGER.warning("Conversation gateway failed; using fallback reply: %s", exc)
            reply = APOLOGY_REPLY
        finally:
            self._pending_sends -= 1
        if reply is None:
            reply = ""

        if resets != self._resets:
            LOGGER.info("Ignoring assistant reply that arrived after a session reset")
            return reply

        self._append(Turn.assistant(reply))
        self._spawn(self.maybe_resynthesize())
        return reply

    # ------------------------------------------------------------------
    # Synthesis
    # ------------------------------------------------------------------

    async def maybe_resynthesize(self) -> SynthesisOutcome:
        """Synthesize once the log holds enough turns to be worth structuring."""

        if self._log.size() < self._min_turns:
            LOGGER.debug(
                "Skipping synthesis: %d turn(s) < %d", self._log.size(), self._min_turns
            )
            return SynthesisOutcome.SKIPPED
        return await self._synthesize()

    async def force_resynthesize(self) -> SynthesisOutcome:
        """Synthesize regardless of log size (explicit user refresh)."""

        return await self._synthesize()

    async def request_refresh(self) -> SynthesisOutcome:
        return await self.force_resynthesize()

    async def _synthesize(self) -> SynthesisOutcome:
        if self._synthesizing:
            LOGGER.debug("Synthesis already in flight; suppressing request")
            return SynthesisOutcome.BUSY

        self._synthesizing = True
        generation = self._generation
        history = self._log.all()
        try:
            plan = await self._gateway.synthesize(history)
        except Exception as exc:
            LOGGER.warning("Plan synthesis failed: %s", exc)
            plan = None
        finally:
            self._synthesizing = False

        if plan is None:
            LOGGER.debug("Synthesis produced no plan update")
            return SynthesisOutcome.NO_RESULT
        if generation != self._generation:
            LOGGER.info(
                "Dropping stale synthesis result (generation %d, now %d)",
                generation,
                self._generation,
            )
            return SynthesisOutcome.STALE

        self._replace_plan(plan)
        LOGGER.info("Applied synthesized plan from %d turn(s)", len(history))
        return SynthesisOutcome.APPLIED

    # ------------------------------------------------------------------
    # Editing
    # ------------------------------------------------------------------

    def open_edit(self) -> EditTransaction:
        """Open an edit transaction over a copy of the committed plan.

        Raises:
            NoPlanToEditError: If there is no committed plan.
            TransactionError: If another transaction is already open.
        """

        current = self.active_edit
        if current is not None:
            raise TransactionError(
                "An edit transaction is already open",
                transaction_id=current.transaction_id,
            )
        tx = EditTransaction.open(self._plan, committer=self._commit_from, base_revision=self._revision)
        self._active_edit = tx
        return tx

    def commit_edit(self) -> StructuredPlan:
        return self._require_edit("commit").commit()

    def cancel_edit(self) -> None:
        tx = self._require_edit("cancel")
        tx.cancel()
        self._active_edit = None

    def edit_is_stale(self) -> bool:
        """True when the committed plan changed after the open edit started."""

        tx = self.active_edit
        return tx is not None and tx.base_revision != self._revision

    def _require_edit(self, action: str) -> EditTransaction:
        tx = self.active_edit
        if tx is None:
            raise TransactionError(f"Cannot {action}: no edit transaction is open")
        return tx

    def _commit_from(self, tx: EditTransaction, plan: StructuredPlan) -> None:
        if tx is not self._active_edit:
            raise TransactionError(
                "Transaction does not belong to the current session state",
                transaction_id=tx.transaction_id,
            )
        self._generation += 1
        self._active_edit = None
        self._replace_plan(plan)

    # ------------------------------------------------------------------
    # Reset
    # ------------------------------------------------------------------

    def reset_session(self) -> None:
        """Forget the conversation and plan, then seed a fresh greeting.

        In-flight gateway calls are not cancelled; their late results are
        ignored when they settle.
        """

        if self._active_edit is not None:
            self._active_edit.discard("session reset")
            self._active_edit = None
        self._log.clear()
        self._plan = None
        self._generation += 1
        self._revision += 1
        self._resets += 1
        self._guard_store("remove conversation log", self._store.remove, self._keys.chat_history)
        self._guard_store("remove plan", self._store.remove, self._keys.project_plan)
        self._seed_greeting()
        self._notify(None)
        LOGGER.info("Session %s reset", self.session_id)

    # ------------------------------------------------------------------
    # Background work
    # ------------------------------------------------------------------

    async def wait_for_background(self) -> None:
        """Wait until every scheduled background task has settled."""

        while self._background:
            await asyncio.gather(*tuple(self._background), return_exceptions=True)

    async def aclose(self) -> None:
        await self.wait_for_background()

    def _spawn(self, coro: Coroutine[Any, Any, _T]) -> asyncio.Task[_T]:
        task = asyncio.create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._on_background_done)
        return task

    def _on_background_done(self, task: asyncio.Task[Any]) -> None:
        self._background.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            LOGGER.error("Background synthesis task failed", exc_info=exc)

    # ------------------------------------------------------------------
    # State helpers
    # ------------------------------------------------------------------

    def _append(self, turn: Turn) -> None:
        self._log.append(turn)
        self._guard_store(
            "save conversation log",
            self._store.put,
            self._keys.chat_history,
            SessionSnapshotCodec.dump_turns(self._log.all()),
        )

    def _replace_plan(self, plan: StructuredPlan) -> None:
        self._plan = plan
        self._revision += 1
        self._guard_store(
            "save plan",
            self._store.put,
            self._keys.project_plan,
            SessionSnapshotCodec.dump_plan(plan),
        )
        self._notify(plan)

    def _seed_greeting(self) -> None:
        self._append(Turn.assistant(self._greeting))

    def _notify(self, plan: StructuredPlan | None) -> None:
        if self._listener is None:
            return
        try:
            self._listener(plan)
        except Exception:
            LOGGER.debug("Plan listener failed", exc_info=True)

    def _guard_store(self, action: str, operation: Callable[..., Any], *args: Any) -> None:
        try:
            operation(*args)
        except (PersistenceError, OSError) as exc:
            LOGGER.warning("Failed to %s for session %s: %s", action, self.session_id, exc)

    def _rehydrate(self) -> None:
        turns = self._load_record(self._keys.chat_history, SessionSnapshotCodec.load_turns, "conversation log")
        if turns:
            self._log = ConversationLog(turns)
        else:
            self._seed_greeting()

        plan = self._load_record(self._keys.project_plan, SessionSnapshotCodec.load_plan, "plan")
        if plan is not None:
            self._plan = plan
        LOGGER.debug(
            "Session %s loaded with %d turn(s), plan=%s",
            self.session_id,
            self._log.size(),
            "yes" if self._plan is not None else "no",
        )

    def _load_record(self, key: str, loader: Callable[[str], _T], label: str) -> _T | None:
        try:
            raw = self._store.get(key)
        except (PersistenceError, OSError) as exc:
            LOGGER.warning("Failed to read saved %s: %s", label, exc)
            return None
        if raw is None:
            return None
        try:
            return loader(raw)
        except (TypeError, ValueError) as exc:
            LOGGER.warning("Failed to parse saved %s: %s", label, exc)
            return None
