"""Plan session orchestration and edit transactions."""

from .plan_session import PlanListener, PlanSession, SynthesisOutcome
from .transaction import EditState, EditTransaction, NoPlanToEditError, TransactionError

__all__ = [
    "EditState",
    "EditTransaction",
    "NoPlanToEditError",
    "PlanListener",
    "PlanSession",
    "SynthesisOutcome",
    "TransactionError",
]
