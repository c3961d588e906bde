"""Conversation turn models and the append-only conversation log."""

from .conversation_log import ConversationLog
from .message_model import Turn, TurnRole

__all__ = ["ConversationLog", "Turn", "TurnRole"]
