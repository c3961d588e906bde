"""Conversation turn data model."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Literal, Mapping, cast


def _utcnow() -> datetime:
    """Return the current UTC time as a timezone-aware datetime."""

    return datetime.now(timezone.utc)

TurnRole = Literal["user", "assistant"]

_ROLE_ALIASES: Mapping[str, TurnRole] = {
    "user": "user",
    "assistant": "assistant",
    "model": "assistant",
}


@dataclass(slots=True, frozen=True)
class Turn:
    """One message exchanged in the dialogue.

    Turns are immutable once appended to a :class:`ConversationLog`. The
    timestamp is informational; ordering comes from the log position.
    """

    role: TurnRole
    text: str
    timestamp: datetime = field(default_factory=_utcnow)

    def __post_init__(self) -> None:
        if self.text is None:
            raise ValueError("Turn text must not be None")
        if self.role not in ("user", "assistant"):
            raise ValueError(f"Unknown turn role: {self.role!r}")

    @classmethod
    def user(cls, text: str) -> "Turn":
        return cls(role="user", text=text)

    @classmethod
    def assistant(cls, text: str) -> "Turn":
        return cls(role="assistant", text=text)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize the turn for persistence."""

        return {
            "role": self.role,
            "text": self.text,
            "timestamp": self.timestamp.isoformat(),
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "Turn":
        """Rebuild a turn from :meth:`to_dict` output.

        Accepts the legacy ``model`` role and ``content``/``created_at`` keys.
        Naive timestamps are assumed to be UTC.
        """

        raw_role = str(payload.get("role", "")).strip().lower()
        role = _ROLE_ALIASES.get(raw_role)
        if role is None:
            raise ValueError(f"Unknown turn role: {payload.get('role')!r}")
        text = payload.get("text", payload.get("content", ""))
        raw_timestamp = payload.get("timestamp", payload.get("created_at"))
        timestamp = _parse_timestamp(raw_timestamp) if raw_timestamp else _utcnow()
        return cls(role=cast(TurnRole, role), text=str(text or ""), timestamp=timestamp)


def _parse_timestamp(value: Any) -> datetime:
    if isinstance(value, datetime):
        parsed = value
    else:
        text = str(value).strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed
