"""Tests for conversation turns and the conversation log."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from plansmith.chat.conversation_log import ConversationLog
from plansmith.chat.message_model import Turn


def test_turn_factories_set_role_and_utc_timestamp() -> None:
    turn = Turn.user("Hello")

    assert turn.role == "user"
    assert Turn.assistant("Hi").role == "assistant"
    assert turn.timestamp.tzinfo is not None
    assert turn.timestamp.utcoffset() == timedelta(0)


def test_turn_rejects_invalid_values() -> None:
    with pytest.raises(ValueError):
        Turn(role="system", text="x")  # type: ignore[arg-type]
    with pytest.raises(ValueError):
        Turn(role="user", text=None)  # type: ignore[arg-type]


def test_turn_is_immutable() -> None:
    turn = Turn.user("Hello")

    with pytest.raises(AttributeError):
        turn.text = "changed"  # type: ignore[misc]


def test_turn_dict_round_trip_keeps_microseconds() -> None:
    stamp = datetime(2024, 1, 2, 3, 4, 5, 678901, tzinfo=timezone.utc)
    turn = Turn(role="assistant", text="Welcome", timestamp=stamp)

    restored = Turn.from_dict(turn.to_dict())

    assert restored == turn
    assert restored.timestamp.microsecond == 678901


def test_turn_from_dict_accepts_legacy_shapes() -> None:
    turn = Turn.from_dict({"role": "model", "content": "Hi", "created_at": "2024-01-02T03:04:05Z"})
    naive = Turn.from_dict({"role": "USER", "text": "Yo", "timestamp": "2024-01-02T03:04:05"})

    assert turn.role == "assistant"
    assert turn.text == "Hi"
    assert turn.timestamp == datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
    assert naive.role == "user"
    assert naive.timestamp.tzinfo == timezone.utc


def test_turn_from_dict_rejects_unknown_role() -> None:
    with pytest.raises(ValueError):
        Turn.from_dict({"role": "narrator", "text": "Once upon a time"})


def test_log_appends_in_order_and_returns_index() -> None:
    log = ConversationLog()

    assert log.append(Turn.assistant("Hello")) == 0
    assert log.append(Turn.user("Build me a shed")) == 1
    assert log.size() == len(log) == 2
    assert [turn.text for turn in log] == ["Hello", "Build me a shed"]
    assert log.last().text == "Build me a shed"


def test_log_snapshot_is_read_only() -> None:
    log = ConversationLog([Turn.assistant("Hello")])
    snapshot = log.all()

    log.append(Turn.user("More"))

    assert isinstance(snapshot, tuple)
    assert len(snapshot) == 1
    assert log.size() == 2


def test_log_rejects_none_and_clears() -> None:
    log = ConversationLog([Turn.assistant("Hello")])

    with pytest.raises(ValueError):
        log.append(None)  # type: ignore[arg-type]
    log.clear()

    assert log.size() == 0
    assert log.last() is None
