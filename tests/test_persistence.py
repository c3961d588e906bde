"""Tests for the key-value stores and snapshot codec."""

from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path

import pytest

from plansmith.chat.message_model import Turn
from plansmith.plans.plan_model import StructuredPlan
from plansmith.services.persistence import (
    InMemoryStore,
    JsonFileStore,
    PersistenceError,
    SessionRecordKeys,
    SessionSnapshotCodec,
)


def test_in_memory_store_basic_operations() -> None:
    store = InMemoryStore({"a": "1"})

    store.put("b", "2")
    store.remove("a")
    store.remove("missing")

    assert store.get("a") is None
    assert store.get("b") == "2"
    assert store.keys() == ["b"]


def test_json_file_store_round_trip(tmp_path: Path) -> None:
    store = JsonFileStore(tmp_path / "sessions")

    assert store.get("default.chat_history") is None
    store.put("default.chat_history", '{"turns": []}')

    assert store.get("default.chat_history") == '{"turns": []}'
    assert (tmp_path / "sessions" / "default.chat_history.json").exists()
    assert not list((tmp_path / "sessions").glob("*.tmp"))

    store.remove("default.chat_history")
    store.remove("default.chat_history")
    assert store.get("default.chat_history") is None


def test_json_file_store_sanitizes_keys(tmp_path: Path) -> None:
    store = JsonFileStore(tmp_path)

    store.put("../team plan/x", "value")

    assert (tmp_path / ".._team_plan_x.json").exists()
    assert store.get("../team plan/x") == "value"
    with pytest.raises(ValueError):
        store.put("..", "value")


def test_json_file_store_wraps_write_errors(tmp_path: Path) -> None:
    blocker = tmp_path / "blocker"
    blocker.write_text("not a directory", encoding="utf-8")
    store = JsonFileStore(blocker / "nested")

    with pytest.raises(PersistenceError):
        store.put("key", "value")


def test_session_record_keys() -> None:
    keys = SessionRecordKeys("alpha")

    assert keys.chat_history == "alpha.chat_history"
    assert keys.project_plan == "alpha.project_plan"


def test_turn_snapshot_round_trip() -> None:
    turns = [
        Turn(role="assistant", text="Hello", timestamp=datetime(2024, 5, 1, 9, 0, 0, 123456, tzinfo=timezone.utc)),
        Turn(role="user", text="A bakery website", timestamp=datetime(2024, 5, 1, 9, 0, 7, 1, tzinfo=timezone.utc)),
    ]

    text = SessionSnapshotCodec.dump_turns(turns)

    assert json.loads(text)["version"] == 1
    assert SessionSnapshotCodec.load_turns(text) == turns


def test_turn_snapshot_accepts_bare_legacy_list() -> None:
    legacy = json.dumps(
        [
            {"role": "model", "text": "Hello", "timestamp": "2024-05-01T09:00:00.000Z"},
            {"role": "user", "text": "Hi", "timestamp": "2024-05-01T09:00:05.000Z"},
        ]
    )

    turns = SessionSnapshotCodec.load_turns(legacy)

    assert [turn.role for turn in turns] == ["assistant", "user"]
    assert turns[1].timestamp == datetime(2024, 5, 1, 9, 0, 5, tzinfo=timezone.utc)


def test_turn_snapshot_rejects_non_list() -> None:
    with pytest.raises(ValueError):
        SessionSnapshotCodec.load_turns('{"turns": "nope"}')


def test_plan_snapshot_round_trip(sample_plan: StructuredPlan) -> None:
    text = SessionSnapshotCodec.dump_plan(sample_plan)

    assert json.loads(text)["plan"]["title"] == "Todo App"
    assert SessionSnapshotCodec.load_plan(text) == sample_plan


def test_plan_snapshot_accepts_bare_object(sample_plan: StructuredPlan) -> None:
    text = json.dumps(sample_plan.to_dict())

    assert SessionSnapshotCodec.load_plan(text) == sample_plan
    with pytest.raises(ValueError):
        SessionSnapshotCodec.load_plan("[]")


def test_json_file_store_reports_undecodable_files(tmp_path: Path) -> None:
    store = JsonFileStore(tmp_path)
    (tmp_path / "default.chat_history.json").write_bytes(b"\xff\xfe\x00garbage")

    with pytest.raises(PersistenceError):
        store.get("default.chat_history")
