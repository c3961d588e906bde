"""Key-value persistence for conversation logs and plan snapshots."""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Protocol

from ..chat.message_model import Turn
from ..plans.plan_model import StructuredPlan

__all__ = [
    "InMemoryStore",
    "JsonFileStore",
    "PersistenceError",
    "PersistenceStore",
    "SessionRecordKeys",
    "SessionSnapshotCodec",
]

LOGGER = logging.getLogger(__name__)
_SNAPSHOT_VERSION = 1
_UNSAFE_KEY_CHARS = re.compile(r"[^A-Za-z0-9._-]")


class PersistenceError(RuntimeError):
    """Raised when a store cannot complete a write or delete."""


class PersistenceStore(Protocol):
    """Durable string key-value store."""

    def get(self, key: str) -> str | None:
        """Return the stored value, or None when the key is absent."""
        ...

    def put(self, key: str, value: str) -> None:
        """Store ``value`` under ``key``, replacing any previous value."""
        ...

    def remove(self, key: str) -> None:
        """Delete ``key``; deleting a missing key is not an error."""
        ...


class InMemoryStore:
    """Dictionary-backed store for tests and throwaway sessions."""

    def __init__(self, initial: Mapping[str, str] | None = None) -> None:
        self._data: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> str | None:
        return self._data.get(key)

    def put(self, key: str, value: str) -> None:
        self._data[key] = value

    def remove(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self) -> List[str]:
        return sorted(self._data)


class JsonFileStore:
    """Stores each key as ``<key>.json`` inside a directory with atomic writes."""

    def __init__(self, directory: Path | str) -> None:
        self._directory = Path(directory).expanduser()

    @property
    def directory(self) -> Path:
        return self._directory

    def get(self, key: str) -> str | None:
        path = self._path_for(key)
        if not path.exists():
            return None
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except (OSError, UnicodeDecodeError) as exc:
            raise PersistenceError(f"Unable to read {path}: {exc}") from exc

    def put(self, key: str, value: str) -> None:
        path = self._path_for(key)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path = path.with_suffix(".tmp")
            tmp_path.write_text(value, encoding="utf-8")
            tmp_path.replace(path)
        except OSError as exc:
            raise PersistenceError(f"Unable to write {path}: {exc}") from exc
        LOGGER.debug("Stored %s (%d chars)", path, len(value))

    def remove(self, key: str) -> None:
        path = self._path_for(key)
        try:
            path.unlink(missing_ok=True)
        except OSError as exc:
            raise PersistenceError(f"Unable to remove {path}: {exc}") from exc

    def _path_for(self, key: str) -> Path:
        safe = _UNSAFE_KEY_CHARS.sub("_", key.strip())
        if not safe or safe.strip(".") == "":
            raise ValueError(f"Invalid store key: {key!r}")
        return self._directory / f"{safe}.json"


@dataclass(slots=True, frozen=True)
class SessionRecordKeys:
    """The two record keys owned by one session."""

    session_id: str

    @property
    def chat_history(self) -> str:
        return f"{self.session_id}.chat_history"

    @property
    def project_plan(self) -> str:
        return f"{self.session_id}.project_plan"


class SessionSnapshotCodec:
    """Serializes conversation logs and plans to JSON text.

    Snapshots are wrapped in a versioned envelope; bare lists and objects
    written by older builds are accepted on load.
    """

    @staticmethod
    def dump_turns(turns: Iterable[Turn]) -> str:
        payload = {"version": _SNAPSHOT_VERSION, "turns": [turn.to_dict() for turn in turns]}
        return json.dumps(payload, ensure_ascii=False)

    @staticmethod
    def load_turns(text: str) -> List[Turn]:
        data = json.loads(text)
        if isinstance(data, Mapping):
            data = data.get("turns")
        if not isinstance(data, list):
            raise ValueError("Conversation snapshot must contain a list of turns")
        return [Turn.from_dict(entry) for entry in data if isinstance(entry, Mapping)]

    @staticmethod
    def dump_plan(plan: StructuredPlan) -> str:
        payload = {"version": _SNAPSHOT_VERSION, "plan": plan.to_dict()}
        return json.dumps(payload, ensure_ascii=False)

    @staticmethod
    def load_plan(text: str) -> StructuredPlan:
        data: Any = json.loads(text)
        if isinstance(data, Mapping) and isinstance(data.get("plan"), Mapping) and "version" in data:
            data = data["plan"]
        if not isinstance(data, Mapping):
            raise ValueError("Plan snapshot must be a JSON object")
        return StructuredPlan.from_dict(data)
