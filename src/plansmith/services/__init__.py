"""Service layer helpers (persistence, settings)."""

from .persistence import InMemoryStore, JsonFileStore, PersistenceError, PersistenceStore
from .settings import Settings, SettingsStore

__all__ = [
    "InMemoryStore",
    "JsonFileStore",
    "PersistenceError",
    "PersistenceStore",
    "Settings",
    "SettingsStore",
]
