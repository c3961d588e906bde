"""Tests for the settings persistence layer."""

from __future__ import annotations

import json
import os
from pathlib import Path

import pytest

from plansmith.services.settings import SecretVault, Settings, SettingsStore, redact_secret


@pytest.fixture(autouse=True)
def _clear_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in list(os.environ):
        if name.startswith("PLANSMITH_"):
            monkeypatch.delenv(name)


def test_load_returns_defaults_when_file_missing(tmp_path: Path) -> None:
    store = SettingsStore(tmp_path / "settings.json", vault=SecretVault(key_path=tmp_path / "key"))

    assert store.load() == Settings()


def test_save_and_load_roundtrip(tmp_path: Path) -> None:
    path = tmp_path / "settings.json"
    original = Settings(
        base_url="https://example.com/v1",
        api_key="super-secret",
        model="gpt-4.1-mini",
        organization="acme",
        temperature=0.7,
        default_headers={"X-Test": "1"},
        metadata={"env": "dev"},
        data_dir=str(tmp_path / "sessions"),
        session_id="garden",
        min_turns_for_synthesis=4,
    )

    SettingsStore(path).save(original)
    reloaded = SettingsStore(path).load()

    assert reloaded == original
    on_disk = json.loads(path.read_text(encoding="utf-8"))
    assert "api_key" not in on_disk
    assert on_disk["api_key_ciphertext"].startswith("fernet:")
    assert "super-secret" not in path.read_text(encoding="utf-8")


def test_load_legacy_plaintext_api_key(tmp_path: Path) -> None:
    target = tmp_path / "settings.json"
    target.write_text(
        json.dumps({"base_url": "https://old", "api_key": "plain-key", "model": "gpt-3.5"}),
        encoding="utf-8",
    )

    loaded = SettingsStore(target).load()

    assert loaded.api_key == "plain-key"
    assert loaded.base_url == "https://old"
    migrated = json.loads(target.read_text(encoding="utf-8"))
    assert "api_key" not in migrated
    assert migrated["version"] == 1


def test_unknown_fields_are_ignored(tmp_path: Path) -> None:
    target = tmp_path / "settings.json"
    target.write_text(json.dumps({"model": "gpt-4o", "theme": "dark", "version": 1}), encoding="utf-8")

    assert SettingsStore(target).load().model == "gpt-4o"


def test_invalid_json_falls_back_to_defaults(tmp_path: Path) -> None:
    target = tmp_path / "settings.json"
    target.write_text("{not json", encoding="utf-8")

    assert SettingsStore(target).load() == Settings()


def test_env_overrides_take_precedence(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    path = tmp_path / "settings.json"
    SettingsStore(path).save(Settings(base_url="https://file", api_key="file-key"))
    monkeypatch.setenv("PLANSMITH_BASE_URL", "https://env-base")
    monkeypatch.setenv("PLANSMITH_API_KEY", "env-key")
    monkeypatch.setenv("PLANSMITH_DEBUG_LOGGING", "true")
    monkeypatch.setenv("PLANSMITH_TEMPERATURE", "0.95")
    monkeypatch.setenv("PLANSMITH_MIN_TURNS", "6")

    settings = SettingsStore(path).load()

    assert settings.base_url == "https://env-base"
    assert settings.api_key == "env-key"
    assert settings.debug_logging is True
    assert settings.temperature == pytest.approx(0.95)
    assert settings.min_turns_for_synthesis == 6


def test_invalid_numeric_env_override_is_ignored(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("PLANSMITH_MIN_TURNS", "lots")

    assert SettingsStore(tmp_path / "settings.json").load().min_turns_for_synthesis == 3


def test_load_applies_cli_overrides(tmp_path: Path) -> None:
    settings = SettingsStore(tmp_path / "settings.json").load(
        overrides={"model": "gpt-4o", "session_id": "cli", "organization": None, "bogus": 1}
    )

    assert settings.model == "gpt-4o"
    assert settings.session_id == "cli"
    assert settings.organization is None


def test_env_overrides_take_priority_over_cli(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("PLANSMITH_SESSION_ID", "env")

    settings = SettingsStore(tmp_path / "settings.json").load(overrides={"session_id": "cli"})

    assert settings.session_id == "env"


def test_secret_vault_round_trip_and_errors(tmp_path: Path) -> None:
    vault = SecretVault(key_path=tmp_path / "vault.key")

    token = vault.encrypt("hunter2")

    assert token.startswith("fernet:")
    assert vault.decrypt(token) == "hunter2"
    assert SecretVault(key_path=tmp_path / "vault.key").decrypt(token) == "hunter2"
    assert vault.encrypt("") == ""
    assert vault.decrypt(None) == ""
    with pytest.raises(ValueError):
        vault.decrypt("dpapi:abc")
    with pytest.raises(ValueError):
        SecretVault(key_path=tmp_path / "other.key").decrypt(token)


def test_undecryptable_key_loads_as_empty(tmp_path: Path) -> None:
    path = tmp_path / "settings.json"
    SettingsStore(path).save(Settings(api_key="secret"))
    path.with_suffix(".key").unlink()

    assert SettingsStore(path).load().api_key == ""


@pytest.mark.parametrize(
    ("value", "expected"),
    [("", ""), ("abc", "***"), ("super-secret", "su********et")],
)
def test_redact_secret(value: str, expected: str) -> None:
    assert redact_secret(value) == expected
