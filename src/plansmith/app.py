"""Console entry point for the PlanSmith planning assistant."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import sys
from dataclasses import asdict, replace
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional, Sequence, TextIO, get_args, get_origin, get_type_hints

from .ai.client import AIClient, ClientSettings
from .ai.gateway import OpenAISynthesisGateway
from .plans.editing import PlanPathError, blank_entry, resolve
from .session.plan_session import PlanSession, SynthesisOutcome
from .session.transaction import EditTransaction, TransactionError
from .services.persistence import JsonFileStore
from .services.settings import Settings, SettingsStore, redact_secret
from .utils import logging as logging_utils

_TRUE_VALUES = {"1", "true", "yes", "on", "debug"}
_FALSE_VALUES = {"0", "false", "no", "off", "disabled"}
_LOGGER = logging.getLogger(__name__)

LineReader = Callable[[], Awaitable[Optional[str]]]

_HELP_TEXT = """\
Type a message to talk to the assistant. Commands:
  /plan                  show the current plan as JSON
  /refresh               rebuild the plan from the conversation now
  /reset                 start a new project (clears chat and plan)
  /set PATH VALUE        edit a text field, e.g. /set overview.summary A CLI tool
  /add PATH [VALUE]      append an entry, e.g. /add risks or /add nextSteps Ship beta
  /remove PATH INDEX     remove an entry, e.g. /remove features 0
  /quit                  exit
"""

_REFRESH_MESSAGES: Mapping[SynthesisOutcome, str] = {
    SynthesisOutcome.APPLIED: "Plan updated.",
    SynthesisOutcome.BUSY: "A plan update is already running; try again shortly.",
    SynthesisOutcome.NO_RESULT: "No plan update this round.",
    SynthesisOutcome.STALE: "Plan update discarded because the plan was edited meanwhile.",
    SynthesisOutcome.SKIPPED: "Not enough conversation to build a plan yet.",
}


def configure_logging(debug: bool = False, *, force: bool = False) -> None:
    """Configure structured logging for the application."""

    level = logging.DEBUG if debug else logging.INFO
    logging_utils.setup_logging(level, force=force)
    _LOGGER.debug("Logging configured (level=%s)", logging.getLevelName(level))


def load_settings(
    path: Optional[Path] = None,
    *,
    store: SettingsStore | None = None,
    overrides: Mapping[str, Any] | None = None,
) -> Settings:
    """Load persisted settings or fall back to defaults."""

    active_store = store or SettingsStore(path)
    try:
        settings = active_store.load(overrides=overrides)
    except (OSError, ValueError) as exc:
        _LOGGER.warning("Failed to load settings from %s: %s", active_store.path, exc)
        settings = Settings()
    return settings


def main(argv: Sequence[str] | None = None) -> None:
    """Entry point invoked by the `plansmith` console script."""

    args = _parse_cli_args(argv)

    debug = _env_flag("PLANSMITH_DEBUG", default=False)
    configure_logging(debug)

    settings_path = args.settings_path or os.environ.get("PLANSMITH_SETTINGS_PATH")
    resolved_path = Path(settings_path).expanduser() if settings_path else None
    settings_store = SettingsStore(resolved_path)
    try:
        cli_overrides = _coerce_cli_overrides(args.overrides or [])
    except ValueError as exc:
        print(f"Invalid --set override: {exc}", file=sys.stderr)
        raise SystemExit(2) from exc
    if args.session:
        cli_overrides["session_id"] = args.session

    settings = load_settings(resolved_path, store=settings_store, overrides=cli_overrides or None)

    if args.dump_settings:
        _dump_settings(settings, settings_store, overrides=cli_overrides)
        return

    if settings.debug_logging and not debug:
        configure_logging(True, force=True)
        debug = True

    if not settings.api_key:
        print("No API key configured. Set PLANSMITH_API_KEY or use --set api_key=...", file=sys.stderr)
        raise SystemExit(2)

    try:
        asyncio.run(_run(settings, debug_logging=debug))
    except KeyboardInterrupt:  # pragma: no cover - manual shutdown path
        _LOGGER.info("Shutdown requested by user.")


async def _run(settings: Settings, *, debug_logging: bool = False) -> None:
    client = _build_ai_client(settings, debug_logging=debug_logging)
    gateway = OpenAISynthesisGateway(client, temperature=settings.temperature)
    store = JsonFileStore(settings.data_dir)
    session = PlanSession(
        gateway,
        store,
        session_id=settings.session_id,
        min_turns_for_synthesis=settings.min_turns_for_synthesis,
        on_plan_changed=lambda plan: _LOGGER.info(
            "Plan %s", "cleared" if plan is None else f"updated: {plan.title or 'Untitled Project'}"
        ),
    )
    try:
        await run_chat(session)
    finally:
        await session.aclose()
        await client.aclose()


def _build_ai_client(settings: Settings, *, debug_logging: bool = False) -> AIClient:
    client_settings = ClientSettings(
        base_url=settings.base_url,
        api_key=settings.api_key,
        model=settings.model,
        organization=settings.organization,
        request_timeout=settings.request_timeout,
        max_retries=settings.max_retries,
        retry_min_seconds=settings.retry_min_seconds,
        retry_max_seconds=settings.retry_max_seconds,
        default_headers=settings.default_headers,
        metadata=settings.metadata,
        debug_logging=debug_logging or settings.debug_logging,
    )
    return AIClient(client_settings)


# -----------------------------------------------------------------------------
# Chat loop
# -----------------------------------------------------------------------------


async def run_chat(
    session: PlanSession,
    *,
    reader: LineReader | None = None,
    stream: TextIO | None = None,
) -> None:
    """Drive ``session`` from line input until EOF or ``/quit``."""

    read_line = reader or _read_stdin_line
    out = stream or sys.stdout
    for turn in session.turns:
        _write(out, f"{turn.role}: {turn.text}")
    while True:
        line = await read_line()
        if line is None:
            break
        line = line.strip()
        if not line:
            continue
        if line.startswith("/"):
            if not await handle_command(session, line, out):
                break
            continue
        reply = await session.send_message(line)
        _write(out, f"assistant: {reply}")


async def handle_command(session: PlanSession, line: str, out: TextIO) -> bool:
    """Run one slash command; return False when the loop should stop."""

    command, _, rest = line.partition(" ")
    command = command.lower()
    rest = rest.strip()
    if command in {"/quit", "/exit"}:
        return False
    if command == "/help":
        _write(out, _HELP_TEXT.rstrip())
    elif command == "/plan":
        plan = session.current_plan()
        if plan is None:
            _write(out, "No plan generated yet.")
        else:
            _write(out, json.dumps(plan.to_dict(), indent=2, ensure_ascii=False))
    elif command == "/refresh":
        outcome = await session.request_refresh()
        _write(out, _REFRESH_MESSAGES[outcome])
    elif command == "/reset":
        session.reset_session()
        for turn in session.turns:
            _write(out, f"{turn.role}: {turn.text}")
    elif command in {"/set", "/add", "/remove"}:
        _run_edit_command(session, command, rest, out)
    else:
        _write(out, f"Unknown command {command}. Type /help for options.")
    return True


def _run_edit_command(session: PlanSession, command: str, rest: str, out: TextIO) -> None:
    path, _, argument = rest.partition(" ")
    argument = argument.strip()
    if not path:
        _write(out, f"Usage: {command} PATH ...")
        return
    try:
        tx = session.open_edit()
    except TransactionError as exc:
        _write(out, f"Cannot edit: {exc}")
        return
    try:
        _apply_edit(tx, command, path, argument)
    except (PlanPathError, TransactionError, ValueError) as exc:
        session.cancel_edit()
        _write(out, f"Edit failed: {exc}")
        return
    session.commit_edit()
    _write(out, "Plan saved.")


def _apply_edit(tx: EditTransaction, command: str, path: str, argument: str) -> None:
    if command == "/set":
        current = resolve(tx.plan, path)
        if current is not None and not isinstance(current, str):
            raise ValueError(f"{path} is not a text field")
        tx.set_field(path, argument)
    elif command == "/add":
        if argument and blank_entry(path) != "":
            raise ValueError(f"{path} holds records; add a blank entry, then /set its fields")
        tx.append_entry(path, argument or None)
    else:
        tx.remove_entry(path, int(argument, 10))


async def _read_stdin_line() -> str | None:
    try:
        return await asyncio.to_thread(input, "> ")
    except EOFError:
        return None


def _write(stream: TextIO, text: str) -> None:
    stream.write(text + "\n")
    stream.flush()


# -----------------------------------------------------------------------------
# CLI helpers
# -----------------------------------------------------------------------------


def _env_flag(name: str, *, default: bool = False) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in _TRUE_VALUES


def _parse_cli_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="plansmith",
        description="Build a structured project plan by chatting with an assistant.",
    )
    parser.add_argument(
        "--dump-settings",
        action="store_true",
        help="Print the effective settings payload (with secrets redacted) and exit.",
    )
    parser.add_argument(
        "--settings-path",
        metavar="PATH",
        help="Override the default ~/.plansmith/settings.json path.",
    )
    parser.add_argument(
        "--session",
        metavar="ID",
        help="Session id used to namespace the saved conversation and plan.",
    )
    parser.add_argument(
        "--set",
        dest="overrides",
        metavar="KEY=VALUE",
        action="append",
        default=[],
        help="Override persisted settings before launch (repeatable).",
    )
    return parser.parse_args(argv)


def _coerce_cli_overrides(items: Sequence[str]) -> Dict[str, Any]:
    overrides: Dict[str, Any] = {}
    if not items:
        return overrides

    fields = Settings.__dataclass_fields__  # type: ignore[attr-defined]
    type_hints = get_type_hints(Settings)
    for entry in items:
        if "=" not in entry:
            raise ValueError(f"Override '{entry}' must use KEY=VALUE syntax.")
        key, raw_value = entry.split("=", 1)
        key = key.strip()
        if not key:
            raise ValueError("Override is missing a field name.")
        if key not in fields:
            raise ValueError(f"Unknown setting '{key}'.")
        annotation = type_hints.get(key, fields[key].type)
        overrides[key] = _coerce_value(annotation, raw_value.strip())
    return overrides


def _coerce_value(annotation: Any, raw_value: str) -> Any:
    target = _resolve_annotation(annotation)
    normalized = raw_value.strip()

    if target is str or target is Any:
        return normalized
    if target is bool:
        return _parse_bool(normalized)
    if target is int:
        return int(normalized, 10)
    if target is float:
        return float(normalized)
    if target is dict:
        try:
            return json.loads(normalized or "{}")
        except json.JSONDecodeError as exc:
            raise ValueError("Dict overrides must be valid JSON objects") from exc
    return normalized


def _resolve_annotation(annotation: Any) -> Any:
    origin = get_origin(annotation)
    if origin is None:
        return annotation
    if origin in {list, dict}:
        return origin
    args = [arg for arg in get_args(annotation) if arg is not type(None)]
    if not args:
        return origin
    return args[0]


def _parse_bool(value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    raise ValueError(f"Cannot coerce '{value}' to a boolean.")


def _dump_settings(
    settings: Settings,
    store: SettingsStore,
    *,
    overrides: Mapping[str, Any],
    stream: TextIO | None = None,
) -> None:
    destination = stream or sys.stdout
    payload = asdict(replace(settings, api_key=redact_secret(settings.api_key)))
    metadata = {
        "path": str(store.path),
        "secret_backend": store.vault.strategy,
        "cli_overrides": sorted(overrides.keys()),
        "environment_variables": _active_env_overrides(),
    }
    json.dump({"settings": payload, "meta": metadata}, destination, indent=2)
    destination.write("\n")


def _active_env_overrides() -> list[str]:
    return sorted(name for name in os.environ if name.startswith("PLANSMITH_"))
