"""Command line entry point for grammy."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import sys
import time
from dataclasses import asdict
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Sequence, TextIO

from .ai.ai_types import CheckError
from .ai.checker import GrammarChecker, build_checker
from .documents.ranges import encode_text
from .services.settings import Settings, SettingsStore, redact_secret
from .session.controller import CheckSessionController, SessionState
from .session.events import CheckCompleted
from .session.history import MessageHistory
from .session.worker import CheckWorker
from .suggestions.models import Suggestion
from .utils import logging as logging_utils

_LOGGER = logging.getLogger(__name__)
_TRUE_VALUES = {"1", "true", "yes", "on", "debug"}
_SETTING_KEYS = frozenset(Settings.__dataclass_fields__) | {"api_key"}  # type: ignore[attr-defined]
_IDLE_STATES = (SessionState.IDLE, SessionState.WORKER_FAILED)
_DEFAULT_TIMEOUT = 120.0

EXIT_OK = 0
EXIT_CHECK_FAILED = 1
EXIT_USAGE = 2


def configure_logging(debug: bool = False, *, force: bool = False) -> None:
    level = logging.DEBUG if debug else logging.WARNING
    logging_utils.setup_logging(level, force=force)
    _LOGGER.debug("Logging configured (level=%s)", logging.getLevelName(level))


def load_settings(
    path: Optional[Path] = None,
    *,
    store: SettingsStore | None = None,
    overrides: Mapping[str, Any] | None = None,
) -> Settings:
    """Load persisted settings with CLI overrides applied on top."""

    active_store = store or SettingsStore(path)
    return active_store.load(overrides=overrides)


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point invoked by the ``grammy`` console script."""

    args = _parse_cli_args(argv)

    debug = _env_flag("GRAMMY_DEBUG", default=False)
    configure_logging(debug)

    settings_path = args.settings_path or os.environ.get("GRAMMY_SETTINGS_PATH")
    resolved_path = Path(settings_path).expanduser() if settings_path else None
    settings_store = SettingsStore(resolved_path)
    try:
        cli_overrides = _coerce_cli_overrides(args.overrides or [])
        if args.command == "check":
            cli_overrides.update(_check_overrides(args))
        settings = load_settings(resolved_path, store=settings_store, overrides=cli_overrides or None)
    except ValueError as exc:
        print(f"Invalid --set override: {exc}", file=sys.stderr)
        return EXIT_USAGE

    if settings.debug_logging and not debug:
        configure_logging(True, force=True)

    if args.save_settings:
        saved = settings_store.save(settings)
        print(f"Settings saved to {saved}", file=sys.stderr)

    if args.dump_settings:
        _dump_settings(settings, settings_store, overrides=cli_overrides)
        return EXIT_OK

    if args.command == "check":
        return run_check(
            Path(args.file),
            settings,
            apply_all=args.apply_all,
            as_json=args.json,
            in_place=args.in_place,
            timeout=args.timeout_total,
        )
    if args.command == "models":
        return _run_probe(build_checker(settings), list_models=True)
    if args.command == "test-connection":
        return _run_probe(build_checker(settings), list_models=False)
    if not args.save_settings:
        args.parser.print_help(sys.stderr)
        return EXIT_USAGE
    return EXIT_OK


# ----------------------------------------------------------------------
# check
# ----------------------------------------------------------------------
class _CheckOutcomes:
    """Collects completion events published while the CLI drives a session."""

    def __init__(self) -> None:
        self.errors: list[str] = []

    def on_completed(self, event: CheckCompleted) -> None:
        if not event.ok and event.error:
            self.errors.append(event.error)


def run_check(
    path: Path,
    settings: Settings,
    *,
    apply_all: bool = False,
    as_json: bool = False,
    in_place: bool = False,
    timeout: float = _DEFAULT_TIMEOUT,
    checker: GrammarChecker | None = None,
    stream: TextIO | None = None,
) -> int:
    """Check one file headlessly and print the resulting suggestions."""

    destination = stream or sys.stdout
    try:
        text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        print(f"Unable to read {path}: {exc}", file=sys.stderr)
        return EXIT_USAGE

    active_checker = checker or build_checker(settings)
    outcomes = _CheckOutcomes()
    with CheckWorker(active_checker) as worker:
        controller = CheckSessionController(
            worker,
            debounce_seconds=settings.debounce_seconds,
            history=MessageHistory(settings.history_pairs),
        )
        controller.event_bus.subscribe(CheckCompleted, outcomes.on_completed)
        controller.edit(text)
        if not drive_until_idle(controller, worker, timeout=timeout, tick_seconds=settings.tick_seconds):
            print(f"Timed out after {timeout:g}s waiting for the check to finish", file=sys.stderr)
            return EXIT_CHECK_FAILED

    if controller.state is SessionState.WORKER_FAILED or outcomes.errors:
        print(controller.status_text, file=sys.stderr)
        return EXIT_CHECK_FAILED

    found = controller.suggestions
    applied = 0
    if apply_all:
        applied = apply_all_suggestions(controller)
        if in_place and applied:
            path.write_text(controller.document_text, encoding="utf-8")

    if as_json:
        payload: Dict[str, Any] = {
            "path": str(path),
            "status": controller.status_text,
            "suggestions": [suggestion.to_dict() for suggestion in controller.suggestions],
        }
        if apply_all:
            # offsets in "found" address the file as read, "suggestions" the rewritten "text"
            payload["found"] = [suggestion.to_dict() for suggestion in found]
            payload["applied"] = applied
            payload["text"] = controller.document_text
        json.dump(payload, destination, indent=2, ensure_ascii=False)
        destination.write("\n")
    elif apply_all and not in_place:
        destination.write(controller.document_text)
    else:
        for suggestion in found:
            destination.write(format_suggestion(path, text, suggestion) + "\n")
        destination.write(f"{controller.status_text}\n")
    return EXIT_OK


def drive_until_idle(
    controller: CheckSessionController,
    worker: CheckWorker,
    *,
    timeout: float,
    tick_seconds: float,
) -> bool:
    """Tick ``controller`` until no edit is debouncing and no check is in flight."""

    deadline = time.monotonic() + timeout
    while True:
        controller.tick()
        if controller.state in _IDLE_STATES:
            return True
        if time.monotonic() >= deadline:
            return False
        if controller.is_checking:
            worker.wait_for_response(tick_seconds)
        else:
            time.sleep(tick_seconds)


def apply_all_suggestions(controller: CheckSessionController) -> int:
    """Apply every applicable suggestion, first to last; returns how many landed."""

    applied = 0
    skipped: set[str] = set()
    while True:
        candidate = next(
            (
                suggestion
                for suggestion in controller.suggestions
                if not suggestion.is_comment_only and suggestion.id not in skipped
            ),
            None,
        )
        if candidate is None:
            return applied
        if controller.apply(candidate.id):
            applied += 1
        else:
            skipped.add(candidate.id)


def format_suggestion(path: Path, text: str, suggestion: Suggestion) -> str:
    line, column = _line_and_column(text, suggestion.offset)
    if suggestion.replacement is None:
        change = f"'{suggestion.original}'"
    else:
        change = f"'{suggestion.original}' -> '{suggestion.replacement}'"
    return f"{path}:{line}:{column}: {suggestion.severity.value}: {suggestion.message} [{change}]"


def _line_and_column(text: str, byte_offset: int) -> tuple[int, int]:
    prefix = encode_text(text)[:byte_offset].decode("utf-8", errors="surrogatepass")
    line = prefix.count("\n") + 1
    column = len(prefix) - (prefix.rfind("\n") + 1) + 1
    return line, column


# ----------------------------------------------------------------------
# models / test-connection
# ----------------------------------------------------------------------
def _run_probe(checker: GrammarChecker, *, list_models: bool) -> int:
    try:
        result = asyncio.run(_probe(checker, list_models=list_models))
    except CheckError as exc:
        print(str(exc), file=sys.stderr)
        return EXIT_CHECK_FAILED
    if isinstance(result, list):
        for model in result:
            print(model)
    else:
        print(result)
    return EXIT_OK


async def _probe(checker: GrammarChecker, *, list_models: bool) -> list[str] | str:
    try:
        if list_models:
            return await checker.list_models()
        return await checker.test_connection()
    finally:
        await checker.aclose()


# ----------------------------------------------------------------------
# Argument parsing
# ----------------------------------------------------------------------
def _parse_cli_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="grammy",
        description="Check text for grammar problems with an OpenAI-compatible model.",
    )
    parser.add_argument(
        "--dump-settings",
        action="store_true",
        help="Print the effective settings payload (with secrets redacted) and exit.",
    )
    parser.add_argument(
        "--settings-path",
        metavar="PATH",
        help="Override the default ~/.grammy/settings.json path.",
    )
    parser.add_argument(
        "--set",
        dest="overrides",
        metavar="KEY=VALUE",
        action="append",
        default=[],
        help="Override persisted settings for this run (repeatable).",
    )
    parser.add_argument(
        "--save-settings",
        action="store_true",
        help="Persist the effective settings, including --set overrides.",
    )
    subparsers = parser.add_subparsers(dest="command")

    check = subparsers.add_parser("check", help="Check a UTF-8 text file.")
    check.add_argument("file", metavar="FILE")
    check.add_argument("--apply-all", action="store_true", help="Apply every suggestion that has a replacement.")
    check.add_argument("--in-place", action="store_true", help="With --apply-all, rewrite FILE instead of printing.")
    check.add_argument("--json", action="store_true", help="Print suggestions as JSON.")
    check.add_argument("--debounce-ms", type=int, metavar="N", help="Debounce window before the check is sent.")
    check.add_argument("--timeout", type=float, metavar="S", help="Per-request timeout in seconds.")
    check.add_argument(
        "--wait",
        dest="timeout_total",
        type=float,
        default=_DEFAULT_TIMEOUT,
        metavar="S",
        help="Give up if no result arrives within S seconds.",
    )

    subparsers.add_parser("models", help="List the models offered by the configured provider.")
    subparsers.add_parser("test-connection", help="Verify the API key and endpoint.")

    args = parser.parse_args(argv)
    args.parser = parser
    return args


def _check_overrides(args: argparse.Namespace) -> Dict[str, Any]:
    overrides: Dict[str, Any] = {}
    if args.debounce_ms is not None:
        overrides["debounce_ms"] = args.debounce_ms
    if args.timeout is not None:
        overrides["request_timeout"] = args.timeout
    return overrides


def _coerce_cli_overrides(items: Sequence[str]) -> Dict[str, Any]:
    overrides: Dict[str, Any] = {}
    for entry in items:
        if "=" not in entry:
            raise ValueError(f"Override '{entry}' must use KEY=VALUE syntax.")
        key, raw_value = entry.split("=", 1)
        key = key.strip()
        if not key:
            raise ValueError("Override is missing a field name.")
        if key not in _SETTING_KEYS:
            raise ValueError(f"Unknown setting '{key}'.")
        overrides[key] = raw_value.strip()
    return overrides


def _env_flag(name: str, *, default: bool = False) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in _TRUE_VALUES


def _dump_settings(
    settings: Settings,
    store: SettingsStore,
    *,
    overrides: Mapping[str, Any],
    stream: TextIO | None = None,
) -> None:
    destination = stream or sys.stdout
    payload = asdict(settings)
    payload["provider"] = settings.provider.value
    payload["span_mode"] = settings.span_mode.value
    for key in ("openai_api_key", "openrouter_api_key"):
        payload[key] = redact_secret(payload.get(key))
    metadata = {
        "path": str(store.path),
        "secret_backend": store.vault.name,
        "resolved_model": settings.resolved_model,
        "resolved_base_url": settings.resolved_base_url,
        "cli_overrides": sorted(overrides.keys()),
        "environment_variables": _active_env_overrides(),
    }
    json.dump({"settings": payload, "meta": metadata}, destination, indent=2)
    destination.write("\n")


def _active_env_overrides() -> list[str]:
    return sorted(name for name in os.environ if name.startswith("GRAMMY_"))


__all__ = [
    "apply_all_suggestions",
    "configure_logging",
    "drive_until_idle",
    "format_suggestion",
    "load_settings",
    "main",
    "run_check",
]
