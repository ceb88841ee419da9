"""Tests covering the command line entry point."""

from __future__ import annotations

import io
import json
from pathlib import Path
from typing import Sequence

import pytest

from grammy import app
from grammy.ai.ai_types import CheckError, CheckResult
from grammy.services.settings import Settings, SettingsStore
from grammy.session.history import HistoryEntry
from grammy.suggestions.models import RawMatch, Suggestion


class _ScriptedChecker:
    def __init__(self, *matches: RawMatch, error: str | None = None) -> None:
        self._matches = matches
        self._error = error
        self.texts: list[str] = []

    async def check(self, text: str, history: Sequence[HistoryEntry] = ()) -> CheckResult:
        self.texts.append(text)
        if self._error:
            raise CheckError(self._error)
        return CheckResult(matches=self._matches, transcript="{}")

    async def aclose(self) -> None:
        return None


@pytest.fixture(autouse=True)
def _quiet_logging(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(app, "configure_logging", lambda debug=False, *, force=False: None)


@pytest.fixture
def document(tmp_path: Path) -> Path:
    target = tmp_path / "draft.txt"
    target.write_text("I has a cat.\nIt are happy.\n", encoding="utf-8")
    return target


@pytest.fixture
def settings() -> Settings:
    return Settings(debounce_ms=0, tick_interval_ms=5, openai_api_key="test")


def test_run_check_prints_suggestions(document: Path, settings: Settings) -> None:
    checker = _ScriptedChecker(RawMatch.literal("has", "have", message="Verb"), RawMatch.literal("are", "is"))
    stream = io.StringIO()

    code = app.run_check(document, settings, checker=checker, stream=stream)  # type: ignore[arg-type]

    lines = stream.getvalue().splitlines()
    assert code == app.EXIT_OK
    assert lines[0] == f"{document}:1:3: error: Verb ['has' -> 'have']"
    assert lines[1].startswith(f"{document}:2:4: error:")
    assert lines[-1] == "2 suggestion(s)"
    assert checker.texts == ["I has a cat.\nIt are happy.\n"]


def test_run_check_json_with_apply_all(document: Path, settings: Settings) -> None:
    checker = _ScriptedChecker(
        RawMatch.literal("has", "have"),
        RawMatch.literal("cat", None, message="Consider 'kitten'"),
        RawMatch.literal("are", "is"),
    )
    stream = io.StringIO()

    code = app.run_check(
        document, settings, apply_all=True, as_json=True, checker=checker, stream=stream  # type: ignore[arg-type]
    )

    payload = json.loads(stream.getvalue())
    assert code == app.EXIT_OK
    assert payload["applied"] == 2
    assert payload["text"] == "I have a cat.\nIt is happy.\n"
    assert [item["original"] for item in payload["found"]] == ["has", "cat", "are"]
    remaining = payload["suggestions"]
    assert [item["original"] for item in remaining] == ["cat"]
    assert remaining[0]["offset"] == payload["text"].encode("utf-8").index(b"cat")
    assert document.read_text(encoding="utf-8") == "I has a cat.\nIt are happy.\n"


def test_run_check_in_place(document: Path, settings: Settings) -> None:
    checker = _ScriptedChecker(RawMatch.literal("are", "is"))

    code = app.run_check(
        document, settings, apply_all=True, in_place=True, checker=checker, stream=io.StringIO()  # type: ignore[arg-type]
    )

    assert code == app.EXIT_OK
    assert document.read_text(encoding="utf-8") == "I has a cat.\nIt is happy.\n"


def test_run_check_reports_failures(
    document: Path, settings: Settings, capsys: pytest.CaptureFixture[str]
) -> None:
    checker = _ScriptedChecker(error="Network error: connection refused")

    code = app.run_check(document, settings, checker=checker, stream=io.StringIO())  # type: ignore[arg-type]

    assert code == app.EXIT_CHECK_FAILED
    assert "Network error: connection refused" in capsys.readouterr().err


def test_run_check_empty_file_skips_request(tmp_path: Path, settings: Settings) -> None:
    target = tmp_path / "empty.txt"
    target.write_text("", encoding="utf-8")
    checker = _ScriptedChecker()
    stream = io.StringIO()

    code = app.run_check(target, settings, checker=checker, stream=stream)  # type: ignore[arg-type]

    assert code == app.EXIT_OK
    assert stream.getvalue() == "Ready\n"
    assert checker.texts == []


def test_format_suggestion_counts_characters_not_bytes() -> None:
    text = "😀 x\nnaïve tset"
    offset = len("😀 x\nnaïve ".encode("utf-8"))
    mapped = Suggestion.create("Typo", offset, "tset", "test")

    assert app.format_suggestion(Path("f.txt"), text, mapped).startswith("f.txt:2:7: error: Typo")


def test_dump_settings_redacts_keys(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    settings_path = tmp_path / "settings.json"
    SettingsStore(settings_path).save(Settings(openai_api_key="sk-1234567890abcd"))
    monkeypatch.setenv("GRAMMY_MODEL", "gpt-4.1")

    code = app.main(["--settings-path", str(settings_path), "--set", "debounce_ms=300", "--dump-settings"])

    payload = json.loads(capsys.readouterr().out)
    assert code == app.EXIT_OK
    assert payload["settings"]["openai_api_key"] == "sk-…abcd"
    assert payload["settings"]["debounce_ms"] == 300
    assert payload["settings"]["model"] == "gpt-4.1"
    assert payload["meta"]["cli_overrides"] == ["debounce_ms"]
    assert "GRAMMY_MODEL" in payload["meta"]["environment_variables"]
    assert payload["meta"]["secret_backend"] == "fernet"


def test_save_settings_persists_overrides(tmp_path: Path) -> None:
    settings_path = tmp_path / "settings.json"

    code = app.main(
        ["--settings-path", str(settings_path), "--set", "provider=openrouter", "--set", "api_key=or-key", "--save-settings"]
    )

    reloaded = SettingsStore(settings_path).load()
    assert code == app.EXIT_OK
    assert reloaded.provider.value == "openrouter"
    assert reloaded.openrouter_api_key == "or-key"


@pytest.mark.parametrize("override", ["nonsense", "theme=dark", "=1", "debounce_ms=fast"])
def test_invalid_overrides_exit_with_usage_error(
    override: str, tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    code = app.main(["--settings-path", str(tmp_path / "s.json"), "--set", override, "--dump-settings"])

    assert code == app.EXIT_USAGE
    assert "Invalid --set override" in capsys.readouterr().err


def test_check_command_wires_settings(
    document: Path, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    captured: dict[str, object] = {}

    def _fake_run_check(path: Path, settings: Settings, **kwargs: object) -> int:
        captured.update(path=path, settings=settings, **kwargs)
        return app.EXIT_OK

    monkeypatch.setattr(app, "run_check", _fake_run_check)

    code = app.main(
        [
            "--settings-path",
            str(tmp_path / "s.json"),
            "check",
            str(document),
            "--json",
            "--debounce-ms",
            "0",
            "--timeout",
            "5",
        ]
    )

    settings = captured["settings"]
    assert code == app.EXIT_OK
    assert captured["path"] == document
    assert captured["as_json"] is True
    assert isinstance(settings, Settings)
    assert settings.debounce_ms == 0
    assert settings.request_timeout == 5.0


def test_no_command_prints_help(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    code = app.main(["--settings-path", str(tmp_path / "s.json")])

    assert code == app.EXIT_USAGE
    assert "usage: grammy" in capsys.readouterr().err
