"""Shared pytest fixtures."""

from __future__ import annotations

import os
from pathlib import Path

import pytest

from grammy.suggestions.models import Severity, Suggestion


@pytest.fixture(autouse=True)
def _isolated_environment(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    for name in list(os.environ):
        if name.startswith("GRAMMY_") or name in {"OPENAI_API_KEY", "OPENROUTER_API_KEY"}:
            monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("GRAMMY_LOG_DIR", str(tmp_path / "logs"))


@pytest.fixture
def cat_document() -> str:
    return "I has a cat."


@pytest.fixture
def make_suggestion():
    def _factory(
        document: str,
        original: str,
        replacement: str | None,
        *,
        message: str = "",
        severity: Severity = Severity.ERROR,
    ) -> Suggestion:
        index = document.index(original)
        offset = len(document[:index].encode("utf-8"))
        return Suggestion.create(message, offset, original, replacement, severity)

    return _factory
