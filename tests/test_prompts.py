"""Tests for grammar check prompt helpers."""

from __future__ import annotations

import pytest

from grammy.ai import prompts


def test_literal_prompt_requests_exact_substrings() -> None:
    content = prompts.system_prompt(prompts.SpanMode.LITERAL)

    assert '"original"' in content
    assert '"severity": "error|warning|suggestion"' in content
    assert '{"matches": []}' in content
    assert "null" in content


def test_offset_prompt_requests_character_indices() -> None:
    content = prompts.system_prompt(prompts.SpanMode.OFFSETS)

    assert '"start"' in content
    assert '"end"' in content
    assert "not bytes" in content


def test_format_user_prompt() -> None:
    assert prompts.format_user_prompt("I has a cat.") == "Text:\nI has a cat."


def test_span_mode_coerce() -> None:
    assert prompts.SpanMode.coerce("Offsets") is prompts.SpanMode.OFFSETS
    with pytest.raises(ValueError):
        prompts.SpanMode.coerce("regex")
