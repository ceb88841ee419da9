"""Prompt templates for the grammar check request."""

from __future__ import annotations

from enum import Enum
from typing import Any

__all__ = ["SpanMode", "system_prompt", "format_user_prompt"]


class SpanMode(str, Enum):
    """How the model is asked to locate each problem in the text."""

    LITERAL = "literal"
    OFFSETS = "offsets"

    @classmethod
    def coerce(cls, value: Any) -> SpanMode:
        if isinstance(value, SpanMode):
            return value
        try:
            return cls(str(value or "").strip().lower())
        except ValueError as exc:
            raise ValueError(f"Unknown span mode: {value!r}") from exc


def system_prompt(mode: SpanMode = SpanMode.LITERAL) -> str:
    """Return the system prompt for one grammar check.

    Literal mode asks the model to quote the exact text it wants replaced;
    offset mode asks for ``start``/``end`` character indices instead.
    """

    return f"""You are a strict English proofreader.
Flag ONLY:
1. Grammatical errors.
2. Typos and misspellings.
3. Phrases that are clearly awkward or read as non-native.

Rules:
- Leave correct sentences alone, even when another wording is possible.
- Never rewrite whole passages.
- When you have a remark (for example an ambiguity) but no concrete fix, set "replacement" to null.

Reply with JSON only, in exactly this shape:
{_schema_section(mode)}

Severity levels:
- "error": grammar mistakes, typos, wrong word usage
- "warning": awkward or non-native phrasing
- "suggestion": optional polish

{_location_section(mode)}
If nothing needs changing, reply with {{"matches": []}}."""


def format_user_prompt(text: str) -> str:
    return f"Text:\n{text}"


def _schema_section(mode: SpanMode) -> str:
    if mode is SpanMode.OFFSETS:
        locator = '"start": 0,\n      "end": 0,'
    else:
        locator = '"original": "exact text to replace",'
    return (
        "{\n"
        '  "matches": [\n'
        "    {\n"
        '      "message": "what is wrong",\n'
        f"      {locator}\n"
        '      "replacement": "corrected text or null",\n'
        '      "severity": "error|warning|suggestion"\n'
        "    }\n"
        "  ]\n"
        "}"
    )


def _location_section(mode: SpanMode) -> str:
    if mode is SpanMode.OFFSETS:
        return (
            'IMPORTANT: "start" and "end" are zero-based character indices into the text, '
            "counting Unicode characters (not bytes); \"end\" is exclusive."
        )
    return (
        'IMPORTANT: "original" must be copied EXACTLY from the input, including spacing '
        "and punctuation, so it can be found verbatim."
    )
