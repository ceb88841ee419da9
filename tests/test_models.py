"""Tests for suggestion and raw match dataclasses."""

from __future__ import annotations

import dataclasses

import pytest

from grammy.suggestions.models import RawMatch, Severity, Suggestion


def test_severity_coerce_defaults_to_error() -> None:
    assert Severity.coerce("warning") is Severity.WARNING
    assert Severity.coerce(" Suggestion ") is Severity.SUGGESTION
    assert Severity.coerce("fatal") is Severity.ERROR
    assert Severity.coerce(None) is Severity.ERROR
    assert Severity.ERROR.rank > Severity.WARNING.rank > Severity.SUGGESTION.rank


def test_create_derives_byte_length() -> None:
    suggestion = Suggestion.create("Emoji", 3, "😀", "🙂")

    assert suggestion.length == 4
    assert suggestion.end == 7
    assert suggestion.span.to_tuple() == (3, 7)


def test_suggestions_are_immutable_with_unique_ids() -> None:
    first = Suggestion.create("a", 0, "x", "y")
    second = Suggestion.create("a", 0, "x", "y")

    assert first.id != second.id
    with pytest.raises(dataclasses.FrozenInstanceError):
        first.offset = 3  # type: ignore[misc]


def test_shifted_keeps_identity_fields() -> None:
    suggestion = Suggestion.create("a", 8, "cat", "dog")

    moved = suggestion.shifted(1)

    assert moved.offset == 9
    assert moved.id == suggestion.id
    assert moved.original == "cat"


def test_is_live_checks_original_at_span() -> None:
    suggestion = Suggestion.create("a", 8, "cat", "dog")

    assert suggestion.is_live("I has a cat.")
    assert not suggestion.is_live("I has a cot.")
    assert not suggestion.is_live("I has")


def test_to_dict() -> None:
    suggestion = Suggestion.create("Verb", 2, "has", None, Severity.WARNING)

    payload = suggestion.to_dict()

    assert payload["offset"] == 2
    assert payload["length"] == 3
    assert payload["replacement"] is None
    assert payload["severity"] == "warning"
    assert payload["id"] == suggestion.id


class TestRawMatchFromPayload:
    def test_offsets_take_priority(self) -> None:
        raw = RawMatch.from_payload({"start": 1, "end": 3, "original": "ab", "replacement": "x"})

        assert raw is not None
        assert raw.uses_offsets
        assert (raw.start, raw.end) == (1, 3)

    def test_literal_payload(self) -> None:
        raw = RawMatch.from_payload(
            {"message": "Verb", "original": "has", "replacement": "have", "severity": "warning"}
        )

        assert raw == RawMatch.literal("has", "have", message="Verb", severity=Severity.WARNING)

    def test_booleans_are_not_offsets(self) -> None:
        raw = RawMatch.from_payload({"start": True, "end": 2, "original": "a"})

        assert raw is not None
        assert not raw.uses_offsets

    def test_unusable_payload(self) -> None:
        assert RawMatch.from_payload({"message": "no location"}) is None
        assert RawMatch.from_payload({"original": "", "replacement": "x"}) is None

    def test_null_replacement_is_comment(self) -> None:
        raw = RawMatch.from_payload({"original": "cat", "replacement": None})

        assert raw is not None
        assert raw.replacement is None
