"""Apply accepted suggestions and keep the remaining offsets valid."""

from __future__ import annotations

import logging
from typing import Sequence

from ..documents.ranges import byte_length, slice_bytes, splice_bytes
from .models import Suggestion

__all__ = ["SuggestionApplyError", "apply_suggestion", "dismiss_suggestion", "find_suggestion"]

LOGGER = logging.getLogger(__name__)


class SuggestionApplyError(RuntimeError):
    """Raised when a suggestion cannot be applied to the current document."""

    def __init__(
        self,
        message: str,
        *,
        reason: str = "range_mismatch",
        suggestion_id: str | None = None,
        expected: str | None = None,
        actual: str | None = None,
    ) -> None:
        super().__init__(message)
        self.reason = reason
        self.suggestion_id = suggestion_id
        self.expected = expected
        self.actual = actual

    @property
    def is_conflict(self) -> bool:
        return self.reason in {"range_mismatch", "range_overflow"}

    def details(self) -> dict[str, str | None]:
        return {
            "reason": self.reason,
            "suggestion_id": self.suggestion_id,
            "expected": self.expected,
            "actual": self.actual,
        }


def find_suggestion(suggestions: Sequence[Suggestion], suggestion_id: str) -> Suggestion | None:
    for suggestion in suggestions:
        if suggestion.id == suggestion_id:
            return suggestion
    return None


def apply_suggestion(
    document: str,
    suggestions: Sequence[Suggestion],
    target_id: str,
) -> tuple[str, list[Suggestion]]:
    """Splice the target's replacement into ``document`` and shift later suggestions.

    Returns the inputs unchanged when ``target_id`` is unknown. Raises
    :class:`SuggestionApplyError` for comment-only targets and for spans that no
    longer match the document.
    """

    target = find_suggestion(suggestions, target_id)
    if target is None:
        LOGGER.debug("Suggestion %s not found; nothing to apply", target_id)
        return document, list(suggestions)

    if target.replacement is None:
        raise SuggestionApplyError(
            "Comment-only suggestions cannot be applied",
            reason="comment_only",
            suggestion_id=target.id,
        )

    if target.end > byte_length(document):
        raise SuggestionApplyError(
            "Suggestion range exceeds document length",
            reason="range_overflow",
            suggestion_id=target.id,
            expected=target.original,
        )

    current = slice_bytes(document, target.offset, target.length)
    if current != target.original:
        raise SuggestionApplyError(
            "Document changed since the suggestion was produced",
            reason="range_mismatch",
            suggestion_id=target.id,
            expected=target.original,
            actual=current,
        )

    updated = splice_bytes(document, target.offset, target.length, target.replacement)
    delta = byte_length(target.replacement) - target.length

    remaining: list[Suggestion] = []
    for suggestion in suggestions:
        if suggestion.id == target.id:
            continue
        if suggestion.offset > target.offset and delta:
            suggestion = suggestion.shifted(delta)
        remaining.append(suggestion)

    LOGGER.debug(
        "Applied suggestion %s at byte %s (delta=%s, remaining=%s)",
        target.id,
        target.offset,
        delta,
        len(remaining),
    )
    return updated, remaining


def dismiss_suggestion(suggestions: Sequence[Suggestion], target_id: str) -> list[Suggestion]:
    """Return ``suggestions`` without ``target_id``; offsets are unaffected."""

    return [suggestion for suggestion in suggestions if suggestion.id != target_id]
