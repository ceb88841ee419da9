"""Deterministic filtering of mapped suggestions into a non-overlapping set."""

from __future__ import annotations

from typing import Iterable

from .models import Suggestion

__all__ = ["normalize", "has_overlaps"]


def normalize(suggestions: Iterable[Suggestion]) -> list[Suggestion]:
    """Return suggestions sorted by offset with degenerate and overlapping spans removed.

    Overlaps are resolved greedily: the earliest-starting span wins and ties
    keep their input order, so a shorter span nested inside an earlier, wider
    one is always dropped.
    """

    seen: set[tuple[int, int, str, str | None]] = set()
    candidates: list[Suggestion] = []
    for suggestion in suggestions:
        if _is_degenerate(suggestion):
            continue
        key = (suggestion.offset, suggestion.length, suggestion.original, suggestion.replacement)
        if key in seen:
            continue
        seen.add(key)
        candidates.append(suggestion)

    candidates.sort(key=lambda item: item.offset)

    kept: list[Suggestion] = []
    last_end = 0
    for suggestion in candidates:
        if suggestion.offset < last_end:
            continue
        kept.append(suggestion)
        last_end = suggestion.end
    return kept


def has_overlaps(suggestions: Iterable[Suggestion]) -> bool:
    """Return ``True`` when any two suggestions share a byte."""

    ordered = sorted(suggestions, key=lambda item: (item.offset, item.end))
    return any(left.span.overlaps(right.span) for left, right in zip(ordered, ordered[1:]))


def _is_degenerate(suggestion: Suggestion) -> bool:
    if suggestion.offset < 0 or suggestion.length < 0:
        return True
    if suggestion.replacement == suggestion.original:
        return True
    return suggestion.length == 0 and not suggestion.replacement
