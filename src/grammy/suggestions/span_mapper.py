"""Translate model-reported matches into byte-addressed suggestions."""

from __future__ import annotations

import logging
from typing import Iterable

from ..documents.ranges import CharBoundaryTable, char_to_byte_offset, slice_bytes
from .models import RawMatch, Suggestion

__all__ = ["map_match", "map_matches"]

LOGGER = logging.getLogger(__name__)


def map_match(
    document: str,
    raw: RawMatch,
    *,
    boundaries: CharBoundaryTable | None = None,
) -> Suggestion | None:
    """Map ``raw`` onto ``document`` or return ``None`` when it cannot be placed safely."""

    if raw.uses_offsets:
        table = boundaries or CharBoundaryTable.build(document)
        return _map_char_offsets(document, raw, table)
    return _map_literal(document, raw)


def map_matches(document: str, raws: Iterable[RawMatch]) -> list[Suggestion]:
    """Map a batch of matches, sharing one boundary table across them."""

    table: CharBoundaryTable | None = None
    mapped: list[Suggestion] = []
    for raw in raws:
        if raw.uses_offsets and table is None:
            table = CharBoundaryTable.build(document)
        suggestion = map_match(document, raw, boundaries=table)
        if suggestion is not None:
            mapped.append(suggestion)
    return mapped


def _map_char_offsets(document: str, raw: RawMatch, table: CharBoundaryTable) -> Suggestion | None:
    start = raw.start if raw.start is not None else -1
    end = raw.end if raw.end is not None else -1
    if start < 0 or end < 0 or start > end or end > table.char_count:
        LOGGER.debug("Dropping match with out-of-range characters [%s, %s) of %s", start, end, table.char_count)
        return None
    span = table.char_span(start, end)
    if span is None:
        return None
    original = slice_bytes(document, span.offset, span.length)
    if original is None:
        return None
    if raw.replacement == original or (span.is_empty and not raw.replacement):
        LOGGER.debug("Dropping no-op match at character %s", start)
        return None
    return Suggestion(
        message=raw.message,
        offset=span.offset,
        length=span.length,
        original=original,
        replacement=raw.replacement,
        severity=raw.severity,
    )


def _map_literal(document: str, raw: RawMatch) -> Suggestion | None:
    target = raw.original or ""
    if not target:
        return None
    if raw.replacement is not None and (not raw.replacement or raw.replacement == target):
        LOGGER.debug("Dropping degenerate replacement for %r", target)
        return None

    char_index = document.find(target)
    if char_index >= 0:
        original = target
    else:
        found = _find_case_insensitive(document, target)
        if found is None:
            LOGGER.debug("Dropping match; %r not found in document", target)
            return None
        char_index, char_end = found
        original = document[char_index:char_end]

    offset = char_to_byte_offset(document, char_index)
    return Suggestion.create(raw.message, offset, original, raw.replacement, raw.severity)


def _find_case_insensitive(document: str, target: str) -> tuple[int, int] | None:
    """Locate ``target`` ignoring case, returning a character range in ``document``.

    Lower-casing may lengthen a character (``İ`` becomes two code points), so
    every folded position keeps the index of the character it came from.
    """

    needle = target.lower()
    folded_parts: list[str] = []
    origin: list[int] = []
    for index, char in enumerate(document):
        lowered = char.lower()
        folded_parts.append(lowered)
        origin.extend([index] * len(lowered))
    folded = "".join(folded_parts)
    origin.append(len(document))

    position = folded.find(needle)
    while position >= 0:
        start = origin[position]
        end = position + len(needle)
        # only accept hits that begin and end on whole original characters
        if (position == 0 or origin[position - 1] != start) and origin[end] != origin[end - 1]:
            return start, origin[end - 1] + 1
        position = folded.find(needle, position + 1)
    return None
