"""Dataclasses describing model matches and the suggestions derived from them."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Mapping

from ..documents.ranges import ByteSpan, byte_length, slice_bytes


class Severity(str, Enum):
    """Display priority of a suggestion; never consulted during reconciliation."""

    ERROR = "error"
    WARNING = "warning"
    SUGGESTION = "suggestion"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]

    @classmethod
    def coerce(cls, value: Any) -> Severity:
        """Parse ``value`` leniently, defaulting to :attr:`ERROR`."""

        if isinstance(value, Severity):
            return value
        text = str(value or "").strip().lower()
        for member in cls:
            if member.value == text:
                return member
        return cls.ERROR


_SEVERITY_RANK = {Severity.ERROR: 2, Severity.WARNING: 1, Severity.SUGGESTION: 0}


def new_suggestion_id() -> str:
    return uuid.uuid4().hex


@dataclass(slots=True, frozen=True)
class Suggestion:
    """A proposed edit addressed by byte offsets into the live document."""

    message: str
    offset: int
    length: int
    original: str
    replacement: str | None = None
    severity: Severity = Severity.ERROR
    id: str = field(default_factory=new_suggestion_id)

    @classmethod
    def create(
        cls,
        message: str,
        offset: int,
        original: str,
        replacement: str | None,
        severity: Severity = Severity.ERROR,
    ) -> Suggestion:
        """Build a suggestion whose length is derived from ``original``."""

        return cls(
            message=message,
            offset=offset,
            length=byte_length(original),
            original=original,
            replacement=replacement,
            severity=severity,
        )

    @property
    def end(self) -> int:
        return self.offset + self.length

    @property
    def span(self) -> ByteSpan:
        return ByteSpan(offset=self.offset, length=self.length)

    @property
    def is_comment_only(self) -> bool:
        return self.replacement is None

    def is_live(self, document: str) -> bool:
        """Return ``True`` while ``document`` still holds ``original`` at this span."""

        return slice_bytes(document, self.offset, self.length) == self.original

    def shifted(self, delta: int) -> Suggestion:
        return replace(self, offset=self.offset + delta)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "message": self.message,
            "offset": self.offset,
            "length": self.length,
            "original": self.original,
            "replacement": self.replacement,
            "severity": self.severity.value,
        }


@dataclass(slots=True, frozen=True)
class RawMatch:
    """An edit as reported by the model, before it is mapped onto the document.

    Offset-addressed matches carry ``start``/``end`` character indices over the
    text that was sent; literal matches carry the ``original`` substring.
    """

    message: str = ""
    replacement: str | None = None
    severity: Severity = Severity.ERROR
    start: int | None = None
    end: int | None = None
    original: str | None = None

    @property
    def uses_offsets(self) -> bool:
        return self.start is not None and self.end is not None

    @classmethod
    def at_chars(
        cls,
        start: int,
        end: int,
        replacement: str | None,
        *,
        message: str = "",
        severity: Severity = Severity.ERROR,
    ) -> RawMatch:
        return cls(message=message, replacement=replacement, severity=severity, start=start, end=end)

    @classmethod
    def literal(
        cls,
        original: str,
        replacement: str | None,
        *,
        message: str = "",
        severity: Severity = Severity.ERROR,
    ) -> RawMatch:
        return cls(message=message, replacement=replacement, severity=severity, original=original)

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> RawMatch | None:
        """Coerce one entry of the model's ``matches`` array, or ``None`` if unusable."""

        message = str(payload.get("message") or "")
        replacement_raw = payload.get("replacement")
        replacement = None if replacement_raw is None else str(replacement_raw)
        severity = Severity.coerce(payload.get("severity"))
        start = _coerce_index(payload.get("start"))
        end = _coerce_index(payload.get("end"))
        if start is not None and end is not None:
            return cls.at_chars(start, end, replacement, message=message, severity=severity)
        original = payload.get("original")
        if isinstance(original, str) and original:
            return cls.literal(original, replacement, message=message, severity=severity)
        return None


def _coerce_index(value: Any) -> int | None:
    if isinstance(value, bool) or not isinstance(value, int):
        return None
    return value


__all__ = ["RawMatch", "Severity", "Suggestion", "new_suggestion_id"]
