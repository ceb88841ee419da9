"""Byte-offset helpers for addressing spans inside UTF-8 documents."""

from __future__ import annotations

from dataclasses import dataclass
from itertools import accumulate
from typing import Iterator

_ENCODING = "utf-8"
_ERRORS = "surrogatepass"


def encode_text(text: str) -> bytes:
    """Return the UTF-8 representation used for every byte offset."""

    return (text or "").encode(_ENCODING, _ERRORS)


def byte_length(text: str) -> int:
    """Return the UTF-8 length of ``text``."""

    return len(encode_text(text))


def is_char_boundary(data: bytes, index: int) -> bool:
    """Return ``True`` when ``index`` falls between two encoded code points."""

    if index < 0 or index > len(data):
        return False
    if index == len(data):
        return True
    return (data[index] & 0xC0) != 0x80


@dataclass(slots=True, frozen=True)
class ByteSpan:
    """Half-open byte range ``[offset, offset + length)`` over a document."""

    offset: int
    length: int

    def __post_init__(self) -> None:
        if self.offset < 0 or self.length < 0:
            raise ValueError("ByteSpan offset and length must be non-negative")

    @property
    def end(self) -> int:
        return self.offset + self.length

    @property
    def is_empty(self) -> bool:
        return self.length == 0

    def overlaps(self, other: ByteSpan) -> bool:
        """Return ``True`` when both spans share at least one byte."""

        return self.offset < other.end and other.offset < self.end

    def to_tuple(self) -> tuple[int, int]:
        return (self.offset, self.end)


@dataclass(slots=True, frozen=True)
class CharBoundaryTable:
    """Byte offset of every code-point boundary, plus a trailing sentinel.

    ``offsets[i]`` is the byte offset where character ``i`` starts and
    ``offsets[-1]`` equals the document's byte length, so a character range
    ``[start, end)`` translates to bytes via two lookups.
    """

    offsets: tuple[int, ...]

    @classmethod
    def build(cls, text: str) -> CharBoundaryTable:
        widths = (len(char.encode(_ENCODING, _ERRORS)) for char in text or "")
        return cls(offsets=(0, *accumulate(widths)))

    @property
    def char_count(self) -> int:
        return len(self.offsets) - 1

    @property
    def byte_length(self) -> int:
        return self.offsets[-1]

    def byte_offset(self, char_index: int) -> int | None:
        """Translate a character index into a byte offset, or ``None`` when out of range."""

        if char_index < 0 or char_index > self.char_count:
            return None
        return self.offsets[char_index]

    def char_span(self, start: int, end: int) -> ByteSpan | None:
        """Translate the character range ``[start, end)`` into a :class:`ByteSpan`."""

        if start > end:
            return None
        start_byte = self.byte_offset(start)
        end_byte = self.byte_offset(end)
        if start_byte is None or end_byte is None:
            return None
        return ByteSpan(offset=start_byte, length=end_byte - start_byte)

    def __iter__(self) -> Iterator[int]:
        return iter(self.offsets)


def slice_bytes(text: str, offset: int, length: int) -> str | None:
    """Return the substring at byte range ``[offset, offset + length)``.

    Returns ``None`` when the range falls outside the document or splits an
    encoded code point.
    """

    if offset < 0 or length < 0:
        return None
    data = encode_text(text)
    end = offset + length
    if end > len(data):
        return None
    if not (is_char_boundary(data, offset) and is_char_boundary(data, end)):
        return None
    return data[offset:end].decode(_ENCODING, _ERRORS)


def splice_bytes(text: str, offset: int, length: int, replacement: str) -> str:
    """Replace the byte range ``[offset, offset + length)`` with ``replacement``."""

    data = encode_text(text)
    end = offset + length
    if offset < 0 or length < 0 or end > len(data):
        raise ValueError("Byte range exceeds document length")
    if not (is_char_boundary(data, offset) and is_char_boundary(data, end)):
        raise ValueError("Byte range splits an encoded character")
    patched = data[:offset] + encode_text(replacement) + data[end:]
    return patched.decode(_ENCODING, _ERRORS)


def char_to_byte_offset(text: str, char_index: int) -> int:
    """Return the byte offset of the character at ``char_index``."""

    return byte_length(text[:char_index])


__all__ = [
    "ByteSpan",
    "CharBoundaryTable",
    "byte_length",
    "char_to_byte_offset",
    "encode_text",
    "is_char_boundary",
    "slice_bytes",
    "splice_bytes",
]
