"""Short rolling conversation history sent along with each check."""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass
from typing import Iterator

DEFAULT_MAX_PAIRS = 5


@dataclass(slots=True, frozen=True)
class HistoryEntry:
    """One chat message; ``role`` is ``"user"`` or ``"assistant"``."""

    role: str
    content: str

    def as_message(self) -> dict[str, str]:
        return {"role": self.role, "content": self.content}


class MessageHistory:
    """Keeps the last ``max_pairs`` user/assistant exchanges.

    Feeding recent exchanges back to the model discourages it from proposing
    the same edit again, or flip-flopping between two variants.
    """

    def __init__(self, max_pairs: int = DEFAULT_MAX_PAIRS) -> None:
        self._max_pairs = max(0, int(max_pairs))
        self._entries: deque[HistoryEntry] = deque(maxlen=self._max_pairs * 2)

    @property
    def max_pairs(self) -> int:
        return self._max_pairs

    def push_pair(self, user_content: str, assistant_content: str) -> None:
        if self._max_pairs == 0:
            return
        self._entries.append(HistoryEntry(role="user", content=user_content))
        self._entries.append(HistoryEntry(role="assistant", content=assistant_content))

    def entries(self) -> tuple[HistoryEntry, ...]:
        return tuple(self._entries)

    def clear(self) -> None:
        self._entries.clear()

    def is_empty(self) -> bool:
        return not self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[HistoryEntry]:
        return iter(tuple(self._entries))


__all__ = ["DEFAULT_MAX_PAIRS", "HistoryEntry", "MessageHistory"]
