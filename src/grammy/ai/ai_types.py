"""Shared typing contracts for the check operation."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, Sequence

from ..session.history import HistoryEntry
from ..suggestions.models import RawMatch


class CheckError(RuntimeError):
    """Human-readable failure reported by a check operation.

    ``str(error)`` is shown to the user verbatim, so it should already carry
    the provider and status detail.
    """

    def __init__(self, message: str, *, status_code: int | None = None, provider: str | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.provider = provider


@dataclass(slots=True, frozen=True)
class CheckResult:
    """Raw matches for one check plus the assistant reply used as history."""

    matches: tuple[RawMatch, ...] = ()
    transcript: str = ""
    user_content: str = ""


class CheckOperation(Protocol):
    """Protocol implemented by anything that can check a piece of text."""

    async def check(self, text: str, history: Sequence[HistoryEntry] = ()) -> CheckResult:
        """Return raw matches for ``text`` or raise :class:`CheckError`."""
        ...


__all__ = ["CheckError", "CheckOperation", "CheckResult"]
