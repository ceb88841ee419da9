"""Check session state machine.

The controller owns the document text, the live suggestion set and the status
line for one editor surface. It is driven cooperatively: the host calls
:meth:`CheckSessionController.tick` on a fixed cadence and the controller
decides whether to issue a check, drains finished checks, and discards any
response whose request id is no longer the one in flight.

All methods must be called from the thread that owns the controller.
"""

from __future__ import annotations

import itertools
import logging
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Iterable

from ..suggestions.models import Suggestion
from ..suggestions.normalizer import normalize
from ..suggestions.reconciler import (
    SuggestionApplyError,
    apply_suggestion,
    dismiss_suggestion,
    find_suggestion,
)
from ..suggestions.span_mapper import map_matches
from .events import (
    CheckCompleted,
    CheckStarted,
    EventBus,
    ResponseDiscarded,
    StatusChanged,
    SuggestionsChanged,
)
from .history import MessageHistory
from .worker import CheckDispatcher, CheckRequest, CheckResponse, CheckSucceeded, WorkerStoppedError

__all__ = [
    "CheckSession",
    "CheckSessionController",
    "DEBOUNCE_DISABLED",
    "DEFAULT_DEBOUNCE_SECONDS",
    "DEFAULT_TICK_SECONDS",
    "RequestIdSource",
    "SessionState",
    "SessionView",
]

LOGGER = logging.getLogger(__name__)

DEFAULT_DEBOUNCE_SECONDS = 0.8
DEFAULT_TICK_SECONDS = 0.05
DEBOUNCE_DISABLED = float("inf")
_ALREADY_EXPIRED = float("-inf")

STATUS_READY = "Ready"
STATUS_CHECKING = "Checking..."
STATUS_ALL_GOOD = "All good!"
STATUS_CONFLICT = "Text changed; re-checking..."
STATUS_INVALID_RANGE = "Invalid suggestion range"
STATUS_COMMENT_ONLY = "Comment only; nothing to apply"
STATUS_WORKER_STOPPED = "Internal error: check worker stopped"

Clock = Callable[[], float]


class SessionState(str, Enum):
    IDLE = "idle"
    DEBOUNCING = "debouncing"
    IN_FLIGHT = "in_flight"
    IN_FLIGHT_PENDING_RECHECK = "in_flight_pending_recheck"
    WORKER_FAILED = "worker_failed"


class RequestIdSource:
    """Strictly increasing, never reused request ids.

    Share one instance between sessions that talk to the same worker so their
    ids stay distinct.
    """

    def __init__(self, start: int = 1) -> None:
        self._counter = itertools.count(start)
        self._lock = threading.Lock()
        self._last = start - 1

    def next(self) -> int:
        with self._lock:
            self._last = next(self._counter)
            return self._last

    @property
    def last(self) -> int:
        return self._last


@dataclass(slots=True)
class CheckSession:
    """Mutable bookkeeping for the current check cycle."""

    in_flight: int | None = None
    pending_recheck: bool = False
    last_edit_time: float | None = None
    # ``None`` lets the next check through the idempotence guard.
    last_checked_text: str | None = ""
    sent_text: str = ""
    worker_failed: bool = False


@dataclass(slots=True, frozen=True)
class SessionView:
    """Read-only snapshot handed to the presentation layer."""

    document_text: str
    suggestions: tuple[Suggestion, ...]
    status_text: str
    is_checking: bool


class CheckSessionController:
    """Debounces edits, keeps one check in flight and owns the suggestion set."""

    def __init__(
        self,
        dispatcher: CheckDispatcher,
        *,
        text: str = "",
        debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS,
        clock: Clock | None = None,
        request_ids: RequestIdSource | None = None,
        history: MessageHistory | None = None,
        event_bus: EventBus | None = None,
    ) -> None:
        if debounce_seconds < 0:
            raise ValueError("debounce_seconds must be non-negative")
        self._dispatcher = dispatcher
        self._text = text
        self._debounce = float(debounce_seconds)
        self._clock: Clock = clock or time.monotonic
        self._request_ids = request_ids or RequestIdSource()
        self._history = history if history is not None else MessageHistory()
        self._bus = event_bus or EventBus()
        self._session = CheckSession()
        self._suggestions: tuple[Suggestion, ...] = ()
        self._status = STATUS_READY

    # ------------------------------------------------------------------
    # Read-only state
    # ------------------------------------------------------------------
    @property
    def session(self) -> CheckSession:
        return self._session

    @property
    def event_bus(self) -> EventBus:
        return self._bus

    @property
    def history(self) -> MessageHistory:
        return self._history

    @property
    def debounce_seconds(self) -> float:
        return self._debounce

    @property
    def document_text(self) -> str:
        return self._text

    @property
    def suggestions(self) -> tuple[Suggestion, ...]:
        return self._suggestions

    @property
    def status_text(self) -> str:
        return self._status

    @property
    def is_checking(self) -> bool:
        return self._session.in_flight is not None

    @property
    def state(self) -> SessionState:
        session = self._session
        if session.worker_failed:
            return SessionState.WORKER_FAILED
        if session.in_flight is not None:
            if session.pending_recheck:
                return SessionState.IN_FLIGHT_PENDING_RECHECK
            return SessionState.IN_FLIGHT
        if session.last_edit_time is not None:
            return SessionState.DEBOUNCING
        return SessionState.IDLE

    def view(self) -> SessionView:
        return SessionView(
            document_text=self._text,
            suggestions=self._suggestions,
            status_text=self._status,
            is_checking=self.is_checking,
        )

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------
    def edit(self, text: str) -> None:
        """Replace the document after a user edit and restart the debounce window."""

        if text == self._text:
            return
        self._text = text
        session = self._session
        session.last_edit_time = self._clock()
        if session.in_flight is not None:
            session.pending_recheck = True
        elif self._suggestions and not session.worker_failed:
            # the summary described the cleared set
            self._set_status(STATUS_READY)
        self._set_suggestions(())
        LOGGER.debug("Edit recorded, document now %s chars", len(text))

    def tick(self) -> None:
        """Drain finished checks, then issue a check if the debounce window has expired."""

        self._process_responses()
        session = self._session
        if session.worker_failed:
            return
        if session.in_flight is not None and not self._dispatcher.is_alive:
            LOGGER.error("Check worker died with request #%s in flight", session.in_flight)
            self._fail_worker()
            return
        last_edit = session.last_edit_time
        if last_edit is None:
            return
        if self._clock() - last_edit < self._debounce:
            return
        session.last_edit_time = None
        self._check_text()

    def force_check(self) -> None:
        """Check now, skipping the debounce window and the unchanged-text guard."""

        session = self._session
        if session.worker_failed:
            return
        session.last_checked_text = None
        session.last_edit_time = None
        self._check_text()

    def apply(self, suggestion_id: str) -> bool:
        """Apply a suggestion; returns ``True`` when the document changed."""

        if find_suggestion(self._suggestions, suggestion_id) is None:
            return False
        try:
            updated, remaining = apply_suggestion(self._text, self._suggestions, suggestion_id)
        except SuggestionApplyError as exc:
            LOGGER.debug("Unable to apply suggestion %s: %s", suggestion_id, exc.details())
            if exc.reason == "comment_only":
                self._set_status(STATUS_COMMENT_ONLY)
                return False
            self._set_status(STATUS_INVALID_RANGE if exc.reason == "range_overflow" else STATUS_CONFLICT)
            self._request_recheck()
            return False

        self._text = updated
        # Accepting a suggestion is not a reason to re-check.
        self._session.last_checked_text = updated
        self._set_suggestions(remaining)
        self._set_status(self._summary_status())
        return True

    def dismiss(self, suggestion_id: str) -> bool:
        remaining = dismiss_suggestion(self._suggestions, suggestion_id)
        if len(remaining) == len(self._suggestions):
            return False
        self._set_suggestions(remaining)
        self._set_status(self._summary_status())
        return True

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _check_text(self) -> None:
        session = self._session
        text = self._text

        if not text.strip():
            LOGGER.debug("Blank document; clearing suggestions without a check")
            session.in_flight = None
            session.pending_recheck = False
            session.last_checked_text = text
            self._set_suggestions(())
            self._set_status(STATUS_READY)
            return

        if text == session.last_checked_text:
            LOGGER.debug("Document unchanged since last check; skipping")
            return

        if session.in_flight is not None:
            LOGGER.debug("Request #%s in flight; queueing recheck", session.in_flight)
            session.pending_recheck = True
            return

        request_id = self._request_ids.next()
        session.in_flight = request_id
        session.sent_text = text
        session.last_checked_text = text
        self._set_status(STATUS_CHECKING)
        LOGGER.debug("Starting check #%s, text_len=%s", request_id, len(text))
        try:
            self._dispatcher.submit(CheckRequest(request_id, text, self._history.entries()))
        except WorkerStoppedError:
            LOGGER.error("Failed to submit check #%s; worker stopped", request_id)
            self._fail_worker()
            return
        self._bus.publish(CheckStarted(request_id=request_id, text_length=len(text)))

    def _process_responses(self) -> None:
        for response in self._dispatcher.drain():
            self._handle_response(response)

    def _handle_response(self, response: CheckResponse) -> None:
        session = self._session
        if response.request_id != session.in_flight:
            LOGGER.debug(
                "Discarding stale response #%s (current=%s)",
                response.request_id,
                session.in_flight,
            )
            self._bus.publish(ResponseDiscarded(response.request_id, session.in_flight))
            return

        session.in_flight = None
        outcome = response.outcome
        if isinstance(outcome, CheckSucceeded):
            result = outcome.result
            mapped = normalize(map_matches(session.sent_text, result.matches))
            live = [suggestion for suggestion in mapped if suggestion.is_live(self._text)]
            if len(live) != len(mapped):
                LOGGER.debug("Dropped %s suggestion(s) invalidated by later edits", len(mapped) - len(live))
            self._set_suggestions(live, request_id=response.request_id)
            self._set_status(self._summary_status())
            if result.transcript:
                self._history.push_pair(result.user_content or session.sent_text, result.transcript)
            self._bus.publish(CheckCompleted(response.request_id, ok=True, suggestion_count=len(live)))
        else:
            LOGGER.debug("Check #%s failed: %s", response.request_id, outcome.message)
            self._set_status(outcome.message)
            self._bus.publish(CheckCompleted(response.request_id, ok=False, error=outcome.message))

        if session.pending_recheck:
            session.pending_recheck = False
            session.last_edit_time = _ALREADY_EXPIRED

    def _request_recheck(self) -> None:
        session = self._session
        session.last_checked_text = None
        session.last_edit_time = _ALREADY_EXPIRED
        self._set_suggestions(suggestion for suggestion in self._suggestions if suggestion.is_live(self._text))

    def _fail_worker(self) -> None:
        session = self._session
        session.worker_failed = True
        session.in_flight = None
        session.pending_recheck = False
        session.last_edit_time = None
        self._set_status(STATUS_WORKER_STOPPED, persistent=True)

    def _summary_status(self) -> str:
        if not self._suggestions:
            return STATUS_ALL_GOOD
        return f"{len(self._suggestions)} suggestion(s)"

    def _set_suggestions(self, suggestions: Iterable[Suggestion], *, request_id: int | None = None) -> None:
        updated = tuple(suggestions)
        if updated == self._suggestions and request_id is None:
            return
        self._suggestions = updated
        self._bus.publish(SuggestionsChanged(suggestions=updated, request_id=request_id))

    def _set_status(self, status: str, *, persistent: bool = False) -> None:
        if status == self._status and not persistent:
            return
        self._status = status
        self._bus.publish(StatusChanged(status=status, persistent=persistent))
