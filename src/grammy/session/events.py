"""Session events published to the presentation layer.

The bus is synchronous and single-threaded: events are published from the
thread that owns the check session and handlers run inline.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass
from typing import Callable, Generic, TypeVar
from weakref import WeakMethod

from ..suggestions.models import Suggestion

LOGGER = logging.getLogger(__name__)

E = TypeVar("E", bound="Event")
Handler = Callable[[E], None]


@dataclass(slots=True)
class Event:
    """Base class for all session events."""

    pass


@dataclass(slots=True)
class SuggestionsChanged(Event):
    """The live suggestion set was replaced, trimmed or cleared."""

    suggestions: tuple[Suggestion, ...]
    request_id: int | None = None


@dataclass(slots=True)
class StatusChanged(Event):
    """The session status text changed.

    Attributes:
        status: Text to show in the status area.
        persistent: ``True`` when no further checks can run this session.
    """

    status: str
    persistent: bool = False


@dataclass(slots=True)
class CheckStarted(Event):
    request_id: int
    text_length: int


@dataclass(slots=True)
class CheckCompleted(Event):
    request_id: int
    ok: bool
    suggestion_count: int = 0
    error: str | None = None


@dataclass(slots=True)
class ResponseDiscarded(Event):
    """A response arrived for a request that is no longer in flight."""

    request_id: int
    current_request_id: int | None


class EventBus(Generic[E]):
    """A typed publish-subscribe bus.

    Bound-method handlers are held through :class:`weakref.WeakMethod` so a
    presenter that goes away does not keep receiving events. Plain functions
    and lambdas are held strongly.
    """

    __slots__ = ("_handlers",)

    def __init__(self) -> None:
        self._handlers: defaultdict[type[Event], list[_HandlerRef]] = defaultdict(list)

    def subscribe(self, event_type: type[E], handler: Handler[E]) -> None:
        self._handlers[event_type].append(_HandlerRef.create(handler))

    def unsubscribe(self, event_type: type[E], handler: Handler[E]) -> None:
        handlers = self._handlers.get(event_type)
        if handlers is None:
            return
        for index, handler_ref in enumerate(handlers):
            if handler_ref.matches(handler):
                handlers.pop(index)
                return

    def publish(self, event: E) -> None:
        """Invoke every handler registered for ``type(event)``.

        A handler that raises is logged and the remaining handlers still run.
        """

        event_type = type(event)
        handlers = self._handlers.get(event_type)
        if not handlers:
            return

        dead: list[int] = []
        for index, handler_ref in enumerate(handlers):
            handler = handler_ref.resolve()
            if handler is None:
                dead.append(index)
                continue
            try:
                handler(event)
            except Exception:
                LOGGER.exception("Handler %r raised for event %s", handler, event_type.__name__)

        for index in reversed(dead):
            handlers.pop(index)

    def clear(self) -> None:
        self._handlers.clear()

    def handler_count(self, event_type: type[E] | None = None) -> int:
        if event_type is not None:
            return len(self._handlers.get(event_type, []))
        return sum(len(handlers) for handlers in self._handlers.values())


class _HandlerRef:
    __slots__ = ("_ref", "_is_weak")

    def __init__(self, handler_ref: object, is_weak: bool) -> None:
        self._ref = handler_ref
        self._is_weak = is_weak

    @classmethod
    def create(cls, handler: Handler) -> _HandlerRef:
        if hasattr(handler, "__self__") and hasattr(handler, "__func__"):
            try:
                return cls(WeakMethod(handler), is_weak=True)
            except TypeError:
                pass
        return cls(handler, is_weak=False)

    def resolve(self) -> Handler | None:
        if not self._is_weak:
            return self._ref  # type: ignore[return-value]
        return self._ref()  # type: ignore[operator]

    def matches(self, handler: Handler) -> bool:
        resolved = self.resolve()
        return resolved is not None and resolved == handler


__all__ = [
    "CheckCompleted",
    "CheckStarted",
    "Event",
    "EventBus",
    "Handler",
    "ResponseDiscarded",
    "StatusChanged",
    "SuggestionsChanged",
]
