"""Unit tests for :mod:`grammy.session.events`."""

from __future__ import annotations

import gc
import logging

import pytest

from grammy.session.events import (
    CheckStarted,
    Event,
    EventBus,
    StatusChanged,
    SuggestionsChanged,
)


class _Presenter:
    def __init__(self) -> None:
        self.statuses: list[str] = []

    def on_status(self, event: StatusChanged) -> None:
        self.statuses.append(event.status)


class TestEventBus:
    def test_publish_routes_by_exact_type(self) -> None:
        bus: EventBus[Event] = EventBus()
        statuses: list[StatusChanged] = []
        bus.subscribe(StatusChanged, statuses.append)

        bus.publish(StatusChanged(status="Checking..."))
        bus.publish(CheckStarted(request_id=1, text_length=5))

        assert [event.status for event in statuses] == ["Checking..."]

    def test_unsubscribe(self) -> None:
        bus: EventBus[Event] = EventBus()
        received: list[Event] = []

        def handler(event: Event) -> None:
            received.append(event)

        bus.subscribe(SuggestionsChanged, handler)
        bus.unsubscribe(SuggestionsChanged, handler)
        bus.publish(SuggestionsChanged(suggestions=()))

        assert received == []
        assert bus.handler_count() == 0

    def test_failing_handler_does_not_block_others(self, caplog: pytest.LogCaptureFixture) -> None:
        bus: EventBus[Event] = EventBus()
        received: list[str] = []

        def broken(event: StatusChanged) -> None:
            raise RuntimeError("boom")

        bus.subscribe(StatusChanged, broken)
        bus.subscribe(StatusChanged, lambda event: received.append(event.status))

        with caplog.at_level(logging.ERROR):
            bus.publish(StatusChanged(status="Ready"))

        assert received == ["Ready"]
        assert "raised for event StatusChanged" in caplog.text

    def test_bound_methods_are_weak(self) -> None:
        bus: EventBus[Event] = EventBus()
        presenter = _Presenter()
        bus.subscribe(StatusChanged, presenter.on_status)

        bus.publish(StatusChanged(status="Ready"))
        assert presenter.statuses == ["Ready"]

        del presenter
        gc.collect()
        bus.publish(StatusChanged(status="All good!"))

        assert bus.handler_count(StatusChanged) == 0

    def test_clear(self) -> None:
        bus: EventBus[Event] = EventBus()
        bus.subscribe(StatusChanged, lambda event: None)
        bus.clear()

        assert bus.handler_count() == 0
