"""Tests for the background check worker."""

from __future__ import annotations

import asyncio
import threading
from typing import Sequence

import pytest

from grammy.ai.ai_types import CheckError, CheckResult
from grammy.session.history import HistoryEntry
from grammy.session.worker import CheckFailed, CheckRequest, CheckSucceeded, CheckWorker, WorkerStoppedError
from grammy.suggestions.models import RawMatch


class _FakeOperation:
    def __init__(self) -> None:
        self.calls: list[tuple[str, tuple[HistoryEntry, ...]]] = []
        self.closed = False
        self.thread_names: set[str] = set()

    async def check(self, text: str, history: Sequence[HistoryEntry] = ()) -> CheckResult:
        await asyncio.sleep(0)
        self.calls.append((text, tuple(history)))
        self.thread_names.add(threading.current_thread().name)
        if text == "boom":
            raise RuntimeError("kaboom")
        if text == "denied":
            raise CheckError("OpenAI error (401): Invalid API key", status_code=401)
        return CheckResult(matches=(RawMatch.literal(text, text.upper()),), transcript="{}")

    async def aclose(self) -> None:
        self.closed = True


def _collect(worker: CheckWorker, count: int) -> list:
    responses: list = []
    while len(responses) < count:
        assert worker.wait_for_response(5.0)
        responses.extend(worker.drain())
    return responses


def test_worker_runs_jobs_off_thread_in_order() -> None:
    operation = _FakeOperation()
    history = (HistoryEntry("user", "Text:\nprev"), HistoryEntry("assistant", "{}"))
    with CheckWorker(operation, name="check-test") as worker:
        worker.submit(CheckRequest(1, "first"))
        worker.submit(CheckRequest(2, "second", history))
        responses = _collect(worker, 2)

    assert [response.request_id for response in responses] == [1, 2]
    assert all(response.ok for response in responses)
    assert isinstance(responses[0].outcome, CheckSucceeded)
    assert responses[0].outcome.result.matches[0].original == "first"
    assert operation.calls[1][1] == history
    assert operation.thread_names == {"check-test"}
    assert operation.closed


def test_check_error_becomes_failed_outcome() -> None:
    with CheckWorker(_FakeOperation()) as worker:
        worker.submit(CheckRequest(7, "denied"))
        (response,) = _collect(worker, 1)

    assert not response.ok
    assert response.outcome == CheckFailed("OpenAI error (401): Invalid API key")


def test_unexpected_exception_is_reported_and_worker_survives() -> None:
    with CheckWorker(_FakeOperation()) as worker:
        worker.submit(CheckRequest(1, "boom"))
        worker.submit(CheckRequest(2, "fine"))
        first, second = _collect(worker, 2)
        assert worker.is_alive

    assert isinstance(first.outcome, CheckFailed)
    assert first.outcome.message == "Internal error: kaboom"
    assert second.ok


def test_drain_is_non_blocking_when_empty() -> None:
    worker = CheckWorker(_FakeOperation()).start()
    try:
        assert worker.drain() == []
        assert not worker.wait_for_response(0.0)
    finally:
        worker.close()


def test_submit_after_close_raises() -> None:
    worker = CheckWorker(_FakeOperation()).start()
    worker.close()

    assert not worker.is_alive
    with pytest.raises(WorkerStoppedError):
        worker.submit(CheckRequest(1, "late"))


def test_submit_before_start_raises() -> None:
    worker = CheckWorker(_FakeOperation())

    with pytest.raises(WorkerStoppedError):
        worker.submit(CheckRequest(1, "early"))
