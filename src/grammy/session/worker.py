"""Background worker that runs checks off the owning thread.

The owning thread submits :class:`CheckRequest` jobs and later drains tagged
:class:`CheckResponse` values without blocking. The worker thread only ever
produces responses; it never touches session state.
"""

from __future__ import annotations

import asyncio
import logging
import queue
import threading
import time
from dataclasses import dataclass
from typing import Protocol, Union

from ..ai.ai_types import CheckError, CheckOperation, CheckResult
from .history import HistoryEntry

__all__ = [
    "CheckDispatcher",
    "CheckFailed",
    "CheckOutcome",
    "CheckRequest",
    "CheckResponse",
    "CheckSucceeded",
    "CheckWorker",
    "WorkerStoppedError",
]

LOGGER = logging.getLogger(__name__)


class WorkerStoppedError(RuntimeError):
    """Raised when a request is submitted to a worker that can no longer run it."""


@dataclass(slots=True, frozen=True)
class CheckRequest:
    request_id: int
    text: str
    history: tuple[HistoryEntry, ...] = ()


@dataclass(slots=True, frozen=True)
class CheckSucceeded:
    result: CheckResult


@dataclass(slots=True, frozen=True)
class CheckFailed:
    message: str


CheckOutcome = Union[CheckSucceeded, CheckFailed]


@dataclass(slots=True, frozen=True)
class CheckResponse:
    """Outcome of a check, tagged with the request id it was issued under."""

    request_id: int
    outcome: CheckOutcome

    @property
    def ok(self) -> bool:
        return isinstance(self.outcome, CheckSucceeded)


class CheckDispatcher(Protocol):
    """What the session controller needs from a worker."""

    @property
    def is_alive(self) -> bool:
        ...

    def submit(self, request: CheckRequest) -> None:
        ...

    def drain(self) -> list[CheckResponse]:
        ...


class CheckWorker:
    """Runs a :class:`CheckOperation` on a dedicated thread with its own event loop."""

    def __init__(self, operation: CheckOperation, *, name: str = "grammy-check-worker") -> None:
        self._operation = operation
        self._jobs: queue.SimpleQueue[CheckRequest | None] = queue.SimpleQueue()
        self._responses: queue.SimpleQueue[CheckResponse] = queue.SimpleQueue()
        self._thread = threading.Thread(target=self._run, name=name, daemon=True)
        self._closed = False

    def start(self) -> CheckWorker:
        if not self._thread.is_alive() and not self._closed:
            self._thread.start()
            LOGGER.debug("Check worker thread started")
        return self

    @property
    def is_alive(self) -> bool:
        return self._thread.is_alive()

    def submit(self, request: CheckRequest) -> None:
        if self._closed or not self._thread.is_alive():
            raise WorkerStoppedError("Check worker is not running")
        LOGGER.debug("Submitting check #%s (%s chars)", request.request_id, len(request.text))
        self._jobs.put(request)

    def drain(self) -> list[CheckResponse]:
        """Return every response that has arrived so far, oldest first."""

        responses: list[CheckResponse] = []
        while True:
            try:
                responses.append(self._responses.get_nowait())
            except queue.Empty:
                return responses

    def wait_for_response(self, timeout: float) -> bool:
        """Block up to ``timeout`` seconds until a response is available.

        Used by headless drivers between ticks; the editor surface never calls it.
        """

        deadline = time.monotonic() + max(0.0, timeout)
        while self._responses.empty():
            if not self._thread.is_alive() or time.monotonic() >= deadline:
                return not self._responses.empty()
            time.sleep(0.01)
        return True

    def close(self, timeout: float = 5.0) -> None:
        if self._closed:
            return
        self._closed = True
        if self._thread.is_alive():
            self._jobs.put(None)
            self._thread.join(timeout)
        LOGGER.debug("Check worker closed")

    def __enter__(self) -> CheckWorker:
        return self.start()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Worker thread
    # ------------------------------------------------------------------
    def _run(self) -> None:
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        try:
            while True:
                job = self._jobs.get()
                if job is None:
                    break
                response = loop.run_until_complete(self._execute(job))
                self._responses.put(response)
        finally:
            try:
                closer = getattr(self._operation, "aclose", None)
                if closer is not None:
                    loop.run_until_complete(closer())
                loop.run_until_complete(loop.shutdown_asyncgens())
            finally:
                asyncio.set_event_loop(None)
                loop.close()
            LOGGER.debug("Check worker thread exiting")

    async def _execute(self, job: CheckRequest) -> CheckResponse:
        started = time.perf_counter()
        try:
            result = await self._operation.check(job.text, job.history)
        except CheckError as exc:
            LOGGER.debug("Check #%s failed after %.2fs: %s", job.request_id, time.perf_counter() - started, exc)
            return CheckResponse(job.request_id, CheckFailed(str(exc)))
        except Exception as exc:
            LOGGER.exception("Check #%s raised unexpectedly", job.request_id)
            return CheckResponse(job.request_id, CheckFailed(f"Internal error: {exc}"))
        LOGGER.debug(
            "Check #%s completed in %.2fs with %s raw match(es)",
            job.request_id,
            time.perf_counter() - started,
            len(result.matches),
        )
        return CheckResponse(job.request_id, CheckSucceeded(result))
