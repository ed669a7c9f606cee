# ABOUTME: Bounded worker pool admitting external calls in FIFO order from an asyncio queue
# ABOUTME: Each submitted job resolves its own future; counters are owned by the limiter instance

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import asdict, dataclass, field
from typing import Any

from echograph.utils.logging import get_logger
from echograph.utils.retry import RetryPolicy


@dataclass
class LimiterStats:
    """Job counters for one limiter."""

    submitted: int = 0
    started: int = 0
    succeeded: int = 0
    failed: int = 0
    cancelled: int = 0
    in_flight: int = 0
    peak_in_flight: int = 0
    queued: int = 0

    def as_dict(self) -> dict[str, int]:
        return asdict(self)


@dataclass
class _Job:
    operation: Callable[[], Awaitable[Any]]
    label: str
    retry: bool
    future: asyncio.Future = field(repr=False)
    started: bool = False
    finished: asyncio.Event = field(default_factory=asyncio.Event, repr=False)


_SHUTDOWN = object()


class ConcurrencyLimiter:
    """Run submitted operations with at most ``max_concurrent`` in flight.

    Admission is FIFO through an unbounded ``asyncio.Queue`` consumed by
    ``max_concurrent`` worker tasks, so a queued job starts as soon as a
    worker frees up. When a retry policy is configured, retries happen inside
    the worker slot and never re-enter the queue.

    Workers start lazily on the first ``submit`` so the limiter can be built
    outside a running event loop.
    """

    def __init__(self, max_concurrent: int, retry_policy: RetryPolicy | None = None):
        if max_concurrent <= 0:
            raise ValueError("max_concurrent must be positive")

        self.max_concurrent = max_concurrent
        self.retry_policy = retry_policy
        self.stats = LimiterStats()
        self.logger = get_logger(__name__)

        self._queue: asyncio.Queue | None = None
        self._workers: list[asyncio.Task] = []
        self._closed = False

    def _ensure_started(self) -> asyncio.Queue:
        if self._queue is None:
            self._queue = asyncio.Queue()
            self._workers = [
                asyncio.create_task(self._worker(), name=f"limiter-worker-{index}")
                for index in range(self.max_concurrent)
            ]
        return self._queue

    def submit(
        self, operation: Callable[[], Awaitable[Any]], *, label: str = "", retry: bool = True
    ) -> asyncio.Future:
        """Queue ``operation`` and return a future for its result.

        Args:
            operation: Zero-argument callable producing the awaitable to run
            label: Name used in logs
            retry: Whether to run the operation through the retry policy

        Returns:
            Future resolved with the operation's result or exception.
            Cancelling it cancels the job whether queued or running.
        """
        return self._enqueue(operation, label, retry).future

    def _enqueue(self, operation: Callable[[], Awaitable[Any]], label: str, retry: bool) -> _Job:
        if self._closed:
            raise RuntimeError("ConcurrencyLimiter is closed")

        queue = self._ensure_started()
        job = _Job(operation=operation, label=label, retry=retry, future=asyncio.get_running_loop().create_future())
        queue.put_nowait(job)

        self.stats.submitted += 1
        self.stats.queued += 1
        return job

    async def run(self, operation: Callable[[], Awaitable[Any]], *, label: str = "", retry: bool = True) -> Any:
        """Submit ``operation`` and wait for its result.

        Cancelling the caller cancels the job and returns only once a running
        job has released its slot.
        """
        job = self._enqueue(operation, label, retry)
        try:
            return await job.future
        except asyncio.CancelledError:
            job.future.cancel()
            if job.started:
                await job.finished.wait()
            raise

    async def _call(self, job: _Job) -> Any:
        if job.retry and self.retry_policy is not None:
            return await self.retry_policy.run(job.operation, label=job.label)
        return await job.operation()

    async def _worker(self) -> None:
        assert self._queue is not None
        while True:
            job = await self._queue.get()
            try:
                if job is _SHUTDOWN:
                    return
                await self._run_job(job)
            finally:
                self._queue.task_done()

    async def _run_job(self, job: _Job) -> None:
        self.stats.queued -= 1
        if job.future.done():
            # Cancelled while queued
            self.stats.cancelled += 1
            return

        job.started = True
        self.stats.started += 1
        self.stats.in_flight += 1
        self.stats.peak_in_flight = max(self.stats.peak_in_flight, self.stats.in_flight)

        runner = asyncio.ensure_future(self._call(job))

        def _propagate_cancel(future: asyncio.Future) -> None:
            if future.cancelled():
                runner.cancel()

        job.future.add_done_callback(_propagate_cancel)

        try:
            result = await runner
        except asyncio.CancelledError:
            self.stats.cancelled += 1
            job.future.cancel()
            current = asyncio.current_task()
            if current is not None and current.cancelling():
                raise
        except Exception as e:
            self.stats.failed += 1
            self.logger.debug("Job failed", label=job.label, error=str(e), error_type=type(e).__name__)
            if not job.future.done():
                job.future.set_exception(e)
        else:
            self.stats.succeeded += 1
            if not job.future.done():
                job.future.set_result(result)
        finally:
            self.stats.in_flight -= 1
            job.finished.set()

    async def aclose(self, *, cancel_pending: bool = False) -> None:
        """Shut the worker pool down.

        Args:
            cancel_pending: Cancel queued and running jobs instead of draining them
        """
        if self._closed:
            return
        self._closed = True

        if self._queue is None:
            return

        if cancel_pending:
            while not self._queue.empty():
                job = self._queue.get_nowait()
                self._queue.task_done()
                if job is not _SHUTDOWN:
                    self.stats.queued -= 1
                    self.stats.cancelled += 1
                    job.future.cancel()
            for worker in self._workers:
                worker.cancel()
        else:
            for _ in self._workers:
                self._queue.put_nowait(_SHUTDOWN)

        await asyncio.gather(*self._workers, return_exceptions=True)
        self.logger.debug("Limiter closed", **self.stats.as_dict())

    async def __aenter__(self) -> "ConcurrencyLimiter":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose(cancel_pending=exc_type is not None)
