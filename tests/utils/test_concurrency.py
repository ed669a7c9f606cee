# ABOUTME: Tests for the bounded worker pool limiting in-flight external calls
# ABOUTME: Validates the concurrency bound, FIFO admission, failure isolation and cancellation

import asyncio

import pytest
from fakes import no_sleep

from echograph.errors import TransientServiceError
from echograph.utils.concurrency import ConcurrencyLimiter
from echograph.utils.retry import RetryPolicy


class TestConcurrencyLimiter:
    """Test ConcurrencyLimiter admission and bookkeeping."""

    def test_rejects_non_positive_limit(self):
        with pytest.raises(ValueError):
            ConcurrencyLimiter(0)

    @pytest.mark.asyncio
    async def test_in_flight_never_exceeds_limit(self):
        in_flight = 0
        observed_peak = 0

        async def job(index: int) -> int:
            nonlocal in_flight, observed_peak
            in_flight += 1
            observed_peak = max(observed_peak, in_flight)
            await asyncio.sleep(0.005)
            in_flight -= 1
            return index

        async with ConcurrencyLimiter(3) as limiter:
            results = await asyncio.gather(*(limiter.run(lambda index=index: job(index)) for index in range(20)))

        assert results == list(range(20))
        assert observed_peak == 3
        assert limiter.stats.peak_in_flight == 3
        assert limiter.stats.submitted == 20
        assert limiter.stats.succeeded == 20
        assert limiter.stats.in_flight == 0
        assert limiter.stats.queued == 0

    @pytest.mark.asyncio
    async def test_admission_is_fifo(self):
        started: list[int] = []

        async def job(index: int) -> None:
            started.append(index)
            await asyncio.sleep(0)

        async with ConcurrencyLimiter(1) as limiter:
            await asyncio.gather(*(limiter.run(lambda index=index: job(index)) for index in range(8)))

        assert started == list(range(8))

    @pytest.mark.asyncio
    async def test_failure_only_affects_its_own_future(self):
        async def ok() -> str:
            return "ok"

        async def boom() -> str:
            raise ValueError("boom")

        async with ConcurrencyLimiter(2) as limiter:
            futures = [limiter.submit(ok), limiter.submit(boom), limiter.submit(ok)]
            results = await asyncio.gather(*futures, return_exceptions=True)

        assert results[0] == "ok"
        assert isinstance(results[1], ValueError)
        assert results[2] == "ok"
        assert limiter.stats.failed == 1
        assert limiter.stats.succeeded == 2

    @pytest.mark.asyncio
    async def test_retries_happen_inside_the_slot(self):
        attempts = 0

        async def flaky() -> str:
            nonlocal attempts
            attempts += 1
            if attempts < 3:
                raise TransientServiceError("503")
            return "done"

        policy = RetryPolicy(max_retries=5, sleep=no_sleep)
        async with ConcurrencyLimiter(1, policy) as limiter:
            assert await limiter.run(flaky, label="flaky") == "done"

        assert attempts == 3
        assert limiter.stats.submitted == 1
        assert limiter.stats.started == 1

    @pytest.mark.asyncio
    async def test_retry_can_be_disabled_per_job(self):
        attempts = 0

        async def flaky() -> None:
            nonlocal attempts
            attempts += 1
            raise TransientServiceError("503")

        policy = RetryPolicy(max_retries=5, sleep=no_sleep)
        async with ConcurrencyLimiter(1, policy) as limiter:
            with pytest.raises(TransientServiceError):
                await limiter.run(flaky, retry=False)

        assert attempts == 1

    @pytest.mark.asyncio
    async def test_cancelling_a_queued_job_skips_it(self):
        release = asyncio.Event()
        ran: list[str] = []

        async def blocker() -> None:
            await release.wait()
            ran.append("blocker")

        async def queued() -> None:
            ran.append("queued")

        limiter = ConcurrencyLimiter(1)
        first = limiter.submit(blocker)
        second = limiter.submit(queued)
        await asyncio.sleep(0)

        second.cancel()
        release.set()
        await first
        await limiter.aclose()

        assert ran == ["blocker"]
        assert limiter.stats.cancelled == 1

    @pytest.mark.asyncio
    async def test_cancelling_a_running_job_cancels_the_operation(self):
        started = asyncio.Event()
        cancelled = asyncio.Event()

        async def forever() -> None:
            started.set()
            try:
                await asyncio.sleep(3600)
            except asyncio.CancelledError:
                cancelled.set()
                raise

        async with ConcurrencyLimiter(1) as limiter:
            future = limiter.submit(forever)
            await started.wait()
            future.cancel()
            await asyncio.wait_for(cancelled.wait(), timeout=1.0)

            # The worker is free again
            async def quick() -> int:
                return 42

            assert await limiter.run(quick) == 42

        assert limiter.stats.cancelled == 1

    @pytest.mark.asyncio
    async def test_cancelled_run_returns_after_the_slot_is_released(self):
        started = asyncio.Event()

        async def slow_to_stop() -> None:
            started.set()
            try:
                await asyncio.sleep(3600)
            except asyncio.CancelledError:
                # Cleanup that takes a few loop iterations
                for _ in range(3):
                    await asyncio.sleep(0)
                raise

        async with ConcurrencyLimiter(1) as limiter:
            caller = asyncio.create_task(limiter.run(slow_to_stop))
            await started.wait()
            caller.cancel()

            with pytest.raises(asyncio.CancelledError):
                await caller

            assert limiter.stats.in_flight == 0
            assert limiter.stats.cancelled == 1

    @pytest.mark.asyncio
    async def test_aclose_cancel_pending(self):
        release = asyncio.Event()

        async def blocker() -> None:
            await release.wait()

        limiter = ConcurrencyLimiter(1)
        running = limiter.submit(blocker)
        queued = limiter.submit(blocker)
        await asyncio.sleep(0)

        await limiter.aclose(cancel_pending=True)

        assert running.cancelled()
        assert queued.cancelled()
        assert limiter.stats.cancelled == 2

    @pytest.mark.asyncio
    async def test_submit_after_close_fails(self):
        limiter = ConcurrencyLimiter(1)
        await limiter.aclose()

        async def job() -> None:
            return None

        with pytest.raises(RuntimeError):
            limiter.submit(job)

    @pytest.mark.asyncio
    async def test_counters_are_per_instance(self):
        async def job() -> None:
            return None

        async with ConcurrencyLimiter(2) as first, ConcurrencyLimiter(2) as second:
            await first.run(job)
            await first.run(job)
            await second.run(job)

        assert first.stats.succeeded == 2
        assert second.stats.succeeded == 1
