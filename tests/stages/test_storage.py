# ABOUTME: Tests for the batched storage stage
# ABOUTME: Validates batching, retries of transient failures and accounting of lost batches

import pytest
from fakes import FakeStore, make_unique

from echograph.errors import ErrorKind, StorageError
from echograph.stages import StorageStage


def _state_with_quotes(state, count: int, batch_size: int):
    return state.model_copy(
        update={
            "config": state.config.model_copy(update={"storage_batch_size": batch_size}),
            "unique_quotes": [make_unique(f"quote {index}") for index in range(count)],
        }
    )


class TestStorageStage:
    @pytest.mark.asyncio
    async def test_quotes_are_stored_in_batches(self, state, limiter):
        store = FakeStore()

        update = await StorageStage(store, limiter)(_state_with_quotes(state, 5, 2), None)

        reports = update["storage_reports"]
        assert [(report.batch_index, report.attempted, report.inserted) for report in reports] == [
            (0, 2, 2),
            (1, 2, 2),
            (2, 1, 1),
        ]
        assert sorted(quote.quote_raw for quote in store.stored_quotes) == [f"quote {index}" for index in range(5)]
        assert {run_id for run_id, _ in store.inserted} == {"run-test"}

    @pytest.mark.asyncio
    async def test_transient_failures_are_retried(self, state, limiter):
        store = FakeStore()
        store.insert_errors = [StorageError("database is locked"), StorageError("database is locked")]

        update = await StorageStage(store, limiter)(_state_with_quotes(state, 3, 10), None)

        [report] = update["storage_reports"]
        assert report.inserted == 3
        assert report.lost == 0

    @pytest.mark.asyncio
    async def test_exhausted_batch_is_reported_lost(self, state, limiter):
        store = FakeStore()
        store.insert_errors = [StorageError("disk I/O error") for _ in range(4)]

        update = await StorageStage(store, limiter)(_state_with_quotes(state, 3, 10), None)

        [report] = update["storage_reports"]
        assert report.inserted == 0
        assert report.lost == 3
        assert "disk I/O error" in report.error

    @pytest.mark.asyncio
    async def test_fatal_failure_is_not_retried(self, state, limiter):
        store = FakeStore()
        store.insert_errors = [StorageError("UNIQUE constraint failed", kind=ErrorKind.FATAL)]

        update = await StorageStage(store, limiter)(_state_with_quotes(state, 2, 10), None)

        assert update["storage_reports"][0].lost == 2
        assert store.insert_errors == []
        assert store.inserted == []
