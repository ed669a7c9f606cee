# ABOUTME: Tests for the source loading stage
# ABOUTME: Validates request sources, the monitored URL fallback and load failures

import pytest
from fakes import FakeStore

from echograph.errors import ErrorKind, SourceLoadError, StorageError
from echograph.stages import SourceLoadingStage


class TestSourceLoadingStage:
    @pytest.mark.asyncio
    async def test_requested_sources_are_cleaned_and_deduplicated(self, state, limiter):
        store = FakeStore(sources=["https://ignored.example.com"])
        stage = SourceLoadingStage(
            store, limiter, requested=["https://a.example.com", " https://b.example.com ", "https://a.example.com", " "]
        )

        update = await stage(state, None)

        assert [source.url for source in update["sources"]] == ["https://a.example.com", "https://b.example.com"]

    @pytest.mark.asyncio
    async def test_falls_back_to_monitored_urls(self, state, limiter):
        stage = SourceLoadingStage(FakeStore(sources=["https://a.example.com", "https://b.example.com"]), limiter)

        update = await stage(state, None)

        assert [source.url for source in update["sources"]] == ["https://a.example.com", "https://b.example.com"]

    @pytest.mark.asyncio
    async def test_no_monitored_urls_gives_empty_run(self, state, limiter):
        update = await SourceLoadingStage(FakeStore(), limiter)(state, None)
        assert update == {"sources": []}

    @pytest.mark.asyncio
    async def test_load_failure_raises(self, state, limiter):
        store = FakeStore()
        store.list_error = StorageError("no such table", kind=ErrorKind.FATAL)

        with pytest.raises(SourceLoadError, match="no such table"):
            await SourceLoadingStage(store, limiter)(state, None)
