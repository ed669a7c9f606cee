# ABOUTME: Tests for the pipeline state model, reducer table and StateStore
# ABOUTME: Validates concat and shallow-merge reducers, versioning and snapshot isolation

import asyncio

import pytest

from echograph.core.models import RunConfig, Source
from echograph.core.state import (
    REDUCERS,
    PipelineState,
    ReducerKind,
    StateStore,
    concat,
    shallow_merge,
    validate_reducer_table,
)
from echograph.errors import GraphError


class TestReducers:
    def test_concat_keeps_duplicates(self):
        assert concat([1, 2], [2, 3]) == [1, 2, 2, 3]

    def test_shallow_merge_overwrites_only_given_fields(self):
        config = RunConfig(run_id="run-a", similarity_threshold=0.85, max_concurrent=5)

        merged = shallow_merge(config, {"similarity_threshold": 0.9})

        assert merged.similarity_threshold == 0.9
        assert merged.run_id == "run-a"
        assert merged.max_concurrent == 5

    def test_shallow_merge_accepts_a_model(self):
        config = RunConfig(run_id="run-a")
        merged = shallow_merge(config, RunConfig(run_id="run-b", max_retries=2))

        assert merged.run_id == "run-b"
        assert merged.max_retries == 2

    def test_every_state_field_has_a_reducer(self):
        validate_reducer_table(PipelineState, REDUCERS)
        assert REDUCERS["config"] is ReducerKind.SHALLOW_MERGE
        assert all(kind is ReducerKind.CONCAT for name, kind in REDUCERS.items() if name != "config")

    def test_missing_reducer_is_rejected(self):
        reducers = {name: kind for name, kind in REDUCERS.items() if name != "articles"}
        with pytest.raises(GraphError, match="without a reducer"):
            StateStore(reducers=reducers)

    def test_unknown_reducer_kind_is_rejected(self):
        reducers = {**REDUCERS, "articles": "replace"}
        with pytest.raises(GraphError, match="Unsupported reducer"):
            StateStore(reducers=reducers)

    def test_reducer_for_unknown_field_is_rejected(self):
        with pytest.raises(GraphError, match="unknown fields"):
            StateStore(reducers={**REDUCERS, "extra": ReducerKind.CONCAT})


class TestStateStore:
    @pytest.mark.asyncio
    async def test_apply_concatenates_and_bumps_version(self):
        store = StateStore()

        assert await store.apply({"sources": [Source(url="https://a.example.com")]}) == 1
        assert await store.apply({"sources": [Source(url="https://a.example.com")]}) == 2

        assert [source.url for source in store.snapshot().sources] == ["https://a.example.com"] * 2
        assert store.version == 2

    @pytest.mark.asyncio
    async def test_apply_rejects_undeclared_fields(self):
        store = StateStore()

        with pytest.raises(GraphError, match="undeclared"):
            await store.apply({"quotes": []})

        assert store.version == 0

    @pytest.mark.asyncio
    async def test_config_is_shallow_merged(self):
        store = StateStore(PipelineState(config=RunConfig(run_id="run-a", max_retries=4)))

        await store.apply({"config": {"similarity_threshold": 0.7}})

        config = store.snapshot().config
        assert config.similarity_threshold == 0.7
        assert config.max_retries == 4
        assert config.run_id == "run-a"

    @pytest.mark.asyncio
    async def test_snapshot_is_isolated_from_later_updates(self):
        store = StateStore()
        await store.apply({"sources": [Source(url="https://a.example.com")]})

        snapshot = store.snapshot()
        await store.apply({"sources": [Source(url="https://b.example.com")]})

        assert len(snapshot.sources) == 1
        assert len(store.snapshot().sources) == 2

    @pytest.mark.asyncio
    async def test_concurrent_updates_are_all_kept(self):
        store = StateStore()

        await asyncio.gather(
            *(store.apply({"sources": [Source(url=f"https://s{index}.example.com")]}) for index in range(25))
        )

        assert len(store.snapshot().sources) == 25
        assert store.version == 25
