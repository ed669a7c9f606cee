# ABOUTME: Pipeline state model with an explicit per-field reducer table
# ABOUTME: StateStore serializes updates from parallel branches and hands out snapshots

import asyncio
from collections.abc import Mapping
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from echograph.core.models import (
    Article,
    ArticleRef,
    RunConfig,
    Source,
    StorageReport,
    UniqueQuote,
    ValidatedQuoteSet,
)
from echograph.errors import GraphError


class ReducerKind(str, Enum):
    """How an incoming update combines with the current field value."""

    CONCAT = "concat"
    SHALLOW_MERGE = "shallow_merge"


def concat(existing: list, incoming: list) -> list:
    """Append incoming items after existing ones. Never deduplicates."""
    return [*existing, *incoming]


def shallow_merge(existing: BaseModel, incoming: BaseModel | Mapping[str, Any]) -> BaseModel:
    """Overwrite top-level fields of ``existing`` with the ones present in ``incoming``."""
    if isinstance(incoming, BaseModel):
        incoming = incoming.model_dump(exclude_unset=True)
    return type(existing).model_validate({**existing.model_dump(), **incoming})


_REDUCER_FUNCTIONS = {
    ReducerKind.CONCAT: concat,
    ReducerKind.SHALLOW_MERGE: shallow_merge,
}


class PipelineState(BaseModel):
    """Everything a run has accumulated so far."""

    config: RunConfig = Field(default_factory=RunConfig)
    sources: list[Source] = Field(default_factory=list)
    # Raw per-source discoveries; ``headlines`` is the deduplicated selection
    discovered: list[ArticleRef] = Field(default_factory=list)
    headlines: list[ArticleRef] = Field(default_factory=list)
    articles: list[Article] = Field(default_factory=list)
    quote_drafts: list[ValidatedQuoteSet] = Field(default_factory=list)
    validated: list[ValidatedQuoteSet] = Field(default_factory=list)
    unique_quotes: list[UniqueQuote] = Field(default_factory=list)
    storage_reports: list[StorageReport] = Field(default_factory=list)


REDUCERS: dict[str, ReducerKind] = {
    "config": ReducerKind.SHALLOW_MERGE,
    "sources": ReducerKind.CONCAT,
    "discovered": ReducerKind.CONCAT,
    "headlines": ReducerKind.CONCAT,
    "articles": ReducerKind.CONCAT,
    "quote_drafts": ReducerKind.CONCAT,
    "validated": ReducerKind.CONCAT,
    "unique_quotes": ReducerKind.CONCAT,
    "storage_reports": ReducerKind.CONCAT,
}


def validate_reducer_table(model: type[BaseModel], reducers: Mapping[str, Any]) -> None:
    """Check that every state field has exactly one known reducer.

    Raises:
        GraphError: If a field lacks a reducer, a reducer names an unknown
            field, or a reducer kind is not a ``ReducerKind``
    """
    fields = set(model.model_fields)

    missing = fields - set(reducers)
    if missing:
        raise GraphError(f"State fields without a reducer: {sorted(missing)}")

    unknown = set(reducers) - fields
    if unknown:
        raise GraphError(f"Reducers declared for unknown fields: {sorted(unknown)}")

    for name, kind in reducers.items():
        if not isinstance(kind, ReducerKind):
            raise GraphError(f"Unsupported reducer {kind!r} for field '{name}'")


class StateStore:
    """Versioned accumulator of pipeline results.

    The state only changes through ``apply``, which combines each updated
    field with its declared reducer under a lock.
    """

    def __init__(self, initial: PipelineState | None = None, reducers: Mapping[str, ReducerKind] | None = None):
        self._state = initial if initial is not None else PipelineState()
        self._reducers = dict(reducers if reducers is not None else REDUCERS)
        validate_reducer_table(type(self._state), self._reducers)

        self._lock = asyncio.Lock()
        self._version = 0

    @property
    def version(self) -> int:
        return self._version

    async def apply(self, update: Mapping[str, Any]) -> int:
        """Merge one node's update into the state.

        Args:
            update: Mapping of field name to the value contributed by one node

        Returns:
            The new state version

        Raises:
            GraphError: If the update names a field the state does not declare
        """
        unknown = set(update) - set(self._reducers)
        if unknown:
            raise GraphError(f"Update touches undeclared state fields: {sorted(unknown)}")

        async with self._lock:
            merged = {
                name: _REDUCER_FUNCTIONS[self._reducers[name]](getattr(self._state, name), value)
                for name, value in update.items()
            }
            self._state = type(self._state).model_validate({**dict(self._state), **merged})
            self._version += 1
            return self._version

    def snapshot(self) -> PipelineState:
        """Return a copy of the current state that later updates will not touch."""
        copies = {name: list(value) for name, value in self._state if isinstance(value, list)}
        return self._state.model_copy(update=copies)
