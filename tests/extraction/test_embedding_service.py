# ABOUTME: Tests for the dspy.Embedder backed Embedding Service
# ABOUTME: Validates vector shape checks and error classification with a mocked embedder

from unittest.mock import AsyncMock, Mock

import numpy as np
import pytest

from echograph.errors import EmbeddingError, ErrorKind
from echograph.extraction.analysis import DSPyEmbeddingService


def _service(result=None, error: Exception | None = None) -> tuple[DSPyEmbeddingService, AsyncMock]:
    acall = AsyncMock(return_value=result, side_effect=error)
    return DSPyEmbeddingService(model="openai/text-embedding-3-small", embedder=Mock(acall=acall)), acall


class TestDSPyEmbeddingService:
    @pytest.mark.asyncio
    async def test_vectors_in_input_order(self):
        service, acall = _service(np.array([[1.0, 0.0], [0.0, 1.0]]))

        vectors = await service.embed(["first", "second"])

        assert vectors == [[1.0, 0.0], [0.0, 1.0]]
        acall.assert_awaited_once_with(["first", "second"])

    @pytest.mark.asyncio
    async def test_empty_input_makes_no_call(self):
        service, acall = _service([])

        assert await service.embed([]) == []
        acall.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_count_mismatch(self):
        service, _ = _service([[1.0, 0.0]])

        with pytest.raises(EmbeddingError, match="Expected 2"):
            await service.embed(["first", "second"])

    @pytest.mark.asyncio
    async def test_inconsistent_dimensions(self):
        service, _ = _service([[1.0, 0.0], [1.0]])

        with pytest.raises(EmbeddingError, match="inconsistent"):
            await service.embed(["first", "second"])

    @pytest.mark.asyncio
    async def test_rate_limit_keeps_its_kind(self):
        class ProviderRateLimit(Exception):
            status_code = 429

        service, _ = _service(error=ProviderRateLimit("slow down"))

        with pytest.raises(EmbeddingError) as exc_info:
            await service.embed(["first"])

        assert exc_info.value.kind is ErrorKind.RATE_LIMITED
