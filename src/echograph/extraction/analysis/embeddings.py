# ABOUTME: Embedding Service backed by dspy.Embedder (LiteLLM hosted embedding models)
# ABOUTME: Checks that every text gets exactly one vector and all vectors share a dimension

from collections.abc import Sequence

import dspy

from echograph.config import get_config
from echograph.errors import EmbeddingError
from echograph.utils.logging import get_logger, log_api_call
from echograph.utils.retry import convert_exception


class DSPyEmbeddingService:
    """Embed quote texts with a hosted embedding model."""

    def __init__(self, model: str | None = None, api_key: str | None = None, embedder: dspy.Embedder | None = None):
        config = get_config()
        self.logger = get_logger(__name__)

        self.model = model or config.embedding_model
        # Batching is driven by the deduplication stage, one call per batch
        self.embedder = embedder or dspy.Embedder(
            self.model, batch_size=config.embedding_batch_size, caching=False, api_key=api_key or config.llm_api_key
        )

    @log_api_call("embedding_service")
    async def embed(self, texts: Sequence[str]) -> list[list[float]]:
        """Embed ``texts`` in order.

        Raises:
            EmbeddingError: Typed with the kind of the underlying failure, or
                FATAL when the response does not match the input
        """
        if not texts:
            return []

        try:
            raw = await self.embedder.acall(list(texts))
        except Exception as e:
            raise EmbeddingError(f"Embedding {len(texts)} texts failed: {e}", kind=convert_exception(e).kind) from e

        vectors = [[float(value) for value in vector] for vector in raw]
        if len(vectors) != len(texts):
            raise EmbeddingError(f"Expected {len(texts)} embeddings, got {len(vectors)}")
        if len({len(vector) for vector in vectors}) > 1:
            raise EmbeddingError("Embeddings have inconsistent dimensions")

        self.logger.debug("Embedded texts", count=len(vectors), dimension=len(vectors[0]), model=self.model)
        return vectors
