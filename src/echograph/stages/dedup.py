# ABOUTME: Run-wide semantic deduplication of valid quotes by embedding cosine similarity
# ABOUTME: Within a duplicate group the higher quality quote survives in the earlier quote's position

import asyncio
from collections.abc import Sequence

import numpy as np

from echograph.core.models import ArticleMetadata, UniqueQuote, ValidatedQuote
from echograph.core.state import PipelineState
from echograph.errors import EmbeddingError, PipelineError
from echograph.extraction.base import EmbeddingService
from echograph.stages.validation import heuristic_quality
from echograph.utils.concurrency import ConcurrencyLimiter
from echograph.utils.logging import get_logger, log_stage


def _normalize_rows(embeddings: np.ndarray) -> np.ndarray:
    norms = np.linalg.norm(embeddings, axis=1, keepdims=True)
    # Zero vectors stay zero and match nothing
    return np.divide(embeddings, norms, out=np.zeros_like(embeddings), where=norms > 0)


def to_unique_quote(quote: ValidatedQuote, metadata: ArticleMetadata) -> UniqueQuote:
    quality = quote.quality_score if quote.quality_score is not None else heuristic_quality(quote.quote_raw)
    return UniqueQuote(
        speaker=quote.speaker,
        quote_raw=quote.quote_raw,
        quote_summary=quote.quote_summary,
        quality_score=quality,
        article_metadata=metadata,
    )


def deduplicate(quotes: Sequence[UniqueQuote], embeddings: np.ndarray, threshold: float) -> list[UniqueQuote]:
    """Collapse quotes whose embeddings have cosine similarity >= ``threshold``.

    Quotes are visited in input order. A quote that matches a kept quote
    replaces it in place (embedding included) only when its quality is
    strictly higher; otherwise it is discarded. Unmatched quotes are kept.
    """
    if embeddings.shape[0] != len(quotes):
        raise ValueError("embeddings/quotes length mismatch for semantic dedup")

    normalized = _normalize_rows(np.asarray(embeddings, dtype=float))
    kept: list[UniqueQuote] = []
    kept_rows: list[int] = []

    for row, quote in enumerate(quotes):
        if kept_rows:
            sims = normalized[kept_rows] @ normalized[row]
            matches = np.flatnonzero(sims >= threshold)
            if matches.size:
                slot = int(matches[0])
                if quote.quality_score > kept[slot].quality_score:
                    kept[slot] = quote
                    kept_rows[slot] = row
                continue
        kept.append(quote)
        kept_rows.append(row)

    return kept


class DeduplicationStage:
    """Deduplicate the valid quotes of every article in the run.

    When embeddings cannot be computed every valid quote is kept.
    """

    def __init__(self, embeddings: EmbeddingService, limiter: ConcurrencyLimiter):
        self.embeddings = embeddings
        self.limiter = limiter
        self.logger = get_logger(__name__)

    async def _embed(self, texts: list[str], batch_size: int) -> np.ndarray:
        batches = [texts[start : start + batch_size] for start in range(0, len(texts), batch_size)]
        # The first failed batch cancels its siblings
        try:
            async with asyncio.TaskGroup() as tg:
                tasks = [
                    tg.create_task(
                        self.limiter.run(lambda batch=batch: self.embeddings.embed(batch), label=f"embed#{index}")
                    )
                    for index, batch in enumerate(batches)
                ]
        except ExceptionGroup as eg:
            raise eg.exceptions[0]

        vectors = [vector for task in tasks for vector in task.result()]

        if len(vectors) != len(texts):
            raise EmbeddingError(f"Expected {len(texts)} embeddings, got {len(vectors)}")
        if len({len(vector) for vector in vectors}) != 1:
            raise EmbeddingError("Embeddings have inconsistent dimensions")
        return np.asarray(vectors, dtype=float)

    @log_stage("deduplication")
    async def __call__(self, state: PipelineState, payload: object = None) -> dict:
        candidates = [
            to_unique_quote(quote, quote_set.article_metadata)
            for quote_set in state.validated
            for quote in quote_set.valid_quotes
        ]
        if not candidates:
            return {"unique_quotes": []}

        try:
            embeddings = await self._embed([quote.quote_raw for quote in candidates], state.config.embedding_batch_size)
        except PipelineError as e:
            self.logger.warning("Embedding failed, keeping all valid quotes", quotes=len(candidates), error=str(e))
            return {"unique_quotes": candidates}

        unique = deduplicate(candidates, embeddings, state.config.similarity_threshold)
        self.logger.info(
            "Deduplicated quotes",
            candidates=len(candidates),
            unique=len(unique),
            threshold=state.config.similarity_threshold,
        )
        return {"unique_quotes": unique}
