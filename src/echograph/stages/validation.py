# ABOUTME: Quote validation stage classifying a draft quote set in chunks
# ABOUTME: A failed chunk contributes nothing while the other chunks of the set are kept

import asyncio
import math

from echograph.core.models import ValidatedQuote, ValidatedQuoteSet
from echograph.core.state import PipelineState
from echograph.errors import PipelineError, ValidationChunkError
from echograph.extraction.base import ExtractionService, QuoteValidationResult, QuoteVerdict
from echograph.utils.concurrency import ConcurrencyLimiter
from echograph.utils.logging import get_logger, log_stage


def heuristic_quality(text: str) -> float:
    """Length-based quality score in [0, 1) for quotes the validator did not score."""
    return round(math.tanh(len(text.strip()) / 400.0), 4)


def render_chunk(quotes: list[ValidatedQuote]) -> str:
    return "\n\n".join(f"{index}. {quote.speaker}: \"{quote.quote_raw}\"" for index, quote in enumerate(quotes, 1))


def apply_verdict(quote: ValidatedQuote, verdict: QuoteVerdict) -> ValidatedQuote:
    quality = verdict.quality_score if verdict.quality_score is not None else heuristic_quality(quote.quote_raw)
    return quote.model_copy(
        update={
            "is_valid": verdict.is_valid,
            "invalid_reason": None if verdict.is_valid else (verdict.invalid_reason or "unspecified"),
            "quality_score": quality,
        }
    )


class QuoteValidationStage:
    def __init__(self, extraction: ExtractionService, limiter: ConcurrencyLimiter):
        self.extraction = extraction
        self.limiter = limiter
        self.logger = get_logger(__name__)

    async def _validate_chunk(
        self, draft: ValidatedQuoteSet, chunk: list[ValidatedQuote], index: int
    ) -> list[ValidatedQuote]:
        metadata = draft.article_metadata
        try:
            result = await self.limiter.run(
                lambda: self.extraction.extract(
                    render_chunk(chunk),
                    QuoteValidationResult,
                    context={"quotes": chunk, "headline": metadata.headline, "article_url": metadata.article_url},
                ),
                label=f"validate_quotes:{metadata.article_url}#{index}",
            )
            if len(result.verdicts) != len(chunk):
                raise ValidationChunkError(f"Expected {len(chunk)} verdicts, got {len(result.verdicts)}")
        except PipelineError as e:
            self.logger.warning(
                "Dropping quote validation chunk",
                article_url=metadata.article_url,
                chunk=index,
                quotes=len(chunk),
                error=str(e),
            )
            return []

        return [apply_verdict(quote, verdict) for quote, verdict in zip(chunk, result.verdicts, strict=True)]

    @log_stage("quote_validation")
    async def __call__(self, state: PipelineState, draft: ValidatedQuoteSet) -> dict:
        size = state.config.validation_chunk_size
        chunks = [draft.quotes[start : start + size] for start in range(0, len(draft.quotes), size)]

        results = await asyncio.gather(
            *(self._validate_chunk(draft, chunk, index) for index, chunk in enumerate(chunks))
        )
        quotes = [quote for chunk_result in results for quote in chunk_result]

        validated = ValidatedQuoteSet(article_metadata=draft.article_metadata, quotes=quotes)
        self.logger.info(
            "Validated quotes",
            article_url=draft.article_metadata.article_url,
            valid=len(validated.valid_quotes),
            invalid=len(quotes) - len(validated.valid_quotes),
            unclassified=len(draft.quotes) - len(quotes),
        )
        return {"validated": [validated]}
