# ABOUTME: Quote extraction stage producing one draft quote set per article
# ABOUTME: Keeps only quotes attributed to a named speaker other than the author or publication

import re

from echograph.core.models import Article, RawQuote, ValidatedQuote, ValidatedQuoteSet
from echograph.core.state import PipelineState
from echograph.errors import PipelineError
from echograph.extraction.base import ExtractionService, QuoteList
from echograph.extraction.web.urls import registrable_domain
from echograph.utils.concurrency import ConcurrencyLimiter
from echograph.utils.logging import get_logger, log_stage

_NON_ALNUM = re.compile(r"[^0-9a-z]+")


def _normalize_name(name: str | None) -> str:
    return _NON_ALNUM.sub("", (name or "").casefold())


def is_attributable(quote: RawQuote, article: Article) -> bool:
    """Whether ``quote`` has text and a named speaker who is not the article's author or publication."""
    speaker = _normalize_name(quote.speaker)
    if not speaker or not quote.quote_raw.strip():
        return False

    excluded = {_normalize_name(article.author), registrable_domain(article.article_url).split(".")[0]}
    return speaker not in excluded


class QuoteExtractionStage:
    def __init__(self, extraction: ExtractionService, limiter: ConcurrencyLimiter):
        self.extraction = extraction
        self.limiter = limiter
        self.logger = get_logger(__name__)

    @log_stage("quote_extraction")
    async def __call__(self, state: PipelineState, article: Article) -> dict:
        try:
            result = await self.limiter.run(
                lambda: self.extraction.extract(
                    article.article_text,
                    QuoteList,
                    context={"article_url": article.article_url, "author": article.author},
                ),
                label=f"extract_quotes:{article.article_url}",
            )
        except PipelineError as e:
            self.logger.warning(
                "Quote extraction failed", article_url=article.article_url, error=str(e), kind=e.kind.value
            )
            return {"quote_drafts": []}

        quotes = [quote for quote in result.quotes if is_attributable(quote, article)]
        self.logger.info(
            "Extracted quotes",
            article_url=article.article_url,
            quotes=len(quotes),
            rejected=len(result.quotes) - len(quotes),
        )
        if not quotes:
            return {"quote_drafts": []}

        draft = ValidatedQuoteSet(
            article_metadata=article.metadata(),
            quotes=[ValidatedQuote(**quote.model_dump()) for quote in quotes],
        )
        return {"quote_drafts": [draft]}
