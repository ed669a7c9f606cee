# ABOUTME: Article extraction stage turning one selected headline into article content
# ABOUTME: Missing publication dates fall back to the run date; empty articles are dropped

from echograph.core.models import Article, ArticleRef
from echograph.core.state import PipelineState
from echograph.errors import PipelineError
from echograph.extraction.base import ArticleContent, ContentFetcher, ExtractionService
from echograph.utils.concurrency import ConcurrencyLimiter
from echograph.utils.logging import get_logger, log_stage


class ArticleExtractionStage:
    def __init__(self, fetcher: ContentFetcher, extraction: ExtractionService, limiter: ConcurrencyLimiter):
        self.fetcher = fetcher
        self.extraction = extraction
        self.limiter = limiter
        self.logger = get_logger(__name__)

    @log_stage("article_extraction")
    async def __call__(self, state: PipelineState, ref: ArticleRef) -> dict:
        try:
            markdown = await self.limiter.run(
                lambda: self.fetcher.fetch(ref.article_url), label=f"fetch_article:{ref.article_url}"
            )
            content = await self.limiter.run(
                lambda: self.extraction.extract(
                    markdown, ArticleContent, context={"article_url": ref.article_url, "headline": ref.headline}
                ),
                label=f"extract_article:{ref.article_url}",
            )
        except PipelineError as e:
            self.logger.warning(
                "Article extraction failed", article_url=ref.article_url, error=str(e), kind=e.kind.value
            )
            return {"articles": []}

        article_text = content.article_text.strip()
        if not article_text:
            self.logger.info("Dropping article without text", article_url=ref.article_url)
            return {"articles": []}

        article = Article(
            parent_url=ref.parent_url,
            article_url=ref.article_url,
            headline=ref.headline,
            article_text=article_text,
            article_date=content.article_date or state.config.run_date,
            author=content.author,
        )
        return {"articles": [article]}
