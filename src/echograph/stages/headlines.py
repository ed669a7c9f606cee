# ABOUTME: Headline discovery per source and the join that selects which articles to extract
# ABOUTME: Resolves and filters article links, merges manual overrides, skips already-stored articles

from echograph.core.models import ArticleRef, Source
from echograph.core.state import PipelineState
from echograph.errors import PipelineError
from echograph.extraction.base import ContentFetcher, ExtractionService, HeadlineList, Persistence
from echograph.extraction.web.urls import resolve_article_url, same_site
from echograph.utils.concurrency import ConcurrencyLimiter
from echograph.utils.logging import get_logger, log_stage


def dedupe_by_article_url(refs: list[ArticleRef]) -> list[ArticleRef]:
    """Keep the first ArticleRef seen for each article URL, preserving order."""
    unique: dict[str, ArticleRef] = {}
    for ref in refs:
        unique.setdefault(ref.article_url, ref)
    return list(unique.values())


class HeadlineDiscoveryStage:
    """Find candidate articles on one source page.

    Fetch or extraction failures leave only the source's manual overrides,
    so a broken source never fails the run.
    """

    def __init__(self, fetcher: ContentFetcher, extraction: ExtractionService, limiter: ConcurrencyLimiter):
        self.fetcher = fetcher
        self.extraction = extraction
        self.limiter = limiter
        self.logger = get_logger(__name__)

    async def _extract_candidates(self, source: Source) -> HeadlineList:
        markdown = await self.limiter.run(lambda: self.fetcher.fetch(source.url), label=f"fetch_source:{source.url}")
        if not markdown.strip():
            self.logger.info("Source page is empty", source_url=source.url)
            return HeadlineList()

        return await self.limiter.run(
            lambda: self.extraction.extract(markdown, HeadlineList, context={"source_url": source.url}),
            label=f"extract_headlines:{source.url}",
        )

    def filter_candidates(self, source: Source, extracted: HeadlineList) -> list[ArticleRef]:
        """Resolve links against the source and drop off-site and duplicate ones."""
        refs = []
        for candidate in extracted.headlines:
            article_url = resolve_article_url(source.url, candidate.article_url)
            if article_url is None or not same_site(source.url, article_url):
                continue
            refs.append(ArticleRef(parent_url=source.url, article_url=article_url, headline=candidate.headline.strip()))
        return dedupe_by_article_url(refs)

    @log_stage("headline_discovery")
    async def __call__(self, state: PipelineState, source: Source) -> dict:
        overrides = [
            ref.model_copy(update={"parent_url": source.url})
            for ref in state.config.manual_headlines.get(source.url, [])
        ]

        try:
            extracted = await self._extract_candidates(source)
        except PipelineError as e:
            self.logger.warning(
                "Headline discovery failed", source_url=source.url, error=str(e), kind=e.kind.value
            )
            extracted = HeadlineList()

        discovered = dedupe_by_article_url(overrides + self.filter_candidates(source, extracted))
        self.logger.info(
            "Discovered headlines", source_url=source.url, headlines=len(discovered), manual=len(overrides)
        )
        return {"discovered": discovered}


class ArticleSelectionStage:
    """Join discovery branches into the deduplicated list of articles to extract."""

    def __init__(self, persistence: Persistence, limiter: ConcurrencyLimiter):
        self.persistence = persistence
        self.limiter = limiter
        self.logger = get_logger(__name__)

    async def _known_urls(self, refs: list[ArticleRef]) -> set[str]:
        urls = [ref.article_url for ref in refs]
        try:
            return await self.limiter.run(lambda: self.persistence.known_article_urls(urls), label="known_article_urls")
        except PipelineError as e:
            self.logger.warning("Could not check for stored articles, extracting all", error=str(e))
            return set()

    async def _mark_crawled(self, state: PipelineState) -> None:
        urls = [source.url for source in state.sources]
        try:
            await self.limiter.run(lambda: self.persistence.mark_crawled(urls), label="mark_crawled")
        except PipelineError as e:
            self.logger.warning("Could not update crawl timestamps", error=str(e))

    @log_stage("article_selection")
    async def __call__(self, state: PipelineState, payload: object = None) -> dict:
        unique = dedupe_by_article_url(state.discovered)

        known: set[str] = set()
        if state.config.skip_known_articles and unique:
            known = await self._known_urls(unique)

        selected = [ref for ref in unique if ref.article_url not in known]
        await self._mark_crawled(state)

        self.logger.info(
            "Selected articles",
            discovered=len(state.discovered),
            unique=len(unique),
            already_stored=len(unique) - len(selected),
            selected=len(selected),
        )
        return {"headlines": selected}
