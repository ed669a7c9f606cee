# ABOUTME: Content fetcher using a crawl4ai headless browser
# ABOUTME: Renders pages that need JavaScript and returns their markdown

from crawl4ai import AsyncWebCrawler, BrowserConfig, CacheMode, CrawlerRunConfig

from echograph.errors import ErrorKind, FetchError
from echograph.utils.logging import get_logger, log_api_call, suppress_library_output


class Crawl4AIFetcher:
    """Fetch pages as markdown with crawl4ai."""

    def __init__(self, headless: bool = True, page_timeout: float = 30.0):
        self.headless = headless
        self.page_timeout_ms = int(page_timeout * 1000)
        self.logger = get_logger(__name__)

        self.logger.info("Initialized Crawl4AI fetcher", headless=headless)

    @log_api_call("crawl4ai")
    async def fetch(self, url: str) -> str:
        """Fetch ``url`` and return the rendered page as markdown.

        Raises:
            FetchError: TRANSIENT when the crawl fails, FATAL when it yields no content
        """
        crawl_config = CrawlerRunConfig(cache_mode=CacheMode.BYPASS, page_timeout=self.page_timeout_ms)
        browser_cfg = BrowserConfig(headless=self.headless)

        try:
            # Suppress all console output from crawl4ai
            with suppress_library_output():
                async with AsyncWebCrawler(config=browser_cfg) as crawler:
                    result = await crawler.arun(url=url, config=crawl_config)  # type: ignore[assignment]
        except Exception as e:
            self.logger.error("Unexpected error during crawl", error=str(e), error_type=type(e).__name__, url=url)
            raise FetchError(f"Crawling {url} failed: {e}", kind=ErrorKind.TRANSIENT) from e

        if not result or not result.success:  # type: ignore[attr-defined]
            error_message = getattr(result, "error_message", "No result returned")
            self.logger.warning("Crawling failed with error", url=url, error_message=error_message)
            raise FetchError(f"Crawling {url} failed: {error_message}", kind=ErrorKind.TRANSIENT)

        markdown = str(result.markdown or "")  # type: ignore[attr-defined]
        if not markdown.strip():
            raise FetchError(f"Crawling {url} produced no content", kind=ErrorKind.FATAL)

        self.logger.debug("Crawling successful", url=url, content_length=len(markdown))
        return markdown

    async def close(self) -> None:
        return None
