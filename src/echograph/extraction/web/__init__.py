# ABOUTME: Page fetchers returning markdown and URL helpers for headline discovery
# ABOUTME: Jina reader over httpx is the default backend, crawl4ai renders JavaScript pages

from echograph.extraction.base import ContentFetcher

from .jina import JinaReaderFetcher


def create_fetcher(backend: str = "jina", **kwargs) -> ContentFetcher:
    """Create the configured content fetcher.

    The crawl4ai backend is imported lazily since it pulls in a browser stack.
    """
    if backend == "crawl4ai":
        from .crawl4ai import Crawl4AIFetcher

        return Crawl4AIFetcher(**kwargs)
    if backend == "jina":
        return JinaReaderFetcher(**kwargs)
    raise ValueError(f"Unknown fetch backend: {backend}")


__all__ = ["JinaReaderFetcher", "create_fetcher"]
