# ABOUTME: Protocol interfaces for the external collaborators the pipeline calls
# ABOUTME: Content fetching, structured extraction, embeddings and persistence plus extraction response schemas

from collections.abc import Sequence
from datetime import date
from typing import Any, Protocol, TypeVar

from pydantic import BaseModel, Field

from echograph.core.models import RawQuote, UniqueQuote

T = TypeVar("T", bound=BaseModel)


class HeadlineCandidate(BaseModel):
    """One article link found on a source page."""

    article_url: str = Field(description="Article URL as it appears on the page, possibly relative")
    headline: str = Field(default="", description="Headline text shown for the link")


class HeadlineList(BaseModel):
    headlines: list[HeadlineCandidate] = Field(default_factory=list)


class ArticleContent(BaseModel):
    """Main content of one article page."""

    article_text: str = Field(default="", description="Article body without navigation or boilerplate")
    article_date: date | None = Field(default=None, description="Publication date if it can be determined")
    author: str | None = Field(default=None, description="Byline of the article")


class QuoteList(BaseModel):
    quotes: list[RawQuote] = Field(default_factory=list)


class QuoteVerdict(BaseModel):
    """Validation verdict for one quote, in input order."""

    is_valid: bool
    invalid_reason: str | None = None
    quality_score: float | None = Field(default=None, ge=0.0, le=1.0)


class QuoteValidationResult(BaseModel):
    verdicts: list[QuoteVerdict] = Field(default_factory=list)


class ContentFetcher(Protocol):
    """Fetch a page and return its content as markdown."""

    async def fetch(self, url: str) -> str:
        """Fetch the page at ``url``.

        Raises:
            FetchError: Typed with the kind of failure
        """
        ...

    async def close(self) -> None: ...


class ExtractionService(Protocol):
    """Turn document text into one of the structured response schemas."""

    async def extract(self, document_text: str, schema: type[T], *, context: dict[str, Any]) -> T:
        """Extract a ``schema`` instance from ``document_text``.

        Args:
            document_text: Markdown or plain text to analyze
            schema: One of HeadlineList, ArticleContent, QuoteList, QuoteValidationResult
            context: Extra inputs such as the source URL or article author

        Raises:
            ExtractionServiceError: Typed with the kind of failure
        """
        ...


class EmbeddingService(Protocol):
    async def embed(self, texts: Sequence[str]) -> list[list[float]]:
        """Embed ``texts``, returning one equal-length vector per text in input order.

        Raises:
            EmbeddingError: Typed with the kind of failure
        """
        ...


class Persistence(Protocol):
    """Storage the pipeline reads sources from and writes quotes to."""

    async def list_sources(self) -> list[str]:
        """Return the URLs of all active monitored sources."""
        ...

    async def known_article_urls(self, urls: Sequence[str]) -> set[str]:
        """Return the subset of ``urls`` that already have stored quotes."""
        ...

    async def insert_quotes(self, records: Sequence[UniqueQuote], *, run_id: str) -> int:
        """Insert quote records, returning how many were written."""
        ...

    async def mark_crawled(self, urls: Sequence[str]) -> None:
        """Record that the given sources were crawled now."""
        ...
