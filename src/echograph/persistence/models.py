# ABOUTME: Persistence models for monitored sources and staged quotes
# ABOUTME: Staged quotes await editorial review in the web application

from datetime import date, datetime

from sqlmodel import Field, SQLModel

from echograph.core.models import ArticleMetadata, UniqueQuote, utcnow


class MonitoredUrl(SQLModel, table=True):
    """A source page crawled for new articles."""

    __tablename__ = "monitored_url"  # type: ignore[assignment]

    id: int | None = Field(default=None, primary_key=True)
    url: str = Field(index=True, unique=True, description="Section or front page URL")
    active: bool = Field(default=True, description="Whether runs without explicit sources crawl this URL")
    last_crawled_at: datetime | None = Field(default=None, description="When a run last discovered headlines here")
    created_at: datetime = Field(default_factory=utcnow, description="Creation timestamp")


class StagedQuote(SQLModel, table=True):
    """A deduplicated quote written by a pipeline run."""

    __tablename__ = "staged_quote"  # type: ignore[assignment]

    id: int | None = Field(default=None, primary_key=True)
    run_id: str = Field(index=True, description="Run that produced the quote")
    speaker: str = Field(description="Named speaker")
    quote_raw: str = Field(description="Verbatim quote text")
    quote_summary: str = Field(default="", description="First-person summary")
    quality_score: float = Field(default=0.0, description="Quality score from validation")
    article_url: str = Field(index=True, description="Article the quote was extracted from")
    article_date: date = Field(description="Publication date of the article")
    headline: str = Field(default="", description="Headline of the article")
    author: str | None = Field(default=None, description="Article byline")
    parent_url: str = Field(description="Source the article was discovered on")
    created_at: datetime = Field(default_factory=utcnow, description="Creation timestamp")

    @classmethod
    def from_unique_quote(cls, quote: UniqueQuote, run_id: str) -> "StagedQuote":
        metadata = quote.article_metadata
        return cls(
            run_id=run_id,
            speaker=quote.speaker,
            quote_raw=quote.quote_raw,
            quote_summary=quote.quote_summary,
            quality_score=quote.quality_score,
            article_url=metadata.article_url,
            article_date=metadata.article_date,
            headline=metadata.headline,
            author=metadata.author,
            parent_url=metadata.parent_url,
        )

    def to_unique_quote(self) -> UniqueQuote:
        return UniqueQuote(
            speaker=self.speaker,
            quote_raw=self.quote_raw,
            quote_summary=self.quote_summary,
            quality_score=self.quality_score,
            article_metadata=ArticleMetadata(
                parent_url=self.parent_url,
                article_url=self.article_url,
                headline=self.headline,
                article_date=self.article_date,
                author=self.author,
            ),
        )
