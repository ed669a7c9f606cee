# ABOUTME: Domain models flowing through the quote extraction pipeline
# ABOUTME: Sources, articles, quotes at each validation stage, run configuration and exported snapshots

from datetime import UTC, date, datetime
from typing import Any
from uuid import uuid4

from pydantic import AliasGenerator, BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from echograph.errors import ConfigError


def utcnow() -> datetime:
    """Returns the current UTC timestamp."""

    return datetime.now(UTC)


def new_run_id() -> str:
    """Generate a sortable, unique run identifier."""
    return f"run-{utcnow():%Y%m%dT%H%M%S}-{uuid4().hex[:6]}"


# Trigger payloads arrive camelCased; python callers use field names
_CAMEL_INPUT = ConfigDict(
    alias_generator=AliasGenerator(validation_alias=to_camel),
    populate_by_name=True,
)


class Source(BaseModel):
    """A monitored origin URL."""

    url: str = Field(description="Section or front page to discover articles on")


class ArticleRef(BaseModel):
    """Candidate article discovered on a source."""

    parent_url: str = Field(description="Source the article was discovered on")
    article_url: str = Field(description="Absolute article URL, used as the dedup key")
    headline: str = Field(default="", description="Headline as shown on the source page")


class ArticleMetadata(ArticleRef):
    """Article identity carried by every quote set and surviving quote."""

    article_date: date = Field(description="Publication date, or the run date when unknown")
    author: str | None = Field(default=None, description="Byline, used to reject author text as quotes")


class Article(ArticleMetadata):
    """Extracted article content."""

    article_text: str = Field(description="Main article body text")

    def metadata(self) -> ArticleMetadata:
        return ArticleMetadata.model_validate(self.model_dump(exclude={"article_text"}))


class RawQuote(BaseModel):
    """One attributable quote."""

    speaker: str = Field(description="Named person who spoke the quote")
    quote_raw: str = Field(description="Verbatim quoted text")
    quote_summary: str = Field(default="", description="Short first-person restatement of the quote")


class ValidatedQuote(RawQuote):
    """A quote with the validation verdict attached (None while still a draft)."""

    is_valid: bool | None = None
    invalid_reason: str | None = None
    quality_score: float | None = Field(default=None, ge=0.0, le=1.0)


class ValidatedQuoteSet(BaseModel):
    """One article's quotes together with the article they came from."""

    article_metadata: ArticleMetadata
    quotes: list[ValidatedQuote] = Field(default_factory=list)

    @property
    def valid_quotes(self) -> list[ValidatedQuote]:
        return [quote for quote in self.quotes if quote.is_valid]


class UniqueQuote(RawQuote):
    """A quote that survived deduplication."""

    quality_score: float = Field(ge=0.0, le=1.0)
    article_metadata: ArticleMetadata


class SourceStats(BaseModel):
    """Per-source yield of one run."""

    parent_url: str
    headlines: int = 0
    articles: int = 0
    quotes: int = 0


class StorageReport(BaseModel):
    """Outcome of persisting one quote batch."""

    batch_index: int
    attempted: int
    inserted: int = 0
    error: str | None = None

    @property
    def lost(self) -> int:
        return self.attempted - self.inserted


class RunConfig(BaseModel):
    """Configuration for a single pipeline run."""

    model_config = _CAMEL_INPUT

    run_id: str = Field(default_factory=new_run_id, min_length=1)
    started_at: datetime = Field(default_factory=utcnow)
    similarity_threshold: float = Field(default=0.85, ge=0.0, le=1.0)
    max_concurrent: int = Field(default=5, gt=0)
    max_retries: int = Field(default=10, ge=0)
    retry_initial_delay: float = Field(default=1.0, ge=0.0)
    retry_max_delay: float = Field(default=60.0, gt=0.0)
    call_timeout: float | None = Field(default=None, gt=0.0)
    stage_deadline: float | None = Field(default=None, gt=0.0)
    validation_chunk_size: int = Field(default=5, gt=0)
    embedding_batch_size: int = Field(default=64, gt=0)
    storage_batch_size: int = Field(default=50, gt=0)
    skip_known_articles: bool = True
    manual_headlines: dict[str, list[ArticleRef]] = Field(default_factory=dict)

    @property
    def run_date(self) -> date:
        return self.started_at.date()

    @classmethod
    def build(cls, values: dict[str, Any]) -> "RunConfig":
        """Validate raw values, raising ConfigError instead of ValidationError."""
        try:
            return cls.model_validate(values)
        except ValidationError as e:
            raise ConfigError(f"Invalid run configuration: {e}") from e


class RunRequest(BaseModel):
    """Trigger payload that starts a run."""

    model_config = _CAMEL_INPUT

    sources: list[str] = Field(default_factory=list)
    config: RunConfig = Field(default_factory=RunConfig)

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "RunRequest":
        try:
            return cls.model_validate(payload)
        except ValidationError as e:
            raise ConfigError(f"Invalid run request: {e}") from e


class RunStats(BaseModel):
    """Counters describing how many items survived each stage."""

    sources: int = 0
    headlines: int = 0
    # Headlines left after skipping articles that already have stored quotes
    headlines_selected: int = 0
    articles: int = 0
    quotes_extracted: int = 0
    quotes_valid: int = 0
    quotes_invalid: int = 0
    unique_quotes: int = 0
    quotes_stored: int = 0
    quotes_lost: int = 0
    limiter: dict[str, int] = Field(default_factory=dict)


class RunSnapshot(BaseModel):
    """Exported artifact written once at the end of a run."""

    run_id: str
    exported_at: datetime = Field(default_factory=utcnow)
    config: RunConfig
    sources: list[Source] = Field(default_factory=list)
    headlines: list[ArticleRef] = Field(default_factory=list)
    articles: list[Article] = Field(default_factory=list)
    quotes: list[UniqueQuote] = Field(default_factory=list)
    source_stats: list[SourceStats] = Field(default_factory=list)
    stats: RunStats = Field(default_factory=RunStats)
