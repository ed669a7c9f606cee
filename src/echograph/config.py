# ABOUTME: Application configuration using Pydantic Settings for environment variables
# ABOUTME: Provides type-safe access to API keys, pipeline limits, logging config and run defaults

import json
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from echograph.core.models import ArticleRef, RunConfig
from echograph.errors import ConfigError


class Config(BaseSettings):
    """Application configuration with environment variable support."""

    model_config = SettingsConfigDict(
        env_prefix="ECHOGRAPH_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",  # Ignore unknown environment variables
    )

    # AI/API Configuration
    llm_api_key: str = Field(default="", description="API key for the Extraction Service language model")
    llm_model: str = Field(default="openai/gpt-4o-mini", description="LiteLLM model id used by dspy for extraction")
    embedding_model: str = Field(
        default="openai/text-embedding-3-small", description="LiteLLM model id used for quote embeddings"
    )
    embedding_batch_size: int = Field(default=64, gt=0, description="Texts sent per Embedding Service call")

    # Content fetching
    fetch_backend: Literal["jina", "crawl4ai"] = Field(default="jina", description="Page content fetcher")
    jina_base_url: str = Field(default="https://r.jina.ai/", description="Reader endpoint that returns markdown")
    http_timeout: float = Field(default=30.0, gt=0, description="HTTP timeout in seconds for content fetches")

    # Database Configuration
    database_url: str = Field(
        default="sqlite+aiosqlite:///./echograph.db", description="Database URL for async SQLAlchemy operations"
    )

    # Logging Configuration
    log_mode: Literal["interactive", "production"] = Field(default="interactive", description="Logging output mode")

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO", description="Logging verbosity level"
    )

    log_file: Path | None = Field(default=None, description="Custom log file path (overrides default)")

    # Pipeline defaults
    similarity_threshold: float = Field(
        default=0.85, ge=0.0, le=1.0, description="Cosine similarity at which two quotes are duplicates"
    )
    max_concurrent: int = Field(default=5, gt=0, description="Maximum in-flight external calls per run")
    max_retries: int = Field(default=10, ge=0, description="Retries for rate-limited and transient failures")
    retry_initial_delay: float = Field(default=1.0, ge=0.0, description="Base backoff delay in seconds")
    retry_max_delay: float = Field(default=60.0, gt=0.0, description="Upper bound for one backoff delay")
    call_timeout: float | None = Field(default=120.0, description="Timeout for a single external call attempt")
    stage_deadline: float | None = Field(default=1800.0, description="Deadline for one fan-out stage in seconds")
    validation_chunk_size: int = Field(default=5, gt=0, description="Quotes per validation call")
    storage_batch_size: int = Field(default=50, gt=0, description="Quote records per persistence call")
    skip_known_articles: bool = Field(default=True, description="Skip articles that already have stored quotes")
    output_dir: Path = Field(default=Path("output"), description="Directory for exported run snapshots")
    manual_headlines_file: Path | None = Field(
        default=None, description="JSON file mapping source URLs to manually curated article headlines"
    )

    def default_run_config(self, **overrides) -> RunConfig:
        """Build a RunConfig from settings, applying explicit overrides.

        Raises:
            ConfigError: If the resulting run configuration is invalid
        """
        values = {
            "similarity_threshold": self.similarity_threshold,
            "max_concurrent": self.max_concurrent,
            "max_retries": self.max_retries,
            "retry_initial_delay": self.retry_initial_delay,
            "retry_max_delay": self.retry_max_delay,
            "call_timeout": self.call_timeout,
            "stage_deadline": self.stage_deadline,
            "validation_chunk_size": self.validation_chunk_size,
            "embedding_batch_size": self.embedding_batch_size,
            "storage_batch_size": self.storage_batch_size,
            "skip_known_articles": self.skip_known_articles,
            "manual_headlines": load_manual_headlines(self.manual_headlines_file),
        }
        values.update({key: value for key, value in overrides.items() if value is not None})
        return RunConfig.build(values)


def load_manual_headlines(path: Path | None) -> dict[str, list[ArticleRef]]:
    """Load manual headline overrides keyed by source URL.

    The file maps each source URL to a list of ``{"article_url", "headline"}``
    objects.

    Raises:
        ConfigError: If the file exists but cannot be parsed
    """
    if path is None:
        return {}
    try:
        raw = json.loads(Path(path).read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigError(f"Cannot read manual headlines from {path}: {e}") from e

    if not isinstance(raw, dict):
        raise ConfigError(f"Manual headlines file {path} must contain a JSON object")

    overrides: dict[str, list[ArticleRef]] = {}
    for source_url, entries in raw.items():
        try:
            overrides[source_url] = [ArticleRef(parent_url=source_url, **entry) for entry in entries]
        except (TypeError, ValueError) as e:
            raise ConfigError(f"Invalid manual headline for {source_url}: {e}") from e
    return overrides


# Global config instance - lazy loaded when first accessed
_config_instance: Config | None = None


def get_config() -> Config:
    """Get the global configuration instance.

    Creates the config on first access, subsequent calls return the same instance.

    Returns:
        Config: The application configuration instance
    """
    global _config_instance
    if _config_instance is None:
        _config_instance = Config()
    return _config_instance


def reload_config() -> Config:
    """Reload configuration from environment variables.

    Useful for testing or when environment variables change at runtime.

    Returns:
        Config: A fresh configuration instance
    """
    global _config_instance
    _config_instance = Config()
    return _config_instance
