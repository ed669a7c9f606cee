# ABOUTME: Typed error taxonomy shared by collaborators, stages and the retry policy
# ABOUTME: Every error carries an ErrorKind so retry decisions never depend on message text

from enum import Enum


class ErrorKind(str, Enum):
    """How a failure should be treated by the retry policy."""

    RATE_LIMITED = "rate_limited"
    TRANSIENT = "transient"
    FATAL = "fatal"

    @property
    def retryable(self) -> bool:
        return self is not ErrorKind.FATAL


class PipelineError(Exception):
    """Base exception for pipeline failures."""

    default_kind: ErrorKind = ErrorKind.FATAL

    def __init__(self, message: str = "", kind: ErrorKind | None = None):
        super().__init__(message)
        self.kind = kind or self.default_kind


class FetchError(PipelineError):
    """Raised when page content cannot be fetched."""

    default_kind = ErrorKind.TRANSIENT


class ExtractionServiceError(PipelineError):
    """Base exception for Extraction Service failures."""

    pass


class RateLimitedError(ExtractionServiceError):
    """Raised when the Extraction Service throttles us."""

    default_kind = ErrorKind.RATE_LIMITED


class TransientServiceError(ExtractionServiceError):
    """Raised for timeouts, connection drops and 5xx responses."""

    default_kind = ErrorKind.TRANSIENT


class FatalServiceError(ExtractionServiceError):
    """Raised for malformed responses and non-retryable rejections."""

    default_kind = ErrorKind.FATAL


class ValidationChunkError(PipelineError):
    """Raised when one quote validation chunk cannot be classified."""

    pass


class EmbeddingError(PipelineError):
    """Raised when the Embedding Service fails or returns unusable vectors."""

    pass


class StorageError(PipelineError):
    """Raised when a quote batch cannot be persisted."""

    default_kind = ErrorKind.TRANSIENT


class ConfigError(PipelineError):
    """Raised for an invalid run configuration, before any stage runs."""

    pass


class SourceLoadError(PipelineError):
    """Raised when the initial source list cannot be obtained."""

    pass


class GraphError(Exception):
    """Raised for an invalid workflow graph definition or routing result."""

    pass


class GraphRecursionError(GraphError):
    """Raised when a run exceeds its superstep limit."""

    pass
