# ABOUTME: Retry policy for external calls built on tenacity with typed error classification
# ABOUTME: Exponential backoff with jitter, per-attempt timeouts and retry event reporting

import asyncio
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, TypeVar

import httpx
from tenacity import AsyncRetrying, RetryCallState, retry_if_exception, stop_after_attempt

from echograph.errors import (
    ErrorKind,
    FatalServiceError,
    PipelineError,
    RateLimitedError,
    TransientServiceError,
)
from echograph.utils.logging import get_logger

logger = get_logger(__name__)
T = TypeVar("T")


def kind_for_status(status_code: int) -> ErrorKind:
    """Classify an HTTP status code."""
    if status_code == 429:
        return ErrorKind.RATE_LIMITED
    if status_code in (408, 425) or status_code >= 500:
        return ErrorKind.TRANSIENT
    return ErrorKind.FATAL


_ERRORS_BY_KIND: dict[ErrorKind, type[PipelineError]] = {
    ErrorKind.RATE_LIMITED: RateLimitedError,
    ErrorKind.TRANSIENT: TransientServiceError,
    ErrorKind.FATAL: FatalServiceError,
}


def convert_exception(e: Exception) -> PipelineError:
    """Convert generic exceptions raised by client libraries to typed pipeline errors.

    Status codes are read from ``httpx.HTTPStatusError`` responses or from a
    ``status_code`` attribute (LiteLLM and OpenAI style exceptions). Timeouts
    and transport failures are transient. Anything unrecognised is fatal.
    """
    if isinstance(e, PipelineError):
        return e

    status_code: int | None = None
    if isinstance(e, httpx.HTTPStatusError):
        status_code = e.response.status_code
    elif isinstance(getattr(e, "status_code", None), int):
        status_code = e.status_code  # type: ignore[attr-defined]

    if status_code is not None:
        kind = kind_for_status(status_code)
        error = _ERRORS_BY_KIND[kind](f"Service responded with {status_code}: {e}")
    elif isinstance(e, TimeoutError | httpx.TimeoutException):
        error = TransientServiceError(f"Request timeout: {e}")
    elif isinstance(e, ConnectionError | httpx.TransportError):
        error = TransientServiceError(f"Connection failed: {e}")
    else:
        error = FatalServiceError(f"Service call failed: {type(e).__name__}: {e}")

    error.__cause__ = e
    return error


@dataclass(frozen=True)
class RetryEvent:
    """One scheduled retry."""

    label: str
    attempt: int
    kind: ErrorKind
    delay: float
    error: str


@dataclass
class RetryPolicy:
    """Retry rate-limited and transient failures of one operation.

    The delay before retry ``n`` (zero based) is ``initial_delay * 2**n`` plus
    a uniform jitter of up to half that base, capped at ``max_delay``. Fatal
    errors and errors left over after ``max_retries`` retries propagate to
    the caller.
    """

    max_retries: int = 10
    initial_delay: float = 1.0
    max_delay: float = 60.0
    attempt_timeout: float | None = None
    on_retry: Callable[[RetryEvent], None] | None = None
    rng: random.Random = field(default_factory=random.Random)
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep

    def base_delay(self, attempt: int) -> float:
        """Delay before retry ``attempt`` without jitter."""
        return min(self.initial_delay * 2**attempt, self.max_delay)

    def compute_delay(self, attempt: int) -> float:
        base = self.initial_delay * 2**attempt
        jitter = self.rng.uniform(0, 0.5 * base)
        return min(base + jitter, self.max_delay)

    def _wait(self, retry_state: RetryCallState) -> float:
        return self.compute_delay(retry_state.attempt_number - 1)

    def _before_sleep(self, label: str, retry_state: RetryCallState) -> None:
        error = retry_state.outcome.exception() if retry_state.outcome else None
        kind = error.kind if isinstance(error, PipelineError) else ErrorKind.TRANSIENT
        delay = retry_state.next_action.sleep if retry_state.next_action else 0.0
        event = RetryEvent(
            label=label,
            attempt=retry_state.attempt_number,
            kind=kind,
            delay=round(delay, 3),
            error=str(error),
        )

        logger.info(
            "Retrying external call",
            label=label,
            attempt=event.attempt,
            kind=kind.value,
            delay_seconds=event.delay,
            error=event.error,
        )
        if self.on_retry is not None:
            self.on_retry(event)

    async def _attempt(self, operation: Callable[[], Awaitable[T]]) -> T:
        try:
            async with asyncio.timeout(self.attempt_timeout):
                return await operation()
        except PipelineError:
            raise
        except TimeoutError as e:
            raise TransientServiceError(f"Attempt timed out after {self.attempt_timeout}s") from e
        except Exception as e:
            raise convert_exception(e) from e

    async def run(self, operation: Callable[[], Awaitable[T]], *, label: str = "") -> T:
        """Run ``operation`` until it succeeds, fails fatally, or retries run out.

        Args:
            operation: Zero-argument callable producing a fresh awaitable per attempt
            label: Name used in retry logs and events

        Raises:
            PipelineError: The last classified failure
        """
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.max_retries + 1),
            wait=self._wait,
            retry=retry_if_exception(lambda e: isinstance(e, PipelineError) and e.kind.retryable),
            before_sleep=lambda retry_state: self._before_sleep(label, retry_state),
            sleep=self.sleep,
            reraise=True,
        )

        async for attempt in retrying:
            with attempt:
                return await self._attempt(operation)

        raise AssertionError("unreachable")  # pragma: no cover
