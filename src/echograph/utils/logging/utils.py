# ABOUTME: Logger utilities with context binding and stage tracking decorators
# ABOUTME: Provides get_logger function and decorators for consistent structured logging

import functools
import time
import uuid
from collections.abc import Callable
from typing import Any, TypeVar

import structlog

# Type variable for decorated functions
F = TypeVar("F", bound=Callable[..., Any])


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a logger instance with automatic module detection.

    Args:
        name: Logger name, auto-detected from caller if None

    Returns:
        Configured structlog logger instance
    """
    if name is None:
        import inspect

        frame = inspect.currentframe()
        if frame and frame.f_back:
            name = frame.f_back.f_globals.get("__name__", "unknown")

    return structlog.get_logger(name or "echograph")


def generate_operation_id() -> str:
    """Generate a unique operation ID for tracking requests."""
    return str(uuid.uuid4())[:8]


def _find_url(args: tuple, kwargs: dict) -> str | None:
    for value in (*args, *kwargs.values()):
        if isinstance(value, str) and value.startswith(("http://", "https://")):
            return value
    return None


def log_api_call(api_name: str, **context) -> Callable[[F], F]:
    """Decorator to log calls to an external service.

    Args:
        api_name: Name of the API being called
        **context: Additional context for the API call

    Returns:
        Decorated async function with API call logging
    """

    def decorator(func: F) -> F:
        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            logger = get_logger(func.__module__)
            bound_logger = logger.bind(
                api_name=api_name, call_id=generate_operation_id(), url=_find_url(args, kwargs), **context
            )

            bound_logger.debug(f"API call to {api_name}")
            start_time = time.monotonic()

            try:
                result = await func(*args, **kwargs)
            except Exception as e:
                bound_logger.warning(
                    f"API call to {api_name} failed",
                    duration_seconds=round(time.monotonic() - start_time, 3),
                    error=str(e),
                    error_type=type(e).__name__,
                    success=False,
                )
                raise

            bound_logger.debug(
                f"API call to {api_name} succeeded",
                duration_seconds=round(time.monotonic() - start_time, 3),
                success=True,
            )
            return result

        return wrapper  # type: ignore[return-value]

    return decorator


def log_stage(stage_name: str) -> Callable[[F], F]:
    """Decorator to log one pipeline stage activation.

    The decorated callable returns a state update mapping; the number of items
    it contributes per field is logged on completion.

    Args:
        stage_name: Name of the pipeline stage

    Returns:
        Decorated async function with stage logging
    """

    def decorator(func: F) -> F:
        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            logger = get_logger(func.__module__)
            bound_logger = logger.bind(step=stage_name, pipeline="quote_extraction")

            bound_logger.debug(f"Starting stage: {stage_name}")
            start_time = time.monotonic()

            try:
                result = await func(*args, **kwargs)
            except Exception as e:
                bound_logger.error(
                    f"Failed stage: {stage_name}",
                    duration_seconds=round(time.monotonic() - start_time, 3),
                    error=str(e),
                    error_type=type(e).__name__,
                    success=False,
                )
                raise

            result_info = {}
            if isinstance(result, dict):
                result_info = {f"{key}_count": len(value) for key, value in result.items() if isinstance(value, list)}

            bound_logger.debug(
                f"Completed stage: {stage_name}",
                duration_seconds=round(time.monotonic() - start_time, 3),
                success=True,
                **result_info,
            )
            return result

        return wrapper  # type: ignore[return-value]

    return decorator


class LogContext:
    """Context manager for binding logger context."""

    def __init__(self, logger: structlog.stdlib.BoundLogger, **context):
        self.logger = logger
        self.context = context
        self.bound_logger = None
        self._tokens: dict = {}

    def __enter__(self) -> structlog.stdlib.BoundLogger:
        self._tokens = dict(structlog.contextvars.bind_contextvars(**self.context))
        self.bound_logger = self.logger.bind(**self.context)
        return self.bound_logger

    def __exit__(self, exc_type, exc_val, exc_tb):
        if exc_type is not None and self.bound_logger is not None:
            self.bound_logger.error("Context operation failed", error=str(exc_val), error_type=exc_type.__name__)
        # Restore what an enclosing context bound for the same keys
        structlog.contextvars.reset_contextvars(**self._tokens)


def with_run_context(run_id: str, **context) -> LogContext:
    """Create a logging context for one pipeline run.

    Every log line emitted inside the context, including from stage tasks
    spawned within it, carries the run id.

    Args:
        run_id: Identifier of the run
        **context: Additional context to bind

    Returns:
        LogContext manager with run context
    """
    logger = get_logger()
    return LogContext(logger, run_id=run_id, operation_id=generate_operation_id(), **context)
