# ABOUTME: Logging configuration and structured logger helpers
# ABOUTME: Provides loguru sinks and structlog loggers for the pipeline

from .config import LoggingMode, configure_logging, get_logging_status, suppress_library_output
from .utils import LogContext, get_logger, log_api_call, log_stage, with_run_context

__all__ = [
    # Configuration
    "LoggingMode",
    "configure_logging",
    "get_logging_status",
    "suppress_library_output",
    # Utilities
    "LogContext",
    "get_logger",
    "log_api_call",
    "log_stage",
    "with_run_context",
]
