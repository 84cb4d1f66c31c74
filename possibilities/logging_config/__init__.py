"""Structured Logging & Request Tracing.

Provides structured JSON logging, request ID propagation across
concurrent provider calls, and performance timing.
"""

from possibilities.logging_config.config import LogFormat, LoggingConfig, LogLevel
from possibilities.logging_config.context import (
    RequestContext,
    generate_request_id,
    get_context_dict,
    get_request_id,
)
from possibilities.logging_config.performance import PerformanceTimer, log_performance
from possibilities.logging_config.setup import (
    ConsoleFormatter,
    StructuredFormatter,
    configure_logging,
    get_logger,
)

__all__ = [
    "LogFormat",
    "LogLevel",
    "LoggingConfig",
    "RequestContext",
    "generate_request_id",
    "get_context_dict",
    "get_request_id",
    "PerformanceTimer",
    "log_performance",
    "ConsoleFormatter",
    "StructuredFormatter",
    "configure_logging",
    "get_logger",
]
