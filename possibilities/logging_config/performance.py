"""Performance Logging.

Decorator and context manager for timing generation work and logging
slow operations.
"""

import asyncio
import functools
import logging
import time
from typing import Any, Callable, Optional

from possibilities.logging_config.config import DEFAULT_LOGGING_CONFIG

logger = logging.getLogger(__name__)


def _log_duration(
    _logger: logging.Logger,
    name: str,
    duration_ms: float,
    threshold_ms: float,
    exc: Optional[BaseException] = None,
) -> None:
    extra = {"duration_ms": round(duration_ms, 2)}
    if isinstance(exc, asyncio.CancelledError):
        _logger.info("%s cancelled after %.1fms", name, duration_ms, extra=extra)
    elif exc is not None:
        _logger.error(
            "%s failed after %.1fms: %s", name, duration_ms, type(exc).__name__, extra=extra
        )
    elif duration_ms >= threshold_ms:
        _logger.warning("Slow operation: %s took %.1fms", name, duration_ms, extra=extra)
    else:
        _logger.debug("%s completed in %.1fms", name, duration_ms, extra=extra)


def log_performance(
    threshold_ms: Optional[float] = None,
    logger_name: Optional[str] = None,
) -> Callable:
    """Decorator that logs function execution time.

    Logs all calls at DEBUG, slow calls (above threshold) at WARNING and
    failures at ERROR. Cancellation is logged at INFO.

    Example:
        @log_performance(threshold_ms=5000)
        async def generate_variations(...):
            ...
    """
    if threshold_ms is None:
        threshold_ms = DEFAULT_LOGGING_CONFIG.slow_threshold_ms

    def decorator(func: Callable) -> Callable:
        _logger = logging.getLogger(logger_name or func.__module__)
        func_name = func.__qualname__

        if asyncio.iscoroutinefunction(func):
            @functools.wraps(func)
            async def async_wrapper(*args: Any, **kwargs: Any) -> Any:
                start = time.perf_counter()
                try:
                    result = await func(*args, **kwargs)
                except (Exception, asyncio.CancelledError) as exc:
                    _log_duration(_logger, func_name, (time.perf_counter() - start) * 1000, threshold_ms, exc)
                    raise
                _log_duration(_logger, func_name, (time.perf_counter() - start) * 1000, threshold_ms)
                return result
            return async_wrapper

        @functools.wraps(func)
        def sync_wrapper(*args: Any, **kwargs: Any) -> Any:
            start = time.perf_counter()
            try:
                result = func(*args, **kwargs)
            except Exception as exc:
                _log_duration(_logger, func_name, (time.perf_counter() - start) * 1000, threshold_ms, exc)
                raise
            _log_duration(_logger, func_name, (time.perf_counter() - start) * 1000, threshold_ms)
            return result
        return sync_wrapper

    return decorator


class PerformanceTimer:
    """Context manager for timing code blocks.

    Example:
        with PerformanceTimer("possibility openai_gpt-4o_temp0.7") as timer:
            ...
        timer.duration_ms
    """

    def __init__(self, operation_name: str, threshold_ms: Optional[float] = None):
        self.operation_name = operation_name
        self.threshold_ms = threshold_ms or DEFAULT_LOGGING_CONFIG.slow_threshold_ms
        self.start_time: float = 0
        self.duration_ms: float = 0

    def __enter__(self) -> "PerformanceTimer":
        self.start_time = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.duration_ms = (time.perf_counter() - self.start_time) * 1000
        _log_duration(logger, self.operation_name, self.duration_ms, self.threshold_ms, exc_val)
