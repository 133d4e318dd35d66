"""OmniDB structured logging.

Classes:
    StructuredLogger: Main structured logging interface
    PerformanceLogger: Operation timing and metrics
    LoggerFactory: Logger creation and configuration

Example:
    >>> from omnidb.logging import get_logger, get_performance_logger
    >>> logger = get_logger(__name__)
    >>> logger.info("Operation started", operation="GET_TABLES")
    >>>
    >>> perf_logger = get_performance_logger("connector.mysql")
    >>> with perf_logger.measure("EXECUTE_QUERY"):
    ...     pass
"""

from .factory import (
    LoggerConfig,
    LoggerFactory,
    configure_logging,
    get_factory,
    get_logger,
    get_performance_logger,
    redact_event,
)
from .performance import PerformanceLogger, PerformanceMetrics, TimingContext
from .structured import LogContext, StructuredLogger

__all__ = [
    # Factory and configuration
    "LoggerConfig",
    "LoggerFactory",
    "configure_logging",
    "get_factory",
    "get_logger",
    "get_performance_logger",
    "redact_event",

    # Performance logging
    "PerformanceLogger",
    "PerformanceMetrics",
    "TimingContext",

    # Structured logging
    "LogContext",
    "StructuredLogger",
]
