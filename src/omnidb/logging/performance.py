"""Performance logging for OmniDB operations.

Connector operations run inside :meth:`PerformanceLogger.measure`, which
times the block with ``time.perf_counter``, logs the outcome and keeps
aggregated per-operation metrics.

Classes:
    TimingMetrics: A single timing measurement
    PerformanceMetrics: Aggregated metrics for one operation name
    TimingContext: Context manager for operation timing
    PerformanceLogger: Main performance logging interface

Example:
    >>> perf_logger = PerformanceLogger("connector.mysql")
    >>> with perf_logger.measure("EXECUTE_QUERY", config_id="42") as timer:
    ...     rows = await cursor.fetchall()
    >>> timer.duration_ms
    12.7
"""

import statistics
import time
from collections import defaultdict
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Dict, Generator, List, Optional

from ..core.redaction import redact_secrets
from .structured import StructuredLogger


@dataclass
class TimingMetrics:
    """Metrics for a single timing measurement."""

    operation: str
    start_time: float
    end_time: Optional[float] = None
    duration: Optional[float] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    success: bool = True
    error: Optional[str] = None

    def complete(self, success: bool = True, error: Optional[str] = None) -> None:
        """Stop the clock and record the outcome.

        Args:
            success: Whether the measured block finished without raising
            error: Redacted error text for a failed block
        """
        self.end_time = time.perf_counter()
        self.duration = self.end_time - self.start_time
        self.success = success
        self.error = error

    @property
    def duration_ms(self) -> Optional[float]:
        """Duration in milliseconds.

        Returns:
            Elapsed milliseconds, or None while the timing is still running
        """
        return self.duration * 1000 if self.duration is not None else None

    @property
    def is_complete(self) -> bool:
        """True once :meth:`complete` has been called."""
        return self.end_time is not None


@dataclass
class PerformanceMetrics:
    """Aggregated performance metrics for an operation.

    Attributes:
        operation: Operation name
        total_calls: Total number of calls
        successful_calls: Number of successful calls
        failed_calls: Number of failed calls
        total_duration: Total duration in seconds
        min_duration: Minimum duration
        max_duration: Maximum duration
        avg_duration: Average duration
        median_duration: Median duration
    """

    operation: str
    total_calls: int = 0
    successful_calls: int = 0
    failed_calls: int = 0
    total_duration: float = 0.0
    min_duration: Optional[float] = None
    max_duration: Optional[float] = None
    avg_duration: Optional[float] = None
    median_duration: Optional[float] = None
    _durations: List[float] = field(default_factory=list, repr=False)

    def add_timing(self, timing: TimingMetrics) -> None:
        """Fold one completed timing into the aggregate.

        Incomplete timings are ignored.

        Args:
            timing: Measurement for this operation
        """
        if not timing.is_complete or timing.duration is None:
            return

        self.total_calls += 1
        if timing.success:
            self.successful_calls += 1
        else:
            self.failed_calls += 1

        duration = timing.duration
        self.total_duration += duration
        self._durations.append(duration)

        if self.min_duration is None or duration < self.min_duration:
            self.min_duration = duration
        if self.max_duration is None or duration > self.max_duration:
            self.max_duration = duration

        self.avg_duration = statistics.mean(self._durations)
        self.median_duration = statistics.median(self._durations)

    @property
    def success_rate(self) -> float:
        """Success rate as a percentage (0-100)."""
        if self.total_calls == 0:
            return 0.0
        return (self.successful_calls / self.total_calls) * 100

    def to_dict(self) -> Dict[str, Any]:
        """Serialise the aggregate for ``get_summary()`` reports.

        Returns:
            Plain dictionary of counters and durations in seconds
        """
        return {
            "operation": self.operation,
            "total_calls": self.total_calls,
            "successful_calls": self.successful_calls,
            "failed_calls": self.failed_calls,
            "success_rate": self.success_rate,
            "total_duration": self.total_duration,
            "min_duration": self.min_duration,
            "max_duration": self.max_duration,
            "avg_duration": self.avg_duration,
            "median_duration": self.median_duration,
        }


class TimingContext:
    """Context manager for measuring operation timing.

    Example:
        >>> with TimingContext("GET_TABLES") as timer:
        ...     tables = await connector.list_tables(profile, "sales")
        >>> print(f"Listing took {timer.duration_ms:.2f}ms")
    """

    def __init__(
        self,
        operation: str,
        logger: Optional[StructuredLogger] = None,
        metadata: Optional[Dict[str, Any]] = None,
        auto_log: bool = True,
    ) -> None:
        """Initialize timing context.

        Args:
            operation: Operation name recorded with the timing
            logger: Logger for the completion event, if any
            metadata: Extra fields logged with the outcome
            auto_log: Log the outcome when the block exits
        """
        self.operation = operation
        self.logger = logger
        self.metadata = metadata or {}
        self.auto_log = auto_log
        self._timing: Optional[TimingMetrics] = None

    @property
    def timing(self) -> Optional[TimingMetrics]:
        """The measurement, or None before the block is entered."""
        return self._timing

    @property
    def duration(self) -> Optional[float]:
        """Elapsed seconds once the block has exited."""
        return self._timing.duration if self._timing else None

    @property
    def duration_ms(self) -> Optional[float]:
        return self._timing.duration_ms if self._timing else None

    def __enter__(self) -> "TimingContext":
        self._timing = TimingMetrics(
            operation=self.operation,
            start_time=time.perf_counter(),
            metadata=self.metadata,
        )
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        if self._timing is None:
            return

        success = exc_type is None
        error = redact_secrets(exc_val) if exc_val else None
        self._timing.complete(success=success, error=error)

        if self.logger and self.auto_log:
            if success:
                self.logger.debug(
                    "Operation completed",
                    operation=self.operation,
                    duration_ms=self._timing.duration_ms,
                    success=True,
                    **self.metadata,
                )
            else:
                self.logger.warning(
                    "Operation failed",
                    operation=self.operation,
                    duration_ms=self._timing.duration_ms,
                    success=False,
                    error=error,
                    error_type=exc_type.__name__,
                    **self.metadata,
                )


class PerformanceLogger:
    """Performance logger for monitoring connector operations.

    Attributes:
        name: Logger name
        logger: Underlying structured logger

    Example:
        >>> perf_logger = PerformanceLogger("connector.postgresql")
        >>> with perf_logger.measure("GET_DATABASES"):
        ...     names = await conn.fetch("SELECT datname FROM pg_database")
        >>> perf_logger.get_metrics("GET_DATABASES").total_calls
        1
    """

    def __init__(
        self,
        name: str,
        *,
        auto_log: bool = True,
        track_metrics: bool = True,
        logger: Optional[StructuredLogger] = None,
    ) -> None:
        """Initialize performance logger.

        Args:
            name: Logger name, usually ``connector.<engine>``
            auto_log: Log every measured block
            track_metrics: Keep aggregated per-operation metrics
            logger: Structured logger to write to; defaults to ``perf.<name>``
        """
        self.name = name
        self.auto_log = auto_log
        self.track_metrics = track_metrics
        self.logger = logger or StructuredLogger(f"perf.{name}")
        self._metrics: Dict[str, PerformanceMetrics] = defaultdict(
            lambda: PerformanceMetrics(operation="unknown")
        )

    @contextmanager
    def measure(self, operation: str, **metadata: Any) -> Generator[TimingContext, None, None]:
        """Context manager for measuring operation performance.

        Args:
            operation: Operation name
            **metadata: Additional metadata logged with the timing

        Yields:
            TimingContext for the operation
        """
        timing_context = TimingContext(
            operation=operation,
            logger=self.logger if self.auto_log else None,
            metadata=metadata,
            auto_log=self.auto_log,
        )

        try:
            with timing_context as ctx:
                yield ctx
        finally:
            if self.track_metrics and timing_context.timing:
                self._add_timing_to_metrics(timing_context.timing)

    def _add_timing_to_metrics(self, timing: TimingMetrics) -> None:
        metrics = self._metrics[timing.operation]
        if metrics.operation == "unknown":
            metrics.operation = timing.operation
        metrics.add_timing(timing)

    def get_metrics(self, operation: str) -> PerformanceMetrics:
        """Return aggregated metrics for one operation name.

        Args:
            operation: Operation name passed to :meth:`measure`

        Returns:
            The aggregate, or an empty one when the operation was never measured
        """
        metrics = self._metrics.get(operation)
        return metrics if metrics is not None else PerformanceMetrics(operation=operation)

    def get_summary(self) -> Dict[str, Any]:
        """Return metrics for every measured operation.

        Returns:
            Mapping of operation name to :meth:`PerformanceMetrics.to_dict` output
        """
        return {name: metrics.to_dict() for name, metrics in self._metrics.items()}

    def reset_metrics(self) -> None:
        """Forget every aggregated metric."""
        self._metrics.clear()

    def __repr__(self) -> str:
        return f"PerformanceLogger(name={self.name!r}, operations={len(self._metrics)})"
