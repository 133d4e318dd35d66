"""Structured logging implementation for OmniDB.

This module wraps structlog with context management so that every event a
connector emits carries the engine, configuration id and operation it
belongs to. Credential-looking keys and ``password=`` fragments are masked
before an event reaches structlog.

Classes:
    StructuredLogger: Main structured logging interface
    LogContext: Task-local context for log correlation

Example:
    >>> logger = StructuredLogger("omnidb.connector.mysql")
    >>> with logger.context(config_id="prod_db", operation="GET_TABLES"):
    ...     logger.info("Listing tables", database="sales")
"""

import contextvars
import logging
import time
import uuid
from contextlib import contextmanager
from typing import Any, Dict, Generator, Optional

import structlog

from ..core.redaction import mask_mapping

_log_context: contextvars.ContextVar[Dict[str, Any]] = contextvars.ContextVar(
    "omnidb_log_context", default={}
)


class LogContext:
    """Task-local context for log correlation and metadata.

    Values live in a ``contextvars.ContextVar`` so concurrent asyncio tasks
    never see each other's context.

    Example:
        >>> context = LogContext()
        >>> context.set("config_id", "prod_db")
        >>> context.get_all()
        {'config_id': 'prod_db'}
    """

    def set(self, key: str, value: Any) -> None:
        updated = dict(_log_context.get())
        updated[key] = value
        _log_context.set(updated)

    def get(self, key: str, default: Any = None) -> Any:
        return _log_context.get().get(key, default)

    def get_all(self) -> Dict[str, Any]:
        return dict(_log_context.get())

    def update(self, context: Dict[str, Any]) -> contextvars.Token:
        """Merge values into the context and return a token for ``reset``."""
        updated = dict(_log_context.get())
        updated.update(context)
        return _log_context.set(updated)

    def reset(self, token: contextvars.Token) -> None:
        _log_context.reset(token)

    def clear(self) -> None:
        _log_context.set({})


class StructuredLogger:
    """Structured logger with context management.

    Attributes:
        name: Logger name

    Example:
        >>> logger = StructuredLogger("omnidb.lifecycle")
        >>> logger.info("Pool created", config_id="prod_db", max_size=10)
        >>> db_logger = logger.bind(engine="postgresql")
        >>> db_logger.warning("Probe failed", host="db.internal")
    """

    def __init__(
        self,
        name: str,
        *,
        level: Optional[str] = None,
        bound: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Initialize structured logger.

        Args:
            name: Logger name (typically module name)
            level: Optional stdlib level for the underlying logger
            bound: Values added to every event from this logger
        """
        self.name = name
        self._logger = structlog.get_logger(name)
        self._bound: Dict[str, Any] = dict(bound or {})
        self._context = LogContext()

        self._stdlib_logger = logging.getLogger(name)
        if level:
            self.set_level(level)

    def _prepare_event_dict(self, **kwargs: Any) -> Dict[str, Any]:
        """Merge bound values, task context and event data, masking secrets."""
        event_dict: Dict[str, Any] = {"logger": self.name}
        event_dict.update(self._bound)
        event_dict.update(self._context.get_all())
        event_dict.update(kwargs)
        return mask_mapping(event_dict)

    @contextmanager
    def context(self, **context_data: Any) -> Generator[None, None, None]:
        """Add context data to every event logged inside the block.

        Example:
            >>> with logger.context(config_id="42", operation="EXECUTE_QUERY"):
            ...     logger.info("Executing statement")
        """
        token = self._context.update(context_data)
        try:
            yield
        finally:
            self._context.reset(token)

    def bind(self, **context_data: Any) -> "StructuredLogger":
        """Return a new logger that adds ``context_data`` to every event."""
        bound = dict(self._bound)
        bound.update(context_data)
        return StructuredLogger(self.name, bound=bound)

    def set_level(self, level: str) -> None:
        """Set the stdlib logging level.

        Raises:
            ValueError: If the level name is unknown
        """
        log_level = getattr(logging, str(level).upper(), None)
        if not isinstance(log_level, int):
            raise ValueError(f"Unknown log level: {level}")
        self._stdlib_logger.setLevel(log_level)

    def get_level(self) -> str:
        return logging.getLevelName(self._stdlib_logger.getEffectiveLevel())

    def debug(self, message: str, **kwargs: Any) -> None:
        self._logger.debug(message, **self._prepare_event_dict(**kwargs))

    def info(self, message: str, **kwargs: Any) -> None:
        self._logger.info(message, **self._prepare_event_dict(**kwargs))

    def warning(self, message: str, **kwargs: Any) -> None:
        self._logger.warning(message, **self._prepare_event_dict(**kwargs))

    def error(self, message: str, **kwargs: Any) -> None:
        self._logger.error(message, **self._prepare_event_dict(**kwargs))

    def critical(self, message: str, **kwargs: Any) -> None:
        self._logger.critical(message, **self._prepare_event_dict(**kwargs))

    def exception(self, message: str, **kwargs: Any) -> None:
        """Log an error with the active exception's traceback."""
        self._logger.error(message, exc_info=True, **self._prepare_event_dict(**kwargs))

    def log_operation_start(self, operation: str, **context: Any) -> Dict[str, Any]:
        """Log operation start and return the context for completion logging."""
        operation_context = {
            "operation_id": str(uuid.uuid4()),
            "operation": operation,
            "start_time": time.perf_counter(),
            **context,
        }
        self.debug("Operation started", **operation_context)
        return operation_context

    def log_operation_success(self, operation_context: Dict[str, Any], **results: Any) -> None:
        duration_ms = (time.perf_counter() - operation_context["start_time"]) * 1000
        self.info(
            "Operation completed successfully",
            duration_ms=duration_ms,
            **{k: v for k, v in operation_context.items() if k != "start_time"},
            **results,
        )

    def log_operation_failure(
        self,
        operation_context: Dict[str, Any],
        error: BaseException,
        **error_context: Any,
    ) -> None:
        duration_ms = (time.perf_counter() - operation_context["start_time"]) * 1000
        self.error(
            "Operation failed",
            duration_ms=duration_ms,
            error=str(error),
            error_type=type(error).__name__,
            **{k: v for k, v in operation_context.items() if k != "start_time"},
            **error_context,
        )

    def __repr__(self) -> str:
        return f"StructuredLogger(name={self.name!r}, level={self.get_level()!r})"
