"""OmniDB error model.

Every failure that crosses a connector, registry, lifecycle or facade
boundary is a :class:`StructuredError`. The error carries a closed
:class:`ErrorKind` discriminator chosen when the error is raised, the
:class:`Operation` that was running, optional context, and the original
driver exception as ``cause``.

Example:
    >>> try:
    ...     await connector.execute_query(profile, "SELECT * FROM users")
    ... except StructuredError as e:
    ...     if e.retryable:
    ...         schedule_retry()
    ...     logger.error("Query failed", kind=e.kind.value, operation=e.operation.value)
"""

import asyncio
from enum import Enum
from typing import Any, Dict, Optional

from .redaction import redact_secrets


class ErrorKind(str, Enum):
    """Closed set of error kinds surfaced to callers."""

    VALIDATION = "VALIDATION"
    CONNECTION = "CONNECTION"
    SQL_EXECUTION = "SQL_EXECUTION"
    NOT_FOUND = "NOT_FOUND"
    TIMEOUT = "TIMEOUT"
    UNSUPPORTED_ENGINE = "UNSUPPORTED_ENGINE"
    INTERNAL = "INTERNAL"

    @property
    def retryable(self) -> bool:
        """Return True for kinds a caller may retry."""
        return self in (ErrorKind.CONNECTION, ErrorKind.TIMEOUT)


class Operation(str, Enum):
    """Operation tags attached to every error for observability."""

    TEST_CONNECTION = "TEST_CONNECTION"
    EXECUTE_QUERY = "EXECUTE_QUERY"
    EXECUTE_MUTATION = "EXECUTE_MUTATION"
    GET_DATABASES = "GET_DATABASES"
    GET_TABLES = "GET_TABLES"
    GET_TABLE_INFO = "GET_TABLE_INFO"
    GET_TABLE_DATA = "GET_TABLE_DATA"
    CREATE_POOL = "CREATE_POOL"
    CLOSE_POOL = "CLOSE_POOL"
    HEALTH_CHECK = "HEALTH_CHECK"
    RESOLVE_CONNECTOR = "RESOLVE_CONNECTOR"
    RESOLVE_PROFILE = "RESOLVE_PROFILE"
    SHUTDOWN = "SHUTDOWN"
    UNKNOWN = "UNKNOWN"


class StructuredError(Exception):
    """Error raised by every OmniDB component.

    Attributes:
        kind: Error kind, fixed at construction
        message: Redacted human-readable description
        operation: Operation that was running when the error happened
        context: Additional diagnostic information
        cause: Original exception (driver error, timeout, ...)

    Example:
        >>> raise StructuredError(
        ...     ErrorKind.NOT_FOUND,
        ...     "Table does not exist: users",
        ...     operation=Operation.GET_TABLE_INFO,
        ...     context={"database": "testdb", "table": "users"},
        ... )
    """

    def __init__(
        self,
        kind: ErrorKind,
        message: str,
        *,
        operation: Operation = Operation.UNKNOWN,
        context: Optional[Dict[str, Any]] = None,
        cause: Optional[BaseException] = None,
    ) -> None:
        """Initialize structured error.

        Args:
            kind: Error kind
            message: Error description, credentials are scrubbed before storing
            operation: Operation tag
            context: Additional context information
            cause: Original exception that caused this error
        """
        self.kind: ErrorKind = kind
        self.message: str = redact_secrets(message)
        self.operation: Operation = operation
        self.context: Dict[str, Any] = context or {}
        self.cause: Optional[BaseException] = cause
        super().__init__(self.message)

    def __str__(self) -> str:
        """Return formatted error message with kind and operation."""
        return f"{self.kind.value} [{self.operation.value}]: {self.message}"

    def __repr__(self) -> str:
        """Return detailed representation of the error."""
        return (
            f"{self.__class__.__name__}("
            f"kind={self.kind.value!r}, "
            f"operation={self.operation.value!r}, "
            f"message={self.message!r}, "
            f"context={self.context!r}, "
            f"cause={self.cause!r})"
        )

    @property
    def retryable(self) -> bool:
        """Return True if the caller may retry the operation."""
        return self.kind.retryable

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to dictionary for serialization.

        Returns:
            Dictionary representation of the error
        """
        return {
            "kind": self.kind.value,
            "operation": self.operation.value,
            "message": self.message,
            "retryable": self.retryable,
            "context": self.context,
            "cause": redact_secrets(str(self.cause)) if self.cause else None,
        }

    @classmethod
    def validation(cls, message: str, **kwargs: Any) -> "StructuredError":
        return cls(ErrorKind.VALIDATION, message, **kwargs)

    @classmethod
    def connection(cls, message: str, **kwargs: Any) -> "StructuredError":
        return cls(ErrorKind.CONNECTION, message, **kwargs)

    @classmethod
    def sql_execution(cls, message: str, **kwargs: Any) -> "StructuredError":
        return cls(ErrorKind.SQL_EXECUTION, message, **kwargs)

    @classmethod
    def not_found(cls, message: str, **kwargs: Any) -> "StructuredError":
        return cls(ErrorKind.NOT_FOUND, message, **kwargs)

    @classmethod
    def timeout(cls, message: str, **kwargs: Any) -> "StructuredError":
        return cls(ErrorKind.TIMEOUT, message, **kwargs)

    @classmethod
    def unsupported_engine(cls, message: str, **kwargs: Any) -> "StructuredError":
        return cls(ErrorKind.UNSUPPORTED_ENGINE, message, **kwargs)

    @classmethod
    def internal(cls, message: str, **kwargs: Any) -> "StructuredError":
        return cls(ErrorKind.INTERNAL, message, **kwargs)


def wrap_exception(
    exc: BaseException,
    operation: Operation = Operation.UNKNOWN,
    *,
    message: Optional[str] = None,
    kind: Optional[ErrorKind] = None,
    context: Optional[Dict[str, Any]] = None,
) -> StructuredError:
    """Create a structured error from a generic exception.

    Structured errors pass through untouched. Other exceptions are mapped to
    a kind by type unless ``kind`` is given explicitly.

    Args:
        exc: Original exception to convert
        operation: Operation tag
        message: Override message (uses the original if not provided)
        kind: Explicit kind, skipping type-based mapping
        context: Additional context information

    Returns:
        StructuredError wrapping ``exc``

    Example:
        >>> try:
        ...     await driver.connect()
        ... except OSError as e:
        ...     raise wrap_exception(e, Operation.TEST_CONNECTION) from e
    """
    if isinstance(exc, StructuredError):
        return exc

    if kind is None:
        # TimeoutError is a subclass of OSError; check it first
        if isinstance(exc, (asyncio.TimeoutError, TimeoutError)):
            kind = ErrorKind.TIMEOUT
        elif isinstance(exc, (ConnectionError, OSError)):
            kind = ErrorKind.CONNECTION
        elif isinstance(exc, (ValueError, TypeError)):
            kind = ErrorKind.VALIDATION
        else:
            kind = ErrorKind.INTERNAL

    error_message = message or str(exc) or exc.__class__.__name__
    return StructuredError(
        kind,
        error_message,
        operation=operation,
        context=context,
        cause=exc,
    )
