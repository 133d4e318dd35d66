"""Utility functions shared by every OmniDB connector.

Functions:
    sanitize_identifier: Allow-list check for names interpolated into SQL
    validate_statement: Pattern-based rejection of comment-stacking tricks
    validate_pagination: Range checks for page and page size
    compute_offset: Row offset for a 1-based page
    normalize_sort_direction: ASC/DESC normalisation, anything else ignored
    measure_time: Context manager for measuring execution time

Example:
    >>> table = sanitize_identifier("users", what="table")
    >>> offset = compute_offset(page=2, page_size=10)
    >>> with measure_time() as timer:
    ...     pass
    >>> timer.elapsed_ms
"""

import re
import time
from contextlib import contextmanager
from typing import Any, Generator, Optional, Sequence

import structlog

from .exceptions import Operation, StructuredError
from .redaction import mask_mapping, redact_secrets, summarize_statement

logger = structlog.get_logger(__name__)

__all__ = [
    "IDENTIFIER_PATTERN",
    "MAX_PAGE_SIZE",
    "FORBIDDEN_FRAGMENTS",
    "sanitize_identifier",
    "validate_statement",
    "validate_pagination",
    "compute_offset",
    "normalize_sort_direction",
    "TimerContext",
    "measure_time",
    "redact_secrets",
    "summarize_statement",
    "mask_mapping",
]

IDENTIFIER_PATTERN = re.compile(r"^[A-Za-z0-9_]+$")

MAX_PAGE_SIZE = 10000

FORBIDDEN_FRAGMENTS = (";--", "/*", "*/")

SORT_DIRECTIONS = ("ASC", "DESC")


def sanitize_identifier(
    name: Optional[str],
    *,
    what: str = "identifier",
    operation: Operation = Operation.UNKNOWN,
) -> str:
    """Validate a database, table or column name before interpolation.

    The name is accepted only when it consists entirely of ASCII letters,
    digits and underscores. Nothing is stripped or rewritten: a name that
    would need changing is rejected.

    Args:
        name: Name supplied by the caller
        what: Kind of name, used in the error message
        operation: Operation tag for the raised error

    Returns:
        The unchanged name

    Raises:
        StructuredError: VALIDATION if the name is empty or contains
            anything outside ``[A-Za-z0-9_]``
    """
    if name is None or not str(name):
        raise StructuredError.validation(
            f"{what.capitalize()} name must not be empty",
            operation=operation,
            context={"what": what},
        )

    if not IDENTIFIER_PATTERN.match(str(name)):
        raise StructuredError.validation(
            f"Invalid {what} name: only letters, digits and underscores are allowed",
            operation=operation,
            context={"what": what, "value": summarize_statement(name, 64)},
        )

    return str(name)


def validate_statement(
    statement: Optional[str],
    *,
    operation: Operation = Operation.UNKNOWN,
    fragments: Sequence[str] = FORBIDDEN_FRAGMENTS,
) -> str:
    """Reject empty statements and stacked-comment fragments.

    Caller SQL is otherwise passed through verbatim.

    Args:
        statement: Caller-supplied statement text
        operation: Operation tag for the raised error
        fragments: Substrings that reject the statement

    Returns:
        The statement with surrounding whitespace removed

    Raises:
        StructuredError: VALIDATION for empty or suspicious statements
    """
    if statement is None or not statement.strip():
        raise StructuredError.validation("Statement must not be empty", operation=operation)

    for fragment in fragments:
        if fragment in statement:
            raise StructuredError.validation(
                f"Statement contains a forbidden fragment: {fragment!r}",
                operation=operation,
                context={"statement": summarize_statement(statement)},
            )

    return statement.strip()


def validate_pagination(
    page: Any,
    page_size: Any,
    *,
    operation: Operation = Operation.GET_TABLE_DATA,
) -> None:
    """Check that ``page >= 1`` and ``1 <= page_size <= MAX_PAGE_SIZE``.

    Raises:
        StructuredError: VALIDATION if either value is out of range
    """
    if isinstance(page, bool) or not isinstance(page, int) or page < 1:
        raise StructuredError.validation(
            f"Page must be an integer >= 1, got {page!r}",
            operation=operation,
        )
    if isinstance(page_size, bool) or not isinstance(page_size, int) or not 1 <= page_size <= MAX_PAGE_SIZE:
        raise StructuredError.validation(
            f"Page size must be an integer between 1 and {MAX_PAGE_SIZE}, got {page_size!r}",
            operation=operation,
        )


def compute_offset(page: int, page_size: int) -> int:
    """Return the zero-based row offset of a 1-based page."""
    validate_pagination(page, page_size)
    return (page - 1) * page_size


def normalize_sort_direction(direction: Optional[str]) -> Optional[str]:
    """Return ``"ASC"``/``"DESC"``, or None when the value is anything else."""
    if not direction:
        return None
    normalized = str(direction).strip().upper()
    if normalized not in SORT_DIRECTIONS:
        logger.debug("Ignoring unknown sort direction", direction=redact_secrets(direction))
        return None
    return normalized


class TimerContext:
    """Context manager measuring wall time with ``time.perf_counter``."""

    def __init__(self) -> None:
        self.start_time: Optional[float] = None
        self.end_time: Optional[float] = None

    @property
    def duration(self) -> Optional[float]:
        """Elapsed seconds, live while the block is still running."""
        if self.start_time is None:
            return None
        end = self.end_time if self.end_time is not None else time.perf_counter()
        return end - self.start_time

    @property
    def elapsed_ms(self) -> int:
        """Elapsed whole milliseconds."""
        duration = self.duration
        return int(round(duration * 1000)) if duration is not None else 0

    def __enter__(self) -> "TimerContext":
        self.start_time = time.perf_counter()
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.end_time = time.perf_counter()


@contextmanager
def measure_time() -> Generator[TimerContext, None, None]:
    """Context manager for measuring execution time.

    Example:
        >>> with measure_time() as timer:
        ...     rows = await cursor.fetchall()
        >>> timer.elapsed_ms
    """
    with TimerContext() as timer:
        yield timer
