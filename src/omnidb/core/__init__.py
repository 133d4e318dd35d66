"""OmniDB core infrastructure.

This package provides the error model, shared validation helpers and the
collaborator protocols used by every connector.

Modules:
    exceptions: StructuredError, ErrorKind and Operation tags
    protocols: ProfileResolver and PoolHandle contracts
    redaction: Credential scrubbing for diagnostic text
    utils: Identifier, statement and pagination helpers

Example:
    >>> from omnidb.core import StructuredError, ErrorKind, sanitize_identifier
    >>> from omnidb.core.utils import measure_time
"""

from .engines import DialectFamily, EngineType
from .exceptions import ErrorKind, Operation, StructuredError, wrap_exception
from .protocols import PoolHandle, ProfileResolver
from .redaction import redact_secrets, summarize_statement
from .utils import (
    MAX_PAGE_SIZE,
    compute_offset,
    measure_time,
    normalize_sort_direction,
    sanitize_identifier,
    validate_pagination,
    validate_statement,
)

__all__ = [
    # Engines
    "DialectFamily",
    "EngineType",

    # Errors
    "ErrorKind",
    "Operation",
    "StructuredError",
    "wrap_exception",

    # Protocols
    "PoolHandle",
    "ProfileResolver",

    # Helpers
    "MAX_PAGE_SIZE",
    "compute_offset",
    "measure_time",
    "normalize_sort_direction",
    "redact_secrets",
    "sanitize_identifier",
    "summarize_statement",
    "validate_pagination",
    "validate_statement",
]
