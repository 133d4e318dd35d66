"""Protocol definitions for OmniDB collaborators.

These protocols describe what the core needs from components it does not
own: the configuration store that resolves profiles, and the pooled
connection provider the lifecycle manager stores per configuration id.

Protocols:
    ProfileResolver: Read-only lookup of connection profiles by id
    PoolHandle: Pooled-connection provider owned by the lifecycle manager

Example:
    >>> class DictResolver:
    ...     def __init__(self, profiles):
    ...         self._profiles = profiles
    ...     async def resolve_profile(self, config_id):
    ...         return self._profiles[config_id]
    >>> isinstance(DictResolver({}), ProfileResolver)
    True
"""

from typing import TYPE_CHECKING, Any, AsyncContextManager, Dict, Protocol, runtime_checkable

if TYPE_CHECKING:
    from ..config.models import ConnectionProfile


@runtime_checkable
class ProfileResolver(Protocol):
    """Configuration store contract.

    Implementations raise ``StructuredError`` of kind NOT_FOUND for unknown
    ids. The core never writes through this interface.
    """

    async def resolve_profile(self, config_id: str) -> "ConnectionProfile":
        """Return the profile stored under ``config_id``."""
        ...


@runtime_checkable
class PoolHandle(Protocol):
    """Opaque pooled-connection provider."""

    @property
    def is_defunct(self) -> bool:
        """True once the pool can no longer hand out working connections."""
        ...

    def acquire(self) -> AsyncContextManager[Any]:
        """Borrow a raw driver connection for the duration of a block."""
        ...

    async def check_health(self) -> bool:
        """Probe the pool and update ``is_defunct``."""
        ...

    async def close(self) -> None:
        """Release every connection held by the pool. Idempotent."""
        ...

    def get_stats(self) -> Dict[str, Any]:
        """Return pool statistics for monitoring."""
        ...
