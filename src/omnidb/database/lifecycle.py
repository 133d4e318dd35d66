# src/omnidb/database/lifecycle.py
"""Connection-lifecycle manager.

Holds the only long-lived mutable state in OmniDB: the map from
configuration id to pool handle. Pools are created strictly on request and
only after a successful connectivity probe.

State per configuration id::

    ABSENT --create--> PROBING --ok--> ACTIVE --close--> ABSENT
                          |
                          +--probe failed--> FAILED (logged) --> ABSENT
"""

import asyncio
from contextlib import asynccontextmanager
from enum import Enum
from typing import AsyncIterator, Dict, List, Optional, Set

from ..config.models import ConnectionProfile
from ..core.exceptions import Operation, StructuredError, wrap_exception
from ..core.protocols import PoolHandle
from ..core.redaction import redact_secrets
from ..logging import get_logger
from .registry import ConnectorRegistry


class PoolState(str, Enum):
    ABSENT = "absent"
    PROBING = "probing"
    ACTIVE = "active"
    FAILED = "failed"


class ConnectionLifecycleManager:
    """Creates, caches and tears down per-configuration pools.

    Create-if-absent is serialised per configuration id, so two concurrent
    ``create_pool`` calls for one id allocate a single handle while different
    ids probe in parallel.
    """

    def __init__(self, registry: ConnectorRegistry) -> None:
        self.registry = registry
        self.logger = get_logger("omnidb.lifecycle")
        self._pools: Dict[str, PoolHandle] = {}
        self._probing: Set[str] = set()
        self._locks: Dict[str, asyncio.Lock] = {}
        self._lock_users: Dict[str, int] = {}

    @asynccontextmanager
    async def _serialized(self, config_id: str) -> AsyncIterator[None]:
        """Hold the per-id lock; the lock is dropped once nobody holds or awaits it."""
        lock = self._locks.get(config_id)
        if lock is None:
            lock = self._locks[config_id] = asyncio.Lock()
        self._lock_users[config_id] = self._lock_users.get(config_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[config_id] -= 1
            if not self._lock_users[config_id]:
                del self._lock_users[config_id]
                del self._locks[config_id]

    def state(self, config_id: str) -> PoolState:
        if config_id in self._pools:
            return PoolState.ACTIVE
        if config_id in self._probing:
            return PoolState.PROBING
        return PoolState.ABSENT

    async def create_pool(self, config_id: str, profile: ConnectionProfile) -> PoolHandle:
        """Create and store a pool for ``config_id`` unless one is already active.

        Returns:
            The new handle, or the existing one when the id is already ACTIVE

        Raises:
            StructuredError: CONNECTION if the probe fails (nothing is stored),
                UNSUPPORTED_ENGINE if no connector serves the profile's engine
        """
        config_id = str(config_id)
        async with self._serialized(config_id):
            existing = self._pools.get(config_id)
            if existing is not None:
                self.logger.warning("Pool already active, keeping existing pool", config_id=config_id)
                return existing

            connector = self.registry.resolve(profile.engine_type)
            self._probing.add(config_id)
            self.logger.info("Creating pool", config_id=config_id, state=PoolState.PROBING.value,
                             target=profile.describe())
            try:
                if not await connector.test_connection(profile):
                    raise StructuredError.connection(
                        f"Connectivity probe failed for {profile.describe()}",
                        operation=Operation.CREATE_POOL,
                        context={"config_id": config_id},
                    )
                handle = await connector.open_pool(profile)
            except Exception as e:
                error = wrap_exception(e, Operation.CREATE_POOL, context={"config_id": config_id})
                self.logger.warning("Pool creation failed", config_id=config_id,
                                    state=PoolState.FAILED.value, kind=error.kind.value, error=error.message)
                if error is e:
                    raise
                raise error from e
            finally:
                self._probing.discard(config_id)

            self._pools[config_id] = handle
            self.logger.info("Pool active", config_id=config_id, state=PoolState.ACTIVE.value)
            return handle

    def get_pool(self, config_id: str) -> Optional[PoolHandle]:
        """Return the stored handle, or None when the id has no pool yet."""
        return self._pools.get(str(config_id))

    def has_pool(self, config_id: str) -> bool:
        return str(config_id) in self._pools

    def pool_count(self) -> int:
        return len(self._pools)

    def pool_ids(self) -> List[str]:
        return sorted(self._pools)

    async def close_pool(self, config_id: str) -> bool:
        """Remove and close the pool for ``config_id``; no-op when absent.

        Returns:
            True if a pool was closed
        """
        config_id = str(config_id)
        async with self._serialized(config_id):
            handle = self._pools.pop(config_id, None)
            if handle is None:
                return False
            try:
                await handle.close()
            except Exception as e:
                raise wrap_exception(e, Operation.CLOSE_POOL, context={"config_id": config_id}) from e
            self.logger.info("Pool closed", config_id=config_id, state=PoolState.ABSENT.value)
            return True

    async def close_all(self) -> None:
        """Close every pool; one failing close does not stop the others."""
        for config_id in list(self._pools):
            try:
                await self.close_pool(config_id)
            except Exception as e:
                self._pools.pop(config_id, None)
                self.logger.warning("Failed to close pool", config_id=config_id, error=redact_secrets(e))
        self._pools.clear()
        self.logger.info("All pools closed")

    async def health_sweep(self) -> List[str]:
        """Check every stored pool and drop the defunct ones. No repair is attempted.

        Returns:
            Ids of the dropped pools
        """
        dropped = []
        for config_id, handle in list(self._pools.items()):
            try:
                await handle.check_health()
            except Exception as e:
                self.logger.warning("Pool health check raised", config_id=config_id, error=redact_secrets(e))
            if not handle.is_defunct:
                continue

            async with self._serialized(config_id):
                if self._pools.get(config_id) is not handle:
                    continue
                del self._pools[config_id]
            try:
                await handle.close()
            except Exception as e:
                self.logger.debug("Error closing defunct pool", config_id=config_id, error=redact_secrets(e))
            self.logger.warning("Dropped defunct pool", config_id=config_id)
            dropped.append(config_id)
        return dropped
