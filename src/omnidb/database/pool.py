"""
Connection pool used by the lifecycle manager.

One pool serves one connection profile. Raw driver connections are opened
and closed through the owning connector's hooks, so the pool works the same
way for every engine.
"""

import asyncio
import time
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any, AsyncIterator, Dict, Optional, Set

from ..config.models import ConnectionProfile, PoolConfig
from ..core.exceptions import Operation, StructuredError
from ..core.redaction import redact_secrets
from ..logging import get_logger

if TYPE_CHECKING:
    from .base import BaseConnector


class PooledConnection:
    """Raw connection plus the bookkeeping the pool needs."""

    def __init__(self, connection: Any) -> None:
        self.connection = connection
        self.created_at = time.monotonic()
        self.last_used = self.created_at
        self.use_count = 0
        self.is_in_use = False
        self.connection_id = id(connection)

    def mark_used(self) -> None:
        self.last_used = time.monotonic()
        self.use_count += 1
        self.is_in_use = True

    def mark_returned(self) -> None:
        self.last_used = time.monotonic()
        self.is_in_use = False

    @property
    def age(self) -> float:
        return time.monotonic() - self.created_at

    @property
    def idle_time(self) -> float:
        return time.monotonic() - self.last_used


class ConnectionPool:
    """Async connection pool bound to one connector and one profile.

    Connections are handed out exclusively: a borrowed connection is never
    shared between two concurrent callers. A connection whose block raised
    is discarded instead of being returned.
    """

    def __init__(self, connector: "BaseConnector", profile: ConnectionProfile,
                 config: Optional[PoolConfig] = None) -> None:
        config = config or PoolConfig()
        self.connector = connector
        self.profile = profile
        self.max_size = config.max_size or profile.pool_size
        self.min_size = min(config.min_size, self.max_size)
        self.acquire_timeout = config.acquire_timeout
        self.max_lifetime = config.max_lifetime
        self.idle_timeout = config.idle_timeout

        self._idle: "asyncio.Queue[PooledConnection]" = asyncio.Queue()
        self._connections: Set[PooledConnection] = set()
        self._pending = 0
        self._lock = asyncio.Lock()
        self._closed = False
        self._defunct = False

        self._stats = {
            "total_created": 0,
            "total_closed": 0,
            "total_acquired": 0,
            "total_discarded": 0,
            "total_health_checks": 0,
            "pool_exhausted_count": 0,
        }

        self.logger = get_logger(f"omnidb.pool.{connector.engine.code}").bind(config_id=profile.id)

    @property
    def is_closed(self) -> bool:
        return self._closed

    @property
    def is_defunct(self) -> bool:
        """True once the pool is closed or its last health check failed."""
        return self._closed or self._defunct

    @property
    def size(self) -> int:
        return len(self._connections) + self._pending

    async def initialize(self) -> None:
        """Open ``min_size`` connections.

        Raises:
            StructuredError: CONNECTION (or TIMEOUT) if a connection cannot be opened
        """
        self.logger.info("Initializing connection pool", min_size=self.min_size, max_size=self.max_size)
        try:
            for _ in range(self.min_size):
                pooled = await self._create_connection(Operation.CREATE_POOL)
                self._idle.put_nowait(pooled)
        except Exception:
            await self.close()
            raise
        self.logger.info("Connection pool initialized", initial_connections=self.min_size)

    @asynccontextmanager
    async def acquire(self, operation: Operation = Operation.UNKNOWN) -> AsyncIterator[Any]:
        """Borrow a raw connection for the duration of the block."""
        if self._closed:
            raise StructuredError.connection(
                "Connection pool is closed",
                operation=operation,
                context={"config_id": self.profile.id},
            )

        pooled = await self._get_or_create(operation)
        pooled.mark_used()
        self._stats["total_acquired"] += 1
        try:
            yield pooled.connection
        except BaseException:
            await self._discard(pooled)
            raise
        else:
            await self._release(pooled)

    async def _get_or_create(self, operation: Operation) -> PooledConnection:
        deadline = time.monotonic() + self.acquire_timeout
        while True:
            try:
                pooled = self._idle.get_nowait()
            except asyncio.QueueEmpty:
                pooled = None

            if pooled is not None:
                if self._is_expired(pooled):
                    await self._discard(pooled)
                    continue
                return pooled

            async with self._lock:
                can_create = self.size < self.max_size
                if can_create:
                    self._pending += 1
            if can_create:
                try:
                    return await self._create_connection(operation)
                finally:
                    self._pending -= 1

            self._stats["pool_exhausted_count"] += 1
            remaining = deadline - time.monotonic()
            self.logger.debug("Connection pool exhausted, waiting", size=self.size, max_size=self.max_size)
            try:
                pooled = await asyncio.wait_for(self._idle.get(), timeout=max(remaining, 0))
            except asyncio.TimeoutError as e:
                raise StructuredError.timeout(
                    f"Connection pool exhausted after {self.acquire_timeout}s",
                    operation=operation,
                    context={"config_id": self.profile.id, "max_size": self.max_size},
                    cause=e,
                ) from e
            if self._is_expired(pooled):
                await self._discard(pooled)
                continue
            return pooled

    async def _create_connection(self, operation: Operation) -> PooledConnection:
        raw = await self.connector._connect(self.profile, operation)
        pooled = PooledConnection(raw)
        self._connections.add(pooled)
        self._stats["total_created"] += 1
        self.logger.debug("New connection created", connection_id=pooled.connection_id, size=self.size)
        return pooled

    def _is_expired(self, pooled: PooledConnection) -> bool:
        return pooled.age > self.max_lifetime or pooled.idle_time > self.idle_timeout

    async def _release(self, pooled: PooledConnection) -> None:
        pooled.mark_returned()
        if self._closed or pooled.age > self.max_lifetime:
            await self._discard(pooled)
            return
        self._idle.put_nowait(pooled)

    async def _discard(self, pooled: PooledConnection) -> None:
        if pooled not in self._connections:
            return
        self._connections.discard(pooled)
        self._stats["total_discarded"] += 1
        self._stats["total_closed"] += 1
        await self.connector._safe_close(pooled.connection)
        self.logger.debug("Connection closed", connection_id=pooled.connection_id, use_count=pooled.use_count)

    async def _prune_idle(self) -> int:
        keep = []
        pruned = 0
        while True:
            try:
                pooled = self._idle.get_nowait()
            except asyncio.QueueEmpty:
                break
            if self._is_expired(pooled):
                await self._discard(pooled)
                pruned += 1
            else:
                keep.append(pooled)
        for pooled in keep:
            self._idle.put_nowait(pooled)
        return pruned

    async def check_health(self) -> bool:
        """Prune expired idle connections and probe one connection.

        A saturated pool is probed over a short-lived connection opened
        outside the pool, so busy callers never make it look defunct.

        Updates :attr:`is_defunct` and returns the probe outcome.
        """
        if self._closed:
            return False

        self._stats["total_health_checks"] += 1
        pruned = await self._prune_idle()
        saturated = self._idle.empty() and self.size >= self.max_size
        try:
            if saturated:
                await self._probe_detached()
            else:
                async with self.acquire(Operation.HEALTH_CHECK) as conn:
                    await asyncio.wait_for(self.connector._probe(conn), timeout=self.profile.query_timeout)
        except Exception as e:
            self._defunct = True
            self.logger.warning("Pool health check failed", error=redact_secrets(e), error_type=type(e).__name__)
            return False

        self._defunct = False
        self.logger.debug("Pool health check passed", pruned=pruned, size=self.size, saturated=saturated)
        return True

    async def _probe_detached(self) -> None:
        conn = await self.connector._connect(self.profile, Operation.HEALTH_CHECK)
        try:
            await asyncio.wait_for(self.connector._probe(conn), timeout=self.profile.query_timeout)
        finally:
            await self.connector._safe_close(conn)

    async def close(self) -> None:
        """Close every idle connection; borrowed ones close when returned. Idempotent."""
        if self._closed:
            return
        self._closed = True
        while True:
            try:
                pooled = self._idle.get_nowait()
            except asyncio.QueueEmpty:
                break
            await self._discard(pooled)
        self.logger.info("Connection pool closed",
                         total_created=self._stats["total_created"],
                         total_closed=self._stats["total_closed"])

    def get_stats(self) -> Dict[str, Any]:
        """Get connection pool statistics."""
        in_use = sum(1 for pooled in self._connections if pooled.is_in_use)
        return {
            "config_id": self.profile.id,
            "engine": self.connector.engine.code,
            "total_connections": len(self._connections),
            "active_connections": in_use,
            "idle_connections": self._idle.qsize(),
            "min_size": self.min_size,
            "max_size": self.max_size,
            "is_closed": self._closed,
            "is_defunct": self.is_defunct,
            **self._stats,
        }

    def __repr__(self) -> str:
        return (f"ConnectionPool(engine={self.connector.engine.code!r}, "
                f"config_id={self.profile.id!r}, size={self.size}/{self.max_size})")
