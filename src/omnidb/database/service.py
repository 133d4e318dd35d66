# src/omnidb/database/service.py
"""Service facade consumed by outer layers (HTTP handlers, CLIs).

Resolves a configuration id to a profile, resolves the connector for the
profile's engine, borrows the configuration's pool when one is active and
delegates. Every failure leaves as a ``StructuredError``.
"""

from typing import Any, Dict, List, Optional, Set, Union

from ..config.models import ConnectionProfile
from ..core.engines import EngineType
from ..core.exceptions import Operation, StructuredError
from ..core.protocols import PoolHandle, ProfileResolver
from ..core.redaction import redact_secrets
from ..logging import get_logger
from .base import BaseConnector
from .lifecycle import ConnectionLifecycleManager
from .models import MutationResult, TableDescriptor, TabularResult
from .registry import ConnectorRegistry

ProfileRef = Union[ConnectionProfile, str, int]


class DatabaseService:
    """Uniform entry point for every database operation.

    Args:
        resolver: Configuration store used to turn ids into profiles
        registry: Connector registry
        lifecycle: Pool manager; a new one over ``registry`` when omitted
    """

    def __init__(
        self,
        resolver: ProfileResolver,
        registry: ConnectorRegistry,
        lifecycle: Optional[ConnectionLifecycleManager] = None,
    ) -> None:
        self.resolver = resolver
        self.registry = registry
        self.lifecycle = lifecycle or ConnectionLifecycleManager(registry)
        self.logger = get_logger("omnidb.service")

    async def resolve_profile(self, ref: Optional[ProfileRef], operation: Operation = Operation.RESOLVE_PROFILE) -> ConnectionProfile:
        """Turn a profile or configuration id into an enabled profile.

        Raises:
            StructuredError: VALIDATION for a missing reference or a disabled
                profile, NOT_FOUND for an unknown id
        """
        if ref is None or (isinstance(ref, str) and not ref.strip()):
            raise StructuredError.validation(
                "A connection profile or configuration id is required",
                operation=operation,
            )

        if isinstance(ref, ConnectionProfile):
            profile = ref
        else:
            try:
                profile = await self.resolver.resolve_profile(str(ref))
            except StructuredError:
                raise
            except Exception as e:
                raise StructuredError.internal(
                    f"Profile lookup failed for configuration {ref}: {redact_secrets(e)}",
                    operation=operation,
                    context={"config_id": str(ref)},
                    cause=e,
                ) from e

        if not profile.enabled:
            raise StructuredError.validation(
                f"Configuration {profile.id} is disabled",
                operation=operation,
                context={"config_id": profile.id},
            )
        return profile

    async def _prepare(self, ref: Optional[ProfileRef], operation: Operation):
        profile = await self.resolve_profile(ref, operation)
        connector = self.registry.resolve(profile.engine_type)
        return profile, connector, self.lifecycle.get_pool(profile.id)

    async def _invoke(self, operation: Operation, ref: Optional[ProfileRef], call) -> Any:
        """Run ``call(profile, connector, pool)`` and normalise failures."""
        try:
            profile, connector, pool = await self._prepare(ref, operation)
        except StructuredError:
            raise
        except Exception as e:
            raise StructuredError.internal(f"Unexpected error: {redact_secrets(e)}", operation=operation, cause=e) from e

        operation_context = self.logger.log_operation_start(
            operation.value, config_id=profile.id, engine=profile.engine_type.code, pooled=pool is not None
        )
        try:
            result = await call(profile, connector, pool)
        except StructuredError as e:
            self.logger.log_operation_failure(operation_context, e, kind=e.kind.value)
            raise
        except Exception as e:
            self.logger.log_operation_failure(operation_context, e)
            raise StructuredError.internal(
                f"Unexpected error: {redact_secrets(e)}",
                operation=operation,
                context={"config_id": profile.id},
                cause=e,
            ) from e
        self.logger.log_operation_success(operation_context)
        return result

    # ------------------------------------------------------------------
    # Connector operations
    # ------------------------------------------------------------------

    async def test_connection(self, ref: Optional[ProfileRef]) -> bool:
        async def call(profile: ConnectionProfile, connector: BaseConnector, pool: Any) -> bool:
            return await connector.test_connection(profile)

        return await self._invoke(Operation.TEST_CONNECTION, ref, call)

    async def execute_query(self, ref: Optional[ProfileRef], statement: Optional[str]) -> TabularResult:
        async def call(profile: ConnectionProfile, connector: BaseConnector, pool: Any) -> TabularResult:
            return await connector.execute_query(profile, statement, pool=pool)

        return await self._invoke(Operation.EXECUTE_QUERY, ref, call)

    async def execute_mutation(self, ref: Optional[ProfileRef], statement: Optional[str]) -> MutationResult:
        async def call(profile: ConnectionProfile, connector: BaseConnector, pool: Any) -> MutationResult:
            return await connector.execute_mutation(profile, statement, pool=pool)

        return await self._invoke(Operation.EXECUTE_MUTATION, ref, call)

    async def list_databases(self, ref: Optional[ProfileRef]) -> List[str]:
        async def call(profile: ConnectionProfile, connector: BaseConnector, pool: Any) -> List[str]:
            return await connector.list_databases(profile, pool=pool)

        return await self._invoke(Operation.GET_DATABASES, ref, call)

    async def list_tables(self, ref: Optional[ProfileRef], database: Optional[str] = None) -> List[TableDescriptor]:
        async def call(profile: ConnectionProfile, connector: BaseConnector, pool: Any) -> List[TableDescriptor]:
            return await connector.list_tables(profile, database, pool=pool)

        return await self._invoke(Operation.GET_TABLES, ref, call)

    async def describe_table(self, ref: Optional[ProfileRef], database: Optional[str],
                             table: Optional[str]) -> TableDescriptor:
        async def call(profile: ConnectionProfile, connector: BaseConnector, pool: Any) -> TableDescriptor:
            return await connector.describe_table(profile, database, table, pool=pool)

        return await self._invoke(Operation.GET_TABLE_INFO, ref, call)

    async def fetch_table_rows(
        self,
        ref: Optional[ProfileRef],
        database: Optional[str],
        table: Optional[str],
        page: int = 1,
        page_size: int = 100,
        sort_column: Optional[str] = None,
        sort_direction: Optional[str] = None,
    ) -> TabularResult:
        async def call(profile: ConnectionProfile, connector: BaseConnector, pool: Any) -> TabularResult:
            return await connector.fetch_table_rows(
                profile, database, table, page, page_size, sort_column, sort_direction, pool=pool
            )

        return await self._invoke(Operation.GET_TABLE_DATA, ref, call)

    # ------------------------------------------------------------------
    # Pools and lifecycle
    # ------------------------------------------------------------------

    async def create_pool(self, config_id: Union[str, int]) -> PoolHandle:
        """Provision the pool for a stored configuration (idempotent)."""
        profile = await self.resolve_profile(config_id, Operation.CREATE_POOL)
        return await self.lifecycle.create_pool(str(config_id), profile)

    async def close_pool(self, config_id: Union[str, int]) -> bool:
        return await self.lifecycle.close_pool(str(config_id))

    async def health_sweep(self) -> List[str]:
        return await self.lifecycle.health_sweep()

    def pool_stats(self) -> Dict[str, Dict[str, Any]]:
        """Statistics of every active pool, keyed by configuration id."""
        return {
            config_id: self.lifecycle.get_pool(config_id).get_stats()
            for config_id in self.lifecycle.pool_ids()
        }

    def supported_engines(self) -> Set[EngineType]:
        return self.registry.supported_engines()

    async def shutdown(self) -> None:
        """Close every pool, then shut every connector down."""
        self.logger.info("Shutting down database service", pools=self.lifecycle.pool_count())
        await self.lifecycle.close_all()
        await self.registry.shutdown_all()
