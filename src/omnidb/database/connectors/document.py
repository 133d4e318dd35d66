# src/omnidb/database/connectors/document.py
"""Placeholder connectors for document and search engines.

They are registered so that the engines show up as known but
unimplemented: profiles are validated as usual, ``test_connection`` reports
False and every other operation raises ``UNSUPPORTED_ENGINE``.
"""

from typing import Any, List, NoReturn, Optional, Sequence, Tuple

from ...config.models import ConnectionProfile
from ...core.engines import EngineType
from ...core.exceptions import Operation, StructuredError
from ..base import BaseConnector, Rows
from ..models import MutationResult, TableDescriptor, TabularResult


class UnimplementedConnector(BaseConnector):
    """Connector that accepts profiles but performs no I/O."""

    implemented = False

    def _unsupported(self, operation: Operation, profile: Optional[ConnectionProfile]) -> NoReturn:
        self.validate_profile(profile, operation)
        self._raise_unsupported(operation)

    def _raise_unsupported(self, operation: Operation) -> NoReturn:
        raise StructuredError.unsupported_engine(
            f"{self.engine.display_name} connector is not implemented yet",
            operation=operation,
            context={"engine": self.engine.code},
        )

    async def test_connection(self, profile: Optional[ConnectionProfile]) -> bool:
        profile = self.validate_profile(profile, Operation.TEST_CONNECTION)
        self.logger.warning("Connection test skipped, connector not implemented",
                            engine=self.engine.code, config_id=profile.id)
        return False

    async def execute_query(self, profile: Optional[ConnectionProfile], statement: Optional[str],
                            *, pool: Any = None) -> TabularResult:
        self._unsupported(Operation.EXECUTE_QUERY, profile)

    async def execute_mutation(self, profile: Optional[ConnectionProfile], statement: Optional[str],
                               *, pool: Any = None) -> MutationResult:
        self._unsupported(Operation.EXECUTE_MUTATION, profile)

    async def list_databases(self, profile: Optional[ConnectionProfile], *, pool: Any = None) -> List[str]:
        self._unsupported(Operation.GET_DATABASES, profile)

    async def list_tables(self, profile: Optional[ConnectionProfile], database: Optional[str] = None,
                          *, pool: Any = None) -> List[TableDescriptor]:
        self._unsupported(Operation.GET_TABLES, profile)

    async def describe_table(self, profile: Optional[ConnectionProfile], database: Optional[str],
                             table: Optional[str], *, pool: Any = None) -> TableDescriptor:
        self._unsupported(Operation.GET_TABLE_INFO, profile)

    async def fetch_table_rows(self, profile: Optional[ConnectionProfile], database: Optional[str],
                               table: Optional[str], page: int = 1, page_size: int = 100,
                               sort_column: Optional[str] = None, sort_direction: Optional[str] = None,
                               *, pool: Any = None) -> TabularResult:
        self._unsupported(Operation.GET_TABLE_DATA, profile)

    async def open_pool(self, profile: Optional[ConnectionProfile]) -> Any:
        self._unsupported(Operation.CREATE_POOL, profile)

    # Driver hooks are never reached

    async def _open_connection(self, profile: ConnectionProfile) -> Any:
        self._raise_unsupported(Operation.UNKNOWN)

    async def _close_connection(self, conn: Any) -> None:
        return None

    async def _fetch(self, conn: Any, sql: str, params: Optional[Sequence[Any]] = None) -> Tuple[List[str], Rows]:
        self._raise_unsupported(Operation.EXECUTE_QUERY)

    async def _execute(self, conn: Any, sql: str, params: Optional[Sequence[Any]] = None) -> int:
        self._raise_unsupported(Operation.EXECUTE_MUTATION)

    async def _list_databases(self, conn: Any, profile: ConnectionProfile) -> List[str]:
        self._raise_unsupported(Operation.GET_DATABASES)

    async def _list_tables(self, conn: Any, profile: ConnectionProfile,
                           database: Optional[str]) -> List[TableDescriptor]:
        self._raise_unsupported(Operation.GET_TABLES)

    async def _describe_table(self, conn: Any, profile: ConnectionProfile,
                              database: Optional[str], table: str) -> Optional[TableDescriptor]:
        self._raise_unsupported(Operation.GET_TABLE_INFO)

    async def _fetch_page(self, conn: Any, profile: ConnectionProfile, database: Optional[str], table: str,
                          page: int, page_size: int, sort_column: Optional[str],
                          sort_direction: Optional[str]) -> Tuple[List[str], Rows, int]:
        self._raise_unsupported(Operation.GET_TABLE_DATA)


class MongoDBConnector(UnimplementedConnector):
    engine = EngineType.MONGODB


class ElasticsearchConnector(UnimplementedConnector):
    engine = EngineType.ELASTICSEARCH
