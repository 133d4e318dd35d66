# src/omnidb/database/connectors/clickhouse.py
"""ClickHouse connector built on clickhouse-connect.

clickhouse-connect only ships a synchronous HTTP client, so every client
call runs on a small thread pool owned by the connector. ``shutdown()``
stops that pool.
"""

import asyncio
import functools
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, List, Optional, Tuple

import clickhouse_connect
from clickhouse_connect.driver.exceptions import ClickHouseError, DatabaseError, OperationalError

from ...config.models import ConnectionProfile, PoolConfig
from ...core.engines import EngineType
from ...core.exceptions import ErrorKind, Operation
from ...core.utils import sanitize_identifier
from ..base import Rows, SqlConnector
from ..dialects import CLICKHOUSE_DIALECT
from ..models import ColumnDescriptor, TableDescriptor, to_bool, to_int

EXECUTOR_WORKERS = 5

_LIST_DATABASES_SQL = "SELECT name FROM system.databases ORDER BY name"

_TABLES_SQL = """
    SELECT name, comment, engine, total_rows, total_bytes, metadata_modification_time, is_temporary
    FROM system.tables
    WHERE database = {db:String}
"""

_COLUMNS_SQL = """
    SELECT name, type, default_expression, comment, is_in_primary_key
    FROM system.columns
    WHERE database = {db:String} AND table = {table:String}
    ORDER BY position
"""


class ClickHouseConnector(SqlConnector):
    """ClickHouse connector implementation."""

    engine = EngineType.CLICKHOUSE
    dialect = CLICKHOUSE_DIALECT

    def __init__(self, pool_config: Optional[PoolConfig] = None) -> None:
        super().__init__(pool_config)
        self._executor: Optional[ThreadPoolExecutor] = None

    def _get_executor(self) -> ThreadPoolExecutor:
        if self._executor is None:
            self._executor = ThreadPoolExecutor(max_workers=EXECUTOR_WORKERS, thread_name_prefix="omnidb-clickhouse")
            # A later shutdown() must release the re-created workers
            self._is_shut_down = False
        return self._executor

    async def _run_sync(self, func: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._get_executor(), functools.partial(func, *args, **kwargs))

    async def _release_resources(self) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=False)
            self._executor = None

    def _resolve_namespace(self, profile: ConnectionProfile, database: Optional[str],
                           operation: Operation) -> Optional[str]:
        return sanitize_identifier(database or profile.database or "default", what="database", operation=operation)

    async def _open_connection(self, profile: ConnectionProfile) -> Any:
        return await self._run_sync(
            clickhouse_connect.get_client,
            host=profile.host,
            port=profile.effective_port,
            username=profile.username or "default",
            password=profile.secret_value() or "",
            database=profile.database or "default",
            connect_timeout=profile.connect_timeout,
            send_receive_timeout=profile.query_timeout,
            **profile.extra_parameters,
        )

    async def _close_connection(self, conn: Any) -> None:
        await self._run_sync(conn.close)

    async def _probe(self, conn: Any) -> None:
        await self._run_sync(conn.command, "SELECT 1")

    async def _fetch(self, conn: Any, sql: str, params: Optional[Any] = None) -> Tuple[List[str], Rows]:
        result = await self._run_sync(conn.query, sql, parameters=params)
        return list(result.column_names), [list(row) for row in result.result_rows]

    async def _execute(self, conn: Any, sql: str, params: Optional[Any] = None) -> int:
        summary = await self._run_sync(conn.command, sql, parameters=params)
        # DDL and ALTER ... DELETE report no written rows
        return to_int(getattr(summary, "written_rows", 0)) or 0

    def _classify_error(self, exc: BaseException) -> Optional[ErrorKind]:
        if isinstance(exc, OperationalError):
            return ErrorKind.CONNECTION
        if isinstance(exc, (DatabaseError, ClickHouseError)):
            return ErrorKind.SQL_EXECUTION
        return None

    async def _list_databases(self, conn: Any, profile: ConnectionProfile) -> List[str]:
        _, rows = await self._fetch(conn, _LIST_DATABASES_SQL)
        return [str(row[0]) for row in rows]

    def _table_from_row(self, row: List[Any]) -> TableDescriptor:
        engine_name = str(row[2] or "")
        return TableDescriptor(
            name=str(row[0]),
            comment=row[1] or None,
            kind="VIEW" if "View" in engine_name else "TABLE",
            row_count_estimate=to_int(row[3]),
            size_bytes=to_int(row[4]),
            last_updated=row[5],
            is_temporary=to_bool(row[6]),
        )

    async def _list_tables(self, conn: Any, profile: ConnectionProfile,
                           database: Optional[str]) -> List[TableDescriptor]:
        _, rows = await self._fetch(conn, _TABLES_SQL + " ORDER BY name", {"db": database})
        return [self._table_from_row(row) for row in rows]

    async def _describe_table(self, conn: Any, profile: ConnectionProfile,
                              database: Optional[str], table: str) -> Optional[TableDescriptor]:
        params = {"db": database, "table": table}
        _, rows = await self._fetch(conn, _TABLES_SQL + " AND name = {table:String}", params)
        if not rows:
            return None

        descriptor = self._table_from_row(rows[0])
        _, column_rows = await self._fetch(conn, _COLUMNS_SQL, params)
        descriptor.columns = [
            ColumnDescriptor(
                name=str(row[0]),
                data_type=str(row[1]),
                nullable=str(row[1]).startswith("Nullable("),
                default_value=row[2] or None,
                comment=row[3] or None,
                is_primary_key=to_bool(row[4]),
            )
            for row in column_rows
        ]
        return descriptor
