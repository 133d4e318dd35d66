# src/omnidb/database/connectors/postgresql.py
"""PostgreSQL connector built on asyncpg.

Table operations treat their ``database`` argument as a schema name: the
connection is always opened on the profile's database, and an empty schema
(or one equal to the profile database) means ``public``.
"""

from typing import Any, List, Optional, Sequence, Tuple

import asyncpg

from ...config.models import ConnectionProfile
from ...core.engines import EngineType
from ...core.exceptions import ErrorKind, Operation
from ...core.utils import sanitize_identifier
from ..base import Rows, SqlConnector
from ..dialects import POSTGRESQL_DIALECT
from ..models import ColumnDescriptor, TableDescriptor, to_bool, to_int

DEFAULT_SCHEMA = "public"

_LIST_DATABASES_SQL = "SELECT datname FROM pg_database WHERE datistemplate = false ORDER BY datname"

_TABLES_SQL = """
    SELECT c.relname, obj_description(c.oid, 'pg_class'), c.relkind,
           c.reltuples::bigint, pg_total_relation_size(c.oid), c.relpersistence = 't'
    FROM pg_class c
    JOIN pg_namespace n ON n.oid = c.relnamespace
    WHERE n.nspname = $1 AND c.relkind IN ('r', 'p', 'v', 'm', 'f')
"""

_COLUMNS_SQL = """
    SELECT col.column_name, col.data_type, col.is_nullable, col.column_default,
           col.character_maximum_length, col.numeric_precision, col.numeric_scale,
           col_description(format('%I.%I', col.table_schema, col.table_name)::regclass,
                           col.ordinal_position::int),
           col.collation_name,
           EXISTS (
               SELECT 1 FROM information_schema.table_constraints tc
               JOIN information_schema.key_column_usage kcu
                 ON kcu.constraint_name = tc.constraint_name
                AND kcu.table_schema = tc.table_schema
               WHERE tc.constraint_type = 'PRIMARY KEY'
                 AND tc.table_schema = col.table_schema
                 AND tc.table_name = col.table_name
                 AND kcu.column_name = col.column_name
           ) AS is_primary_key,
           EXISTS (
               SELECT 1 FROM information_schema.table_constraints tc
               JOIN information_schema.key_column_usage kcu
                 ON kcu.constraint_name = tc.constraint_name
                AND kcu.table_schema = tc.table_schema
               WHERE tc.constraint_type = 'FOREIGN KEY'
                 AND tc.table_schema = col.table_schema
                 AND tc.table_name = col.table_name
                 AND kcu.column_name = col.column_name
           ) AS is_foreign_key
    FROM information_schema.columns col
    WHERE col.table_schema = $1 AND col.table_name = $2
    ORDER BY col.ordinal_position
"""

_RELKIND_NAMES = {"r": "TABLE", "p": "TABLE", "v": "VIEW", "m": "MATERIALIZED VIEW", "f": "FOREIGN TABLE"}


class PostgreSQLConnector(SqlConnector):
    """PostgreSQL connector implementation."""

    engine = EngineType.POSTGRESQL
    dialect = POSTGRESQL_DIALECT

    def _resolve_namespace(self, profile: ConnectionProfile, database: Optional[str],
                           operation: Operation) -> Optional[str]:
        if not database or database == profile.database:
            return DEFAULT_SCHEMA
        return sanitize_identifier(database, what="schema", operation=operation)

    async def _open_connection(self, profile: ConnectionProfile) -> Any:
        return await asyncpg.connect(
            host=profile.host,
            port=profile.effective_port,
            user=profile.username,
            password=profile.secret_value(),
            database=profile.database or "postgres",
            timeout=profile.connect_timeout,
            command_timeout=profile.query_timeout,
            **profile.extra_parameters,
        )

    async def _close_connection(self, conn: Any) -> None:
        await conn.close()

    async def _fetch(self, conn: Any, sql: str, params: Optional[Sequence[Any]] = None) -> Tuple[List[str], Rows]:
        # A prepared statement reports its columns even for an empty result
        statement = await conn.prepare(sql)
        records = await statement.fetch(*(params or ()))
        columns = [attribute.name for attribute in statement.get_attributes()]
        return columns, [list(record.values()) for record in records]

    async def _execute(self, conn: Any, sql: str, params: Optional[Sequence[Any]] = None) -> int:
        status = await conn.execute(sql, *(params or ()))
        return parse_command_status(status)

    def _classify_error(self, exc: BaseException) -> Optional[ErrorKind]:
        if isinstance(exc, asyncpg.InvalidAuthorizationSpecificationError):
            return ErrorKind.CONNECTION
        if isinstance(exc, asyncpg.QueryCanceledError):
            return ErrorKind.TIMEOUT
        if isinstance(exc, asyncpg.PostgresError):
            sqlstate = getattr(exc, "sqlstate", None) or ""
            # Class 08 connection exception, 28 invalid authorization, 57P0x shutdown
            if sqlstate.startswith(("08", "28", "57P")):
                return ErrorKind.CONNECTION
            return ErrorKind.SQL_EXECUTION
        if isinstance(exc, asyncpg.InterfaceError):
            return ErrorKind.CONNECTION
        return None

    async def _list_databases(self, conn: Any, profile: ConnectionProfile) -> List[str]:
        _, rows = await self._fetch(conn, _LIST_DATABASES_SQL)
        return [str(row[0]) for row in rows]

    def _table_from_row(self, row: Sequence[Any]) -> TableDescriptor:
        estimate = to_int(row[3])
        return TableDescriptor(
            name=str(row[0]),
            comment=row[1],
            kind=_RELKIND_NAMES.get(str(row[2]), "TABLE"),
            # reltuples is -1 for never-analyzed tables
            row_count_estimate=estimate if estimate is not None and estimate >= 0 else None,
            size_bytes=to_int(row[4]),
            is_temporary=bool(row[5]),
        )

    async def _list_tables(self, conn: Any, profile: ConnectionProfile,
                           database: Optional[str]) -> List[TableDescriptor]:
        _, rows = await self._fetch(conn, _TABLES_SQL + " ORDER BY c.relname", (database,))
        return [self._table_from_row(row) for row in rows]

    async def _describe_table(self, conn: Any, profile: ConnectionProfile,
                              database: Optional[str], table: str) -> Optional[TableDescriptor]:
        _, rows = await self._fetch(conn, _TABLES_SQL + " AND c.relname = $2", (database, table))
        if not rows:
            return None

        descriptor = self._table_from_row(rows[0])
        _, column_rows = await self._fetch(conn, _COLUMNS_SQL, (database, table))
        descriptor.columns = [
            ColumnDescriptor(
                name=str(row[0]),
                data_type=str(row[1]),
                nullable=to_bool(row[2]),
                default_value=row[3],
                max_length=to_int(row[4]),
                precision=to_int(row[5]),
                scale=to_int(row[6]),
                comment=row[7],
                collation=row[8],
                is_primary_key=bool(row[9]),
                is_foreign_key=bool(row[10]),
            )
            for row in column_rows
        ]
        return descriptor


def parse_command_status(status: Any) -> int:
    """Extract the row count from a command tag such as ``'DELETE 3'`` or ``'INSERT 0 1'``."""
    if not status:
        return 0
    last = str(status).split()[-1]
    return int(last) if last.isdigit() else 0
