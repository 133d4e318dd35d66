# src/omnidb/database/connectors/mysql.py
"""MySQL-family connector (MySQL, MariaDB, TiDB) built on aiomysql."""

from typing import Any, List, Optional, Sequence, Tuple

import aiomysql

from ...config.models import ConnectionProfile
from ...core.engines import EngineType
from ...core.exceptions import ErrorKind
from ..base import Rows, SqlConnector
from ..dialects import MYSQL_DIALECT
from ..models import ColumnDescriptor, TableDescriptor, to_bool, to_int

# Client-side error codes raised before a statement ever reaches the server
CONNECTION_ERROR_CODES = frozenset({
    1040,  # Too many connections
    1045,  # Access denied
    1049,  # Unknown database
    2002,  # Can't connect through socket
    2003,  # Can't connect to server
    2005,  # Unknown host
    2006,  # Server has gone away
    2013,  # Lost connection during query
})

_TABLES_SQL = """
    SELECT TABLE_NAME, TABLE_COMMENT, TABLE_TYPE, TABLE_ROWS,
           COALESCE(DATA_LENGTH, 0) + COALESCE(INDEX_LENGTH, 0),
           COALESCE(UPDATE_TIME, CREATE_TIME)
    FROM information_schema.TABLES
    WHERE TABLE_SCHEMA = %s
"""

_COLUMNS_SQL = """
    SELECT c.COLUMN_NAME, c.COLUMN_TYPE, c.IS_NULLABLE, c.COLUMN_KEY, c.COLUMN_DEFAULT,
           c.CHARACTER_MAXIMUM_LENGTH, c.NUMERIC_PRECISION, c.NUMERIC_SCALE,
           c.COLUMN_COMMENT, c.CHARACTER_SET_NAME, c.COLLATION_NAME,
           EXISTS (
               SELECT 1 FROM information_schema.KEY_COLUMN_USAGE k
               WHERE k.TABLE_SCHEMA = c.TABLE_SCHEMA
                 AND k.TABLE_NAME = c.TABLE_NAME
                 AND k.COLUMN_NAME = c.COLUMN_NAME
                 AND k.REFERENCED_TABLE_NAME IS NOT NULL
           ) AS IS_FOREIGN_KEY
    FROM information_schema.COLUMNS c
    WHERE c.TABLE_SCHEMA = %s AND c.TABLE_NAME = %s
    ORDER BY c.ORDINAL_POSITION
"""


class MySQLConnector(SqlConnector):
    """MySQL connector; MariaDB and TiDB reuse it with a different engine tag.

    Every call gets its own aiomysql connection (or borrows one from the
    profile's pool) opened with ``autocommit=True`` and ``utf8mb4``.
    """

    engine = EngineType.MYSQL
    dialect = MYSQL_DIALECT

    async def _open_connection(self, profile: ConnectionProfile) -> Any:
        return await aiomysql.connect(
            host=profile.host,
            port=profile.effective_port,
            user=profile.username or "",
            password=profile.secret_value() or "",
            db=profile.database or None,
            connect_timeout=profile.connect_timeout,
            charset="utf8mb4",
            autocommit=True,
            **profile.extra_parameters,
        )

    async def _close_connection(self, conn: Any) -> None:
        conn.close()

    async def _fetch(self, conn: Any, sql: str, params: Optional[Sequence[Any]] = None) -> Tuple[List[str], Rows]:
        async with conn.cursor() as cursor:
            if params:
                await cursor.execute(sql, params)
            else:
                await cursor.execute(sql)
            rows = await cursor.fetchall() if cursor.description else ()
            columns = [desc[0] for desc in cursor.description] if cursor.description else []
            return columns, [list(row) for row in rows or ()]

    async def _execute(self, conn: Any, sql: str, params: Optional[Sequence[Any]] = None) -> int:
        async with conn.cursor() as cursor:
            if params:
                await cursor.execute(sql, params)
            else:
                await cursor.execute(sql)
            return cursor.rowcount

    def _classify_error(self, exc: BaseException) -> Optional[ErrorKind]:
        if not isinstance(exc, aiomysql.Error):
            return None
        error_code = exc.args[0] if exc.args and isinstance(exc.args[0], int) else 0
        if error_code in CONNECTION_ERROR_CODES:
            return ErrorKind.CONNECTION
        if error_code == 3024:  # Query execution was interrupted, max_execution_time exceeded
            return ErrorKind.TIMEOUT
        if isinstance(exc, aiomysql.InterfaceError):
            return ErrorKind.CONNECTION
        # 1064 syntax, 1142 denied, 1146 missing table and the rest
        return ErrorKind.SQL_EXECUTION

    async def _list_databases(self, conn: Any, profile: ConnectionProfile) -> List[str]:
        _, rows = await self._fetch(conn, "SHOW DATABASES")
        return [str(row[0]) for row in rows]

    def _table_from_row(self, row: Sequence[Any]) -> TableDescriptor:
        table_type = str(row[2] or "")
        return TableDescriptor(
            name=str(row[0]),
            comment=row[1] or None,
            kind="VIEW" if "VIEW" in table_type.upper() else "TABLE",
            row_count_estimate=to_int(row[3]),
            size_bytes=to_int(row[4]),
            last_updated=row[5],
            is_temporary=table_type.upper() == "TEMPORARY",
        )

    async def _list_tables(self, conn: Any, profile: ConnectionProfile,
                           database: Optional[str]) -> List[TableDescriptor]:
        _, rows = await self._fetch(conn, _TABLES_SQL + " ORDER BY TABLE_NAME", (database,))
        return [self._table_from_row(row) for row in rows]

    async def _describe_table(self, conn: Any, profile: ConnectionProfile,
                              database: Optional[str], table: str) -> Optional[TableDescriptor]:
        _, rows = await self._fetch(conn, _TABLES_SQL + " AND TABLE_NAME = %s", (database, table))
        if not rows:
            return None

        descriptor = self._table_from_row(rows[0])
        _, column_rows = await self._fetch(conn, _COLUMNS_SQL, (database, table))
        descriptor.columns = [
            ColumnDescriptor(
                name=str(row[0]),
                data_type=str(row[1]),
                nullable=to_bool(row[2]),
                is_primary_key=row[3] == "PRI",
                is_foreign_key=to_bool(row[11]),
                default_value=row[4],
                max_length=to_int(row[5]),
                precision=to_int(row[6]),
                scale=to_int(row[7]),
                comment=row[8] or None,
                charset=row[9],
                collation=row[10],
            )
            for row in column_rows
        ]
        return descriptor


class MariaDBConnector(MySQLConnector):
    engine = EngineType.MARIADB


class TiDBConnector(MySQLConnector):
    engine = EngineType.TIDB
