# src/omnidb/database/connectors/oracle.py
"""Oracle connector built on python-oracledb (async thin mode).

Oracle has no database concept at the session level; tablespaces stand in
for databases. Tables are looked up in the connected user's schema by their
upper-cased names and referenced unqualified in generated SQL.
"""

from typing import Any, List, Optional, Sequence, Tuple

import oracledb

from ...config.models import ConnectionProfile
from ...core.engines import EngineType
from ...core.exceptions import ErrorKind, Operation
from ...core.utils import sanitize_identifier
from ..base import Rows, SqlConnector
from ..dialects import ORACLE_DIALECT, ROWNUM_ALIAS, strip_column
from ..models import ColumnDescriptor, TableDescriptor, to_bool, to_int

DEFAULT_SERVICE = "ORCL"

CONNECTION_ERROR_CODES = frozenset({
    1017,   # invalid username/password
    12154,  # could not resolve connect identifier
    12170,  # connect timeout
    12514,  # listener does not know of service
    12541,  # no listener
    3113,   # end-of-file on communication channel
    3114,   # not connected
    28000,  # account locked
})

TIMEOUT_ERROR_CODES = frozenset({"DPY-4024", "ORA-03156", "DPI-1067"})

_TABLESPACES_SQL = (
    "SELECT DISTINCT TABLESPACE_NAME FROM USER_TABLES "
    "WHERE TABLESPACE_NAME IS NOT NULL ORDER BY 1"
)
_DEFAULT_TABLESPACE_SQL = "SELECT DEFAULT_TABLESPACE FROM USER_USERS"

_TABLES_SQL = """
    SELECT t.TABLE_NAME, c.COMMENTS, t.NUM_ROWS,
           (SELECT SUM(s.BYTES) FROM USER_SEGMENTS s WHERE s.SEGMENT_NAME = t.TABLE_NAME),
           t.LAST_ANALYZED, t.TEMPORARY
    FROM USER_TABLES t
    LEFT JOIN USER_TAB_COMMENTS c ON c.TABLE_NAME = t.TABLE_NAME
    WHERE (:tablespace IS NULL OR t.TABLESPACE_NAME = :tablespace)
"""

_COLUMNS_SQL = """
    SELECT col.COLUMN_NAME, col.DATA_TYPE, col.NULLABLE, col.DATA_DEFAULT, col.CHAR_LENGTH,
           col.DATA_PRECISION, col.DATA_SCALE, cc.COMMENTS, col.CHARACTER_SET_NAME,
           CASE WHEN pk.COLUMN_NAME IS NULL THEN 0 ELSE 1 END,
           CASE WHEN fk.COLUMN_NAME IS NULL THEN 0 ELSE 1 END
    FROM USER_TAB_COLUMNS col
    LEFT JOIN USER_COL_COMMENTS cc
      ON cc.TABLE_NAME = col.TABLE_NAME AND cc.COLUMN_NAME = col.COLUMN_NAME
    LEFT JOIN (
        SELECT DISTINCT cols.COLUMN_NAME
        FROM USER_CONSTRAINTS cons
        JOIN USER_CONS_COLUMNS cols ON cols.CONSTRAINT_NAME = cons.CONSTRAINT_NAME
        WHERE cons.CONSTRAINT_TYPE = 'P' AND cons.TABLE_NAME = :table_name
    ) pk ON pk.COLUMN_NAME = col.COLUMN_NAME
    LEFT JOIN (
        SELECT DISTINCT cols.COLUMN_NAME
        FROM USER_CONSTRAINTS cons
        JOIN USER_CONS_COLUMNS cols ON cols.CONSTRAINT_NAME = cons.CONSTRAINT_NAME
        WHERE cons.CONSTRAINT_TYPE = 'R' AND cons.TABLE_NAME = :table_name
    ) fk ON fk.COLUMN_NAME = col.COLUMN_NAME
    WHERE col.TABLE_NAME = :table_name
    ORDER BY col.COLUMN_ID
"""


class OracleConnector(SqlConnector):
    """Oracle connector implementation."""

    engine = EngineType.ORACLE
    dialect = ORACLE_DIALECT
    probe_statement = "SELECT 1 FROM DUAL"

    def _resolve_namespace(self, profile: ConnectionProfile, database: Optional[str],
                           operation: Operation) -> Optional[str]:
        # The profile database is the service name, never a tablespace
        if not database:
            return None
        return sanitize_identifier(database, what="tablespace", operation=operation).upper()

    def _table_reference(self, profile: ConnectionProfile, database: Optional[str], table: str) -> str:
        return self.dialect.quote(table, what="table", operation=Operation.GET_TABLE_DATA)

    def _postprocess_page(self, columns: List[str], rows: Rows) -> Tuple[List[str], Rows]:
        return strip_column(columns, rows, ROWNUM_ALIAS)

    async def _open_connection(self, profile: ConnectionProfile) -> Any:
        dsn = f"{profile.host}:{profile.effective_port}/{profile.database or DEFAULT_SERVICE}"
        conn = await oracledb.connect_async(
            user=profile.username,
            password=profile.secret_value(),
            dsn=dsn,
            tcp_connect_timeout=profile.connect_timeout,
            **profile.extra_parameters,
        )
        conn.call_timeout = profile.query_timeout_ms
        conn.autocommit = True
        return conn

    async def _close_connection(self, conn: Any) -> None:
        await conn.close()

    async def _fetch(self, conn: Any, sql: str, params: Optional[Any] = None) -> Tuple[List[str], Rows]:
        cursor = conn.cursor()
        try:
            await cursor.execute(sql, params or {})
            if cursor.description is None:
                return [], []
            columns = [desc[0] for desc in cursor.description]
            rows = await cursor.fetchall()
            return columns, [list(row) for row in rows]
        finally:
            cursor.close()

    async def _execute(self, conn: Any, sql: str, params: Optional[Any] = None) -> int:
        cursor = conn.cursor()
        try:
            await cursor.execute(sql, params or {})
            return cursor.rowcount
        finally:
            cursor.close()

    def _classify_error(self, exc: BaseException) -> Optional[ErrorKind]:
        if not isinstance(exc, oracledb.Error):
            return None
        error = exc.args[0] if exc.args else None
        full_code = getattr(error, "full_code", "") or ""
        if full_code in TIMEOUT_ERROR_CODES:
            return ErrorKind.TIMEOUT
        if getattr(error, "code", None) in CONNECTION_ERROR_CODES:
            return ErrorKind.CONNECTION
        if isinstance(exc, (oracledb.OperationalError, oracledb.InterfaceError)):
            return ErrorKind.CONNECTION
        return ErrorKind.SQL_EXECUTION

    async def _list_databases(self, conn: Any, profile: ConnectionProfile) -> List[str]:
        _, rows = await self._fetch(conn, _TABLESPACES_SQL)
        if not rows:
            _, rows = await self._fetch(conn, _DEFAULT_TABLESPACE_SQL)
        return [str(row[0]) for row in rows if row[0]]

    def _table_from_row(self, row: Sequence[Any]) -> TableDescriptor:
        return TableDescriptor(
            name=str(row[0]),
            comment=row[1],
            row_count_estimate=to_int(row[2]),
            size_bytes=to_int(row[3]),
            last_updated=row[4],
            is_temporary=to_bool(row[5]),
        )

    async def _list_tables(self, conn: Any, profile: ConnectionProfile,
                           database: Optional[str]) -> List[TableDescriptor]:
        _, rows = await self._fetch(conn, _TABLES_SQL + " ORDER BY t.TABLE_NAME", {"tablespace": database})
        return [self._table_from_row(row) for row in rows]

    async def _describe_table(self, conn: Any, profile: ConnectionProfile,
                              database: Optional[str], table: str) -> Optional[TableDescriptor]:
        table_name = table.upper()
        _, rows = await self._fetch(
            conn,
            _TABLES_SQL + " AND t.TABLE_NAME = :table_name",
            {"tablespace": database, "table_name": table_name},
        )
        if not rows:
            return None

        descriptor = self._table_from_row(rows[0])
        if descriptor.row_count_estimate is None:
            # NUM_ROWS is only populated after statistics are gathered
            descriptor.row_count_estimate = await self._count_rows(conn, self._table_reference(profile, database, table))

        _, column_rows = await self._fetch(conn, _COLUMNS_SQL, {"table_name": table_name})
        descriptor.columns = [
            ColumnDescriptor(
                name=str(row[0]),
                data_type=str(row[1]),
                nullable=to_bool(row[2]),
                default_value=row[3].strip() if isinstance(row[3], str) else row[3],
                max_length=to_int(row[4]) or None,
                precision=to_int(row[5]),
                scale=to_int(row[6]),
                comment=row[7],
                charset=row[8],
                is_primary_key=to_bool(row[9]),
                is_foreign_key=to_bool(row[10]),
            )
            for row in column_rows
        ]
        return descriptor
