# src/omnidb/database/connectors/mssql.py
"""SQL Server connector built on aioodbc (pyodbc on a thread executor).

aioodbc is imported when the first connection is opened: pyodbc needs the
unixODBC runtime, which hosts without SQL Server profiles do not install.
"""

from typing import Any, List, Optional, Sequence, Tuple

from ...config.models import ConnectionProfile
from ...core.engines import EngineType
from ...core.exceptions import ErrorKind, Operation
from ...core.utils import sanitize_identifier
from ..base import Rows, SqlConnector
from ..dialects import SQLSERVER_DIALECT
from ..models import ColumnDescriptor, TableDescriptor, to_bool, to_int

DEFAULT_DRIVER = "ODBC Driver 18 for SQL Server"
DEFAULT_SCHEMA = "dbo"

_LIST_DATABASES_SQL = "SELECT name FROM sys.databases ORDER BY name"

_TABLES_SQL = """
    SELECT t.name,
           CAST(ep.value AS NVARCHAR(4000)),
           (SELECT SUM(p.rows) FROM {db}.sys.partitions p
             WHERE p.object_id = t.object_id AND p.index_id IN (0, 1)),
           (SELECT SUM(a.total_pages) * 8192 FROM {db}.sys.partitions p
              JOIN {db}.sys.allocation_units a ON a.container_id = p.partition_id
             WHERE p.object_id = t.object_id),
           t.modify_date
    FROM {db}.sys.tables t
    JOIN {db}.sys.schemas s ON s.schema_id = t.schema_id
    LEFT JOIN {db}.sys.extended_properties ep
      ON ep.major_id = t.object_id AND ep.minor_id = 0 AND ep.name = 'MS_Description'
    WHERE s.name = ?
"""

_COLUMNS_SQL = """
    SELECT c.COLUMN_NAME, c.DATA_TYPE, c.IS_NULLABLE, c.COLUMN_DEFAULT,
           c.CHARACTER_MAXIMUM_LENGTH, c.NUMERIC_PRECISION, c.NUMERIC_SCALE,
           CAST(ep.value AS NVARCHAR(4000)), c.CHARACTER_SET_NAME, c.COLLATION_NAME,
           CASE WHEN pk.COLUMN_NAME IS NULL THEN 0 ELSE 1 END,
           CASE WHEN fk.COLUMN_NAME IS NULL THEN 0 ELSE 1 END
    FROM {db}.INFORMATION_SCHEMA.COLUMNS c
    LEFT JOIN (
        SELECT DISTINCT ku.COLUMN_NAME
        FROM {db}.INFORMATION_SCHEMA.TABLE_CONSTRAINTS tc
        JOIN {db}.INFORMATION_SCHEMA.KEY_COLUMN_USAGE ku
          ON ku.CONSTRAINT_NAME = tc.CONSTRAINT_NAME AND ku.TABLE_SCHEMA = tc.TABLE_SCHEMA
        WHERE tc.CONSTRAINT_TYPE = 'PRIMARY KEY' AND tc.TABLE_SCHEMA = ? AND tc.TABLE_NAME = ?
    ) pk ON pk.COLUMN_NAME = c.COLUMN_NAME
    LEFT JOIN (
        SELECT DISTINCT ku.COLUMN_NAME
        FROM {db}.INFORMATION_SCHEMA.TABLE_CONSTRAINTS tc
        JOIN {db}.INFORMATION_SCHEMA.KEY_COLUMN_USAGE ku
          ON ku.CONSTRAINT_NAME = tc.CONSTRAINT_NAME AND ku.TABLE_SCHEMA = tc.TABLE_SCHEMA
        WHERE tc.CONSTRAINT_TYPE = 'FOREIGN KEY' AND tc.TABLE_SCHEMA = ? AND tc.TABLE_NAME = ?
    ) fk ON fk.COLUMN_NAME = c.COLUMN_NAME
    LEFT JOIN {db}.sys.extended_properties ep
      ON ep.major_id = OBJECT_ID('{object_name}')
     AND ep.minor_id = COLUMNPROPERTY(OBJECT_ID('{object_name}'), c.COLUMN_NAME, 'ColumnId')
     AND ep.name = 'MS_Description'
    WHERE c.TABLE_SCHEMA = ? AND c.TABLE_NAME = ?
    ORDER BY c.ORDINAL_POSITION
"""


def build_connection_string(profile: ConnectionProfile) -> str:
    """Build the ODBC connection string for a profile.

    ``extra_parameters`` are appended as additional ``key=value`` pairs.
    """
    parts = {
        "DRIVER": "{%s}" % profile.option("driver", DEFAULT_DRIVER),
        "SERVER": f"{profile.host},{profile.effective_port}",
        "DATABASE": profile.database or "master",
        "UID": profile.username or "",
        "PWD": profile.secret_value() or "",
        "TrustServerCertificate": profile.option("trust_server_certificate", "yes"),
    }
    parts.update({key: str(value) for key, value in profile.extra_parameters.items()})
    return ";".join(f"{key}={value}" for key, value in parts.items())


class SQLServerConnector(SqlConnector):
    """SQL Server connector implementation.

    Table operations use three-part names ``[db].[schema].[table]``; the
    schema comes from the profile option ``schema`` (default ``dbo``).
    """

    engine = EngineType.SQLSERVER
    dialect = SQLSERVER_DIALECT

    def _schema(self, profile: ConnectionProfile, operation: Operation) -> str:
        return sanitize_identifier(profile.option("schema", DEFAULT_SCHEMA), what="schema", operation=operation)

    def _table_reference(self, profile: ConnectionProfile, database: Optional[str], table: str) -> str:
        schema = self._schema(profile, Operation.GET_TABLE_DATA)
        return self.dialect.qualify(database, schema, table, operation=Operation.GET_TABLE_DATA)

    async def _open_connection(self, profile: ConnectionProfile) -> Any:
        import aioodbc

        return await aioodbc.connect(
            dsn=build_connection_string(profile),
            autocommit=True,
            timeout=max(int(profile.connect_timeout), 1),
        )

    async def _close_connection(self, conn: Any) -> None:
        await conn.close()

    async def _fetch(self, conn: Any, sql: str, params: Optional[Sequence[Any]] = None) -> Tuple[List[str], Rows]:
        async with conn.cursor() as cursor:
            await cursor.execute(sql, *(params or ()))
            if not cursor.description:
                return [], []
            columns = [desc[0] for desc in cursor.description]
            rows = await cursor.fetchall()
            return columns, [list(row) for row in rows]

    async def _execute(self, conn: Any, sql: str, params: Optional[Sequence[Any]] = None) -> int:
        async with conn.cursor() as cursor:
            await cursor.execute(sql, *(params or ()))
            return cursor.rowcount

    def _classify_error(self, exc: BaseException) -> Optional[ErrorKind]:
        # pyodbc errors carry the SQLSTATE as their first argument
        if type(exc).__module__ != "pyodbc" or not exc.args:
            return None
        sqlstate = str(exc.args[0])
        if sqlstate in ("HYT00", "HYT01"):
            return ErrorKind.TIMEOUT
        if sqlstate.startswith("08") or sqlstate == "28000":
            return ErrorKind.CONNECTION
        return ErrorKind.SQL_EXECUTION

    async def _list_databases(self, conn: Any, profile: ConnectionProfile) -> List[str]:
        _, rows = await self._fetch(conn, _LIST_DATABASES_SQL)
        return [str(row[0]) for row in rows]

    def _table_from_row(self, row: Sequence[Any]) -> TableDescriptor:
        return TableDescriptor(
            name=str(row[0]),
            comment=row[1],
            row_count_estimate=to_int(row[2]),
            size_bytes=to_int(row[3]),
            last_updated=row[4],
        )

    async def _list_tables(self, conn: Any, profile: ConnectionProfile,
                           database: Optional[str]) -> List[TableDescriptor]:
        schema = self._schema(profile, Operation.GET_TABLES)
        sql = _TABLES_SQL.format(db=self.dialect.quote(database, what="database")) + " ORDER BY t.name"
        _, rows = await self._fetch(conn, sql, (schema,))
        return [self._table_from_row(row) for row in rows]

    async def _describe_table(self, conn: Any, profile: ConnectionProfile,
                              database: Optional[str], table: str) -> Optional[TableDescriptor]:
        schema = self._schema(profile, Operation.GET_TABLE_INFO)
        db = self.dialect.quote(database, what="database")
        _, rows = await self._fetch(conn, _TABLES_SQL.format(db=db) + " AND t.name = ?", (schema, table))
        if not rows:
            return None

        descriptor = self._table_from_row(rows[0])
        object_name = self.dialect.qualify(database, schema, table)
        sql = _COLUMNS_SQL.format(db=db, object_name=object_name)
        _, column_rows = await self._fetch(conn, sql, (schema, table) * 3)
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
                charset=row[8],
                collation=row[9],
                is_primary_key=to_bool(row[10]),
                is_foreign_key=to_bool(row[11]),
            )
            for row in column_rows
        ]
        return descriptor
