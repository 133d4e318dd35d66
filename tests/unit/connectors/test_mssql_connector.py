"""Unit tests for the SQL Server connector.

aioodbc is swapped for a stub module in ``sys.modules`` so the tests run on
hosts without the unixODBC runtime.
"""

import sys
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from omnidb.core.exceptions import ErrorKind, StructuredError
from omnidb.database.connectors.mssql import SQLServerConnector, build_connection_string


class PyodbcError(Exception):
    pass


class PyodbcOperationalError(PyodbcError):
    pass


PyodbcError.__module__ = "pyodbc"
PyodbcOperationalError.__module__ = "pyodbc"


def make_cursor(columns=None, rows=(), rowcount=0):
    cursor = AsyncMock()
    cursor.description = [(name,) for name in columns] if columns is not None else None
    cursor.fetchall.return_value = list(rows)
    cursor.rowcount = rowcount
    return cursor


def attach_cursors(connection, *cursors):
    contexts = []
    for cursor in cursors:
        context = MagicMock()
        context.__aenter__ = AsyncMock(return_value=cursor)
        context.__aexit__ = AsyncMock(return_value=None)
        contexts.append(context)
    connection.cursor.side_effect = contexts


@pytest.fixture
def mock_connection():
    connection = MagicMock()
    connection.close = AsyncMock()
    attach_cursors(connection, make_cursor([""], [(1,)]))
    return connection


@pytest.fixture
def mock_aioodbc(mock_connection):
    module = SimpleNamespace(connect=AsyncMock(return_value=mock_connection))
    with patch.dict(sys.modules, {"aioodbc": module}):
        yield module


@pytest.fixture
def mssql_profile(make_profile):
    return make_profile("sqlserver", database="sales", password="p@ss;word")


@pytest.fixture
def connector():
    return SQLServerConnector()


class TestConnectionString:

    def test_defaults(self, mssql_profile):
        conn_str = build_connection_string(mssql_profile)

        assert conn_str.startswith("DRIVER={ODBC Driver 18 for SQL Server};SERVER=localhost,1433;DATABASE=sales;")
        assert "UID=test_user" in conn_str
        assert "TrustServerCertificate=yes" in conn_str

    def test_options_and_extra_parameters(self, make_profile):
        profile = make_profile(
            "sqlserver",
            database=None,
            port=14330,
            options={"driver": "FreeTDS", "trust_server_certificate": "no"},
            extra_parameters={"Encrypt": "yes"},
        )

        conn_str = build_connection_string(profile)

        assert "DRIVER={FreeTDS}" in conn_str
        assert "SERVER=localhost,14330" in conn_str
        assert "DATABASE=master" in conn_str
        assert "TrustServerCertificate=no" in conn_str
        assert conn_str.endswith("Encrypt=yes")


class TestSQLServerConnector:

    @pytest.mark.asyncio
    async def test_connection_success(self, connector, mssql_profile, mock_aioodbc, mock_connection):
        assert await connector.test_connection(mssql_profile) is True

        kwargs = mock_aioodbc.connect.call_args.kwargs
        assert kwargs["autocommit"] is True
        assert kwargs["timeout"] == 1
        assert "PWD=p@ss;word" in kwargs["dsn"]
        mock_connection.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_login_failure_is_redacted(self, connector, mssql_profile, mock_aioodbc):
        mock_aioodbc.connect.side_effect = PyodbcError(
            "28000", "[28000] Login failed for user 'test_user'. (18456) PWD=p@ss"
        )

        with pytest.raises(StructuredError) as exc_info:
            await connector.list_databases(mssql_profile)

        assert exc_info.value.kind is ErrorKind.CONNECTION
        assert "p@ss" not in exc_info.value.message

    @pytest.mark.parametrize("error,kind", [
        (PyodbcError("HYT00", "[HYT00] Query timeout expired"), ErrorKind.TIMEOUT),
        (PyodbcOperationalError("08S01", "[08S01] Communication link failure"), ErrorKind.CONNECTION),
        (PyodbcError("42S02", "[42S02] Invalid object name 'ghosts'"), ErrorKind.SQL_EXECUTION),
        (RuntimeError("42S02"), None),
    ])
    def test_classification(self, connector, error, kind):
        assert connector._classify_error(error) is kind

    @pytest.mark.asyncio
    async def test_fetch_table_rows_uses_three_part_names(self, connector, make_profile, mock_aioodbc, mock_connection):
        profile = make_profile("sqlserver", database="sales", options={"schema": "crm"})
        page = make_cursor(["id"], [(1,), (2,)])
        count = make_cursor([""], [(2,)])
        attach_cursors(mock_connection, page, count)

        result = await connector.fetch_table_rows(profile, None, "customers", 1, 10)

        assert page.execute.call_args.args[0] == (
            "SELECT * FROM [sales].[crm].[customers] ORDER BY (SELECT NULL) OFFSET 0 ROWS FETCH NEXT 10 ROWS ONLY"
        )
        assert count.execute.call_args.args[0] == "SELECT COUNT(*) FROM [sales].[crm].[customers]"
        assert result.total_rows == 2

    @pytest.mark.asyncio
    async def test_list_tables_filters_schema(self, connector, mssql_profile, mock_aioodbc, mock_connection):
        cursor = make_cursor(["name"], [("orders", "Sales orders", 10, 16384, None)])
        attach_cursors(mock_connection, cursor)

        tables = await connector.list_tables(mssql_profile)

        sql, schema = cursor.execute.call_args.args
        assert "FROM [sales].sys.tables t" in sql
        assert schema == "dbo"
        assert tables[0].comment == "Sales orders"
        assert tables[0].row_count_estimate == 10

    @pytest.mark.asyncio
    async def test_execute_mutation(self, connector, mssql_profile, mock_aioodbc, mock_connection):
        attach_cursors(mock_connection, make_cursor(rowcount=7))

        result = await connector.execute_mutation(mssql_profile, "UPDATE orders SET status = 'shipped'")

        assert result.affected_rows == 7

    @pytest.mark.asyncio
    async def test_invalid_schema_option(self, connector, make_profile, mock_aioodbc, mock_connection):
        profile = make_profile("sqlserver", database="sales", options={"schema": "crm]; DROP"})
        attach_cursors(mock_connection, make_cursor(["id"], []))

        with pytest.raises(StructuredError) as exc_info:
            await connector.fetch_table_rows(profile, None, "customers")

        assert exc_info.value.kind is ErrorKind.VALIDATION
