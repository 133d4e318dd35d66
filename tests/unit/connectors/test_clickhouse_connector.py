"""Unit tests for the ClickHouse connector with a mocked clickhouse-connect client."""

from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest
import pytest_asyncio
from clickhouse_connect.driver.exceptions import DatabaseError, OperationalError

from omnidb.core.exceptions import ErrorKind, StructuredError
from omnidb.database.connectors.clickhouse import ClickHouseConnector


def query_result(columns, rows):
    return SimpleNamespace(column_names=tuple(columns), result_rows=[tuple(row) for row in rows])


@pytest.fixture
def mock_client():
    """Mock synchronous clickhouse-connect client."""
    client = MagicMock()
    client.command.return_value = 1
    client.query.return_value = query_result(["name"], [("default",), ("system",)])
    return client


@pytest.fixture
def clickhouse_profile(make_profile):
    return make_profile("clickhouse", database="events")


@pytest_asyncio.fixture
async def connector():
    connector = ClickHouseConnector()
    yield connector
    await connector.shutdown()


class TestClickHouseConnector:

    @pytest.mark.asyncio
    async def test_connection_success(self, connector, clickhouse_profile, mock_client):
        with patch("clickhouse_connect.get_client", return_value=mock_client) as mock_get_client:
            assert await connector.test_connection(clickhouse_profile) is True

        kwargs = mock_get_client.call_args.kwargs
        assert kwargs["port"] == 8123
        assert kwargs["database"] == "events"
        assert kwargs["connect_timeout"] == 1.0
        mock_client.command.assert_called_once_with("SELECT 1")
        mock_client.close.assert_called_once()

    @pytest.mark.asyncio
    async def test_unreachable_server(self, connector, clickhouse_profile):
        error = OperationalError("Error HTTPConnectionPool(host='localhost', port=8123): Max retries exceeded")

        with patch("clickhouse_connect.get_client", side_effect=error):
            assert await connector.test_connection(clickhouse_profile) is False

    @pytest.mark.asyncio
    async def test_list_databases(self, connector, clickhouse_profile, mock_client):
        with patch("clickhouse_connect.get_client", return_value=mock_client):
            assert await connector.list_databases(clickhouse_profile) == ["default", "system"]

    @pytest.mark.asyncio
    async def test_mutation_reports_written_rows(self, connector, clickhouse_profile, mock_client):
        mock_client.command.return_value = SimpleNamespace(written_rows=3)

        with patch("clickhouse_connect.get_client", return_value=mock_client):
            result = await connector.execute_mutation(clickhouse_profile, "INSERT INTO hits SELECT * FROM staging")

        assert result.affected_rows == 3

    @pytest.mark.asyncio
    async def test_ddl_reports_zero(self, connector, clickhouse_profile, mock_client):
        mock_client.command.return_value = ""

        with patch("clickhouse_connect.get_client", return_value=mock_client):
            result = await connector.execute_mutation(clickhouse_profile, "CREATE TABLE t (x UInt8) ENGINE = Memory")

        assert result.affected_rows == 0

    @pytest.mark.asyncio
    async def test_server_error_is_sql_execution(self, connector, clickhouse_profile, mock_client):
        mock_client.query.side_effect = DatabaseError("Code: 60. DB::Exception: Table events.ghosts does not exist")

        with patch("clickhouse_connect.get_client", return_value=mock_client):
            with pytest.raises(StructuredError) as exc_info:
                await connector.execute_query(clickhouse_profile, "SELECT * FROM ghosts")

        assert exc_info.value.kind is ErrorKind.SQL_EXECUTION
        mock_client.close.assert_called_once()

    @pytest.mark.asyncio
    async def test_list_tables_parameters(self, connector, clickhouse_profile, mock_client):
        mock_client.query.return_value = query_result(
            ["name"],
            [("hits", "", "MergeTree", 1000, 4096, None, 0), ("hits_mv", "", "MaterializedView", None, None, None, 0)],
        )

        with patch("clickhouse_connect.get_client", return_value=mock_client):
            tables = await connector.list_tables(clickhouse_profile)

        assert mock_client.query.call_args.kwargs["parameters"] == {"db": "events"}
        assert [(t.name, t.kind) for t in tables] == [("hits", "TABLE"), ("hits_mv", "VIEW")]

    @pytest.mark.asyncio
    async def test_describe_table(self, connector, clickhouse_profile, mock_client):
        mock_client.query.side_effect = [
            query_result(["name"], [("hits", "Page hits", "MergeTree", 1000, 4096, None, 0)]),
            query_result(["name"], [("id", "UInt64", "", "", 1), ("referrer", "Nullable(String)", "", "", 0)]),
        ]

        with patch("clickhouse_connect.get_client", return_value=mock_client):
            table = await connector.describe_table(clickhouse_profile, None, "hits")

        assert table.primary_key == ["id"]
        assert table.columns[0].nullable is False
        assert table.columns[1].nullable is True

    @pytest.mark.asyncio
    async def test_fetch_table_rows_sql(self, connector, clickhouse_profile, mock_client):
        mock_client.query.side_effect = [
            query_result(["id"], [(1,)]),
            query_result(["count()"], [(1,)]),
        ]

        with patch("clickhouse_connect.get_client", return_value=mock_client):
            await connector.fetch_table_rows(clickhouse_profile, None, "hits", 1, 50, "id", "DESC")

        statements = [call.args[0] for call in mock_client.query.call_args_list]
        assert statements == [
            "SELECT * FROM `events`.`hits` ORDER BY `id` DESC LIMIT 50 OFFSET 0",
            "SELECT COUNT(*) FROM `events`.`hits`",
        ]

    @pytest.mark.asyncio
    async def test_shutdown_releases_executor(self, clickhouse_profile, mock_client):
        connector = ClickHouseConnector()
        with patch("clickhouse_connect.get_client", return_value=mock_client):
            await connector.list_databases(clickhouse_profile)
        executor = connector._executor

        await connector.shutdown()

        assert connector._executor is None
        assert executor._shutdown
        assert connector.is_shut_down

    @pytest.mark.asyncio
    async def test_reuse_after_shutdown_is_released_again(self, clickhouse_profile, mock_client):
        connector = ClickHouseConnector()
        await connector.shutdown()

        with patch("clickhouse_connect.get_client", return_value=mock_client):
            await connector.list_databases(clickhouse_profile)
        executor = connector._executor
        assert not connector.is_shut_down

        await connector.shutdown()

        assert connector._executor is None
        assert executor._shutdown
