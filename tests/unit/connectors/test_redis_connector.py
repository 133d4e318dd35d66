"""Unit tests for the Redis connector against an in-memory client double."""

from fnmatch import fnmatchcase
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import ResponseError

from omnidb.core.exceptions import ErrorKind, Operation, StructuredError
from omnidb.database.connectors.redis import RedisConnector, parse_command, reply_to_rows


class FakeServer:
    """Key spaces shared by every client opened against one fake server."""

    def __init__(self):
        self.keyspaces = {0: {}, 2: {}}
        self.ttls = {}
        self.config_disabled = False
        self.scan_pages = None


class FakeRedis:
    """Subset of the redis.asyncio client used by the connector."""

    def __init__(self, server, db):
        self.server = server
        self.db = db
        self.closed = False
        self.commands = []

    @property
    def data(self):
        return self.server.keyspaces.setdefault(self.db, {})

    async def ping(self):
        return True

    async def aclose(self):
        self.closed = True

    async def execute_command(self, name, *args):
        self.commands.append((name, *args))
        if name == "GET":
            return self.data.get(args[0])
        if name == "HGETALL":
            return dict(self.data.get(args[0], {}))
        if name == "KEYS":
            return [key for key in self.data if fnmatchcase(key, args[0])]
        if name == "SET":
            self.data[args[0]] = args[1]
            return True
        if name in ("RPUSH", "LPUSH"):
            values = self.data.setdefault(args[0], [])
            values.extend(args[1:])
            return len(values)
        if name == "DEL":
            return sum(1 for key in args if self.data.pop(key, None) is not None)
        raise ResponseError(f"unknown command '{name}'")

    async def config_get(self, pattern):
        if self.server.config_disabled:
            raise ResponseError("unknown command 'CONFIG'")
        return {"databases": "4"}

    async def scan(self, cursor=0, match=None, count=None):
        if self.server.scan_pages is not None:
            return self.server.scan_pages[cursor]
        return 0, sorted(self.data)

    async def type(self, key):
        value = self.data.get(key)
        if value is None:
            return "none"
        if isinstance(value, dict):
            return "hash"
        if isinstance(value, list):
            return "list"
        if isinstance(value, set):
            return "set"
        return "string"

    async def get(self, key):
        return self.data.get(key)

    async def hgetall(self, key):
        return dict(self.data[key])

    async def llen(self, key):
        return len(self.data[key])

    async def lrange(self, key, start, end):
        return self.data[key][start:end + 1]

    async def smembers(self, key):
        return set(self.data[key])

    async def ttl(self, key):
        return self.server.ttls.get(key, -1)


class InMemoryRedisConnector(RedisConnector):
    def __init__(self, server):
        super().__init__()
        self.server = server
        self.clients = []

    async def _open_connection(self, profile):
        client = FakeRedis(self.server, self._index(profile.database))
        self.clients.append(client)
        return client


@pytest.fixture
def server():
    server = FakeServer()
    server.keyspaces[0].update({
        "user:1": {"name": "alice", "email": "alice@example.com"},
        "greeting": "hello",
        "queue": ["a", "b", "c"],
        "tags": {"red", "blue"},
    })
    server.keyspaces[2]["session:9"] = "token"
    server.ttls["greeting"] = 120
    return server


@pytest.fixture
def connector(server):
    return InMemoryRedisConnector(server)


@pytest.fixture
def redis_profile(make_profile):
    return make_profile("redis", database="0", username=None, password=None)


class TestCommandParsing:

    def test_quoted_arguments(self):
        assert parse_command('SET greeting "hello world"', frozenset({"SET"}), Operation.EXECUTE_MUTATION) == (
            "SET", ["greeting", "hello world"]
        )

    def test_case_insensitive_name(self):
        assert parse_command("hgetall user:1", frozenset({"HGETALL"}), Operation.EXECUTE_QUERY)[0] == "HGETALL"

    @pytest.mark.parametrize("statement", ["FLUSHALL", "", 'GET "unterminated'])
    def test_rejected_commands(self, statement):
        with pytest.raises(StructuredError) as exc_info:
            parse_command(statement, frozenset({"GET"}), Operation.EXECUTE_QUERY)

        assert exc_info.value.kind is ErrorKind.VALIDATION

    def test_reply_shapes(self):
        assert reply_to_rows({"a": "1"}) == (["field", "value"], [["a", "1"]])
        assert reply_to_rows({"b", "a"}) == (["value"], [["a"], ["b"]])
        assert reply_to_rows(["x", "y"]) == (["value"], [["x"], ["y"]])
        assert reply_to_rows(None) == (["value"], [[None]])


class TestRedisCommands:
    """Test execute_query/execute_mutation."""

    @pytest.mark.asyncio
    async def test_hgetall(self, connector, redis_profile):
        result = await connector.execute_query(redis_profile, "HGETALL user:1")

        assert result.columns == ["field", "value"]
        assert result.as_dicts() == [
            {"field": "name", "value": "alice"},
            {"field": "email", "value": "alice@example.com"},
        ]
        assert connector.clients[0].closed

    @pytest.mark.asyncio
    async def test_get(self, connector, redis_profile):
        result = await connector.execute_query(redis_profile, "GET greeting")

        assert result.columns == ["key", "value", "type", "ttl"]
        assert result.rows == [["greeting", "hello", "string", 120]]

    @pytest.mark.asyncio
    async def test_keys_reports_type_and_ttl(self, connector, redis_profile):
        result = await connector.execute_query(redis_profile, "KEYS *e*")

        assert result.columns == ["key", "type", "ttl"]
        assert result.rows == [["greeting", "string", 120], ["queue", "list", -1], ["user:1", "hash", -1]]

    @pytest.mark.asyncio
    async def test_keys_accepts_slash_glob(self, connector, redis_profile, server):
        server.keyspaces[0]["cache/home"] = "<html>"
        server.keyspaces[0]["cache/about"] = "<html>"

        result = await connector.execute_query(redis_profile, "KEYS cache/*")

        assert [row[0] for row in result.rows] == ["cache/about", "cache/home"]

    @pytest.mark.asyncio
    async def test_set_accepts_comment_like_value(self, connector, redis_profile, server):
        result = await connector.execute_mutation(redis_profile, "SET note \"a /* b */ c\"")

        assert result.affected_rows == 1
        assert server.keyspaces[0]["note"] == "a /* b */ c"

    @pytest.mark.asyncio
    async def test_disallowed_command_rejected_before_connecting(self, connector, redis_profile):
        with pytest.raises(StructuredError) as exc_info:
            await connector.execute_query(redis_profile, "FLUSHALL")

        assert exc_info.value.kind is ErrorKind.VALIDATION
        assert "FLUSHALL" in exc_info.value.message
        assert connector.clients == []

    @pytest.mark.asyncio
    async def test_mutation_command_not_allowed_as_query(self, connector, redis_profile):
        with pytest.raises(StructuredError):
            await connector.execute_query(redis_profile, "SET a b")

        assert connector.clients == []

    @pytest.mark.asyncio
    async def test_set_counts_one(self, connector, redis_profile, server):
        result = await connector.execute_mutation(redis_profile, "SET color blue")

        assert result.affected_rows == 1
        assert server.keyspaces[0]["color"] == "blue"

    @pytest.mark.asyncio
    async def test_rpush_counts_pushed_values(self, connector, redis_profile, server):
        result = await connector.execute_mutation(redis_profile, "RPUSH queue d e")

        assert result.affected_rows == 2
        assert server.keyspaces[0]["queue"] == ["a", "b", "c", "d", "e"]

    @pytest.mark.asyncio
    async def test_del_counts_removed_keys(self, connector, redis_profile):
        result = await connector.execute_mutation(redis_profile, "DEL greeting missing")

        assert result.affected_rows == 1
        assert result.message == "1 row(s) affected"

    @pytest.mark.asyncio
    async def test_server_error_is_sql_execution(self, connector, redis_profile):
        with patch.object(FakeRedis, "execute_command", AsyncMock(side_effect=ResponseError("WRONGTYPE"))):
            with pytest.raises(StructuredError) as exc_info:
                await connector.execute_query(redis_profile, "GET queue")

        assert exc_info.value.kind is ErrorKind.SQL_EXECUTION


class TestRedisCatalog:

    @pytest.mark.asyncio
    async def test_list_databases_from_config(self, connector, redis_profile):
        assert await connector.list_databases(redis_profile) == ["0", "1", "2", "3"]

    @pytest.mark.asyncio
    async def test_list_databases_without_config(self, connector, redis_profile, server):
        server.config_disabled = True

        databases = await connector.list_databases(redis_profile)

        assert len(databases) == 16
        assert databases[-1] == "15"

    @pytest.mark.asyncio
    async def test_list_tables_deduplicates_scan(self, connector, redis_profile, server):
        server.scan_pages = {0: (7, ["greeting", "queue"]), 7: (0, ["queue", "tags"])}

        tables = await connector.list_tables(redis_profile)

        assert [(t.name, t.kind) for t in tables] == [("greeting", "string"), ("queue", "list"), ("tags", "set")]
        assert all(t.columns == [] for t in tables)

    @pytest.mark.asyncio
    async def test_list_tables_honours_scan_limit(self, connector, make_profile):
        profile = make_profile("redis", database="0", options={"scan_limit": "2"})

        tables = await connector.list_tables(profile)

        assert len(tables) == 2

    @pytest.mark.asyncio
    async def test_foreign_keyspace_uses_side_client(self, connector, redis_profile):
        tables = await connector.list_tables(redis_profile, "2")

        assert [t.name for t in tables] == ["session:9"]
        assert [client.db for client in connector.clients] == [0, 2]
        assert all(client.closed for client in connector.clients)

    @pytest.mark.asyncio
    async def test_non_numeric_database_rejected(self, connector, redis_profile):
        with pytest.raises(StructuredError) as exc_info:
            await connector.list_tables(redis_profile, "users")

        assert exc_info.value.kind is ErrorKind.VALIDATION
        assert connector.clients == []

    @pytest.mark.asyncio
    async def test_describe_hash(self, connector, redis_profile):
        table = await connector.describe_table(redis_profile, None, "user:1")

        assert table.kind == "hash"
        assert [(c.name, c.default_value) for c in table.columns] == [
            ("name", "alice"), ("email", "alice@example.com"),
        ]

    @pytest.mark.asyncio
    async def test_describe_list_and_set(self, connector, redis_profile):
        queue = await connector.describe_table(redis_profile, None, "queue")
        tags = await connector.describe_table(redis_profile, None, "tags")

        assert queue.columns[0].name == "size"
        assert queue.columns[0].default_value == 3
        assert [c.name for c in queue.columns[1:]] == ["element_0", "element_1", "element_2"]
        assert [(c.name, c.default_value) for c in tags.columns] == [("member_0", "blue"), ("member_1", "red")]

    @pytest.mark.asyncio
    async def test_describe_missing_key(self, connector, redis_profile):
        with pytest.raises(StructuredError) as exc_info:
            await connector.describe_table(redis_profile, None, "nope")

        assert exc_info.value.kind is ErrorKind.NOT_FOUND

    @pytest.mark.asyncio
    async def test_fetch_key_row(self, connector, redis_profile):
        result = await connector.fetch_table_rows(redis_profile, None, "greeting")

        assert result.columns == ["key", "type", "value", "ttl"]
        assert result.rows == [["greeting", "string", "hello", 120]]
        assert result.total_rows == 1

    @pytest.mark.asyncio
    async def test_fetch_missing_key(self, connector, redis_profile):
        with pytest.raises(StructuredError) as exc_info:
            await connector.fetch_table_rows(redis_profile, None, "nope")

        assert exc_info.value.kind is ErrorKind.NOT_FOUND
        assert exc_info.value.operation is Operation.GET_TABLE_DATA


class TestRedisConnection:

    @pytest.mark.asyncio
    async def test_connection_success(self, connector, redis_profile):
        assert await connector.test_connection(redis_profile) is True

    @pytest.mark.asyncio
    async def test_failed_handshake_closes_client(self, make_profile):
        client = MagicMock()
        client.ping = AsyncMock(side_effect=RedisConnectionError("Error 111 connecting to localhost:6379"))
        client.aclose = AsyncMock()
        profile = make_profile("redis", database="2", password="hunter2")

        with patch("redis.asyncio.Redis", return_value=client) as mock_redis:
            assert await RedisConnector().test_connection(profile) is False

        kwargs = mock_redis.call_args.kwargs
        assert kwargs["db"] == 2
        assert kwargs["port"] == 6379
        assert kwargs["password"] == "hunter2"
        assert kwargs["decode_responses"] is True
        client.aclose.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_unreachable_server_is_connection_error(self, make_profile):
        client = MagicMock()
        client.ping = AsyncMock(side_effect=RedisConnectionError("Error 111 connecting to localhost:6379"))
        client.aclose = AsyncMock()

        with patch("redis.asyncio.Redis", return_value=client):
            with pytest.raises(StructuredError) as exc_info:
                await RedisConnector().list_databases(make_profile("redis", database="0"))

        assert exc_info.value.kind is ErrorKind.CONNECTION
