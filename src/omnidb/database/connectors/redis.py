# src/omnidb/database/connectors/redis.py
"""Redis connector built on redis.asyncio.

Redis has no tables. The connector maps the uniform contract onto the key
space:

    databases   key-space indexes "0".."N-1"
    tables      keys found by a bounded SCAN walk
    table info  type-specific pseudo columns of one key
    table rows  a single ``[key, type, value, ttl]`` row

Statements are single Redis commands from a fixed allow-list.
"""

import shlex
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, FrozenSet, List, Optional, Sequence, Tuple

import redis.asyncio as redis
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import RedisError, ResponseError
from redis.exceptions import TimeoutError as RedisTimeoutError

from ...config.models import ConnectionProfile
from ...core.engines import EngineType
from ...core.exceptions import ErrorKind, Operation, StructuredError
from ..base import BaseConnector, Rows
from ..models import ColumnDescriptor, MutationResult, TableDescriptor, TabularResult, to_int

DEFAULT_DATABASE_COUNT = 16
DEFAULT_KEY_PATTERN = "*"
DEFAULT_SCAN_LIMIT = 1000
SCAN_COUNT = 100
PREVIEW_ELEMENTS = 10

QUERY_COMMANDS: FrozenSet[str] = frozenset({
    "KEYS", "GET", "HGETALL", "LRANGE", "SMEMBERS", "SCARD", "TYPE", "TTL", "EXISTS", "INFO",
})
MUTATION_COMMANDS: FrozenSet[str] = frozenset({
    "SET", "DEL", "HSET", "LPUSH", "RPUSH", "SADD", "EXPIRE",
})

ROW_COLUMNS = ["key", "type", "value", "ttl"]
KEYS_COLUMNS = ["key", "type", "ttl"]
GET_COLUMNS = ["key", "value", "type", "ttl"]


def parse_command(statement: str, allowed: FrozenSet[str], operation: Operation) -> Tuple[str, List[str]]:
    """Split a command line into an upper-cased command name and its arguments.

    Raises:
        StructuredError: VALIDATION for unbalanced quotes, an empty line or a
            command outside ``allowed``
    """
    try:
        parts = shlex.split(statement)
    except ValueError as e:
        raise StructuredError.validation(f"Cannot parse Redis command: {e}", operation=operation) from e
    if not parts:
        raise StructuredError.validation("Redis command must not be empty", operation=operation)

    name = parts[0].upper()
    if name not in allowed:
        raise StructuredError.validation(
            f"Unsupported Redis command: {name}",
            operation=operation,
            context={"supported": sorted(allowed)},
        )
    return name, parts[1:]


def reply_to_rows(reply: Any) -> Tuple[List[str], Rows]:
    """Shape a command reply as a table."""
    if isinstance(reply, dict):
        return ["field", "value"], [[field, value] for field, value in reply.items()]
    if isinstance(reply, (set, frozenset)):
        return ["value"], [[value] for value in sorted(reply, key=str)]
    if isinstance(reply, (list, tuple)):
        return ["value"], [[value] for value in reply]
    return ["value"], [[reply]]


class RedisConnector(BaseConnector):
    """Redis connector implementation."""

    engine = EngineType.REDIS
    probe_statement = "PING"
    # Glob patterns such as cache/* are ordinary key text here
    statement_fragments = ()

    @staticmethod
    def _index(value: Optional[str]) -> int:
        return int(value) if value else 0

    def _resolve_namespace(self, profile: ConnectionProfile, database: Optional[str],
                           operation: Operation) -> Optional[str]:
        index = database if database not in (None, "") else (profile.database or "0")
        if not str(index).isdigit():
            raise StructuredError.validation(
                f"Redis database must be a key-space index, got {index!r}",
                operation=operation,
            )
        return str(int(index))

    def _check_table_name(self, table: Optional[str], operation: Operation) -> str:
        # Keys are binary-safe strings and never interpolated into a statement
        if table is None or not str(table):
            raise StructuredError.validation("Key must not be empty", operation=operation)
        return str(table)

    async def _open_connection(self, profile: ConnectionProfile) -> Any:
        client = redis.Redis(
            host=profile.host,
            port=profile.effective_port,
            db=self._index(profile.database),
            username=profile.username or None,
            password=profile.secret_value(),
            socket_connect_timeout=profile.connect_timeout,
            socket_timeout=profile.query_timeout,
            decode_responses=True,
            **profile.extra_parameters,
        )
        # The client connects lazily; force the handshake so bad hosts fail here
        try:
            await client.ping()
        except BaseException:
            await client.aclose()
            raise
        return client

    async def _close_connection(self, conn: Any) -> None:
        await conn.aclose()

    async def _probe(self, conn: Any) -> None:
        await conn.ping()

    @asynccontextmanager
    async def _keyspace(self, conn: Any, profile: ConnectionProfile, database: Optional[str]) -> AsyncIterator[Any]:
        """Yield a client on ``database``, opening a side client for a foreign index."""
        if database is None or int(database) == self._index(profile.database):
            yield conn
            return
        client = await self._open_connection(profile.with_overrides(database=database))
        try:
            yield client
        finally:
            await self._safe_close(client)

    def _classify_error(self, exc: BaseException) -> Optional[ErrorKind]:
        if isinstance(exc, RedisTimeoutError):
            return ErrorKind.TIMEOUT
        if isinstance(exc, RedisConnectionError):
            return ErrorKind.CONNECTION
        if isinstance(exc, RedisError):
            return ErrorKind.SQL_EXECUTION
        return None

    async def _fetch(self, conn: Any, sql: str, params: Optional[Sequence[Any]] = None) -> Tuple[List[str], Rows]:
        name, args = parse_command(sql, QUERY_COMMANDS, Operation.EXECUTE_QUERY)
        reply = await conn.execute_command(name, *args)
        if name == "KEYS":
            rows = []
            for key in sorted(reply or (), key=str):
                rows.append([key, await conn.type(key), await conn.ttl(key)])
            return list(KEYS_COLUMNS), rows
        if name == "GET" and len(args) == 1:
            key = args[0]
            return list(GET_COLUMNS), [[key, reply, await conn.type(key), await conn.ttl(key)]]
        return reply_to_rows(reply)

    async def _execute(self, conn: Any, sql: str, params: Optional[Sequence[Any]] = None) -> int:
        name, args = parse_command(sql, MUTATION_COMMANDS, Operation.EXECUTE_MUTATION)
        reply = await conn.execute_command(name, *args)
        if name in ("LPUSH", "RPUSH"):
            # The reply is the new list length, not the number of pushed values
            return max(len(args) - 1, 0)
        if name == "SET":
            return 1 if reply else 0
        return to_int(reply) or 0

    async def execute_query(self, profile: Optional[ConnectionProfile], statement: Optional[str],
                            *, pool: Any = None) -> TabularResult:
        """Run one read command (``KEYS``, ``GET``, ``HGETALL`` ...)."""
        profile = self.validate_profile(profile, Operation.EXECUTE_QUERY)
        parse_command(statement or "", QUERY_COMMANDS, Operation.EXECUTE_QUERY)
        return await super().execute_query(profile, statement, pool=pool)

    async def execute_mutation(self, profile: Optional[ConnectionProfile], statement: Optional[str],
                               *, pool: Any = None) -> MutationResult:
        """Run one write command (``SET``, ``DEL``, ``HSET`` ...)."""
        profile = self.validate_profile(profile, Operation.EXECUTE_MUTATION)
        parse_command(statement or "", MUTATION_COMMANDS, Operation.EXECUTE_MUTATION)
        return await super().execute_mutation(profile, statement, pool=pool)

    async def _list_databases(self, conn: Any, profile: ConnectionProfile) -> List[str]:
        try:
            reply = await conn.config_get("databases")
            count = to_int(reply.get("databases")) or DEFAULT_DATABASE_COUNT
        except ResponseError:
            # CONFIG is often disabled on managed services
            count = DEFAULT_DATABASE_COUNT
        return [str(index) for index in range(count)]

    async def _list_tables(self, conn: Any, profile: ConnectionProfile,
                           database: Optional[str]) -> List[TableDescriptor]:
        pattern = profile.option("key_pattern", DEFAULT_KEY_PATTERN)
        limit = to_int(profile.option("scan_limit")) or DEFAULT_SCAN_LIMIT

        async with self._keyspace(conn, profile, database) as client:
            keys: dict = {}
            cursor = 0
            while True:
                cursor, batch = await client.scan(cursor=cursor, match=pattern, count=SCAN_COUNT)
                for key in batch:
                    keys.setdefault(key, None)
                if int(cursor) == 0 or len(keys) >= limit:
                    break

            tables = []
            for key in list(keys)[:limit]:
                key_type = await client.type(key)
                tables.append(TableDescriptor(name=key, comment="Redis key", kind=key_type, row_count_estimate=1))
            return tables

    async def _describe_table(self, conn: Any, profile: ConnectionProfile,
                              database: Optional[str], table: str) -> Optional[TableDescriptor]:
        async with self._keyspace(conn, profile, database) as client:
            key_type = await client.type(table)
            if key_type == "none":
                return None
            columns = await self._key_columns(client, table, key_type)
        return TableDescriptor(
            name=table,
            comment=f"Redis key type: {key_type}",
            kind=key_type,
            row_count_estimate=1,
            columns=columns,
        )

    async def _key_columns(self, client: Any, key: str, key_type: str) -> List[ColumnDescriptor]:
        if key_type == "string":
            value = await client.get(key)
            return [ColumnDescriptor("value", "string", comment="String value", default_value=value)]

        if key_type == "hash":
            fields = await client.hgetall(key)
            return [ColumnDescriptor(str(field), "string", comment="Hash field", default_value=value)
                    for field, value in fields.items()]

        if key_type == "list":
            size = await client.llen(key)
            elements = await client.lrange(key, 0, PREVIEW_ELEMENTS - 1)
            columns = [ColumnDescriptor("size", "integer", nullable=False, comment="List size", default_value=size)]
            columns.extend(ColumnDescriptor(f"element_{index}", "string", comment="List element", default_value=value)
                           for index, value in enumerate(elements))
            return columns

        if key_type == "set":
            members = sorted(await client.smembers(key), key=str)
            return [ColumnDescriptor(f"member_{index}", "string", comment="Set member", default_value=member)
                    for index, member in enumerate(members)]

        if key_type == "zset":
            scored = await client.zrange(key, 0, -1, withscores=True)
            return [ColumnDescriptor(str(member), "double", comment="Sorted set score", default_value=score)
                    for member, score in scored]

        return [ColumnDescriptor("value", key_type, comment=f"Redis {key_type} value")]

    async def _key_value(self, client: Any, key: str, key_type: str) -> Any:
        if key_type == "string":
            return await client.get(key)
        if key_type == "hash":
            return await client.hgetall(key)
        if key_type == "list":
            return await client.lrange(key, 0, PREVIEW_ELEMENTS - 1)
        if key_type == "set":
            return sorted(await client.smembers(key), key=str)
        if key_type == "zset":
            return [[member, score] for member, score in await client.zrange(key, 0, PREVIEW_ELEMENTS - 1, withscores=True)]
        return None

    async def _fetch_page(
        self,
        conn: Any,
        profile: ConnectionProfile,
        database: Optional[str],
        table: str,
        page: int,
        page_size: int,
        sort_column: Optional[str],
        sort_direction: Optional[str],
    ) -> Tuple[List[str], Rows, int]:
        async with self._keyspace(conn, profile, database) as client:
            key_type = await client.type(table)
            if key_type == "none":
                raise StructuredError.not_found(
                    f"Key does not exist: {table}",
                    operation=Operation.GET_TABLE_DATA,
                    context={"config_id": profile.id, "database": database},
                )
            value = await self._key_value(client, table, key_type)
            ttl = await client.ttl(table)
        return list(ROW_COLUMNS), [[table, key_type, value, ttl]], 1
