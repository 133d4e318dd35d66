"""Database-layer test fixtures.

``FakeConnector`` implements the driver hooks against in-memory tables so
the connector template, pools, lifecycle manager and service facade can be
exercised without a server.
"""

import asyncio
from typing import Any, Dict, List, Optional

import pytest

from omnidb.config.models import ConnectionProfile, PoolConfig
from omnidb.config.store import StaticProfileStore
from omnidb.core.engines import EngineType
from omnidb.database.base import BaseConnector
from omnidb.database.models import ColumnDescriptor, TableDescriptor
from omnidb.database.registry import ConnectorRegistry


class FakeConnection:
    def __init__(self, number: int) -> None:
        self.number = number
        self.closed = False
        self.healthy = True

    def __repr__(self) -> str:
        return f"FakeConnection({self.number})"


class FakeConnector(BaseConnector):
    """In-memory MySQL-tagged connector."""

    engine = EngineType.MYSQL

    def __init__(self, pool_config: Optional[PoolConfig] = None, *, reachable: bool = True) -> None:
        super().__init__(pool_config)
        self.reachable = reachable
        self.connect_delay = 0.0
        self.fetch_delay = 0.0
        self.fetch_error: Optional[BaseException] = None
        self.opened: List[FakeConnection] = []
        self.closed: List[FakeConnection] = []
        self.statements: List[str] = []
        self.tables: Dict[str, List[List[Any]]] = {
            "users": [[1, "alice"], [2, "bob"], [3, "carol"]],
        }

    async def _open_connection(self, profile: ConnectionProfile) -> Any:
        if self.connect_delay:
            await asyncio.sleep(self.connect_delay)
        if not self.reachable:
            raise ConnectionRefusedError(f"connection refused by {profile.host}")
        conn = FakeConnection(len(self.opened) + 1)
        self.opened.append(conn)
        return conn

    async def _close_connection(self, conn: Any) -> None:
        conn.closed = True
        self.closed.append(conn)

    async def _probe(self, conn: Any) -> None:
        if not self.reachable or not conn.healthy:
            raise ConnectionResetError("server has gone away")

    async def _fetch(self, conn, sql, params=None):
        if self.fetch_delay:
            await asyncio.sleep(self.fetch_delay)
        if self.fetch_error is not None:
            raise self.fetch_error
        self.statements.append(sql)
        return ["id", "name"], [list(row) for row in self.tables["users"]]

    async def _execute(self, conn, sql, params=None):
        if self.fetch_error is not None:
            raise self.fetch_error
        self.statements.append(sql)
        return 2

    async def _list_databases(self, conn, profile):
        return ["analytics", "testdb"]

    async def _list_tables(self, conn, profile, database):
        return [
            TableDescriptor(name=name, row_count_estimate=len(rows))
            for name, rows in sorted(self.tables.items())
        ]

    async def _describe_table(self, conn, profile, database, table):
        if table not in self.tables:
            return None
        return TableDescriptor(
            name=table,
            row_count_estimate=len(self.tables[table]),
            columns=[
                ColumnDescriptor("id", "int", nullable=False, is_primary_key=True),
                ColumnDescriptor("name", "varchar(64)", max_length=64),
            ],
        )

    async def _fetch_page(self, conn, profile, database, table, page, page_size, sort_column, sort_direction):
        rows = self.tables[table]
        if sort_column == "id":
            rows = sorted(rows, key=lambda row: row[0], reverse=sort_direction == "DESC")
        offset = (page - 1) * page_size
        return ["id", "name"], rows[offset:offset + page_size], len(rows)


class FakePostgresConnector(FakeConnector):
    engine = EngineType.POSTGRESQL


@pytest.fixture
def fake_connector_cls():
    return FakeConnector


@pytest.fixture
def fake_postgres_connector_cls():
    return FakePostgresConnector


@pytest.fixture
def fake_connector() -> FakeConnector:
    return FakeConnector(PoolConfig(min_size=1, max_size=2, acquire_timeout=0.2))


@pytest.fixture
def registry(fake_connector) -> ConnectorRegistry:
    registry = ConnectorRegistry()
    registry.register(EngineType.MYSQL, fake_connector)
    return registry


@pytest.fixture
def profile_store(make_profile) -> StaticProfileStore:
    return StaticProfileStore([
        make_profile("mysql", id="1"),
        make_profile("mysql", id="2", enabled=False),
        make_profile("postgresql", id="3"),
    ])
