"""
OmniDB Database Layer

This module provides one uniform, asynchronous operation contract over many
database engines: connectivity probes, read and write statements, catalog
listing, table description and paginated table browsing.

Key Features:
- Unified connector interface with validation before any I/O
- Per-configuration connection pools created only after a successful probe
- Structured errors carrying the failed operation and a stable error kind
- Dialect-aware identifier quoting and pagination

Supported Engines:
- MySQL / MariaDB / TiDB (aiomysql)
- PostgreSQL (asyncpg)
- Oracle Database (oracledb)
- Microsoft SQL Server (aioodbc)
- ClickHouse (clickhouse-connect)
- Redis (redis.asyncio)
- MongoDB / Elasticsearch (registered placeholders)
"""

from .models import (
    ColumnDescriptor,
    MutationResult,
    TableDescriptor,
    TabularResult,
    unique_column_names,
)

from .base import BaseConnector, SqlConnector
from .dialects import Dialect, PaginationStyle
from .pool import ConnectionPool
from .registry import ConnectorRegistry
from .lifecycle import ConnectionLifecycleManager, PoolState
from .service import DatabaseService
from .factory import create_default_registry, create_service

# Engine connectors
from .connectors import (
    BUILTIN_CONNECTORS,
    ClickHouseConnector,
    ElasticsearchConnector,
    MariaDBConnector,
    MongoDBConnector,
    MySQLConnector,
    OracleConnector,
    PostgreSQLConnector,
    RedisConnector,
    SQLServerConnector,
    TiDBConnector,
    UnimplementedConnector,
)

__all__ = [
    # Models
    "ColumnDescriptor",
    "MutationResult",
    "TableDescriptor",
    "TabularResult",
    "unique_column_names",

    # Core classes
    "BaseConnector",
    "SqlConnector",
    "Dialect",
    "PaginationStyle",
    "ConnectionPool",
    "ConnectorRegistry",
    "ConnectionLifecycleManager",
    "PoolState",
    "DatabaseService",
    "create_default_registry",
    "create_service",

    # Connectors
    "BUILTIN_CONNECTORS",
    "ClickHouseConnector",
    "ElasticsearchConnector",
    "MariaDBConnector",
    "MongoDBConnector",
    "MySQLConnector",
    "OracleConnector",
    "PostgreSQLConnector",
    "RedisConnector",
    "SQLServerConnector",
    "TiDBConnector",
    "UnimplementedConnector",
]
