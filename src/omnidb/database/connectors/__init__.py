"""Built-in engine connectors."""

from .clickhouse import ClickHouseConnector
from .document import ElasticsearchConnector, MongoDBConnector, UnimplementedConnector
from .mssql import SQLServerConnector
from .mysql import MariaDBConnector, MySQLConnector, TiDBConnector
from .oracle import OracleConnector
from .postgresql import PostgreSQLConnector
from .redis import RedisConnector

BUILTIN_CONNECTORS = (
    MySQLConnector,
    MariaDBConnector,
    TiDBConnector,
    PostgreSQLConnector,
    OracleConnector,
    SQLServerConnector,
    ClickHouseConnector,
    RedisConnector,
    MongoDBConnector,
    ElasticsearchConnector,
)

__all__ = [
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
