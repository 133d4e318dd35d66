"""Engine catalogue.

Static table of every engine OmniDB knows about. Each member carries its
code, display name, default port, dialect family and URL prefix. Whether an
engine actually has a connector is decided by the registry, not here.

Example:
    >>> EngineType.from_code("PostgreSQL")
    <EngineType.POSTGRESQL: 'postgresql'>
    >>> EngineType.MYSQL.default_port
    3306
"""

from enum import Enum
from typing import List, Optional, Union

from .exceptions import Operation, StructuredError


class DialectFamily(str, Enum):
    """SQL/command conventions shared by wire-compatible engines."""

    MYSQL = "mysql"
    POSTGRESQL = "postgresql"
    ORACLE = "oracle"
    SQLSERVER = "sqlserver"
    CLICKHOUSE = "clickhouse"
    KEY_VALUE = "key_value"
    DOCUMENT = "document"
    SEARCH = "search"
    OTHER = "other"


class EngineType(Enum):
    """Supported engine identifiers.

    The enum value is the lowercase code; the remaining attributes are
    read-only metadata.
    """

    MYSQL = ("mysql", "MySQL", 3306, DialectFamily.MYSQL, "mysql://")
    MARIADB = ("mariadb", "MariaDB", 3306, DialectFamily.MYSQL, "mariadb://")
    TIDB = ("tidb", "TiDB", 4000, DialectFamily.MYSQL, "mysql://")
    OCEANBASE = ("oceanbase", "OceanBase", 2881, DialectFamily.MYSQL, "oceanbase://")
    POSTGRESQL = ("postgresql", "PostgreSQL", 5432, DialectFamily.POSTGRESQL, "postgresql://")
    ORACLE = ("oracle", "Oracle", 1521, DialectFamily.ORACLE, "oracle://")
    SQLSERVER = ("sqlserver", "SQL Server", 1433, DialectFamily.SQLSERVER, "mssql://")
    CLICKHOUSE = ("clickhouse", "ClickHouse", 8123, DialectFamily.CLICKHOUSE, "clickhouse://")
    REDIS = ("redis", "Redis", 6379, DialectFamily.KEY_VALUE, "redis://")
    MONGODB = ("mongodb", "MongoDB", 27017, DialectFamily.DOCUMENT, "mongodb://")
    ELASTICSEARCH = ("elasticsearch", "Elasticsearch", 9200, DialectFamily.SEARCH, "http://")
    DB2 = ("db2", "IBM Db2", 50000, DialectFamily.OTHER, "db2://")
    PRESTO = ("presto", "Presto", 8080, DialectFamily.OTHER, "presto://")
    TRINO = ("trino", "Trino", 8080, DialectFamily.OTHER, "trino://")
    TDENGINE = ("tdengine", "TDengine", 6030, DialectFamily.OTHER, "taos://")
    ETCD = ("etcd", "etcd", 2379, DialectFamily.KEY_VALUE, "http://")
    KAFKA = ("kafka", "Apache Kafka", 9092, DialectFamily.OTHER, "kafka://")
    ZOOKEEPER = ("zookeeper", "Apache ZooKeeper", 2181, DialectFamily.KEY_VALUE, "zk://")

    def __new__(cls, code: str, display_name: str, default_port: int,
                dialect_family: DialectFamily, url_prefix: str) -> "EngineType":
        member = object.__new__(cls)
        member._value_ = code
        member.code = code
        member.display_name = display_name
        member.default_port = default_port
        member.dialect_family = dialect_family
        member.url_prefix = url_prefix
        return member

    def __str__(self) -> str:
        return self.code

    @classmethod
    def codes(cls) -> List[str]:
        """Return every known engine code."""
        return [member.code for member in cls]

    @classmethod
    def from_code(
        cls,
        code: Union[str, "EngineType", None],
        *,
        operation: Operation = Operation.RESOLVE_CONNECTOR,
    ) -> "EngineType":
        """Look an engine up by code, case-insensitively.

        Args:
            code: Engine code such as ``"mysql"`` or ``"SQLServer"``
            operation: Operation tag for the raised error

        Returns:
            Matching EngineType

        Raises:
            StructuredError: VALIDATION listing the known codes when the
                code is empty or unknown
        """
        if isinstance(code, EngineType):
            return code

        normalized: Optional[str] = code.strip().lower() if isinstance(code, str) else None
        if normalized:
            for member in cls:
                if member.code == normalized:
                    return member

        raise StructuredError.validation(
            f"Unknown engine code: {code!r}",
            operation=operation,
            context={"known_codes": cls.codes()},
        )
