"""Connector base classes.

:class:`BaseConnector` implements the uniform operation contract once:
input validation before any I/O, connection open/borrow, connect and query
timeouts, result materialisation, deterministic connection release and
error wrapping. Engine implementations only provide small driver hooks:

    _open_connection / _close_connection   raw driver connection lifecycle
    _fetch / _execute                      run a statement, decode the result
    _list_databases / _list_tables         catalog queries
    _describe_table / _fetch_page          introspection and pagination
    _classify_error                        driver exception -> ErrorKind

:class:`SqlConnector` adds the generic SQL path for table pages: quote the
table reference, let the :class:`Dialect` paginate the base ``SELECT`` and
count rows with ``COUNT(*)``.
"""

import asyncio
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Awaitable, Callable, ClassVar, Dict, List, Optional, Sequence, Tuple, TypeVar

from ..config.models import ConnectionProfile, PoolConfig
from ..core.engines import EngineType
from ..core.exceptions import ErrorKind, Operation, StructuredError, wrap_exception
from ..core.redaction import redact_secrets, summarize_statement
from ..core.utils import (
    FORBIDDEN_FRAGMENTS,
    measure_time,
    sanitize_identifier,
    validate_pagination,
    validate_statement,
)
from ..logging import get_logger, get_performance_logger
from .dialects import Dialect
from .models import MutationResult, TableDescriptor, TabularResult, unique_column_names
from .pool import ConnectionPool

T = TypeVar("T")

Rows = List[List[Any]]

OPERATION_LABELS: Dict[Operation, str] = {
    Operation.TEST_CONNECTION: "Connection test failed",
    Operation.EXECUTE_QUERY: "Query execution failed",
    Operation.EXECUTE_MUTATION: "Mutation failed",
    Operation.GET_DATABASES: "Listing databases failed",
    Operation.GET_TABLES: "Listing tables failed",
    Operation.GET_TABLE_INFO: "Describing table failed",
    Operation.GET_TABLE_DATA: "Fetching table rows failed",
    Operation.CREATE_POOL: "Pool creation failed",
}


class BaseConnector(ABC):
    """Abstract base class for all engine connectors.

    Connectors are stateless between calls: every operation receives the
    profile it works on. The only state a connector may own is static driver
    configuration and resources released by :meth:`shutdown`.

    Attributes:
        engine: Engine this connector serves
        implemented: False for placeholder connectors
        probe_statement: Cheapest liveness statement for the dialect
        statement_fragments: Substrings rejected in caller statements
    """

    engine: ClassVar[EngineType]
    implemented: ClassVar[bool] = True
    probe_statement: ClassVar[str] = "SELECT 1"
    statement_fragments: ClassVar[Tuple[str, ...]] = FORBIDDEN_FRAGMENTS

    def __init__(self, pool_config: Optional[PoolConfig] = None) -> None:
        self.pool_config = pool_config or PoolConfig()
        self.logger = get_logger(f"omnidb.connector.{self.engine.code}")
        self.perf_logger = get_performance_logger(f"connector.{self.engine.code}")
        self._is_shut_down = False

    def supported_engine(self) -> EngineType:
        """Return the engine this connector serves."""
        return self.engine

    @property
    def is_shut_down(self) -> bool:
        return self._is_shut_down

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def validate_profile(self, profile: Optional[ConnectionProfile], operation: Operation) -> ConnectionProfile:
        """Check a profile before any I/O.

        Raises:
            StructuredError: VALIDATION for a missing profile or one that
                targets a different engine
        """
        if profile is None:
            raise StructuredError.validation("Connection profile must not be None", operation=operation)
        if not isinstance(profile, ConnectionProfile):
            raise StructuredError.validation(
                f"Expected a ConnectionProfile, got {type(profile).__name__}",
                operation=operation,
            )
        if profile.engine_type is not self.engine:
            raise StructuredError.validation(
                f"Profile targets {profile.engine_type.code}, connector serves {self.engine.code}",
                operation=operation,
                context={"config_id": profile.id},
            )
        return profile

    def _resolve_namespace(self, profile: ConnectionProfile, database: Optional[str],
                           operation: Operation) -> Optional[str]:
        """Return the sanitized database/schema a table operation targets.

        Falls back to the profile's database when the caller passes none.
        """
        return sanitize_identifier(database or profile.database, what="database", operation=operation)

    def _check_table_name(self, table: Optional[str], operation: Operation) -> str:
        return sanitize_identifier(table, what="table", operation=operation)

    # ------------------------------------------------------------------
    # Driver hooks
    # ------------------------------------------------------------------

    @abstractmethod
    async def _open_connection(self, profile: ConnectionProfile) -> Any:
        """Open and return a raw driver connection."""

    @abstractmethod
    async def _close_connection(self, conn: Any) -> None:
        """Close a raw driver connection."""

    @abstractmethod
    async def _fetch(self, conn: Any, sql: str, params: Optional[Sequence[Any]] = None) -> Tuple[List[str], Rows]:
        """Run a read statement and return ``(column names, rows)``."""

    @abstractmethod
    async def _execute(self, conn: Any, sql: str, params: Optional[Sequence[Any]] = None) -> int:
        """Run a write statement and return the affected-row count."""

    async def _probe(self, conn: Any) -> None:
        """Issue the dialect's liveness probe; raise if the server is unusable."""
        await self._fetch(conn, self.probe_statement)

    def _classify_error(self, exc: BaseException) -> Optional[ErrorKind]:
        """Map a driver exception to an error kind, or None for type-based mapping."""
        return None

    @abstractmethod
    async def _list_databases(self, conn: Any, profile: ConnectionProfile) -> List[str]:
        ...

    @abstractmethod
    async def _list_tables(self, conn: Any, profile: ConnectionProfile,
                           database: Optional[str]) -> List[TableDescriptor]:
        ...

    @abstractmethod
    async def _describe_table(self, conn: Any, profile: ConnectionProfile,
                              database: Optional[str], table: str) -> Optional[TableDescriptor]:
        """Return the populated descriptor, or None if the table does not exist."""

    @abstractmethod
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
        """Return ``(columns, rows, total rows in table)`` for one page."""

    async def _release_resources(self) -> None:
        """Release connector-owned resources such as worker threads."""

    # ------------------------------------------------------------------
    # Connection handling
    # ------------------------------------------------------------------

    async def _connect(self, profile: ConnectionProfile, operation: Operation) -> Any:
        """Open a connection bounded by the profile's connect timeout."""
        try:
            return await asyncio.wait_for(self._open_connection(profile), timeout=profile.connect_timeout)
        except StructuredError:
            raise
        except (asyncio.TimeoutError, TimeoutError) as e:
            raise StructuredError.timeout(
                f"Connecting to {profile.describe()} timed out after {profile.timeout_ms} ms",
                operation=operation,
                context={"config_id": profile.id},
                cause=e,
            ) from e
        except Exception as e:
            kind = self._classify_error(e)
            if kind not in (ErrorKind.TIMEOUT, ErrorKind.VALIDATION):
                kind = ErrorKind.CONNECTION
            raise StructuredError(
                kind,
                f"Cannot connect to {profile.describe()}: {redact_secrets(e)}",
                operation=operation,
                context={"config_id": profile.id},
                cause=e,
            ) from e

    async def _safe_close(self, conn: Any) -> None:
        try:
            await self._close_connection(conn)
        except Exception as e:
            self.logger.debug("Error closing connection", error=str(e))

    @asynccontextmanager
    async def _session(self, profile: ConnectionProfile, operation: Operation,
                       pool: Optional[ConnectionPool] = None) -> AsyncIterator[Any]:
        """Yield a connection exclusively owned by one call.

        Borrowed from ``pool`` when given, otherwise opened and closed here.
        """
        if pool is not None:
            if pool.connector is not self:
                raise StructuredError.validation(
                    "Pool belongs to a different connector",
                    operation=operation,
                    context={"config_id": profile.id},
                )
            async with pool.acquire(operation) as conn:
                yield conn
        else:
            conn = await self._connect(profile, operation)
            try:
                yield conn
            finally:
                await self._safe_close(conn)

    def _wrap_driver_error(self, exc: BaseException, operation: Operation,
                           context: Optional[Dict[str, Any]] = None) -> StructuredError:
        label = OPERATION_LABELS.get(operation, "Operation failed")
        kind = self._classify_error(exc)
        if kind is None and not isinstance(exc, OSError):
            # Caller input was validated before I/O; anything else is unexpected
            kind = ErrorKind.INTERNAL
        return wrap_exception(
            exc,
            operation,
            message=f"{label}: {redact_secrets(exc) or type(exc).__name__}",
            kind=kind,
            context=context,
        )

    async def _run(
        self,
        profile: ConnectionProfile,
        operation: Operation,
        work: Callable[[Any], Awaitable[T]],
        *,
        pool: Optional[ConnectionPool] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> T:
        """Run ``work`` on a session under the query timeout, wrapping failures."""
        error_context = {"config_id": profile.id, **(context or {})}
        with self.logger.context(config_id=profile.id, operation=operation.value):
            with self.perf_logger.measure(operation.value, config_id=profile.id):
                try:
                    async with self._session(profile, operation, pool) as conn:
                        return await asyncio.wait_for(work(conn), timeout=profile.query_timeout)
                except StructuredError as e:
                    self.logger.warning("Operation failed", kind=e.kind.value, error=e.message)
                    raise
                except (asyncio.TimeoutError, TimeoutError) as e:
                    self.logger.warning("Operation timed out", timeout_ms=profile.query_timeout_ms)
                    raise StructuredError.timeout(
                        f"{OPERATION_LABELS.get(operation, 'Operation failed')}: "
                        f"no result within {profile.query_timeout_ms} ms",
                        operation=operation,
                        context=error_context,
                        cause=e,
                    ) from e
                except Exception as e:
                    error = self._wrap_driver_error(e, operation, error_context)
                    self.logger.warning("Operation failed", kind=error.kind.value, error=error.message)
                    raise error from e

    def _tabular(self, columns: Sequence[Any], rows: Sequence[Sequence[Any]],
                 elapsed_ms: int, total_rows: Optional[int] = None) -> TabularResult:
        """Drain decoded rows into a TabularResult."""
        materialized = [list(row) for row in rows]
        return TabularResult(
            columns=unique_column_names(columns),
            rows=materialized,
            total_rows=len(materialized) if total_rows is None else int(total_rows),
            elapsed_ms=elapsed_ms,
        )

    # ------------------------------------------------------------------
    # Public contract
    # ------------------------------------------------------------------

    async def test_connection(self, profile: Optional[ConnectionProfile]) -> bool:
        """Open a short-lived connection and run the liveness probe.

        Connectivity failures are logged and reported as False. Only an
        invalid profile raises, before any network I/O.
        """
        profile = self.validate_profile(profile, Operation.TEST_CONNECTION)
        with self.logger.context(config_id=profile.id, operation=Operation.TEST_CONNECTION.value):
            try:
                conn = await self._connect(profile, Operation.TEST_CONNECTION)
            except StructuredError as e:
                self.logger.warning("Connection test failed", target=profile.describe(),
                                    kind=e.kind.value, error=e.message)
                return False

            try:
                await asyncio.wait_for(self._probe(conn), timeout=profile.query_timeout)
            except Exception as e:
                self.logger.warning("Connection probe failed", target=profile.describe(),
                                    error=redact_secrets(e), error_type=type(e).__name__)
                return False
            finally:
                await self._safe_close(conn)

            self.logger.info("Connection test succeeded", target=profile.describe())
            return True

    async def execute_query(self, profile: Optional[ConnectionProfile], statement: Optional[str],
                            *, pool: Optional[ConnectionPool] = None) -> TabularResult:
        """Execute a read statement and materialise every row."""
        operation = Operation.EXECUTE_QUERY
        profile = self.validate_profile(profile, operation)
        statement = validate_statement(statement, operation=operation, fragments=self.statement_fragments)

        async def work(conn: Any) -> TabularResult:
            with measure_time() as timer:
                columns, rows = await self._fetch(conn, statement)
            return self._tabular(columns, rows, timer.elapsed_ms)

        return await self._run(profile, operation, work, pool=pool,
                               context={"statement": summarize_statement(statement)})

    async def execute_mutation(self, profile: Optional[ConnectionProfile], statement: Optional[str],
                               *, pool: Optional[ConnectionPool] = None) -> MutationResult:
        """Execute a write statement and report the affected-row count."""
        operation = Operation.EXECUTE_MUTATION
        profile = self.validate_profile(profile, operation)
        statement = validate_statement(statement, operation=operation, fragments=self.statement_fragments)

        async def work(conn: Any) -> MutationResult:
            with measure_time() as timer:
                affected = await self._execute(conn, statement)
            affected = max(int(affected or 0), 0)
            return MutationResult(
                affected_rows=affected,
                elapsed_ms=timer.elapsed_ms,
                message=f"{affected} row(s) affected",
            )

        return await self._run(profile, operation, work, pool=pool,
                               context={"statement": summarize_statement(statement)})

    async def list_databases(self, profile: Optional[ConnectionProfile],
                             *, pool: Optional[ConnectionPool] = None) -> List[str]:
        operation = Operation.GET_DATABASES
        profile = self.validate_profile(profile, operation)

        async def work(conn: Any) -> List[str]:
            return await self._list_databases(conn, profile)

        return await self._run(profile, operation, work, pool=pool)

    async def list_tables(self, profile: Optional[ConnectionProfile], database: Optional[str] = None,
                          *, pool: Optional[ConnectionPool] = None) -> List[TableDescriptor]:
        """List tables without their columns."""
        operation = Operation.GET_TABLES
        profile = self.validate_profile(profile, operation)
        namespace = self._resolve_namespace(profile, database, operation)

        async def work(conn: Any) -> List[TableDescriptor]:
            return await self._list_tables(conn, profile, namespace)

        return await self._run(profile, operation, work, pool=pool, context={"database": namespace})

    async def describe_table(self, profile: Optional[ConnectionProfile], database: Optional[str],
                             table: Optional[str], *, pool: Optional[ConnectionPool] = None) -> TableDescriptor:
        """Describe one table with its columns.

        Raises:
            StructuredError: NOT_FOUND if the table does not exist
        """
        operation = Operation.GET_TABLE_INFO
        profile = self.validate_profile(profile, operation)
        namespace = self._resolve_namespace(profile, database, operation)
        table = self._check_table_name(table, operation)

        async def work(conn: Any) -> TableDescriptor:
            descriptor = await self._describe_table(conn, profile, namespace, table)
            if descriptor is None:
                raise StructuredError.not_found(
                    f"Table does not exist: {table}",
                    operation=operation,
                    context={"config_id": profile.id, "database": namespace, "table": table},
                )
            return descriptor

        return await self._run(profile, operation, work, pool=pool,
                               context={"database": namespace, "table": table})

    async def fetch_table_rows(
        self,
        profile: Optional[ConnectionProfile],
        database: Optional[str],
        table: Optional[str],
        page: int = 1,
        page_size: int = 100,
        sort_column: Optional[str] = None,
        sort_direction: Optional[str] = None,
        *,
        pool: Optional[ConnectionPool] = None,
    ) -> TabularResult:
        """Fetch one page of table rows; ``total_rows`` is the table's row count."""
        operation = Operation.GET_TABLE_DATA
        profile = self.validate_profile(profile, operation)
        validate_pagination(page, page_size, operation=operation)
        namespace = self._resolve_namespace(profile, database, operation)
        table = self._check_table_name(table, operation)
        if sort_column:
            sanitize_identifier(sort_column, what="column", operation=operation)

        async def work(conn: Any) -> TabularResult:
            with measure_time() as timer:
                columns, rows, total = await self._fetch_page(
                    conn, profile, namespace, table, page, page_size, sort_column, sort_direction
                )
            return self._tabular(columns, rows, timer.elapsed_ms, total_rows=total)

        return await self._run(profile, operation, work, pool=pool, context={
            "database": namespace, "table": table, "page": page, "page_size": page_size,
        })

    async def open_pool(self, profile: Optional[ConnectionProfile]) -> ConnectionPool:
        """Probe the profile and return an initialised pool.

        Only the lifecycle manager calls this.

        Raises:
            StructuredError: CONNECTION if the probe fails
        """
        operation = Operation.CREATE_POOL
        profile = self.validate_profile(profile, operation)
        if not await self.test_connection(profile):
            raise StructuredError.connection(
                f"Connectivity probe failed for {profile.describe()}",
                operation=operation,
                context={"config_id": profile.id},
            )

        pool = ConnectionPool(self, profile, self.pool_config)
        await pool.initialize()
        return pool

    async def shutdown(self) -> None:
        """Release connector-owned resources. Idempotent."""
        if self._is_shut_down:
            return
        self._is_shut_down = True
        await self._release_resources()
        self.logger.info("Connector shut down", engine=self.engine.code)

    def get_metrics(self) -> Dict[str, Any]:
        """Per-operation timing metrics for this connector."""
        return self.perf_logger.get_summary()

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(engine={self.engine.code!r})"


class SqlConnector(BaseConnector):
    """Base class for connectors that speak SQL through a DB-API style driver.

    Subclasses set :attr:`dialect` and implement the catalog hooks; table
    pages and row counts are handled here.
    """

    dialect: ClassVar[Dialect]

    def _table_reference(self, profile: ConnectionProfile, database: Optional[str], table: str) -> str:
        """Qualified, quoted table name used in generated SQL."""
        return self.dialect.qualify(database, table, operation=Operation.GET_TABLE_DATA)

    async def _count_rows(self, conn: Any, table_ref: str) -> int:
        _, rows = await self._fetch(conn, f"SELECT COUNT(*) FROM {table_ref}")
        return int(rows[0][0]) if rows and rows[0] and rows[0][0] is not None else 0

    def _postprocess_page(self, columns: List[str], rows: Rows) -> Tuple[List[str], Rows]:
        return columns, rows

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
        table_ref = self._table_reference(profile, database, table)
        sql = self.dialect.paginate(f"SELECT * FROM {table_ref}", page, page_size, sort_column, sort_direction)
        columns, rows = await self._fetch(conn, sql)
        columns, rows = self._postprocess_page(list(columns), rows)
        total = await self._count_rows(conn, table_ref)
        return columns, rows, total
