"""Dialect helpers shared across connectors.

Each SQL dialect differs in how it quotes identifiers and how it pages
through a result set. A :class:`Dialect` bundles those two hooks; the
connectors build catalog queries themselves and hand the base ``SELECT`` to
:meth:`Dialect.paginate`.

Pagination styles:
    LIMIT_OFFSET: ``... ORDER BY c LIMIT n OFFSET o`` (MySQL family, PostgreSQL, ClickHouse)
    OFFSET_FETCH: ``... ORDER BY c OFFSET o ROWS FETCH NEXT n ROWS ONLY`` (SQL Server)
    ROWNUM: double subselect over ``ROWNUM`` (Oracle); the synthetic column
        is removed again with :func:`strip_column`

Example:
    >>> MYSQL_DIALECT.paginate("SELECT * FROM `shop`.`users`", 2, 10, "id", "asc")
    'SELECT * FROM `shop`.`users` ORDER BY `id` ASC LIMIT 10 OFFSET 10'
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, List, Optional, Sequence, Tuple

from ..core.engines import DialectFamily
from ..core.exceptions import Operation
from ..core.utils import compute_offset, normalize_sort_direction, sanitize_identifier

ROWNUM_ALIAS = "OMNIDB_RN__"


class PaginationStyle(str, Enum):
    LIMIT_OFFSET = "limit_offset"
    OFFSET_FETCH = "offset_fetch"
    ROWNUM = "rownum"


@dataclass(frozen=True)
class Dialect:
    """Quoting and pagination rules for one dialect family.

    Attributes:
        family: Dialect family
        quote_open: Opening identifier quote (empty for unquoted dialects)
        quote_close: Closing identifier quote
        pagination: Pagination style
        fold_upper: Upper-case identifiers instead of quoting them
    """

    family: DialectFamily
    quote_open: str
    quote_close: str
    pagination: PaginationStyle
    fold_upper: bool = False

    def quote(self, name: Optional[str], *, what: str = "identifier",
              operation: Operation = Operation.UNKNOWN) -> str:
        """Sanitize a name and render it for interpolation into SQL."""
        safe = sanitize_identifier(name, what=what, operation=operation)
        if self.fold_upper:
            return safe.upper()
        return f"{self.quote_open}{safe}{self.quote_close}"

    def qualify(self, *parts: Optional[str], operation: Operation = Operation.UNKNOWN) -> str:
        """Join non-empty name parts into a qualified, quoted name."""
        return ".".join(self.quote(part, operation=operation) for part in parts if part)

    def order_by(self, sort_column: Optional[str], sort_direction: Optional[str] = None,
                 *, operation: Operation = Operation.GET_TABLE_DATA) -> str:
        """Return `` ORDER BY <col> [ASC|DESC]`` or an empty string."""
        if not sort_column:
            return ""
        clause = f" ORDER BY {self.quote(sort_column, what='column', operation=operation)}"
        direction = normalize_sort_direction(sort_direction)
        if direction:
            clause += f" {direction}"
        return clause

    def paginate(
        self,
        base_sql: str,
        page: int,
        page_size: int,
        sort_column: Optional[str] = None,
        sort_direction: Optional[str] = None,
    ) -> str:
        """Apply ordering and the dialect's pagination idiom to ``base_sql``."""
        offset = compute_offset(page, page_size)
        order_clause = self.order_by(sort_column, sort_direction)

        if self.pagination is PaginationStyle.OFFSET_FETCH:
            return base_sql + offset_fetch_clause(order_clause, offset, page_size)
        if self.pagination is PaginationStyle.ROWNUM:
            return rownum_window(base_sql + order_clause, page, page_size)
        return base_sql + order_clause + limit_offset_clause(offset, page_size)


def limit_offset_clause(offset: int, page_size: int) -> str:
    return f" LIMIT {int(page_size)} OFFSET {int(offset)}"


def offset_fetch_clause(order_clause: str, offset: int, page_size: int) -> str:
    """SQL Server paging; ``OFFSET ... FETCH`` is only legal after ``ORDER BY``."""
    order = order_clause or " ORDER BY (SELECT NULL)"
    return f"{order} OFFSET {int(offset)} ROWS FETCH NEXT {int(page_size)} ROWS ONLY"


def rownum_window(base_sql: str, page: int, page_size: int) -> str:
    """Wrap a query so that only rows ``(offset, page*page_size]`` come back.

    The inner bound uses ``ROWNUM`` directly, the outer bound filters on the
    aliased row number. Callers strip :data:`ROWNUM_ALIAS` from the result.
    """
    offset = compute_offset(page, page_size)
    upper = int(page) * int(page_size)
    return (
        f"SELECT * FROM (SELECT a.*, ROWNUM {ROWNUM_ALIAS} FROM ({base_sql}) a "
        f"WHERE ROWNUM <= {upper}) WHERE {ROWNUM_ALIAS} > {offset}"
    )


def strip_column(
    columns: Sequence[str],
    rows: Sequence[Sequence[Any]],
    name: str = ROWNUM_ALIAS,
) -> Tuple[List[str], List[List[Any]]]:
    """Remove a column (matched case-insensitively) from a column list and every row."""
    target = name.upper()
    keep = [index for index, column in enumerate(columns) if str(column).upper() != target]
    if len(keep) == len(columns):
        return list(columns), [list(row) for row in rows]
    return [columns[i] for i in keep], [[row[i] for i in keep] for row in rows]


MYSQL_DIALECT = Dialect(DialectFamily.MYSQL, "`", "`", PaginationStyle.LIMIT_OFFSET)
POSTGRESQL_DIALECT = Dialect(DialectFamily.POSTGRESQL, '"', '"', PaginationStyle.LIMIT_OFFSET)
CLICKHOUSE_DIALECT = Dialect(DialectFamily.CLICKHOUSE, "`", "`", PaginationStyle.LIMIT_OFFSET)
SQLSERVER_DIALECT = Dialect(DialectFamily.SQLSERVER, "[", "]", PaginationStyle.OFFSET_FETCH)
ORACLE_DIALECT = Dialect(DialectFamily.ORACLE, "", "", PaginationStyle.ROWNUM, fold_upper=True)
