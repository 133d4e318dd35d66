"""Result and catalog value types shared by every connector."""

from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from ..core.exceptions import Operation, StructuredError


@dataclass
class ColumnDescriptor:
    """Database column information."""
    name: str
    data_type: str
    nullable: bool = True
    is_primary_key: bool = False
    is_foreign_key: bool = False
    default_value: Optional[Any] = None
    max_length: Optional[int] = None
    precision: Optional[int] = None
    scale: Optional[int] = None
    comment: Optional[str] = None
    charset: Optional[str] = None
    collation: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class TableDescriptor:
    """Database table information.

    ``columns`` is empty on the cheap ``list_tables`` path and populated by
    ``describe_table``. ``row_count_estimate`` may be a statistic rather
    than an exact count depending on the engine.
    """
    name: str
    comment: Optional[str] = None
    kind: str = "TABLE"
    row_count_estimate: Optional[int] = None
    size_bytes: Optional[int] = None
    last_updated: Optional[datetime] = None
    columns: List[ColumnDescriptor] = field(default_factory=list)
    is_temporary: bool = False

    @property
    def primary_key(self) -> List[str]:
        return [column.name for column in self.columns if column.is_primary_key]

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["last_updated"] = self.last_updated.isoformat() if self.last_updated else None
        return data


@dataclass
class TabularResult:
    """Result of a read statement or a page of table rows.

    Every row has exactly ``len(columns)`` cells in column order.
    """
    columns: List[str]
    rows: List[List[Any]]
    total_rows: int
    elapsed_ms: int = 0

    def __post_init__(self) -> None:
        width = len(self.columns)
        for index, row in enumerate(self.rows):
            if len(row) != width:
                raise StructuredError.internal(
                    f"Row {index} has {len(row)} cells, expected {width}",
                    operation=Operation.UNKNOWN,
                    context={"columns": list(self.columns)},
                )

    @property
    def row_count(self) -> int:
        return len(self.rows)

    def as_dicts(self) -> List[Dict[str, Any]]:
        """Return rows as column-name keyed dictionaries."""
        return [dict(zip(self.columns, row)) for row in self.rows]

    def column(self, name: str) -> List[Any]:
        """Return every cell of one column."""
        index = self.columns.index(name)
        return [row[index] for row in self.rows]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "columns": list(self.columns),
            "rows": [list(row) for row in self.rows],
            "total_rows": self.total_rows,
            "elapsed_ms": self.elapsed_ms,
        }


@dataclass
class MutationResult:
    """Result of a write statement."""
    affected_rows: int
    elapsed_ms: int = 0
    message: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def unique_column_names(names: Sequence[Any]) -> List[str]:
    """Make projection names unique, suffixing repeats with ``_2``, ``_3`` ...

    ``SELECT a.id, b.id`` reports ``id`` twice; the second becomes ``id_2``.
    """
    result: List[str] = []
    taken = set()
    for raw in names:
        name = str(raw) if raw is not None else ""
        candidate = name
        suffix = 2
        while candidate in taken:
            candidate = f"{name}_{suffix}"
            suffix += 1
        taken.add(candidate)
        result.append(candidate)
    return result


def to_int(value: Any) -> Optional[int]:
    """Coerce a catalog cell (Decimal, float, numeric string) to int; None stays None."""
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def to_bool(value: Any) -> bool:
    """Interpret catalog flags such as ``1``, ``'YES'``, ``'Y'`` or ``True``."""
    if isinstance(value, str):
        return value.strip().upper() in ("1", "Y", "YES", "TRUE", "T")
    return bool(value)
