import json
import math
from collections.abc import Mapping
from datetime import date, datetime, time
from decimal import Decimal
from typing import Any, Iterator, List, Optional, Tuple, Union

from .models import InconsistentRowError, SafeLiteral, ValueKind
from .sql_utils import validate_column_name, validate_table_name

Row = Mapping[str, Any]
Rows = Union[Row, List[Row]]


def _ensure_list_of_rows(rows: Rows) -> List[Row]:
    """Validate and normalize row data; a single mapping becomes a one-item list."""
    if isinstance(rows, Mapping):
        return [rows]
    if not isinstance(rows, (list, tuple)):
        raise ValueError("Rows must be a mapping or a list of mappings")

    for i, row in enumerate(rows):
        if not isinstance(row, Mapping):
            raise ValueError(f"Row {i} must be a mapping")

    return list(rows)


def _get_column_order(rows: List[Row]) -> List[str]:
    """Take the column order from the first row and require it on every row."""
    columns = list(rows[0].keys())
    for col in columns:
        validate_column_name(col)

    for i, row in enumerate(rows[1:], start=1):
        if list(row.keys()) != columns:
            raise InconsistentRowError(
                f"Row {i} fields {list(row.keys())} do not match {columns}"
            )
    return columns


def _json_default(value: Any) -> Any:
    if isinstance(value, (datetime, date, time)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, SafeLiteral):
        return value.text
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def _to_json(value: Any) -> str:
    return json.dumps(value, default=_json_default)


def classify_value(value: Any) -> ValueKind:
    """
    Decide how a field value is written into a bulk insert projection.

    Order matters: ``bool`` is checked before numbers, and dates are bound
    rather than treated as objects.
    """
    if value is None:
        return ValueKind.NULL
    if isinstance(value, SafeLiteral):
        return ValueKind.LITERAL
    if isinstance(value, bool):
        return ValueKind.BOOLEAN
    if isinstance(value, (list, tuple)):
        return ValueKind.ARRAY
    if isinstance(value, Mapping):
        return ValueKind.OBJECT
    if isinstance(value, (date, time)):
        return ValueKind.BIND
    if isinstance(value, int):
        return ValueKind.NUMBER
    if isinstance(value, float) and math.isfinite(value):
        return ValueKind.NUMBER
    if isinstance(value, Decimal) and value.is_finite():
        return ValueKind.NUMBER
    return ValueKind.BIND


def encode_param_values(row: Row, binds: List[Any]) -> str:
    """
    Encode one row as a SELECT projection, appending bound values to binds.

    Args:
        row: Field name to value mapping, iterated in order
        binds: Accumulating positional bind list (mutated)

    Returns:
        Comma-separated projection list

    Example:
        >>> binds = []
        >>> encode_param_values({"id": 1, "name": "x", "tags": ["a"]}, binds)
        '1, :1, PARSE_JSON(:2)::ARRAY'
        >>> binds
        ['x', '["a"]']
    """
    fragments = []
    for value in row.values():
        kind = classify_value(value)
        if kind is ValueKind.NULL:
            fragments.append("NULL")
        elif kind is ValueKind.LITERAL:
            fragments.append(value.text)
        elif kind is ValueKind.BOOLEAN:
            fragments.append("TRUE" if value else "FALSE")
        elif kind is ValueKind.NUMBER:
            fragments.append(str(value))
        elif kind is ValueKind.ARRAY:
            binds.append(_to_json(list(value)))
            fragments.append(f"PARSE_JSON(:{len(binds)})::ARRAY")
        elif kind is ValueKind.OBJECT:
            binds.append(_to_json(dict(value)))
            fragments.append(f"PARSE_JSON(:{len(binds)})")
        else:
            binds.append(value)
            fragments.append(f":{len(binds)}")
    return ", ".join(fragments)


def build_insert_sql(table: str, rows: Rows) -> Tuple[Optional[str], List[Any]]:
    """
    Build a bulk INSERT from per-row SELECT statements joined by UNION ALL.

    Args:
        table: Target table, optionally qualified (``schema.table``)
        rows: One mapping or a list of mappings sharing the same fields

    Returns:
        Tuple of (sql_string, binds); (None, []) when there are no rows

    Raises:
        UnsafeTableNameError: If table is not a plain dotted identifier
        UnsafeColumnNameError: If a field name is not a plain identifier
        InconsistentRowError: If rows disagree on fields or field order

    Example:
        >>> sql, binds = build_insert_sql("t", [{"a": 1, "b": "x"}, {"a": 2, "b": "y"}])
        >>> print(sql)
        INSERT INTO t
        (a, b)
        SELECT 1, :1 UNION ALL
        SELECT 2, :2
        >>> binds
        ['x', 'y']
    """
    rows = _ensure_list_of_rows(rows)
    if not rows:
        return None, []

    validate_table_name(table)
    columns = _get_column_order(rows)

    binds: List[Any] = []
    selects = [f"SELECT {encode_param_values(row, binds)}" for row in rows]
    sql = f"INSERT INTO {table}\n({', '.join(columns)})\n" + " UNION ALL\n".join(
        selects
    )
    return sql, binds


def chunk_rows(rows: List[Row], batch_size: Optional[int]) -> Iterator[List[Row]]:
    """Yield row batches of at most batch_size; everything at once when unset."""
    if not batch_size or batch_size <= 0:
        yield rows
        return
    for start in range(0, len(rows), batch_size):
        yield rows[start : start + batch_size]
