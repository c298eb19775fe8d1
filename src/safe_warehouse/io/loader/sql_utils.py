import math
import re
from decimal import Decimal
from typing import Any

from pydantic import AnyUrl, TypeAdapter, ValidationError

from .models import (
    UnsafeColumnNameError,
    UnsafeTableNameError,
    UnsafeValueError,
)

SAFE_VALUE_PATTERN = re.compile(r"[A-Za-z0-9,./_-]*")
SAFE_VALUE_MAX_LENGTH = 64
SAFE_URL_MAX_LENGTH = 500

TABLE_NAME_PATTERN = re.compile(r"[A-Za-z_][A-Za-z0-9._]*")
COLUMN_NAME_PATTERN = re.compile(r"[A-Za-z_][A-Za-z0-9_$]*")
STAGE_NAME_PATTERN = re.compile(r"@?[A-Za-z_~][A-Za-z0-9._/%~-]*")
# [project.]dataset.table; project ids are lower-case with dashes
BIGQUERY_TABLE_PATTERN = re.compile(
    r"(?:[a-z][a-z0-9-]*[a-z0-9]\.)?[A-Za-z_][A-Za-z0-9_]*\.[A-Za-z_][A-Za-z0-9_]*"
)

_url_adapter = TypeAdapter(AnyUrl)


def safe_value(value: Any) -> str:
    """
    Render a runtime value as an inline SQL literal.

    Finite numbers are returned as ``str(value)``, so very large or small
    floats keep Python's exponent form (``1e+20``), which SQL reads as a
    float literal. Strings are single-quoted when
    they consist only of ``[A-Za-z0-9,./_-]`` and are at most 64 characters
    long; any other string is rendered as ``null`` rather than rejected.

    Args:
        value: Value to render

    Returns:
        SQL literal text

    Raises:
        UnsafeValueError: For booleans, non-finite numbers and any other type

    Example:
        >>> safe_value("2024-01")
        "'2024-01'"
        >>> safe_value("it's")
        'null'
        >>> safe_value(42)
        '42'
    """
    if isinstance(value, str):
        if len(value) <= SAFE_VALUE_MAX_LENGTH and SAFE_VALUE_PATTERN.fullmatch(value):
            return f"'{value}'"
        # Fail closed: unsafe text becomes NULL instead of an error
        return "null"

    if _is_finite_number(value):
        return str(value)

    raise UnsafeValueError(value)


def safe_url(value: Any) -> str:
    """
    Render a URL as a single-quoted SQL literal.

    The URL is parsed and canonicalized first, then every single quote is
    replaced by ``%60``.

    Raises:
        UnsafeValueError: If value is not a string, is 500 characters or
            longer, or is not a valid URL
    """
    if not isinstance(value, str) or len(value) >= SAFE_URL_MAX_LENGTH:
        raise UnsafeValueError(value)

    try:
        url = _url_adapter.validate_python(value)
    except ValidationError as e:
        raise UnsafeValueError(value) from e

    return "'" + str(url).replace("'", "%60") + "'"


def validate_table_name(table: Any) -> str:
    """
    Validate a table identifier, optionally schema or database qualified.

    Raises:
        UnsafeTableNameError: If the name is not a plain dotted identifier
    """
    if not isinstance(table, str) or not TABLE_NAME_PATTERN.fullmatch(table):
        raise UnsafeTableNameError(f'Unsafe table name for query: "{table}"')
    return table


def validate_bigquery_table_name(table: Any) -> str:
    """Validate a ``dataset.table`` or ``project.dataset.table`` reference."""
    if not isinstance(table, str) or not BIGQUERY_TABLE_PATTERN.fullmatch(table):
        raise UnsafeTableNameError(f'Unsafe BigQuery table name: "{table}"')
    return table


def validate_column_name(name: Any) -> str:
    """Validate an unquoted column identifier."""
    if not isinstance(name, str) or not COLUMN_NAME_PATTERN.fullmatch(name):
        raise UnsafeColumnNameError(f'Unsafe column name for query: "{name}"')
    return name


def validate_stage_name(name: Any) -> str:
    """Validate a stage reference such as ``my_stage`` or ``@db.sch.stage/path``."""
    if not isinstance(name, str) or not STAGE_NAME_PATTERN.fullmatch(name):
        raise UnsafeValueError(name)
    return name


def _is_finite_number(value: Any) -> bool:
    if isinstance(value, bool):
        return False
    if isinstance(value, int):
        return True
    if isinstance(value, float):
        return math.isfinite(value)
    if isinstance(value, Decimal):
        return value.is_finite()
    return False
