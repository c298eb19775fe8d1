"""Warehouse loader facade.

Sanitizers, bind translation, statement builders and the pooled client are
re-exported here so callers and tests have one import location.
"""

from .bigquery_client import (
    BigQueryClient,
    build_query_parameters,
    format_bigquery_row,
)
from .binds import bind_named, format_binds, translate_params
from .core import WarehouseClient, format_row
from .insert_builder import build_insert_sql, classify_value, encode_param_values
from .models import (
    BigQueryInsertError,
    BindError,
    ExecuteTimeoutError,
    InconsistentRowError,
    LoadResult,
    MissingCredentialsError,
    PoolTimeoutError,
    QueryExecutionError,
    RowStreamError,
    SafeLiteral,
    UnsafeColumnNameError,
    UnsafeLiteralError,
    UnsafeTableNameError,
    UnsafeValueError,
    ValueKind,
    WarehouseError,
)
from .operations import (
    bigquery_insert,
    bigquery_query,
    copy_into,
    execute,
    get_bigquery_client,
    get_client,
    insert,
    query,
    query_dataframe,
    stage,
)
from .pool import ConnectionPoolManager, PoolState, parse_credentials
from .sql_utils import (
    safe_url,
    safe_value,
    validate_bigquery_table_name,
    validate_table_name,
)

__all__ = [
    "BigQueryClient",
    "BigQueryInsertError",
    "BindError",
    "ConnectionPoolManager",
    "ExecuteTimeoutError",
    "InconsistentRowError",
    "LoadResult",
    "MissingCredentialsError",
    "PoolState",
    "PoolTimeoutError",
    "QueryExecutionError",
    "RowStreamError",
    "SafeLiteral",
    "UnsafeColumnNameError",
    "UnsafeLiteralError",
    "UnsafeTableNameError",
    "UnsafeValueError",
    "ValueKind",
    "WarehouseClient",
    "WarehouseError",
    "bigquery_insert",
    "bigquery_query",
    "bind_named",
    "build_insert_sql",
    "build_query_parameters",
    "classify_value",
    "copy_into",
    "encode_param_values",
    "execute",
    "format_bigquery_row",
    "format_binds",
    "format_row",
    "get_bigquery_client",
    "get_client",
    "insert",
    "parse_credentials",
    "query",
    "query_dataframe",
    "safe_url",
    "safe_value",
    "stage",
    "translate_params",
    "validate_bigquery_table_name",
    "validate_table_name",
]
