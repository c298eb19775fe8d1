"""
Snowflake warehouse loader for safe_warehouse.

This module provides parameterized query execution and bulk loading over a
bounded connection pool, with SQL injection protection for every value that
is written into statement text.
"""

from .warehouse_loader import (
    SafeLiteral,
    WarehouseClient,
    WarehouseError,
    build_insert_sql,
    copy_into,
    execute,
    insert,
    query,
    query_dataframe,
    safe_url,
    safe_value,
    stage,
)

__all__ = [
    "SafeLiteral",
    "WarehouseClient",
    "WarehouseError",
    "build_insert_sql",
    "copy_into",
    "execute",
    "insert",
    "query",
    "query_dataframe",
    "safe_url",
    "safe_value",
    "stage",
]
