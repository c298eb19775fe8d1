"""
safe_warehouse - Safe parameterized access to Snowflake and BigQuery.

Queries and bulk inserts are issued without interpolating untrusted data into
SQL text. Snowflake statements run over a lazily created, bounded connection
pool; BigQuery statements bind @name parameters server side.
"""

from safe_warehouse.io.loader.warehouse_loader import (
    BigQueryClient,
    LoadResult,
    SafeLiteral,
    WarehouseClient,
    WarehouseError,
    bigquery_insert,
    bigquery_query,
    copy_into,
    execute,
    insert,
    query,
    query_dataframe,
    safe_url,
    safe_value,
    stage,
)

__version__ = "0.1.0"

__all__ = [
    "BigQueryClient",
    "LoadResult",
    "SafeLiteral",
    "WarehouseClient",
    "WarehouseError",
    "bigquery_insert",
    "bigquery_query",
    "copy_into",
    "execute",
    "insert",
    "query",
    "query_dataframe",
    "safe_url",
    "safe_value",
    "stage",
]
