"""Process-wide functional surface backed by one lazily built client.

The default Snowflake client is created from settings on first call and
shares a single connection pool for the rest of the process lifetime. The
``bigquery_*`` functions use a separately cached BigQuery client.
"""

from collections.abc import Mapping
from functools import lru_cache
from typing import Any, Dict, List, Optional

import pandas as pd

from safe_warehouse.io.loader.bigquery_client import BigQueryClient
from safe_warehouse.io.loader.core import WarehouseClient
from safe_warehouse.io.loader.insert_builder import Rows
from safe_warehouse.io.loader.models import LoadResult


@lru_cache()
def get_client() -> WarehouseClient:
    """Get the cached default client built from ``get_settings()``."""
    return WarehouseClient.from_settings()


def query(sql: str, params: Any = None) -> List[Dict[str, Any]]:
    return get_client().query(sql, params)


def query_dataframe(sql: str, params: Any = None) -> pd.DataFrame:
    return get_client().query_dataframe(sql, params)


def execute(sql: str, params: Any = None) -> None:
    get_client().execute(sql, params)


def stage(stage_name: str, file: str) -> None:
    get_client().stage(stage_name, file)


def insert(table: str, rows: Rows, batch_size: Optional[int] = None) -> None:
    get_client().insert(table, rows, batch_size=batch_size)


def copy_into(
    table: str, stage_name: str, file_format: Optional[str] = None
) -> List[LoadResult]:
    return get_client().copy_into(table, stage_name, file_format=file_format)


@lru_cache()
def get_bigquery_client() -> BigQueryClient:
    """Get the cached default BigQuery client built from ``get_settings()``."""
    return BigQueryClient.from_settings()


def bigquery_query(sql: str, params: Optional[Mapping] = None) -> List[Dict[str, Any]]:
    return get_bigquery_client().query(sql, params)


def bigquery_insert(table: str, rows: Rows, batch_size: Optional[int] = None) -> None:
    get_bigquery_client().insert(table, rows, batch_size=batch_size)
