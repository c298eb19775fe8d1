"""Pytest configuration and fake warehouse connections.

No live warehouse is used: the Snowflake connection is replaced by a
MagicMock that is handed to the real pool through its ``connect`` hook.
"""

from __future__ import annotations

from typing import Any, Iterable, List, Optional
from unittest.mock import MagicMock

import pytest

from safe_warehouse.config import get_settings
from safe_warehouse.io.loader.core import WarehouseClient
from safe_warehouse.io.loader.operations import get_bigquery_client, get_client
from safe_warehouse.io.loader.pool import ConnectionPoolManager

TEST_CREDENTIALS = "account:xy12345,username:loader,password:s3cret,warehouse:LOAD_WH"


def build_fake_connection(
    rows: Optional[Iterable[Any]] = None,
    statuses: Optional[List[str]] = None,
):
    """Create a fake connector connection whose cursor yields ``rows``.

    ``statuses`` are returned by successive status polls; ``RUNNING`` is the
    only in-progress value.
    """
    conn = MagicMock(name="connection")
    cursor = MagicMock(name="cursor")
    cursor.__iter__.return_value = iter(list(rows or []))
    cursor.sfqid = "01b2c3d4-0000-query"
    conn.cursor.return_value = cursor
    conn.get_query_status_throw_if_error.side_effect = list(statuses or ["SUCCESS"])
    conn.is_still_running.side_effect = lambda status: status == "RUNNING"
    return conn, cursor


@pytest.fixture(autouse=True)
def _reset_cached_singletons(monkeypatch):
    """Give every test fresh settings and a fresh default client."""
    for name in (
        "SNOWFLAKE_CREDENTIALS",
        "SNOWFLAKE_POOL_MAX",
        "SNOWFLAKE_POOL_TIMEOUT",
        "SNOWFLAKE_EXECUTE_TIMEOUT",
        "BIGQUERY_PROJECT",
        "BIGQUERY_LOCATION",
        "BIGQUERY_CREDENTIALS_PATH",
        "VERBOSE",
    ):
        monkeypatch.delenv(name, raising=False)
    get_settings.cache_clear()
    get_client.cache_clear()
    get_bigquery_client.cache_clear()
    yield
    get_settings.cache_clear()
    get_client.cache_clear()
    get_bigquery_client.cache_clear()


@pytest.fixture
def fake_connection():
    return build_fake_connection()


@pytest.fixture
def make_client():
    """Factory building a WarehouseClient over a real pool and a fake connection."""

    def _make(conn, credentials: Optional[str] = TEST_CREDENTIALS, **client_kwargs):
        connect = MagicMock(return_value=conn)
        pool = ConnectionPoolManager(credentials, max_size=1, timeout=0.5, connect=connect)
        sleeps: List[float] = []
        client_kwargs.setdefault("sleep", sleeps.append)
        client = WarehouseClient(pool, **client_kwargs)
        return client, connect, sleeps

    return _make
