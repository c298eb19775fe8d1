"""
Tests for WarehouseClient query, execute and bulk insert orchestration.

The real pool is used with a MagicMock connector connection, so checkout and
release behave exactly as in production.
"""

import itertools
from datetime import datetime, timezone
from unittest.mock import MagicMock

import numpy as np
import pandas as pd
import pytest

from safe_warehouse.io.loader.core import format_row
from safe_warehouse.io.loader.models import (
    ExecuteTimeoutError,
    LoadResult,
    MissingCredentialsError,
    QueryExecutionError,
    RowStreamError,
    SafeLiteral,
    UnsafeTableNameError,
    UnsafeValueError,
)
from tests.conftest import build_fake_connection


@pytest.mark.unit
class TestQuery:
    def test_rows_are_streamed_and_normalized(self, make_client):
        conn, cursor = build_fake_connection(
            rows=[
                {
                    "ID": 1,
                    "Created_At": pd.Timestamp("2024-01-01T12:00:00Z"),
                    "TAGS": ["a", pd.Timestamp("2024-03-01")],
                    "META": {"When": np.datetime64("2024-01-02T00:00:00")},
                },
                {"ID": 2, "Created_At": None, "TAGS": [], "META": {}},
            ]
        )
        client, _, _ = make_client(conn)

        rows = client.query("SELECT * FROM t WHERE id > :1", [0])

        cursor.execute.assert_called_once_with("SELECT * FROM t WHERE id > :1", [0])
        assert [row["id"] for row in rows] == [1, 2]
        assert set(rows[0]) == {"id", "created_at", "tags", "meta"}
        assert rows[0]["created_at"] == datetime(2024, 1, 1, 12, tzinfo=timezone.utc)
        assert isinstance(rows[0]["created_at"], datetime)
        assert rows[0]["tags"] == ["a", datetime(2024, 3, 1)]
        assert rows[0]["meta"] == {"When": datetime(2024, 1, 2)}
        assert rows[1]["created_at"] is None

    def test_named_params_are_bound_positionally(self, make_client):
        conn, cursor = build_fake_connection()
        client, _, _ = make_client(conn)

        client.query("SELECT * FROM t WHERE a = :a AND b = :b", {"b": 2, "a": 1})

        cursor.execute.assert_called_once_with(
            "SELECT * FROM t WHERE a = :1 AND b = :2", [1, 2]
        )

    def test_no_params_means_no_binds(self, make_client):
        conn, cursor = build_fake_connection()
        client, _, _ = make_client(conn)

        assert client.query("SELECT 1") == []
        cursor.execute.assert_called_once_with("SELECT 1", None)

    def test_submission_failure_carries_query_and_params(self, make_client):
        conn, cursor = build_fake_connection()
        original = RuntimeError("SQL compilation error")
        cursor.execute.side_effect = original
        client, _, _ = make_client(conn)

        with pytest.raises(QueryExecutionError) as exc_info:
            client.query("SELECT * FROM missing WHERE id = :1", [5])

        error = exc_info.value
        assert "SQL compilation error" in str(error)
        assert "QUERY: SELECT * FROM missing WHERE id = :1" in str(error)
        assert "PARAMS: [5]" in str(error)
        assert error.sql == "SELECT * FROM missing WHERE id = :1"
        assert error.params == [5]
        assert error.__cause__ is original
        cursor.close.assert_called_once()
        assert client.pool.ensure_ready().checkedout() == 0

    def test_params_line_is_omitted_without_params(self, make_client):
        conn, cursor = build_fake_connection()
        cursor.execute.side_effect = RuntimeError("boom")
        client, _, _ = make_client(conn)

        with pytest.raises(QueryExecutionError) as exc_info:
            client.query("SELECT 1")

        assert "PARAMS" not in str(exc_info.value)

    def test_stream_failure_fails_the_query(self, make_client):
        def _broken_stream():
            yield {"ID": 1}
            raise ConnectionResetError("stream closed")

        conn, cursor = build_fake_connection()
        cursor.__iter__.return_value = _broken_stream()
        client, _, _ = make_client(conn)

        with pytest.raises(RowStreamError) as exc_info:
            client.query("SELECT id FROM t")

        assert isinstance(exc_info.value, QueryExecutionError)
        assert isinstance(exc_info.value.__cause__, ConnectionResetError)
        assert client.pool.ensure_ready().checkedout() == 0

    def test_missing_credentials_never_connects(self, make_client):
        conn, cursor = build_fake_connection()
        client, connect, _ = make_client(conn, credentials=None)

        with pytest.raises(MissingCredentialsError):
            client.query("SELECT 1")

        connect.assert_not_called()
        cursor.execute.assert_not_called()

    def test_query_dataframe(self, make_client):
        conn, _ = build_fake_connection(rows=[{"A": 1, "B": "x"}, {"A": 2, "B": "y"}])
        client, _, _ = make_client(conn)

        df = client.query_dataframe("SELECT a, b FROM t")

        assert list(df.columns) == ["a", "b"]
        assert df["a"].tolist() == [1, 2]


@pytest.mark.unit
class TestFormatRow:
    def test_only_top_level_keys_are_lowered(self):
        assert format_row({"OUTER": {"Inner": 1}}) == {"outer": {"Inner": 1}}

    def test_nat_becomes_none(self):
        assert format_row({"TS": pd.NaT}) == {"ts": None}

    def test_scalars_pass_through(self):
        row = {"N": 1.5, "S": "x", "B": True}
        assert format_row(row) == {"n": 1.5, "s": "x", "b": True}


@pytest.mark.unit
class TestExecute:
    def test_polls_until_statement_finishes(self, make_client):
        conn, cursor = build_fake_connection(
            statuses=["RUNNING", "RUNNING", "RUNNING", "SUCCESS"]
        )
        client, _, sleeps = make_client(conn, poll_interval=0.1)

        assert client.execute("DELETE FROM t WHERE id = :1", [3]) is None

        cursor.execute_async.assert_called_once_with("DELETE FROM t WHERE id = :1", [3])
        assert sleeps == [0.1, 0.1, 0.1]
        assert conn.get_query_status_throw_if_error.call_count == 4
        conn.get_query_status_throw_if_error.assert_called_with(cursor.sfqid)
        cursor.close.assert_called_once()

    def test_finished_statement_does_not_sleep(self, make_client):
        conn, _ = build_fake_connection(statuses=["SUCCESS"])
        client, _, sleeps = make_client(conn)

        client.execute("TRUNCATE TABLE t")

        assert sleeps == []

    def test_submission_failure_is_wrapped(self, make_client):
        conn, cursor = build_fake_connection()
        cursor.execute_async.side_effect = RuntimeError("invalid identifier")
        client, _, _ = make_client(conn)

        with pytest.raises(QueryExecutionError, match="QUERY: UPDATE t SET a = 1"):
            client.execute("UPDATE t SET a = 1")

        assert client.pool.ensure_ready().checkedout() == 0

    def test_failed_status_is_raised(self, make_client):
        conn, _ = build_fake_connection()
        conn.get_query_status_throw_if_error.side_effect = [
            "RUNNING",
            RuntimeError("Numeric value 'x' is not recognized"),
        ]
        client, _, _ = make_client(conn)

        with pytest.raises(QueryExecutionError) as exc_info:
            client.execute("INSERT INTO t SELECT :1", ["x"])

        assert "Numeric value" in str(exc_info.value)
        assert exc_info.value.params == ["x"]

    def test_configured_timeout_stops_polling(self, make_client):
        conn, _ = build_fake_connection()
        conn.get_query_status_throw_if_error.side_effect = itertools.repeat("RUNNING")
        client, _, _ = make_client(conn, execute_timeout=0)

        with pytest.raises(ExecuteTimeoutError) as exc_info:
            client.execute("CALL long_running()")

        assert exc_info.value.query_id == "01b2c3d4-0000-query"
        assert client.pool.ensure_ready().checkedout() == 0

    def test_stage_builds_put_command(self, make_client):
        conn, cursor = build_fake_connection()
        client, _, _ = make_client(conn)

        client.stage("my_stage", "/tmp/export.csv")

        cursor.execute_async.assert_called_once_with(
            "PUT file:///tmp/export.csv @my_stage AUTO_COMPRESS=TRUE", None
        )


@pytest.mark.unit
class TestInsert:
    def test_two_rows_one_statement(self, make_client):
        conn, cursor = build_fake_connection()
        client, _, _ = make_client(conn)

        client.insert("t", [{"a": 1, "b": "x"}, {"a": 2, "b": "y"}])

        cursor.execute_async.assert_called_once_with(
            "INSERT INTO t\n(a, b)\nSELECT 1, :1 UNION ALL\nSELECT 2, :2", ["x", "y"]
        )

    def test_single_row_with_literal(self, make_client):
        conn, cursor = build_fake_connection()
        client, _, _ = make_client(conn)

        client.insert(
            "audit.events",
            {"kind": "login", "at": SafeLiteral("CURRENT_TIMESTAMP()"), "meta": {"ip": "10.0.0.1"}},
        )

        cursor.execute_async.assert_called_once_with(
            "INSERT INTO audit.events\n(kind, at, meta)\n"
            "SELECT :1, CURRENT_TIMESTAMP(), PARSE_JSON(:2)",
            ["login", '{"ip": "10.0.0.1"}'],
        )

    def test_empty_rows_submit_nothing(self, make_client):
        conn, cursor = build_fake_connection()
        client, connect, _ = make_client(conn)

        client.insert("t", [])

        connect.assert_not_called()
        cursor.execute_async.assert_not_called()

    def test_unsafe_table_submits_nothing(self, make_client):
        conn, cursor = build_fake_connection()
        client, connect, _ = make_client(conn)

        with pytest.raises(UnsafeTableNameError):
            client.insert("t; DROP TABLE x", [{"a": 1}])

        connect.assert_not_called()
        cursor.execute_async.assert_not_called()

    def test_batch_size_splits_statements(self, make_client):
        conn, cursor = build_fake_connection(statuses=["SUCCESS", "SUCCESS"])
        client, _, _ = make_client(conn)

        client.insert("t", [{"v": "a"}, {"v": "b"}, {"v": "c"}], batch_size=2)

        assert [c.args for c in cursor.execute_async.call_args_list] == [
            ("INSERT INTO t\n(v)\nSELECT :1 UNION ALL\nSELECT :2", ["a", "b"]),
            ("INSERT INTO t\n(v)\nSELECT :1", ["c"]),
        ]


@pytest.mark.unit
class TestCopyInto:
    def test_load_results_are_mapped(self, make_client):
        conn, cursor = build_fake_connection(
            rows=[
                {
                    "file": "raw_stage/events_1.csv.gz",
                    "status": "LOADED",
                    "rows_parsed": 10,
                    "rows_loaded": 10,
                    "error_limit": 1,
                    "errors_seen": 0,
                    "first_error": None,
                    "first_error_line": None,
                }
            ]
        )
        client, _, _ = make_client(conn)

        results = client.copy_into("analytics.events", "@raw_stage", file_format="csv_gz")

        cursor.execute.assert_called_once_with(
            "COPY INTO analytics.events FROM @raw_stage "
            "FILE_FORMAT = (FORMAT_NAME = 'csv_gz')",
            None,
        )
        assert results == [
            LoadResult(
                file="raw_stage/events_1.csv.gz",
                status="LOADED",
                rows_parsed=10,
                rows_loaded=10,
                error_limit=1,
                errors_seen=0,
                first_error=None,
                extra={"first_error_line": None},
            )
        ]

    def test_nothing_to_load(self, make_client):
        conn, _ = build_fake_connection(
            rows=[{"status": "Copy executed with 0 files processed."}]
        )
        client, _, _ = make_client(conn)

        assert client.copy_into("t", "raw_stage") == []

    def test_unsafe_stage_is_rejected(self, make_client):
        conn, cursor = build_fake_connection()
        client, _, _ = make_client(conn)

        with pytest.raises(UnsafeValueError):
            client.copy_into("t", "raw_stage; DROP TABLE t")

        cursor.execute.assert_not_called()


@pytest.mark.unit
def test_verbose_client_logs_at_info(make_client):
    conn, _ = build_fake_connection()
    client, _, _ = make_client(conn, verbose=True)
    client._logger = MagicMock()

    client.query("SELECT 1")

    calls = client._logger.info.call_args_list
    assert [c.args[0] for c in calls] == [
        "warehouse.query.started",
        "warehouse.query.completed",
    ]
    assert all(c.kwargs["verbose"] is True for c in calls)
    client._logger.debug.assert_not_called()


@pytest.mark.unit
def test_diagnostics_carry_the_verbose_flag(make_client):
    conn, _ = build_fake_connection()
    client, _, _ = make_client(conn)
    client._logger = MagicMock()

    client.query("SELECT :1", ["x"])

    started = client._logger.debug.call_args_list[0]
    assert started.args[0] == "warehouse.query.started"
    assert started.kwargs["verbose"] is False
    assert started.kwargs["params"] == ["x"]
    client._logger.info.assert_not_called()
