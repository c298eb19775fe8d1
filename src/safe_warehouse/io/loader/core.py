import json
import time
import uuid
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional

import numpy as np
import pandas as pd
from snowflake.connector import DictCursor

from safe_warehouse.config import Settings, get_settings
from safe_warehouse.io.loader.binds import translate_params
from safe_warehouse.io.loader.insert_builder import (
    _ensure_list_of_rows,
    build_insert_sql,
    chunk_rows,
)
from safe_warehouse.io.loader.models import (
    ExecuteTimeoutError,
    LoadResult,
    QueryExecutionError,
    RowStreamError,
)
from safe_warehouse.io.loader.pool import ConnectionPoolManager
from safe_warehouse.io.loader.sql_utils import (
    validate_stage_name,
    validate_table_name,
)
from safe_warehouse.utils.logging import get_logger

if TYPE_CHECKING:
    from safe_warehouse.io.loader.insert_builder import Rows

logger = get_logger(__name__)

_LOAD_RESULT_FIELDS = (
    "file",
    "status",
    "rows_parsed",
    "rows_loaded",
    "error_limit",
    "errors_seen",
    "first_error",
)


def _describe_error(exc: BaseException, sql: str, params: Any) -> str:
    message = f"{exc}\nQUERY: {sql}"
    if params is not None:
        message += f"\nPARAMS: {json.dumps(params, default=str)}"
    return message


def format_value(value: Any) -> Any:
    """Convert warehouse timestamp wrappers to datetime, walking containers."""
    if value is None:
        return None
    if value is pd.NaT:
        return None
    if isinstance(value, pd.Timestamp):
        return value.to_pydatetime()
    if isinstance(value, np.datetime64):
        return None if np.isnat(value) else pd.Timestamp(value).to_pydatetime()
    if isinstance(value, (list, tuple)):
        return [format_value(item) for item in value]
    if isinstance(value, Mapping):
        return {key: format_value(item) for key, item in value.items()}
    return value


def format_row(row: Mapping) -> Dict[str, Any]:
    """Lower-case field names and normalize every value."""
    return {str(key).lower(): format_value(value) for key, value in row.items()}


class WarehouseClient:
    """Pooled query, execute and bulk insert operations against the warehouse."""

    def __init__(
        self,
        pool: ConnectionPoolManager,
        poll_interval: float = 0.1,
        execute_timeout: Optional[float] = None,
        verbose: bool = False,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.pool = pool
        self.poll_interval = poll_interval
        self.execute_timeout = execute_timeout
        self.verbose = verbose
        self._sleep = sleep
        self._logger = logger

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "WarehouseClient":
        settings = settings or get_settings()
        pool = ConnectionPoolManager(
            settings.SNOWFLAKE_CREDENTIALS,
            max_size=settings.SNOWFLAKE_POOL_MAX,
            timeout=settings.SNOWFLAKE_POOL_TIMEOUT,
        )
        return cls(
            pool,
            poll_interval=settings.poll_interval_seconds,
            execute_timeout=settings.SNOWFLAKE_EXECUTE_TIMEOUT,
            verbose=settings.VERBOSE,
        )

    def close(self) -> None:
        self.pool.dispose()

    def _diagnostic(self, event: str, **fields: Any) -> None:
        # ``verbose`` is consumed by statement_diagnostics_processor
        if self.verbose:
            self._logger.info(event, verbose=True, **fields)
        else:
            self._logger.debug(event, verbose=False, **fields)

    def query(self, sql: str, params: Any = None) -> List[Dict[str, Any]]:
        """
        Run a statement and return every result row.

        Field names are lower-cased and timestamp values converted to
        ``datetime``.

        Raises:
            MissingCredentialsError: If the pool has no credentials
            QueryExecutionError: If the statement is rejected
            RowStreamError: If reading the result fails part way
        """
        self.pool.ensure_ready()
        sql_text, binds = translate_params(sql, params)
        execution_id = uuid.uuid4().hex
        start_time = time.perf_counter()
        self._diagnostic(
            "warehouse.query.started",
            sql=sql_text,
            params=params,
            execution_id=execution_id,
        )

        rows: List[Mapping] = []
        with self.pool.connection() as conn:
            cursor = conn.cursor(DictCursor)
            try:
                try:
                    cursor.execute(sql_text, binds)
                except Exception as exc:
                    raise QueryExecutionError(
                        _describe_error(exc, sql, params), sql=sql, params=params
                    ) from exc
                try:
                    for row in cursor:
                        rows.append(row)
                except Exception as exc:
                    rows = []
                    raise RowStreamError(
                        _describe_error(exc, sql, params), sql=sql, params=params
                    ) from exc
            except QueryExecutionError as exc:
                self._logger.error(
                    "warehouse.query.failed",
                    execution_id=execution_id,
                    duration_ms=(time.perf_counter() - start_time) * 1000,
                    error=str(exc.__cause__),
                )
                raise
            finally:
                cursor.close()

        self._diagnostic(
            "warehouse.query.completed",
            execution_id=execution_id,
            rows=len(rows),
            duration_ms=(time.perf_counter() - start_time) * 1000,
        )
        return [format_row(row) for row in rows]

    def query_dataframe(self, sql: str, params: Any = None) -> pd.DataFrame:
        """Run a statement and return the normalized rows as a DataFrame."""
        return pd.DataFrame.from_records(self.query(sql, params))

    def execute(self, sql: str, params: Any = None) -> None:
        """
        Submit a statement and wait until the warehouse reports it finished.

        Status is polled every ``poll_interval`` seconds. Without an
        ``execute_timeout`` the wait is unbounded.

        Raises:
            QueryExecutionError: If the statement is rejected or fails
            ExecuteTimeoutError: If execute_timeout elapses first
        """
        self.pool.ensure_ready()
        sql_text, binds = translate_params(sql, params)
        start_time = time.perf_counter()
        self._diagnostic("warehouse.execute.started", sql=sql_text, params=params)

        with self.pool.connection() as conn:
            cursor = conn.cursor()
            try:
                try:
                    cursor.execute_async(sql_text, binds)
                except Exception as exc:
                    raise QueryExecutionError(
                        _describe_error(exc, sql, params), sql=sql, params=params
                    ) from exc
                query_id = cursor.sfqid
                polls = self._wait_for_completion(conn, query_id, sql, params)
            finally:
                cursor.close()

        self._diagnostic(
            "warehouse.execute.completed",
            query_id=query_id,
            polls=polls,
            duration_ms=(time.perf_counter() - start_time) * 1000,
        )

    def _wait_for_completion(
        self, conn: Any, query_id: str, sql: str, params: Any
    ) -> int:
        """Poll query status while it is still running; return the poll count."""
        deadline = (
            time.monotonic() + self.execute_timeout
            if self.execute_timeout is not None
            else None
        )
        polls = 0
        try:
            status = conn.get_query_status_throw_if_error(query_id)
            while conn.is_still_running(status):
                if deadline is not None and time.monotonic() >= deadline:
                    raise ExecuteTimeoutError(
                        f"Statement {query_id} still running after "
                        f"{self.execute_timeout} seconds\nQUERY: {sql}",
                        sql=sql,
                        query_id=query_id,
                    )
                self._sleep(self.poll_interval)
                polls += 1
                status = conn.get_query_status_throw_if_error(query_id)
        except ExecuteTimeoutError:
            raise
        except Exception as exc:
            self._logger.error(
                "warehouse.execute.failed", query_id=query_id, error=str(exc)
            )
            raise QueryExecutionError(
                _describe_error(exc, sql, params), sql=sql, params=params
            ) from exc
        return polls

    def stage(self, stage_name: str, file: str) -> None:
        """Upload a local file to a named stage; arguments are not sanitized."""
        self.execute(f"PUT file://{file} @{stage_name} AUTO_COMPRESS=TRUE")

    def insert(self, table: str, rows: "Rows", batch_size: Optional[int] = None) -> None:
        """
        Insert one row or a list of rows with a single UNION ALL statement.

        Empty input is a no-op. ``batch_size`` splits large inputs into several
        statements.

        Raises:
            UnsafeTableNameError: Before any SQL is sent, for unsafe table names
        """
        rows = _ensure_list_of_rows(rows)
        if not rows:
            self._logger.debug("warehouse.insert.skipped", reason="no_rows", table=table)
            return
        validate_table_name(table)

        for batch in chunk_rows(rows, batch_size):
            sql, binds = build_insert_sql(table, batch)
            self.execute(sql, binds)

        self._diagnostic("warehouse.insert.completed", table=table, rows=len(rows))

    def copy_into(
        self, table: str, stage_name: str, file_format: Optional[str] = None
    ) -> List[LoadResult]:
        """Load staged files into a table and report the per-file outcome."""
        validate_table_name(table)
        stage = validate_stage_name(stage_name).lstrip("@")
        sql = f"COPY INTO {table} FROM @{stage}"
        if file_format is not None:
            validate_table_name(file_format)
            sql += f" FILE_FORMAT = (FORMAT_NAME = '{file_format}')"

        results = [
            _to_load_result(row) for row in self.query(sql) if row.get("file")
        ]
        self._logger.info(
            "warehouse.copy.completed",
            table=table,
            files=len(results),
            rows_loaded=sum(result.rows_loaded for result in results),
        )
        return results


def _to_load_result(row: Dict[str, Any]) -> LoadResult:
    values = {key: row.get(key) for key in _LOAD_RESULT_FIELDS}
    extra = {
        key: value
        for key, value in row.items()
        if key not in _LOAD_RESULT_FIELDS
    }
    return LoadResult(
        file=values["file"] or "",
        status=values["status"] or "",
        rows_parsed=int(values["rows_parsed"] or 0),
        rows_loaded=int(values["rows_loaded"] or 0),
        error_limit=int(values["error_limit"] or 0),
        errors_seen=int(values["errors_seen"] or 0),
        first_error=values["first_error"],
        extra=extra,
    )
