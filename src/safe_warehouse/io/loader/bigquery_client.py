"""BigQuery backend: named-parameter queries and streaming inserts.

BigQuery binds ``@name`` parameters server side, so values never reach the
statement text. Each Python value is mapped to a typed query parameter; rows
coming back have their DATE values widened to ``datetime`` so callers see one
timestamp type regardless of the column type.
"""

import json
import re
import threading
import time
import uuid
from collections.abc import Mapping
from datetime import date, datetime
from datetime import time as dt_time
from decimal import Decimal
from typing import Any, Dict, List, Optional

from google.cloud import bigquery
from google.oauth2 import service_account

from safe_warehouse.config import Settings, get_settings
from safe_warehouse.utils.logging import get_logger

from .core import _describe_error
from .insert_builder import Rows, _ensure_list_of_rows, _to_json, chunk_rows
from .models import BigQueryInsertError, BindError, QueryExecutionError
from .sql_utils import validate_bigquery_table_name

logger = get_logger(__name__)

PARAMETER_NAME_PATTERN = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")

# bool must precede int
_SCALAR_TYPES = (
    (bool, "BOOL"),
    (int, "INT64"),
    (float, "FLOAT64"),
    (Decimal, "NUMERIC"),
    (str, "STRING"),
    (bytes, "BYTES"),
)


def scalar_type(value: Any) -> str:
    """
    Map a Python scalar to its BigQuery standard SQL type name.

    Aware datetimes are TIMESTAMP, naive ones DATETIME.

    Raises:
        BindError: For values with no scalar parameter type
    """
    if isinstance(value, datetime):
        return "TIMESTAMP" if value.tzinfo is not None else "DATETIME"
    if isinstance(value, date):
        return "DATE"
    if isinstance(value, dt_time):
        return "TIME"
    for python_type, type_name in _SCALAR_TYPES:
        if isinstance(value, python_type):
            return type_name
    raise BindError(f"Unsupported BigQuery parameter value: {value!r}")


def _struct_parameter(name: Optional[str], value: Mapping) -> Any:
    fields = [to_query_parameter(key, item) for key, item in value.items()]
    return bigquery.StructQueryParameter(name, *fields)


def _array_parameter(name: str, values: List[Any]) -> Any:
    if any(item is None for item in values):
        raise BindError(f"Parameter @{name}: BigQuery arrays cannot hold NULL")
    if any(isinstance(item, (list, tuple)) for item in values):
        raise BindError(f"Parameter @{name}: BigQuery arrays cannot be nested")

    if values and all(isinstance(item, Mapping) for item in values):
        return bigquery.ArrayQueryParameter(
            name, "STRUCT", [_struct_parameter(None, item) for item in values]
        )

    types = {scalar_type(item) for item in values}
    if len(types) > 1:
        raise BindError(
            f"Parameter @{name}: array elements mix types {sorted(types)}"
        )
    element_type = types.pop() if types else "STRING"
    return bigquery.ArrayQueryParameter(name, element_type, list(values))


def to_query_parameter(name: str, value: Any) -> Any:
    """
    Build the typed query parameter for one named value.

    ``None`` binds as a NULL STRING, lists as ARRAY and mappings as STRUCT.

    Raises:
        BindError: For invalid names or values BigQuery cannot bind
    """
    if not isinstance(name, str) or not PARAMETER_NAME_PATTERN.fullmatch(name):
        raise BindError(f"Invalid BigQuery parameter name: {name!r}")
    if value is None:
        return bigquery.ScalarQueryParameter(name, "STRING", None)
    if isinstance(value, (list, tuple)):
        return _array_parameter(name, list(value))
    if isinstance(value, Mapping):
        return _struct_parameter(name, value)
    return bigquery.ScalarQueryParameter(name, scalar_type(value), value)


def build_query_parameters(params: Any) -> List[Any]:
    """Translate a name-to-value mapping into BigQuery query parameters."""
    if params is None:
        return []
    if not isinstance(params, Mapping):
        raise BindError(
            "BigQuery parameters must map @names to values, "
            f"got {type(params).__name__}"
        )
    return [to_query_parameter(name, value) for name, value in params.items()]


def format_bigquery_value(value: Any) -> Any:
    """Widen DATE values to ``datetime``, walking REPEATED and RECORD fields."""
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime.combine(value, dt_time.min)
    if isinstance(value, (list, tuple)):
        return [format_bigquery_value(item) for item in value]
    if isinstance(value, Mapping):
        return {key: format_bigquery_value(item) for key, item in value.items()}
    return value


def format_bigquery_row(row: Any) -> Dict[str, Any]:
    """Convert a result row to a dict; field names keep their case."""
    return {key: format_bigquery_value(value) for key, value in row.items()}


class BigQueryClient:
    """Query and streaming insert operations against BigQuery.

    The underlying ``bigquery.Client`` is created on first use from the
    project, location and optional service account key file.
    """

    def __init__(
        self,
        client: Any = None,
        project: Optional[str] = None,
        location: Optional[str] = None,
        credentials_path: Optional[str] = None,
        verbose: bool = False,
    ):
        self.project = project
        self.location = location
        self.credentials_path = credentials_path
        self.verbose = verbose
        self._client = client
        self._lock = threading.Lock()
        self._logger = logger

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "BigQueryClient":
        settings = settings or get_settings()
        return cls(
            project=settings.BIGQUERY_PROJECT,
            location=settings.BIGQUERY_LOCATION,
            credentials_path=settings.BIGQUERY_CREDENTIALS_PATH,
            verbose=settings.VERBOSE,
        )

    @property
    def client(self) -> Any:
        if self._client is not None:
            return self._client
        with self._lock:
            if self._client is None:
                credentials = None
                if self.credentials_path:
                    credentials = service_account.Credentials.from_service_account_file(
                        self.credentials_path
                    )
                self._client = bigquery.Client(
                    project=self.project,
                    credentials=credentials,
                    location=self.location,
                )
                self._logger.debug(
                    "bigquery.client.initialized",
                    project=self.project,
                    location=self.location,
                    service_account=bool(self.credentials_path),
                )
        return self._client

    def close(self) -> None:
        with self._lock:
            if self._client is not None:
                self._client.close()
                self._client = None

    def _diagnostic(self, event: str, **fields: Any) -> None:
        if self.verbose:
            self._logger.info(event, verbose=True, **fields)
        else:
            self._logger.debug(event, verbose=False, **fields)

    def query(self, sql: str, params: Optional[Mapping] = None) -> List[Dict[str, Any]]:
        """
        Run a statement with ``@name`` parameters and return every row.

        Raises:
            BindError: If a parameter cannot be typed
            QueryExecutionError: If the job is rejected or fails
        """
        job_config = bigquery.QueryJobConfig(
            query_parameters=build_query_parameters(params)
        )
        execution_id = uuid.uuid4().hex
        start_time = time.perf_counter()
        self._diagnostic(
            "bigquery.query.started",
            sql=sql,
            params=params,
            execution_id=execution_id,
        )

        try:
            job = self.client.query(sql, job_config=job_config)
            rows = [format_bigquery_row(row) for row in job.result()]
        except Exception as exc:
            self._logger.error(
                "bigquery.query.failed",
                execution_id=execution_id,
                duration_ms=(time.perf_counter() - start_time) * 1000,
                error=str(exc),
            )
            raise QueryExecutionError(
                _describe_error(exc, sql, params), sql=sql, params=params
            ) from exc

        self._diagnostic(
            "bigquery.query.completed",
            execution_id=execution_id,
            job_id=getattr(job, "job_id", None),
            rows=len(rows),
            duration_ms=(time.perf_counter() - start_time) * 1000,
        )
        return rows

    def insert(self, table: str, rows: Rows, batch_size: Optional[int] = None) -> None:
        """
        Stream rows into ``dataset.table`` with the insertAll API.

        Dates, Decimals and SafeLiteral values are converted to JSON values
        first. Empty input is a no-op.

        Raises:
            UnsafeTableNameError: If the table reference is malformed
            BigQueryInsertError: If the service rejects any row
        """
        rows = _ensure_list_of_rows(rows)
        if not rows:
            self._logger.debug("bigquery.insert.skipped", reason="no_rows", table=table)
            return
        validate_bigquery_table_name(table)

        for batch in chunk_rows(rows, batch_size):
            json_rows = [json.loads(_to_json(dict(row))) for row in batch]
            errors = self.client.insert_rows_json(table, json_rows)
            if errors:
                self._logger.error(
                    "bigquery.insert.failed", table=table, rejected=len(errors)
                )
                raise BigQueryInsertError(
                    f"{len(errors)} of {len(batch)} rows rejected by {table}: "
                    f"{errors[0]}",
                    table=table,
                    errors=errors,
                )

        self._diagnostic("bigquery.insert.completed", table=table, rows=len(rows))
