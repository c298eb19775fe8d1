import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

SAFE_LITERAL_PATTERN = re.compile(r"[A-Za-z0-9(),'._-]*")


class WarehouseError(Exception):
    """Base class for errors raised by the warehouse loader."""


class UnsafeValueError(WarehouseError, ValueError):
    """Raised when a value cannot be rendered as an inline SQL literal."""

    def __init__(self, value: Any):
        super().__init__(f'Unsafe value for query: "{value}"')
        self.value = value


class UnsafeLiteralError(WarehouseError, ValueError):
    """Raised when SafeLiteral text contains characters outside its whitelist."""


class UnsafeTableNameError(WarehouseError, ValueError):
    """Raised when a table identifier fails validation."""


class UnsafeColumnNameError(WarehouseError, ValueError):
    """Raised when a column identifier fails validation."""


class InconsistentRowError(WarehouseError, ValueError):
    """Raised when rows of one bulk insert do not share the same fields."""


class BindError(WarehouseError, ValueError):
    """Raised when parameters cannot be translated into positional binds."""


class MissingCredentialsError(WarehouseError):
    """Raised when the connection pool is used without credentials."""


class QueryExecutionError(WarehouseError):
    """Raised when the warehouse rejects a statement.

    Carries the statement text and the caller's parameters so the failure
    can be diagnosed without reproducing the call.
    """

    def __init__(self, message: str, sql: str, params: Any = None):
        super().__init__(message)
        self.sql = sql
        self.params = params


class RowStreamError(QueryExecutionError):
    """Raised when the result stream fails after the statement was accepted."""


class PoolTimeoutError(WarehouseError):
    """Raised when no pooled connection is released within the pool timeout."""


class BigQueryInsertError(WarehouseError):
    """Raised when BigQuery reports per-row errors for a streaming insert.

    ``errors`` holds the service's per-row error entries unchanged.
    """

    def __init__(self, message: str, table: str, errors: list):
        super().__init__(message)
        self.table = table
        self.errors = errors


class ExecuteTimeoutError(WarehouseError):
    """Raised when execute() outlives the configured timeout."""

    def __init__(self, message: str, sql: str, query_id: Optional[str] = None):
        super().__init__(message)
        self.sql = sql
        self.query_id = query_id


@dataclass(frozen=True)
class SafeLiteral:
    """Pre-validated SQL text spliced verbatim into generated statements.

    Only letters, digits and ``(),'._-`` are accepted, which is enough for
    function calls such as ``CURRENT_TIMESTAMP()``.
    """

    text: str

    def __post_init__(self):
        if not isinstance(self.text, str) or not SAFE_LITERAL_PATTERN.fullmatch(
            self.text
        ):
            raise UnsafeLiteralError(f'Unsafe literal for query: "{self.text}"')

    def __str__(self) -> str:
        return self.text


class ValueKind(Enum):
    """Encoding rule chosen for a single field value in a bulk insert."""

    NULL = "null"
    LITERAL = "literal"
    BOOLEAN = "boolean"
    ARRAY = "array"
    OBJECT = "object"
    NUMBER = "number"
    BIND = "bind"


@dataclass
class LoadResult:
    """Per-file outcome reported by COPY INTO."""

    file: str
    status: str
    rows_parsed: int = 0
    rows_loaded: int = 0
    error_limit: int = 0
    errors_seen: int = 0
    first_error: Optional[str] = None
    extra: dict = field(default_factory=dict)
