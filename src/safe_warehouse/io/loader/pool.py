"""Lazily initialized, bounded pool of warehouse connections.

The pool is built on first use from a flat ``key:value,key:value`` credential
string and then kept for the lifetime of its owner. Checkouts beyond the
configured size wait for a connection to be returned, without a limit
unless a pool timeout is configured.
"""

import threading
from contextlib import contextmanager
from enum import Enum
from typing import Any, Callable, Dict, Iterator, Optional

import snowflake.connector
from sqlalchemy.exc import TimeoutError as QueuePoolTimeout
from sqlalchemy.pool import QueuePool

from safe_warehouse.utils.logging import get_logger, redact_connection_options

from .models import MissingCredentialsError, PoolTimeoutError

logger = get_logger(__name__)

# Credential keys the connector spells differently
_OPTION_ALIASES = {"username": "user"}


class PoolState(Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"


def parse_credentials(text: Optional[str]) -> Dict[str, str]:
    """
    Parse ``key:value`` pairs separated by commas.

    Parsing is tolerant: pairs without a colon or with an empty key are
    dropped. Only the first colon separates key from value.

    Example:
        >>> parse_credentials("account: xy123, username:loader, password:a:b")
        {'account': 'xy123', 'user': 'loader', 'password': 'a:b'}
    """
    if not text:
        return {}
    result: Dict[str, str] = {}
    for pair in text.split(","):
        key, sep, value = pair.strip().partition(":")
        key = key.strip()
        if not sep or not key:
            continue
        result[_OPTION_ALIASES.get(key, key)] = value.strip()
    return result


def _connect(**options: Any) -> Any:
    return snowflake.connector.connect(paramstyle="numeric", **options)


class ConnectionPoolManager:
    """Owns one bounded connection pool created on first use."""

    def __init__(
        self,
        credentials: Optional[str],
        max_size: int = 1,
        timeout: Optional[float] = None,
        connect: Callable[..., Any] = _connect,
    ):
        self.credentials = credentials
        self.max_size = max(1, max_size)
        self.timeout = timeout
        self._connect = connect
        self._pool: Optional[QueuePool] = None
        self._state = PoolState.UNINITIALIZED
        self._lock = threading.Lock()

    @property
    def state(self) -> PoolState:
        return self._state

    def ensure_ready(self) -> QueuePool:
        """Create the pool if needed and return it.

        Raises:
            MissingCredentialsError: If no credentials were supplied
        """
        if self._pool is not None:
            return self._pool

        with self._lock:
            if self._pool is not None:
                return self._pool
            if not self.credentials or not self.credentials.strip():
                raise MissingCredentialsError(
                    "Required environment variable SNOWFLAKE_CREDENTIALS is undefined."
                )

            self._state = PoolState.INITIALIZING
            try:
                options = parse_credentials(self.credentials)
                self._pool = QueuePool(
                    lambda: self._connect(**options),
                    pool_size=self.max_size,
                    max_overflow=0,
                    timeout=self.timeout,
                    reset_on_return=None,
                )
            except Exception:
                self._state = PoolState.UNINITIALIZED
                raise
            self._state = PoolState.READY

        logger.debug(
            "warehouse.pool.initialized",
            connection=redact_connection_options(options),
            max_size=self.max_size,
        )
        return self._pool

    @contextmanager
    def connection(self) -> Iterator[Any]:
        """Check out a driver connection and always return it to the pool."""
        pool = self.ensure_ready()
        try:
            pooled = pool.connect()
        except QueuePoolTimeout as exc:
            raise PoolTimeoutError(
                f"No pooled connection was released within {self.timeout} seconds "
                f"(max_size={self.max_size})"
            ) from exc
        try:
            yield pooled.driver_connection
        finally:
            pooled.close()

    def dispose(self) -> None:
        """Close idle pooled connections and forget the pool."""
        with self._lock:
            if self._pool is not None:
                self._pool.dispose()
                self._pool = None
                logger.info("warehouse.pool.disposed")
            self._state = PoolState.UNINITIALIZED
