"""structlog configuration for safe_warehouse.

Events are JSON lines on stdout, emitted through the ``safe_warehouse``
stdlib logger. Two processors in the chain are specific to this package:

- ``redact_credentials_processor`` masks secret connector options (the
  parsed ``SNOWFLAKE_CREDENTIALS`` pairs) wherever they appear in an event.
- ``statement_diagnostics_processor`` keeps bind values of statement
  events only when the client logged them in verbose mode; otherwise each
  value is reduced to its type name.

Settings used:
- VERBOSE: statement diagnostics are logged at INFO with their bind values
- LOG_LEVEL: level of the ``safe_warehouse`` logger when VERBOSE is off

Usage:
    >>> from safe_warehouse.utils.logging import get_logger
    >>> logger = get_logger(__name__)
    >>> logger.info("warehouse.copy.completed", table="events", files=2)
"""

import logging
import sys
from collections.abc import Mapping
from typing import Any, Dict, Optional

import structlog
from structlog.types import EventDict

from safe_warehouse.config import get_settings

PACKAGE_LOGGER = "safe_warehouse"
REDACTED_VALUE = "[REDACTED]"

# Substrings of connector keywords whose values are secrets
# (password, passcode, token, private_key_file_pwd, oauth_client_secret, ...)
_SECRET_MARKERS = (
    "password",
    "passcode",
    "passphrase",
    "pwd",
    "token",
    "secret",
    "private_key",
)
_CREDENTIAL_SETTINGS = frozenset({"snowflake_credentials", "credentials"})


def _is_secret_option(key: Any) -> bool:
    name = str(key).lower()
    return name in _CREDENTIAL_SETTINGS or any(m in name for m in _SECRET_MARKERS)


def redact_connection_options(options: Mapping) -> Dict[str, Any]:
    """Copy connector options with secret values masked.

    Example:
        >>> redact_connection_options({"account": "xy1", "password": "s3cret"})
        {'account': 'xy1', 'password': '[REDACTED]'}
    """
    redacted: Dict[str, Any] = {}
    for key, value in options.items():
        if _is_secret_option(key):
            redacted[key] = REDACTED_VALUE
        elif isinstance(value, Mapping):
            redacted[key] = redact_connection_options(value)
        else:
            redacted[key] = value
    return redacted


def redact_credentials_processor(
    logger: Any, method_name: str, event_dict: EventDict
) -> EventDict:
    """Mask secrets at the top level of an event and inside mapping fields."""
    return redact_connection_options(event_dict)


def describe_params(params: Any) -> Any:
    """Replace bind values by their type names, keeping names and positions."""
    if params is None:
        return None
    if isinstance(params, Mapping):
        return {key: type(value).__name__ for key, value in params.items()}
    if isinstance(params, (list, tuple)):
        return [type(value).__name__ for value in params]
    return type(params).__name__


def statement_diagnostics_processor(
    logger: Any, method_name: str, event_dict: EventDict
) -> EventDict:
    """Drop bind values from events not logged by a verbose client.

    ``verbose`` is set by the warehouse clients and never rendered.
    """
    verbose = event_dict.pop("verbose", False)
    if "params" in event_dict and not verbose:
        event_dict["params"] = describe_params(event_dict["params"])
    return event_dict


def _level_from_settings() -> int:
    settings = get_settings()
    if settings.VERBOSE:
        return logging.DEBUG
    level = logging.getLevelName(settings.LOG_LEVEL.upper())
    return level if isinstance(level, int) else logging.INFO


def configure_logging(level: Optional[int] = None) -> None:
    """Configure the package logger and structlog; safe to call again.

    Args:
        level: Explicit level; derived from VERBOSE and LOG_LEVEL when omitted
    """
    if level is None:
        level = _level_from_settings()

    package_logger = logging.getLogger(PACKAGE_LOGGER)
    package_logger.setLevel(level)
    package_logger.propagate = False
    if not package_logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter("%(message)s"))
        package_logger.addHandler(handler)

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso"),
            redact_credentials_processor,
            statement_diagnostics_processor,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(default=str),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


configure_logging()


def get_logger(name: str) -> Any:
    """Return a structlog logger; ``name`` should sit under ``safe_warehouse``."""
    return structlog.get_logger(name)
