"""
Configuration management for safe_warehouse.

This module provides environment-based configuration using Pydantic BaseSettings,
so that warehouse credentials, pool bounds and diagnostic switches come from the
process environment (or a local .env file) instead of being hard-coded by callers.
"""

import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Determine project root for resolving .env by default
PROJECT_ROOT = Path(__file__).resolve().parents[3]
DEFAULT_ENV_FILE = PROJECT_ROOT / ".env"
ENV_FILE_OVERRIDE = os.getenv("SAFE_WAREHOUSE_ENV_FILE")
if ENV_FILE_OVERRIDE:
    env_file_candidate = Path(ENV_FILE_OVERRIDE).expanduser()
    if not env_file_candidate.is_absolute():
        env_file_candidate = PROJECT_ROOT / env_file_candidate
    SETTINGS_ENV_FILE = env_file_candidate
else:
    SETTINGS_ENV_FILE = DEFAULT_ENV_FILE


class Settings(BaseSettings):
    """
    Application settings with environment variable support.

    Fields are read from unprefixed, uppercase environment variables:
    - SNOWFLAKE_CREDENTIALS: comma-separated ``key:value`` connection options.
      Optional here; its absence only fails when the pool is first used.
    - SNOWFLAKE_POOL_MAX: maximum concurrent pooled connections
    - SNOWFLAKE_POOL_TIMEOUT: optional upper bound on waiting for a free connection
    - SNOWFLAKE_POLL_INTERVAL_MS: status poll interval for ``execute``
    - SNOWFLAKE_EXECUTE_TIMEOUT: optional upper bound for ``execute`` polling
    - BIGQUERY_PROJECT, BIGQUERY_LOCATION, BIGQUERY_CREDENTIALS_PATH: BigQuery client
      options; all optional, credentials fall back to application defaults
    - VERBOSE: log SQL text, parameters and timing at INFO instead of DEBUG
    - LOG_LEVEL: logging level (uppercase)
    """

    SNOWFLAKE_CREDENTIALS: Optional[str] = Field(
        default=None,
        validation_alias="SNOWFLAKE_CREDENTIALS",
        description="Warehouse connection options as 'key:value,key:value'",
    )
    SNOWFLAKE_POOL_MAX: int = Field(
        default=1,
        validation_alias="SNOWFLAKE_POOL_MAX",
        description="Maximum number of concurrent pooled connections",
    )
    SNOWFLAKE_POOL_TIMEOUT: Optional[float] = Field(
        default=None,
        validation_alias="SNOWFLAKE_POOL_TIMEOUT",
        description="Maximum seconds to wait for a pooled connection; unset waits forever",
    )
    SNOWFLAKE_POLL_INTERVAL_MS: int = Field(
        default=100,
        validation_alias="SNOWFLAKE_POLL_INTERVAL_MS",
        description="Status poll interval for asynchronous statements (ms)",
    )
    SNOWFLAKE_EXECUTE_TIMEOUT: Optional[float] = Field(
        default=None,
        validation_alias="SNOWFLAKE_EXECUTE_TIMEOUT",
        description="Maximum seconds to wait for execute(); unset waits forever",
    )
    BIGQUERY_PROJECT: Optional[str] = Field(
        default=None,
        validation_alias="BIGQUERY_PROJECT",
        description="GCP project for BigQuery jobs; unset uses the environment default",
    )
    BIGQUERY_LOCATION: Optional[str] = Field(
        default=None,
        validation_alias="BIGQUERY_LOCATION",
        description="Default BigQuery job location (e.g. US, EU)",
    )
    BIGQUERY_CREDENTIALS_PATH: Optional[str] = Field(
        default=None,
        validation_alias="BIGQUERY_CREDENTIALS_PATH",
        description="Service account key file; unset uses application default credentials",
    )
    VERBOSE: bool = Field(
        default=False,
        validation_alias="VERBOSE",
        description="Emit SQL text, parameters and timing as INFO events",
    )
    LOG_LEVEL: str = Field(
        default="INFO",
        validation_alias="LOG_LEVEL",
        description="Logging level (uppercase)",
    )

    @field_validator("SNOWFLAKE_POOL_MAX", mode="before")
    @classmethod
    def _coerce_pool_max(cls, value: Any) -> int:
        """Fall back to a single connection for blank, invalid or non-positive input."""
        try:
            size = int(str(value).strip())
        except (TypeError, ValueError):
            return 1
        return size if size > 0 else 1

    @field_validator("SNOWFLAKE_POOL_TIMEOUT", "SNOWFLAKE_EXECUTE_TIMEOUT", mode="before")
    @classmethod
    def _blank_timeout_is_unbounded(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @property
    def poll_interval_seconds(self) -> float:
        return self.SNOWFLAKE_POLL_INTERVAL_MS / 1000

    model_config = SettingsConfigDict(
        env_file=str(SETTINGS_ENV_FILE),
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses LRU cache to ensure settings are loaded once and reused across
    the application lifecycle.

    Returns:
        Settings instance with loaded configuration
    """
    return Settings()
