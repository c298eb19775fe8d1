"""Configuration management for safe_warehouse.

This module provides centralized configuration loaded from environment variables
with validation using Pydantic BaseSettings.

Usage:
    >>> from safe_warehouse.config import get_settings
    >>> settings = get_settings()
    >>> print(settings.SNOWFLAKE_POOL_MAX)
"""

from safe_warehouse.config.settings import Settings, get_settings

__all__ = [
    "Settings",
    "get_settings",
]
