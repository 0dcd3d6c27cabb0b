"""
Configuration module for entityquery.

This module provides configuration management including
loading settings from YAML files and environment variables.

Example:
    >>> from config import Settings, load_config
    >>>
    >>> # Load default config
    >>> settings = load_config()
    >>>
    >>> # Access settings
    >>> print(settings.cache_config.max_entries)
    >>> print(settings.executor_config.max_workers)
"""

from .settings import (
    Settings,
    CacheConfig,
    ExecutorConfig,
    load_config,
    get_default_config_path,
)

__all__ = [
    "Settings",
    "CacheConfig",
    "ExecutorConfig",
    "load_config",
    "get_default_config_path",
]
