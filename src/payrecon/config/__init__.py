"""Application configuration helpers."""

from __future__ import annotations

from .bepaid import BePaidConfig, get_bepaid_config
from .env import require_env_var, require_env_vars
from .errors import ConfigurationError, MissingConfigurationError
from .http_resilience import CacheConfig, RateLimit, ResilienceConfig, RetryPolicy
from .logging import configure_logging
from .storage import DatabaseConfig, StorageConfig, get_database_config, get_storage_config

__all__ = [
    "BePaidConfig",
    "CacheConfig",
    "ConfigurationError",
    "DatabaseConfig",
    "MissingConfigurationError",
    "RateLimit",
    "ResilienceConfig",
    "RetryPolicy",
    "StorageConfig",
    "configure_logging",
    "get_bepaid_config",
    "get_database_config",
    "get_storage_config",
    "require_env_var",
    "require_env_vars",
]
