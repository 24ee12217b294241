# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Core configuration - centralized config for the spaceledger package.

All environment-based configuration should flow through this module.
This provides a single source of truth and consistent defaults.

Usage:
    from spaceledger.core.config import get_config
    config = get_config()

    # Access settings
    backend = config.store_backend
    session_ttl = config.session_ttl_seconds
"""

from __future__ import annotations

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

STORE_BACKENDS = ("memory", "postgres")


class CoreSettings(BaseSettings):
    """Core configuration settings for spaceledger.

    Settings can be configured via environment variables with the
    SPACELEDGER_ prefix, or from a local .env file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    # ==========================================================================
    # STORAGE SETTINGS
    # ==========================================================================

    store_backend: str = Field(
        default="memory",
        description="Durable store backend: 'memory' or 'postgres'",
        validation_alias="SPACELEDGER_STORE_BACKEND",
    )

    db_host: str = Field(
        default="localhost",
        description="Database host",
        validation_alias="SPACELEDGER_DB_HOST",
    )
    db_port: int = Field(
        default=5432,
        description="Database port",
        validation_alias="SPACELEDGER_DB_PORT",
    )
    db_name: str = Field(
        default="spaceledger",
        description="Database name",
        validation_alias="SPACELEDGER_DB_NAME",
    )
    db_user: str = Field(
        default="spaceledger",
        description="Database user",
        validation_alias="SPACELEDGER_DB_USER",
    )
    db_password: str = Field(
        default="",
        description="Database password",
        validation_alias="SPACELEDGER_DB_PASSWORD",
    )

    # Connection pool settings
    db_pool_min: int = Field(
        default=1,
        description="Minimum pool connections",
        validation_alias="SPACELEDGER_DB_POOL_MIN",
    )
    db_pool_max: int = Field(
        default=10,
        description="Maximum pool connections",
        validation_alias="SPACELEDGER_DB_POOL_MAX",
    )
    db_pool_timeout: int = Field(
        default=10,
        description="Seconds to wait for a pooled connection",
        validation_alias="SPACELEDGER_DB_POOL_TIMEOUT",
    )

    # ==========================================================================
    # LOGGING SETTINGS
    # ==========================================================================

    log_level: str = Field(
        default="INFO",
        description="Log level (DEBUG, INFO, WARNING, ERROR)",
        validation_alias="SPACELEDGER_LOG_LEVEL",
    )
    log_format: str = Field(
        default="",
        description="Log format: 'json', 'text', or '' (auto-detect)",
        validation_alias="SPACELEDGER_LOG_FORMAT",
    )
    log_file: str | None = Field(
        default=None,
        description="Log file path (optional)",
        validation_alias="SPACELEDGER_LOG_FILE",
    )

    # ==========================================================================
    # CACHE SETTINGS
    # ==========================================================================

    cache_max_size: int = Field(
        default=10000,
        description="Maximum entries per in-memory index",
        validation_alias="SPACELEDGER_CACHE_MAX_SIZE",
    )

    # ==========================================================================
    # LIFETIMES
    # ==========================================================================

    challenge_ttl_seconds: int = Field(
        default=5 * 60,
        description="Validity window of an authentication challenge",
        validation_alias="SPACELEDGER_CHALLENGE_TTL_SECONDS",
    )
    session_ttl_seconds: int = Field(
        default=24 * 60 * 60,
        description="Lifetime of an account session",
        validation_alias="SPACELEDGER_SESSION_TTL_SECONDS",
    )

    # ==========================================================================
    # MAINTENANCE SETTINGS
    # ==========================================================================

    session_sweep_interval_seconds: int = Field(
        default=60 * 60,
        description="Interval between expired-session sweeps",
        validation_alias="SPACELEDGER_SESSION_SWEEP_INTERVAL",
    )
    delegation_sweep_interval_seconds: int = Field(
        default=60 * 60,
        description="Interval between expired-delegation sweeps",
        validation_alias="SPACELEDGER_DELEGATION_SWEEP_INTERVAL",
    )
    challenge_sweep_interval_seconds: int = Field(
        default=60 * 60,
        description="Interval between stale-challenge cleanups",
        validation_alias="SPACELEDGER_CHALLENGE_SWEEP_INTERVAL",
    )

    @field_validator("store_backend")
    @classmethod
    def _check_backend(cls, value: str) -> str:
        value = value.lower()
        if value not in STORE_BACKENDS:
            raise ValueError(f"store_backend must be one of {', '.join(STORE_BACKENDS)}")
        return value

    # ==========================================================================
    # COMPUTED PROPERTIES
    # ==========================================================================

    @property
    def database_url(self) -> str:
        """Construct database URL."""
        return f"postgresql://{self.db_user}:{self.db_password}@{self.db_host}:{self.db_port}/{self.db_name}"

    @property
    def connection_params(self) -> dict:
        """Get database connection parameters dict."""
        return {
            "host": self.db_host,
            "port": self.db_port,
            "dbname": self.db_name,
            "user": self.db_user,
            "password": self.db_password,
        }


# ==========================================================================
# GLOBAL CONFIG INSTANCE (lazy loaded)
# ==========================================================================

_config: CoreSettings | None = None


def get_config() -> CoreSettings:
    """Get the process-wide configuration instance.

    Returns:
        The cached CoreSettings instance.
    """
    global _config
    if _config is None:
        _config = CoreSettings()
    return _config


def clear_config_cache() -> None:
    """Clear the config cache. Useful for testing."""
    global _config
    _config = None
