"""Application configuration using Pydantic Settings.

Configuration is environment-aware:
- APP_ENV determines which .env file to load
- Supports: development, testing, staging, production
- Each environment has its own .env.{environment} file
"""

from __future__ import annotations

import os
from pathlib import Path

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


# Determine which environment to load (default: development)
APP_ENV = os.getenv("APP_ENV", "development")

# Project root (so .env resolution doesn't depend on current working directory)
PROJECT_ROOT = Path(__file__).resolve().parents[2]

# Map environments to their respective .env files (relative to PROJECT_ROOT)
ENV_FILE_MAP = {
    "development": ".env.development",
    "testing": ".env.testing",
    "staging": ".env.staging",
    "production": ".env.production",
}

# Select the .env file for the current environment
_env_filename = ENV_FILE_MAP.get(APP_ENV, ".env.development")
_env_path = PROJECT_ROOT / _env_filename

# Only load from file if it exists (production might inject via env vars only)
_env_file = str(_env_path) if _env_path.is_file() else None


# Load .env file early to populate os.environ before creating nested settings
# This is necessary because Pydantic nested BaseSettings don't inherit env_file
if _env_file and not os.getenv("TESTING"):
    from dotenv import load_dotenv
    load_dotenv(_env_file, override=True)


def _build_app_settings() -> "AppSettings":
    """Build app settings from environment.

    Pydantic Settings (v2) can populate values from environment variables.
    However, static type checkers often treat required fields as required
    constructor arguments, which is not how BaseSettings is intended to be used.
    """

    return AppSettings()  # type: ignore[call-arg]


def _build_redis_settings() -> "RedisSettings":
    """Build counter store settings from environment."""

    return RedisSettings()  # type: ignore[call-arg]


def _build_log_settings() -> "LogSettings":
    """Build logging settings from environment."""

    return LogSettings()  # type: ignore[call-arg]


class RouteRule(BaseModel):
    """A route-filtered rate limit declared through configuration.

    Loaded from ``APP_RATE_LIMIT_ROUTES`` as a JSON list, e.g.
    ``[{"path": "/v1/search", "method": "GET", "total": 30, "expire_ms": 60000}]``.
    Omitted fields fall back to the ``AppSettings`` defaults.
    """

    path: str
    method: str
    total: int | None = None
    expire_ms: int | None = None
    skip_headers: bool | None = None
    ignore_store_errors: bool | None = None


class RedisSettings(BaseSettings):
    """Counter store (Redis) connection configuration.

    Leaving ``url`` unset means no store is configured: the limiter then lets
    every request through without rate-limit headers.
    """

    url: str | None = Field(
        None,
        description="Redis connection URL (e.g., redis://localhost:6379/0)",
    )
    socket_timeout_seconds: float | None = Field(
        2.0,
        description="Socket timeout applied by the Redis client to each command",
    )
    socket_connect_timeout_seconds: float | None = Field(
        2.0,
        description="Timeout for establishing the Redis connection",
    )
    reconnect_interval_seconds: float = Field(
        5.0,
        description="Minimum delay between connectivity probes while disconnected",
        ge=0,
    )

    model_config = SettingsConfigDict(
        env_prefix="REDIS_",
        case_sensitive=False,
    )


class LogSettings(BaseSettings):
    """Logging configuration."""

    level: str = Field(
        "INFO",
        description="Root log level (DEBUG, INFO, WARNING, ERROR)",
    )
    format: str = Field(
        "json",
        description="Log format: json or plain",
    )
    output: str = Field(
        "stdout",
        description="Log destination: stdout or file",
    )
    file_path: str | None = Field(
        None,
        description="Log file path when output=file",
    )
    max_bytes: int = Field(
        10 * 1024 * 1024,
        description="Rotate log file after this many bytes (0 disables rotation)",
        ge=0,
    )
    backup_count: int = Field(
        5,
        description="Number of rotated log files to keep",
        ge=0,
    )
    request_id_header: str = Field(
        "X-Request-ID",
        description="Header used to propagate the request correlation id",
    )

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        case_sensitive=False,
    )


class AppSettings(BaseSettings):
    """Application-wide configuration."""

    debug: bool = Field(
        False,
        description="Enable debug mode with verbose logging",
    )

    rate_limit_default_total: int = Field(
        150,
        description="Requests allowed per window when a registration omits total",
        ge=0,
    )
    rate_limit_default_expire_ms: int = Field(
        60 * 60 * 1000,
        description="Window duration in milliseconds when a registration omits expire_ms",
        ge=1,
    )
    rate_limit_key_prefix: str = Field(
        "ratelimit",
        description="Namespace prepended to every counter key in the store",
        min_length=1,
    )
    rate_limit_skip_headers: bool = Field(
        False,
        description="Default for suppressing X-RateLimit-* and Retry-After headers",
    )
    rate_limit_ignore_store_errors: bool = Field(
        False,
        description="Default for letting requests through when the store errors",
    )
    rate_limit_routes: list[RouteRule] = Field(
        default_factory=list,
        description="Route-filtered limits registered at startup (JSON list)",
    )

    model_config = SettingsConfigDict(
        env_prefix="APP_",
        case_sensitive=False,
    )


class Settings(BaseSettings):
    """Main application settings container.

    Automatically loads from the appropriate .env.{APP_ENV} file.
    Raises validation errors on startup if settings are malformed.

    Environments:
    - development: Local development (DEBUG=true)
    - testing: Automated tests (uses .env.testing)
    - staging: Pre-production (uses .env.staging)
    - production: Production deployment (uses .env.production)
    """

    app_env: str = APP_ENV
    app: AppSettings = Field(default_factory=_build_app_settings)
    redis: RedisSettings = Field(default_factory=_build_redis_settings)
    log: LogSettings = Field(default_factory=_build_log_settings)

    model_config = SettingsConfigDict(
        case_sensitive=False,
    )


# Global settings instance - composed from domain-specific settings
# Nested settings are created via default_factory so env loading works.
settings = Settings()
