"""Application configuration using Pydantic Settings.

Settings are grouped by concern (logging, gateway trust, rate limiting,
Redis, MongoDB), each with its own environment prefix. ``APP_ENV`` selects
an optional ``.env.{environment}`` file that is loaded before any group is
built; variables already present in the environment are overridden by it.
"""

from __future__ import annotations

import os
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


APP_ENV = os.getenv("APP_ENV", "development")

PROJECT_ROOT = Path(__file__).resolve().parents[2]

ENV_FILE_MAP = {
    "development": ".env.development",
    "testing": ".env.testing",
    "staging": ".env.staging",
    "production": ".env.production",
}

_env_path = PROJECT_ROOT / ENV_FILE_MAP.get(APP_ENV, ".env.development")

# Containers usually inject variables directly and ship no file.
_env_file = str(_env_path) if _env_path.is_file() else None

# Nested BaseSettings groups do not inherit env_file, so the file is pushed
# into os.environ up front.
if _env_file:
    from dotenv import load_dotenv
    load_dotenv(_env_file, override=True)


def _build_log_settings() -> "LogSettings":
    """Build log settings from environment.

    Pydantic Settings (v2) can populate values from environment variables.
    However, static type checkers often treat required fields as required
    constructor arguments, which is not how BaseSettings is intended to be used.
    """

    return LogSettings()  # type: ignore[call-arg]


def _build_app_settings() -> "AppSettings":
    """Build app settings from environment.

    See _build_log_settings() for rationale about the type ignore.
    """

    return AppSettings()  # type: ignore[call-arg]


def _build_rate_limit_settings() -> "RateLimitSettings":
    return RateLimitSettings()  # type: ignore[call-arg]


def _build_redis_settings() -> "RedisSettings":
    return RedisSettings()  # type: ignore[call-arg]


def _build_mongo_settings() -> "MongoSettings":
    return MongoSettings()  # type: ignore[call-arg]


class LogSettings(BaseSettings):
    """Logging output configuration."""

    level: str = Field("INFO", description="Root log level (DEBUG, INFO, WARNING...)")
    format: str = Field(
        "json",
        description="Log line format: 'json' (structured) or 'plain'",
    )
    output: str = Field(
        "stdout",
        description="Where to write logs: 'stdout' or 'file'",
    )
    file_path: str | None = Field(
        None,
        description="Log file path when output=file (default logs/app.log)",
    )
    max_bytes: int = Field(
        10_485_760,
        description="Rotate the log file after this many bytes (0 disables rotation)",
    )
    backup_count: int = Field(5, description="Number of rotated log files to keep")
    request_id_header: str = Field(
        "X-Request-ID",
        description="Header used to read/propagate the request correlation id",
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
    gateway_key_required: bool = Field(
        True,
        description="Whether requests must carry a trusted X-Gateway-Key header",
    )
    gateway_keys: str | None = Field(
        None,
        description="Comma-separated list of gateway keys allowed to forward principals",
    )
    principal_header: str = Field(
        "X-User-ID",
        description="Header carrying the principal id verified by the gateway",
    )

    model_config = SettingsConfigDict(
        env_prefix="APP_",
        case_sensitive=False,
    )


class RateLimitSettings(BaseSettings):
    """Per-route write limits.

    Issue creation is limited per principal using a fixed window shared by
    every service instance through the counter store.
    """

    enabled: bool = Field(True, description="Enable the per-user issue creation limit")
    issue_namespace: str = Field(
        "issue_limit",
        description="Counter key namespace for issue creation",
        min_length=1,
    )
    issue_limit: int = Field(
        2,
        description="Maximum issues a user may create per window",
        ge=0,
    )
    issue_window_seconds: int = Field(
        86_400,
        description="Issue creation window size in seconds",
        ge=1,
    )
    include_headers: bool = Field(
        True,
        description="Include X-RateLimit-* and Retry-After headers when throttling",
    )
    fallback_retry_after_seconds: int | None = Field(
        None,
        description=(
            "Retry-After reported when the counter TTL cannot be read "
            "(defaults to the window length)"
        ),
        ge=1,
    )

    model_config = SettingsConfigDict(
        env_prefix="RATE_LIMIT_",
        case_sensitive=False,
    )


class RedisSettings(BaseSettings):
    """Counter store (Redis) connection."""

    backend: str = Field(
        "redis",
        description="Counter store backend: 'redis' or 'memory' (single process only)",
    )
    url: str = Field("redis://localhost:6379/0", description="Redis connection URL")
    timeout_seconds: float = Field(
        2.0,
        description="Deadline for a single counter store round trip",
        gt=0,
    )

    model_config = SettingsConfigDict(
        env_prefix="REDIS_",
        case_sensitive=False,
    )


class MongoSettings(BaseSettings):
    """Document store (MongoDB) connection."""

    backend: str = Field(
        "mongo",
        description="Document store backend: 'mongo' or 'memory' (single process only)",
    )
    uri: str = Field("mongodb://localhost:27017", description="MongoDB connection URI")
    database: str = Field("civicsync", description="Database name")
    timeout_seconds: float = Field(
        10.0,
        description="Deadline for a single document store round trip",
        gt=0,
    )

    model_config = SettingsConfigDict(
        env_prefix="MONGO_",
        case_sensitive=False,
    )


class Settings(BaseSettings):
    """Main application settings container.

    Automatically loads from the appropriate .env.{APP_ENV} file.
    Raises validation errors on startup if settings are invalid.

    Environments:
    - development: Local development (DEBUG=true)
    - testing: Automated tests (uses .env.testing)
    - staging: Pre-production (uses .env.staging)
    - production: Production deployment (uses .env.production)
    """

    app_env: str = APP_ENV
    log: LogSettings = Field(default_factory=_build_log_settings)
    app: AppSettings = Field(default_factory=_build_app_settings)
    rate_limit: RateLimitSettings = Field(default_factory=_build_rate_limit_settings)
    redis: RedisSettings = Field(default_factory=_build_redis_settings)
    mongo: MongoSettings = Field(default_factory=_build_mongo_settings)

    model_config = SettingsConfigDict(
        case_sensitive=False,
    )


# Global settings instance - composed from domain-specific settings
# Nested settings are created via default_factory so env loading works.
settings = Settings()
