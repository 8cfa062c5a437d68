"""Application configuration using Pydantic Settings.

Configuration is environment-aware:
- APP_ENV determines which .env file to load
- Supports: development, testing, staging, production
- Each environment has its own .env.{environment} file

Settings are split per concern (app, log, store, rate_limit) and composed in
a single ``Settings`` container. The rate limit tier table and route
overrides are read once at process start; changing them requires a restart.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


APP_ENV = os.getenv("APP_ENV", "development")

# Project root (so .env resolution doesn't depend on current working directory)
PROJECT_ROOT = Path(__file__).resolve().parents[2]

ENV_FILE_MAP = {
    "development": ".env.development",
    "testing": ".env.testing",
    "staging": ".env.staging",
    "production": ".env.production",
}

_env_filename = ENV_FILE_MAP.get(APP_ENV, ".env.development")
_env_path = PROJECT_ROOT / _env_filename
_env_file = str(_env_path) if _env_path.is_file() else None


# Nested BaseSettings don't inherit env_file, so populate os.environ up front.
if _env_file:
    from dotenv import load_dotenv
    load_dotenv(_env_file, override=True)


class TierLimit(BaseModel):
    """Request budget for one tier or route: ``request_limit`` per ``window_ms``."""

    request_limit: int = Field(..., ge=1)
    window_ms: int = Field(..., ge=1)


def _default_tiers() -> dict[str, TierLimit]:
    return {
        "free": TierLimit(request_limit=5, window_ms=60_000),
        "starter": TierLimit(request_limit=100, window_ms=60_000),
        "pro": TierLimit(request_limit=1000, window_ms=3_600_000),
        "enterprise": TierLimit(request_limit=10_000, window_ms=3_600_000),
    }


class AppSettings(BaseSettings):
    """Application-wide configuration."""

    debug: bool = Field(
        False,
        description="Enable debug mode with verbose logging",
    )
    api_key_required: bool = Field(
        True,
        description="Whether API key authentication is required",
    )
    api_keys: str | None = Field(
        None,
        description=(
            "Comma-separated list of valid API keys. A key may carry its plan "
            "tier as 'key=tier'; keys without a tier fall back to the lowest tier."
        ),
    )

    model_config = SettingsConfigDict(
        env_prefix="APP_",
        case_sensitive=False,
    )


class LogSettings(BaseSettings):
    """Logging output configuration."""

    level: str = Field("INFO", description="Root log level")
    format: Literal["json", "plain"] = Field("json", description="Log line format")
    output: Literal["stdout", "file"] = Field("stdout", description="Log destination")
    file_path: str | None = Field(None, description="Log file path when output=file")
    max_bytes: int = Field(
        10_485_760,
        description="Rotate the log file after this many bytes (0 disables rotation)",
        ge=0,
    )
    backup_count: int = Field(5, description="Number of rotated files to keep", ge=0)
    request_id_header: str = Field(
        "X-Request-ID",
        description="Header used to read and echo the request correlation id",
    )

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        case_sensitive=False,
    )


class StoreSettings(BaseSettings):
    """Shared counter store connection."""

    backend: Literal["redis", "memory"] = Field(
        "redis",
        description="Counter store backend; 'memory' is single-process only",
    )
    url: str = Field(
        "redis://localhost:6379/0",
        description="Connection URL of the shared counter store",
    )
    timeout_ms: int = Field(
        250,
        description="Upper bound for one store round trip, in milliseconds",
        ge=1,
    )
    key_prefix: str = Field(
        "rl",
        description="Namespace prepended to every rate limit key",
        min_length=1,
    )

    model_config = SettingsConfigDict(
        env_prefix="STORE_",
        case_sensitive=False,
    )


class RateLimitSettings(BaseSettings):
    """Rate limit policy and failure behaviour."""

    enabled: bool = Field(
        True,
        description="Enable rate limiting on protected routes",
    )
    fail_mode: Literal["closed", "open"] = Field(
        "closed",
        description=(
            "Behaviour when the counter store cannot be consulted: 'closed' "
            "rejects the request, 'open' admits it in degraded mode"
        ),
    )
    degraded_retry_after_seconds: int = Field(
        1,
        description="Retry-After sent when rejecting because the store is down",
        ge=1,
    )
    tiers: dict[str, TierLimit] = Field(
        default_factory=_default_tiers,
        description=(
            "Tier name (free, starter, pro, enterprise) to budget, as JSON. "
            "The 'free' tier is required; unknown identities are limited with it"
        ),
    )
    route_overrides: dict[str, TierLimit] = Field(
        default_factory=dict,
        description="Route to budget, as JSON; replaces the tier budget for that route",
    )
    include_headers: bool = Field(
        True,
        description="Include X-RateLimit-* and Retry-After headers on responses",
    )

    model_config = SettingsConfigDict(
        env_prefix="RATE_LIMIT_",
        case_sensitive=False,
    )


class Settings(BaseSettings):
    """Main application settings container.

    Nested settings are created via default_factory so each picks up its own
    env prefix after the .env file has been loaded.
    """

    app_env: str = APP_ENV
    app: AppSettings = Field(default_factory=AppSettings)
    log: LogSettings = Field(default_factory=LogSettings)
    store: StoreSettings = Field(default_factory=StoreSettings)
    rate_limit: RateLimitSettings = Field(default_factory=RateLimitSettings)

    model_config = SettingsConfigDict(
        case_sensitive=False,
    )


settings = Settings()


def get_settings(request) -> Settings:
    """Settings of the app serving ``request``.

    ``create_app`` stores its configuration on ``app.state.settings``; apps
    assembled some other way fall back to the process-wide settings.
    """
    return getattr(request.app.state, "settings", settings)
