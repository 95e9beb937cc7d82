from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field, HttpUrl
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Args:
        environment: Deployment environment, e.g. 'dev', 'staging', 'prod'.
        app_name: Human-readable application name.
        api_version: API version reported by the root endpoint.
        database_url: SQLAlchemy async DSN for the primary database.
        redis_url: Redis DSN for window counters and token caching.
        sentry_dsn: Optional Sentry DSN for error reporting.
        jwt_secret: Shared secret used to verify and sign bearer tokens.
        jwt_algorithm: JWT signing algorithm.
        jwt_issuer: Optional issuer claim required on incoming tokens.
        jwt_ttl_s: Lifetime of tokens issued by the sign-in endpoint.
        password_bcrypt_rounds: Bcrypt cost factor for user passwords.
        limits_cache_ttl_s: How long rate-limit and quota config is cached.
        rate_limit_window_ms: Short window used by the tenant usage endpoint.
        invitation_ttl_days: Lifetime of a user invitation.
    """

    model_config = SettingsConfigDict(
        env_prefix="ECO_",
        env_file=".env",
        env_file_encoding="utf-8",
    )

    environment: Literal["dev", "staging", "prod"] = Field(default="dev")
    app_name: str = Field(default="EcoTrack ESG API")
    api_version: str = Field(default="v1")
    app_base_url: str = Field(default="http://localhost:3000")

    database_url: str = Field(default="sqlite+aiosqlite:///./ecotrack.db")
    redis_url: str = Field(default="memory://")

    sentry_dsn: str | None = None

    jwt_secret: str = Field(default="change-me")
    jwt_algorithm: str = Field(default="HS256")
    jwt_issuer: str | None = None
    jwt_ttl_s: int = Field(default=3600)

    password_bcrypt_rounds: int = Field(default=12)

    # Rate limits and quotas
    limits_cache_ttl_s: int = Field(default=300)
    rate_limit_window_ms: int = Field(default=60_000)

    invitation_ttl_days: int = Field(default=7)

    # Bill extraction (Gemini REST API)
    gemini_api_key: str | None = None
    gemini_base_url: HttpUrl | None = None
    gemini_model: str = Field(default="gemini-2.5-flash")

    # Default HTTP timeouts (seconds)
    http_connect_timeout_s: float = Field(default=5.0)
    http_read_timeout_s: float = Field(default=60.0)

    allowed_origins: list[str] = Field(default=["*"])


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached instance of Settings."""

    return Settings()  # type: ignore[call-arg]
