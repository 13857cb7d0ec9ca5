"""
Configuration Settings

This module defines the edge handler configuration using Pydantic Settings.
All configuration is loaded from environment variables or .env file.

Design Decisions:
- Uses pydantic-settings for type-safe configuration
- Settings are frozen: one immutable value is built at startup and handed to
  the router, services and middleware
- An empty namespace means the corresponding store binding is absent; the
  affected endpoints answer with a configuration error instead of crashing
"""

from __future__ import annotations

from enum import Enum
from typing import Optional
from urllib.parse import urlsplit

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from edgelink.core.rate_limit import RATE_LIMITS

__all__ = ["Settings", "settings"]


class EnvSettingsOptions(Enum):
    """Environment options for deployment."""
    production = "production"
    staging = "staging"
    development = "dev"


class Settings(BaseSettings):
    """
    Edge handler settings loaded from environment variables.

    All settings can be overridden via environment variables or .env file.
    """
    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
        frozen=True,
    )

    ENV_SETTING: EnvSettingsOptions = Field(
        default=EnvSettingsOptions.development,
        description="Environment setting (production, staging, dev)"
    )
    LOG_LEVEL: str = Field(default="INFO", description="Root level for the edgelink loggers")

    # Origins
    APP_ORIGIN: str = Field(
        default="https://pt-onia.app",
        description="Canonical application origin; short links may only target this origin"
    )
    DEV_ORIGINS: list[str] = Field(
        default_factory=lambda: [
            "http://localhost:3000",
            "http://localhost:5173",
            "http://127.0.0.1:5173",
            "http://localhost:8080",
        ],
        description="Development origins trusted in addition to APP_ORIGIN"
    )
    ORIGIN_UPSTREAM_URL: Optional[str] = Field(
        default=None,
        description="Where unmatched requests are forwarded (defaults to APP_ORIGIN)"
    )
    UPSTREAM_TIMEOUT: float = Field(default=10.0, description="Seconds before an upstream fetch is abandoned")

    # Admin
    ADMIN_TOKEN: Optional[str] = Field(
        default=None,
        description="Secret expected in X-Admin-Token for telemetry resets (min 16 characters)"
    )
    ALLOW_INSECURE_TELEMETRY_RESET: bool = Field(
        default=False,
        description="Let anyone reset the telemetry aggregate (local development only)"
    )

    # Key-value storage
    # For SQLite: sqlite+aiosqlite:///./edgelink.db (default)
    # For a process-local store: memory://
    DATABASE_URL: str = Field(
        default="sqlite+aiosqlite:///./edgelink.db",
        description="Connection string for the key-value table"
    )
    LINKS_NAMESPACE: str = Field(default="SHORT_URLS", description="Namespace bound to the link store")
    TELEMETRY_NAMESPACE: str = Field(default="TELEMETRY", description="Namespace bound to the telemetry store")
    STORE_RETRY_ATTEMPTS: int = Field(default=3, ge=1, description="Attempts per store operation")
    STORE_RETRY_DELAY: float = Field(default=0.1, ge=0, description="Seconds between store attempts")

    # Edge cache
    EDGE_CACHE_URL: Optional[str] = Field(
        default=None,
        description="redis:// URL for a shared redirect cache; unset keeps the cache in-process"
    )
    REDIRECT_CACHE_TTL: int = Field(default=300, gt=0, description="Seconds a redirect may be cached")

    # Limits
    RATE_LIMITS: dict[str, str] = Field(
        default_factory=lambda: dict(RATE_LIMITS),
        description="Per-bucket ceilings in count/period form"
    )
    RATE_LIMIT_PRUNE_THRESHOLD: int = Field(default=10_000, description="Table size that triggers pruning")
    MAX_URL_LENGTH: int = Field(default=8192, description="Longest URL accepted for shortening")
    TELEMETRY_MAX_BODY_BYTES: int = Field(default=16_384, description="Largest accepted telemetry payload")
    TELEMETRY_MAX_KEYS_PER_GROUP: int = Field(default=200, description="New nested keys beyond this are dropped")

    @field_validator("APP_ORIGIN", "ORIGIN_UPSTREAM_URL")
    @classmethod
    def _strip_trailing_slash(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return value
        parts = urlsplit(value)
        if parts.scheme not in ("http", "https") or not parts.netloc:
            raise ValueError(f"expected an http(s) origin, got {value!r}")
        return value.rstrip("/")

    @property
    def upstream_url(self) -> str:
        return self.ORIGIN_UPSTREAM_URL or self.APP_ORIGIN

    @property
    def home_url(self) -> str:
        return f"{self.APP_ORIGIN}/"

    def short_url_for(self, code: str) -> str:
        """Public short link for a code (also the edge cache key)."""
        return f"{self.APP_ORIGIN}/s/{code}"


settings = Settings()
