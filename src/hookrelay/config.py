"""Configuration management for hookrelay."""

import logging
import secrets
import warnings
from typing import Literal

from pydantic import Field, PrivateAttr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

# Retry delays in seconds, indexed by the attempt that just failed (1-based).
DEFAULT_BACKOFF_SECONDS: list[float] = [1.0, 5.0, 15.0, 45.0, 135.0]


class Settings(BaseSettings):
    """Runtime configuration, read from HOOKRELAY_* environment variables or .env.

        HOOKRELAY_QDRANT_URL=http://localhost:6333
        HOOKRELAY_DELIVERY_MAX_ATTEMPTS=3
        HOOKRELAY_RETRY_BACKOFF_SECONDS=[2, 10, 60]

    Production refuses to start without HOOKRELAY_AUTH_SECRET_KEY.
    """

    env: Literal["development", "production", "test"] = Field(
        default="development",
        description="Deployment environment; production enables the strict checks below",
    )

    # Qdrant
    qdrant_url: str = Field(
        default="http://localhost:6333",
        description="Qdrant connection URL, or ':memory:' for a local in-process store",
    )
    qdrant_api_key: str | None = Field(
        default=None,
        description="API key for a hosted Qdrant cluster",
    )
    collection_prefix: str = Field(
        default="hookrelay",
        description="Collections are named {prefix}_subscriptions, {prefix}_deliveries, {prefix}_api_keys",
    )
    storage_max_scroll_limit: int = Field(
        default=10000,
        ge=100,
        le=100000,
        description="Page size for Qdrant scrolls; larger result sets are read in pages",
    )

    # Delivery
    delivery_timeout_seconds: float = Field(
        default=30.0,
        gt=0.0,
        le=300.0,
        description="Hard timeout for a single outbound webhook POST",
    )
    delivery_max_attempts: int = Field(
        default=5,
        ge=1,
        le=20,
        description="Attempts per delivery chain for normal triggers",
    )
    test_delivery_max_attempts: int = Field(
        default=1,
        ge=1,
        le=1,
        description="Attempts for a manual test delivery (never retried)",
    )
    retry_backoff_seconds: list[float] = Field(
        default_factory=lambda: list(DEFAULT_BACKOFF_SECONDS),
        description="Backoff table; attempts beyond its length reuse the last entry",
    )
    circuit_breaker_window: int = Field(
        default=10,
        ge=1,
        le=100,
        description="Consecutive failed attempts that disable a subscription",
    )
    response_body_limit: int = Field(
        default=1000,
        ge=0,
        le=65536,
        description="UTF-8 bytes of the subscriber's response body kept in the log",
    )
    max_concurrent_deliveries: int = Field(
        default=10,
        ge=1,
        le=1000,
        description="Maximum outbound HTTP calls in flight at once",
    )
    user_agent: str = Field(
        default="hookrelay-webhook/1.0",
        description="User-Agent header on outbound deliveries",
    )
    allow_localhost_webhooks: bool = Field(
        default=False,
        description="Accept localhost webhook URLs (development environment only)",
    )

    # Server
    api_host: str = Field(
        default="127.0.0.1",
        description="Bind address for python -m hookrelay.api",
    )
    api_port: int = Field(
        default=8000,
        ge=1,
        le=65535,
        description="Port for python -m hookrelay.api",
    )

    # Logs
    log_level: str = Field(default="INFO", description="Root log level name")
    log_format: Literal["json", "text"] = Field(
        default="json",
        description="json: one object per line; text: console renderer",
    )

    # Bearer tokens and API keys
    auth_secret_key: str | None = Field(
        default=None,
        description="HMAC key that signs management bearer tokens; required in production",
    )
    auth_token_expire_minutes: int = Field(default=60, ge=1)
    api_key_expire_days: int = Field(
        default=90,
        ge=1,
        le=3650,
        description="Lifetime of newly generated API keys",
    )

    # Per-user request limits on the management API
    rate_limit_enabled: bool = False
    rate_limit_default: int = Field(
        default=60,
        ge=1,
        description="Management requests allowed per window",
    )
    rate_limit_events: int = Field(
        default=600,
        ge=1,
        description="POST /events requests allowed per window",
    )
    rate_limit_window_seconds: int = Field(default=60, ge=1)
    rate_limit_redis_url: str | None = Field(
        default=None,
        description="Share counters across API instances through this Redis; "
        "unset keeps them in process memory",
    )
    rate_limit_trust_proxy_headers: bool = Field(
        default=False,
        description="Use X-Forwarded-For / X-Real-IP for anonymous rate-limit keys",
    )

    max_request_bytes: int = Field(
        default=1024 * 1024,
        ge=1024,
        description="Reject management requests whose body exceeds this size",
    )

    # Browser access to the management API
    cors_enabled: bool = True
    cors_allow_origins: list[str] = Field(default_factory=lambda: ["*"])
    cors_allow_methods: list[str] = Field(
        default_factory=lambda: ["GET", "POST", "DELETE", "OPTIONS"]
    )
    cors_allow_headers: list[str] = Field(default_factory=lambda: ["*"])

    # Fallback signing key outside production; tokens do not survive a restart.
    _dev_secret: str = PrivateAttr(default_factory=lambda: secrets.token_hex(32))

    model_config = SettingsConfigDict(
        env_prefix="HOOKRELAY_",
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
    )

    @model_validator(mode="after")
    def validate_backoff_table(self) -> "Settings":
        if not self.retry_backoff_seconds:
            raise ValueError("retry_backoff_seconds must contain at least one delay")
        if any(delay < 0 for delay in self.retry_backoff_seconds):
            raise ValueError(
                f"retry_backoff_seconds must be non-negative, got {self.retry_backoff_seconds}"
            )
        return self

    @model_validator(mode="after")
    def check_environment(self) -> "Settings":
        """Production needs a real signing key; localhost webhooks are dev-only."""
        if self.env == "production" and not self.auth_secret_key:
            raise ValueError(
                "HOOKRELAY_AUTH_SECRET_KEY is required when HOOKRELAY_ENV=production "
                "(for example the output of `openssl rand -hex 32`)"
            )

        if self.allow_localhost_webhooks and self.env != "development":
            warnings.warn(
                f"allow_localhost_webhooks has no effect with env={self.env!r}",
                UserWarning,
                stacklevel=2,
            )
            logger.warning("allow_localhost_webhooks ignored outside development")

        return self

    @property
    def localhost_webhooks_allowed(self) -> bool:
        return self.env == "development" and self.allow_localhost_webhooks

    @property
    def effective_auth_secret_key(self) -> str:
        """Key used by the API's TokenValidator."""
        if self.auth_secret_key:
            return self.auth_secret_key
        return self._dev_secret


settings = Settings()
