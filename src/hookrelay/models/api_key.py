"""API credentials that own webhook subscriptions."""

from __future__ import annotations

import hashlib
import secrets
from datetime import datetime, timedelta

from pydantic import BaseModel, ConfigDict, Field

from .base import generate_id, utc_now

API_KEY_PREFIX = "hr_"

SCOPE_READ_ANALYSIS = "read:analysis"
SCOPE_WEBHOOK_SUBSCRIBE = "webhook:subscribe"

DEFAULT_SCOPES: list[str] = [SCOPE_READ_ANALYSIS, SCOPE_WEBHOOK_SUBSCRIBE]
ALL_SCOPES: frozenset[str] = frozenset(DEFAULT_SCOPES)


def hash_api_key(raw_key: str) -> str:
    """SHA-256 hex digest stored in place of the raw key."""
    return hashlib.sha256(raw_key.encode("utf-8")).hexdigest()


def generate_raw_api_key() -> str:
    """Generate a new raw API key (shown to the user exactly once)."""
    return f"{API_KEY_PREFIX}{secrets.token_urlsafe(32)}"


class ApiKey(BaseModel):
    """A scoped credential belonging to a user.

    Attributes:
        id: Unique identifier, referenced by subscriptions.
        user_id: Owner of the credential.
        key_name: Human-readable label.
        key_hash: SHA-256 of the raw key.
        scopes: Capabilities granted to the credential.
        active: False once revoked.
        created_at: When the key was generated.
        expires_at: When the key stops being accepted.
        last_used_at: When the key last authorized a subscription.
    """

    model_config = ConfigDict(extra="forbid")

    id: str = Field(default_factory=lambda: generate_id("key"))
    user_id: str = Field(min_length=1)
    key_name: str = Field(min_length=1, max_length=100)
    key_hash: str
    scopes: list[str] = Field(default_factory=lambda: list(DEFAULT_SCOPES))
    active: bool = Field(default=True)
    created_at: datetime = Field(default_factory=utc_now)
    expires_at: datetime
    last_used_at: datetime | None = Field(default=None)

    @classmethod
    def issue(
        cls,
        user_id: str,
        key_name: str,
        scopes: list[str] | None = None,
        expire_days: int = 90,
    ) -> tuple[ApiKey, str]:
        """Create a key record and return it with the raw key."""
        raw_key = generate_raw_api_key()
        api_key = cls(
            user_id=user_id,
            key_name=key_name,
            key_hash=hash_api_key(raw_key),
            scopes=list(scopes) if scopes is not None else list(DEFAULT_SCOPES),
            expires_at=utc_now() + timedelta(days=expire_days),
        )
        return api_key, raw_key

    @property
    def is_expired(self) -> bool:
        return self.expires_at <= utc_now()

    @property
    def is_usable(self) -> bool:
        return self.active and not self.is_expired

    def has_scope(self, scope: str) -> bool:
        return scope in self.scopes
