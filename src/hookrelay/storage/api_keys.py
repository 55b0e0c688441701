"""API key storage operations for hookrelay."""

from __future__ import annotations

from typing import Any

from hookrelay.models import ApiKey, utc_now

KIND = "api_keys"


class ApiKeyMixin:
    """Mixin providing API key operations for HookRelayStorage."""

    _upsert_record: Any
    _retrieve_record: Any
    _scroll_records: Any
    _set_payload: Any
    _match: Any

    async def store_api_key(self, api_key: ApiKey) -> str:
        """Store an API key record (hash only, never the raw key)."""
        await self._upsert_record(KIND, api_key.id, api_key)
        return api_key.id

    async def get_api_key(self, key_id: str, user_id: str | None = None) -> ApiKey | None:
        """Get an API key by ID, optionally restricted to its owner."""
        api_key: ApiKey | None = await self._retrieve_record(KIND, key_id, ApiKey)
        if api_key is None:
            return None
        if user_id is not None and api_key.user_id != user_id:
            return None
        return api_key

    async def list_api_keys(self, user_id: str) -> list[ApiKey]:
        """List a user's API keys, newest first."""
        keys: list[ApiKey] = await self._scroll_records(
            KIND, [self._match("user_id", user_id)], ApiKey
        )
        keys.sort(key=lambda k: k.created_at, reverse=True)
        return keys

    async def revoke_api_key(self, key_id: str, user_id: str) -> bool:
        """Mark a key inactive.

        Returns:
            True if revoked, False if not found or owned by someone else.
        """
        existing = await self.get_api_key(key_id, user_id=user_id)
        if existing is None:
            return False
        await self._set_payload(KIND, key_id, {"active": False})
        return True

    async def touch_api_key(self, key_id: str) -> None:
        """Record that a key was just used."""
        await self._set_payload(KIND, key_id, {"last_used_at": utc_now().isoformat()})
