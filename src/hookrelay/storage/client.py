"""Qdrant storage client for hookrelay.

This module provides the HookRelayStorage class that combines
all storage operations through mixins.

Example:
    ```python
    from hookrelay.storage import HookRelayStorage

    async with HookRelayStorage(url=":memory:") as storage:
        await storage.store_subscription(subscription)
        recent = await storage.recent_deliveries(subscription.id, limit=10)
    ```
"""

from __future__ import annotations

import asyncio

from .api_keys import ApiKeyMixin
from .base import StorageBase
from .deliveries import DeliveryLogMixin
from .subscriptions import SubscriptionMixin


class HookRelayStorage(SubscriptionMixin, DeliveryLogMixin, ApiKeyMixin, StorageBase):
    """Async Qdrant storage for subscriptions, delivery attempts and API keys.

    This class combines functionality from multiple mixins:
    - SubscriptionMixin: store/get/list/delete subscriptions, counters, deactivation
    - DeliveryLogMixin: insert/update attempts, newest-first history
    - ApiKeyMixin: store/get/list/revoke API keys
    """

    def __init__(
        self,
        url: str | None = None,
        api_key: str | None = None,
        prefix: str | None = None,
        max_scroll_limit: int | None = None,
    ) -> None:
        super().__init__(
            url=url,
            api_key=api_key,
            prefix=prefix,
            max_scroll_limit=max_scroll_limit,
        )
        self._counter_locks: dict[str, asyncio.Lock] = {}

    async def __aenter__(self) -> HookRelayStorage:
        await self.initialize()
        return self
