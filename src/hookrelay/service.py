"""Core hookrelay service layer.

This module provides the HookRelayService that combines storage, the
subscription registry and the delivery engine behind the two calls event
producers need: ``enqueue`` and ``send_test``.

Example:
    ```python
    from hookrelay.service import HookRelayService

    async with HookRelayService.create() as hookrelay:
        api_key, raw_key = await hookrelay.create_api_key("user_123", "CRM sync")
        subscription = await hookrelay.registry.subscribe(
            user_id="user_123",
            api_key_id=api_key.id,
            trigger_type="analysis_completed",
            url="https://hooks.example.com/analysis",
        )

        # Fan an event out to every matching subscription
        await hookrelay.enqueue("analysis_completed", {"analysis_id": "a1"}, "user_123")
    ```
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

import httpx

from hookrelay.config import Settings
from hookrelay.exceptions import NotFoundError, ValidationError
from hookrelay.models import (
    ALL_SCOPES,
    ApiKey,
    DeliveryAttempt,
    Subscription,
    TriggerType,
    WebhookEvent,
    utc_now,
)
from hookrelay.registry import SubscriptionRegistry
from hookrelay.storage import HookRelayStorage
from hookrelay.webhooks import DeliveryEngine, WebhookHealthReport, compute_webhook_health
from hookrelay.webhooks.health import HEALTH_WINDOW

logger = logging.getLogger(__name__)


@dataclass
class HookRelayService:
    """High-level hookrelay service.

    Entry points used by producers and the API:
    - enqueue(): Deliver a domain event to matching subscriptions
    - send_test(): Single-attempt synthetic delivery to one subscription
    - registry: Subscription management
    - API key and delivery history operations

    Attributes:
        storage: Qdrant-backed record store.
        settings: Runtime configuration.
        registry: Subscription registry.
        engine: Delivery engine, including its retry scheduler.
    """

    storage: HookRelayStorage
    settings: Settings
    registry: SubscriptionRegistry = field(init=False)
    engine: DeliveryEngine = field(init=False)
    transport: httpx.AsyncBaseTransport | None = field(default=None, repr=False)

    def __post_init__(self) -> None:
        self.registry = SubscriptionRegistry(self.storage, self.settings)
        self.engine = DeliveryEngine(
            self.storage,
            self.registry,
            settings=self.settings,
            transport=self.transport,
        )

    @classmethod
    def create(
        cls,
        settings: Settings | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> HookRelayService:
        """Create a HookRelayService with default dependencies.

        Args:
            settings: Defaults to Settings() from the environment.
            transport: Optional httpx transport for outbound deliveries.
        """
        if settings is None:
            settings = Settings()

        return cls(
            storage=HookRelayStorage(
                url=settings.qdrant_url,
                api_key=settings.qdrant_api_key,
                prefix=settings.collection_prefix,
                max_scroll_limit=settings.storage_max_scroll_limit,
            ),
            settings=settings,
            transport=transport,
        )

    async def initialize(self) -> None:
        """Connect storage and create missing collections."""
        await self.storage.initialize()

    async def close(self) -> None:
        """Drop pending retries and release storage."""
        await self.engine.scheduler.close()
        await self.storage.close()

    async def __aenter__(self) -> HookRelayService:
        await self.initialize()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    async def enqueue(
        self,
        trigger_type: TriggerType | str,
        payload: dict[str, Any],
        owner_id: str,
    ) -> list[str]:
        """Deliver an event to every active subscription of ``owner_id``.

        Returns once delivery chains are started. Delivery failures are
        recorded, never raised.

        Args:
            trigger_type: Event type.
            payload: Event data, passed through untouched.
            owner_id: Principal whose subscriptions receive the event.

        Returns:
            IDs of the subscriptions a chain was started for.

        Raises:
            ValidationError: If the trigger type is unknown.
        """
        try:
            trigger = TriggerType(trigger_type)
        except ValueError:
            raise ValidationError("trigger_type", f"Unknown trigger type: {trigger_type}") from None

        try:
            return await self.engine.dispatch(trigger, payload, owner_id)
        except Exception:
            logger.exception("Failed to dispatch %s for user %s", trigger.value, owner_id)
            return []

    async def send_test(self, subscription_id: str, user_id: str) -> Subscription:
        """Start a single-attempt synthetic delivery.

        Raises:
            NotFoundError: If the subscription is missing or not owned by ``user_id``.
        """
        subscription = await self.registry.get(subscription_id, user_id)
        payload = WebhookEvent.for_test_delivery(subscription).to_payload()
        self.engine.start_chain(
            subscription.id, payload, self.settings.test_delivery_max_attempts
        )
        logger.info("Test delivery started for webhook %s", subscription.id)
        return subscription

    async def deliveries(
        self,
        subscription_id: str,
        user_id: str,
        limit: int = 50,
    ) -> list[DeliveryAttempt]:
        """Recent attempts of a subscription owned by ``user_id``, newest first."""
        await self.registry.get(subscription_id, user_id)
        return await self.storage.list_deliveries(
            user_id, subscription_id=subscription_id, limit=limit
        )

    async def webhook_health(
        self,
        user_id: str,
        now: datetime | None = None,
    ) -> WebhookHealthReport:
        """Delivery health of a user's webhooks over the last 24 hours."""
        now = now or utc_now()
        attempts = await self.storage.list_deliveries(user_id, since=now - HEALTH_WINDOW)
        return compute_webhook_health(attempts, now=now)

    async def create_api_key(
        self,
        user_id: str,
        key_name: str,
        scopes: list[str] | None = None,
    ) -> tuple[ApiKey, str]:
        """Issue a new API key.

        Returns:
            The stored key record and the raw key, which is not retrievable later.

        Raises:
            ValidationError: If a scope is unknown.
        """
        if scopes is not None:
            unknown = sorted(set(scopes) - ALL_SCOPES)
            if unknown:
                raise ValidationError("scopes", f"Unknown scopes: {', '.join(unknown)}")

        api_key, raw_key = ApiKey.issue(
            user_id=user_id,
            key_name=key_name,
            scopes=scopes,
            expire_days=self.settings.api_key_expire_days,
        )
        await self.storage.store_api_key(api_key)
        logger.info("API key issued: %s for user %s", api_key.id, user_id)
        return api_key, raw_key

    async def list_api_keys(self, user_id: str) -> list[ApiKey]:
        return await self.storage.list_api_keys(user_id)

    async def revoke_api_key(self, key_id: str, user_id: str) -> None:
        """Revoke a key. Existing subscriptions keep working.

        Raises:
            NotFoundError: If the key is missing or owned by someone else.
        """
        if not await self.storage.revoke_api_key(key_id, user_id):
            raise NotFoundError("api_key", key_id)
        logger.info("API key revoked: %s for user %s", key_id, user_id)


__all__ = ["HookRelayService"]
