"""Subscription registry.

Owns the lifecycle of webhook subscriptions: creation behind the SSRF guard
and API key checks, listing, ownership-checked removal, and permanent
disabling by the circuit breaker.

Example:
    ```python
    registry = SubscriptionRegistry(storage, settings)

    subscription = await registry.subscribe(
        user_id="user_123",
        api_key_id=api_key.id,
        trigger_type="hot_deal_identified",
        url="https://hooks.example.com/deals",
    )
    await registry.unsubscribe(subscription.id, user_id="user_123")
    ```
"""

from __future__ import annotations

import logging
import secrets

from hookrelay.config import Settings
from hookrelay.config import settings as default_settings
from hookrelay.exceptions import (
    AuthenticationError,
    AuthorizationError,
    NotFoundError,
    ValidationError,
)
from hookrelay.models import SCOPE_WEBHOOK_SUBSCRIBE, Subscription, TriggerType
from hookrelay.storage import HookRelayStorage
from hookrelay.webhooks.url_validator import validate_webhook_url

logger = logging.getLogger(__name__)


def generate_webhook_secret() -> str:
    """Random shared secret for subscriptions created without one."""
    return secrets.token_urlsafe(32)


class SubscriptionRegistry:
    """Create, list, remove and disable webhook subscriptions."""

    def __init__(self, storage: HookRelayStorage, settings: Settings | None = None) -> None:
        self._storage = storage
        self._settings = settings or default_settings

    async def subscribe(
        self,
        user_id: str,
        api_key_id: str,
        trigger_type: TriggerType | str,
        url: str,
        secret: str | None = None,
    ) -> Subscription:
        """Register a new active subscription.

        Args:
            user_id: Owner of the subscription.
            api_key_id: Credential authorizing the subscription.
            trigger_type: Event to subscribe to.
            url: HTTPS endpoint receiving deliveries.
            secret: Shared signing secret. Generated when omitted.

        Raises:
            InvalidURLError: If the URL fails the SSRF guard.
            ValidationError: If the trigger type is unknown.
            AuthenticationError: If the API key is missing, revoked or expired.
            AuthorizationError: If the API key lacks ``webhook:subscribe``.
        """
        try:
            trigger = TriggerType(trigger_type)
        except ValueError:
            raise ValidationError("trigger_type", f"Unknown trigger type: {trigger_type}") from None

        validate_webhook_url(url, allow_localhost=self._settings.localhost_webhooks_allowed)

        api_key = await self._storage.get_api_key(api_key_id, user_id=user_id)
        if api_key is None or not api_key.is_usable:
            raise AuthenticationError("Invalid or inactive API key")
        if not api_key.has_scope(SCOPE_WEBHOOK_SUBSCRIBE):
            raise AuthorizationError(f"API key lacks required scope: {SCOPE_WEBHOOK_SUBSCRIBE}")

        subscription = Subscription(
            user_id=user_id,
            api_key_id=api_key.id,
            trigger_type=trigger,
            webhook_url=url,
            secret=secret or generate_webhook_secret(),
        )
        await self._storage.store_subscription(subscription)
        await self._storage.touch_api_key(api_key.id)

        logger.info(
            "Webhook subscribed: %s for user %s (%s)", subscription.id, user_id, trigger.value
        )
        return subscription

    async def list(self, user_id: str) -> list[Subscription]:
        """All subscriptions of a user, newest first."""
        return await self._storage.list_subscriptions(user_id)

    async def get(self, subscription_id: str, user_id: str) -> Subscription:
        """Get a subscription owned by ``user_id``.

        Raises:
            NotFoundError: If missing or owned by someone else.
        """
        subscription = await self._storage.get_subscription(subscription_id, user_id=user_id)
        if subscription is None:
            raise NotFoundError("webhook", subscription_id)
        return subscription

    async def unsubscribe(self, subscription_id: str, user_id: str) -> None:
        """Delete a subscription owned by ``user_id``.

        Chains already in flight stop at their next attempt.

        Raises:
            NotFoundError: If missing or owned by someone else.
        """
        deleted = await self._storage.delete_subscription(subscription_id, user_id)
        if not deleted:
            raise NotFoundError("webhook", subscription_id)
        logger.info("Webhook unsubscribed: %s for user %s", subscription_id, user_id)

    async def disable(self, subscription_id: str, reason: str) -> bool:
        """Deactivate a subscription permanently and record why."""
        disabled = await self._storage.deactivate_subscription(subscription_id, reason)
        if disabled:
            logger.warning("Webhook disabled: %s (%s)", subscription_id, reason)
        return disabled

    async def active_for(self, user_id: str, trigger_type: TriggerType) -> list[Subscription]:
        """Active subscriptions of ``user_id`` listening for ``trigger_type``."""
        subscriptions = await self._storage.list_subscriptions(
            user_id, trigger_type=trigger_type, active_only=True
        )
        return [s for s in subscriptions if s.matches(user_id, TriggerType(trigger_type))]
