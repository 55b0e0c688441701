"""Subscription storage operations for hookrelay.

Provides methods to store, retrieve, and mutate webhook subscriptions.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any

from hookrelay.models import Subscription, TriggerType, utc_now

if TYPE_CHECKING:
    from qdrant_client import models

KIND = "subscriptions"


class SubscriptionMixin:
    """Mixin providing subscription operations for HookRelayStorage.

    This mixin expects the following from the base class:
    - _upsert_record / _retrieve_record / _scroll_records / _set_payload / _delete_record
    - _match(key, value) -> FieldCondition
    - _counter_locks: mapping of subscription id to asyncio.Lock
    """

    _upsert_record: Any
    _retrieve_record: Any
    _scroll_records: Any
    _set_payload: Any
    _delete_record: Any
    _match: Any
    _counter_locks: dict[str, asyncio.Lock]

    async def store_subscription(self, subscription: Subscription) -> str:
        """Store a subscription.

        Returns:
            The subscription ID.
        """
        await self._upsert_record(KIND, subscription.id, subscription)
        return subscription.id

    async def get_subscription(
        self,
        subscription_id: str,
        user_id: str | None = None,
    ) -> Subscription | None:
        """Get a subscription by ID.

        Args:
            subscription_id: ID of the subscription.
            user_id: When given, subscriptions owned by someone else are
                reported as missing.

        Returns:
            Subscription or None if not found.
        """
        subscription: Subscription | None = await self._retrieve_record(
            KIND, subscription_id, Subscription
        )
        if subscription is None:
            return None
        if user_id is not None and subscription.user_id != user_id:
            return None
        return subscription

    async def list_subscriptions(
        self,
        user_id: str,
        trigger_type: TriggerType | None = None,
        active_only: bool = False,
    ) -> list[Subscription]:
        """List subscriptions for a user, newest first.

        Args:
            user_id: Owner to list subscriptions for.
            trigger_type: Optional trigger filter.
            active_only: If True, only return active subscriptions.
        """
        conditions: list[models.FieldCondition] = [self._match("user_id", user_id)]
        if trigger_type is not None:
            conditions.append(self._match("trigger_type", TriggerType(trigger_type).value))
        if active_only:
            conditions.append(self._match("active", True))

        subscriptions: list[Subscription] = await self._scroll_records(
            KIND, conditions, Subscription
        )
        subscriptions.sort(key=lambda s: s.created_at, reverse=True)
        return subscriptions

    async def delete_subscription(self, subscription_id: str, user_id: str) -> bool:
        """Delete a subscription owned by ``user_id``.

        Returns:
            True if deleted, False if not found or owned by someone else.
        """
        existing = await self.get_subscription(subscription_id, user_id=user_id)
        if existing is None:
            return False
        await self._delete_record(KIND, subscription_id)
        self._counter_locks.pop(subscription_id, None)
        return True

    async def deactivate_subscription(self, subscription_id: str, reason: str) -> bool:
        """Set ``active`` to False and record why.

        Returns:
            True if the subscription existed.
        """
        existing = await self.get_subscription(subscription_id)
        if existing is None:
            return False
        await self._set_payload(
            KIND,
            subscription_id,
            {"active": False, "disabled_reason": reason, "last_error": reason},
        )
        return True

    async def record_delivery_outcome(
        self,
        subscription_id: str,
        success: bool,
        error: str | None = None,
    ) -> Subscription | None:
        """Increment the success or failure counter of a subscription.

        Increments for the same subscription are serialized so concurrent
        chains never lose an update. Counters are never decremented.

        Args:
            subscription_id: Subscription that was delivered to.
            success: Whether the attempt was acknowledged with a 2xx.
            error: Error message for a failed attempt.

        Returns:
            The updated subscription, or None if it was deleted meanwhile.
        """
        lock = self._counter_locks.setdefault(subscription_id, asyncio.Lock())
        async with lock:
            current = await self.get_subscription(subscription_id)
            if current is None:
                return None

            if success:
                current.success_count += 1
                current.last_triggered_at = utc_now()
                current.last_error = None
                update: dict[str, Any] = {
                    "success_count": current.success_count,
                    "last_triggered_at": current.last_triggered_at.isoformat(),
                    "last_error": None,
                }
            else:
                current.failure_count += 1
                current.last_error = error
                update = {
                    "failure_count": current.failure_count,
                    "last_error": error,
                }

            await self._set_payload(KIND, subscription_id, update)
            return current
