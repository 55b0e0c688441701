"""Delivery log storage for hookrelay.

Append-mostly record of every delivery attempt. An attempt is written once as
``pending`` and updated exactly once with its outcome.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any

from hookrelay.exceptions import AttemptFinalizedError
from hookrelay.models import DeliveryAttempt

if TYPE_CHECKING:
    from qdrant_client import models

KIND = "deliveries"


class DeliveryLogMixin:
    """Mixin providing delivery log operations for HookRelayStorage.

    This mixin expects the following from the base class:
    - _upsert_record / _retrieve_record / _scroll_records
    - _match(key, value) -> FieldCondition
    """

    _upsert_record: Any
    _retrieve_record: Any
    _scroll_records: Any
    _match: Any

    async def insert_delivery(self, attempt: DeliveryAttempt) -> str:
        """Log a new delivery attempt.

        Returns:
            The attempt ID.
        """
        await self._upsert_record(KIND, attempt.id, attempt)
        return attempt.id

    async def update_delivery(self, attempt: DeliveryAttempt) -> str:
        """Write the outcome of a pending attempt.

        Raises:
            AttemptFinalizedError: If the stored attempt already has an outcome.
        """
        stored: DeliveryAttempt | None = await self._retrieve_record(
            KIND, attempt.id, DeliveryAttempt
        )
        if stored is not None and stored.is_final:
            raise AttemptFinalizedError(stored.id, stored.status)
        await self._upsert_record(KIND, attempt.id, attempt)
        return attempt.id

    async def get_delivery(self, attempt_id: str) -> DeliveryAttempt | None:
        """Get a single attempt by ID."""
        attempt: DeliveryAttempt | None = await self._retrieve_record(
            KIND, attempt_id, DeliveryAttempt
        )
        return attempt

    async def recent_deliveries(
        self,
        subscription_id: str,
        limit: int = 10,
    ) -> list[DeliveryAttempt]:
        """Most recent attempts for a subscription, newest first.

        Args:
            subscription_id: Subscription to read history for.
            limit: Maximum attempts to return.
        """
        attempts: list[DeliveryAttempt] = await self._scroll_records(
            KIND, [self._match("subscription_id", subscription_id)], DeliveryAttempt
        )
        attempts.sort(key=lambda a: (a.created_at, a.attempt_number), reverse=True)
        return attempts[:limit]

    async def list_deliveries(
        self,
        user_id: str,
        subscription_id: str | None = None,
        since: datetime | None = None,
        limit: int | None = None,
    ) -> list[DeliveryAttempt]:
        """Delivery attempts visible to a user, newest first.

        Args:
            user_id: Owner of the subscriptions.
            subscription_id: Optional subscription filter.
            since: Only include attempts created at or after this time.
            limit: Maximum attempts to return.
        """
        conditions: list[models.FieldCondition] = [self._match("user_id", user_id)]
        if subscription_id is not None:
            conditions.append(self._match("subscription_id", subscription_id))

        attempts: list[DeliveryAttempt] = await self._scroll_records(
            KIND, conditions, DeliveryAttempt
        )
        if since is not None:
            attempts = [a for a in attempts if a.created_at >= since]
        attempts.sort(key=lambda a: (a.created_at, a.attempt_number), reverse=True)
        return attempts[:limit] if limit is not None else attempts
