"""Per-subscription circuit breaker.

A subscription whose most recent attempts all failed is disabled before the
next attempt goes out. Disabling is permanent; the owner re-creates the
subscription to resume deliveries.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from hookrelay.registry import SubscriptionRegistry
    from hookrelay.storage import HookRelayStorage

logger = logging.getLogger(__name__)

CIRCUIT_BREAKER_REASON = "Webhook disabled due to consecutive failures (circuit breaker)"


class CircuitBreaker:
    """Disables subscriptions after ``window`` consecutive failed attempts.

    Attributes:
        window: Number of most recent attempts inspected.
    """

    def __init__(
        self,
        storage: HookRelayStorage,
        registry: SubscriptionRegistry,
        window: int = 10,
    ) -> None:
        self._storage = storage
        self._registry = registry
        self.window = window

    async def should_trip(self, subscription_id: str) -> bool:
        """Check recent history and disable the subscription if it is failing.

        Trips only when exactly ``window`` attempts exist and every one of
        them failed. Storage errors fail open.

        Returns:
            True if the subscription was disabled and the attempt must abort.
        """
        try:
            recent = await self._storage.recent_deliveries(subscription_id, limit=self.window)
        except Exception:
            logger.exception(
                "Circuit breaker could not read history for %s, allowing delivery",
                subscription_id,
            )
            return False

        if len(recent) < self.window:
            return False
        if any(attempt.status != "failed" for attempt in recent):
            return False

        await self._registry.disable(subscription_id, CIRCUIT_BREAKER_REASON)
        logger.warning(
            "Circuit breaker tripped for %s after %d consecutive failures",
            subscription_id,
            self.window,
        )
        return True
