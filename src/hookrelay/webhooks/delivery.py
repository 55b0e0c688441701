"""Webhook delivery with HMAC signatures and bounded retry.

One delivery chain runs per (event, subscription). Each attempt:
- re-reads the subscription and consults the circuit breaker
- signs the exact body with the subscription secret
- logs a pending attempt, POSTs, then records the outcome
- arms the next attempt on the retry scheduler while attempts remain

Failures are recorded on the delivery log and the subscription counters.
Nothing is raised back to the event producer.
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from typing import TYPE_CHECKING, Any

import httpx

from hookrelay.config import Settings
from hookrelay.config import settings as default_settings
from hookrelay.models import DeliveryAttempt, TriggerType, WebhookEvent, utc_now

from .circuit_breaker import CircuitBreaker
from .retry import RetryScheduler
from .signing import canonical_json, signature_header

if TYPE_CHECKING:
    from hookrelay.models import Subscription
    from hookrelay.registry import SubscriptionRegistry
    from hookrelay.storage import HookRelayStorage

logger = logging.getLogger(__name__)


def build_headers(
    subscription: Subscription,
    body: str,
    delivery_id: str,
    attempt_number: int,
    user_agent: str,
) -> dict[str, str]:
    """Headers for one outbound attempt.

    ``X-Signature`` is only present when the subscription has a secret.
    """
    headers = {
        "Content-Type": "application/json",
        "User-Agent": user_agent,
        "X-Delivery-Id": delivery_id,
        "X-Timestamp": utc_now().isoformat(),
        "X-Attempt": str(attempt_number),
        "X-Trigger-Type": subscription.trigger_type.value,
    }
    if subscription.secret:
        headers["X-Signature"] = signature_header(body, subscription.secret)
    return headers


class DeliveryEngine:
    """Delivers event payloads to subscriber endpoints.

    Example:
        ```python
        engine = DeliveryEngine(storage, registry)

        # Fan an event out to every active matching subscription
        await engine.dispatch(TriggerType.HOT_DEAL_IDENTIFIED, {"deal_id": "d1"}, "user_1")

        # Wait for all chains, including retries
        await engine.scheduler.drain()
        ```
    """

    def __init__(
        self,
        storage: HookRelayStorage,
        registry: SubscriptionRegistry,
        scheduler: RetryScheduler | None = None,
        breaker: CircuitBreaker | None = None,
        settings: Settings | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the delivery engine.

        Args:
            storage: Storage for subscriptions and the delivery log.
            registry: Registry used for fan-out and disabling.
            scheduler: Retry scheduler (built from settings if omitted).
            breaker: Circuit breaker (built from settings if omitted).
            settings: Delivery settings.
            transport: Optional httpx transport, e.g. ``httpx.MockTransport``.
        """
        self._settings = settings or default_settings
        self._storage = storage
        self._registry = registry
        self.scheduler = scheduler or RetryScheduler(self._settings.retry_backoff_seconds)
        self.breaker = breaker or CircuitBreaker(
            storage, registry, window=self._settings.circuit_breaker_window
        )
        self._transport = transport
        self._timeout = self._settings.delivery_timeout_seconds
        self._body_limit = self._settings.response_body_limit
        self._semaphore = asyncio.Semaphore(self._settings.max_concurrent_deliveries)

    async def dispatch(
        self,
        trigger_type: TriggerType,
        data: dict[str, Any],
        owner_id: str,
    ) -> list[str]:
        """Start one delivery chain per active matching subscription.

        Returns as soon as the chains are started.

        Returns:
            IDs of the subscriptions a chain was started for.
        """
        trigger_type = TriggerType(trigger_type)
        subscriptions = await self._registry.active_for(owner_id, trigger_type)
        if not subscriptions:
            logger.debug("No webhooks subscribed to %s for user %s", trigger_type.value, owner_id)
            return []

        payload = WebhookEvent.for_trigger(trigger_type, owner_id, data).to_payload()
        for subscription in subscriptions:
            self.start_chain(subscription.id, payload, self._settings.delivery_max_attempts)

        logger.info(
            "Dispatched %s to %d webhooks for user %s",
            trigger_type.value,
            len(subscriptions),
            owner_id,
        )
        return [s.id for s in subscriptions]

    def start_chain(
        self,
        subscription_id: str,
        payload: dict[str, Any],
        max_attempts: int,
    ) -> None:
        """Run attempt 1 of a chain in the background."""
        self.scheduler.spawn(lambda: self._run_attempt(subscription_id, payload, 1, max_attempts))

    async def _run_attempt(
        self,
        subscription_id: str,
        payload: dict[str, Any],
        attempt_number: int,
        max_attempts: int,
    ) -> None:
        await self.deliver(subscription_id, payload, attempt_number, max_attempts)

    async def deliver(
        self,
        subscription_id: str,
        payload: dict[str, Any],
        attempt_number: int = 1,
        max_attempts: int | None = None,
    ) -> DeliveryAttempt | None:
        """Perform one attempt of a delivery chain.

        Args:
            subscription_id: Target subscription.
            payload: JSON body, identical for every attempt of the chain.
            attempt_number: 1-based attempt within the chain.
            max_attempts: Attempts allowed for the chain.

        Returns:
            The recorded attempt, or None if the attempt was skipped
            (subscription missing, inactive, or circuit breaker tripped).
        """
        if max_attempts is None:
            max_attempts = self._settings.delivery_max_attempts
        try:
            return await self._deliver(subscription_id, payload, attempt_number, max_attempts)
        except Exception:
            logger.exception(
                "Webhook delivery to %s aborted (attempt %d)", subscription_id, attempt_number
            )
            return None

    async def _deliver(
        self,
        subscription_id: str,
        payload: dict[str, Any],
        attempt_number: int,
        max_attempts: int,
    ) -> DeliveryAttempt | None:
        subscription = await self._storage.get_subscription(subscription_id)
        if subscription is None or not subscription.active:
            logger.debug("Skipping delivery to missing or inactive webhook %s", subscription_id)
            return None

        if await self.breaker.should_trip(subscription_id):
            return None

        body = canonical_json(payload)
        delivery_id = str(uuid.uuid4())
        headers = build_headers(
            subscription, body, delivery_id, attempt_number, self._settings.user_agent
        )

        attempt = DeliveryAttempt(
            subscription_id=subscription.id,
            user_id=subscription.user_id,
            attempt_number=attempt_number,
            delivery_id=delivery_id,
            payload=payload,
        )
        await self._storage.insert_delivery(attempt)

        await self._post(subscription, body, headers, attempt)
        await self._record_outcome(attempt)

        success = attempt.status == "delivered"
        if success:
            logger.info(
                "Webhook delivered: %s to %s (status %d, attempt %d)",
                subscription.trigger_type.value,
                subscription.webhook_url,
                attempt.http_status_code,
                attempt_number,
            )
        elif attempt_number < max_attempts:
            delay = self.scheduler.delay_for(attempt_number)
            self.scheduler.schedule(
                delay,
                lambda: self._run_attempt(subscription_id, payload, attempt_number + 1, max_attempts),
            )
            logger.info(
                "Webhook scheduled for retry: %s to %s (attempt %d in %.0fs): %s",
                subscription.trigger_type.value,
                subscription.webhook_url,
                attempt_number + 1,
                delay,
                attempt.error_message,
            )
        else:
            logger.warning(
                "Webhook delivery gave up: %s to %s after %d attempts: %s",
                subscription.trigger_type.value,
                subscription.webhook_url,
                attempt_number,
                attempt.error_message,
            )

        return attempt

    async def _record_outcome(self, attempt: DeliveryAttempt) -> None:
        """Write the attempt outcome and the subscription counters.

        Storage failures are logged, not raised, so a failed attempt is still
        re-armed. The attempt row then stays ``pending`` in the log.
        """
        success = attempt.status == "delivered"
        try:
            await self._storage.update_delivery(attempt)
        except Exception:
            logger.exception(
                "Could not record %s outcome of delivery attempt %s", attempt.status, attempt.id
            )
        try:
            await self._storage.record_delivery_outcome(
                attempt.subscription_id, success=success, error=attempt.error_message
            )
        except Exception:
            logger.exception(
                "Could not update delivery counters of webhook %s", attempt.subscription_id
            )

    async def _post(
        self,
        subscription: Subscription,
        body: str,
        headers: dict[str, str],
        attempt: DeliveryAttempt,
    ) -> None:
        """POST the body and mark the attempt with the outcome."""
        started = time.perf_counter()

        def elapsed_ms() -> int:
            return int((time.perf_counter() - started) * 1000)

        try:
            async with self._semaphore:
                started = time.perf_counter()
                async with httpx.AsyncClient(
                    timeout=self._timeout, transport=self._transport
                ) as client:
                    response = await client.post(
                        subscription.webhook_url,
                        content=body.encode("utf-8"),
                        headers=headers,
                    )
        except httpx.TimeoutException:
            attempt.mark_failed(
                error_message="Request timeout",
                latency_ms=elapsed_ms(),
                body_limit=self._body_limit,
            )
            return
        except httpx.RequestError as e:
            attempt.mark_failed(
                error_message=f"Request error: {str(e) or type(e).__name__}",
                latency_ms=elapsed_ms(),
                body_limit=self._body_limit,
            )
            return
        except Exception as e:
            logger.exception("Unexpected webhook delivery error for %s", subscription.id)
            attempt.mark_failed(
                error_message=f"Unexpected error: {e}",
                latency_ms=elapsed_ms(),
                body_limit=self._body_limit,
            )
            return

        latency_ms = elapsed_ms()
        if 200 <= response.status_code < 300:
            attempt.mark_delivered(
                http_status_code=response.status_code,
                response_body=response.text,
                latency_ms=latency_ms,
                body_limit=self._body_limit,
            )
        else:
            attempt.mark_failed(
                error_message=f"HTTP {response.status_code}",
                http_status_code=response.status_code,
                response_body=response.text,
                latency_ms=latency_ms,
                body_limit=self._body_limit,
            )
