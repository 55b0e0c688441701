#!/usr/bin/env python3
"""hookrelay quickstart.

Registers a webhook, publishes events and shows signed deliveries, retries
and the delivery log. Runs entirely locally: Qdrant in-memory storage and an
httpx.MockTransport standing in for the subscriber's endpoint.
"""

import asyncio

import httpx

from hookrelay.config import Settings
from hookrelay.service import HookRelayService
from hookrelay.webhooks import verify_signature

SECRET = "quickstart-secret"


class FlakyReceiver:
    """Fails the first two requests, then accepts everything."""

    def __init__(self) -> None:
        self.calls = 0

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.calls += 1
        valid = verify_signature(request.content, SECRET, request.headers["X-Signature"])
        print(
            f"  <- POST {request.url} attempt={request.headers['X-Attempt']} "
            f"signature_valid={valid}"
        )
        if self.calls <= 2:
            return httpx.Response(503, text="busy")
        return httpx.Response(200, text="ok")


async def main() -> None:
    print("=" * 70)
    print("hookrelay Quickstart")
    print("=" * 70)

    settings = Settings(
        env="development",
        qdrant_url=":memory:",
        retry_backoff_seconds=[0.2, 0.5],
        log_level="WARNING",
    )
    receiver = FlakyReceiver()

    async with HookRelayService.create(settings, transport=httpx.MockTransport(receiver)) as hr:
        print("\n1. ISSUE AN API KEY AND SUBSCRIBE")
        print("-" * 70)
        api_key, raw_key = await hr.create_api_key("user_123", "CRM sync")
        print(f"  API key {api_key.id} (raw key shown once: {raw_key[:10]}...)")

        subscription = await hr.registry.subscribe(
            user_id="user_123",
            api_key_id=api_key.id,
            trigger_type="hot_deal_identified",
            url="https://hooks.example.com/deals",
            secret=SECRET,
        )
        print(f"  Subscribed {subscription.id} to {subscription.trigger_type.value}")

        print("\n2. PUBLISH AN EVENT (endpoint fails twice, then recovers)")
        print("-" * 70)
        started = await hr.enqueue(
            "hot_deal_identified", {"deal_id": "deal_42", "heat_level": "hot"}, "user_123"
        )
        print(f"  enqueue() returned immediately, chains started: {len(started)}")
        await hr.engine.scheduler.drain()

        print("\n3. DELIVERY LOG (newest first)")
        print("-" * 70)
        for attempt in await hr.deliveries(subscription.id, "user_123"):
            print(
                f"  attempt {attempt.attempt_number}: {attempt.status:<9} "
                f"http={attempt.http_status_code} error={attempt.error_message}"
            )

        stored = await hr.registry.get(subscription.id, "user_123")
        print(f"\n  success_count={stored.success_count} failure_count={stored.failure_count}")

        print("\n4. HEALTH REPORT")
        print("-" * 70)
        report = await hr.webhook_health("user_123")
        print(f"  status={report.status} delivery_rate={report.metrics.delivery_rate}%")
        for issue in report.issues:
            print(f"  [{issue.severity}] {issue.message}")


if __name__ == "__main__":
    asyncio.run(main())
