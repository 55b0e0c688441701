"""Pytest configuration and shared fixtures."""

from __future__ import annotations

from collections.abc import Callable

import httpx
import pytest

from hookrelay.config import Settings
from hookrelay.models import ApiKey, Subscription
from hookrelay.registry import SubscriptionRegistry
from hookrelay.storage import HookRelayStorage
from hookrelay.webhooks import DeliveryEngine, RetryScheduler

USER_ID = "user_1"
WEBHOOK_URL = "https://hooks.example.com/in"


class RecordingScheduler(RetryScheduler):
    """Retry scheduler that records requested delays and retries immediately."""

    def __init__(self, backoff_seconds: list[float] | None = None) -> None:
        super().__init__(backoff_seconds)
        self.delays: list[float] = []

    def schedule(self, delay_seconds, factory) -> None:
        self.delays.append(delay_seconds)
        super().schedule(0, factory)


class Receiver:
    """Fake webhook endpoint backed by httpx.MockTransport.

    Records every request and answers with ``responder`` (HTTP 200 by default).
    """

    def __init__(self, responder: Callable[[httpx.Request], httpx.Response] | None = None) -> None:
        self.requests: list[httpx.Request] = []
        self.responder = responder or (lambda request: httpx.Response(200, text="ok"))

    def _handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.responder(request)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self._handle)


def respond_with(status_code: int, text: str = "") -> Callable[[httpx.Request], httpx.Response]:
    return lambda request: httpx.Response(status_code, text=text)


def raise_connect_error(request: httpx.Request) -> httpx.Response:
    raise httpx.ConnectError("Connection refused", request=request)


@pytest.fixture
def settings() -> Settings:
    """Settings for tests: in-memory storage and a fixed auth secret."""
    return Settings(
        env="test",
        qdrant_url=":memory:",
        collection_prefix="test",
        auth_secret_key="test-secret-key",
    )


@pytest.fixture
async def storage():
    """In-memory storage using qdrant-client's local mode."""
    store = HookRelayStorage(url=":memory:", prefix="test")
    await store.initialize()

    yield store

    await store.close()


@pytest.fixture
def registry(storage: HookRelayStorage, settings: Settings) -> SubscriptionRegistry:
    return SubscriptionRegistry(storage, settings)


@pytest.fixture
def scheduler():
    return RecordingScheduler()


@pytest.fixture
def receiver() -> Receiver:
    return Receiver()


@pytest.fixture
async def engine(storage, registry, scheduler, settings, receiver):
    """Delivery engine posting to the fake receiver."""
    delivery_engine = DeliveryEngine(
        storage,
        registry,
        scheduler=scheduler,
        settings=settings,
        transport=receiver.transport,
    )

    yield delivery_engine

    await scheduler.close()


@pytest.fixture
async def api_key(storage: HookRelayStorage) -> ApiKey:
    """Stored API key for USER_ID with the default scopes."""
    key, _raw = ApiKey.issue(user_id=USER_ID, key_name="test key")
    await storage.store_api_key(key)
    return key


@pytest.fixture
async def subscription(registry: SubscriptionRegistry, api_key: ApiKey) -> Subscription:
    """Active hot_deal_identified subscription with a known secret."""
    return await registry.subscribe(
        user_id=USER_ID,
        api_key_id=api_key.id,
        trigger_type="hot_deal_identified",
        url=WEBHOOK_URL,
        secret="s3cr3t",
    )
