"""Tests for API rate limiting."""

import time
from unittest.mock import MagicMock

import pytest

from hookrelay.api.rate_limit import (
    InMemoryRateLimiter,
    RedisRateLimiter,
    build_rate_limiter,
    extract_client_ip,
)
from hookrelay.exceptions import RateLimitError


class TestInMemoryRateLimiter:
    """Tests for the sliding-window limiter."""

    def test_counts_down(self):
        limiter = InMemoryRateLimiter(window_seconds=60)

        first = limiter.check_rate_limit("user_1", "webhooks", limit=3)
        second = limiter.check_rate_limit("user_1", "webhooks", limit=3)

        assert first.limit == 3
        assert first.remaining == 2
        assert second.remaining == 1

    def test_exceeded(self):
        limiter = InMemoryRateLimiter(window_seconds=60)
        for _ in range(2):
            limiter.check_rate_limit("user_1", "webhooks", limit=2)

        with pytest.raises(RateLimitError) as exc_info:
            limiter.check_rate_limit("user_1", "webhooks", limit=2)

        assert 1 <= exc_info.value.retry_after <= 60

    def test_keys_are_independent(self):
        limiter = InMemoryRateLimiter(window_seconds=60)
        limiter.check_rate_limit("user_1", "webhooks", limit=1)

        limiter.check_rate_limit("user_2", "webhooks", limit=1)
        limiter.check_rate_limit("user_1", "events", limit=1)

    def test_window_expires(self, monkeypatch):
        limiter = InMemoryRateLimiter(window_seconds=60)
        now = time.time()
        monkeypatch.setattr("hookrelay.api.rate_limit.time.time", lambda: now)
        limiter.check_rate_limit("user_1", "webhooks", limit=1)

        monkeypatch.setattr("hookrelay.api.rate_limit.time.time", lambda: now + 61)
        info = limiter.check_rate_limit("user_1", "webhooks", limit=1)

        assert info.remaining == 0


class TestRedisRateLimiter:
    """Tests for the fixed-window Redis limiter, with a mocked client."""

    def _limiter(self, count):
        client = MagicMock()
        client.pipeline.return_value.execute.return_value = [count, True]
        return RedisRateLimiter("redis://unused", window_seconds=60, client=client), client

    def test_under_limit(self, monkeypatch):
        monkeypatch.setattr("hookrelay.api.rate_limit.time.time", lambda: 1_000_010.0)
        limiter, client = self._limiter(count=2)

        info = limiter.check_rate_limit("user_1", "webhooks", limit=5)

        assert info.remaining == 3
        assert info.reset_at == 1_000_020
        pipe = client.pipeline.return_value
        pipe.incr.assert_called_once_with("hookrelay:ratelimit:user_1:webhooks:16666")
        pipe.expire.assert_called_once_with("hookrelay:ratelimit:user_1:webhooks:16666", 61)

    def test_over_limit(self, monkeypatch):
        monkeypatch.setattr("hookrelay.api.rate_limit.time.time", lambda: 1_000_010.0)
        limiter, _ = self._limiter(count=6)

        with pytest.raises(RateLimitError) as exc_info:
            limiter.check_rate_limit("user_1", "webhooks", limit=5)

        assert exc_info.value.retry_after == 10

    def test_at_limit_is_allowed(self):
        limiter, _ = self._limiter(count=5)

        info = limiter.check_rate_limit("user_1", "events", limit=5)

        assert info.remaining == 0


class TestBuildRateLimiter:
    def test_in_memory_by_default(self, settings):
        limiter = build_rate_limiter(settings)

        assert isinstance(limiter, InMemoryRateLimiter)
        assert limiter.window_seconds == settings.rate_limit_window_seconds

    def test_redis_when_configured(self, settings, monkeypatch):
        created = MagicMock(spec=RedisRateLimiter)
        factory = MagicMock(return_value=created)
        monkeypatch.setattr("hookrelay.api.rate_limit.RedisRateLimiter", factory)
        redis_settings = settings.model_copy(
            update={"rate_limit_redis_url": "redis://localhost:6379"}
        )

        assert build_rate_limiter(redis_settings) is created
        factory.assert_called_once_with("redis://localhost:6379", 60)


class TestExtractClientIp:
    def _request(self, headers=None, host="203.0.113.9"):
        request = MagicMock()
        request.headers = headers or {}
        request.client.host = host
        return request

    def test_uses_peer_address(self):
        assert extract_client_ip(self._request()) == "ip:203.0.113.9"

    def test_ignores_proxy_headers_by_default(self):
        request = self._request({"x-forwarded-for": "198.51.100.1"})

        assert extract_client_ip(request) == "ip:203.0.113.9"

    def test_trusts_forwarded_for_when_enabled(self):
        request = self._request({"x-forwarded-for": "198.51.100.1, 10.0.0.1"})

        assert extract_client_ip(request, trust_proxy_headers=True) == "ip:198.51.100.1"

    def test_real_ip_fallback(self):
        request = self._request({"x-real-ip": " 198.51.100.2 "})

        assert extract_client_ip(request, trust_proxy_headers=True) == "ip:198.51.100.2"

    def test_unknown(self):
        request = self._request()
        request.client = None

        assert extract_client_ip(request) == "ip:unknown"
