"""Tests for hookrelay configuration."""

import pytest
from pydantic import ValidationError

from hookrelay.config import DEFAULT_BACKOFF_SECONDS, Settings


class TestDefaults:
    def test_delivery_defaults(self):
        settings = Settings(env="test")

        assert settings.delivery_timeout_seconds == 30
        assert settings.delivery_max_attempts == 5
        assert settings.test_delivery_max_attempts == 1
        assert settings.retry_backoff_seconds == DEFAULT_BACKOFF_SECONDS
        assert settings.circuit_breaker_window == 10
        assert settings.response_body_limit == 1000

    def test_env_prefix(self, monkeypatch):
        monkeypatch.setenv("HOOKRELAY_DELIVERY_MAX_ATTEMPTS", "3")
        monkeypatch.setenv("HOOKRELAY_COLLECTION_PREFIX", "staging")

        settings = Settings(env="test")

        assert settings.delivery_max_attempts == 3
        assert settings.collection_prefix == "staging"

    def test_backoff_from_env(self, monkeypatch):
        monkeypatch.setenv("HOOKRELAY_RETRY_BACKOFF_SECONDS", "[2, 4]")

        assert Settings(env="test").retry_backoff_seconds == [2.0, 4.0]


class TestValidation:
    def test_empty_backoff_rejected(self):
        with pytest.raises(ValidationError, match="at least one delay"):
            Settings(env="test", retry_backoff_seconds=[])

    def test_negative_backoff_rejected(self):
        with pytest.raises(ValidationError, match="non-negative"):
            Settings(env="test", retry_backoff_seconds=[1.0, -5.0])

    def test_max_attempts_bounds(self):
        with pytest.raises(ValidationError):
            Settings(env="test", delivery_max_attempts=0)

    def test_test_delivery_is_single_attempt(self):
        with pytest.raises(ValidationError):
            Settings(env="test", test_delivery_max_attempts=2)


class TestAuthSecret:
    def test_production_requires_secret(self):
        with pytest.raises(ValidationError, match="HOOKRELAY_AUTH_SECRET_KEY"):
            Settings(env="production", auth_secret_key=None)

    def test_production_with_secret(self):
        settings = Settings(env="production", auth_secret_key="prod-secret")

        assert settings.effective_auth_secret_key == "prod-secret"

    def test_development_generates_secret(self):
        settings = Settings(env="development", auth_secret_key=None)

        assert len(settings.effective_auth_secret_key) == 64

    def test_generated_secrets_differ(self):
        first = Settings(env="development", auth_secret_key=None)
        second = Settings(env="development", auth_secret_key=None)

        assert first.effective_auth_secret_key != second.effective_auth_secret_key


class TestLocalhostWebhooks:
    def test_disabled_by_default(self):
        assert Settings(env="development").localhost_webhooks_allowed is False

    def test_enabled_in_development(self):
        settings = Settings(env="development", allow_localhost_webhooks=True)

        assert settings.localhost_webhooks_allowed is True

    def test_ignored_outside_development(self):
        with pytest.warns(UserWarning, match="allow_localhost_webhooks"):
            settings = Settings(
                env="production", auth_secret_key="x", allow_localhost_webhooks=True
            )

        assert settings.localhost_webhooks_allowed is False
