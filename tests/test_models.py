"""Tests for hookrelay data models."""

from datetime import timedelta

import pytest
from pydantic import ValidationError

from hookrelay.exceptions import AttemptFinalizedError
from hookrelay.models import (
    DEFAULT_SCOPES,
    SCOPE_WEBHOOK_SUBSCRIBE,
    TRIGGER_DEFINITIONS,
    ApiKey,
    DeliveryAttempt,
    Subscription,
    TriggerType,
    WebhookEvent,
    hash_api_key,
    utc_now,
)


def make_subscription(**overrides) -> Subscription:
    fields = {
        "user_id": "user_1",
        "api_key_id": "key_1",
        "trigger_type": TriggerType.ANALYSIS_COMPLETED,
        "webhook_url": "https://hooks.example.com/in",
        "secret": "s3cr3t",
    }
    fields.update(overrides)
    return Subscription(**fields)


def make_attempt(**overrides) -> DeliveryAttempt:
    fields = {
        "subscription_id": "whk_1",
        "user_id": "user_1",
        "delivery_id": "d-1",
        "payload": {"a": 1},
    }
    fields.update(overrides)
    return DeliveryAttempt(**fields)


class TestTriggerType:
    """Tests for the closed trigger set."""

    def test_members(self):
        assert {t.value for t in TriggerType} == {
            "analysis_completed",
            "hot_deal_identified",
            "follow_up_required",
            "participant_matched",
            "deal_stage_changed",
        }

    def test_every_trigger_has_definition(self):
        for trigger in TriggerType:
            assert trigger in TRIGGER_DEFINITIONS
            assert trigger.definition.label
            assert trigger.definition.sample_data("user_1")["user_id"] == "user_1"

    def test_unknown_trigger_rejected(self):
        with pytest.raises(ValueError):
            TriggerType("meeting_booked")


class TestSubscription:
    """Tests for the Subscription model."""

    def test_defaults(self):
        sub = make_subscription()
        assert sub.id.startswith("whk_")
        assert sub.active is True
        assert sub.success_count == 0
        assert sub.failure_count == 0
        assert sub.last_triggered_at is None
        assert sub.disabled_reason is None

    def test_trigger_type_from_string(self):
        sub = make_subscription(trigger_type="deal_stage_changed")
        assert sub.trigger_type is TriggerType.DEAL_STAGE_CHANGED

    def test_counters_cannot_be_negative(self):
        with pytest.raises(ValidationError):
            make_subscription(success_count=-1)

    def test_extra_fields_forbidden(self):
        with pytest.raises(ValidationError):
            make_subscription(unknown="x")

    def test_matches(self):
        sub = make_subscription()
        assert sub.matches("user_1", TriggerType.ANALYSIS_COMPLETED)
        assert not sub.matches("user_2", TriggerType.ANALYSIS_COMPLETED)
        assert not sub.matches("user_1", TriggerType.HOT_DEAL_IDENTIFIED)

    def test_inactive_never_matches(self):
        sub = make_subscription(active=False)
        assert not sub.matches("user_1", TriggerType.ANALYSIS_COMPLETED)


class TestWebhookEvent:
    """Tests for the delivery envelope."""

    def test_for_trigger_wraps_data(self):
        event = WebhookEvent.for_trigger(
            TriggerType.HOT_DEAL_IDENTIFIED, "user_1", {"deal_id": "d1"}
        )
        payload = event.to_payload()

        assert payload["id"].startswith("evt_")
        assert payload["trigger_type"] == "hot_deal_identified"
        assert payload["user_id"] == "user_1"
        assert payload["data"] == {"deal_id": "d1"}
        assert isinstance(payload["timestamp"], str)

    def test_for_trigger_copies_data(self):
        data = {"deal_id": "d1"}
        event = WebhookEvent.for_trigger(TriggerType.HOT_DEAL_IDENTIFIED, "user_1", data)
        data["deal_id"] = "changed"
        assert event.data == {"deal_id": "d1"}

    def test_for_test_delivery(self):
        sub = make_subscription(trigger_type=TriggerType.FOLLOW_UP_REQUIRED)
        payload = WebhookEvent.for_test_delivery(sub).to_payload()

        assert payload["trigger_type"] == "follow_up_required"
        assert payload["data"]["test"] is True
        assert payload["data"]["webhook_id"] == sub.id
        assert "Follow-up Required" in payload["data"]["message"]
        assert payload["data"]["sample_data"]["user_id"] == "user_1"


class TestDeliveryAttempt:
    """Tests for delivery attempt state transitions."""

    def test_defaults(self):
        attempt = make_attempt()
        assert attempt.id.startswith("dlv_")
        assert attempt.status == "pending"
        assert attempt.attempt_number == 1
        assert not attempt.is_final

    def test_attempt_number_is_one_based(self):
        with pytest.raises(ValidationError):
            make_attempt(attempt_number=0)

    def test_mark_delivered(self):
        attempt = make_attempt().mark_delivered(200, "ok", latency_ms=12)
        assert attempt.status == "delivered"
        assert attempt.http_status_code == 200
        assert attempt.response_body == "ok"
        assert attempt.latency_ms == 12
        assert attempt.delivered_at is not None
        assert attempt.is_final

    def test_mark_failed(self):
        attempt = make_attempt().mark_failed("HTTP 500", http_status_code=500, response_body="boom")
        assert attempt.status == "failed"
        assert attempt.error_message == "HTTP 500"
        assert attempt.http_status_code == 500
        assert attempt.delivered_at is None

    def test_response_body_truncated(self):
        attempt = make_attempt().mark_failed("HTTP 500", response_body="x" * 5000)
        assert len(attempt.response_body) == 1000

    def test_response_body_limit_counts_utf8_bytes(self):
        # three bytes per character; the cut never splits one
        attempt = make_attempt().mark_failed("HTTP 500", response_body="\u20ac" * 1000)
        assert len(attempt.response_body.encode("utf-8")) == 999
        assert attempt.response_body == "\u20ac" * 333

    def test_short_multibyte_body_kept_whole(self):
        attempt = make_attempt().mark_delivered(200, "d\u00e9j\u00e0 vu")
        assert attempt.response_body == "d\u00e9j\u00e0 vu"

    def test_empty_response_body_stored_as_none(self):
        attempt = make_attempt().mark_delivered(204, "")
        assert attempt.response_body is None

    def test_finalized_attempt_is_immutable(self):
        attempt = make_attempt().mark_delivered(200)
        with pytest.raises(AttemptFinalizedError):
            attempt.mark_failed("late failure")
        with pytest.raises(AttemptFinalizedError):
            attempt.mark_delivered(200)
        assert attempt.status == "delivered"

    def test_failed_attempt_is_immutable(self):
        attempt = make_attempt().mark_failed("Request timeout")
        with pytest.raises(AttemptFinalizedError):
            attempt.mark_delivered(200)


class TestApiKey:
    """Tests for API key issuing."""

    def test_issue(self):
        api_key, raw_key = ApiKey.issue(user_id="user_1", key_name="CRM")

        assert raw_key.startswith("hr_")
        assert api_key.key_hash == hash_api_key(raw_key)
        assert raw_key not in api_key.model_dump_json()
        assert api_key.scopes == DEFAULT_SCOPES
        assert api_key.has_scope(SCOPE_WEBHOOK_SUBSCRIBE)
        assert api_key.is_usable

    def test_default_expiry_is_90_days(self):
        api_key, _ = ApiKey.issue(user_id="user_1", key_name="CRM")
        lifetime = api_key.expires_at - api_key.created_at
        assert timedelta(days=89, hours=23) < lifetime <= timedelta(days=90, seconds=1)

    def test_custom_scopes(self):
        api_key, _ = ApiKey.issue(user_id="user_1", key_name="read only", scopes=["read:analysis"])
        assert not api_key.has_scope(SCOPE_WEBHOOK_SUBSCRIBE)

    def test_expired_key_not_usable(self):
        api_key, _ = ApiKey.issue(user_id="user_1", key_name="old")
        api_key.expires_at = utc_now() - timedelta(seconds=1)
        assert api_key.is_expired
        assert not api_key.is_usable

    def test_revoked_key_not_usable(self):
        api_key, _ = ApiKey.issue(user_id="user_1", key_name="old")
        api_key.active = False
        assert not api_key.is_usable
