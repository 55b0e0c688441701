"""Webhook models for server-to-server event notifications.

Provides subscriptions, event envelopes, and the delivery attempt log
entry written for every outbound POST.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from hookrelay.exceptions import AttemptFinalizedError

from .base import generate_id, utc_now


class TriggerType(str, Enum):
    """Closed set of domain events a subscription can listen for."""

    ANALYSIS_COMPLETED = "analysis_completed"
    HOT_DEAL_IDENTIFIED = "hot_deal_identified"
    FOLLOW_UP_REQUIRED = "follow_up_required"
    PARTICIPANT_MATCHED = "participant_matched"
    DEAL_STAGE_CHANGED = "deal_stage_changed"

    @property
    def definition(self) -> TriggerDefinition:
        """Registered definition for this trigger."""
        return TRIGGER_DEFINITIONS[self]


@dataclass(frozen=True)
class TriggerDefinition:
    """Per-trigger metadata and the sample data used for test deliveries."""

    label: str
    description: str
    sample_data: Callable[[str], dict[str, Any]]


TRIGGER_DEFINITIONS: dict[TriggerType, TriggerDefinition] = {
    TriggerType.ANALYSIS_COMPLETED: TriggerDefinition(
        label="Analysis Completed",
        description="Triggered when a conversation analysis is finished",
        sample_data=lambda user_id: {
            "analysis_id": "test-analysis-id",
            "user_id": user_id,
            "heat_level": "warm",
        },
    ),
    TriggerType.HOT_DEAL_IDENTIFIED: TriggerDefinition(
        label="Hot Deal Identified",
        description="Triggered when a deal is marked as high-priority",
        sample_data=lambda user_id: {
            "analysis_id": "test-analysis-id",
            "user_id": user_id,
            "heat_level": "hot",
        },
    ),
    TriggerType.FOLLOW_UP_REQUIRED: TriggerDefinition(
        label="Follow-up Required",
        description="Triggered when immediate follow-up is recommended",
        sample_data=lambda user_id: {
            "analysis_id": "test-analysis-id",
            "user_id": user_id,
            "priority_actions": ["Send proposal"],
        },
    ),
    TriggerType.PARTICIPANT_MATCHED: TriggerDefinition(
        label="Participant Matched",
        description="Triggered when a participant is matched to a CRM contact",
        sample_data=lambda user_id: {
            "analysis_id": "test-analysis-id",
            "user_id": user_id,
            "contact_id": "test-contact-id",
        },
    ),
    TriggerType.DEAL_STAGE_CHANGED: TriggerDefinition(
        label="Deal Stage Changed",
        description="Triggered when a deal moves to a different pipeline stage",
        sample_data=lambda user_id: {
            "deal_id": "test-deal-id",
            "user_id": user_id,
            "previous_stage": "discovery",
            "stage": "proposal",
        },
    ),
}

# Delivery status
DeliveryStatus = Literal["pending", "delivered", "failed"]


class Subscription(BaseModel):
    """A registered webhook endpoint for one trigger type.

    Attributes:
        id: Unique identifier for this subscription.
        user_id: Principal that owns the subscription.
        api_key_id: API credential used to create it.
        trigger_type: Event this subscription listens for.
        webhook_url: HTTPS endpoint, validated at creation time.
        secret: Shared secret for HMAC-SHA256 signatures.
        active: Whether deliveries are attempted.
        success_count: Delivered attempts (never decremented).
        failure_count: Failed attempts (never decremented).
        last_triggered_at: When the last successful delivery happened.
        last_error: Most recent delivery error, cleared on success.
        disabled_reason: Why the subscription was deactivated.
        created_at: When the subscription was registered.
    """

    model_config = ConfigDict(extra="forbid")

    id: str = Field(default_factory=lambda: generate_id("whk"))
    user_id: str = Field(min_length=1, description="Principal that owns this subscription")
    api_key_id: str = Field(min_length=1, description="API credential that created it")
    trigger_type: TriggerType = Field(description="Event type subscribed to")
    webhook_url: str = Field(min_length=1, description="HTTPS endpoint to receive events")
    secret: str | None = Field(default=None, description="Shared secret for signatures")
    active: bool = Field(default=True, description="Whether deliveries are attempted")
    success_count: int = Field(default=0, ge=0, description="Delivered attempts")
    failure_count: int = Field(default=0, ge=0, description="Failed attempts")
    last_triggered_at: datetime | None = Field(default=None)
    last_error: str | None = Field(default=None)
    disabled_reason: str | None = Field(default=None)
    created_at: datetime = Field(default_factory=utc_now)

    def matches(self, user_id: str, trigger_type: TriggerType) -> bool:
        """Check if this subscription should receive an event."""
        return self.active and self.user_id == user_id and self.trigger_type == trigger_type


class WebhookEvent(BaseModel):
    """Envelope sent as the body of every delivery.

    Attributes:
        id: Unique identifier for this event.
        trigger_type: Event type.
        user_id: Principal the event belongs to.
        timestamp: When the event was enqueued.
        data: Producer payload, passed through untouched.
    """

    model_config = ConfigDict(extra="forbid")

    id: str = Field(default_factory=lambda: generate_id("evt"))
    trigger_type: TriggerType
    user_id: str
    timestamp: datetime = Field(default_factory=utc_now)
    data: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def for_trigger(
        cls,
        trigger_type: TriggerType,
        user_id: str,
        data: dict[str, Any],
    ) -> WebhookEvent:
        """Create the envelope for a producer event."""
        return cls(trigger_type=trigger_type, user_id=user_id, data=dict(data))

    @classmethod
    def for_test_delivery(cls, subscription: Subscription) -> WebhookEvent:
        """Create a synthetic event for a manual test delivery."""
        definition = subscription.trigger_type.definition
        return cls(
            trigger_type=subscription.trigger_type,
            user_id=subscription.user_id,
            data={
                "test": True,
                "webhook_id": subscription.id,
                "message": f"This is a test webhook delivery for '{definition.label}'",
                "sample_data": definition.sample_data(subscription.user_id),
            },
        )

    def to_payload(self) -> dict[str, Any]:
        """JSON-compatible dict used as the delivery body."""
        return self.model_dump(mode="json")


class DeliveryAttempt(BaseModel):
    """Record of one POST within a delivery chain.

    Attributes:
        id: Unique identifier for this attempt.
        subscription_id: Subscription the attempt targets.
        user_id: Owner of the subscription.
        attempt_number: 1-based position within the chain.
        delivery_id: UUID sent to the receiver as X-Delivery-Id.
        payload: Exact JSON body sent.
        status: pending, delivered or failed.
        http_status_code: Response status, if one was received.
        response_body: Response body, truncated.
        error_message: Why the attempt failed.
        latency_ms: Wall time of the HTTP call.
        created_at: When the attempt was logged.
        delivered_at: When a 2xx response arrived.
    """

    model_config = ConfigDict(extra="forbid")

    id: str = Field(default_factory=lambda: generate_id("dlv"))
    subscription_id: str
    user_id: str
    attempt_number: int = Field(default=1, ge=1)
    delivery_id: str
    payload: dict[str, Any]
    status: DeliveryStatus = Field(default="pending")
    http_status_code: int | None = Field(default=None)
    response_body: str | None = Field(default=None)
    error_message: str | None = Field(default=None)
    latency_ms: int | None = Field(default=None, ge=0)
    created_at: datetime = Field(default_factory=utc_now)
    delivered_at: datetime | None = Field(default=None)

    @property
    def is_final(self) -> bool:
        return self.status != "pending"

    def _ensure_pending(self) -> None:
        if self.is_final:
            raise AttemptFinalizedError(self.id, self.status)

    def mark_delivered(
        self,
        http_status_code: int,
        response_body: str | None = None,
        latency_ms: int | None = None,
        body_limit: int = 1000,
    ) -> DeliveryAttempt:
        """Mark the attempt as acknowledged by the receiver."""
        self._ensure_pending()
        self.status = "delivered"
        self.delivered_at = utc_now()
        self.http_status_code = http_status_code
        self.response_body = truncate_utf8(response_body, body_limit)
        self.latency_ms = latency_ms
        return self

    def mark_failed(
        self,
        error_message: str,
        http_status_code: int | None = None,
        response_body: str | None = None,
        latency_ms: int | None = None,
        body_limit: int = 1000,
    ) -> DeliveryAttempt:
        """Mark the attempt as failed."""
        self._ensure_pending()
        self.status = "failed"
        self.error_message = error_message
        self.http_status_code = http_status_code
        self.response_body = truncate_utf8(response_body, body_limit)
        self.latency_ms = latency_ms
        return self



def truncate_utf8(text: str | None, max_bytes: int) -> str | None:
    """Cut ``text`` to at most ``max_bytes`` of UTF-8 without splitting a character."""
    if not text:
        return None
    encoded = text.encode("utf-8")
    if len(encoded) <= max_bytes:
        return text
    return encoded[:max_bytes].decode("utf-8", errors="ignore")

__all__ = [
    "TRIGGER_DEFINITIONS",
    "DeliveryAttempt",
    "DeliveryStatus",
    "Subscription",
    "TriggerDefinition",
    "TriggerType",
    "WebhookEvent",
    "truncate_utf8",
]
