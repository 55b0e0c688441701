"""Pydantic schemas for API request/response models."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from hookrelay.models import ApiKey, DeliveryAttempt, DeliveryStatus, Subscription, TriggerType


class SubscribeRequest(BaseModel):
    """Request body for registering a webhook.

    Attributes:
        api_key_id: ID of an active API key with the webhook:subscribe scope.
        trigger_type: Event to subscribe to.
        webhook_url: HTTPS endpoint to receive deliveries.
        secret_token: Optional shared secret; generated when omitted.
    """

    model_config = ConfigDict(extra="forbid")

    api_key_id: str = Field(min_length=1, description="API key authorizing the subscription")
    trigger_type: str = Field(min_length=1, description="Trigger type to subscribe to")
    webhook_url: str = Field(min_length=1, description="HTTPS endpoint")
    secret_token: str | None = Field(
        default=None, min_length=1, description="Shared secret for signatures"
    )


class SubscribeResponse(BaseModel):
    """Response for a new subscription. The secret is shown only here."""

    model_config = ConfigDict(extra="forbid")

    webhook_id: str
    trigger_type: TriggerType
    webhook_url: str
    secret_token: str | None
    created_at: datetime

    @classmethod
    def from_subscription(cls, subscription: Subscription) -> SubscribeResponse:
        return cls(
            webhook_id=subscription.id,
            trigger_type=subscription.trigger_type,
            webhook_url=subscription.webhook_url,
            secret_token=subscription.secret,
            created_at=subscription.created_at,
        )


class WebhookResponse(BaseModel):
    """A subscription as listed to its owner (secret omitted).

    Attributes:
        webhook_id: Subscription ID.
        trigger_type: Subscribed event.
        webhook_url: Receiving endpoint.
        active: Whether deliveries are attempted.
        success_count: Delivered attempts.
        failure_count: Failed attempts.
        last_triggered_at: Last successful delivery.
        last_error: Most recent delivery error.
        disabled_reason: Why the subscription was deactivated.
        created_at: Registration time.
    """

    model_config = ConfigDict(extra="forbid")

    webhook_id: str
    api_key_id: str
    trigger_type: TriggerType
    webhook_url: str
    active: bool
    success_count: int
    failure_count: int
    last_triggered_at: datetime | None = None
    last_error: str | None = None
    disabled_reason: str | None = None
    created_at: datetime

    @classmethod
    def from_subscription(cls, subscription: Subscription) -> WebhookResponse:
        return cls(
            webhook_id=subscription.id,
            api_key_id=subscription.api_key_id,
            trigger_type=subscription.trigger_type,
            webhook_url=subscription.webhook_url,
            active=subscription.active,
            success_count=subscription.success_count,
            failure_count=subscription.failure_count,
            last_triggered_at=subscription.last_triggered_at,
            last_error=subscription.last_error,
            disabled_reason=subscription.disabled_reason,
            created_at=subscription.created_at,
        )


class WebhookListResponse(BaseModel):
    model_config = ConfigDict(extra="forbid")

    webhooks: list[WebhookResponse] = Field(default_factory=list)


class WebhookIdRequest(BaseModel):
    """Request body naming a single webhook."""

    model_config = ConfigDict(extra="forbid")

    webhook_id: str = Field(min_length=1)


class UnsubscribeResponse(BaseModel):
    model_config = ConfigDict(extra="forbid")

    success: bool = True
    webhook_id: str
    message: str = "Webhook subscription removed"


class WebhookTestResponse(BaseModel):
    """Returned as soon as a test delivery is started."""

    model_config = ConfigDict(extra="forbid")

    success: bool = True
    webhook_id: str
    message: str = "Test webhook queued"


class DeliveryResponse(BaseModel):
    """One logged delivery attempt."""

    model_config = ConfigDict(extra="forbid")

    id: str
    subscription_id: str
    attempt_number: int
    delivery_id: str
    status: DeliveryStatus
    http_status_code: int | None = None
    response_body: str | None = None
    error_message: str | None = None
    latency_ms: int | None = None
    created_at: datetime
    delivered_at: datetime | None = None

    @classmethod
    def from_attempt(cls, attempt: DeliveryAttempt) -> DeliveryResponse:
        return cls(
            id=attempt.id,
            subscription_id=attempt.subscription_id,
            attempt_number=attempt.attempt_number,
            delivery_id=attempt.delivery_id,
            status=attempt.status,
            http_status_code=attempt.http_status_code,
            response_body=attempt.response_body,
            error_message=attempt.error_message,
            latency_ms=attempt.latency_ms,
            created_at=attempt.created_at,
            delivered_at=attempt.delivered_at,
        )


class DeliveryListResponse(BaseModel):
    model_config = ConfigDict(extra="forbid")

    webhook_id: str
    deliveries: list[DeliveryResponse] = Field(default_factory=list)


class CreateApiKeyRequest(BaseModel):
    """Request body for issuing an API key.

    Attributes:
        key_name: Human-readable label.
        scopes: Capabilities; defaults to read:analysis and webhook:subscribe.
    """

    model_config = ConfigDict(extra="forbid")

    key_name: str = Field(min_length=1, max_length=100)
    scopes: list[str] | None = Field(default=None)


class ApiKeyResponse(BaseModel):
    """An API key record. ``api_key`` is only set in the creation response."""

    model_config = ConfigDict(extra="forbid")

    id: str
    key_name: str
    scopes: list[str]
    active: bool
    created_at: datetime
    expires_at: datetime
    last_used_at: datetime | None = None
    api_key: str | None = Field(default=None, description="Raw key, shown once")

    @classmethod
    def from_api_key(cls, api_key: ApiKey, raw_key: str | None = None) -> ApiKeyResponse:
        return cls(
            id=api_key.id,
            key_name=api_key.key_name,
            scopes=list(api_key.scopes),
            active=api_key.active,
            created_at=api_key.created_at,
            expires_at=api_key.expires_at,
            last_used_at=api_key.last_used_at,
            api_key=raw_key,
        )


class ApiKeyListResponse(BaseModel):
    model_config = ConfigDict(extra="forbid")

    api_keys: list[ApiKeyResponse] = Field(default_factory=list)


class EventRequest(BaseModel):
    """Producer event for the authenticated user.

    Attributes:
        trigger_type: Event type.
        data: Event payload, delivered untouched.
    """

    model_config = ConfigDict(extra="forbid")

    trigger_type: str = Field(min_length=1)
    data: dict[str, Any] = Field(default_factory=dict)


class EventAcceptedResponse(BaseModel):
    model_config = ConfigDict(extra="forbid")

    accepted: bool = True
    trigger_type: TriggerType
    webhooks_notified: int = Field(ge=0, description="Delivery chains started")


class HealthResponse(BaseModel):
    """Response for health check endpoint.

    Attributes:
        status: Service status (healthy, unhealthy).
        version: API version.
        storage_connected: Whether storage is connected.
        pending_deliveries: Armed retries plus attempts in flight.
    """

    model_config = ConfigDict(extra="forbid")

    status: Literal["healthy", "degraded", "unhealthy"]
    version: str
    storage_connected: bool
    pending_deliveries: int = 0
