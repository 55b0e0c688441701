"""Data models for hookrelay.

Subscription Types:
    - Subscription: A registered endpoint for one trigger type
    - TriggerType: Closed set of domain events
    - WebhookEvent: Envelope delivered to subscribers

Delivery Types:
    - DeliveryAttempt: Append-only log entry for one POST

Credentials:
    - ApiKey: Scoped credential that owns subscriptions
"""

from .api_key import (
    ALL_SCOPES,
    DEFAULT_SCOPES,
    SCOPE_READ_ANALYSIS,
    SCOPE_WEBHOOK_SUBSCRIBE,
    ApiKey,
    hash_api_key,
)
from .base import generate_id, utc_now
from .webhook import (
    TRIGGER_DEFINITIONS,
    DeliveryAttempt,
    DeliveryStatus,
    Subscription,
    TriggerDefinition,
    TriggerType,
    WebhookEvent,
)

__all__ = [
    # Base helpers
    "generate_id",
    "utc_now",
    # Webhooks
    "TRIGGER_DEFINITIONS",
    "DeliveryAttempt",
    "DeliveryStatus",
    "Subscription",
    "TriggerDefinition",
    "TriggerType",
    "WebhookEvent",
    # Credentials
    "ALL_SCOPES",
    "DEFAULT_SCOPES",
    "SCOPE_READ_ANALYSIS",
    "SCOPE_WEBHOOK_SUBSCRIBE",
    "ApiKey",
    "hash_api_key",
]
