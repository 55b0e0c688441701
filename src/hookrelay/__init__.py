"""hookrelay: webhook subscriptions and signed, retried delivery.

Users register HTTPS endpoints for a closed set of domain events. When a
producer enqueues an event, every active matching subscription receives an
HMAC-signed POST, retried with fixed backoff and guarded by a
per-subscription circuit breaker.

Quick Start:
    from hookrelay.service import HookRelayService

    async with HookRelayService.create() as hookrelay:
        await hookrelay.enqueue(
            "hot_deal_identified",
            {"deal_id": "deal_42", "heat_level": "hot"},
            owner_id="user_123",
        )

Core Types:
    - Subscription: A registered endpoint for one trigger type
    - DeliveryAttempt: One logged POST within a delivery chain
    - WebhookEvent: Envelope sent as the request body
    - ApiKey: Scoped credential that owns subscriptions
"""

__version__ = "0.1.0"

# Configuration
from .config import Settings, settings

# Exceptions
from .exceptions import (
    AttemptFinalizedError,
    AuthenticationError,
    AuthorizationError,
    ConfigurationError,
    HookRelayError,
    InvalidURLError,
    NotFoundError,
    PayloadTooLargeError,
    RateLimitError,
    StorageError,
    ValidationError,
)

# Logging
from .logging import (
    bind_context,
    clear_context,
    configure_logging,
    get_logger,
    unbind_context,
)

# Models
from .models import (
    ApiKey,
    DeliveryAttempt,
    Subscription,
    TriggerType,
    WebhookEvent,
)

__all__ = [
    # Version
    "__version__",
    # Configuration
    "Settings",
    "settings",
    # Exceptions
    "HookRelayError",
    "ValidationError",
    "InvalidURLError",
    "NotFoundError",
    "StorageError",
    "RateLimitError",
    "PayloadTooLargeError",
    "ConfigurationError",
    "AuthenticationError",
    "AuthorizationError",
    "AttemptFinalizedError",
    # Logging
    "configure_logging",
    "get_logger",
    "bind_context",
    "clear_context",
    "unbind_context",
    # Models
    "ApiKey",
    "DeliveryAttempt",
    "Subscription",
    "TriggerType",
    "WebhookEvent",
]
