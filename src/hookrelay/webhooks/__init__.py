"""Webhook delivery system for hookrelay.

Provides the SSRF guard, HMAC signing, the delivery engine with bounded
retry, the per-subscription circuit breaker, and the delivery health report.

Example:
    ```python
    from hookrelay.webhooks import DeliveryEngine, validate_webhook_url

    validate_webhook_url("https://hooks.example.com/in")

    engine = DeliveryEngine(storage, registry)
    await engine.dispatch("hot_deal_identified", {"deal_id": "d1"}, "user_123")
    ```
"""

from .circuit_breaker import CIRCUIT_BREAKER_REASON, CircuitBreaker
from .delivery import DeliveryEngine, build_headers
from .health import WebhookHealthReport, compute_webhook_health
from .retry import RetryScheduler, backoff_delay
from .signing import canonical_json, sign, signature_header, verify_signature
from .url_validator import is_valid_webhook_url, validate_webhook_url

__all__ = [
    "CIRCUIT_BREAKER_REASON",
    "CircuitBreaker",
    "DeliveryEngine",
    "RetryScheduler",
    "WebhookHealthReport",
    "backoff_delay",
    "build_headers",
    "canonical_json",
    "compute_webhook_health",
    "is_valid_webhook_url",
    "sign",
    "signature_header",
    "validate_webhook_url",
    "verify_signature",
]
