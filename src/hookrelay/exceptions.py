"""hookrelay exception hierarchy.

Management errors (bad URL, missing scope, unknown subscription) are raised
to the API caller and mapped to 4xx responses. Delivery errors are never
raised to event producers; they are recorded on the delivery log instead.
"""

from __future__ import annotations


class HookRelayError(Exception):
    """Base exception for all hookrelay errors.

    Attributes:
        message: Human-readable error description.
        code: Machine-readable error code for API responses.
        http_status: Status the API answers with when this error escapes a route.
    """

    code: str = "hookrelay_error"
    http_status: int = 500

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)

    def to_dict(self) -> dict[str, object]:
        """Convert exception to API-friendly dictionary."""
        return {
            "error": {
                "code": self.code,
                "message": self.message,
            }
        }


class ValidationError(HookRelayError):
    """Invalid input provided.

    Attributes:
        field: The field that failed validation.
        message: Description of the validation failure.
    """

    code: str = "validation_error"
    http_status = 400

    def __init__(self, field: str, message: str) -> None:
        self.field = field
        self.reason = message
        super().__init__(f"{field}: {message}")

    def to_dict(self) -> dict[str, object]:
        """Convert exception to API-friendly dictionary."""
        return {
            "error": {
                "code": self.code,
                "field": self.field,
                "message": self.message,
            }
        }


class InvalidURLError(ValidationError):
    """Webhook URL rejected by the SSRF guard."""

    code: str = "invalid_url"

    def __init__(self, message: str) -> None:
        super().__init__("webhook_url", message)


class NotFoundError(HookRelayError):
    """Resource not found, or not owned by the caller.

    Attributes:
        resource_type: Type of resource (e.g., "webhook", "api_key").
        resource_id: ID of the missing resource.
    """

    code: str = "not_found"
    http_status = 404

    def __init__(self, resource_type: str, resource_id: str) -> None:
        self.resource_type = resource_type
        self.resource_id = resource_id
        super().__init__(f"{resource_type} not found: {resource_id}")

    def to_dict(self) -> dict[str, object]:
        """Convert exception to API-friendly dictionary."""
        return {
            "error": {
                "code": self.code,
                "resource_type": self.resource_type,
                "resource_id": self.resource_id,
                "message": self.message,
            }
        }


class StorageError(HookRelayError):
    """Storage operation failed."""

    code: str = "storage_error"
    http_status = 503


class RateLimitError(HookRelayError):
    """Rate limit exceeded.

    Attributes:
        retry_after: Seconds until the client can retry.
    """

    code: str = "rate_limit_exceeded"
    http_status = 429

    def __init__(self, retry_after: int) -> None:
        self.retry_after = retry_after
        super().__init__(f"Rate limit exceeded. Retry after {retry_after}s")

    def to_dict(self) -> dict[str, object]:
        """Convert exception to API-friendly dictionary."""
        return {
            "error": {
                "code": self.code,
                "retry_after": self.retry_after,
                "message": self.message,
            }
        }


class PayloadTooLargeError(HookRelayError):
    """Request body exceeds the configured size limit."""

    code: str = "payload_too_large"
    http_status = 413

    def __init__(self, max_bytes: int) -> None:
        self.max_bytes = max_bytes
        super().__init__(f"Request too large (max {max_bytes} bytes)")


class ConfigurationError(HookRelayError):
    """Required configuration is missing or invalid."""

    code: str = "configuration_error"


class AuthenticationError(HookRelayError):
    """Authentication credentials are invalid or missing."""

    code: str = "authentication_error"
    http_status = 401


class AuthorizationError(HookRelayError):
    """Caller lacks the capability required for the action."""

    code: str = "authorization_error"
    http_status = 403


class AttemptFinalizedError(HookRelayError):
    """A delivery attempt that already left ``pending`` was modified again."""

    code: str = "attempt_finalized"
    http_status = 409

    def __init__(self, attempt_id: str, status: str) -> None:
        self.attempt_id = attempt_id
        self.status = status
        super().__init__(f"Delivery attempt {attempt_id} is already {status}")
