"""HMAC-SHA256 payload signing for outbound webhooks."""

from __future__ import annotations

import hashlib
import hmac
import json
from typing import Any

SIGNATURE_PREFIX = "sha256="


def canonical_json(payload: Any) -> str:
    """Serialize a payload to the compact JSON string that is sent and signed."""
    return json.dumps(payload, separators=(",", ":"), ensure_ascii=False)


def _to_bytes(value: bytes | str) -> bytes:
    return value if isinstance(value, bytes) else value.encode("utf-8")


def sign(payload: bytes | str, secret: str) -> str:
    """Compute the HMAC-SHA256 digest of a payload.

    Args:
        payload: Exact request body bytes (or its UTF-8 string).
        secret: Shared secret for HMAC.

    Returns:
        Lowercase hex digest.
    """
    return hmac.new(
        key=secret.encode("utf-8"),
        msg=_to_bytes(payload),
        digestmod=hashlib.sha256,
    ).hexdigest()


def signature_header(payload: bytes | str, secret: str) -> str:
    """Value for the ``X-Signature`` header: ``sha256=<hex_digest>``."""
    return f"{SIGNATURE_PREFIX}{sign(payload, secret)}"


def verify_signature(payload: bytes | str, secret: str, signature: str) -> bool:
    """Verify an ``X-Signature`` header value on the receiving side.

    Args:
        payload: Raw request body that was signed.
        secret: Shared secret for HMAC.
        signature: Header value (format: "sha256=<hex_digest>").

    Returns:
        True if signature is valid, False otherwise.
    """
    expected = signature_header(payload, secret)
    return hmac.compare_digest(expected, signature)
