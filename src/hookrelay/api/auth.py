"""Bearer token authentication for the management API.

Tokens are ``user_id:org_id:expires_at:signature`` with an HMAC-SHA256
signature over the first three fields. The validator lives on
``app.state.token_validator``; ``CurrentUser`` resolves the caller from it.
"""

import hashlib
import hmac
import time
from typing import Annotated

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel, ConfigDict, Field

from hookrelay.exceptions import AuthenticationError
from hookrelay.logging import bind_context, get_logger

logger = get_logger(__name__)

# auto_error=False so a missing header maps to our 401 body, not FastAPI's 403
security = HTTPBearer(auto_error=False)


class AuthenticatedUser(BaseModel):
    """The principal making a management request.

    Attributes:
        user_id: Owner of subscriptions and API keys.
        org_id: Optional organization ID.
    """

    model_config = ConfigDict(extra="forbid")

    user_id: str = Field(description="Owner of subscriptions and API keys")
    org_id: str | None = Field(default=None, description="Optional organization ID")


class TokenValidator:
    """Issues and checks HMAC-signed bearer tokens."""

    def __init__(self, secret_key: str) -> None:
        self.secret_key = secret_key.encode()

    def _sign(self, payload: str) -> str:
        return hmac.new(self.secret_key, payload.encode(), hashlib.sha256).hexdigest()

    def create_token(
        self,
        user_id: str,
        org_id: str | None = None,
        expire_minutes: int = 60,
    ) -> str:
        """Sign a token for ``user_id``.

        Raises:
            ValueError: If an ID contains ':' (the field separator).
        """
        if ":" in user_id or (org_id and ":" in org_id):
            raise ValueError("user_id and org_id must not contain ':'")
        expires_at = int(time.time()) + (expire_minutes * 60)
        payload = f"{user_id}:{org_id or ''}:{expires_at}"
        return f"{payload}:{self._sign(payload)}"

    def validate_token(self, token: str) -> AuthenticatedUser:
        """Check signature and expiry.

        Raises:
            AuthenticationError: If the token is malformed, forged or expired.
        """
        parts = token.split(":")
        if len(parts) != 4:
            raise AuthenticationError("Invalid token format")

        user_id, org_id, expires_at_str, signature = parts
        payload = f"{user_id}:{org_id}:{expires_at_str}"

        if not hmac.compare_digest(signature, self._sign(payload)):
            raise AuthenticationError("Invalid token signature")

        try:
            expires_at = int(expires_at_str)
        except ValueError as e:
            raise AuthenticationError(f"Invalid token: {e}") from e
        if time.time() > expires_at:
            raise AuthenticationError("Token has expired")
        if not user_id:
            raise AuthenticationError("Token has no user")

        return AuthenticatedUser(user_id=user_id, org_id=org_id or None)


async def get_current_user(
    request: Request,
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
) -> AuthenticatedUser:
    """Resolve the caller from the ``Authorization: Bearer`` header.

    Raises:
        AuthenticationError: If the token is missing or invalid.
    """
    if credentials is None:
        raise AuthenticationError("Missing authentication credentials")

    validator: TokenValidator = request.app.state.token_validator
    user = validator.validate_token(credentials.credentials)
    bind_context(user_id=user.user_id)

    logger.debug("User authenticated", user_id=user.user_id, org_id=user.org_id)
    return user


CurrentUser = Annotated[AuthenticatedUser, Depends(get_current_user)]
