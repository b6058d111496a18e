"""Bearer token authentication for the change-request endpoint."""

import hmac
from typing import Optional

from src.smarty.errors import AuthenticationError

BEARER_SCHEME = "bearer"


def extract_bearer_token(authorization: Optional[str]) -> Optional[str]:
    """Return the token from an ``Authorization: Bearer <token>`` header."""
    if not authorization:
        return None
    scheme, _, token = authorization.strip().partition(" ")
    if scheme.lower() != BEARER_SCHEME or not token.strip():
        return None
    return token.strip()


def verify_bearer_token(
    authorization: Optional[str], expected_token: Optional[str]
) -> None:
    """Check the request's bearer credential.

    Does nothing when ``expected_token`` is None (authentication disabled).

    Raises:
        AuthenticationError: If the credential is missing or does not match.
    """
    if expected_token is None:
        return

    token = extract_bearer_token(authorization)
    if token is None:
        raise AuthenticationError("Missing or invalid Authorization header")

    if not hmac.compare_digest(token.encode("utf-8"), expected_token.encode("utf-8")):
        raise AuthenticationError("Invalid token")
