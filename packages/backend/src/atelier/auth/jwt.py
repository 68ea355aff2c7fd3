"""JWT token creation and verification.

Learn: Access tokens are signed with a shared secret (HS256 by default).
This service verifies them on every stream request. create_access_token
exists for the CLI and tests; production tokens come from the CRM login.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt

from atelier.config import settings


class TokenError(Exception):
    """Raised when token creation/verification fails."""


def create_access_token(
    user_id: str,
    role: str = "MANAGER",
    email: Optional[str] = None,
    expires_minutes: Optional[int] = None,
) -> str:
    """Create a JWT access token."""
    now = datetime.now(timezone.utc)
    payload = {
        "sub": user_id,
        "role": role,
        "type": "access",
        "exp": now + timedelta(
            minutes=expires_minutes or settings.access_token_expire_minutes
        ),
        "iat": now,
    }
    if email:
        payload["email"] = email
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def verify_token(token: str) -> dict:
    """Verify and decode a JWT access token.

    Returns the payload dict on success.
    Raises TokenError on failure.
    """
    try:
        payload = jwt.decode(
            token, settings.jwt_secret, algorithms=[settings.jwt_algorithm]
        )
    except jwt.ExpiredSignatureError:
        raise TokenError("Token has expired")
    except jwt.InvalidTokenError as e:
        raise TokenError(f"Invalid token: {e}")

    if not payload.get("sub"):
        raise TokenError("Invalid token: missing subject")
    return payload
