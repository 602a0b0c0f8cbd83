"""JWT token creation and verification.

Learn: JWT (JSON Web Token) provides stateless authentication.
- Access token: short-lived (15min), carries sub + email, used for API calls
- Refresh token: long-lived (7 days), carries sub + a random jti, used to
  get new access tokens. Its server-side row is what makes it revocable.
"""

import secrets
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt

from tenantkit.config import settings

ACCESS = "access"
REFRESH = "refresh"


class TokenError(Exception):
    """Raised when token creation/verification fails."""


def create_access_token(
    user_id: str,
    email: str,
    expires_minutes: Optional[int] = None,
) -> str:
    """Create a JWT access token."""
    now = datetime.now(timezone.utc)
    payload = {
        "sub": user_id,
        "email": email,
        "type": ACCESS,
        "iat": now,
        "exp": now + timedelta(
            minutes=settings.access_token_expire_minutes
            if expires_minutes is None
            else expires_minutes
        ),
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def create_refresh_token(
    user_id: str,
    expires_days: Optional[int] = None,
) -> str:
    """Create a JWT refresh token.

    The jti keeps tokens unique even when two are issued for the same
    user within the same second.
    """
    now = datetime.now(timezone.utc)
    payload = {
        "sub": user_id,
        "type": REFRESH,
        "jti": secrets.token_urlsafe(16),
        "iat": now,
        "exp": now + timedelta(
            days=settings.refresh_token_expire_days
            if expires_days is None
            else expires_days
        ),
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def verify_token(token: str, expected_type: Optional[str] = None) -> dict:
    """Verify and decode a JWT token.

    Returns the payload dict on success.
    Raises TokenError on failure, including a type mismatch when
    expected_type is given.
    """
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
            options={"require": ["sub", "exp", "type"]},
        )
    except jwt.ExpiredSignatureError:
        raise TokenError("Token has expired")
    except jwt.InvalidTokenError as e:
        raise TokenError(f"Invalid token: {e}")

    if expected_type and payload.get("type") != expected_type:
        raise TokenError(f"Expected {expected_type} token")
    return payload
