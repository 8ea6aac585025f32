"""JWT token creation and verification.

Learn: JWT (JSON Web Token) provides stateless authentication.
- Access token: short-lived (60min), used for API calls
- Refresh token: long-lived (7 days), used to get new access tokens

This module only signs and verifies — no database. The access token
carries the person's id, email, role and company_id so guards could run
off the claims alone; the session-row check lives in auth/tokens.py.

Every token gets a random `jti`, so two tokens minted in the same second
for the same person are still distinct strings (the session table keys
on the literal token value).
"""

import secrets
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt

from helpdesk.config import Settings
from helpdesk.db.models import Person

ACCESS = "access"
REFRESH = "refresh"


class TokenError(Exception):
    """Raised when token verification fails."""


class TokenExpiredError(TokenError):
    """Signature is valid but `exp` has passed."""


class TokenInvalidError(TokenError):
    """Bad signature, malformed token, or wrong token type."""


def _encode(payload: dict, settings: Settings) -> str:
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def create_access_token(
    person: Person,
    settings: Settings,
    expires_minutes: Optional[int] = None,
) -> tuple[str, datetime]:
    """Create a JWT access token. Returns (token, expires_at)."""
    now = datetime.now(timezone.utc)
    expires = now + timedelta(
        minutes=expires_minutes or settings.access_token_expire_minutes
    )
    payload = {
        "sub": str(person.id),
        "email": person.email,
        "role": person.role.value,
        "company_id": person.company_id,
        "type": ACCESS,
        "jti": secrets.token_hex(16),
        "exp": expires,
        "iat": now,
    }
    return _encode(payload, settings), expires


def create_refresh_token(
    person: Person,
    settings: Settings,
    expires_days: Optional[int] = None,
) -> tuple[str, datetime]:
    """Create a JWT refresh token (identifier only). Returns (token, expires_at)."""
    now = datetime.now(timezone.utc)
    expires = now + timedelta(days=expires_days or settings.refresh_token_expire_days)
    payload = {
        "sub": str(person.id),
        "type": REFRESH,
        "jti": secrets.token_hex(16),
        "exp": expires,
        "iat": now,
    }
    return _encode(payload, settings), expires


def decode_token(token: str, settings: Settings, expected_type: str) -> dict:
    """Verify and decode a JWT token of the given type.

    Returns the payload dict on success.
    Raises TokenExpiredError or TokenInvalidError on failure.
    """
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
            options={"require": ["exp", "sub", "type"]},
        )
    except jwt.ExpiredSignatureError:
        raise TokenExpiredError("Token expired")
    except jwt.InvalidTokenError as e:
        raise TokenInvalidError(f"Invalid token: {e}")

    if payload.get("type") != expected_type:
        raise TokenInvalidError(f"Expected a {expected_type} token")
    if not str(payload["sub"]).isdigit():
        raise TokenInvalidError("Invalid token subject")
    return payload
