"""Token service — issue, resolve, refresh, and revoke session tokens.

Learn: pure stateless JWTs can't be revoked early; pure DB sessions lose
cheap verification. We keep both, always in this order:

1. Signature + expiry (auth/jwt.py) — no I/O, rejects garbage fast
2. Session row lookup — the authoritative revocation check

Every issued token (access and refresh) is written to session_tokens.
A token is live iff its row exists, revoked is false, and expires_on
is in the future. Logout flips `revoked`; the JWT's own `exp` no longer
matters after that.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

import structlog
from sqlalchemy import delete, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import joinedload

from helpdesk.auth.jwt import (
    ACCESS,
    REFRESH,
    TokenError,
    TokenInvalidError,
    create_access_token,
    create_refresh_token,
    decode_token,
)
from helpdesk.config import Settings
from helpdesk.db.models import Person, SessionToken

logger = structlog.get_logger()


class RefreshTokenInvalidError(TokenError):
    """Refresh token failed signature, type, or session-row checks."""


@dataclass
class TokenPair:
    access_token: str
    refresh_token: str


def _live(token: str, now: datetime):
    """WHERE clause for a live session row holding exactly `token`."""
    return (
        SessionToken.value == token,
        SessionToken.revoked.is_(False),
        SessionToken.expires_on > now,
    )


class TokenService:
    """Store-aware token lifecycle. One instance per request/session."""

    def __init__(self, db: AsyncSession, settings: Settings):
        self.db = db
        self.settings = settings

    # ─── Issue ───────────────────────────────────────────

    async def _persist(self, person: Person, token: str, expires: datetime) -> None:
        self.db.add(
            SessionToken(value=token, person_id=person.id, expires_on=expires)
        )
        await self.db.flush()

    async def issue_access_token(self, person: Person) -> str:
        token, expires = create_access_token(person, self.settings)
        await self._persist(person, token, expires)
        return token

    async def issue_refresh_token(self, person: Person) -> str:
        token, expires = create_refresh_token(person, self.settings)
        await self._persist(person, token, expires)
        return token

    async def issue_session(self, person: Person) -> TokenPair:
        """Issue an access + refresh pair (login, registration).

        Flushes only — the caller commits together with its own changes.
        """
        return TokenPair(
            access_token=await self.issue_access_token(person),
            refresh_token=await self.issue_refresh_token(person),
        )

    # ─── Validate ────────────────────────────────────────

    def validate_access_token(self, token: str) -> dict:
        """Signature, expiry, and type check. Raises TokenExpiredError/TokenInvalidError."""
        return decode_token(token, self.settings, expected_type=ACCESS)

    async def resolve_access_token(self, token: str) -> Person:
        """Resolve the person behind a bearer token.

        Raises TokenExpiredError/TokenInvalidError from the signature check,
        or TokenInvalidError when no live session row matches.
        """
        claims = self.validate_access_token(token)
        now = datetime.now(timezone.utc)

        result = await self.db.execute(
            select(Person)
            .join(SessionToken, SessionToken.person_id == Person.id)
            .where(Person.id == int(claims["sub"]), *_live(token, now))
            .options(joinedload(Person.company))
        )
        person = result.scalars().first()
        if person is None:
            raise TokenInvalidError("Invalid or expired token")
        return person

    # ─── Refresh ─────────────────────────────────────────

    async def refresh_access_token(self, refresh_token: str) -> str:
        """Mint a new access token from a live refresh token.

        The refresh token itself is not rotated — its row and expiry stay
        exactly as they were.
        """
        try:
            decode_token(refresh_token, self.settings, expected_type=REFRESH)
        except TokenError as e:
            raise RefreshTokenInvalidError(str(e))

        now = datetime.now(timezone.utc)
        result = await self.db.execute(
            select(Person)
            .join(SessionToken, SessionToken.person_id == Person.id)
            .where(*_live(refresh_token, now))
        )
        person = result.scalars().first()
        if person is None:
            raise RefreshTokenInvalidError("Invalid or expired refresh token")

        access_token = await self.issue_access_token(person)
        await self.db.commit()
        return access_token

    # ─── Revoke ──────────────────────────────────────────

    async def revoke(self, person_id: int, token: str) -> int:
        """Mark the person's rows for this token revoked. Returns rows changed."""
        result = await self.db.execute(
            update(SessionToken)
            .where(
                SessionToken.person_id == person_id,
                SessionToken.value == token,
                SessionToken.revoked.is_(False),
            )
            .values(revoked=True)
        )
        await self.db.commit()
        return result.rowcount or 0

    async def purge_expired(self, before: Optional[datetime] = None) -> int:
        """Delete expired or revoked rows. Maintenance only (CLI purge-tokens)."""
        cutoff = before or datetime.now(timezone.utc)
        result = await self.db.execute(
            delete(SessionToken).where(
                or_(SessionToken.expires_on <= cutoff, SessionToken.revoked.is_(True))
            )
        )
        await self.db.commit()
        logger.info("auth.tokens_purged", count=result.rowcount)
        return result.rowcount or 0
