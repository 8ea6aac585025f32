"""FastAPI auth dependencies.

Learn: These are used as Depends() in route handlers to extract
and validate the current identity from the request. Per request:

  UNAUTHENTICATED → TOKEN_PRESENT → IDENTITY_RESOLVED | REJECTED

1. Authorization header must be exactly "Bearer <token>"
   (missing → TOKEN_MISSING, any other shape → TOKEN_INVALID)
2. Signature + expiry + type (no I/O) → TOKEN_EXPIRED / TOKEN_INVALID
3. Person with a live session row for that literal token → TOKEN_INVALID if absent
4. Best-effort last_seen_at bump, then the Identity goes on request.state
"""

from datetime import datetime, timezone
from typing import Optional

import structlog
from fastapi import Depends, Header, Request
from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import joinedload
from sqlalchemy.orm.attributes import set_committed_value

from helpdesk.auth.jwt import TokenExpiredError, TokenInvalidError
from helpdesk.auth.tokens import TokenService
from helpdesk.config import Settings
from helpdesk.db.engine import get_db
from helpdesk.db.models import Company, Person, Role
from helpdesk.errors import AuthenticationError

logger = structlog.get_logger()


class Identity:
    """The authenticated person making the request.

    Learn: This is the unified auth context. Guards read role and
    company_id from it; handlers use `person` directly. `token` is the
    literal bearer string (logout revokes exactly that one).
    """

    def __init__(self, person: Person, token: str):
        self.person = person
        self.token = token

    @property
    def id(self) -> int:
        return self.person.id

    @property
    def role(self) -> Role:
        return self.person.role

    @property
    def company_id(self) -> int:
        return self.person.company_id

    @property
    def company(self) -> Company:
        return self.person.company

    def __repr__(self) -> str:
        return f"<Identity person={self.id} role={self.role.value} company={self.company_id}>"


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_token_service(
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> TokenService:
    return TokenService(db, settings)


def extract_bearer_token(authorization: Optional[str]) -> str:
    """Pull the token out of an `Authorization: Bearer <token>` header."""
    if not authorization or not authorization.strip():
        raise AuthenticationError("Access token required", code="TOKEN_MISSING")

    parts = authorization.split(" ")
    if len(parts) != 2 or parts[0] != "Bearer" or not parts[1]:
        raise AuthenticationError("Malformed authorization header", code="TOKEN_INVALID")
    return parts[1]


async def _touch_last_seen(db: AsyncSession, person: Person) -> None:
    """Best-effort: a failure here is logged, never surfaced to the client."""
    person_id = person.id
    now = datetime.now(timezone.utc)
    try:
        await db.execute(
            update(Person).where(Person.id == person_id).values(last_seen_at=now)
        )
        await db.commit()
        set_committed_value(person, "last_seen_at", now)
    except SQLAlchemyError as e:
        await db.rollback()
        logger.warning("auth.last_seen_update_failed", person_id=person_id, error=str(e))
        # Rollback expired the loaded person; guards still read role and company
        await db.scalar(
            select(Person)
            .where(Person.id == person_id)
            .options(joinedload(Person.company))
            .execution_options(populate_existing=True)
        )


async def get_current_identity(
    request: Request,
    authorization: Optional[str] = Header(None),
    db: AsyncSession = Depends(get_db),
    tokens: TokenService = Depends(get_token_service),
) -> Identity:
    """Resolve the bearer identity (required — 401 on any failure)."""
    token = extract_bearer_token(authorization)

    try:
        person = await tokens.resolve_access_token(token)
    except TokenExpiredError:
        logger.info("auth.token_rejected", reason="expired")
        raise AuthenticationError("Token expired", code="TOKEN_EXPIRED")
    except TokenInvalidError as e:
        logger.info("auth.token_rejected", reason=str(e))
        raise AuthenticationError("Invalid or expired token", code="TOKEN_INVALID")

    await _touch_last_seen(db, person)

    identity = Identity(person=person, token=token)
    request.state.identity = identity
    structlog.contextvars.bind_contextvars(person_id=person.id)
    return identity
