"""Auth API — registration, login, refresh, logout, profile.

Learn: Routes for the session lifecycle:
- POST /auth/register → create a NORMAL account + token pair
- POST /auth/login → email/password → token pair
- POST /auth/refresh → live refresh token → new access token
- POST /auth/logout → revoke the bearer token (and optionally a refresh token)
- GET /auth/me → current person

Every token handed out here is also written to session_tokens; see
auth/tokens.py for why.
"""

from typing import Optional

import structlog
from fastapi import APIRouter, Body, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from helpdesk.auth.dependencies import (
    Identity,
    get_current_identity,
    get_settings,
    get_token_service,
)
from helpdesk.auth.tokens import RefreshTokenInvalidError, TokenService
from helpdesk.config import Settings
from helpdesk.db.engine import get_db
from helpdesk.errors import AuthenticationError
from helpdesk.schemas.common import Envelope
from helpdesk.schemas.person import (
    AccessTokenData,
    LoginRequest,
    LogoutRequest,
    PersonRead,
    RefreshRequest,
    RegisterRequest,
    SessionData,
    UserData,
)
from helpdesk.services.person_service import PersonService

logger = structlog.get_logger()

router = APIRouter(prefix="/auth")


def _people(
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> PersonService:
    return PersonService(db, bcrypt_rounds=settings.bcrypt_rounds)


# ─── Register ────────────────────────────────────────────


@router.post("/register", response_model=Envelope[SessionData], status_code=201)
async def register(
    body: RegisterRequest,
    people: PersonService = Depends(_people),
    tokens: TokenService = Depends(get_token_service),
):
    """Create a NORMAL account in an existing company and sign it in."""
    person = await people.create(
        full_name=body.full_name,
        email=body.email,
        password=body.password,
        company_id=body.company_id,
    )
    pair = await tokens.issue_session(person)
    await people.db.commit()

    person = await people.get_or_404(person.id)
    logger.info("auth.registered", person_id=person.id, company_id=person.company_id)
    return Envelope(
        message="User registered successfully",
        data=SessionData(
            user=PersonRead.model_validate(person),
            access_token=pair.access_token,
            refresh_token=pair.refresh_token,
        ),
    )


# ─── Login ───────────────────────────────────────────────


@router.post("/login", response_model=Envelope[SessionData])
async def login(
    body: LoginRequest,
    people: PersonService = Depends(_people),
    tokens: TokenService = Depends(get_token_service),
):
    """Login with email and password → access + refresh tokens."""
    person = await people.authenticate(body.email, body.password)
    pair = await tokens.issue_session(person)
    await people.db.commit()

    logger.info("auth.login", person_id=person.id)
    return Envelope(
        message="Login successful",
        data=SessionData(
            user=PersonRead.model_validate(person),
            access_token=pair.access_token,
            refresh_token=pair.refresh_token,
        ),
    )


# ─── Refresh ────────────────────────────────────────────


@router.post("/refresh", response_model=Envelope[AccessTokenData])
async def refresh(
    body: RefreshRequest,
    tokens: TokenService = Depends(get_token_service),
):
    """Exchange a live refresh token for a new access token (no rotation)."""
    try:
        access_token = await tokens.refresh_access_token(body.refresh_token)
    except RefreshTokenInvalidError as e:
        logger.info("auth.refresh_rejected", reason=str(e))
        raise AuthenticationError(
            "Invalid or expired refresh token", code="INVALID_REFRESH_TOKEN"
        )

    return Envelope(
        message="Token refreshed successfully",
        data=AccessTokenData(access_token=access_token),
    )


# ─── Logout ─────────────────────────────────────────────


@router.post("/logout", response_model=Envelope[dict])
async def logout(
    body: Optional[LogoutRequest] = Body(None),
    identity: Identity = Depends(get_current_identity),
    tokens: TokenService = Depends(get_token_service),
):
    """Revoke the bearer token. A refreshToken in the body is revoked too."""
    revoked = await tokens.revoke(identity.id, identity.token)
    if body and body.refresh_token:
        revoked += await tokens.revoke(identity.id, body.refresh_token)

    logger.info("auth.logout", person_id=identity.id, revoked=revoked)
    return Envelope(message="Logout successful", data={"revoked": revoked})


# ─── Current user ───────────────────────────────────────


@router.get("/me", response_model=Envelope[UserData])
async def get_me(identity: Identity = Depends(get_current_identity)):
    """Get the current authenticated person's profile."""
    return Envelope(
        message="Profile retrieved successfully",
        data=UserData(user=PersonRead.model_validate(identity.person)),
    )
