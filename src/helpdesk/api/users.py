"""User management API (ADMIN only)."""

from typing import Optional

import structlog
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from helpdesk.auth.dependencies import Identity, get_current_identity, get_settings
from helpdesk.auth.guards import require_permission, user_id_path
from helpdesk.config import Settings
from helpdesk.db.engine import get_db
from helpdesk.db.models import Role
from helpdesk.schemas.common import Envelope, PageParams, Pagination
from helpdesk.schemas.person import (
    PersonCreate,
    PersonRead,
    PersonUpdate,
    UserData,
    UserList,
    UserStats,
    UserStatsData,
)
from helpdesk.services.person_service import PersonService

logger = structlog.get_logger()

router = APIRouter(prefix="/users")


def _svc(
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> PersonService:
    return PersonService(db, bcrypt_rounds=settings.bcrypt_rounds)


@router.get("", response_model=Envelope[UserList])
async def list_users(
    _: Identity = Depends(require_permission("users:list")),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    role: Optional[Role] = Query(None),
    company_id: Optional[int] = Query(None, alias="companyId", gt=0),
    svc: PersonService = Depends(_svc),
):
    paging = PageParams(page=page, limit=limit)
    people, total = await svc.list_people(
        role=role, company_id=company_id, limit=paging.limit, offset=paging.offset
    )
    return Envelope(
        message="Users retrieved successfully",
        data=UserList(
            users=[PersonRead.model_validate(p) for p in people],
            pagination=Pagination.build(paging.page, paging.limit, total),
        ),
    )


@router.get("/stats/summary", response_model=Envelope[UserStatsData])
async def user_stats(
    _: Identity = Depends(require_permission("users:stats")),
    svc: PersonService = Depends(_svc),
):
    """Role counts plus people seen in the last 7 days."""
    summary = await svc.stats()
    return Envelope(
        message="User statistics retrieved successfully",
        data=UserStatsData(summary=UserStats(**summary)),
    )


@router.get("/{user_id}", response_model=Envelope[UserData])
async def get_user(
    identity: Identity = Depends(get_current_identity),
    user_id: int = Depends(user_id_path),
    _: Identity = Depends(require_permission("users:read")),
    svc: PersonService = Depends(_svc),
):
    person = await svc.get_or_404(user_id)
    return Envelope(
        message="User retrieved successfully",
        data=UserData(user=PersonRead.model_validate(person)),
    )


@router.post("", response_model=Envelope[UserData], status_code=201)
async def create_user(
    body: PersonCreate,
    identity: Identity = Depends(require_permission("users:create")),
    svc: PersonService = Depends(_svc),
):
    """Create a person with any role in any existing company."""
    person = await svc.create(
        full_name=body.full_name,
        email=body.email,
        password=body.password,
        company_id=body.company_id,
        role=body.role,
    )
    await svc.db.commit()
    person = await svc.get_or_404(person.id)

    logger.info("users.created", person_id=person.id, role=person.role.value, actor_id=identity.id)
    return Envelope(
        message="User created successfully",
        data=UserData(user=PersonRead.model_validate(person)),
    )


@router.patch("/{user_id}", response_model=Envelope[UserData])
async def update_user(
    body: PersonUpdate,
    identity: Identity = Depends(get_current_identity),
    user_id: int = Depends(user_id_path),
    _: Identity = Depends(require_permission("users:update")),
    svc: PersonService = Depends(_svc),
):
    person = await svc.update(user_id, **body.model_dump(exclude_unset=True))
    logger.info("users.updated", person_id=user_id, actor_id=identity.id)
    return Envelope(
        message="User updated successfully",
        data=UserData(user=PersonRead.model_validate(person)),
    )


@router.delete("/{user_id}", response_model=Envelope[dict])
async def delete_user(
    identity: Identity = Depends(get_current_identity),
    user_id: int = Depends(user_id_path),
    _: Identity = Depends(require_permission("users:delete")),
    svc: PersonService = Depends(_svc),
):
    """Delete a person with their tickets, messages and tokens.

    An admin can't delete their own account.
    """
    await svc.delete(user_id, actor_id=identity.id)
    return Envelope(message="User deleted successfully", data={"id": user_id})
