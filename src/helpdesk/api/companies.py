"""Company (tenant) management API (ADMIN only)."""

import structlog
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from helpdesk.auth.dependencies import Identity, get_current_identity
from helpdesk.auth.guards import company_id_path, require_permission
from helpdesk.db.engine import get_db
from helpdesk.schemas.common import Envelope
from helpdesk.schemas.company import (
    CompanyCounts,
    CompanyData,
    CompanyDetail,
    CompanyDetailData,
    CompanyList,
    CompanyMember,
    CompanyRead,
    CompanyStats,
    CompanyStatsData,
    CompanyTicket,
    CompanyWrite,
)
from helpdesk.services.company_service import CompanyService

logger = structlog.get_logger()

router = APIRouter(prefix="/companies")


def _svc(db: AsyncSession = Depends(get_db)) -> CompanyService:
    return CompanyService(db)


def _read(company, members: int, tickets: int) -> CompanyRead:
    return CompanyRead(
        id=company.id,
        title=company.title,
        created_at=company.created_at,
        updated_at=company.updated_at,
        counts=CompanyCounts(members=members, tickets=tickets),
    )


@router.get("", response_model=Envelope[CompanyList])
async def list_companies(
    _: Identity = Depends(require_permission("companies:list")),
    svc: CompanyService = Depends(_svc),
):
    rows = await svc.list_companies()
    return Envelope(
        message="Companies retrieved successfully",
        data=CompanyList(companies=[_read(*row) for row in rows]),
    )


@router.get("/stats/summary", response_model=Envelope[CompanyStatsData])
async def company_stats(
    _: Identity = Depends(require_permission("companies:stats")),
    svc: CompanyService = Depends(_svc),
):
    summary = await svc.stats()
    return Envelope(
        message="Company statistics retrieved successfully",
        data=CompanyStatsData(summary=CompanyStats(**summary)),
    )


@router.get("/{company_id}", response_model=Envelope[CompanyDetailData])
async def get_company(
    identity: Identity = Depends(get_current_identity),
    company_id: int = Depends(company_id_path),
    _: Identity = Depends(require_permission("companies:read")),
    svc: CompanyService = Depends(_svc),
):
    """Company with its members and latest tickets."""
    detail = await svc.get_detail(company_id)
    base = _read(detail["company"], **detail["counts"])
    return Envelope(
        message="Company retrieved successfully",
        data=CompanyDetailData(
            company=CompanyDetail(
                **base.model_dump(),
                members=[CompanyMember.model_validate(m) for m in detail["members"]],
                tickets=[CompanyTicket.model_validate(t) for t in detail["tickets"]],
            )
        ),
    )


@router.post("", response_model=Envelope[CompanyData], status_code=201)
async def create_company(
    body: CompanyWrite,
    identity: Identity = Depends(require_permission("companies:create")),
    svc: CompanyService = Depends(_svc),
):
    company = await svc.create(body.title)
    logger.info("companies.created", company_id=company.id, actor_id=identity.id)
    return Envelope(
        message="Company created successfully",
        data=CompanyData(company=_read(company, 0, 0)),
    )


@router.patch("/{company_id}", response_model=Envelope[CompanyData])
async def update_company(
    body: CompanyWrite,
    identity: Identity = Depends(get_current_identity),
    company_id: int = Depends(company_id_path),
    _: Identity = Depends(require_permission("companies:update")),
    svc: CompanyService = Depends(_svc),
):
    await svc.update(company_id, body.title)
    company, members, tickets = await svc.get_with_counts(company_id)
    return Envelope(
        message="Company updated successfully",
        data=CompanyData(company=_read(company, members, tickets)),
    )


@router.delete("/{company_id}", response_model=Envelope[dict])
async def delete_company(
    identity: Identity = Depends(get_current_identity),
    company_id: int = Depends(company_id_path),
    _: Identity = Depends(require_permission("companies:delete")),
    svc: CompanyService = Depends(_svc),
):
    """Refused with COMPANY_HAS_DATA while members or tickets remain."""
    await svc.delete(company_id)
    logger.info("companies.deleted", company_id=company_id, actor_id=identity.id)
    return Envelope(message="Company deleted successfully", data={"id": company_id})
