"""Company service — tenant CRUD with member/ticket counts."""

from typing import Optional

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from helpdesk.db.models import Company, Person, Ticket
from helpdesk.errors import BadRequestError, ConflictError, NotFoundError


class CompanyService:
    """Business logic for companies (ADMIN-only surface)."""

    def __init__(self, db: AsyncSession):
        self.db = db

    # ─── Helpers ────────────────────────────────────────

    def _member_count(self):
        return (
            select(func.count(Person.id))
            .where(Person.company_id == Company.id)
            .correlate(Company)
            .scalar_subquery()
        )

    def _ticket_count(self):
        return (
            select(func.count(Ticket.id))
            .where(Ticket.company_id == Company.id)
            .correlate(Company)
            .scalar_subquery()
        )

    async def _with_counts(self, *filters) -> list[tuple[Company, int, int]]:
        result = await self.db.execute(
            select(Company, self._member_count(), self._ticket_count())
            .where(*filters)
            .order_by(Company.title)
        )
        return [tuple(row) for row in result.all()]

    async def _find_by_title(
        self, title: str, exclude_id: Optional[int] = None
    ) -> Optional[Company]:
        query = select(Company).where(func.lower(Company.title) == title.lower())
        if exclude_id is not None:
            query = query.where(Company.id != exclude_id)
        result = await self.db.execute(query)
        return result.scalars().first()

    async def _ensure_title_free(self, title: str, exclude_id: Optional[int] = None) -> None:
        if await self._find_by_title(title, exclude_id) is not None:
            raise ConflictError(
                "Company already exists", code="DUPLICATE_ENTRY", field="title"
            )

    # ─── Read ───────────────────────────────────────────

    async def list_companies(self) -> list[tuple[Company, int, int]]:
        """All companies ordered by title, as (company, members, tickets)."""
        return await self._with_counts()

    async def get_with_counts(self, company_id: int) -> tuple[Company, int, int]:
        rows = await self._with_counts(Company.id == company_id)
        if not rows:
            raise NotFoundError("Company not found", code="COMPANY_NOT_FOUND")
        return rows[0]

    async def get_detail(self, company_id: int) -> dict:
        """Company with counts, members (by name), and the latest 10 tickets."""
        company, members, tickets = await self.get_with_counts(company_id)

        member_rows = await self.db.execute(
            select(Person)
            .where(Person.company_id == company_id)
            .order_by(Person.full_name)
        )
        ticket_rows = await self.db.execute(
            select(Ticket)
            .where(Ticket.company_id == company_id)
            .order_by(Ticket.created_at.desc(), Ticket.id.desc())
            .limit(10)
        )
        return {
            "company": company,
            "counts": {"members": members, "tickets": tickets},
            "members": list(member_rows.scalars().all()),
            "tickets": list(ticket_rows.scalars().all()),
        }

    # ─── Write ──────────────────────────────────────────

    async def create(self, title: str) -> Company:
        await self._ensure_title_free(title)
        company = Company(title=title)
        self.db.add(company)
        await self.db.commit()
        return company

    async def update(self, company_id: int, title: str) -> Company:
        company = await self.db.get(Company, company_id)
        if company is None:
            raise NotFoundError("Company not found", code="COMPANY_NOT_FOUND")
        if title != company.title:
            await self._ensure_title_free(title, exclude_id=company_id)
            company.title = title
        await self.db.commit()
        return company

    async def delete(self, company_id: int) -> None:
        """Refused while the company still has members or tickets."""
        company, members, tickets = await self.get_with_counts(company_id)
        if members or tickets:
            raise BadRequestError(
                "Cannot delete company with members or tickets",
                code="COMPANY_HAS_DATA",
                data={"members": members, "tickets": tickets},
            )
        await self.db.execute(delete(Company).where(Company.id == company.id))
        await self.db.commit()

    async def stats(self) -> dict:
        total = await self.db.scalar(select(func.count()).select_from(Company))
        with_members = await self.db.scalar(
            select(func.count(func.distinct(Person.company_id)))
        )
        with_tickets = await self.db.scalar(
            select(func.count(func.distinct(Ticket.company_id)))
        )
        return {
            "total": total or 0,
            "with_members": with_members or 0,
            "with_tickets": with_tickets or 0,
        }
