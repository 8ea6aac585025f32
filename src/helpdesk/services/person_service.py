"""Person service — accounts, credentials, and admin user management.

Learn: Service layer separates business logic from HTTP routing.
API routes call services, services call the database. Services raise
AppError subclasses; they never build HTTP responses.

Emails are normalized to lower case on the way in, so the unique index
on persons.email is effectively case-insensitive.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

import structlog
from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import joinedload

from helpdesk.auth.password import hash_password, verify_password
from helpdesk.db.models import Company, Message, Person, Role, SessionToken, Ticket
from helpdesk.errors import (
    AuthenticationError,
    BadRequestError,
    ConflictError,
    NotFoundError,
)

logger = structlog.get_logger()

ACTIVE_WINDOW = timedelta(days=7)


def normalize_email(email: str) -> str:
    return email.strip().lower()


class PersonService:
    """Business logic for people and credentials."""

    def __init__(self, db: AsyncSession, bcrypt_rounds: int = 12):
        self.db = db
        self.bcrypt_rounds = bcrypt_rounds

    # ─── Lookups ────────────────────────────────────────

    async def get(self, person_id: int) -> Optional[Person]:
        result = await self.db.execute(
            select(Person)
            .where(Person.id == person_id)
            .options(joinedload(Person.company))
            .execution_options(populate_existing=True)
        )
        return result.scalars().first()

    async def get_or_404(self, person_id: int) -> Person:
        person = await self.get(person_id)
        if person is None:
            raise NotFoundError("User not found", code="USER_NOT_FOUND")
        return person

    async def get_by_email(self, email: str) -> Optional[Person]:
        result = await self.db.execute(
            select(Person)
            .where(Person.email == normalize_email(email))
            .options(joinedload(Person.company))
        )
        return result.scalars().first()

    async def _ensure_email_free(self, email: str) -> None:
        if await self.get_by_email(email) is not None:
            raise ConflictError("User already exists", code="DUPLICATE_ENTRY", field="email")

    async def _ensure_company(self, company_id: int) -> Company:
        company = await self.db.get(Company, company_id)
        if company is None:
            raise NotFoundError("Company not found", code="COMPANY_NOT_FOUND")
        return company

    # ─── Credentials ────────────────────────────────────

    async def authenticate(self, email: str, password: str) -> Person:
        """Email/password check. Same error for unknown email and bad password."""
        person = await self.get_by_email(email)
        if person is None or not verify_password(password, person.password_hash):
            logger.info("auth.login_failed", email=normalize_email(email))
            raise AuthenticationError("Invalid credentials", code="INVALID_CREDENTIALS")
        person.last_seen_at = datetime.now(timezone.utc)
        return person

    async def create(
        self,
        full_name: str,
        email: str,
        password: str,
        company_id: int,
        role: Role = Role.NORMAL,
    ) -> Person:
        """Create a person. Flushes only — the caller commits.

        Checks run in order: email uniqueness (409), then company (404).
        """
        await self._ensure_email_free(email)
        await self._ensure_company(company_id)

        person = Person(
            full_name=full_name.strip(),
            email=normalize_email(email),
            password_hash=hash_password(password, rounds=self.bcrypt_rounds),
            role=role,
            company_id=company_id,
        )
        self.db.add(person)
        await self.db.flush()
        return person

    # ─── Admin management ───────────────────────────────

    async def list_people(
        self,
        role: Optional[Role] = None,
        company_id: Optional[int] = None,
        limit: int = 10,
        offset: int = 0,
    ) -> tuple[list[Person], int]:
        """List people with optional filters. Returns (page, total_count)."""
        filters = []
        if role:
            filters.append(Person.role == role)
        if company_id:
            filters.append(Person.company_id == company_id)

        total = await self.db.scalar(
            select(func.count()).select_from(Person).where(*filters)
        )
        result = await self.db.execute(
            select(Person)
            .where(*filters)
            .options(joinedload(Person.company))
            .order_by(Person.created_at.desc(), Person.id.desc())
            .limit(limit)
            .offset(offset)
        )
        return list(result.scalars().all()), total or 0

    async def update(
        self,
        person_id: int,
        full_name: Optional[str] = None,
        email: Optional[str] = None,
        role: Optional[Role] = None,
        company_id: Optional[int] = None,
    ) -> Person:
        person = await self.get_or_404(person_id)

        if email is not None and normalize_email(email) != person.email:
            await self._ensure_email_free(email)
            person.email = normalize_email(email)
        if company_id is not None and company_id != person.company_id:
            await self._ensure_company(company_id)
            person.company_id = company_id
        if full_name is not None:
            person.full_name = full_name.strip()
        if role is not None:
            person.role = role

        await self.db.commit()
        # Re-fetch so the (possibly changed) company relationship is loaded.
        self.db.expunge(person)
        return await self.get_or_404(person_id)

    async def delete(self, person_id: int, actor_id: int) -> None:
        """Delete a person and everything they own.

        Learn: cascades are spelled out as statements (messages → tickets →
        tokens → person) instead of relying on ORM cascades, which would
        need lazy loads the async session can't do implicitly.
        """
        person = await self.get_or_404(person_id)
        if person.id == actor_id:
            raise BadRequestError(
                "Cannot delete your own account", code="SELF_DELETION_NOT_ALLOWED"
            )

        owned_tickets = select(Ticket.id).where(Ticket.person_id == person.id)
        await self.db.execute(
            delete(Message).where(
                (Message.sender_id == person.id) | Message.ticket_id.in_(owned_tickets)
            )
        )
        await self.db.execute(delete(Ticket).where(Ticket.person_id == person.id))
        await self.db.execute(
            delete(SessionToken).where(SessionToken.person_id == person.id)
        )
        await self.db.execute(delete(Person).where(Person.id == person.id))
        await self.db.commit()
        logger.info("users.deleted", person_id=person_id, actor_id=actor_id)

    async def stats(self) -> dict:
        since = datetime.now(timezone.utc) - ACTIVE_WINDOW
        counts = dict(
            (
                await self.db.execute(
                    select(Person.role, func.count()).group_by(Person.role)
                )
            ).all()
        )
        active = await self.db.scalar(
            select(func.count()).select_from(Person).where(Person.last_seen_at >= since)
        )
        return {
            "total": sum(counts.values()),
            "normal": counts.get(Role.NORMAL, 0),
            "support": counts.get(Role.SUPPORT, 0),
            "admin": counts.get(Role.ADMIN, 0),
            "active": active or 0,
        }
