"""Ticket service — tickets and their chat messages.

Learn: access decisions are NOT made here. By the time a service method
runs, the route's guards have already authenticated the caller, checked
the role policy, and (for /tickets/{id}) loaded the ticket under tenant
scoping. The service only receives the resulting scope:

- list_tickets(scope=...) takes the role-based WHERE clause from
  guards.visible_tickets_clause()
- create_ticket() takes company_id from the identity, never the body
"""

from typing import Optional

from sqlalchemy import delete, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import joinedload

from helpdesk.db.models import Message, Person, Ticket, TicketState
from helpdesk.errors import BadRequestError, NotFoundError


class TicketService:
    """Business logic for ticket CRUD, listing, and stats."""

    def __init__(self, db: AsyncSession):
        self.db = db

    # ─── Create ──────────────────────────────────────────

    async def create_ticket(
        self,
        owner: Person,
        subject: str,
        details: Optional[str] = None,
        state: TicketState = TicketState.OPEN,
    ) -> Ticket:
        """Create a ticket owned by `owner`, scoped to the owner's company."""
        ticket = Ticket(
            subject=subject,
            details=details,
            state=state,
            person_id=owner.id,
            company_id=owner.company_id,
        )
        self.db.add(ticket)
        await self.db.commit()
        return await self.get_ticket_or_404(ticket.id)

    # ─── Read ────────────────────────────────────────────

    async def get_ticket(self, ticket_id: int) -> Optional[Ticket]:
        result = await self.db.execute(
            select(Ticket)
            .where(Ticket.id == ticket_id)
            .options(joinedload(Ticket.person), joinedload(Ticket.company))
            .execution_options(populate_existing=True)
        )
        return result.scalars().first()

    async def get_ticket_or_404(self, ticket_id: int) -> Ticket:
        ticket = await self.get_ticket(ticket_id)
        if ticket is None:
            raise NotFoundError("Ticket not found", code="TICKET_NOT_FOUND")
        return ticket

    async def list_tickets(
        self,
        scope=None,
        state: Optional[TicketState] = None,
        search: Optional[str] = None,
        limit: int = 10,
        offset: int = 0,
    ) -> tuple[list[Ticket], int]:
        """List tickets with optional filters. Returns (page, total_count).

        Learn: Query filters are applied conditionally — only when the
        caller provides them. `scope` is the role-based visibility clause.
        """
        filters = []
        if scope is not None:
            filters.append(scope)
        if state:
            filters.append(Ticket.state == state)
        if search:
            term = search.strip()
            filters.append(
                or_(
                    Ticket.subject.icontains(term, autoescape=True),
                    Ticket.details.icontains(term, autoescape=True),
                )
            )

        total = await self.db.scalar(
            select(func.count()).select_from(Ticket).where(*filters)
        )
        result = await self.db.execute(
            select(Ticket)
            .where(*filters)
            .options(joinedload(Ticket.person), joinedload(Ticket.company))
            .order_by(Ticket.created_at.desc(), Ticket.id.desc())
            .limit(limit)
            .offset(offset)
        )
        return list(result.scalars().all()), total or 0

    async def stats(self, scope=None) -> dict:
        query = select(Ticket.state, func.count()).group_by(Ticket.state)
        if scope is not None:
            query = query.where(scope)
        counts = dict((await self.db.execute(query)).all())
        summary = {state.value: counts.get(state, 0) for state in TicketState}
        summary["total"] = sum(counts.values())
        return summary

    # ─── Update ──────────────────────────────────────────

    async def update_ticket(self, ticket: Ticket, changes: dict) -> Ticket:
        """Apply a partial update.

        subject/state are only changed when given a value; details may be
        explicitly cleared with null.
        """
        if changes.get("subject") is not None:
            ticket.subject = changes["subject"]
        if changes.get("state") is not None:
            ticket.state = changes["state"]
        if "details" in changes:
            ticket.details = changes["details"]

        await self.db.commit()
        return await self.get_ticket_or_404(ticket.id)

    # ─── Delete ──────────────────────────────────────────

    async def delete_ticket(self, ticket: Ticket) -> None:
        await self.db.execute(delete(Message).where(Message.ticket_id == ticket.id))
        await self.db.execute(delete(Ticket).where(Ticket.id == ticket.id))
        await self.db.commit()


class MessageService:
    """Business logic for the per-ticket chat."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def list_messages(self, ticket_id: int) -> list[Message]:
        """Oldest first — the order a chat transcript reads."""
        result = await self.db.execute(
            select(Message)
            .where(Message.ticket_id == ticket_id)
            .options(joinedload(Message.sender))
            .order_by(Message.created_at, Message.id)
        )
        return list(result.scalars().all())

    async def send_message(self, ticket: Ticket, sender: Person, content: str) -> Message:
        """Append a message. Closed tickets don't accept new messages."""
        if ticket.state == TicketState.CLOSED:
            raise BadRequestError(
                "Cannot add messages to a closed ticket", code="TICKET_CLOSED"
            )

        msg = Message(ticket_id=ticket.id, sender_id=sender.id, content=content)
        self.db.add(msg)
        await self.db.commit()

        result = await self.db.execute(
            select(Message)
            .where(Message.id == msg.id)
            .options(joinedload(Message.sender))
        )
        return result.scalars().one()
