"""Ticket and Message API routes.

Learn: guard order is part of the contract, so each handler spells its
dependencies out in the order they must run:

  get_current_identity → ticket_id_path → require_permission → require_same_organization

FastAPI resolves parameters left to right and caches each dependency per
request, so the identity and the loaded ticket are resolved once and
shared by every guard that needs them.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from helpdesk.auth.dependencies import Identity, get_current_identity
from helpdesk.auth.guards import (
    ensure_can_update_ticket,
    require_permission,
    require_same_organization,
    ticket_id_path,
    visible_tickets_clause,
)
from helpdesk.db.engine import get_db
from helpdesk.db.models import Ticket, TicketState
from helpdesk.schemas.common import Envelope, PageParams, Pagination
from helpdesk.schemas.ticket import (
    MessageCreate,
    MessageData,
    MessageList,
    MessageRead,
    TicketCreate,
    TicketData,
    TicketList,
    TicketRead,
    TicketStats,
    TicketStatsData,
    TicketUpdate,
)
from helpdesk.services.ticket_service import MessageService, TicketService

router = APIRouter(prefix="/tickets")


def _ticket_svc(db: AsyncSession = Depends(get_db)) -> TicketService:
    return TicketService(db)


def _msg_svc(db: AsyncSession = Depends(get_db)) -> MessageService:
    return MessageService(db)


def page_params(
    page: int = Query(1, ge=1, description="1-based page number"),
    limit: int = Query(10, ge=1, le=100, description="Page size"),
) -> PageParams:
    return PageParams(page=page, limit=limit)


# ═══════════════════════════════════════════════════════════
# Tickets
# ═══════════════════════════════════════════════════════════


@router.get("", response_model=Envelope[TicketList])
async def list_tickets(
    identity: Identity = Depends(require_permission("tickets:list")),
    paging: PageParams = Depends(page_params),
    status: Optional[TicketState] = Query(None, description="Filter by state"),
    search: Optional[str] = Query(None, max_length=200),
    svc: TicketService = Depends(_ticket_svc),
):
    """List tickets visible to the caller.

    ADMIN sees everything, SUPPORT sees its company, NORMAL sees its own.
    """
    tickets, total = await svc.list_tickets(
        scope=visible_tickets_clause(identity),
        state=status,
        search=search,
        limit=paging.limit,
        offset=paging.offset,
    )
    return Envelope(
        message="Tickets retrieved successfully",
        data=TicketList(
            tickets=[TicketRead.model_validate(t) for t in tickets],
            pagination=Pagination.build(paging.page, paging.limit, total),
        ),
    )


@router.post("", response_model=Envelope[TicketData], status_code=201)
async def create_ticket(
    body: TicketCreate,
    identity: Identity = Depends(require_permission("tickets:create")),
    svc: TicketService = Depends(_ticket_svc),
):
    """Open a ticket in the caller's own company."""
    ticket = await svc.create_ticket(
        owner=identity.person,
        subject=body.subject,
        details=body.details,
        state=body.state,
    )
    return Envelope(
        message="Ticket created successfully",
        data=TicketData(ticket=TicketRead.model_validate(ticket)),
    )


@router.get("/stats/summary", response_model=Envelope[TicketStatsData])
async def ticket_stats(
    identity: Identity = Depends(require_permission("tickets:stats")),
    svc: TicketService = Depends(_ticket_svc),
):
    """Counts per state. SUPPORT is scoped to its company, ADMIN sees all."""
    summary = await svc.stats(scope=visible_tickets_clause(identity))
    return Envelope(
        message="Ticket statistics retrieved successfully",
        data=TicketStatsData(summary=TicketStats(**summary)),
    )


@router.get("/{ticket_id}", response_model=Envelope[TicketData])
async def get_ticket(
    identity: Identity = Depends(get_current_identity),
    ticket_id: int = Depends(ticket_id_path),
    _: Identity = Depends(require_permission("tickets:read")),
    ticket: Ticket = Depends(require_same_organization),
):
    return Envelope(
        message="Ticket retrieved successfully",
        data=TicketData(ticket=TicketRead.model_validate(ticket)),
    )


@router.patch("/{ticket_id}", response_model=Envelope[TicketData])
async def update_ticket(
    body: TicketUpdate,
    identity: Identity = Depends(get_current_identity),
    ticket_id: int = Depends(ticket_id_path),
    _: Identity = Depends(require_permission("tickets:update")),
    ticket: Ticket = Depends(require_same_organization),
    svc: TicketService = Depends(_ticket_svc),
):
    """Partially update a ticket.

    Learn: ownership can't be expressed as a static role check — it needs
    the loaded ticket — so it runs here, after the organization guard.
    """
    ensure_can_update_ticket(identity, ticket)
    updated = await svc.update_ticket(ticket, body.model_dump(exclude_unset=True))
    return Envelope(
        message="Ticket updated successfully",
        data=TicketData(ticket=TicketRead.model_validate(updated)),
    )


@router.delete("/{ticket_id}", response_model=Envelope[dict])
async def delete_ticket(
    identity: Identity = Depends(get_current_identity),
    ticket_id: int = Depends(ticket_id_path),
    _: Identity = Depends(require_permission("tickets:delete")),
    ticket: Ticket = Depends(require_same_organization),
    svc: TicketService = Depends(_ticket_svc),
):
    """Delete a ticket and its messages (ADMIN only)."""
    await svc.delete_ticket(ticket)
    return Envelope(message="Ticket deleted successfully", data={"id": ticket_id})


# ═══════════════════════════════════════════════════════════
# Messages
# ═══════════════════════════════════════════════════════════


@router.get("/{ticket_id}/messages", response_model=Envelope[MessageList])
async def list_messages(
    identity: Identity = Depends(get_current_identity),
    ticket_id: int = Depends(ticket_id_path),
    _: Identity = Depends(require_permission("messages:list")),
    ticket: Ticket = Depends(require_same_organization),
    svc: MessageService = Depends(_msg_svc),
):
    """The ticket's chat transcript, oldest first."""
    messages = await svc.list_messages(ticket.id)
    return Envelope(
        message="Messages retrieved successfully",
        data=MessageList(messages=[MessageRead.model_validate(m) for m in messages]),
    )


@router.post("/{ticket_id}/messages", response_model=Envelope[MessageData], status_code=201)
async def send_message(
    body: MessageCreate,
    identity: Identity = Depends(get_current_identity),
    ticket_id: int = Depends(ticket_id_path),
    _: Identity = Depends(require_permission("messages:create")),
    ticket: Ticket = Depends(require_same_organization),
    svc: MessageService = Depends(_msg_svc),
):
    """Post to the ticket chat. Same participants as ticket updates."""
    ensure_can_update_ticket(identity, ticket)
    msg = await svc.send_message(ticket, identity.person, body.content)
    return Envelope(
        message="Message sent successfully",
        data=MessageData(message=MessageRead.model_validate(msg)),
    )
