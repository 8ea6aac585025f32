"""Pydantic schemas for tickets and ticket messages.

Learn: Separate schemas for create/update/read keeps the API clean.
- TicketCreate: what you POST (company and owner come from the identity)
- TicketUpdate: what you PATCH (all optional, only set fields applied)
- TicketRead: what the API returns, with owner and company embedded
"""

from datetime import datetime
from typing import Optional

from pydantic import Field, field_validator

from helpdesk.db.models import Role, TicketState
from helpdesk.schemas.common import APIModel, CompanyBrief, Pagination, PersonBrief


# ─── Tickets ────────────────────────────────────────────

class TicketCreate(APIModel):
    subject: str = Field(..., min_length=3, max_length=200)
    details: Optional[str] = None
    state: TicketState = TicketState.OPEN


class TicketUpdate(APIModel):
    """Partial update — only fields present in the request are applied."""
    subject: Optional[str] = Field(None, min_length=3, max_length=200)
    details: Optional[str] = None
    state: Optional[TicketState] = None


class TicketRead(APIModel):
    id: int
    subject: str
    details: Optional[str]
    state: TicketState
    person_id: int
    company_id: int
    person: PersonBrief
    company: CompanyBrief
    created_at: datetime
    updated_at: datetime


class TicketData(APIModel):
    ticket: TicketRead


class TicketList(APIModel):
    tickets: list[TicketRead]
    pagination: Pagination


class TicketStats(APIModel):
    total: int
    open: int
    pending: int
    resolved: int
    closed: int


class TicketStatsData(APIModel):
    summary: TicketStats


# ─── Messages ───────────────────────────────────────────

class MessageCreate(APIModel):
    content: str = Field(..., min_length=1, max_length=5000)

    @field_validator("content")
    @classmethod
    def not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Message content cannot be empty")
        return v


class MessageSender(APIModel):
    id: int
    full_name: str
    role: Role


class MessageRead(APIModel):
    id: int
    ticket_id: int
    sender_id: int
    sender: MessageSender
    content: str
    created_at: datetime


class MessageData(APIModel):
    message: MessageRead


class MessageList(APIModel):
    messages: list[MessageRead]
