"""Pydantic schemas for companies (tenants)."""

from datetime import datetime

from pydantic import Field, field_validator

from helpdesk.db.models import Role, TicketState
from helpdesk.schemas.common import APIModel


class CompanyWrite(APIModel):
    """Create and update share one shape — the title is the only field."""
    title: str = Field(..., min_length=2, max_length=100)

    @field_validator("title")
    @classmethod
    def strip_title(cls, v: str) -> str:
        v = v.strip()
        if len(v) < 2:
            raise ValueError("Company name must be at least 2 characters")
        return v


class CompanyCounts(APIModel):
    members: int
    tickets: int


class CompanyRead(APIModel):
    id: int
    title: str
    created_at: datetime
    updated_at: datetime
    counts: CompanyCounts


class CompanyMember(APIModel):
    id: int
    full_name: str
    email: str
    role: Role
    last_seen_at: datetime | None = None
    created_at: datetime


class CompanyTicket(APIModel):
    id: int
    subject: str
    state: TicketState
    created_at: datetime


class CompanyDetail(CompanyRead):
    members: list[CompanyMember] = []
    tickets: list[CompanyTicket] = []  # latest 10


class CompanyData(APIModel):
    company: CompanyRead


class CompanyDetailData(APIModel):
    company: CompanyDetail


class CompanyList(APIModel):
    companies: list[CompanyRead]


class CompanyStats(APIModel):
    total: int
    with_members: int
    with_tickets: int


class CompanyStatsData(APIModel):
    summary: CompanyStats
