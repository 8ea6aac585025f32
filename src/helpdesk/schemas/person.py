"""Pydantic schemas for people (users) and authentication.

Learn: Separate "Create"/"Update" schemas (input) from "Read" schemas
(output). Read schemas never include password_hash.
"""

from datetime import datetime
from typing import Optional

from pydantic import EmailStr, Field

from helpdesk.db.models import Role
from helpdesk.schemas.common import APIModel, CompanyBrief, Pagination


# ─── Auth ───────────────────────────────────────────────

class LoginRequest(APIModel):
    email: EmailStr
    password: str = Field(..., min_length=6)


class RegisterRequest(APIModel):
    full_name: str = Field(..., min_length=2, max_length=100)
    email: EmailStr
    password: str = Field(..., min_length=6, max_length=128)
    company_id: int = Field(..., gt=0)


class RefreshRequest(APIModel):
    refresh_token: str = Field(..., min_length=1)


class LogoutRequest(APIModel):
    """Optional body — also revoke this refresh token on logout."""
    refresh_token: Optional[str] = None


# ─── People ─────────────────────────────────────────────

class PersonRead(APIModel):
    id: int
    full_name: str
    email: str
    role: Role
    company_id: int
    company: CompanyBrief
    last_seen_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime


class PersonCreate(APIModel):
    full_name: str = Field(..., min_length=2, max_length=100)
    email: EmailStr
    password: str = Field(..., min_length=6, max_length=128)
    role: Role = Role.NORMAL
    company_id: int = Field(..., gt=0)


class PersonUpdate(APIModel):
    """Partial update — only fields present in the request are applied."""
    full_name: Optional[str] = Field(None, min_length=2, max_length=100)
    email: Optional[EmailStr] = None
    role: Optional[Role] = None
    company_id: Optional[int] = Field(None, gt=0)


# ─── Response payloads (inside the envelope's `data`) ──

class SessionData(APIModel):
    user: PersonRead
    access_token: str
    refresh_token: str


class AccessTokenData(APIModel):
    access_token: str


class UserData(APIModel):
    user: PersonRead


class UserList(APIModel):
    users: list[PersonRead]
    pagination: Pagination


class UserStats(APIModel):
    total: int
    normal: int
    support: int
    admin: int
    active: int


class UserStatsData(APIModel):
    summary: UserStats
