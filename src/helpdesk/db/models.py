"""SQLAlchemy ORM models — single source of truth for the database schema.

Learn: Declarative ORM mapping with SQLAlchemy 2.0 style (Mapped[] + mapped_column).
Each class = one table. Relationships, constraints, and indexes defined here.
Alembic migrations in db/migrations mirror these tables.

Key concepts:
- Integer primary keys (ticket #42 reads better than a UUID in a helpdesk)
- Portable column types only, so the same models run on Postgres and SQLite
- Python-side timestamp defaults, so values are loaded without a refresh
- Emails are stored lower-cased, which makes the unique index case-insensitive
- Company titles keep their case; a unique index on lower(title) guards them
"""

import enum
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import (
    Boolean,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    """Base class for all models."""
    pass


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Role(str, enum.Enum):
    NORMAL = "NORMAL"
    SUPPORT = "SUPPORT"
    ADMIN = "ADMIN"


class TicketState(str, enum.Enum):
    OPEN = "open"
    PENDING = "pending"
    RESOLVED = "resolved"
    CLOSED = "closed"


# ══════════════════════════════════════════════════════════════
# Tenants and people
# ══════════════════════════════════════════════════════════════


class Company(Base):
    """Tenant boundary. People and tickets belong to exactly one company.

    Learn: companies are referenced, never owned — deleting one is refused
    while it still has members or tickets (see CompanyService.delete).
    """

    __tablename__ = "companies"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(String(100), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow
    )

    # Relationships
    members: Mapped[list["Person"]] = relationship(back_populates="company")
    tickets: Mapped[list["Ticket"]] = relationship(back_populates="company")


Index("uq_companies_title_lower", func.lower(Company.title), unique=True)


class Person(Base):
    """A user account: credentials, role, and company membership."""

    __tablename__ = "persons"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    full_name: Mapped[str] = mapped_column(String(100), nullable=False)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[Role] = mapped_column(
        Enum(Role, name="person_role", native_enum=False, length=16),
        nullable=False,
        default=Role.NORMAL,
    )
    company_id: Mapped[int] = mapped_column(
        ForeignKey("companies.id"), nullable=False, index=True
    )
    last_seen_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow
    )

    # Relationships
    company: Mapped["Company"] = relationship(back_populates="members")
    tokens: Mapped[list["SessionToken"]] = relationship(
        back_populates="person", passive_deletes=True
    )
    tickets: Mapped[list["Ticket"]] = relationship(
        back_populates="person", passive_deletes=True
    )


class SessionToken(Base):
    """A persisted, revocable token artifact (append-only).

    Learn: the signed JWT alone can't be revoked before it expires. Every
    issued token also gets a row here, and the auth dependency requires a
    live row (revoked = false, expires_on > now) for the exact token string.
    Logout flips `revoked`; nothing else ever mutates a row.
    """

    __tablename__ = "session_tokens"
    __table_args__ = (
        Index("ix_session_tokens_person_revoked", "person_id", "revoked"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    value: Mapped[str] = mapped_column(String(1024), unique=True, nullable=False)
    person_id: Mapped[int] = mapped_column(
        ForeignKey("persons.id", ondelete="CASCADE"), nullable=False
    )
    expires_on: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
    revoked: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow
    )

    person: Mapped["Person"] = relationship(back_populates="tokens")


# ══════════════════════════════════════════════════════════════
# Tickets and chat
# ══════════════════════════════════════════════════════════════


class Ticket(Base):
    """A support request, owned by a person and scoped to their company."""

    __tablename__ = "tickets"
    __table_args__ = (
        Index("ix_tickets_company_state", "company_id", "state"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    subject: Mapped[str] = mapped_column(String(200), nullable=False)
    details: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    state: Mapped[TicketState] = mapped_column(
        Enum(
            TicketState,
            name="ticket_state",
            native_enum=False,
            length=16,
            values_callable=lambda states: [s.value for s in states],
        ),
        nullable=False,
        default=TicketState.OPEN,
    )
    person_id: Mapped[int] = mapped_column(
        ForeignKey("persons.id", ondelete="CASCADE"), nullable=False, index=True
    )
    company_id: Mapped[int] = mapped_column(
        ForeignKey("companies.id"), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow
    )

    # Relationships
    person: Mapped["Person"] = relationship(back_populates="tickets")
    company: Mapped["Company"] = relationship(back_populates="tickets")
    messages: Mapped[list["Message"]] = relationship(
        back_populates="ticket", passive_deletes=True
    )


class Message(Base):
    """A chat entry on a ticket."""

    __tablename__ = "messages"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    ticket_id: Mapped[int] = mapped_column(
        ForeignKey("tickets.id", ondelete="CASCADE"), nullable=False, index=True
    )
    sender_id: Mapped[int] = mapped_column(
        ForeignKey("persons.id", ondelete="CASCADE"), nullable=False
    )
    content: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow
    )

    ticket: Mapped["Ticket"] = relationship(back_populates="messages")
    sender: Mapped["Person"] = relationship()
