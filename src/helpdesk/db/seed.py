"""Demo data for local development.

Three companies, a handful of people in every role, and a spread of
tickets across states. Every row is matched on a natural key (company
title, person email, ticket subject + owner) so running it twice
doesn't duplicate anything.
"""

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from helpdesk.auth.password import hash_password
from helpdesk.db.models import Company, Person, Role, Ticket, TicketState

logger = structlog.get_logger()

DEMO_PASSWORD = "password123"

COMPANIES = ["Acme Corp", "Globex Inc", "TechStart Solutions"]

# (full_name, email, role, company title)
PEOPLE = [
    ("Admin User", "admin@acme.com", Role.ADMIN, "Acme Corp"),
    ("Globex Admin", "admin@globex.com", Role.ADMIN, "Globex Inc"),
    ("Alice Support", "support@acme.com", Role.SUPPORT, "Acme Corp"),
    ("Bob Support", "support@globex.com", Role.SUPPORT, "Globex Inc"),
    ("John Doe", "user1@acme.com", Role.NORMAL, "Acme Corp"),
    ("Jane Smith", "user2@acme.com", Role.NORMAL, "Acme Corp"),
    ("Mike Johnson", "user1@globex.com", Role.NORMAL, "Globex Inc"),
    ("Sarah Wilson", "user1@techstart.com", Role.NORMAL, "TechStart Solutions"),
]

# (subject, details, state, owner email)
TICKETS = [
    (
        "Broken printer on 3rd floor",
        "The printer in the marketing department is jammed and showing error code E-04.",
        TicketState.OPEN,
        "user1@acme.com",
    ),
    (
        "VPN connection issues",
        "Cannot connect to company VPN since this morning. Getting authentication error.",
        TicketState.OPEN,
        "user2@acme.com",
    ),
    (
        "Website down - 500 error",
        "Our main landing page is returning 500 internal server error.",
        TicketState.PENDING,
        "user1@globex.com",
    ),
    (
        "Request for new laptop",
        "Need a new laptop for the developer joining next week.",
        TicketState.OPEN,
        "user1@acme.com",
    ),
    (
        "Email spam issue",
        "Receiving excessive spam emails. Need help configuring better spam filters.",
        TicketState.RESOLVED,
        "user2@acme.com",
    ),
    (
        "Software license renewal",
        "Design suite licenses expire next month. Need to renew for 10 users.",
        TicketState.OPEN,
        "user1@globex.com",
    ),
    (
        "New office setup",
        "Setting up new office space. Need help with network configuration.",
        TicketState.PENDING,
        "user1@techstart.com",
    ),
    (
        "Password reset request",
        "Forgot my password and cannot access my account.",
        TicketState.CLOSED,
        "user1@acme.com",
    ),
]


async def seed_demo_data(db: AsyncSession, bcrypt_rounds: int = 12) -> dict[str, int]:
    """Insert whatever demo rows are missing. Returns how many were created."""
    created = {"companies": 0, "people": 0, "tickets": 0}

    companies: dict[str, Company] = {}
    for title in COMPANIES:
        company = (
            await db.execute(select(Company).where(Company.title == title))
        ).scalars().first()
        if company is None:
            company = Company(title=title)
            db.add(company)
            created["companies"] += 1
        companies[title] = company
    await db.flush()

    # One hash for everyone; bcrypt is the slow part of seeding.
    password_hash = hash_password(DEMO_PASSWORD, rounds=bcrypt_rounds)
    people: dict[str, Person] = {}
    for full_name, email, role, company_title in PEOPLE:
        person = (
            await db.execute(select(Person).where(Person.email == email))
        ).scalars().first()
        if person is None:
            person = Person(
                full_name=full_name,
                email=email,
                password_hash=password_hash,
                role=role,
                company_id=companies[company_title].id,
            )
            db.add(person)
            created["people"] += 1
        people[email] = person
    await db.flush()

    for subject, details, state, owner_email in TICKETS:
        owner = people[owner_email]
        exists = (
            await db.execute(
                select(Ticket.id).where(
                    Ticket.subject == subject, Ticket.person_id == owner.id
                )
            )
        ).first()
        if exists is None:
            db.add(
                Ticket(
                    subject=subject,
                    details=details,
                    state=state,
                    person_id=owner.id,
                    company_id=owner.company_id,
                )
            )
            created["tickets"] += 1

    await db.commit()
    logger.info("seed.completed", **created)
    return created
