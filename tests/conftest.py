"""Test fixtures — one isolated app + in-memory database per test.

Learn: Testing pattern for async SQLAlchemy + FastAPI:

1. Each test builds its own app with create_app(settings). The settings
   point at sqlite+aiosqlite:///:memory: — Database uses a StaticPool, so
   every session in that app shares the one in-memory connection.
2. Tables are created with Database.create_all() (ASGITransport doesn't
   run the lifespan, so nothing else would create them).
3. The demo seed loads three companies, people in every role and a few
   tickets, all with the password "password123".

Auth is NOT overridden anywhere. Token persistence, revocation and the
guard chain are what most of these tests are about, so every request
goes through a real login and a real bearer token.
"""

import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import select

from helpdesk.config import Settings
from helpdesk.db.models import Company, Person, Ticket
from helpdesk.db.seed import DEMO_PASSWORD, seed_demo_data
from helpdesk.main import create_app

TEST_SETTINGS = {
    "database_url": "sqlite+aiosqlite:///:memory:",
    "jwt_secret": "test-secret-key-with-at-least-32-bytes!!",
    "bcrypt_rounds": 4,
    "rate_limit_requests": 10_000,
    "rate_limit_auth_requests": 10_000,
}


def make_settings(**overrides) -> Settings:
    return Settings(**{**TEST_SETTINGS, **overrides})


def bearer(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


async def build_app(**overrides):
    application = create_app(make_settings(**overrides))
    await application.state.db.create_all()
    return application


@pytest_asyncio.fixture()
async def app():
    application = await build_app()
    yield application
    await application.state.db.dispose()


@pytest_asyncio.fixture()
async def db(app):
    """The app's Database handle. Open short sessions with `db.session()`."""
    return app.state.db


@pytest_asyncio.fixture()
async def client(app):
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest_asyncio.fixture()
async def seeded(db):
    """Load the demo data.

    Returns {"companies": {title: id}, "people": {email: id}, "tickets": {subject: id}}.
    """
    async with db.session() as session:
        await seed_demo_data(session, bcrypt_rounds=4)
        companies = (await session.execute(select(Company.title, Company.id))).all()
        people = (await session.execute(select(Person.email, Person.id))).all()
        tickets = (await session.execute(select(Ticket.subject, Ticket.id))).all()
    return {
        "companies": dict(companies),
        "people": dict(people),
        "tickets": dict(tickets),
    }


@pytest_asyncio.fixture()
async def login(client, seeded):
    """Log in as a seeded person. Returns the session payload (user + tokens)."""

    async def _login(email: str, password: str = DEMO_PASSWORD) -> dict:
        r = await client.post(
            "/api/auth/login", json={"email": email, "password": password}
        )
        assert r.status_code == 200, r.text
        return r.json()["data"]

    return _login


@pytest_asyncio.fixture()
async def headers_for(login):
    """Bearer headers for a seeded person."""

    async def _headers(email: str) -> dict:
        data = await login(email)
        return bearer(data["accessToken"])

    return _headers


@pytest_asyncio.fixture()
async def admin_headers(headers_for):
    return await headers_for("admin@acme.com")


@pytest_asyncio.fixture()
async def support_headers(headers_for):
    return await headers_for("support@acme.com")


@pytest_asyncio.fixture()
async def normal_headers(headers_for):
    return await headers_for("user1@acme.com")
