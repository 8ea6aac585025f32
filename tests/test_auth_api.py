"""Auth API tests — registration, login, bearer parsing, refresh, logout.

Learn: Tests cover:
1. Registration + duplicate prevention (no row written on conflict)
2. Login → access/refresh pair whose claims match the person
3. Every rejection path of the bearer pipeline and its error code
4. Refresh without rotation
5. Logout revocation (only the presented tokens)
"""

from datetime import datetime, timedelta, timezone

import jwt
import pytest
from sqlalchemy import func, select, update
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql.dml import Update

from conftest import TEST_SETTINGS, bearer
from helpdesk.db.models import Person, Role, SessionToken


def _decode(token: str) -> dict:
    return jwt.decode(token, TEST_SETTINGS["jwt_secret"], algorithms=["HS256"])


async def _count_tokens(db, person_id: int) -> int:
    async with db.session() as s:
        return await s.scalar(
            select(func.count()).select_from(SessionToken)
            .where(SessionToken.person_id == person_id)
        )


# ═══════════════════════════════════════════════════════════
# Registration
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_register_creates_normal_user_with_session(client, seeded):
    """Registration always yields a NORMAL account and a usable token pair."""
    r = await client.post(
        "/api/auth/register",
        json={
            "fullName": "New Person",
            "email": "New.Person@Acme.com",
            "password": "secret123",
            "companyId": seeded["companies"]["Acme Corp"],
        },
    )
    assert r.status_code == 201, r.text
    data = r.json()["data"]
    assert data["user"]["email"] == "new.person@acme.com"
    assert data["user"]["role"] == "NORMAL"
    assert data["user"]["company"]["title"] == "Acme Corp"
    assert "passwordHash" not in data["user"]

    me = await client.get("/api/auth/me", headers=bearer(data["accessToken"]))
    assert me.status_code == 200
    assert me.json()["data"]["user"]["id"] == data["user"]["id"]


@pytest.mark.asyncio
async def test_register_duplicate_email_writes_nothing(client, db, seeded):
    """Duplicate email → 409, and the person count stays at one."""
    r = await client.post(
        "/api/auth/register",
        json={
            "fullName": "Imposter",
            "email": "USER1@acme.com",
            "password": "secret123",
            "companyId": seeded["companies"]["Acme Corp"],
        },
    )
    assert r.status_code == 409
    assert r.json()["code"] == "DUPLICATE_ENTRY"

    async with db.session() as s:
        count = await s.scalar(
            select(func.count()).select_from(Person).where(Person.email == "user1@acme.com")
        )
    assert count == 1


@pytest.mark.asyncio
async def test_register_unknown_company(client, seeded):
    r = await client.post(
        "/api/auth/register",
        json={
            "fullName": "Lost Person",
            "email": "lost@nowhere.com",
            "password": "secret123",
            "companyId": 9999,
        },
    )
    assert r.status_code == 404
    assert r.json()["code"] == "COMPANY_NOT_FOUND"


@pytest.mark.asyncio
async def test_register_short_password(client, seeded):
    """Body validation errors are 400 with per-field details."""
    r = await client.post(
        "/api/auth/register",
        json={
            "fullName": "Short",
            "email": "short@acme.com",
            "password": "abc",
            "companyId": seeded["companies"]["Acme Corp"],
        },
    )
    assert r.status_code == 400
    body = r.json()
    assert body["code"] == "VALIDATION_ERROR"
    assert any(d["field"] == "body.password" for d in body["details"])


# ═══════════════════════════════════════════════════════════
# Login
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_login_claims_match_person(login, db, seeded):
    """The access token encodes the person's id, role and company."""
    data = await login("support@acme.com")
    claims = _decode(data["accessToken"])

    assert claims["sub"] == str(seeded["people"]["support@acme.com"])
    assert claims["role"] == Role.SUPPORT.value
    assert claims["company_id"] == seeded["companies"]["Acme Corp"]
    assert claims["type"] == "access"
    assert _decode(data["refreshToken"])["type"] == "refresh"

    # Both tokens are persisted
    assert await _count_tokens(db, seeded["people"]["support@acme.com"]) == 2


@pytest.mark.asyncio
async def test_login_sets_last_seen(login, db, seeded):
    await login("user2@acme.com")
    async with db.session() as s:
        person = await s.get(Person, seeded["people"]["user2@acme.com"])
    assert person.last_seen_at is not None


@pytest.mark.asyncio
async def test_login_wrong_password(client, seeded):
    r = await client.post(
        "/api/auth/login",
        json={"email": "user1@acme.com", "password": "wrong-password"},
    )
    assert r.status_code == 401
    assert r.json()["code"] == "INVALID_CREDENTIALS"
    assert r.headers["WWW-Authenticate"] == "Bearer"


@pytest.mark.asyncio
async def test_login_unknown_email_same_error(client, seeded):
    """Unknown email and bad password are indistinguishable."""
    r = await client.post(
        "/api/auth/login",
        json={"email": "nobody@acme.com", "password": "password123"},
    )
    assert r.status_code == 401
    assert r.json()["code"] == "INVALID_CREDENTIALS"


# ═══════════════════════════════════════════════════════════
# Bearer pipeline
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_me_without_header(client):
    r = await client.get("/api/auth/me")
    assert r.status_code == 401
    assert r.json()["code"] == "TOKEN_MISSING"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "header",
    ["Token abc", "Bearer", "bearer abc", "Bearer abc def", "Bearer not-a-jwt"],
)
async def test_me_malformed_header(client, header):
    r = await client.get("/api/auth/me", headers={"Authorization": header})
    assert r.status_code == 401
    assert r.json()["code"] == "TOKEN_INVALID"


@pytest.mark.asyncio
async def test_expired_access_token(client, seeded):
    """A correctly signed but expired token is TOKEN_EXPIRED, not TOKEN_INVALID."""
    token = jwt.encode(
        {
            "sub": str(seeded["people"]["user1@acme.com"]),
            "type": "access",
            "exp": datetime.now(timezone.utc) - timedelta(minutes=5),
        },
        TEST_SETTINGS["jwt_secret"],
        algorithm="HS256",
    )
    r = await client.get("/api/auth/me", headers=bearer(token))
    assert r.status_code == 401
    assert r.json()["code"] == "TOKEN_EXPIRED"


@pytest.mark.asyncio
async def test_signed_token_without_session_row(client, seeded):
    """Valid signature is not enough: the token must have a live row."""
    token = jwt.encode(
        {
            "sub": str(seeded["people"]["user1@acme.com"]),
            "type": "access",
            "exp": datetime.now(timezone.utc) + timedelta(minutes=5),
        },
        TEST_SETTINGS["jwt_secret"],
        algorithm="HS256",
    )
    r = await client.get("/api/auth/me", headers=bearer(token))
    assert r.status_code == 401
    assert r.json()["code"] == "TOKEN_INVALID"


@pytest.mark.asyncio
async def test_wrong_secret(client, seeded):
    token = jwt.encode(
        {
            "sub": str(seeded["people"]["user1@acme.com"]),
            "type": "access",
            "exp": datetime.now(timezone.utc) + timedelta(minutes=5),
        },
        "some-other-secret-that-is-also-32-bytes",
        algorithm="HS256",
    )
    r = await client.get("/api/auth/me", headers=bearer(token))
    assert r.status_code == 401
    assert r.json()["code"] == "TOKEN_INVALID"


@pytest.mark.asyncio
async def test_refresh_token_rejected_as_bearer(client, login):
    data = await login("user1@acme.com")
    r = await client.get("/api/auth/me", headers=bearer(data["refreshToken"]))
    assert r.status_code == 401
    assert r.json()["code"] == "TOKEN_INVALID"


@pytest.mark.asyncio
async def test_expired_session_row_rejected(client, db, login):
    """A row past expires_on rejects the token even though the JWT is still valid."""
    data = await login("user1@acme.com")
    async with db.session() as s:
        await s.execute(
            update(SessionToken)
            .where(SessionToken.value == data["accessToken"])
            .values(expires_on=datetime.now(timezone.utc) - timedelta(seconds=1))
        )
        await s.commit()

    r = await client.get("/api/auth/me", headers=bearer(data["accessToken"]))
    assert r.status_code == 401
    assert r.json()["code"] == "TOKEN_INVALID"


# ═══════════════════════════════════════════════════════════
# Refresh
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_refresh_issues_new_access_token(client, db, login, seeded):
    """Refresh mints a working access token and leaves the refresh token live."""
    data = await login("user1@acme.com")

    r1 = await client.post("/api/auth/refresh", json={"refreshToken": data["refreshToken"]})
    assert r1.status_code == 200, r1.text
    new_access = r1.json()["data"]["accessToken"]
    assert new_access != data["accessToken"]

    me = await client.get("/api/auth/me", headers=bearer(new_access))
    assert me.status_code == 200

    # No rotation: the same refresh token keeps working
    r2 = await client.post("/api/auth/refresh", json={"refreshToken": data["refreshToken"]})
    assert r2.status_code == 200

    # access + refresh from login, plus two refreshed access tokens
    assert await _count_tokens(db, seeded["people"]["user1@acme.com"]) == 4


@pytest.mark.asyncio
async def test_refresh_with_access_token(client, login):
    data = await login("user1@acme.com")
    r = await client.post("/api/auth/refresh", json={"refreshToken": data["accessToken"]})
    assert r.status_code == 401
    assert r.json()["code"] == "INVALID_REFRESH_TOKEN"


@pytest.mark.asyncio
async def test_refresh_after_row_expired(client, db, login):
    data = await login("user1@acme.com")
    async with db.session() as s:
        await s.execute(
            update(SessionToken)
            .where(SessionToken.value == data["refreshToken"])
            .values(expires_on=datetime.now(timezone.utc) - timedelta(seconds=1))
        )
        await s.commit()

    r = await client.post("/api/auth/refresh", json={"refreshToken": data["refreshToken"]})
    assert r.status_code == 401
    assert r.json()["code"] == "INVALID_REFRESH_TOKEN"


@pytest.mark.asyncio
async def test_refresh_garbage(client, seeded):
    r = await client.post("/api/auth/refresh", json={"refreshToken": "garbage"})
    assert r.status_code == 401
    assert r.json()["code"] == "INVALID_REFRESH_TOKEN"


# ═══════════════════════════════════════════════════════════
# Logout
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_logout_revokes_bearer(client, login):
    data = await login("user1@acme.com")
    headers = bearer(data["accessToken"])

    r = await client.post("/api/auth/logout", headers=headers)
    assert r.status_code == 200
    assert r.json()["data"]["revoked"] == 1

    me = await client.get("/api/auth/me", headers=headers)
    assert me.status_code == 401
    assert me.json()["code"] == "TOKEN_INVALID"


@pytest.mark.asyncio
async def test_logout_with_refresh_token(client, login):
    """A refreshToken in the logout body is revoked too."""
    data = await login("user1@acme.com")
    r = await client.post(
        "/api/auth/logout",
        headers=bearer(data["accessToken"]),
        json={"refreshToken": data["refreshToken"]},
    )
    assert r.json()["data"]["revoked"] == 2

    refreshed = await client.post(
        "/api/auth/refresh", json={"refreshToken": data["refreshToken"]}
    )
    assert refreshed.status_code == 401


@pytest.mark.asyncio
async def test_logout_leaves_other_sessions(client, login):
    """Only the presented token is revoked; a second login stays valid."""
    first = await login("user1@acme.com")
    second = await login("user1@acme.com")

    await client.post("/api/auth/logout", headers=bearer(first["accessToken"]))

    r = await client.get("/api/auth/me", headers=bearer(second["accessToken"]))
    assert r.status_code == 200
    # First session's refresh token was not in the logout body, so it survives
    r = await client.post("/api/auth/refresh", json={"refreshToken": first["refreshToken"]})
    assert r.status_code == 200


# ═══════════════════════════════════════════════════════════
# Last-seen bookkeeping
# ═══════════════════════════════════════════════════════════


@pytest.fixture()
def failing_last_seen(monkeypatch):
    """Make every UPDATE of the persons table fail at the driver."""
    original = AsyncSession.execute

    async def execute(self, statement, *args, **kwargs):
        if isinstance(statement, Update) and statement.table.name == "persons":
            raise OperationalError("UPDATE persons", {}, Exception("database is locked"))
        return await original(self, statement, *args, **kwargs)

    monkeypatch.setattr(AsyncSession, "execute", execute)


@pytest.mark.asyncio
async def test_last_seen_failure_does_not_fail_request(client, login, failing_last_seen):
    data = await login("user1@acme.com")
    r = await client.get("/api/auth/me", headers=bearer(data["accessToken"]))

    assert r.status_code == 200, r.text
    user = r.json()["data"]["user"]
    assert user["email"] == "user1@acme.com"
    assert user["company"]["title"] == "Acme Corp"


@pytest.mark.asyncio
async def test_last_seen_failure_keeps_guards_working(client, login, seeded, failing_last_seen):
    """Role and company are still readable after the failed update rolled back."""
    data = await login("support@acme.com")
    headers = bearer(data["accessToken"])

    own = seeded["tickets"]["VPN connection issues"]
    r = await client.get(f"/api/tickets/{own}", headers=headers)
    assert r.status_code == 200, r.text

    other = seeded["tickets"]["Website down - 500 error"]
    r = await client.get(f"/api/tickets/{other}", headers=headers)
    assert r.status_code == 403
    assert r.json()["code"] == "ACCESS_DENIED"
