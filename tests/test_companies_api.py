"""Company (tenant) management API tests (ADMIN only)."""

import pytest
from sqlalchemy.exc import IntegrityError

from helpdesk.db.models import Company


@pytest.mark.asyncio
async def test_support_forbidden(client, support_headers):
    r = await client.get("/api/companies", headers=support_headers)
    assert r.status_code == 403


@pytest.mark.asyncio
async def test_list_with_counts(client, admin_headers):
    r = await client.get("/api/companies", headers=admin_headers)
    assert r.status_code == 200
    companies = {c["title"]: c["counts"] for c in r.json()["data"]["companies"]}
    assert list(companies) == ["Acme Corp", "Globex Inc", "TechStart Solutions"]
    assert companies["Acme Corp"] == {"members": 4, "tickets": 5}
    assert companies["Globex Inc"] == {"members": 3, "tickets": 2}
    assert companies["TechStart Solutions"] == {"members": 1, "tickets": 1}


@pytest.mark.asyncio
async def test_detail(client, admin_headers, seeded):
    company_id = seeded["companies"]["Globex Inc"]
    r = await client.get(f"/api/companies/{company_id}", headers=admin_headers)
    assert r.status_code == 200
    company = r.json()["data"]["company"]
    assert company["title"] == "Globex Inc"
    assert company["counts"] == {"members": 3, "tickets": 2}
    assert [m["fullName"] for m in company["members"]] == [
        "Bob Support", "Globex Admin", "Mike Johnson",
    ]
    assert "passwordHash" not in company["members"][0]
    assert {t["subject"] for t in company["tickets"]} == {
        "Website down - 500 error", "Software license renewal",
    }


@pytest.mark.asyncio
async def test_create_rename_delete(client, admin_headers):
    r = await client.post("/api/companies", headers=admin_headers, json={"title": "  Initech  "})
    assert r.status_code == 201, r.text
    company = r.json()["data"]["company"]
    assert company["title"] == "Initech"
    assert company["counts"] == {"members": 0, "tickets": 0}

    r = await client.patch(
        f"/api/companies/{company['id']}", headers=admin_headers, json={"title": "Initrode"}
    )
    assert r.status_code == 200
    assert r.json()["data"]["company"]["title"] == "Initrode"

    r = await client.delete(f"/api/companies/{company['id']}", headers=admin_headers)
    assert r.status_code == 200

    r = await client.get(f"/api/companies/{company['id']}", headers=admin_headers)
    assert r.status_code == 404
    assert r.json()["code"] == "COMPANY_NOT_FOUND"


@pytest.mark.asyncio
async def test_duplicate_title_case_insensitive(client, admin_headers, seeded):
    r = await client.post("/api/companies", headers=admin_headers, json={"title": "acme corp"})
    assert r.status_code == 409
    body = r.json()
    assert body["code"] == "DUPLICATE_ENTRY"
    assert body["field"] == "title"

    globex = seeded["companies"]["Globex Inc"]
    r = await client.patch(
        f"/api/companies/{globex}", headers=admin_headers, json={"title": "ACME CORP"}
    )
    assert r.status_code == 409


@pytest.mark.asyncio
async def test_rename_same_title_different_case(client, admin_headers, seeded):
    """Renaming a company to its own title in another case isn't a conflict."""
    globex = seeded["companies"]["Globex Inc"]
    r = await client.patch(
        f"/api/companies/{globex}", headers=admin_headers, json={"title": "GLOBEX INC"}
    )
    assert r.status_code == 200
    assert r.json()["data"]["company"]["title"] == "GLOBEX INC"


@pytest.mark.asyncio
async def test_delete_refused_with_data(client, admin_headers, seeded):
    company_id = seeded["companies"]["TechStart Solutions"]
    r = await client.delete(f"/api/companies/{company_id}", headers=admin_headers)
    assert r.status_code == 400
    body = r.json()
    assert body["code"] == "COMPANY_HAS_DATA"
    assert body["data"] == {"members": 1, "tickets": 1}


@pytest.mark.asyncio
async def test_short_title(client, admin_headers):
    r = await client.post("/api/companies", headers=admin_headers, json={"title": " x "})
    assert r.status_code == 400


@pytest.mark.asyncio
async def test_company_stats(client, admin_headers):
    r = await client.get("/api/companies/stats/summary", headers=admin_headers)
    assert r.json()["data"]["summary"] == {
        "total": 3, "withMembers": 3, "withTickets": 3,
    }


@pytest.mark.asyncio
async def test_title_unique_ignoring_case_in_store(db):
    """The table itself refuses a case variant, even past the service pre-check."""
    async with db.session() as session:
        session.add(Company(title="Initech"))
        await session.commit()

        session.add(Company(title="INITECH"))
        with pytest.raises(IntegrityError):
            await session.flush()
        await session.rollback()
