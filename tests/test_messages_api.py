"""Ticket chat tests."""

import pytest


async def _post(client, headers, ticket_id, content):
    return await client.post(
        f"/api/tickets/{ticket_id}/messages", headers=headers, json={"content": content}
    )


@pytest.mark.asyncio
async def test_conversation_oldest_first(client, normal_headers, support_headers, seeded):
    ticket_id = seeded["tickets"]["Broken printer on 3rd floor"]

    r = await _post(client, normal_headers, ticket_id, "  Still jammed  ")
    assert r.status_code == 201, r.text
    msg = r.json()["data"]["message"]
    assert msg["content"] == "Still jammed"
    assert msg["sender"]["fullName"] == "John Doe"
    assert msg["sender"]["role"] == "NORMAL"

    await _post(client, support_headers, ticket_id, "Technician is on the way")

    r = await client.get(f"/api/tickets/{ticket_id}/messages", headers=normal_headers)
    assert r.status_code == 200
    messages = r.json()["data"]["messages"]
    assert [m["content"] for m in messages] == ["Still jammed", "Technician is on the way"]
    assert messages[1]["sender"]["role"] == "SUPPORT"


@pytest.mark.asyncio
async def test_closed_ticket_rejects_messages(client, normal_headers, seeded):
    ticket_id = seeded["tickets"]["Password reset request"]  # closed
    r = await _post(client, normal_headers, ticket_id, "Any update?")
    assert r.status_code == 400
    assert r.json()["code"] == "TICKET_CLOSED"


@pytest.mark.asyncio
async def test_blank_message_rejected(client, normal_headers, seeded):
    ticket_id = seeded["tickets"]["Broken printer on 3rd floor"]
    r = await _post(client, normal_headers, ticket_id, "   ")
    assert r.status_code == 400
    assert r.json()["code"] == "VALIDATION_ERROR"


@pytest.mark.asyncio
async def test_non_owner_normal_cannot_post(client, normal_headers, seeded):
    """Reading a colleague's ticket is fine; joining its chat is not."""
    ticket_id = seeded["tickets"]["VPN connection issues"]  # user2@acme

    r = await client.get(f"/api/tickets/{ticket_id}/messages", headers=normal_headers)
    assert r.status_code == 200

    r = await _post(client, normal_headers, ticket_id, "Me too")
    assert r.status_code == 403
    assert r.json()["code"] == "UPDATE_PERMISSION_DENIED"


@pytest.mark.asyncio
async def test_other_company_cannot_read_chat(client, headers_for, seeded):
    ticket_id = seeded["tickets"]["Broken printer on 3rd floor"]  # Acme
    headers = await headers_for("support@globex.com")
    r = await client.get(f"/api/tickets/{ticket_id}/messages", headers=headers)
    assert r.status_code == 403
    assert r.json()["code"] == "ACCESS_DENIED"


@pytest.mark.asyncio
async def test_messages_on_missing_ticket(client, admin_headers):
    r = await client.get("/api/tickets/424242/messages", headers=admin_headers)
    assert r.status_code == 404
