"""
Tests for the approval recipient endpoints.
"""
import pytest
from httpx import AsyncClient


@pytest.mark.asyncio
async def test_admin_manages_recipients(admin_client: AsyncClient):
    created = await admin_client.post(
        "/api/approval-recipients/",
        json={"name": "Alice", "email": "alice@example.com"}
    )
    assert created.status_code == 201
    recipient_id = created.json()[0]["id"]
    
    updated = await admin_client.put(
        f"/api/approval-recipients/{recipient_id}",
        json={"name": "Alice Smith", "email": "alice@example.com"}
    )
    assert updated.status_code == 200
    assert updated.json()[0]["name"] == "Alice Smith"
    
    listed = await admin_client.get("/api/approval-recipients/")
    assert [r["email"] for r in listed.json()] == ["alice@example.com"]
    
    deleted = await admin_client.delete(f"/api/approval-recipients/{recipient_id}")
    assert deleted.status_code == 200
    assert deleted.json() == []


@pytest.mark.asyncio
async def test_duplicate_recipient_is_unprocessable(admin_client: AsyncClient):
    body = {"name": "Alice", "email": "alice@example.com"}
    await admin_client.post("/api/approval-recipients/", json=body)
    
    response = await admin_client.post("/api/approval-recipients/", json=body)
    
    assert response.status_code == 422
    assert response.json()["detail"]["kind"] == "validation_error"


@pytest.mark.asyncio
async def test_delete_unknown_recipient(admin_client: AsyncClient):
    response = await admin_client.delete("/api/approval-recipients/does-not-exist")
    
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_manager_cannot_add_recipient(client: AsyncClient):
    response = await client.post(
        "/api/approval-recipients/",
        json={"name": "Eve", "email": "eve@example.com"}
    )
    
    assert response.status_code == 403
