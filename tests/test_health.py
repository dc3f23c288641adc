"""Tests for health check endpoint and the shared error shape."""

import pytest
from httpx import AsyncClient


@pytest.mark.asyncio
async def test_health_check(client: AsyncClient):
    """Test health check endpoint returns correct status."""
    response = await client.get("/api/health")

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert data["database"] == "healthy"
    assert "version" in data
    assert data["service"] == "Curio Market API"
    # No Redis in tests
    assert data["cache"] == "disabled"


@pytest.mark.asyncio
async def test_unknown_route_uses_error_body(client: AsyncClient):
    response = await client.get("/api/no-such-thing")

    assert response.status_code == 404
    assert "error" in response.json()


@pytest.mark.asyncio
async def test_validation_errors_are_field_lists(client: AsyncClient):
    response = await client.post("/api/cart/add", json={"quantity": 0})

    assert response.status_code == 400
    errors = response.json()["error"]
    fields = {err["field"] for err in errors}
    assert any(field.endswith("listing_id") for field in fields)
    assert any(field.endswith("quantity") for field in fields)
