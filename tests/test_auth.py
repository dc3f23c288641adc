"""Tests for authentication endpoints."""

import pytest
from httpx import AsyncClient

from conftest import auth_headers, make_user
from curio_market.core.security import create_access_token, create_refresh_token
from curio_market.models import AccountStatus


@pytest.mark.asyncio
async def test_get_current_user(client: AsyncClient, buyer):
    """Test getting current user with valid token."""
    response = await client.get("/api/auth/user", headers=auth_headers(buyer))

    assert response.status_code == 200
    data = response.json()
    assert data["id"] == buyer.id
    assert data["email"] == buyer.email
    assert data["role"] == "buyer"


@pytest.mark.asyncio
async def test_get_current_user_requires_auth(client: AsyncClient):
    response = await client.get("/api/auth/user")

    assert response.status_code == 401
    assert response.json() == {"error": "Unauthorized"}


@pytest.mark.asyncio
async def test_invalid_token_is_anonymous(client: AsyncClient):
    response = await client.get(
        "/api/auth/user",
        headers={"Authorization": "Bearer not-a-jwt"},
    )

    assert response.status_code == 401


@pytest.mark.asyncio
async def test_banned_user_is_refused(client: AsyncClient, db_session):
    banned = await make_user(db_session, "banned-1", account_status=AccountStatus.BANNED)

    response = await client.get("/api/auth/user", headers=auth_headers(banned))

    assert response.status_code == 403
    assert response.json()["error"] == "Account suspended"


@pytest.mark.asyncio
async def test_refresh_token(client: AsyncClient, buyer):
    """Test token refresh."""
    response = await client.post(
        "/api/auth/refresh",
        json={"refresh_token": create_refresh_token(buyer.id)},
    )

    assert response.status_code == 200
    data = response.json()
    assert "access_token" in data
    assert "refresh_token" in data


@pytest.mark.asyncio
async def test_refresh_rejects_access_token(client: AsyncClient, buyer):
    response = await client.post(
        "/api/auth/refresh",
        json={"refresh_token": create_access_token(buyer.id)},
    )

    assert response.status_code == 401


@pytest.mark.asyncio
async def test_validate_token(client: AsyncClient, buyer):
    valid = await client.post("/api/auth/validate", json={"token": create_access_token(buyer.id)})
    invalid = await client.post("/api/auth/validate", json={"token": "garbage"})

    assert valid.json()["valid"] is True
    assert valid.json()["user"]["id"] == buyer.id
    assert invalid.json() == {"valid": False, "user": None}


@pytest.mark.asyncio
async def test_changing_phone_number_clears_verification(client: AsyncClient, db_session):
    user = await make_user(db_session, "phone-1", phone_number="+15550001", phone_verified=True)

    response = await client.patch(
        "/api/auth/user",
        json={"phone_number": "+15550002"},
        headers=auth_headers(user),
    )

    assert response.status_code == 200
    assert response.json()["phone_verified"] is False


@pytest.mark.asyncio
async def test_empty_profile_update_rejected(client: AsyncClient, buyer):
    response = await client.patch("/api/auth/user", json={}, headers=auth_headers(buyer))

    assert response.status_code == 400


@pytest.mark.asyncio
async def test_login_without_provider_config(client: AsyncClient, monkeypatch):
    from curio_market.core.config import settings

    monkeypatch.setattr(settings, "REPL_ID", "")
    response = await client.get("/api/auth/login", follow_redirects=False)

    assert response.status_code == 500
    assert response.json()["error"] == "Authentication not configured"
