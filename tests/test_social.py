"""Tests for messaging, favorites, shop follows and content flags."""

import pytest
from httpx import AsyncClient

from conftest import auth_headers, make_listing, make_user
from curio_market.models import ListingState


class TestMessaging:

    @pytest.mark.asyncio
    async def test_conversation_between_buyer_and_seller(self, client: AsyncClient, db_session, buyer, seller_user, seller):
        listing = await make_listing(db_session, seller)

        started = await client.post(
            "/api/messages/threads",
            json={"seller_user_id": seller_user.id, "listing_id": listing.id, "content": "Is the owl's perch original?"},
            headers=auth_headers(buyer),
        )
        assert started.status_code == 200
        thread_id = started.json()["id"]

        unread = await client.get("/api/messages/unread", headers=auth_headers(seller_user))
        assert unread.json()["unread"] == 1

        messages = await client.get(f"/api/messages/threads/{thread_id}", headers=auth_headers(seller_user))
        assert [m["content"] for m in messages.json()] == ["Is the owl's perch original?"]

        reply = await client.post(
            f"/api/messages/threads/{thread_id}",
            json={"content": "Yes, Victorian walnut."},
            headers=auth_headers(seller_user),
        )
        assert reply.status_code == 201
        unread = await client.get("/api/messages/unread", headers=auth_headers(seller_user))
        assert unread.json()["unread"] == 0

    @pytest.mark.asyncio
    async def test_same_listing_reuses_the_thread(self, client: AsyncClient, db_session, buyer, seller_user, seller):
        listing = await make_listing(db_session, seller)
        body = {"seller_user_id": seller_user.id, "listing_id": listing.id}

        first = await client.post("/api/messages/threads", json=body, headers=auth_headers(buyer))
        second = await client.post("/api/messages/threads", json=body, headers=auth_headers(buyer))

        assert first.json()["id"] == second.json()["id"]

    @pytest.mark.asyncio
    async def test_outsiders_cannot_read_or_post(self, client: AsyncClient, db_session, buyer, seller_user):
        started = await client.post(
            "/api/messages/threads",
            json={"seller_user_id": seller_user.id, "content": "Hello"},
            headers=auth_headers(buyer),
        )
        thread_id = started.json()["id"]
        stranger = await make_user(db_session, "stranger")

        read = await client.get(f"/api/messages/threads/{thread_id}", headers=auth_headers(stranger))
        posted = await client.post(
            f"/api/messages/threads/{thread_id}",
            json={"content": "Let me in"},
            headers=auth_headers(stranger),
        )
        listed = await client.get("/api/messages/threads", headers=auth_headers(stranger))

        assert read.status_code == 404
        assert posted.status_code == 404
        assert listed.json() == []

    @pytest.mark.asyncio
    async def test_cannot_message_yourself(self, client: AsyncClient, buyer):
        response = await client.post(
            "/api/messages/threads",
            json={"seller_user_id": buyer.id, "content": "Hi me"},
            headers=auth_headers(buyer),
        )

        assert response.status_code == 400


class TestFavoritesAndFollows:

    @pytest.mark.asyncio
    async def test_favorite_is_idempotent(self, client: AsyncClient, db_session, buyer, seller):
        listing = await make_listing(db_session, seller)

        first = await client.post("/api/favorites", json={"listing_id": listing.id}, headers=auth_headers(buyer))
        second = await client.post("/api/favorites", json={"listing_id": listing.id}, headers=auth_headers(buyer))

        assert first.json()["id"] == second.json()["id"]
        favorites = await client.get("/api/favorites", headers=auth_headers(buyer))
        assert len(favorites.json()) == 1

        removed = await client.delete(f"/api/favorites/{listing.id}", headers=auth_headers(buyer))
        removed_again = await client.delete(f"/api/favorites/{listing.id}", headers=auth_headers(buyer))
        assert removed.json() == {"success": True, "removed": True}
        assert removed_again.json() == {"success": True, "removed": False}

    @pytest.mark.asyncio
    async def test_favorite_unknown_listing(self, client: AsyncClient, buyer):
        response = await client.post("/api/favorites", json={"listing_id": "missing"}, headers=auth_headers(buyer))

        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_follow_is_idempotent(self, client: AsyncClient, buyer, seller):
        first = await client.post("/api/follows", json={"seller_id": seller.id}, headers=auth_headers(buyer))
        second = await client.post("/api/follows", json={"seller_id": seller.id}, headers=auth_headers(buyer))

        assert first.json()["id"] == second.json()["id"]
        followers = await client.get(f"/api/shops/{seller.id}/followers")
        assert followers.json()["followers"] == 1

        await client.delete(f"/api/follows/{seller.id}", headers=auth_headers(buyer))
        followers = await client.get(f"/api/shops/{seller.id}/followers")
        assert followers.json()["followers"] == 0


class TestFlags:

    @pytest.mark.asyncio
    async def test_flagged_listing_suspended_by_moderator(self, client: AsyncClient, db_session, admin, buyer, seller):
        listing = await make_listing(db_session, seller)

        raised = await client.post(
            "/api/flags",
            json={"target_type": "listing", "target_id": listing.id, "reason": "Protected species"},
            headers=auth_headers(buyer),
        )
        assert raised.status_code == 201
        flag_id = raised.json()["id"]

        pending = await client.get("/api/admin/flags", headers=auth_headers(admin))
        assert [f["id"] for f in pending.json()] == [flag_id]

        moderated = await client.post(
            f"/api/admin/flags/{flag_id}/moderate",
            json={"status": "resolved", "suspend_listing": True, "moderator_notes": "CITES listed"},
            headers=auth_headers(admin),
        )
        again = await client.post(
            f"/api/admin/flags/{flag_id}/moderate",
            json={"status": "dismissed"},
            headers=auth_headers(admin),
        )

        assert moderated.json()["status"] == "resolved"
        assert listing.state == ListingState.SUSPENDED
        assert again.status_code == 409

    @pytest.mark.asyncio
    async def test_moderation_is_admin_only(self, client: AsyncClient, buyer):
        response = await client.get("/api/admin/flags", headers=auth_headers(buyer))

        assert response.status_code == 403
