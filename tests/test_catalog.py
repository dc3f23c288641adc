"""Tests for listing detail, image URLs and the cart."""

import pytest
from httpx import AsyncClient
from sqlalchemy import select

from conftest import auth_headers, make_listing
from curio_market.core.config import settings
from curio_market.models import Listing, ListingState
from curio_market.services.object_storage import normalize_image_url


class TestImageUrls:

    @pytest.mark.parametrize("stored, expected", [
        ("uploads/abc123", "/objects/uploads/abc123"),
        ("/uploads/abc123", "/objects/uploads/abc123"),
        ("https://storage.googleapis.com/curio-market/uploads/abc123", "/objects/uploads/abc123"),
        ("https://curio-market.s3.us-east-1.amazonaws.com/uploads/abc123", "/objects/uploads/abc123"),
        ("/objects/uploads/abc123", "/objects/uploads/abc123"),
        ("https://example.com/owl.jpg", "https://example.com/owl.jpg"),
        (None, None),
    ])
    def test_normalize(self, stored, expected):
        assert normalize_image_url(stored) == expected


class TestListingDetail:

    @pytest.mark.asyncio
    async def test_detail_normalizes_images(self, client: AsyncClient, db_session, seller):
        listing = await make_listing(
            db_session,
            seller,
            image_urls=["https://storage.googleapis.com/curio-market/uploads/owl-1", "uploads/owl-2"],
        )

        response = await client.get(f"/api/listings/{listing.id}")

        assert response.status_code == 200
        urls = [image["url"] for image in response.json()["images"]]
        assert urls == ["/objects/uploads/owl-1", "/objects/uploads/owl-2"]

    @pytest.mark.asyncio
    async def test_lookup_by_slug_counts_a_view(self, client: AsyncClient, db_session, seller):
        listing = await make_listing(db_session, seller)

        response = await client.get("/api/listings/victorian-taxidermy-owl")

        assert response.status_code == 200
        assert response.json()["id"] == listing.id
        views = await db_session.scalar(select(Listing.views).where(Listing.id == listing.id))
        assert views == 1

    @pytest.mark.asyncio
    async def test_draft_hidden_from_the_public(self, client: AsyncClient, db_session, seller, seller_user, buyer):
        draft = await make_listing(db_session, seller, state=ListingState.DRAFT)

        anonymous = await client.get(f"/api/listings/{draft.id}")
        stranger = await client.get(f"/api/listings/{draft.id}", headers=auth_headers(buyer))
        owner = await client.get(f"/api/listings/{draft.id}", headers=auth_headers(seller_user))

        assert anonymous.status_code == 404
        assert stranger.status_code in (403, 404)
        assert owner.status_code == 200
        views = await db_session.scalar(select(Listing.views).where(Listing.id == draft.id))
        assert views == 0


class TestCart:

    @pytest.mark.asyncio
    async def test_add_and_total(self, client: AsyncClient, db_session, seller, buyer):
        listing = await make_listing(db_session, seller)

        response = await client.post(
            "/api/cart/add",
            json={"listing_id": listing.id, "quantity": 2},
            headers=auth_headers(buyer),
        )

        assert response.status_code == 200
        data = response.json()
        assert data["item_count"] == 2
        assert float(data["subtotal"]) == 240.0

    @pytest.mark.asyncio
    async def test_cannot_exceed_stock(self, client: AsyncClient, db_session, seller, buyer):
        listing = await make_listing(db_session, seller, quantity=3)
        await client.post(
            "/api/cart/add",
            json={"listing_id": listing.id, "quantity": 2},
            headers=auth_headers(buyer),
        )

        response = await client.post(
            "/api/cart/add",
            json={"listing_id": listing.id, "quantity": 2},
            headers=auth_headers(buyer),
        )

        assert response.status_code == 409
        assert response.json()["error"] == "Only 3 in stock"

    @pytest.mark.asyncio
    async def test_unpublished_listing_cannot_be_added(self, client: AsyncClient, db_session, seller, buyer):
        draft = await make_listing(db_session, seller, state=ListingState.DRAFT)

        response = await client.post(
            "/api/cart/add",
            json={"listing_id": draft.id, "quantity": 1},
            headers=auth_headers(buyer),
        )

        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_anonymous_cart_follows_session_cookie(self, client: AsyncClient, db_session, seller):
        listing = await make_listing(db_session, seller)

        added = await client.post("/api/cart/add", json={"listing_id": listing.id, "quantity": 1})
        sid = added.cookies.get(settings.SESSION_COOKIE_NAME)
        assert sid

        cart = await client.get("/api/cart", headers={"Cookie": f"{settings.SESSION_COOKIE_NAME}={sid}"})

        assert cart.json()["id"] == added.json()["id"]
        assert cart.json()["item_count"] == 1

    @pytest.mark.asyncio
    async def test_update_and_remove_item(self, client: AsyncClient, db_session, seller, buyer):
        listing = await make_listing(db_session, seller, quantity=5)
        added = await client.post(
            "/api/cart/add",
            json={"listing_id": listing.id, "quantity": 1},
            headers=auth_headers(buyer),
        )
        item_id = added.json()["items"][0]["id"]

        updated = await client.patch(
            f"/api/cart/items/{item_id}",
            json={"quantity": 4},
            headers=auth_headers(buyer),
        )
        too_many = await client.patch(
            f"/api/cart/items/{item_id}",
            json={"quantity": 6},
            headers=auth_headers(buyer),
        )
        removed = await client.delete(f"/api/cart/items/{item_id}", headers=auth_headers(buyer))

        assert updated.json()["item_count"] == 4
        assert too_many.status_code == 409
        assert removed.json()["items"] == []
