"""Tests for disputes, refunds and order reviews."""

from decimal import Decimal

import pytest
import pytest_asyncio
from httpx import AsyncClient

from conftest import auth_headers, make_listing, make_order, make_user
from curio_market.core.locks import KeyedLockRegistry
from curio_market.db.base import utcnow
from curio_market.models import DisputeStatus, OrderStatus
from curio_market.services.checkout_service import CheckoutError, CheckoutService, checkout_service


@pytest.fixture
def service(fake_gateway):
    return CheckoutService(gateway=fake_gateway, locks=KeyedLockRegistry())


@pytest_asyncio.fixture
async def owl(db_session, seller):
    return await make_listing(db_session, seller)


class TestDisputes:

    @pytest.mark.asyncio
    async def test_open_marks_order_disputed(self, db_session, service, buyer, seller, owl):
        order = await make_order(db_session, buyer, seller, owl)

        dispute = await service.open_dispute(db_session, buyer.id, order.id, reason="Not as described")

        assert dispute.status == DisputeStatus.OPEN
        assert dispute.opened_by == buyer.id
        assert order.status == OrderStatus.DISPUTED

    @pytest.mark.asyncio
    async def test_one_open_dispute_per_order(self, db_session, service, buyer, seller, owl):
        order = await make_order(db_session, buyer, seller, owl, status=OrderStatus.SHIPPED)
        await service.open_dispute(db_session, buyer.id, order.id, reason="Arrived broken")

        with pytest.raises(CheckoutError) as exc:
            await service.open_dispute(db_session, buyer.id, order.id, reason="Still broken")
        assert exc.value.status_code == 409

    @pytest.mark.asyncio
    async def test_only_the_buyer_can_dispute(self, db_session, service, buyer, seller, owl):
        order = await make_order(db_session, buyer, seller, owl)
        stranger = await make_user(db_session, "stranger")

        with pytest.raises(CheckoutError) as exc:
            await service.open_dispute(db_session, stranger.id, order.id, reason="Mine now")
        assert exc.value.status_code == 404

    @pytest.mark.asyncio
    async def test_pending_order_cannot_be_disputed(self, db_session, service, buyer, seller, owl):
        order = await make_order(db_session, buyer, seller, owl, status=OrderStatus.PENDING)

        with pytest.raises(CheckoutError) as exc:
            await service.open_dispute(db_session, buyer.id, order.id, reason="Never paid")
        assert exc.value.status_code == 409

    @pytest.mark.asyncio
    async def test_seller_win_restores_fulfilment_state(self, db_session, service, admin, buyer, seller, owl):
        order = await make_order(
            db_session, buyer, seller, owl, status=OrderStatus.SHIPPED, shipped_at=utcnow()
        )
        dispute = await service.open_dispute(db_session, buyer.id, order.id, reason="Late")

        resolved = await service.resolve_dispute(
            db_session, dispute.id, admin.id, status=DisputeStatus.RESOLVED_SELLER, resolution_notes="In transit"
        )

        assert resolved.resolved_by == admin.id
        assert resolved.resolved_at is not None
        assert order.status == OrderStatus.SHIPPED
        with pytest.raises(CheckoutError) as exc:
            await service.resolve_dispute(db_session, dispute.id, admin.id, status=DisputeStatus.CLOSED)
        assert exc.value.status_code == 409

    @pytest.mark.asyncio
    async def test_buyer_win_stays_disputed_until_refunded(self, db_session, service, fake_gateway, admin, buyer, seller, owl):
        order = await make_order(db_session, buyer, seller, owl)
        dispute = await service.open_dispute(db_session, buyer.id, order.id, reason="Fake fossil")
        fake_gateway.create_refund.return_value = {"id": "re_1"}

        await service.resolve_dispute(db_session, dispute.id, admin.id, status=DisputeStatus.RESOLVED_BUYER)
        assert order.status == OrderStatus.DISPUTED

        refunded = await service.refund_order(db_session, order.id, admin_id=admin.id)

        assert refunded.status == OrderStatus.REFUNDED
        fake_gateway.create_refund.assert_awaited_once_with("pi_paid", amount_cents=13000)


class TestRefunds:

    @pytest.mark.asyncio
    async def test_partial_refund(self, db_session, service, fake_gateway, buyer, seller, owl):
        order = await make_order(db_session, buyer, seller, owl, status=OrderStatus.FULFILLED)
        fake_gateway.create_refund.return_value = {"id": "re_2"}

        await service.refund_order(db_session, order.id, amount=Decimal("25.50"))

        fake_gateway.create_refund.assert_awaited_once_with("pi_paid", amount_cents=2550)

    @pytest.mark.asyncio
    async def test_refund_cannot_exceed_total(self, db_session, service, fake_gateway, buyer, seller, owl):
        order = await make_order(db_session, buyer, seller, owl)

        with pytest.raises(CheckoutError, match="exceeds"):
            await service.refund_order(db_session, order.id, amount=Decimal("130.01"))
        fake_gateway.create_refund.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_refunded_order_cannot_be_refunded_again(self, db_session, service, buyer, seller, owl):
        order = await make_order(db_session, buyer, seller, owl, status=OrderStatus.REFUNDED)

        with pytest.raises(CheckoutError) as exc:
            await service.refund_order(db_session, order.id)
        assert exc.value.status_code == 409

    @pytest.mark.asyncio
    async def test_admin_dispute_and_refund_endpoints(
        self, client: AsyncClient, db_session, fake_gateway, monkeypatch, admin, buyer, seller, owl
    ):
        monkeypatch.setattr(checkout_service, "gateway", fake_gateway)
        fake_gateway.create_refund.return_value = {"id": "re_3"}
        order = await make_order(db_session, buyer, seller, owl)

        opened = await client.post(
            f"/api/orders/{order.id}/dispute",
            json={"reason": "Wrong item"},
            headers=auth_headers(buyer),
        )
        assert opened.status_code == 201

        listed = await client.get("/api/admin/disputes", params={"status": "open"}, headers=auth_headers(admin))
        assert [d["id"] for d in listed.json()] == [opened.json()["id"]]

        resolved = await client.post(
            f"/api/admin/disputes/{opened.json()['id']}/resolve",
            json={"status": "resolved_buyer", "resolution_notes": "Seller agreed"},
            headers=auth_headers(admin),
        )
        assert resolved.status_code == 200
        assert resolved.json()["status"] == "resolved_buyer"

        refunded = await client.post("/api/admin/refunds", json={"order_id": order.id}, headers=auth_headers(admin))
        assert refunded.status_code == 200
        assert refunded.json()["status"] == "refunded"

    @pytest.mark.asyncio
    async def test_refund_endpoint_is_admin_only(self, client: AsyncClient, db_session, buyer, seller, owl):
        order = await make_order(db_session, buyer, seller, owl)

        response = await client.post("/api/admin/refunds", json={"order_id": order.id}, headers=auth_headers(buyer))

        assert response.status_code == 403


class TestOrderReviews:

    @pytest.mark.asyncio
    async def test_buyer_reviews_once(self, client: AsyncClient, db_session, buyer, seller, owl):
        order = await make_order(db_session, buyer, seller, owl, status=OrderStatus.FULFILLED)
        body = {"listing_id": owl.id, "rating": 5, "content": "Glass eyes intact"}

        first = await client.post(f"/api/orders/{order.id}/reviews", json=body, headers=auth_headers(buyer))
        second = await client.post(f"/api/orders/{order.id}/reviews", json=body, headers=auth_headers(buyer))

        assert first.status_code == 201
        assert first.json()["seller_id"] == seller.id
        assert second.status_code == 409
        assert second.json()["error"] == "Already reviewed"
        public = await client.get(f"/api/reviews/listing/{owl.id}")
        assert len(public.json()) == 1

    @pytest.mark.parametrize("order_status", [OrderStatus.PENDING, OrderStatus.REFUNDED, OrderStatus.DISPUTED])
    @pytest.mark.asyncio
    async def test_only_paid_shipped_or_fulfilled_orders(
        self, client: AsyncClient, db_session, buyer, seller, owl, order_status
    ):
        order = await make_order(db_session, buyer, seller, owl, status=order_status)

        response = await client.post(
            f"/api/orders/{order.id}/reviews",
            json={"listing_id": owl.id, "rating": 4},
            headers=auth_headers(buyer),
        )

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_listing_must_be_in_the_order(self, client: AsyncClient, db_session, buyer, seller, owl):
        order = await make_order(db_session, buyer, seller, owl)
        other = await make_listing(db_session, seller, "Bone folder")

        response = await client.post(
            f"/api/orders/{order.id}/reviews",
            json={"listing_id": other.id, "rating": 4},
            headers=auth_headers(buyer),
        )

        assert response.status_code == 400
        assert response.json()["error"] == "Listing is not part of this order"

    @pytest.mark.asyncio
    async def test_someone_elses_order(self, client: AsyncClient, db_session, buyer, seller, owl):
        order = await make_order(db_session, buyer, seller, owl)
        stranger = await make_user(db_session, "stranger")

        response = await client.post(
            f"/api/orders/{order.id}/reviews",
            json={"listing_id": owl.id, "rating": 1},
            headers=auth_headers(stranger),
        )

        assert response.status_code == 404
