"""Tests for in-app notifications and the events that create them."""

import pytest
import pytest_asyncio
from httpx import AsyncClient

from conftest import auth_headers, make_listing, make_order
from curio_market.core.locks import KeyedLockRegistry
from curio_market.crud.notification import notification_crud
from curio_market.models import DisputeStatus, NotificationType, OrderStatus
from curio_market.services.checkout_service import CheckoutService


@pytest.fixture
def service(fake_gateway):
    return CheckoutService(gateway=fake_gateway, locks=KeyedLockRegistry())


@pytest_asyncio.fixture
async def owl(db_session, seller):
    return await make_listing(db_session, seller)


async def kinds_for(db, user_id):
    return sorted(n.type.value for n in await notification_crud.list_for_user(db, user_id))


class TestNotificationEndpoints:

    @pytest.mark.asyncio
    async def test_new_message_notifies_the_other_side(self, client: AsyncClient, buyer, seller_user):
        started = await client.post(
            "/api/messages/threads",
            json={"seller_user_id": seller_user.id, "content": "Do you ship to Norway?"},
            headers=auth_headers(buyer),
        )
        thread_id = started.json()["id"]

        inbox = await client.get("/api/notifications", headers=auth_headers(seller_user))
        assert [(n["type"], n["link"]) for n in inbox.json()] == [("new_message", f"/messages/{thread_id}")]
        assert inbox.json()[0]["message"] == "Do you ship to Norway?"

        count = await client.get("/api/notifications/unread-count", headers=auth_headers(seller_user))
        own = await client.get("/api/notifications/unread-count", headers=auth_headers(buyer))
        assert count.json() == {"unread": 1}
        assert own.json() == {"unread": 0}

    @pytest.mark.asyncio
    async def test_mark_read_is_owner_only(self, client: AsyncClient, db_session, buyer, seller_user):
        notification = await notification_crud.notify(
            db_session, seller_user.id, NotificationType.NEW_ORDER, "New order"
        )

        stolen = await client.post(f"/api/notifications/{notification.id}/read", headers=auth_headers(buyer))
        read = await client.post(f"/api/notifications/{notification.id}/read", headers=auth_headers(seller_user))

        assert stolen.status_code == 404
        assert read.status_code == 200
        assert read.json()["is_read"] is True
        assert read.json()["read_at"] is not None
        count = await client.get("/api/notifications/unread-count", headers=auth_headers(seller_user))
        assert count.json() == {"unread": 0}

    @pytest.mark.asyncio
    async def test_read_all(self, client: AsyncClient, db_session, buyer, seller_user):
        for title in ("One", "Two", "Three"):
            await notification_crud.notify(db_session, buyer.id, NotificationType.ORDER_SHIPPED, title)
        await notification_crud.notify(db_session, seller_user.id, NotificationType.NEW_ORDER, "Theirs")

        marked = await client.post("/api/notifications/read-all", headers=auth_headers(buyer))
        unread = await client.get(
            "/api/notifications", params={"unread_only": True}, headers=auth_headers(buyer)
        )

        assert marked.json() == {"updated": 3}
        assert unread.json() == []
        assert await notification_crud.unread_count(db_session, seller_user.id) == 1

    @pytest.mark.asyncio
    async def test_requires_login(self, client: AsyncClient):
        response = await client.get("/api/notifications")

        assert response.status_code == 401


class TestOrderNotifications:

    @pytest.mark.asyncio
    async def test_shipping_and_delivery_notify_the_buyer(self, db_session, service, buyer, seller, owl):
        order = await make_order(db_session, buyer, seller, owl)

        await service.add_tracking(db_session, seller, order.id, tracking_number="1Z999", carrier="UPS")
        await service.mark_delivered(db_session, seller, order.id)

        notifications = await notification_crud.list_for_user(db_session, buyer.id)
        assert sorted(n.type for n in notifications) == sorted(
            [NotificationType.ORDER_SHIPPED, NotificationType.ORDER_DELIVERED]
        )
        assert {n.link for n in notifications} == {f"/orders/{order.id}"}

    @pytest.mark.asyncio
    async def test_dispute_and_refund_notify_both_sides(
        self, db_session, service, fake_gateway, admin, buyer, seller_user, seller, owl
    ):
        order = await make_order(db_session, buyer, seller, owl, status=OrderStatus.SHIPPED)
        fake_gateway.create_refund.return_value = {"id": "re_9"}

        dispute = await service.open_dispute(db_session, buyer.id, order.id, reason="Cracked glass dome")
        await service.resolve_dispute(db_session, dispute.id, admin.id, status=DisputeStatus.RESOLVED_BUYER)
        await service.refund_order(db_session, order.id, admin_id=admin.id)

        assert await kinds_for(db_session, seller_user.id) == ["dispute_opened"]
        assert await kinds_for(db_session, buyer.id) == ["dispute_resolved", "order_refunded"]
        seller_inbox = await notification_crud.list_for_user(db_session, seller_user.id)
        assert seller_inbox[0].link == f"/seller/orders/{order.id}"
