"""Tests for checkout pricing, order creation and promotions."""

from datetime import timedelta
from decimal import Decimal

import pytest
import pytest_asyncio
import stripe
from httpx import AsyncClient
from sqlalchemy import select, update

from conftest import auth_headers, make_listing, make_seller, make_user
from curio_market.core.locks import KeyedLockRegistry
from curio_market.crud.cart import cart_crud
from curio_market.db.base import utcnow
from curio_market.models import (
    CheckoutRefund,
    DiscountType,
    Listing,
    Notification,
    NotificationType,
    Order,
    OrderStatus,
    ProcessedWebhookEvent,
    Promotion,
)
from curio_market.models.order import ImmutableOrderItemError
from curio_market.services import promotion_service
from curio_market.services.checkout_service import CheckoutError, CheckoutService, checkout_service
from curio_market.services.promotion_service import PromotionError, PromotionExhaustedError
from curio_market.services.subscription_service import SubscriptionService, subscription_service


async def make_promotion(db, seller, code="CURIO10", **fields) -> Promotion:
    promotion = Promotion(
        seller_id=seller.id,
        code=code,
        name=fields.pop("name", "Ten percent off"),
        discount_type=fields.pop("discount_type", DiscountType.PERCENTAGE),
        discount_value=Decimal(fields.pop("discount_value", "10")),
        **fields,
    )
    db.add(promotion)
    await db.commit()
    return promotion


@pytest.fixture
def service(fake_gateway):
    return CheckoutService(gateway=fake_gateway, locks=KeyedLockRegistry())


@pytest_asyncio.fixture
async def two_shop_cart(db_session, buyer, seller):
    """Owl x2 and microscope from one shop, an ammonite from another."""
    other = await make_seller(db_session, await make_user(db_session, "seller-2"), "Fossil Drawer")
    owl = await make_listing(db_session, seller)
    microscope = await make_listing(db_session, seller, "Brass microscope", price="80.00", shipping_cost="5.00")
    ammonite = await make_listing(db_session, other, "Fossil ammonite", price="45.00", shipping_cost="7.50")

    cart = await cart_crud.get_or_create(db_session, user_id=buyer.id)
    await cart_crud.add_item(db_session, cart, owl.id, 2)
    await cart_crud.add_item(db_session, cart, microscope.id, 1)
    await cart_crud.add_item(db_session, cart, ammonite.id, 1)
    await db_session.commit()
    return {"cart": cart, "owl": owl, "microscope": microscope, "ammonite": ammonite, "other": other}


def succeeded_intent(buyer_id, amount_cents, **metadata):
    return {
        "id": "pi_123",
        "status": "succeeded",
        "amount": amount_cents,
        "metadata": {"buyer_id": buyer_id, **metadata},
    }


class TestPromotionRules:

    def test_fixed_discount_never_exceeds_order(self):
        promotion = Promotion(code="BIG", discount_type=DiscountType.FIXED, discount_value=Decimal("50"), is_active=True)
        assert promotion_service.calculate_discount(promotion, Decimal("30.00")) == Decimal("30.00")

    def test_percentage_discount_rounds_to_cents(self):
        promotion = Promotion(code="P", discount_type=DiscountType.PERCENTAGE, discount_value=Decimal("15"), is_active=True)
        assert promotion_service.calculate_discount(promotion, Decimal("9.99")) == Decimal("1.50")

    def test_minimum_order_enforced(self):
        promotion = Promotion(
            code="MIN", discount_type=DiscountType.FIXED, discount_value=Decimal("5"),
            min_order_amount=Decimal("100"), is_active=True, current_uses=0,
        )
        with pytest.raises(PromotionError, match="at least"):
            promotion_service.validate(promotion, Decimal("99.99"))

    def test_expired_promotion_rejected(self):
        promotion = Promotion(
            code="OLD", discount_type=DiscountType.FIXED, discount_value=Decimal("5"),
            ends_at=utcnow() - timedelta(days=1), is_active=True, current_uses=0,
        )
        with pytest.raises(PromotionError, match="expired"):
            promotion_service.validate(promotion, Decimal("10"))


class TestPromotionRedemption:

    @pytest.mark.asyncio
    async def test_last_use_then_exhausted(self, db_session, seller):
        promotion = await make_promotion(db_session, seller, max_uses=10, current_uses=9)

        discount = await promotion_service.redeem(db_session, promotion, Decimal("100"))

        assert discount == Decimal("10.00")
        assert promotion.current_uses == 10
        with pytest.raises(PromotionExhaustedError) as exc:
            await promotion_service.redeem(db_session, promotion, Decimal("100"))
        assert exc.value.status_code == 409

    @pytest.mark.asyncio
    async def test_stale_count_loses_the_race(self, db_session, seller):
        promotion = await make_promotion(db_session, seller, max_uses=10, current_uses=9)
        # Another checkout takes the last use behind this session's back
        await db_session.execute(
            update(Promotion)
            .where(Promotion.id == promotion.id)
            .values(current_uses=10)
            .execution_options(synchronize_session=False)
        )
        assert promotion.current_uses == 9

        with pytest.raises(PromotionExhaustedError):
            await promotion_service.redeem(db_session, promotion, Decimal("100"))

    @pytest.mark.asyncio
    async def test_lookup_is_case_insensitive(self, db_session, seller):
        await make_promotion(db_session, seller)
        found = await promotion_service.lookup(db_session, seller.id, " curio10 ")
        assert found.code == "CURIO10"


class TestSellerGroups:

    @pytest.mark.asyncio
    async def test_groups_split_by_seller(self, db_session, buyer, two_shop_cart):
        lines = await cart_crud.get_items(db_session, two_shop_cart["cart"].id)
        groups = {g.seller_id: g for g in await checkout_service.build_groups(db_session, lines)}

        first = groups[two_shop_cart["owl"].seller_id]
        assert first.subtotal == Decimal("320.00")
        # Shipping is charged once per line, not per unit
        assert first.shipping == Decimal("15.00")
        assert first.platform_fee == Decimal("9.60")
        assert first.total == Decimal("335.00")

        second = groups[two_shop_cart["other"].id]
        assert second.total == Decimal("52.50")
        assert second.platform_fee == Decimal("1.35")

    @pytest.mark.asyncio
    async def test_promotion_discounts_its_own_shop_only(self, db_session, buyer, seller, two_shop_cart):
        await make_promotion(db_session, seller)
        lines = await cart_crud.get_items(db_session, two_shop_cart["cart"].id)

        groups = {g.seller_id: g for g in await checkout_service.build_groups(db_session, lines, "CURIO10")}

        first = groups[seller.id]
        assert first.discount == Decimal("32.00")
        assert first.platform_fee == Decimal("8.64")
        assert first.total == Decimal("303.00")
        assert groups[two_shop_cart["other"].id].discount == Decimal("0")

    @pytest.mark.asyncio
    async def test_unknown_code_rejected(self, db_session, buyer, two_shop_cart):
        lines = await cart_crud.get_items(db_session, two_shop_cart["cart"].id)
        with pytest.raises(PromotionError):
            await checkout_service.build_groups(db_session, lines, "NOPE")


class TestOrderCreation:

    @pytest.mark.asyncio
    async def test_payment_intent_covers_all_groups(self, db_session, service, fake_gateway, buyer, two_shop_cart):
        fake_gateway.create_payment_intent.return_value = {"id": "pi_123", "client_secret": "pi_123_secret"}

        result = await service.create_payment_intent(db_session, buyer.id)

        assert result["amount"] == Decimal("387.50")
        assert len(result["groups"]) == 2
        kwargs = fake_gateway.create_payment_intent.call_args.kwargs
        assert kwargs["amount_cents"] == 38750
        assert kwargs["metadata"]["buyer_id"] == buyer.id

    @pytest.mark.asyncio
    async def test_empty_cart_cannot_check_out(self, db_session, service, buyer):
        with pytest.raises(CheckoutError, match="Cart is empty"):
            await service.create_payment_intent(db_session, buyer.id)

    @pytest.mark.asyncio
    async def test_confirm_creates_one_order_per_seller(self, db_session, service, fake_gateway, buyer, seller, two_shop_cart):
        promotion = await make_promotion(db_session, seller, max_uses=5)
        fake_gateway.retrieve_payment_intent.return_value = succeeded_intent(
            buyer.id, 35550, promotion_code="CURIO10"
        )

        orders = await service.confirm_order(db_session, buyer.id, "pi_123")

        assert len(orders) == 2
        assert all(o.status == OrderStatus.PAID for o in orders)
        assert sum(o.total for o in orders) == Decimal("355.50")
        discounted = next(o for o in orders if o.seller_id == seller.id)
        assert discounted.promotion_code == "CURIO10"
        assert {i.title: i.quantity for i in discounted.items} == {
            "Victorian taxidermy owl": 2,
            "Brass microscope": 1,
        }

        owl = await db_session.get(Listing, two_shop_cart["owl"].id)
        await db_session.refresh(owl)
        await db_session.refresh(promotion)
        assert owl.quantity == 1
        assert promotion.current_uses == 1
        assert await cart_crud.get_items(db_session, two_shop_cart["cart"].id) == []

    @pytest.mark.asyncio
    async def test_confirm_is_idempotent_per_payment(self, db_session, service, fake_gateway, buyer, two_shop_cart):
        fake_gateway.retrieve_payment_intent.return_value = succeeded_intent(buyer.id, 38750)

        first = await service.confirm_order(db_session, buyer.id, "pi_123")
        second = await service.confirm_order(db_session, buyer.id, "pi_123")

        assert sorted(o.id for o in first) == sorted(o.id for o in second)
        count = (await db_session.execute(select(Order))).scalars().all()
        assert len(count) == 2

    @pytest.mark.asyncio
    async def test_changed_cart_is_refused(self, db_session, service, fake_gateway, buyer, two_shop_cart):
        fake_gateway.retrieve_payment_intent.return_value = succeeded_intent(buyer.id, 100)

        with pytest.raises(CheckoutError) as exc:
            await service.confirm_order(db_session, buyer.id, "pi_123")
        assert exc.value.status_code == 409

    @pytest.mark.asyncio
    async def test_foreign_payment_refused(self, db_session, service, fake_gateway, buyer, two_shop_cart):
        fake_gateway.retrieve_payment_intent.return_value = succeeded_intent("someone-else", 38750)

        with pytest.raises(CheckoutError) as exc:
            await service.confirm_order(db_session, buyer.id, "pi_123")
        assert exc.value.status_code == 403

    @pytest.mark.asyncio
    async def test_unpaid_intent_refused(self, db_session, service, fake_gateway, buyer, two_shop_cart):
        intent = succeeded_intent(buyer.id, 38750)
        intent["status"] = "requires_payment_method"
        fake_gateway.retrieve_payment_intent.return_value = intent

        with pytest.raises(CheckoutError, match="not completed"):
            await service.confirm_order(db_session, buyer.id, "pi_123")

    @pytest.mark.asyncio
    async def test_order_items_are_immutable(self, db_session, service, fake_gateway, buyer, two_shop_cart):
        fake_gateway.retrieve_payment_intent.return_value = succeeded_intent(buyer.id, 38750)
        orders = await service.confirm_order(db_session, buyer.id, "pi_123")

        orders[0].items[0].price = Decimal("1.00")
        with pytest.raises(ImmutableOrderItemError):
            await db_session.flush()


class TestCheckoutEndpoints:

    @pytest.mark.asyncio
    async def test_payment_intent_endpoint(self, client: AsyncClient, buyer, two_shop_cart, fake_gateway, monkeypatch):
        monkeypatch.setattr(checkout_service, "gateway", fake_gateway)
        fake_gateway.create_payment_intent.return_value = {"id": "pi_123", "client_secret": "pi_123_secret"}

        response = await client.post("/api/create-payment-intent", json={}, headers=auth_headers(buyer))

        assert response.status_code == 200
        data = response.json()
        assert data["payment_intent_id"] == "pi_123"
        assert Decimal(str(data["amount"])) == Decimal("387.50")

    @pytest.mark.asyncio
    async def test_bad_code_is_a_client_error(self, client: AsyncClient, buyer, two_shop_cart, fake_gateway, monkeypatch):
        monkeypatch.setattr(checkout_service, "gateway", fake_gateway)

        response = await client.post(
            "/api/create-payment-intent",
            json={"promotion_code": "NOPE"},
            headers=auth_headers(buyer),
        )

        assert response.status_code == 400
        assert "NOPE" in response.json()["error"]

    @pytest.mark.asyncio
    async def test_confirm_endpoint(self, client: AsyncClient, buyer, two_shop_cart, fake_gateway, monkeypatch):
        monkeypatch.setattr(checkout_service, "gateway", fake_gateway)
        fake_gateway.retrieve_payment_intent.return_value = succeeded_intent(buyer.id, 38750)

        response = await client.post(
            "/api/orders/confirm",
            json={"payment_intent_id": "pi_123"},
            headers=auth_headers(buyer),
        )

        assert response.status_code == 200
        assert len(response.json()) == 2
        listed = await client.get("/api/orders", headers=auth_headers(buyer))
        assert len(listed.json()) == 2


def checkout_event(event_id, intent):
    return {"id": event_id, "type": "payment_intent.succeeded", "data": {"object": intent}}


class TestPaymentWebhook:

    @pytest.fixture
    def webhooks(self, fake_gateway, monkeypatch):
        monkeypatch.setattr(checkout_service, "gateway", fake_gateway)
        return SubscriptionService(gateway=fake_gateway, locks=KeyedLockRegistry())

    @pytest.mark.asyncio
    async def test_succeeded_payment_creates_orders(self, db_session, webhooks, fake_gateway, buyer, two_shop_cart):
        fake_gateway.construct_event.return_value = checkout_event(
            "evt_pay_1", succeeded_intent(buyer.id, 38750, kind="checkout")
        )

        assert await webhooks.handle_webhook(db_session, b"{}", "t=1,v1=sig") is True

        orders = (await db_session.execute(select(Order))).scalars().all()
        assert len(orders) == 2
        assert await db_session.get(ProcessedWebhookEvent, "evt_pay_1") is not None
        fake_gateway.create_refund.assert_not_awaited()
        notified = (await db_session.execute(select(Notification))).scalars().all()
        assert sorted(n.link for n in notified) == sorted(f"/seller/orders/{o.id}" for o in orders)
        assert {n.type for n in notified} == {NotificationType.NEW_ORDER}

    @pytest.mark.asyncio
    async def test_promotion_used_up_after_payment_is_refunded(
        self, db_session, webhooks, fake_gateway, buyer, seller, two_shop_cart
    ):
        buyer_id = buyer.id
        promotion = await make_promotion(db_session, seller, max_uses=10, current_uses=9)
        fake_gateway.create_payment_intent.return_value = {"id": "pi_123", "client_secret": "pi_123_secret"}
        quote = await checkout_service.create_payment_intent(db_session, buyer_id, promotion_code="CURIO10")
        assert quote["amount"] == Decimal("355.50")

        # Another buyer takes the last use before Stripe reports the payment
        await db_session.execute(update(Promotion).where(Promotion.id == promotion.id).values(current_uses=10))
        await db_session.commit()

        intent = succeeded_intent(buyer_id, 35550, kind="checkout", promotion_code="CURIO10")
        fake_gateway.construct_event.return_value = checkout_event("evt_pay_2", intent)
        fake_gateway.create_refund.return_value = {"id": "re_1"}

        assert await webhooks.handle_webhook(db_session, b"{}", "t=1,v1=sig") is True

        assert (await db_session.execute(select(Order))).scalars().all() == []
        fake_gateway.create_refund.assert_awaited_once_with("pi_123", idempotency_key="checkout-refund-pi_123")
        refund = await db_session.get(CheckoutRefund, "pi_123")
        assert refund.stripe_refund_id == "re_1"
        assert refund.amount_cents == 35550
        notified = (await db_session.execute(select(Notification))).scalars().one()
        assert (notified.user_id, notified.type) == (buyer_id, NotificationType.ORDER_REFUNDED)
        assert await db_session.get(ProcessedWebhookEvent, "evt_pay_2") is not None

        # The browser confirmation arriving later cannot turn the refunded payment into orders
        fake_gateway.retrieve_payment_intent.return_value = intent
        with pytest.raises(CheckoutError, match="refunded") as exc:
            await checkout_service.confirm_order(db_session, buyer_id, "pi_123")
        assert exc.value.status_code == 409

    @pytest.mark.asyncio
    async def test_failed_refund_leaves_event_for_redelivery(
        self, db_session, webhooks, fake_gateway, buyer, two_shop_cart
    ):
        fake_gateway.construct_event.return_value = checkout_event(
            "evt_pay_3", succeeded_intent(buyer.id, 100, kind="checkout")
        )
        fake_gateway.create_refund.side_effect = stripe.APIConnectionError("network down")

        with pytest.raises(CheckoutError) as exc:
            await webhooks.handle_webhook(db_session, b"{}", "t=1,v1=sig")

        assert exc.value.status_code == 502
        assert await db_session.get(ProcessedWebhookEvent, "evt_pay_3") is None
        assert await db_session.get(CheckoutRefund, "pi_123") is None

    @pytest.mark.asyncio
    async def test_failed_refund_answers_5xx(self, client: AsyncClient, buyer, two_shop_cart, fake_gateway, monkeypatch):
        monkeypatch.setattr(checkout_service, "gateway", fake_gateway)
        monkeypatch.setattr(subscription_service, "gateway", fake_gateway)
        fake_gateway.construct_event.return_value = checkout_event(
            "evt_pay_4", succeeded_intent(buyer.id, 100, kind="checkout")
        )
        fake_gateway.create_refund.side_effect = stripe.APIConnectionError("network down")

        response = await client.post(
            "/api/webhooks/stripe",
            content=b"{}",
            headers={"stripe-signature": "t=1,v1=sig"},
        )

        assert response.status_code == 502
        assert response.json() == {"error": "Payment processor error"}
