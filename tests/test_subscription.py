"""Tests for the seller subscription lifecycle and Stripe webhooks."""

import asyncio

import pytest
import stripe
from httpx import AsyncClient

from conftest import auth_headers, make_user
from curio_market.core.locks import KeyedLockRegistry
from curio_market.models import ProcessedWebhookEvent, SubscriptionState, User, UserRole
from curio_market.services.subscription_service import (
    SubscriptionError,
    SubscriptionService,
    apply_state,
    subscription_service,
)

S = SubscriptionState


@pytest.fixture
def service(fake_gateway):
    return SubscriptionService(gateway=fake_gateway, locks=KeyedLockRegistry())


async def subscriber(db, state=S.INCOMPLETE, role=UserRole.BUYER, **fields) -> User:
    return await make_user(
        db,
        "sub-user",
        role=role,
        subscription_status=state,
        stripe_customer_id=fields.pop("stripe_customer_id", "cus_1"),
        stripe_subscription_id=fields.pop("stripe_subscription_id", "sub_1"),
        **fields,
    )


class TestApplyState:

    def test_paid_state_grants_seller_role(self):
        user = User(id="u1", role=UserRole.BUYER, subscription_status=S.INCOMPLETE)
        assert apply_state(user, S.ACTIVE, source="test") is True
        assert user.role == UserRole.SELLER

    def test_admin_keeps_admin_role(self):
        user = User(id="u1", role=UserRole.ADMIN, subscription_status=S.NONE)
        apply_state(user, S.ACTIVE, source="test")
        assert user.role == UserRole.ADMIN

    def test_late_incomplete_after_active_is_ignored(self):
        user = User(id="u1", role=UserRole.SELLER, subscription_status=S.ACTIVE)
        assert apply_state(user, S.INCOMPLETE, source="webhook") is False
        assert user.subscription_status == S.ACTIVE

    def test_cancel_demotes_seller(self):
        user = User(id="u1", role=UserRole.SELLER, subscription_status=S.ACTIVE)
        apply_state(user, S.CANCELED, source="test")
        assert user.role == UserRole.BUYER

    def test_canceled_can_restart(self):
        user = User(id="u1", role=UserRole.BUYER, subscription_status=S.CANCELED)
        assert apply_state(user, S.INCOMPLETE, source="create") is True


class TestCheckStatus:

    @pytest.mark.asyncio
    async def test_seller_role_is_trusted(self, db_session, service, fake_gateway):
        # Processor says canceled, but the stored seller role wins
        user = await subscriber(db_session, state=S.CANCELED, role=UserRole.SELLER)
        fake_gateway.retrieve_subscription.return_value = {"id": "sub_1", "status": "canceled"}

        result = await service.check_status(db_session, user.id)

        assert result["active"] is True
        assert result["reason"] == "seller_role"
        fake_gateway.retrieve_subscription.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_incomplete_with_payment_method_counts_as_active(self, db_session, service, fake_gateway):
        user = await subscriber(db_session)
        fake_gateway.retrieve_subscription.return_value = {
            "id": "sub_1",
            "status": "incomplete",
            "default_payment_method": "pm_1",
        }

        result = await service.check_status(db_session, user.id)

        assert result["active"] is True
        assert result["reason"] == "payment_method_attached"

    @pytest.mark.asyncio
    async def test_saved_card_is_attached_and_rechecked(self, db_session, service, fake_gateway):
        user = await subscriber(db_session)
        fake_gateway.retrieve_subscription.side_effect = [
            {"id": "sub_1", "status": "incomplete", "default_payment_method": None},
            {"id": "sub_1", "status": "active", "default_payment_method": "pm_saved"},
        ]
        fake_gateway.list_card_payment_methods.return_value = [{"id": "pm_saved"}]

        result = await service.check_status(db_session, user.id)

        assert result == {"active": True, "reason": "subscription_active", "status": S.ACTIVE}
        fake_gateway.modify_subscription.assert_awaited_once_with("sub_1", default_payment_method="pm_saved")
        refreshed = await db_session.get(User, user.id)
        assert refreshed.subscription_status == S.ACTIVE
        assert refreshed.role == UserRole.SELLER

    @pytest.mark.asyncio
    async def test_processor_outage_falls_back_to_local_state(self, db_session, service, fake_gateway):
        user = await subscriber(db_session, state=S.PAST_DUE)
        fake_gateway.retrieve_subscription.side_effect = stripe.APIConnectionError("network down")

        result = await service.check_status(db_session, user.id)

        assert result["active"] is False
        assert result["reason"] == "processor_unavailable"


class TestCreateSubscription:

    @pytest.mark.asyncio
    async def test_new_subscription_gets_setup_intent(self, db_session, service, fake_gateway):
        user = await make_user(db_session, "fresh-user")
        fake_gateway.create_customer.return_value = {"id": "cus_new"}
        fake_gateway.create_subscription.return_value = {
            "id": "sub_new",
            "status": "incomplete",
            "latest_invoice": None,
            "pending_setup_intent": None,
        }
        fake_gateway.create_setup_intent.return_value = {"client_secret": "seti_secret"}

        result = await service.create_subscription(db_session, user.id)

        assert result["subscription_id"] == "sub_new"
        assert result["client_secret"] == "seti_secret"
        assert result["intent_type"] == "setup"
        refreshed = await db_session.get(User, user.id)
        assert refreshed.stripe_customer_id == "cus_new"
        assert refreshed.stripe_subscription_id == "sub_new"
        assert refreshed.subscription_status == S.INCOMPLETE

    @pytest.mark.asyncio
    async def test_incomplete_subscription_is_reused(self, db_session, service, fake_gateway):
        user = await subscriber(db_session)
        fake_gateway.retrieve_subscription.return_value = {
            "id": "sub_1",
            "status": "incomplete",
            "latest_invoice": {"payment_intent": {"client_secret": "pi_secret"}},
        }

        result = await service.create_subscription(db_session, user.id)

        assert result["client_secret"] == "pi_secret"
        assert result["intent_type"] == "payment"
        fake_gateway.create_subscription.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_past_due_subscription_is_settled_not_replaced(self, db_session, service, fake_gateway):
        user = await subscriber(db_session, state=S.PAST_DUE, role=UserRole.SELLER)
        fake_gateway.retrieve_subscription.return_value = {
            "id": "sub_1",
            "status": "past_due",
            "latest_invoice": {"payment_intent": {"client_secret": "pi_owed_secret"}},
        }

        result = await service.create_subscription(db_session, user.id)

        assert result["subscription_id"] == "sub_1"
        assert result["client_secret"] == "pi_owed_secret"
        assert result["intent_type"] == "payment"
        assert result["status"] == S.PAST_DUE
        fake_gateway.create_subscription.assert_not_awaited()
        fake_gateway.create_setup_intent.assert_not_awaited()
        refreshed = await db_session.get(User, user.id, populate_existing=True)
        assert refreshed.stripe_subscription_id == "sub_1"
        assert refreshed.subscription_status == S.PAST_DUE

    @pytest.mark.asyncio
    async def test_unpaid_subscription_is_not_duplicated(self, db_session, service, fake_gateway):
        user = await subscriber(db_session, state=S.UNPAID)
        fake_gateway.retrieve_subscription.return_value = {"id": "sub_1", "status": "unpaid", "latest_invoice": None}

        result = await service.create_subscription(db_session, user.id)

        assert result["subscription_id"] == "sub_1"
        assert result["status"] == S.UNPAID
        fake_gateway.create_subscription.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_canceled_subscription_is_replaced(self, db_session, service, fake_gateway):
        user = await subscriber(db_session, state=S.CANCELED)
        fake_gateway.retrieve_subscription.return_value = {"id": "sub_1", "status": "canceled"}
        fake_gateway.create_subscription.return_value = {
            "id": "sub_new",
            "status": "incomplete",
            "latest_invoice": {"payment_intent": {"client_secret": "pi_new_secret"}},
        }

        result = await service.create_subscription(db_session, user.id)

        assert result["subscription_id"] == "sub_new"
        assert result["status"] == S.INCOMPLETE
        refreshed = await db_session.get(User, user.id, populate_existing=True)
        assert refreshed.stripe_subscription_id == "sub_new"
        assert refreshed.subscription_status == S.INCOMPLETE

    @pytest.mark.asyncio
    async def test_user_without_email_rejected(self, db_session, service):
        user = await make_user(db_session, "no-email", email=None)

        with pytest.raises(SubscriptionError) as exc:
            await service.create_subscription(db_session, user.id)
        assert exc.value.status_code == 400


class TestActivateSubscription:

    @pytest.fixture
    def stripe_activation(self, fake_gateway):
        fake_gateway.retrieve_setup_intent.return_value = {
            "id": "seti_1",
            "status": "succeeded",
            "customer": "cus_1",
            "payment_method": "pm_1",
        }
        fake_gateway.retrieve_payment_method.return_value = {"id": "pm_1", "customer": None}
        fake_gateway.list_open_invoices.return_value = [{"id": "in_1", "status": "open"}]
        fake_gateway.retrieve_subscription.return_value = {"id": "sub_1", "status": "active"}
        return fake_gateway

    @pytest.mark.asyncio
    async def test_repeat_activation_touches_stripe_once(self, db_session, service, stripe_activation):
        user = await subscriber(db_session)

        first = await service.activate_subscription(db_session, user.id, "seti_1")
        second = await service.activate_subscription(db_session, user.id, "seti_1")

        assert first == second == {"success": True, "status": S.ACTIVE, "role": "seller"}
        assert stripe_activation.attach_payment_method.await_count == 1
        assert stripe_activation.pay_invoice.await_count == 1

    @pytest.mark.asyncio
    async def test_concurrent_activations_are_serialized(self, db_session, service, stripe_activation):
        user = await subscriber(db_session)

        await asyncio.gather(
            service.activate_subscription(db_session, user.id, "seti_1"),
            service.activate_subscription(db_session, user.id, "seti_1"),
        )

        assert stripe_activation.attach_payment_method.await_count == 1
        assert stripe_activation.pay_invoice.await_count == 1

    @pytest.mark.asyncio
    async def test_already_attached_method_is_not_reattached(self, db_session, service, stripe_activation):
        user = await subscriber(db_session)
        stripe_activation.retrieve_payment_method.return_value = {"id": "pm_1", "customer": "cus_1"}

        await service.activate_subscription(db_session, user.id, "seti_1")

        stripe_activation.attach_payment_method.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_foreign_setup_intent_rejected(self, db_session, service, stripe_activation):
        user = await subscriber(db_session)
        stripe_activation.retrieve_setup_intent.return_value = {
            "id": "seti_1",
            "status": "succeeded",
            "customer": "cus_someone_else",
            "payment_method": "pm_1",
        }

        with pytest.raises(SubscriptionError) as exc:
            await service.activate_subscription(db_session, user.id, "seti_1")
        assert exc.value.status_code == 403

    @pytest.mark.asyncio
    async def test_failed_invoice_payment_is_not_retried(self, db_session, service, stripe_activation):
        user = await subscriber(db_session)
        stripe_activation.pay_invoice.side_effect = stripe.CardError("declined", param=None, code="card_declined")
        stripe_activation.retrieve_subscription.return_value = {"id": "sub_1", "status": "incomplete"}

        result = await service.activate_subscription(db_session, user.id, "seti_1")

        assert result["success"] is False
        assert stripe_activation.pay_invoice.await_count == 1


def subscription_event(event_id: str, status: str, subscription_id: str = "sub_1") -> dict:
    return {
        "id": event_id,
        "type": "customer.subscription.updated",
        "data": {
            "object": {
                "id": subscription_id,
                "object": "subscription",
                "status": status,
                "customer": "cus_1",
                "metadata": {},
            }
        },
    }


class TestWebhooks:

    @pytest.mark.asyncio
    async def test_redelivery_is_skipped(self, db_session, service, fake_gateway):
        user = await subscriber(db_session)
        fake_gateway.construct_event.return_value = subscription_event("evt_1", "active")

        assert await service.handle_webhook(db_session, b"{}", "t=1,v1=sig") is True
        assert await service.handle_webhook(db_session, b"{}", "t=1,v1=sig") is False

        refreshed = await db_session.get(User, user.id)
        assert refreshed.subscription_status == S.ACTIVE
        assert await db_session.get(ProcessedWebhookEvent, "evt_1") is not None

    @pytest.mark.asyncio
    async def test_late_incomplete_event_does_not_downgrade(self, db_session, service, fake_gateway):
        user = await subscriber(db_session, state=S.ACTIVE, role=UserRole.SELLER)
        fake_gateway.construct_event.return_value = subscription_event("evt_2", "incomplete")

        await service.handle_webhook(db_session, b"{}", "t=1,v1=sig")

        refreshed = await db_session.get(User, user.id, populate_existing=True)
        assert refreshed.subscription_status == S.ACTIVE
        assert refreshed.role == UserRole.SELLER

    @pytest.mark.asyncio
    async def test_event_for_stale_subscription_ignored(self, db_session, service, fake_gateway):
        user = await subscriber(db_session, state=S.ACTIVE, role=UserRole.SELLER, stripe_subscription_id="sub_2")
        event = subscription_event("evt_3", "canceled", subscription_id="sub_1")
        event["type"] = "customer.subscription.deleted"
        fake_gateway.construct_event.return_value = event

        await service.handle_webhook(db_session, b"{}", "t=1,v1=sig")

        refreshed = await db_session.get(User, user.id, populate_existing=True)
        assert refreshed.subscription_status == S.ACTIVE

    @pytest.mark.asyncio
    async def test_bad_signature_returns_400(self, client: AsyncClient, fake_gateway, monkeypatch):
        monkeypatch.setattr(subscription_service, "gateway", fake_gateway)
        fake_gateway.construct_event.side_effect = stripe.SignatureVerificationError("bad", "t=1,v1=nope")

        response = await client.post(
            "/api/webhooks/stripe",
            content=b'{"id": "evt_x"}',
            headers={"stripe-signature": "t=1,v1=nope"},
        )

        assert response.status_code == 400
        assert response.json() == {"error": "Webhook signature verification failed"}

    @pytest.mark.asyncio
    async def test_missing_signature_returns_400(self, client: AsyncClient):
        response = await client.post("/api/webhooks/stripe", content=b"{}")
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_webhook_endpoint_acknowledges(self, client: AsyncClient, db_session, fake_gateway, monkeypatch):
        await subscriber(db_session)
        monkeypatch.setattr(subscription_service, "gateway", fake_gateway)
        fake_gateway.construct_event.return_value = subscription_event("evt_4", "active")

        response = await client.post(
            "/api/webhooks/stripe",
            content=b"{}",
            headers={"stripe-signature": "t=1,v1=sig"},
        )

        assert response.status_code == 200
        assert response.json() == {"received": True}


class TestSubscriptionEndpoints:

    @pytest.mark.asyncio
    async def test_status_endpoint(self, client: AsyncClient, seller_user):
        response = await client.get("/api/subscription/status", headers=auth_headers(seller_user))

        assert response.status_code == 200
        assert response.json()["active"] is True
        assert response.json()["reason"] == "seller_role"

    @pytest.mark.asyncio
    async def test_create_without_stripe_is_500(self, client: AsyncClient, buyer, monkeypatch, fake_gateway):
        fake_gateway.configured = False
        monkeypatch.setattr(subscription_service, "gateway", fake_gateway)

        response = await client.post("/api/subscription/create", headers=auth_headers(buyer))

        assert response.status_code == 500
        assert response.json()["error"] == "Stripe not configured"
