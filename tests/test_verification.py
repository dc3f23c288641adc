"""Tests for account verification and the seller review queue."""

from datetime import timedelta

import pytest
from httpx import AsyncClient
from sqlalchemy import select

from conftest import auth_headers, make_seller, make_user
from curio_market.core.config import settings
from curio_market.core.locks import KeyedLockRegistry
from curio_market.db.base import utcnow
from curio_market.models import (
    IdentityVerificationSession,
    ProcessedWebhookEvent,
    QueueDecision,
    QueueStatus,
    Seller,
    SellerVerificationStatus,
    User,
    VerificationAuditLog,
    VerificationRequest,
    VerificationStatus,
    VerificationType,
)
from curio_market.services.subscription_service import SubscriptionService
from curio_market.services.verification_service import (
    VerificationError,
    VerificationService,
    calculate_priority,
    hash_tax_id,
    risk_factors_for,
)

COMPLETE_BUSINESS = {
    "business_name": "Bone & Brass Ltd",
    "business_type": "llc",
    "tax_id": "12-3456789",
    "business_license": "LIC-001",
    "business_address": "1 Museum Row",
    "business_phone": "+15550100",
}


@pytest.fixture
def service(fake_gateway):
    fake_gateway.configured = False
    return VerificationService(gateway=fake_gateway)


class TestPriority:

    def test_complete_submission_goes_first(self):
        factors = risk_factors_for(COMPLETE_BUSINESS)
        assert factors == []
        assert calculate_priority(COMPLETE_BUSINESS, factors) == 2

    def test_missing_documents_push_priority_down(self):
        data = {"business_name": "Anon Oddities"}
        factors = risk_factors_for(data)
        assert set(factors) == {"no_business_license", "no_tax_id", "no_business_address", "no_business_phone"}
        assert calculate_priority(data, factors) == 9

    def test_priority_is_clamped(self):
        data = {"business_name": "Solo", "business_type": "sole_proprietor"}
        assert calculate_priority(data, risk_factors_for(data)) == 10


class TestSellerQueue:

    @pytest.mark.asyncio
    async def test_queue_orders_by_priority(self, db_session, service):
        risky = await make_seller(db_session, await make_user(db_session, "risky"), "Risky Relics")
        solid = await make_seller(db_session, await make_user(db_session, "solid"), "Solid Specimens")

        await service.initiate_seller_verification(db_session, risky.id, {"business_name": "Risky"})
        await service.initiate_seller_verification(db_session, solid.id, COMPLETE_BUSINESS)

        queue = await service.get_verification_queue(db_session)
        assert [item.seller_id for item in queue] == [solid.id, risky.id]

    @pytest.mark.asyncio
    async def test_raw_tax_id_is_never_stored(self, db_session, service, seller):
        item = await service.initiate_seller_verification(db_session, seller.id, COMPLETE_BUSINESS)

        assert "tax_id" not in item.submitted_documents
        assert item.submitted_documents["tax_id_provided"] is True
        refreshed = await db_session.get(Seller, seller.id)
        assert refreshed.tax_id_hash == hash_tax_id("12-3456789")
        assert refreshed.verification_status == SellerVerificationStatus.PENDING

    @pytest.mark.asyncio
    async def test_second_submission_while_pending_conflicts(self, db_session, service, seller):
        await service.initiate_seller_verification(db_session, seller.id, COMPLETE_BUSINESS)

        with pytest.raises(VerificationError) as exc:
            await service.initiate_seller_verification(db_session, seller.id, COMPLETE_BUSINESS)
        assert exc.value.status_code == 409

    @pytest.mark.asyncio
    async def test_approval_is_terminal(self, db_session, service, seller, admin):
        item = await service.initiate_seller_verification(db_session, seller.id, COMPLETE_BUSINESS)

        approved = await service.approve_seller_verification(db_session, item.id, admin.id, "looks good")
        assert approved.status == QueueStatus.COMPLETED
        assert approved.decision == QueueDecision.APPROVED

        for decide in (
            service.approve_seller_verification(db_session, item.id, admin.id),
            service.reject_seller_verification(db_session, item.id, admin.id, "changed my mind"),
        ):
            with pytest.raises(VerificationError) as exc:
                await decide
            assert exc.value.status_code == 409

    @pytest.mark.asyncio
    async def test_approval_raises_level_and_closes_request(self, db_session, service, seller, admin):
        item = await service.initiate_seller_verification(db_session, seller.id, COMPLETE_BUSINESS)
        await service.approve_seller_verification(db_session, item.id, admin.id)

        refreshed = await db_session.get(Seller, seller.id)
        owner = await db_session.get(User, seller.user_id)
        assert refreshed.verification_status == SellerVerificationStatus.APPROVED
        assert refreshed.business_verified is True
        assert owner.verification_level == 4
        assert await service.get_pending_request(db_session, owner.id, VerificationType.BUSINESS) is None

    @pytest.mark.asyncio
    async def test_rejection_records_reason(self, db_session, service, seller, admin):
        item = await service.initiate_seller_verification(db_session, seller.id, {"business_name": "X"})
        rejected = await service.reject_seller_verification(db_session, item.id, admin.id, "No license")

        assert rejected.decision == QueueDecision.REJECTED
        refreshed = await db_session.get(Seller, seller.id)
        assert refreshed.verification_status == SellerVerificationStatus.REJECTED
        assert refreshed.rejection_reason == "No license"

        actions = (await db_session.execute(
            select(VerificationAuditLog.action).where(VerificationAuditLog.user_id == seller.user_id)
        )).scalars().all()
        assert "business_verification_rejected" in actions


class TestCodeVerification:

    @pytest.mark.asyncio
    async def test_new_request_expires_the_pending_one(self, db_session, service, buyer):
        first = await service.initiate_email_verification(db_session, buyer.id)
        second = await service.initiate_email_verification(db_session, buyer.id)

        await db_session.refresh(first)
        assert first.status == VerificationStatus.EXPIRED
        assert second.status == VerificationStatus.PENDING
        pending = (await db_session.execute(
            select(VerificationRequest).where(
                VerificationRequest.user_id == buyer.id,
                VerificationRequest.status == VerificationStatus.PENDING,
            )
        )).scalars().all()
        assert [r.id for r in pending] == [second.id]

    @pytest.mark.asyncio
    async def test_correct_code_verifies_email(self, db_session, service, buyer):
        request = await service.initiate_email_verification(db_session, buyer.id)

        user = await service.verify_email_code(db_session, buyer.id, request.verification_code.lower())

        assert user.email_verified is True
        assert user.verification_level == 1

    @pytest.mark.asyncio
    async def test_level_never_goes_down(self, db_session, service):
        user = await make_user(db_session, "verified-id", verification_level=3)
        request = await service.initiate_email_verification(db_session, user.id)

        user = await service.verify_email_code(db_session, user.id, request.verification_code)

        assert user.verification_level == 3

    @pytest.mark.asyncio
    async def test_attempt_limit_fails_the_request(self, db_session, service, buyer):
        request = await service.initiate_email_verification(db_session, buyer.id)

        for _ in range(settings.MAX_VERIFICATION_ATTEMPTS):
            with pytest.raises(VerificationError, match="Invalid verification code"):
                await service.verify_email_code(db_session, buyer.id, "WRONG000")

        await db_session.refresh(request)
        assert request.status == VerificationStatus.FAILED
        assert request.attempts == settings.MAX_VERIFICATION_ATTEMPTS

        # Even the right code is refused once the request has failed
        with pytest.raises(VerificationError, match="No pending email verification"):
            await service.verify_email_code(db_session, buyer.id, request.verification_code)

    @pytest.mark.asyncio
    async def test_expired_code_rejected(self, db_session, service, buyer):
        request = await service.initiate_phone_verification(db_session, buyer.id, "+15550199")
        request.code_expires_at = utcnow() - timedelta(minutes=1)
        await db_session.flush()

        with pytest.raises(VerificationError, match="expired"):
            await service.verify_phone_code(db_session, buyer.id, request.verification_code)

        await db_session.refresh(request)
        assert request.status == VerificationStatus.EXPIRED

    @pytest.mark.asyncio
    async def test_address_approval_keeps_level(self, db_session, service, buyer, admin):
        request = await service.initiate_address_verification(
            db_session, buyer.id, {"address": "3 Crypt Lane", "city": "Salem", "zip_code": "01970", "country": "US"}
        )

        await service.decide_address_verification(db_session, request.id, admin.id, approved=True)

        user = await db_session.get(User, buyer.id)
        assert user.address_verified is True
        assert user.verification_level == 0
        with pytest.raises(VerificationError) as exc:
            await service.decide_address_verification(db_session, request.id, admin.id, approved=False)
        assert exc.value.status_code == 409


class TestVerificationEndpoints:

    @pytest.mark.asyncio
    async def test_code_hidden_outside_debug(self, client: AsyncClient, buyer, monkeypatch):
        monkeypatch.setattr(settings, "DEBUG", False)

        response = await client.post("/api/verification/email/send", headers=auth_headers(buyer))

        assert response.status_code == 200
        assert response.json()["code"] is None

    @pytest.mark.asyncio
    async def test_send_and_verify_email_in_debug(self, client: AsyncClient, buyer, monkeypatch):
        monkeypatch.setattr(settings, "DEBUG", True)

        sent = await client.post("/api/verification/email/send", headers=auth_headers(buyer))
        code = sent.json()["code"]
        verified = await client.post(
            "/api/verification/email/verify",
            json={"code": code},
            headers=auth_headers(buyer),
        )

        assert verified.status_code == 200
        assert verified.json()["email_verified"] is True

        status = await client.get("/api/verification/status", headers=auth_headers(buyer))
        assert status.json()["verification_level"] == 1

    @pytest.mark.asyncio
    async def test_admin_queue_flow(self, client: AsyncClient, seller_user, seller, admin):
        submitted = await client.post(
            "/api/seller/verification",
            json=COMPLETE_BUSINESS,
            headers=auth_headers(seller_user),
        )
        assert submitted.status_code == 201
        queue_id = submitted.json()["id"]

        queue = await client.get("/api/admin/verification/queue", headers=auth_headers(admin))
        assert [item["id"] for item in queue.json()] == [queue_id]

        approved = await client.post(
            f"/api/admin/verification/queue/{queue_id}/approve",
            json={"notes": "ok"},
            headers=auth_headers(admin),
        )
        again = await client.post(
            f"/api/admin/verification/queue/{queue_id}/reject",
            json={"reason": "late"},
            headers=auth_headers(admin),
        )

        assert approved.status_code == 200
        assert again.status_code == 409

    @pytest.mark.asyncio
    async def test_queue_requires_admin(self, client: AsyncClient, buyer):
        response = await client.get("/api/admin/verification/queue", headers=auth_headers(buyer))
        assert response.status_code == 403


class TestIdentityWebhook:

    @pytest.mark.asyncio
    async def test_verified_session_marks_user_verified(self, db_session, fake_gateway, buyer):
        buyer_id = buyer.id
        db_session.add(IdentityVerificationSession(user_id=buyer_id, provider_session_id="vs_1"))
        await db_session.commit()
        fake_gateway.construct_event.return_value = {
            "id": "evt_identity_1",
            "type": "identity.verification_session.verified",
            "data": {"object": {"id": "vs_1", "metadata": {}}},
        }
        webhooks = SubscriptionService(gateway=fake_gateway, locks=KeyedLockRegistry())

        assert await webhooks.handle_webhook(db_session, b"{}", "t=1,v1=sig") is True

        user = await db_session.get(User, buyer_id)
        assert user.identity_verified is True
        assert user.verification_level >= 3
        session = (await db_session.execute(select(IdentityVerificationSession))).scalars().one()
        assert session.status == "verified"
        assert await db_session.get(ProcessedWebhookEvent, "evt_identity_1") is not None

    @pytest.mark.asyncio
    async def test_unknown_session_is_acknowledged(self, db_session, fake_gateway, buyer):
        buyer_id = buyer.id
        fake_gateway.construct_event.return_value = {
            "id": "evt_identity_2",
            "type": "identity.verification_session.verified",
            "data": {"object": {"id": "vs_missing", "metadata": {}}},
        }
        webhooks = SubscriptionService(gateway=fake_gateway, locks=KeyedLockRegistry())

        assert await webhooks.handle_webhook(db_session, b"{}", "t=1,v1=sig") is True

        user = await db_session.get(User, buyer_id)
        assert not user.identity_verified
