"""User verification and the seller business-review queue.

Verification levels:
    1 email, 2 phone, 3 identity, 4 approved business
Levels only go up. Each (user, type) has at most one pending request: a
new one expires whatever was pending before it.
"""

import hashlib
import secrets
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Dict, List, Optional

import stripe
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from curio_market.core.circuit_breaker import CircuitOpenError
from curio_market.core.config import settings
from curio_market.core.logging import get_logger
from curio_market.crud.user import user_crud
from curio_market.db.base import utcnow
from curio_market.models.seller import Seller, SellerVerificationStatus
from curio_market.models.user import User
from curio_market.models.verification import (
    IdentityVerificationSession,
    QueueDecision,
    QueueStatus,
    SellerReviewQueueItem,
    VerificationAuditLog,
    VerificationRequest,
    VerificationStatus,
    VerificationType,
)
from curio_market.services.email_service import email_service
from curio_market.services.stripe_gateway import StripeGateway, stripe_gateway

logger = get_logger(__name__)

LEVEL_EMAIL = 1
LEVEL_PHONE = 2
LEVEL_IDENTITY = 3
LEVEL_BUSINESS = 4

BASE_PRIORITY = 5
MIN_PRIORITY = 1
MAX_PRIORITY = 10


class VerificationError(Exception):
    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


@dataclass
class ClientInfo:
    """Where an action came from, for the audit log."""
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None


def hash_tax_id(tax_id: str) -> str:
    return hashlib.sha256(tax_id.strip().encode("utf-8")).hexdigest()


def risk_factors_for(business_data: Dict[str, Any]) -> List[str]:
    factors = []
    if not business_data.get("business_license"):
        factors.append("no_business_license")
    if not business_data.get("tax_id"):
        factors.append("no_tax_id")
    if (business_data.get("business_type") or "").lower() == "sole_proprietor":
        factors.append("sole_proprietor")
    if not business_data.get("business_address"):
        factors.append("no_business_address")
    if not business_data.get("business_phone"):
        factors.append("no_business_phone")
    return factors


def calculate_priority(business_data: Dict[str, Any], risk_factors: List[str]) -> int:
    """
    Review priority, 1 (first) to 10 (last).

    Complete submissions move up, each risk factor moves the item down.
    """
    priority = BASE_PRIORITY
    for field in ("business_license", "tax_id", "business_address"):
        if business_data.get(field):
            priority -= 1
    priority += len(risk_factors)
    return max(MIN_PRIORITY, min(MAX_PRIORITY, priority))


class VerificationService:

    def __init__(self, gateway: Optional[StripeGateway] = None):
        self.gateway = gateway or stripe_gateway

    # ── helpers ────────────────────────────────────────────────────────────

    async def _audit(
        self,
        db: AsyncSession,
        user_id: str,
        action: str,
        *,
        action_by: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        client: Optional[ClientInfo] = None,
    ) -> None:
        client = client or ClientInfo()
        db.add(VerificationAuditLog(
            user_id=user_id,
            action=action,
            action_by=action_by or user_id,
            details=details,
            ip_address=client.ip_address,
            user_agent=client.user_agent,
        ))
        await db.flush()

    async def _get_user(self, db: AsyncSession, user_id: str) -> User:
        user = await user_crud.get(db, user_id)
        if user is None:
            raise VerificationError("User not found", status_code=404)
        return user

    async def _expire_pending(self, db: AsyncSession, user_id: str, vtype: VerificationType) -> None:
        await db.execute(
            update(VerificationRequest)
            .where(
                VerificationRequest.user_id == user_id,
                VerificationRequest.type == vtype,
                VerificationRequest.status == VerificationStatus.PENDING,
            )
            .values(status=VerificationStatus.EXPIRED, updated_at=utcnow())
            .execution_options(synchronize_session="fetch")
        )

    async def _new_request(
        self,
        db: AsyncSession,
        user_id: str,
        vtype: VerificationType,
        **fields,
    ) -> VerificationRequest:
        await self._expire_pending(db, user_id, vtype)
        request = VerificationRequest(user_id=user_id, type=vtype, **fields)
        db.add(request)
        await db.flush()
        return request

    async def get_pending_request(
        self,
        db: AsyncSession,
        user_id: str,
        vtype: VerificationType,
    ) -> Optional[VerificationRequest]:
        result = await db.execute(
            select(VerificationRequest)
            .where(
                VerificationRequest.user_id == user_id,
                VerificationRequest.type == vtype,
                VerificationRequest.status == VerificationStatus.PENDING,
            )
            .order_by(VerificationRequest.created_at.desc())
        )
        return result.scalars().first()

    async def _check_code(
        self,
        db: AsyncSession,
        user_id: str,
        vtype: VerificationType,
        code: str,
    ) -> VerificationRequest:
        """
        Match ``code`` against the pending request of this type.

        Failed attempts are committed before the error is raised, otherwise
        the request's rollback would forget them.
        """
        request = await self.get_pending_request(db, user_id, vtype)
        if request is None:
            raise VerificationError(f"No pending {vtype.value} verification")

        if request.code_expires_at and request.code_expires_at < utcnow():
            request.status = VerificationStatus.EXPIRED
            await db.commit()
            raise VerificationError("Verification code has expired")

        expected = (request.verification_code or "").upper().encode("utf-8")
        if not secrets.compare_digest(expected, code.strip().upper().encode("utf-8")):
            request.attempts += 1
            if request.attempts >= settings.MAX_VERIFICATION_ATTEMPTS:
                request.status = VerificationStatus.FAILED
                logger.warning(f"{vtype.value} verification for user {user_id} failed after {request.attempts} attempts")
            await self._audit(db, user_id, f"{vtype.value}_verification_failed", details={"attempts": request.attempts})
            await db.commit()
            raise VerificationError("Invalid verification code")

        request.status = VerificationStatus.VERIFIED
        request.reviewed_at = utcnow()
        return request

    # ── email ──────────────────────────────────────────────────────────────

    async def initiate_email_verification(
        self,
        db: AsyncSession,
        user_id: str,
        client: Optional[ClientInfo] = None,
    ) -> VerificationRequest:
        user = await self._get_user(db, user_id)
        if not user.email:
            raise VerificationError("User has no email address")

        code = secrets.token_hex(4).upper()
        request = await self._new_request(
            db,
            user_id,
            VerificationType.EMAIL,
            verification_code=code,
            code_expires_at=utcnow() + timedelta(hours=settings.EMAIL_CODE_TTL_HOURS),
            data={"email": user.email},
        )
        await self._audit(db, user_id, "email_verification_initiated", client=client)
        await email_service.send_verification_code(user.email, code, f"{settings.EMAIL_CODE_TTL_HOURS} hours")
        logger.info(f"Email verification started for user {user_id}")
        return request

    async def verify_email_code(
        self,
        db: AsyncSession,
        user_id: str,
        code: str,
        client: Optional[ClientInfo] = None,
    ) -> User:
        user = await self._get_user(db, user_id)
        await self._check_code(db, user_id, VerificationType.EMAIL, code)
        user.email_verified = True
        await user_crud.raise_verification_level(db, user, LEVEL_EMAIL)
        await self._audit(db, user_id, "email_verified", client=client)
        return user

    # ── phone ──────────────────────────────────────────────────────────────

    async def initiate_phone_verification(
        self,
        db: AsyncSession,
        user_id: str,
        phone_number: str,
        client: Optional[ClientInfo] = None,
    ) -> VerificationRequest:
        user = await self._get_user(db, user_id)
        user.phone_number = phone_number
        user.phone_verified = False

        code = secrets.token_hex(3).upper()
        request = await self._new_request(
            db,
            user_id,
            VerificationType.PHONE,
            verification_code=code,
            code_expires_at=utcnow() + timedelta(minutes=settings.PHONE_CODE_TTL_MINUTES),
            data={"phone_number": phone_number},
        )
        await self._audit(db, user_id, "phone_verification_initiated", details={"phone_number": phone_number}, client=client)
        # No SMS provider is wired in; the code goes out by email
        if user.email:
            await email_service.send_verification_code(user.email, code, f"{settings.PHONE_CODE_TTL_MINUTES} minutes")
        return request

    async def verify_phone_code(
        self,
        db: AsyncSession,
        user_id: str,
        code: str,
        client: Optional[ClientInfo] = None,
    ) -> User:
        user = await self._get_user(db, user_id)
        await self._check_code(db, user_id, VerificationType.PHONE, code)
        user.phone_verified = True
        await user_crud.raise_verification_level(db, user, LEVEL_PHONE)
        await self._audit(db, user_id, "phone_verified", client=client)
        return user

    # ── identity ───────────────────────────────────────────────────────────

    async def initiate_identity_verification(
        self,
        db: AsyncSession,
        user_id: str,
        client: Optional[ClientInfo] = None,
    ) -> IdentityVerificationSession:
        """Start an identity check; Stripe Identity when configured, else a local session."""
        await self._get_user(db, user_id)
        session = IdentityVerificationSession(user_id=user_id)
        db.add(session)
        await db.flush()

        if self.gateway.configured:
            try:
                provider = await self.gateway.create_identity_session(
                    user_id=user_id,
                    session_id=session.id,
                    return_url=f"{settings.PUBLIC_BASE_URL}/verification",
                )
            except (stripe.StripeError, CircuitOpenError) as e:
                logger.error(f"Identity session creation failed for user {user_id}: {e}")
                raise VerificationError("Identity provider unavailable", status_code=502) from e
            session.provider_session_id = provider["id"]
            session.url = provider.get("url")
            session.status = provider.get("status") or session.status

        await self._new_request(
            db,
            user_id,
            VerificationType.IDENTITY,
            data={"session_id": session.id, "provider_session_id": session.provider_session_id},
        )
        await self._audit(db, user_id, "identity_verification_initiated", details={"session_id": session.id}, client=client)
        await db.flush()
        return session

    async def complete_identity_verification(
        self,
        db: AsyncSession,
        *,
        provider_session_id: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Optional[User]:
        """Provider confirmed the identity check. Called from the webhook handler."""
        metadata = metadata or {}
        result = await db.execute(
            select(IdentityVerificationSession)
            .where(IdentityVerificationSession.provider_session_id == provider_session_id)
        )
        session = result.scalars().first()
        if session is None and metadata.get("session_id"):
            session = await db.get(IdentityVerificationSession, metadata["session_id"])
        if session is None:
            logger.warning(f"Identity confirmation for unknown session {provider_session_id}")
            return None

        session.status = "verified"
        user = await self._get_user(db, session.user_id)
        user.identity_verified = True
        await user_crud.raise_verification_level(db, user, LEVEL_IDENTITY)

        request = await self.get_pending_request(db, user.id, VerificationType.IDENTITY)
        if request is not None:
            request.status = VerificationStatus.VERIFIED
            request.reviewed_at = utcnow()

        await self._audit(
            db,
            user.id,
            "identity_verified",
            action_by="stripe_identity",
            details={"provider_session_id": provider_session_id},
        )
        logger.info(f"Identity verified for user {user.id}")
        return user

    # ── address ────────────────────────────────────────────────────────────

    async def initiate_address_verification(
        self,
        db: AsyncSession,
        user_id: str,
        address: Dict[str, Any],
        client: Optional[ClientInfo] = None,
    ) -> VerificationRequest:
        user = await self._get_user(db, user_id)
        user.address = address.get("address")
        user.city = address.get("city")
        user.state = address.get("state")
        user.zip_code = address.get("zip_code")
        user.country = address.get("country")
        user.address_verified = False

        request = await self._new_request(db, user_id, VerificationType.ADDRESS, data=address)
        await self._audit(db, user_id, "address_verification_initiated", client=client)
        return request

    async def decide_address_verification(
        self,
        db: AsyncSession,
        request_id: str,
        admin_id: str,
        *,
        approved: bool,
        notes: Optional[str] = None,
        client: Optional[ClientInfo] = None,
    ) -> VerificationRequest:
        request = await db.get(VerificationRequest, request_id)
        if request is None or request.type != VerificationType.ADDRESS:
            raise VerificationError("Address verification request not found", status_code=404)
        if request.status != VerificationStatus.PENDING:
            raise VerificationError(f"Request already {request.status.value}", status_code=409)

        request.status = VerificationStatus.VERIFIED if approved else VerificationStatus.REJECTED
        request.reviewed_at = utcnow()
        request.reviewed_by = admin_id
        if approved:
            user = await self._get_user(db, request.user_id)
            user.address_verified = True

        await self._audit(
            db,
            request.user_id,
            "address_approved" if approved else "address_rejected",
            action_by=admin_id,
            details={"request_id": request.id, "notes": notes},
            client=client,
        )
        return request

    # ── seller business verification ──────────────────────────────────────

    async def initiate_seller_verification(
        self,
        db: AsyncSession,
        seller_id: str,
        business_data: Dict[str, Any],
        client: Optional[ClientInfo] = None,
    ) -> SellerReviewQueueItem:
        seller = await db.get(Seller, seller_id)
        if seller is None:
            raise VerificationError("Seller not found", status_code=404)
        if seller.verification_status == SellerVerificationStatus.PENDING:
            raise VerificationError("Verification already pending", status_code=409)

        risk_factors = risk_factors_for(business_data)
        priority = calculate_priority(business_data, risk_factors)

        seller.business_name = business_data.get("business_name")
        seller.business_type = business_data.get("business_type")
        seller.business_license = business_data.get("business_license")
        seller.business_address = business_data.get("business_address")
        seller.business_phone = business_data.get("business_phone")
        seller.business_email = business_data.get("business_email")
        if business_data.get("tax_id"):
            seller.tax_id_hash = hash_tax_id(business_data["tax_id"])
        seller.verification_status = SellerVerificationStatus.PENDING
        seller.rejection_reason = None
        seller.risk_score = len(risk_factors)

        # The raw tax id never leaves this function
        submitted = {k: v for k, v in business_data.items() if k != "tax_id" and v}
        if business_data.get("tax_id"):
            submitted["tax_id_provided"] = True

        item = SellerReviewQueueItem(
            seller_id=seller.id,
            priority=priority,
            risk_factors=risk_factors,
            submitted_documents=submitted,
        )
        db.add(item)
        await db.flush()

        await self._new_request(
            db,
            seller.user_id,
            VerificationType.BUSINESS,
            data={"seller_id": seller.id, "queue_id": item.id},
            documents=business_data.get("documents") or [],
        )

        await self._audit(
            db,
            seller.user_id,
            "business_verification_submitted",
            details={"queue_id": item.id, "priority": priority, "risk_factors": risk_factors},
            client=client,
        )
        logger.info(f"Seller {seller.id} queued for review (priority {priority}, risk {risk_factors})")
        return item

    async def get_verification_queue(
        self,
        db: AsyncSession,
        status: QueueStatus = QueueStatus.PENDING,
        priority: Optional[int] = None,
        skip: int = 0,
        limit: int = 50,
    ) -> List[SellerReviewQueueItem]:
        stmt = select(SellerReviewQueueItem).where(SellerReviewQueueItem.status == status)
        if priority is not None:
            stmt = stmt.where(SellerReviewQueueItem.priority == priority)
        stmt = (
            stmt.order_by(SellerReviewQueueItem.priority.asc(), SellerReviewQueueItem.created_at.asc())
            .offset(skip)
            .limit(limit)
        )
        result = await db.execute(stmt)
        return list(result.scalars().all())

    async def _open_queue_item(self, db: AsyncSession, queue_id: str) -> SellerReviewQueueItem:
        item = await db.get(SellerReviewQueueItem, queue_id)
        if item is None:
            raise VerificationError("Queue item not found", status_code=404)
        if item.is_completed:
            raise VerificationError(
                f"Queue item already {item.decision.value if item.decision else 'completed'}",
                status_code=409,
            )
        return item

    async def _close_business_request(
        self,
        db: AsyncSession,
        user_id: str,
        status: VerificationStatus,
        admin_id: str,
    ) -> None:
        request = await self.get_pending_request(db, user_id, VerificationType.BUSINESS)
        if request is not None:
            request.status = status
            request.reviewed_at = utcnow()
            request.reviewed_by = admin_id

    async def approve_seller_verification(
        self,
        db: AsyncSession,
        queue_id: str,
        admin_id: str,
        notes: Optional[str] = None,
        client: Optional[ClientInfo] = None,
    ) -> SellerReviewQueueItem:
        item = await self._open_queue_item(db, queue_id)
        seller = await db.get(Seller, item.seller_id)

        now = utcnow()
        item.status = QueueStatus.COMPLETED
        item.decision = QueueDecision.APPROVED
        item.review_notes = notes
        item.assigned_to = admin_id
        item.reviewed_at = now

        seller.verification_status = SellerVerificationStatus.APPROVED
        seller.business_verified = True
        seller.verified_at = now
        seller.verified_by = admin_id
        seller.rejection_reason = None

        user = await self._get_user(db, seller.user_id)
        await user_crud.raise_verification_level(db, user, LEVEL_BUSINESS)
        await self._close_business_request(db, user.id, VerificationStatus.VERIFIED, admin_id)

        await self._audit(
            db,
            user.id,
            "business_verification_approved",
            action_by=admin_id,
            details={"queue_id": item.id, "notes": notes},
            client=client,
        )
        logger.info(f"Seller {seller.id} approved by {admin_id}")
        return item

    async def reject_seller_verification(
        self,
        db: AsyncSession,
        queue_id: str,
        admin_id: str,
        reason: str,
        client: Optional[ClientInfo] = None,
    ) -> SellerReviewQueueItem:
        item = await self._open_queue_item(db, queue_id)
        seller = await db.get(Seller, item.seller_id)

        item.status = QueueStatus.COMPLETED
        item.decision = QueueDecision.REJECTED
        item.decision_reason = reason
        item.assigned_to = admin_id
        item.reviewed_at = utcnow()

        seller.verification_status = SellerVerificationStatus.REJECTED
        seller.business_verified = False
        seller.rejection_reason = reason

        await self._close_business_request(db, seller.user_id, VerificationStatus.REJECTED, admin_id)
        await self._audit(
            db,
            seller.user_id,
            "business_verification_rejected",
            action_by=admin_id,
            details={"queue_id": item.id, "reason": reason},
            client=client,
        )
        logger.info(f"Seller {seller.id} rejected by {admin_id}: {reason}")
        return item

    # ── status ─────────────────────────────────────────────────────────────

    async def get_user_verification_status(self, db: AsyncSession, user_id: str) -> Dict[str, Any]:
        user = await self._get_user(db, user_id)
        result = await db.execute(
            select(VerificationRequest)
            .where(
                VerificationRequest.user_id == user_id,
                VerificationRequest.status == VerificationStatus.PENDING,
            )
            .order_by(VerificationRequest.created_at.desc())
        )
        return {
            "email_verified": bool(user.email_verified),
            "phone_verified": bool(user.phone_verified),
            "identity_verified": bool(user.identity_verified),
            "address_verified": bool(user.address_verified),
            "verification_level": user.verification_level or 0,
            "pending_requests": list(result.scalars().all()),
        }

    async def list_pending_addresses(self, db: AsyncSession) -> List[VerificationRequest]:
        result = await db.execute(
            select(VerificationRequest)
            .where(
                VerificationRequest.type == VerificationType.ADDRESS,
                VerificationRequest.status == VerificationStatus.PENDING,
            )
            .order_by(VerificationRequest.created_at.asc())
        )
        return list(result.scalars().all())

    async def get_audit_log(self, db: AsyncSession, user_id: str, limit: int = 100) -> List[VerificationAuditLog]:
        result = await db.execute(
            select(VerificationAuditLog)
            .where(VerificationAuditLog.user_id == user_id)
            .order_by(VerificationAuditLog.created_at.desc())
            .limit(limit)
        )
        return list(result.scalars().all())


verification_service = VerificationService()
