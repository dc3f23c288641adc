"""Seller subscription lifecycle and Stripe webhook reconciliation.

Three sources can disagree about a seller's billing state: the local user
row, the Stripe subscription, and the webhook stream. All of them meet
here:

* the local state is a ``SubscriptionState`` and only moves along
  ``ALLOWED_TRANSITIONS``; anything else (for example a late
  ``incomplete`` webhook after activation) is logged and dropped;
* every write to a user's subscription state happens while holding that
  user's lock from ``subscription_locks`` and is committed before the lock
  is released, so webhook delivery and browser-driven activation for one
  user are serialized;
* webhook events are recorded by id and redeliveries are skipped.
"""

from typing import Any, Dict, FrozenSet, Optional, Tuple

import stripe
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from curio_market.core.circuit_breaker import CircuitOpenError
from curio_market.core.config import settings
from curio_market.core.locks import KeyedLockRegistry, subscription_locks
from curio_market.core.logging import get_logger, log_success, log_warn, log_fail
from curio_market.crud.user import user_crud
from curio_market.db.base import utcnow
from curio_market.models.user import User, UserRole, SubscriptionState
from curio_market.models.webhook_event import ProcessedWebhookEvent
from curio_market.services.stripe_gateway import (
    StripeGateway,
    PaymentsNotConfiguredError,
    object_id,
    stripe_gateway,
)

logger = get_logger(__name__)

S = SubscriptionState

ALLOWED_TRANSITIONS: Dict[SubscriptionState, FrozenSet[SubscriptionState]] = {
    S.NONE: frozenset({S.INCOMPLETE, S.TRIALING, S.ACTIVE}),
    S.INCOMPLETE: frozenset({S.TRIALING, S.ACTIVE, S.INCOMPLETE_EXPIRED, S.CANCELED}),
    S.INCOMPLETE_EXPIRED: frozenset({S.INCOMPLETE}),
    S.TRIALING: frozenset({S.ACTIVE, S.PAST_DUE, S.UNPAID, S.CANCELED}),
    S.ACTIVE: frozenset({S.PAST_DUE, S.UNPAID, S.CANCELED}),
    S.PAST_DUE: frozenset({S.ACTIVE, S.UNPAID, S.CANCELED}),
    S.UNPAID: frozenset({S.ACTIVE, S.CANCELED}),
    S.CANCELED: frozenset({S.INCOMPLETE}),
}

PAID_STATES = frozenset({S.ACTIVE, S.TRIALING})
OWING_STATES = frozenset({S.PAST_DUE, S.UNPAID})
# Only these let a new Stripe subscription replace the stored one
RESTARTABLE_STATES = frozenset({S.CANCELED, S.INCOMPLETE_EXPIRED})

# Stripe errors plus the breaker refusing to call Stripe at all
PROCESSOR_ERRORS = (stripe.StripeError, CircuitOpenError)


class SubscriptionError(Exception):
    """Business-rule failure; ``status_code`` is the HTTP status to answer with."""

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class WebhookSignatureError(SubscriptionError):
    def __init__(self, message: str = "Webhook signature verification failed"):
        super().__init__(message, status_code=400)


def can_transition(current: SubscriptionState, target: SubscriptionState) -> bool:
    return target == current or target in ALLOWED_TRANSITIONS[current]


def parse_state(value: Optional[str]) -> Optional[SubscriptionState]:
    """Map a Stripe subscription status onto the local enum; unknown values give None."""
    if not value:
        return None
    try:
        return SubscriptionState(value)
    except ValueError:
        return None


def apply_state(user: User, target: Optional[SubscriptionState], *, source: str) -> bool:
    """
    Move ``user`` to ``target`` if the transition table allows it.

    Returns True when the state changed. Entering a paid state grants the
    seller role (admins stay admins); entering ``canceled`` demotes a
    seller back to buyer.
    """
    if target is None:
        return False

    current = user.subscription_status or S.NONE
    if target == current:
        return False
    if not can_transition(current, target):
        logger.warning(
            f"Ignoring subscription transition {current.value} -> {target.value} "
            f"for user {user.id} (source: {source})"
        )
        return False

    user.subscription_status = target
    user.subscription_updated_at = utcnow()

    if target in PAID_STATES and user.role not in (UserRole.ADMIN, UserRole.SELLER):
        user.role = UserRole.SELLER
    elif target == S.CANCELED and user.role == UserRole.SELLER:
        user.role = UserRole.BUYER

    logger.info(
        f"Subscription for user {user.id}: {current.value} -> {target.value} "
        f"(source: {source}, role: {user.role.value})"
    )
    return True


class SubscriptionService:
    """
    Create, activate, cancel and check seller subscriptions.

    Methods take the request's session; the ones that change state commit
    while still holding the user's lock.
    """

    def __init__(
        self,
        gateway: Optional[StripeGateway] = None,
        locks: Optional[KeyedLockRegistry] = None,
    ):
        self.gateway = gateway or stripe_gateway
        self.locks = locks or subscription_locks
        self._webhook_handlers = {
            "setup_intent.succeeded": self._on_setup_intent_succeeded,
            "customer.subscription.created": self._on_subscription_changed,
            "customer.subscription.updated": self._on_subscription_changed,
            "customer.subscription.deleted": self._on_subscription_deleted,
            "invoice.payment_succeeded": self._on_invoice_event,
            "invoice.payment_failed": self._on_invoice_event,
            "payment_intent.succeeded": self._on_payment_intent_succeeded,
            "identity.verification_session.verified": self._on_identity_verified,
        }

    async def _load_user(self, db: AsyncSession, user_id: str) -> User:
        """Re-read the user row, ignoring anything cached in the session."""
        user = await db.get(User, user_id, populate_existing=True)
        if user is None:
            raise SubscriptionError("User not found", status_code=404)
        return user

    def _require_gateway(self) -> None:
        if not self.gateway.configured:
            raise SubscriptionError("Stripe not configured", status_code=500)

    # ── create ─────────────────────────────────────────────────────────────

    async def create_subscription(self, db: AsyncSession, user_id: str) -> Dict[str, Any]:
        """
        Start (or resume) the seller subscription and hand back a client secret.

        An active, trialing, past-due or unpaid subscription is returned as
        is (the owing ones with their open invoice's secret) and an
        ``incomplete`` one is reused. A new Stripe subscription is only
        started when there is none or the stored one is canceled or
        ``incomplete_expired``.
        """
        self._require_gateway()
        async with self.locks.hold(user_id):
            user = await self._load_user(db, user_id)
            if not user.email:
                raise SubscriptionError("User email required", status_code=400)

            try:
                customer_id = await self._ensure_customer(db, user)

                subscription = None
                if user.stripe_subscription_id:
                    existing = await self.gateway.retrieve_subscription(
                        user.stripe_subscription_id,
                        expand=["latest_invoice.payment_intent", "pending_setup_intent"],
                    )
                    existing_state = parse_state(existing.get("status"))
                    if existing_state in PAID_STATES or existing_state in OWING_STATES:
                        # Still live at Stripe; an owing one is settled through its open invoice
                        apply_state(user, existing_state, source="create")
                        await db.commit()
                        secret, intent_type = await self._client_secret(
                            existing, customer_id, user.id, create_setup=False
                        )
                        return self._created(existing, existing_state, secret, intent_type)
                    if existing_state == S.INCOMPLETE:
                        logger.info(f"Reusing incomplete subscription {existing['id']} for user {user.id}")
                        subscription = existing
                    elif existing_state not in RESTARTABLE_STATES:
                        raise SubscriptionError(
                            f"Existing subscription is {existing.get('status')}",
                            status_code=409,
                        )

                if subscription is None:
                    subscription = await self.gateway.create_subscription(customer_id, user_id=user.id)
                    user.stripe_subscription_id = subscription["id"]
                    user.subscription_setup_intent_id = None
                    log_success(logger, f"Created subscription {subscription['id']} for user {user.id}")

                state = parse_state(subscription.get("status"))
                apply_state(user, state, source="create")
                secret, intent_type = await self._client_secret(subscription, customer_id, user.id)
            except PROCESSOR_ERRORS as e:
                log_fail(logger, f"Subscription creation failed for user {user_id}: {e}")
                raise SubscriptionError("Payment processor error", status_code=502) from e

            await db.commit()
            return self._created(subscription, state or user.subscription_status, secret, intent_type)

    @staticmethod
    def _created(subscription, state, secret, intent_type) -> Dict[str, Any]:
        return {
            "subscription_id": subscription["id"],
            "client_secret": secret,
            "status": state,
            "intent_type": intent_type,
        }

    async def _ensure_customer(self, db: AsyncSession, user: User) -> str:
        """Stripe customer id for the user, created and committed on first use."""
        if user.stripe_customer_id:
            return user.stripe_customer_id

        customer = await self.gateway.create_customer(
            email=user.email,
            name=f"{user.first_name or ''} {user.last_name or ''}".strip(),
            user_id=user.id,
        )
        user.stripe_customer_id = customer["id"]
        # Persist now so a later failure does not orphan the customer
        await db.commit()
        log_success(logger, f"Created Stripe customer {customer['id']} for user {user.id}")
        return customer["id"]

    async def _client_secret(
        self,
        subscription,
        customer_id: str,
        user_id: str,
        create_setup: bool = True,
    ) -> Tuple[Optional[str], Optional[str]]:
        """
        Secret the browser confirms: the first invoice's payment intent,
        else the pending setup intent, else a freshly created setup intent.
        """
        invoice = subscription.get("latest_invoice")
        if isinstance(invoice, dict):
            payment_intent = invoice.get("payment_intent")
            if isinstance(payment_intent, dict) and payment_intent.get("client_secret"):
                return payment_intent["client_secret"], "payment"

        pending = subscription.get("pending_setup_intent")
        if isinstance(pending, dict) and pending.get("client_secret"):
            return pending["client_secret"], "setup"

        if not create_setup:
            return None, None

        setup_intent = await self.gateway.create_setup_intent(
            customer_id,
            metadata={"user_id": user_id, "subscription_id": subscription["id"]},
        )
        return setup_intent["client_secret"], "setup"

    # ── activate ───────────────────────────────────────────────────────────

    async def activate_subscription(
        self,
        db: AsyncSession,
        user_id: str,
        setup_intent_id: str,
    ) -> Dict[str, Any]:
        """
        Finish activation after the browser confirmed a setup intent.

        Idempotent per setup intent: a repeat call (or the webhook for the
        same intent) returns the current state without touching Stripe.
        """
        self._require_gateway()
        async with self.locks.hold(user_id):
            user = await self._load_user(db, user_id)

            if user.subscription_setup_intent_id == setup_intent_id:
                logger.info(f"Setup intent {setup_intent_id} already processed for user {user.id}")
                return self._activation_result(user)

            if not user.stripe_customer_id or not user.stripe_subscription_id:
                raise SubscriptionError("No subscription to activate", status_code=400)

            customer_id = user.stripe_customer_id
            subscription_id = user.stripe_subscription_id
            logger.info(f"Activating subscription {subscription_id} for user {user.id}")

            try:
                setup_intent = await self.gateway.retrieve_setup_intent(setup_intent_id)
                if setup_intent.get("status") != "succeeded":
                    raise SubscriptionError("Payment method setup has not succeeded", status_code=400)

                intent_customer = object_id(setup_intent.get("customer"))
                if intent_customer and intent_customer != customer_id:
                    raise SubscriptionError("Setup intent belongs to another customer", status_code=403)

                payment_method_id = object_id(setup_intent.get("payment_method"))
                if not payment_method_id:
                    raise SubscriptionError("Setup intent has no payment method", status_code=400)

                await self._ensure_attached(payment_method_id, customer_id)
                await self.gateway.set_default_payment_method(customer_id, payment_method_id)
                await self.gateway.modify_subscription(
                    subscription_id,
                    default_payment_method=payment_method_id,
                )
                log_success(logger, f"Payment method {payment_method_id} set as default")

                await self._pay_open_invoices(subscription_id, payment_method_id)

                subscription = await self.gateway.retrieve_subscription(subscription_id)
            except PROCESSOR_ERRORS as e:
                log_fail(logger, f"Activation failed for user {user.id}: {e}")
                raise SubscriptionError("Payment processor error", status_code=502) from e

            apply_state(user, parse_state(subscription.get("status")), source="activate")
            user.subscription_setup_intent_id = setup_intent_id
            await db.commit()

            log_success(logger, f"Activation finished for user {user.id}: {user.subscription_status.value}")
            return self._activation_result(user)

    @staticmethod
    def _activation_result(user: User) -> Dict[str, Any]:
        return {
            "success": user.subscription_status in PAID_STATES,
            "status": user.subscription_status,
            "role": user.role.value,
        }

    async def _ensure_attached(self, payment_method_id: str, customer_id: str) -> None:
        payment_method = await self.gateway.retrieve_payment_method(payment_method_id)
        if object_id(payment_method.get("customer")) == customer_id:
            logger.debug(f"Payment method {payment_method_id} already attached to {customer_id}")
            return
        await self.gateway.attach_payment_method(payment_method_id, customer_id)
        log_success(logger, f"Attached payment method {payment_method_id} to {customer_id}")

    async def _pay_open_invoices(self, subscription_id: str, payment_method_id: str) -> int:
        """Pay every open invoice once. Failures are logged and skipped, never retried."""
        paid = 0
        for invoice in await self.gateway.list_open_invoices(subscription_id):
            if invoice.get("status") != "open":
                continue
            try:
                await self.gateway.pay_invoice(invoice["id"], payment_method_id=payment_method_id)
                paid += 1
                log_success(logger, f"Paid invoice {invoice['id']}")
            except stripe.StripeError as e:
                log_warn(logger, f"Could not pay invoice {invoice['id']}: {e}")
        return paid

    # ── cancel ─────────────────────────────────────────────────────────────

    async def cancel_subscription(self, db: AsyncSession, user_id: str) -> Dict[str, Any]:
        self._require_gateway()
        async with self.locks.hold(user_id):
            user = await self._load_user(db, user_id)
            if not user.stripe_subscription_id:
                raise SubscriptionError("No subscription to cancel", status_code=400)

            try:
                subscription = await self.gateway.cancel_subscription(user.stripe_subscription_id)
            except PROCESSOR_ERRORS as e:
                log_fail(logger, f"Cancel failed for user {user.id}: {e}")
                raise SubscriptionError("Payment processor error", status_code=502) from e

            apply_state(user, parse_state(subscription.get("status")) or S.CANCELED, source="cancel")
            await db.commit()
            return {"status": user.subscription_status, "role": user.role.value}

    # ── status check ───────────────────────────────────────────────────────

    async def check_status(self, db: AsyncSession, user_id: str) -> Dict[str, Any]:
        """
        Does this user currently have seller-level billing access?

        Rules, first match wins:
          1. stored role is seller (when TRUST_LOCAL_SELLER_ROLE is on)
          2. Stripe subscription is active or trialing
          3. incomplete, but a default payment method is set
          4. incomplete without one, but the customer has a saved card:
             make it the default and check again
          5. otherwise inactive
        Stripe failures fall back to the locally stored state.
        """
        user = await self._load_user(db, user_id)

        if settings.TRUST_LOCAL_SELLER_ROLE and user.role == UserRole.SELLER:
            return self._status(True, "seller_role", user.subscription_status)

        if not user.stripe_subscription_id or not self.gateway.configured:
            return self._status(
                user.subscription_status in PAID_STATES,
                "no_subscription" if not user.stripe_subscription_id else "local_state",
                user.subscription_status,
            )

        try:
            subscription = await self.gateway.retrieve_subscription(user.stripe_subscription_id)
            state = parse_state(subscription.get("status"))

            if state in PAID_STATES:
                await self._sync_state(db, user_id, state, source="status_check")
                return self._status(True, "subscription_active", state)

            if state == S.INCOMPLETE:
                if subscription.get("default_payment_method"):
                    return self._status(True, "payment_method_attached", state)

                if user.stripe_customer_id:
                    cards = await self.gateway.list_card_payment_methods(user.stripe_customer_id)
                    if cards:
                        card_id = cards[0]["id"]
                        logger.info(f"Attaching saved card {card_id} to subscription {subscription['id']}")
                        await self.gateway.modify_subscription(
                            subscription["id"],
                            default_payment_method=card_id,
                        )
                        subscription = await self.gateway.retrieve_subscription(subscription["id"])
                        state = parse_state(subscription.get("status"))
                        if state in PAID_STATES:
                            await self._sync_state(db, user_id, state, source="status_check")
                            return self._status(True, "subscription_active", state)
                        if subscription.get("default_payment_method"):
                            return self._status(True, "payment_method_attached", state)

            await self._sync_state(db, user_id, state, source="status_check")
            return self._status(False, f"subscription_{state.value}" if state else "unknown_status", state)

        except PROCESSOR_ERRORS as e:
            log_warn(logger, f"Stripe unavailable during status check for user {user_id}: {e}")
            return self._status(
                user.subscription_status in PAID_STATES,
                "processor_unavailable",
                user.subscription_status,
            )

    @staticmethod
    def _status(active: bool, reason: str, state: Optional[SubscriptionState]) -> Dict[str, Any]:
        return {"active": active, "reason": reason, "status": state or S.NONE}

    async def _sync_state(
        self,
        db: AsyncSession,
        user_id: str,
        state: Optional[SubscriptionState],
        *,
        source: str,
    ) -> None:
        async with self.locks.hold(user_id):
            user = await self._load_user(db, user_id)
            if apply_state(user, state, source=source):
                await db.commit()

    # ── webhooks ───────────────────────────────────────────────────────────

    async def handle_webhook(self, db: AsyncSession, payload: bytes, signature: Optional[str]) -> bool:
        """
        Verify, de-duplicate and dispatch one Stripe event.

        Returns False for a redelivery of an already-processed event.
        """
        if not signature:
            raise WebhookSignatureError("Missing Stripe-Signature header")
        try:
            event = self.gateway.construct_event(payload, signature)
        except (ValueError, stripe.SignatureVerificationError) as e:
            logger.warning(f"Rejected webhook: {e}")
            raise WebhookSignatureError() from e

        event_id = event["id"]
        event_type = event["type"]

        if await db.get(ProcessedWebhookEvent, event_id) is not None:
            logger.info(f"Skipping duplicate webhook {event_id} ({event_type})")
            return False

        handler = self._webhook_handlers.get(event_type)
        if handler is None:
            logger.debug(f"Unhandled webhook type {event_type}")
        else:
            logger.info(f"Processing webhook {event_id} ({event_type})")
            await handler(db, event["data"]["object"])

        # Recorded only once the handler returned; a handler that raises leaves
        # the event unrecorded and the 5xx answer makes Stripe redeliver it
        db.add(ProcessedWebhookEvent(id=event_id, type=event_type))
        try:
            await db.commit()
        except IntegrityError:
            # A concurrent delivery of the same event won the insert
            await db.rollback()
            logger.info(f"Webhook {event_id} processed concurrently, skipping")
            return False
        return True

    async def _user_for(self, db: AsyncSession, obj) -> Optional[User]:
        """Find the user a Stripe object belongs to: metadata, subscription, then customer."""
        metadata = obj.get("metadata") or {}
        if metadata.get("user_id"):
            user = await user_crud.get(db, metadata["user_id"])
            if user:
                return user

        subscription_id = object_id(obj.get("subscription"))
        if obj.get("object") == "subscription":
            subscription_id = obj.get("id")
        if subscription_id:
            user = await user_crud.get_by_subscription_id(db, subscription_id)
            if user:
                return user

        customer_id = object_id(obj.get("customer"))
        if customer_id:
            return await user_crud.get_by_stripe_customer_id(db, customer_id)
        return None

    async def _on_setup_intent_succeeded(self, db: AsyncSession, setup_intent) -> None:
        user = await self._user_for(db, setup_intent)
        if user is None or not user.stripe_subscription_id:
            logger.info(f"Setup intent {setup_intent.get('id')} has no subscription owner, ignoring")
            return
        try:
            await self.activate_subscription(db, user.id, setup_intent["id"])
        except SubscriptionError as e:
            log_warn(logger, f"Webhook activation for user {user.id} not applied: {e.message}")

    async def _on_subscription_changed(self, db: AsyncSession, subscription) -> None:
        await self._apply_subscription_object(db, subscription, parse_state(subscription.get("status")))

    async def _on_subscription_deleted(self, db: AsyncSession, subscription) -> None:
        await self._apply_subscription_object(db, subscription, S.CANCELED)

    async def _apply_subscription_object(
        self,
        db: AsyncSession,
        subscription,
        state: Optional[SubscriptionState],
    ) -> None:
        owner = await self._user_for(db, subscription)
        if owner is None:
            logger.info(f"No user for subscription {subscription.get('id')}, ignoring")
            return

        async with self.locks.hold(owner.id):
            user = await self._load_user(db, owner.id)
            if user.stripe_subscription_id and user.stripe_subscription_id != subscription["id"]:
                logger.info(
                    f"Ignoring event for stale subscription {subscription['id']} "
                    f"(user {user.id} now has {user.stripe_subscription_id})"
                )
                return
            user.stripe_subscription_id = subscription["id"]
            apply_state(user, state, source="webhook")
            await db.commit()

    async def _on_invoice_event(self, db: AsyncSession, invoice) -> None:
        """Invoice outcomes are reconciled by re-reading the subscription itself."""
        subscription_id = object_id(invoice.get("subscription"))
        if not subscription_id:
            return
        owner = await user_crud.get_by_subscription_id(db, subscription_id)
        if owner is None:
            logger.info(f"No user for invoice subscription {subscription_id}, ignoring")
            return

        try:
            subscription = await self.gateway.retrieve_subscription(subscription_id)
        except (*PROCESSOR_ERRORS, PaymentsNotConfiguredError) as e:
            log_warn(logger, f"Could not refresh subscription {subscription_id}: {e}")
            return
        await self._apply_subscription_object(db, subscription, parse_state(subscription.get("status")))

    async def _on_payment_intent_succeeded(self, db: AsyncSession, payment_intent) -> None:
        from curio_market.services.checkout_service import checkout_service

        metadata = payment_intent.get("metadata") or {}
        if metadata.get("kind") != "checkout":
            return
        await checkout_service.complete_payment(db, payment_intent)

    async def _on_identity_verified(self, db: AsyncSession, session) -> None:
        from curio_market.services.verification_service import verification_service

        await verification_service.complete_identity_verification(
            db,
            provider_session_id=session["id"],
            metadata=session.get("metadata") or {},
        )


subscription_service = SubscriptionService()
