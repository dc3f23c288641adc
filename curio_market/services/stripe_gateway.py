"""Thin async wrapper over the Stripe SDK.

Every call goes through the shared ``stripe`` circuit breaker. Card
declines and invalid requests are the caller's fault and do not trip it.
Results are Stripe objects, which are dicts, so callers read them with
``obj["field"]`` / ``obj.get("field")``.
"""

import asyncio
from typing import Any, Dict, List, Optional

import stripe

from curio_market.core.circuit_breaker import stripe_breaker
from curio_market.core.config import settings
from curio_market.core.logging import get_logger

logger = get_logger(__name__)

_CLIENT_ERRORS = (stripe.CardError, stripe.InvalidRequestError)


class PaymentsNotConfiguredError(RuntimeError):
    pass


def object_id(value: Any) -> Optional[str]:
    """Id of an expandable field, whether it came back expanded or as a bare id."""
    if value is None:
        return None
    if isinstance(value, str):
        return value
    return value.get("id")


class StripeGateway:

    def __init__(self):
        self._price_id: Optional[str] = settings.SELLER_SUBSCRIPTION_PRICE_ID
        self._price_lock = asyncio.Lock()
        if self.configured:
            stripe.api_key = settings.STRIPE_SECRET_KEY
            stripe.api_version = settings.STRIPE_API_VERSION

    @property
    def configured(self) -> bool:
        return settings.stripe_enabled

    async def _call(self, method, *args, **kwargs):
        if not self.configured:
            raise PaymentsNotConfiguredError("Stripe not configured")
        async with stripe_breaker.guard(ignore=_CLIENT_ERRORS):
            return await method(*args, **kwargs)

    # ── Customers ──────────────────────────────────────────────────────────

    async def create_customer(self, *, email: str, name: str, user_id: str):
        return await self._call(
            stripe.Customer.create_async,
            email=email,
            name=name or None,
            metadata={"user_id": user_id},
        )

    async def set_default_payment_method(self, customer_id: str, payment_method_id: str):
        return await self._call(
            stripe.Customer.modify_async,
            customer_id,
            invoice_settings={"default_payment_method": payment_method_id},
        )

    # ── Subscriptions ──────────────────────────────────────────────────────

    async def _subscription_price_id(self) -> str:
        """The monthly seller price, created once per process if not configured."""
        async with self._price_lock:
            if self._price_id is None:
                price = await self._call(
                    stripe.Price.create_async,
                    currency=settings.SELLER_SUBSCRIPTION_CURRENCY,
                    unit_amount=settings.SELLER_SUBSCRIPTION_PRICE_CENTS,
                    recurring={"interval": "month"},
                    product_data={"name": settings.SELLER_SUBSCRIPTION_PRODUCT_NAME},
                )
                self._price_id = price["id"]
                logger.info(f"Created seller subscription price {self._price_id}")
            return self._price_id

    async def create_subscription(self, customer_id: str, *, user_id: str):
        return await self._call(
            stripe.Subscription.create_async,
            customer=customer_id,
            items=[{"price": await self._subscription_price_id()}],
            payment_behavior="default_incomplete",
            payment_settings={"save_default_payment_method": "on_subscription"},
            expand=["latest_invoice.payment_intent", "pending_setup_intent"],
            metadata={"user_id": user_id},
        )

    async def retrieve_subscription(self, subscription_id: str, *, expand: Optional[List[str]] = None):
        return await self._call(
            stripe.Subscription.retrieve_async,
            subscription_id,
            expand=expand or [],
        )

    async def modify_subscription(self, subscription_id: str, **params):
        return await self._call(stripe.Subscription.modify_async, subscription_id, **params)

    async def cancel_subscription(self, subscription_id: str):
        return await self._call(stripe.Subscription.cancel_async, subscription_id)

    # ── Setup intents and payment methods ─────────────────────────────────

    async def create_setup_intent(self, customer_id: str, *, metadata: Dict[str, str]):
        return await self._call(
            stripe.SetupIntent.create_async,
            customer=customer_id,
            payment_method_types=["card"],
            usage="off_session",
            metadata=metadata,
        )

    async def retrieve_setup_intent(self, setup_intent_id: str):
        return await self._call(stripe.SetupIntent.retrieve_async, setup_intent_id)

    async def retrieve_payment_method(self, payment_method_id: str):
        return await self._call(stripe.PaymentMethod.retrieve_async, payment_method_id)

    async def attach_payment_method(self, payment_method_id: str, customer_id: str):
        return await self._call(
            stripe.PaymentMethod.attach_async,
            payment_method_id,
            customer=customer_id,
        )

    async def list_card_payment_methods(self, customer_id: str) -> List[Any]:
        result = await self._call(
            stripe.PaymentMethod.list_async,
            customer=customer_id,
            type="card",
        )
        return list(result["data"])

    # ── Invoices ───────────────────────────────────────────────────────────

    async def list_open_invoices(self, subscription_id: str) -> List[Any]:
        result = await self._call(
            stripe.Invoice.list_async,
            subscription=subscription_id,
            status="open",
        )
        return list(result["data"])

    async def pay_invoice(self, invoice_id: str, *, payment_method_id: str):
        return await self._call(
            stripe.Invoice.pay_async,
            invoice_id,
            payment_method=payment_method_id,
        )

    # ── One-off payments ───────────────────────────────────────────────────

    async def create_payment_intent(self, *, amount_cents: int, metadata: Dict[str, str]):
        return await self._call(
            stripe.PaymentIntent.create_async,
            amount=amount_cents,
            currency=settings.SELLER_SUBSCRIPTION_CURRENCY,
            automatic_payment_methods={"enabled": True},
            metadata=metadata,
        )

    async def retrieve_payment_intent(self, payment_intent_id: str):
        return await self._call(stripe.PaymentIntent.retrieve_async, payment_intent_id)

    async def create_refund(
        self,
        payment_intent_id: str,
        *,
        amount_cents: Optional[int] = None,
        idempotency_key: Optional[str] = None,
    ):
        params: Dict[str, Any] = {"payment_intent": payment_intent_id}
        if amount_cents is not None:
            params["amount"] = amount_cents
        if idempotency_key is not None:
            params["idempotency_key"] = idempotency_key
        return await self._call(stripe.Refund.create_async, **params)

    # ── Identity ───────────────────────────────────────────────────────────

    async def create_identity_session(self, *, user_id: str, session_id: str, return_url: str):
        return await self._call(
            stripe.identity.VerificationSession.create_async,
            type="document",
            return_url=return_url,
            metadata={"user_id": user_id, "session_id": session_id},
        )

    # ── Webhooks ───────────────────────────────────────────────────────────

    def construct_event(self, payload: bytes, signature: str):
        """
        Verify the Stripe-Signature header and parse the event.

        Raises ValueError for malformed payloads and
        stripe.SignatureVerificationError for bad signatures.
        """
        return stripe.Webhook.construct_event(
            payload,
            signature,
            settings.STRIPE_WEBHOOK_SECRET,
        )


stripe_gateway = StripeGateway()
