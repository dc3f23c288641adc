"""Stripe webhook receiver."""

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from curio_market.api.deps import service_error
from curio_market.core.logging import get_logger
from curio_market.db.session import get_db
from curio_market.services.checkout_service import CheckoutError
from curio_market.services.subscription_service import SubscriptionError, subscription_service

logger = get_logger(__name__)
router = APIRouter()


@router.post("/webhooks/stripe")
async def stripe_webhook(request: Request, db: AsyncSession = Depends(get_db)):
    """
    Signature is checked against the raw body, so it must not be parsed first.

    Duplicate deliveries are acknowledged without being processed again. A
    checkout that could neither become orders nor be refunded answers 5xx
    so Stripe retries the event.
    """
    payload = await request.body()
    try:
        processed = await subscription_service.handle_webhook(
            db, payload, request.headers.get("stripe-signature")
        )
    except (SubscriptionError, CheckoutError) as e:
        raise service_error(e)

    if not processed:
        logger.debug("Webhook event already handled")
    return {"received": True}
