"""Seller subscription endpoints."""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from curio_market.api.deps import service_error
from curio_market.core.security import require_user
from curio_market.db.session import get_db
from curio_market.models.user import User
from curio_market.schemas.subscription import (
    SubscriptionActivateRequest,
    SubscriptionActivateResponse,
    SubscriptionCreateResponse,
    SubscriptionStatusResponse,
)
from curio_market.services.subscription_service import SubscriptionError, subscription_service

router = APIRouter()


@router.post("/subscription/create", response_model=SubscriptionCreateResponse)
@router.post("/seller/subscribe", response_model=SubscriptionCreateResponse, include_in_schema=False)
async def create_subscription(
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    """
    Start the seller subscription.

    The returned client secret is confirmed in the browser with Stripe.js;
    ``intentType`` says whether it belongs to a payment or a setup intent.
    """
    try:
        return await subscription_service.create_subscription(db, user.id)
    except SubscriptionError as e:
        raise service_error(e)


@router.post("/subscription/activate", response_model=SubscriptionActivateResponse)
async def activate_subscription(
    body: SubscriptionActivateRequest,
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    try:
        return await subscription_service.activate_subscription(db, user.id, body.setup_intent_id)
    except SubscriptionError as e:
        raise service_error(e)


@router.get("/subscription/status", response_model=SubscriptionStatusResponse)
async def subscription_status(
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    try:
        return await subscription_service.check_status(db, user.id)
    except SubscriptionError as e:
        raise service_error(e)


@router.post("/subscription/cancel")
async def cancel_subscription(
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    try:
        return await subscription_service.cancel_subscription(db, user.id)
    except SubscriptionError as e:
        raise service_error(e)
