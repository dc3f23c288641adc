"""Checkout and buyer order endpoints."""

from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from curio_market.api.deps import service_error
from curio_market.core.config import settings
from curio_market.core.logging import get_logger
from curio_market.core.rate_limit import limiter
from curio_market.core.security import require_user
from curio_market.crud.order import order_crud
from curio_market.crud.review import review_crud
from curio_market.db.session import get_db
from curio_market.models.order import Order, OrderStatus
from curio_market.models.review import Review
from curio_market.models.user import User
from curio_market.schemas.order import (
    DisputeCreate,
    DisputeResponse,
    OrderConfirmRequest,
    OrderResponse,
    PaymentIntentRequest,
    PaymentIntentResponse,
)
from curio_market.schemas.review import ReviewCreate, ReviewResponse
from curio_market.services.checkout_service import CheckoutError, checkout_service
from curio_market.services.object_storage import normalize_image_url
from curio_market.services.promotion_service import PromotionError

logger = get_logger(__name__)
router = APIRouter()

REVIEWABLE = (OrderStatus.PAID, OrderStatus.SHIPPED, OrderStatus.FULFILLED)


async def buyer_order(db: AsyncSession, order_id: str, user: User) -> Order:
    order = await order_crud.get(db, order_id)
    if order is None or (order.buyer_id != user.id and not user.is_admin):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Order not found")
    return order


@router.post("/create-payment-intent", response_model=PaymentIntentResponse)
@limiter.limit(settings.RATE_LIMIT_CHECKOUT)
async def create_payment_intent(
    request: Request,
    body: PaymentIntentRequest,
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    """Price the cart per seller and open a Stripe payment for the total."""
    try:
        return await checkout_service.create_payment_intent(
            db,
            user.id,
            promotion_code=body.promotion_code,
            shipping_address=body.shipping_address.model_dump() if body.shipping_address else None,
        )
    except (CheckoutError, PromotionError) as e:
        raise service_error(e)


@router.post("/orders/confirm", response_model=List[OrderResponse])
@limiter.limit(settings.RATE_LIMIT_CHECKOUT)
async def confirm_order(
    request: Request,
    body: OrderConfirmRequest,
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    """
    Turn a succeeded payment into orders.

    Safe to call more than once; the webhook may already have created them.
    """
    try:
        return await checkout_service.confirm_order(
            db,
            user.id,
            body.payment_intent_id,
            shipping_address=body.shipping_address.model_dump() if body.shipping_address else None,
            promotion_code=body.promotion_code,
        )
    except (CheckoutError, PromotionError) as e:
        raise service_error(e)


@router.get("/orders", response_model=List[OrderResponse])
async def list_orders(
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=100),
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    return await order_crud.get_by_buyer(db, user.id, skip=skip, limit=limit)


@router.get("/orders/{order_id}", response_model=OrderResponse)
async def get_order(
    order_id: str,
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    return await buyer_order(db, order_id, user)


@router.post("/orders/{order_id}/dispute", response_model=DisputeResponse, status_code=status.HTTP_201_CREATED)
async def open_dispute(
    order_id: str,
    body: DisputeCreate,
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    try:
        return await checkout_service.open_dispute(
            db, user.id, order_id, reason=body.reason, description=body.description
        )
    except CheckoutError as e:
        raise service_error(e)


@router.post("/orders/{order_id}/reviews", response_model=ReviewResponse, status_code=status.HTTP_201_CREATED)
async def review_order_item(
    order_id: str,
    body: ReviewCreate,
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    """One review per listing per order, by the buyer who paid for it."""
    order = await order_crud.get(db, order_id)
    if order is None or order.buyer_id != user.id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Order not found")
    if order.status not in REVIEWABLE:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Cannot review an order that is {order.status.value}",
        )
    if not await order_crud.contains_listing(db, order.id, body.listing_id):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Listing is not part of this order")
    if await review_crud.get_existing(db, order_id=order.id, listing_id=body.listing_id, buyer_id=user.id):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Already reviewed")

    review = Review(
        order_id=order.id,
        buyer_id=user.id,
        seller_id=order.seller_id,
        listing_id=body.listing_id,
        rating=body.rating,
        title=body.title,
        content=body.content,
        images=[normalize_image_url(url) for url in body.images],
    )
    db.add(review)
    try:
        await db.flush()
    except IntegrityError:
        # Lost a race with a concurrent submission
        await db.rollback()
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Already reviewed")
    await db.refresh(review)
    logger.info(f"Review {review.id} on listing {body.listing_id} by {user.id}")
    return review


@router.get("/orders/{order_id}/reviews", response_model=List[ReviewResponse])
async def list_order_reviews(
    order_id: str,
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    order = await buyer_order(db, order_id, user)
    result = await db.execute(
        select(Review).where(Review.order_id == order.id).order_by(Review.created_at)
    )
    return list(result.scalars().all())
