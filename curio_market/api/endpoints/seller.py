"""Seller dashboard endpoints - shop profile, reporting, promotions and fulfilment."""

from datetime import datetime, timedelta, timezone
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from curio_market.api.deps import client_info, service_error
from curio_market.core.logging import get_logger
from curio_market.core.security import require_seller, require_user
from curio_market.crud.listing import listing_crud
from curio_market.crud.order import order_crud
from curio_market.crud.promotion import promotion_crud
from curio_market.crud.seller import seller_crud
from curio_market.db.base import utcnow
from curio_market.db.session import get_db
from curio_market.models.order import OrderStatus
from curio_market.models.seller import Seller
from curio_market.models.user import User
from curio_market.schemas.listing import DisplayOrderUpdate, ListingBulkUpdate, ListingResponse
from curio_market.schemas.order import OrderResponse, TrackingUpdate
from curio_market.schemas.promotion import PromotionCreate, PromotionResponse, PromotionUpdate
from curio_market.schemas.seller import (
    AnalyticsOverview,
    EarningsResponse,
    PayoutRequest,
    PayoutResponse,
    SellerCreate,
    SellerResponse,
    SellerStats,
    SellerUpdate,
)
from curio_market.schemas.verification import BusinessVerificationRequest, QueueItemResponse
from curio_market.services.cache_service import cache
from curio_market.services.checkout_service import CheckoutError, checkout_service
from curio_market.services.subscription_service import subscription_service
from curio_market.services.verification_service import VerificationError, verification_service

logger = get_logger(__name__)
router = APIRouter()


def as_utc(value: datetime) -> datetime:
    """Naive datetimes from query strings are taken to be UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


# ── profile ───────────────────────────────────────────────────────────────

@router.get("/profile", response_model=SellerResponse)
async def get_profile(seller: Seller = Depends(require_seller)):
    return seller


@router.post("/profile", response_model=SellerResponse, status_code=status.HTTP_201_CREATED)
async def create_profile(
    body: SellerCreate,
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    """Open a shop. Needs seller billing to be in good standing."""
    if await seller_crud.get_by_user_id(db, user.id):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Seller profile already exists")

    if not user.is_admin:
        billing = await subscription_service.check_status(db, user.id)
        if not billing["active"]:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Active seller subscription required ({billing['reason']})",
            )

    seller = await seller_crud.create(db, obj_in=body, user_id=user.id)
    logger.info(f"Seller profile {seller.id} created for user {user.id}")
    return seller


@router.put("/profile", response_model=SellerResponse)
async def update_profile(
    body: SellerUpdate,
    seller: Seller = Depends(require_seller),
    db: AsyncSession = Depends(get_db),
):
    return await seller_crud.update(db, db_obj=seller, obj_in=body)


# ── dashboard ─────────────────────────────────────────────────────────────

@router.get("/listings", response_model=List[ListingResponse])
async def my_listings(
    seller: Seller = Depends(require_seller),
    db: AsyncSession = Depends(get_db),
):
    """All of the shop's listings, in any state."""
    return await listing_crud.get_by_seller(db, seller.id)


@router.get("/stats", response_model=SellerStats)
async def stats(
    seller: Seller = Depends(require_seller),
    db: AsyncSession = Depends(get_db),
):
    return await seller_crud.get_stats(db, seller.id)


@router.get("/orders", response_model=List[OrderResponse])
async def my_orders(
    order_status: Optional[OrderStatus] = Query(None, alias="status"),
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=100),
    seller: Seller = Depends(require_seller),
    db: AsyncSession = Depends(get_db),
):
    return await order_crud.get_by_seller(db, seller.id, status=order_status, skip=skip, limit=limit)


@router.get("/analytics", response_model=AnalyticsOverview)
async def analytics(
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    seller: Seller = Depends(require_seller),
    db: AsyncSession = Depends(get_db),
):
    """Sales over a date range; defaults to the last 30 days."""
    end = as_utc(end) if end else utcnow()
    start = as_utc(start) if start else end - timedelta(days=30)
    if start >= end:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="start must be before end")
    return await seller_crud.get_analytics(db, seller.id, start=start, end=end)


@router.get("/earnings", response_model=EarningsResponse)
async def earnings(
    period: str = Query("month", pattern="^(week|month|year)$"),
    seller: Seller = Depends(require_seller),
    db: AsyncSession = Depends(get_db),
):
    return await seller_crud.get_earnings(db, seller.id, period)


@router.get("/payouts", response_model=List[PayoutResponse])
async def list_payouts(
    seller: Seller = Depends(require_seller),
    db: AsyncSession = Depends(get_db),
):
    return await seller_crud.get_payouts(db, seller.id)


@router.post("/payouts", response_model=PayoutResponse, status_code=status.HTTP_201_CREATED)
async def request_payout(
    body: PayoutRequest,
    seller: Seller = Depends(require_seller),
    db: AsyncSession = Depends(get_db),
):
    start, end = as_utc(body.period_start), as_utc(body.period_end)
    if start >= end:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="period_start must be before period_end")

    payout = await seller_crud.create_payout(db, seller.id, period_start=start, period_end=end)
    if payout is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No unpaid fulfilled orders in this period")
    logger.info(f"Payout {payout.id} of {payout.amount} requested by seller {seller.id}")
    return payout


@router.get("/low-stock", response_model=List[ListingResponse])
async def low_stock(
    threshold: int = Query(2, ge=0, le=1000),
    seller: Seller = Depends(require_seller),
    db: AsyncSession = Depends(get_db),
):
    return await listing_crud.get_low_stock(db, seller.id, threshold)


@router.put("/display-order")
async def display_order(
    body: DisplayOrderUpdate,
    seller: Seller = Depends(require_seller),
    db: AsyncSession = Depends(get_db),
):
    updated = await listing_crud.update_display_order(
        db, seller.id, [(item.listing_id, item.display_order) for item in body.items]
    )
    await cache.invalidate_catalog()
    return {"updated": updated}


@router.put("/listings/bulk", response_model=List[ListingResponse])
async def bulk_update_listings(
    body: ListingBulkUpdate,
    seller: Seller = Depends(require_seller),
    db: AsyncSession = Depends(get_db),
):
    """Edit several of the shop's listings; the response holds only those changed."""
    updated = await listing_crud.bulk_update(db, seller.id, [(item.id, item.updates) for item in body.items])
    await cache.invalidate_catalog()
    logger.info(f"Bulk updated {len(updated)} listing(s) for seller {seller.id}")
    return updated


# ── promotions ────────────────────────────────────────────────────────────

@router.get("/promotions", response_model=List[PromotionResponse])
async def list_promotions(
    seller: Seller = Depends(require_seller),
    db: AsyncSession = Depends(get_db),
):
    return await promotion_crud.get_by_seller(db, seller.id)


@router.post("/promotions", response_model=PromotionResponse, status_code=status.HTTP_201_CREATED)
async def create_promotion(
    body: PromotionCreate,
    seller: Seller = Depends(require_seller),
    db: AsyncSession = Depends(get_db),
):
    if await promotion_crud.get_by_code(db, seller.id, body.code):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Promotion code already exists")
    try:
        return await promotion_crud.create(db, obj_in=body, seller_id=seller.id, code=body.code.upper())
    except IntegrityError:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Promotion code already exists")


@router.put("/promotions/{promotion_id}", response_model=PromotionResponse)
async def update_promotion(
    promotion_id: str,
    body: PromotionUpdate,
    seller: Seller = Depends(require_seller),
    db: AsyncSession = Depends(get_db),
):
    promotion = await promotion_crud.get(db, promotion_id)
    if promotion is None or promotion.seller_id != seller.id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Promotion not found")
    if body.max_uses is not None and body.max_uses < promotion.current_uses:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"max_uses cannot be below the {promotion.current_uses} uses already taken",
        )
    return await promotion_crud.update(db, db_obj=promotion, obj_in=body)


# ── fulfilment ────────────────────────────────────────────────────────────

@router.post("/orders/{order_id}/tracking", response_model=OrderResponse)
async def add_tracking(
    order_id: str,
    body: TrackingUpdate,
    seller: Seller = Depends(require_seller),
    db: AsyncSession = Depends(get_db),
):
    try:
        return await checkout_service.add_tracking(
            db, seller, order_id, tracking_number=body.tracking_number, carrier=body.carrier
        )
    except CheckoutError as e:
        raise service_error(e)


@router.post("/orders/{order_id}/delivered", response_model=OrderResponse)
async def mark_delivered(
    order_id: str,
    seller: Seller = Depends(require_seller),
    db: AsyncSession = Depends(get_db),
):
    try:
        return await checkout_service.mark_delivered(db, seller, order_id)
    except CheckoutError as e:
        raise service_error(e)


# ── business verification ─────────────────────────────────────────────────

@router.post("/verification", response_model=QueueItemResponse, status_code=status.HTTP_201_CREATED)
async def submit_business_verification(
    request: Request,
    body: BusinessVerificationRequest,
    seller: Seller = Depends(require_seller),
    db: AsyncSession = Depends(get_db),
):
    try:
        return await verification_service.initiate_seller_verification(
            db, seller.id, body.model_dump(), client_info(request)
        )
    except VerificationError as e:
        raise service_error(e)
