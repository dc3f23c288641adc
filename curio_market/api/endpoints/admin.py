"""Administration endpoints. Every route requires the admin role."""

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from curio_market.api.deps import client_info, service_error
from curio_market.core.logging import get_logger
from curio_market.core.security import require_admin
from curio_market.crud.listing import listing_crud
from curio_market.crud.moderation import flag_crud
from curio_market.crud.order import dispute_crud
from curio_market.crud.platform import get_platform_stats
from curio_market.crud.seller import seller_crud
from curio_market.crud.user import user_crud
from curio_market.db.session import get_db
from curio_market.models.listing import ListingState
from curio_market.models.moderation import FlagStatus, FlagTargetType
from curio_market.models.order import DisputeStatus
from curio_market.models.user import User, UserRole
from curio_market.models.verification import QueueStatus
from curio_market.schemas.admin import (
    AccountStatusUpdate,
    FlagModerate,
    FlagResponse,
    ListingStateUpdate,
    PlatformStats,
    ShopStatusUpdate,
)
from curio_market.schemas.common import PaginatedResponse
from curio_market.schemas.listing import ListingResponse
from curio_market.schemas.order import DisputeResolve, DisputeResponse, OrderResponse, RefundRequest
from curio_market.schemas.seller import SellerResponse
from curio_market.schemas.user import UserResponse
from curio_market.schemas.verification import (
    AddressDecisionRequest,
    AuditLogResponse,
    QueueApproveRequest,
    QueueItemResponse,
    QueueRejectRequest,
    VerificationRequestResponse,
)
from curio_market.services import export_service
from curio_market.services.cache_service import cache
from curio_market.services.checkout_service import CheckoutError, checkout_service
from curio_market.services.verification_service import VerificationError, verification_service

logger = get_logger(__name__)
router = APIRouter()


@router.get("/stats", response_model=PlatformStats)
async def platform_stats(
    _: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await get_platform_stats(db)


# ── users and shops ───────────────────────────────────────────────────────

@router.get("/users", response_model=List[UserResponse])
async def list_users(
    q: Optional[str] = Query(None, max_length=200),
    role: Optional[UserRole] = None,
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
    _: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await user_crud.search(db, query=q, role=role, skip=skip, limit=limit)


@router.put("/users/{user_id}/status", response_model=UserResponse)
async def set_account_status(
    user_id: str,
    body: AccountStatusUpdate,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Ban or unban. Accounts are never deleted."""
    if user_id == admin.id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Cannot change your own status")
    user = await user_crud.get(db, user_id)
    if user is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")

    user = await user_crud.set_banned(db, user, body.banned)
    logger.info(f"User {user_id} {'banned' if body.banned else 'unbanned'} by {admin.id}: {body.reason}")
    return user


@router.get("/shops", response_model=List[SellerResponse])
async def list_shops(
    q: Optional[str] = Query(None, max_length=200),
    is_active: Optional[bool] = None,
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
    _: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await seller_crud.search(db, query=q, is_active=is_active, skip=skip, limit=limit)


@router.put("/shops/{seller_id}/status", response_model=SellerResponse)
async def set_shop_status(
    seller_id: str,
    body: ShopStatusUpdate,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    seller = await seller_crud.get(db, seller_id)
    if seller is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Shop not found")

    seller = await seller_crud.update(db, db_obj=seller, obj_in={"is_active": body.is_active})
    await cache.invalidate_catalog()
    logger.info(f"Shop {seller_id} {'reactivated' if body.is_active else 'suspended'} by {admin.id}")
    return seller


# ── listings ──────────────────────────────────────────────────────────────

@router.get("/listings", response_model=PaginatedResponse[ListingResponse])
async def list_all_listings(
    q: Optional[str] = Query(None, max_length=200),
    state: Optional[ListingState] = None,
    seller_id: Optional[str] = None,
    page: int = Query(1, ge=1),
    per_page: int = Query(50, ge=1, le=100),
    _: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Listings in every state unless ``state`` narrows it."""
    items, total = await listing_crud.search(
        db,
        query=q,
        seller_id=seller_id,
        state=state,
        skip=(page - 1) * per_page,
        limit=per_page,
    )
    return PaginatedResponse[ListingResponse].create(
        items=[ListingResponse.model_validate(listing) for listing in items],
        total=total,
        page=page,
        per_page=per_page,
    )


@router.put("/listings/{listing_id}/state", response_model=ListingResponse)
async def set_listing_state(
    listing_id: str,
    body: ListingStateUpdate,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    listing = await listing_crud.get(db, listing_id)
    if listing is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Listing not found")

    listing = await listing_crud.set_state(db, listing, body.state)
    await cache.invalidate_catalog()
    logger.info(f"Listing {listing_id} set to {body.state.value} by {admin.id}")
    return listing


# ── moderation ────────────────────────────────────────────────────────────

@router.get("/flags", response_model=List[FlagResponse])
async def list_flags(
    flag_status: Optional[FlagStatus] = Query(FlagStatus.PENDING, alias="status"),
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
    _: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await flag_crud.list_by_status(db, flag_status, skip=skip, limit=limit)


@router.post("/flags/{flag_id}/moderate", response_model=FlagResponse)
async def moderate_flag(
    flag_id: str,
    body: FlagModerate,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    flag = await flag_crud.get(db, flag_id)
    if flag is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Flag not found")
    if flag.status != FlagStatus.PENDING:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=f"Flag already {flag.status.value}")
    if body.status == FlagStatus.PENDING:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Moderation must resolve or dismiss")

    if body.suspend_listing and flag.target_type == FlagTargetType.LISTING:
        listing = await listing_crud.get(db, flag.target_id)
        if listing is not None:
            await listing_crud.set_state(db, listing, ListingState.SUSPENDED)
            await cache.invalidate_catalog()
            logger.info(f"Listing {listing.id} suspended via flag {flag.id}")

    return await flag_crud.moderate(
        db, flag, status=body.status, moderator_id=admin.id, notes=body.moderator_notes
    )


@router.get("/disputes", response_model=List[DisputeResponse])
async def list_disputes(
    dispute_status: Optional[DisputeStatus] = Query(None, alias="status"),
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
    _: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await dispute_crud.list_by_status(db, dispute_status, skip=skip, limit=limit)


@router.post("/disputes/{dispute_id}/resolve", response_model=DisputeResponse)
async def resolve_dispute(
    dispute_id: str,
    body: DisputeResolve,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    try:
        return await checkout_service.resolve_dispute(
            db, dispute_id, admin.id, status=body.status, resolution_notes=body.resolution_notes
        )
    except CheckoutError as e:
        raise service_error(e)


@router.post("/refunds", response_model=OrderResponse)
async def refund_order(
    body: RefundRequest,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    try:
        return await checkout_service.refund_order(db, body.order_id, amount=body.amount, admin_id=admin.id)
    except CheckoutError as e:
        raise service_error(e)


# ── verification ──────────────────────────────────────────────────────────

@router.get("/verification/queue", response_model=List[QueueItemResponse])
async def verification_queue(
    queue_status: QueueStatus = Query(QueueStatus.PENDING, alias="status"),
    priority: Optional[int] = Query(None, ge=1, le=10),
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
    _: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Most urgent first: ascending priority, then oldest submission."""
    return await verification_service.get_verification_queue(
        db, status=queue_status, priority=priority, skip=skip, limit=limit
    )


@router.post("/verification/queue/{queue_id}/approve", response_model=QueueItemResponse)
async def approve_seller(
    queue_id: str,
    request: Request,
    body: QueueApproveRequest,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    try:
        return await verification_service.approve_seller_verification(
            db, queue_id, admin.id, body.notes, client_info(request)
        )
    except VerificationError as e:
        raise service_error(e)


@router.post("/verification/queue/{queue_id}/reject", response_model=QueueItemResponse)
async def reject_seller(
    queue_id: str,
    request: Request,
    body: QueueRejectRequest,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    try:
        return await verification_service.reject_seller_verification(
            db, queue_id, admin.id, body.reason, client_info(request)
        )
    except VerificationError as e:
        raise service_error(e)


@router.get("/verification/addresses", response_model=List[VerificationRequestResponse])
async def pending_addresses(
    _: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await verification_service.list_pending_addresses(db)


@router.post("/verification/addresses/{request_id}", response_model=VerificationRequestResponse)
async def decide_address(
    request_id: str,
    request: Request,
    body: AddressDecisionRequest,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    try:
        return await verification_service.decide_address_verification(
            db, request_id, admin.id, approved=body.approved, notes=body.notes, client=client_info(request)
        )
    except VerificationError as e:
        raise service_error(e)


@router.get("/verification/audit/{user_id}", response_model=List[AuditLogResponse])
async def audit_log(
    user_id: str,
    limit: int = Query(100, ge=1, le=500),
    _: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await verification_service.get_audit_log(db, user_id, limit)


# ── catalog exports ───────────────────────────────────────────────────────

def attachment(content, media_type: str, filename: str) -> Response:
    return Response(
        content=content,
        media_type=media_type,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.get("/exports/google-shopping.csv")
async def export_google_shopping(
    _: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    rows = await export_service.load_catalog(db)
    return attachment(export_service.google_shopping_csv(rows), "text/csv", "google-shopping.csv")


@router.get("/exports/facebook-catalog.csv")
async def export_facebook_catalog(
    _: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    rows = await export_service.load_catalog(db)
    return attachment(export_service.facebook_catalog_csv(rows), "text/csv", "facebook-catalog.csv")


@router.get("/exports/catalog.xlsx")
async def export_catalog_xlsx(
    include_unpublished: bool = False,
    _: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    rows = await export_service.load_catalog(db, include_unpublished=include_unpublished)
    return attachment(
        export_service.catalog_xlsx(rows),
        "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        "catalog.xlsx",
    )
