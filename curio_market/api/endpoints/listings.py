"""Catalog endpoints - listings, search and categories."""

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from curio_market.core.logging import get_logger
from curio_market.core.security import get_current_user, require_seller, require_user
from curio_market.crud.listing import listing_crud, category_crud
from curio_market.crud.seller import seller_crud
from curio_market.db.session import get_db
from curio_market.models.listing import Listing, ListingState
from curio_market.models.seller import Seller
from curio_market.models.user import User
from curio_market.schemas.common import PaginatedResponse
from curio_market.schemas.seller import SellerResponse
from curio_market.schemas.listing import (
    CategoryCount,
    CategoryResponse,
    ListingCreate,
    ListingImagesUpdate,
    ListingResponse,
    ListingUpdate,
    StockUpdate,
)
from curio_market.services.cache_service import cache, FEATURED_LISTINGS_KEY, CATEGORY_COUNTS_KEY

logger = get_logger(__name__)
router = APIRouter()

SORTS = "^(newest|price_asc|price_desc|popular|display)$"


async def owned_listing(db: AsyncSession, listing_id: str, user: User) -> Listing:
    """The listing if ``user`` owns its shop (or is an admin); 404/403 otherwise."""
    listing = await listing_crud.get(db, listing_id)
    if listing is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Listing not found")
    if user.is_admin:
        return listing
    seller = await seller_crud.get_by_user_id(db, user.id)
    if seller is None or listing.seller_id != seller.id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not your listing")
    return listing


async def _search(
    db: AsyncSession,
    *,
    query: Optional[str],
    category: Optional[str],
    seller_id: Optional[str],
    min_price: Optional[float],
    max_price: Optional[float],
    sort: str,
    page: int,
    per_page: int,
) -> PaginatedResponse[ListingResponse]:
    category_id = category
    if category:
        # Accept a slug as well as an id
        by_slug = await category_crud.get_by_slug(db, category)
        if by_slug is not None:
            category_id = by_slug.id

    items, total = await listing_crud.search(
        db,
        query=query,
        category_id=category_id,
        seller_id=seller_id,
        min_price=min_price,
        max_price=max_price,
        sort=sort,
        skip=(page - 1) * per_page,
        limit=per_page,
    )
    return PaginatedResponse[ListingResponse].create(
        items=[ListingResponse.model_validate(listing) for listing in items],
        total=total,
        page=page,
        per_page=per_page,
    )


@router.get("/listings", response_model=PaginatedResponse[ListingResponse])
async def list_listings(
    q: Optional[str] = Query(None, max_length=200),
    category: Optional[str] = None,
    seller_id: Optional[str] = None,
    min_price: Optional[float] = Query(None, ge=0),
    max_price: Optional[float] = Query(None, ge=0),
    sort: str = Query("newest", pattern=SORTS),
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
):
    """Published listings, filtered and paginated."""
    return await _search(
        db, query=q, category=category, seller_id=seller_id, min_price=min_price,
        max_price=max_price, sort=sort, page=page, per_page=per_page,
    )


@router.get("/search", response_model=PaginatedResponse[ListingResponse])
async def search_listings(
    q: str = Query("", max_length=200),
    category: Optional[str] = None,
    min_price: Optional[float] = Query(None, ge=0),
    max_price: Optional[float] = Query(None, ge=0),
    sort: str = Query("newest", pattern=SORTS),
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
):
    return await _search(
        db, query=q or None, category=category, seller_id=None, min_price=min_price,
        max_price=max_price, sort=sort, page=page, per_page=per_page,
    )


@router.get("/shops/search", response_model=PaginatedResponse[SellerResponse])
async def search_shops(
    q: str = Query("", max_length=200),
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
):
    """Active shops whose name, bio or location matches `q`."""
    shops, total = await seller_crud.search_shops(db, q, skip=(page - 1) * per_page, limit=per_page)
    return PaginatedResponse[SellerResponse].create(
        items=[SellerResponse.model_validate(shop) for shop in shops],
        total=total,
        page=page,
        per_page=per_page,
    )


@router.get("/listings/featured", response_model=List[ListingResponse])
async def featured_listings(db: AsyncSession = Depends(get_db)):
    cached = await cache.get(FEATURED_LISTINGS_KEY)
    if cached is not None:
        return cached

    listings = await listing_crud.get_featured(db)
    payload = [ListingResponse.model_validate(listing).model_dump(mode="json") for listing in listings]
    await cache.set(FEATURED_LISTINGS_KEY, payload)
    return payload


@router.get("/listings/{listing_id}", response_model=ListingResponse)
async def get_listing(
    listing_id: str,
    db: AsyncSession = Depends(get_db),
    user: Optional[User] = Depends(get_current_user),
):
    """Listing detail. Counts a view; unpublished listings are visible to their owner only."""
    listing = await listing_crud.get(db, listing_id)
    if listing is None:
        listing = await listing_crud.get_by_slug(db, listing_id)
    if listing is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Listing not found")

    if listing.state != ListingState.PUBLISHED:
        if user is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Listing not found")
        await owned_listing(db, listing.id, user)
        return listing

    await listing_crud.increment_views(db, listing)
    return listing


@router.post("/listings", response_model=ListingResponse, status_code=status.HTTP_201_CREATED)
async def create_listing(
    body: ListingCreate,
    seller: Seller = Depends(require_seller),
    db: AsyncSession = Depends(get_db),
):
    if not seller.is_active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Shop is suspended")
    if body.state == ListingState.SUSPENDED:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Cannot create a suspended listing")

    listing = await listing_crud.create_for_seller(db, obj_in=body, seller_id=seller.id)
    await cache.invalidate_catalog()
    logger.info(f"Listing {listing.id} created by seller {seller.id}")
    return listing


@router.put("/listings/{listing_id}", response_model=ListingResponse)
async def update_listing(
    listing_id: str,
    body: ListingUpdate,
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    listing = await owned_listing(db, listing_id, user)
    if body.state is not None and not user.is_admin:
        # Only moderators move listings in or out of suspension
        if body.state == ListingState.SUSPENDED or listing.state == ListingState.SUSPENDED:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Listing is suspended")

    listing = await listing_crud.update_listing(db, listing=listing, obj_in=body)
    await cache.invalidate_catalog()
    return listing


@router.delete("/listings/{listing_id}")
async def delete_listing(
    listing_id: str,
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    """Hard delete, or archive to draft when orders reference the listing."""
    listing = await owned_listing(db, listing_id, user)
    outcome = await listing_crud.remove(db, listing)
    await cache.invalidate_catalog()
    logger.info(f"Listing {listing_id} {outcome} by {user.id}")
    return {"success": True, "result": outcome}


@router.put("/listings/{listing_id}/images", response_model=ListingResponse)
async def replace_listing_images(
    listing_id: str,
    body: ListingImagesUpdate,
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    listing = await owned_listing(db, listing_id, user)
    listing = await listing_crud.replace_images(db, listing, body.images)
    await cache.invalidate_catalog()
    return listing


@router.patch("/listings/{listing_id}/stock", response_model=ListingResponse)
async def update_stock(
    listing_id: str,
    body: StockUpdate,
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    listing = await owned_listing(db, listing_id, user)
    return await listing_crud.update_stock(db, listing, body.quantity)


@router.get("/categories", response_model=List[CategoryResponse])
async def list_categories(db: AsyncSession = Depends(get_db)):
    return await category_crud.get_all(db)


@router.get("/categories/counts", response_model=List[CategoryCount])
async def category_counts(db: AsyncSession = Depends(get_db)):
    cached = await cache.get(CATEGORY_COUNTS_KEY)
    if cached is not None:
        return cached

    counts = await category_crud.get_counts(db)
    await cache.set(CATEGORY_COUNTS_KEY, counts)
    return counts
