"""Favorites, shop follows, reviews and content flags."""

from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from curio_market.core.logging import get_logger
from curio_market.core.security import require_seller, require_user
from curio_market.crud.favorite import favorite_crud, follow_crud
from curio_market.crud.listing import listing_crud
from curio_market.crud.moderation import flag_crud
from curio_market.crud.review import review_crud
from curio_market.crud.seller import seller_crud
from curio_market.db.session import get_db
from curio_market.models.seller import Seller
from curio_market.models.user import User
from curio_market.schemas.admin import FlagCreate, FlagResponse
from curio_market.schemas.review import (
    FavoriteCreate,
    FavoriteResponse,
    FollowCreate,
    FollowResponse,
    ReviewResponse,
    SellerReply,
)

logger = get_logger(__name__)
router = APIRouter()


# ── favorites ─────────────────────────────────────────────────────────────

@router.get("/favorites", response_model=List[FavoriteResponse])
async def list_favorites(
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    return await favorite_crud.list_for_user(db, user.id)


@router.post("/favorites", response_model=FavoriteResponse)
async def add_favorite(
    body: FavoriteCreate,
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    if await listing_crud.get(db, body.listing_id) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Listing not found")
    return await favorite_crud.add(db, user.id, body.listing_id)


@router.delete("/favorites/{listing_id}")
async def remove_favorite(
    listing_id: str,
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    removed = await favorite_crud.remove(db, user.id, listing_id)
    return {"success": True, "removed": removed}


# ── follows ───────────────────────────────────────────────────────────────

@router.get("/follows", response_model=List[FollowResponse])
async def list_follows(
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    return await follow_crud.list_for_user(db, user.id)


@router.post("/follows", response_model=FollowResponse)
async def follow_shop(
    body: FollowCreate,
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    if await seller_crud.get(db, body.seller_id) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Shop not found")
    return await follow_crud.add(db, user.id, body.seller_id)


@router.delete("/follows/{seller_id}")
async def unfollow_shop(
    seller_id: str,
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    removed = await follow_crud.remove(db, user.id, seller_id)
    return {"success": True, "removed": removed}


@router.get("/shops/{seller_id}/followers")
async def follower_count(seller_id: str, db: AsyncSession = Depends(get_db)):
    return {"seller_id": seller_id, "followers": await follow_crud.count_followers(db, seller_id)}


# ── reviews ───────────────────────────────────────────────────────────────

@router.get("/reviews/listing/{listing_id}", response_model=List[ReviewResponse])
async def listing_reviews(
    listing_id: str,
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
):
    return await review_crud.get_by_listing(db, listing_id, skip=skip, limit=limit)


@router.get("/reviews/seller/{seller_id}", response_model=List[ReviewResponse])
async def seller_reviews(
    seller_id: str,
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
):
    return await review_crud.get_by_seller(db, seller_id, skip=skip, limit=limit)


@router.post("/reviews/{review_id}/response", response_model=ReviewResponse)
async def reply_to_review(
    review_id: str,
    body: SellerReply,
    seller: Seller = Depends(require_seller),
    db: AsyncSession = Depends(get_db),
):
    review = await review_crud.get(db, review_id)
    if review is None or review.seller_id != seller.id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Review not found")
    return await review_crud.add_seller_response(db, review, body.response)


# ── flags ─────────────────────────────────────────────────────────────────

@router.post("/flags", response_model=FlagResponse, status_code=status.HTTP_201_CREATED)
async def flag_content(
    body: FlagCreate,
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    """Report a listing, user, review or message to the moderators."""
    flag = await flag_crud.create(db, obj_in=body, reporter_id=user.id)
    logger.info(f"Flag {flag.id} raised on {body.target_type.value} {body.target_id} by {user.id}")
    return flag
