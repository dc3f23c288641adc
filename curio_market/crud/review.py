"""CRUD operations for Review model."""

from typing import List, Optional
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from curio_market.crud.base import CRUDBase
from curio_market.db.base import utcnow
from curio_market.models.review import Review
from curio_market.schemas.review import ReviewCreate


class CRUDReview(CRUDBase[Review, ReviewCreate, ReviewCreate]):
    """CRUD operations for Review model."""

    async def get_existing(
        self,
        db: AsyncSession,
        *,
        order_id: str,
        listing_id: str,
        buyer_id: str
    ) -> Optional[Review]:
        result = await db.execute(
            select(Review).where(
                Review.order_id == order_id,
                Review.listing_id == listing_id,
                Review.buyer_id == buyer_id,
            )
        )
        return result.scalar_one_or_none()

    async def get_by_listing(
        self,
        db: AsyncSession,
        listing_id: str,
        *,
        skip: int = 0,
        limit: int = 50
    ) -> List[Review]:
        result = await db.execute(
            select(Review)
            .where(Review.listing_id == listing_id)
            .order_by(Review.created_at.desc())
            .offset(skip)
            .limit(limit)
        )
        return list(result.scalars().all())

    async def get_by_seller(
        self,
        db: AsyncSession,
        seller_id: str,
        *,
        skip: int = 0,
        limit: int = 50
    ) -> List[Review]:
        result = await db.execute(
            select(Review)
            .where(Review.seller_id == seller_id)
            .order_by(Review.created_at.desc())
            .offset(skip)
            .limit(limit)
        )
        return list(result.scalars().all())

    async def add_seller_response(
        self,
        db: AsyncSession,
        review: Review,
        response: str
    ) -> Review:
        review.seller_response = response
        review.seller_response_date = utcnow()
        await db.flush()
        return review


review_crud = CRUDReview(Review)
