"""Favorites and shop follows. Adds and removes are idempotent."""

from typing import List, Optional
from sqlalchemy import select, delete, func
from sqlalchemy.ext.asyncio import AsyncSession

from curio_market.models.favorite import Favorite, ShopFollow


class CRUDFavorite:

    async def list_for_user(self, db: AsyncSession, user_id: str) -> List[Favorite]:
        result = await db.execute(
            select(Favorite)
            .where(Favorite.user_id == user_id)
            .order_by(Favorite.created_at.desc())
        )
        return list(result.scalars().all())

    async def get(self, db: AsyncSession, user_id: str, listing_id: str) -> Optional[Favorite]:
        result = await db.execute(
            select(Favorite).where(Favorite.user_id == user_id, Favorite.listing_id == listing_id)
        )
        return result.scalar_one_or_none()

    async def add(self, db: AsyncSession, user_id: str, listing_id: str) -> Favorite:
        favorite = await self.get(db, user_id, listing_id)
        if favorite is None:
            favorite = Favorite(user_id=user_id, listing_id=listing_id)
            db.add(favorite)
            await db.flush()
        return favorite

    async def remove(self, db: AsyncSession, user_id: str, listing_id: str) -> bool:
        result = await db.execute(
            delete(Favorite).where(Favorite.user_id == user_id, Favorite.listing_id == listing_id)
        )
        return result.rowcount > 0

    async def count_for_listing(self, db: AsyncSession, listing_id: str) -> int:
        return await db.scalar(
            select(func.count(Favorite.id)).where(Favorite.listing_id == listing_id)
        ) or 0


class CRUDShopFollow:

    async def list_for_user(self, db: AsyncSession, user_id: str) -> List[ShopFollow]:
        result = await db.execute(
            select(ShopFollow)
            .where(ShopFollow.user_id == user_id)
            .order_by(ShopFollow.created_at.desc())
        )
        return list(result.scalars().all())

    async def add(self, db: AsyncSession, user_id: str, seller_id: str) -> ShopFollow:
        result = await db.execute(
            select(ShopFollow).where(ShopFollow.user_id == user_id, ShopFollow.seller_id == seller_id)
        )
        follow = result.scalar_one_or_none()
        if follow is None:
            follow = ShopFollow(user_id=user_id, seller_id=seller_id)
            db.add(follow)
            await db.flush()
        return follow

    async def remove(self, db: AsyncSession, user_id: str, seller_id: str) -> bool:
        result = await db.execute(
            delete(ShopFollow).where(ShopFollow.user_id == user_id, ShopFollow.seller_id == seller_id)
        )
        return result.rowcount > 0

    async def count_followers(self, db: AsyncSession, seller_id: str) -> int:
        return await db.scalar(
            select(func.count(ShopFollow.id)).where(ShopFollow.seller_id == seller_id)
        ) or 0


favorite_crud = CRUDFavorite()
follow_crud = CRUDShopFollow()
