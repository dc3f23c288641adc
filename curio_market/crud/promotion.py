"""CRUD operations for Promotion model."""

from typing import List, Optional
from sqlalchemy import select, update, func, or_
from sqlalchemy.ext.asyncio import AsyncSession

from curio_market.crud.base import CRUDBase
from curio_market.models.promotion import Promotion
from curio_market.schemas.promotion import PromotionCreate, PromotionUpdate


class CRUDPromotion(CRUDBase[Promotion, PromotionCreate, PromotionUpdate]):
    """CRUD operations for Promotion model."""

    async def get_by_code(
        self,
        db: AsyncSession,
        seller_id: str,
        code: str
    ) -> Optional[Promotion]:
        result = await db.execute(
            select(Promotion).where(
                Promotion.seller_id == seller_id,
                func.upper(Promotion.code) == code.upper(),
            )
        )
        return result.scalar_one_or_none()

    async def get_by_seller(
        self,
        db: AsyncSession,
        seller_id: str
    ) -> List[Promotion]:
        result = await db.execute(
            select(Promotion)
            .where(Promotion.seller_id == seller_id)
            .order_by(Promotion.created_at.desc())
        )
        return list(result.scalars().all())

    async def try_increment_usage(
        self,
        db: AsyncSession,
        promotion_id: str
    ) -> bool:
        """
        Atomically take one use of the promotion.

        The guard lives in the UPDATE's WHERE clause, so two concurrent
        redemptions of the last use cannot both succeed.
        """
        result = await db.execute(
            update(Promotion)
            .where(
                Promotion.id == promotion_id,
                or_(Promotion.max_uses.is_(None), Promotion.current_uses < Promotion.max_uses),
            )
            .values(current_uses=Promotion.current_uses + 1)
            .execution_options(synchronize_session="fetch")
        )
        return result.rowcount == 1


promotion_crud = CRUDPromotion(Promotion)
