"""CRUD operations for orders and disputes."""

from typing import Any, List, Optional
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from curio_market.crud.base import CRUDBase
from curio_market.db.base import utcnow
from curio_market.models.order import Order, OrderItem, OrderStatus, Dispute, DisputeStatus


class CRUDOrder(CRUDBase[Order, Any, Any]):
    """CRUD operations for Order model."""

    async def get_by_buyer(
        self,
        db: AsyncSession,
        buyer_id: str,
        *,
        skip: int = 0,
        limit: int = 50
    ) -> List[Order]:
        result = await db.execute(
            select(Order)
            .where(Order.buyer_id == buyer_id)
            .order_by(Order.created_at.desc())
            .offset(skip)
            .limit(limit)
        )
        return list(result.scalars().all())

    async def get_by_seller(
        self,
        db: AsyncSession,
        seller_id: str,
        *,
        status: Optional[OrderStatus] = None,
        skip: int = 0,
        limit: int = 50
    ) -> List[Order]:
        stmt = select(Order).where(Order.seller_id == seller_id)
        if status:
            stmt = stmt.where(Order.status == status)
        result = await db.execute(
            stmt.order_by(Order.created_at.desc()).offset(skip).limit(limit)
        )
        return list(result.scalars().all())

    async def get_by_payment_intent(
        self,
        db: AsyncSession,
        payment_intent_id: str
    ) -> List[Order]:
        result = await db.execute(
            select(Order).where(Order.stripe_payment_intent_id == payment_intent_id)
        )
        return list(result.scalars().all())

    async def contains_listing(
        self,
        db: AsyncSession,
        order_id: str,
        listing_id: str
    ) -> bool:
        found = await db.scalar(
            select(OrderItem.id)
            .where(OrderItem.order_id == order_id, OrderItem.listing_id == listing_id)
            .limit(1)
        )
        return found is not None

    async def mark_shipped(
        self,
        db: AsyncSession,
        order: Order,
        *,
        tracking_number: str,
        carrier: str
    ) -> Order:
        order.tracking_number = tracking_number
        order.carrier = carrier
        order.status = OrderStatus.SHIPPED
        order.shipped_at = utcnow()
        await db.flush()
        return order

    async def mark_delivered(self, db: AsyncSession, order: Order) -> Order:
        order.status = OrderStatus.FULFILLED
        order.delivered_at = utcnow()
        await db.flush()
        return order


class CRUDDispute(CRUDBase[Dispute, Any, Any]):
    """CRUD operations for Dispute model."""

    async def get_open_for_order(
        self,
        db: AsyncSession,
        order_id: str
    ) -> Optional[Dispute]:
        result = await db.execute(
            select(Dispute).where(Dispute.order_id == order_id, Dispute.status == DisputeStatus.OPEN)
        )
        return result.scalars().first()

    async def list_by_status(
        self,
        db: AsyncSession,
        status: Optional[DisputeStatus] = None,
        *,
        skip: int = 0,
        limit: int = 50
    ) -> List[Dispute]:
        stmt = select(Dispute)
        if status:
            stmt = stmt.where(Dispute.status == status)
        result = await db.execute(
            stmt.order_by(Dispute.created_at.desc()).offset(skip).limit(limit)
        )
        return list(result.scalars().all())


order_crud = CRUDOrder(Order)
dispute_crud = CRUDDispute(Dispute)
