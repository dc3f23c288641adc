"""CRUD and reporting queries for sellers."""

from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple
from sqlalchemy import select, func, or_
from sqlalchemy.ext.asyncio import AsyncSession

from curio_market.crud.base import CRUDBase
from curio_market.db.base import utcnow
from curio_market.models.seller import Seller
from curio_market.models.listing import Listing, ListingState
from curio_market.models.order import Order, OrderItem, OrderStatus
from curio_market.models.review import Review
from curio_market.models.favorite import Favorite
from curio_market.models.promotion import Payout
from curio_market.schemas.seller import SellerCreate, SellerUpdate

# Orders that count as a sale for reporting
SALE_STATUSES = (OrderStatus.PAID, OrderStatus.SHIPPED, OrderStatus.FULFILLED)

EARNINGS_PERIOD_DAYS = {"week": 7, "month": 30, "year": 365}

ZERO = Decimal("0")


class CRUDSeller(CRUDBase[Seller, SellerCreate, SellerUpdate]):
    """CRUD operations for Seller model."""

    async def get_by_user_id(
        self,
        db: AsyncSession,
        user_id: str
    ) -> Optional[Seller]:
        result = await db.execute(
            select(Seller).where(Seller.user_id == user_id)
        )
        return result.scalar_one_or_none()

    async def search(
        self,
        db: AsyncSession,
        *,
        query: Optional[str] = None,
        is_active: Optional[bool] = None,
        skip: int = 0,
        limit: int = 50
    ) -> List[Seller]:
        stmt = select(Seller)
        if query:
            term = f"%{query}%"
            stmt = stmt.where(or_(Seller.shop_name.ilike(term), Seller.location.ilike(term)))
        if is_active is not None:
            stmt = stmt.where(Seller.is_active == is_active)
        stmt = stmt.order_by(Seller.created_at.desc()).offset(skip).limit(limit)
        result = await db.execute(stmt)
        return list(result.scalars().all())

    async def search_shops(
        self,
        db: AsyncSession,
        query: str,
        *,
        skip: int = 0,
        limit: int = 20
    ) -> Tuple[List[Seller], int]:
        """Public shop search over active shops; a blank query matches nothing."""
        query = (query or "").strip()
        if not query:
            return [], 0

        term = f"%{query}%"
        matches = (
            Seller.is_active.is_(True),
            or_(Seller.shop_name.ilike(term), Seller.bio.ilike(term), Seller.location.ilike(term)),
        )
        total = await db.scalar(select(func.count(Seller.id)).where(*matches)) or 0
        result = await db.execute(
            select(Seller).where(*matches).order_by(Seller.shop_name).offset(skip).limit(limit)
        )
        return list(result.scalars().all()), total

    async def get_stats(
        self,
        db: AsyncSession,
        seller_id: str
    ) -> Dict[str, Any]:
        """Dashboard headline numbers."""
        sales = await db.execute(
            select(func.coalesce(func.sum(Order.total), 0), func.count(Order.id))
            .where(Order.seller_id == seller_id, Order.status == OrderStatus.FULFILLED)
        )
        total_sales, fulfilled_count = sales.one()

        order_count = await db.scalar(
            select(func.count(Order.id))
            .where(Order.seller_id == seller_id, Order.status.in_(SALE_STATUSES))
        )

        ratings = await db.execute(
            select(func.avg(Review.rating), func.count(Review.id))
            .where(Review.seller_id == seller_id)
        )
        avg_rating, review_count = ratings.one()

        listings = await db.execute(
            select(
                func.count(Listing.id).filter(Listing.state == ListingState.PUBLISHED),
                func.coalesce(func.sum(Listing.views), 0),
            ).where(Listing.seller_id == seller_id)
        )
        active_listings, total_views = listings.one()

        favorites = await db.scalar(
            select(func.count(Favorite.id))
            .join(Listing, Listing.id == Favorite.listing_id)
            .where(Listing.seller_id == seller_id)
        )

        return {
            "total_sales": Decimal(str(total_sales or 0)),
            "order_count": order_count or 0,
            "average_rating": round(float(avg_rating), 2) if avg_rating is not None else None,
            "review_count": review_count or 0,
            "active_listings": active_listings or 0,
            "favorites": favorites or 0,
            "total_views": int(total_views or 0),
        }

    async def get_analytics(
        self,
        db: AsyncSession,
        seller_id: str,
        *,
        start: datetime,
        end: datetime,
        top_n: int = 5
    ) -> Dict[str, Any]:
        """Revenue, order volume and best sellers over a date range."""
        window = (
            Order.seller_id == seller_id,
            Order.status.in_(SALE_STATUSES),
            Order.created_at >= start,
            Order.created_at <= end,
        )
        totals = await db.execute(
            select(func.coalesce(func.sum(Order.total), 0), func.count(Order.id)).where(*window)
        )
        revenue, orders = totals.one()
        revenue = Decimal(str(revenue or 0))

        line_revenue = func.sum(OrderItem.price * OrderItem.quantity)
        top = await db.execute(
            select(
                OrderItem.listing_id,
                func.max(OrderItem.title),
                line_revenue,
                func.sum(OrderItem.quantity),
            )
            .join(Order, Order.id == OrderItem.order_id)
            .where(*window)
            .group_by(OrderItem.listing_id)
            .order_by(line_revenue.desc())
            .limit(top_n)
        )

        return {
            "start": start,
            "end": end,
            "revenue": revenue,
            "orders": orders or 0,
            "average_order_value": (revenue / orders).quantize(Decimal("0.01")) if orders else ZERO,
            "top_listings": [
                {
                    "listing_id": listing_id,
                    "title": title,
                    "revenue": Decimal(str(rev or 0)),
                    "units": int(units or 0),
                }
                for listing_id, title, rev, units in top.all()
            ],
        }

    async def get_earnings(
        self,
        db: AsyncSession,
        seller_id: str,
        period: str = "month"
    ) -> Dict[str, Any]:
        """Fulfilled-order earnings for the trailing week, month or year."""
        days = EARNINGS_PERIOD_DAYS.get(period, EARNINGS_PERIOD_DAYS["month"])
        since = utcnow() - timedelta(days=days)
        result = await db.execute(
            select(
                func.coalesce(func.sum(Order.total), 0),
                func.coalesce(func.sum(Order.platform_fee), 0),
                func.count(Order.id),
            ).where(
                Order.seller_id == seller_id,
                Order.status == OrderStatus.FULFILLED,
                Order.created_at >= since,
            )
        )
        gross, fees, count = result.one()
        gross = Decimal(str(gross or 0))
        fees = Decimal(str(fees or 0))
        return {
            "period": period if period in EARNINGS_PERIOD_DAYS else "month",
            "gross": gross,
            "platform_fees": fees,
            "net": gross - fees,
            "order_count": count or 0,
        }

    async def get_payouts(
        self,
        db: AsyncSession,
        seller_id: str
    ) -> List[Payout]:
        result = await db.execute(
            select(Payout)
            .where(Payout.seller_id == seller_id)
            .order_by(Payout.created_at.desc())
        )
        return list(result.scalars().all())

    async def create_payout(
        self,
        db: AsyncSession,
        seller_id: str,
        *,
        period_start: datetime,
        period_end: datetime
    ) -> Optional[Payout]:
        """
        Bundle fulfilled orders in the period that no earlier payout covered.

        Returns None when there is nothing to pay out.
        """
        already_paid = set()
        for payout in await self.get_payouts(db, seller_id):
            already_paid.update(payout.orders_included or [])

        result = await db.execute(
            select(Order).where(
                Order.seller_id == seller_id,
                Order.status == OrderStatus.FULFILLED,
                Order.created_at >= period_start,
                Order.created_at <= period_end,
            )
        )
        orders = [o for o in result.scalars().all() if o.id not in already_paid]
        if not orders:
            return None

        payout = Payout(
            seller_id=seller_id,
            amount=sum((o.total - o.platform_fee for o in orders), ZERO),
            period_start=period_start,
            period_end=period_end,
            orders_included=[o.id for o in orders],
        )
        db.add(payout)
        await db.flush()
        await db.refresh(payout)
        return payout


seller_crud = CRUDSeller(Seller)
