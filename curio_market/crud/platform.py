"""Platform-wide reporting queries for the admin dashboard."""

from decimal import Decimal
from typing import Any, Dict
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from curio_market.crud.seller import SALE_STATUSES
from curio_market.models.listing import Listing, ListingState
from curio_market.models.moderation import Flag, FlagStatus
from curio_market.models.order import Order, Dispute, DisputeStatus
from curio_market.models.seller import Seller
from curio_market.models.user import User
from curio_market.models.verification import SellerReviewQueueItem, QueueStatus


async def get_platform_stats(db: AsyncSession) -> Dict[str, Any]:
    sales = await db.execute(
        select(
            func.coalesce(func.sum(Order.total), 0),
            func.coalesce(func.sum(Order.platform_fee), 0),
        ).where(Order.status.in_(SALE_STATUSES))
    )
    gmv, revenue = sales.one()

    listings = await db.execute(
        select(
            func.count(Listing.id),
            func.count(Listing.id).filter(Listing.state == ListingState.PUBLISHED),
        )
    )
    total_listings, published = listings.one()

    return {
        "total_users": await db.scalar(select(func.count(User.id))) or 0,
        "total_sellers": await db.scalar(select(func.count(Seller.id))) or 0,
        "total_listings": total_listings or 0,
        "published_listings": published or 0,
        "total_orders": await db.scalar(select(func.count(Order.id))) or 0,
        "gross_merchandise_value": Decimal(str(gmv or 0)),
        "platform_revenue": Decimal(str(revenue or 0)),
        "pending_flags": await db.scalar(
            select(func.count(Flag.id)).where(Flag.status == FlagStatus.PENDING)
        ) or 0,
        "open_disputes": await db.scalar(
            select(func.count(Dispute.id)).where(Dispute.status == DisputeStatus.OPEN)
        ) or 0,
        "pending_verifications": await db.scalar(
            select(func.count(SellerReviewQueueItem.id))
            .where(SellerReviewQueueItem.status == QueueStatus.PENDING)
        ) or 0,
    }
