"""Buyer review model."""

from datetime import datetime
from typing import List, Optional

from sqlalchemy import String, Text, Integer, ForeignKey, UniqueConstraint, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column

from curio_market.db.base import Base, JSONB, UTCDateTime, new_id, utcnow


class Review(Base):
    """A buyer's rating of a listing from one of their orders."""
    __tablename__ = "reviews"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_id)
    order_id: Mapped[str] = mapped_column(String(64), ForeignKey("orders.id"), nullable=False, index=True)
    buyer_id: Mapped[str] = mapped_column(String(64), ForeignKey("users.id"), nullable=False, index=True)
    seller_id: Mapped[str] = mapped_column(String(64), ForeignKey("sellers.id"), nullable=False, index=True)
    listing_id: Mapped[str] = mapped_column(String(64), ForeignKey("listings.id"), nullable=False, index=True)

    rating: Mapped[int] = mapped_column(Integer, nullable=False)
    title: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    content: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    images: Mapped[List[str]] = mapped_column(JSONB, default=list)

    seller_response: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    seller_response_date: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow)

    __table_args__ = (
        UniqueConstraint('order_id', 'listing_id', 'buyer_id', name='uq_reviews_order_listing_buyer'),
        CheckConstraint('rating >= 1 AND rating <= 5', name='ck_reviews_rating_range'),
    )
