"""Favorites and shop follows."""

from datetime import datetime

from sqlalchemy import String, ForeignKey, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from curio_market.db.base import Base, UTCDateTime, new_id, utcnow


class Favorite(Base):
    __tablename__ = "favorites"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(String(64), ForeignKey("users.id"), nullable=False, index=True)
    listing_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("listings.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow)

    __table_args__ = (
        UniqueConstraint('user_id', 'listing_id', name='uq_favorites_user_listing'),
    )


class ShopFollow(Base):
    __tablename__ = "shop_follows"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(String(64), ForeignKey("users.id"), nullable=False, index=True)
    seller_id: Mapped[str] = mapped_column(String(64), ForeignKey("sellers.id"), nullable=False, index=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow)

    __table_args__ = (
        UniqueConstraint('user_id', 'seller_id', name='uq_shop_follows_user_seller'),
    )
