"""Listing and listing image models."""

from datetime import datetime
from decimal import Decimal
from typing import List, Optional
import enum

from sqlalchemy import String, Text, Integer, Numeric, ForeignKey, Enum, Index
from sqlalchemy.orm import relationship, Mapped, mapped_column

from curio_market.db.base import Base, JSONB, UTCDateTime, new_id, utcnow


class ListingState(str, enum.Enum):
    DRAFT = "draft"
    PUBLISHED = "published"
    SUSPENDED = "suspended"


class Listing(Base):
    """An item a seller offers for sale."""
    __tablename__ = "listings"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_id)
    seller_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("sellers.id"),
        nullable=False,
        index=True
    )
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    slug: Mapped[str] = mapped_column(String(300), unique=True, nullable=False, index=True)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, default=1)
    sku: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    mpn: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    condition: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    provenance: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    species_or_material: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    # Denormalised: a listing can sit in several categories
    category_ids: Mapped[List[str]] = mapped_column(JSONB, default=list)
    tags: Mapped[List[str]] = mapped_column(JSONB, default=list)

    state: Mapped[ListingState] = mapped_column(Enum(ListingState), default=ListingState.DRAFT, nullable=False)
    shipping_cost: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("0"))
    views: Mapped[int] = mapped_column(Integer, default=0)
    display_order: Mapped[int] = mapped_column(Integer, default=0)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow)
    updated_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, default=utcnow, onupdate=utcnow)

    images: Mapped[List["ListingImage"]] = relationship(
        "ListingImage",
        order_by="ListingImage.sort_order",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    __table_args__ = (
        Index('ix_listings_seller_state', 'seller_id', 'state'),
        Index('ix_listings_created_at', 'created_at'),
    )

    def __repr__(self) -> str:
        return f"<Listing(id={self.id}, title={self.title}, state={self.state})>"


class ListingImage(Base):
    __tablename__ = "listing_images"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_id)
    listing_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("listings.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    url: Mapped[str] = mapped_column(String(500), nullable=False)
    alt: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    sort_order: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow)
