"""Seller (shop) model."""

from datetime import datetime
from typing import Optional
import enum

from sqlalchemy import String, Text, Boolean, Integer, ForeignKey, Enum
from sqlalchemy.orm import Mapped, mapped_column

from curio_market.db.base import Base, UTCDateTime, new_id, utcnow


class SellerVerificationStatus(str, enum.Enum):
    UNVERIFIED = "unverified"
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class Seller(Base):
    """A shop owned by exactly one user."""
    __tablename__ = "sellers"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("users.id"),
        unique=True,
        nullable=False,
        index=True
    )

    # Shop
    shop_name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    bio: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    banner: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    avatar: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    location: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    policies: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    # Business verification
    business_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    business_type: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    tax_id_hash: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    business_license: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    business_address: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    business_phone: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    business_email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    verification_status: Mapped[SellerVerificationStatus] = mapped_column(
        Enum(SellerVerificationStatus),
        default=SellerVerificationStatus.UNVERIFIED,
        nullable=False
    )
    business_verified: Mapped[bool] = mapped_column(Boolean, default=False)
    verified_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    verified_by: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    rejection_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    risk_score: Mapped[int] = mapped_column(Integer, default=0)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow)
    updated_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, default=utcnow, onupdate=utcnow)

    def __repr__(self) -> str:
        return f"<Seller(id={self.id}, shop_name={self.shop_name})>"
