"""Content flags raised by users for admin moderation."""

from datetime import datetime
from typing import Optional
import enum

from sqlalchemy import String, Text, ForeignKey, Enum
from sqlalchemy.orm import Mapped, mapped_column

from curio_market.db.base import Base, UTCDateTime, new_id, utcnow


class FlagTargetType(str, enum.Enum):
    LISTING = "listing"
    USER = "user"
    REVIEW = "review"
    MESSAGE = "message"


class FlagStatus(str, enum.Enum):
    PENDING = "pending"
    RESOLVED = "resolved"
    DISMISSED = "dismissed"


class Flag(Base):
    __tablename__ = "flags"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_id)
    reporter_id: Mapped[str] = mapped_column(String(64), ForeignKey("users.id"), nullable=False)
    target_type: Mapped[FlagTargetType] = mapped_column(Enum(FlagTargetType), nullable=False)
    target_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    reason: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    status: Mapped[FlagStatus] = mapped_column(Enum(FlagStatus), default=FlagStatus.PENDING, nullable=False)
    moderator_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    resolved_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    resolved_by: Mapped[Optional[str]] = mapped_column(String(64), ForeignKey("users.id"), nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow)
