"""Buyer/seller messaging models."""

from datetime import datetime
from typing import Optional

from sqlalchemy import String, Text, Boolean, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column

from curio_market.db.base import Base, UTCDateTime, new_id, utcnow


class MessageThread(Base):
    """Conversation between a buyer and a seller's user account."""
    __tablename__ = "message_threads"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_id)
    buyer_id: Mapped[str] = mapped_column(String(64), ForeignKey("users.id"), nullable=False, index=True)
    seller_id: Mapped[str] = mapped_column(String(64), ForeignKey("users.id"), nullable=False, index=True)
    listing_id: Mapped[Optional[str]] = mapped_column(String(64), ForeignKey("listings.id"), nullable=True)
    order_id: Mapped[Optional[str]] = mapped_column(String(64), ForeignKey("orders.id"), nullable=True)
    subject: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow)
    updated_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, default=utcnow, onupdate=utcnow)

    def has_participant(self, user_id: str) -> bool:
        return user_id in (self.buyer_id, self.seller_id)


class Message(Base):
    __tablename__ = "messages"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_id)
    thread_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("message_threads.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    sender_id: Mapped[str] = mapped_column(String(64), ForeignKey("users.id"), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    is_read: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow)
