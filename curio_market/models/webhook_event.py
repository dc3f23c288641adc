"""Processed payment-processor webhook events."""

from datetime import datetime

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from curio_market.db.base import Base, UTCDateTime, utcnow


class ProcessedWebhookEvent(Base):
    """One row per delivered event id; redeliveries are skipped."""
    __tablename__ = "stripe_events"

    id: Mapped[str] = mapped_column(String(255), primary_key=True)
    type: Mapped[str] = mapped_column(String(100), nullable=False)
    processed_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow)
