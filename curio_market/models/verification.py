"""Verification requests, identity sessions, seller review queue and audit log."""

from datetime import datetime
from typing import List, Optional
import enum

from sqlalchemy import String, Text, Integer, ForeignKey, Enum, Index
from sqlalchemy.orm import Mapped, mapped_column

from curio_market.db.base import Base, JSONB, UTCDateTime, new_id, utcnow


class VerificationType(str, enum.Enum):
    EMAIL = "email"
    PHONE = "phone"
    IDENTITY = "identity"
    ADDRESS = "address"
    BUSINESS = "business"
    TAX_ID = "tax_id"


class VerificationStatus(str, enum.Enum):
    PENDING = "pending"
    VERIFIED = "verified"
    FAILED = "failed"
    EXPIRED = "expired"
    REJECTED = "rejected"


class QueueStatus(str, enum.Enum):
    PENDING = "pending"
    COMPLETED = "completed"


class QueueDecision(str, enum.Enum):
    APPROVED = "approved"
    REJECTED = "rejected"


class VerificationRequest(Base):
    """A single attempt to verify one attribute of a user."""
    __tablename__ = "verification_requests"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(String(64), ForeignKey("users.id"), nullable=False, index=True)
    type: Mapped[VerificationType] = mapped_column(Enum(VerificationType), nullable=False)
    status: Mapped[VerificationStatus] = mapped_column(
        Enum(VerificationStatus),
        default=VerificationStatus.PENDING,
        nullable=False
    )
    verification_code: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)
    code_expires_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    attempts: Mapped[int] = mapped_column(Integer, default=0)
    data: Mapped[Optional[dict]] = mapped_column(JSONB, nullable=True)
    documents: Mapped[Optional[list]] = mapped_column(JSONB, nullable=True)
    reviewed_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    reviewed_by: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow)
    updated_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        Index('ix_verification_requests_user_type_status', 'user_id', 'type', 'status'),
    )


class IdentityVerificationSession(Base):
    __tablename__ = "identity_verification_sessions"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(String(64), ForeignKey("users.id"), nullable=False, index=True)
    provider_session_id: Mapped[Optional[str]] = mapped_column(String(255), index=True, nullable=True)
    status: Mapped[str] = mapped_column(String(32), default="requires_input")
    url: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow)
    updated_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, default=utcnow, onupdate=utcnow)


class SellerReviewQueueItem(Base):
    """Manual review work item. Lower priority numbers are reviewed first."""
    __tablename__ = "seller_review_queue"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_id)
    seller_id: Mapped[str] = mapped_column(String(64), ForeignKey("sellers.id"), nullable=False, index=True)
    queue_type: Mapped[str] = mapped_column(String(32), default="business_verification")
    priority: Mapped[int] = mapped_column(Integer, default=5)
    risk_factors: Mapped[List[str]] = mapped_column(JSONB, default=list)
    submitted_documents: Mapped[Optional[dict]] = mapped_column(JSONB, nullable=True)
    status: Mapped[QueueStatus] = mapped_column(Enum(QueueStatus), default=QueueStatus.PENDING, nullable=False)
    decision: Mapped[Optional[QueueDecision]] = mapped_column(Enum(QueueDecision), nullable=True)
    decision_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    review_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    assigned_to: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    reviewed_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow)

    __table_args__ = (
        Index('ix_seller_review_queue_status_priority', 'status', 'priority'),
    )

    @property
    def is_completed(self) -> bool:
        return self.status == QueueStatus.COMPLETED


class VerificationAuditLog(Base):
    __tablename__ = "verification_audit_log"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(String(64), ForeignKey("users.id"), nullable=False, index=True)
    action: Mapped[str] = mapped_column(String(64), nullable=False)
    action_by: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    details: Mapped[Optional[dict]] = mapped_column(JSONB, nullable=True)
    ip_address: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    user_agent: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow)
