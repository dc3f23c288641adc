"""Verification and seller review queue schemas."""

from datetime import datetime
from typing import Optional, List, Dict, Any
from pydantic import BaseModel, EmailStr, Field

from curio_market.models.verification import (
    VerificationType,
    VerificationStatus,
    QueueStatus,
    QueueDecision,
)


class CodeVerifyRequest(BaseModel):
    code: str = Field(..., min_length=4, max_length=16)


class PhoneSendRequest(BaseModel):
    phone_number: str = Field(..., min_length=7, max_length=32)


class CodeSentResponse(BaseModel):
    expires_at: datetime
    # Only populated in debug mode, where no SMS/mail gateway is wired up
    code: Optional[str] = None


class AddressVerificationRequest(BaseModel):
    address: str = Field(..., min_length=1, max_length=255)
    city: str = Field(..., min_length=1, max_length=100)
    state: Optional[str] = Field(None, max_length=100)
    zip_code: str = Field(..., min_length=1, max_length=20)
    country: str = Field("US", min_length=2, max_length=2)


class BusinessVerificationRequest(BaseModel):
    business_name: str = Field(..., min_length=1, max_length=255)
    business_type: Optional[str] = Field(None, max_length=64)
    tax_id: Optional[str] = Field(None, max_length=64)
    business_license: Optional[str] = Field(None, max_length=255)
    business_address: Optional[str] = Field(None, max_length=500)
    business_phone: Optional[str] = Field(None, max_length=32)
    business_email: Optional[EmailStr] = None
    documents: List[str] = Field(default_factory=list)


class VerificationRequestResponse(BaseModel):
    id: str
    type: VerificationType
    status: VerificationStatus
    attempts: int = 0
    code_expires_at: Optional[datetime] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class VerificationStatusResponse(BaseModel):
    email_verified: bool
    phone_verified: bool
    identity_verified: bool
    address_verified: bool
    verification_level: int
    pending_requests: List[VerificationRequestResponse]


class IdentitySessionResponse(BaseModel):
    session_id: str
    session_url: Optional[str] = None


class QueueItemResponse(BaseModel):
    id: str
    seller_id: str
    queue_type: str
    priority: int
    risk_factors: List[str] = Field(default_factory=list)
    submitted_documents: Optional[Any] = None
    status: QueueStatus
    decision: Optional[QueueDecision] = None
    decision_reason: Optional[str] = None
    review_notes: Optional[str] = None
    assigned_to: Optional[str] = None
    reviewed_at: Optional[datetime] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class QueueApproveRequest(BaseModel):
    notes: Optional[str] = None


class QueueRejectRequest(BaseModel):
    reason: str = Field(..., min_length=1)


class AddressDecisionRequest(BaseModel):
    approved: bool
    notes: Optional[str] = None


class AuditLogResponse(BaseModel):
    id: str
    user_id: str
    action: str
    action_by: Optional[str] = None
    details: Optional[Dict[str, Any]] = None
    created_at: datetime

    model_config = {"from_attributes": True}
