"""Administration and moderation schemas."""

from datetime import datetime
from decimal import Decimal
from typing import Optional
from pydantic import BaseModel, Field

from curio_market.models.listing import ListingState
from curio_market.models.moderation import FlagStatus, FlagTargetType


class PlatformStats(BaseModel):
    total_users: int
    total_sellers: int
    total_listings: int
    published_listings: int
    total_orders: int
    gross_merchandise_value: Decimal
    platform_revenue: Decimal
    pending_flags: int
    open_disputes: int
    pending_verifications: int


class AccountStatusUpdate(BaseModel):
    banned: bool
    reason: Optional[str] = None


class ShopStatusUpdate(BaseModel):
    is_active: bool


class ListingStateUpdate(BaseModel):
    state: ListingState


class FlagCreate(BaseModel):
    target_type: FlagTargetType
    target_id: str
    reason: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None


class FlagModerate(BaseModel):
    status: FlagStatus
    moderator_notes: Optional[str] = None
    # Suspend the flagged listing as part of resolving the flag
    suspend_listing: bool = False


class FlagResponse(BaseModel):
    id: str
    reporter_id: str
    target_type: FlagTargetType
    target_id: str
    reason: str
    description: Optional[str] = None
    status: FlagStatus
    moderator_notes: Optional[str] = None
    resolved_at: Optional[datetime] = None
    resolved_by: Optional[str] = None
    created_at: datetime

    model_config = {"from_attributes": True}
