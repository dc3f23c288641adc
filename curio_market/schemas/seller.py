"""Seller profile, dashboard and payout schemas."""

from datetime import datetime
from decimal import Decimal
from typing import Optional, List
from pydantic import BaseModel, Field

from curio_market.models.seller import SellerVerificationStatus
from curio_market.models.promotion import PayoutStatus


class SellerCreate(BaseModel):
    shop_name: str = Field(..., min_length=1, max_length=255)
    bio: Optional[str] = None
    banner: Optional[str] = Field(None, max_length=500)
    avatar: Optional[str] = Field(None, max_length=500)
    location: Optional[str] = Field(None, max_length=255)
    policies: Optional[str] = None


class SellerUpdate(BaseModel):
    shop_name: Optional[str] = Field(None, min_length=1, max_length=255)
    bio: Optional[str] = None
    banner: Optional[str] = Field(None, max_length=500)
    avatar: Optional[str] = Field(None, max_length=500)
    location: Optional[str] = Field(None, max_length=255)
    policies: Optional[str] = None


class SellerResponse(BaseModel):
    id: str
    user_id: str
    shop_name: str
    bio: Optional[str] = None
    banner: Optional[str] = None
    avatar: Optional[str] = None
    location: Optional[str] = None
    policies: Optional[str] = None
    is_active: bool
    verification_status: SellerVerificationStatus
    business_verified: bool = False
    created_at: datetime

    model_config = {"from_attributes": True}


class SellerStats(BaseModel):
    total_sales: Decimal
    order_count: int
    average_rating: Optional[float] = None
    review_count: int
    active_listings: int
    favorites: int
    total_views: int


class TopListing(BaseModel):
    listing_id: str
    title: str
    revenue: Decimal
    units: int


class AnalyticsOverview(BaseModel):
    start: datetime
    end: datetime
    revenue: Decimal
    orders: int
    average_order_value: Decimal
    top_listings: List[TopListing]


class EarningsResponse(BaseModel):
    period: str
    gross: Decimal
    platform_fees: Decimal
    net: Decimal
    order_count: int


class PayoutRequest(BaseModel):
    period_start: datetime
    period_end: datetime


class PayoutResponse(BaseModel):
    id: str
    seller_id: str
    amount: Decimal
    status: PayoutStatus
    period_start: datetime
    period_end: datetime
    orders_included: List[str] = Field(default_factory=list)
    created_at: datetime

    model_config = {"from_attributes": True}
