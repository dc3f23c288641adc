"""Checkout, order and dispute schemas."""

from datetime import datetime
from decimal import Decimal
from typing import Optional, List, Dict, Any
from pydantic import BaseModel, Field

from curio_market.models.order import OrderStatus, DisputeStatus


class ShippingAddress(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    line1: str = Field(..., min_length=1, max_length=255)
    line2: Optional[str] = Field(None, max_length=255)
    city: str = Field(..., min_length=1, max_length=100)
    state: Optional[str] = Field(None, max_length=100)
    postal_code: str = Field(..., min_length=1, max_length=20)
    country: str = Field("US", min_length=2, max_length=2)


class PaymentIntentRequest(BaseModel):
    promotion_code: Optional[str] = Field(None, max_length=64)
    shipping_address: Optional[ShippingAddress] = None


class SellerGroupTotals(BaseModel):
    seller_id: str
    subtotal: Decimal
    shipping: Decimal
    discount: Decimal
    platform_fee: Decimal
    total: Decimal


class PaymentIntentResponse(BaseModel):
    client_secret: Optional[str] = None
    payment_intent_id: str
    amount: Decimal
    groups: List[SellerGroupTotals]


class OrderConfirmRequest(BaseModel):
    payment_intent_id: str
    shipping_address: Optional[ShippingAddress] = None
    promotion_code: Optional[str] = None


class OrderItemResponse(BaseModel):
    id: str
    listing_id: str
    quantity: int
    price: Decimal
    title: str

    model_config = {"from_attributes": True}


class OrderResponse(BaseModel):
    id: str
    buyer_id: str
    seller_id: str
    subtotal: Decimal
    shipping_cost: Decimal
    discount: Decimal
    platform_fee: Decimal
    total: Decimal
    promotion_code: Optional[str] = None
    status: OrderStatus
    stripe_payment_intent_id: Optional[str] = None
    shipping_address: Optional[Dict[str, Any]] = None
    tracking_number: Optional[str] = None
    carrier: Optional[str] = None
    shipped_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    items: List[OrderItemResponse] = Field(default_factory=list)
    created_at: datetime

    model_config = {"from_attributes": True}


class TrackingUpdate(BaseModel):
    tracking_number: str = Field(..., min_length=1, max_length=100)
    carrier: str = Field(..., min_length=1, max_length=50)


class DisputeCreate(BaseModel):
    reason: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None


class DisputeResolve(BaseModel):
    status: DisputeStatus
    resolution_notes: Optional[str] = None


class DisputeResponse(BaseModel):
    id: str
    order_id: str
    opened_by: str
    reason: str
    description: Optional[str] = None
    status: DisputeStatus
    resolution_notes: Optional[str] = None
    resolved_by: Optional[str] = None
    resolved_at: Optional[datetime] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class RefundRequest(BaseModel):
    order_id: str
    amount: Optional[Decimal] = Field(None, gt=0)
    reason: Optional[str] = None
