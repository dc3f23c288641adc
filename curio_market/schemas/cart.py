"""Cart schemas."""

from decimal import Decimal
from typing import Optional, List
from pydantic import BaseModel, Field

from curio_market.schemas.listing import ListingImageResponse


class CartAdd(BaseModel):
    listing_id: str
    quantity: int = Field(1, ge=1, le=100)


class CartItemUpdate(BaseModel):
    quantity: int = Field(..., ge=1, le=100)


class CartListing(BaseModel):
    id: str
    title: str
    price: Decimal
    quantity: int
    shipping_cost: Decimal
    seller_id: str
    images: List[ListingImageResponse] = Field(default_factory=list)

    model_config = {"from_attributes": True}


class CartItemResponse(BaseModel):
    id: str
    listing_id: str
    quantity: int
    listing: Optional[CartListing] = None


class CartResponse(BaseModel):
    id: str
    items: List[CartItemResponse]
    subtotal: Decimal
    item_count: int
