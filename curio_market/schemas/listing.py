"""Listing, image and category schemas."""

from datetime import datetime
from decimal import Decimal
from typing import Optional, List
from pydantic import BaseModel, Field, field_validator

from curio_market.models.listing import ListingState
from curio_market.services.object_storage import normalize_image_url


class ListingImageIn(BaseModel):
    url: str = Field(..., min_length=1, max_length=500)
    alt: Optional[str] = Field(None, max_length=255)
    sort_order: int = 0


class ListingImageResponse(BaseModel):
    """Image as returned to clients; the URL is always in `/objects/...` form."""
    id: str
    url: str
    alt: Optional[str] = None
    sort_order: int = 0

    model_config = {"from_attributes": True}

    @field_validator("url")
    @classmethod
    def normalize_url(cls, v: str) -> str:
        return normalize_image_url(v)


class ListingBase(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    description: str = Field(..., min_length=1)
    price: Decimal = Field(..., gt=0, max_digits=10, decimal_places=2)
    quantity: int = Field(1, ge=0)
    sku: Optional[str] = Field(None, max_length=100)
    mpn: Optional[str] = Field(None, max_length=100)
    condition: Optional[str] = Field(None, max_length=50)
    provenance: Optional[str] = None
    species_or_material: Optional[str] = Field(None, max_length=255)
    category_ids: List[str] = Field(default_factory=list)
    tags: List[str] = Field(default_factory=list)
    shipping_cost: Decimal = Field(Decimal("0"), ge=0, max_digits=10, decimal_places=2)


class ListingCreate(ListingBase):
    """New listings are drafts unless the seller publishes straight away."""
    state: ListingState = ListingState.DRAFT
    images: List[ListingImageIn] = Field(default_factory=list)


class ListingUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    price: Optional[Decimal] = Field(None, gt=0, max_digits=10, decimal_places=2)
    quantity: Optional[int] = Field(None, ge=0)
    sku: Optional[str] = None
    mpn: Optional[str] = None
    condition: Optional[str] = None
    provenance: Optional[str] = None
    species_or_material: Optional[str] = None
    category_ids: Optional[List[str]] = None
    tags: Optional[List[str]] = None
    shipping_cost: Optional[Decimal] = Field(None, ge=0)
    state: Optional[ListingState] = None


class ListingResponse(ListingBase):
    """Listing response schema."""
    id: str
    seller_id: str
    slug: str
    state: ListingState
    views: int = 0
    display_order: int = 0
    images: List[ListingImageResponse] = Field(default_factory=list)
    created_at: datetime
    updated_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class ListingImagesUpdate(BaseModel):
    """Replace a listing's images with the uploaded object URLs, in order."""
    images: List[ListingImageIn]


class StockUpdate(BaseModel):
    quantity: int = Field(..., ge=0)


class DisplayOrderItem(BaseModel):
    listing_id: str
    display_order: int = Field(..., ge=0)


class DisplayOrderUpdate(BaseModel):
    items: List[DisplayOrderItem]


class CategoryResponse(BaseModel):
    id: str
    name: str
    slug: str
    description: Optional[str] = None
    icon: Optional[str] = None
    parent_id: Optional[str] = None

    model_config = {"from_attributes": True}


class CategoryCount(BaseModel):
    category_id: str
    slug: str
    name: str
    count: int


class ListingImageUpload(BaseModel):
    """A finished upload to attach to a listing."""
    listing_id: str
    image_url: str = Field(..., min_length=1, max_length=500)
    alt: Optional[str] = Field(None, max_length=255)


class ImageUrlUpdate(BaseModel):
    image_url: str = Field(..., min_length=1, max_length=500)


class ListingBulkUpdateItem(BaseModel):
    id: str
    updates: ListingUpdate


class ListingBulkUpdate(BaseModel):
    items: List[ListingBulkUpdateItem] = Field(..., min_length=1, max_length=100)
