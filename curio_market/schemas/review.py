"""Review, favorite and follow schemas."""

from datetime import datetime
from typing import Optional, List
from pydantic import BaseModel, Field, field_validator

from curio_market.services.object_storage import normalize_image_url


class ReviewCreate(BaseModel):
    listing_id: str
    rating: int = Field(..., ge=1, le=5)
    title: Optional[str] = Field(None, max_length=255)
    content: Optional[str] = None
    images: List[str] = Field(default_factory=list, max_length=10)


class SellerReply(BaseModel):
    response: str = Field(..., min_length=1)


class ReviewResponse(BaseModel):
    id: str
    order_id: str
    buyer_id: str
    seller_id: str
    listing_id: str
    rating: int
    title: Optional[str] = None
    content: Optional[str] = None
    images: List[str] = Field(default_factory=list)
    seller_response: Optional[str] = None
    seller_response_date: Optional[datetime] = None
    created_at: datetime

    model_config = {"from_attributes": True}

    @field_validator("images")
    @classmethod
    def normalize_images(cls, v: List[str]) -> List[str]:
        return [normalize_image_url(url) for url in v or []]


class FavoriteCreate(BaseModel):
    listing_id: str


class FollowCreate(BaseModel):
    seller_id: str


class FavoriteResponse(BaseModel):
    id: str
    listing_id: str
    created_at: datetime

    model_config = {"from_attributes": True}


class FollowResponse(BaseModel):
    id: str
    seller_id: str
    created_at: datetime

    model_config = {"from_attributes": True}


class ReviewImageUpload(BaseModel):
    review_id: str
    image_url: str = Field(..., min_length=1, max_length=500)
