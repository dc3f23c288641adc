"""Pydantic schemas for request/response validation."""

from curio_market.schemas.common import PaginatedResponse, ErrorResponse, FieldError
from curio_market.schemas.user import UserResponse, UserUpdate, Token, TokenPayload
from curio_market.schemas.listing import (
    ListingCreate,
    ListingUpdate,
    ListingResponse,
    ListingImageResponse,
    CategoryResponse,
)
from curio_market.schemas.order import OrderResponse, OrderItemResponse
from curio_market.schemas.subscription import (
    SubscriptionCreateResponse,
    SubscriptionStatusResponse,
)

__all__ = [
    "PaginatedResponse",
    "ErrorResponse",
    "FieldError",
    "UserResponse",
    "UserUpdate",
    "Token",
    "TokenPayload",
    "ListingCreate",
    "ListingUpdate",
    "ListingResponse",
    "ListingImageResponse",
    "CategoryResponse",
    "OrderResponse",
    "OrderItemResponse",
    "SubscriptionCreateResponse",
    "SubscriptionStatusResponse",
]
