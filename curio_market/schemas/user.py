"""User and authentication schemas."""

from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field

from curio_market.models.user import UserRole, AccountStatus, SubscriptionState


class UserUpdate(BaseModel):
    """Profile fields a user may edit."""
    first_name: Optional[str] = Field(None, max_length=255)
    last_name: Optional[str] = Field(None, max_length=255)
    profile_image_url: Optional[str] = Field(None, max_length=500)
    phone_number: Optional[str] = Field(None, max_length=32)
    address: Optional[str] = Field(None, max_length=255)
    city: Optional[str] = Field(None, max_length=100)
    state: Optional[str] = Field(None, max_length=100)
    zip_code: Optional[str] = Field(None, max_length=20)
    country: Optional[str] = Field(None, min_length=2, max_length=2)


class UserResponse(BaseModel):
    """User response schema."""
    id: str
    email: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    profile_image_url: Optional[str] = None
    role: UserRole
    account_status: AccountStatus
    email_verified: bool = False
    phone_verified: bool = False
    identity_verified: bool = False
    address_verified: bool = False
    verification_level: int = 0
    subscription_status: SubscriptionState = SubscriptionState.NONE
    created_at: datetime

    model_config = {"from_attributes": True}


class Token(BaseModel):
    """JWT token response."""
    access_token: str
    refresh_token: str
    token_type: str = "bearer"


class TokenPayload(BaseModel):
    """JWT token payload."""
    sub: str
    exp: datetime
    type: str


class TokenValidateRequest(BaseModel):
    token: str


class TokenValidateResponse(BaseModel):
    valid: bool
    user: Optional[UserResponse] = None


class RefreshTokenRequest(BaseModel):
    """Refresh token request."""
    refresh_token: str
