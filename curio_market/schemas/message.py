"""Messaging schemas."""

from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field


class ThreadCreate(BaseModel):
    seller_user_id: str
    listing_id: Optional[str] = None
    order_id: Optional[str] = None
    subject: Optional[str] = Field(None, max_length=255)
    content: Optional[str] = Field(None, min_length=1, max_length=5000)


class ThreadResponse(BaseModel):
    id: str
    buyer_id: str
    seller_id: str
    listing_id: Optional[str] = None
    order_id: Optional[str] = None
    subject: Optional[str] = None
    unread_count: int = 0
    created_at: datetime
    updated_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class MessageCreate(BaseModel):
    content: str = Field(..., min_length=1, max_length=5000)


class MessageResponse(BaseModel):
    id: str
    thread_id: str
    sender_id: str
    content: str
    is_read: bool
    created_at: datetime

    model_config = {"from_attributes": True}


class UnreadCount(BaseModel):
    unread: int
