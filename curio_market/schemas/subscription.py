"""Seller subscription schemas."""

from typing import Optional
from pydantic import BaseModel, Field

from curio_market.models.user import SubscriptionState


class SubscriptionCreateResponse(BaseModel):
    subscription_id: str = Field(..., serialization_alias="subscriptionId")
    client_secret: Optional[str] = Field(None, serialization_alias="clientSecret")
    status: SubscriptionState
    # "payment" or "setup"; tells the browser which confirm call to make
    intent_type: Optional[str] = Field(None, serialization_alias="intentType")


class SubscriptionActivateRequest(BaseModel):
    setup_intent_id: str = Field(..., min_length=1, validation_alias="setupIntentId")

    model_config = {"populate_by_name": True}


class SubscriptionStatusResponse(BaseModel):
    active: bool
    reason: str
    status: SubscriptionState


class SubscriptionActivateResponse(BaseModel):
    success: bool
    status: SubscriptionState
    role: str
