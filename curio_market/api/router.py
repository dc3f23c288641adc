"""API router - aggregates all endpoint routers."""

from fastapi import APIRouter

from curio_market.api.endpoints import (
    admin,
    auth,
    cart,
    health,
    listings,
    messages,
    notifications,
    objects,
    orders,
    seller,
    social,
    subscription,
    verification,
    webhooks,
)
from curio_market.schemas.common import ERROR_RESPONSES

api_router = APIRouter(responses=ERROR_RESPONSES)

# Include endpoint routers
api_router.include_router(health.router, tags=["health"])
api_router.include_router(auth.router, prefix="/auth", tags=["auth"])
api_router.include_router(listings.router, tags=["catalog"])
api_router.include_router(cart.router, tags=["cart"])
api_router.include_router(orders.router, tags=["orders"])
api_router.include_router(subscription.router, tags=["subscription"])
api_router.include_router(seller.router, prefix="/seller", tags=["seller"])
api_router.include_router(verification.router, prefix="/verification", tags=["verification"])
api_router.include_router(social.router, tags=["social"])
api_router.include_router(messages.router, prefix="/messages", tags=["messages"])
api_router.include_router(notifications.router, prefix="/notifications", tags=["notifications"])
api_router.include_router(admin.router, prefix="/admin", tags=["admin"])
api_router.include_router(webhooks.router, tags=["webhooks"])
api_router.include_router(objects.router, tags=["objects"])
