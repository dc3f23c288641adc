"""Health check endpoint."""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from curio_market.db.session import get_db
from curio_market.core.config import settings
from curio_market.services.cache_service import cache
from curio_market.services.stripe_gateway import stripe_gateway

router = APIRouter()


@router.get("/health")
async def health_check(db: AsyncSession = Depends(get_db)):
    """
    Health check endpoint.
    Reports database reachability and which integrations are configured.
    """
    db_status = "healthy"
    try:
        await db.execute(text("SELECT 1"))
    except SQLAlchemyError:
        db_status = "unhealthy"

    return {
        "status": "healthy" if db_status == "healthy" else "degraded",
        "version": settings.VERSION,
        "service": settings.PROJECT_NAME,
        "database": db_status,
        "cache": "connected" if cache.connected else "disabled",
        "payments": "configured" if stripe_gateway.configured else "disabled",
    }
