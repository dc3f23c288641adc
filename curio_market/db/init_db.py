"""Database initialization utilities."""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from curio_market.db.base import Base
from curio_market.db.session import engine
from curio_market.core.logging import get_logger

logger = get_logger(__name__)

# Top-level categories the storefront navigation is built around
DEFAULT_CATEGORIES = [
    ("Taxidermy", "taxidermy"),
    ("Wet Specimens", "wet-specimens"),
    ("Bones & Skulls", "bones-skulls"),
    ("Occult", "occult"),
    ("Antiques", "antiques"),
    ("Art", "art"),
]


async def create_tables() -> None:
    """Create all database tables."""
    import curio_market.models  # noqa: F401  (registers every model)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables created")


async def drop_tables() -> None:
    """Drop all database tables (use with caution!)."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    logger.warning("Database tables dropped")


async def init_db(db: AsyncSession) -> None:
    """Seed the default categories if the table is empty."""
    from curio_market.models.category import Category

    existing = await db.execute(select(Category.id).limit(1))
    if existing.first() is None:
        for name, slug in DEFAULT_CATEGORIES:
            db.add(Category(name=name, slug=slug))
        await db.flush()
        logger.info(f"Seeded {len(DEFAULT_CATEGORIES)} categories")

    logger.info("Database initialization complete")
