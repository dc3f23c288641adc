"""Database module - session management and base classes."""

from curio_market.db.base import Base
from curio_market.db.session import get_db, AsyncSessionLocal, engine

__all__ = ["Base", "get_db", "AsyncSessionLocal", "engine"]
