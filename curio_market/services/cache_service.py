"""Redis caching for catalog reads, degrading to no-ops when Redis is down."""

import hashlib
import json
from typing import Any, Optional

from curio_market.core.config import settings
from curio_market.core.logging import get_logger

logger = get_logger(__name__)

# Catalog keys invalidated on every listing write
FEATURED_LISTINGS_KEY = "catalog:featured"
CATEGORY_COUNTS_KEY = "catalog:category-counts"
CATALOG_PREFIX = "catalog:"


class CacheService:
    """
    Async Redis cache with graceful degradation.

    Reads return None and writes are skipped if Redis is unavailable,
    so callers never handle connection errors themselves.
    """

    def __init__(self):
        self._redis = None

    @property
    def connected(self) -> bool:
        return self._redis is not None

    async def connect(self) -> None:
        """Connect to Redis. Logs a warning on failure but does not raise."""
        try:
            import redis.asyncio as aioredis

            self._redis = aioredis.from_url(
                settings.REDIS_URL,
                decode_responses=True,
                socket_connect_timeout=5,
            )
            await self._redis.ping()
            logger.info("Redis cache connected")
        except Exception as e:
            logger.warning(f"Redis cache unavailable, catalog caching disabled: {e}")
            self._redis = None

    async def disconnect(self) -> None:
        if self._redis:
            try:
                await self._redis.close()
                logger.info("Redis cache disconnected")
            except Exception as e:
                logger.warning(f"Error disconnecting Redis: {e}")
            finally:
                self._redis = None

    async def get(self, key: str) -> Optional[Any]:
        """Cached JSON value, or None on miss or error."""
        if not self._redis:
            return None
        try:
            data = await self._redis.get(key)
            if data is not None:
                return json.loads(data)
            return None
        except Exception as e:
            logger.debug(f"Cache get error for '{key}': {e}")
            return None

    async def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        if not self._redis:
            return
        try:
            await self._redis.set(
                key,
                json.dumps(value, default=str),
                ex=ttl or settings.CACHE_TTL,
            )
        except Exception as e:
            logger.debug(f"Cache set error for '{key}': {e}")

    async def delete(self, key: str) -> None:
        if not self._redis:
            return
        try:
            await self._redis.delete(key)
        except Exception as e:
            logger.debug(f"Cache delete error for '{key}': {e}")

    async def delete_prefix(self, prefix: str) -> int:
        """Drop every key under `prefix`. Returns how many were removed."""
        if not self._redis:
            return 0
        removed = 0
        try:
            async for key in self._redis.scan_iter(match=f"{prefix}*"):
                removed += await self._redis.delete(key)
        except Exception as e:
            logger.debug(f"Cache prefix delete error for '{prefix}': {e}")
        return removed

    async def invalidate_catalog(self) -> None:
        """Called after any listing write."""
        await self.delete_prefix(CATALOG_PREFIX)

    @staticmethod
    def hash_key(prefix: str, value: str) -> str:
        """Deterministic, case-insensitive key for free-text lookups."""
        normalized = value.strip().lower()
        digest = hashlib.sha256(normalized.encode()).hexdigest()[:16]
        return f"{prefix}:{digest}"


cache = CacheService()
