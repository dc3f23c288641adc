"""Per-key asyncio locks.

All subscription mutations for one user funnel through the same lock, so a
webhook delivery and a browser-driven activation for that user run one
after the other instead of interleaving their read-modify-write cycles.
The server is a single process; the registry is process-local.
"""

import asyncio
import weakref
from contextlib import asynccontextmanager
from typing import AsyncIterator


class KeyedLockRegistry:
    """Hands out one asyncio.Lock per key, dropping it once nobody holds it."""

    def __init__(self) -> None:
        self._locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()

    def get(self, key: str) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        lock = self.get(key)
        async with lock:
            yield

    def __len__(self) -> int:
        return len(self._locks)


subscription_locks = KeyedLockRegistry()

# Keyed by buyer id; order creation from a cart runs once at a time per buyer
checkout_locks = KeyedLockRegistry()
