"""Short-lived dedup window for inbound webhook events.

Meta redelivers events and Instagram sometimes emits the same text twice
under different message ids; the window suppresses those within a TTL.
"""

import logging
import time
from abc import ABC, abstractmethod
from typing import Callable, Optional

import redis.asyncio as aioredis

from src.cache.client import RedisManager

logger = logging.getLogger(__name__)


class DedupStore(ABC):
    """Set-if-absent store with per-key expiry."""

    @abstractmethod
    async def check_and_mark(self, key: str, ttl_seconds: int) -> bool:
        """Record ``key`` for ``ttl_seconds`` and report whether it was already present.

        Args:
            key: Dedup key.
            ttl_seconds: Lifetime of the mark.

        Returns:
            True if the key was present (the event is a duplicate), False if
            this call marked it.
        """

    @abstractmethod
    async def forget(self, key: str) -> None:
        """Release a mark so the next event with ``key`` is processed again."""


class InMemoryDedupStore(DedupStore):
    """Process-local dedup window.

    Expired keys are evicted on every call, so memory stays bounded by the
    number of events seen within one TTL.

    Args:
        clock: Monotonic clock in seconds, injectable for tests.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._expires_at: dict[str, float] = {}

    def evict_expired(self) -> int:
        """Drop expired keys.

        Returns:
            Number of keys evicted.
        """
        now = self._clock()
        expired = [key for key, expires_at in self._expires_at.items() if expires_at <= now]
        for key in expired:
            del self._expires_at[key]
        return len(expired)

    async def check_and_mark(self, key: str, ttl_seconds: int) -> bool:
        self.evict_expired()
        if key in self._expires_at:
            return True
        self._expires_at[key] = self._clock() + ttl_seconds
        return False

    async def forget(self, key: str) -> None:
        self._expires_at.pop(key, None)

    def __len__(self) -> int:
        return len(self._expires_at)


class RedisDedupStore(DedupStore):
    """Dedup window shared across instances through Redis ``SET NX EX``.

    Falls back to ``fallback`` (an in-memory store by default) whenever Redis
    is unavailable, so a Redis outage degrades to per-instance dedup instead
    of failing the webhook.

    Key format: {prefix}dedup:{key}
    """

    def __init__(
        self,
        redis_manager: RedisManager,
        fallback: Optional[DedupStore] = None,
    ) -> None:
        self._redis_manager = redis_manager
        self._fallback = fallback or InMemoryDedupStore()

    async def check_and_mark(self, key: str, ttl_seconds: int) -> bool:
        client = await self._redis_manager.get_client()
        if client is None:
            return await self._fallback.check_and_mark(key, ttl_seconds)

        try:
            created = await client.set(
                self._redis_manager.key("dedup", key), "1", nx=True, ex=ttl_seconds
            )
        except (aioredis.ConnectionError, aioredis.TimeoutError, OSError) as e:
            logger.warning("dedup_redis_error: error=%s", str(e))
            self._redis_manager.mark_unavailable()
            return await self._fallback.check_and_mark(key, ttl_seconds)

        return not created

    async def forget(self, key: str) -> None:
        await self._fallback.forget(key)
        client = await self._redis_manager.get_client()
        if client is None:
            return

        try:
            await client.delete(self._redis_manager.key("dedup", key))
        except (aioredis.ConnectionError, aioredis.TimeoutError, OSError) as e:
            logger.warning("dedup_redis_error: error=%s", str(e))
            self._redis_manager.mark_unavailable()
