"""Lookup cache for domain to tenant resolution.

Provides:
- RedisLookupCache: shared cache for multi-instance deployments
- InMemoryLookupCache: process-local cache for tests and single instances

Values are opaque bytes; callers serialize (the resolver uses orjson).
"""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING

import redis.asyncio as redis

from tessera.config import settings

if TYPE_CHECKING:
    from redis.asyncio import Redis

logger = logging.getLogger(__name__)

# Module-level connection pool
_redis_client: Redis | None = None

# Default TTL (1 hour)
DEFAULT_TTL = 3600

Producer = Callable[[], Awaitable[bytes]]


def get_redis_client() -> Redis:
    """Get or create the Redis client.

    Uses connection pooling for efficient connection management. No
    connection is opened until the first command.
    """
    global _redis_client
    if _redis_client is None:
        _redis_client = redis.from_url(  # type: ignore[no-untyped-call]
            settings.redis_url,
            encoding="utf-8",
            decode_responses=False,  # We're storing bytes
        )
    return _redis_client


async def get_redis() -> Redis:
    """Get or create the Redis client (async accessor)."""
    return get_redis_client()


async def close_redis() -> None:
    """Close Redis connections."""
    global _redis_client
    if _redis_client is not None:
        await _redis_client.aclose()
        _redis_client = None


class LookupCache(ABC):
    """Key/value cache with per-entry TTL."""

    @abstractmethod
    async def get(self, key: str) -> bytes | None:
        """Return the cached value, or None on a miss."""

    @abstractmethod
    async def set(self, key: str, value: bytes, ttl: int = DEFAULT_TTL) -> None:
        """Store value for ttl seconds."""

    @abstractmethod
    async def forget(self, key: str) -> None:
        """Drop a cached value (no-op when absent)."""

    async def remember(self, key: str, ttl: int, producer: Producer) -> bytes:
        """Return the cached value or produce, store and return it.

        Errors raised by producer propagate and nothing is stored.
        """
        cached = await self.get(key)
        if cached is not None:
            return cached

        value = await producer()
        await self.set(key, value, ttl)
        return value


class RedisLookupCache(LookupCache):
    """Lookup cache backed by Redis SETEX."""

    def __init__(self, client: Redis) -> None:
        self.client = client

    async def get(self, key: str) -> bytes | None:
        value = await self.client.get(key)
        if value is None:
            return None
        return value if isinstance(value, bytes) else str(value).encode()

    async def set(self, key: str, value: bytes, ttl: int = DEFAULT_TTL) -> None:
        await self.client.setex(key, ttl, value)

    async def forget(self, key: str) -> None:
        await self.client.delete(key)


class InMemoryLookupCache(LookupCache):
    """Process-local lookup cache.

    Entries expire lazily on read, measured with a monotonic clock.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._entries: dict[str, tuple[float, bytes]] = {}
        self._clock = clock

    async def get(self, key: str) -> bytes | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        expires_at, value = entry
        if self._clock() >= expires_at:
            del self._entries[key]
            return None
        return value

    async def set(self, key: str, value: bytes, ttl: int = DEFAULT_TTL) -> None:
        self._entries[key] = (self._clock() + ttl, value)

    async def forget(self, key: str) -> None:
        self._entries.pop(key, None)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
