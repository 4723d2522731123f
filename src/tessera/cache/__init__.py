"""Cache layer for Tessera.

Caches domain to tenant lookups with the cache-aside pattern:
- Redis for shared, TTL-bounded entries across instances
- In-memory backend for tests and single-process deployments
"""

from tessera.cache.keys import CacheKeys
from tessera.cache.redis import (
    InMemoryLookupCache,
    LookupCache,
    RedisLookupCache,
    close_redis,
    get_redis,
    get_redis_client,
)

__all__ = [
    "CacheKeys",
    "LookupCache",
    "RedisLookupCache",
    "InMemoryLookupCache",
    "get_redis",
    "get_redis_client",
    "close_redis",
]
