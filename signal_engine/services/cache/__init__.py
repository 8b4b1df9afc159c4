"""
Cache module for the signal engine.

Provides an injected TTL cache for generated signals, in memory or Redis.
"""

from signal_engine.core.config import settings
from signal_engine.services.cache.redis_client import (
    RedisSignalCache,
    close_redis,
    init_redis,
)
from signal_engine.services.cache.store import MemorySignalCache, SignalCache, make_cache_key


async def create_signal_cache() -> SignalCache:
    """Build the cache selected by settings.cache_backend."""
    if settings.cache_backend == "redis":
        return RedisSignalCache(await init_redis())
    return MemorySignalCache(settings.cache_max_entries)


__all__ = [
    "SignalCache",
    "MemorySignalCache",
    "RedisSignalCache",
    "make_cache_key",
    "create_signal_cache",
    "init_redis",
    "close_redis",
]
