"""
Redis cache client for generated signals.

Signals are stored as JSON with a Redis-side TTL. Falls back to an
in-memory cache when Redis is unavailable.
"""

import logging
from typing import Optional

import redis.asyncio as redis
from pydantic import TypeAdapter

from signal_engine.core.config import settings
from signal_engine.schemas.signal import Signal
from signal_engine.services.cache.store import MemorySignalCache, SignalCache

logger = logging.getLogger(__name__)

_signal_adapter = TypeAdapter(Signal)

# Global Redis connection pool
_redis_pool: Optional[redis.Redis] = None


async def init_redis() -> Optional[redis.Redis]:
    """
    Initialize Redis connection pool.
    Called on application startup.
    """
    global _redis_pool

    if _redis_pool is not None:
        return _redis_pool

    try:
        _redis_pool = redis.from_url(
            settings.redis_url,
            encoding="utf-8",
            decode_responses=True,
        )
        # Test connection
        await _redis_pool.ping()
        logger.info(f"Redis connected: {settings.redis_url}")
        return _redis_pool
    except Exception as e:
        logger.warning(f"Redis connection failed: {e}. Using in-memory fallback.")
        _redis_pool = None
        return None


async def close_redis() -> None:
    """Close Redis connection pool."""
    global _redis_pool
    if _redis_pool:
        await _redis_pool.close()
        _redis_pool = None
        logger.info("Redis connection closed")


class RedisSignalCache(SignalCache):
    """
    Redis-backed signal cache.

    Every Redis failure is logged and served from the memory fallback, so
    a cache outage never fails signal generation.
    """

    def __init__(self, redis_client: Optional[redis.Redis] = None, fallback: Optional[MemorySignalCache] = None):
        self._redis = redis_client
        self._fallback = fallback or MemorySignalCache(settings.cache_max_entries)

    @property
    def redis(self) -> Optional[redis.Redis]:
        return self._redis or _redis_pool

    async def get(self, key: str) -> Optional[Signal]:
        if self.redis:
            try:
                value = await self.redis.get(key)
                return _signal_adapter.validate_json(value) if value else None
            except Exception as e:
                logger.debug(f"Redis get failed: {e}")

        return await self._fallback.get(key)

    async def set(self, key: str, value: Signal, ttl: int) -> None:
        if self.redis:
            try:
                await self.redis.set(key, _signal_adapter.dump_json(value).decode(), ex=ttl)
                return
            except Exception as e:
                logger.debug(f"Redis set failed: {e}")

        await self._fallback.set(key, value, ttl)

    async def evict(self, key: Optional[str] = None) -> int:
        removed = await self._fallback.evict(key)
        if key is not None and self.redis:
            try:
                removed += int(await self.redis.delete(key))
            except Exception as e:
                logger.debug(f"Redis delete failed: {e}")
        # Redis expires its own keys
        return removed
