"""
Tests for the signal caches.
"""

from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest

from signal_engine.schemas.market import Timeframe
from signal_engine.schemas.signal import NeutralSignal
from signal_engine.services.cache import MemorySignalCache, RedisSignalCache, make_cache_key


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def signal():
    return NeutralSignal(
        symbol="BTCUSDT",
        timeframe=Timeframe.H1,
        current_price=50000.0,
        confluence_score=45.0,
        generated_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
        reason="Confluence 45.0 at or below 60.0",
    )


def test_cache_key():
    assert make_cache_key("btcusdt", Timeframe.H4, 300) == "signal:BTCUSDT:4h:300"


class TestMemorySignalCache:
    """Tests for the in-memory TTL cache."""

    async def test_set_and_get(self, signal, clock):
        cache = MemorySignalCache(clock=clock)
        await cache.set("k", signal, ttl=60)
        assert await cache.get("k") == signal
        assert await cache.get("missing") is None

    async def test_expiry(self, signal, clock):
        cache = MemorySignalCache(clock=clock)
        await cache.set("k", signal, ttl=60)
        clock.now += 59
        assert await cache.get("k") is not None
        clock.now += 1
        assert await cache.get("k") is None
        assert len(cache) == 0

    async def test_evict_key(self, signal, clock):
        cache = MemorySignalCache(clock=clock)
        await cache.set("k", signal, ttl=60)
        assert await cache.evict("k") == 1
        assert await cache.evict("k") == 0

    async def test_evict_expired(self, signal, clock):
        cache = MemorySignalCache(clock=clock)
        await cache.set("short", signal, ttl=10)
        await cache.set("long", signal, ttl=100)
        clock.now += 50
        assert await cache.evict() == 1
        assert len(cache) == 1
        assert await cache.get("long") is not None

    async def test_capacity_drops_soonest_expiry(self, signal, clock):
        cache = MemorySignalCache(max_entries=2, clock=clock)
        await cache.set("a", signal, ttl=10)
        await cache.set("b", signal, ttl=100)
        await cache.set("c", signal, ttl=50)
        assert len(cache) == 2
        assert await cache.get("a") is None
        assert await cache.get("b") is not None
        assert await cache.get("c") is not None

    async def test_overwrite_does_not_evict(self, signal, clock):
        cache = MemorySignalCache(max_entries=1, clock=clock)
        await cache.set("a", signal, ttl=10)
        await cache.set("a", signal, ttl=20)
        assert len(cache) == 1


class TestRedisSignalCache:
    """Tests for the Redis cache with a mocked client."""

    async def test_round_trip_json(self, signal):
        client = AsyncMock()
        cache = RedisSignalCache(client)

        await cache.set("k", signal, ttl=900)
        client.set.assert_awaited_once()
        key, payload = client.set.call_args.args
        assert key == "k"
        assert client.set.call_args.kwargs == {"ex": 900}

        client.get.return_value = payload
        restored = await cache.get("k")
        assert isinstance(restored, NeutralSignal)
        assert restored == signal

    async def test_missing_key(self):
        client = AsyncMock()
        client.get.return_value = None
        cache = RedisSignalCache(client)
        assert await cache.get("k") is None

    async def test_falls_back_to_memory(self, signal):
        client = AsyncMock()
        client.set.side_effect = ConnectionError("down")
        client.get.side_effect = ConnectionError("down")
        cache = RedisSignalCache(client)

        await cache.set("k", signal, ttl=900)
        assert await cache.get("k") == signal

    async def test_evict_deletes_key(self):
        client = AsyncMock()
        client.delete.return_value = 1
        cache = RedisSignalCache(client)
        assert await cache.evict("k") == 1
        client.delete.assert_awaited_once_with("k")
