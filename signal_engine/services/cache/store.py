"""
Signal cache contract and in-memory implementation.

Keys:
- signal:{SYMBOL}:{timeframe}:{periods} → Signal
"""

import logging
import time
from abc import ABC, abstractmethod
from typing import Callable, Optional

from signal_engine.schemas.market import Timeframe
from signal_engine.schemas.signal import Signal

logger = logging.getLogger(__name__)


def make_cache_key(symbol: str, timeframe: Timeframe, periods: int) -> str:
    return f"signal:{symbol.upper()}:{timeframe.value}:{periods}"


class SignalCache(ABC):
    """Injected cache for generated signals."""

    @abstractmethod
    async def get(self, key: str) -> Optional[Signal]:
        """Cached signal, or None when missing or expired."""
        pass

    @abstractmethod
    async def set(self, key: str, value: Signal, ttl: int) -> None:
        """Store a signal for ttl seconds."""
        pass

    @abstractmethod
    async def evict(self, key: Optional[str] = None) -> int:
        """Remove one key, or every expired entry when key is None. Returns removed count."""
        pass


class MemorySignalCache(SignalCache):
    """
    Process-local TTL cache.

    When full, the entry closest to expiry is dropped first.
    """

    def __init__(self, max_entries: int = 200, clock: Callable[[], float] = time.monotonic):
        self._entries: dict[str, tuple[Signal, float]] = {}
        self._max_entries = max_entries
        self._clock = clock

    def __len__(self) -> int:
        return len(self._entries)

    async def get(self, key: str) -> Optional[Signal]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if self._clock() >= expires_at:
            del self._entries[key]
            return None
        return value

    async def set(self, key: str, value: Signal, ttl: int) -> None:
        if key not in self._entries and len(self._entries) >= self._max_entries:
            await self.evict()
            if len(self._entries) >= self._max_entries:
                oldest = min(self._entries, key=lambda k: self._entries[k][1])
                del self._entries[oldest]
        self._entries[key] = (value, self._clock() + ttl)

    async def evict(self, key: Optional[str] = None) -> int:
        if key is not None:
            return 1 if self._entries.pop(key, None) is not None else 0

        now = self._clock()
        expired = [k for k, (_, expires_at) in self._entries.items() if now >= expires_at]
        for k in expired:
            del self._entries[k]
        if expired:
            logger.debug(f"Evicted {len(expired)} expired signals")
        return len(expired)
