"""
Mock Data Generator

Generates realistic mock candles for development and testing.
The same (symbol, timeframe, seed) always yields the same series.
"""

import logging
import random
import zlib
from datetime import datetime, timedelta
from typing import Optional

from signal_engine.schemas.market import Candle, Timeframe
from signal_engine.services.base import MarketDataError
from signal_engine.services.data_ingestion.interface import MarketDataProvider

logger = logging.getLogger(__name__)

# Base prices for common symbols
SYMBOL_BASE_PRICES = {
    "BTCUSDT": 50000.0,
    "ETHUSDT": 3000.0,
    "SOLUSDT": 150.0,
    "BNBUSDT": 600.0,
    "XRPUSDT": 0.6,
    "ADAUSDT": 0.45,
    "DOGEUSDT": 0.12,
}

# Timeframe to milliseconds
TIMEFRAME_MS = {
    Timeframe.M1: 60_000,
    Timeframe.M5: 300_000,
    Timeframe.M15: 900_000,
    Timeframe.M30: 1_800_000,
    Timeframe.H1: 3_600_000,
    Timeframe.H4: 14_400_000,
    Timeframe.D1: 86_400_000,
    Timeframe.W1: 604_800_000,
}


def get_base_price(symbol: str) -> float:
    """Get base price for a symbol."""
    return SYMBOL_BASE_PRICES.get(symbol, 100.0 + zlib.crc32(symbol.encode()) % 900)


def _series_seed(symbol: str, timeframe: Timeframe, seed: Optional[int]) -> Optional[int]:
    if seed is None:
        return None
    return zlib.crc32(f"{symbol}:{timeframe.value}:{seed}".encode())


def generate_mock_candles(
    symbol: str,
    timeframe: Timeframe,
    count: int,
    end_time: Optional[datetime] = None,
    seed: Optional[int] = 42,
) -> list[Candle]:
    """Generate mock candles as a bounded random walk."""
    if end_time is None:
        end_time = datetime(2024, 1, 1) if seed is not None else datetime.now()

    rng = random.Random(_series_seed(symbol, timeframe, seed))
    candles = []
    interval_ms = TIMEFRAME_MS[timeframe]
    base_price = get_base_price(symbol)
    price = base_price
    volatility = base_price * 0.01  # 1% volatility

    timestamp = end_time - timedelta(milliseconds=interval_ms * count)

    for _ in range(count):
        # Random walk, floored well above zero
        change = (rng.random() - 0.5) * volatility

        open_price = price
        close_price = max(open_price + change, base_price * 0.2)
        high_price = max(open_price, close_price) + rng.random() * volatility * 0.5
        low_price = min(open_price, close_price) - rng.random() * volatility * 0.5
        low_price = max(low_price, base_price * 0.1)

        candles.append(
            Candle(
                timestamp=timestamp,
                open=round(open_price, 6),
                high=round(high_price, 6),
                low=round(low_price, 6),
                close=round(close_price, 6),
                volume=float(rng.randint(100_000, 5_000_000)),
            )
        )

        price = close_price
        timestamp += timedelta(milliseconds=interval_ms)

    return candles


class MockMarketDataProvider(MarketDataProvider):
    """Serves generated candles for any symbol."""

    def __init__(self, seed: Optional[int] = 42, failing_symbols: Optional[set[str]] = None):
        self.seed = seed
        self.failing_symbols = failing_symbols or set()

    @property
    def name(self) -> str:
        return "MockMarketDataProvider"

    async def get_candles(self, symbol: str, timeframe: Timeframe, count: int) -> list[Candle]:
        if symbol in self.failing_symbols:
            raise MarketDataError(self.name, f"No data for {symbol}", {"symbol": symbol})
        logger.debug(f"Generating {count} mock {timeframe.value} candles for {symbol}")
        return generate_mock_candles(symbol, timeframe, count, seed=self.seed)


class StaticMarketDataProvider(MarketDataProvider):
    """Serves preloaded candles, keyed by symbol."""

    def __init__(self, candles: dict[str, list[Candle]]):
        self._candles = candles

    @property
    def name(self) -> str:
        return "StaticMarketDataProvider"

    async def get_candles(self, symbol: str, timeframe: Timeframe, count: int) -> list[Candle]:
        if symbol not in self._candles:
            raise MarketDataError(self.name, f"Unknown symbol {symbol}", {"symbol": symbol})
        return list(self._candles[symbol][-count:])
