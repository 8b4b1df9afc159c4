"""
Market Data

CONTRACT:
    Input:  MarketDataRequest (symbol, timeframe, count)
    Output: list[Candle] (oldest -> newest)

RESPONSIBILITIES:
    - Define the provider contract used by the signal pipeline
    - Generate deterministic mock candles for development runs
    - Serve preloaded candles

Exchange connectivity is provided by the host application.
"""

from signal_engine.services.data_ingestion.interface import MarketDataProvider
from signal_engine.services.data_ingestion.mock_data import (
    MockMarketDataProvider,
    StaticMarketDataProvider,
    generate_mock_candles,
)

__all__ = [
    "MarketDataProvider",
    "MockMarketDataProvider",
    "StaticMarketDataProvider",
    "generate_mock_candles",
]
