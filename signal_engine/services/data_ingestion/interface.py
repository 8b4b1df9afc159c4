"""
Market Data Provider Interface

Defines the contract for candle sources. Exchange connectivity lives
outside this package; implementations only have to return ordered
candles.
"""

from abc import abstractmethod

from signal_engine.services.base import BaseService
from signal_engine.schemas.market import Candle, MarketDataRequest, Timeframe


class MarketDataProvider(BaseService[MarketDataRequest, list[Candle]]):
    """
    Market Data Provider Contract.

    INPUT: MarketDataRequest
        - symbol: Instrument to fetch
        - timeframe: Candle timeframe
        - count: Number of most recent candles

    OUTPUT: list[Candle]
        - Ordered oldest -> newest
        - At most `count` candles

    Raises MarketDataError when the symbol cannot be served.
    """

    @property
    def name(self) -> str:
        return "MarketDataProvider"

    @abstractmethod
    async def get_candles(self, symbol: str, timeframe: Timeframe, count: int) -> list[Candle]:
        """Fetch the most recent candles for a symbol."""
        pass

    async def execute(self, input_data: MarketDataRequest) -> list[Candle]:
        return await self.get_candles(input_data.symbol, input_data.timeframe, input_data.count)

    async def health_check(self) -> bool:
        return True
