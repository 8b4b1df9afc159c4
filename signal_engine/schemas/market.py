"""
CONTRACT 1: Market Data

Input: MarketDataRequest
Output: list[Candle] (oldest -> newest)

Candles are supplied by an external market data provider and are treated
as immutable by every analysis component.
"""

from datetime import datetime
from enum import Enum
from pydantic import BaseModel, ConfigDict, Field, model_validator


# =============================================================================
# ENUMS
# =============================================================================


class Timeframe(str, Enum):
    M1 = "1m"
    M5 = "5m"
    M15 = "15m"
    M30 = "30m"
    H1 = "1h"
    H4 = "4h"
    D1 = "1d"
    W1 = "1w"


# =============================================================================
# INPUT: MarketDataRequest
# =============================================================================


class MarketDataRequest(BaseModel):
    """
    Request for candles.
    Sent by: Signal Service / Market Scanner
    Received by: Market Data Provider
    """

    symbol: str = Field(..., min_length=1, description="Instrument symbol (e.g., 'BTCUSDT')")
    timeframe: Timeframe = Field(default=Timeframe.H1, description="Candle timeframe")
    count: int = Field(
        default=300,
        ge=1,
        le=5000,
        description="Number of most recent candles to fetch",
    )


# =============================================================================
# OUTPUT: Candle
# =============================================================================


class Candle(BaseModel):
    """Single candlestick data point."""

    model_config = ConfigDict(frozen=True)

    timestamp: datetime
    open: float = Field(..., gt=0)
    high: float = Field(..., gt=0)
    low: float = Field(..., gt=0)
    close: float = Field(..., gt=0)
    volume: float = Field(default=0.0, ge=0)

    @model_validator(mode="after")
    def check_range(self) -> "Candle":
        if self.high < self.low:
            raise ValueError(f"high {self.high} is below low {self.low}")
        return self
