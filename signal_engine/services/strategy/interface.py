"""
Signal Service Interface

Orchestrates the complete signal pipeline.
"""

from abc import abstractmethod
from typing import Optional, Sequence

from signal_engine.services.base import BaseService
from signal_engine.schemas.analysis import AnalysisResult
from signal_engine.schemas.market import Candle, Timeframe
from signal_engine.schemas.signal import MultiTimeframeSignal, Signal, SignalRequest


class StrategyServiceInterface(BaseService[SignalRequest, Signal]):
    """
    Signal Service Contract.

    This is the MAIN ORCHESTRATOR that runs the full pipeline.

    INPUT: SignalRequest
        - symbol, timeframe, periods
        - account_balance / leverage: position sizing inputs

    OUTPUT: Signal
        - VALID_SIGNAL: sized trade with consistent levels
        - NEUTRAL_SIGNAL: confluence too weak or split
        - REJECTED_SIGNAL: levels or risk rules failed
        - FILTERED_SIGNAL: market-condition filters failed

    PIPELINE:
        Candles
          -> Indicators (RSI, BBWP, Fibonacci, ATR) + Pivots
          -> Divergences, Support/Resistance, Patterns
          -> Confluence score + direction
          -> Entry / Stop / Target
          -> Risk validation
          -> Filters + alerts
          -> Signal
    """

    @property
    def name(self) -> str:
        return "SignalService"

    @abstractmethod
    async def execute(self, input_data: SignalRequest) -> Signal:
        """Run the complete pipeline for one request."""
        pass

    @abstractmethod
    def analyze(self, symbol: str, timeframe: Timeframe, candles: Sequence[Candle]) -> AnalysisResult:
        """Technical analysis; component failures are recorded, not raised."""
        pass

    @abstractmethod
    def build_signal(
        self,
        analysis: AnalysisResult,
        account_balance: Optional[float] = None,
        leverage: Optional[float] = None,
    ) -> Signal:
        """Turn an analysis into a typed signal."""
        pass

    @abstractmethod
    async def generate_signal(
        self,
        symbol: str,
        timeframe: Timeframe = Timeframe.H1,
        periods: Optional[int] = None,
        account_balance: Optional[float] = None,
        leverage: Optional[float] = None,
        force_refresh: bool = False,
    ) -> Signal:
        """Fetch candles and run the pipeline, using the cache."""
        pass

    @abstractmethod
    async def generate_multi_timeframe_signal(
        self,
        symbol: str,
        timeframes: Optional[Sequence[Timeframe]] = None,
        primary: Timeframe = Timeframe.H1,
        periods: Optional[int] = None,
        account_balance: Optional[float] = None,
    ) -> MultiTimeframeSignal:
        """Agreement of signals across timeframes."""
        pass

    @abstractmethod
    async def health_check(self) -> bool:
        """Check that every dependency is healthy."""
        pass
