"""
Market Scanner Service

Scans multiple symbols concurrently and collects their signals.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Optional, Sequence

from pydantic import BaseModel, Field

from signal_engine.core.config import settings
from signal_engine.schemas.market import Timeframe
from signal_engine.schemas.signal import (
    Direction,
    ScanFailure,
    ScanReport,
    ScanStats,
    Signal,
    ValidSignal,
)
from signal_engine.services.base import BaseService

if TYPE_CHECKING:
    from signal_engine.services.strategy import SignalService

logger = logging.getLogger(__name__)

HIGH_CONFIDENCE_CONFLUENCE = 85.0


class ScanRequest(BaseModel):
    symbols: list[str] = Field(default_factory=lambda: list(settings.default_symbols), min_length=1)
    timeframe: Timeframe = Timeframe.H1
    periods: Optional[int] = Field(default=None, ge=50, le=5000)
    account_balance: Optional[float] = Field(default=None, gt=0)
    min_score: float = Field(default=0, ge=0, le=100)
    direction_filter: Optional[Direction] = None


class MarketScanner(BaseService[ScanRequest, ScanReport]):
    """
    Scans symbols for trade signals.

    Usage:
        scanner = MarketScanner()
        report = await scanner.scan_multiple(["BTCUSDT", "ETHUSDT"])
    """

    def __init__(
        self,
        signal_service: Optional["SignalService"] = None,
        concurrency: Optional[int] = None,
    ):
        self._signal_service = signal_service
        self.concurrency = concurrency or settings.scan_concurrency
        self._last_scan_time: Optional[datetime] = None

    @property
    def name(self) -> str:
        return "MarketScanner"

    @property
    def signal_service(self) -> "SignalService":
        """Lazy load signal service."""
        from signal_engine.services.strategy import get_signal_service

        if self._signal_service is None:
            self._signal_service = get_signal_service()
        return self._signal_service

    @property
    def last_scan_time(self) -> Optional[datetime]:
        return self._last_scan_time

    async def scan_symbol(
        self,
        symbol: str,
        timeframe: Timeframe = Timeframe.H1,
        periods: Optional[int] = None,
        account_balance: Optional[float] = None,
    ) -> Signal:
        """Generate the signal for a single symbol. Errors propagate."""
        return await self.signal_service.generate_signal(
            symbol,
            timeframe,
            periods=periods,
            account_balance=account_balance,
        )

    async def scan_multiple(
        self,
        symbols: Sequence[str],
        timeframe: Timeframe = Timeframe.H1,
        periods: Optional[int] = None,
        account_balance: Optional[float] = None,
        min_score: float = 0,
        direction_filter: Optional[Direction] = None,
    ) -> ScanReport:
        """
        Scan multiple symbols concurrently.

        A failing symbol is reported in `failures` and never aborts the batch.
        """
        semaphore = asyncio.Semaphore(self.concurrency)

        async def _bounded(symbol: str) -> Signal:
            async with semaphore:
                return await self.scan_symbol(symbol, timeframe, periods, account_balance)

        results = await asyncio.gather(*(_bounded(s) for s in symbols), return_exceptions=True)

        signals = []
        failures = []
        for symbol, result in zip(symbols, results):
            if isinstance(result, Exception):
                logger.warning(f"Error scanning {symbol}: {result}")
                failures.append(ScanFailure(
                    symbol=symbol.upper(),
                    error_type=type(result).__name__,
                    message=str(result),
                ))
                continue
            if isinstance(result, BaseException):
                raise result
            signals.append(result)

        stats = self._build_stats(len(symbols), signals)

        # Filter and sort results
        selected = [
            s for s in signals
            if s.confluence_score >= min_score
            and (direction_filter is None or getattr(s, "direction", Direction.NEUTRAL) == direction_filter)
        ]
        selected.sort(key=lambda s: s.confluence_score, reverse=True)

        self._last_scan_time = datetime.now(timezone.utc)
        logger.info(
            f"Scanned {len(symbols)} symbols on {timeframe.value}: "
            f"{stats.valid_signals} valid, {len(failures)} failed"
        )
        return ScanReport(
            timeframe=timeframe,
            signals=selected,
            failures=failures,
            stats=stats,
            scanned_at=self._last_scan_time,
        )

    @staticmethod
    def _build_stats(symbols_scanned: int, signals: list[Signal]) -> ScanStats:
        valid = [s for s in signals if isinstance(s, ValidSignal)]
        average = sum(s.confluence_score for s in signals) / len(signals) if signals else 0.0
        return ScanStats(
            symbols_scanned=symbols_scanned,
            valid_signals=len(valid),
            high_confidence=sum(1 for s in valid if s.confluence_score > HIGH_CONFIDENCE_CONFLUENCE),
            average_confluence=round(average, 2),
        )

    async def execute(self, input_data: ScanRequest) -> ScanReport:
        return await self.scan_multiple(
            input_data.symbols,
            input_data.timeframe,
            input_data.periods,
            input_data.account_balance,
            input_data.min_score,
            input_data.direction_filter,
        )

    async def health_check(self) -> bool:
        return await self.signal_service.health_check()


# Singleton instance
_scanner: Optional[MarketScanner] = None


def get_scanner() -> MarketScanner:
    """Get the scanner singleton."""
    global _scanner
    if _scanner is None:
        _scanner = MarketScanner()
    return _scanner
