"""
Tests for the market scanner.
"""

import pytest

from signal_engine.schemas.market import Timeframe
from signal_engine.schemas.signal import Direction, ScanReport, ValidSignal
from signal_engine.services.cache import MemorySignalCache
from signal_engine.services.data_ingestion import MockMarketDataProvider
from signal_engine.services.scanner import MarketScanner, ScanRequest
from signal_engine.services.strategy import SignalService


SYMBOLS = ["BTCUSDT", "BADUSDT", "ETHUSDT", "SOLUSDT"]


@pytest.fixture
def scanner():
    service = SignalService(
        market_data=MockMarketDataProvider(seed=42, failing_symbols={"BADUSDT"}),
        cache=MemorySignalCache(),
    )
    return MarketScanner(signal_service=service, concurrency=2)


class TestMarketScanner:
    """Tests for MarketScanner."""

    async def test_failure_is_isolated(self, scanner):
        report = await scanner.scan_multiple(SYMBOLS, periods=300)

        assert isinstance(report, ScanReport)
        assert len(report.signals) == 3
        assert [f.symbol for f in report.failures] == ["BADUSDT"]
        assert report.failures[0].error_type == "MarketDataError"
        assert report.stats.symbols_scanned == 4

    async def test_sorted_by_confluence(self, scanner):
        report = await scanner.scan_multiple(SYMBOLS, periods=300)
        scores = [s.confluence_score for s in report.signals]
        assert scores == sorted(scores, reverse=True)

    async def test_stats(self, scanner):
        report = await scanner.scan_multiple(SYMBOLS, periods=300)
        valid = [s for s in report.signals if isinstance(s, ValidSignal)]

        assert report.stats.valid_signals == len(valid)
        assert report.stats.high_confidence <= report.stats.valid_signals
        expected = sum(s.confluence_score for s in report.signals) / len(report.signals)
        assert report.stats.average_confluence == pytest.approx(expected, abs=0.01)

    async def test_min_score(self, scanner):
        report = await scanner.scan_multiple(SYMBOLS, periods=300, min_score=101)
        assert report.signals == []
        assert report.stats.symbols_scanned == 4

    async def test_direction_filter(self, scanner):
        report = await scanner.scan_multiple(SYMBOLS, periods=300, direction_filter=Direction.LONG)
        assert all(s.direction == Direction.LONG for s in report.signals)

    async def test_last_scan_time(self, scanner):
        assert scanner.last_scan_time is None
        report = await scanner.scan_multiple(["BTCUSDT"], periods=300)
        assert scanner.last_scan_time == report.scanned_at

    async def test_execute(self, scanner):
        report = await scanner.execute(
            ScanRequest(symbols=["btcusdt", "ethusdt"], timeframe=Timeframe.H4, periods=300)
        )
        assert report.timeframe == Timeframe.H4
        assert {s.symbol for s in report.signals} == {"BTCUSDT", "ETHUSDT"}
        assert all(s.timeframe == Timeframe.H4 for s in report.signals)

    async def test_all_symbols_fail(self):
        service = SignalService(
            market_data=MockMarketDataProvider(failing_symbols={"AAA", "BBB"}),
            cache=MemorySignalCache(),
        )
        report = await MarketScanner(signal_service=service).scan_multiple(["AAA", "BBB"])

        assert report.signals == []
        assert len(report.failures) == 2
        assert report.stats.average_confluence == 0.0

    async def test_health_check(self, scanner):
        assert await scanner.health_check() is True
