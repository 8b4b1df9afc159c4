"""
Run a market scan against mock market data.
"""
import asyncio
import logging
import os

# Load environment
from dotenv import load_dotenv
load_dotenv(os.path.join(os.path.dirname(os.path.abspath(__file__)), ".env"))

from signal_engine.core.config import settings
from signal_engine.schemas.signal import ValidSignal
from signal_engine.services.cache import close_redis, create_signal_cache
from signal_engine.services.data_ingestion import MockMarketDataProvider
from signal_engine.services.notifications import LoggingNotificationSink, format_signal_message
from signal_engine.services.scanner import MarketScanner
from signal_engine.services.strategy import SignalService


async def main() -> None:
    service = SignalService(
        market_data=MockMarketDataProvider(seed=settings.mock_data_seed),
        cache=await create_signal_cache(),
        notifier=LoggingNotificationSink(),
    )
    scanner = MarketScanner(signal_service=service)

    try:
        report = await scanner.scan_multiple(settings.default_symbols)
    finally:
        await close_redis()

    print("-" * 50)
    for signal in report.signals:
        if isinstance(signal, ValidSignal):
            print(format_signal_message(signal))
        else:
            print(f"{signal.symbol} {signal.type} confluence {signal.confluence_score:.0f}")
    for failure in report.failures:
        print(f"{failure.symbol} FAILED {failure.error_type}: {failure.message}")
    print("-" * 50)
    print(report.stats.model_dump())
    print(service.get_stats())


if __name__ == "__main__":
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    print(f"Starting {settings.app_name} v{settings.app_version} scan...")
    asyncio.run(main())
