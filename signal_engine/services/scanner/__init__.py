"""
Market Scanner Service

CONTRACT:
    Input:  ScanRequest (symbols, timeframe, filters)
    Output: ScanReport (signals, failures, stats)

RESPONSIBILITIES:
    - Detect chart patterns (triangles, head and shoulders, double tops/bottoms)
    - Scan many symbols with bounded concurrency
    - Isolate per-symbol failures
"""

from signal_engine.services.scanner.patterns import (
    calculate_trendline,
    classify_triangle,
    recognize_patterns,
)
from signal_engine.services.scanner.scanner import (
    MarketScanner,
    ScanRequest,
    get_scanner,
)

__all__ = [
    "MarketScanner",
    "ScanRequest",
    "get_scanner",
    "calculate_trendline",
    "classify_triangle",
    "recognize_patterns",
]
