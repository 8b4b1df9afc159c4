"""
Signal Service

CONTRACT:
    Input:  SignalRequest (symbol, timeframe, periods, account settings)
    Output: Signal (VALID / NEUTRAL / REJECTED / FILTERED)

RESPONSIBILITIES:
    - Orchestrate the full pipeline:
        1. Market data -> candles
        2. Indicators, divergences, levels, patterns -> AnalysisResult
        3. Confluence scoring -> direction
        4. Entry / stop / target selection
        5. Risk validation -> position sizing
        6. Filters and alerts -> Signal
    - Record component failures and continue with a partial analysis
    - Combine timeframes into a multi-timeframe signal

This is the main entry point for generating trade signals.
"""

from signal_engine.services.strategy.confluence import score_confluence
from signal_engine.services.strategy.interface import StrategyServiceInterface
from signal_engine.services.strategy.levels import calculate_signal_levels, ensure_level_order
from signal_engine.services.strategy.service import (
    SignalService,
    SignalStats,
    build_summary,
    get_signal_service,
)

__all__ = [
    "StrategyServiceInterface",
    "SignalService",
    "SignalStats",
    "build_summary",
    "get_signal_service",
    "score_confluence",
    "calculate_signal_levels",
    "ensure_level_order",
]
