"""
Signal Engine Schema Contracts

This module defines all contracts between engine components.
These are the authoritative interfaces - all modules must conform to these schemas.
"""

from signal_engine.schemas.market import (
    Candle,
    MarketDataRequest,
    Timeframe,
)
from signal_engine.schemas.analysis import (
    AnalysisConfig,
    AnalysisResult,
    AnalysisSummary,
    BBWPPoint,
    Bias,
    Divergence,
    FibonacciResult,
    Level,
    Pattern,
    PatternType,
    Pivot,
    SupportResistance,
)
from signal_engine.schemas.signal import (
    ConfluenceResult,
    Direction,
    FilteredSignal,
    MultiTimeframeSignal,
    NeutralSignal,
    RejectedSignal,
    ScanReport,
    Signal,
    SignalLevels,
    SignalRequest,
    ValidSignal,
)
from signal_engine.schemas.risk import (
    BreakevenDecision,
    PositionSize,
    RiskAssessment,
    RiskConfig,
    StopLossValidation,
    TakeProfitPlan,
    TradeRecord,
    TradingStreak,
)

__all__ = [
    # Market
    "Candle",
    "MarketDataRequest",
    "Timeframe",
    # Analysis
    "AnalysisConfig",
    "AnalysisResult",
    "AnalysisSummary",
    "BBWPPoint",
    "Bias",
    "Divergence",
    "FibonacciResult",
    "Level",
    "Pattern",
    "PatternType",
    "Pivot",
    "SupportResistance",
    # Signal
    "ConfluenceResult",
    "Direction",
    "FilteredSignal",
    "MultiTimeframeSignal",
    "NeutralSignal",
    "RejectedSignal",
    "ScanReport",
    "Signal",
    "SignalLevels",
    "SignalRequest",
    "ValidSignal",
    # Risk
    "BreakevenDecision",
    "PositionSize",
    "RiskAssessment",
    "RiskConfig",
    "StopLossValidation",
    "TakeProfitPlan",
    "TradeRecord",
    "TradingStreak",
]
