"""
Indicator Engine

CONTRACT:
    Input:  Price series (closes, highs, lows) + AnalysisConfig
    Output: RSI values, BBWP points, FibonacciResult, pivots, divergences

RESPONSIBILITIES:
    - RSI with Wilder smoothing
    - Bollinger Band Width Percentile (squeeze / expansion)
    - Fibonacci retracements and extensions of the last swing
    - Strict pivot detection on any series
    - Classic and hidden RSI divergences

All math is deterministic and reproducible.
"""

from signal_engine.services.indicators.divergence import detect_divergences, divergence_strength
from signal_engine.services.indicators.pivots import find_peaks_and_valleys, find_pivots
from signal_engine.services.indicators.service import IndicatorEngine

__all__ = [
    "IndicatorEngine",
    "detect_divergences",
    "divergence_strength",
    "find_pivots",
    "find_peaks_and_valleys",
]
