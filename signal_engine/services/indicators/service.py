"""
Indicator Engine Service Implementation

Wraps the NumPy calculations and turns them into schema objects.
"""

import logging
from typing import Optional, Sequence

import numpy as np

from signal_engine.schemas.analysis import (
    AnalysisConfig,
    BBWPPoint,
    FibonacciKind,
    FibonacciLevel,
    FibonacciResult,
    PivotKind,
    Swing,
    SwingDirection,
    VolatilityState,
)
from signal_engine.services.indicators.calculations import (
    atr,
    bbwp,
    fibonacci_levels,
    get_last_valid,
    is_golden_pocket,
    rsi,
)
from signal_engine.services.indicators.pivots import find_pivots

logger = logging.getLogger(__name__)


class IndicatorEngine:
    """
    RSI, BBWP, Fibonacci and ATR over a candle series.

    Stateless apart from its configuration. Insufficient input raises
    InsufficientDataError; callers decide whether that is fatal.
    """

    def __init__(self, config: Optional[AnalysisConfig] = None):
        self.config = config or AnalysisConfig()

    def compute_rsi(self, prices: Sequence[float], period: Optional[int] = None) -> list[float]:
        """RSI values, one per post-seed candle."""
        period = period or self.config.rsi_period
        return [round(float(v), 2) for v in rsi(np.asarray(prices, dtype=float), period)]

    def compute_bbwp(
        self,
        prices: Sequence[float],
        period: Optional[int] = None,
        std_dev_mult: Optional[float] = None,
        lookback: Optional[int] = None,
    ) -> list[BBWPPoint]:
        """BBWP series with squeeze / expansion flags, oldest first."""
        percentiles, widths = bbwp(
            np.asarray(prices, dtype=float),
            period or self.config.bbwp_period,
            std_dev_mult or self.config.bbwp_std_dev,
            lookback or self.config.bbwp_lookback,
        )

        points = []
        for value, width in zip(percentiles, widths):
            squeeze = value < self.config.bbwp_squeeze
            expansion = value > self.config.bbwp_expansion
            if squeeze:
                status = VolatilityState.SQUEEZE
            elif expansion:
                status = VolatilityState.EXPANSION
            else:
                status = VolatilityState.NORMAL

            points.append(
                BBWPPoint(
                    value=round(float(value), 2),
                    band_width=round(float(width), 4),
                    squeeze=squeeze,
                    expansion=expansion,
                    status=status,
                )
            )
        return points

    def compute_fibonacci(
        self,
        prices: Sequence[float],
        highs: Sequence[float],
        lows: Sequence[float],
    ) -> FibonacciResult:
        """
        Fibonacci levels of the last confirmed swing.

        The swing is the most recent peak/valley pair found in the trailing
        window. A valley followed by a peak is an up swing. Returns an empty
        result when the window has no complete swing.
        """
        lookback = self.config.fibonacci_lookback
        start = max(0, len(prices) - lookback)
        window_highs = np.asarray(highs, dtype=float)[start:]
        window_lows = np.asarray(lows, dtype=float)[start:]
        current_price = float(prices[-1])

        peaks = find_pivots(window_highs, PivotKind.PEAK, self.config.pivot_lookback, start)
        valleys = find_pivots(window_lows, PivotKind.VALLEY, self.config.pivot_lookback, start)
        if not peaks or not valleys:
            return FibonacciResult()

        peak, valley = peaks[-1], valleys[-1]
        if peak.value <= valley.value:
            return FibonacciResult()

        uptrend = valley.index < peak.index
        swing = Swing(
            direction=SwingDirection.UP if uptrend else SwingDirection.DOWN,
            high=peak.value,
            low=valley.value,
            start_index=min(peak.index, valley.index),
            end_index=max(peak.index, valley.index),
        )

        retracements, extensions = fibonacci_levels(peak.value, valley.value, uptrend)
        levels = []
        for kind, table in (
            (FibonacciKind.RETRACEMENT, retracements),
            (FibonacciKind.EXTENSION, extensions),
        ):
            for ratio, price in table.items():
                levels.append(
                    FibonacciLevel(
                        ratio=ratio,
                        price=round(price, 6),
                        kind=kind,
                        golden_pocket=kind == FibonacciKind.RETRACEMENT and is_golden_pocket(ratio),
                        distance=abs(price - current_price),
                        support=uptrend and price < current_price,
                        resistance=not uptrend and price > current_price,
                    )
                )

        levels.sort(key=lambda lvl: (lvl.distance, lvl.ratio))
        return FibonacciResult(swing=swing, levels=levels)

    def compute_atr(
        self, highs: Sequence[float], lows: Sequence[float], closes: Sequence[float]
    ) -> Optional[float]:
        """Latest ATR value, or None when the series is too short."""
        values = atr(
            np.asarray(highs, dtype=float),
            np.asarray(lows, dtype=float),
            np.asarray(closes, dtype=float),
            self.config.atr_period,
        )
        return get_last_valid(values)
