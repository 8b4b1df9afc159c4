"""
Technical Indicator Calculations

Pure Python/NumPy implementations of technical indicators.
All math is deterministic; inputs are never mutated.
"""

import numpy as np
from typing import Optional, Sequence
from dataclasses import dataclass

from signal_engine.schemas.market import Candle
from signal_engine.services.base import CalculationError, InsufficientDataError

RSI_EPSILON = 1e-4

FIB_RETRACEMENTS = (0.0, 0.236, 0.382, 0.5, 0.618, 0.786, 1.0)
FIB_EXTENSIONS = (1.272, 1.414, 1.618, 2.618, 4.236)
GOLDEN_POCKET = (0.618, 0.66)


@dataclass
class OHLCVData:
    """OHLCV data arrays for calculations."""

    opens: np.ndarray
    highs: np.ndarray
    lows: np.ndarray
    closes: np.ndarray
    volumes: np.ndarray

    @classmethod
    def from_candles(cls, candles: Sequence[Candle]) -> "OHLCVData":
        return cls(
            opens=np.array([c.open for c in candles], dtype=float),
            highs=np.array([c.high for c in candles], dtype=float),
            lows=np.array([c.low for c in candles], dtype=float),
            closes=np.array([c.close for c in candles], dtype=float),
            volumes=np.array([c.volume for c in candles], dtype=float),
        )

    def __len__(self) -> int:
        return len(self.closes)


# =============================================================================
# MOVING AVERAGES
# =============================================================================


def sma(data: np.ndarray, period: int) -> np.ndarray:
    """Simple Moving Average."""
    if len(data) < period:
        return np.full(len(data), np.nan)

    result = np.full(len(data), np.nan)
    for i in range(period - 1, len(data)):
        result[i] = np.mean(data[i - period + 1 : i + 1])
    return result


def ema(data: np.ndarray, period: int) -> np.ndarray:
    """Exponential Moving Average."""
    if len(data) < period:
        return np.full(len(data), np.nan)

    result = np.full(len(data), np.nan)
    multiplier = 2 / (period + 1)

    # Start with SMA
    result[period - 1] = np.mean(data[:period])

    for i in range(period, len(data)):
        result[i] = (data[i] - result[i - 1]) * multiplier + result[i - 1]

    return result


def rolling_std(data: np.ndarray, period: int) -> np.ndarray:
    """Population standard deviation over a trailing window."""
    result = np.full(len(data), np.nan)
    for i in range(period - 1, len(data)):
        result[i] = np.std(data[i - period + 1 : i + 1])
    return result


# =============================================================================
# MOMENTUM INDICATORS
# =============================================================================


def rsi(closes: np.ndarray, period: int = 14) -> np.ndarray:
    """
    Relative Strength Index with Wilder smoothing.

    Returns one value per post-seed step, i.e. len(closes) - period values.
    The value at position k belongs to closes[k + period].
    """
    closes = np.asarray(closes, dtype=float)
    if period < 1:
        raise CalculationError("IndicatorEngine", f"RSI period must be positive, got {period}")
    if len(closes) < period + 1:
        raise InsufficientDataError(
            "IndicatorEngine",
            f"RSI({period}) needs {period + 1} prices, got {len(closes)}",
            required=period + 1,
            available=len(closes),
        )

    deltas = np.diff(closes)
    gains = np.where(deltas > 0, deltas, 0.0)
    losses = np.where(deltas < 0, -deltas, 0.0)

    # Seed with simple averages
    avg_gain = float(np.mean(gains[:period]))
    avg_loss = float(np.mean(losses[:period]))

    result = np.empty(len(deltas) - period + 1)
    result[0] = _rsi_value(avg_gain, avg_loss)

    for i in range(period, len(deltas)):
        avg_gain = (avg_gain * (period - 1) + gains[i]) / period
        avg_loss = (avg_loss * (period - 1) + losses[i]) / period
        result[i - period + 1] = _rsi_value(avg_gain, avg_loss)

    if not np.all(np.isfinite(result)):
        raise CalculationError("IndicatorEngine", "RSI produced non-finite values")
    return np.clip(result, 0.0, 100.0)


def _rsi_value(avg_gain: float, avg_loss: float) -> float:
    rs = avg_gain / max(avg_loss, RSI_EPSILON)
    return 100.0 - 100.0 / (1.0 + rs)


# =============================================================================
# VOLATILITY INDICATORS
# =============================================================================


def atr(
    highs: np.ndarray, lows: np.ndarray, closes: np.ndarray, period: int = 14
) -> np.ndarray:
    """Average True Range."""
    if len(closes) < 2:
        return np.full(len(closes), np.nan)

    # True Range
    tr = np.zeros(len(closes))
    tr[0] = highs[0] - lows[0]

    for i in range(1, len(closes)):
        tr[i] = max(
            highs[i] - lows[i],
            abs(highs[i] - closes[i - 1]),
            abs(lows[i] - closes[i - 1]),
        )

    # ATR is EMA of TR
    return ema(tr, period)


def bollinger_band_width(
    closes: np.ndarray, period: int = 20, std_dev: float = 2.0
) -> np.ndarray:
    """
    Bollinger Band width as a percentage of the middle band.

    Returns len(closes) - period + 1 values, one per complete window.
    """
    closes = np.asarray(closes, dtype=float)
    middle = sma(closes, period)
    std = rolling_std(closes, period)

    upper = middle + (std_dev * std)
    lower = middle - (std_dev * std)

    valid = slice(period - 1, len(closes))
    if np.any(middle[valid] <= 0):
        raise CalculationError("IndicatorEngine", "Band width undefined for non-positive prices")
    return ((upper - lower) / middle * 100)[valid]


def bbwp(
    closes: np.ndarray,
    period: int = 20,
    std_dev: float = 2.0,
    lookback: int = 252,
) -> tuple[np.ndarray, np.ndarray]:
    """
    Bollinger Band Width Percentile.

    For every band width with a full trailing lookback window, the share of
    widths in that window strictly below the current one, times 100.

    Returns: (percentiles, band_widths) aligned to each other. Empty when
    the band width history is shorter than the lookback.
    """
    closes = np.asarray(closes, dtype=float)
    required = max(period, lookback)
    if len(closes) < required:
        raise InsufficientDataError(
            "IndicatorEngine",
            f"BBWP({period}, {lookback}) needs {required} prices, got {len(closes)}",
            required=required,
            available=len(closes),
        )

    widths = bollinger_band_width(closes, period, std_dev)

    percentiles = []
    for i in range(lookback - 1, len(widths)):
        window = widths[i - lookback + 1 : i + 1]
        below = np.count_nonzero(window < widths[i])
        percentiles.append(below / lookback * 100)

    return np.array(percentiles, dtype=float), widths[lookback - 1 :]


# =============================================================================
# FIBONACCI
# =============================================================================


def fibonacci_levels(
    high: float, low: float, uptrend: bool
) -> tuple[dict[float, float], dict[float, float]]:
    """
    Fibonacci retracement and extension prices for a swing.

    For an up swing retracements are measured down from the high and
    extensions projected above it; a down swing mirrors both.

    Returns: (retracements, extensions) as {ratio: price}
    """
    if high <= low:
        raise CalculationError("IndicatorEngine", f"Swing high {high} must exceed swing low {low}")

    swing_range = high - low
    if uptrend:
        retracements = {r: high - swing_range * r for r in FIB_RETRACEMENTS}
        extensions = {r: low + swing_range * r for r in FIB_EXTENSIONS}
    else:
        retracements = {r: low + swing_range * r for r in FIB_RETRACEMENTS}
        extensions = {r: high - swing_range * r for r in FIB_EXTENSIONS}

    return retracements, extensions


def is_golden_pocket(ratio: float) -> bool:
    return GOLDEN_POCKET[0] <= ratio <= GOLDEN_POCKET[1]


# =============================================================================
# UTILITY FUNCTIONS
# =============================================================================


def get_last_valid(arr: np.ndarray) -> Optional[float]:
    """Get last non-NaN value from array."""
    valid = arr[~np.isnan(arr)]
    return float(valid[-1]) if len(valid) > 0 else None
