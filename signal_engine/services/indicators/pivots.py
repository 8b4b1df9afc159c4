"""
Pivot Detection

Local peaks and valleys in any series (prices, RSI).
"""

import numpy as np
from typing import Sequence

from signal_engine.schemas.analysis import Pivot, PivotKind
from signal_engine.services.base import InvalidParameterError


def find_pivots(
    series: Sequence[float],
    kind: PivotKind,
    lookback: int = 3,
    offset: int = 0,
) -> list[Pivot]:
    """
    Find strict local extrema.

    A point is a peak (valley) when it is strictly greater (less) than every
    other point within `lookback` bars on either side. Points closer than
    `lookback` to either end of the series are never pivots, and neither is
    any window containing NaN.

    Args:
        series: Values, oldest first
        kind: PEAK or VALLEY
        lookback: Bars on each side
        offset: Added to every returned index (maps a shorter series, such
            as RSI, onto price indices)

    Returns:
        Pivots in index order
    """
    if lookback < 1:
        raise InvalidParameterError("PivotDetector", f"lookback must be >= 1, got {lookback}")

    values = np.asarray(series, dtype=float)
    pivots = []

    for i in range(lookback, len(values) - lookback):
        window = values[i - lookback : i + lookback + 1]
        if np.isnan(window).any():
            continue

        others = np.delete(window, lookback)
        if kind == PivotKind.PEAK:
            is_pivot = bool(np.all(values[i] > others))
        else:
            is_pivot = bool(np.all(values[i] < others))

        if is_pivot:
            pivots.append(Pivot(index=i + offset, value=float(values[i]), kind=kind))

    return pivots


def find_peaks_and_valleys(
    series: Sequence[float], lookback: int = 3, offset: int = 0
) -> tuple[list[Pivot], list[Pivot]]:
    """Returns: (peaks, valleys)"""
    return (
        find_pivots(series, PivotKind.PEAK, lookback, offset),
        find_pivots(series, PivotKind.VALLEY, lookback, offset),
    )


def merge_pivots(peaks: list[Pivot], valleys: list[Pivot]) -> list[Pivot]:
    """Peaks and valleys in a single index-ordered list."""
    return sorted(peaks + valleys, key=lambda p: (p.index, p.kind.value))
