"""
Support / Resistance Clustering

Groups pivot prices into horizontal levels and scores them by how often
and over how long a span price has respected them.
"""

import logging
import math
from dataclasses import dataclass, field
from typing import Optional, Sequence

import numpy as np

from signal_engine.schemas.analysis import (
    AnalysisConfig,
    Level,
    LevelType,
    PivotKind,
    PsychologicalLevel,
    SupportResistance,
    TradingRange,
)
from signal_engine.services.indicators.pivots import find_pivots

logger = logging.getLogger(__name__)

# Bars per "day" of timespan credit
SPAN_UNIT = 24
LONG_SPAN = 48


@dataclass
class _Cluster:
    type: LevelType
    prices: list[float] = field(default_factory=list)
    indices: list[int] = field(default_factory=list)
    mean: float = 0.0

    def add(self, price: float, index: int) -> None:
        self.prices.append(price)
        self.indices.append(index)
        # Running mean
        self.mean += (price - self.mean) / len(self.prices)


def level_strength(touches: int, timespan: int) -> float:
    return min(100.0, min(80.0, touches * 20.0) + min(20.0, timespan / SPAN_UNIT))


def level_confidence(touches: int, timespan: int) -> float:
    return min(100.0, min(80.0, touches / 5 * 100) + (20.0 if timespan > LONG_SPAN else 10.0))


def is_level_broken(
    price: float,
    level_type: LevelType,
    closes: Sequence[float],
    window: int = 10,
    tolerance: float = 0.002,
) -> bool:
    """Any of the last `window` closes beyond the level by more than `tolerance`."""
    recent = np.asarray(closes, dtype=float)[-window:]
    if level_type == LevelType.SUPPORT:
        return bool(np.any(recent < price * (1 - tolerance)))
    return bool(np.any(recent > price * (1 + tolerance)))


def cluster_levels(
    highs: Sequence[float],
    lows: Sequence[float],
    closes: Sequence[float],
    config: Optional[AnalysisConfig] = None,
) -> list[Level]:
    """
    Cluster pivots into support and resistance levels.

    Peaks of highs are resistance candidates, valleys of lows support
    candidates. Each candidate, in index order, joins the nearest existing
    cluster of the same type whose mean is within the tolerance, otherwise
    it opens a new cluster.

    Returns:
        Levels with at least config.level_min_touches touches, strongest first
    """
    config = config or AnalysisConfig()
    lookback = config.pivot_lookback
    tolerance = config.level_tolerance_percent / 100

    candidates = [
        (p.index, p.value, LevelType.RESISTANCE)
        for p in find_pivots(highs, PivotKind.PEAK, lookback)
    ] + [
        (p.index, p.value, LevelType.SUPPORT)
        for p in find_pivots(lows, PivotKind.VALLEY, lookback)
    ]
    candidates.sort(key=lambda c: (c[0], c[2].value))

    clusters: list[_Cluster] = []
    for index, price, level_type in candidates:
        best = None
        best_distance = None
        for cluster in clusters:
            if cluster.type != level_type:
                continue
            distance = abs(price - cluster.mean) / cluster.mean
            if distance <= tolerance and (best_distance is None or distance < best_distance):
                best, best_distance = cluster, distance

        if best is None:
            best = _Cluster(type=level_type)
            clusters.append(best)
        best.add(price, index)

    levels = []
    for cluster in clusters:
        touches = len(cluster.prices)
        if touches < config.level_min_touches:
            continue

        timespan = max(cluster.indices) - min(cluster.indices)
        levels.append(
            Level(
                price=round(cluster.mean, 6),
                type=cluster.type,
                strength=round(level_strength(touches, timespan), 2),
                touches=touches,
                first_touch_index=min(cluster.indices),
                last_touch_index=max(cluster.indices),
                timespan=timespan,
                broken=is_level_broken(
                    cluster.mean,
                    cluster.type,
                    closes,
                    config.level_break_window,
                    config.level_break_tolerance,
                ),
                confidence=round(level_confidence(touches, timespan), 2),
            )
        )

    levels.sort(key=lambda lvl: (-lvl.strength, -lvl.last_touch_index, lvl.price))
    logger.debug(f"Clustered {len(candidates)} pivots into {len(levels)} levels")
    return levels


# =============================================================================
# PSYCHOLOGICAL LEVELS
# =============================================================================


def roundness(value: float) -> float:
    """Trailing zeros over significant digit count, e.g. 50000 -> 0.8."""
    text = f"{value:.10f}".rstrip("0").rstrip(".")
    digits = text.replace(".", "").lstrip("0")
    if not digits:
        return 0.0
    trailing = len(digits) - len(digits.rstrip("0"))
    return trailing / len(digits)


def psychological_levels(
    current_price: float, max_distance: float = 0.1
) -> list[PsychologicalLevel]:
    """
    Round-number levels within max_distance (fraction) of the price.

    Step sizes scale with the price magnitude: a 50000 price uses steps
    1000 / 500 / 100 / 50 / 10, a 0.52 price uses 0.01 / 0.005 / ... / 0.0001.
    Roundness is measured on the same scale, so 0.5 at 0.52 scores like
    50000 at 52000.
    """
    if current_price <= 0:
        return []

    exponent = math.floor(math.log10(current_price))
    magnitude = 10 ** (exponent - 1)
    # Roundness is read on five significant digits of the price scale
    unit = 10 ** (exponent - 4)
    steps = [magnitude, magnitude / 2, magnitude / 10, magnitude / 20, magnitude / 100]

    seen = set()
    levels = []
    for step in steps:
        for price in (math.floor(current_price / step) * step, math.ceil(current_price / step) * step):
            price = round(price, 10)
            if price <= 0 or price in seen:
                continue
            seen.add(price)

            distance = abs(price - current_price) / current_price
            if distance > max_distance:
                continue

            proximity = 1 - distance / max_distance
            score = roundness(round(price / unit))
            strength = proximity * score * 100
            if strength <= 0:
                continue

            levels.append(
                PsychologicalLevel(
                    price=price,
                    type=LevelType.RESISTANCE if price > current_price else LevelType.SUPPORT,
                    strength=round(min(100.0, strength), 2),
                    roundness=round(score, 4),
                )
            )

    levels.sort(key=lambda lvl: (-lvl.strength, lvl.price))
    return levels


# =============================================================================
# RECOMMENDATION
# =============================================================================


def analyze_support_resistance(
    highs: Sequence[float],
    lows: Sequence[float],
    closes: Sequence[float],
    config: Optional[AnalysisConfig] = None,
) -> SupportResistance:
    """Levels plus nearest support/resistance and the current trading range."""
    config = config or AnalysisConfig()
    current_price = float(closes[-1])
    levels = cluster_levels(highs, lows, closes, config)

    supports = [
        lvl for lvl in levels
        if lvl.type == LevelType.SUPPORT and lvl.price < current_price and not lvl.broken
    ]
    resistances = [
        lvl for lvl in levels
        if lvl.type == LevelType.RESISTANCE and lvl.price > current_price and not lvl.broken
    ]
    nearest_support = max(supports, key=lambda lvl: lvl.price) if supports else None
    nearest_resistance = min(resistances, key=lambda lvl: lvl.price) if resistances else None

    trend = "neutral"
    trading_range = None
    if nearest_support and nearest_resistance:
        room_below = current_price - nearest_support.price
        room_above = nearest_resistance.price - current_price
        if room_below > room_above:
            trend = "uptrend"
        elif room_above > room_below:
            trend = "downtrend"
        trading_range = TradingRange(
            lower=nearest_support.price,
            upper=nearest_resistance.price,
            width_percent=round(
                (nearest_resistance.price - nearest_support.price) / nearest_support.price * 100, 2
            ),
        )

    return SupportResistance(
        levels=levels,
        psychological=psychological_levels(current_price, config.psychological_range),
        nearest_support=nearest_support,
        nearest_resistance=nearest_resistance,
        trend=trend,
        trading_range=trading_range,
    )
