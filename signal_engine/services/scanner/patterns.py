"""
Chart Pattern Recognition

Detects geometric patterns from pivot highs and lows:
triangles, head and shoulders (and inverse), double tops and bottoms.

Each detector is a plain function of a PatternContext. Detectors are run
from the PATTERN_DETECTORS table in a fixed order.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Optional, Sequence

import numpy as np

from signal_engine.schemas.analysis import (
    AnalysisConfig,
    Bias,
    FormationWindow,
    Pattern,
    PatternTargets,
    PatternType,
    Pivot,
    PivotKind,
    TradeSetup,
    Trendline,
)
from signal_engine.services.base import InsufficientDataError
from signal_engine.services.indicators.pivots import find_pivots, merge_pivots

logger = logging.getLogger(__name__)

BASE_CONFIDENCE = 50.0


@dataclass
class PatternContext:
    """Price arrays and their pivots, shared by all detectors."""

    highs: np.ndarray
    lows: np.ndarray
    closes: np.ndarray
    volumes: Optional[np.ndarray]
    peaks: list[Pivot]
    valleys: list[Pivot]
    config: AnalysisConfig

    @property
    def last_index(self) -> int:
        return len(self.closes) - 1

    @property
    def has_volume(self) -> bool:
        return self.volumes is not None and float(np.sum(self.volumes)) > 0


# =============================================================================
# TRENDLINES
# =============================================================================


def calculate_trendline(points: Sequence[Pivot]) -> Optional[Trendline]:
    """Least-squares line through pivots. None for fewer than two distinct indices."""
    if len(points) < 2:
        return None

    x = np.array([p.index for p in points], dtype=float)
    y = np.array([p.value for p in points], dtype=float)
    x_mean, y_mean = x.mean(), y.mean()
    denominator = np.sum((x - x_mean) ** 2)
    if denominator == 0:
        return None

    slope = float(np.sum((x - x_mean) * (y - y_mean)) / denominator)
    intercept = float(y_mean - slope * x_mean)

    predicted = slope * x + intercept
    ss_tot = float(np.sum((y - y_mean) ** 2))
    ss_res = float(np.sum((y - predicted) ** 2))
    r_squared = 1.0 - ss_res / ss_tot if ss_tot > 0 else 1.0

    return Trendline(
        slope=slope,
        intercept=intercept,
        r_squared=float(np.clip(r_squared, 0.0, 1.0)),
        start_index=int(x.min()),
        end_index=int(x.max()),
    )


# =============================================================================
# CONFIDENCE
# =============================================================================


def _pattern_confidence(
    base: float,
    bars: int,
    config: AnalysisConfig,
    volume_confirmed: Optional[bool] = None,
) -> float:
    """Base score adjusted for formation duration and volume behaviour."""
    score = base
    if config.min_pattern_bars <= bars <= config.max_pattern_bars:
        score += 15
    else:
        score -= 10

    if volume_confirmed is True:
        score += 10
    elif volume_confirmed is False:
        score -= 5

    return round(float(np.clip(score, 0, 100)), 2)


def _volume_declining(ctx: PatternContext, start: int, end: int) -> Optional[bool]:
    """Second half of the formation trades less volume than the first."""
    if not ctx.has_volume or end - start < 4:
        return None
    mid = (start + end) // 2
    first = float(np.mean(ctx.volumes[start:mid]))
    second = float(np.mean(ctx.volumes[mid : end + 1]))
    return second < first


def _volume_lower_at(ctx: PatternContext, later: int, earlier: int) -> Optional[bool]:
    if not ctx.has_volume:
        return None
    return bool(ctx.volumes[later] < ctx.volumes[earlier])


# =============================================================================
# TRIANGLES
# =============================================================================


def _flat(slope: float, threshold: float) -> bool:
    return abs(slope) < threshold


# (subtype, predicate(upper_slope, lower_slope, threshold), bias)
TRIANGLE_RULES: tuple[tuple[str, Callable[[float, float, float], bool], Bias], ...] = (
    ("ascending", lambda up, low, t: _flat(up, t) and low > t, Bias.BULLISH),
    ("descending", lambda up, low, t: up < -t and _flat(low, t), Bias.BEARISH),
    ("symmetrical", lambda up, low, t: up < -t and low > t, Bias.NEUTRAL),
)


def classify_triangle(
    upper_slope: float, lower_slope: float, threshold: float
) -> Optional[tuple[str, Bias]]:
    """
    Classify normalized trendline slopes (fraction of price per bar).

    Returns: (subtype, bias), or None when the lines do not form a triangle
    """
    for subtype, predicate, bias in TRIANGLE_RULES:
        if predicate(upper_slope, lower_slope, threshold):
            return subtype, bias
    return None


def detect_triangles(ctx: PatternContext) -> list[Pattern]:
    config = ctx.config
    peaks = ctx.peaks[-config.triangle_pivots :]
    valleys = ctx.valleys[-config.triangle_pivots :]
    if len(peaks) < 2 or len(valleys) < 2:
        return []

    upper = calculate_trendline(peaks)
    lower = calculate_trendline(valleys)
    if upper is None or lower is None:
        return []

    mean_price = float(np.mean([p.value for p in peaks + valleys]))
    classified = classify_triangle(
        upper.slope / mean_price, lower.slope / mean_price, config.horizontal_threshold
    )
    if classified is None:
        return []
    subtype, bias = classified

    start = min(peaks[0].index, valleys[0].index)
    end = max(peaks[-1].index, valleys[-1].index)
    spread_start = upper.value_at(start) - lower.value_at(start)
    spread_end = upper.value_at(end) - lower.value_at(end)
    if spread_start <= 0 or spread_end <= 0 or upper.slope >= lower.slope:
        return []

    # Apex must lie ahead of the formation
    apex = (lower.intercept - upper.intercept) / (upper.slope - lower.slope)
    if apex <= end:
        return []

    convergence = (1 - spread_end / spread_start) * 100
    if not config.min_convergence <= convergence <= config.max_convergence:
        return []

    now = ctx.last_index
    upper_now = upper.value_at(now)
    lower_now = lower.value_at(now)
    height = spread_start

    upside = upper_now + height
    downside = lower_now - height
    if bias == Bias.BULLISH:
        targets = PatternTargets(breakout=upside, upside=upside)
        setup = TradeSetup(entry=upper_now, stop_loss=lower_now, take_profit=upside)
    elif bias == Bias.BEARISH:
        targets = PatternTargets(breakout=downside, downside=downside)
        setup = TradeSetup(entry=lower_now, stop_loss=upper_now, take_profit=downside)
    else:
        targets = PatternTargets(upside=upside, downside=downside)
        if ctx.closes[-1] >= (upper_now + lower_now) / 2:
            setup = TradeSetup(entry=upper_now, stop_loss=lower_now, take_profit=upside)
        else:
            setup = TradeSetup(entry=lower_now, stop_loss=upper_now, take_profit=downside)

    fit = (upper.r_squared + lower.r_squared) / 2
    confidence = _pattern_confidence(
        BASE_CONFIDENCE * fit,
        end - start,
        config,
        _volume_declining(ctx, start, end),
    )

    return [
        Pattern(
            type=PatternType.TRIANGLE,
            subtype=subtype,
            bias=bias,
            confidence=confidence,
            formation_window=FormationWindow(start=start, end=end),
            targets=targets,
            setup=setup,
            key_levels={"upper": round(upper_now, 6), "lower": round(lower_now, 6), "apex_index": round(apex, 2)},
            upper_line=upper,
            lower_line=lower,
            convergence_percent=round(convergence, 2),
        )
    ]


# =============================================================================
# HEAD AND SHOULDERS
# =============================================================================


def _neckline(a: Pivot, b: Pivot) -> Callable[[float], float]:
    slope = (b.value - a.value) / (b.index - a.index)
    return lambda index: a.value + slope * (index - a.index)


def _head_and_shoulders(ctx: PatternContext, window: list[Pivot], inverse: bool) -> Optional[Pattern]:
    config = ctx.config
    left, trough_1, head, trough_2, right = window

    # Normalize so the head is always the largest value
    sign = -1.0 if inverse else 1.0
    ls, hd, rs = sign * left.value, sign * head.value, sign * right.value
    if not (hd > ls and hd > rs):
        return None

    asymmetry = abs(left.value - right.value) / max(abs(left.value), abs(right.value))
    if asymmetry > config.shoulder_tolerance:
        return None

    neckline = _neckline(trough_1, trough_2)
    neck_head = neckline(head.index)
    neck_break = neckline(right.index)
    if sign * left.value <= sign * neckline(left.index) or sign * right.value <= sign * neck_break:
        return None

    height = abs(head.value - neck_head)
    if height <= 0:
        return None

    target = neck_break + height if inverse else neck_break - height
    if target <= 0:
        return None

    symmetry_bonus = 15 * (1 - asymmetry / config.shoulder_tolerance)
    confidence = _pattern_confidence(
        BASE_CONFIDENCE + symmetry_bonus,
        right.index - left.index,
        config,
        _volume_lower_at(ctx, right.index, head.index),
    )

    return Pattern(
        type=PatternType.INVERSE_HEAD_AND_SHOULDERS if inverse else PatternType.HEAD_AND_SHOULDERS,
        subtype="reversal",
        bias=Bias.BULLISH if inverse else Bias.BEARISH,
        confidence=confidence,
        formation_window=FormationWindow(start=left.index, end=right.index),
        targets=PatternTargets(
            breakout=target,
            upside=target if inverse else None,
            downside=None if inverse else target,
        ),
        setup=TradeSetup(entry=neck_break, stop_loss=right.value, take_profit=target),
        key_levels={
            "left_shoulder": left.value,
            "head": head.value,
            "right_shoulder": right.value,
            "neckline": round(neck_break, 6),
        },
    )


def detect_head_and_shoulders(ctx: PatternContext) -> list[Pattern]:
    pivots = merge_pivots(ctx.peaks, ctx.valleys)
    top = [PivotKind.PEAK, PivotKind.VALLEY] * 2 + [PivotKind.PEAK]
    bottom = [PivotKind.VALLEY, PivotKind.PEAK] * 2 + [PivotKind.VALLEY]

    patterns = []
    for i in range(len(pivots) - 4):
        window = pivots[i : i + 5]
        kinds = [p.kind for p in window]
        if kinds == top:
            pattern = _head_and_shoulders(ctx, window, inverse=False)
        elif kinds == bottom:
            pattern = _head_and_shoulders(ctx, window, inverse=True)
        else:
            continue
        if pattern is not None:
            patterns.append(pattern)
    return patterns


# =============================================================================
# DOUBLE TOP / BOTTOM
# =============================================================================


def _double_pattern(ctx: PatternContext, first: Pivot, second: Pivot, top: bool) -> Optional[Pattern]:
    config = ctx.config
    separation = second.index - first.index
    if separation < config.min_double_separation or separation > config.max_pattern_bars:
        return None

    difference = abs(first.value - second.value) / max(first.value, second.value)
    if difference > config.peak_similarity:
        return None

    if top:
        extreme = max(first.value, second.value)
        if float(np.max(ctx.highs[first.index : second.index + 1])) > extreme:
            return None
        neckline = float(np.min(ctx.lows[first.index : second.index + 1]))
        retrace = (min(first.value, second.value) - neckline) / min(first.value, second.value)
    else:
        extreme = min(first.value, second.value)
        if float(np.min(ctx.lows[first.index : second.index + 1])) < extreme:
            return None
        neckline = float(np.max(ctx.highs[first.index : second.index + 1]))
        retrace = (neckline - max(first.value, second.value)) / max(first.value, second.value)

    if not config.min_retrace <= retrace <= config.max_retrace:
        return None

    height = abs(extreme - neckline)
    target = neckline - height if top else neckline + height
    if target <= 0:
        return None

    similarity_bonus = 15 * (1 - difference / config.peak_similarity)
    confidence = _pattern_confidence(
        BASE_CONFIDENCE + similarity_bonus,
        separation,
        config,
        _volume_lower_at(ctx, second.index, first.index),
    )

    return Pattern(
        type=PatternType.DOUBLE_TOP if top else PatternType.DOUBLE_BOTTOM,
        subtype="reversal",
        bias=Bias.BEARISH if top else Bias.BULLISH,
        confidence=confidence,
        formation_window=FormationWindow(start=first.index, end=second.index),
        targets=PatternTargets(
            breakout=target,
            upside=None if top else target,
            downside=target if top else None,
        ),
        setup=TradeSetup(entry=neckline, stop_loss=extreme, take_profit=target),
        key_levels={
            "first": first.value,
            "second": second.value,
            "neckline": neckline,
            "retrace_percent": round(retrace * 100, 2),
        },
    )


def detect_double_patterns(ctx: PatternContext) -> list[Pattern]:
    patterns = []
    for pivots, top in ((ctx.peaks, True), (ctx.valleys, False)):
        for first, second in zip(pivots, pivots[1:]):
            pattern = _double_pattern(ctx, first, second, top)
            if pattern is not None:
                patterns.append(pattern)
    return patterns


# =============================================================================
# RECOGNIZER
# =============================================================================


PATTERN_DETECTORS: tuple[tuple[str, Callable[[PatternContext], list[Pattern]]], ...] = (
    ("triangle", detect_triangles),
    ("head_and_shoulders", detect_head_and_shoulders),
    ("double_top_bottom", detect_double_patterns),
)

# Weight of each pattern type in confluence scoring
PATTERN_MULTIPLIERS = {
    PatternType.HEAD_AND_SHOULDERS: 1.5,
    PatternType.INVERSE_HEAD_AND_SHOULDERS: 1.5,
    PatternType.DOUBLE_TOP: 1.2,
    PatternType.DOUBLE_BOTTOM: 1.2,
    PatternType.TRIANGLE: 1.0,
}


def recognize_patterns(
    highs: Sequence[float],
    lows: Sequence[float],
    closes: Sequence[float],
    volumes: Optional[Sequence[float]] = None,
    config: Optional[AnalysisConfig] = None,
) -> list[Pattern]:
    """
    Run every detector and keep the most confident patterns.

    Returns:
        Up to config.pattern_max_results patterns with confidence at or
        above config.pattern_min_confidence, most confident first
    """
    config = config or AnalysisConfig()
    if len(closes) < config.min_pattern_bars:
        raise InsufficientDataError(
            "PatternRecognizer",
            f"Pattern detection needs {config.min_pattern_bars} candles, got {len(closes)}",
            required=config.min_pattern_bars,
            available=len(closes),
        )

    highs = np.asarray(highs, dtype=float)
    lows = np.asarray(lows, dtype=float)
    ctx = PatternContext(
        highs=highs,
        lows=lows,
        closes=np.asarray(closes, dtype=float),
        volumes=np.asarray(volumes, dtype=float) if volumes is not None else None,
        peaks=find_pivots(highs, PivotKind.PEAK, config.pivot_lookback),
        valleys=find_pivots(lows, PivotKind.VALLEY, config.pivot_lookback),
        config=config,
    )

    patterns = []
    for name, detector in PATTERN_DETECTORS:
        found = detector(ctx)
        logger.debug(f"Detector {name}: {len(found)} candidates")
        patterns.extend(found)

    patterns = [p for p in patterns if p.confidence >= config.pattern_min_confidence]
    patterns.sort(key=lambda p: (-p.confidence, -p.formation_window.end))
    return patterns[: config.pattern_max_results]
