"""
Confluence Scoring

Combines RSI, divergences, volatility state, Fibonacci, support/resistance
and chart patterns into one 0-100 score and a direction.

Directional factors carry a signed weight (positive bullish). The score
starts at 50, directional factors aligned with the voted direction add
their magnitude and opposing ones subtract it; volatility factors adjust
the score without voting. A direction is only assigned above the
confluence threshold.
"""

import logging
from typing import Optional

import numpy as np

from signal_engine.schemas.analysis import (
    AnalysisConfig,
    BBWPPoint,
    Bias,
    Divergence,
    DivergenceType,
    FibonacciResult,
    LevelType,
    Pattern,
    SupportResistance,
    SwingDirection,
)
from signal_engine.schemas.signal import ConfluenceFactor, ConfluenceResult, Direction
from signal_engine.services.scanner.patterns import PATTERN_MULTIPLIERS

logger = logging.getLogger(__name__)

BASELINE = 50.0

RSI_WEIGHT = 15.0
DIVERGENCE_BASE_WEIGHT = 20.0
DIVERGENCE_STRENGTH_WEIGHT = 5.0
SQUEEZE_WEIGHT = 15.0
EXPANSION_WEIGHT = -10.0
GOLDEN_POCKET_WEIGHT = 15.0
LEVEL_BASE_WEIGHT = 10.0
LEVEL_STRENGTH_WEIGHT = 2.0


def _rsi_factor(rsi_value: Optional[float], config: AnalysisConfig) -> Optional[ConfluenceFactor]:
    if rsi_value is None:
        return None
    if rsi_value <= config.rsi_oversold:
        return ConfluenceFactor(name="rsi_oversold", weight=RSI_WEIGHT, evidence={"rsi": rsi_value})
    if rsi_value >= config.rsi_overbought:
        return ConfluenceFactor(name="rsi_overbought", weight=-RSI_WEIGHT, evidence={"rsi": rsi_value})
    return None


def _divergence_factor(divergences: list[Divergence], config: AnalysisConfig) -> Optional[ConfluenceFactor]:
    qualifying = [d for d in divergences if d.strength >= config.divergence_strength_threshold]
    if not qualifying:
        return None

    strongest = max(qualifying, key=lambda d: d.strength)
    magnitude = DIVERGENCE_BASE_WEIGHT + DIVERGENCE_STRENGTH_WEIGHT * strongest.strength / 100
    sign = 1 if strongest.type == DivergenceType.BULLISH else -1
    return ConfluenceFactor(
        name=f"{strongest.subtype.value}_{strongest.type.value}_divergence",
        weight=round(sign * magnitude, 2),
        evidence={
            "strength": strongest.strength,
            "bars_between": strongest.bars_between,
            "confirmed": strongest.confirmed,
        },
    )


def _bbwp_factor(point: Optional[BBWPPoint]) -> Optional[ConfluenceFactor]:
    if point is None:
        return None
    if point.squeeze:
        return ConfluenceFactor(
            name="bbwp_squeeze", weight=SQUEEZE_WEIGHT, directional=False, evidence={"bbwp": point.value}
        )
    if point.expansion:
        return ConfluenceFactor(
            name="bbwp_expansion", weight=EXPANSION_WEIGHT, directional=False, evidence={"bbwp": point.value}
        )
    return None


def _fibonacci_factor(
    fibonacci: Optional[FibonacciResult], current_price: float, config: AnalysisConfig
) -> Optional[ConfluenceFactor]:
    if fibonacci is None or fibonacci.swing is None:
        return None

    proximity = config.golden_pocket_proximity_percent / 100
    near = [
        lvl for lvl in fibonacci.golden_pocket
        if abs(lvl.price - current_price) / current_price < proximity
    ]
    if not near:
        return None

    # Pocket supports continuation of the swing it retraces
    sign = 1 if fibonacci.swing.direction == SwingDirection.UP else -1
    return ConfluenceFactor(
        name="fibonacci_golden_pocket",
        weight=sign * GOLDEN_POCKET_WEIGHT,
        evidence={"level": near[0].price, "ratio": near[0].ratio},
    )


def _level_factors(
    levels: Optional[SupportResistance], current_price: float, config: AnalysisConfig
) -> list[ConfluenceFactor]:
    if levels is None:
        return []

    proximity = config.sr_proximity_percent / 100
    nearby = [
        lvl for lvl in levels.levels
        if not lvl.broken
        and lvl.strength > config.min_sr_strength
        and abs(lvl.price - current_price) / current_price < proximity
    ]
    supports = [l for l in nearby if l.type == LevelType.SUPPORT and l.price < current_price]
    resistances = [l for l in nearby if l.type == LevelType.RESISTANCE and l.price > current_price]

    factors = []
    for candidates, name, sign in ((supports, "support_nearby", 1), (resistances, "resistance_nearby", -1)):
        if not candidates:
            continue
        strongest = max(candidates, key=lambda l: (l.strength, -abs(l.price - current_price)))
        magnitude = LEVEL_BASE_WEIGHT + LEVEL_STRENGTH_WEIGHT * strongest.strength / 100
        factors.append(
            ConfluenceFactor(
                name=name,
                weight=round(sign * magnitude, 2),
                evidence={"price": strongest.price, "strength": strongest.strength, "touches": strongest.touches},
            )
        )
    return factors


def _pattern_factors(patterns: list[Pattern], config: AnalysisConfig) -> list[ConfluenceFactor]:
    factors = []
    for pattern in patterns:
        if pattern.confidence <= config.min_pattern_confidence or pattern.bias == Bias.NEUTRAL:
            continue
        sign = 1 if pattern.bias == Bias.BULLISH else -1
        magnitude = PATTERN_MULTIPLIERS[pattern.type] * pattern.confidence / 10
        factors.append(
            ConfluenceFactor(
                name=f"pattern_{pattern.type.value}",
                weight=round(sign * magnitude, 2),
                evidence={"subtype": pattern.subtype, "confidence": pattern.confidence},
            )
        )
    return factors


def score_confluence(
    current_price: float,
    rsi_value: Optional[float] = None,
    divergences: Optional[list[Divergence]] = None,
    bbwp_point: Optional[BBWPPoint] = None,
    fibonacci: Optional[FibonacciResult] = None,
    levels: Optional[SupportResistance] = None,
    patterns: Optional[list[Pattern]] = None,
    config: Optional[AnalysisConfig] = None,
) -> ConfluenceResult:
    """
    Score the agreement of all analysis components.

    Any component may be missing; it then contributes nothing.
    """
    config = config or AnalysisConfig()

    factors: list[ConfluenceFactor] = []
    for factor in (
        _rsi_factor(rsi_value, config),
        _divergence_factor(divergences or [], config),
        _bbwp_factor(bbwp_point),
        _fibonacci_factor(fibonacci, current_price, config),
    ):
        if factor is not None:
            factors.append(factor)
    factors.extend(_level_factors(levels, current_price, config))
    factors.extend(_pattern_factors(patterns or [], config))

    directional = [f for f in factors if f.directional and f.weight != 0]
    bullish = sum(1 for f in directional if f.weight > 0)
    bearish = sum(1 for f in directional if f.weight < 0)

    if bullish > bearish:
        orientation = 1.0
    elif bearish > bullish:
        orientation = -1.0
    else:
        # Tie: orient by net weight, direction stays neutral
        orientation = -1.0 if sum(f.weight for f in directional) < 0 else 1.0

    raw = BASELINE
    raw += sum(orientation * f.weight for f in directional)
    raw += sum(f.weight for f in factors if not f.directional)
    score = round(float(np.clip(raw, 0, 100)), 2)

    direction = Direction.NEUTRAL
    if score > config.confluence_threshold and bullish != bearish:
        direction = Direction.LONG if bullish > bearish else Direction.SHORT

    logger.debug(f"Confluence {score} ({bullish} bullish / {bearish} bearish) -> {direction.value}")
    return ConfluenceResult(
        score=score,
        factors=factors,
        direction=direction,
        bullish_votes=bullish,
        bearish_votes=bearish,
    )
