"""
Signal Level Calculator

Chooses entry, stop loss and take profit for a direction from the
analysis. Technical stops are preferred over the default percentage stop,
in priority order:

    support/resistance > Fibonacci > chart pattern > ATR > default

Every candidate stop must sit between the configured minimum and maximum
distance from entry. Targets must meet the minimum risk-reward ratio; the
best ratio wins.
"""

import logging
import math
from dataclasses import dataclass
from typing import Optional

from signal_engine.schemas.analysis import (
    Bias,
    FibonacciResult,
    LevelType,
    Pattern,
    SupportResistance,
)
from signal_engine.schemas.risk import RiskConfig
from signal_engine.schemas.signal import Direction, SignalLevels
from signal_engine.services.base import InvalidLevelsError, InvalidParameterError

logger = logging.getLogger(__name__)

# Safety margins beyond the technical level, fraction of price
SR_MARGIN = 0.002
FIBONACCI_MARGIN = 0.001
PATTERN_MARGIN = 0.003
ATR_MULTIPLIER = 2.0

RR_TOLERANCE = 1e-9

# Emitted prices are rounded to this many decimals
PRICE_DECIMALS = 8
PRICE_UNIT = 10 ** -PRICE_DECIMALS

PRIORITY = {
    "support_resistance": 5,
    "fibonacci": 4,
    "pattern": 3,
    "atr": 2,
    "default": 1,
}


@dataclass
class _Candidate:
    price: float
    source: str
    strength: float = 0.0


def ensure_level_order(direction: Direction, entry: float, stop_loss: float, take_profit: float) -> None:
    """Raise InvalidLevelsError unless stop and target straddle entry correctly."""
    if direction == Direction.LONG:
        if not stop_loss < entry:
            raise InvalidLevelsError("SignalLevelCalculator", f"Long stop {stop_loss} must be below entry {entry}")
        if not take_profit > entry:
            raise InvalidLevelsError("SignalLevelCalculator", f"Long target {take_profit} must be above entry {entry}")
    elif direction == Direction.SHORT:
        if not stop_loss > entry:
            raise InvalidLevelsError("SignalLevelCalculator", f"Short stop {stop_loss} must be above entry {entry}")
        if not take_profit < entry:
            raise InvalidLevelsError("SignalLevelCalculator", f"Short target {take_profit} must be below entry {entry}")
    else:
        raise InvalidParameterError("SignalLevelCalculator", "Levels need a long or short direction")


def _pattern_agrees(pattern: Pattern, direction: Direction) -> bool:
    if pattern.setup is None:
        return False
    if pattern.bias == Bias.BULLISH:
        return direction == Direction.LONG
    if pattern.bias == Bias.BEARISH:
        return direction == Direction.SHORT
    # Neutral patterns carry the setup of the side price is leaning to
    leaning_long = pattern.setup.take_profit > pattern.setup.entry
    return leaning_long == (direction == Direction.LONG)


def _stop_candidates(
    direction: Direction,
    entry: float,
    support_resistance: Optional[SupportResistance],
    fibonacci: Optional[FibonacciResult],
    patterns: list[Pattern],
    atr_value: Optional[float],
) -> list[_Candidate]:
    long = direction == Direction.LONG
    sign = -1 if long else 1
    candidates = []

    if support_resistance is not None:
        protective = LevelType.SUPPORT if long else LevelType.RESISTANCE
        for level in support_resistance.levels:
            if level.type != protective or level.broken:
                continue
            if (long and level.price < entry) or (not long and level.price > entry):
                candidates.append(
                    _Candidate(level.price * (1 + sign * SR_MARGIN), "support_resistance", level.strength)
                )

    if fibonacci is not None:
        for level in fibonacci.retracements:
            if long and level.support and level.price < entry:
                candidates.append(_Candidate(level.price * (1 - FIBONACCI_MARGIN), "fibonacci", level.ratio))
            elif not long and level.resistance and level.price > entry:
                candidates.append(_Candidate(level.price * (1 + FIBONACCI_MARGIN), "fibonacci", level.ratio))

    for pattern in patterns:
        if not _pattern_agrees(pattern, direction):
            continue
        stop = pattern.setup.stop_loss * (1 + sign * PATTERN_MARGIN)
        if (long and stop < entry) or (not long and stop > entry):
            candidates.append(_Candidate(stop, "pattern", pattern.confidence))

    if atr_value is not None and atr_value > 0:
        candidates.append(_Candidate(entry + sign * ATR_MULTIPLIER * atr_value, "atr"))

    return candidates


def _target_candidates(
    direction: Direction,
    entry: float,
    support_resistance: Optional[SupportResistance],
    fibonacci: Optional[FibonacciResult],
    patterns: list[Pattern],
) -> list[_Candidate]:
    long = direction == Direction.LONG
    candidates = []

    if support_resistance is not None:
        opposing = LevelType.RESISTANCE if long else LevelType.SUPPORT
        for level in support_resistance.levels:
            if level.type != opposing or level.broken:
                continue
            if (long and level.price > entry) or (not long and level.price < entry):
                candidates.append(_Candidate(level.price, "support_resistance", level.strength))

    if fibonacci is not None:
        for level in fibonacci.extensions:
            if (long and level.price > entry) or (not long and 0 < level.price < entry):
                candidates.append(_Candidate(level.price, "fibonacci", level.ratio))

    for pattern in patterns:
        if not _pattern_agrees(pattern, direction):
            continue
        target = pattern.setup.take_profit
        if (long and target > entry) or (not long and 0 < target < entry):
            candidates.append(_Candidate(target, "pattern", pattern.confidence))

    return candidates


def _widen_target(long: bool, entry: float, stop_loss: float, take_profit: float, min_rr: float) -> float:
    """Move a rounded target outward until the rounded prices themselves meet min_rr."""
    sign = 1 if long else -1
    risk = abs(entry - stop_loss)
    required = round(entry + sign * risk * min_rr, PRICE_DECIMALS)
    if sign * (required - take_profit) > 0:
        take_profit = required

    while abs(take_profit - entry) / risk < min_rr:
        nudged = round(take_profit + sign * PRICE_UNIT, PRICE_DECIMALS)
        if nudged == take_profit:
            nudged = math.nextafter(take_profit, sign * math.inf)
        take_profit = nudged
    return take_profit


def calculate_signal_levels(
    direction: Direction,
    current_price: float,
    support_resistance: Optional[SupportResistance] = None,
    fibonacci: Optional[FibonacciResult] = None,
    patterns: Optional[list[Pattern]] = None,
    atr_value: Optional[float] = None,
    config: Optional[RiskConfig] = None,
    min_risk_reward: Optional[float] = None,
) -> SignalLevels:
    """
    Entry at the current price, stop and target from the analysis.

    Raises:
        InvalidParameterError: direction is neutral or price is not positive
        InvalidLevelsError: the chosen stop or target is on the wrong side
    """
    config = config or RiskConfig()
    min_rr = min_risk_reward or config.min_risk_reward
    patterns = patterns or []

    if direction == Direction.NEUTRAL:
        raise InvalidParameterError("SignalLevelCalculator", "Levels need a long or short direction")
    if current_price <= 0:
        raise InvalidParameterError("SignalLevelCalculator", f"Current price must be positive, got {current_price}")

    entry = current_price
    long = direction == Direction.LONG
    min_distance = config.min_stop_distance_percent / 100
    max_distance = config.max_stop_distance_percent / 100

    stops = [
        c for c in _stop_candidates(direction, entry, support_resistance, fibonacci, patterns, atr_value)
        if min_distance <= abs(entry - c.price) / entry <= max_distance
    ]
    if stops:
        stop = max(stops, key=lambda c: (PRIORITY[c.source], c.strength, -abs(entry - c.price)))
    else:
        default_distance = entry * config.default_stop_percent / 100
        stop = _Candidate(entry - default_distance if long else entry + default_distance, "default")

    risk = abs(entry - stop.price)
    default_target = entry + risk * min_rr if long else entry - risk * min_rr
    targets = _target_candidates(direction, entry, support_resistance, fibonacci, patterns)
    targets.append(_Candidate(default_target, "default"))

    qualifying = [c for c in targets if abs(c.price - entry) / risk >= min_rr - RR_TOLERANCE]
    target = max(qualifying, key=lambda c: (abs(c.price - entry) / risk, PRIORITY[c.source]))

    ensure_level_order(direction, entry, stop.price, target.price)

    entry = round(entry, PRICE_DECIMALS)
    stop_loss = round(stop.price, PRICE_DECIMALS)
    if stop_loss == entry:
        raise InvalidLevelsError("SignalLevelCalculator", f"Stop {stop.price} rounds onto entry {entry}")
    take_profit = _widen_target(long, entry, stop_loss, round(target.price, PRICE_DECIMALS), min_rr)

    levels = SignalLevels(
        direction=direction,
        entry=entry,
        stop_loss=stop_loss,
        take_profit=take_profit,
        risk_reward=round(abs(take_profit - entry) / abs(entry - stop_loss), 4),
        stop_source=stop.source,
        target_source=target.source,
    )
    logger.debug(
        f"Levels {direction.value}: entry {levels.entry}, stop {levels.stop_loss} ({stop.source}), "
        f"target {levels.take_profit} ({target.source}), R:R {levels.risk_reward}"
    )
    return levels
