"""
RSI Divergence Detection

Classic (reversal) and hidden (continuation) divergences between price
pivots and RSI pivots.

    Classic bullish:  price lower low,   RSI higher low
    Classic bearish:  price higher high, RSI lower high
    Hidden bullish:   price higher low,  RSI lower low
    Hidden bearish:   price lower high,  RSI higher high
"""

import logging
from typing import Optional, Sequence

import numpy as np

from signal_engine.schemas.analysis import (
    AnalysisConfig,
    Divergence,
    DivergenceSubtype,
    DivergenceType,
    Pivot,
    PivotKind,
)
from signal_engine.services.indicators.pivots import find_pivots

logger = logging.getLogger(__name__)

# Strength components
RSI_DELTA_WEIGHT = 3.0
RSI_DELTA_CAP = 60.0
PRICE_CHANGE_WEIGHT = 4.0
PRICE_CHANGE_CAP = 20.0
EXTREMITY_WEIGHT = 0.5
RECENCY_BARS = 50
MIN_RECENCY = 0.5


def divergence_strength(
    prev_price: float,
    curr_price: float,
    prev_rsi: float,
    curr_rsi: float,
    bars_between: int,
    divergence_type: DivergenceType,
    subtype: DivergenceSubtype = DivergenceSubtype.CLASSIC,
    hidden_factor: float = 0.8,
) -> float:
    """
    Score a divergence 0-100.

    Combines the size of the price move, the RSI disagreement, how close the
    two pivots are in time and how deep the RSI sits in its extreme zone.
    Hidden divergences score hidden_factor times the classic value.
    """
    price_change_pct = abs(curr_price - prev_price) / prev_price * 100 if prev_price else 0.0
    rsi_delta = abs(curr_rsi - prev_rsi)

    base = min(RSI_DELTA_CAP, rsi_delta * RSI_DELTA_WEIGHT)
    base += min(PRICE_CHANGE_CAP, price_change_pct * PRICE_CHANGE_WEIGHT)

    if divergence_type == DivergenceType.BULLISH:
        extremity = max(0.0, 40 - min(prev_rsi, curr_rsi)) * EXTREMITY_WEIGHT
    else:
        extremity = max(0.0, max(prev_rsi, curr_rsi) - 60) * EXTREMITY_WEIGHT

    recency = max(MIN_RECENCY, 1 - bars_between / RECENCY_BARS)
    strength = float(np.clip((base + extremity) * recency, 0, 100))

    if subtype == DivergenceSubtype.HIDDEN:
        strength *= hidden_factor
    return strength


def _nearest_pivot(pivots: list[Pivot], index: int, window: int) -> Optional[Pivot]:
    candidates = [p for p in pivots if abs(p.index - index) <= window]
    if not candidates:
        return None
    return min(candidates, key=lambda p: (abs(p.index - index), p.index))


def _classify(
    kind: PivotKind,
    prev_price: Pivot,
    curr_price: Pivot,
    prev_rsi: Pivot,
    curr_rsi: Pivot,
) -> Optional[tuple[DivergenceType, DivergenceSubtype]]:
    price_up = curr_price.value > prev_price.value
    price_down = curr_price.value < prev_price.value
    rsi_up = curr_rsi.value > prev_rsi.value
    rsi_down = curr_rsi.value < prev_rsi.value

    if kind == PivotKind.VALLEY:
        if price_down and rsi_up:
            return DivergenceType.BULLISH, DivergenceSubtype.CLASSIC
        if price_up and rsi_down:
            return DivergenceType.BULLISH, DivergenceSubtype.HIDDEN
    else:
        if price_up and rsi_down:
            return DivergenceType.BEARISH, DivergenceSubtype.CLASSIC
        if price_down and rsi_up:
            return DivergenceType.BEARISH, DivergenceSubtype.HIDDEN
    return None


def _is_confirmed(
    divergence_type: DivergenceType,
    prices: np.ndarray,
    rsi_values: np.ndarray,
    pivot_index: int,
    config: AnalysisConfig,
) -> bool:
    """
    Price has moved off the second pivot in the divergence direction and
    RSI has left its extreme zone.
    """
    if pivot_index >= len(prices) - 1 or len(rsi_values) == 0:
        return False

    last_close = prices[-1]
    last_rsi = rsi_values[-1]
    if divergence_type == DivergenceType.BULLISH:
        return bool(last_close > prices[pivot_index] and last_rsi > config.rsi_oversold)
    return bool(last_close < prices[pivot_index] and last_rsi < config.rsi_overbought)


def detect_divergences(
    prices: Sequence[float],
    rsi_values: Sequence[float],
    price_pivots: Optional[list[Pivot]] = None,
    rsi_pivots: Optional[list[Pivot]] = None,
    config: Optional[AnalysisConfig] = None,
) -> list[Divergence]:
    """
    Detect RSI divergences.

    rsi_values may be shorter than prices (the RSI seed period); it is
    aligned to the end of the price series. Pivots are computed when not
    supplied; supplied RSI pivots must already be in price-index space.

    Returns:
        Up to config.divergence_max_results divergences with strength at or
        above config.divergence_strength_threshold, strongest first.
    """
    config = config or AnalysisConfig()
    prices = np.asarray(prices, dtype=float)
    rsi_values = np.asarray(rsi_values, dtype=float)
    offset = len(prices) - len(rsi_values)

    if price_pivots is None:
        price_pivots = find_pivots(prices, PivotKind.PEAK, config.pivot_lookback) + find_pivots(
            prices, PivotKind.VALLEY, config.pivot_lookback
        )
    if rsi_pivots is None:
        rsi_pivots = find_pivots(
            rsi_values, PivotKind.PEAK, config.pivot_lookback, offset
        ) + find_pivots(rsi_values, PivotKind.VALLEY, config.pivot_lookback, offset)

    divergences = []
    for kind in (PivotKind.VALLEY, PivotKind.PEAK):
        kind_prices = sorted((p for p in price_pivots if p.kind == kind), key=lambda p: p.index)
        kind_rsi = [p for p in rsi_pivots if p.kind == kind]

        for prev, curr in zip(kind_prices, kind_prices[1:]):
            bars = curr.index - prev.index
            if bars < config.divergence_min_period or bars > config.divergence_max_lookback:
                continue

            prev_rsi = _nearest_pivot(kind_rsi, prev.index, config.divergence_match_window)
            curr_rsi = _nearest_pivot(kind_rsi, curr.index, config.divergence_match_window)
            if prev_rsi is None or curr_rsi is None or prev_rsi.index >= curr_rsi.index:
                continue

            classified = _classify(kind, prev, curr, prev_rsi, curr_rsi)
            if classified is None:
                continue
            div_type, subtype = classified

            strength = divergence_strength(
                prev.value,
                curr.value,
                prev_rsi.value,
                curr_rsi.value,
                bars,
                div_type,
                subtype,
                config.hidden_divergence_factor,
            )
            if strength < config.divergence_strength_threshold:
                continue

            divergences.append(
                Divergence(
                    type=div_type,
                    subtype=subtype,
                    strength=round(strength, 2),
                    price_pivots=[prev, curr],
                    indicator_pivots=[prev_rsi, curr_rsi],
                    bars_between=bars,
                    confirmed=_is_confirmed(div_type, prices, rsi_values, curr.index, config),
                )
            )

    divergences.sort(key=lambda d: (-d.strength, -d.price_pivots[1].index))
    logger.debug(f"Divergences found: {len(divergences)}")
    return divergences[: config.divergence_max_results]
