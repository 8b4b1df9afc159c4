"""
Series and candle builders shared by the tests.
"""

from datetime import datetime, timedelta, timezone

import numpy as np

from signal_engine.schemas.analysis import FormationWindow, Level, Pattern, PatternTargets, TradeSetup
from signal_engine.schemas.market import Candle


START_TIME = datetime(2024, 1, 1, tzinfo=timezone.utc)


def zigzag(anchors, length=None):
    """
    Piecewise-linear series through (index, value) anchors.

    With anchors at least 4 bars apart every interior anchor is a strict
    pivot for lookback 3.
    """
    xs = [a[0] for a in anchors]
    ys = [a[1] for a in anchors]
    length = length or xs[-1] + 1
    return np.interp(np.arange(length), xs, ys)


def make_candles(closes, spread=0.5, volumes=None):
    """Candles around a close series: high = close + spread, low = close - spread."""
    candles = []
    for i, close in enumerate(closes):
        close = float(close)
        candles.append(
            Candle(
                timestamp=START_TIME + timedelta(hours=i),
                open=close,
                high=close + spread,
                low=close - spread,
                close=close,
                volume=float(volumes[i]) if volumes is not None else 1000.0,
            )
        )
    return candles


def make_level(price, level_type, strength=80.0, broken=False, touches=3):
    return Level(
        price=price,
        type=level_type,
        strength=strength,
        touches=touches,
        first_touch_index=10,
        last_touch_index=50,
        timespan=40,
        broken=broken,
        confidence=70.0,
    )


def make_pattern(pattern_type, bias, confidence=80.0, setup=None, subtype="reversal"):
    return Pattern(
        type=pattern_type,
        subtype=subtype,
        bias=bias,
        confidence=confidence,
        formation_window=FormationWindow(start=10, end=50),
        targets=PatternTargets(),
        setup=TradeSetup(**setup) if setup else None,
    )
