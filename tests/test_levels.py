"""
Tests for support/resistance clustering and psychological levels.
"""

import numpy as np
import pytest

from signal_engine.schemas.analysis import AnalysisConfig, LevelType
from signal_engine.services.levels import (
    analyze_support_resistance,
    cluster_levels,
    psychological_levels,
)
from signal_engine.services.levels.clustering import (
    is_level_broken,
    level_confidence,
    level_strength,
    roundness,
)

from tests.helpers import zigzag


@pytest.fixture
def range_closes():
    """Three swings between 90 and 110, ending mid-range at 100."""
    return zigzag([
        (0, 100), (8, 110), (16, 90), (24, 110), (32, 90),
        (40, 110), (48, 90), (56, 100),
    ])


class TestClusterLevels:
    """Tests for pivot clustering."""

    def test_range_levels(self, range_closes):
        levels = cluster_levels(range_closes + 0.5, range_closes - 0.5, range_closes)

        assert len(levels) == 2
        support, resistance = levels
        assert support.type == LevelType.SUPPORT
        assert support.price == pytest.approx(89.5)
        assert support.touches == 3
        assert support.first_touch_index == 16
        assert support.last_touch_index == 48
        assert support.timespan == 32
        assert support.broken is False

        assert resistance.type == LevelType.RESISTANCE
        assert resistance.price == pytest.approx(110.5)
        assert resistance.touches == 3

    def test_strength_and_confidence(self, range_closes):
        levels = cluster_levels(range_closes + 0.5, range_closes - 0.5, range_closes)
        assert levels[0].strength == pytest.approx(round(60 + 32 / 24, 2))
        assert levels[0].confidence == pytest.approx(70.0)

    def test_single_touch_excluded(self):
        closes = zigzag([(0, 100), (8, 110), (16, 90), (24, 130), (32, 100)])
        levels = cluster_levels(closes + 0.5, closes - 0.5, closes)
        assert levels == []

    def test_min_touches_config(self):
        closes = zigzag([(0, 100), (8, 110), (16, 90), (24, 130), (32, 100)])
        config = AnalysisConfig(level_min_touches=1)
        levels = cluster_levels(closes + 0.5, closes - 0.5, closes, config)
        assert {lvl.price for lvl in levels} == {110.5, 89.5, 130.5}

    def test_tolerance_merges_nearby_peaks(self):
        closes = zigzag([(0, 100), (8, 110), (16, 90), (24, 110.3), (32, 100)])
        levels = cluster_levels(closes + 0.5, closes - 0.5, closes)
        assert len(levels) == 1
        assert levels[0].type == LevelType.RESISTANCE
        assert levels[0].price == pytest.approx(110.65)

    def test_deterministic(self):
        rng = np.random.default_rng(11)
        closes = 100 + np.cumsum(rng.normal(0, 1, 300))
        highs = closes + rng.uniform(0, 1, 300)
        lows = closes - rng.uniform(0, 1, 300)

        first = cluster_levels(highs, lows, closes)
        second = cluster_levels(highs.copy(), lows.copy(), closes.copy())
        assert first == second


class TestLevelScores:
    def test_strength_caps(self):
        assert level_strength(2, 0) == pytest.approx(40.0)
        assert level_strength(10, 10_000) == pytest.approx(100.0)

    def test_confidence_long_span_bonus(self):
        assert level_confidence(2, 10) == pytest.approx(50.0)
        assert level_confidence(2, 100) == pytest.approx(60.0)

    def test_broken_support(self):
        assert is_level_broken(100.0, LevelType.SUPPORT, [101, 100, 99.5])
        assert not is_level_broken(100.0, LevelType.SUPPORT, [101, 100, 99.9])

    def test_broken_resistance(self):
        assert is_level_broken(100.0, LevelType.RESISTANCE, [99, 100.5])
        assert not is_level_broken(100.0, LevelType.RESISTANCE, [99, 100.1])

    def test_break_window(self):
        closes = [95.0] + [101.0] * 10
        assert not is_level_broken(100.0, LevelType.SUPPORT, closes, window=10)


class TestPsychologicalLevels:
    """Tests for round-number levels."""

    def test_roundness(self):
        assert roundness(50000) == pytest.approx(0.8)
        assert roundness(100) == pytest.approx(2 / 3)
        assert roundness(12345) == pytest.approx(0.0)
        assert roundness(0.5) == pytest.approx(0.0)

    def test_levels_near_price(self):
        levels = psychological_levels(50200)

        assert levels[0].price == pytest.approx(50000)
        assert levels[0].type == LevelType.SUPPORT
        assert levels[0].strength == pytest.approx(76.81, abs=0.01)
        assert all(abs(lvl.price - 50200) / 50200 <= 0.1 for lvl in levels)
        strengths = [lvl.strength for lvl in levels]
        assert strengths == sorted(strengths, reverse=True)

    def test_resistance_above(self):
        levels = psychological_levels(50200)
        above = [lvl for lvl in levels if lvl.price > 50200]
        assert above
        assert all(lvl.type == LevelType.RESISTANCE for lvl in above)

    def test_sub_dollar_price(self):
        levels = psychological_levels(0.5234)

        assert levels[0].price == pytest.approx(0.52)
        assert levels[0].type == LevelType.SUPPORT
        assert levels[0].roundness == pytest.approx(0.6)
        assert levels[0].strength == pytest.approx(56.1, abs=0.01)

    def test_two_digit_price(self):
        levels = psychological_levels(15.3)

        assert levels[0].price == pytest.approx(15.0)
        assert levels[0].type == LevelType.SUPPORT
        assert levels[0].strength == pytest.approx(48.24, abs=0.01)

    @pytest.mark.parametrize("price", [0.12, 0.45, 0.6, 2.37, 43.7])
    def test_low_priced_symbols_have_levels(self, price):
        assert psychological_levels(price)

    def test_non_positive_price(self):
        assert psychological_levels(0) == []


class TestAnalyzeSupportResistance:
    def test_nearest_levels_and_range(self, range_closes):
        result = analyze_support_resistance(range_closes + 0.5, range_closes - 0.5, range_closes)

        assert result.nearest_support.price == pytest.approx(89.5)
        assert result.nearest_resistance.price == pytest.approx(110.5)
        assert result.trend == "neutral"
        assert result.trading_range.width_percent == pytest.approx(23.46)

    def test_trend_from_room(self, range_closes):
        closes = range_closes.copy()
        closes[-3:] = [106.0, 107.0, 108.0]
        result = analyze_support_resistance(range_closes + 0.5, range_closes - 0.5, closes)
        assert result.trend == "uptrend"

    def test_no_levels(self):
        closes = [float(x) for x in range(100, 160)]
        result = analyze_support_resistance(closes, closes, closes)
        assert result.levels == []
        assert result.nearest_support is None
        assert result.trading_range is None
        assert result.trend == "neutral"
