"""
Tests for RSI divergence detection.
"""

import numpy as np
import pytest

from signal_engine.schemas.analysis import (
    AnalysisConfig,
    DivergenceSubtype,
    DivergenceType,
    Pivot,
    PivotKind,
)
from signal_engine.services.indicators import detect_divergences, divergence_strength


def valley(index, value):
    return Pivot(index=index, value=value, kind=PivotKind.VALLEY)


def peak(index, value):
    return Pivot(index=index, value=value, kind=PivotKind.PEAK)


@pytest.fixture
def loose_config():
    return AnalysisConfig(divergence_strength_threshold=0)


@pytest.fixture
def prices():
    series = np.full(40, 100.0)
    series[10] = 100.0
    series[25] = 90.0
    series[-1] = 98.0
    return series


class TestDivergenceStrength:
    """Tests for the strength score."""

    def test_classic_bullish(self):
        # base 45 (15 RSI points) + 20 (10% price, capped), extremity 10, recency 0.7
        strength = divergence_strength(100, 90, 20, 35, 15, DivergenceType.BULLISH)
        assert strength == pytest.approx(52.5)

    def test_hidden_is_scaled(self):
        classic = divergence_strength(100, 90, 20, 35, 15, DivergenceType.BULLISH)
        hidden = divergence_strength(
            100, 90, 20, 35, 15, DivergenceType.BULLISH, DivergenceSubtype.HIDDEN
        )
        assert hidden == pytest.approx(classic * 0.8)

    def test_maximum_is_100(self):
        strength = divergence_strength(100, 200, 100, 60, 0, DivergenceType.BEARISH)
        assert strength == pytest.approx(100.0)

    def test_recency_floor(self):
        near = divergence_strength(100, 101, 50, 55, 25, DivergenceType.BULLISH)
        far = divergence_strength(100, 101, 50, 55, 200, DivergenceType.BULLISH)
        assert far == pytest.approx(near)
        assert far > 0


class TestDetectDivergences:
    """Tests for divergence detection over supplied pivots."""

    def test_classic_bullish(self, prices, loose_config):
        rsi_values = np.full(40, 50.0)
        result = detect_divergences(
            prices,
            rsi_values,
            price_pivots=[valley(10, 100.0), valley(25, 90.0)],
            rsi_pivots=[valley(10, 20.0), valley(26, 35.0)],
            config=loose_config,
        )

        assert len(result) == 1
        divergence = result[0]
        assert divergence.type == DivergenceType.BULLISH
        assert divergence.subtype == DivergenceSubtype.CLASSIC
        assert divergence.bars_between == 15
        assert divergence.strength == pytest.approx(52.5)
        assert divergence.confirmed is True

    def test_hidden_bearish(self, loose_config):
        prices = np.full(40, 100.0)
        result = detect_divergences(
            prices,
            np.full(40, 50.0),
            price_pivots=[peak(10, 120.0), peak(25, 110.0)],
            rsi_pivots=[peak(10, 65.0), peak(25, 80.0)],
            config=loose_config,
        )
        assert len(result) == 1
        assert result[0].type == DivergenceType.BEARISH
        assert result[0].subtype == DivergenceSubtype.HIDDEN

    def test_unconfirmed_when_price_below_pivot(self, loose_config):
        prices = np.full(40, 100.0)
        prices[25] = 90.0
        prices[-1] = 85.0
        result = detect_divergences(
            prices,
            np.full(40, 50.0),
            price_pivots=[valley(10, 100.0), valley(25, 90.0)],
            rsi_pivots=[valley(10, 20.0), valley(25, 35.0)],
            config=loose_config,
        )
        assert result[0].confirmed is False

    def test_no_divergence_when_rsi_agrees(self, prices, loose_config):
        result = detect_divergences(
            prices,
            np.full(40, 50.0),
            price_pivots=[valley(10, 100.0), valley(25, 90.0)],
            rsi_pivots=[valley(10, 35.0), valley(25, 20.0)],
            config=loose_config,
        )
        assert result == []

    def test_unmatched_rsi_pivot(self, prices, loose_config):
        result = detect_divergences(
            prices,
            np.full(40, 50.0),
            price_pivots=[valley(10, 100.0), valley(25, 90.0)],
            rsi_pivots=[valley(10, 20.0), valley(30, 35.0)],
            config=loose_config,
        )
        assert result == []

    def test_period_bounds(self, prices, loose_config):
        result = detect_divergences(
            prices,
            np.full(40, 50.0),
            price_pivots=[valley(10, 100.0), valley(13, 90.0)],
            rsi_pivots=[valley(10, 20.0), valley(13, 35.0)],
            config=loose_config,
        )
        assert result == []

    def test_strength_threshold(self, prices):
        result = detect_divergences(
            prices,
            np.full(40, 50.0),
            price_pivots=[valley(10, 100.0), valley(25, 90.0)],
            rsi_pivots=[valley(10, 20.0), valley(25, 35.0)],
            config=AnalysisConfig(divergence_strength_threshold=60),
        )
        assert result == []

    def test_sorted_and_truncated(self, loose_config):
        prices = np.full(120, 100.0)
        price_pivots = []
        rsi_pivots = []
        for n, index in enumerate(range(10, 110, 10)):
            price_pivots.append(valley(index, 100.0 - n))
            rsi_pivots.append(valley(index, 20.0 + 2 * n))

        result = detect_divergences(
            prices,
            np.full(120, 50.0),
            price_pivots=price_pivots,
            rsi_pivots=rsi_pivots,
            config=loose_config,
        )
        assert len(result) == loose_config.divergence_max_results
        strengths = [d.strength for d in result]
        assert strengths == sorted(strengths, reverse=True)

    def test_rsi_aligned_to_price_end(self, loose_config):
        # Computed pivots: RSI series is 14 shorter and aligned to the end
        prices = np.full(60, 100.0)
        prices[20], prices[40] = 95.0, 90.0
        rsi_values = np.full(46, 50.0)
        rsi_values[20 - 14], rsi_values[40 - 14] = 20.0, 35.0

        result = detect_divergences(prices, rsi_values, config=loose_config)
        assert len(result) == 1
        assert [p.index for p in result[0].indicator_pivots] == [20, 40]
