"""
Tests for confluence scoring.
"""

import pytest

from signal_engine.schemas.analysis import (
    AnalysisConfig,
    BBWPPoint,
    Bias,
    Divergence,
    DivergenceSubtype,
    DivergenceType,
    FibonacciKind,
    FibonacciLevel,
    FibonacciResult,
    LevelType,
    PatternType,
    Pivot,
    PivotKind,
    SupportResistance,
    Swing,
    SwingDirection,
    VolatilityState,
)
from signal_engine.schemas.signal import Direction
from signal_engine.services.strategy import score_confluence

from tests.helpers import make_level, make_pattern


def make_divergence(div_type, strength):
    kind = PivotKind.VALLEY if div_type == DivergenceType.BULLISH else PivotKind.PEAK
    pivots = [Pivot(index=10, value=100, kind=kind), Pivot(index=25, value=95, kind=kind)]
    return Divergence(
        type=div_type,
        subtype=DivergenceSubtype.CLASSIC,
        strength=strength,
        price_pivots=pivots,
        indicator_pivots=pivots,
        bars_between=15,
    )


def bbwp_point(value):
    squeeze, expansion = value < 20, value > 80
    status = VolatilityState.SQUEEZE if squeeze else VolatilityState.EXPANSION if expansion else VolatilityState.NORMAL
    return BBWPPoint(value=value, band_width=1.0, squeeze=squeeze, expansion=expansion, status=status)


def levels(*items):
    return SupportResistance(levels=list(items))


def factor_names(result):
    return {f.name for f in result.factors}


class TestScoreConfluence:
    """Tests for the confluence score and direction."""

    def test_no_factors(self):
        result = score_confluence(100.0)
        assert result.score == pytest.approx(50.0)
        assert result.direction == Direction.NEUTRAL
        assert result.factors == []

    def test_bullish_confluence(self):
        result = score_confluence(
            100.0,
            rsi_value=25.0,
            levels=levels(make_level(99.0, LevelType.SUPPORT)),
        )
        # 50 + 15 (RSI) + 11.6 (support strength 80)
        assert result.score == pytest.approx(76.6)
        assert result.direction == Direction.LONG
        assert result.bullish_votes == 2
        assert result.bearish_votes == 0

    def test_bearish_confluence(self):
        result = score_confluence(
            100.0,
            rsi_value=75.0,
            levels=levels(make_level(101.0, LevelType.RESISTANCE)),
        )
        assert result.score == pytest.approx(76.6)
        assert result.direction == Direction.SHORT
        assert result.bearish_votes == 2

    def test_tie_is_neutral(self):
        result = score_confluence(
            100.0,
            rsi_value=25.0,
            levels=levels(make_level(101.0, LevelType.RESISTANCE)),
        )
        assert result.bullish_votes == 1
        assert result.bearish_votes == 1
        assert result.score == pytest.approx(53.4)
        assert result.direction == Direction.NEUTRAL

    def test_threshold_gates_direction(self):
        config = AnalysisConfig(confluence_threshold=70)
        result = score_confluence(100.0, rsi_value=25.0, config=config)
        assert result.score == pytest.approx(65.0)
        assert result.direction == Direction.NEUTRAL

    def test_opposing_factor_reduces_score(self):
        result = score_confluence(
            100.0,
            rsi_value=25.0,
            divergences=[make_divergence(DivergenceType.BULLISH, 80)],
            levels=levels(make_level(101.0, LevelType.RESISTANCE)),
        )
        # 50 + 15 + 24 - 11.6
        assert result.score == pytest.approx(77.4)
        assert result.direction == Direction.LONG

    def test_score_clamped(self):
        result = score_confluence(
            100.0,
            rsi_value=25.0,
            divergences=[make_divergence(DivergenceType.BULLISH, 100)],
            bbwp_point=bbwp_point(10),
            levels=levels(make_level(99.0, LevelType.SUPPORT)),
        )
        assert result.score == pytest.approx(100.0)


class TestFactors:
    """Tests for individual factor rules."""

    def test_divergence_weight(self):
        result = score_confluence(100.0, divergences=[make_divergence(DivergenceType.BEARISH, 80)])
        (factor,) = result.factors
        assert factor.name == "classic_bearish_divergence"
        assert factor.weight == pytest.approx(-24.0)

    def test_weak_divergence_ignored(self):
        result = score_confluence(100.0, divergences=[make_divergence(DivergenceType.BULLISH, 40)])
        assert result.factors == []

    def test_bbwp_does_not_vote(self):
        squeeze = score_confluence(100.0, bbwp_point=bbwp_point(10))
        assert squeeze.score == pytest.approx(65.0)
        assert squeeze.direction == Direction.NEUTRAL
        assert squeeze.bullish_votes == 0

        expansion = score_confluence(100.0, bbwp_point=bbwp_point(90))
        assert expansion.score == pytest.approx(40.0)

        normal = score_confluence(100.0, bbwp_point=bbwp_point(50))
        assert normal.factors == []

    def test_golden_pocket(self):
        fibonacci = FibonacciResult(
            swing=Swing(direction=SwingDirection.UP, high=120, low=80, start_index=0, end_index=20),
            levels=[
                FibonacciLevel(
                    ratio=0.618,
                    price=100.5,
                    kind=FibonacciKind.RETRACEMENT,
                    golden_pocket=True,
                    distance=0.5,
                )
            ],
        )
        result = score_confluence(100.0, fibonacci=fibonacci)
        assert factor_names(result) == {"fibonacci_golden_pocket"}
        assert result.score == pytest.approx(65.0)
        assert result.direction == Direction.LONG

        far = score_confluence(95.0, fibonacci=fibonacci)
        assert far.factors == []

    def test_golden_pocket_must_be_within_one_percent(self):
        fibonacci = FibonacciResult(
            swing=Swing(direction=SwingDirection.UP, high=120, low=80, start_index=0, end_index=20),
            levels=[
                FibonacciLevel(
                    ratio=0.618,
                    price=99.0,
                    kind=FibonacciKind.RETRACEMENT,
                    golden_pocket=True,
                    distance=1.0,
                )
            ],
        )
        assert score_confluence(100.0, fibonacci=fibonacci).factors == []
        assert factor_names(score_confluence(99.5, fibonacci=fibonacci)) == {"fibonacci_golden_pocket"}

    def test_level_filters(self):
        result = score_confluence(
            100.0,
            levels=levels(
                make_level(99.0, LevelType.SUPPORT, broken=True),
                make_level(99.5, LevelType.SUPPORT, strength=40),
                make_level(95.0, LevelType.SUPPORT),
            ),
        )
        assert result.factors == []

    def test_pattern_weights(self):
        result = score_confluence(
            100.0,
            patterns=[
                make_pattern(PatternType.HEAD_AND_SHOULDERS, Bias.BEARISH, 80),
                make_pattern(PatternType.TRIANGLE, Bias.NEUTRAL, 90, subtype="symmetrical"),
                make_pattern(PatternType.DOUBLE_BOTTOM, Bias.BULLISH, 50),
            ],
        )
        (factor,) = result.factors
        assert factor.name == "pattern_head_and_shoulders"
        assert factor.weight == pytest.approx(-12.0)
        assert result.score == pytest.approx(62.0)
        assert result.direction == Direction.SHORT
