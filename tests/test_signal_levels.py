"""
Tests for entry / stop / target selection.
"""

import numpy as np
import pytest

from signal_engine.schemas.analysis import Bias, LevelType, PatternType, SupportResistance
from signal_engine.schemas.signal import Direction
from signal_engine.services.base import InvalidLevelsError, InvalidParameterError
from signal_engine.services.strategy import calculate_signal_levels, ensure_level_order

from tests.helpers import make_level, make_pattern


def levels(*items):
    return SupportResistance(levels=list(items))


class TestCalculateSignalLevels:
    """Tests for signal level calculation."""

    def test_default_levels(self):
        result = calculate_signal_levels(Direction.LONG, 100.0)
        assert result.entry == pytest.approx(100.0)
        assert result.stop_loss == pytest.approx(98.0)
        assert result.take_profit == pytest.approx(104.0)
        assert result.risk_reward == pytest.approx(2.0)
        assert result.stop_source == "default"
        assert result.target_source == "default"

    def test_default_short(self):
        result = calculate_signal_levels(Direction.SHORT, 100.0)
        assert result.stop_loss == pytest.approx(102.0)
        assert result.take_profit == pytest.approx(96.0)

    def test_support_resistance_levels(self):
        result = calculate_signal_levels(
            Direction.LONG,
            100.0,
            support_resistance=levels(
                make_level(98.0, LevelType.SUPPORT),
                make_level(110.0, LevelType.RESISTANCE),
            ),
        )
        assert result.stop_loss == pytest.approx(97.804)
        assert result.stop_source == "support_resistance"
        assert result.take_profit == pytest.approx(110.0)
        assert result.target_source == "support_resistance"
        assert result.risk_reward == pytest.approx(10 / 2.196, abs=1e-4)

    def test_short_levels(self):
        result = calculate_signal_levels(
            Direction.SHORT,
            100.0,
            support_resistance=levels(
                make_level(102.0, LevelType.RESISTANCE),
                make_level(95.0, LevelType.SUPPORT),
            ),
        )
        assert result.stop_loss == pytest.approx(102.204)
        assert result.take_profit == pytest.approx(95.0)
        assert result.stop_loss > result.entry > result.take_profit

    def test_atr_stop(self):
        result = calculate_signal_levels(Direction.LONG, 100.0, atr_value=1.0)
        assert result.stop_loss == pytest.approx(98.0)
        assert result.stop_source == "atr"

    def test_priority_prefers_support(self):
        result = calculate_signal_levels(
            Direction.LONG,
            100.0,
            support_resistance=levels(make_level(98.0, LevelType.SUPPORT)),
            atr_value=1.0,
        )
        assert result.stop_source == "support_resistance"

    def test_stop_distance_bounds(self):
        far = calculate_signal_levels(
            Direction.LONG, 100.0, support_resistance=levels(make_level(90.0, LevelType.SUPPORT))
        )
        assert far.stop_source == "default"

        close = calculate_signal_levels(
            Direction.LONG, 100.0, support_resistance=levels(make_level(99.9, LevelType.SUPPORT))
        )
        assert close.stop_source == "default"

    def test_broken_level_ignored(self):
        result = calculate_signal_levels(
            Direction.LONG,
            100.0,
            support_resistance=levels(make_level(98.0, LevelType.SUPPORT, broken=True)),
        )
        assert result.stop_source == "default"

    def test_pattern_stop_and_target(self):
        pattern = make_pattern(
            PatternType.DOUBLE_BOTTOM,
            Bias.BULLISH,
            setup={"entry": 100.0, "stop_loss": 98.0, "take_profit": 108.0},
        )
        result = calculate_signal_levels(Direction.LONG, 100.0, patterns=[pattern])
        assert result.stop_loss == pytest.approx(97.706)
        assert result.stop_source == "pattern"
        assert result.take_profit == pytest.approx(108.0)
        assert result.target_source == "pattern"

    def test_opposing_pattern_ignored(self):
        pattern = make_pattern(
            PatternType.DOUBLE_TOP,
            Bias.BEARISH,
            setup={"entry": 100.0, "stop_loss": 102.0, "take_profit": 90.0},
        )
        result = calculate_signal_levels(Direction.LONG, 100.0, patterns=[pattern])
        assert result.stop_source == "default"
        assert result.target_source == "default"

    def test_min_risk_reward(self):
        result = calculate_signal_levels(
            Direction.LONG,
            100.0,
            support_resistance=levels(make_level(105.0, LevelType.RESISTANCE)),
            min_risk_reward=3.0,
        )
        assert result.take_profit == pytest.approx(106.0)
        assert result.risk_reward == pytest.approx(3.0)

    @pytest.mark.parametrize("direction", [Direction.LONG, Direction.SHORT])
    @pytest.mark.parametrize("min_rr", [2.0, 2.5, 3.0])
    def test_rounded_prices_meet_min_risk_reward(self, direction, min_rr):
        rng = np.random.default_rng(7)
        for price in 10 ** rng.uniform(-2, 5, 2000):
            result = calculate_signal_levels(direction, float(price), min_risk_reward=min_rr)
            reward = abs(result.take_profit - result.entry)
            risk = abs(result.entry - result.stop_loss)
            assert reward / risk >= min_rr, price
            assert result.risk_reward >= min_rr

    def test_target_widened_after_rounding(self):
        result = calculate_signal_levels(Direction.LONG, 50000.123)
        assert (result.take_profit - result.entry) / (result.entry - result.stop_loss) >= 2.0
        assert result.take_profit == pytest.approx(52000.12792, abs=1e-7)

    def test_neutral_direction(self):
        with pytest.raises(InvalidParameterError):
            calculate_signal_levels(Direction.NEUTRAL, 100.0)

    def test_non_positive_price(self):
        with pytest.raises(InvalidParameterError):
            calculate_signal_levels(Direction.LONG, 0.0)


class TestEnsureLevelOrder:
    def test_valid(self):
        ensure_level_order(Direction.LONG, 100, 98, 104)
        ensure_level_order(Direction.SHORT, 100, 102, 96)

    def test_long_stop_above_entry(self):
        with pytest.raises(InvalidLevelsError):
            ensure_level_order(Direction.LONG, 100, 101, 104)

    def test_short_target_above_entry(self):
        with pytest.raises(InvalidLevelsError):
            ensure_level_order(Direction.SHORT, 100, 102, 101)

    def test_neutral(self):
        with pytest.raises(InvalidParameterError):
            ensure_level_order(Direction.NEUTRAL, 100, 98, 104)
