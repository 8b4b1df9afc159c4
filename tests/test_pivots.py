"""
Tests for pivot detection.
"""

import numpy as np
import pytest

from signal_engine.schemas.analysis import PivotKind
from signal_engine.services.base import InvalidParameterError
from signal_engine.services.indicators import find_peaks_and_valleys, find_pivots
from signal_engine.services.indicators.pivots import merge_pivots

from tests.helpers import zigzag


class TestFindPivots:
    """Tests for strict local extrema."""

    def test_zigzag_anchors_are_pivots(self):
        series = zigzag([(0, 100), (10, 120), (20, 90), (30, 130), (40, 110)])
        peaks, valleys = find_peaks_and_valleys(series, lookback=3)

        assert [p.index for p in peaks] == [10, 30]
        assert [p.value for p in peaks] == [120, 130]
        assert [v.index for v in valleys] == [20]
        assert all(p.kind == PivotKind.PEAK for p in peaks)

    def test_edges_are_never_pivots(self):
        series = [10, 1, 2, 3, 4, 5, 6, 7, 8, 0]
        assert find_pivots(series, PivotKind.PEAK, lookback=3) == []
        assert find_pivots(series, PivotKind.VALLEY, lookback=3) == []

    def test_plateau_is_not_a_pivot(self):
        series = [1, 2, 3, 5, 5, 3, 2, 1]
        assert find_pivots(series, PivotKind.PEAK, lookback=2) == []

    def test_nan_window_skipped(self):
        series = [np.nan, 1, 2, 5, 2, 1, 0, 1, 2]
        peaks = find_pivots(series, PivotKind.PEAK, lookback=3)
        assert peaks == []
        peaks = find_pivots(series, PivotKind.PEAK, lookback=2)
        assert [p.index for p in peaks] == [3]

    def test_offset_shifts_indices(self):
        series = zigzag([(0, 50), (10, 70), (20, 40)])
        peaks = find_pivots(series, PivotKind.PEAK, lookback=3, offset=14)
        assert [p.index for p in peaks] == [24]

    def test_invalid_lookback(self):
        with pytest.raises(InvalidParameterError):
            find_pivots([1, 2, 3], PivotKind.PEAK, lookback=0)

    def test_merge_is_index_ordered(self):
        series = zigzag([(0, 100), (10, 120), (20, 90), (30, 130), (40, 110)])
        peaks, valleys = find_peaks_and_valleys(series)
        merged = merge_pivots(peaks, valleys)
        assert [p.index for p in merged] == [10, 20, 30]
        assert [p.kind for p in merged] == [PivotKind.PEAK, PivotKind.VALLEY, PivotKind.PEAK]
