"""Tests for the sliding-window normal estimation sweep."""
import math

import numpy as np
import pytest

from break_index import build_break_index
from conftest import angle_between_deg, make_plane_trace
from normal_estimation import NormalEstimationEngine
from ordered_series import build_ordered_series
from orientation import trend_plunge
from segment_scorer import SegmentScorer
from structure_config import StructureNormalConfig
from structure_errors import (
    BadConfigurationError,
    DegenerateWindowError,
    EstimationCancelled,
    NoValidWindowError,
)


class TestSyntheticPlane:
    """200 noisy points on a plane of known orientation."""

    def test_recovers_orientation(self, plane_trace, small_config):
        points, true_normal = plane_trace
        series = build_ordered_series(points, min_size=small_config.min_size)
        est = NormalEstimationEngine(small_config).estimate(series)

        assert est.estimated.all()
        true_trend, true_plunge = trend_plunge(-true_normal)
        interior = slice(20, 180)
        for normal, trend, plunge in zip(
            est.normals[interior], est.trend[interior], est.plunge[interior],
        ):
            assert angle_between_deg(normal, true_normal) < 3.0
            assert abs(math.degrees(plunge - true_plunge)) < 3.0
            d_trend = (trend - true_trend + math.pi) % (2 * math.pi) - math.pi
            assert abs(math.degrees(d_trend)) < 3.0

    def test_winning_windows_are_valid(self, plane_trace, small_config):
        series = build_ordered_series(plane_trace[0], min_size=small_config.min_size)
        est = NormalEstimationEngine(small_config).estimate(series)
        lengths = est.end - est.start
        assert np.all(lengths >= small_config.min_size)
        assert np.all(lengths <= small_config.max_size)
        idx = np.arange(len(series))
        assert np.all((est.start <= idx) & (idx < est.end))
        np.testing.assert_array_equal(est.segment_id, est.end * len(series) + est.start)

    def test_reruns_are_bit_identical(self, plane_trace, small_config):
        series = build_ordered_series(plane_trace[0], min_size=small_config.min_size)
        a = NormalEstimationEngine(small_config).estimate(series)
        b = NormalEstimationEngine(small_config).estimate(series)
        np.testing.assert_array_equal(a.log_weight, b.log_weight)
        np.testing.assert_array_equal(a.normals, b.normals)
        np.testing.assert_array_equal(a.trend, b.trend)
        np.testing.assert_array_equal(a.plunge, b.plunge)
        np.testing.assert_array_equal(a.segment_id, b.segment_id)


class TestBruteForceMaximum:

    def test_best_score_is_max_over_containing_windows(self):
        points, _ = make_plane_trace(n=80, seed=9)
        config = StructureNormalConfig(min_size=10, max_size=50)
        series = build_ordered_series(points, min_size=config.min_size)
        breaks = np.zeros(len(series), dtype=bool)
        breaks[45] = True
        est = NormalEstimationEngine(config).estimate(series, breaks)

        scorer = SegmentScorer(series, breaks, config)
        best = np.full(len(series), -np.inf)
        n = len(series)
        for lo in range(n):
            for hi in range(lo + 1, n + 1):
                try:
                    w = scorer.score(lo, hi)
                except DegenerateWindowError:
                    continue
                if w is None:
                    continue
                best[lo:hi] = np.maximum(best[lo:hi], w.log_score)

        np.testing.assert_array_equal(est.log_weight, best)


class TestBreaks:

    def test_no_winner_spans_break(self, plane_trace, small_config):
        series = build_ordered_series(plane_trace[0], min_size=small_config.min_size)
        breaks = build_break_index(series, series.positions[[100]])
        assert np.flatnonzero(breaks).tolist() == [100]

        est = NormalEstimationEngine(small_config).estimate(series, breaks)
        mask = est.estimated
        assert not mask[100]
        assert not np.any(mask & (est.start <= 100) & (est.end > 100))
        # nothing before the break is fitted together with anything after it
        left = mask & (np.arange(len(series)) < 100)
        assert np.all(est.end[left] <= 100)
        right = mask & (np.arange(len(series)) > 100)
        assert np.all(est.start[right] > 100)

    def test_breaks_too_dense(self, plane_trace, small_config):
        series = build_ordered_series(plane_trace[0], min_size=small_config.min_size)
        breaks = np.zeros(len(series), dtype=bool)
        breaks[::10] = True
        with pytest.raises(NoValidWindowError):
            NormalEstimationEngine(small_config).estimate(series, breaks)


class TestCancellationAndProgress:

    def test_cancel_after_first_step(self, plane_trace, small_config):
        series = build_ordered_series(plane_trace[0], min_size=small_config.min_size)
        calls = []

        def should_cancel():
            calls.append(1)
            return True

        engine = NormalEstimationEngine(small_config, should_cancel=should_cancel)
        with pytest.raises(EstimationCancelled):
            engine.estimate(series)
        assert len(calls) == 1

    def test_progress_reaches_one(self, plane_trace, small_config):
        series = build_ordered_series(plane_trace[0], min_size=small_config.min_size)
        seen = []
        NormalEstimationEngine(small_config, progress=seen.append).estimate(series)
        assert seen[-1] == pytest.approx(1.0)
        assert all(a < b for a, b in zip(seen, seen[1:]))


class TestConfiguration:

    def test_max_below_min_rejected(self):
        with pytest.raises(BadConfigurationError):
            NormalEstimationEngine(StructureNormalConfig(min_size=100, max_size=60))

    def test_too_small_windows_rejected(self):
        with pytest.raises(BadConfigurationError):
            NormalEstimationEngine(StructureNormalConfig(min_size=3, max_size=60))
        with pytest.raises(BadConfigurationError):
            NormalEstimationEngine(StructureNormalConfig(min_size=10, max_size=40))

    def test_too_few_degrees_of_freedom(self):
        with pytest.raises(BadConfigurationError):
            NormalEstimationEngine(StructureNormalConfig(min_size=48, max_size=50))
