"""Tests for the trend fitter."""

from __future__ import annotations

import numpy as np
import pytest
from numpy.testing import assert_allclose

from sar_composite.compute.trend import TrendWeighting, fit_trend, fit_trend_batch, parse_weighting
from sar_composite.domain.results import FitStatus
from sar_composite.errors import InvalidParameterError

DAY_MS = 86_400_000


def weighted_line(x: np.ndarray, y: np.ndarray, w: np.ndarray) -> tuple[float, float, float]:
    """Reference WLS via lstsq on sqrt-weighted rows; returns (a, b, r2) for y = a + b*x."""
    sw = np.sqrt(w)
    design = np.column_stack([np.ones_like(x), x]) * sw[:, None]
    (a, b), *_ = np.linalg.lstsq(design, y * sw, rcond=None)
    y_mean = np.sum(w * y) / np.sum(w)
    sse = np.sum(w * (y - a - b * x) ** 2)
    sst = np.sum(w * (y - y_mean) ** 2)
    return float(a), float(b), float(1.0 - sse / sst)


class TestLinearSeries:
    @pytest.mark.parametrize("weighting", ["none", "linear"])
    def test_levels_match_analytic_line(self, make_series, weighting: str) -> None:
        days = np.arange(0, 31, 3, dtype=float)
        slope_per_day, intercept = -0.05, -8.0
        series = make_series(days, slope_per_day * days + intercept)
        start, end = int(series.time_ms[0]), int(series.time_ms[0]) + 30 * DAY_MS

        result = fit_trend(series, start, end, weighting)

        assert result.status is FitStatus.OK
        assert result.level_at_start == pytest.approx(intercept, abs=1e-9)
        assert result.level_at_end == pytest.approx(slope_per_day * 30 + intercept, abs=1e-9)
        assert result.r_squared == pytest.approx(1.0)
        assert result.count == len(days)

    def test_window_bounds_are_inclusive(self, make_series) -> None:
        series = make_series([0, 10, 20, 30], [1.0, 2.0, 3.0, 4.0])
        start = int(series.time_ms[0])
        end = int(series.time_ms[-1])
        assert fit_trend(series, start, end).count == 4
        assert fit_trend(series, start + 1, end - 1).count == 2

    def test_levels_at_bounds_outside_data(self, make_series) -> None:
        # Data only in the middle of the window; the line is still evaluated at the bounds.
        series = make_series([10, 20], [0.0, 1.0])
        start = int(series.time_ms[0]) - 10 * DAY_MS
        end = int(series.time_ms[0]) + 20 * DAY_MS
        result = fit_trend(series, start, end)
        assert result.level_at_start == pytest.approx(-1.0)
        assert result.level_at_end == pytest.approx(2.0)


class TestAgainstReference:
    def test_unweighted_matches_lstsq(self, make_series, rng: np.random.Generator) -> None:
        days = np.sort(rng.uniform(0, 90, size=25))
        y = -12.0 + 0.03 * days + rng.normal(0, 0.5, size=days.size)
        series = make_series(days, y)
        start = int(series.time_ms[0]) - int(days[0] * DAY_MS)
        end = start + 90 * DAY_MS

        result = fit_trend(series, start, end, TrendWeighting.NONE)

        x = (series.time_ms - start) / (end - start)
        a, b, r2 = weighted_line(x, y, np.ones_like(x))
        assert_allclose(result.level_at_start, a, rtol=1e-9)
        assert_allclose(result.level_at_end, a + b, rtol=1e-9)
        assert_allclose(result.r_squared, r2, rtol=1e-9)

    def test_linear_weighting_is_weighted_least_squares(self, make_series, rng: np.random.Generator) -> None:
        days = np.sort(rng.uniform(0, 90, size=25))
        y = -12.0 + 0.03 * days + rng.normal(0, 0.5, size=days.size)
        series = make_series(days, y)
        start = int(series.time_ms[0]) - int(days[0] * DAY_MS)
        end = start + 90 * DAY_MS

        result = fit_trend(series, start, end, "linear")
        unweighted = fit_trend(series, start, end, "none")

        x = (series.time_ms - start) / (end - start)
        a, b, r2 = weighted_line(x, y, x)
        assert_allclose(result.level_at_start, a, rtol=1e-9)
        assert_allclose(result.level_at_end, a + b, rtol=1e-9)
        assert_allclose(result.r_squared, r2, rtol=1e-9)
        assert result.level_at_start != pytest.approx(unweighted.level_at_start)


class TestMasking:
    def test_empty_window_is_no_data(self, make_series) -> None:
        series = make_series([0, 1, 2], [1.0, 2.0, 3.0])
        start = int(series.time_ms[-1]) + DAY_MS
        result = fit_trend(series, start, start + 10 * DAY_MS)
        assert result.status is FitStatus.NO_DATA
        assert result.count == 0
        assert result.level_at_start is None
        assert result.level_at_end is None
        assert result.r_squared is None

    def test_single_observation_is_degenerate(self, make_series) -> None:
        series = make_series([5], [1.0])
        start = int(series.time_ms[0]) - DAY_MS
        result = fit_trend(series, start, start + 10 * DAY_MS)
        assert result.status is FitStatus.DEGENERATE_FIT
        assert result.count == 1
        assert result.level_at_end is None

    def test_linear_weighting_ignores_start_observation(self, make_series) -> None:
        # The observation at the window start has zero weight, leaving one usable point.
        series = make_series([0, 5], [1.0, 2.0])
        start = int(series.time_ms[0])
        assert fit_trend(series, start, start + 10 * DAY_MS, "none").status is FitStatus.OK
        assert fit_trend(series, start, start + 10 * DAY_MS, "linear").status is FitStatus.DEGENERATE_FIT

    def test_invalid_points_are_skipped(self, make_series) -> None:
        days = np.arange(10, dtype=float)
        y = 2.0 * days
        y[4] = 500.0
        valid = np.ones(10, dtype=bool)
        valid[4] = False
        series = make_series(days, y, valid=valid)
        start = int(series.time_ms[0])
        result = fit_trend(series, start, start + 9 * DAY_MS)
        assert result.count == 9
        assert result.level_at_end == pytest.approx(18.0)

    def test_constant_series_has_unit_r_squared(self, make_series) -> None:
        series = make_series([0, 1, 2, 3], [-7.0, -7.0, -7.0, -7.0])
        start = int(series.time_ms[0])
        result = fit_trend(series, start, start + 3 * DAY_MS)
        assert result.r_squared == 1.0
        assert result.level_at_start == pytest.approx(-7.0)

    def test_batch_rows_independent(self) -> None:
        t = np.arange(5, dtype=np.int64) * DAY_MS
        values = np.array([[0.0, 1.0, 2.0, 3.0, 4.0], [9.0, 9.0, 9.0, 9.0, 9.0]])
        valid = np.array([[True] * 5, [False] * 5])
        batch = fit_trend_batch(t, values, valid, 0, 4 * DAY_MS)
        assert batch.result(0).level_at_end == pytest.approx(4.0)
        assert batch.result(1).status is FitStatus.NO_DATA
        bands = batch.bands((2,))
        assert bands["count"].values.tolist() == [5, 0]
        assert bands["level_at_end"].valid.tolist() == [True, False]


class TestValidation:
    def test_unknown_weighting_rejected(self, make_series) -> None:
        series = make_series([0, 1], [0.0, 1.0])
        with pytest.raises(InvalidParameterError) as exc_info:
            fit_trend(series, 0, DAY_MS, "quadratic")
        assert exc_info.value.parameter == "weighting"
        assert "quadratic" in str(exc_info.value)

    def test_empty_window_rejected(self, make_series) -> None:
        series = make_series([0, 1], [0.0, 1.0])
        with pytest.raises(InvalidParameterError):
            fit_trend(series, DAY_MS, DAY_MS)

    def test_parse_weighting_accepts_enum_and_string(self) -> None:
        assert parse_weighting("linear") is TrendWeighting.LINEAR
        assert parse_weighting(TrendWeighting.NONE) is TrendWeighting.NONE
