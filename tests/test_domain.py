"""Tests for series, terrain and result domain models."""

from __future__ import annotations

import numpy as np
import pytest
from numpy.testing import assert_array_equal

from sar_composite.domain.results import Band, FitStatus, LegendEntry, StepFitResult
from sar_composite.domain.series import (
    Observation,
    ObservationStack,
    PassDirection,
    PixelSeries,
    Region,
)
from sar_composite.domain.terrain import TerrainGrid, TerrainSample


class TestPixelSeries:
    def test_nan_values_are_invalid(self) -> None:
        series = PixelSeries.from_arrays([1, 2, 3], [-10.0, np.nan, -12.0], valid=[True, True, False])
        assert_array_equal(series.valid, [True, False, False])
        assert series.n_valid == 1
        assert np.isnan(series.value[2])

    def test_times_must_increase(self) -> None:
        with pytest.raises(ValueError, match="strictly increasing"):
            PixelSeries.from_arrays([1, 1, 2], [0.0, 0.0, 0.0])

    def test_dtype_checked(self) -> None:
        with pytest.raises(ValueError, match="int64"):
            PixelSeries(
                time_ms=np.array([1.0, 2.0]),
                value=np.zeros(2),
                valid=np.ones(2, dtype=bool),
                ascending=np.zeros(2, dtype=bool),
            )

    def test_length_mismatch(self) -> None:
        with pytest.raises(ValueError, match="length"):
            PixelSeries.from_arrays([1, 2, 3], [0.0, 0.0])

    def test_arrays_are_read_only(self) -> None:
        series = PixelSeries.from_arrays([1, 2], [0.0, 1.0])
        with pytest.raises(ValueError):
            series.value[0] = 5.0

    def test_window_is_half_open(self) -> None:
        series = PixelSeries.from_arrays([10, 20, 30, 40], [1.0, 2.0, 3.0, 4.0])
        assert series.window(20, 40).time_ms.tolist() == [20, 30]

    def test_with_valid_only_narrows(self) -> None:
        series = PixelSeries.from_arrays([1, 2, 3], [1.0, np.nan, 3.0])
        narrowed = series.with_valid(np.array([False, True, True]))
        assert_array_equal(narrowed.valid, [False, False, True])
        assert np.isnan(narrowed.value[0])

    def test_observations_round_trip(self) -> None:
        obs = [
            Observation(1_000, -11.0, PassDirection.ASCENDING),
            Observation(2_000, -12.0, PassDirection.DESCENDING, valid=False),
        ]
        series = PixelSeries.from_observations(obs)
        assert_array_equal(series.ascending, [True, False])
        back = series.observations()
        assert back[0] == obs[0]
        assert back[1].valid is False
        assert back[1].pass_direction is PassDirection.DESCENDING


def test_pass_direction_parse() -> None:
    assert PassDirection.parse(" ascending ") is PassDirection.ASCENDING
    assert PassDirection.parse(PassDirection.DESCENDING) is PassDirection.DESCENDING
    with pytest.raises(ValueError, match="Unknown pass direction"):
        PassDirection.parse("sideways")


class TestRegion:
    def test_inverted_bounds_rejected(self) -> None:
        with pytest.raises(ValueError, match="inverted"):
            Region(10.0, 0.0, 0.0, 5.0)

    def test_inclusive_indices(self) -> None:
        rows, cols = Region(10.0, 0.0, 20.0, 0.0).indices(np.array([0.0, 10.0, 20.0, 30.0]), np.array([0.0, 10.0]))
        assert rows.tolist() == [0]
        assert cols.tolist() == [1, 2]


class TestObservationStack:
    def test_rows_are_location_major(self, step_stack: ObservationStack) -> None:
        values, valid = step_stack.rows()
        assert values.shape == (12, 40)
        assert_array_equal(values[4 * 1 + 2], step_stack.pixel(1, 2).value)
        assert not valid[8:].any()

    def test_shape_properties(self, step_stack: ObservationStack) -> None:
        assert step_stack.shape == (3, 4)
        assert step_stack.n_times == 40
        assert step_stack.n_locations == 12

    def test_window_and_subset(self, step_stack: ObservationStack) -> None:
        t = step_stack.time_ms
        sub = step_stack.window(int(t[0]), int(t[3])).subset(Region(0.0, 0.0, 0.0, 10.0))
        assert sub.values.shape == (3, 2, 1)
        assert_array_equal(sub.y, [0.0, 10.0])

    def test_values_must_be_3d(self) -> None:
        with pytest.raises(ValueError, match="time, y, x"):
            ObservationStack.from_arrays([1, 2], np.zeros((2, 3)))

    def test_coordinates_must_match_grid(self) -> None:
        with pytest.raises(ValueError, match="coordinates"):
            ObservationStack.from_arrays([1], np.zeros((1, 2, 2)), x=[0.0, 1.0, 2.0])


class TestTerrain:
    def test_sample(self, tilted_terrain: TerrainGrid) -> None:
        sample = tilted_terrain.sample(0, 1)
        assert sample == TerrainSample(np.radians(30.0), 3 * np.pi / 2)
        assert sample.is_finite
        assert not TerrainSample(np.nan, 0.0).is_finite

    def test_shapes_must_agree(self) -> None:
        with pytest.raises(ValueError, match="aspect_rad"):
            TerrainGrid.from_arrays(np.zeros((2, 2)), np.zeros((2, 3)))


class TestResults:
    def test_fit_status_validity(self) -> None:
        assert FitStatus.OK.valid
        assert not FitStatus.DEGENERATE_FIT.valid

    def test_step_size(self) -> None:
        ok = StepFitResult(FitStatus.OK, 5, -12.0, -6.0, 1.0, 3, 4, 7, 4)
        masked = StepFitResult(FitStatus.NO_DATA, None, None, None, None, 0, 0, 0, 0)
        assert ok.step_size == 6.0
        assert masked.step_size is None
        assert not masked.valid

    def test_masked_band_fill_values(self) -> None:
        valid = np.array([True, False])
        floats = Band.masked("level", np.array([1.5, 2.5]), valid)
        ints = Band.masked("count", np.array([3, 4], dtype=np.int64), valid)
        assert np.isnan(floats.values[1])
        assert ints.values.tolist() == [3, 0]
        assert ints.values.dtype == np.int64
        assert floats.n_valid == 1

    def test_band_shape_mismatch(self) -> None:
        with pytest.raises(ValueError, match="shape"):
            Band("x", np.zeros(2), np.ones(3, dtype=bool))

    def test_legend_entry(self) -> None:
        entry = LegendEntry(timestamp_ms=1_609_459_200_000, color_name="red", text_color="white")
        assert entry.label == "2021-01-01"
        assert entry.to_dict()["color_name"] == "red"


class TestValidMeansFinite:
    def test_pixel_series_rejects_valid_nan(self) -> None:
        with pytest.raises(ValueError, match="marked valid but are not finite"):
            PixelSeries(
                time_ms=np.arange(4, dtype=np.int64) * 86_400_000,
                value=np.array([-10.0, np.nan, -10.0, -3.0]),
                valid=np.ones(4, dtype=bool),
                ascending=np.zeros(4, dtype=bool),
            )

    def test_pixel_series_accepts_masked_nan(self) -> None:
        series = PixelSeries(
            time_ms=np.arange(2, dtype=np.int64),
            value=np.array([np.nan, -10.0]),
            valid=np.array([False, True]),
            ascending=np.zeros(2, dtype=bool),
        )
        assert series.n_valid == 1

    def test_stack_rejects_valid_infinity(self) -> None:
        values = np.full((2, 1, 1), -10.0)
        values[1, 0, 0] = np.inf
        with pytest.raises(ValueError, match="not finite"):
            ObservationStack(
                time_ms=np.array([0, 1], dtype=np.int64),
                ascending=np.zeros(2, dtype=bool),
                values=values,
                valid=np.ones((2, 1, 1), dtype=bool),
                x=np.zeros(1),
                y=np.zeros(1),
            )

    def test_empty_stack_rows(self) -> None:
        stack = ObservationStack.from_arrays(np.zeros(0, dtype=np.int64), np.zeros((0, 2, 3)))
        values, valid = stack.rows()
        assert values.shape == (6, 0)
        assert valid.shape == (6, 0)
