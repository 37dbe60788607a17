"""Shared fixtures: synthetic backscatter series and rasters."""

from __future__ import annotations

from collections.abc import Callable
from datetime import date

import numpy as np
import pytest

from sar_composite.domain.series import ObservationStack, PixelSeries
from sar_composite.domain.terrain import TerrainGrid
from sar_composite.params import date_to_ms

DAY_MS = 86_400_000
T0_MS = date_to_ms(date(2021, 1, 1))


@pytest.fixture
def rng() -> np.random.Generator:
    """Seeded random generator for reproducibility."""
    return np.random.default_rng(42)


@pytest.fixture
def make_series() -> Callable[..., PixelSeries]:
    """Factory for PixelSeries sampled at whole days after 2021-01-01."""

    def _make(
        days: list[float] | np.ndarray,
        values: list[float] | np.ndarray,
        *,
        valid: list[bool] | np.ndarray | None = None,
        ascending: list[bool] | np.ndarray | None = None,
    ) -> PixelSeries:
        time_ms = T0_MS + np.round(np.asarray(days, dtype=np.float64) * DAY_MS).astype(np.int64)
        return PixelSeries.from_arrays(time_ms, values, valid=valid, ascending=ascending)

    return _make


@pytest.fixture
def step_stack() -> ObservationStack:
    """3x4 raster, 40 acquisitions every 3 days from 2021-01-01, alternating passes.

    Row 0 steps from -12 dB to -6 dB at day 75 (acquisition 25), row 1 is a
    constant -10 dB, row 2 has every value masked.
    """
    n_time, height, width = 40, 3, 4
    time_ms = T0_MS + np.arange(n_time, dtype=np.int64) * 3 * DAY_MS
    ascending = np.arange(n_time) % 2 == 0
    values = np.full((n_time, height, width), -10.0)
    values[:25, 0, :] = -12.0
    values[25:, 0, :] = -6.0
    values[:, 2, :] = np.nan
    return ObservationStack.from_arrays(
        time_ms,
        values,
        ascending=ascending,
        x=np.arange(width, dtype=np.float64) * 10.0,
        y=np.arange(height, dtype=np.float64) * 10.0,
    )


@pytest.fixture
def noisy_stack(rng: np.random.Generator) -> ObservationStack:
    """6x7 raster of noisy series with random gaps and per-row level shifts."""
    n_time, height, width = 60, 6, 7
    time_ms = T0_MS + np.cumsum(rng.integers(2, 7, size=n_time)).astype(np.int64) * DAY_MS
    values = -11.0 + rng.normal(0.0, 1.0, size=(n_time, height, width))
    shift_at = rng.integers(10, 50, size=(height, width))
    for r in range(height):
        for c in range(width):
            values[shift_at[r, c]:, r, c] += rng.uniform(-4.0, 4.0)
    valid = rng.random((n_time, height, width)) > 0.15
    return ObservationStack.from_arrays(
        time_ms,
        values,
        ascending=rng.random(n_time) > 0.5,
        valid=valid,
        x=np.arange(width, dtype=np.float64) * 20.0,
        y=np.arange(height, dtype=np.float64) * 20.0,
    )


@pytest.fixture
def tilted_terrain() -> TerrainGrid:
    """3x4 terrain: column 0 faces east at 30 deg, column 1 faces west at 30 deg, rest flat."""
    slope = np.zeros((3, 4))
    aspect = np.zeros((3, 4))
    slope[:, 0] = np.radians(30.0)
    aspect[:, 0] = np.pi / 2
    slope[:, 1] = np.radians(30.0)
    aspect[:, 1] = 3 * np.pi / 2
    return TerrainGrid.from_arrays(
        slope,
        aspect,
        x=np.arange(4, dtype=np.float64) * 10.0,
        y=np.arange(3, dtype=np.float64) * 10.0,
    )
