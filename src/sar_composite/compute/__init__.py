"""Per-location fitting algorithms.

Every ``*_batch`` function takes location-major arrays shaped (P, T) and
computes all P locations independently; the unsuffixed functions are the
single-location forms over a PixelSeries.
"""

from sar_composite.compute.season import (
    SeasonModelBatch,
    fit_season,
    fit_season_batch,
    remove_season,
    remove_season_batch,
)
from sar_composite.compute.selection import (
    PassMode,
    pass_selection_mask,
    select_pixel_series,
    terrain_pass_mask,
)
from sar_composite.compute.spike import SpikeFitBatch, fit_spike, fit_spike_batch, spike_legend
from sar_composite.compute.step import StepFitBatch, fit_step, fit_step_batch
from sar_composite.compute.terrain import (
    east_west_slope_deg,
    slope_aspect_from_elevation,
    terrain_from_elevation,
)
from sar_composite.compute.trend import TrendFitBatch, TrendWeighting, fit_trend, fit_trend_batch

__all__ = [
    "PassMode",
    "SeasonModelBatch",
    "SpikeFitBatch",
    "StepFitBatch",
    "TrendFitBatch",
    "TrendWeighting",
    "east_west_slope_deg",
    "fit_season",
    "fit_season_batch",
    "fit_spike",
    "fit_spike_batch",
    "fit_step",
    "fit_step_batch",
    "fit_trend",
    "fit_trend_batch",
    "pass_selection_mask",
    "remove_season",
    "remove_season_batch",
    "select_pixel_series",
    "slope_aspect_from_elevation",
    "spike_legend",
    "terrain_from_elevation",
    "terrain_pass_mask",
]
