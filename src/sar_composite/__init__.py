"""sar-composite: per-pixel change composites from SAR backscatter time series.

Three per-location analyses over a monitoring window, each producing named
raster bands and an RGB triple for display:

- step: best single-breakpoint step function (levels before/after, R²)
- trend: straight-line fit (levels at window start/end, R²)
- spike: strongest value vs. window median, encoded as an HSV colour

Pass selection by terrain and annual-season removal are optional
preprocessing steps.
"""

from sar_composite.compute import (
    PassMode,
    TrendWeighting,
    fit_season,
    fit_spike,
    fit_step,
    fit_trend,
    remove_season,
    select_pixel_series,
    spike_legend,
)
from sar_composite.domain import (
    Band,
    FitStatus,
    Observation,
    ObservationStack,
    PassDirection,
    PixelSeries,
    Region,
    TerrainGrid,
    TerrainSample,
)
from sar_composite.engine import CancellationToken, CompositeResult, run_composite
from sar_composite.errors import CompositeCancelledError, InvalidParameterError
from sar_composite.params import Algorithm, CompositeParameters, load_parameters

__version__ = "0.3.0"

__all__ = [
    "Algorithm",
    "Band",
    "CancellationToken",
    "CompositeCancelledError",
    "CompositeParameters",
    "CompositeResult",
    "FitStatus",
    "InvalidParameterError",
    "Observation",
    "ObservationStack",
    "PassDirection",
    "PassMode",
    "PixelSeries",
    "Region",
    "TerrainGrid",
    "TerrainSample",
    "TrendWeighting",
    "__version__",
    "fit_season",
    "fit_spike",
    "fit_step",
    "fit_trend",
    "load_parameters",
    "remove_season",
    "run_composite",
    "select_pixel_series",
    "spike_legend",
]
