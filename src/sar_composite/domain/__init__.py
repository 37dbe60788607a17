"""Domain models for backscatter series, terrain and fit results."""

from sar_composite.domain.results import (
    Band,
    FitStatus,
    LegendEntry,
    SeasonModel,
    SpikeFitResult,
    StepFitResult,
    TrendFitResult,
)
from sar_composite.domain.series import (
    Observation,
    ObservationStack,
    PassDirection,
    PixelSeries,
    Region,
)
from sar_composite.domain.terrain import TerrainGrid, TerrainSample

__all__ = [
    "Band",
    "FitStatus",
    "LegendEntry",
    "Observation",
    "ObservationStack",
    "PassDirection",
    "PixelSeries",
    "Region",
    "SeasonModel",
    "SpikeFitResult",
    "StepFitResult",
    "TerrainGrid",
    "TerrainSample",
    "TrendFitResult",
]
