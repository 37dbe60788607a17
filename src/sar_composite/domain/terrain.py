"""Static terrain inputs for pass selection."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import numpy as np

from sar_composite.domain.series import Region

if TYPE_CHECKING:
    from numpy.typing import NDArray


@dataclass(frozen=True)
class TerrainSample:
    """Slope and aspect at one location, in radians.

    Aspect is measured clockwise from north toward the downslope direction,
    so an east-facing surface has aspect pi/2.
    """

    slope_rad: float
    aspect_rad: float

    @property
    def is_finite(self) -> bool:
        return bool(np.isfinite(self.slope_rad) and np.isfinite(self.aspect_rad))


@dataclass(frozen=True)
class TerrainGrid:
    """Per-location slope/aspect rasters on the same grid as the observations."""

    slope_rad: NDArray[np.float64]
    aspect_rad: NDArray[np.float64]
    x: NDArray[np.float64]
    y: NDArray[np.float64]

    def __post_init__(self) -> None:
        if self.slope_rad.ndim != 2:
            raise ValueError(f"slope_rad must be 2-D, got shape {self.slope_rad.shape}")
        if self.aspect_rad.shape != self.slope_rad.shape:
            raise ValueError("aspect_rad must have the same shape as slope_rad")
        height, width = self.slope_rad.shape
        if self.x.shape != (width,) or self.y.shape != (height,):
            raise ValueError("x and y coordinates must match the grid width and height")
        for arr in (self.slope_rad, self.aspect_rad, self.x, self.y):
            arr.flags.writeable = False

    @classmethod
    def from_arrays(
        cls,
        slope_rad: Any,
        aspect_rad: Any,
        *,
        x: Any | None = None,
        y: Any | None = None,
    ) -> TerrainGrid:
        slope = np.array(slope_rad, dtype=np.float64)
        height, width = slope.shape
        return cls(
            slope_rad=slope,
            aspect_rad=np.array(aspect_rad, dtype=np.float64),
            x=np.arange(width, dtype=np.float64) if x is None else np.array(x, dtype=np.float64),
            y=np.arange(height, dtype=np.float64) if y is None else np.array(y, dtype=np.float64),
        )

    @property
    def shape(self) -> tuple[int, int]:
        return self.slope_rad.shape  # type: ignore[return-value]

    def sample(self, row: int, col: int) -> TerrainSample:
        return TerrainSample(
            slope_rad=float(self.slope_rad[row, col]),
            aspect_rad=float(self.aspect_rad[row, col]),
        )

    def subset(self, region: Region | None) -> TerrainGrid:
        if region is None:
            return self
        rows, cols = region.indices(self.x, self.y)
        return TerrainGrid(
            slope_rad=self.slope_rad[rows][:, cols],
            aspect_rad=self.aspect_rad[rows][:, cols],
            x=self.x[cols],
            y=self.y[rows],
        )
