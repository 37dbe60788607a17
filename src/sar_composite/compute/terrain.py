"""Terrain slope model.

Derives slope/aspect from an elevation raster and the east-west-facing slope
component that decides which satellite pass looks at a surface more directly.

Conventions
- Slope: radians, range [0, pi/2]
- Aspect: radians, clockwise from north toward the downslope direction
  (pi/2 = east-facing). Flat cells get aspect 0.
- Rows are assumed north-up (row index increases southward).
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import numpy as np

from sar_composite.domain.terrain import TerrainGrid, TerrainSample

if TYPE_CHECKING:
    from numpy.typing import NDArray


def slope_aspect_from_elevation(
    elevation: NDArray[np.float64],
    *,
    x_spacing: float,
    y_spacing: float,
) -> tuple[NDArray[np.float64], NDArray[np.float64]]:
    """Compute slope and aspect from an elevation raster.

    Args:
        elevation: 2D array of elevations in metres, NaN for nodata
        x_spacing: Column spacing in metres (positive)
        y_spacing: Row spacing in metres (positive)

    Returns:
        Tuple of (slope_rad, aspect_rad); NaN where the elevation
        neighbourhood is not finite.

    Raises:
        ValueError: If the raster is not 2D or a spacing is not positive.
    """
    z = np.asarray(elevation, dtype=np.float64)
    if z.ndim != 2:
        raise ValueError("elevation must be a 2D array (height, width)")
    if not (np.isfinite(x_spacing) and x_spacing > 0):
        raise ValueError(f"x_spacing must be a positive finite number, got {x_spacing}")
    if not (np.isfinite(y_spacing) and y_spacing > 0):
        raise ValueError(f"y_spacing must be a positive finite number, got {y_spacing}")

    if min(z.shape) < 2:
        # np.gradient needs two samples per axis; a single row/column is flat along it.
        dz_di = np.gradient(z, axis=0) if z.shape[0] >= 2 else np.zeros_like(z)
        dz_dj = np.gradient(z, axis=1) if z.shape[1] >= 2 else np.zeros_like(z)
    else:
        dz_di, dz_dj = np.gradient(z)

    dz_dx = dz_dj / x_spacing
    dz_dy_north = -dz_di / y_spacing

    slope = np.arctan(np.hypot(dz_dx, dz_dy_north))
    # Azimuth of steepest descent (-grad z), clockwise from north.
    aspect = np.mod(np.arctan2(-dz_dx, -dz_dy_north), 2.0 * np.pi)

    finite = np.isfinite(slope)
    aspect = np.where(finite & (slope <= 1e-12), 0.0, aspect)
    aspect = np.where(finite, aspect, np.nan)
    return slope, aspect


def terrain_from_elevation(
    elevation: NDArray[np.float64],
    *,
    x: Any,
    y: Any,
) -> TerrainGrid:
    """Build a TerrainGrid from elevation on a regular grid with metric coordinates."""
    x_arr = np.asarray(x, dtype=np.float64)
    y_arr = np.asarray(y, dtype=np.float64)
    x_spacing = float(np.abs(np.median(np.diff(x_arr)))) if x_arr.size > 1 else 1.0
    y_spacing = float(np.abs(np.median(np.diff(y_arr)))) if y_arr.size > 1 else 1.0
    slope, aspect = slope_aspect_from_elevation(elevation, x_spacing=x_spacing, y_spacing=y_spacing)
    return TerrainGrid(slope_rad=slope, aspect_rad=aspect, x=x_arr.copy(), y=y_arr.copy())


def east_west_slope_deg(slope_rad: Any, aspect_rad: Any) -> NDArray[np.float64]:
    """Signed east-west slope component in degrees, positive for east-facing surfaces."""
    slope = np.asarray(slope_rad, dtype=np.float64)
    aspect = np.asarray(aspect_rad, dtype=np.float64)
    return np.degrees(np.arctan(np.tan(slope) * np.sin(aspect)))


def sample_east_west_slope_deg(sample: TerrainSample) -> float:
    return float(east_west_slope_deg(sample.slope_rad, sample.aspect_rad))
