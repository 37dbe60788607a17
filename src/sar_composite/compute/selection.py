"""Terrain-aware observation selection.

A side-looking radar sees slopes facing its look direction foreshortened and
slopes facing away in shadow. Per location we therefore keep the pass that
looks more directly at the surface:

- ascending observations are kept where ``ew_slope > -threshold``
- descending observations are kept where ``ew_slope <= threshold``

At threshold 0 exactly one pass survives everywhere (descending on flat
ground). At a positive threshold only terrain steeper than the threshold
loses a pass. Selection clears validity bits; it never removes acquisitions.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import TYPE_CHECKING

import numpy as np

from sar_composite.compute.terrain import east_west_slope_deg, sample_east_west_slope_deg
from sar_composite.domain.series import PixelSeries
from sar_composite.domain.terrain import TerrainSample
from sar_composite.errors import InvalidParameterError

if TYPE_CHECKING:
    from numpy.typing import NDArray

logger = logging.getLogger(__name__)

DEFAULT_SLOPE_THRESHOLD_DEG = 20.0


class PassMode(str, Enum):
    ASCENDING = "ascending"
    DESCENDING = "descending"
    BEST = "best"
    FILTER_STEEP = "filter_steep"
    COMBINE = "combine"

    @property
    def needs_terrain(self) -> bool:
        return self in (PassMode.BEST, PassMode.FILTER_STEEP)


def terrain_pass_mask(
    ew_slope_deg: NDArray[np.float64],
    ascending: NDArray[np.bool_],
    threshold_deg: float,
) -> NDArray[np.bool_]:
    """Keep-mask shaped (P, T) for P locations and T acquisitions.

    Locations with a non-finite east-west slope keep nothing.
    """
    if not np.isfinite(threshold_deg) or threshold_deg < 0:
        raise InvalidParameterError(
            "threshold_deg", threshold_deg, "threshold_deg must be a finite value >= 0"
        )
    ew = np.asarray(ew_slope_deg, dtype=np.float64)[:, None]
    asc = np.asarray(ascending, dtype=bool)[None, :]
    keep_asc = ew > -threshold_deg
    keep_desc = ew <= threshold_deg
    # NaN compares False on both sides, so unknown terrain masks every pass.
    return np.where(asc, keep_asc, keep_desc)


def pass_selection_mask(
    mode: PassMode | str,
    ascending: NDArray[np.bool_],
    *,
    n_locations: int,
    ew_slope_deg: NDArray[np.float64] | None = None,
    slope_threshold_deg: float = DEFAULT_SLOPE_THRESHOLD_DEG,
) -> NDArray[np.bool_]:
    """Keep-mask shaped (P, T) for one of the pass-selection modes.

    ``ascending``/``descending`` drop the other pass everywhere, ``best`` and
    ``filter_steep`` apply the terrain rule at 0 and ``slope_threshold_deg``
    respectively, ``combine`` keeps all acquisitions.
    """
    try:
        mode = PassMode(mode)
    except ValueError as exc:
        raise InvalidParameterError("pass_mode", mode) from exc

    asc = np.asarray(ascending, dtype=bool)
    if mode is PassMode.COMBINE:
        return np.ones((n_locations, asc.size), dtype=bool)
    if mode is PassMode.ASCENDING:
        return np.broadcast_to(asc, (n_locations, asc.size)).copy()
    if mode is PassMode.DESCENDING:
        return np.broadcast_to(~asc, (n_locations, asc.size)).copy()

    if ew_slope_deg is None:
        raise InvalidParameterError(
            "pass_mode", mode.value, f"pass_mode {mode.value!r} requires terrain input"
        )
    ew = np.asarray(ew_slope_deg, dtype=np.float64).reshape(-1)
    if ew.size != n_locations:
        raise ValueError(f"ew_slope_deg has {ew.size} locations, expected {n_locations}")
    threshold = 0.0 if mode is PassMode.BEST else float(slope_threshold_deg)
    return terrain_pass_mask(ew, asc, threshold)


def ew_slope_for_grid(slope_rad: NDArray[np.float64], aspect_rad: NDArray[np.float64]) -> NDArray[np.float64]:
    """Flattened (H*W,) east-west slope for a terrain grid."""
    ew = east_west_slope_deg(slope_rad, aspect_rad).reshape(-1)
    n_unknown = int(np.sum(~np.isfinite(ew)))
    if n_unknown:
        logger.debug(f"{n_unknown} locations have no finite terrain; all passes masked there")
    return ew


def select_pixel_series(
    series: PixelSeries,
    sample: TerrainSample,
    threshold_deg: float = 0.0,
) -> PixelSeries:
    """Apply the terrain rule to one location's series."""
    ew = np.array([sample_east_west_slope_deg(sample)])
    keep = terrain_pass_mask(ew, series.ascending, threshold_deg)[0]
    return series.with_valid(keep)
