"""Display stretch for the rendering sink.

The three RGB bands of a step or trend composite are two backscatter levels
(dB) and an R² value; spike composites are already colours in [0, 1].
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

import matplotlib.image as mpimg
import numpy as np

from sar_composite.errors import InvalidParameterError

if TYPE_CHECKING:
    from numpy.typing import NDArray

    from sar_composite.engine import CompositeResult

DISPLAY_RANGES: dict[str, tuple[tuple[float, float, float], tuple[float, float, float]]] = {
    "VV": ((-20.0, -20.0, 0.0), (0.0, 0.0, 1.0)),
    "VH": ((-30.0, -30.0, 0.0), (0.0, 0.0, 1.0)),
}
SPIKE_RANGE = ((0.0, 0.0, 0.0), (1.0, 1.0, 1.0))


def display_range(
    polarization: str, algorithm: str = "step"
) -> tuple[tuple[float, float, float], tuple[float, float, float]]:
    """Per-channel (min, max) used to stretch a composite for display."""
    if algorithm == "spike":
        return SPIKE_RANGE
    try:
        return DISPLAY_RANGES[polarization]
    except KeyError as exc:
        raise InvalidParameterError(
            "polarization", polarization, f"No display range for polarization {polarization!r}"
        ) from exc


def to_rgb8(result: CompositeResult) -> NDArray[np.uint8]:
    """Stretch the composite's RGB bands to an (H, W, 3) uint8 image.

    Masked locations are black.
    """
    lo, hi = display_range(result.polarization, result.algorithm)
    height, width = result.shape
    image = np.zeros((height, width, 3), dtype=np.uint8)
    for channel, name in enumerate(result.rgb_bands):
        band = result.band(name)
        scaled = (band.values.astype(np.float64) - lo[channel]) / (hi[channel] - lo[channel])
        scaled = np.clip(np.nan_to_num(scaled, nan=0.0), 0.0, 1.0)
        image[..., channel] = np.where(band.valid, np.round(scaled * 255.0), 0).astype(np.uint8)
    return image


def save_png(result: CompositeResult, path: Path) -> None:
    """Write the stretched composite as an RGB PNG, north up."""
    path.parent.mkdir(parents=True, exist_ok=True)
    image = to_rgb8(result)
    if result.y.size > 1 and result.y[0] < result.y[-1]:
        # Rows ordered south to north; flip so the first image row is the northern edge.
        image = image[::-1]
    mpimg.imsave(path, image, format="png")
