"""Per-location fit results and raster output bands.

Masked results carry ``None`` for every derived quantity; the ``status``
field says why the location was masked.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from enum import IntEnum
from typing import TYPE_CHECKING, Any

import numpy as np

if TYPE_CHECKING:
    from numpy.typing import NDArray


class FitStatus(IntEnum):
    """Per-location outcome code, stored in the ``status`` output band."""

    OK = 0
    NO_DATA = 1
    INSUFFICIENT_DATA = 2
    DEGENERATE_FIT = 3

    @property
    def valid(self) -> bool:
        return self is FitStatus.OK


@dataclass(frozen=True)
class SeasonModel:
    """Annual harmonic ``center + sin_coeff*sin(2*pi*t) + cos_coeff*cos(2*pi*t)``."""

    status: FitStatus
    center: float | None
    sin_coeff: float | None
    cos_coeff: float | None
    count: int

    @property
    def valid(self) -> bool:
        return self.status.valid


@dataclass(frozen=True)
class StepFitResult:
    """Best single-breakpoint step function at one location.

    Attributes:
        breakpoint_ms: First timestamp of the right segment
        left_level: Mean of the reference series before the breakpoint
        right_level: Mean of the candidate series from the breakpoint on
        r_squared: Coefficient of determination relative to the reference series
        left_count: Valid observations in the left segment
        right_count: Valid observations in the right segment
        reference_count: Valid observations in the whole reference series
        candidate_count: Valid observations in the whole candidate series
    """

    status: FitStatus
    breakpoint_ms: int | None
    left_level: float | None
    right_level: float | None
    r_squared: float | None
    left_count: int
    right_count: int
    reference_count: int
    candidate_count: int

    @property
    def valid(self) -> bool:
        return self.status.valid

    @property
    def step_size(self) -> float | None:
        if self.left_level is None or self.right_level is None:
            return None
        return self.right_level - self.left_level


@dataclass(frozen=True)
class TrendFitResult:
    """Straight-line fit reported by its values at the window bounds."""

    status: FitStatus
    level_at_start: float | None
    level_at_end: float | None
    r_squared: float | None
    count: int

    @property
    def valid(self) -> bool:
        return self.status.valid


@dataclass(frozen=True)
class SpikeFitResult:
    """Largest backscatter value in the window relative to the window median.

    Attributes:
        spike_timestamp_ms: Time of the maximum (latest one on ties)
        spike_value: Maximum backscatter in dB
        baseline: Median backscatter in dB
        difference: spike_value - baseline, in dB
        ratio: Linear power ratio 10**(difference/10)
        rgb: HSV colour encoding converted to RGB, each channel in [0, 1]
    """

    status: FitStatus
    spike_timestamp_ms: int | None
    spike_value: float | None
    baseline: float | None
    difference: float | None
    ratio: float | None
    rgb: tuple[float, float, float] | None

    @property
    def valid(self) -> bool:
        return self.status.valid


@dataclass(frozen=True)
class LegendEntry:
    """Date/colour pair of the spike composite legend."""

    timestamp_ms: int
    color_name: str
    text_color: str

    @property
    def label(self) -> str:
        return datetime.fromtimestamp(self.timestamp_ms / 1000.0, tz=UTC).strftime("%Y-%m-%d")

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp_ms": int(self.timestamp_ms),
            "label": self.label,
            "color_name": self.color_name,
            "text_color": self.text_color,
        }


@dataclass(frozen=True)
class Band:
    """Named raster output with an explicit validity mask.

    Float bands hold NaN and integer bands hold 0 where ``valid`` is False;
    consumers must consult ``valid`` rather than the fill value.
    """

    name: str
    values: NDArray[Any]
    valid: NDArray[np.bool_]

    def __post_init__(self) -> None:
        if self.values.shape != self.valid.shape:
            raise ValueError(
                f"Band {self.name!r}: values shape {self.values.shape} != valid shape {self.valid.shape}"
            )
        if self.valid.dtype != np.bool_:
            raise ValueError(f"Band {self.name!r}: valid must be bool, got {self.valid.dtype}")
        self.values.flags.writeable = False
        self.valid.flags.writeable = False

    @classmethod
    def masked(cls, name: str, values: NDArray[Any], valid: NDArray[np.bool_]) -> Band:
        """Build a band, overwriting invalid cells with the dtype's fill value."""
        valid = np.asarray(valid, dtype=bool)
        fill: Any = np.nan if np.issubdtype(values.dtype, np.floating) else 0
        return cls(name=name, values=np.where(valid, values, fill).astype(values.dtype), valid=valid)

    @property
    def n_valid(self) -> int:
        return int(np.sum(self.valid))
