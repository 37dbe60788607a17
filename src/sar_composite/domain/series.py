"""Backscatter time-series domain models.

This module provides:
- Observation: a single calibrated backscatter sample at one location
- PixelSeries: the ordered observations at one location
- ObservationStack: the raster form, one time axis shared by a grid of locations
- Region: an inclusive bounding box in grid coordinate units
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any

import numpy as np

if TYPE_CHECKING:
    from numpy.typing import NDArray


class PassDirection(str, Enum):
    ASCENDING = "ASCENDING"
    DESCENDING = "DESCENDING"

    @classmethod
    def parse(cls, value: str | PassDirection) -> PassDirection:
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().upper())
        except ValueError as exc:
            raise ValueError(f"Unknown pass direction: {value!r}") from exc


@dataclass(frozen=True)
class Observation:
    """Single backscatter sample.

    Attributes:
        timestamp_ms: Acquisition time, milliseconds since 1970-01-01T00:00Z
        value: Backscatter (sigma0) in decibels
        pass_direction: Orbit direction of the acquisition
        valid: False when the sample is masked (no data, filtered, etc.)
    """

    timestamp_ms: int
    value: float
    pass_direction: PassDirection
    valid: bool = True


def _check_sorted(time_ms: NDArray[np.int64]) -> None:
    if time_ms.size > 1 and not np.all(np.diff(time_ms) > 0):
        raise ValueError("time_ms must be strictly increasing")


def _check_finite_where_valid(values: NDArray[np.float64], valid: NDArray[np.bool_]) -> None:
    n_bad = int(np.sum(valid & ~np.isfinite(values)))
    if n_bad:
        raise ValueError(f"{n_bad} observations are marked valid but are not finite")


def _freeze(*arrays: np.ndarray[Any, Any]) -> None:
    for arr in arrays:
        arr.flags.writeable = False


@dataclass(frozen=True)
class PixelSeries:
    """Observations at one location, ordered by strictly increasing time.

    Values at invalid positions are meaningless and stored as NaN; the
    ``valid`` array is the authoritative mask.
    """

    time_ms: NDArray[np.int64]
    value: NDArray[np.float64]
    valid: NDArray[np.bool_]
    ascending: NDArray[np.bool_]

    def __post_init__(self) -> None:
        arrays: dict[str, np.ndarray[Any, Any]] = {
            "time_ms": self.time_ms,
            "value": self.value,
            "valid": self.valid,
            "ascending": self.ascending,
        }
        for name, arr in arrays.items():
            if not isinstance(arr, np.ndarray):
                raise TypeError(f"{name} must be a numpy array, got {type(arr).__name__}")
            if arr.ndim != 1:
                raise ValueError(f"{name} must be 1-D, got shape {arr.shape}")

        if self.time_ms.dtype != np.int64:
            raise ValueError(f"time_ms must be int64, got {self.time_ms.dtype}")
        if self.value.dtype != np.float64:
            raise ValueError(f"value must be float64, got {self.value.dtype}")
        if self.valid.dtype != np.bool_:
            raise ValueError(f"valid must be bool, got {self.valid.dtype}")
        if self.ascending.dtype != np.bool_:
            raise ValueError(f"ascending must be bool, got {self.ascending.dtype}")

        n = len(self.time_ms)
        for name, arr in arrays.items():
            if len(arr) != n:
                raise ValueError(f"{name} length {len(arr)} != time_ms length {n}")

        _check_finite_where_valid(self.value, self.valid)
        _check_sorted(self.time_ms)
        _freeze(*arrays.values())

    @classmethod
    def from_arrays(
        cls,
        time_ms: Any,
        value: Any,
        *,
        valid: Any | None = None,
        ascending: Any | None = None,
    ) -> PixelSeries:
        """Build a series from array-likes; NaN values are treated as invalid."""
        t = np.array(time_ms, dtype=np.int64)
        v = np.array(value, dtype=np.float64)
        ok = np.isfinite(v) if valid is None else np.array(valid, dtype=bool) & np.isfinite(v)
        asc = np.zeros(t.shape, dtype=bool) if ascending is None else np.array(ascending, dtype=bool)
        return cls(time_ms=t, value=np.where(ok, v, np.nan), valid=ok, ascending=asc)

    @classmethod
    def from_observations(cls, observations: list[Observation]) -> PixelSeries:
        return cls.from_arrays(
            [o.timestamp_ms for o in observations],
            [o.value for o in observations],
            valid=[o.valid for o in observations],
            ascending=[o.pass_direction is PassDirection.ASCENDING for o in observations],
        )

    @property
    def n_points(self) -> int:
        return len(self.time_ms)

    @property
    def n_valid(self) -> int:
        return int(np.sum(self.valid))

    def observations(self) -> list[Observation]:
        return [
            Observation(
                timestamp_ms=int(t),
                value=float(v),
                pass_direction=PassDirection.ASCENDING if a else PassDirection.DESCENDING,
                valid=bool(ok),
            )
            for t, v, ok, a in zip(self.time_ms, self.value, self.valid, self.ascending)
        ]

    def with_valid(self, valid: NDArray[np.bool_]) -> PixelSeries:
        """Return a copy whose validity is the AND of the current and given masks."""
        ok = self.valid & np.asarray(valid, dtype=bool)
        return PixelSeries(
            time_ms=self.time_ms.copy(),
            value=np.where(ok, self.value, np.nan),
            valid=ok,
            ascending=self.ascending.copy(),
        )

    def window(self, start_ms: int, end_ms: int) -> PixelSeries:
        """Observations with ``start_ms <= time < end_ms``."""
        sel = (self.time_ms >= start_ms) & (self.time_ms < end_ms)
        return PixelSeries(
            time_ms=self.time_ms[sel],
            value=self.value[sel],
            valid=self.valid[sel],
            ascending=self.ascending[sel],
        )


@dataclass(frozen=True)
class Region:
    """Inclusive bounding box in the grid's coordinate units."""

    xmin: float
    ymin: float
    xmax: float
    ymax: float

    def __post_init__(self) -> None:
        if self.xmin > self.xmax or self.ymin > self.ymax:
            raise ValueError(f"Region bounds are inverted: {self}")

    def indices(
        self, x: NDArray[np.float64], y: NDArray[np.float64]
    ) -> tuple[NDArray[np.intp], NDArray[np.intp]]:
        """Return (row_indices, col_indices) of grid cells inside the box."""
        rows = np.flatnonzero((y >= self.ymin) & (y <= self.ymax))
        cols = np.flatnonzero((x >= self.xmin) & (x <= self.xmax))
        return rows, cols


@dataclass(frozen=True)
class ObservationStack:
    """Raster of backscatter time series sharing one time axis.

    Attributes:
        time_ms: Acquisition times (T,), strictly increasing
        ascending: Pass direction per acquisition (T,)
        values: Backscatter in dB (T, H, W), NaN where invalid
        valid: Validity mask (T, H, W)
        x: Column coordinates (W,)
        y: Row coordinates (H,)
    """

    time_ms: NDArray[np.int64]
    ascending: NDArray[np.bool_]
    values: NDArray[np.float64]
    valid: NDArray[np.bool_]
    x: NDArray[np.float64]
    y: NDArray[np.float64]

    def __post_init__(self) -> None:
        if self.values.ndim != 3:
            raise ValueError(f"values must be (time, y, x), got shape {self.values.shape}")
        if self.values.dtype != np.float64:
            raise ValueError(f"values must be float64, got {self.values.dtype}")
        if self.valid.shape != self.values.shape or self.valid.dtype != np.bool_:
            raise ValueError("valid must be a bool array shaped like values")
        n_time, height, width = self.values.shape
        if self.time_ms.shape != (n_time,) or self.time_ms.dtype != np.int64:
            raise ValueError(f"time_ms must be int64 with shape ({n_time},)")
        if self.ascending.shape != (n_time,) or self.ascending.dtype != np.bool_:
            raise ValueError(f"ascending must be bool with shape ({n_time},)")
        if self.x.shape != (width,) or self.y.shape != (height,):
            raise ValueError("x and y coordinates must match the grid width and height")
        _check_finite_where_valid(self.values, self.valid)
        _check_sorted(self.time_ms)
        _freeze(self.time_ms, self.ascending, self.values, self.valid, self.x, self.y)

    @classmethod
    def from_arrays(
        cls,
        time_ms: Any,
        values: Any,
        *,
        ascending: Any | None = None,
        valid: Any | None = None,
        x: Any | None = None,
        y: Any | None = None,
    ) -> ObservationStack:
        """Build a stack from array-likes; NaN values are treated as invalid."""
        v = np.array(values, dtype=np.float64)
        if v.ndim != 3:
            raise ValueError(f"values must be (time, y, x), got shape {v.shape}")
        n_time, height, width = v.shape
        ok = np.isfinite(v)
        if valid is not None:
            ok &= np.array(valid, dtype=bool)
        return cls(
            time_ms=np.array(time_ms, dtype=np.int64),
            ascending=(
                np.zeros(n_time, dtype=bool) if ascending is None else np.array(ascending, dtype=bool)
            ),
            values=np.where(ok, v, np.nan),
            valid=ok,
            x=np.arange(width, dtype=np.float64) if x is None else np.array(x, dtype=np.float64),
            y=np.arange(height, dtype=np.float64) if y is None else np.array(y, dtype=np.float64),
        )

    @property
    def shape(self) -> tuple[int, int]:
        return (self.values.shape[1], self.values.shape[2])

    @property
    def n_times(self) -> int:
        return self.values.shape[0]

    @property
    def n_locations(self) -> int:
        return self.values.shape[1] * self.values.shape[2]

    def pixel(self, row: int, col: int) -> PixelSeries:
        return PixelSeries(
            time_ms=self.time_ms.copy(),
            value=self.values[:, row, col].copy(),
            valid=self.valid[:, row, col].copy(),
            ascending=self.ascending.copy(),
        )

    def rows(self) -> tuple[NDArray[np.float64], NDArray[np.bool_]]:
        """Location-major views: values and valid reshaped to (H*W, T)."""
        n_time = self.n_times
        values = self.values.reshape(n_time, self.n_locations).T
        valid = self.valid.reshape(n_time, self.n_locations).T
        return values, valid

    def window(self, start_ms: int, end_ms: int) -> ObservationStack:
        """Acquisitions with ``start_ms <= time < end_ms``."""
        sel = (self.time_ms >= start_ms) & (self.time_ms < end_ms)
        return ObservationStack(
            time_ms=self.time_ms[sel],
            ascending=self.ascending[sel],
            values=self.values[sel],
            valid=self.valid[sel],
            x=self.x.copy(),
            y=self.y.copy(),
        )

    def subset(self, region: Region | None) -> ObservationStack:
        if region is None:
            return self
        rows, cols = region.indices(self.x, self.y)
        values = self.values[:, rows][:, :, cols]
        valid = self.valid[:, rows][:, :, cols]
        return ObservationStack(
            time_ms=self.time_ms.copy(),
            ascending=self.ascending.copy(),
            values=values,
            valid=valid,
            x=self.x[cols],
            y=self.y[rows],
        )
