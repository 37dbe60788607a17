"""Linear trend fitting over a time window.

The fitted line is reported by its values at the window bounds rather than
as offset/slope against the Unix epoch. Internally time is rescaled to
``x = (t - start) / (end - start)`` so the line is ``a + b*x`` with
``level_at_start = a`` and ``level_at_end = a + b``; this is the same line as
``offset + scale*t`` fitted on raw milliseconds, without the ill-conditioned
epoch-sized intercept.

Weighting modes:
- "none": ordinary least squares over valid in-window observations
- "linear": weighted least squares with weight ``(t - start)/(end - start)``,
  so recent observations dominate and the one at ``start`` has no say
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

import numpy as np

from sar_composite.domain.results import Band, FitStatus, TrendFitResult
from sar_composite.domain.series import PixelSeries
from sar_composite.errors import InvalidParameterError

if TYPE_CHECKING:
    from numpy.typing import NDArray


class TrendWeighting(str, Enum):
    NONE = "none"
    LINEAR = "linear"


def parse_weighting(weighting: TrendWeighting | str) -> TrendWeighting:
    try:
        return TrendWeighting(weighting)
    except ValueError as exc:
        allowed = ", ".join(w.value for w in TrendWeighting)
        raise InvalidParameterError(
            "weighting", weighting, f"Unknown weighting {weighting!r}. Allowed: {allowed}"
        ) from exc


@dataclass(frozen=True)
class TrendFitBatch:
    status: NDArray[np.uint8]
    level_at_start: NDArray[np.float64]
    level_at_end: NDArray[np.float64]
    r_squared: NDArray[np.float64]
    count: NDArray[np.int64]

    @property
    def valid(self) -> NDArray[np.bool_]:
        return self.status == FitStatus.OK

    def result(self, index: int) -> TrendFitResult:
        status = FitStatus(int(self.status[index]))
        ok = status.valid
        return TrendFitResult(
            status=status,
            level_at_start=float(self.level_at_start[index]) if ok else None,
            level_at_end=float(self.level_at_end[index]) if ok else None,
            r_squared=float(self.r_squared[index]) if ok else None,
            count=int(self.count[index]),
        )

    def bands(self, shape: tuple[int, ...]) -> dict[str, Band]:
        ok = self.valid.reshape(shape)
        always = np.ones(shape, dtype=bool)
        return {
            "level_at_start": Band.masked("level_at_start", self.level_at_start.reshape(shape), ok),
            "level_at_end": Band.masked("level_at_end", self.level_at_end.reshape(shape), ok),
            "r_squared": Band.masked("r_squared", self.r_squared.reshape(shape), ok),
            "count": Band("count", self.count.reshape(shape), always),
            "status": Band("status", self.status.reshape(shape), always),
        }


def fit_trend_batch(
    time_ms: NDArray[np.int64],
    values: NDArray[np.float64],
    valid: NDArray[np.bool_],
    start_ms: int,
    end_ms: int,
    weighting: TrendWeighting | str = TrendWeighting.NONE,
) -> TrendFitBatch:
    """Fit a line per location (row) over observations with ``start <= t <= end``.

    Returns NO_DATA where the window holds no valid observation and
    DEGENERATE_FIT where fewer than two observations carry positive weight.

    Raises:
        InvalidParameterError: For an unknown weighting or an empty window.
    """
    mode = parse_weighting(weighting)
    if not end_ms > start_ms:
        raise InvalidParameterError(
            "end_ms", end_ms, f"Trend window end ({end_ms}) must be after start ({start_ms})"
        )

    n_rows = values.shape[0]
    x = (np.asarray(time_ms, dtype=np.int64) - start_ms).astype(np.float64) / float(end_ms - start_ms)
    in_window = (x >= 0.0) & (x <= 1.0)
    use = valid & in_window[None, :]
    count = np.sum(use, axis=1, dtype=np.int64)

    if mode is TrendWeighting.LINEAR:
        w = np.where(use, x[None, :], 0.0)
    else:
        w = use.astype(np.float64)
    y = np.where(use, values, 0.0)

    sw = np.sum(w, axis=1)
    n_weighted = np.sum(w > 0, axis=1)
    fit_ok = n_weighted >= 2
    safe_sw = np.where(fit_ok, sw, 1.0)

    x_mean = np.sum(w * x[None, :], axis=1) / safe_sw
    y_mean = np.sum(w * y, axis=1) / safe_sw
    dx = np.where(w > 0, x[None, :] - x_mean[:, None], 0.0)
    dy = np.where(w > 0, y - y_mean[:, None], 0.0)
    sxx = np.sum(w * dx * dx, axis=1)
    sxy = np.sum(w * dx * dy, axis=1)
    syy = np.sum(w * dy * dy, axis=1)

    fit_ok &= sxx > 0
    slope = np.divide(sxy, sxx, out=np.zeros(n_rows), where=fit_ok)
    intercept = y_mean - slope * x_mean

    residual = np.where(w > 0, y - (intercept[:, None] + slope[:, None] * x[None, :]), 0.0)
    sse = np.sum(w * residual * residual, axis=1)
    r_squared = np.where(
        syy > 0, 1.0 - np.divide(sse, syy, out=np.zeros(n_rows), where=syy > 0), 1.0
    )

    status = np.full(n_rows, FitStatus.OK, dtype=np.uint8)
    status[~fit_ok] = FitStatus.DEGENERATE_FIT
    status[count == 0] = FitStatus.NO_DATA
    ok = status == FitStatus.OK

    return TrendFitBatch(
        status=status,
        level_at_start=np.where(ok, intercept, np.nan),
        level_at_end=np.where(ok, intercept + slope, np.nan),
        r_squared=np.where(ok, r_squared, np.nan),
        count=count,
    )


def fit_trend(
    series: PixelSeries,
    start_ms: int,
    end_ms: int,
    weighting: TrendWeighting | str = TrendWeighting.NONE,
) -> TrendFitResult:
    """Fit a line to one location's observations inside ``[start_ms, end_ms]``."""
    batch = fit_trend_batch(
        series.time_ms,
        series.value[None, :],
        series.valid[None, :],
        start_ms,
        end_ms,
        weighting=weighting,
    )
    return batch.result(0)
