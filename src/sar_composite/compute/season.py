"""Annual harmonic season model.

Fits, independently per location, the three-regressor model

    value(t) = center + sin_coeff * sin(2*pi*t) + cos_coeff * cos(2*pi*t)

where ``t`` is the time in years since 2010-01-01T00:00Z, and removes the
harmonic part from a series. ``center`` is left in place so residuals stay
on the original decibel scale.

The model is returned by the estimator and passed explicitly to the removal
step; nothing is cached between the two.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TYPE_CHECKING

import numpy as np

from sar_composite.domain.results import FitStatus, SeasonModel
from sar_composite.domain.series import PixelSeries

if TYPE_CHECKING:
    from numpy.typing import NDArray

logger = logging.getLogger(__name__)

SEASON_EPOCH_MS = int(datetime(2010, 1, 1, tzinfo=UTC).timestamp() * 1000)
MS_PER_YEAR = 365.25 * 86_400_000.0
N_SEASON_PARAMS = 3
MAX_CONDITION_NUMBER = 1e12


def years_since_epoch(time_ms: NDArray[np.int64]) -> NDArray[np.float64]:
    """Fractional (Julian) years between the season epoch and each timestamp."""
    return (np.asarray(time_ms, dtype=np.int64) - SEASON_EPOCH_MS).astype(np.float64) / MS_PER_YEAR


def _design_matrix(time_ms: NDArray[np.int64]) -> NDArray[np.float64]:
    phase = 2.0 * np.pi * years_since_epoch(time_ms)
    return np.column_stack([np.ones_like(phase), np.sin(phase), np.cos(phase)])


@dataclass(frozen=True)
class SeasonModelBatch:
    """Season models for P locations; coefficients are NaN where masked."""

    status: NDArray[np.uint8]
    center: NDArray[np.float64]
    sin_coeff: NDArray[np.float64]
    cos_coeff: NDArray[np.float64]
    count: NDArray[np.int64]

    @property
    def valid(self) -> NDArray[np.bool_]:
        return self.status == FitStatus.OK

    def model(self, index: int) -> SeasonModel:
        status = FitStatus(int(self.status[index]))
        ok = status.valid
        return SeasonModel(
            status=status,
            center=float(self.center[index]) if ok else None,
            sin_coeff=float(self.sin_coeff[index]) if ok else None,
            cos_coeff=float(self.cos_coeff[index]) if ok else None,
            count=int(self.count[index]),
        )

    @classmethod
    def from_model(cls, model: SeasonModel) -> SeasonModelBatch:
        ok = model.valid
        return cls(
            status=np.array([int(model.status)], dtype=np.uint8),
            center=np.array([model.center if ok else np.nan], dtype=np.float64),
            sin_coeff=np.array([model.sin_coeff if ok else np.nan], dtype=np.float64),
            cos_coeff=np.array([model.cos_coeff if ok else np.nan], dtype=np.float64),
            count=np.array([model.count], dtype=np.int64),
        )


def fit_season_batch(
    time_ms: NDArray[np.int64],
    values: NDArray[np.float64],
    valid: NDArray[np.bool_],
) -> SeasonModelBatch:
    """Ordinary least squares season fit for each row of ``values`` (P, T).

    Locations with fewer than three valid observations are INSUFFICIENT_DATA;
    locations whose normal matrix is numerically singular (e.g. all
    observations at the same phase of the year) are DEGENERATE_FIT.
    """
    n_rows = values.shape[0]
    x = _design_matrix(time_ms)
    w = valid.astype(np.float64)
    y = np.where(valid, values, 0.0)

    normal = np.einsum("pt,ti,tj->pij", w, x, x)
    rhs = np.einsum("pt,ti->pi", w * y, x)
    count = np.sum(valid, axis=1, dtype=np.int64)

    status = np.full(n_rows, FitStatus.OK, dtype=np.uint8)
    status[count < N_SEASON_PARAMS] = FitStatus.INSUFFICIENT_DATA

    enough = count >= N_SEASON_PARAMS
    cond = np.full(n_rows, np.inf)
    if np.any(enough):
        with np.errstate(divide="ignore", invalid="ignore"):
            cond[enough] = np.linalg.cond(normal[enough])
    degenerate = enough & ~(cond < MAX_CONDITION_NUMBER)
    status[degenerate] = FitStatus.DEGENERATE_FIT
    if np.any(degenerate):
        logger.warning(f"{int(np.sum(degenerate))} locations have an ill-conditioned season fit")

    ok = status == FitStatus.OK
    coeffs = np.full((n_rows, N_SEASON_PARAMS), np.nan)
    if np.any(ok):
        coeffs[ok] = np.linalg.solve(normal[ok], rhs[ok][:, :, None])[:, :, 0]

    return SeasonModelBatch(
        status=status,
        center=coeffs[:, 0],
        sin_coeff=coeffs[:, 1],
        cos_coeff=coeffs[:, 2],
        count=count,
    )


def remove_season_batch(
    model: SeasonModelBatch,
    time_ms: NDArray[np.int64],
    values: NDArray[np.float64],
    valid: NDArray[np.bool_],
) -> tuple[NDArray[np.float64], NDArray[np.bool_]]:
    """Subtract each location's harmonic part at every observation time.

    Returns new (values, valid); every observation of a location whose model
    is masked becomes invalid.
    """
    if model.status.shape[0] != values.shape[0]:
        raise ValueError(
            f"season model has {model.status.shape[0]} locations, series has {values.shape[0]}"
        )
    phase = 2.0 * np.pi * years_since_epoch(time_ms)
    model_ok = model.valid
    sin_c = np.where(model_ok, model.sin_coeff, 0.0)
    cos_c = np.where(model_ok, model.cos_coeff, 0.0)
    seasonal = sin_c[:, None] * np.sin(phase)[None, :] + cos_c[:, None] * np.cos(phase)[None, :]

    out_valid = valid & model_ok[:, None]
    out_values = np.where(out_valid, values - seasonal, np.nan)
    return out_values, out_valid


def fit_season(series: PixelSeries) -> SeasonModel:
    """Fit the annual harmonic to one location's valid observations."""
    batch = fit_season_batch(series.time_ms, series.value[None, :], series.valid[None, :])
    return batch.model(0)


def remove_season(series: PixelSeries, model: SeasonModel) -> PixelSeries:
    """Return ``series`` with the harmonic part of ``model`` removed."""
    values, valid = remove_season_batch(
        SeasonModelBatch.from_model(model),
        series.time_ms,
        series.value[None, :],
        series.valid[None, :],
    )
    return PixelSeries(
        time_ms=series.time_ms.copy(),
        value=values[0],
        valid=valid[0],
        ascending=series.ascending.copy(),
    )
