"""Single-breakpoint step-function change detection.

For every candidate breakpoint ``t`` (a valid acquisition of the candidate
series C) the reference series R supplies the "before" segment
(``time < t``) and C supplies the "after" segment (``time >= t``). The
score of a breakpoint is the negative pooled sum of squared deviations of
the two segments::

    goodness(t) = -(var_left * n_left + var_right * n_right)

Breakpoints leaving ``n_right <= min_obs`` trailing observations, or no
reference observation before them, are not eligible. The eligible breakpoint
with the highest goodness wins; ties go to the earliest timestamp.

Segment statistics come from running count / sum / sum-of-squares arrays
(prefix sums over R, suffix sums over C), so each location costs
O(len(R) + len(C)) instead of recomputing both tails per candidate.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

import numpy as np

from sar_composite.compute.reductions import (
    masked_mean,
    masked_prefix_sums,
    masked_suffix_sums,
    sum_squared_deviations,
    take_rows,
    winner_index,
)
from sar_composite.domain.results import Band, FitStatus, StepFitResult
from sar_composite.domain.series import PixelSeries
from sar_composite.errors import InvalidParameterError

if TYPE_CHECKING:
    from numpy.typing import NDArray

DEFAULT_MIN_OBS = 3


@dataclass(frozen=True)
class StepFitBatch:
    """Step fits for P locations. Derived values are NaN/0 where masked."""

    status: NDArray[np.uint8]
    breakpoint_ms: NDArray[np.int64]
    left_level: NDArray[np.float64]
    right_level: NDArray[np.float64]
    r_squared: NDArray[np.float64]
    left_count: NDArray[np.int64]
    right_count: NDArray[np.int64]
    reference_count: NDArray[np.int64]
    candidate_count: NDArray[np.int64]

    @property
    def valid(self) -> NDArray[np.bool_]:
        return self.status == FitStatus.OK

    def result(self, index: int) -> StepFitResult:
        status = FitStatus(int(self.status[index]))
        ok = status.valid
        return StepFitResult(
            status=status,
            breakpoint_ms=int(self.breakpoint_ms[index]) if ok else None,
            left_level=float(self.left_level[index]) if ok else None,
            right_level=float(self.right_level[index]) if ok else None,
            r_squared=float(self.r_squared[index]) if ok else None,
            left_count=int(self.left_count[index]),
            right_count=int(self.right_count[index]),
            reference_count=int(self.reference_count[index]),
            candidate_count=int(self.candidate_count[index]),
        )

    def bands(self, shape: tuple[int, ...]) -> dict[str, Band]:
        ok = self.valid.reshape(shape)
        always = np.ones(shape, dtype=bool)
        return {
            "left_level": Band.masked("left_level", self.left_level.reshape(shape), ok),
            "right_level": Band.masked("right_level", self.right_level.reshape(shape), ok),
            "r_squared": Band.masked("r_squared", self.r_squared.reshape(shape), ok),
            "breakpoint_ms": Band.masked("breakpoint_ms", self.breakpoint_ms.reshape(shape), ok),
            "left_count": Band.masked("left_count", self.left_count.reshape(shape), ok),
            "right_count": Band.masked("right_count", self.right_count.reshape(shape), ok),
            "reference_count": Band("reference_count", self.reference_count.reshape(shape), always),
            "candidate_count": Band("candidate_count", self.candidate_count.reshape(shape), always),
            "status": Band("status", self.status.reshape(shape), always),
        }


def _masked_batch(n_rows: int, reference_count: NDArray[np.int64]) -> StepFitBatch:
    """Every location NO_DATA: there is no candidate acquisition at all."""
    return StepFitBatch(
        status=np.full(n_rows, FitStatus.NO_DATA, dtype=np.uint8),
        breakpoint_ms=np.zeros(n_rows, dtype=np.int64),
        left_level=np.full(n_rows, np.nan),
        right_level=np.full(n_rows, np.nan),
        r_squared=np.full(n_rows, np.nan),
        left_count=np.zeros(n_rows, dtype=np.int64),
        right_count=np.zeros(n_rows, dtype=np.int64),
        reference_count=reference_count,
        candidate_count=np.zeros(n_rows, dtype=np.int64),
    )


def fit_step_batch(
    ref_time_ms: NDArray[np.int64],
    ref_values: NDArray[np.float64],
    ref_valid: NDArray[np.bool_],
    cand_time_ms: NDArray[np.int64],
    cand_values: NDArray[np.float64],
    cand_valid: NDArray[np.bool_],
    min_obs: int = DEFAULT_MIN_OBS,
) -> StepFitBatch:
    """Best step function for each location (row) of the reference/candidate arrays.

    Args:
        ref_time_ms: Reference acquisition times (Tr,), strictly increasing
        ref_values: Reference backscatter (P, Tr)
        ref_valid: Reference validity (P, Tr)
        cand_time_ms: Candidate acquisition times (Tc,), strictly increasing
        cand_values: Candidate backscatter (P, Tc)
        cand_valid: Candidate validity (P, Tc)
        min_obs: A breakpoint needs more than this many observations after it

    Returns:
        StepFitBatch with one entry per location.

    Raises:
        InvalidParameterError: If min_obs is negative.
    """
    if min_obs < 0:
        raise InvalidParameterError("min_obs", min_obs, "min_obs must be >= 0")
    if ref_values.shape[0] != cand_values.shape[0]:
        raise ValueError("reference and candidate arrays must have the same number of locations")

    n_rows = ref_values.shape[0]
    if cand_time_ms.size == 0:
        return _masked_batch(n_rows, np.sum(ref_valid, axis=1, dtype=np.int64))

    # Shift by the reference mean so running sums of squares stay well conditioned.
    shift, ref_count = masked_mean(ref_values, ref_valid)
    cand_count = np.sum(cand_valid, axis=1, dtype=np.int64)

    n_pre, s_pre, ss_pre = masked_prefix_sums(ref_values, ref_valid, shift)
    n_suf, s_suf, ss_suf = masked_suffix_sums(cand_values, cand_valid, shift)

    # Left tail of candidate j: reference acquisitions strictly before cand_time_ms[j].
    left_pos = np.searchsorted(ref_time_ms, cand_time_ms, side="left")
    n_left = n_pre[:, left_pos]
    s_left = s_pre[:, left_pos]
    ss_left = ss_pre[:, left_pos]

    ssd = sum_squared_deviations(n_left, s_left, ss_left) + sum_squared_deviations(n_suf, s_suf, ss_suf)
    goodness = -ssd
    eligible = cand_valid & (n_left > 0) & (n_suf > min_obs)

    idx, found = winner_index(goodness, eligible, prefer="earliest")

    status = np.full(n_rows, FitStatus.OK, dtype=np.uint8)
    status[~found] = FitStatus.INSUFFICIENT_DATA
    status[(ref_count == 0) | (cand_count == 0)] = FitStatus.NO_DATA
    ok = status == FitStatus.OK

    best_goodness = take_rows(goodness, idx)
    nl = take_rows(n_left, idx)
    nr = take_rows(n_suf, idx)
    left_level = shift + np.divide(take_rows(s_left, idx), nl, out=np.zeros(n_rows), where=nl > 0)
    right_level = shift + np.divide(take_rows(s_suf, idx), nr, out=np.zeros(n_rows), where=nr > 0)

    total_ssd = sum_squared_deviations(n_pre[:, -1], s_pre[:, -1], ss_pre[:, -1])
    # A constant reference series is fitted exactly.
    r_squared = np.where(
        total_ssd > 0,
        1.0 + np.divide(best_goodness, total_ssd, out=np.zeros(n_rows), where=total_ssd > 0),
        1.0,
    )

    breakpoint_ms = cand_time_ms[idx]

    return StepFitBatch(
        status=status,
        breakpoint_ms=np.where(ok, breakpoint_ms, 0).astype(np.int64),
        left_level=np.where(ok, left_level, np.nan),
        right_level=np.where(ok, right_level, np.nan),
        r_squared=np.where(ok, r_squared, np.nan),
        left_count=np.where(ok, nl, 0).astype(np.int64),
        right_count=np.where(ok, nr, 0).astype(np.int64),
        reference_count=ref_count,
        candidate_count=cand_count,
    )


def fit_step(
    reference: PixelSeries,
    candidate: PixelSeries,
    min_obs: int = DEFAULT_MIN_OBS,
) -> StepFitResult:
    """Best step function at one location.

    Args:
        reference: Series supplying "before" statistics (typically the full history)
        candidate: Series supplying breakpoints and "after" statistics
        min_obs: A breakpoint needs more than this many candidate observations from it on

    Returns:
        StepFitResult; masked (status != OK) when either series has no valid
        observation or no breakpoint leaves enough trailing observations.
    """
    batch = fit_step_batch(
        reference.time_ms,
        reference.value[None, :],
        reference.valid[None, :],
        candidate.time_ms,
        candidate.value[None, :],
        candidate.valid[None, :],
        min_obs=min_obs,
    )
    return batch.result(0)
