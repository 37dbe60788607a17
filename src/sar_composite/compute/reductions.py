"""Masked reductions shared by the per-location fitters.

All functions take location-major arrays shaped (P, T): one row per location,
one column per acquisition. Invalid entries never contribute to a reduction.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Literal

import numpy as np

if TYPE_CHECKING:
    from numpy.typing import NDArray

TieBreak = Literal["earliest", "latest"]


def masked_mean(
    values: NDArray[np.float64], valid: NDArray[np.bool_]
) -> tuple[NDArray[np.float64], NDArray[np.int64]]:
    """Per-row mean of valid entries (0.0 for rows without any) and valid counts."""
    count = np.sum(valid, axis=1, dtype=np.int64)
    total = np.sum(np.where(valid, values, 0.0), axis=1)
    mean = np.divide(total, count, out=np.zeros_like(total), where=count > 0)
    return mean, count


def masked_prefix_sums(
    values: NDArray[np.float64],
    valid: NDArray[np.bool_],
    shift: NDArray[np.float64],
) -> tuple[NDArray[np.float64], NDArray[np.float64], NDArray[np.float64]]:
    """Running count, sum and sum of squares of ``values - shift``.

    Each output has a leading zero column, so ``out[:, k]`` reduces the first
    ``k`` columns of the input. Subtracting a per-row shift close to the row
    mean keeps the sum-of-squares update numerically stable.
    """
    x = np.where(valid, values - shift[:, None], 0.0)
    n_rows = x.shape[0]
    zero = np.zeros((n_rows, 1), dtype=np.float64)
    count = np.concatenate([zero, np.cumsum(valid, axis=1, dtype=np.float64)], axis=1)
    total = np.concatenate([zero, np.cumsum(x, axis=1)], axis=1)
    squares = np.concatenate([zero, np.cumsum(x * x, axis=1)], axis=1)
    return count, total, squares


def masked_suffix_sums(
    values: NDArray[np.float64],
    valid: NDArray[np.bool_],
    shift: NDArray[np.float64],
) -> tuple[NDArray[np.float64], NDArray[np.float64], NDArray[np.float64]]:
    """Running count, sum and sum of squares from column ``k`` to the end.

    ``out[:, k]`` reduces columns ``k..T-1``; there is no padding column.
    """
    x = np.where(valid, values - shift[:, None], 0.0)
    count = np.cumsum(valid[:, ::-1], axis=1, dtype=np.float64)[:, ::-1]
    total = np.cumsum(x[:, ::-1], axis=1)[:, ::-1]
    squares = np.cumsum((x * x)[:, ::-1], axis=1)[:, ::-1]
    return count, total, squares


def sum_squared_deviations(
    count: NDArray[np.float64], total: NDArray[np.float64], squares: NDArray[np.float64]
) -> NDArray[np.float64]:
    """Population variance times count, from running sums; 0 for empty sets."""
    mean_term = np.divide(total * total, count, out=np.zeros_like(total), where=count > 0)
    # Cancellation can leave tiny negative residues.
    return np.maximum(squares - mean_term, 0.0)


def winner_index(
    scores: NDArray[np.float64],
    eligible: NDArray[np.bool_],
    prefer: TieBreak,
) -> tuple[NDArray[np.intp], NDArray[np.bool_]]:
    """Column of the best eligible score in each row.

    Columns must be ordered by ascending timestamp. Among equal best scores the
    first column wins for ``prefer="earliest"`` and the last column for
    ``prefer="latest"``. Rows with no eligible column report index 0 and
    ``found=False``.
    """
    if prefer not in ("earliest", "latest"):
        raise ValueError(f"prefer must be 'earliest' or 'latest', got {prefer!r}")
    n_rows, n_cols = scores.shape
    found = np.any(eligible, axis=1)
    if n_cols == 0:
        return np.zeros(n_rows, dtype=np.intp), found

    masked_scores = np.where(eligible, scores, -np.inf)
    if prefer == "earliest":
        # argmax returns the first occurrence of the maximum.
        idx = np.argmax(masked_scores, axis=1)
    else:
        idx = n_cols - 1 - np.argmax(masked_scores[:, ::-1], axis=1)
    idx = np.where(found, idx, 0).astype(np.intp)
    return idx, found


def take_rows(arr: NDArray[np.generic], idx: NDArray[np.intp]) -> NDArray[np.generic]:
    """Pick ``arr[p, idx[p]]`` for every row ``p``."""
    return np.take_along_axis(arr, idx[:, None], axis=1)[:, 0]
