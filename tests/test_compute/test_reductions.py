"""Tests for masked running sums and winner selection."""

from __future__ import annotations

import numpy as np
import pytest
from numpy.testing import assert_allclose, assert_array_equal

from sar_composite.compute.reductions import (
    masked_mean,
    masked_prefix_sums,
    masked_suffix_sums,
    sum_squared_deviations,
    take_rows,
    winner_index,
)


class TestWinnerIndex:
    def test_earliest_and_latest_ties(self) -> None:
        scores = np.array([[1.0, 3.0, 3.0, 2.0]])
        eligible = np.ones_like(scores, dtype=bool)
        idx_e, found = winner_index(scores, eligible, prefer="earliest")
        idx_l, _ = winner_index(scores, eligible, prefer="latest")
        assert idx_e.tolist() == [1]
        assert idx_l.tolist() == [2]
        assert found.tolist() == [True]

    def test_ineligible_columns_ignored(self) -> None:
        scores = np.array([[9.0, 1.0, 2.0]])
        eligible = np.array([[False, True, True]])
        idx, found = winner_index(scores, eligible, prefer="earliest")
        assert idx.tolist() == [2]
        assert found.tolist() == [True]

    def test_rows_without_eligible_columns(self) -> None:
        scores = np.zeros((2, 3))
        eligible = np.array([[False, False, False], [False, True, False]])
        idx, found = winner_index(scores, eligible, prefer="latest")
        assert found.tolist() == [False, True]
        assert idx.tolist() == [0, 1]

    def test_empty_columns(self) -> None:
        idx, found = winner_index(np.zeros((3, 0)), np.zeros((3, 0), dtype=bool), prefer="earliest")
        assert idx.tolist() == [0, 0, 0]
        assert not found.any()

    def test_unknown_rule_rejected(self) -> None:
        with pytest.raises(ValueError, match="prefer"):
            winner_index(np.zeros((1, 1)), np.ones((1, 1), dtype=bool), prefer="middle")  # type: ignore[arg-type]


class TestRunningSums:
    def test_prefix_sums_skip_invalid(self) -> None:
        values = np.array([[1.0, 100.0, 3.0]])
        valid = np.array([[True, False, True]])
        count, total, squares = masked_prefix_sums(values, valid, np.zeros(1))
        assert_array_equal(count, [[0, 1, 1, 2]])
        assert_array_equal(total, [[0, 1, 1, 4]])
        assert_array_equal(squares, [[0, 1, 1, 10]])

    def test_suffix_sums(self) -> None:
        values = np.array([[1.0, 2.0, 3.0]])
        valid = np.ones_like(values, dtype=bool)
        count, total, _ = masked_suffix_sums(values, valid, np.array([1.0]))
        assert_array_equal(count, [[3, 2, 1]])
        assert_array_equal(total, [[3, 3, 2]])

    def test_sum_squared_deviations_matches_variance(self, rng: np.random.Generator) -> None:
        values = rng.normal(50.0, 0.01, size=(4, 30))
        valid = np.ones_like(values, dtype=bool)
        shift, _ = masked_mean(values, valid)
        count, total, squares = masked_prefix_sums(values, valid, shift)
        ssd = sum_squared_deviations(count[:, -1], total[:, -1], squares[:, -1])
        assert_allclose(ssd, np.var(values, axis=1) * 30, rtol=1e-8)

    def test_empty_sets_have_zero_deviation(self) -> None:
        ssd = sum_squared_deviations(np.zeros(2), np.zeros(2), np.zeros(2))
        assert_array_equal(ssd, [0.0, 0.0])

    def test_masked_mean(self) -> None:
        mean, count = masked_mean(np.array([[1.0, 5.0], [2.0, 2.0]]), np.array([[True, False], [False, False]]))
        assert mean.tolist() == [1.0, 0.0]
        assert count.tolist() == [1, 0]


def test_take_rows() -> None:
    arr = np.arange(12).reshape(3, 4)
    assert take_rows(arr, np.array([0, 3, 1])).tolist() == [0, 7, 9]
