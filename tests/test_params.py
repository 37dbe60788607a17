"""Tests for composite parameter validation and loading."""

from __future__ import annotations

import json
from datetime import date
from pathlib import Path

import pytest
from pydantic import ValidationError

from sar_composite.compute.selection import PassMode
from sar_composite.compute.trend import TrendWeighting
from sar_composite.errors import InvalidParameterError
from sar_composite.params import Algorithm, CompositeParameters, date_to_ms, load_parameters

BASE = {
    "start_date": "2023-01-01",
    "monitor_start_date": "2023-04-01",
    "end_date": "2023-07-01",
}


def test_defaults() -> None:
    params = CompositeParameters.from_mapping(BASE)
    assert params.polarization == "VV"
    assert params.pass_mode is PassMode.COMBINE
    assert params.algorithm is Algorithm.STEP
    assert params.min_obs == 3
    assert params.slope_threshold_deg == 20.0
    assert params.trend_weighting is TrendWeighting.NONE
    assert params.remove_season is False


def test_millisecond_bounds() -> None:
    params = CompositeParameters.from_mapping(BASE)
    assert params.start_ms == date_to_ms(date(2023, 1, 1))
    assert params.end_ms - params.monitor_start_ms == 91 * 86_400_000
    assert date_to_ms(date(1970, 1, 2)) == 86_400_000


def test_relative_window() -> None:
    params = CompositeParameters.relative_to(date(2024, 7, 1))
    assert params.end_date == date(2024, 7, 1)
    assert (params.end_date - params.monitor_start_date).days == 90
    assert (params.end_date - params.start_date).days == 180


def test_relative_window_accepts_overrides() -> None:
    params = CompositeParameters.relative_to(date(2024, 7, 1), algorithm="spike", polarization="VH")
    assert params.algorithm is Algorithm.SPIKE
    assert params.polarization == "VH"


@pytest.mark.parametrize(
    "overrides",
    [
        {"monitor_start_date": "2022-12-01"},
        {"end_date": "2023-04-01"},
        {"algorithm": "wiggle"},
        {"pass_mode": "filter steep"},
        {"polarization": "HH"},
        {"trend_weighting": "quadratic"},
        {"min_obs": -1},
        {"slope_threshold_deg": 95.0},
        {"colour": "red"},
    ],
)
def test_invalid_values_rejected(overrides: dict[str, object]) -> None:
    with pytest.raises(InvalidParameterError, match="Invalid composite parameters"):
        CompositeParameters.from_mapping({**BASE, **overrides})


def test_error_names_offending_field() -> None:
    with pytest.raises(InvalidParameterError) as exc_info:
        CompositeParameters.from_mapping({**BASE, "algorithm": "wiggle"})
    assert exc_info.value.parameter == "algorithm"
    assert exc_info.value.value == "wiggle"


def test_monitoring_may_start_with_data() -> None:
    params = CompositeParameters.from_mapping({**BASE, "monitor_start_date": "2023-01-01"})
    assert params.monitor_start_ms == params.start_ms


def test_frozen() -> None:
    params = CompositeParameters.from_mapping(BASE)
    with pytest.raises(ValidationError):
        params.min_obs = 5  # type: ignore[misc]


@pytest.mark.parametrize(
    ("mode", "expected"),
    [("best", 0.0), ("filter_steep", 12.5), ("combine", None), ("ascending", None)],
)
def test_effective_threshold(mode: str, expected: float | None) -> None:
    params = CompositeParameters.from_mapping({**BASE, "pass_mode": mode, "slope_threshold_deg": 12.5})
    assert params.effective_threshold_deg == expected


class TestLoadParameters:
    def test_load_with_overrides(self, tmp_path: Path) -> None:
        path = tmp_path / "params.json"
        path.write_text(json.dumps({**BASE, "algorithm": "trend"}), encoding="utf-8")
        params = load_parameters(path, algorithm=None, min_obs=5)
        assert params.algorithm is Algorithm.TREND
        assert params.min_obs == 5

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(InvalidParameterError, match="Cannot read"):
            load_parameters(tmp_path / "missing.json")

    def test_malformed_json(self, tmp_path: Path) -> None:
        path = tmp_path / "bad.json"
        path.write_text("{not json", encoding="utf-8")
        with pytest.raises(InvalidParameterError, match="Malformed JSON"):
            load_parameters(path)

    def test_non_object(self, tmp_path: Path) -> None:
        path = tmp_path / "list.json"
        path.write_text("[1, 2]", encoding="utf-8")
        with pytest.raises(InvalidParameterError, match="JSON object"):
            load_parameters(path)
