"""Composite run parameters.

``CompositeParameters`` is frozen to keep a run's configuration consistent
from validation to the last location. Validation failures surface as
``InvalidParameterError`` before any data is read.
"""

from __future__ import annotations

import json
from datetime import UTC, date, datetime, timedelta
from enum import Enum
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from sar_composite.compute.selection import DEFAULT_SLOPE_THRESHOLD_DEG, PassMode
from sar_composite.compute.step import DEFAULT_MIN_OBS
from sar_composite.compute.trend import TrendWeighting
from sar_composite.errors import InvalidParameterError

Polarization = Literal["VV", "VH"]

# Offsets of the default window relative to "today", in days.
DEFAULT_START_OFFSET_DAYS = -180
DEFAULT_MONITOR_OFFSET_DAYS = -90


class Algorithm(str, Enum):
    TREND = "trend"
    STEP = "step"
    SPIKE = "spike"


def date_to_ms(value: date) -> int:
    """Milliseconds since the Unix epoch at 00:00 UTC of ``value``."""
    return int(datetime(value.year, value.month, value.day, tzinfo=UTC).timestamp() * 1000)


class CompositeParameters(BaseModel):
    """Validated parameter bundle for one composite run.

    Attributes:
        start_date: First day of data (inclusive)
        monitor_start_date: First day of the monitoring period (inclusive);
            the baseline period is [start_date, monitor_start_date)
        end_date: End of the monitoring period (exclusive)
        polarization: Backscatter band to analyse
        pass_mode: How ascending/descending acquisitions are combined
        slope_threshold_deg: East-west slope above which only the favoured
            pass is kept, for pass_mode="filter_steep"
        remove_season: Fit and remove an annual harmonic per location
        algorithm: Which per-location fit produces the composite
        min_obs: Step breakpoints need more than this many later observations
        trend_weighting: Weighting of the trend fit
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    start_date: date
    monitor_start_date: date
    end_date: date
    polarization: Polarization = "VV"
    pass_mode: PassMode = PassMode.COMBINE
    slope_threshold_deg: float = Field(default=DEFAULT_SLOPE_THRESHOLD_DEG, ge=0.0, le=90.0)
    remove_season: bool = False
    algorithm: Algorithm = Algorithm.STEP
    min_obs: int = Field(default=DEFAULT_MIN_OBS, ge=0)
    trend_weighting: TrendWeighting = TrendWeighting.NONE

    @model_validator(mode="after")
    def _check_dates(self) -> CompositeParameters:
        if self.start_date > self.monitor_start_date:
            raise ValueError(
                f"start_date ({self.start_date}) must not be after "
                f"monitor_start_date ({self.monitor_start_date})"
            )
        if self.monitor_start_date >= self.end_date:
            raise ValueError(
                f"monitor_start_date ({self.monitor_start_date}) must be before "
                f"end_date ({self.end_date})"
            )
        return self

    @classmethod
    def from_mapping(cls, payload: dict[str, Any]) -> CompositeParameters:
        """Validate a plain mapping, raising InvalidParameterError on failure."""
        try:
            return cls.model_validate(payload)
        except ValidationError as exc:
            first = exc.errors()[0]
            location = ".".join(str(p) for p in first.get("loc", ())) or "parameters"
            raise InvalidParameterError(
                location,
                first.get("input"),
                f"Invalid composite parameters: {location}: {first.get('msg')}",
            ) from exc

    @classmethod
    def relative_to(cls, today: date, **overrides: Any) -> CompositeParameters:
        """Default window ending ``today``: 180 days of data, the last 90 monitored."""
        payload: dict[str, Any] = {
            "start_date": today + timedelta(days=DEFAULT_START_OFFSET_DAYS),
            "monitor_start_date": today + timedelta(days=DEFAULT_MONITOR_OFFSET_DAYS),
            "end_date": today,
        }
        payload.update(overrides)
        return cls.from_mapping(payload)

    @property
    def start_ms(self) -> int:
        return date_to_ms(self.start_date)

    @property
    def monitor_start_ms(self) -> int:
        return date_to_ms(self.monitor_start_date)

    @property
    def end_ms(self) -> int:
        return date_to_ms(self.end_date)

    @property
    def effective_threshold_deg(self) -> float | None:
        """Terrain threshold used by pass selection, None when terrain is not consulted."""
        if self.pass_mode is PassMode.BEST:
            return 0.0
        if self.pass_mode is PassMode.FILTER_STEEP:
            return float(self.slope_threshold_deg)
        return None


def load_parameters(path: Path, **overrides: Any) -> CompositeParameters:
    """Load parameters from a JSON object file; ``overrides`` win over file values."""
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise InvalidParameterError("config", str(path), f"Cannot read parameter file {path}: {exc}") from exc
    try:
        payload = json.loads(text)
    except json.JSONDecodeError as exc:
        raise InvalidParameterError("config", str(path), f"Malformed JSON in {path}: {exc}") from exc
    if not isinstance(payload, dict):
        raise InvalidParameterError("config", str(path), f"{path} must contain a JSON object")
    payload.update({k: v for k, v in overrides.items() if v is not None})
    return CompositeParameters.from_mapping(payload)
