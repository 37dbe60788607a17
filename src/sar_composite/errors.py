"""Local error taxonomy for sar-composite.

Per-location problems (too few observations, underdetermined fits) are never
raised: they are recorded as ``FitStatus`` codes on the masked result. Only
whole-run problems raise, and they do so before any location is computed.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from sar_composite.domain.results import FitStatus


class ErrorType(str, Enum):
    """Error categories for host-facing envelopes.

    INSUFFICIENT_DATA and DEGENERATE_FIT are never raised here; hosts use them
    when translating masked ``FitStatus`` codes (see ``status_error_type``).
    """

    INVALID_PARAMETER = "INVALID_PARAMETER"
    INVALID_DATA = "INVALID_DATA"
    INSUFFICIENT_DATA = "INSUFFICIENT_DATA"
    DEGENERATE_FIT = "DEGENERATE_FIT"
    CANCELLED = "CANCELLED"


class ErrorEnvelope(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    type: ErrorType
    message: str
    context: dict[str, Any] = Field(default_factory=dict)


def make_error(error_type: ErrorType, message: str, **context: Any) -> ErrorEnvelope:
    return ErrorEnvelope(type=error_type, message=message, context=dict(context))


class InvalidParameterError(ValueError):
    """Raised when a run is configured with an unusable parameter.

    Attributes:
        parameter: Name of the offending parameter (e.g., "weighting").
        value: The rejected value.
    """

    def __init__(self, parameter: str, value: Any, message: str | None = None) -> None:
        self.parameter = parameter
        self.value = value
        super().__init__(message or f"Invalid value for {parameter}: {value!r}")

    def to_envelope(self) -> ErrorEnvelope:
        return make_error(
            ErrorType.INVALID_PARAMETER,
            str(self),
            parameter=self.parameter,
            value=repr(self.value),
        )


class CompositeCancelledError(RuntimeError):
    """Raised when a whole-raster run is cancelled between location chunks."""

    def __init__(self, completed_locations: int, total_locations: int) -> None:
        self.completed_locations = completed_locations
        self.total_locations = total_locations
        super().__init__(
            f"Composite cancelled after {completed_locations}/{total_locations} locations"
        )

    def to_envelope(self) -> ErrorEnvelope:
        return make_error(
            ErrorType.CANCELLED,
            str(self),
            completed_locations=self.completed_locations,
            total_locations=self.total_locations,
        )


def status_error_type(status: int) -> ErrorType | None:
    """ErrorType for a per-location ``FitStatus`` code, None for OK.

    NO_DATA and INSUFFICIENT_DATA both map to INSUFFICIENT_DATA.
    """
    code = FitStatus(int(status))
    if code is FitStatus.OK:
        return None
    if code is FitStatus.DEGENERATE_FIT:
        return ErrorType.DEGENERATE_FIT
    return ErrorType.INSUFFICIENT_DATA
