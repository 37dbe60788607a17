"""Backscatter spike detection and HSV colour encoding.

Per location, the largest value in the monitoring window is compared with
the window median:

- hue: when the maximum occurred, red at the window start through
  yellow/green/cyan/blue to magenta at the window end
- saturation: linear power ratio max/median, 1 (grey) to 10 (full colour)
- value: the median in dB, -20 dB (black) to 0 dB (full brightness)
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

import numpy as np
from matplotlib.colors import hsv_to_rgb

from sar_composite.compute.reductions import take_rows, winner_index
from sar_composite.domain.results import Band, FitStatus, LegendEntry, SpikeFitResult
from sar_composite.domain.series import PixelSeries
from sar_composite.errors import InvalidParameterError

if TYPE_CHECKING:
    from numpy.typing import NDArray

# The window end maps to hue 1/1.2 (magenta) so the scale never wraps back to red.
HUE_SPAN = 1.2
MAX_RATIO = 10.0
BASELINE_FLOOR_DB = -20.0

LEGEND_COLORS: tuple[tuple[str, str], ...] = (
    ("red", "white"),
    ("yellow", "black"),
    ("lime", "white"),
    ("cyan", "black"),
    ("blue", "white"),
    ("magenta", "white"),
)


@dataclass(frozen=True)
class SpikeFitBatch:
    status: NDArray[np.uint8]
    spike_timestamp_ms: NDArray[np.int64]
    spike_value: NDArray[np.float64]
    baseline: NDArray[np.float64]
    ratio: NDArray[np.float64]
    rgb: NDArray[np.float64]

    @property
    def valid(self) -> NDArray[np.bool_]:
        return self.status == FitStatus.OK

    def result(self, index: int) -> SpikeFitResult:
        status = FitStatus(int(self.status[index]))
        if not status.valid:
            return SpikeFitResult(
                status=status,
                spike_timestamp_ms=None,
                spike_value=None,
                baseline=None,
                difference=None,
                ratio=None,
                rgb=None,
            )
        spike_value = float(self.spike_value[index])
        baseline = float(self.baseline[index])
        r, g, b = (float(c) for c in self.rgb[index])
        return SpikeFitResult(
            status=status,
            spike_timestamp_ms=int(self.spike_timestamp_ms[index]),
            spike_value=spike_value,
            baseline=baseline,
            difference=spike_value - baseline,
            ratio=float(self.ratio[index]),
            rgb=(r, g, b),
        )

    def bands(self, shape: tuple[int, ...]) -> dict[str, Band]:
        ok = self.valid.reshape(shape)
        always = np.ones(shape, dtype=bool)
        return {
            "red": Band.masked("red", self.rgb[:, 0].reshape(shape), ok),
            "green": Band.masked("green", self.rgb[:, 1].reshape(shape), ok),
            "blue": Band.masked("blue", self.rgb[:, 2].reshape(shape), ok),
            "spike_timestamp_ms": Band.masked(
                "spike_timestamp_ms", self.spike_timestamp_ms.reshape(shape), ok
            ),
            "ratio": Band.masked("ratio", self.ratio.reshape(shape), ok),
            "baseline": Band.masked("baseline", self.baseline.reshape(shape), ok),
            "status": Band("status", self.status.reshape(shape), always),
        }


def spike_colors(
    spike_timestamp_ms: NDArray[np.int64],
    ratio: NDArray[np.float64],
    baseline: NDArray[np.float64],
    start_ms: int,
    end_ms: int,
) -> NDArray[np.float64]:
    """HSV encoding of (date, ratio, baseline) converted to RGB, shape (P, 3)."""
    span = float(end_ms - start_ms)
    hue = (np.asarray(spike_timestamp_ms, dtype=np.float64) - start_ms) / (HUE_SPAN * span)
    saturation = np.clip((ratio - 1.0) / (MAX_RATIO - 1.0), 0.0, 1.0)
    value = np.clip((baseline - BASELINE_FLOOR_DB) / -BASELINE_FLOOR_DB, 0.0, 1.0)
    return hsv_to_rgb(np.stack([hue, saturation, value], axis=-1))


def fit_spike_batch(
    time_ms: NDArray[np.int64],
    values: NDArray[np.float64],
    valid: NDArray[np.bool_],
    start_ms: int,
    end_ms: int,
) -> SpikeFitBatch:
    """Largest in-window value per location (row), ties going to the latest acquisition.

    Raises:
        InvalidParameterError: If the window is empty (end <= start).
    """
    if not end_ms > start_ms:
        raise InvalidParameterError(
            "end_ms", end_ms, f"Spike window end ({end_ms}) must be after start ({start_ms})"
        )
    n_rows = values.shape[0]
    time_ms = np.asarray(time_ms, dtype=np.int64)
    in_window = (time_ms >= start_ms) & (time_ms <= end_ms)
    use = valid & in_window[None, :]

    status = np.full(n_rows, FitStatus.OK, dtype=np.uint8)
    spike_ts = np.zeros(n_rows, dtype=np.int64)
    spike_value = np.full(n_rows, np.nan)
    baseline = np.full(n_rows, np.nan)
    ratio = np.full(n_rows, np.nan)
    rgb = np.full((n_rows, 3), np.nan)

    idx, found = winner_index(values, use, prefer="latest")
    status[~found] = FitStatus.NO_DATA
    if not np.any(found):
        return SpikeFitBatch(status, spike_ts, spike_value, baseline, ratio, rgb)

    rows = np.flatnonzero(found)
    spike_ts[rows] = time_ms[idx[rows]]
    spike_value[rows] = take_rows(values, idx)[rows]
    baseline[rows] = np.nanmedian(np.where(use[rows], values[rows], np.nan), axis=1)
    ratio[rows] = 10.0 ** ((spike_value[rows] - baseline[rows]) / 10.0)
    rgb[rows] = spike_colors(spike_ts[rows], ratio[rows], baseline[rows], start_ms, end_ms)

    return SpikeFitBatch(status, spike_ts, spike_value, baseline, ratio, rgb)


def fit_spike(series: PixelSeries, start_ms: int, end_ms: int) -> SpikeFitResult:
    """Spike at one location within ``[start_ms, end_ms]``."""
    batch = fit_spike_batch(
        series.time_ms, series.value[None, :], series.valid[None, :], start_ms, end_ms
    )
    return batch.result(0)


def spike_legend(start_ms: int, end_ms: int) -> list[LegendEntry]:
    """Six dates evenly spaced over the window with the hue each one maps to."""
    if not end_ms > start_ms:
        raise InvalidParameterError(
            "end_ms", end_ms, f"Legend window end ({end_ms}) must be after start ({start_ms})"
        )
    span = end_ms - start_ms
    n_steps = len(LEGEND_COLORS) - 1
    return [
        LegendEntry(
            timestamp_ms=int(start_ms + round(span * i / n_steps)),
            color_name=color,
            text_color=text,
        )
        for i, (color, text) in enumerate(LEGEND_COLORS)
    ]
