"""Whole-raster composite driver.

Runs one of the per-location algorithms over every location of a region:

1. select the polarisation over ``[start, end)`` from the series source
2. look up terrain when the pass mode needs it
3. per chunk of locations: pass selection, optional season removal (model
   fitted on the baseline ``[start, monitor_start)``), then the algorithm

Chunks share no mutable state, so they may run on a thread pool; results are
assembled by chunk index and are identical for any chunk size or worker count.
Cancellation is cooperative and checked before each chunk.
"""

from __future__ import annotations

import logging
import threading
from collections import Counter
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, fields
from typing import TYPE_CHECKING, Any

import numpy as np

from sar_composite.compute.season import fit_season_batch, remove_season_batch
from sar_composite.compute.selection import ew_slope_for_grid, pass_selection_mask
from sar_composite.compute.spike import SpikeFitBatch, fit_spike_batch, spike_legend
from sar_composite.compute.step import StepFitBatch, fit_step_batch
from sar_composite.compute.trend import TrendFitBatch, fit_trend_batch
from sar_composite.domain.results import Band, FitStatus, LegendEntry
from sar_composite.errors import CompositeCancelledError, InvalidParameterError, status_error_type
from sar_composite.params import Algorithm, CompositeParameters
from sar_composite.utils.canonical import arrays_digest, canonical_hash

if TYPE_CHECKING:
    from numpy.typing import NDArray

    from sar_composite.domain.series import ObservationStack, Region
    from sar_composite.sources import SeriesSource, TerrainSource

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 4096

RGB_BANDS: dict[Algorithm, tuple[str, str, str]] = {
    Algorithm.STEP: ("left_level", "right_level", "r_squared"),
    Algorithm.TREND: ("level_at_start", "level_at_end", "r_squared"),
    Algorithm.SPIKE: ("red", "green", "blue"),
}

FitBatch = StepFitBatch | TrendFitBatch | SpikeFitBatch


class CancellationToken:
    """Thread-safe cancellation flag polled between location chunks."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self, completed_locations: int, total_locations: int) -> None:
        if self.cancelled:
            raise CompositeCancelledError(completed_locations, total_locations)


@dataclass(frozen=True)
class CompositeResult:
    """Named output bands of one composite run over a (H, W) grid."""

    algorithm: str
    polarization: str
    shape: tuple[int, int]
    x: NDArray[np.float64]
    y: NDArray[np.float64]
    bands: dict[str, Band]
    rgb_bands: tuple[str, str, str]
    legend: list[LegendEntry] | None
    parameters: dict[str, Any]

    def band(self, name: str) -> Band:
        try:
            return self.bands[name]
        except KeyError as exc:
            raise KeyError(f"No band {name!r}; have {sorted(self.bands)}") from exc

    @property
    def status(self) -> NDArray[np.uint8]:
        return self.bands["status"].values

    def status_counts(self) -> dict[str, int]:
        counts = Counter(int(s) for s in self.status.reshape(-1))
        return {status.name: counts.get(int(status), 0) for status in FitStatus}

    def masked_reasons(self) -> dict[str, int]:
        """Masked location counts per host-facing ErrorType."""
        reasons: Counter[str] = Counter()
        for name, count in self.status_counts().items():
            error_type = status_error_type(FitStatus[name])
            if error_type is not None and count:
                reasons[error_type.value] += count
        return dict(sorted(reasons.items()))

    def digest(self) -> str:
        """SHA-256 over every band (values and validity) and the parameters."""
        arrays: list[tuple[str, np.ndarray[Any, Any]]] = []
        for name in sorted(self.bands):
            arrays.append((f"{name}.values", self.bands[name].values))
            arrays.append((f"{name}.valid", self.bands[name].valid))
        return arrays_digest(arrays, metadata=self.parameters)

    def summary(self) -> dict[str, Any]:
        return {
            "algorithm": self.algorithm,
            "polarization": self.polarization,
            "shape": list(self.shape),
            "n_locations": int(self.shape[0] * self.shape[1]),
            "status_counts": self.status_counts(),
            "masked_reasons": self.masked_reasons(),
            "rgb_bands": list(self.rgb_bands),
            "legend": None if self.legend is None else [e.to_dict() for e in self.legend],
            "parameters": self.parameters,
            "parameters_digest": canonical_hash(self.parameters),
            "digest": self.digest(),
        }


@dataclass(frozen=True)
class _RunContext:
    params: CompositeParameters
    time_ms: NDArray[np.int64]
    ascending: NDArray[np.bool_]
    values: NDArray[np.float64]
    valid: NDArray[np.bool_]
    ew_slope_deg: NDArray[np.float64] | None


def _chunk_bounds(n_locations: int, chunk_size: int) -> list[tuple[int, int]]:
    if n_locations == 0:
        return [(0, 0)]
    return [(lo, min(lo + chunk_size, n_locations)) for lo in range(0, n_locations, chunk_size)]


def _process_chunk(ctx: _RunContext, lo: int, hi: int) -> FitBatch:
    params = ctx.params
    values = ctx.values[lo:hi]
    valid = ctx.valid[lo:hi]

    keep = pass_selection_mask(
        params.pass_mode,
        ctx.ascending,
        n_locations=hi - lo,
        ew_slope_deg=None if ctx.ew_slope_deg is None else ctx.ew_slope_deg[lo:hi],
        slope_threshold_deg=params.slope_threshold_deg,
    )
    valid = valid & keep
    values = np.where(valid, values, np.nan)

    if params.remove_season:
        baseline = ctx.time_ms < params.monitor_start_ms
        model = fit_season_batch(ctx.time_ms[baseline], values[:, baseline], valid[:, baseline])
        values, valid = remove_season_batch(model, ctx.time_ms, values, valid)

    monitor = ctx.time_ms >= params.monitor_start_ms
    if params.algorithm is Algorithm.STEP:
        return fit_step_batch(
            ctx.time_ms,
            values,
            valid,
            ctx.time_ms[monitor],
            values[:, monitor],
            valid[:, monitor],
            min_obs=params.min_obs,
        )
    if params.algorithm is Algorithm.TREND:
        return fit_trend_batch(
            ctx.time_ms[monitor],
            values[:, monitor],
            valid[:, monitor],
            params.monitor_start_ms,
            params.end_ms,
            weighting=params.trend_weighting,
        )
    return fit_spike_batch(
        ctx.time_ms[monitor],
        values[:, monitor],
        valid[:, monitor],
        params.monitor_start_ms,
        params.end_ms,
    )


def _concat_batches(batches: list[FitBatch]) -> FitBatch:
    first = batches[0]
    if len(batches) == 1:
        return first
    merged = {f.name: np.concatenate([getattr(b, f.name) for b in batches], axis=0) for f in fields(first)}
    return type(first)(**merged)


def _run_chunks(
    ctx: _RunContext,
    bounds: list[tuple[int, int]],
    *,
    workers: int,
    cancel_token: CancellationToken | None,
) -> list[FitBatch]:
    total = bounds[-1][1]

    if workers <= 1:
        batches: list[FitBatch] = []
        completed = 0
        for i, (lo, hi) in enumerate(bounds):
            if cancel_token is not None:
                cancel_token.raise_if_cancelled(completed, total)
            batches.append(_process_chunk(ctx, lo, hi))
            completed = hi
            logger.debug(f"Chunk {i + 1}/{len(bounds)} done ({hi - lo} locations)")
        return batches

    def run_one(index: int) -> FitBatch:
        if cancel_token is not None and cancel_token.cancelled:
            raise CompositeCancelledError(0, total)
        lo, hi = bounds[index]
        return _process_chunk(ctx, lo, hi)

    results: dict[int, FitBatch] = {}
    completed = 0
    with ThreadPoolExecutor(max_workers=workers) as pool:
        future_map = {pool.submit(run_one, i): i for i in range(len(bounds))}
        for fut in as_completed(future_map):
            index = future_map[fut]
            try:
                results[index] = fut.result()
            except CompositeCancelledError as exc:
                pool.shutdown(wait=True, cancel_futures=True)
                raise CompositeCancelledError(completed, total) from exc
            lo, hi = bounds[index]
            completed += hi - lo
            logger.debug(f"Chunk {index + 1}/{len(bounds)} done ({hi - lo} locations)")
    return [results[i] for i in range(len(bounds))]


def _terrain_ew_slope(
    terrain_source: TerrainSource | None,
    region: Region | None,
    stack: ObservationStack,
    params: CompositeParameters,
) -> NDArray[np.float64] | None:
    if terrain_source is None or not params.pass_mode.needs_terrain:
        return None
    grid = terrain_source.terrain_at(region)
    if grid.shape != stack.shape:
        raise ValueError(f"Terrain grid shape {grid.shape} does not match series grid {stack.shape}")
    return ew_slope_for_grid(grid.slope_rad, grid.aspect_rad)


def run_composite(
    params: CompositeParameters,
    series_source: SeriesSource,
    terrain_source: TerrainSource | None = None,
    *,
    region: Region | None = None,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    workers: int = 1,
    cancel_token: CancellationToken | None = None,
) -> CompositeResult:
    """Compute the configured composite for every location in ``region``.

    Args:
        params: Validated run parameters
        series_source: Provides the backscatter stack for the polarisation
        terrain_source: Provides slope/aspect; required for pass modes
            "best" and "filter_steep"
        region: Bounding box in grid units, None for the whole grid
        chunk_size: Locations per unit of work
        workers: Threads processing chunks; 1 runs inline
        cancel_token: Polled before every chunk

    Returns:
        CompositeResult with the algorithm's bands, NaN/0 where masked.

    Raises:
        InvalidParameterError: For unusable run settings, before any data is read.
        CompositeCancelledError: If ``cancel_token`` is cancelled mid-run.
    """
    if chunk_size < 1:
        raise InvalidParameterError("chunk_size", chunk_size, "chunk_size must be >= 1")
    if workers < 1:
        raise InvalidParameterError("workers", workers, "workers must be >= 1")
    if params.pass_mode.needs_terrain and terrain_source is None:
        raise InvalidParameterError(
            "pass_mode",
            params.pass_mode.value,
            f"pass_mode {params.pass_mode.value!r} requires a terrain source",
        )

    stack = series_source.select(region, (params.start_ms, params.end_ms), params.polarization)
    ew_slope = _terrain_ew_slope(terrain_source, region, stack, params)

    values, valid = stack.rows()
    # Row-contiguous copies keep per-location reductions independent of chunk size.
    ctx = _RunContext(
        params=params,
        time_ms=stack.time_ms,
        ascending=stack.ascending,
        values=np.ascontiguousarray(values),
        valid=np.ascontiguousarray(valid),
        ew_slope_deg=ew_slope,
    )
    bounds = _chunk_bounds(stack.n_locations, chunk_size)
    logger.info(
        f"Running {params.algorithm.value} composite on {params.polarization}: "
        f"grid {stack.shape}, {stack.n_times} acquisitions, {len(bounds)} chunks"
    )

    batches = _run_chunks(ctx, bounds, workers=workers, cancel_token=cancel_token)
    batch = _concat_batches(batches)

    result = CompositeResult(
        algorithm=params.algorithm.value,
        polarization=params.polarization,
        shape=stack.shape,
        x=stack.x.copy(),
        y=stack.y.copy(),
        bands=batch.bands(stack.shape),
        rgb_bands=RGB_BANDS[params.algorithm],
        legend=(
            spike_legend(params.monitor_start_ms, params.end_ms)
            if params.algorithm is Algorithm.SPIKE
            else None
        ),
        parameters=params.model_dump(mode="json"),
    )

    counts = result.status_counts()
    logger.info(f"Composite finished: {counts}")
    if stack.n_locations and counts[FitStatus.OK.name] == 0:
        logger.warning(f"Every one of {stack.n_locations} locations is masked")
    return result
