"""Time-series and terrain sources, and the NetCDF export sink.

The engine only talks to two collaborators:

- ``SeriesSource.select(region, date_range, band)`` returning an
  ObservationStack sorted by acquisition time
- ``TerrainSource.terrain_at(region)`` returning a TerrainGrid on the same grid

In-memory implementations wrap prebuilt arrays; the xarray implementations
read a ``(time, y, x)`` Dataset with one variable per polarisation and a
``pass`` coordinate along ``time``.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any, Protocol

import numpy as np
import xarray as xr

from sar_composite.compute.terrain import terrain_from_elevation
from sar_composite.domain.series import ObservationStack, PassDirection, Region
from sar_composite.domain.terrain import TerrainGrid

if TYPE_CHECKING:
    from sar_composite.engine import CompositeResult

logger = logging.getLogger(__name__)

DateRange = tuple[int, int]

PASS_COORD = "pass"
NETCDF_ENGINE = "scipy"


class SeriesSource(Protocol):
    def select(self, region: Region | None, date_range: DateRange, band: str) -> ObservationStack: ...


class TerrainSource(Protocol):
    def terrain_at(self, region: Region | None) -> TerrainGrid: ...


class InMemorySeriesSource:
    """Serve windows of prebuilt stacks, one per polarisation band."""

    def __init__(self, stacks: dict[str, ObservationStack]) -> None:
        if not stacks:
            raise ValueError("InMemorySeriesSource needs at least one band")
        self._stacks = dict(stacks)

    @property
    def bands(self) -> list[str]:
        return sorted(self._stacks)

    def select(self, region: Region | None, date_range: DateRange, band: str) -> ObservationStack:
        if band not in self._stacks:
            raise KeyError(f"Band {band!r} not available; have {self.bands}")
        start_ms, end_ms = date_range
        return self._stacks[band].window(start_ms, end_ms).subset(region)


class InMemoryTerrainSource:
    def __init__(self, grid: TerrainGrid) -> None:
        self._grid = grid

    def terrain_at(self, region: Region | None) -> TerrainGrid:
        return self._grid.subset(region)


def _time_ms(times: xr.DataArray) -> np.ndarray[Any, np.dtype[np.int64]]:
    return times.values.astype("datetime64[ms]").astype(np.int64)


def _as_text(value: Any) -> str:
    # NetCDF3 char arrays may come back as bytes.
    return value.decode("utf-8") if isinstance(value, bytes) else str(value)


def _region_isel(obj: xr.Dataset, region: Region | None) -> xr.Dataset:
    if region is None:
        return obj
    rows, cols = region.indices(obj["x"].values.astype(np.float64), obj["y"].values.astype(np.float64))
    return obj.isel(y=rows, x=cols)


class XarraySeriesSource:
    """Serve backscatter windows from a ``(time, y, x)`` Dataset.

    Each polarisation is a data variable (e.g. ``VV``/``VH``) in dB; the
    ``pass`` coordinate along ``time`` holds ``ASCENDING``/``DESCENDING``.
    Acquisitions are sorted by time; duplicate timestamps are rejected.
    """

    def __init__(self, dataset: xr.Dataset) -> None:
        missing = [d for d in ("time", "y", "x") if d not in dataset.dims]
        if missing:
            raise ValueError(f"Dataset is missing dimensions {missing}")
        if PASS_COORD not in dataset.coords:
            raise ValueError(f"Dataset needs a {PASS_COORD!r} coordinate along time")
        ds = dataset.sortby("time")
        t = _time_ms(ds["time"])
        if t.size > 1 and np.any(np.diff(t) == 0):
            raise ValueError("Dataset has duplicate acquisition timestamps")
        self._ds = ds

    def select(self, region: Region | None, date_range: DateRange, band: str) -> ObservationStack:
        if band not in self._ds.data_vars:
            raise KeyError(f"Band {band!r} not in dataset; have {sorted(map(str, self._ds.data_vars))}")
        start_ms, end_ms = date_range
        ds = _region_isel(self._ds, region)
        t = _time_ms(ds["time"])
        sel = np.flatnonzero((t >= start_ms) & (t < end_ms))
        ds = ds.isel(time=sel)

        values = ds[band].transpose("time", "y", "x").values.astype(np.float64)
        passes = [PassDirection.parse(_as_text(p)) for p in ds[PASS_COORD].values]
        logger.debug(f"Selected {len(sel)} acquisitions of {band} on a {values.shape[1:]} grid")
        return ObservationStack.from_arrays(
            t[sel],
            values,
            ascending=[p is PassDirection.ASCENDING for p in passes],
            x=ds["x"].values,
            y=ds["y"].values,
        )


class XarrayTerrainSource:
    """Derive slope/aspect from an elevation variable with metric x/y coordinates."""

    def __init__(self, dataset: xr.Dataset, elevation_var: str = "elevation") -> None:
        if elevation_var not in dataset.data_vars:
            raise ValueError(f"Dataset has no elevation variable {elevation_var!r}")
        self._ds = dataset
        self._elevation_var = elevation_var

    def terrain_at(self, region: Region | None) -> TerrainGrid:
        # Derive on the full grid first so border cells keep their real neighbours.
        ds = self._ds
        grid = terrain_from_elevation(
            ds[self._elevation_var].transpose("y", "x").values.astype(np.float64),
            x=ds["x"].values,
            y=ds["y"].values,
        )
        return grid.subset(region)


def composite_to_dataset(result: CompositeResult) -> xr.Dataset:
    """Export sink: one float variable per band, NaN where masked."""
    data_vars: dict[str, Any] = {}
    for name, band in result.bands.items():
        if name == "status":
            data_vars[name] = (("y", "x"), band.values.astype(np.int32))
            continue
        data_vars[name] = (("y", "x"), np.where(band.valid, band.values.astype(np.float64), np.nan))

    attrs: dict[str, Any] = {
        "algorithm": result.algorithm,
        "polarization": result.polarization,
        "rgb_bands": ",".join(result.rgb_bands),
        "parameters": json.dumps(result.parameters, sort_keys=True),
        "digest": result.digest(),
    }
    if result.legend is not None:
        attrs["legend"] = json.dumps([entry.to_dict() for entry in result.legend])
    return xr.Dataset(data_vars=data_vars, coords={"y": result.y, "x": result.x}, attrs=attrs)


def open_dataset(path: Path) -> xr.Dataset:
    """Load a NetCDF file fully into memory."""
    with xr.open_dataset(path, engine=NETCDF_ENGINE) as ds:
        return ds.load()


def write_dataset(dataset: xr.Dataset, path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    dataset.to_netcdf(path, engine=NETCDF_ENGINE)
