"""`sarc` command group: composite runs and the spike legend."""

from __future__ import annotations

import logging
import sys
from datetime import date, datetime
from pathlib import Path
from typing import Any

import click

from sar_composite.cli.common_cli import (
    EXIT_INPUT_ERROR,
    EXIT_RUNTIME_ERROR,
    SarcCliError,
    dump_json_output,
    require_existing_file,
    resolve_optional_output_path,
)
from sar_composite.compute.selection import PassMode
from sar_composite.compute.spike import spike_legend
from sar_composite.compute.trend import TrendWeighting
from sar_composite.domain.series import Region
from sar_composite.engine import DEFAULT_CHUNK_SIZE, run_composite
from sar_composite.errors import InvalidParameterError
from sar_composite.params import Algorithm, CompositeParameters, date_to_ms, load_parameters
from sar_composite.render import save_png
from sar_composite.sources import (
    XarraySeriesSource,
    XarrayTerrainSource,
    composite_to_dataset,
    open_dataset,
    write_dataset,
)

_DATE = click.DateTime(formats=["%Y-%m-%d"])
_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def _as_date(value: datetime | None) -> date | None:
    return None if value is None else value.date()


def _resolve_parameters(config_path: Path | None, overrides: dict[str, Any]) -> CompositeParameters:
    """Config file values, overridden by explicit options; dates default relative to today."""
    explicit = {k: v for k, v in overrides.items() if v is not None}
    try:
        if config_path is not None:
            require_existing_file(config_path, label="Parameter file")
            return load_parameters(config_path, **explicit)
        return CompositeParameters.relative_to(date.today(), **explicit)
    except InvalidParameterError as exc:
        raise SarcCliError(str(exc), exit_code=EXIT_INPUT_ERROR) from exc


def _open_input(path: Path, *, label: str) -> Any:
    require_existing_file(path, label=label)
    try:
        return open_dataset(path)
    except (OSError, TypeError, ValueError) as exc:
        raise SarcCliError(f"Cannot read {label.lower()} {path}: {exc}", exit_code=EXIT_INPUT_ERROR) from exc


@click.group()
@click.version_option(package_name="sar-composite")
@click.option("--verbose", "-v", is_flag=True, default=False, help="Log progress at DEBUG level.")
def cli(verbose: bool) -> None:
    """sar-composite CLI for SAR backscatter change composites."""
    logging.basicConfig(level=logging.DEBUG if verbose else logging.WARNING, format=_LOG_FORMAT)


@cli.command("composite")
@click.option("--input", "input_path", type=click.Path(path_type=Path), required=True, help="Backscatter stack (NetCDF).")
@click.option("--terrain", "terrain_path", type=click.Path(path_type=Path), default=None, help="Elevation grid (NetCDF).")
@click.option("--elevation-var", type=str, default="elevation", show_default=True)
@click.option("--config", "config_path", type=click.Path(path_type=Path), default=None, help="JSON parameter file.")
@click.option("--algorithm", type=click.Choice([a.value for a in Algorithm]), default=None)
@click.option("--pass-mode", type=click.Choice([m.value for m in PassMode]), default=None)
@click.option("--polarization", type=click.Choice(["VV", "VH"]), default=None)
@click.option("--start", "start", type=_DATE, default=None, help="First day of data.")
@click.option("--monitor-start", "monitor_start", type=_DATE, default=None, help="First day of monitoring.")
@click.option("--end", "end", type=_DATE, default=None, help="End of monitoring (exclusive).")
@click.option("--remove-season/--keep-season", default=None, help="Remove the annual harmonic first.")
@click.option("--min-obs", type=int, default=None)
@click.option("--trend-weighting", type=click.Choice([w.value for w in TrendWeighting]), default=None)
@click.option("--slope-threshold", type=float, default=None, help="Degrees, for pass mode filter_steep.")
@click.option("--region", type=float, nargs=4, default=None, metavar="XMIN YMIN XMAX YMAX")
@click.option("--chunk-size", type=int, default=DEFAULT_CHUNK_SIZE, show_default=True)
@click.option("--workers", type=int, default=1, show_default=True)
@click.option("--out", "out_path", type=click.Path(path_type=Path), required=True, help="Output NetCDF path.")
@click.option("--png", "png_path", type=click.Path(path_type=Path), default=None, help="Optional RGB preview.")
@click.option(
    "--summary-out",
    "summary_arg",
    type=str,
    default="-",
    show_default=True,
    help="JSON summary path; '-' writes to stdout.",
)
def composite_command(
    input_path: Path,
    terrain_path: Path | None,
    elevation_var: str,
    config_path: Path | None,
    algorithm: str | None,
    pass_mode: str | None,
    polarization: str | None,
    start: datetime | None,
    monitor_start: datetime | None,
    end: datetime | None,
    remove_season: bool | None,
    min_obs: int | None,
    trend_weighting: str | None,
    slope_threshold: float | None,
    region: tuple[float, float, float, float] | None,
    chunk_size: int,
    workers: int,
    out_path: Path,
    png_path: Path | None,
    summary_arg: str,
) -> None:
    """Compute a trend, step or spike composite and write it as NetCDF."""
    params = _resolve_parameters(
        config_path,
        {
            "algorithm": algorithm,
            "pass_mode": pass_mode,
            "polarization": polarization,
            "start_date": _as_date(start),
            "monitor_start_date": _as_date(monitor_start),
            "end_date": _as_date(end),
            "remove_season": remove_season,
            "min_obs": min_obs,
            "trend_weighting": trend_weighting,
            "slope_threshold_deg": slope_threshold,
        },
    )
    summary_path = resolve_optional_output_path(summary_arg)

    try:
        bbox = Region(*region) if region else None
    except ValueError as exc:
        raise SarcCliError(str(exc), exit_code=EXIT_INPUT_ERROR) from exc

    try:
        series_source = XarraySeriesSource(_open_input(input_path, label="Input stack"))
        terrain_source = (
            XarrayTerrainSource(_open_input(terrain_path, label="Terrain grid"), elevation_var=elevation_var)
            if terrain_path is not None
            else None
        )
    except ValueError as exc:
        raise SarcCliError(f"Invalid input data: {exc}", exit_code=EXIT_INPUT_ERROR) from exc

    try:
        result = run_composite(
            params,
            series_source,
            terrain_source,
            region=bbox,
            chunk_size=chunk_size,
            workers=workers,
        )
    except (InvalidParameterError, KeyError) as exc:
        raise SarcCliError(str(exc), exit_code=EXIT_INPUT_ERROR) from exc
    except ValueError as exc:
        raise SarcCliError(f"Invalid input data: {exc}", exit_code=EXIT_INPUT_ERROR) from exc
    except Exception as exc:
        raise SarcCliError(f"Composite failed: {exc}", exit_code=EXIT_RUNTIME_ERROR) from exc

    try:
        write_dataset(composite_to_dataset(result), out_path)
        if png_path is not None:
            save_png(result, png_path)
    except OSError as exc:
        raise SarcCliError(f"Cannot write output: {exc}", exit_code=EXIT_RUNTIME_ERROR) from exc

    summary = result.summary()
    summary["output"] = str(out_path)
    if png_path is not None:
        summary["png"] = str(png_path)
    dump_json_output(summary, summary_path)


@cli.command("legend")
@click.option("--start", "start", type=_DATE, required=True, help="First day of the monitoring window.")
@click.option("--end", "end", type=_DATE, required=True, help="End of the monitoring window.")
@click.option("--out", "output_arg", type=str, default="-", show_default=True, help="JSON path; '-' for stdout.")
def legend_command(start: datetime, end: datetime, output_arg: str) -> None:
    """Print the spike composite's date/colour legend as JSON."""
    try:
        entries = spike_legend(date_to_ms(start.date()), date_to_ms(end.date()))
    except InvalidParameterError as exc:
        raise SarcCliError(str(exc), exit_code=EXIT_INPUT_ERROR) from exc
    dump_json_output({"legend": [entry.to_dict() for entry in entries]}, resolve_optional_output_path(output_arg))


def main() -> int:
    """Main entry point for the CLI."""
    try:
        cli(standalone_mode=False)
        return 0
    except click.UsageError as e:
        e.show()
        return EXIT_INPUT_ERROR
    except click.ClickException as e:
        e.show()
        return e.exit_code
    except click.exceptions.Abort:
        click.echo("Aborted!", err=True)
        return EXIT_RUNTIME_ERROR


if __name__ == "__main__":
    sys.exit(main())
