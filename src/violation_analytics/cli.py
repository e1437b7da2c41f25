from __future__ import annotations

from datetime import date, datetime
from pathlib import Path

import typer

from violation_analytics.config import AppConfig, load_config
from violation_analytics.features.buckets import GRANULARITIES, build_bucket_frame
from violation_analytics.features.geo import max_observed_count, normalize_geo_stats, summarize_geo
from violation_analytics.features.intensity import scale_heat_intensity
from violation_analytics.io.read import FileRecordSource, load_json_records, load_records
from violation_analytics.logging import configure_logging
from violation_analytics.pipeline.run_all import run_all
from violation_analytics.preprocess.time import parse_date_value, system_clock
from violation_analytics.ranges.state import TimeRangeState

app = typer.Typer(no_args_is_help=True, add_completion=False)

NOW_FORMATS = ["%Y-%m-%d", "%Y-%m-%dT%H:%M:%S", "%Y-%m-%d %H:%M:%S"]


def _load_app_config(config_path: Path | None) -> AppConfig:
    try:
        return load_config(config_path)
    except ValueError as exc:
        raise typer.BadParameter(str(exc)) from exc


def _option_date(value: str | None, option_name: str) -> date | None:
    if value is None:
        return None
    parsed = parse_date_value(value)
    if parsed is None:
        raise typer.BadParameter(f"Could not parse {option_name}: {value!r}")
    return parsed.date()


def _range_from_options(
    token: str | None,
    start: str | None,
    end: str | None,
    *,
    option_prefix: str = "",
) -> TimeRangeState | None:
    if start is None and end is None and token is None:
        return None
    if start is not None or end is not None:
        return TimeRangeState.absolute(
            _option_date(start, f"--{option_prefix}start"),
            _option_date(end, f"--{option_prefix}end"),
        )
    return TimeRangeState.relative(token)


def _check_granularity(granularity: str) -> str:
    if granularity not in GRANULARITIES:
        raise typer.BadParameter(
            f"granularity must be one of {', '.join(GRANULARITIES)}; got {granularity!r}"
        )
    return granularity


@app.command("resolve-range")
def resolve_range(
    token: str = typer.Option("30d", help="Relative range token (1d, 7d, 30d, 90d, 1y, ytd, mtd)."),
    start: str | None = typer.Option(None, help="Absolute range start date."),
    end: str | None = typer.Option(None, help="Absolute range end date."),
    now: datetime | None = typer.Option(None, formats=NOW_FORMATS),
) -> None:
    """Print the concrete bounds of a relative or absolute time range."""
    configure_logging()
    state = _range_from_options(token, start, end) or TimeRangeState()
    window = state.window(now or system_clock())
    if window is None:
        typer.echo(f"{state.describe()}: range is incomplete")
        raise typer.Exit(code=1)
    typer.echo(f"{state.describe()}: {window.start.isoformat()} -> {window.end.isoformat()}")


@app.command()
def bucket(
    records: Path = typer.Option(..., exists=True, readable=True, resolve_path=True),
    granularity: str = typer.Option("week", help="day, week or month."),
    now: datetime | None = typer.Option(None, formats=NOW_FORMATS),
) -> None:
    """Bucket dated count records and print the summary rows."""
    configure_logging()
    frame = build_bucket_frame(
        load_records(records),
        _check_granularity(granularity),  # type: ignore[arg-type]
        now=now,
    )
    if frame.empty:
        typer.echo("No dated records to bucket.")
        return
    typer.echo(frame.drop(columns=["end_of_period"]).to_string(index=False))


@app.command()
def geo(
    stats: Path = typer.Option(..., exists=True, readable=True, resolve_path=True),
    zoom: float = typer.Option(5.0, help="Current map zoom level."),
    config: Path | None = typer.Option(None, exists=True, readable=True, resolve_path=True),
) -> None:
    """Normalize geo stats and print heatmap totals and intensity."""
    configure_logging()
    cfg = _load_app_config(config)
    normalization = normalize_geo_stats(load_json_records(stats))
    totals = summarize_geo(normalization, unique_precision=cfg.geo.unique_precision)
    max_intensity = scale_heat_intensity(max_observed_count(normalization), zoom, cfg.intensity)
    typer.echo(
        f"points={len(normalization.points)} hotspots={len(normalization.hotspots)} "
        f"violations={totals.total_violations} locations={totals.total_hotspots} "
        f"cities={totals.total_cities} max_intensity={max_intensity:g}"
    )


@app.command()
def intensity(
    zoom: float = typer.Option(..., help="Current map zoom level."),
    max_count: float | None = typer.Option(None, help="Largest observed count; omit when no data."),
    config: Path | None = typer.Option(None, exists=True, readable=True, resolve_path=True),
) -> None:
    """Print the heat layer intensity ceiling for a zoom level."""
    cfg = _load_app_config(config)
    typer.echo(f"{scale_heat_intensity(max_count, zoom, cfg.intensity):g}")


@app.command("run-all")
def run_all_command(
    out: Path = typer.Option(Path("out"), resolve_path=True),
    records: Path | None = typer.Option(None, exists=True, readable=True, resolve_path=True),
    geo_stats: Path | None = typer.Option(None, exists=True, readable=True, resolve_path=True),
    config: Path | None = typer.Option(None, exists=True, readable=True, resolve_path=True),
    token: str | None = typer.Option(None, help="Dashboard-wide relative range token."),
    start: str | None = typer.Option(None, help="Dashboard-wide absolute start date."),
    end: str | None = typer.Option(None, help="Dashboard-wide absolute end date."),
    local_token: str | None = typer.Option(None, help="Per-chart relative range override."),
    local_start: str | None = typer.Option(None, help="Per-chart absolute start date."),
    local_end: str | None = typer.Option(None, help="Per-chart absolute end date."),
    granularity: str | None = typer.Option(None, help="day, week or month."),
    zoom: float = typer.Option(5.0, help="Current map zoom level."),
    violation_type: list[str] | None = typer.Option(None, help="Keep only these violation types."),
    now: datetime | None = typer.Option(None, formats=NOW_FORMATS),
) -> None:
    """Resolve the effective range, bucket trends, normalize geo stats and write outputs."""
    configure_logging()
    if records is None and geo_stats is None:
        raise typer.BadParameter("Provide at least one of --records or --geo-stats")
    cfg = _load_app_config(config)
    summary_path = run_all(
        out,
        cfg,
        trend_source=FileRecordSource(records) if records is not None else None,
        geo_source=FileRecordSource(geo_stats) if geo_stats is not None else None,
        global_range=_range_from_options(token, start, end),
        local_range=_range_from_options(
            local_token, local_start, local_end, option_prefix="local-"
        ),
        granularity=_check_granularity(granularity) if granularity else None,  # type: ignore
        zoom_level=zoom,
        violation_types=violation_type,
        now=now,
    )
    typer.echo(f"Run complete. Summary: {summary_path}")
