"""
daytrace CLI Interface
Command line interface implemented using Typer
"""

import asyncio
import signal
from datetime import date, datetime
from typing import Optional

import typer

from daytrace.config.loader import get_config, load_config
from daytrace.core.logger import get_logger, setup_logging
from daytrace.core.timeutils import HOUR, floor_hour

logger = get_logger(__name__)


def _parse_datetime(value: str, option: str) -> datetime:
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        logger.error(f"Invalid {option}: {value} (expected ISO 8601, e.g. 2024-05-01T09:00:00+00:00)")
        raise typer.Exit(1)


def _build_pipeline(config_file: Optional[str]):
    """Wire the sqlite stores, settings and optional place lookup from config"""
    from daytrace.core.db import get_db
    from daytrace.core.label_cache import PlaceLabelCache
    from daytrace.core.repositories import (
        SQLiteEventStore,
        SQLiteEvidenceRepository,
        SQLiteSegmentStore,
        SQLiteSummaryStore,
    )
    from daytrace.core.settings import PipelineSettings
    from daytrace.processing.pipeline import SegmentPipeline
    from daytrace.processing.place_enrichment import PlaceEnricher
    from daytrace.processing.place_lookup_client import HttpPlaceLookup

    load_config(config_file)
    setup_logging()
    config = get_config()
    db = get_db()

    lookup = HttpPlaceLookup.from_config(config)
    enricher = (
        PlaceEnricher(lookup, PlaceLabelCache(), max_points=lookup.max_points)
        if lookup is not None
        else None
    )
    return SegmentPipeline(
        evidence=SQLiteEvidenceRepository(db),
        segment_store=SQLiteSegmentStore(db),
        summary_store=SQLiteSummaryStore(db),
        event_store=SQLiteEventStore(db),
        settings=PipelineSettings.from_config(config),
        enricher=enricher,
    )


def _report(result, label: str) -> None:
    counters = ", ".join(f"{k}={v}" for k, v in result.counters.items())
    if result.success:
        typer.echo(f"{label}: ok ({counters})")
        return
    logger.error(f"{label} failed: {result.reason}")
    typer.echo(f"{label}: failed: {result.reason} ({counters})", err=True)
    raise typer.Exit(1)


def init_db(
    config_file: Optional[str] = typer.Option(None, help="Configuration file path"),
):
    """Initialize database"""
    try:
        from daytrace.core.db import get_db

        load_config(config_file)
        setup_logging()
        db = get_db()
        typer.echo(f"Database ready: {db.db_path}")
    except Exception as e:
        logger.error(f"Failed to initialize database: {e}")
        raise typer.Exit(1)


def process_hour(
    user: str = typer.Option(..., help="User id"),
    hour: str = typer.Option(..., help="Hour start, ISO 8601 (naive means UTC)"),
    config_file: Optional[str] = typer.Option(None, help="Configuration file path"),
):
    """Regenerate segments and the summary for one hour"""
    hour_start = floor_hour(_parse_datetime(hour, "hour"))
    pipeline = _build_pipeline(config_file)
    result = asyncio.run(pipeline.process_hour(user, hour_start))
    _report(result, f"process-hour {hour_start.isoformat()}")


def process_day(
    user: str = typer.Option(..., help="User id"),
    day: str = typer.Option(..., help="Local date, YYYY-MM-DD"),
    config_file: Optional[str] = typer.Option(None, help="Configuration file path"),
):
    """Regenerate every hour of a local day"""
    try:
        target = date.fromisoformat(day)
    except ValueError:
        logger.error(f"Invalid day: {day} (expected YYYY-MM-DD)")
        raise typer.Exit(1)

    pipeline = _build_pipeline(config_file)

    async def run_day():
        cancel_event = asyncio.Event()

        def signal_handler(sig, frame):
            logger.info("Stop signal received, finishing the current hour...")
            cancel_event.set()

        signal.signal(signal.SIGINT, signal_handler)
        signal.signal(signal.SIGTERM, signal_handler)

        return await pipeline.process_day(user, target, cancel_event)

    result = asyncio.run(run_day())
    _report(result, f"process-day {target.isoformat()}")


def reconcile(
    user: str = typer.Option(..., help="User id"),
    start: str = typer.Option(..., help="Window start, ISO 8601"),
    end: Optional[str] = typer.Option(None, help="Window end, ISO 8601 (default: start + 1h)"),
    with_previous: bool = typer.Option(
        True, help="Use the preceding window of equal length for extensions"
    ),
    config_file: Optional[str] = typer.Option(None, help="Configuration file path"),
):
    """Reconcile derived events for a window into the actual calendar"""
    window_start = _parse_datetime(start, "start")
    window_end = _parse_datetime(end, "end") if end else window_start + HOUR
    if window_end <= window_start:
        logger.error("Window end must be after its start")
        raise typer.Exit(1)

    previous_start: Optional[datetime] = None
    if with_previous:
        previous_start = window_start - (window_end - window_start)

    pipeline = _build_pipeline(config_file)
    result = asyncio.run(
        pipeline.reconcile_window(user, window_start, window_end, previous_start)
    )
    _report(result, f"reconcile {window_start.isoformat()}")


def main():
    """Main function"""
    app = typer.Typer()

    app.command()(init_db)  # Initialize database
    app.command()(process_hour)  # One hour
    app.command()(process_day)  # One local day
    app.command()(reconcile)  # Derived events into the calendar

    app()


if __name__ == "__main__":
    main()
