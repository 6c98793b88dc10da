"""
Segment pipeline
Fetches evidence, generates and stores segments and summaries, and reconciles derived events
"""

import asyncio
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Dict, List, Optional

from daytrace.core.db import StoreWriteError
from daytrace.core.logger import get_logger
from daytrace.core.protocols import (
    EventStoreProtocol,
    EvidenceRepositoryProtocol,
    SegmentStoreProtocol,
    SummaryStoreProtocol,
)
from daytrace.core.settings import DEFAULT_SETTINGS, PipelineSettings
from daytrace.core.timeutils import HOUR, day_hours, ensure_utc, floor_hour
from daytrace.models.evidence import HealthWorkout, LocationSample, ScreenSession, UserPlace

from .app_categories import AppCategoryResolver
from .derived_events import (
    build_commute_events,
    build_location_events,
    build_screen_time_events,
)
from .hourly_summary import generate_hourly_summary
from .place_enrichment import PlaceEnricher
from .reconciliation import ReconciliationEngine, apply_ops
from .segment_generator import SegmentGenerator

logger = get_logger(__name__)


@dataclass
class Evidence:
    samples: List[LocationSample] = field(default_factory=list)
    sessions: List[ScreenSession] = field(default_factory=list)
    workouts: List[HealthWorkout] = field(default_factory=list)
    places: List[UserPlace] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not (self.samples or self.sessions or self.workouts)


@dataclass
class StepResult:
    """Outcome of one pipeline step

    ``counters`` shows how far the step got, also when it failed.
    """

    success: bool
    reason: Optional[str] = None
    counters: Dict[str, int] = field(default_factory=dict)


def _empty_counters() -> Dict[str, int]:
    return {
        "hoursProcessed": 0,
        "segmentsCreated": 0,
        "placesLookedUp": 0,
        "summariesGenerated": 0,
    }


class SegmentPipeline:
    """Per-user orchestration over the evidence repository and the stores

    Args:
        evidence: Async evidence repository
        segment_store: Segment persistence (delete range + insert)
        summary_store: Hourly summary persistence
        event_store: Actual-calendar persistence, needed only for reconciliation
        settings: Thresholds and local timezone
        resolver: App category resolver
        enricher: Optional place enrichment stage
    """

    def __init__(
        self,
        evidence: EvidenceRepositoryProtocol,
        segment_store: SegmentStoreProtocol,
        summary_store: SummaryStoreProtocol,
        event_store: Optional[EventStoreProtocol] = None,
        settings: PipelineSettings = DEFAULT_SETTINGS,
        resolver: Optional[AppCategoryResolver] = None,
        enricher: Optional[PlaceEnricher] = None,
    ):
        self.evidence = evidence
        self.segment_store = segment_store
        self.summary_store = summary_store
        self.event_store = event_store
        self.settings = settings
        self.resolver = resolver or AppCategoryResolver()
        self.enricher = enricher
        self.generator = SegmentGenerator(settings=settings, resolver=self.resolver)
        self.engine = ReconciliationEngine(
            trim_floor_seconds=settings.trim_floor_seconds,
            extension_window_seconds=settings.extension_window_seconds,
        )

    async def fetch_evidence(self, user_id: str, start: datetime, end: datetime) -> Evidence:
        """Fetch all four sources concurrently; a failing source yields an empty list"""
        names = ("location samples", "screen sessions", "workouts", "user places")
        results = await asyncio.gather(
            self.evidence.fetch_samples(user_id, start, end),
            self.evidence.fetch_screen_sessions(user_id, start, end),
            self.evidence.fetch_workouts(user_id, start, end),
            self.evidence.fetch_user_places(user_id),
            return_exceptions=True,
        )

        cleaned: List[list] = []
        for name, result in zip(names, results):
            if isinstance(result, BaseException):
                logger.warning(f"Failed to fetch {name} for {user_id}, continuing without: {result}")
                cleaned.append([])
            else:
                cleaned.append(list(result or []))
        return Evidence(*cleaned)

    async def process_hour(self, user_id: str, hour_start: datetime) -> StepResult:
        """Regenerate segments and the summary for one hour

        Stored segments for the hour are replaced atomically; a locked summary
        is left as it is.
        """
        hour_start = floor_hour(hour_start)
        hour_end = hour_start + HOUR
        counters = _empty_counters()

        evidence = await self.fetch_evidence(user_id, hour_start, hour_end)
        segments = self.generator.generate(
            user_id,
            hour_start,
            evidence.samples,
            evidence.sessions,
            evidence.workouts,
            evidence.places,
        )

        if self.enricher is not None and segments:
            enrichment = await self.enricher.enrich(segments)
            segments = enrichment.segments
            counters["placesLookedUp"] = enrichment.places_looked_up

        try:
            counters["segmentsCreated"] = self.segment_store.replace_segments(
                user_id, hour_start, hour_end, segments
            )
            existing = self.summary_store.get_summary(user_id, hour_start)
            summary = generate_hourly_summary(
                user_id, hour_start, segments, existing=existing, tz_name=self.settings.timezone
            )
            if existing is None or not existing.is_locked:
                self.summary_store.upsert_summary(summary)
                counters["summariesGenerated"] = 1
        except StoreWriteError as e:
            logger.error(f"Processing {hour_start.isoformat()} for {user_id} failed: {e}")
            return StepResult(success=False, reason=str(e), counters=counters)

        counters["hoursProcessed"] = 1
        return StepResult(success=True, counters=counters)

    async def process_day(
        self,
        user_id: str,
        day: date,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> StepResult:
        """Process every local hour of ``day`` in order

        Stops at the first failed hour; ``cancel_event`` is checked between hours.
        """
        totals = _empty_counters()
        hours = day_hours(day, self.settings.timezone)
        logger.info(f"Processing {len(hours)} hours of {day.isoformat()} for {user_id}")

        for hour_start in hours:
            if cancel_event is not None and cancel_event.is_set():
                logger.info(
                    f"Day processing for {user_id} cancelled after {totals['hoursProcessed']} hours"
                )
                return StepResult(success=False, reason="cancelled", counters=totals)

            result = await self.process_hour(user_id, hour_start)
            for key, value in result.counters.items():
                totals[key] = totals.get(key, 0) + value
            if not result.success:
                return StepResult(
                    success=False,
                    reason=f"{hour_start.isoformat()}: {result.reason}",
                    counters=totals,
                )

        return StepResult(success=True, counters=totals)

    async def reconcile_window(
        self,
        user_id: str,
        start: datetime,
        end: datetime,
        previous_start: Optional[datetime] = None,
    ) -> StepResult:
        """Reconcile derived events for ``[start, end)`` into the event store

        Args:
            previous_start: Start of the preceding window; its events become
                extension candidates
        """
        if self.event_store is None:
            raise ValueError("reconcile_window needs an event store")

        start, end = ensure_utc(start), ensure_utc(end)
        counters: Dict[str, int] = {}

        segments = self.segment_store.get_segments(user_id, start, end)
        try:
            sessions = await self.evidence.fetch_screen_sessions(user_id, start, end)
        except Exception as e:
            logger.warning(f"Failed to fetch screen sessions for {user_id}, continuing without: {e}")
            sessions = []

        screen_events = build_screen_time_events(sessions, self.resolver, start, end)
        location_events = build_location_events(segments, start) + build_commute_events(
            segments, start
        )

        # Events that merely spill into this window belong to the previous one
        existing = [
            e for e in self.event_store.fetch_events(user_id, start, end) if e.start >= start
        ]
        previous = []
        if previous_start is not None:
            previous_start = ensure_utc(previous_start)
            previous = [
                e
                for e in self.event_store.fetch_events(user_id, previous_start, start)
                if previous_start <= e.start < start
            ]

        ops = self.engine.compute(existing, screen_events, location_events, previous)
        counters["protected"] = len(ops.protected_ids)

        try:
            counters.update(apply_ops(self.event_store, user_id, ops))
        except StoreWriteError as e:
            logger.error(f"Applying reconciliation for {user_id} failed: {e}")
            return StepResult(success=False, reason=str(e), counters=counters)

        logger.info(
            f"Reconciled {user_id} {start.isoformat()}..{end.isoformat()}: {counters}"
        )
        return StepResult(success=True, counters=counters)
