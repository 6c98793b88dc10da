"""
SQLite repositories
Evidence reads plus the segment, summary and event stores used by the pipeline
"""

import asyncio
import json
import sqlite3
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence

from pydantic import TypeAdapter, ValidationError

from daytrace.core.db import DatabaseManager, StoreWriteError, get_db
from daytrace.core.logger import get_logger
from daytrace.core.sqls import queries
from daytrace.core.timeutils import from_iso, to_iso
from daytrace.models.events import (
    DerivedEvent,
    EventMeta,
    EventUpdate,
    ReconciliationEvent,
    UnknownMeta,
)
from daytrace.models.evidence import (
    GeoPoint,
    HealthWorkout,
    LocationSample,
    ScreenSession,
    UserPlace,
)
from daytrace.models.segments import ActivitySegment, HourlySummary

logger = get_logger(__name__)

_META_ADAPTER = TypeAdapter(EventMeta)


def _dump(model) -> str:
    return json.dumps(model.model_dump(mode="json"))


def event_id_for(user_id: str, source_id: str) -> str:
    return f"event:{user_id}:{source_id}"


class SQLiteRepository:
    """Shared access to the database manager"""

    def __init__(self, db: Optional[DatabaseManager] = None):
        self.db = db or get_db()


class SQLiteEvidenceRepository(SQLiteRepository):
    """Reads raw telemetry for a window; async wrappers run sqlite in a worker thread

    Read failures are logged and yield an empty list.
    """

    async def fetch_samples(
        self, user_id: str, start: datetime, end: datetime
    ) -> List[LocationSample]:
        return await asyncio.to_thread(self.get_samples, user_id, start, end)

    async def fetch_screen_sessions(
        self, user_id: str, start: datetime, end: datetime
    ) -> List[ScreenSession]:
        return await asyncio.to_thread(self.get_screen_sessions, user_id, start, end)

    async def fetch_workouts(
        self, user_id: str, start: datetime, end: datetime
    ) -> List[HealthWorkout]:
        return await asyncio.to_thread(self.get_workouts, user_id, start, end)

    async def fetch_user_places(self, user_id: str) -> List[UserPlace]:
        return await asyncio.to_thread(self.get_user_places, user_id)

    def get_samples(
        self, user_id: str, start: datetime, end: datetime
    ) -> List[LocationSample]:
        try:
            rows = self.db.execute_query(
                queries.SELECT_LOCATION_SAMPLES, (user_id, to_iso(start), to_iso(end))
            )
            return [
                LocationSample(
                    timestamp=from_iso(row["timestamp"]),
                    latitude=row["latitude"],
                    longitude=row["longitude"],
                    provider=row["provider"],
                    activity=row["activity"],
                    battery=row["battery"],
                    is_mocked=bool(row["is_mocked"]),
                    speed=row["speed"],
                    accuracy=row["accuracy"],
                )
                for row in rows
            ]
        except sqlite3.Error as e:
            logger.error(f"Failed to get location samples for {user_id}: {e}", exc_info=True)
            return []

    def get_screen_sessions(
        self, user_id: str, start: datetime, end: datetime
    ) -> List[ScreenSession]:
        """Sessions overlapping the window, unclipped"""
        try:
            rows = self.db.execute_query(
                queries.SELECT_SCREEN_SESSIONS, (user_id, to_iso(end), to_iso(start))
            )
            return [
                ScreenSession(
                    id=row["id"],
                    app_id=row["app_id"],
                    display_name=row["display_name"],
                    start=from_iso(row["start_time"]),
                    end=from_iso(row["end_time"]),
                )
                for row in rows
            ]
        except sqlite3.Error as e:
            logger.error(f"Failed to get screen sessions for {user_id}: {e}", exc_info=True)
            return []

    def get_workouts(
        self, user_id: str, start: datetime, end: datetime
    ) -> List[HealthWorkout]:
        try:
            rows = self.db.execute_query(
                queries.SELECT_HEALTH_WORKOUTS, (user_id, to_iso(end), to_iso(start))
            )
            return [
                HealthWorkout(
                    activity_type=row["activity_type"],
                    start=from_iso(row["start_time"]),
                    end=from_iso(row["end_time"]),
                )
                for row in rows
            ]
        except sqlite3.Error as e:
            logger.error(f"Failed to get workouts for {user_id}: {e}", exc_info=True)
            return []

    def get_user_places(self, user_id: str) -> List[UserPlace]:
        try:
            rows = self.db.execute_query(queries.SELECT_USER_PLACES, (user_id,))
            return [
                UserPlace(
                    id=row["id"],
                    label=row["label"],
                    category=row["category"],
                    centroid=GeoPoint(latitude=row["latitude"], longitude=row["longitude"]),
                    radius_meters=row["radius_meters"],
                )
                for row in rows
            ]
        except sqlite3.Error as e:
            logger.error(f"Failed to get user places for {user_id}: {e}", exc_info=True)
            return []

    def add_samples(self, user_id: str, samples: Sequence[LocationSample]) -> int:
        try:
            with self.db.transaction() as conn:
                conn.executemany(
                    queries.INSERT_LOCATION_SAMPLE,
                    [
                        (
                            user_id,
                            to_iso(s.timestamp),
                            s.latitude,
                            s.longitude,
                            s.provider,
                            s.activity,
                            s.battery,
                            int(s.is_mocked),
                            s.speed,
                            s.accuracy,
                        )
                        for s in samples
                    ],
                )
            return len(samples)
        except sqlite3.Error as e:
            logger.error(f"Failed to insert location samples for {user_id}: {e}", exc_info=True)
            raise StoreWriteError(f"location samples: {e}") from e

    def add_screen_sessions(self, user_id: str, sessions: Sequence[ScreenSession]) -> int:
        try:
            with self.db.transaction() as conn:
                conn.executemany(
                    queries.INSERT_SCREEN_SESSION,
                    [
                        (
                            s.session_id,
                            user_id,
                            s.app_id,
                            s.display_name,
                            to_iso(s.start),
                            to_iso(s.end),
                        )
                        for s in sessions
                    ],
                )
            return len(sessions)
        except sqlite3.Error as e:
            logger.error(f"Failed to insert screen sessions for {user_id}: {e}", exc_info=True)
            raise StoreWriteError(f"screen sessions: {e}") from e

    def add_workout(self, user_id: str, workout: HealthWorkout) -> int:
        try:
            return self.db.execute_insert(
                queries.INSERT_HEALTH_WORKOUT,
                (user_id, workout.activity_type, to_iso(workout.start), to_iso(workout.end)),
            )
        except sqlite3.Error as e:
            logger.error(f"Failed to insert workout for {user_id}: {e}", exc_info=True)
            raise StoreWriteError(f"workout: {e}") from e

    def add_user_place(self, user_id: str, place: UserPlace) -> None:
        try:
            self.db.execute_insert(
                queries.INSERT_USER_PLACE,
                (
                    place.id,
                    user_id,
                    place.label,
                    place.category,
                    place.centroid.latitude,
                    place.centroid.longitude,
                    place.radius_meters,
                ),
            )
        except sqlite3.Error as e:
            logger.error(f"Failed to insert place {place.id}: {e}", exc_info=True)
            raise StoreWriteError(f"user place: {e}") from e


class SQLiteSegmentStore(SQLiteRepository):
    """Activity segments, replaced wholesale per processed range"""

    def replace_segments(
        self,
        user_id: str,
        start: datetime,
        end: datetime,
        segments: Sequence[ActivitySegment],
    ) -> int:
        """Delete segments starting in ``[start, end)`` and insert ``segments``

        Both happen in one transaction: on failure the previous segments remain.
        """
        try:
            with self.db.transaction() as conn:
                conn.execute(
                    queries.DELETE_SEGMENTS_IN_RANGE, (user_id, to_iso(start), to_iso(end))
                )
                for segment in segments:
                    conn.execute(
                        queries.INSERT_SEGMENT,
                        (
                            segment.id,
                            user_id,
                            to_iso(segment.start),
                            to_iso(segment.end),
                            to_iso(segment.hour_bucket),
                            segment.place_id,
                            segment.inferred_activity.value,
                            _dump(segment),
                        ),
                    )
            logger.debug(f"Stored {len(segments)} segments for {user_id} at {start.isoformat()}")
            return len(segments)
        except sqlite3.Error as e:
            logger.error(f"Failed to store segments for {user_id}: {e}", exc_info=True)
            raise StoreWriteError(f"segments: {e}") from e

    def get_segments(
        self, user_id: str, start: datetime, end: datetime
    ) -> List[ActivitySegment]:
        try:
            rows = self.db.execute_query(
                queries.SELECT_SEGMENTS_IN_RANGE, (user_id, to_iso(start), to_iso(end))
            )
            return [ActivitySegment.model_validate(json.loads(row["data"])) for row in rows]
        except sqlite3.Error as e:
            logger.error(f"Failed to get segments for {user_id}: {e}", exc_info=True)
            return []


class SQLiteSummaryStore(SQLiteRepository):
    """Hourly summaries, one row per (user, hour)"""

    def get_summary(self, user_id: str, hour_start: datetime) -> Optional[HourlySummary]:
        try:
            rows = self.db.execute_query(queries.SELECT_SUMMARY, (user_id, to_iso(hour_start)))
        except sqlite3.Error as e:
            logger.error(f"Failed to get summary for {user_id}: {e}", exc_info=True)
            return None
        if not rows:
            return None
        return HourlySummary.model_validate(json.loads(rows[0]["data"]))

    def get_summaries_for_date(self, user_id: str, local_date: str) -> List[HourlySummary]:
        try:
            rows = self.db.execute_query(queries.SELECT_SUMMARIES_FOR_DATE, (user_id, local_date))
            return [HourlySummary.model_validate(json.loads(row["data"])) for row in rows]
        except sqlite3.Error as e:
            logger.error(f"Failed to get summaries for {user_id} on {local_date}: {e}", exc_info=True)
            return []

    def upsert_summary(self, summary: HourlySummary) -> None:
        try:
            self.db.execute_insert(
                queries.UPSERT_SUMMARY,
                (
                    summary.id,
                    summary.user_id,
                    to_iso(summary.hour_start),
                    summary.local_date,
                    _dump(summary),
                    to_iso(summary.locked_at) if summary.locked_at else None,
                ),
            )
        except sqlite3.Error as e:
            logger.error(f"Failed to upsert summary {summary.id}: {e}", exc_info=True)
            raise StoreWriteError(f"summary: {e}") from e

    def set_summary_lock(self, summary: HourlySummary) -> int:
        """Persist a lock or unlock; the only write allowed over a locked row"""
        try:
            return self.db.execute_update(
                queries.UPDATE_SUMMARY_LOCK,
                (
                    _dump(summary),
                    to_iso(summary.locked_at) if summary.locked_at else None,
                    summary.user_id,
                    to_iso(summary.hour_start),
                ),
            )
        except sqlite3.Error as e:
            logger.error(f"Failed to change lock on summary {summary.id}: {e}", exc_info=True)
            raise StoreWriteError(f"summary lock: {e}") from e


class SQLiteEventStore(SQLiteRepository):
    """The user's actual calendar"""

    def fetch_events(
        self, user_id: str, start: datetime, end: datetime
    ) -> List[ReconciliationEvent]:
        """Events overlapping ``[start, end)``"""
        try:
            rows = self.db.execute_query(
                queries.SELECT_EVENTS_OVERLAPPING, (user_id, to_iso(end), to_iso(start))
            )
        except sqlite3.Error as e:
            logger.error(f"Failed to get events for {user_id}: {e}", exc_info=True)
            return []
        return [self._row_to_event(row) for row in rows]

    def _row_to_event(self, row: Dict[str, Any]) -> ReconciliationEvent:
        raw_meta = json.loads(row["meta"]) if row["meta"] else {}
        try:
            meta = _META_ADAPTER.validate_python(raw_meta)
        except ValidationError:
            logger.warning(f"Unrecognised meta on event {row['id']}, treating as unknown")
            meta = UnknownMeta(
                source=raw_meta.get("source", "derived"),
                source_id=raw_meta.get("sourceId"),
            )
        return ReconciliationEvent(
            id=row["id"],
            user_id=row["user_id"],
            title=row["title"],
            start=from_iso(row["start_time"]),
            end=from_iso(row["end_time"]),
            meta=meta,
            locked_at=from_iso(row["locked_at"]) if row["locked_at"] else None,
        )

    def save_event(self, event: ReconciliationEvent) -> None:
        """Insert or replace an event as-is (manual entries, imports)"""
        try:
            with self.db.transaction() as conn:
                conn.execute(
                    queries.INSERT_EVENT,
                    (
                        event.id,
                        event.user_id,
                        event.title,
                        to_iso(event.start),
                        to_iso(event.end),
                        event.meta.source.value,
                        event.meta.kind,
                        event.meta.source_id,
                        _dump(event.meta),
                    ),
                )
                if event.locked_at is not None:
                    conn.execute(
                        queries.LOCK_EVENT, (to_iso(event.locked_at), event.id, event.user_id)
                    )
        except sqlite3.Error as e:
            logger.error(f"Failed to save event {event.id}: {e}", exc_info=True)
            raise StoreWriteError(f"event: {e}") from e

    def insert_events(self, user_id: str, events: Sequence[DerivedEvent]) -> int:
        """Write derived events; ids already held by locked or user events are skipped"""
        try:
            inserted = 0
            with self.db.transaction() as conn:
                for e in events:
                    event_id = event_id_for(user_id, e.source_id)
                    cursor = conn.execute(
                        queries.INSERT_DERIVED_EVENT,
                        (
                            event_id,
                            user_id,
                            e.title,
                            to_iso(e.start),
                            to_iso(e.end),
                            e.meta.source.value,
                            e.meta.kind,
                            e.source_id,
                            _dump(e.meta),
                        ),
                    )
                    if cursor.rowcount == 0:
                        logger.warning(f"Skipped insert over protected event {event_id}")
                    inserted += cursor.rowcount
            return inserted
        except sqlite3.Error as e:
            logger.error(f"Failed to insert events for {user_id}: {e}", exc_info=True)
            raise StoreWriteError(f"insert events: {e}") from e

    def update_event(self, user_id: str, update: EventUpdate) -> int:
        try:
            return self.db.execute_update(
                queries.UPDATE_EVENT,
                (
                    update.title,
                    to_iso(update.start),
                    to_iso(update.end),
                    update.meta.source.value,
                    update.meta.kind,
                    update.meta.source_id,
                    _dump(update.meta),
                    update.event_id,
                    user_id,
                ),
            )
        except sqlite3.Error as e:
            logger.error(f"Failed to update event {update.event_id}: {e}", exc_info=True)
            raise StoreWriteError(f"update event: {e}") from e

    def extend_event(self, user_id: str, event_id: str, new_end: datetime) -> int:
        try:
            return self.db.execute_update(queries.EXTEND_EVENT, (to_iso(new_end), event_id, user_id))
        except sqlite3.Error as e:
            logger.error(f"Failed to extend event {event_id}: {e}", exc_info=True)
            raise StoreWriteError(f"extend event: {e}") from e

    def delete_events(self, user_id: str, event_ids: Sequence[str]) -> int:
        try:
            deleted = 0
            with self.db.transaction() as conn:
                for event_id in event_ids:
                    deleted += conn.execute(queries.DELETE_EVENT, (event_id, user_id)).rowcount
            return deleted
        except sqlite3.Error as e:
            logger.error(f"Failed to delete events for {user_id}: {e}", exc_info=True)
            raise StoreWriteError(f"delete events: {e}") from e

    def lock_event(self, user_id: str, event_id: str, at: Optional[datetime] = None) -> int:
        """Confirm an event so reconciliation never touches it again"""
        locked_at = at or datetime.now(timezone.utc)
        try:
            return self.db.execute_update(queries.LOCK_EVENT, (to_iso(locked_at), event_id, user_id))
        except sqlite3.Error as e:
            logger.error(f"Failed to lock event {event_id}: {e}", exc_info=True)
            raise StoreWriteError(f"lock event: {e}") from e
