"""
SQLite repository tests
"""

import asyncio
import json
from datetime import datetime, timezone

import pytest
from conftest import HOME, HOUR_START, at, session

from daytrace.core.db import DatabaseManager, StoreWriteError
from daytrace.core.repositories import (
    SQLiteEventStore,
    SQLiteEvidenceRepository,
    SQLiteSegmentStore,
    SQLiteSummaryStore,
    event_id_for,
)
from daytrace.core.sqls import queries
from daytrace.core.timeutils import HOUR, to_iso
from daytrace.models.events import (
    DerivedEvent,
    EventSource,
    EventUpdate,
    ReconciliationEvent,
    ScreenTimeMeta,
    UnknownMeta,
)
from daytrace.models.evidence import HealthWorkout, LocationSample
from daytrace.models.segments import ActivitySegment, HourlySummary, InferredActivity


def _segment(segment_id, start_min, end_min, activity=InferredActivity.DEEP_WORK):
    return ActivitySegment(
        id=segment_id,
        user_id="user-1",
        start=at(start_min),
        end=at(end_min),
        hour_bucket=HOUR_START,
        inferred_activity=activity,
        confidence=0.7,
    )


def _summary(title="Deep Work at Office", locked_at=None):
    return HourlySummary(
        id="summary:user-1:1715680800000",
        user_id="user-1",
        hour_start=HOUR_START,
        local_date="2024-05-14",
        title=title,
        description="Focused work",
        locked_at=locked_at,
    )


def _screen_event(app_id, start_min, end_min):
    source_id = f"screen:{app_id}:{start_min}"
    return DerivedEvent(
        source_id=source_id,
        title=app_id,
        start=at(start_min),
        end=at(end_min),
        meta=ScreenTimeMeta(source_id=source_id, app_id=app_id),
    )


class TestEvidenceRepository:
    @pytest.fixture(autouse=True)
    def _db(self, tmp_path):
        self.db = DatabaseManager(str(tmp_path / "evidence.db"))
        self.repo = SQLiteEvidenceRepository(self.db)

    def test_samples_window_and_naive_times(self):
        """Naive timestamps are stored and read back as UTC"""
        self.repo.add_samples(
            "user-1",
            [
                LocationSample(timestamp=datetime(2024, 5, 14, 9, 59), latitude=1.0, longitude=1.0),
                LocationSample(timestamp=datetime(2024, 5, 14, 10, 5), latitude=2.0, longitude=2.0,
                               is_mocked=True, speed=1.5),
                LocationSample(timestamp=datetime(2024, 5, 14, 11, 0), latitude=3.0, longitude=3.0),
            ],
        )

        samples = asyncio.run(self.repo.fetch_samples("user-1", HOUR_START, HOUR_START + HOUR))

        assert len(samples) == 1
        assert samples[0].timestamp == at(5)
        assert samples[0].timestamp.tzinfo is not None
        assert samples[0].is_mocked is True
        assert samples[0].speed == 1.5

    def test_sessions_overlapping_window_are_unclipped(self):
        self.repo.add_screen_sessions(
            "user-1",
            [session("code", "VS Code", -10, 5), session("ig", "Instagram", 70, 80)],
        )

        sessions = asyncio.run(
            self.repo.fetch_screen_sessions("user-1", HOUR_START, HOUR_START + HOUR)
        )

        assert [(s.app_id, s.start) for s in sessions] == [("code", at(-10))]
        assert sessions[0].id == session("code", "VS Code", -10, 5).session_id

    def test_workouts_and_places(self):
        self.repo.add_workout(
            "user-1", HealthWorkout(activity_type="running", start=at(10), end=at(40))
        )
        self.repo.add_user_place("user-1", HOME)

        workouts = asyncio.run(self.repo.fetch_workouts("user-1", HOUR_START, HOUR_START + HOUR))
        places = asyncio.run(self.repo.fetch_user_places("user-1"))

        assert [w.activity_type for w in workouts] == ["running"]
        assert places == [HOME]
        assert asyncio.run(self.repo.fetch_user_places("user-2")) == []

    def test_read_failure_yields_empty(self):
        with self.db.get_connection() as conn:
            conn.execute("DROP TABLE location_samples")
            conn.commit()

        assert self.repo.get_samples("user-1", HOUR_START, HOUR_START + HOUR) == []

    def test_write_failure_raises(self):
        with self.db.get_connection() as conn:
            conn.execute("DROP TABLE health_workouts")
            conn.commit()

        with pytest.raises(StoreWriteError):
            self.repo.add_workout(
                "user-1", HealthWorkout(activity_type="running", start=at(0), end=at(10))
            )


class TestSegmentStore:
    @pytest.fixture(autouse=True)
    def _db(self, tmp_path):
        self.db = DatabaseManager(str(tmp_path / "segments.db"))
        self.store = SQLiteSegmentStore(self.db)

    def test_replace_swaps_the_hour(self):
        end = HOUR_START + HOUR
        self.store.replace_segments(
            "user-1", HOUR_START, end, [_segment("a", 0, 30), _segment("b", 30, 60)]
        )
        count = self.store.replace_segments(
            "user-1", HOUR_START, end, [_segment("c", 0, 60, InferredActivity.MEETING)]
        )

        segments = self.store.get_segments("user-1", HOUR_START, end)
        assert count == 1
        assert [s.id for s in segments] == ["c"]
        assert segments[0].inferred_activity == InferredActivity.MEETING
        assert segments[0].start == HOUR_START

    def test_other_hours_untouched(self):
        next_hour = HOUR_START + HOUR
        self.store.replace_segments("user-1", HOUR_START, next_hour, [_segment("a", 0, 30)])
        self.store.replace_segments(
            "user-1", next_hour, next_hour + HOUR, [_segment("b", 60, 90)]
        )
        self.store.replace_segments("user-1", HOUR_START, next_hour, [])

        remaining = self.store.get_segments("user-1", HOUR_START, next_hour + HOUR)
        assert [s.id for s in remaining] == ["b"]

    def test_failed_replace_keeps_previous_segments(self):
        end = HOUR_START + HOUR
        self.store.replace_segments("user-1", HOUR_START, end, [_segment("a", 0, 30)])
        with self.db.get_connection() as conn:
            conn.execute(
                "CREATE TRIGGER reject_meetings BEFORE INSERT ON activity_segments "
                "WHEN NEW.inferred_activity = 'meeting' "
                "BEGIN SELECT RAISE(ABORT, 'rejected'); END"
            )
            conn.commit()

        with pytest.raises(StoreWriteError):
            self.store.replace_segments(
                "user-1", HOUR_START, end, [_segment("c", 0, 60, InferredActivity.MEETING)]
            )

        assert [s.id for s in self.store.get_segments("user-1", HOUR_START, end)] == ["a"]


class TestSummaryStore:
    @pytest.fixture(autouse=True)
    def _db(self, tmp_path):
        self.db = DatabaseManager(str(tmp_path / "summaries.db"))
        self.store = SQLiteSummaryStore(self.db)

    def test_upsert_replaces_unlocked(self):
        self.store.upsert_summary(_summary("First"))
        self.store.upsert_summary(_summary("Second"))

        stored = self.store.get_summary("user-1", HOUR_START)
        assert stored.title == "Second"
        assert [s.title for s in self.store.get_summaries_for_date("user-1", "2024-05-14")] == [
            "Second"
        ]

    def test_locked_summary_survives_upsert(self):
        locked_at = datetime(2024, 5, 14, 12, 0, tzinfo=timezone.utc)
        self.store.upsert_summary(_summary("Original"))
        self.store.set_summary_lock(_summary("Original", locked_at=locked_at))

        self.store.upsert_summary(_summary("Regenerated"))

        stored = self.store.get_summary("user-1", HOUR_START)
        assert stored.title == "Original"
        assert stored.locked_at == locked_at

    def test_unlock_then_regenerate(self):
        locked_at = datetime(2024, 5, 14, 12, 0, tzinfo=timezone.utc)
        self.store.upsert_summary(_summary("Original", locked_at=locked_at))
        self.store.set_summary_lock(_summary("Original"))
        self.store.upsert_summary(_summary("Regenerated"))

        assert self.store.get_summary("user-1", HOUR_START).title == "Regenerated"

    def test_missing_summary(self):
        assert self.store.get_summary("user-1", HOUR_START) is None


class TestEventStore:
    @pytest.fixture(autouse=True)
    def _db(self, tmp_path):
        self.db = DatabaseManager(str(tmp_path / "events.db"))
        self.store = SQLiteEventStore(self.db)

    def _window(self):
        return self.store.fetch_events("user-1", HOUR_START, HOUR_START + HOUR)

    def test_insert_and_fetch_overlapping(self):
        self.store.insert_events(
            "user-1", [_screen_event("code", 0, 20), _screen_event("ig", 70, 80)]
        )

        events = self._window()
        assert [e.id for e in events] == [event_id_for("user-1", "screen:code:0")]
        assert isinstance(events[0].meta, ScreenTimeMeta)
        assert events[0].meta.source_id == "screen:code:0"
        assert self.store.fetch_events("user-2", HOUR_START, HOUR_START + HOUR) == []

    def test_update_extend_delete(self):
        code, ig = _screen_event("code", 0, 20), _screen_event("ig", 30, 35)
        self.store.insert_events("user-1", [code, ig])
        code_id, ig_id = event_id_for("user-1", code.source_id), event_id_for("user-1", ig.source_id)

        self.store.update_event(
            "user-1",
            EventUpdate(event_id=code_id, title="Coding", start=at(5), end=at(25), meta=code.meta),
        )
        self.store.extend_event("user-1", ig_id, at(45))
        events = {e.id: e for e in self._window()}
        assert (events[code_id].title, events[code_id].start, events[code_id].end) == (
            "Coding", at(5), at(25),
        )
        assert events[ig_id].end == at(45)

        assert self.store.delete_events("user-1", [code_id, "missing"]) == 1
        assert [e.id for e in self._window()] == [ig_id]

    def test_lock_and_save(self):
        manual = ReconciliationEvent(
            id="user-dentist",
            user_id="user-1",
            title="Dentist",
            start=at(10),
            end=at(40),
            meta=UnknownMeta(source=EventSource.USER),
        )
        self.store.save_event(manual)
        self.store.insert_events("user-1", [_screen_event("code", 0, 20)])
        code_id = event_id_for("user-1", "screen:code:0")
        self.store.lock_event("user-1", code_id, at(50))

        events = {e.id: e for e in self._window()}
        assert events["user-dentist"].meta.source == EventSource.USER
        assert not events["user-dentist"].is_locked
        assert events[code_id].locked_at == at(50)

    def test_insert_never_replaces_locked_event(self):
        """A derived insert colliding with a locked row leaves it untouched"""
        self.store.insert_events("user-1", [_screen_event("code", 0, 20)])
        code_id = event_id_for("user-1", "screen:code:0")
        self.store.lock_event("user-1", code_id, at(50))

        assert self.store.insert_events("user-1", [_screen_event("code", 0, 45)]) == 0

        event = self._window()[0]
        assert (event.id, event.end, event.locked_at) == (code_id, at(20), at(50))

    def test_insert_never_replaces_user_event(self):
        code_id = event_id_for("user-1", "screen:code:0")
        self.store.save_event(
            ReconciliationEvent(
                id=code_id,
                user_id="user-1",
                title="Pairing",
                start=at(0),
                end=at(30),
                meta=UnknownMeta(source=EventSource.USER),
            )
        )

        inserted = self.store.insert_events(
            "user-1", [_screen_event("code", 0, 20), _screen_event("ig", 30, 35)]
        )

        assert inserted == 1
        events = {e.id: e for e in self._window()}
        assert events[code_id].title == "Pairing"
        assert events[code_id].meta.source == EventSource.USER

    def test_reinsert_refreshes_unlocked_event(self):
        self.store.insert_events("user-1", [_screen_event("code", 0, 20)])
        assert self.store.insert_events("user-1", [_screen_event("code", 0, 45)]) == 1
        assert [e.end for e in self._window()] == [at(45)]

    def test_locked_event_ignores_update_extend_delete(self):
        code = _screen_event("code", 0, 20)
        self.store.insert_events("user-1", [code])
        code_id = event_id_for("user-1", code.source_id)
        self.store.lock_event("user-1", code_id, at(50))

        update = EventUpdate(event_id=code_id, title="Coding", start=at(5), end=at(25), meta=code.meta)
        assert self.store.update_event("user-1", update) == 0
        assert self.store.extend_event("user-1", code_id, at(45)) == 0
        assert self.store.delete_events("user-1", [code_id]) == 0

        event = self._window()[0]
        assert (event.title, event.start, event.end) == ("code", at(0), at(20))

    def test_unrecognised_meta_read_as_unknown(self):
        self.db.execute_insert(
            queries.INSERT_EVENT,
            (
                "imported-1", "user-1", "Standup", to_iso(at(0)), to_iso(at(15)),
                "user", "calendar_import", "ext-42",
                json.dumps({"kind": "calendar_import", "source": "user", "sourceId": "ext-42"}),
            ),
        )

        event = self._window()[0]
        assert isinstance(event.meta, UnknownMeta)
        assert event.meta.source == EventSource.USER
        assert event.meta.source_id == "ext-42"
