"""
Segment pipeline tests
"""

import asyncio
from datetime import date, datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest
from conftest import HOME, HOUR_START, OFFICE, at, dwell_samples, session

from daytrace.core.db import DatabaseManager, StoreWriteError
from daytrace.core.repositories import (
    SQLiteEventStore,
    SQLiteEvidenceRepository,
    SQLiteSegmentStore,
    SQLiteSummaryStore,
    event_id_for,
)
from daytrace.core.settings import PipelineSettings
from daytrace.core.timeutils import HOUR
from daytrace.models.events import EventSource, ReconciliationEvent, ScreenTimeMeta, UnknownMeta
from daytrace.models.segments import HourlySummary
from daytrace.processing.pipeline import SegmentPipeline, StepResult


def _evidence(samples=(), sessions=(), workouts=(), places=(HOME, OFFICE)):
    evidence = AsyncMock()
    evidence.fetch_samples.return_value = list(samples)
    evidence.fetch_screen_sessions.return_value = list(sessions)
    evidence.fetch_workouts.return_value = list(workouts)
    evidence.fetch_user_places.return_value = list(places)
    return evidence


def _stores():
    segment_store = MagicMock()
    segment_store.replace_segments.side_effect = lambda user, start, end, segments: len(segments)
    summary_store = MagicMock()
    summary_store.get_summary.return_value = None
    return segment_store, summary_store


class TestFetchEvidence:
    def test_failed_source_degrades_to_empty(self):
        evidence = _evidence(sessions=[session("code", "VS Code", 0, 10)])
        evidence.fetch_samples.side_effect = RuntimeError("sensor db locked")
        pipeline = SegmentPipeline(evidence, *_stores())

        result = asyncio.run(pipeline.fetch_evidence("user-1", HOUR_START, HOUR_START + HOUR))

        assert result.samples == []
        assert [s.app_id for s in result.sessions] == ["code"]
        assert result.places == [HOME, OFFICE]


class TestProcessHour:
    def setup_method(self):
        self.segment_store, self.summary_store = _stores()
        self.evidence = _evidence(
            samples=dwell_samples(HOME, 0, 55),
            sessions=[session("code", "VS Code", 10, 30)],
        )
        self.pipeline = SegmentPipeline(self.evidence, self.segment_store, self.summary_store)

    def test_segments_and_summary_are_stored(self):
        result = asyncio.run(self.pipeline.process_hour("user-1", at(17)))

        assert result.success
        user, start, end, segments = self.segment_store.replace_segments.call_args[0]
        assert (user, start, end) == ("user-1", HOUR_START, HOUR_START + HOUR)
        assert segments and segments[0].place_id == HOME.id
        assert result.counters["segmentsCreated"] == len(segments)
        assert result.counters["summariesGenerated"] == 1
        assert result.counters["hoursProcessed"] == 1

        summary = self.summary_store.upsert_summary.call_args[0][0]
        assert summary.hour_start == HOUR_START
        assert summary.local_date == "2024-05-14"

    def test_locked_summary_is_left_alone(self):
        self.summary_store.get_summary.return_value = HourlySummary(
            id="summary:user-1:locked",
            user_id="user-1",
            hour_start=HOUR_START,
            local_date="2024-05-14",
            title="Dentist",
            description="Edited by hand",
            locked_at=at(90),
        )

        result = asyncio.run(self.pipeline.process_hour("user-1", HOUR_START))

        assert result.success
        self.summary_store.upsert_summary.assert_not_called()
        assert result.counters["summariesGenerated"] == 0

    def test_store_failure_fails_the_step(self):
        self.segment_store.replace_segments.side_effect = StoreWriteError("segments: disk I/O error")

        result = asyncio.run(self.pipeline.process_hour("user-1", HOUR_START))

        assert not result.success
        assert "disk I/O error" in result.reason
        assert result.counters["hoursProcessed"] == 0
        self.summary_store.upsert_summary.assert_not_called()

    def test_enricher_runs_after_generation(self):
        enricher = MagicMock()

        async def enrich(segments):
            result = MagicMock()
            result.segments = [s.model_copy(update={"place_label": "Cafe"}) for s in segments]
            result.places_looked_up = 2
            return result

        enricher.enrich.side_effect = enrich
        pipeline = SegmentPipeline(
            self.evidence, self.segment_store, self.summary_store, enricher=enricher
        )

        result = asyncio.run(pipeline.process_hour("user-1", HOUR_START))

        segments = self.segment_store.replace_segments.call_args[0][3]
        assert all(s.place_label == "Cafe" for s in segments)
        assert result.counters["placesLookedUp"] == 2


class TestProcessDay:
    def setup_method(self):
        self.segment_store, self.summary_store = _stores()
        self.pipeline = SegmentPipeline(_evidence(), self.segment_store, self.summary_store)

    def test_every_hour_processed(self):
        result = asyncio.run(self.pipeline.process_day("user-1", date(2024, 5, 14)))

        assert result.success
        assert result.counters["hoursProcessed"] == 24
        assert result.counters["summariesGenerated"] == 24
        first_hour = self.segment_store.replace_segments.call_args_list[0][0][1]
        assert first_hour == datetime(2024, 5, 14, tzinfo=timezone.utc)

    def test_local_day_in_timezone(self):
        pipeline = SegmentPipeline(
            _evidence(),
            self.segment_store,
            self.summary_store,
            settings=PipelineSettings(timezone="America/Los_Angeles"),
        )

        result = asyncio.run(pipeline.process_day("user-1", date(2024, 3, 10)))

        # Spring-forward day
        assert result.counters["hoursProcessed"] == 23
        first_hour = self.segment_store.replace_segments.call_args_list[0][0][1]
        assert first_hour == datetime(2024, 3, 10, 8, tzinfo=timezone.utc)

    def test_stops_at_first_failure(self):
        self.summary_store.upsert_summary.side_effect = [None, StoreWriteError("summary: locked db")]

        result = asyncio.run(self.pipeline.process_day("user-1", date(2024, 5, 14)))

        assert not result.success
        assert result.reason.startswith("2024-05-14T01:00:00+00:00")
        assert result.counters["hoursProcessed"] == 1
        assert self.segment_store.replace_segments.call_count == 2

    def test_cancel_between_hours(self):
        cancel_event = asyncio.Event()

        def replace(user, start, end, segments):
            cancel_event.set()
            return len(segments)

        self.segment_store.replace_segments.side_effect = replace

        result = asyncio.run(
            self.pipeline.process_day("user-1", date(2024, 5, 14), cancel_event)
        )

        assert result == StepResult(
            success=False,
            reason="cancelled",
            counters={
                "hoursProcessed": 1,
                "segmentsCreated": 0,
                "placesLookedUp": 0,
                "summariesGenerated": 1,
            },
        )


class TestReconcileWindow:
    @pytest.fixture(autouse=True)
    def _db(self, tmp_path):
        db = DatabaseManager(str(tmp_path / "pipeline.db"))
        self.evidence = SQLiteEvidenceRepository(db)
        self.events = SQLiteEventStore(db)
        self.pipeline = SegmentPipeline(
            self.evidence, SQLiteSegmentStore(db), SQLiteSummaryStore(db), event_store=self.events
        )
        self.evidence.add_user_place("user-1", HOME)
        self.evidence.add_samples("user-1", dwell_samples(HOME, 0, 55))
        self.evidence.add_screen_sessions("user-1", [session("code", "VS Code", 10, 30)])

    def _window(self):
        return self.events.fetch_events("user-1", HOUR_START, HOUR_START + HOUR)

    def test_requires_event_store(self):
        pipeline = SegmentPipeline(_evidence(), *_stores())
        with pytest.raises(ValueError):
            asyncio.run(pipeline.reconcile_window("user-1", HOUR_START, HOUR_START + HOUR))

    def test_end_to_end_and_rerun(self):
        assert asyncio.run(self.pipeline.process_hour("user-1", HOUR_START)).success

        first = asyncio.run(
            self.pipeline.reconcile_window("user-1", HOUR_START, HOUR_START + HOUR)
        )
        assert first.success
        assert first.counters["inserted"] >= 2

        events = self._window()
        screen = [e for e in events if isinstance(e.meta, ScreenTimeMeta)]
        assert [e.id for e in screen] == [
            event_id_for("user-1", session("code", "VS Code", 10, 30).session_id)
        ]
        for event in events:
            if event in screen:
                continue
            assert event.title == "At Home"
            assert event.end <= at(10) or event.start >= at(30)

        second = asyncio.run(
            self.pipeline.reconcile_window("user-1", HOUR_START, HOUR_START + HOUR)
        )
        assert second.success
        assert second.counters == {
            "protected": 0,
            "deleted": 0,
            "updated": 0,
            "extended": 0,
            "inserted": 0,
        }
        assert self._window() == events

    def test_user_events_are_protected(self):
        asyncio.run(self.pipeline.process_hour("user-1", HOUR_START))
        dentist = ReconciliationEvent(
            id="user-dentist",
            user_id="user-1",
            title="Dentist",
            start=at(40),
            end=at(50),
            meta=UnknownMeta(source=EventSource.USER),
        )
        self.events.save_event(dentist)

        result = asyncio.run(
            self.pipeline.reconcile_window("user-1", HOUR_START, HOUR_START + HOUR)
        )

        assert result.counters["protected"] == 1
        events = {e.id: e for e in self._window()}
        assert events["user-dentist"] == dentist
        for event in events.values():
            if event.id != "user-dentist":
                assert event.end <= at(40) or event.start >= at(50)

    def test_extends_event_from_previous_window(self):
        previous_start = HOUR_START - HOUR
        self.evidence.add_screen_sessions(
            "user-1", [session("code", "VS Code", -20, -0.5)]
        )
        asyncio.run(self.pipeline.process_hour("user-1", previous_start))
        asyncio.run(self.pipeline.reconcile_window("user-1", previous_start, HOUR_START))
        self.evidence.add_screen_sessions("user-1", [session("code", "VS Code", 0, 5)])

        result = asyncio.run(
            self.pipeline.reconcile_window(
                "user-1", HOUR_START, HOUR_START + HOUR, previous_start=previous_start
            )
        )

        assert result.counters["extended"] == 1
        earlier_id = event_id_for("user-1", session("code", "VS Code", -20, -0.5).session_id)
        extended = [e for e in self._window() if e.id == earlier_id]
        assert extended and extended[0].end == at(5)

    def _lock_previous_piece(self, figma):
        previous_start = HOUR_START - HOUR
        self.evidence.add_screen_sessions("user-1", [figma])
        asyncio.run(self.pipeline.reconcile_window("user-1", previous_start, HOUR_START))
        locked_id = event_id_for("user-1", figma.session_id)
        assert self.events.lock_event("user-1", locked_id, at(-5)) == 1
        return locked_id

    def _previous_window(self):
        return self.events.fetch_events("user-1", HOUR_START - HOUR, HOUR_START)

    def test_locked_piece_of_session_crossing_hour_survives(self):
        """The next window's piece of a session is a new event beside the locked one"""
        figma = session("figma", "Figma", -20, 10)
        locked_id = self._lock_previous_piece(figma)

        result = asyncio.run(
            self.pipeline.reconcile_window(
                "user-1", HOUR_START, HOUR_START + HOUR, previous_start=HOUR_START - HOUR
            )
        )

        assert result.success
        assert result.counters["protected"] == 1
        locked = [e for e in self._previous_window() if e.id == locked_id]
        assert locked and (locked[0].start, locked[0].end) == (at(-20), HOUR_START)
        assert locked[0].locked_at == at(-5)

        pieces = [e for e in self._window() if e.title == "Figma" and e.id != locked_id]
        assert [(e.start, e.end) for e in pieces] == [(HOUR_START, at(10))]

    def test_locked_piece_survives_without_previous_window(self):
        figma = session("figma", "Figma", -20, 10)
        locked_id = self._lock_previous_piece(figma)

        result = asyncio.run(
            self.pipeline.reconcile_window("user-1", HOUR_START, HOUR_START + HOUR)
        )

        assert result.success
        locked = [e for e in self._previous_window() if e.id == locked_id]
        assert locked and (locked[0].start, locked[0].end) == (at(-20), HOUR_START)
        assert locked[0].locked_at == at(-5)
