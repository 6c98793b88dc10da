"""
Segment generator tests
"""

from conftest import HOME, HOUR_START, OFFICE, at, dwell_samples, session

from daytrace.models.evidence import HealthWorkout, LocationSample
from daytrace.models.segments import InferredActivity
from daytrace.processing.segment_generator import SegmentGenerator, generate_segments, segment_id


def _commute(minutes):
    samples = []
    for i, minute in enumerate(minutes):
        fraction = 0.2 + 0.1 * i
        samples.append(
            LocationSample(
                timestamp=at(minute),
                latitude=HOME.centroid.latitude
                + (OFFICE.centroid.latitude - HOME.centroid.latitude) * fraction,
                longitude=HOME.centroid.longitude
                + (OFFICE.centroid.longitude - HOME.centroid.longitude) * fraction,
                speed=12.0,
            )
        )
    return samples


class TestSegmentGenerator:
    """One hour of evidence into ActivitySegments"""

    def setup_method(self):
        self.generator = SegmentGenerator()
        self.samples = (
            dwell_samples(HOME, 0, 20)
            + _commute([22, 25, 28, 31, 34, 37])
            + dwell_samples(OFFICE, 40, 55)
        )
        self.sessions = [
            session("code", "VS Code", 41, 55),
            session("slack", "Slack", 5, 8),
            session("ig", "Instagram", 25, 30),
        ]

    def _generate(self, samples=None, sessions=None, workouts=(), places=(HOME, OFFICE)):
        return self.generator.generate(
            "user-1",
            HOUR_START,
            self.samples if samples is None else samples,
            self.sessions if sessions is None else sessions,
            list(workouts),
            list(places),
        )

    def test_segments_are_valid(self):
        segments = self._generate()

        assert len(segments) == 3
        for segment in segments:
            assert segment.start < segment.end
            assert 0.0 <= segment.confidence <= 1.0
            assert segment.hour_bucket == HOUR_START
            assert len(segment.top_apps) <= 5

    def test_segments_do_not_overlap(self):
        segments = self._generate()
        for previous, current in zip(segments, segments[1:]):
            assert previous.end <= current.start

    def test_places_and_activities(self):
        home, commute, office = self._generate()

        assert home.place_label == "Home"
        assert home.place_category == "home"
        assert home.inferred_activity == InferredActivity.PERSONAL_TIME
        assert commute.inferred_activity == InferredActivity.COMMUTE
        assert commute.distance_meters > 0
        assert commute.centroid is not None
        assert office.place_id == "place-office"
        assert office.inferred_activity == InferredActivity.MIXED_ACTIVITY
        assert office.top_apps[0].app_id == "code"

    def test_stable_ids(self):
        home, commute, office = self._generate()

        assert home.id == segment_id("user-1", at(0), "place-home")
        assert commute.id == segment_id("user-1", at(22), "commute")
        assert office.id.endswith(":place-office")

    def test_source_ids_reference_evidence(self):
        workout = HealthWorkout(activity_type="yoga", start=at(42), end=at(50))
        segments = self._generate(workouts=[workout])
        office = segments[-1]

        assert office.inferred_activity == InferredActivity.WORKOUT
        assert office.evidence.has_health_data
        assert any(s.startswith("screen:code:") for s in office.source_ids)
        assert any(s.startswith("workout:yoga:") for s in office.source_ids)

    def test_sleep_workout_means_sleep(self):
        sleep = HealthWorkout(activity_type="sleep", start=at(-120), end=at(30))
        home = self._generate(workouts=[sleep])[0]
        assert home.inferred_activity == InferredActivity.SLEEP

    def test_idempotent(self):
        """Identical inputs give identical output"""
        first = self._generate()
        second = self._generate()
        assert [s.model_dump() for s in first] == [s.model_dump() for s in second]

    def test_no_evidence_no_segments(self):
        assert self._generate(samples=[], sessions=[]) == []

    def test_screen_only_hour_spans_session_bounds(self):
        """Without location data the synthetic segment covers only actual usage"""
        sessions = [session("code", "VS Code", 10, 30), session("zoom", "Zoom", 35, 50)]
        segments = self._generate(samples=[], sessions=sessions)

        assert len(segments) == 1
        segment = segments[0]
        assert (segment.start, segment.end) == (at(10), at(50))
        assert segment.place_id is None
        assert segment.id.endswith(":unknown")
        assert segment.evidence.location_samples == 0

    def test_screen_only_ignores_system_apps(self):
        sessions = [session("com.apple.springboard", "SpringBoard", 0, 50)]
        assert self._generate(samples=[], sessions=sessions) == []

    def test_screen_only_clamped_to_hour(self):
        sessions = [session("code", "VS Code", -30, 20)]
        segment = self._generate(samples=[], sessions=sessions)[0]
        assert segment.start == HOUR_START

    def test_keep_short_bypass(self):
        samples = dwell_samples(HOME, 0, 3, every_min=1)
        assert generate_segments("user-1", HOUR_START, samples, [], [], [HOME]) == []
        kept = generate_segments("user-1", HOUR_START, samples, [], [], [HOME], keep_short=True)
        assert len(kept) == 1
