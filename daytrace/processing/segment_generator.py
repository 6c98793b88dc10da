"""
Segment generator
Turns one hour of raw evidence into confidence-scored ActivitySegments
"""

from datetime import datetime
from typing import List, Optional, Sequence

from daytrace.core.logger import get_logger
from daytrace.core.settings import DEFAULT_SETTINGS, PipelineSettings
from daytrace.core.timeutils import HOUR, ensure_utc, to_epoch_ms
from daytrace.models.evidence import (
    GeoPoint,
    HealthWorkout,
    LocationSample,
    ScreenSession,
    UserPlace,
)
from daytrace.models.segments import (
    ActivitySegment,
    AppCategory,
    SegmentEvidence,
)

from .activity_inference import (
    InferenceContext,
    compute_app_usage,
    compute_confidence,
    find_overlapping_workouts,
    infer_activity,
)
from .app_categories import AppCategoryResolver
from .location_segments import (
    LocationSegment,
    build_location_segments,
    drop_short_dwells,
    merge_location_segments,
)

logger = get_logger(__name__)

MAX_TOP_APPS = 5


def segment_id(user_id: str, start: datetime, place_key: str) -> str:
    """Stable id so regenerating an hour reproduces the same keys"""
    return f"segment:{user_id}:{to_epoch_ms(start)}:{place_key}"


class SegmentGenerator:
    """Pure segment generation for one hour window

    Given the same evidence the generator always returns the same segments;
    it does no I/O.
    """

    def __init__(
        self,
        settings: PipelineSettings = DEFAULT_SETTINGS,
        resolver: Optional[AppCategoryResolver] = None,
    ):
        """
        Args:
            settings: Segmentation thresholds and local timezone
            resolver: App category resolver (user overrides applied here)
        """
        self.settings = settings
        self.resolver = resolver or AppCategoryResolver()

    def generate(
        self,
        user_id: str,
        hour_start: datetime,
        samples: Sequence[LocationSample],
        sessions: Sequence[ScreenSession],
        workouts: Sequence[HealthWorkout],
        places: Sequence[UserPlace],
        keep_short: bool = False,
    ) -> List[ActivitySegment]:
        """Generate the segments for ``[hour_start, hour_start + 1h)``

        Args:
            keep_short: Keep dwells under the floor so a caller can re-merge them
                across hour boundaries

        Returns:
            Segments ordered by start, empty when there is no usable evidence
        """
        hour_start = ensure_utc(hour_start)
        hour_end = hour_start + HOUR

        location_segments = build_location_segments(
            samples, places, hour_start, hour_end, self.settings
        )
        location_segments = merge_location_segments(location_segments, self.settings)
        location_segments = drop_short_dwells(
            location_segments, self.settings, keep_short=keep_short
        )

        if not location_segments:
            synthetic = self._screen_only_segment(sessions, hour_start, hour_end)
            if synthetic is not None:
                location_segments = [synthetic]

        segments = [
            self._to_activity_segment(user_id, hour_start, seg, sessions, workouts)
            for seg in location_segments
        ]
        logger.debug(
            f"Generated {len(segments)} segments for user {user_id} at {hour_start.isoformat()}"
        )
        return segments

    def _screen_only_segment(
        self,
        sessions: Sequence[ScreenSession],
        hour_start: datetime,
        hour_end: datetime,
    ) -> Optional[LocationSegment]:
        """A block spanning the actual screen activity, not the whole hour"""
        relevant = [
            s
            for s in sessions
            if s.start < hour_end
            and s.end > hour_start
            and self.resolver.resolve(s.app_id, s.display_name) != AppCategory.IGNORE
        ]
        if not relevant:
            return None

        start = max(hour_start, min(s.start for s in relevant))
        end = min(hour_end, max(s.end for s in relevant))
        if start >= end:
            return None
        return LocationSegment(
            start=start,
            end=end,
            place=None,
            centroid=None,
            sample_count=0,
            place_match_ratio=0.0,
        )

    def _to_activity_segment(
        self,
        user_id: str,
        hour_start: datetime,
        seg: LocationSegment,
        sessions: Sequence[ScreenSession],
        workouts: Sequence[HealthWorkout],
    ) -> ActivitySegment:
        usage = compute_app_usage(seg.start, seg.end, sessions, self.resolver)
        overlapping = find_overlapping_workouts(seg.start, seg.end, workouts)

        ctx = InferenceContext(
            start=seg.start,
            usage=usage,
            place_category=seg.place_category,
            has_workout=any(not w.is_sleep for w in overlapping),
            is_sleeping=any(w.is_sleep for w in overlapping),
            timezone=self.settings.timezone,
        )
        activity = infer_activity(ctx)

        _, consensus = usage.dominant_category()
        confidence = compute_confidence(
            location_samples=seg.sample_count,
            screen_sessions=usage.session_count,
            place_match_ratio=seg.place_match_ratio,
            consensus=consensus,
        )

        if seg.is_commute:
            place_key = "commute"
        else:
            place_key = seg.place_id or "unknown"

        source_ids = list(usage.session_ids)
        source_ids.extend(
            f"workout:{w.activity_type}:{to_epoch_ms(w.start)}" for w in overlapping
        )

        return ActivitySegment(
            id=segment_id(user_id, seg.start, place_key),
            user_id=user_id,
            start=seg.start,
            end=seg.end,
            hour_bucket=hour_start,
            place_id=seg.place_id,
            place_label=seg.place.label if seg.place else None,
            place_category=seg.place_category,
            centroid=GeoPoint(latitude=seg.centroid[0], longitude=seg.centroid[1])
            if seg.centroid
            else None,
            inferred_activity=activity,
            confidence=confidence,
            top_apps=usage.apps[:MAX_TOP_APPS],
            total_screen_seconds=usage.total_seconds,
            evidence=SegmentEvidence(
                location_samples=seg.sample_count,
                screen_sessions=usage.session_count,
                has_health_data=bool(overlapping),
            ),
            source_ids=source_ids,
            movement_type=seg.movement_type,
            distance_meters=seg.distance_meters if seg.is_commute else None,
        )


def generate_segments(
    user_id: str,
    hour_start: datetime,
    samples: Sequence[LocationSample],
    sessions: Sequence[ScreenSession],
    workouts: Sequence[HealthWorkout],
    places: Sequence[UserPlace],
    settings: PipelineSettings = DEFAULT_SETTINGS,
    resolver: Optional[AppCategoryResolver] = None,
    keep_short: bool = False,
) -> List[ActivitySegment]:
    """Functional wrapper around SegmentGenerator.generate"""
    generator = SegmentGenerator(settings=settings, resolver=resolver)
    return generator.generate(
        user_id, hour_start, samples, sessions, workouts, places, keep_short=keep_short
    )
