"""
Hourly aggregation
Combines the segments of one hour into a templated HourlySummary, never overwriting a locked one
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence

from daytrace.core.logger import get_logger
from daytrace.core.timeutils import HOUR, ensure_utc, local_date, to_epoch_ms
from daytrace.models.segments import (
    ActivitySegment,
    AppMinutes,
    EvidenceStrength,
    HourlySummary,
    InferredActivity,
)

logger = get_logger(__name__)

UNKNOWN_PLACE = "Unknown Location"
EMPTY_TITLE = "No Activity Data"
EMPTY_DESCRIPTION = "No activity data available for this hour"
DESCRIPTION_TOP_APPS = 3


@dataclass
class AggregatedHour:
    dominant_place_id: Optional[str] = None
    dominant_place_label: Optional[str] = None
    dominant_place_seconds: float = 0.0
    destination_label: Optional[str] = None
    dominant_activity: Optional[InferredActivity] = None
    duration_seconds: float = 0.0
    app_breakdown: List[AppMinutes] = field(default_factory=list)
    total_screen_seconds: int = 0
    total_location_samples: int = 0
    total_screen_sessions: int = 0


def summary_id(user_id: str, hour_start: datetime) -> str:
    return f"summary:{user_id}:{to_epoch_ms(hour_start)}"


def aggregate_segments(segments: Sequence[ActivitySegment]) -> AggregatedHour:
    """Duration-weighted dominant place and activity, plus combined app minutes"""
    result = AggregatedHour()
    if not segments:
        return result

    place_seconds: Dict[Optional[str], float] = {}
    place_labels: Dict[Optional[str], Optional[str]] = {}
    activity_seconds: Dict[InferredActivity, float] = {}
    app_seconds: Dict[str, int] = {}
    app_names: Dict[str, str] = {}

    for segment in sorted(segments, key=lambda s: s.start):
        duration = segment.duration_seconds
        result.duration_seconds += duration
        result.total_screen_seconds += segment.total_screen_seconds
        result.total_location_samples += segment.evidence.location_samples
        result.total_screen_sessions += segment.evidence.screen_sessions

        place_seconds[segment.place_id] = place_seconds.get(segment.place_id, 0.0) + duration
        place_labels[segment.place_id] = segment.place_label
        activity_seconds[segment.inferred_activity] = (
            activity_seconds.get(segment.inferred_activity, 0.0) + duration
        )
        for app in segment.top_apps:
            app_seconds[app.app_id] = app_seconds.get(app.app_id, 0) + app.seconds
            app_names.setdefault(app.app_id, app.display_name)

        if segment.place_label:
            result.destination_label = segment.place_label

    # Ties keep the earliest key
    best_place = max(place_seconds.items(), key=lambda item: item[1])
    result.dominant_place_id = best_place[0]
    result.dominant_place_label = place_labels.get(best_place[0])
    result.dominant_place_seconds = best_place[1]
    result.dominant_activity = max(activity_seconds.items(), key=lambda item: item[1])[0]

    breakdown = [
        AppMinutes(app_id=app_id, display_name=app_names[app_id], minutes=round(seconds / 60))
        for app_id, seconds in app_seconds.items()
    ]
    breakdown.sort(key=lambda a: (-a.minutes, a.app_id))
    result.app_breakdown = breakdown
    return result


def calculate_aggregate_confidence(segments: Sequence[ActivitySegment]) -> float:
    """Duration-weighted mean of segment confidences"""
    total_weight = 0.0
    weighted = 0.0
    for segment in segments:
        duration = segment.duration_seconds
        weighted += segment.confidence * duration
        total_weight += duration
    if total_weight <= 0:
        return 0.0
    return round(min(1.0, max(0.0, weighted / total_weight)), 4)


def categorize_evidence_strength(aggregated: AggregatedHour) -> EvidenceStrength:
    samples = aggregated.total_location_samples
    sessions = aggregated.total_screen_sessions
    if samples >= 10 and sessions >= 5:
        return EvidenceStrength.HIGH
    if samples >= 5 or sessions >= 3:
        return EvidenceStrength.MEDIUM
    return EvidenceStrength.LOW


def build_title(aggregated: AggregatedHour) -> str:
    if aggregated.dominant_activity == InferredActivity.COMMUTE:
        if aggregated.destination_label:
            return f"Commute to {aggregated.destination_label}"
        return "Commute"

    place = aggregated.dominant_place_label or UNKNOWN_PLACE
    activity = aggregated.dominant_activity or InferredActivity.MIXED_ACTIVITY
    return f"{place} - {activity.label}"


def build_description(aggregated: AggregatedHour) -> str:
    parts: List[str] = []

    if aggregated.dominant_place_label:
        minutes = round(aggregated.dominant_place_seconds / 60)
        if minutes >= 1:
            parts.append(f"{minutes} min at {aggregated.dominant_place_label}")

    top_apps = ", ".join(
        f"{app.display_name} ({app.minutes}m)"
        for app in aggregated.app_breakdown[:DESCRIPTION_TOP_APPS]
        if app.minutes >= 1
    )
    if top_apps:
        parts.append(top_apps)

    return ". ".join(parts) or "No activity data"


def generate_hourly_summary(
    user_id: str,
    hour_start: datetime,
    segments: Sequence[ActivitySegment],
    existing: Optional[HourlySummary] = None,
    tz_name: Optional[str] = None,
) -> HourlySummary:
    """Build the summary for one hour

    Args:
        segments: Segments whose start falls inside the hour
        existing: Summary currently stored for the hour, if any
        tz_name: Timezone used for ``local_date``

    Returns:
        ``existing`` untouched when it is locked, otherwise a fresh summary that
        keeps the existing id, feedback and edits
    """
    if existing is not None and existing.is_locked:
        logger.debug(f"Summary {existing.id} is locked, leaving it unchanged")
        return existing

    hour_start = ensure_utc(hour_start)
    hour_end = hour_start + HOUR
    in_hour = [s for s in segments if hour_start <= s.start < hour_end]

    base = {
        "id": existing.id if existing else summary_id(user_id, hour_start),
        "user_id": user_id,
        "hour_start": hour_start,
        "local_date": local_date(hour_start, tz_name),
        "user_feedback": existing.user_feedback if existing else None,
        "user_edits": existing.user_edits if existing else None,
    }

    if not in_hour:
        return HourlySummary(
            **base,
            title=EMPTY_TITLE,
            description=EMPTY_DESCRIPTION,
            evidence_strength=EvidenceStrength.LOW,
            confidence=0.0,
        )

    aggregated = aggregate_segments(in_hour)
    return HourlySummary(
        **base,
        title=build_title(aggregated),
        description=build_description(aggregated),
        primary_place_id=aggregated.dominant_place_id,
        primary_place=aggregated.dominant_place_label,
        primary_activity=aggregated.dominant_activity,
        app_breakdown=aggregated.app_breakdown,
        total_screen_minutes=round(aggregated.total_screen_seconds / 60),
        confidence=calculate_aggregate_confidence(in_hour),
        evidence_strength=categorize_evidence_strength(aggregated),
    )


def lock_summary(summary: HourlySummary, at: Optional[datetime] = None) -> HourlySummary:
    """Mark a summary as confirmed by the user"""
    return summary.model_copy(update={"locked_at": ensure_utc(at or datetime.now(timezone.utc))})


def unlock_summary(summary: HourlySummary) -> HourlySummary:
    return summary.model_copy(update={"locked_at": None})
