"""
Timeline models
Activity segments produced by the segment generator and the hourly summaries built from them
"""

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import Field, model_validator

from .base import BaseModel, UtcDatetime
from .evidence import GeoPoint


class InferredActivity(str, Enum):
    """Closed set of activities a segment can be labelled with"""

    WORKOUT = "workout"
    SLEEP = "sleep"
    COMMUTE = "commute"
    DEEP_WORK = "deep_work"
    COLLABORATIVE_WORK = "collaborative_work"
    MEETING = "meeting"
    DISTRACTED_TIME = "distracted_time"
    LEISURE = "leisure"
    EXTENDED_SOCIAL = "extended_social"
    SOCIAL_BREAK = "social_break"
    PERSONAL_TIME = "personal_time"
    AWAY_FROM_DESK = "away_from_desk"
    OFFLINE_ACTIVITY = "offline_activity"
    MIXED_ACTIVITY = "mixed_activity"

    @property
    def label(self) -> str:
        return ACTIVITY_LABELS[self]


ACTIVITY_LABELS: Dict[InferredActivity, str] = {
    InferredActivity.WORKOUT: "Workout",
    InferredActivity.SLEEP: "Sleep",
    InferredActivity.COMMUTE: "Commute",
    InferredActivity.DEEP_WORK: "Deep Work",
    InferredActivity.COLLABORATIVE_WORK: "Collaborative Work",
    InferredActivity.MEETING: "Meeting",
    InferredActivity.DISTRACTED_TIME: "Distracted Time",
    InferredActivity.LEISURE: "Leisure",
    InferredActivity.EXTENDED_SOCIAL: "Social Time",
    InferredActivity.SOCIAL_BREAK: "Social Break",
    InferredActivity.PERSONAL_TIME: "Personal Time",
    InferredActivity.AWAY_FROM_DESK: "Away from Desk",
    InferredActivity.OFFLINE_ACTIVITY: "Offline Activity",
    InferredActivity.MIXED_ACTIVITY: "Mixed Activity",
}


class AppCategory(str, Enum):
    WORK = "work"
    SOCIAL = "social"
    ENTERTAINMENT = "entertainment"
    COMMS = "comms"
    UTILITY = "utility"
    IGNORE = "ignore"


class MovementType(str, Enum):
    STATIONARY = "stationary"
    WALKING = "walking"
    CYCLING = "cycling"
    DRIVING = "driving"


class EvidenceStrength(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class PlaceCategory(str, Enum):
    """Known place categories; ``UserPlace.category`` also accepts free text"""

    HOME = "home"
    WORK = "work"
    COMMUTE = "commute"
    GYM = "gym"
    SCHOOL = "school"
    OTHER = "other"


# Place categories with special meaning to inference
PLACE_HOME = PlaceCategory.HOME.value
PLACE_WORK = PlaceCategory.WORK.value
PLACE_COMMUTE = PlaceCategory.COMMUTE.value


class AppUsage(BaseModel):
    """Seconds one app was in the foreground inside a segment"""

    app_id: str
    display_name: str
    category: AppCategory
    seconds: int = Field(ge=0)


class SegmentEvidence(BaseModel):
    location_samples: int = 0
    screen_sessions: int = 0
    has_health_data: bool = False


class ActivitySegment(BaseModel):
    """A contiguous block of time with one inferred activity and place"""

    id: str
    user_id: str
    start: UtcDatetime
    end: UtcDatetime
    hour_bucket: UtcDatetime
    place_id: Optional[str] = None
    place_label: Optional[str] = None
    place_category: Optional[str] = None
    centroid: Optional[GeoPoint] = None
    inferred_activity: InferredActivity
    confidence: float = Field(ge=0.0, le=1.0)
    top_apps: List[AppUsage] = Field(default_factory=list, max_length=5)
    total_screen_seconds: int = 0
    evidence: SegmentEvidence = Field(default_factory=SegmentEvidence)
    source_ids: List[str] = Field(default_factory=list)
    movement_type: Optional[MovementType] = None
    distance_meters: Optional[float] = None

    @model_validator(mode="after")
    def _check_bounds(self):
        if self.start >= self.end:
            raise ValueError("segment start must be before end")
        return self

    @property
    def duration_seconds(self) -> float:
        return (self.end - self.start).total_seconds()

    @property
    def is_commute(self) -> bool:
        return self.inferred_activity == InferredActivity.COMMUTE


class AppMinutes(BaseModel):
    app_id: str
    display_name: str
    minutes: int


class HourlySummary(BaseModel):
    """One row per user and hour; immutable to regeneration once locked"""

    id: str
    user_id: str
    hour_start: UtcDatetime
    local_date: str
    title: str
    description: str
    primary_place_id: Optional[str] = None
    primary_place: Optional[str] = None
    primary_activity: Optional[InferredActivity] = None
    app_breakdown: List[AppMinutes] = Field(default_factory=list)
    total_screen_minutes: int = 0
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    evidence_strength: EvidenceStrength = EvidenceStrength.LOW
    user_feedback: Optional[str] = None
    user_edits: Optional[Dict[str, Any]] = None
    locked_at: Optional[UtcDatetime] = None

    @property
    def is_locked(self) -> bool:
        return self.locked_at is not None
