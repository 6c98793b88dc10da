"""
Data models shared by the pipeline, the reconciliation engine and the stores
"""

from .base import BaseModel
from .events import (
    CommuteMeta,
    DerivedEvent,
    EventExtension,
    EventMeta,
    EventSource,
    EventUpdate,
    LocationBlockMeta,
    ReconciliationEvent,
    ReconciliationOps,
    ScreenTimeMeta,
    SessionBlockMeta,
    UnknownMeta,
)
from .evidence import (
    GeoPoint,
    HealthWorkout,
    LocationSample,
    PlaceLookupResult,
    ScreenSession,
    UserPlace,
)
from .segments import (
    ActivitySegment,
    AppCategory,
    AppMinutes,
    AppUsage,
    EvidenceStrength,
    HourlySummary,
    InferredActivity,
    MovementType,
    PlaceCategory,
    SegmentEvidence,
)

__all__ = [
    # Base
    "BaseModel",
    # Evidence
    "GeoPoint",
    "HealthWorkout",
    "LocationSample",
    "PlaceLookupResult",
    "ScreenSession",
    "UserPlace",
    # Timeline
    "ActivitySegment",
    "AppCategory",
    "AppMinutes",
    "AppUsage",
    "EvidenceStrength",
    "HourlySummary",
    "InferredActivity",
    "MovementType",
    "PlaceCategory",
    "SegmentEvidence",
    # Calendar
    "CommuteMeta",
    "DerivedEvent",
    "EventExtension",
    "EventMeta",
    "EventSource",
    "EventUpdate",
    "LocationBlockMeta",
    "ReconciliationEvent",
    "ReconciliationOps",
    "ScreenTimeMeta",
    "SessionBlockMeta",
    "UnknownMeta",
]
