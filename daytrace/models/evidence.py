"""
Evidence models
Raw telemetry records supplied by the evidence repository for one time window
"""

from typing import List, Optional

from pydantic import ConfigDict, Field, model_validator

from daytrace.core.timeutils import to_epoch_ms

from .base import BaseModel, UtcDatetime

SLEEP_ACTIVITY_TYPES = {"sleep", "sleeping", "sleep_analysis", "in_bed"}


class GeoPoint(BaseModel):
    """WGS84 coordinate"""

    model_config = ConfigDict(frozen=True)

    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)


class LocationSample(BaseModel):
    """A single location fix; immutable once recorded"""

    model_config = ConfigDict(frozen=True)

    timestamp: UtcDatetime
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)
    provider: Optional[str] = None
    activity: Optional[str] = None
    battery: Optional[float] = None
    is_mocked: bool = False
    speed: Optional[float] = None  # m/s as reported by the device
    accuracy: Optional[float] = None


class ScreenSession(BaseModel):
    """A foreground app session; may straddle window boundaries"""

    id: Optional[str] = None
    app_id: str
    display_name: str
    start: UtcDatetime
    end: UtcDatetime

    @model_validator(mode="after")
    def _check_bounds(self):
        if self.end < self.start:
            raise ValueError("screen session ends before it starts")
        return self

    @property
    def session_id(self) -> str:
        return self.id or f"screen:{self.app_id}:{to_epoch_ms(self.start)}"

    @property
    def duration_seconds(self) -> float:
        return (self.end - self.start).total_seconds()


class HealthWorkout(BaseModel):
    """A workout (or sleep sample) from the health store"""

    activity_type: str
    start: UtcDatetime
    end: UtcDatetime

    @model_validator(mode="after")
    def _check_bounds(self):
        if self.end < self.start:
            raise ValueError("workout ends before it starts")
        return self

    @property
    def is_sleep(self) -> bool:
        return self.activity_type.strip().lower() in SLEEP_ACTIVITY_TYPES


class UserPlace(BaseModel):
    """A place the user has named (home, office, gym ...)"""

    id: str
    label: str
    category: Optional[str] = None
    centroid: GeoPoint
    radius_meters: Optional[float] = Field(default=None, gt=0)  # None: use pipeline.place_radius_m


class PlaceLookupResult(BaseModel):
    """Candidate name for a coordinate, as returned by the place lookup service"""

    place_name: Optional[str] = None
    latitude: float
    longitude: float
    types: List[str] = Field(default_factory=list)
    source: str = "none"  # cache | google_places_nearby | reverse_geocode | none

    @property
    def is_reverse_geocode(self) -> bool:
        return self.source == "reverse_geocode"
