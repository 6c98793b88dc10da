"""
Calendar event models
Persisted "actual calendar" entries, derived candidates and the operations that reconcile them
"""

from enum import Enum
from typing import Annotated, List, Literal, Optional, Union

from pydantic import Field, model_validator

from .base import BaseModel, UtcDatetime
from .segments import AppCategory, MovementType


class EventSource(str, Enum):
    DERIVED = "derived"
    SYSTEM = "system"
    USER = "user"
    ACTUAL_ADJUST = "actual_adjust"


DERIVED_SOURCES = {EventSource.DERIVED, EventSource.SYSTEM}
USER_SOURCES = {EventSource.USER, EventSource.ACTUAL_ADJUST}


class _MetaBase(BaseModel):
    source: EventSource = EventSource.DERIVED
    source_id: Optional[str] = None


class LocationBlockMeta(_MetaBase):
    kind: Literal["location_block"] = "location_block"
    place_id: Optional[str] = None
    place_label: Optional[str] = None
    sample_count: int = 0
    confidence: float = 0.0
    latitude: Optional[float] = None
    longitude: Optional[float] = None


class CommuteMeta(_MetaBase):
    kind: Literal["commute"] = "commute"
    movement_type: Optional[MovementType] = None
    distance_meters: Optional[float] = None


class ScreenTimeMeta(_MetaBase):
    kind: Literal["screen_time"] = "screen_time"
    app_id: str
    app_name: Optional[str] = None
    category: Optional[AppCategory] = None
    minutes: Optional[int] = None


class SessionBlockMeta(_MetaBase):
    """A focus session spanning several apps"""

    kind: Literal["session_block"] = "session_block"
    app_id: Optional[str] = None
    intent: Optional[str] = None
    apps: List[str] = Field(default_factory=list)


class UnknownMeta(_MetaBase):
    """Anything else (manual entries, imported calendars)"""

    kind: Literal["unknown"] = "unknown"


EventMeta = Annotated[
    Union[LocationBlockMeta, CommuteMeta, ScreenTimeMeta, SessionBlockMeta, UnknownMeta],
    Field(discriminator="kind"),
]


class ReconciliationEvent(BaseModel):
    """An event already persisted in the user's actual calendar"""

    id: str
    user_id: str
    title: str
    start: UtcDatetime
    end: UtcDatetime
    meta: EventMeta = Field(default_factory=UnknownMeta)
    locked_at: Optional[UtcDatetime] = None

    @property
    def is_locked(self) -> bool:
        return self.locked_at is not None


class DerivedEvent(BaseModel):
    """Candidate event produced by one reconciliation run, keyed by ``source_id``"""

    source_id: str
    title: str
    start: UtcDatetime
    end: UtcDatetime
    meta: EventMeta

    @model_validator(mode="after")
    def _check_bounds(self):
        if self.end <= self.start:
            raise ValueError("derived event must have positive duration")
        return self


class EventUpdate(BaseModel):
    event_id: str
    title: str
    start: UtcDatetime
    end: UtcDatetime
    meta: EventMeta


class EventExtension(BaseModel):
    event_id: str
    new_end: UtcDatetime


class ReconciliationOps(BaseModel):
    """Everything a reconciliation run wants done to the event store"""

    inserts: List[DerivedEvent] = Field(default_factory=list)
    updates: List[EventUpdate] = Field(default_factory=list)
    deletes: List[str] = Field(default_factory=list)
    extensions: List[EventExtension] = Field(default_factory=list)
    protected_ids: List[str] = Field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not (self.inserts or self.updates or self.deletes or self.extensions)

    def mark_protected(self, event_id: str) -> None:
        if event_id not in self.protected_ids:
            self.protected_ids.append(event_id)
