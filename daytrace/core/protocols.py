"""
Type protocols for the pipeline's collaborators

These Protocol classes describe the evidence source, place lookup service and
stores the pipeline talks to. The sqlite repositories satisfy them; tests pass
mocks or fakes.
"""

from datetime import datetime
from typing import List, Optional, Protocol, Sequence

from daytrace.models.events import DerivedEvent, EventUpdate, ReconciliationEvent
from daytrace.models.evidence import (
    GeoPoint,
    HealthWorkout,
    LocationSample,
    PlaceLookupResult,
    ScreenSession,
    UserPlace,
)
from daytrace.models.segments import ActivitySegment, HourlySummary

# ==================== Evidence Protocols ====================


class EvidenceRepositoryProtocol(Protocol):
    """Protocol for raw telemetry reads"""

    async def fetch_samples(
        self, user_id: str, start: datetime, end: datetime
    ) -> List[LocationSample]:
        """Location samples with timestamp in ``[start, end)``"""
        ...

    async def fetch_screen_sessions(
        self, user_id: str, start: datetime, end: datetime
    ) -> List[ScreenSession]:
        """Screen sessions overlapping the window"""
        ...

    async def fetch_workouts(
        self, user_id: str, start: datetime, end: datetime
    ) -> List[HealthWorkout]:
        """Workouts (and sleep) overlapping the window"""
        ...

    async def fetch_user_places(self, user_id: str) -> List[UserPlace]:
        """All places the user has named"""
        ...


class PlaceLookupProtocol(Protocol):
    """Protocol for the external place name service"""

    async def lookup(self, points: Sequence[GeoPoint]) -> List[PlaceLookupResult]:
        """One result per point, in order; failures yield an empty list"""
        ...


# ==================== Store Protocols ====================


class SegmentStoreProtocol(Protocol):
    def replace_segments(
        self,
        user_id: str,
        start: datetime,
        end: datetime,
        segments: Sequence[ActivitySegment],
    ) -> int:
        """Atomically replace the segments starting in ``[start, end)``"""
        ...

    def get_segments(
        self, user_id: str, start: datetime, end: datetime
    ) -> List[ActivitySegment]:
        ...


class SummaryStoreProtocol(Protocol):
    def get_summary(self, user_id: str, hour_start: datetime) -> Optional[HourlySummary]:
        ...

    def upsert_summary(self, summary: HourlySummary) -> None:
        ...


class EventStoreProtocol(Protocol):
    """Protocol for the user's actual calendar"""

    def fetch_events(
        self, user_id: str, start: datetime, end: datetime
    ) -> List[ReconciliationEvent]:
        ...

    def insert_events(self, user_id: str, events: Sequence[DerivedEvent]) -> int:
        ...

    def update_event(self, user_id: str, update: EventUpdate) -> int:
        ...

    def extend_event(self, user_id: str, event_id: str, new_end: datetime) -> int:
        ...

    def delete_events(self, user_id: str, event_ids: Sequence[str]) -> int:
        ...
