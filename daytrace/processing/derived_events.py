"""
Derived event builders
Recasts segments and screen sessions as calendar-shaped DerivedEvents for reconciliation
"""

from datetime import datetime
from typing import List, Optional, Sequence

from daytrace.core.timeutils import clamp, to_epoch_ms
from daytrace.models.events import (
    CommuteMeta,
    DerivedEvent,
    EventSource,
    LocationBlockMeta,
    ScreenTimeMeta,
)
from daytrace.models.evidence import ScreenSession
from daytrace.models.segments import ActivitySegment, AppCategory

from .app_categories import AppCategoryResolver

UNKNOWN_LOCATION_TITLE = "Unknown Location"


def location_source_id(window_start: datetime, place_id: Optional[str], start: datetime) -> str:
    return f"location:{to_epoch_ms(window_start)}:{place_id or 'unknown'}:{to_epoch_ms(start)}"


def commute_source_id(window_start: datetime, start: datetime) -> str:
    return f"commute:{to_epoch_ms(window_start)}:{to_epoch_ms(start)}"


def screen_source_id(session: ScreenSession, start: datetime) -> str:
    """Session id, suffixed with the clipped start when a window cut the session"""
    if start == session.start:
        return session.session_id
    return f"{session.session_id}:{to_epoch_ms(start)}"


def build_location_events(
    segments: Sequence[ActivitySegment], window_start: datetime
) -> List[DerivedEvent]:
    """One location_block event per non-commute segment"""
    events: List[DerivedEvent] = []
    for segment in sorted(segments, key=lambda s: s.start):
        if segment.is_commute:
            continue
        source_id = location_source_id(window_start, segment.place_id, segment.start)
        title = f"At {segment.place_label}" if segment.place_label else UNKNOWN_LOCATION_TITLE
        events.append(
            DerivedEvent(
                source_id=source_id,
                title=title,
                start=segment.start,
                end=segment.end,
                meta=LocationBlockMeta(
                    source=EventSource.DERIVED,
                    source_id=source_id,
                    place_id=segment.place_id,
                    place_label=segment.place_label,
                    sample_count=segment.evidence.location_samples,
                    confidence=segment.confidence,
                    latitude=segment.centroid.latitude if segment.centroid else None,
                    longitude=segment.centroid.longitude if segment.centroid else None,
                ),
            )
        )
    return events


def build_commute_events(
    segments: Sequence[ActivitySegment], window_start: datetime
) -> List[DerivedEvent]:
    events: List[DerivedEvent] = []
    for segment in sorted(segments, key=lambda s: s.start):
        if not segment.is_commute:
            continue
        source_id = commute_source_id(window_start, segment.start)
        if segment.movement_type is not None:
            title = f"{segment.movement_type.value.capitalize()} commute"
        else:
            title = "Commute"
        events.append(
            DerivedEvent(
                source_id=source_id,
                title=title,
                start=segment.start,
                end=segment.end,
                meta=CommuteMeta(
                    source=EventSource.DERIVED,
                    source_id=source_id,
                    movement_type=segment.movement_type,
                    distance_meters=segment.distance_meters,
                ),
            )
        )
    return events


def build_screen_time_events(
    sessions: Sequence[ScreenSession],
    resolver: AppCategoryResolver,
    window_start: Optional[datetime] = None,
    window_end: Optional[datetime] = None,
) -> List[DerivedEvent]:
    """One screen_time event per session, clipped to the window when one is given"""
    events: List[DerivedEvent] = []
    for session in sorted(sessions, key=lambda s: (s.start, s.app_id)):
        category = resolver.resolve(session.app_id, session.display_name)
        if category == AppCategory.IGNORE:
            continue
        start, end = session.start, session.end
        if window_start is not None and window_end is not None:
            start = clamp(start, window_start, window_end)
            end = clamp(end, window_start, window_end)
        if end <= start:
            continue
        source_id = screen_source_id(session, start)
        events.append(
            DerivedEvent(
                source_id=source_id,
                title=session.display_name,
                start=start,
                end=end,
                meta=ScreenTimeMeta(
                    source=EventSource.DERIVED,
                    source_id=source_id,
                    app_id=session.app_id,
                    app_name=session.display_name,
                    minutes=round((end - start).total_seconds() / 60),
                    category=category,
                ),
            )
        )
    return events
