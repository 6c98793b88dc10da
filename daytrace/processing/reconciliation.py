"""
Event reconciliation
Diffs freshly derived events against the persisted calendar and produces insert/update/delete/extend
operations that never touch locked or user-authored events
"""

from datetime import datetime, timedelta
from enum import Enum
from typing import Dict, List, Optional, Sequence, Set, Tuple

from daytrace.core.logger import get_logger
from daytrace.core.protocols import EventStoreProtocol
from daytrace.models.events import (
    DERIVED_SOURCES,
    USER_SOURCES,
    DerivedEvent,
    EventExtension,
    EventUpdate,
    LocationBlockMeta,
    ReconciliationEvent,
    ReconciliationOps,
    ScreenTimeMeta,
    SessionBlockMeta,
)

logger = get_logger(__name__)

Interval = Tuple[datetime, datetime]

DEFAULT_TRIM_FLOOR_SECONDS = 60
DEFAULT_EXTENSION_WINDOW_SECONDS = 60


class EventPriority(str, Enum):
    PROTECTED = "protected"
    SCREEN_TIME = "screen_time"
    LOCATION = "location"
    UNKNOWN = "unknown"


PRIORITY_RANK: Dict[EventPriority, int] = {
    EventPriority.PROTECTED: 3,
    EventPriority.SCREEN_TIME: 2,
    EventPriority.LOCATION: 1,
    EventPriority.UNKNOWN: 0,
}

# Every meta kind must appear here; a missing kind fails loudly with KeyError
KIND_PRIORITY: Dict[str, EventPriority] = {
    "screen_time": EventPriority.SCREEN_TIME,
    "session_block": EventPriority.SCREEN_TIME,
    "location_block": EventPriority.LOCATION,
    "commute": EventPriority.LOCATION,
    "unknown": EventPriority.UNKNOWN,
}


def outranks(a: EventPriority, b: EventPriority) -> bool:
    return PRIORITY_RANK[a] > PRIORITY_RANK[b]


def is_protected(event: ReconciliationEvent) -> bool:
    """Locked or user-authored events are never modified by reconciliation"""
    return event.is_locked or event.meta.source in USER_SOURCES


def is_derived(event: ReconciliationEvent) -> bool:
    return event.meta.source in DERIVED_SOURCES


def get_event_priority(event: ReconciliationEvent) -> EventPriority:
    if is_protected(event):
        return EventPriority.PROTECTED
    return KIND_PRIORITY[event.meta.kind]


def get_derived_event_priority(event: DerivedEvent) -> EventPriority:
    return KIND_PRIORITY[event.meta.kind]


def intervals_overlap(a_start: datetime, a_end: datetime, b_start: datetime, b_end: datetime) -> bool:
    return a_start < b_end and b_start < a_end


def subtract_intervals(start: datetime, end: datetime, occupied: Sequence[Interval]) -> List[Interval]:
    """Free sub-intervals of ``[start, end)`` once ``occupied`` is removed"""
    gaps: List[Interval] = []
    cursor = start
    for occ_start, occ_end in sorted(occupied):
        if occ_end <= cursor or occ_start >= end:
            continue
        if occ_start > cursor:
            gaps.append((cursor, occ_start))
        cursor = max(cursor, occ_end)
        if cursor >= end:
            break
    if cursor < end:
        gaps.append((cursor, end))
    return gaps


def trim_event_to_gaps(
    event: DerivedEvent,
    occupied: Sequence[Interval],
    min_seconds: float = DEFAULT_TRIM_FLOOR_SECONDS,
) -> List[DerivedEvent]:
    """Cut ``event`` around higher-priority intervals

    Gaps of ``min_seconds`` or less are dropped. A single surviving piece keeps
    the original source id; split pieces are suffixed ``:0``, ``:1`` ...
    """
    gaps = [
        (gap_start, gap_end)
        for gap_start, gap_end in subtract_intervals(event.start, event.end, occupied)
        if (gap_end - gap_start).total_seconds() > min_seconds
    ]
    if len(gaps) == 1 and gaps[0] == (event.start, event.end):
        return [event]

    pieces: List[DerivedEvent] = []
    for index, (gap_start, gap_end) in enumerate(gaps):
        source_id = event.source_id if len(gaps) == 1 else f"{event.source_id}:{index}"
        pieces.append(
            event.model_copy(
                update={
                    "source_id": source_id,
                    "start": gap_start,
                    "end": gap_end,
                    "meta": event.meta.model_copy(update={"source_id": source_id}),
                }
            )
        )
    return pieces


def extension_key(meta) -> Optional[Tuple[str, Optional[str]]]:
    """What two events must share to be stitched across windows

    Screen-time events match on app id; location blocks on place id, where two
    unknown places (``None``) also match. Other kinds never extend.
    """
    if isinstance(meta, ScreenTimeMeta):
        return ("app", meta.app_id)
    if isinstance(meta, SessionBlockMeta) and meta.app_id:
        return ("app", meta.app_id)
    if isinstance(meta, LocationBlockMeta):
        return ("place", meta.place_id)
    return None


def find_extendable_event(
    candidates: Sequence[ReconciliationEvent],
    start: datetime,
    key: Tuple[str, Optional[str]],
    window_seconds: float = DEFAULT_EXTENSION_WINDOW_SECONDS,
) -> Optional[ReconciliationEvent]:
    """Latest-ending candidate with the same key that ends at most ``window_seconds`` before ``start``

    A candidate that already reaches past ``start`` (extended by an earlier run)
    also qualifies, as long as it began before ``start``.
    """
    window = timedelta(seconds=window_seconds)
    matches = [
        event
        for event in candidates
        if extension_key(event.meta) == key
        and event.start < start
        and start - window <= event.end
    ]
    if not matches:
        return None
    return max(matches, key=lambda e: e.end)


class ReconciliationEngine:
    """Computes ReconciliationOps for one user and one window

    Screen-time events are placed first, then location events fill whatever
    time is left. Commutes are containers and coexist with screen time.
    """

    def __init__(
        self,
        trim_floor_seconds: float = DEFAULT_TRIM_FLOOR_SECONDS,
        extension_window_seconds: float = DEFAULT_EXTENSION_WINDOW_SECONDS,
    ):
        self.trim_floor_seconds = trim_floor_seconds
        self.extension_window_seconds = extension_window_seconds

    def compute(
        self,
        existing: Sequence[ReconciliationEvent],
        screen_time_derived: Sequence[DerivedEvent],
        location_derived: Sequence[DerivedEvent],
        previous_window: Optional[Sequence[ReconciliationEvent]] = None,
    ) -> ReconciliationOps:
        """
        Args:
            existing: Events persisted in the current window
            screen_time_derived: Freshly derived screen-time (and session) events
            location_derived: Freshly derived location-block and commute events
            previous_window: Events of the preceding window, extension candidates

        Returns:
            The operations to apply; ``protected_ids`` lists events that blocked
            or survived a change because they are locked or user-authored
        """
        ops = ReconciliationOps()
        run = _Run(
            existing=list(existing),
            previous=list(previous_window or []),
            ops=ops,
        )

        for derived in sorted(screen_time_derived, key=lambda e: (e.start, e.source_id)):
            if self._try_extend(run, derived):
                run.occupy(EventPriority.SCREEN_TIME, (derived.start, derived.end))
                continue
            placed = self._match_or_insert(run, derived)
            if placed is not None:
                run.occupy(get_derived_event_priority(derived), placed)

        for derived in sorted(location_derived, key=lambda e: (e.start, e.source_id)):
            if not isinstance(derived.meta, LocationBlockMeta):
                # commutes (and anything else) keep their full span
                if not self._try_extend(run, derived):
                    self._match_or_insert(run, derived)
                continue

            for blocker in run.protected_overlapping(derived.start, derived.end):
                ops.mark_protected(blocker.id)

            occupied = run.occupied_above(EventPriority.LOCATION)
            for piece in trim_event_to_gaps(derived, occupied, self.trim_floor_seconds):
                if not self._try_extend(run, piece):
                    self._match_or_insert(run, piece)

        self._cleanup(run)

        logger.debug(
            f"Reconciliation: {len(ops.inserts)} inserts, {len(ops.updates)} updates, "
            f"{len(ops.deletes)} deletes, {len(ops.extensions)} extensions, "
            f"{len(ops.protected_ids)} protected"
        )
        return ops

    def _try_extend(self, run: "_Run", derived: DerivedEvent) -> bool:
        key = extension_key(derived.meta)
        if key is None:
            return False
        candidate = find_extendable_event(
            run.previous, derived.start, key, self.extension_window_seconds
        )
        if candidate is None:
            return False
        if is_protected(candidate):
            run.ops.mark_protected(candidate.id)
            return False

        run.matched.add(candidate.id)
        if candidate.end >= derived.end:
            # already covers this span (a previous run extended it)
            return True

        extension = run.extensions.get(candidate.id)
        if extension is None:
            extension = EventExtension(event_id=candidate.id, new_end=derived.end)
            run.extensions[candidate.id] = extension
            run.ops.extensions.append(extension)
        else:
            extension.new_end = max(extension.new_end, derived.end)

        # later events of this run may chain onto the new end
        run.previous = [
            e.model_copy(update={"end": extension.new_end}) if e.id == candidate.id else e
            for e in run.previous
        ]
        return True

    def _match_or_insert(self, run: "_Run", derived: DerivedEvent) -> Optional[Interval]:
        """Update or insert ``derived``; returns the interval it now occupies"""
        match = run.by_source_id.get(derived.source_id)
        if match is not None:
            run.matched.add(match.id)
            if is_protected(match):
                run.ops.mark_protected(match.id)
                return None
            if match.start != derived.start or match.end != derived.end:
                run.ops.updates.append(
                    EventUpdate(
                        event_id=match.id,
                        title=derived.title,
                        start=derived.start,
                        end=derived.end,
                        meta=derived.meta,
                    )
                )
            return derived.start, derived.end

        blockers = run.protected_overlapping(derived.start, derived.end)
        if blockers:
            for blocker in blockers:
                run.ops.mark_protected(blocker.id)
            return None

        run.ops.inserts.append(derived)
        return derived.start, derived.end

    def _cleanup(self, run: "_Run") -> None:
        """Delete derived events nothing in this run accounted for"""
        for event in run.existing:
            if event.id in run.matched:
                continue
            if not is_derived(event):
                continue
            if event.is_locked:
                run.ops.mark_protected(event.id)
                continue
            run.ops.deletes.append(event.id)


class _Run:
    """Mutable bookkeeping for one compute() call"""

    def __init__(
        self,
        existing: List[ReconciliationEvent],
        previous: List[ReconciliationEvent],
        ops: ReconciliationOps,
    ):
        self.existing = existing
        self.previous = previous
        self.ops = ops
        self.matched: Set[str] = set()
        self.extensions: Dict[str, EventExtension] = {}
        self.by_source_id: Dict[str, ReconciliationEvent] = {}
        for event in existing:
            if event.meta.source_id:
                self.by_source_id.setdefault(event.meta.source_id, event)
        self.protected = [e for e in existing if is_protected(e)]
        self.occupied: Dict[EventPriority, List[Interval]] = {p: [] for p in EventPriority}
        self.occupied[EventPriority.PROTECTED] = [(e.start, e.end) for e in self.protected]

    def occupy(self, priority: EventPriority, interval: Interval) -> None:
        self.occupied[priority].append(interval)

    def occupied_above(self, priority: EventPriority) -> List[Interval]:
        """Intervals held by tiers that outrank ``priority``"""
        return [
            interval
            for tier, intervals in self.occupied.items()
            if outranks(tier, priority)
            for interval in intervals
        ]

    def protected_overlapping(self, start: datetime, end: datetime) -> List[ReconciliationEvent]:
        return [e for e in self.protected if intervals_overlap(start, end, e.start, e.end)]


def compute_reconciliation_ops(
    existing: Sequence[ReconciliationEvent],
    screen_time_derived: Sequence[DerivedEvent],
    location_derived: Sequence[DerivedEvent],
    previous_window: Optional[Sequence[ReconciliationEvent]] = None,
    trim_floor_seconds: float = DEFAULT_TRIM_FLOOR_SECONDS,
    extension_window_seconds: float = DEFAULT_EXTENSION_WINDOW_SECONDS,
) -> ReconciliationOps:
    engine = ReconciliationEngine(
        trim_floor_seconds=trim_floor_seconds,
        extension_window_seconds=extension_window_seconds,
    )
    return engine.compute(existing, screen_time_derived, location_derived, previous_window)


def apply_ops(store: EventStoreProtocol, user_id: str, ops: ReconciliationOps) -> Dict[str, int]:
    """Apply ``ops`` through an EventStore; returns per-kind counts

    Deletes run first so re-inserted source ids never collide.
    """
    counts = {"deleted": 0, "updated": 0, "extended": 0, "inserted": 0}
    if ops.deletes:
        counts["deleted"] = store.delete_events(user_id, ops.deletes)
    for update in ops.updates:
        counts["updated"] += store.update_event(user_id, update)
    for extension in ops.extensions:
        counts["extended"] += store.extend_event(user_id, extension.event_id, extension.new_end)
    if ops.inserts:
        counts["inserted"] = store.insert_events(user_id, ops.inserts)
    return counts
