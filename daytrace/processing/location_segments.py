"""
Location segmentation
Clusters location samples into dwell and commute segments, merges neighbours and drops short dwells
"""

import statistics
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Sequence, Tuple

from daytrace.core.geo import centroid, haversine_meters
from daytrace.core.logger import get_logger
from daytrace.core.settings import DEFAULT_SETTINGS, PipelineSettings
from daytrace.core.timeutils import clamp
from daytrace.models.evidence import LocationSample, UserPlace
from daytrace.models.segments import PLACE_COMMUTE, MovementType

logger = get_logger(__name__)

# Hops shorter than this are treated as GPS jitter when deriving speed
JITTER_FLOOR_M = 25.0
WALKING_MAX_MPS = 2.5
CYCLING_MAX_MPS = 7.0

_ACTIVITY_MOVEMENT = {
    "walking": MovementType.WALKING,
    "on_foot": MovementType.WALKING,
    "running": MovementType.WALKING,
    "cycling": MovementType.CYCLING,
    "on_bicycle": MovementType.CYCLING,
    "in_vehicle": MovementType.DRIVING,
    "automotive": MovementType.DRIVING,
    "driving": MovementType.DRIVING,
}


@dataclass
class _Fix:
    """A sample annotated with its matched place and speed"""

    sample: LocationSample
    place: Optional[UserPlace]
    speed: float
    hop_meters: float

    @property
    def point(self) -> Tuple[float, float]:
        return self.sample.latitude, self.sample.longitude


@dataclass
class LocationSegment:
    """Intermediate dwell or commute block, before activity inference"""

    start: datetime
    end: datetime
    place: Optional[UserPlace]
    centroid: Optional[Tuple[float, float]]
    sample_count: int
    place_match_ratio: float
    is_commute: bool = False
    movement_type: Optional[MovementType] = None
    distance_meters: Optional[float] = None
    fixes: List[_Fix] = field(default_factory=list, repr=False)

    @property
    def duration_seconds(self) -> float:
        return (self.end - self.start).total_seconds()

    @property
    def place_id(self) -> Optional[str]:
        return self.place.id if self.place else None

    @property
    def place_category(self) -> Optional[str]:
        if self.is_commute:
            return PLACE_COMMUTE
        return self.place.category if self.place else None


def match_place(
    latitude: float,
    longitude: float,
    places: Sequence[UserPlace],
    default_radius_m: float = DEFAULT_SETTINGS.place_radius_m,
) -> Optional[UserPlace]:
    """Nearest known place whose radius contains the point

    Places without a radius of their own use ``default_radius_m``.
    """
    best: Optional[UserPlace] = None
    best_distance = float("inf")
    for place in places:
        distance = haversine_meters(
            latitude, longitude, place.centroid.latitude, place.centroid.longitude
        )
        radius = place.radius_meters or default_radius_m
        if distance <= radius and distance < best_distance:
            best = place
            best_distance = distance
    return best


def _annotate(
    samples: Sequence[LocationSample],
    places: Sequence[UserPlace],
    default_radius_m: float,
) -> List[_Fix]:
    fixes: List[_Fix] = []
    previous: Optional[LocationSample] = None
    for sample in samples:
        hop = 0.0
        derived_speed = 0.0
        if previous is not None:
            hop = haversine_meters(
                previous.latitude, previous.longitude, sample.latitude, sample.longitude
            )
            dt = (sample.timestamp - previous.timestamp).total_seconds()
            if dt > 0 and hop >= JITTER_FLOOR_M:
                derived_speed = hop / dt
        speed = sample.speed if sample.speed is not None and sample.speed >= 0 else derived_speed
        fixes.append(
            _Fix(
                sample=sample,
                place=match_place(sample.latitude, sample.longitude, places, default_radius_m),
                speed=speed,
                hop_meters=hop,
            )
        )
        previous = sample
    return fixes


def _infer_movement(fixes: Sequence[_Fix]) -> MovementType:
    """Movement type from device activity labels, falling back to median speed"""
    labels = [
        _ACTIVITY_MOVEMENT[f.sample.activity.strip().lower()]
        for f in fixes
        if f.sample.activity and f.sample.activity.strip().lower() in _ACTIVITY_MOVEMENT
    ]
    if labels and len(labels) * 2 > len(fixes):
        return Counter(labels).most_common(1)[0][0]

    speeds = [f.speed for f in fixes if f.speed > 0]
    if not speeds:
        return MovementType.WALKING
    median = statistics.median(speeds)
    if median < WALKING_MAX_MPS:
        return MovementType.WALKING
    if median < CYCLING_MAX_MPS:
        return MovementType.CYCLING
    return MovementType.DRIVING


def _group_fixes(fixes: List[_Fix], settings: PipelineSettings) -> List[List[_Fix]]:
    """Split the fix stream into runs of moving or stationary fixes

    A stationary run breaks when a fix drifts beyond the merge distance from the
    run centroid, or lands in a different known place than the run started in.
    """
    groups: List[List[_Fix]] = []
    current: List[_Fix] = []
    current_moving = False
    current_place_id: Optional[str] = None

    for fix in fixes:
        moving = fix.place is None and fix.speed >= settings.moving_speed_mps
        if not current:
            current = [fix]
            current_moving = moving
            current_place_id = fix.place.id if fix.place else None
            continue

        split = moving != current_moving
        if not split and not moving:
            center = centroid(f.point for f in current)
            drift = haversine_meters(center[0], center[1], *fix.point) if center else 0.0
            conflicting = (
                fix.place is not None
                and current_place_id is not None
                and fix.place.id != current_place_id
            )
            split = drift > settings.merge_distance_m or conflicting

        if split:
            groups.append(current)
            current = [fix]
            current_moving = moving
            current_place_id = fix.place.id if fix.place else None
        else:
            current.append(fix)
            if current_place_id is None and fix.place is not None:
                current_place_id = fix.place.id

    if current:
        groups.append(current)
    return groups


def _dominant_place(
    fixes: Sequence[_Fix], threshold: float
) -> Tuple[Optional[UserPlace], float]:
    """Place holding at least ``threshold`` of the fixes, and its share"""
    counts: Counter = Counter()
    by_id = {}
    for fix in fixes:
        if fix.place is not None:
            counts[fix.place.id] += 1
            by_id[fix.place.id] = fix.place
    if not counts:
        return None, 0.0
    place_id, count = counts.most_common(1)[0]
    ratio = count / len(fixes)
    if ratio >= threshold:
        return by_id[place_id], ratio
    return None, ratio


def _segment_from_fixes(
    fixes: List[_Fix],
    moving: bool,
    window_start: datetime,
    window_end: datetime,
    settings: PipelineSettings,
) -> Optional[LocationSegment]:
    start = clamp(fixes[0].sample.timestamp, window_start, window_end)
    end = clamp(fixes[-1].sample.timestamp, window_start, window_end)
    if start >= end:
        return None

    center = centroid(f.point for f in fixes)
    if moving:
        return LocationSegment(
            start=start,
            end=end,
            place=None,
            centroid=center,
            sample_count=len(fixes),
            place_match_ratio=1.0,
            is_commute=True,
            movement_type=_infer_movement(fixes),
            distance_meters=round(sum(f.hop_meters for f in fixes[1:]), 1),
            fixes=list(fixes),
        )

    place, ratio = _dominant_place(fixes, settings.place_match_threshold)
    return LocationSegment(
        start=start,
        end=end,
        place=place,
        centroid=center,
        sample_count=len(fixes),
        place_match_ratio=ratio,
        movement_type=MovementType.STATIONARY,
        fixes=list(fixes),
    )


def build_location_segments(
    samples: Sequence[LocationSample],
    places: Sequence[UserPlace],
    window_start: datetime,
    window_end: datetime,
    settings: PipelineSettings = DEFAULT_SETTINGS,
) -> List[LocationSegment]:
    """Cluster one window of samples into dwell and commute segments

    Args:
        samples: Location samples, any order; those outside the window are ignored
        places: The user's known places
        window_start: Inclusive window start
        window_end: Exclusive window end

    Returns:
        Unmerged segments ordered by start
    """
    in_window = sorted(
        (
            s
            for s in samples
            if window_start <= s.timestamp < window_end and not s.is_mocked
        ),
        key=lambda s: s.timestamp,
    )
    if not in_window:
        return []

    fixes = _annotate(in_window, places, settings.place_radius_m)
    segments: List[LocationSegment] = []
    for group in _group_fixes(fixes, settings):
        moving = group[0].place is None and group[0].speed >= settings.moving_speed_mps
        segment = _segment_from_fixes(group, moving, window_start, window_end, settings)
        if segment is not None:
            segments.append(segment)

    logger.debug(
        f"Clustered {len(in_window)} samples into {len(segments)} location segments"
    )
    return segments


def _can_merge(
    previous: LocationSegment, current: LocationSegment, settings: PipelineSettings
) -> bool:
    gap = (current.start - previous.end).total_seconds()
    if gap > settings.merge_gap_seconds:
        return False
    if previous.is_commute or current.is_commute:
        return previous.is_commute and current.is_commute
    if previous.place_id is not None or current.place_id is not None:
        return previous.place_id == current.place_id
    if previous.centroid is None or current.centroid is None:
        return False
    distance = haversine_meters(*previous.centroid, *current.centroid)
    return distance <= settings.merge_distance_m


def _combine(previous: LocationSegment, current: LocationSegment) -> LocationSegment:
    fixes = previous.fixes + current.fixes
    total = previous.sample_count + current.sample_count
    ratio = (
        previous.place_match_ratio * previous.sample_count
        + current.place_match_ratio * current.sample_count
    ) / total
    merged = LocationSegment(
        start=previous.start,
        end=max(previous.end, current.end),
        place=previous.place or current.place,
        centroid=centroid(f.point for f in fixes) or previous.centroid,
        sample_count=total,
        place_match_ratio=ratio,
        is_commute=previous.is_commute,
        movement_type=previous.movement_type,
        fixes=fixes,
    )
    if merged.is_commute:
        bridge = 0.0
        if previous.fixes and current.fixes:
            bridge = haversine_meters(*previous.fixes[-1].point, *current.fixes[0].point)
        merged.distance_meters = round(
            (previous.distance_meters or 0.0) + (current.distance_meters or 0.0) + bridge,
            1,
        )
        merged.movement_type = _infer_movement(fixes)
    return merged


def merge_location_segments(
    segments: Sequence[LocationSegment],
    settings: PipelineSettings = DEFAULT_SETTINGS,
) -> List[LocationSegment]:
    """Merge adjacent segments at the same place (or within the merge distance)"""
    merged: List[LocationSegment] = []
    for segment in sorted(segments, key=lambda s: s.start):
        if merged and _can_merge(merged[-1], segment, settings):
            merged[-1] = _combine(merged[-1], segment)
        else:
            merged.append(segment)
    return merged


def drop_short_dwells(
    segments: Sequence[LocationSegment],
    settings: PipelineSettings = DEFAULT_SETTINGS,
    keep_short: bool = False,
) -> List[LocationSegment]:
    """Remove segments shorter than the dwell floor

    ``keep_short`` keeps them, for callers that re-merge across hour boundaries.
    """
    if keep_short:
        return list(segments)
    kept = [s for s in segments if s.duration_seconds >= settings.min_dwell_seconds]
    dropped = len(segments) - len(kept)
    if dropped:
        logger.debug(f"Dropped {dropped} segments below the dwell floor")
    return kept
