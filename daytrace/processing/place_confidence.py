"""
Place confidence scoring
Decides whether a looked-up place name can be shown for a segment, shown as "Near X", or dropped
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Sequence

from daytrace.core.geo import haversine_meters

PLACE_MAX_CONFIDENT_DISTANCE_M = 50.0
PLACE_MAX_FUZZY_DISTANCE_M = 150.0
PLACE_MIN_DWELL_MINUTES = 5.0

FUZZY_PREFIX = "Near "

LARGE_VENUE_TYPES = (
    "airport",
    "shopping_mall",
    "university",
    "hospital",
    "stadium",
    "amusement_park",
)
SMALL_VENUE_TYPES = ("cafe", "coffee", "fast_food", "restaurant")


class ConfidenceLevel(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    VERY_LOW = "very_low"


class DistanceVerdict(str, Enum):
    ACCEPT = "accept"
    FUZZY = "fuzzy"
    REJECT = "reject"


@dataclass
class PlaceConfidenceFactors:
    """Inputs to the scorer

    Args:
        distance_m: Segment centroid to candidate place, in meters
        dwell_seconds: Time spent in the segment
        sample_count: Location samples behind the centroid
        is_reverse_geocode: Candidate is an area label rather than a venue
        place_types: Venue types reported by the lookup service
    """

    distance_m: float
    dwell_seconds: float
    sample_count: int
    is_reverse_geocode: bool = False
    place_types: List[str] = field(default_factory=list)


@dataclass
class PlaceConfidenceResult:
    score: float
    level: ConfidenceLevel
    should_show: bool
    use_fuzzy_format: bool
    reasoning: str


def _has_type(place_types: Sequence[str], candidates: Sequence[str]) -> bool:
    return any(c in t for t in place_types for c in candidates)


def score_place_confidence(
    factors: PlaceConfidenceFactors,
    confident_distance_m: float = PLACE_MAX_CONFIDENT_DISTANCE_M,
    fuzzy_distance_m: float = PLACE_MAX_FUZZY_DISTANCE_M,
) -> PlaceConfidenceResult:
    """Multiply distance, dwell, sample, geocode and venue factors into one score"""
    score = 1.0
    reasons: List[str] = []
    distance = factors.distance_m
    meters = round(distance)

    # Distance; the 0.75 tier only opens up when the confident threshold exceeds 50m
    if distance <= 25:
        pass
    elif distance <= 50:
        score *= 0.9
        reasons.append(f"{meters}m away")
    elif distance <= confident_distance_m:
        score *= 0.75
        reasons.append(f"{meters}m away")
    elif distance <= 100:
        score *= 0.55
        reasons.append(f"{meters}m away (borderline)")
    elif distance <= fuzzy_distance_m:
        score *= 0.35
        reasons.append(f"{meters}m away (far)")
    else:
        score *= 0.1
        reasons.append(f"{meters}m away (too far)")

    dwell_minutes = factors.dwell_seconds / 60
    if dwell_minutes >= 30:
        score *= 1.1
    elif dwell_minutes >= 15:
        pass
    elif dwell_minutes >= PLACE_MIN_DWELL_MINUTES:
        score *= 0.95
    elif dwell_minutes >= 3:
        score *= 0.85
        reasons.append(f"short dwell ({round(dwell_minutes)}min)")
    else:
        score *= 0.7
        reasons.append(f"very short dwell ({round(dwell_minutes)}min)")

    if factors.sample_count >= 10:
        score *= 1.05
    elif factors.sample_count >= 5:
        pass
    elif factors.sample_count >= 3:
        score *= 0.95
        reasons.append(f"low samples ({factors.sample_count})")
    else:
        score *= 0.85
        reasons.append(f"very few samples ({factors.sample_count})")

    if factors.is_reverse_geocode:
        score *= 0.9
        reasons.append("area label (not specific place)")

    types = [t.lower() for t in factors.place_types or []]
    if types:
        if _has_type(types, LARGE_VENUE_TYPES) and distance > confident_distance_m:
            score *= 1.15
            reasons.append("large venue (distance OK)")
        if _has_type(types, SMALL_VENUE_TYPES) and distance > 50:
            score *= 0.85
            reasons.append("small venue far away")

    score = round(max(0.0, min(1.0, score)), 4)

    should_show = True
    use_fuzzy = False
    if score >= 0.7:
        level = ConfidenceLevel.HIGH
    elif score >= 0.5:
        level = ConfidenceLevel.MEDIUM
    elif score >= 0.3:
        level = ConfidenceLevel.LOW
        use_fuzzy = True
    else:
        level = ConfidenceLevel.VERY_LOW
        use_fuzzy = True
        should_show = score >= 0.15

    return PlaceConfidenceResult(
        score=score,
        level=level,
        should_show=should_show,
        use_fuzzy_format=use_fuzzy,
        reasoning=", ".join(reasons) if reasons else "good match",
    )


def quick_distance_check(
    distance_m: float,
    confident_distance_m: float = PLACE_MAX_CONFIDENT_DISTANCE_M,
    fuzzy_distance_m: float = PLACE_MAX_FUZZY_DISTANCE_M,
) -> DistanceVerdict:
    """Cheap pre-filter before full scoring"""
    if distance_m <= confident_distance_m:
        return DistanceVerdict.ACCEPT
    if distance_m <= fuzzy_distance_m:
        return DistanceVerdict.FUZZY
    return DistanceVerdict.REJECT


def format_place_name(place_name: str, use_fuzzy: bool) -> str:
    if not use_fuzzy or place_name.startswith(FUZZY_PREFIX):
        return place_name
    return f"{FUZZY_PREFIX}{place_name}"


def score_candidate(
    centroid_lat: float,
    centroid_lon: float,
    place_lat: float,
    place_lon: float,
    dwell_seconds: float,
    sample_count: int,
    is_reverse_geocode: bool = False,
    place_types: Optional[Sequence[str]] = None,
) -> PlaceConfidenceResult:
    """Score a candidate from raw coordinates"""
    distance = haversine_meters(centroid_lat, centroid_lon, place_lat, place_lon)
    return score_place_confidence(
        PlaceConfidenceFactors(
            distance_m=distance,
            dwell_seconds=dwell_seconds,
            sample_count=sample_count,
            is_reverse_geocode=is_reverse_geocode,
            place_types=list(place_types or []),
        )
    )
