"""
Place enrichment
Labels unknown-place segments with a nearby venue name when the match is trustworthy
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from daytrace.core.geo import coordinate_key
from daytrace.core.label_cache import PlaceLabelCache
from daytrace.core.logger import get_logger
from daytrace.core.protocols import PlaceLookupProtocol
from daytrace.models.evidence import GeoPoint, PlaceLookupResult
from daytrace.models.segments import ActivitySegment

from .place_confidence import format_place_name, score_candidate
from .place_lookup_client import DEFAULT_MAX_POINTS

logger = get_logger(__name__)


@dataclass
class EnrichmentResult:
    segments: List[ActivitySegment] = field(default_factory=list)
    places_looked_up: int = 0
    labelled: int = 0


def _needs_label(segment: ActivitySegment) -> bool:
    return segment.centroid is not None and not segment.place_label and not segment.is_commute


class PlaceEnricher:
    """Second pipeline phase: runs after pure segment generation

    Args:
        lookup: Anything with ``async lookup(points) -> List[PlaceLookupResult]``
        cache: Label cache shared with other enrichers of the same pipeline
        max_points: Points per lookup call
    """

    def __init__(
        self,
        lookup: PlaceLookupProtocol,
        cache: Optional[PlaceLabelCache] = None,
        max_points: int = DEFAULT_MAX_POINTS,
    ):
        self.lookup = lookup
        self.cache = cache if cache is not None else PlaceLabelCache()
        self.max_points = max_points

    async def enrich(self, segments: Sequence[ActivitySegment]) -> EnrichmentResult:
        """Return ``segments`` with labels filled in where a candidate scores well enough

        Rejected candidates and failed lookups leave a segment untouched.
        """
        result = EnrichmentResult(segments=list(segments))
        targets = [s for s in segments if _needs_label(s)]
        if not targets:
            return result

        found: Dict[str, PlaceLookupResult] = {}
        pending: Dict[str, GeoPoint] = {}
        for segment in targets:
            key = coordinate_key(segment.centroid.latitude, segment.centroid.longitude)
            if key in found or key in pending:
                continue
            cached = self.cache.get(
                segment.user_id, segment.centroid.latitude, segment.centroid.longitude
            )
            if cached is not None:
                found[key] = cached
            else:
                pending[key] = segment.centroid

        if pending:
            user_id = targets[0].user_id
            keys = list(pending)
            for offset in range(0, len(keys), self.max_points):
                batch = keys[offset : offset + self.max_points]
                fetched = await self._lookup_batch([pending[k] for k in batch])
                result.places_looked_up += len(fetched)
                for key, candidate in zip(batch, fetched):
                    found[key] = candidate
                    if candidate.place_name:
                        point = pending[key]
                        self.cache.put(user_id, point.latitude, point.longitude, candidate)

        enriched: List[ActivitySegment] = []
        for segment in segments:
            label = self._label_for(segment, found) if _needs_label(segment) else None
            if label:
                enriched.append(segment.model_copy(update={"place_label": label}))
                result.labelled += 1
            else:
                enriched.append(segment)
        result.segments = enriched
        logger.debug(
            f"Place enrichment: {result.labelled}/{len(targets)} segments labelled, "
            f"{result.places_looked_up} points looked up"
        )
        return result

    async def _lookup_batch(self, points: List[GeoPoint]) -> List[PlaceLookupResult]:
        try:
            return list(await self.lookup.lookup(points))
        except Exception as e:
            logger.warning(f"Place lookup failed for {len(points)} points: {e}")
            return []

    def _label_for(
        self, segment: ActivitySegment, found: Dict[str, PlaceLookupResult]
    ) -> Optional[str]:
        centroid = segment.centroid
        candidate = found.get(coordinate_key(centroid.latitude, centroid.longitude))
        if candidate is None or not candidate.place_name:
            return None

        confidence = score_candidate(
            centroid.latitude,
            centroid.longitude,
            candidate.latitude,
            candidate.longitude,
            dwell_seconds=segment.duration_seconds,
            sample_count=segment.evidence.location_samples,
            is_reverse_geocode=candidate.is_reverse_geocode,
            place_types=candidate.types,
        )
        if not confidence.should_show:
            logger.debug(
                f"Rejected '{candidate.place_name}' for {segment.id}: "
                f"{confidence.score} ({confidence.reasoning})"
            )
            return None
        return format_place_name(candidate.place_name, confidence.use_fuzzy_format)
