"""
Place label cache
Remembers looked-up place names per user and rounded coordinate
"""

from typing import Dict, Optional, Tuple

from daytrace.core.geo import coordinate_key
from daytrace.core.logger import get_logger
from daytrace.models.evidence import PlaceLookupResult

logger = get_logger(__name__)

CacheKey = Tuple[str, str]


class PlaceLabelCache:
    """In-memory lookup cache

    Owned by whoever builds the pipeline and passed to the enricher explicitly,
    so separate pipelines never share entries by accident.
    """

    def __init__(self, precision: int = 4):
        self.precision = precision
        self._entries: Dict[CacheKey, PlaceLookupResult] = {}

    def _key(self, user_id: str, latitude: float, longitude: float) -> CacheKey:
        return user_id, coordinate_key(latitude, longitude, self.precision)

    def get(self, user_id: str, latitude: float, longitude: float) -> Optional[PlaceLookupResult]:
        return self._entries.get(self._key(user_id, latitude, longitude))

    def put(self, user_id: str, latitude: float, longitude: float, result: PlaceLookupResult) -> None:
        self._entries[self._key(user_id, latitude, longitude)] = result

    def invalidate(self, user_id: str) -> int:
        """Drop every entry for ``user_id``; returns how many were removed"""
        stale = [key for key in self._entries if key[0] == user_id]
        for key in stale:
            del self._entries[key]
        if stale:
            logger.debug(f"Invalidated {len(stale)} cached place labels for {user_id}")
        return len(stale)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
