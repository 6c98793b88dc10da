"""
Place lookup client
Asks the place-name service what is at a set of coordinates
"""

from typing import Any, Dict, List, Optional, Sequence

import httpx

from daytrace.core.logger import get_logger
from daytrace.models.evidence import GeoPoint, PlaceLookupResult

logger = get_logger(__name__)

DEFAULT_MAX_POINTS = 20


class HttpPlaceLookup:
    """Client for the batch lookup endpoint

    Request body: ``{"points": [{"latitude": .., "longitude": ..}, ...]}``
    Response body: ``{"results": [{"placeName", "latitude", "longitude", "types", "source"}, ...]}``
    with one result per point, in order. Any failure is logged and yields an
    empty list; there are no retries.
    """

    def __init__(
        self,
        url: str,
        api_key: Optional[str] = None,
        timeout: float = 15.0,
        max_points: int = DEFAULT_MAX_POINTS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.url = url
        self.api_key = api_key
        self.timeout = httpx.Timeout(timeout)
        self.max_points = max_points
        self._transport = transport

    @classmethod
    def from_config(cls, config_loader=None) -> Optional["HttpPlaceLookup"]:
        """Build from the [place_lookup] section; None when disabled or unconfigured"""
        if config_loader is None:
            from daytrace.config.loader import get_config

            config_loader = get_config()

        if not config_loader.get("place_lookup.enabled", False):
            return None
        url = config_loader.get("place_lookup.url", "")
        if not url:
            logger.warning("Place lookup enabled but place_lookup.url is empty, disabling")
            return None
        return cls(
            url=url,
            api_key=config_loader.get("place_lookup.api_key") or None,
            timeout=float(config_loader.get("place_lookup.timeout", 15.0)),
            max_points=int(config_loader.get("place_lookup.max_points", DEFAULT_MAX_POINTS)),
        )

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    async def lookup(self, points: Sequence[GeoPoint]) -> List[PlaceLookupResult]:
        """Look up at most ``max_points`` points in one request"""
        if not points:
            return []
        if len(points) > self.max_points:
            logger.warning(
                f"Place lookup got {len(points)} points, only the first {self.max_points} are sent"
            )
            points = points[: self.max_points]

        payload = {
            "points": [{"latitude": p.latitude, "longitude": p.longitude} for p in points]
        }
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(self.url, headers=self._headers(), json=payload)
            response.raise_for_status()
            body = response.json()
        except httpx.TimeoutException:
            logger.warning(f"Place lookup timed out after {self.timeout.read}s")
            return []
        except httpx.HTTPStatusError as e:
            logger.warning(
                f"Place lookup failed: HTTP {e.response.status_code}: {e.response.text[:200]}"
            )
            return []
        except httpx.RequestError as e:
            logger.warning(f"Place lookup request error: {str(e) or e.__class__.__name__}")
            return []
        except ValueError as e:
            logger.warning(f"Place lookup returned invalid JSON: {e}")
            return []

        return self._parse_results(body, points)

    def _parse_results(
        self, body: Any, points: Sequence[GeoPoint]
    ) -> List[PlaceLookupResult]:
        raw_results = body.get("results") if isinstance(body, dict) else None
        if not isinstance(raw_results, list):
            logger.warning("Place lookup response has no results list")
            return []
        if len(raw_results) != len(points):
            logger.warning(
                f"Place lookup returned {len(raw_results)} results for {len(points)} points"
            )

        results: List[PlaceLookupResult] = []
        for point, raw in zip(points, raw_results):
            if not isinstance(raw, dict):
                raw = {}
            results.append(
                PlaceLookupResult(
                    place_name=raw.get("placeName") or None,
                    latitude=_as_float(raw.get("latitude"), point.latitude),
                    longitude=_as_float(raw.get("longitude"), point.longitude),
                    types=[str(t) for t in raw.get("types") or []],
                    source=str(raw.get("source") or "none"),
                )
            )
        return results


def _as_float(value: Any, default: float) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return default
