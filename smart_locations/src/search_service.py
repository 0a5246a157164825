"""
Search orchestration: cache lookup, provider dispatch, normalization, cache write.

The request mode (tag filters vs. keyword) is decided once when the
`SearchRequest` is built; `SearchService.search` only switches on it.
"""
import logging
import math
import time
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, List, Mapping, Optional, Sequence, Tuple

import aiohttp

from smart_locations.config import ProviderConfig, get_config
from smart_locations.providers import geocoding
from smart_locations.providers.normalizer import Place, nominatim_candidates, normalize, overpass_candidates
from smart_locations.providers.overpass_provider import (
    BoundingBox,
    OverpassEndpoint,
    build_overpass_query,
    fetch_with_failover,
)
from smart_locations.providers.utils import Coordinate
from smart_locations.src.metrics import increment, observe_latency

logger = logging.getLogger(__name__)


class SearchMode(Enum):
    TAGS = "tags"
    KEYWORD = "keyword"
    NONE = "none"


class InvalidSearchRequest(ValueError):
    """Malformed client input; answered with 400 before any upstream call."""


def _number(value) -> Optional[float]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    value = float(value)
    return value if math.isfinite(value) else None


@dataclass(frozen=True)
class SearchRequest:
    origin: Coordinate
    radius_km: float
    limit: int
    mode: SearchMode
    tags: Tuple[str, ...] = ()
    keyword: Optional[str] = None
    bbox: Optional[BoundingBox] = None

    @property
    def filter_tokens(self) -> List[str]:
        if self.mode is SearchMode.KEYWORD:
            return [f"keyword:{self.keyword}"]
        return list(self.tags)

    @property
    def radius_m(self) -> int:
        return int(round(self.radius_km * 1000))

    @classmethod
    def build(cls, lat, lon, tags: Optional[Sequence[str]] = None, keyword: Optional[str] = None,
              limit=None, radius_km=None, bbox: Optional[BoundingBox] = None,
              defaults: Optional[ProviderConfig] = None) -> "SearchRequest":
        defaults = defaults or get_config().provider_config
        lat, lon = _number(lat), _number(lon)
        if lat is None or lon is None:
            raise InvalidSearchRequest("lat and lon required")
        if not (-90 <= lat <= 90 and -180 <= lon <= 180):
            raise InvalidSearchRequest("lat/lon out of range")

        radius_km = defaults.default_radius_km if radius_km is None else _number(radius_km)
        if radius_km is None or radius_km <= 0:
            raise InvalidSearchRequest("radiusKm must be a positive number")
        if limit is None:
            limit = defaults.default_limit
        if isinstance(limit, bool) or not isinstance(limit, int) or limit <= 0:
            raise InvalidSearchRequest("limit must be a positive integer")

        keyword = keyword.strip() if isinstance(keyword, str) else None
        if tags is not None and (not isinstance(tags, (list, tuple)) or not all(isinstance(t, str) for t in tags)):
            raise InvalidSearchRequest("tags must be a list of strings")
        clean_tags = tuple(t.strip() for t in (tags or []) if t.strip())
        if len(clean_tags) > defaults.max_tags:
            logger.info("Limited search from %d to %d tags", len(clean_tags), defaults.max_tags)
            clean_tags = clean_tags[:defaults.max_tags]

        # keyword wins when both are present
        if keyword:
            mode = SearchMode.KEYWORD
        elif clean_tags:
            mode = SearchMode.TAGS
        else:
            mode = SearchMode.NONE
        return cls(Coordinate(lat, lon), float(radius_km), limit, mode, clean_tags, keyword or None, bbox)

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any], defaults: Optional[ProviderConfig] = None) -> "SearchRequest":
        """Build from the `/api/search` JSON body."""
        if not isinstance(payload, Mapping):
            raise InvalidSearchRequest("JSON object body required")
        bbox = None
        if payload.get("bbox") is not None:
            try:
                bbox = BoundingBox.from_list(payload["bbox"])
            except ValueError as e:
                raise InvalidSearchRequest(str(e))
        return cls.build(
            payload.get("lat"), payload.get("lon"),
            tags=payload.get("tags"), keyword=payload.get("keyword"),
            limit=payload.get("limit"), radius_km=payload.get("radiusKm"),
            bbox=bbox, defaults=defaults,
        )


class SearchService:
    """Fan-out/normalize/cache shim over the Overpass mirrors and Nominatim."""

    def __init__(self, session: aiohttp.ClientSession, cache, endpoints: Sequence[OverpassEndpoint],
                 cache_ttl: Optional[float] = None, overpass_timeout: float = 50.0,
                 nominatim_timeout: float = 10.0, nominatim_url: Optional[str] = None,
                 user_agent: Optional[str] = None):
        self.session = session
        self.cache = cache
        self.endpoints = list(endpoints)
        self.cache_ttl = cache_ttl
        self.overpass_timeout = overpass_timeout
        self.nominatim_timeout = nominatim_timeout
        self.nominatim_url = nominatim_url
        self.user_agent = user_agent

    @classmethod
    def from_config(cls, session, cache, config=None) -> "SearchService":
        config = config or get_config()
        return cls(
            session, cache,
            OverpassEndpoint.from_urls(config.provider_config.overpass_endpoints),
            cache_ttl=config.cache_config.ttl_search,
            overpass_timeout=config.timeout_config.overpass,
            nominatim_timeout=config.timeout_config.nominatim,
            nominatim_url=config.provider_config.nominatim_url,
            user_agent=config.provider_config.user_agent,
        )

    async def search(self, request: SearchRequest, timeout: Optional[float] = None) -> List[Place]:
        """Run one search.

        Raises UpstreamUnavailable when every Overpass mirror fails in tag mode;
        every other failure degrades to an empty list.
        """
        if request.mode is SearchMode.NONE:
            return []

        # broad-area (bbox) searches are never cached
        use_cache = request.bbox is None
        if use_cache:
            cached = await self._cache_get(request)
            if cached is not None:
                await increment("search.cache_hit")
                return cached
            await increment("search.cache_miss")

        started = time.perf_counter()
        if request.mode is SearchMode.KEYWORD:
            places = await self._keyword_search(request)
            await observe_latency("search.keyword", (time.perf_counter() - started) * 1000)
            if places is None:
                return []
        else:
            places = await self._tag_search(request, timeout or self.overpass_timeout)
            await observe_latency("search.tags", (time.perf_counter() - started) * 1000)

        if use_cache:
            await self.cache.put(request.origin.lat, request.origin.lon, request.filter_tokens,
                                 request.radius_km, request.limit, [p.to_dict() for p in places],
                                 ttl=self.cache_ttl)
        return places

    async def _cache_get(self, request: SearchRequest) -> Optional[List[Place]]:
        payload = await self.cache.get(request.origin.lat, request.origin.lon, request.filter_tokens,
                                       request.radius_km, request.limit)
        if payload is None:
            return None
        try:
            return [Place.from_dict(d) for d in payload]
        except (KeyError, TypeError, ValueError) as e:
            logger.warning("Discarding unreadable cache entry: %s", e)
            return None

    async def _keyword_search(self, request: SearchRequest) -> Optional[List[Place]]:
        """Nominatim keyword search; None when the provider failed."""
        try:
            hits = await geocoding.search_keyword(
                request.keyword, request.origin, request.radius_km, request.limit,
                session=self.session, base_url=self.nominatim_url,
                user_agent=self.user_agent, timeout=self.nominatim_timeout,
                bbox=request.bbox,
            )
        except Exception as e:
            logger.error("Nominatim search failed: %s", e)
            await increment("nominatim.failure")
            return None
        return normalize(nominatim_candidates(hits, request.keyword), request.origin, request.limit)

    async def _tag_search(self, request: SearchRequest, timeout: float) -> List[Place]:
        if request.bbox is not None:
            query = build_overpass_query(request.tags, bbox=request.bbox)
        else:
            query = build_overpass_query(request.tags, radius_m=request.radius_m, origin=request.origin)
        try:
            data = await fetch_with_failover(self.session, self.endpoints, query, timeout)
        except Exception:
            await increment("overpass.total_failure")
            raise
        return normalize(overpass_candidates(data.get("elements") or []), request.origin, request.limit)

    async def search_near_address(self, address: str, tags: Optional[Sequence[str]] = None, keyword: Optional[str] = None,
                                  limit=None, radius_km=None) -> Tuple[Optional[Coordinate], Optional[BoundingBox], List[Place]]:
        """Geocode an address, pick radius or bbox mode, then search.

        Returns `(origin, bbox, places)`; origin is None when the address
        cannot be resolved. Filters, limit and radius are checked before the
        geocoder is called.
        """
        # placeholder origin; replaced once the address resolves
        pending = SearchRequest.build(0.0, 0.0, tags=tags, keyword=keyword, limit=limit, radius_km=radius_km)
        try:
            hits = await geocoding.search_addresses(
                address, limit=1, session=self.session, base_url=self.nominatim_url,
                user_agent=self.user_agent, timeout=self.nominatim_timeout,
            )
        except Exception as e:
            logger.error("Address lookup failed for %r: %s", address, e)
            await increment("nominatim.failure")
            return None, None, []
        if not hits:
            return None, None, []
        origin, bbox = geocoding.resolve_search_area(hits[0])
        if origin is None:
            return None, None, []
        return origin, bbox, await self.search(replace(pending, origin=origin, bbox=bbox))
