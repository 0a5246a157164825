"""Nominatim text geocoder: keyword search, address autocomplete, reverse lookup."""
import json
import logging
from typing import Any, Dict, List, Mapping, Optional, Tuple

import aiohttp

from smart_locations.config import get_config
from .overpass_provider import BoundingBox, is_broad_area
from .utils import Coordinate, format_coord, get_session, to_float

logger = logging.getLogger(__name__)

# degrees of viewbox half-width per km of search radius
VIEWBOX_DEG_PER_KM = 0.015


class NominatimError(Exception):
    """Nominatim answered with an error status or an unreadable body."""


def _defaults(base_url, user_agent, timeout):
    cfg = get_config()
    return (
        base_url or cfg.provider_config.nominatim_url,
        user_agent or cfg.provider_config.user_agent,
        timeout or cfg.timeout_config.nominatim,
    )


async def _get_json(session: aiohttp.ClientSession, url: str, params: Dict[str, Any],
                    user_agent: str, timeout: float):
    headers = {"User-Agent": user_agent, "Accept-Language": "en"}
    async with session.get(url, params=params, headers=headers,
                           timeout=aiohttp.ClientTimeout(total=timeout)) as resp:
        if resp.status != 200:
            raise NominatimError(f"Nominatim returned {resp.status}")
        try:
            return await resp.json(content_type=None)
        except (json.JSONDecodeError, ValueError) as e:
            raise NominatimError(f"Invalid JSON from Nominatim: {e}")


def keyword_viewbox(origin: Coordinate, radius_km: float) -> str:
    """`left,top,right,bottom` box around the origin scaled by the radius."""
    d = radius_km * VIEWBOX_DEG_PER_KM
    return ",".join(format_coord(v) for v in (origin.lon - d, origin.lat + d, origin.lon + d, origin.lat - d))


async def search_keyword(keyword: str, origin: Coordinate, radius_km: float, limit: int,
                         session: Optional[aiohttp.ClientSession] = None, base_url: Optional[str] = None,
                         user_agent: Optional[str] = None, timeout: Optional[float] = None,
                         bbox: Optional[BoundingBox] = None) -> List[Dict[str, Any]]:
    """Free-text place search restricted to a viewbox around the origin, or to `bbox`.

    Raises NominatimError (or an aiohttp error) on failure.
    """
    base_url, user_agent, timeout = _defaults(base_url, user_agent, timeout)
    if bbox is not None:
        viewbox = ",".join(format_coord(v) for v in (bbox.west, bbox.north, bbox.east, bbox.south))
    else:
        viewbox = keyword_viewbox(origin, radius_km)
    params = {
        "q": keyword.strip(),
        "format": "json",
        "limit": int(limit),
        "bounded": 1,
        "viewbox": viewbox,
        "addressdetails": 1,
        "extratags": 1,
    }
    async with get_session(session) as sess:
        data = await _get_json(sess, f"{base_url}/search", params, user_agent, timeout)
    if not isinstance(data, list):
        raise NominatimError("Unexpected Nominatim search response")
    return data


async def search_addresses(query: str, limit: int = 8, session: Optional[aiohttp.ClientSession] = None,
                           base_url: Optional[str] = None, user_agent: Optional[str] = None,
                           timeout: Optional[float] = None) -> List[Dict[str, Any]]:
    """Address autocomplete candidates for the search box."""
    base_url, user_agent, timeout = _defaults(base_url, user_agent, timeout)
    params = {
        "q": query,
        "format": "json",
        "addressdetails": 1,
        "limit": int(limit),
        "accept-language": "en",
    }
    async with get_session(session) as sess:
        data = await _get_json(sess, f"{base_url}/search", params, user_agent, timeout)
    if not isinstance(data, list):
        raise NominatimError("Unexpected Nominatim search response")
    return data


async def reverse_geocode(lat: float, lon: float, session: Optional[aiohttp.ClientSession] = None,
                          base_url: Optional[str] = None, user_agent: Optional[str] = None,
                          timeout: Optional[float] = None) -> Dict[str, Any]:
    """Reverse lookup of one coordinate (zoom 14, with address breakdown)."""
    base_url, user_agent, timeout = _defaults(base_url, user_agent, timeout)
    params = {"format": "json", "lat": lat, "lon": lon, "zoom": 14, "addressdetails": 1}
    async with get_session(session) as sess:
        data = await _get_json(sess, f"{base_url}/reverse", params, user_agent, timeout)
    if not isinstance(data, dict) or "error" in data:
        raise NominatimError(f"Reverse geocoding failed: {data.get('error') if isinstance(data, dict) else data}")
    return data


def resolve_search_area(hit: Mapping[str, Any]) -> Tuple[Optional[Coordinate], Optional[BoundingBox]]:
    """Turn a geocoder hit into a search origin plus, for broad areas, a bbox."""
    lat, lon = to_float(hit.get("lat")), to_float(hit.get("lon"))
    bbox = BoundingBox.from_nominatim(hit.get("boundingbox"))
    if lat is None or lon is None:
        if bbox is None:
            return None, None
        lat, lon = bbox.center
    origin = Coordinate(lat, lon)
    if bbox is not None and is_broad_area(hit):
        return origin, bbox
    return origin, None
