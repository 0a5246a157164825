"""Overpass provider: tag query building and sequential mirror failover.

The mirrors in `OVERPASS_ENDPOINTS` are tried strictly one after another
(fastest-known first, official instance next, community backup last). There
is no racing and no retry against the same mirror.
"""
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple
import json
import logging

import aiohttp

from .utils import Coordinate, format_coord, to_float

logger = logging.getLogger(__name__)

OVERPASS_QL_TIMEOUT = 45
BROAD_AREA_SPAN_DEG = 0.5
BROAD_ADDRESS_TYPES = {"country", "state", "region", "province"}
ELEMENT_KINDS = ("node", "way", "relation")


@dataclass(frozen=True)
class OverpassEndpoint:
    url: str
    label: str = ""

    @classmethod
    def from_urls(cls, urls: Iterable[str]) -> List["OverpassEndpoint"]:
        return [cls(url=u, label=u.split("//", 1)[-1].split("/", 1)[0]) for u in urls]


@dataclass(frozen=True)
class BoundingBox:
    south: float
    west: float
    north: float
    east: float

    @property
    def lat_span(self) -> float:
        return abs(self.north - self.south)

    @property
    def lon_span(self) -> float:
        return abs(self.east - self.west)

    @property
    def center(self) -> Coordinate:
        return Coordinate((self.south + self.north) / 2, (self.west + self.east) / 2)

    @classmethod
    def from_list(cls, values: Sequence[Any]) -> "BoundingBox":
        """Build from `[south, west, north, east]`; raises ValueError when malformed."""
        if not isinstance(values, (list, tuple)) or len(values) != 4:
            raise ValueError("bbox must be [south, west, north, east]")
        nums = [to_float(v) for v in values]
        if any(n is None for n in nums):
            raise ValueError("bbox values must be numbers")
        south, west, north, east = nums
        if not (south < north and west < east):
            raise ValueError("invalid bbox")
        return cls(south, west, north, east)

    @classmethod
    def from_nominatim(cls, values: Sequence[Any]) -> Optional["BoundingBox"]:
        """Nominatim orders its `boundingbox` as [south, north, west, east]."""
        if not isinstance(values, (list, tuple)) or len(values) != 4:
            return None
        nums = [to_float(v) for v in values]
        if any(n is None for n in nums):
            return None
        south, north, west, east = nums
        return cls(south, west, north, east)


class OverpassError(Exception):
    """A single mirror attempt failed."""


class UpstreamUnavailable(Exception):
    """Every Overpass mirror failed for one query."""

    def __init__(self, last_error: Optional[BaseException], attempts: Optional[List[Tuple[str, str]]] = None):
        self.last_error = last_error
        self.attempts = attempts or []
        super().__init__(f"All Overpass API endpoints unavailable: {last_error}")


def parse_tag_token(token: str) -> Tuple[str, Optional[str]]:
    """Split `"key=value"` on the first `=`.

    Tokens without `=` are kept as a bare key (value None) rather than rejected.
    """
    token = (token or "").strip()
    if "=" not in token:
        return token, None
    key, value = token.split("=", 1)
    return key.strip(), value.strip()


def _quote(s: str) -> str:
    return '"' + s.replace("\\", "\\\\").replace('"', '\\"') + '"'


def _tag_filter(key: str, value: Optional[str]) -> str:
    if value is None:
        return f"[{_quote(key)}]"
    return f"[{_quote(key)}={_quote(value)}]"


def build_overpass_query(tokens: Iterable[str], radius_m: Optional[int] = None,
                         origin: Optional[Coordinate] = None, bbox: Optional[BoundingBox] = None) -> str:
    """Build an Overpass QL union asking for every kind matching each token.

    Exactly one area shape is used: `bbox` when given, else `around` the origin.
    `out center` makes ways/relations carry a representative point.
    """
    if bbox is not None:
        area = "(" + ",".join(format_coord(v) for v in (bbox.south, bbox.west, bbox.north, bbox.east)) + ")"
    elif origin is not None and radius_m is not None:
        area = f"(around:{int(radius_m)},{format_coord(origin.lat)},{format_coord(origin.lon)})"
    else:
        raise ValueError("either bbox or origin and radius_m are required")

    statements = []
    for token in tokens:
        key, value = parse_tag_token(token)
        if not key:
            continue
        f = _tag_filter(key, value)
        statements.append("".join(f"{kind}{f}{area};" for kind in ELEMENT_KINDS))

    body = "\n  ".join(statements)
    return f"[out:json][timeout:{OVERPASS_QL_TIMEOUT}];\n(\n  {body}\n);\nout center;"


def is_broad_area(hit: Mapping[str, Any]) -> bool:
    """Decide bounding-box search for a geocoder hit.

    True for country/state-level matches, or when the hit's bounding box spans
    more than half a degree on either axis.
    """
    if not isinstance(hit, Mapping):
        return False
    kind = hit.get("addresstype") or hit.get("type")
    if kind in BROAD_ADDRESS_TYPES:
        return True
    address = hit.get("address")
    if isinstance(address, Mapping) and address:
        local = {"road", "house_number", "city", "town", "village", "municipality", "suburb", "postcode", "county"}
        if not local.intersection(address) and (address.keys() & {"country", "state"}):
            return True
    bbox = BoundingBox.from_nominatim(hit.get("boundingbox"))
    if bbox is not None and (bbox.lat_span > BROAD_AREA_SPAN_DEG or bbox.lon_span > BROAD_AREA_SPAN_DEG):
        return True
    return False


async def _post_query(session: aiohttp.ClientSession, endpoint: OverpassEndpoint, query: str,
                      timeout: float) -> Dict[str, Any]:
    async with session.post(
        endpoint.url,
        data={"data": query},
        headers={"Content-Type": "application/x-www-form-urlencoded"},
        timeout=aiohttp.ClientTimeout(total=timeout),
    ) as resp:
        if not 200 <= resp.status < 300:
            raise OverpassError(f"HTTP {resp.status} from {endpoint.url}")
        try:
            data = await resp.json(content_type=None)
        except (json.JSONDecodeError, ValueError) as e:
            raise OverpassError(f"Invalid JSON from {endpoint.url}: {e}")
        if not isinstance(data, dict):
            raise OverpassError(f"Invalid response from {endpoint.url}")
        remark = data.get("remark")
        if isinstance(remark, str) and "error" in remark.lower():
            raise OverpassError(f"Overpass error: {remark}")
        return data


async def fetch_with_failover(session: aiohttp.ClientSession, endpoints: Sequence[OverpassEndpoint],
                              query: str, timeout: float = 50.0) -> Dict[str, Any]:
    """Return the first successful payload; raise UpstreamUnavailable if none."""
    last_error: Optional[BaseException] = None
    attempts: List[Tuple[str, str]] = []
    for endpoint in endpoints:
        logger.debug("Trying Overpass endpoint: %s", endpoint.url)
        try:
            data = await _post_query(session, endpoint, query, timeout)
        except Exception as e:
            logger.warning("Overpass endpoint %s failed: %s", endpoint.url, e or type(e).__name__)
            last_error = e
            attempts.append((endpoint.url, str(e) or type(e).__name__))
            continue
        logger.info("Got %d elements from %s", len(data.get("elements") or []), endpoint.url)
        return data

    logger.error("All Overpass endpoints failed. Last error: %s", last_error)
    raise UpstreamUnavailable(last_error, attempts)
