"""
Normalize heterogeneous provider records into one ranked `Place` list.

Each provider gets a small adapter that emits `RawCandidate` objects; from
there on `normalize` is provider-agnostic (distance, sort, truncate).
"""
import math
from dataclasses import dataclass, field, replace
from typing import Any, Dict, Iterable, List, Mapping, Optional

from .utils import Coordinate, distance_m, to_float

# (flattened key, raw address keys tried in order)
ADDRESS_FIELDS = (
    ("addr:street", ("road", "street", "pedestrian")),
    ("addr:housenumber", ("house_number", "housenumber")),
    ("addr:city", ("city", "town", "village", "municipality")),
    ("addr:postcode", ("postcode",)),
    ("addr:country", ("country",)),
    ("addr:state", ("state",)),
)


@dataclass
class RawCandidate:
    """Provider record reduced to an id, a kind, an optional point and tags."""
    id: int
    kind: str
    lat: Optional[float]
    lon: Optional[float]
    attributes: Dict[str, str] = field(default_factory=dict)


@dataclass
class Place:
    id: int
    kind: str
    lat: float
    lon: float
    attributes: Dict[str, str]
    distance_m: float
    is_newly_added: Optional[bool] = None

    @property
    def location(self) -> Coordinate:
        return Coordinate(self.lat, self.lon)

    def to_dict(self) -> Dict[str, Any]:
        lat, lon = self.location
        out = {
            "id": self.id,
            "type": self.kind,
            "lat": lat,
            "lon": lon,
            "tags": dict(self.attributes),
            "distance_m": int(round(self.distance_m)),
        }
        if self.is_newly_added is not None:
            out["isNewlyAdded"] = self.is_newly_added
        return out

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Place":
        return cls(
            id=data["id"],
            kind=data["type"],
            lat=float(data["lat"]),
            lon=float(data["lon"]),
            attributes=dict(data.get("tags") or {}),
            distance_m=float(data["distance_m"]),
        )


def _coerce_id(value) -> Optional[int]:
    if isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _string_tags(tags) -> Dict[str, str]:
    if not isinstance(tags, Mapping):
        return {}
    return {str(k): str(v) for k, v in tags.items() if v is not None}


def overpass_candidates(elements: Iterable[Mapping[str, Any]]) -> List[RawCandidate]:
    """Adapt Overpass elements (node/way/relation).

    Direct `lat`/`lon` wins; otherwise the `center` of an extended geometry is
    used. Elements with neither keep `lat=None` and are dropped by `normalize`.
    """
    out = []
    for el in elements or []:
        if not isinstance(el, Mapping):
            continue
        el_id = _coerce_id(el.get("id"))
        if el_id is None:
            continue
        lat, lon = to_float(el.get("lat")), to_float(el.get("lon"))
        if lat is None or lon is None:
            center = el.get("center")
            if isinstance(center, Mapping):
                lat, lon = to_float(center.get("lat")), to_float(center.get("lon"))
            else:
                lat, lon = None, None
        out.append(RawCandidate(
            id=el_id,
            kind=str(el.get("type") or "node"),
            lat=lat,
            lon=lon,
            attributes=_string_tags(el.get("tags")),
        ))
    return out


def flatten_address(address: Mapping[str, Any]) -> Dict[str, str]:
    """Map a nested geocoder address object onto `addr:*` keys.

    Keys that already carry the `addr:` prefix pass through untouched, so
    flattening an already flattened mapping is a no-op.
    """
    if not isinstance(address, Mapping):
        return {}
    flat = {k: str(v) for k, v in address.items() if isinstance(k, str) and k.startswith("addr:") and v not in (None, "")}
    for target, sources in ADDRESS_FIELDS:
        if target in flat:
            continue
        for src in sources:
            value = address.get(src)
            if value not in (None, ""):
                flat[target] = str(value)
                break
    return flat


def nominatim_candidates(hits: Iterable[Mapping[str, Any]], fallback_name: str = "") -> List[RawCandidate]:
    """Adapt Nominatim search hits, flattening `address` into `addr:*` tags."""
    out = []
    for index, hit in enumerate(hits or []):
        if not isinstance(hit, Mapping):
            continue
        # osm_id 0 or missing falls back to the hit position
        hit_id = _coerce_id(hit.get("osm_id")) or index
        attributes = {"name": str(hit.get("display_name") or fallback_name)}
        attributes.update(_string_tags(hit.get("extratags")))
        attributes.update(flatten_address(hit.get("address") or {}))
        out.append(RawCandidate(
            id=hit_id,
            kind=str(hit.get("osm_type") or "node"),
            lat=to_float(hit.get("lat")),
            lon=to_float(hit.get("lon")),
            attributes=attributes,
        ))
    return out


def normalize(candidates: Iterable[RawCandidate], origin: Coordinate, limit: Optional[int] = None) -> List[Place]:
    """Resolve points, annotate distance, sort ascending and truncate.

    Ties on distance are broken by (kind, id) so the order is deterministic.
    """
    places = []
    for c in candidates:
        if c.lat is None or c.lon is None:
            continue
        d = distance_m(origin, Coordinate(c.lat, c.lon))
        if not math.isfinite(d):
            continue
        places.append(Place(id=c.id, kind=c.kind, lat=c.lat, lon=c.lon,
                            attributes=dict(c.attributes), distance_m=d))
    places.sort(key=lambda p: (p.distance_m, p.kind, p.id))
    if limit is not None:
        places = places[:limit]
    return places


def mark_newly_observed(current: Iterable[Place], previous: Iterable[Any]) -> List[Place]:
    """Flag places whose (id, kind) pair was not in the previous poll.

    `previous` may hold `Place` objects or mappings with `id` and `type`.
    Order is preserved.
    """
    seen = set()
    for p in previous or []:
        if isinstance(p, Place):
            seen.add((str(p.id), p.kind))
        elif isinstance(p, Mapping):
            seen.add((str(p.get("id")), str(p.get("type") or p.get("kind"))))
    return [replace(p, is_newly_added=(str(p.id), p.kind) not in seen) for p in current]
