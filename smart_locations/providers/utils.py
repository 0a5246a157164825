"""
Shared utilities for provider modules.
"""
import math
from typing import NamedTuple, Optional
from contextlib import asynccontextmanager

import aiohttp

EARTH_RADIUS_M = 6371000.0


@asynccontextmanager
async def get_session(session: Optional[aiohttp.ClientSession] = None):
    """Context manager for aiohttp session handling.

    If session is provided, yields it.
    If not, creates a new session and closes it after use.
    """
    if session is not None:
        yield session
    else:
        async with aiohttp.ClientSession() as new_session:
            yield new_session


def haversine_m(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance in meters between two coordinates.

    NaN in any argument yields NaN; callers filter non-finite results.
    """
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)
    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_M * c


def to_float(value) -> Optional[float]:
    """Coerce provider coordinates (numbers or numeric strings) to float."""
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


class Coordinate(NamedTuple):
    lat: float
    lon: float


def distance_m(a: Coordinate, b: Coordinate) -> float:
    """Haversine distance in meters between two coordinates."""
    return haversine_m(a.lat, a.lon, b.lat, b.lon)


def format_coord(value: float) -> str:
    """Fixed-point degrees (7 places, ~1 cm); never scientific notation."""
    return f"{float(value):.7f}"
