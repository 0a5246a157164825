"""
Caching utilities for search results.

Two interchangeable backends share one async interface (get/put/sweep/stats):
an in-process map with per-entry TTL and a Redis-backed variant. Both are
advisory: any internal fault is logged and treated as a cache miss.
"""
import asyncio
import json
import logging
import math
import threading
import time
from typing import Any, Callable, Dict, Iterable, Optional

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 10 * 60
SWEEP_INTERVAL_SECONDS = 10 * 60


def _round_coord(value: float, places: int = 3) -> str:
    factor = 10 ** places
    # half-up rounding onto a ~100 m grid; "+ 0.0" folds -0.0 into 0.0
    rounded = math.floor(float(value) * factor + 0.5) / factor + 0.0
    return f"{rounded:.{places}f}"


def build_cache_key(lat: float, lon: float, tokens: Iterable[str], radius_km: float, limit: int) -> str:
    """Cache key for a search: rounded origin, sorted filter tokens, radius, limit."""
    sorted_tokens = ",".join(sorted(tokens))
    return f"{_round_coord(lat)},{_round_coord(lon)}:{sorted_tokens}:radius={float(radius_km)!r}:limit={int(limit)}"


class ResultCache:
    """In-memory time-expiring result cache.

    Entries are `(payload, inserted_at, ttl)`; an entry is never returned once
    `now - inserted_at > ttl`. Expired entries are dropped lazily on `get` and
    in bulk by `sweep`.
    """

    def __init__(self, default_ttl: float = DEFAULT_TTL_SECONDS, clock: Callable[[], float] = time.monotonic):
        self.default_ttl = default_ttl
        self._clock = clock
        self._entries: Dict[str, tuple] = {}
        self._lock = threading.Lock()

    async def get(self, lat: float, lon: float, tokens: Iterable[str], radius_km: float, limit: int) -> Optional[Any]:
        try:
            key = build_cache_key(lat, lon, tokens, radius_km, limit)
            with self._lock:
                entry = self._entries.get(key)
                if entry is None:
                    return None
                payload, inserted_at, ttl = entry
                if self._clock() - inserted_at > ttl:
                    self._entries.pop(key, None)
                    return None
                return payload
        except Exception as e:
            logger.warning("[CACHE] get failed, treating as miss: %s", e)
            return None

    async def put(self, lat: float, lon: float, tokens: Iterable[str], radius_km: float, limit: int,
                  payload: Any, ttl: Optional[float] = None) -> None:
        try:
            key = build_cache_key(lat, lon, tokens, radius_km, limit)
            entry = (payload, self._clock(), ttl if ttl is not None else self.default_ttl)
            with self._lock:
                self._entries[key] = entry
        except Exception as e:
            logger.warning("[CACHE] put failed, result not cached: %s", e)

    async def sweep(self) -> int:
        """Remove every entry older than its own TTL. Returns the number removed."""
        now = self._clock()
        with self._lock:
            expired = [k for k, (_, inserted_at, ttl) in self._entries.items() if now - inserted_at > ttl]
            for key in expired:
                del self._entries[key]
        if expired:
            logger.debug("[CACHE] swept %d expired entries", len(expired))
        return len(expired)

    async def stats(self) -> Dict[str, Any]:
        with self._lock:
            keys = list(self._entries.keys())
        return {"backend": "memory", "size": len(keys), "keys": keys}


class RedisResultCache:
    """Redis-backed result cache; expiry is delegated to Redis `EX`."""

    prefix = "search:"

    def __init__(self, redis_client, default_ttl: float = DEFAULT_TTL_SECONDS):
        self.redis = redis_client
        self.default_ttl = default_ttl

    async def get(self, lat: float, lon: float, tokens: Iterable[str], radius_km: float, limit: int) -> Optional[Any]:
        try:
            key = self.prefix + build_cache_key(lat, lon, tokens, radius_km, limit)
            raw = await self.redis.get(key)
            if raw is None:
                return None
            return json.loads(raw)
        except Exception as e:
            logger.warning("[CACHE] redis get failed, treating as miss: %s", e)
            return None

    async def put(self, lat: float, lon: float, tokens: Iterable[str], radius_km: float, limit: int,
                  payload: Any, ttl: Optional[float] = None) -> None:
        try:
            key = self.prefix + build_cache_key(lat, lon, tokens, radius_km, limit)
            seconds = max(1, int(math.ceil(ttl if ttl is not None else self.default_ttl)))
            await self.redis.set(key, json.dumps(payload), ex=seconds)
        except Exception as e:
            logger.warning("[CACHE] redis put failed, result not cached: %s", e)

    async def sweep(self) -> int:
        return 0

    async def stats(self) -> Dict[str, Any]:
        keys = []
        async for k in self.redis.scan_iter(match=self.prefix + "*"):
            keys.append(k.decode() if isinstance(k, (bytes, bytearray)) else k)
        return {"backend": "redis", "size": len(keys), "keys": keys}


async def sweep_periodically(cache, interval: float = SWEEP_INTERVAL_SECONDS) -> None:
    """Run `cache.sweep()` every `interval` seconds until cancelled.

    A failing sweep is logged and the loop keeps going.
    """
    while True:
        await asyncio.sleep(interval)
        try:
            await cache.sweep()
        except Exception:
            logger.exception("[CACHE] periodic sweep failed")
