"""
Lightweight async metrics: counters and latency samples.

Counters and samples always land in process memory; when the app holds a
Redis client they are mirrored there (`metrics:counter:{name}`,
`metrics:lat:{name}`) so several workers can be summed. Metric failures are
never raised to callers.
"""

from typing import Dict, Any, List
import logging
import statistics

logger = logging.getLogger(__name__)

MAX_SAMPLES = 1000

_MEM_COUNTERS: Dict[str, int] = {}
_MEM_LATS: Dict[str, List[float]] = {}


def _get_redis():
    # imported lazily, the app module imports this one
    try:
        from smart_locations.src.app import redis_client
        return redis_client
    except Exception:
        return None


def _summary(vals: List[float]) -> Dict[str, float]:
    return {
        'count': len(vals),
        'avg_ms': sum(vals) / len(vals),
        'p50_ms': float(statistics.median(vals)),
    }


async def increment(name: str, amount: int = 1) -> None:
    """Increment a named counter by amount"""
    _MEM_COUNTERS[name] = _MEM_COUNTERS.get(name, 0) + amount
    rc = _get_redis()
    if rc:
        try:
            await rc.incrby(f"metrics:counter:{name}", amount)
        except Exception as e:
            logger.debug("metrics redis incr failed: %s", e)


async def observe_latency(name: str, ms: float, max_samples: int = MAX_SAMPLES) -> None:
    """Record a latency sample (milliseconds) for a named metric"""
    samples = _MEM_LATS.setdefault(name, [])
    samples.insert(0, ms)
    del samples[max_samples:]
    rc = _get_redis()
    if rc:
        try:
            key = f"metrics:lat:{name}"
            await rc.lpush(key, str(ms))
            await rc.ltrim(key, 0, max_samples - 1)
        except Exception as e:
            logger.debug("metrics redis lpush failed: %s", e)


async def get_metrics() -> Dict[str, Any]:
    """Return counters and latency summaries (count, avg, p50).

    Redis values win when available since they aggregate every worker.
    """
    out = {
        "counters": dict(_MEM_COUNTERS),
        "latencies": {n: _summary(v) for n, v in _MEM_LATS.items() if v},
    }
    rc = _get_redis()
    if not rc:
        return out
    try:
        async for k in rc.scan_iter(match='metrics:counter:*'):
            key = k.decode() if isinstance(k, (bytes, bytearray)) else k
            v = await rc.get(key)
            out['counters'][key.split(':', 2)[-1]] = int(v) if v is not None else 0
        async for k in rc.scan_iter(match='metrics:lat:*'):
            key = k.decode() if isinstance(k, (bytes, bytearray)) else k
            vals = [float(v) for v in await rc.lrange(key, 0, -1)]
            if vals:
                out['latencies'][key.split(':', 2)[-1]] = _summary(vals)
    except Exception as e:
        logger.warning("metrics redis read failed, using in-memory values: %s", e)
    return out


def reset() -> None:
    """Clear in-memory metrics (tests)."""
    _MEM_COUNTERS.clear()
    _MEM_LATS.clear()
