#!/usr/bin/env python3
"""Probe every configured Overpass mirror with one small radius query.

Usage:
  python -m smart_locations.scripts.probe_overpass --lat 48.8566 --lon 2.3522
  python -m smart_locations.scripts.probe_overpass --tag amenity=cafe --radius 300
"""
import argparse
import asyncio
import sys
import time

import aiohttp

from smart_locations.config import get_config
from smart_locations.providers.overpass_provider import OverpassEndpoint, build_overpass_query, fetch_with_failover
from smart_locations.providers.utils import Coordinate


async def _run(lat: float, lon: float, tags, radius: int, timeout: float) -> int:
    query = build_overpass_query(tags, radius_m=radius, origin=Coordinate(lat, lon))
    failures = 0
    async with aiohttp.ClientSession(headers={"User-Agent": get_config().provider_config.user_agent}) as session:
        for endpoint in OverpassEndpoint.from_urls(get_config().provider_config.overpass_endpoints):
            started = time.perf_counter()
            try:
                # a one-element chain probes exactly this mirror
                data = await fetch_with_failover(session, [endpoint], query, timeout)
            except Exception as e:
                failures += 1
                print(f"{endpoint.label:40s} FAIL  {e}", file=sys.stderr)
                continue
            elapsed = (time.perf_counter() - started) * 1000
            print(f"{endpoint.label:40s} OK    {len(data.get('elements') or []):5d} elements  {elapsed:7.0f} ms")
    return 1 if failures else 0


def main():
    p = argparse.ArgumentParser()
    p.add_argument("--lat", type=float, default=51.5074)
    p.add_argument("--lon", type=float, default=-0.1278)
    p.add_argument("--tag", action="append", dest="tags", help="key=value filter (repeatable)")
    p.add_argument("--radius", type=int, default=500, help="radius in meters")
    p.add_argument("--timeout", type=float, default=None)
    args = p.parse_args()

    tags = args.tags or ["tourism=museum"]
    timeout = args.timeout or get_config().timeout_config.overpass
    raise SystemExit(asyncio.run(_run(args.lat, args.lon, tags, args.radius, timeout)))


if __name__ == '__main__':
    main()
