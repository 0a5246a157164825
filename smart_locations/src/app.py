"""
SmartLocations Quart app: process-wide clients, lifecycle hooks, error boundary.
"""

import asyncio
import logging
import os

from dotenv import load_dotenv

# repo-root .env, loaded before configuration is read
load_dotenv(dotenv_path=os.path.join(os.path.dirname(__file__), "..", "..", ".env"))

import aiohttp
from quart import Quart, jsonify, request
from quart_cors import cors
from redis import asyncio as aioredis
from werkzeug.exceptions import HTTPException

from smart_locations.config import get_config, setup_logging
from smart_locations.groq.narrative import NarrativeClient
from smart_locations.providers.caching import RedisResultCache, ResultCache, sweep_periodically
from smart_locations.src.auth import Authorizer
from smart_locations.src.preferences import PreferenceStore
from smart_locations.src.routes import register_blueprints
from smart_locations.src.search_service import SearchService

config = get_config()
setup_logging()

app = Quart(__name__)
app = cors(app, allow_origin=config.cors_origins if config.cors_origins != ["*"] else "*",
           allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
           allow_headers=["Content-Type", "Authorization"])

# Global async clients, replaced in startup()
aiohttp_session: aiohttp.ClientSession | None = None
redis_client: aioredis.Redis | None = None
result_cache = ResultCache(default_ttl=config.cache_config.ttl_search)
search_service: SearchService | None = None
authorizer = Authorizer.from_config(config)
preference_store = PreferenceStore()
narrative_client = NarrativeClient.from_config(config=config)
_sweeper_task: asyncio.Task | None = None


@app.before_serving
async def startup():
    global aiohttp_session, redis_client, result_cache, search_service, preference_store, narrative_client, _sweeper_task
    aiohttp_session = aiohttp.ClientSession(headers={"User-Agent": config.provider_config.user_agent})
    if config.redis_url:
        try:
            redis_client = aioredis.from_url(config.redis_url)
            await redis_client.ping()  # type: ignore
            app.logger.info("Redis connected")
        except Exception:
            redis_client = None
            app.logger.warning("Redis not available; using in-memory cache")

    if redis_client is not None:
        result_cache = RedisResultCache(redis_client, default_ttl=config.cache_config.ttl_search)
    else:
        result_cache = ResultCache(default_ttl=config.cache_config.ttl_search)
    preference_store = PreferenceStore(redis_client)
    search_service = SearchService.from_config(aiohttp_session, result_cache, config)
    narrative_client = NarrativeClient.from_config(session=aiohttp_session, config=config)
    _sweeper_task = asyncio.create_task(sweep_periodically(result_cache, config.cache_config.sweep_interval))


@app.after_serving
async def shutdown():
    global aiohttp_session, redis_client, _sweeper_task
    if _sweeper_task is not None:
        _sweeper_task.cancel()
        _sweeper_task = None
    if aiohttp_session:
        await aiohttp_session.close()
        aiohttp_session = None
    if redis_client:
        await redis_client.close()
        redis_client = None


@app.errorhandler(Exception)
async def handle_unexpected_error(exc):
    """Last-resort boundary: log and answer JSON instead of letting it escape."""
    if isinstance(exc, HTTPException):
        return jsonify({"error": exc.description}), exc.code
    app.logger.exception("Unhandled error on %s", request.path)
    return jsonify({"error": str(exc) or type(exc).__name__}), 500


register_blueprints(app)


if __name__ == "__main__":
    logging.getLogger(__name__).info("Starting SmartLocations on :5010")
    app.run(host="0.0.0.0", port=5010, debug=config.debug)
