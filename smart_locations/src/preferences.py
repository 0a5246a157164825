"""
Per-user "Favorites" tag lists.

Stored as JSON under `prefs:{user_id}:attractions` in Redis when the app has
a Redis client, otherwise in process memory. Loading never fails: any error
falls back to `DEFAULT_FAVORITES`.
"""
import json
import logging
from datetime import datetime, timezone
from typing import Dict, List, Optional

logger = logging.getLogger(__name__)

DEFAULT_FAVORITES = [
    "tourism=attraction",
    "tourism=museum",
    "tourism=viewpoint",
    "tourism=gallery",
    "historic=castle",
    "historic=monument",
    "historic=memorial",
    "leisure=park",
    "amenity=theatre",
    "natural=peak",
]


def _key(user_id: str) -> str:
    return f"prefs:{user_id}:attractions"


def _defaults() -> Dict[str, List[str]]:
    return {"tags": list(DEFAULT_FAVORITES), "customCategories": []}


class PreferenceStore:
    def __init__(self, redis_client=None):
        self.redis = redis_client
        self._memory: Dict[str, str] = {}

    async def _read(self, key: str) -> Optional[str]:
        if self.redis is not None:
            raw = await self.redis.get(key)
            return raw.decode() if isinstance(raw, (bytes, bytearray)) else raw
        return self._memory.get(key)

    async def _write(self, key: str, value: str) -> None:
        if self.redis is not None:
            await self.redis.set(key, value)
        else:
            self._memory[key] = value

    async def load_attractions(self, user_id: str) -> Dict[str, List[str]]:
        try:
            raw = await self._read(_key(user_id))
        except Exception as e:
            logger.error("Error loading user attractions, using defaults: %s", e)
            return _defaults()
        if not raw:
            logger.debug("No custom attractions for %s, using defaults", user_id)
            return _defaults()
        try:
            data = json.loads(raw)
        except ValueError as e:
            logger.error("Corrupt attractions document for %s: %s", user_id, e)
            return _defaults()
        if not isinstance(data, dict):
            logger.error("Attractions document for %s is not an object, using defaults", user_id)
            return _defaults()
        tags = data.get("tags")
        categories = data.get("customCategories")
        return {
            "tags": tags if isinstance(tags, list) and tags else list(DEFAULT_FAVORITES),
            "customCategories": categories if isinstance(categories, list) else [],
        }

    async def save_attractions(self, user_id: str, tags: List[str],
                               custom_categories: Optional[List[str]] = None) -> bool:
        doc = {
            "tags": list(tags),
            "customCategories": list(custom_categories or []),
            "lastUpdated": datetime.now(timezone.utc).isoformat(),
        }
        try:
            await self._write(_key(user_id), json.dumps(doc))
        except Exception as e:
            logger.error("Error saving user attractions: %s", e)
            return False
        logger.info("User attractions saved for %s", user_id)
        return True

    async def reset_attractions(self, user_id: str) -> bool:
        return await self.save_attractions(user_id, DEFAULT_FAVORITES, [])
