"""
Redis caching for the public claimable-resource listing.

CACHING STRATEGY
================

What we cache:
  - Claimable listing responses (paginated, JSON-serialized)
  - Cache key pattern: "resources:claimable:g{generation}:page={page}&size={size}"

Why:
  - The claimable feed is the most frequent read
  - Serving from Redis avoids a filtered COUNT plus page query per request

Invalidation strategy:
  - On create, claim, update, deactivation and group deletion the listing
    generation is incremented. Readers fetch the generation before querying
    the database and write under that generation, so a page computed before
    a claim committed lands on a key nobody reads any more.
  - Old generations are never deleted, they age out through the TTL.
  - The TTL is capped at the earliest expires_at on the page, so an expired
    resource never outlives its deadline in the cache.

Why NOT cache individual resources or group feeds:
  - Claims need real-time remaining counts (stale data = overselling)
  - Group feeds are per-viewer and would need per-user keys
"""

import json
import math
from datetime import datetime
from typing import Optional

from foodshare.core.config import get_settings
from foodshare.core.logging import get_logger
from foodshare.core.metrics import record_cache_operation
from foodshare.db.base import as_utc, utcnow
from foodshare.infrastructure.redis_client import get_redis

logger = get_logger(__name__)

_PREFIX = "resources:claimable:"
_GENERATION_KEY = f"{_PREFIX}generation"


def _make_listing_key(page: int, page_size: int, generation: int) -> str:
    return f"{_PREFIX}g{generation}:page={page}&size={page_size}"


def _listing_ttl(data: dict, default_ttl: int) -> int:
    """Seconds until the first resource on the page expires, at most default_ttl."""
    deadlines = [
        as_utc(datetime.fromisoformat(r["expires_at"].replace("Z", "+00:00")))
        for r in data.get("resources", [])
        if r.get("expires_at")
    ]
    if not deadlines:
        return default_ttl
    remaining = (min(deadlines) - utcnow()).total_seconds()
    return max(0, min(default_ttl, math.floor(remaining)))


async def get_listing_generation() -> Optional[int]:
    """Current listing generation, or None when Redis is unavailable."""
    client = await get_redis()
    if not client:
        return None

    try:
        value = await client.get(_GENERATION_KEY)
        return int(value or 0)
    except Exception as e:
        logger.error("cache_generation_error", error=str(e))
        return None


async def get_cached_listing(page: int, page_size: int, generation: Optional[int]) -> Optional[dict]:
    """Retrieve cached claimable listing for the given generation."""
    if generation is None:
        return None
    client = await get_redis()
    if not client:
        return None

    key = _make_listing_key(page, page_size, generation)
    try:
        data = await client.get(key)
        record_cache_operation("get", hit=bool(data))
        if data:
            logger.debug("cache_hit", key=key)
            return json.loads(data)
        logger.debug("cache_miss", key=key)
    except Exception as e:
        logger.error("cache_get_error", key=key, error=str(e))

    return None


async def set_cached_listing(page: int, page_size: int, generation: Optional[int], data: dict) -> None:
    """Cache claimable listing under the generation it was read at."""
    if generation is None:
        return
    client = await get_redis()
    if not client:
        return

    ttl = _listing_ttl(data, get_settings().REDIS_CACHE_TTL)
    if ttl <= 0:
        return

    key = _make_listing_key(page, page_size, generation)
    try:
        await client.setex(key, ttl, json.dumps(data, default=str))
        record_cache_operation("set", hit=True)
        logger.debug("cache_set", key=key, ttl=ttl)
    except Exception as e:
        logger.error("cache_set_error", key=key, error=str(e))


async def invalidate_listing_cache() -> None:
    """Move every reader to a fresh generation."""
    client = await get_redis()
    if not client:
        return

    try:
        generation = await client.incr(_GENERATION_KEY)
        logger.info("cache_invalidated", generation=generation)
    except Exception as e:
        logger.error("cache_invalidation_error", error=str(e))


async def get_cache_stats() -> dict:
    """Get Redis cache statistics for monitoring."""
    client = await get_redis()
    if not client:
        return {"status": "disabled"}

    try:
        info = await client.info("stats")
        hits = info.get("keyspace_hits", 0)
        misses = info.get("keyspace_misses", 0)
        return {
            "status": "connected",
            "hits": hits,
            "misses": misses,
            "hit_rate": round(hits / max(hits + misses, 1) * 100, 2),
        }
    except Exception as e:
        return {"status": "error", "error": str(e)}
