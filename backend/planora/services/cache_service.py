"""
Redis caching for the public event catalogue.

CACHING STRATEGY
================

What we cache:
  - Catalogue listing responses (paginated, JSON-serialized)
  - Key pattern: "events:list:page={page}&size={size}&upcoming={upcoming}&q={search}"

Invalidation:
  - Any reservation transition that moves registered_count (create, cancel)
  - Any event create / edit / publish / cancel / delete
  - TTL as safety net (REDIS_CACHE_TTL)

  All listing keys share the "events:list:" prefix, so invalidation is a
  SCAN + DELETE over that prefix.

Not cached:
  - Single events and anything the reservation engine reads. Capacity
    decisions always hit the database.

Redis is optional: when disabled or unreachable every function degrades to
a no-op and the request is served from the database.
"""

import json
from typing import Optional

import redis.asyncio as redis
from planora.core.config import get_settings
from planora.core.logging import get_logger
from planora.core.metrics import record_cache_operation

logger = get_logger(__name__)
settings = get_settings()

EVENT_LIST_PREFIX = "events:list:"

_redis_client: Optional[redis.Redis] = None


async def get_redis() -> Optional[redis.Redis]:
    """Get or create the Redis connection. Returns None if Redis is disabled or down."""
    global _redis_client

    if not settings.REDIS_ENABLED:
        return None

    if _redis_client is None:
        try:
            client = redis.from_url(
                settings.REDIS_URL,
                encoding="utf-8",
                decode_responses=True,
                socket_connect_timeout=5,
                socket_timeout=5,
                retry_on_timeout=True,
            )
            await client.ping()
            _redis_client = client
            logger.info("redis_connected", url=settings.REDIS_URL)
        except redis.RedisError as e:
            logger.error("redis_connection_failed", error=str(e))
            return None

    return _redis_client


async def close_redis() -> None:
    global _redis_client
    if _redis_client:
        await _redis_client.aclose()
        _redis_client = None


def make_event_list_key(page: int, page_size: int, upcoming_only: bool, search: Optional[str]) -> str:
    return f"{EVENT_LIST_PREFIX}page={page}&size={page_size}&upcoming={upcoming_only}&q={search or ''}"


async def get_cached_events(
    page: int,
    page_size: int,
    upcoming_only: bool,
    search: Optional[str] = None,
) -> Optional[dict]:
    client = await get_redis()
    if not client:
        return None

    key = make_event_list_key(page, page_size, upcoming_only, search)
    try:
        data = await client.get(key)
    except redis.RedisError as e:
        logger.error("cache_get_error", key=key, error=str(e))
        return None

    record_cache_operation("get", hit=data is not None)
    if data:
        logger.debug("cache_hit", key=key)
        return json.loads(data)
    logger.debug("cache_miss", key=key)
    return None


async def set_cached_events(
    page: int,
    page_size: int,
    upcoming_only: bool,
    search: Optional[str],
    data: dict,
) -> None:
    client = await get_redis()
    if not client:
        return

    key = make_event_list_key(page, page_size, upcoming_only, search)
    try:
        await client.setex(key, settings.REDIS_CACHE_TTL, json.dumps(data, default=str))
        logger.debug("cache_set", key=key, ttl=settings.REDIS_CACHE_TTL)
    except redis.RedisError as e:
        logger.error("cache_set_error", key=key, error=str(e))


async def invalidate_event_cache() -> None:
    """Drop every cached catalogue page."""
    client = await get_redis()
    if not client:
        return

    try:
        deleted = 0
        async for key in client.scan_iter(match=f"{EVENT_LIST_PREFIX}*", count=100):
            await client.delete(key)
            deleted += 1
        logger.info("cache_invalidated", keys_deleted=deleted)
    except redis.RedisError as e:
        logger.error("cache_invalidation_error", error=str(e))


async def get_cache_stats() -> dict:
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
    except redis.RedisError as e:
        return {"status": "error", "error": str(e)}
