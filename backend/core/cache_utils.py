"""
Caching utilities for design review payloads
Uses Redis in production, local memory in development and tests
"""
from django.conf import settings
from django.core.cache import cache
from django.db import transaction
import logging

logger = logging.getLogger(__name__)

DESIGN_KEY_PREFIX = 'design:'


def get_design_cache_key(design_id) -> str:
    """Get cache key for a design detail payload"""
    return f"{DESIGN_KEY_PREFIX}{design_id}"


def get_design_cache_ttl() -> int:
    return getattr(settings, 'DESIGN_CACHE_TTL', 300)


def get_cached_design(design_id):
    """Return the cached design payload or None"""
    data = cache.get(get_design_cache_key(design_id))
    if data is not None:
        logger.debug(f"Cache HIT for design {design_id}")
    else:
        logger.debug(f"Cache MISS for design {design_id}")
    return data


def cache_design_data(design_id, data, ttl=None):
    """Cache a serialized design payload"""
    cache.set(get_design_cache_key(design_id), data, ttl or get_design_cache_ttl())
    logger.debug(f"Cached design {design_id}")


def invalidate_design_cache(design_id):
    """
    Drop the cached payload now and again once the surrounding transaction
    commits, so a concurrent reader cannot re-cache pre-commit data.
    """
    key = get_design_cache_key(design_id)
    cache.delete(key)
    transaction.on_commit(lambda: cache.delete(key))


def invalidate_cache_pattern(pattern):
    """
    Invalidate all cache keys matching a pattern
    Note: This requires Redis with SCAN command support
    Returns the number of deleted keys
    """
    try:
        from django_redis import get_redis_connection
        redis_conn = get_redis_connection("default")

        keys = []
        cursor = 0
        while True:
            cursor, partial_keys = redis_conn.scan(cursor, match=f"*{pattern}*", count=100)
            keys.extend(partial_keys)
            if cursor == 0:
                break

        if keys:
            redis_conn.delete(*keys)
            logger.info(f"Invalidated {len(keys)} cache keys matching pattern: {pattern}")
        return len(keys)
    except NotImplementedError:
        # Non-Redis backend: no pattern scan available
        logger.info(f"Cache backend has no pattern support, clearing whole cache for pattern: {pattern}")
        cache.clear()
        return 0
