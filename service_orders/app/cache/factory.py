"""
Cache backend selection.
"""

from datetime import timedelta

from shared.config import CACHE_TYPE_INMEMORY, CACHE_TYPE_REDIS, CacheSettings
from shared.errors import ConfigurationError
from .base import OrderCache
from .memory_cache import InMemoryOrderCache
from .redis_cache import DEFAULT_REDIS_TTL, RedisOrderCache


DEFAULT_INMEMORY_TTL = timedelta(hours=1)


def create_order_cache(settings: CacheSettings) -> OrderCache:
    """Build the configured cache; raises ConfigurationError on bad settings."""
    settings.validate_settings()
    ttl = settings.ttl_timedelta()

    if settings.type == CACHE_TYPE_INMEMORY:
        return InMemoryOrderCache(settings.capacity, ttl if ttl is not None else DEFAULT_INMEMORY_TTL)

    if settings.type == CACHE_TYPE_REDIS:
        return RedisOrderCache(settings.redis_url, ttl if ttl is not None else DEFAULT_REDIS_TTL)

    raise ConfigurationError(f"unknown cache type: {settings.type}")
