"""
Cache package for the order cache service.

Two interchangeable backends behind the ``OrderCache`` contract: an
in-process LRU cache with TTL expiry and a Redis-backed cache. The factory
picks one from configuration.
"""

from .base import OrderCache
from .memory_cache import InMemoryOrderCache
from .redis_cache import RedisOrderCache
from .factory import create_order_cache

__all__ = ["OrderCache", "InMemoryOrderCache", "RedisOrderCache", "create_order_cache"]
