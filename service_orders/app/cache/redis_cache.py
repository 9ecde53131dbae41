"""
Redis-backed order cache.
"""

from datetime import timedelta
from typing import Any, Dict, List, Optional, Tuple

import redis.asyncio as redis
from pydantic import ValidationError
from redis.exceptions import RedisError

from shared.logging import get_logger
from shared.errors import CacheError
from ..models import Order
from .base import OrderCache


DEFAULT_REDIS_TTL = timedelta(hours=24)


class RedisOrderCache(OrderCache):
    """Orders stored as JSON under ``order:<order_uid>`` with a fixed TTL.

    Expiry is delegated to Redis. ``get_all_orders`` and ``clear`` walk the
    key space with SCAN, so they are not atomic: concurrent writers may make
    a listing observe a transient superset or subset of the live orders.
    """

    ORDER_PREFIX = "order:"
    SCAN_BATCH = 500

    def __init__(self, redis_url: str, ttl: Optional[timedelta] = None, client: Optional[redis.Redis] = None):
        self.redis_url = redis_url
        self.ttl = ttl if ttl is not None else DEFAULT_REDIS_TTL
        self.logger = get_logger("orders.cache.redis")
        self.redis: Optional[redis.Redis] = client
        self._closed = False

    async def start(self):
        """Connect and verify the server answers."""
        try:
            if self.redis is None:
                self.redis = redis.from_url(
                    self.redis_url,
                    encoding="utf-8",
                    decode_responses=True,
                    socket_connect_timeout=5,
                    socket_timeout=5,
                    retry_on_timeout=True,
                    health_check_interval=30
                )

            await self.redis.ping()
            self._closed = False
            self.logger.info("Redis cache started", ttl_seconds=self.ttl.total_seconds())

        except RedisError as e:
            self.logger.error("Failed to start Redis cache", error=str(e))
            raise CacheError(f"failed to connect to Redis: {e}", {"redis_url": self.redis_url})

    async def close(self):
        """Close the connection pool."""
        self._closed = True
        if self.redis:
            await self.redis.aclose()
            self.redis = None
            self.logger.info("Redis cache stopped")

    async def save_order(self, order: Order) -> None:
        client = self._client()
        seconds = int(self.ttl.total_seconds())
        try:
            if seconds > 0:
                await client.set(self._order_key(order.order_uid), order.to_json(), ex=seconds)
            else:
                await client.set(self._order_key(order.order_uid), order.to_json())
        except RedisError as e:
            raise CacheError(f"failed to save order to Redis: {e}", {"order_uid": order.order_uid})

    async def get_order(self, order_uid: str) -> Tuple[Optional[Order], bool]:
        client = self._client()
        try:
            cached_data = await client.get(self._order_key(order_uid))
        except RedisError as e:
            raise CacheError(f"failed to get order from Redis: {e}", {"order_uid": order_uid})

        if cached_data is None:
            return None, False
        return self._decode(order_uid, cached_data), True

    async def order_exists(self, order_uid: str) -> bool:
        client = self._client()
        try:
            return await client.exists(self._order_key(order_uid)) > 0
        except RedisError as e:
            raise CacheError(f"failed to check order existence: {e}", {"order_uid": order_uid})

    async def remove_order(self, order_uid: str) -> None:
        client = self._client()
        try:
            await client.delete(self._order_key(order_uid))
        except RedisError as e:
            raise CacheError(f"failed to remove order from Redis: {e}", {"order_uid": order_uid})

    async def clear(self) -> None:
        client = self._client()
        removed = 0
        try:
            batch: List[str] = []
            async for key in client.scan_iter(match=f"{self.ORDER_PREFIX}*", count=self.SCAN_BATCH):
                batch.append(key)
                if len(batch) >= self.SCAN_BATCH:
                    removed += await client.delete(*batch)
                    batch = []
            if batch:
                removed += await client.delete(*batch)
        except RedisError as e:
            raise CacheError(f"failed to clear orders: {e}")

        self.logger.info("Cache cleared", removed=removed)

    async def get_all_orders(self) -> List[Order]:
        client = self._client()
        orders: List[Order] = []
        try:
            keys = [key async for key in client.scan_iter(match=f"{self.ORDER_PREFIX}*", count=self.SCAN_BATCH)]
            for start in range(0, len(keys), self.SCAN_BATCH):
                chunk = keys[start:start + self.SCAN_BATCH]
                values = await client.mget(chunk)
                for key, value in zip(chunk, values):
                    # expired or removed between SCAN and MGET
                    if value is None:
                        continue
                    orders.append(self._decode(key[len(self.ORDER_PREFIX):], value))
        except RedisError as e:
            raise CacheError(f"failed to list orders: {e}")

        return orders

    async def stats(self) -> Dict[str, Any]:
        client = self._client()
        try:
            info = await client.info()
        except RedisError as e:
            raise CacheError(f"failed to read Redis info: {e}")

        return {
            "type": "redis",
            "ttl_seconds": self.ttl.total_seconds(),
            "redis_version": info.get("redis_version"),
            "used_memory": info.get("used_memory_human"),
            "keyspace_hits": info.get("keyspace_hits"),
            "keyspace_misses": info.get("keyspace_misses"),
        }

    async def health_check(self) -> bool:
        """Check Redis health."""
        try:
            await self._client().ping()
            return True
        except (RedisError, CacheError):
            return False

    def _client(self) -> redis.Redis:
        if self._closed or self.redis is None:
            raise CacheError("Redis cache is not started")
        return self.redis

    def _order_key(self, order_uid: str) -> str:
        return f"{self.ORDER_PREFIX}{order_uid}"

    def _decode(self, order_uid: str, cached_data: Any) -> Order:
        try:
            return Order.model_validate_json(cached_data)
        except ValidationError as e:
            self.logger.error("Corrupt cache entry", order_uid=order_uid, error=str(e))
            raise CacheError("failed to decode cached order", {"order_uid": order_uid})
