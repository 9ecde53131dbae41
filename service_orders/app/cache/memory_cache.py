"""
In-process LRU + TTL order cache.
"""

import asyncio
import threading
import time
from collections import OrderedDict
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple, Union

from shared.logging import get_logger
from ..models import Order
from .base import OrderCache


class ReadWriteLock:
    """Shared-for-read / exclusive-for-write lock.

    Waiting writers block new readers so a steady stream of snapshots
    cannot starve saves. Not reentrant.
    """

    def __init__(self):
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False
        self._writers_waiting = 0

    @contextmanager
    def read_locked(self) -> Iterator[None]:
        with self._cond:
            while self._writer or self._writers_waiting:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if self._readers == 0:
                    self._cond.notify_all()

    @contextmanager
    def write_locked(self) -> Iterator[None]:
        with self._cond:
            self._writers_waiting += 1
            try:
                while self._writer or self._readers:
                    self._cond.wait()
            finally:
                self._writers_waiting -= 1
            self._writer = True
        try:
            yield
        finally:
            with self._cond:
                self._writer = False
                self._cond.notify_all()


@dataclass(frozen=True)
class _CacheEntry:
    order: Order
    expires_at: Optional[float]  # clock() deadline, None when TTL is disabled

    def expired(self, now: float) -> bool:
        return self.expires_at is not None and now > self.expires_at


class InMemoryOrderCache(OrderCache):
    """Bounded LRU cache with per-entry TTL.

    The ``OrderedDict`` keeps least recently used entries first. Reads move
    the entry to the end and may evict it when expired, so ``get_order`` and
    ``order_exists`` take the exclusive lock just like writes; only
    ``get_all_orders`` runs under the shared lock.

    A TTL of ``None`` or ``<= 0`` disables expiry and the background sweep.
    """

    def __init__(
        self,
        capacity: int,
        ttl: Union[timedelta, float, None] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        if capacity <= 0:
            raise ValueError("in-memory cache capacity must be > 0")

        if isinstance(ttl, timedelta):
            ttl = ttl.total_seconds()
        self.capacity = capacity
        self.ttl: Optional[float] = ttl if ttl and ttl > 0 else None
        self.logger = get_logger("orders.cache.memory")

        self._clock = clock
        self._lock = ReadWriteLock()
        self._entries: "OrderedDict[str, _CacheEntry]" = OrderedDict()
        self._cleanup_task: Optional[asyncio.Task] = None
        self._closed = False

        self._hits = 0
        self._misses = 0
        self._evictions = 0
        self._expirations = 0

    async def start(self):
        """Launch the background expiry sweep when a TTL is configured."""
        self._closed = False
        if self.ttl is not None and self._cleanup_task is None:
            self._cleanup_task = asyncio.create_task(self._cleanup_loop())
        self.logger.info("In-memory cache started", capacity=self.capacity, ttl_seconds=self.ttl)

    async def close(self):
        """Stop the sweep and drop all entries."""
        self._closed = True
        if self._cleanup_task:
            self._cleanup_task.cancel()
            try:
                await self._cleanup_task
            except asyncio.CancelledError:
                pass
            self._cleanup_task = None

        with self._lock.write_locked():
            self._entries = OrderedDict()
        self.logger.info("In-memory cache closed")

    async def save_order(self, order: Order) -> None:
        if self._closed:
            self.logger.warning("Save on closed cache ignored", order_uid=order.order_uid)
            return

        entry = _CacheEntry(order=order, expires_at=self._deadline())
        with self._lock.write_locked():
            self._entries[order.order_uid] = entry
            self._entries.move_to_end(order.order_uid)
            self._evict_if_needed()

    async def get_order(self, order_uid: str) -> Tuple[Optional[Order], bool]:
        order = self._lookup(order_uid)
        return order, order is not None

    async def order_exists(self, order_uid: str) -> bool:
        return self._lookup(order_uid) is not None

    async def remove_order(self, order_uid: str) -> None:
        with self._lock.write_locked():
            self._entries.pop(order_uid, None)

    async def clear(self) -> None:
        with self._lock.write_locked():
            self._entries = OrderedDict()

    async def get_all_orders(self) -> List[Order]:
        """Live entries, most recently used first."""
        now = self._clock()
        with self._lock.read_locked():
            return [
                entry.order
                for entry in reversed(self._entries.values())
                if not entry.expired(now)
            ]

    def purge_expired(self) -> int:
        """Remove every expired entry; returns how many were removed."""
        if self.ttl is None:
            return 0

        now = self._clock()
        with self._lock.write_locked():
            expired = [key for key, entry in self._entries.items() if entry.expired(now)]
            for key in expired:
                del self._entries[key]
            self._expirations += len(expired)
        return len(expired)

    async def stats(self) -> Dict[str, Any]:
        with self._lock.read_locked():
            return {
                "type": "inmemory",
                "size": len(self._entries),
                "capacity": self.capacity,
                "ttl_seconds": self.ttl,
                "hits": self._hits,
                "misses": self._misses,
                "evictions": self._evictions,
                "expirations": self._expirations,
            }

    def __len__(self) -> int:
        with self._lock.read_locked():
            return len(self._entries)

    def _deadline(self) -> Optional[float]:
        if self.ttl is None:
            return None
        return self._clock() + self.ttl

    def _lookup(self, order_uid: str) -> Optional[Order]:
        now = self._clock()
        with self._lock.write_locked():
            entry = self._entries.get(order_uid)
            if entry is None:
                self._misses += 1
                return None

            if entry.expired(now):
                del self._entries[order_uid]
                self._expirations += 1
                self._misses += 1
                return None

            self._entries.move_to_end(order_uid)
            self._hits += 1
            return entry.order

    def _evict_if_needed(self):
        # caller holds the write lock
        while len(self._entries) > self.capacity:
            evicted_uid, _ = self._entries.popitem(last=False)
            self._evictions += 1
            self.logger.debug("Evicted least recently used order", order_uid=evicted_uid)

    async def _cleanup_loop(self):
        """Purge expired entries every half TTL."""
        interval = self.ttl / 2
        while True:
            try:
                await asyncio.sleep(interval)
                removed = self.purge_expired()
                if removed:
                    self.logger.debug("Expired orders purged", count=removed)

            except asyncio.CancelledError:
                break

            except Exception as e:
                self.logger.error("Unexpected error in cache cleanup loop", error=str(e))
