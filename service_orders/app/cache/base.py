"""
Cache contract shared by every order cache backend.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Tuple

from ..models import Order


class OrderCache(ABC):
    """Capacity/TTL bounded store of hot orders keyed by ``order_uid``.

    Implementations must be safe to call from concurrent tasks. Callers
    never see a partially written order: entries are replaced whole.
    """

    async def start(self) -> None:
        """Open connections and launch background maintenance."""

    @abstractmethod
    async def save_order(self, order: Order) -> None:
        """Upsert by ``order_uid``, refreshing recency and expiry."""

    @abstractmethod
    async def get_order(self, order_uid: str) -> Tuple[Optional[Order], bool]:
        """Return ``(order, True)``, or ``(None, False)`` when absent or expired."""

    @abstractmethod
    async def order_exists(self, order_uid: str) -> bool:
        """Same answer as the found flag of ``get_order``."""

    @abstractmethod
    async def remove_order(self, order_uid: str) -> None:
        """Remove an entry; absent keys are not an error."""

    @abstractmethod
    async def clear(self) -> None:
        """Drop every entry."""

    @abstractmethod
    async def get_all_orders(self) -> List[Order]:
        """Snapshot of all live entries."""

    @abstractmethod
    async def close(self) -> None:
        """Stop background maintenance and release resources."""

    async def stats(self) -> Dict[str, Any]:
        """Backend statistics for health reporting."""
        return {}
