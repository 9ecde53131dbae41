"""
Order cache service.

Serves cached orders over HTTP while the ingestion pipeline keeps the cache
filled from the order stream.
"""

import asyncio
from typing import Any, Dict, List, Optional

from fastapi import HTTPException

from shared.base_service import BaseService
from shared.config import ServiceSettings
from shared.metrics import MetricsCollector
from .cache import OrderCache, create_order_cache
from .ingestion import IngestionPipeline
from .models import Order
from .persistence import PostgresOrderStore


MAX_ORDER_UID_LENGTH = 50


class OrdersService(BaseService):
    """Order cache service implementation."""

    def __init__(
        self,
        settings: Optional[ServiceSettings] = None,
        cache: Optional[OrderCache] = None,
        store: Optional[PostgresOrderStore] = None,
        pipeline: Optional[IngestionPipeline] = None,
        metrics: Optional[MetricsCollector] = None,
        run_ingestion: bool = True
    ):
        super().__init__("orders", settings, metrics)

        self.cache = cache or create_order_cache(self.config.cache)
        self.store = store or PostgresOrderStore(self.config.postgres_dsn)
        self.pipeline = pipeline or IngestionPipeline(self.cache, self.store, self.config, metrics=self.metrics)
        self.run_ingestion = run_ingestion

        self._stop_event: Optional[asyncio.Event] = None
        self._pipeline_task: Optional[asyncio.Task] = None

        self._setup_order_routes()

    def _setup_order_routes(self):
        """Set up order routes."""

        @self.app.get("/order/{order_uid}", response_model=Order)
        async def get_order(order_uid: str):
            """Fetch one cached order."""
            self._check_order_uid(order_uid)

            order, found = await self.cache.get_order(order_uid)
            if not found:
                raise HTTPException(status_code=404, detail=f"Order with UID '{order_uid}' not found")

            self.logger.info("Order retrieved", order_uid=order_uid)
            return order

        @self.app.delete("/order/{order_uid}")
        async def delete_order(order_uid: str):
            """Evict one order from the cache."""
            self._check_order_uid(order_uid)

            if not await self.cache.order_exists(order_uid):
                raise HTTPException(status_code=404, detail=f"Order with UID '{order_uid}' not found")

            await self.cache.remove_order(order_uid)

            self.logger.info("Order deleted", order_uid=order_uid)
            return {"message": f"Order with UID '{order_uid}' successfully deleted"}

        @self.app.delete("/delorders")
        async def clear_orders():
            """Drop every cached order."""
            await self.cache.clear()
            return {"message": "All orders successfully cleared"}

        @self.app.get("/orders", response_model=List[Order])
        async def get_all_orders():
            orders = await self.cache.get_all_orders()
            self.logger.info("Retrieved all orders from cache", order_count=len(orders))
            return orders

    @staticmethod
    def _check_order_uid(order_uid: str):
        if not order_uid:
            raise HTTPException(status_code=400, detail="OrderUID is required")
        if len(order_uid) > MAX_ORDER_UID_LENGTH:
            raise HTTPException(status_code=400, detail="OrderUID is too long")

    async def _check_dependencies(self) -> Dict[str, Any]:
        """Report cache statistics, store health and ingestion state."""
        dependencies: Dict[str, Any] = {"cache": await self.cache.stats()}

        dependencies["postgres"] = "ok" if await self.store.health_check() else "error"

        if self._pipeline_task is None:
            dependencies["ingestion"] = "disabled"
        elif self._pipeline_task.done():
            dependencies["ingestion"] = "stopped"
        else:
            dependencies["ingestion"] = "running"

        return dependencies

    async def start(self):
        """Start store, cache, then the ingestion task."""
        await self.store.start()
        await self.cache.start()

        if self.run_ingestion:
            self._stop_event = asyncio.Event()
            self._pipeline_task = asyncio.create_task(self.pipeline.run(self._stop_event))
            self._pipeline_task.add_done_callback(self._on_pipeline_done)

        self.logger.info("Orders service started", cache_type=self.config.cache.type)

    def _on_pipeline_done(self, task: asyncio.Task):
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            self.logger.error("Ingestion pipeline terminated", error=str(error))

    async def stop(self):
        """Stop in reverse order of start."""
        if self._pipeline_task is not None:
            self._stop_event.set()
            try:
                await self._pipeline_task
            except Exception as e:
                self.logger.error("Ingestion pipeline failed", error=str(e))
            self._pipeline_task = None

        await self.cache.close()
        await self.store.stop()

        self.logger.info("Orders service stopped")


def create_app():
    """Create order cache service application."""
    service = OrdersService()
    return service.app


if __name__ == "__main__":
    service = OrdersService()
    service.run()
