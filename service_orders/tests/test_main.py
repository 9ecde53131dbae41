"""
Unit tests for the order service HTTP API.
"""

import asyncio
from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from shared.errors import CacheError
from service_orders.app.cache import InMemoryOrderCache
from service_orders.app.main import OrdersService
from service_orders.app.models import Order


class FakePipeline:
    """Ingestion stand-in that runs until told to stop."""

    def __init__(self):
        self.started = False
        self.stopped = False

    async def run(self, stop_event: asyncio.Event):
        self.started = True
        await stop_event.wait()
        self.stopped = True


class TestOrdersService:
    """Test cases for OrdersService."""

    @pytest.fixture
    def cache(self):
        return InMemoryOrderCache(10)

    @pytest.fixture
    def service(self, settings, cache, fake_store, metrics):
        return OrdersService(settings=settings, cache=cache, store=fake_store, metrics=metrics,
                             run_ingestion=False)

    @pytest.fixture
    def client(self, service):
        with TestClient(service.app) as client:
            yield client

    @pytest.fixture
    def seeded(self, cache, make_order):
        """Put two orders in the cache."""
        orders = [make_order("order-a"), make_order("order-b")]
        for order in orders:
            asyncio.run(cache.save_order(order))
        return orders

    def test_get_order(self, seeded, client):
        response = client.get("/order/order-a")

        assert response.status_code == 200
        assert Order.model_validate(response.json()) == seeded[0]

    def test_get_order_not_found(self, client):
        response = client.get("/order/missing")

        assert response.status_code == 404
        assert response.json()["detail"] == "Order with UID 'missing' not found"

    def test_get_order_uid_too_long(self, client):
        response = client.get("/order/" + "x" * 51)

        assert response.status_code == 400

    def test_get_order_uid_at_limit(self, client):
        response = client.get("/order/" + "x" * 50)

        assert response.status_code == 404

    def test_delete_order(self, seeded, client):
        response = client.delete("/order/order-a")

        assert response.status_code == 200
        assert response.json() == {"message": "Order with UID 'order-a' successfully deleted"}
        assert client.get("/order/order-a").status_code == 404

    def test_delete_order_not_found(self, client):
        response = client.delete("/order/missing")

        assert response.status_code == 404

    def test_list_orders(self, seeded, client):
        response = client.get("/orders")

        assert response.status_code == 200
        assert {order["order_uid"] for order in response.json()} == {"order-a", "order-b"}

    def test_list_orders_empty(self, client):
        response = client.get("/orders")

        assert response.status_code == 200
        assert response.json() == []

    def test_clear_orders(self, seeded, client):
        response = client.delete("/delorders")

        assert response.status_code == 200
        assert client.get("/orders").json() == []

    def test_cache_error_is_opaque(self, cache, client):
        cache.get_order = AsyncMock(side_effect=CacheError("redis://secret-host down"))

        response = client.get("/order/order-a")

        assert response.status_code == 500
        assert response.json() == {
            "code": "INTERNAL_ERROR",
            "message": "Internal server error",
            "details": {}
        }

    def test_health(self, seeded, client):
        response = client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ok"
        assert data["service"] == "orders"
        assert data["dependencies"]["cache"]["size"] == 2
        assert data["dependencies"]["postgres"] == "ok"
        assert data["dependencies"]["ingestion"] == "disabled"

    def test_health_reports_store_down(self, fake_store, client):
        fake_store.healthy = False

        assert client.get("/health").json()["dependencies"]["postgres"] == "error"

    def test_metrics(self, client):
        client.get("/orders")

        response = client.get("/metrics")

        assert response.status_code == 200
        assert "http_requests_total" in response.text
        assert "orders_ingested_total" in response.text


class TestOrdersServiceLifecycle:
    """Startup and shutdown ordering."""

    def test_lifespan_starts_and_stops_components(self, settings, fake_store, metrics):
        cache = InMemoryOrderCache(10)
        pipeline = FakePipeline()
        service = OrdersService(settings=settings, cache=cache, store=fake_store, pipeline=pipeline,
                                metrics=metrics)

        with TestClient(service.app) as client:
            assert fake_store.started is True
            assert client.get("/health").json()["dependencies"]["ingestion"] == "running"
            assert pipeline.started is True

        assert pipeline.stopped is True
        assert fake_store.started is False
