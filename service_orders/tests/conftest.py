"""
Shared fixtures for order service tests.
"""

import copy
import fnmatch
import json
from typing import Any, Dict, List, Optional, Tuple

import pytest

from shared.config import ServiceSettings
from shared.errors import DuplicateOrderError, PersistenceError
from shared.metrics import MetricsCollector
from service_orders.app.kafka import DeliveryOutcome, KafkaMessage
from service_orders.app.models import Order


ORDER_PAYLOAD: Dict[str, Any] = {
    "order_uid": "b563feb7b2b84b6test",
    "track_number": "WBILMTESTTRACK",
    "entry": "WBIL",
    "delivery": {
        "name": "Test Testov",
        "phone": "+9720000000",
        "zip": "2639809",
        "city": "Kiryat Mozkin",
        "address": "Ploshad Mira 15",
        "region": "Kraiot",
        "email": "test@gmail.com"
    },
    "payment": {
        "transaction": "b563feb7b2b84b6test",
        "request_id": "",
        "currency": "USD",
        "provider": "wbpay",
        "amount": 1817,
        "payment_dt": 1637907727,
        "bank": "alpha",
        "delivery_cost": 1500,
        "goods_total": 317,
        "custom_fee": 0
    },
    "items": [
        {
            "chrt_id": 9934930,
            "track_number": "WBILMTESTTRACK",
            "price": 453,
            "rid": "ab4219087a764ae0btest",
            "name": "Mascaras",
            "sale": 30,
            "size": "0",
            "total_price": 317,
            "nm_id": 2389212,
            "brand": "Vivienne Sabo",
            "status": 202
        }
    ],
    "locale": "en",
    "internal_signature": "",
    "customer_id": "test",
    "delivery_service": "meest",
    "shardkey": "9",
    "sm_id": 99,
    "date_created": "2021-11-26T06:22:19Z",
    "oof_shard": "1"
}


def order_payload(order_uid: Optional[str] = None, **overrides) -> Dict[str, Any]:
    """A valid order payload as a dict, with top-level overrides applied."""
    payload = copy.deepcopy(ORDER_PAYLOAD)
    if order_uid is not None:
        payload["order_uid"] = order_uid
    payload.update(overrides)
    return payload


class FakeOrderStore:
    """In-memory stand-in for the PostgreSQL store."""

    def __init__(self):
        self.orders: Dict[str, Order] = {}
        self.put_calls: List[str] = []
        self.fail_put: Optional[Exception] = None
        self.fail_list: Optional[Exception] = None
        self.started = False
        self.healthy = True

    async def start(self):
        self.started = True

    async def stop(self):
        self.started = False

    async def put(self, order: Order) -> None:
        self.put_calls.append(order.order_uid)
        if self.fail_put is not None:
            raise self.fail_put
        if order.order_uid in self.orders:
            raise DuplicateOrderError(order.order_uid)
        self.orders[order.order_uid] = order

    async def get(self, order_uid: str) -> Optional[Order]:
        return self.orders.get(order_uid)

    async def list_all(self) -> List[Order]:
        if self.fail_list is not None:
            raise self.fail_list
        return list(self.orders.values())

    async def health_check(self) -> bool:
        return self.healthy


class FakeDeadLetter:
    """Records dead-letter sends instead of producing them."""

    def __init__(self, outcome: DeliveryOutcome = DeliveryOutcome.DELIVERED):
        self.outcome = outcome
        self.sent: List[Dict[str, Any]] = []
        self.started = False
        self.stopped = False

    def start(self):
        self.started = True

    def stop(self):
        self.stopped = True

    async def send(self, payload, reason, key=None, headers=None) -> DeliveryOutcome:
        self.sent.append({"payload": payload, "reason": reason, "key": key, "headers": headers})
        return self.outcome


class FakeRedis:
    """Just enough of redis.asyncio.Redis for the cache backend."""

    def __init__(self):
        self.data: Dict[str, str] = {}
        self.expiries: Dict[str, int] = {}
        self.closed = False

    async def ping(self):
        return True

    async def set(self, key, value, ex=None):
        self.data[key] = value
        if ex is not None:
            self.expiries[key] = ex
        return True

    async def get(self, key):
        return self.data.get(key)

    async def exists(self, *keys):
        return sum(1 for key in keys if key in self.data)

    async def delete(self, *keys):
        removed = 0
        for key in keys:
            if self.data.pop(key, None) is not None:
                removed += 1
            self.expiries.pop(key, None)
        return removed

    async def scan_iter(self, match=None, count=None):
        for key in list(self.data):
            if match is None or fnmatch.fnmatchcase(key, match):
                yield key

    async def mget(self, keys):
        return [self.data.get(key) for key in keys]

    async def info(self):
        return {"redis_version": "7.2.0", "used_memory_human": "1.00M", "keyspace_hits": 3, "keyspace_misses": 1}

    async def aclose(self):
        self.closed = True


def kafka_message(value: Optional[bytes], offset: int = 0, key: Optional[bytes] = None,
                  headers: Optional[List[Tuple[str, bytes]]] = None) -> KafkaMessage:
    return KafkaMessage(
        topic="orders",
        partition=0,
        offset=offset,
        key=key,
        value=value,
        timestamp=1637907727000,
        headers=headers
    )


@pytest.fixture
def sample_payload() -> Dict[str, Any]:
    """A valid order payload."""
    return order_payload()


@pytest.fixture
def make_order():
    """Factory for valid orders with a chosen uid."""
    def _make(order_uid: str = "b563feb7b2b84b6test", **overrides) -> Order:
        return Order.model_validate(order_payload(order_uid, **overrides))
    return _make


@pytest.fixture
def sample_order(make_order) -> Order:
    return make_order()


@pytest.fixture
def make_message():
    """Factory for Kafka messages carrying a payload dict or raw bytes."""
    def _make(payload, offset: int = 0, key: Optional[bytes] = None, headers=None) -> KafkaMessage:
        value = json.dumps(payload).encode("utf-8") if isinstance(payload, dict) else payload
        return kafka_message(value, offset=offset, key=key, headers=headers)
    return _make


@pytest.fixture
def fake_store() -> FakeOrderStore:
    return FakeOrderStore()


@pytest.fixture
def fake_dead_letter() -> FakeDeadLetter:
    return FakeDeadLetter()


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture
def settings() -> ServiceSettings:
    """Settings that do not depend on the environment."""
    return ServiceSettings(
        _env_file=None,
        reconnect_delay_seconds=0.01,
        poll_timeout_ms=10,
    )


@pytest.fixture
def metrics() -> MetricsCollector:
    """Collector with its own registry so tests do not share counters."""
    return MetricsCollector("orders-test")


@pytest.fixture
def persistence_failure() -> PersistenceError:
    return PersistenceError("failed to insert order: connection refused")
