"""
PostgreSQL persistence layer for orders.
"""

from typing import List, Optional, Protocol

import asyncpg

from shared.logging import get_logger
from shared.errors import DuplicateOrderError, PersistenceError
from ..models import Delivery, Order, OrderItem, Payment


class OrderStore(Protocol):
    """System of record for orders."""

    async def put(self, order: Order) -> None:
        ...

    async def get(self, order_uid: str) -> Optional[Order]:
        ...

    async def list_all(self) -> List[Order]:
        ...


class PostgresOrderStore:
    """Orders split over ``orders``, ``deliveries``, ``payments`` and ``items``.

    ``put`` writes all four tables in one transaction, so an order is either
    stored whole or not at all.
    """

    def __init__(self, dsn: str, min_size: int = 2, max_size: int = 10):
        self.dsn = dsn
        self.min_size = min_size
        self.max_size = max_size
        self.logger = get_logger("orders.persistence.postgres")
        self.pool: Optional[asyncpg.Pool] = None

    async def start(self):
        """Start the persistence layer."""
        try:
            self.pool = await asyncpg.create_pool(
                self.dsn,
                min_size=self.min_size,
                max_size=self.max_size,
                command_timeout=30
            )

            await self._create_tables()

            self.logger.info("PostgreSQL persistence started")

        except (OSError, asyncpg.PostgresError) as e:
            self.logger.error("Failed to start PostgreSQL persistence", error=str(e))
            raise PersistenceError(str(e), code="POSTGRES_START_FAILED")

    async def stop(self):
        """Stop the persistence layer."""
        if self.pool:
            await self.pool.close()
            self.pool = None
            self.logger.info("PostgreSQL persistence stopped")

    async def _create_tables(self):
        """Create database tables."""
        async with self.pool.acquire() as conn:
            await conn.execute("""
                CREATE TABLE IF NOT EXISTS orders (
                    order_uid VARCHAR(255) PRIMARY KEY,
                    track_number VARCHAR(255) NOT NULL,
                    entry VARCHAR(255) NOT NULL,
                    locale VARCHAR(32) NOT NULL,
                    internal_signature VARCHAR(255) NOT NULL DEFAULT '',
                    customer_id VARCHAR(255) NOT NULL,
                    delivery_service VARCHAR(255) NOT NULL,
                    shardkey VARCHAR(32) NOT NULL,
                    sm_id INTEGER NOT NULL DEFAULT 0,
                    date_created TIMESTAMP WITH TIME ZONE NOT NULL,
                    oof_shard VARCHAR(32) NOT NULL
                );
            """)
            await conn.execute("""
                CREATE TABLE IF NOT EXISTS deliveries (
                    order_uid VARCHAR(255) PRIMARY KEY REFERENCES orders(order_uid) ON DELETE CASCADE,
                    name VARCHAR(255) NOT NULL,
                    phone VARCHAR(64) NOT NULL,
                    zip VARCHAR(32) NOT NULL,
                    city VARCHAR(255) NOT NULL,
                    address TEXT NOT NULL,
                    region VARCHAR(255) NOT NULL,
                    email VARCHAR(255) NOT NULL
                );
            """)
            await conn.execute("""
                CREATE TABLE IF NOT EXISTS payments (
                    order_uid VARCHAR(255) PRIMARY KEY REFERENCES orders(order_uid) ON DELETE CASCADE,
                    transaction VARCHAR(255) NOT NULL,
                    request_id VARCHAR(255) NOT NULL DEFAULT '',
                    currency VARCHAR(16) NOT NULL,
                    provider VARCHAR(255) NOT NULL,
                    amount DOUBLE PRECISION NOT NULL,
                    payment_dt BIGINT NOT NULL,
                    bank VARCHAR(255) NOT NULL,
                    delivery_cost DOUBLE PRECISION NOT NULL,
                    goods_total DOUBLE PRECISION NOT NULL,
                    custom_fee DOUBLE PRECISION NOT NULL
                );
            """)
            await conn.execute("""
                CREATE TABLE IF NOT EXISTS items (
                    id BIGSERIAL PRIMARY KEY,
                    order_uid VARCHAR(255) NOT NULL REFERENCES orders(order_uid) ON DELETE CASCADE,
                    position INTEGER NOT NULL,
                    chrt_id BIGINT NOT NULL,
                    track_number VARCHAR(255) NOT NULL,
                    price DOUBLE PRECISION NOT NULL,
                    rid VARCHAR(255) NOT NULL,
                    name VARCHAR(255) NOT NULL,
                    sale DOUBLE PRECISION NOT NULL,
                    size VARCHAR(32) NOT NULL,
                    total_price DOUBLE PRECISION NOT NULL,
                    nm_id BIGINT NOT NULL,
                    brand VARCHAR(255) NOT NULL,
                    status INTEGER NOT NULL
                );
            """)
            await conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_items_order_uid ON items(order_uid, position);
            """)

    async def put(self, order: Order) -> None:
        """Insert a new order; existing identifiers are rejected."""
        pool = self._require_pool()
        try:
            async with pool.acquire() as conn:
                async with conn.transaction():
                    exists = await conn.fetchval(
                        "SELECT EXISTS(SELECT 1 FROM orders WHERE order_uid = $1)",
                        order.order_uid
                    )
                    if exists:
                        raise DuplicateOrderError(order.order_uid)

                    await conn.execute("""
                        INSERT INTO orders (
                            order_uid, track_number, entry, locale, internal_signature, customer_id,
                            delivery_service, shardkey, sm_id, date_created, oof_shard
                        ) VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11)
                    """,
                        order.order_uid, order.track_number, order.entry, order.locale,
                        order.internal_signature, order.customer_id, order.delivery_service,
                        order.shardkey, order.sm_id, order.date_created, order.oof_shard
                    )

                    delivery = order.delivery
                    await conn.execute("""
                        INSERT INTO deliveries (order_uid, name, phone, zip, city, address, region, email)
                        VALUES ($1, $2, $3, $4, $5, $6, $7, $8)
                    """,
                        order.order_uid, delivery.name, delivery.phone, delivery.zip,
                        delivery.city, delivery.address, delivery.region, delivery.email
                    )

                    payment = order.payment
                    await conn.execute("""
                        INSERT INTO payments (
                            order_uid, transaction, request_id, currency, provider, amount,
                            payment_dt, bank, delivery_cost, goods_total, custom_fee
                        ) VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11)
                    """,
                        order.order_uid, payment.transaction, payment.request_id, payment.currency,
                        payment.provider, payment.amount, payment.payment_dt, payment.bank,
                        payment.delivery_cost, payment.goods_total, payment.custom_fee
                    )

                    await conn.executemany("""
                        INSERT INTO items (
                            order_uid, position, chrt_id, track_number, price, rid, name,
                            sale, size, total_price, nm_id, brand, status
                        ) VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12, $13)
                    """, [
                        (
                            order.order_uid, position, item.chrt_id, item.track_number, item.price,
                            item.rid, item.name, item.sale, item.size, item.total_price,
                            item.nm_id, item.brand, item.status
                        )
                        for position, item in enumerate(order.items)
                    ])

        except asyncpg.UniqueViolationError:
            raise DuplicateOrderError(order.order_uid)
        except (OSError, asyncpg.PostgresError, asyncpg.InterfaceError) as e:
            self.logger.error("Error saving order", order_uid=order.order_uid, error=str(e))
            raise PersistenceError(f"failed to insert order: {e}", {"order_uid": order.order_uid})

        self.logger.info("Order saved", order_uid=order.order_uid, items=len(order.items))

    async def get(self, order_uid: str) -> Optional[Order]:
        """Load one order, or None when absent."""
        pool = self._require_pool()
        try:
            async with pool.acquire() as conn:
                row = await conn.fetchrow("SELECT * FROM orders WHERE order_uid = $1", order_uid)
                if not row:
                    return None
                return await self._load_order(conn, row)

        except (OSError, asyncpg.PostgresError, asyncpg.InterfaceError) as e:
            self.logger.error("Error loading order", order_uid=order_uid, error=str(e))
            raise PersistenceError(f"failed to get order: {e}", {"order_uid": order_uid})

    async def list_all(self) -> List[Order]:
        """Load every stored order."""
        pool = self._require_pool()
        try:
            async with pool.acquire() as conn:
                rows = await conn.fetch("SELECT * FROM orders ORDER BY date_created ASC")
                return [await self._load_order(conn, row) for row in rows]

        except (OSError, asyncpg.PostgresError, asyncpg.InterfaceError) as e:
            self.logger.error("Error loading all orders", error=str(e))
            raise PersistenceError(f"failed to get orders: {e}")

    async def health_check(self) -> bool:
        """Check database health."""
        if self.pool is None:
            return False
        try:
            async with self.pool.acquire() as conn:
                await conn.fetchval("SELECT 1")
                return True
        except (OSError, asyncpg.PostgresError, asyncpg.InterfaceError):
            return False

    def _require_pool(self) -> asyncpg.Pool:
        if self.pool is None:
            raise PersistenceError("PostgreSQL persistence is not started", code="POSTGRES_NOT_STARTED")
        return self.pool

    async def _load_order(self, conn, row) -> Order:
        """Assemble an order row with its delivery, payment and items."""
        order_uid = row["order_uid"]
        delivery_row = await conn.fetchrow("SELECT * FROM deliveries WHERE order_uid = $1", order_uid)
        payment_row = await conn.fetchrow("SELECT * FROM payments WHERE order_uid = $1", order_uid)
        item_rows = await conn.fetch(
            "SELECT * FROM items WHERE order_uid = $1 ORDER BY position ASC", order_uid
        )

        return Order(
            order_uid=order_uid,
            track_number=row["track_number"],
            entry=row["entry"],
            locale=row["locale"],
            internal_signature=row["internal_signature"],
            customer_id=row["customer_id"],
            delivery_service=row["delivery_service"],
            shardkey=row["shardkey"],
            sm_id=row["sm_id"],
            date_created=row["date_created"],
            oof_shard=row["oof_shard"],
            delivery=self._row_to_delivery(delivery_row),
            payment=self._row_to_payment(payment_row),
            items=[self._row_to_item(item_row) for item_row in item_rows],
        )

    @staticmethod
    def _row_to_delivery(row) -> Delivery:
        if row is None:
            return Delivery()
        return Delivery(
            name=row["name"],
            phone=row["phone"],
            zip=row["zip"],
            city=row["city"],
            address=row["address"],
            region=row["region"],
            email=row["email"],
        )

    @staticmethod
    def _row_to_payment(row) -> Payment:
        if row is None:
            return Payment()
        return Payment(
            transaction=row["transaction"],
            request_id=row["request_id"],
            currency=row["currency"],
            provider=row["provider"],
            amount=row["amount"],
            payment_dt=row["payment_dt"],
            bank=row["bank"],
            delivery_cost=row["delivery_cost"],
            goods_total=row["goods_total"],
            custom_fee=row["custom_fee"],
        )

    @staticmethod
    def _row_to_item(row) -> OrderItem:
        return OrderItem(
            chrt_id=row["chrt_id"],
            track_number=row["track_number"],
            price=row["price"],
            rid=row["rid"],
            name=row["name"],
            sale=row["sale"],
            size=row["size"],
            total_price=row["total_price"],
            nm_id=row["nm_id"],
            brand=row["brand"],
            status=row["status"],
        )
