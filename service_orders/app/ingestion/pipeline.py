"""
Order ingestion pipeline.

Consumes the order topic and drives each message through
decode -> validate -> dedupe -> persist -> cache. Rejected payloads go to the
dead-letter topic unchanged; persistence failures are only logged and left
for redelivery.
"""

import asyncio
import time
from enum import Enum
from typing import Callable, Dict, Optional

from kafka.errors import KafkaError

from shared.config import ServiceSettings
from shared.errors import (
    CacheError, DuplicateOrderError, OrderDecodeError, OrderServiceException, PersistenceError, TransportError
)
from shared.logging import bind_message_context, clear_context, get_logger
from shared.metrics import MetricsCollector, get_metrics_collector
from shared.retry import RetryConfig, calculate_delay
from ..cache import OrderCache
from ..kafka import DeadLetterProducer, KafkaMessage, OrderConsumer
from ..models import Order
from ..persistence import OrderStore
from ..validation import OrderValidator


REASON_EMPTY_MESSAGE = "empty message"
REASON_EMPTY_ORDER_UID = "empty OrderUID"
REASON_INVALID_PREFIX = "invalid order data"


class MessageOutcome(str, Enum):
    """Terminal state of one consumed message."""
    CACHED = "cached"
    STORED = "stored"
    DEAD_LETTERED = "dead_lettered"
    DUPLICATE = "duplicate"
    PERSIST_FAILED = "persist_failed"


class IngestionPipeline:
    """Moves orders from the stream into the durable store and the cache.

    The cache and the store are owned by the caller; the pipeline only owns
    its stream session (consumer plus dead-letter producer), which it rebuilds
    after a fixed backoff whenever the transport fails.
    """

    def __init__(
        self,
        cache: OrderCache,
        store: OrderStore,
        settings: ServiceSettings,
        validator: Optional[OrderValidator] = None,
        consumer_factory: Optional[Callable[[], OrderConsumer]] = None,
        dead_letter_factory: Optional[Callable[[], DeadLetterProducer]] = None,
        metrics: Optional[MetricsCollector] = None
    ):
        self.cache = cache
        self.store = store
        self.settings = settings
        self.validator = validator or OrderValidator()
        self.consumer_factory = consumer_factory or self._default_consumer
        self.dead_letter_factory = dead_letter_factory or self._default_dead_letter
        self.metrics = metrics or get_metrics_collector(settings.service_name)
        self.retry_config = RetryConfig.fixed(settings.reconnect_delay_seconds)
        self.logger = get_logger("orders.ingestion.pipeline")

    def _default_consumer(self) -> OrderConsumer:
        return OrderConsumer(
            self.settings.kafka_bootstrap,
            self.settings.kafka_topic,
            self.settings.kafka_group_id
        )

    def _default_dead_letter(self) -> DeadLetterProducer:
        return DeadLetterProducer(
            self.settings.kafka_bootstrap,
            self.settings.kafka_dlq_topic,
            confirm_timeout=self.settings.dlq_confirm_timeout_seconds
        )

    async def restore_cache(self) -> Dict[str, int]:
        """Reload the cache from the durable store.

        Orders that fail to save are skipped, and a failed clear only logs a
        warning. A failure to list the store is raised to the caller.
        """
        orders = await self.store.list_all()
        try:
            await self.cache.clear()
        except CacheError as e:
            self.logger.warning("Failed to clear cache", error=str(e))

        restored = 0
        failed = 0
        for order in orders:
            try:
                await self.cache.save_order(order)
                restored += 1
            except CacheError as e:
                failed += 1
                self.logger.error("Failed to restore order into cache", order_uid=order.order_uid, error=str(e))

        self.metrics.set_gauge("cache_restored_orders", restored)
        self.logger.info("Cache restored from durable store", restored=restored, failed=failed)
        return {"restored": restored, "failed": failed}

    async def handle_message(self, message: KafkaMessage, dead_letter: DeadLetterProducer) -> MessageOutcome:
        """Process one message to its terminal outcome."""
        start_time = time.time()
        bind_message_context(offset=message.offset)
        try:
            outcome = await self._process(message, dead_letter)
        finally:
            self.metrics.observe_histogram("message_processing_seconds", time.time() - start_time)
            clear_context()

        self.metrics.increment_counter("orders_ingested_total", outcome=outcome.value)
        return outcome

    async def _process(self, message: KafkaMessage, dead_letter: DeadLetterProducer) -> MessageOutcome:
        if not message.value:
            return await self._dead_letter(dead_letter, message, REASON_EMPTY_MESSAGE)

        try:
            order = Order.from_payload(message.value)
        except OrderDecodeError as e:
            return await self._dead_letter(dead_letter, message, e.message)

        if not order.order_uid:
            return await self._dead_letter(dead_letter, message, REASON_EMPTY_ORDER_UID)

        bind_message_context(order_uid=order.order_uid)

        if not self.validator.validate_order(order):
            failed_rules = ", ".join(self.validator.explain(order))
            return await self._dead_letter(dead_letter, message, f"{REASON_INVALID_PREFIX}: {failed_rules}")

        if await self._already_cached(order.order_uid):
            self.logger.info("Duplicate order dropped")
            return MessageOutcome.DUPLICATE

        try:
            await self.store.put(order)
        except DuplicateOrderError:
            self.logger.warning("Order already in durable store, dropped")
            return MessageOutcome.DUPLICATE
        except PersistenceError as e:
            self.logger.error("Failed to persist order", error=str(e))
            return MessageOutcome.PERSIST_FAILED

        try:
            await self.cache.save_order(order)
        except CacheError as e:
            # durable already; the next restore brings it back
            self.logger.error("Failed to cache persisted order", error=str(e))
            return MessageOutcome.STORED

        self.logger.info("Order ingested")
        return MessageOutcome.CACHED

    async def _already_cached(self, order_uid: str) -> bool:
        try:
            return await self.cache.order_exists(order_uid)
        except CacheError as e:
            self.logger.warning("Duplicate check failed, treating order as new", order_uid=order_uid, error=str(e))
            return False

    async def _dead_letter(self, dead_letter: DeadLetterProducer, message: KafkaMessage, reason: str) -> MessageOutcome:
        self.logger.warning("Rejecting message", reason=reason)
        delivery = await dead_letter.send(message.value, reason, key=message.key, headers=message.headers)
        self.metrics.increment_counter("dead_letter_deliveries_total", outcome=delivery.value)
        return MessageOutcome.DEAD_LETTERED

    async def run(self, stop_event: asyncio.Event):
        """Restore the cache, then consume until ``stop_event`` is set."""
        await self.restore_cache()

        loop = asyncio.get_running_loop()
        attempt = 0
        while not stop_event.is_set():
            consumer: Optional[OrderConsumer] = None
            dead_letter: Optional[DeadLetterProducer] = None
            try:
                consumer = self.consumer_factory()
                await loop.run_in_executor(None, consumer.start)
                dead_letter = self.dead_letter_factory()
                await loop.run_in_executor(None, dead_letter.start)
                attempt = 0

                await self._consume(consumer, dead_letter, stop_event)

            except (KafkaError, TransportError) as e:
                self.logger.error("Stream session failed", error=str(e))

            finally:
                if dead_letter is not None:
                    await loop.run_in_executor(None, dead_letter.stop)
                if consumer is not None:
                    await loop.run_in_executor(None, consumer.close)

            if stop_event.is_set():
                break

            attempt += 1
            delay = calculate_delay(attempt, self.retry_config)
            self.metrics.increment_counter("stream_reconnects_total")
            self.logger.info("Reconnecting to stream", attempt=attempt, delay=delay)
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=delay)
            except asyncio.TimeoutError:
                pass

        self.logger.info("Ingestion pipeline stopped")

    async def _consume(self, consumer: OrderConsumer, dead_letter: DeadLetterProducer, stop_event: asyncio.Event):
        """Poll and handle batches until stopped; transport errors propagate."""
        loop = asyncio.get_running_loop()
        while not stop_event.is_set():
            messages = await loop.run_in_executor(None, consumer.poll, self.settings.poll_timeout_ms)
            for message in messages:
                try:
                    await self.handle_message(message, dead_letter)
                except OrderServiceException as e:
                    self.logger.error(
                        "Error processing message",
                        topic=message.topic,
                        offset=message.offset,
                        error=str(e)
                    )
                except Exception as e:
                    self.logger.error(
                        "Unexpected error processing message",
                        topic=message.topic,
                        offset=message.offset,
                        error=str(e),
                        error_type=type(e).__name__
                    )
