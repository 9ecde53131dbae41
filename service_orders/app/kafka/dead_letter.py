"""
Dead-letter producer for rejected order messages.
"""

import asyncio
from enum import Enum
from typing import List, Optional, Tuple

from kafka import KafkaProducer
from kafka.errors import KafkaError, KafkaTimeoutError

from shared.logging import get_logger
from shared.errors import TransportError


REASON_HEADER = "dlq_reason"


class DeliveryOutcome(str, Enum):
    """Result of waiting for a dead-letter acknowledgement."""
    DELIVERED = "delivered"
    FAILED = "failed"
    TIMED_OUT = "timed_out"


class DeadLetterProducer:
    """Forwards rejected payloads, byte for byte, to the dead-letter topic."""

    def __init__(self, bootstrap_servers: str, topic: str, confirm_timeout: float = 5.0):
        self.bootstrap_servers = bootstrap_servers
        self.topic = topic
        self.confirm_timeout = confirm_timeout
        self.logger = get_logger("orders.kafka.dead_letter")
        self.producer: Optional[KafkaProducer] = None

    def start(self):
        """Start the Kafka producer."""
        try:
            self.producer = KafkaProducer(
                bootstrap_servers=self.bootstrap_servers,
                acks='all',
                retries=3,
                linger_ms=0,
                max_block_ms=int(self.confirm_timeout * 1000)
            )

            self.logger.info("Dead-letter producer started", topic=self.topic)

        except KafkaError as e:
            self.logger.error("Failed to start dead-letter producer", error=str(e))
            raise TransportError("kafka", f"failed to start dead-letter producer: {e}", {"topic": self.topic})

    def stop(self):
        """Flush pending sends and close."""
        if self.producer:
            try:
                self.producer.flush(timeout=self.confirm_timeout)
                self.producer.close(timeout=self.confirm_timeout)
            except KafkaError as e:
                self.logger.warning("Error closing dead-letter producer", error=str(e))
            self.producer = None
            self.logger.info("Dead-letter producer stopped", topic=self.topic)

    async def send(
        self,
        payload: Optional[bytes],
        reason: str,
        key: Optional[bytes] = None,
        headers: Optional[List[Tuple[str, bytes]]] = None
    ) -> DeliveryOutcome:
        """Send and wait up to ``confirm_timeout`` for the broker acknowledgement.

        Transport problems are reported through the outcome, never raised.
        """
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._send_and_wait, payload, reason, key, headers)

    def _send_and_wait(
        self,
        payload: Optional[bytes],
        reason: str,
        key: Optional[bytes],
        headers: Optional[List[Tuple[str, bytes]]]
    ) -> DeliveryOutcome:
        if not self.producer:
            self.logger.error("Dead-letter producer not started", reason=reason)
            return DeliveryOutcome.FAILED

        kafka_headers = list(headers or [])
        kafka_headers.append((REASON_HEADER, reason.encode("utf-8")))

        try:
            future = self.producer.send(
                self.topic,
                value=payload or b"",
                key=key,
                headers=kafka_headers
            )
            record_metadata = future.get(timeout=self.confirm_timeout)

        except KafkaTimeoutError:
            self.logger.error(
                "Timed out waiting for dead-letter acknowledgement",
                reason=reason,
                timeout=self.confirm_timeout
            )
            return DeliveryOutcome.TIMED_OUT

        except KafkaError as e:
            self.logger.error("Failed to deliver to dead-letter topic", reason=reason, error=str(e))
            return DeliveryOutcome.FAILED

        self.logger.info(
            "Message sent to dead-letter topic",
            reason=reason,
            partition=record_metadata.partition,
            offset=record_metadata.offset
        )
        return DeliveryOutcome.DELIVERED


def reason_from_headers(headers: Optional[List[Tuple[str, bytes]]]) -> str:
    """The ``dlq_reason`` header of a dead-lettered record."""
    for header_key, header_value in headers or []:
        if header_key == REASON_HEADER:
            return header_value.decode("utf-8", errors="replace")
    return "unknown reason"
