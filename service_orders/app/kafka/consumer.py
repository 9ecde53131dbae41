"""
Kafka consumer for the order stream.
"""

from dataclasses import dataclass
from typing import List, Optional, Tuple

import kafka
from kafka.errors import KafkaError

from shared.logging import get_logger
from shared.errors import TransportError


@dataclass
class KafkaMessage:
    """Kafka message wrapper."""
    topic: str
    partition: int
    offset: int
    key: Optional[bytes]
    value: Optional[bytes]
    timestamp: Optional[int]
    headers: Optional[List[Tuple[str, bytes]]]


class OrderConsumer:
    """Consumer group member reading the order topic.

    Offsets are auto-committed and a group without a committed position
    starts at the latest offset. ``poll`` blocks, so callers run it in an
    executor.
    """

    def __init__(self, bootstrap_servers: str, topic: str, group_id: str):
        self.bootstrap_servers = bootstrap_servers
        self.topic = topic
        self.group_id = group_id
        self.logger = get_logger("orders.kafka.consumer")
        self.consumer: Optional[kafka.KafkaConsumer] = None

    def start(self):
        """Connect and subscribe to the order topic."""
        try:
            self.consumer = kafka.KafkaConsumer(
                bootstrap_servers=self.bootstrap_servers,
                group_id=self.group_id,
                value_deserializer=lambda x: x,
                key_deserializer=lambda x: x,
                auto_offset_reset='latest',
                enable_auto_commit=True,
                max_poll_records=100,
                session_timeout_ms=30000,
                heartbeat_interval_ms=10000
            )
            self.consumer.subscribe([self.topic])

            self.logger.info("Kafka consumer started", topic=self.topic, group_id=self.group_id)

        except KafkaError as e:
            self.logger.error("Failed to start Kafka consumer", topic=self.topic, error=str(e))
            self.close()
            raise TransportError("kafka", f"failed to start consumer: {e}", {"topic": self.topic})

    def close(self):
        """Leave the group and close the connection."""
        if self.consumer:
            try:
                self.consumer.close()
            except KafkaError as e:
                self.logger.warning("Error closing Kafka consumer", error=str(e))
            self.consumer = None
            self.logger.info("Kafka consumer stopped", topic=self.topic)

    def poll(self, timeout_ms: int = 1000) -> List[KafkaMessage]:
        """Fetch the next batch; empty when nothing arrived within the timeout.

        Raises KafkaError when the connection is lost.
        """
        if not self.consumer:
            raise TransportError("kafka", "consumer not started")

        message_batch = self.consumer.poll(timeout_ms=timeout_ms)
        if not message_batch:
            return []

        messages: List[KafkaMessage] = []
        for records in message_batch.values():
            for record in records:
                messages.append(KafkaMessage(
                    topic=record.topic,
                    partition=record.partition,
                    offset=record.offset,
                    key=record.key,
                    value=record.value,
                    timestamp=record.timestamp,
                    headers=list(record.headers) if record.headers else None
                ))
        return messages
