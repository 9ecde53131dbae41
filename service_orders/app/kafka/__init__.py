"""
Kafka transport for order ingestion.
"""

from .consumer import KafkaMessage, OrderConsumer
from .dead_letter import DeadLetterProducer, DeliveryOutcome, reason_from_headers

__all__ = ["KafkaMessage", "OrderConsumer", "DeadLetterProducer", "DeliveryOutcome", "reason_from_headers"]
