#!/usr/bin/env python3
"""
Print rejected orders from the dead-letter topic.

Reads the topic from the earliest offset without joining a consumer group, so
running it never moves the service's committed position.
"""

import argparse
import os
import sys

import kafka
from kafka.errors import KafkaError

from service_orders.app.kafka import reason_from_headers


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Watch the order dead-letter topic.")
    parser.add_argument("--bootstrap", default=os.getenv("ORDERS_KAFKA_BOOTSTRAP", "localhost:9092"), help="Kafka bootstrap servers")
    parser.add_argument("--topic", default=os.getenv("ORDERS_KAFKA_DLQ_TOPIC", "orders.dlq"), help="Dead-letter topic")
    parser.add_argument("--timeout-ms", type=int, default=None, help="Stop after this long without new records")
    return parser.parse_args()


def main() -> int:
    args = _parse_args()
    try:
        consumer = kafka.KafkaConsumer(
            args.topic,
            bootstrap_servers=args.bootstrap,
            group_id=None,
            auto_offset_reset='earliest',
            enable_auto_commit=False,
            consumer_timeout_ms=args.timeout_ms if args.timeout_ms is not None else float("inf"),
        )
    except KafkaError as exc:
        print(f"[dlq-watcher] failed to start consumer: {exc}", file=sys.stderr)
        return 1

    print(f"Watching DLQ topic: {args.topic}")
    print("Press Ctrl+C to stop.")
    try:
        for record in consumer:
            reason = reason_from_headers(record.headers)
            payload = (record.value or b"").decode("utf-8", errors="replace")
            print(f"INVALID ORDER (offset {record.offset}) -> REASON: {reason}")
            print(f"   Payload: {payload}\n")
    except KeyboardInterrupt:
        pass
    except KafkaError as exc:
        print(f"[dlq-watcher] error: {exc}", file=sys.stderr)
        return 1
    finally:
        consumer.close()

    print("DLQ watcher stopped.")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
