"""
Order cache service package.

This package ingests orders from Kafka and serves them from a bounded cache.
It provides:

- app.main: HTTP read API over the cache, health and metrics.
- app.cache: In-memory LRU/TTL and Redis cache backends behind one contract.
- app.ingestion: Stream pipeline (decode, validate, dedupe, persist, cache).
- app.kafka: Consumer and dead-letter producer.
- app.persistence: PostgreSQL system of record.
- app.validation: Business-rule checks for incoming orders.

Guidelines:
- The durable store is the source of truth; the cache is rebuilt from it on
  startup.
- Never hold a cache lock across store or Kafka I/O.
"""
