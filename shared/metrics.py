"""
Shared metrics configuration for the order cache service.
"""

from typing import Dict, Any, Optional

from prometheus_client import Counter, Histogram, Gauge, Info, CollectorRegistry, generate_latest


class MetricsCollector:
    """Centralized metrics collector for the service.

    Each collector owns its registry unless one is passed in, so several
    collectors (one per test, for instance) can coexist in a process.
    """

    def __init__(self, service_name: str, registry: Optional[CollectorRegistry] = None):
        self.service_name = service_name
        self.registry = registry if registry is not None else CollectorRegistry()
        self._metrics: Dict[str, Any] = {}
        self._setup_metrics()

    def _setup_metrics(self):
        """Set up common metrics for the service."""

        self._metrics["service_info"] = Info(
            "service_info",
            "Service information",
            registry=self.registry
        )
        self._metrics["service_info"].info({
            "service": self.service_name,
            "version": "1.0.0"
        })

        # HTTP metrics
        self._metrics["http_requests_total"] = Counter(
            "http_requests_total",
            "Total HTTP requests",
            ["method", "endpoint", "status_code"],
            registry=self.registry
        )

        self._metrics["http_request_duration_seconds"] = Histogram(
            "http_request_duration_seconds",
            "HTTP request duration in seconds",
            ["method", "endpoint"],
            registry=self.registry
        )

        self._metrics["health_check_total"] = Counter(
            "health_check_total",
            "Total health check requests",
            ["status"],
            registry=self.registry
        )

        self._setup_ingestion_metrics()

    def _setup_ingestion_metrics(self):
        """Set up ingestion pipeline metrics."""
        self._metrics["orders_ingested_total"] = Counter(
            "orders_ingested_total",
            "Stream messages by terminal outcome",
            ["outcome"],
            registry=self.registry
        )

        self._metrics["dead_letter_deliveries_total"] = Counter(
            "dead_letter_deliveries_total",
            "Dead-letter deliveries by confirmation outcome",
            ["outcome"],
            registry=self.registry
        )

        self._metrics["message_processing_seconds"] = Histogram(
            "message_processing_seconds",
            "Time spent handling one stream message",
            registry=self.registry
        )

        self._metrics["stream_reconnects_total"] = Counter(
            "stream_reconnects_total",
            "Stream session re-establishments",
            registry=self.registry
        )

        self._metrics["cache_restored_orders"] = Gauge(
            "cache_restored_orders",
            "Orders restored into the cache on the last restore",
            registry=self.registry
        )

    def export(self) -> bytes:
        """Render the registry in Prometheus text format."""
        return generate_latest(self.registry)

    def record_http_request(self, method: str, endpoint: str, status_code: int, duration: float):
        """Record HTTP request metrics."""
        self._metrics["http_requests_total"].labels(
            method=method,
            endpoint=endpoint,
            status_code=str(status_code)
        ).inc()

        self._metrics["http_request_duration_seconds"].labels(
            method=method,
            endpoint=endpoint
        ).observe(duration)

    def record_health_check(self, status: str):
        """Record health check metrics."""
        self._metrics["health_check_total"].labels(status=status).inc()

    def _resolve(self, metric_name: str, labels: Dict[str, Any]):
        metric = self._metrics.get(metric_name)
        if metric is None:
            return None
        return metric.labels(**labels) if labels else metric

    def increment_counter(self, metric_name: str, **labels):
        """Increment a counter metric."""
        metric = self._resolve(metric_name, labels)
        if metric is not None:
            metric.inc()

    def set_gauge(self, metric_name: str, value: float, **labels):
        """Set a gauge metric value."""
        metric = self._resolve(metric_name, labels)
        if metric is not None:
            metric.set(value)

    def observe_histogram(self, metric_name: str, value: float, **labels):
        """Observe a histogram metric."""
        metric = self._resolve(metric_name, labels)
        if metric is not None:
            metric.observe(value)

    def sample(self, metric_name: str, **labels) -> Optional[float]:
        """Current value of a counter or gauge sample, for tests and health output."""
        sample_name = metric_name
        if isinstance(self._metrics.get(metric_name), Counter) and not metric_name.endswith("_total"):
            sample_name = f"{metric_name}_total"
        return self.registry.get_sample_value(sample_name, labels or None)


def get_metrics_collector(service_name: str, registry: Optional[CollectorRegistry] = None) -> MetricsCollector:
    """Get a metrics collector for a service."""
    return MetricsCollector(service_name, registry)
