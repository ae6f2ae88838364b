"""
Shared metrics configuration for the Portal client.
"""

from typing import Any, Dict, Optional

from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram


class MetricsCollector:
    """Centralized metrics collector for the orchestration layer."""

    def __init__(self, app_name: str, registry: Optional[CollectorRegistry] = None):
        self.app_name = app_name
        self.registry = registry if registry is not None else CollectorRegistry()
        self._metrics: Dict[str, Any] = {}
        self._setup_metrics()

    def _setup_metrics(self):
        """Set up request and cache metrics."""
        self._metrics["portal_requests_total"] = Counter(
            "portal_requests_total",
            "Total API requests issued by the executor",
            ["endpoint", "method", "outcome"],
            registry=self.registry
        )

        self._metrics["portal_request_duration_seconds"] = Histogram(
            "portal_request_duration_seconds",
            "API request duration in seconds",
            ["endpoint", "method"],
            registry=self.registry
        )

        self._metrics["portal_cache_reads_total"] = Counter(
            "portal_cache_reads_total",
            "Cache reads by tier and result",
            ["tier", "result"],
            registry=self.registry
        )

        self._metrics["portal_in_flight_shared_total"] = Counter(
            "portal_in_flight_shared_total",
            "Callers served by an already in-flight request",
            registry=self.registry
        )

        self._metrics["portal_background_refreshes_total"] = Counter(
            "portal_background_refreshes_total",
            "Background refreshes by outcome",
            ["outcome"],
            registry=self.registry
        )

        self._metrics["portal_in_flight_requests"] = Gauge(
            "portal_in_flight_requests",
            "Query resolutions currently in flight",
            registry=self.registry
        )

    def get_metric(self, name: str):
        """Get a metric by name."""
        return self._metrics.get(name)

    def record_request(self, endpoint: str, method: str, outcome: str, duration: float):
        """Record one executor round trip."""
        self._metrics["portal_requests_total"].labels(
            endpoint=endpoint,
            method=method,
            outcome=outcome
        ).inc()

        self._metrics["portal_request_duration_seconds"].labels(
            endpoint=endpoint,
            method=method
        ).observe(duration)

    def record_cache_read(self, tier: str, hit: bool):
        """Record a cache read against the memory or persistent tier."""
        self._metrics["portal_cache_reads_total"].labels(
            tier=tier,
            result="hit" if hit else "miss"
        ).inc()

    def increment_counter(self, metric_name: str, **labels):
        """Increment a counter metric."""
        if metric_name in self._metrics:
            metric = self._metrics[metric_name]
            (metric.labels(**labels) if labels else metric).inc()

    def set_gauge(self, metric_name: str, value: float, **labels):
        """Set a gauge metric value."""
        if metric_name in self._metrics:
            metric = self._metrics[metric_name]
            (metric.labels(**labels) if labels else metric).set(value)

    def sample(self, metric_name: str, **labels) -> float:
        """Read the current value of a sample from the registry."""
        value = self.registry.get_sample_value(metric_name, labels or None)
        return value or 0.0

