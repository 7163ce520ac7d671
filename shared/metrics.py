"""
Shared metrics configuration for Route Guardian.
"""

import time
from contextlib import contextmanager
from typing import Dict, Any, Optional

from prometheus_client import CollectorRegistry, Counter, Histogram, Info, generate_latest


class MetricsCollector:
    """Prometheus metrics for a service, kept on a private registry."""

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

        # Guard metrics
        self._metrics["guard_decisions_total"] = Counter(
            "guard_decisions_total",
            "Total route guard decisions",
            ["verb", "granted"],
            registry=self.registry
        )

        self._metrics["guard_decision_duration_seconds"] = Histogram(
            "guard_decision_duration_seconds",
            "Route guard decision duration in seconds",
            registry=self.registry
        )

        self._metrics["rule_loads_total"] = Counter(
            "rule_loads_total",
            "Total rule source loads",
            ["status"],
            registry=self.registry
        )

    def get_metric(self, name: str):
        """Get a metric by name."""
        return self._metrics.get(name)

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

    def record_decision(self, verb: str, granted: bool, duration: float = 0.0):
        """Record a route guard decision."""
        self._metrics["guard_decisions_total"].labels(
            verb=verb.upper() or "NONE",
            granted=str(granted).lower()
        ).inc()
        self._metrics["guard_decision_duration_seconds"].observe(duration)

    def record_rule_load(self, status: str):
        """Record a rule source load attempt."""
        self._metrics["rule_loads_total"].labels(status=status).inc()

    @contextmanager
    def time_operation(self, operation_name: str, **labels):
        """Context manager to time an operation."""
        start_time = time.time()
        try:
            yield
        finally:
            duration = time.time() - start_time
            if operation_name in self._metrics:
                metric = self._metrics[operation_name]
                (metric.labels(**labels) if labels else metric).observe(duration)

    def export(self) -> bytes:
        """Render the registry in Prometheus text format."""
        return generate_latest(self.registry)


def get_metrics_collector(service_name: str, registry: Optional[CollectorRegistry] = None) -> MetricsCollector:
    """Get a metrics collector for a service."""
    return MetricsCollector(service_name, registry)
