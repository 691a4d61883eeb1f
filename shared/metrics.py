"""
Shared metrics configuration for the access authorization layer.
"""

from typing import Dict, Any, Optional

from prometheus_client import Counter, Histogram, Info, CollectorRegistry


class MetricsCollector:
    """Centralized metrics collector for a service.

    Each collector owns its registry unless one is handed in, so several
    engines can live in one process (and in one test session) without
    colliding on metric names in the default registry.
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

        self._metrics["errors_total"] = Counter(
            "errors_total",
            "Total errors",
            ["error_type", "service"],
            registry=self.registry
        )

        self._setup_authorization_metrics()

    def _setup_authorization_metrics(self):
        """Set up authorization-specific metrics."""
        self._metrics["authorization_decisions_total"] = Counter(
            "authorization_decisions_total",
            "Total authorization decisions",
            ["decision"],
            registry=self.registry
        )

        self._metrics["authorization_decision_duration_seconds"] = Histogram(
            "authorization_decision_duration_seconds",
            "Authorization decision duration in seconds",
            registry=self.registry
        )

        self._metrics["authorization_cache_requests_total"] = Counter(
            "authorization_cache_requests_total",
            "Cache lookups for actor ability and role collections",
            ["kind", "result"],
            registry=self.registry
        )

        self._metrics["authorization_cache_refresh_total"] = Counter(
            "authorization_cache_refresh_total",
            "Cache invalidations",
            ["strategy"],
            registry=self.registry
        )

        self._metrics["authorization_store_errors_total"] = Counter(
            "authorization_store_errors_total",
            "Failed reads from the ability store",
            ["operation"],
            registry=self.registry
        )

    def record_error(self, error_type: str, service: Optional[str] = None):
        """Record error metrics."""
        service_name = service or self.service_name
        self._metrics["errors_total"].labels(error_type=error_type, service=service_name).inc()

    def record_decision(self, decision: str, duration: float):
        """Record one authorization decision."""
        self._metrics["authorization_decisions_total"].labels(decision=decision).inc()
        self._metrics["authorization_decision_duration_seconds"].observe(duration)

    def increment_counter(self, metric_name: str, **labels):
        """Increment a counter metric."""
        if metric_name in self._metrics:
            self._metrics[metric_name].labels(**labels).inc()

    def get_sample_value(self, name: str, labels: Optional[Dict[str, str]] = None) -> Optional[float]:
        """Read back a sample from this collector's registry."""
        return self.registry.get_sample_value(name, labels or {})


def get_metrics_collector(service_name: str, registry: Optional[CollectorRegistry] = None) -> MetricsCollector:
    """Get a metrics collector for a service."""
    return MetricsCollector(service_name, registry)
