"""
Shared metrics configuration for the RBAC decision core.
"""

from prometheus_client import Counter, Histogram, Gauge, Info, CollectorRegistry
from typing import Dict, Any, Optional
import time
from contextlib import contextmanager


class MetricsCollector:
    """Centralized metrics collector for the decision core."""

    def __init__(self, service_name: str, registry: Optional[CollectorRegistry] = None):
        self.service_name = service_name
        # Private registry per collector so several services can coexist in one process
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

        self._setup_rbac_metrics()

    def _setup_rbac_metrics(self):
        """Set up decision-specific metrics."""
        self._metrics["rbac_checks_total"] = Counter(
            "rbac_checks_total",
            "Total access checks",
            ["check_type", "decision"],
            registry=self.registry
        )

        self._metrics["rbac_check_duration_seconds"] = Histogram(
            "rbac_check_duration_seconds",
            "Access check duration in seconds",
            ["check_type"],
            registry=self.registry
        )

        self._metrics["rbac_cache_hits_total"] = Counter(
            "rbac_cache_hits_total",
            "Total decision cache hits",
            ["check_type"],
            registry=self.registry
        )

        self._metrics["rbac_cache_misses_total"] = Counter(
            "rbac_cache_misses_total",
            "Total decision cache misses",
            ["check_type"],
            registry=self.registry
        )

        self._metrics["rbac_cache_size"] = Gauge(
            "rbac_cache_size",
            "Number of entries in the decision cache",
            registry=self.registry
        )

    def get_metric(self, name: str):
        """Get a metric by name."""
        return self._metrics.get(name)

    def record_error(self, error_type: str, service: Optional[str] = None):
        """Record error metrics."""
        service_name = service or self.service_name
        self._metrics["errors_total"].labels(error_type=error_type, service=service_name).inc()

    @contextmanager
    def time_operation(self, operation_name: str, **labels):
        """Context manager to time an operation."""
        start_time = time.perf_counter()
        try:
            yield
        finally:
            duration = time.perf_counter() - start_time
            if operation_name in self._metrics:
                self._metrics[operation_name].labels(**labels).observe(duration)

    def increment_counter(self, metric_name: str, **labels):
        """Increment a counter metric."""
        if metric_name in self._metrics:
            self._metrics[metric_name].labels(**labels).inc()

    def set_gauge(self, metric_name: str, value: float, **labels):
        """Set a gauge metric value."""
        if metric_name in self._metrics:
            metric = self._metrics[metric_name]
            if labels:
                metric = metric.labels(**labels)
            metric.set(value)

    def get_sample_value(self, name: str, labels: Optional[Dict[str, str]] = None) -> Optional[float]:
        """Read a sample back from the registry."""
        return self.registry.get_sample_value(name, labels or {})


def get_metrics_collector(service_name: str, registry: Optional[CollectorRegistry] = None) -> MetricsCollector:
    """Get a metrics collector for a service."""
    return MetricsCollector(service_name, registry)
