"""
Prometheus metrics for AirCare Access Services.

Each service gets its own ``CollectorRegistry`` so several services can be
instantiated in one process (tests, local all-in-one runs) without
duplicate-timeseries errors.
"""

import threading
from typing import Any, Dict, List, Optional, Tuple

from prometheus_client import CollectorRegistry, Counter, Histogram, Info

# name -> (type, help, label names)
MetricSpec = Tuple[type, str, List[str]]

COMMON_METRICS: Dict[str, MetricSpec] = {
    "http_requests_total": (Counter, "Total HTTP requests", ["method", "endpoint", "status_code"]),
    "http_request_duration_seconds": (Histogram, "HTTP request duration in seconds", ["method", "endpoint"]),
    "health_check_total": (Counter, "Total health check requests", ["status"]),
    "errors_total": (Counter, "Total errors", ["error_type", "service"]),
}

SERVICE_METRICS: Dict[str, Dict[str, MetricSpec]] = {
    "environment": {
        "cache_lookups_total": (Counter, "Environment cache lookups by result", ["result"]),
        "aggregation_duration_seconds": (Histogram, "Live aggregation duration in seconds", []),
        "upstream_degraded_total": (
            Counter, "Best-effort upstream fetches that degraded to unavailable", ["source"]
        ),
    },
    "symptoms": {
        "symptoms_queued_total": (Counter, "Symptom entries accepted for processing", []),
    },
    "symptom_worker": {
        "messages_processed_total": (Counter, "Queued messages processed by outcome", ["outcome"]),
    },
}


class MetricsCollector:
    """Per-service metric set behind name-based helpers."""

    def __init__(self, service_name: str, registry: Optional[CollectorRegistry] = None):
        self.service_name = service_name
        self.registry = registry if registry is not None else CollectorRegistry()
        self._lock = threading.Lock()
        self._metrics: Dict[str, Any] = {}

        info = Info("service_info", "Service information", registry=self.registry)
        info.info({"service": service_name, "version": "1.0.0"})
        self._metrics["service_info"] = info

        specs = dict(COMMON_METRICS)
        specs.update(SERVICE_METRICS.get(service_name, {}))
        for name, (metric_type, documentation, labels) in specs.items():
            self._metrics[name] = metric_type(name, documentation, labels, registry=self.registry)

    def get_metric(self, name: str):
        return self._metrics.get(name)

    def record_http_request(self, method: str, endpoint: str, status_code: int, duration: float):
        self._metrics["http_requests_total"].labels(
            method=method,
            endpoint=endpoint,
            status_code=str(status_code)
        ).inc()
        self._metrics["http_request_duration_seconds"].labels(method=method, endpoint=endpoint).observe(duration)

    def record_health_check(self, status: str):
        self._metrics["health_check_total"].labels(status=status).inc()

    def record_error(self, error_type: str, service: Optional[str] = None):
        self._metrics["errors_total"].labels(error_type=error_type, service=service or self.service_name).inc()

    def increment_counter(self, metric_name: str, **labels):
        """Increment a counter; unknown names are ignored."""
        metric = self._metrics.get(metric_name)
        if metric is not None:
            with self._lock:
                (metric.labels(**labels) if labels else metric).inc()

    def observe_histogram(self, metric_name: str, value: float, **labels):
        """Observe a histogram; unknown names are ignored."""
        metric = self._metrics.get(metric_name)
        if metric is not None:
            with self._lock:
                (metric.labels(**labels) if labels else metric).observe(value)


def get_metrics_collector(service_name: str, registry: Optional[CollectorRegistry] = None) -> MetricsCollector:
    """Create the metrics collector for a service."""
    return MetricsCollector(service_name, registry)
