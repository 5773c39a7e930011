"""Prometheus metrics for engine requests.

The collector is a process-wide singleton because prometheus_client refuses to
register the same metric name twice in one registry.
"""

import time
from contextlib import contextmanager
from enum import Enum
from threading import Lock
from typing import Any, Dict, Iterator, Optional

from prometheus_client import REGISTRY, Counter, Histogram

from dockapi.logging import get_logger

logger = get_logger(__name__, component="metrics")


class MetricLabels(str, Enum):
    """Standard metric label names."""

    METHOD = "method"
    STATUS_CLASS = "status_class"
    ERROR_TYPE = "error_type"


def status_class(status: Optional[int]) -> str:
    """Collapse a status code into its class label (``2xx``, ``4xx``...)."""
    if status is None:
        return "none"
    return f"{status // 100}xx"


class MetricsCollector:
    """Centralized metrics collector for dockapi.

    Example:
        >>> metrics = MetricsCollector()
        >>> with metrics.track_request("GET"):
        ...     pass
    """

    _instance: Optional["MetricsCollector"] = None
    _lock = Lock()

    def __new__(cls) -> "MetricsCollector":
        """Ensure singleton instance."""
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = super().__new__(cls)
                    cls._instance._initialized = False
        return cls._instance

    def __init__(self) -> None:
        if self._initialized:
            return

        logger.debug("initializing_metrics_collector")

        self.request_total = Counter(
            "dockapi_requests_total",
            "Total number of engine requests",
            [MetricLabels.METHOD.value, MetricLabels.STATUS_CLASS.value],
        )
        self.request_latency = Histogram(
            "dockapi_request_latency_seconds",
            "Engine request latency in seconds",
            [MetricLabels.METHOD.value],
            buckets=(0.005, 0.01, 0.05, 0.1, 0.5, 1.0, 5.0, 30.0, 120.0),
        )
        self.error_total = Counter(
            "dockapi_errors_total",
            "Total number of failed engine requests",
            [MetricLabels.ERROR_TYPE.value],
        )
        self._initialized = True

    def increment_request_count(self, method: str, status: Optional[int]) -> None:
        """Count one completed request."""
        self.request_total.labels(method=method.upper(), status_class=status_class(status)).inc()

    def increment_error_count(self, error_type: str) -> None:
        """Count one failed request by exception class name."""
        self.error_total.labels(error_type=error_type).inc()

    @contextmanager
    def track_request(self, method: str) -> Iterator[None]:
        """Context manager observing request latency.

        Args:
            method: HTTP method of the request.
        """
        start_time = time.monotonic()
        try:
            yield
        finally:
            self.request_latency.labels(method=method.upper()).observe(time.monotonic() - start_time)

    def get_metrics_summary(self) -> Dict[str, Any]:
        """Summarize current counter values, keyed by metric sample name."""
        summary: Dict[str, Any] = {}
        for metric in REGISTRY.collect():
            if not metric.name.startswith("dockapi_"):
                continue
            for sample in metric.samples:
                if sample.name.endswith("_total"):
                    key = sample.name + str(sorted(sample.labels.items()))
                    summary[key] = sample.value
        return summary


_global_metrics: Optional[MetricsCollector] = None


def get_metrics_collector() -> MetricsCollector:
    """Get the global metrics collector instance."""
    global _global_metrics
    if _global_metrics is None:
        _global_metrics = MetricsCollector()
    return _global_metrics
