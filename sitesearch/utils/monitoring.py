"""
Prometheus metrics for crawling and search.
"""

import logging
from typing import Dict, Optional

from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram, start_http_server


class MetricsCollector:
    """Holds the Prometheus metrics in a private registry."""

    def __init__(self, enabled: bool = False, prometheus_port: int = 8000):
        self.logger = logging.getLogger(__name__)
        self.enabled = enabled
        self.prometheus_port = prometheus_port
        self.registry = CollectorRegistry()

        self.pages_fetched = Counter(
            'sitesearch_pages_fetched_total',
            'Total number of pages fetched',
            ['status_class'],
            registry=self.registry
        )
        self.pages_indexed = Counter(
            'sitesearch_pages_indexed_total',
            'Total number of pages written to the index',
            registry=self.registry
        )
        self.fetch_errors = Counter(
            'sitesearch_fetch_errors_total',
            'Total number of failed fetches',
            ['kind'],
            registry=self.registry
        )
        self.fetch_seconds = Histogram(
            'sitesearch_fetch_seconds',
            'Response time for page fetches',
            registry=self.registry
        )
        self.active_workers = Gauge(
            'sitesearch_active_workers',
            'Number of site crawlers currently running',
            registry=self.registry
        )
        self.searches = Counter(
            'sitesearch_searches_total',
            'Total number of search requests',
            registry=self.registry
        )

    def start_server(self):
        """Start the Prometheus HTTP endpoint if metrics are enabled."""
        if not self.enabled:
            return

        start_http_server(self.prometheus_port, registry=self.registry)
        self.logger.info(f"Prometheus metrics server started on port {self.prometheus_port}")

    def record_fetch(self, status_code: int, seconds: float):
        self.pages_fetched.labels(status_class=f"{status_code // 100}xx").inc()
        self.fetch_seconds.observe(seconds)

    def record_fetch_error(self, kind: str):
        self.fetch_errors.labels(kind=kind).inc()

    def sample(self, name: str, labels: Optional[Dict[str, str]] = None) -> float:
        """Current value of a sample in the registry (0.0 when absent)."""
        value = self.registry.get_sample_value(name, labels or {})
        return value or 0.0


# Global metrics instance
_global_metrics: Optional[MetricsCollector] = None


def initialize_monitoring(enabled: bool = False, prometheus_port: int = 8000) -> MetricsCollector:
    """Initialize global metrics."""
    global _global_metrics
    _global_metrics = MetricsCollector(enabled, prometheus_port)
    return _global_metrics


def get_metrics() -> MetricsCollector:
    """Get the global metrics instance, creating a disabled one on first use."""
    global _global_metrics
    if _global_metrics is None:
        _global_metrics = MetricsCollector()
    return _global_metrics
