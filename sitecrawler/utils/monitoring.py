"""
Monitoring and metrics collection for the site crawler.
"""

import logging
from typing import Dict, Optional

from prometheus_client import CollectorRegistry, Counter, Gauge, start_http_server

from .config import MonitoringConfig


class MetricsCollector:
    """Owns the Prometheus metrics of one crawl."""

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        self.logger = logging.getLogger(__name__)
        # A private registry keeps repeated crawls in one process from clashing
        self.registry = registry or CollectorRegistry()

        self.pages_processed = Counter(
            'crawler_pages_processed_total',
            'Total number of pages processed',
            registry=self.registry
        )
        self.pages_failed = Counter(
            'crawler_pages_failed_total',
            'Pages recorded without metadata after exhausting retries',
            registry=self.registry
        )
        self.fetch_attempts = Counter(
            'crawler_fetch_attempts_total',
            'Fetch attempts by outcome',
            ['outcome'],
            registry=self.registry
        )
        self.urls_discovered = Counter(
            'crawler_urls_discovered_total',
            'New URLs accepted into the frontier',
            registry=self.registry
        )
        self.queue_size = Gauge(
            'crawler_queue_size',
            'Number of URLs waiting in the frontier',
            registry=self.registry
        )
        self.active_workers = Gauge(
            'crawler_active_workers',
            'Number of workers currently processing a page',
            registry=self.registry
        )

    def start_server(self, port: int):
        """Expose the registry over HTTP."""
        start_http_server(port, registry=self.registry)
        self.logger.info(f"Prometheus metrics server started on port {port}")

    def get_current_values(self) -> Dict[str, float]:
        """Get current sample values keyed by sample name."""
        values = {}
        for metric in self.registry.collect():
            for sample in metric.samples:
                if sample.name.endswith('_created'):
                    continue
                key = sample.name
                if sample.labels:
                    labels = ','.join(f"{k}={v}" for k, v in sorted(sample.labels.items()))
                    key = f"{key}{{{labels}}}"
                values[key] = sample.value
        return values


class CrawlerMonitor:
    """High-level monitoring interface for the crawler."""

    def __init__(self, metrics_collector: Optional[MetricsCollector] = None):
        self.metrics = metrics_collector or MetricsCollector()
        self.logger = logging.getLogger(__name__)

    @classmethod
    def from_config(cls, config: MonitoringConfig) -> 'CrawlerMonitor':
        monitor = cls()
        if config.metrics_enabled:
            try:
                monitor.metrics.start_server(config.prometheus_port)
            except OSError as e:
                monitor.logger.error(f"Failed to start Prometheus server: {e}")
        return monitor

    def record_fetch_attempt(self, succeeded: bool):
        outcome = 'success' if succeeded else 'failure'
        self.metrics.fetch_attempts.labels(outcome=outcome).inc()

    def record_page_processed(self, failed: bool):
        self.metrics.pages_processed.inc()
        if failed:
            self.metrics.pages_failed.inc()

    def record_urls_discovered(self, count: int):
        if count:
            self.metrics.urls_discovered.inc(count)

    def set_queue_size(self, size: int):
        self.metrics.queue_size.set(size)

    def worker_busy(self):
        self.metrics.active_workers.inc()

    def worker_idle(self):
        self.metrics.active_workers.dec()

    def get_summary(self) -> Dict[str, float]:
        """Get a snapshot of every metric value."""
        return self.metrics.get_current_values()
