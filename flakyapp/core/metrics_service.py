"""Metrics facade.

Pairs a collector with the renderer that reads it back. The Prometheus
variant owns the shared CollectorRegistry. Both hand out the two views
callers need: ``requests`` for the application middleware and ``renderer``
for /metrics.
"""

from __future__ import annotations

from prometheus_client import CollectorRegistry, PlatformCollector, ProcessCollector

from flakyapp.adapters.metrics_renderer import FakeMetricsRenderer, PrometheusMetricsRenderer
from flakyapp.adapters.request_metrics import FakeRequestMetrics, PrometheusRequestMetrics
from flakyapp.core.protocols.metrics_renderer import MetricsRenderer
from flakyapp.core.protocols.request_metrics import RequestMetrics


class MetricsService:
    """Pairs a RequestMetrics collector with the renderer that exposes it."""

    requests: RequestMetrics
    renderer: MetricsRenderer

    def __init__(self, requests: RequestMetrics, renderer: MetricsRenderer) -> None:
        self.requests = requests
        self.renderer = renderer

    @classmethod
    def prometheus(
        cls,
        registry: CollectorRegistry | None = None,
        *,
        runtime_collectors: bool = True,
    ) -> MetricsService:
        """Build the Prometheus-backed service on a dedicated registry.

        Args:
            registry: Registry to use; a fresh one is created when omitted.
            runtime_collectors: Also export process and platform metrics.
        """
        registry = registry or CollectorRegistry()
        if runtime_collectors:
            ProcessCollector(registry=registry)
            PlatformCollector(registry=registry)
        return cls(
            requests=PrometheusRequestMetrics(registry=registry),
            renderer=PrometheusMetricsRenderer(registry),
        )

    @classmethod
    def fake(cls) -> MetricsService:
        """Build an in-memory service whose renderer shows what was recorded."""
        requests = FakeRequestMetrics()
        return cls(requests=requests, renderer=FakeMetricsRenderer(requests))
