"""Prometheus implementation of the RequestMetrics protocol.

Metric names and the ``code`` label match what existing dashboards scrape
from this service, so they carry no namespace prefix.
"""

from prometheus_client import CollectorRegistry, Counter, Histogram

from flakyapp.core.protocols.request_metrics import RequestMetrics

# Exponential: start 1ms, factor 10, 5 buckets.
_DURATION_BUCKETS = (0.001, 0.01, 0.1, 1.0, 10.0)


class PrometheusRequestMetrics(RequestMetrics):
    """Prometheus-backed request counter and latency histogram."""

    def __init__(self, registry: CollectorRegistry | None = None) -> None:
        self._registry = registry or CollectorRegistry()

        self._requests_total = Counter(
            "http_requests_total",
            "Total http requests",
            ["code"],
            registry=self._registry,
        )

        self._request_duration = Histogram(
            "http_requests_duration",
            "Duration of http requests",
            ["code"],
            buckets=_DURATION_BUCKETS,
            registry=self._registry,
        )

    @property
    def registry(self) -> CollectorRegistry:
        return self._registry

    # -- RequestMetrics protocol method --

    def observe_request(self, status_code: str, duration: float) -> None:
        self._requests_total.labels(code=status_code).inc()
        self._request_duration.labels(code=status_code).observe(duration)
