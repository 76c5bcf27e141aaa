"""Fake MetricsRenderer for testing.

Renders the observations held by a FakeRequestMetrics as plain
``http_requests_total`` lines, so metrics-server tests can check what a
scrape would show without depending on prometheus-client.
"""

from __future__ import annotations

from collections import Counter

from flakyapp.adapters.request_metrics.fake import FakeRequestMetrics
from flakyapp.core.protocols.metrics_renderer import MetricsRenderer

HEADER = b"# flakyapp fake metrics\n"


class FakeMetricsRenderer(MetricsRenderer):
    """In-memory spy implementing the MetricsRenderer protocol.

    Usage:
        requests = FakeRequestMetrics()
        renderer = FakeMetricsRenderer(requests)
        requests.observe_request("500", 0.005)
        assert b'http_requests_total{code="500"} 1' in renderer.generate()
    """

    def __init__(self, requests: FakeRequestMetrics | None = None) -> None:
        self.requests = requests
        self.generate_calls: int = 0

    @property
    def content_type(self) -> str:
        return "text/plain"

    def generate(self) -> bytes:
        self.generate_calls += 1
        if self.requests is None:
            return HEADER
        counts = Counter(self.requests.status_codes())
        lines = [f'http_requests_total{{code="{code}"}} {n}\n' for code, n in sorted(counts.items())]
        return HEADER + "".join(lines).encode()
