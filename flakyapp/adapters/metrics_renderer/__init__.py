"""Metrics renderer adapters."""

from flakyapp.adapters.metrics_renderer.fake import FakeMetricsRenderer
from flakyapp.adapters.metrics_renderer.prometheus import PrometheusMetricsRenderer

__all__ = ["PrometheusMetricsRenderer", "FakeMetricsRenderer"]
