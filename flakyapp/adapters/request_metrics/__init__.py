"""Request metrics adapters."""

from flakyapp.adapters.request_metrics.fake import FakeRequestMetrics
from flakyapp.adapters.request_metrics.prometheus import PrometheusRequestMetrics

__all__ = ["PrometheusRequestMetrics", "FakeRequestMetrics"]
