"""Core protocols for dependency injection.

Handlers and the lifecycle manager depend on these protocols rather than on
concrete adapters so tests can inject in-memory fakes.
"""

from flakyapp.core.protocols.health_state import HealthState
from flakyapp.core.protocols.metrics_renderer import MetricsRenderer
from flakyapp.core.protocols.request_metrics import RequestMetrics

__all__ = [
    "HealthState",
    "MetricsRenderer",
    "RequestMetrics",
]
