"""RequestMetrics protocol for application request instrumentation.

Abstracts metric collection so the middleware depends on a protocol rather
than a concrete library.  Production uses Prometheus; tests inject a fake
that records calls in memory.
"""

from typing import Protocol, runtime_checkable


@runtime_checkable
class RequestMetrics(Protocol):
    """Protocol for per-request count and latency collection."""

    def observe_request(self, status_code: str, duration: float) -> None:
        """Record one completed request.

        Args:
            status_code: Response status code as a string, e.g. ``"500"``.
            duration: Request duration in seconds.
        """
        ...
