"""Fake RequestMetrics for testing.

Records all calls in memory so tests can assert on metrics behaviour
without reaching into prometheus-client internals.
"""

from dataclasses import dataclass


@dataclass
class RequestRecord:
    """Single observed request."""

    status_code: str
    duration: float


class FakeRequestMetrics:
    """In-memory spy implementing the RequestMetrics protocol.

    Usage:
        fake = FakeRequestMetrics()
        # … inject into the application server …
        assert fake.status_codes() == ["200"]
    """

    def __init__(self) -> None:
        self.requests: list[RequestRecord] = []

    def observe_request(self, status_code: str, duration: float) -> None:
        self.requests.append(RequestRecord(status_code, duration))

    # -- test helpers --

    def status_codes(self) -> list[str]:
        """Status codes in observation order."""
        return [r.status_code for r in self.requests]

    def clear(self) -> None:
        """Reset all recorded state."""
        self.requests.clear()
