"""HealthState protocol for the process-wide readiness flag.

The lifecycle manager is the only writer; the readiness handler only reads.
"""

from typing import Protocol, runtime_checkable


@runtime_checkable
class HealthState(Protocol):
    """Readiness flag shared between the lifecycle manager and the probes."""

    def set_ready(self, ready: bool) -> None:
        """Mark the process ready or unready.  Idempotent."""
        ...

    def is_ready(self) -> bool:
        """Whether the process should currently receive traffic."""
        ...
