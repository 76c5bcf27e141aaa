"""Process-wide readiness flag."""

from flakyapp.core.protocols.health_state import HealthState


class ReadinessFlag(HealthState):
    """Boolean readiness cell.

    A single attribute store and load are atomic in CPython, so neither the
    writer nor the readers take a lock.  Starts unready.
    """

    def __init__(self, ready: bool = False) -> None:
        self._ready = ready

    def set_ready(self, ready: bool) -> None:
        self._ready = bool(ready)

    def is_ready(self) -> bool:
        return self._ready

    @property
    def ready(self) -> bool:
        """Alias for ``is_ready()``."""
        return self._ready

    def __repr__(self) -> str:
        return f"ReadinessFlag(ready={self._ready})"
