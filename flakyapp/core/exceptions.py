"""Exception hierarchy for flakyapp.

Everything raised here is fatal to the process: the entrypoint logs it and
exits non-zero.  Graceful-shutdown timeouts are not exceptions; the listener
logs them and carries on.
"""


class FlakyAppError(Exception):
    """Base class for all flakyapp errors."""


class ConfigurationError(FlakyAppError):
    """Raised when settings are missing or cannot be parsed."""


class ListenerError(FlakyAppError):
    """Base class for errors tied to a single listener."""

    def __init__(self, listener: str, message: str):
        """Initialize the error.

        Args:
            listener: Name of the listener that failed.
            message: Human readable description.
        """
        self.listener = listener
        super().__init__(f"[{listener}] {message}")


class ListenerBindError(ListenerError):
    """The listening socket could not be bound."""


class ListenerCrashedError(ListenerError):
    """The accept loop ended without a shutdown having been requested."""
