"""Logging setup for flakyapp.

All components log through ``logger`` (or a child built with
``logger.with_context(...)``) so that every line carries the dimensions that
identify where it came from, e.g. ``listener=app``.
"""

import logging
import sys
from typing import Any, MutableMapping

_ROOT_NAME = "flakyapp"
_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s%(context)s"


class ContextualLogger(logging.LoggerAdapter):
    """Logger adapter that attaches a dict of dimensions to every record."""

    def __init__(self, logger: logging.Logger, dimensions: dict[str, Any] | None = None):
        super().__init__(logger, dict(dimensions or {}))
        self.dimensions: dict[str, Any] = dict(dimensions or {})

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> tuple[Any, MutableMapping[str, Any]]:
        extra = dict(kwargs.get("extra") or {})
        extra["dimensions"] = {**self.dimensions, **extra.get("dimensions", {})}
        kwargs["extra"] = extra
        return msg, kwargs

    def with_context(self, **dimensions: Any) -> "ContextualLogger":
        """Return a new logger carrying these dimensions on top of the current ones."""
        return ContextualLogger(self.logger, {**self.dimensions, **dimensions})


class _ContextFormatter(logging.Formatter):
    """Renders record dimensions as trailing ``key=value`` pairs."""

    def format(self, record: logging.LogRecord) -> str:
        dimensions = getattr(record, "dimensions", None) or {}
        record.context = (
            " [" + " ".join(f"{k}={v}" for k, v in dimensions.items()) + "]" if dimensions else ""
        )
        return super().format(record)


class LoggerConfigurator:
    """Builds ``ContextualLogger`` instances and installs the stream handler."""

    _configured = False

    @classmethod
    def configure_logger(
        cls, name: str, dimensions: dict[str, Any] | None = None
    ) -> ContextualLogger:
        """Return a contextual logger for ``name``.

        Args:
            name: Logger name, usually ``__name__``.
            dimensions: Initial context attached to every record.
        """
        return ContextualLogger(logging.getLogger(name), dimensions)

    @classmethod
    def setup(cls, level: str = "INFO") -> None:
        """Attach a stderr handler to the package logger and set its level.

        Safe to call more than once; only the level changes on later calls.
        """
        root = logging.getLogger(_ROOT_NAME)
        root.setLevel(level)
        if cls._configured:
            return
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(_ContextFormatter(_FORMAT))
        root.addHandler(handler)
        cls._configured = True


logger = LoggerConfigurator.configure_logger(_ROOT_NAME)
