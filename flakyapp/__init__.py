"""Demonstration HTTP service with configurable failure rate and graceful shutdown."""

__version__ = "0.1.0"
