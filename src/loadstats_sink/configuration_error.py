"""Exceptions raised when sink or backend configuration is invalid."""

from __future__ import annotations

from .sink_error import SinkError

__all__ = ["ConfigurationError", "SinkInitializationError"]


class ConfigurationError(SinkError):
    """Raised when the sink or a metrics backend receives invalid configuration."""

    def __init__(self, message: str) -> None:
        """Initialise the configuration error with a descriptive message."""
        super().__init__(message)


class SinkInitializationError(ConfigurationError):
    """Raised by ``init`` when the sink cannot be brought up.

    The host is expected to abort the run when it sees this error.
    """
