"""Exception raised when exporting metrics fails."""

from __future__ import annotations

from .sink_error import SinkError

__all__ = ["ExportError"]


class ExportError(SinkError):
    """Raised when a backend cannot deliver metrics to its destination."""

    def __init__(self, message: str) -> None:
        """Initialise the export error with the failure description."""
        super().__init__(message)
