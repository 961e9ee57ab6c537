"""Exception raised when a lifecycle method is called out of order."""

from __future__ import annotations

from .sink_error import SinkError

__all__ = ["SinkStateError"]


class SinkStateError(SinkError):
    """Raised when the sink is used before ``init`` or after ``dispose``."""
