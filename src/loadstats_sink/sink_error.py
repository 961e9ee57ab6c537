"""Base exception for the load-test statistics sink."""

from __future__ import annotations

__all__ = ["SinkError"]


class SinkError(Exception):
    """Base exception class for all sink and backend errors."""

    def __init__(self, message: str) -> None:
        """Store the message describing the sink failure."""
        super().__init__(message)
