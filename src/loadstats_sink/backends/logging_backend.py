"""Logging backend for local runs and debugging."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from .base import MetricsBackend

__all__ = ["LoggingBackend"]

logger = logging.getLogger(__name__)


class LoggingBackend(MetricsBackend):
    """Export samples by writing one log entry per gauge."""

    def __init__(
        self,
        name: str = "logging",
        logger_name: Optional[str] = None,
        log_level: int = logging.INFO,
    ) -> None:
        """Initialise the logging backend with the desired log level."""
        super().__init__(name=name)
        self.log_level = log_level
        self.metrics_logger = logging.getLogger(logger_name or __name__)
        logger.info("Created logging backend with log_level=%s", log_level)

    def initialize(self) -> None:
        self._initialized = True
        logger.debug("Initialized logging backend")

    def _export_batch(self, samples: List[Dict[str, Any]]) -> None:
        for sample in samples:
            self.metrics_logger.log(self.log_level, self._format_message(sample))
        logger.debug("Logged %s samples at level %s", len(samples), self.log_level)

    def _format_message(self, sample: Dict[str, Any]) -> str:
        """Return a single-line rendering of the sample."""
        tags = sample["tags"]
        tags_str = ", ".join(f"{key}={value}" for key, value in tags.items()) if tags else ""
        unit = f" {sample['unit']}" if sample["unit"] else ""
        base = f"METRIC: {sample['name']}={sample['value']}{unit}"
        return f"{base} [{tags_str}]" if tags_str else base
