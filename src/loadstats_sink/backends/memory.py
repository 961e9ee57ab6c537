"""In-memory backend for tests and local debugging."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from .base import MetricsBackend

__all__ = ["InMemoryBackend"]

logger = logging.getLogger(__name__)


class InMemoryBackend(MetricsBackend):
    """Backend that keeps every flushed batch in process memory."""

    def __init__(self, name: str = "memory") -> None:
        super().__init__(name=name)
        self.batches: List[List[Dict[str, Any]]] = []

    def initialize(self) -> None:
        self._initialized = True

    def _export_batch(self, samples: List[Dict[str, Any]]) -> None:
        self.batches.append(list(samples))
        logger.debug("Stored %s samples in memory", len(samples))

    @property
    def samples(self) -> List[Dict[str, Any]]:
        """All flushed samples in export order."""
        return [sample for batch in self.batches for sample in batch]

    @property
    def flush_count(self) -> int:
        return len(self.batches)

    def find(self, name: str, **tags: str) -> List[Dict[str, Any]]:
        """Return flushed samples named ``name`` whose tags include ``tags``."""
        return [
            sample
            for sample in self.samples
            if sample["name"] == name
            and all(sample["tags"].get(key) == value for key, value in tags.items())
        ]

    def latest(self, name: str, **tags: str) -> Optional[float]:
        matches = self.find(name, **tags)
        return matches[-1]["value"] if matches else None
