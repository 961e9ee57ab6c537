"""Backend that keeps a JSON history of flushed reporting ticks on disk."""

from __future__ import annotations

import json
import logging
import math
import os
import time
from pathlib import Path
from typing import Any, Dict, List

from ..configuration_error import ConfigurationError
from ..export_error import ExportError
from .base import MetricsBackend

__all__ = ["JsonFileBackend"]

logger = logging.getLogger(__name__)


class JsonFileBackend(MetricsBackend):
    """Write each flushed batch as one ``{"flushed_at", "samples"}`` entry.

    The file always holds a single JSON list of batches, so it can be loaded
    with one ``json.load`` after or during a run. With ``append=False`` the
    history from earlier runs is discarded on initialisation. Non-finite values
    are written as the strings ``"NaN"``, ``"Infinity"`` and ``"-Infinity"`` so
    the file stays valid JSON.
    """

    def __init__(self, name: str = "json_file", file_path: str = "metrics.json", append: bool = True) -> None:
        super().__init__(name=name)
        self.path = Path(file_path)
        self.append = append
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.touch(exist_ok=True)
        except OSError as exc:
            raise ConfigurationError(f"Cannot access metrics file {self.path}: {exc}") from exc
        logger.info("Created JSON file backend writing to %s (append=%s)", self.path, append)

    @property
    def file_path(self) -> str:
        return str(self.path)

    def initialize(self) -> None:
        if not self.append:
            try:
                self._write_batches([])
            except OSError as exc:
                raise ConfigurationError(f"Cannot reset metrics file {self.path}: {exc}") from exc
        self._initialized = True

    def _export_batch(self, samples: List[Dict[str, Any]]) -> None:
        entry = {"flushed_at": time.time(), "samples": [_encodable(sample) for sample in samples]}
        try:
            self._write_batches(self.read_batches() + [entry])
        except (OSError, TypeError, ValueError) as exc:
            logger.error("Failed to write metrics to %s: %s", self.path, exc)
            raise ExportError(f"Failed to write metrics to {self.path}: {exc}") from exc
        logger.debug("Wrote %s samples to %s", len(samples), self.path)

    def read_batches(self) -> List[Dict[str, Any]]:
        """Return the batches already stored in the file."""
        text = self.path.read_text(encoding="utf-8") if self.path.exists() else ""
        if not text.strip():
            return []
        try:
            stored = json.loads(text)
        except json.JSONDecodeError:
            logger.warning("Metrics file %s is not valid JSON, starting a new history", self.path)
            return []
        return list(stored) if isinstance(stored, list) else []

    def _write_batches(self, batches: List[Dict[str, Any]]) -> None:
        # Replace in one step so a reader never sees a half-written file.
        staging = self.path.with_name(self.path.name + ".tmp")
        staging.write_text(json.dumps(batches, indent=2, allow_nan=False), encoding="utf-8")
        os.replace(staging, self.path)


def _encodable(sample: Dict[str, Any]) -> Dict[str, Any]:
    value = sample["value"]
    if math.isfinite(value):
        return sample
    if math.isnan(value):
        text = "NaN"
    else:
        text = "Infinity" if value > 0 else "-Infinity"
    return {**sample, "value": text}
