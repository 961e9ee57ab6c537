"""Base abstractions shared by all metrics backends."""

from __future__ import annotations

import abc
import logging
import time
from typing import Any, Dict, List, Mapping, Optional, Union

from ..export_error import ExportError

__all__ = ["MetricsBackend"]

logger = logging.getLogger(__name__)


class MetricsBackend(abc.ABC):
    """Abstract base class for the narrow record-and-flush backend capability.

    ``record_gauge`` only buffers a sample. ``flush`` hands the buffered batch
    to :meth:`_export_batch` and returns once the backend has accepted it, so
    a sink calls ``flush`` once per reporting tick rather than once per sample.
    """

    def __init__(self, name: str) -> None:
        """Initialise the backend with an empty sample buffer."""
        self.name = name
        self.samples_buffer: List[Dict[str, Any]] = []
        self.last_flush_time: Optional[float] = None
        self._initialized = False
        self._closed = False

        logger.debug("Initialised %s '%s'", self.__class__.__name__, name)

    @property
    def initialized(self) -> bool:
        return self._initialized

    @property
    def closed(self) -> bool:
        return self._closed

    @abc.abstractmethod
    def initialize(self) -> None:
        """Initialise backend resources such as exporters or servers."""

    @abc.abstractmethod
    def _export_batch(self, samples: List[Dict[str, Any]]) -> None:
        """Deliver a batch of samples to the backing monitoring system."""

    def record_gauge(
        self,
        name: str,
        value: Union[int, float],
        tags: Optional[Mapping[str, str]] = None,
        unit: Optional[str] = None,
    ) -> None:
        """Queue one gauge sample for the next flush."""
        self._ensure_initialised()
        sample = self._build_sample(name, value, tags, unit)
        self.samples_buffer.append(sample)

    def flush(self) -> None:
        """Export buffered samples.

        A batch that fails to export is dropped rather than re-queued, so a
        failing tick never leaks stale values into the next one.

        Raises:
            ExportError: If the backend rejects the batch.
        """
        if not self.samples_buffer:
            logger.debug("No samples to flush for %s", self.name)
            return

        samples_to_export = self.samples_buffer.copy()
        self.samples_buffer.clear()

        try:
            logger.debug("Flushing %s samples", len(samples_to_export))
            self._export_batch(samples_to_export)
            self.last_flush_time = time.time()
            logger.debug("Successfully flushed %s samples", len(samples_to_export))
        except ExportError:
            raise
        except Exception as exc:
            logger.error("Failed to flush samples from %s: %s", self.name, exc)
            raise ExportError(f"Failed to export metrics: {exc}") from exc

    def close(self) -> None:
        """Flush any remaining samples and mark the backend as closed."""
        if self._closed:
            return
        try:
            if self.samples_buffer:
                logger.info("Flushing %s samples before closing", len(self.samples_buffer))
                self.flush()
        except Exception as exc:  # shutdown is best effort
            logger.error("Error during final flush: %s", exc)
        finally:
            self._closed = True

        logger.info("Closed %s '%s'", self.__class__.__name__, self.name)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _ensure_initialised(self) -> None:
        """Initialise the backend lazily on first sample submission."""
        if not self._initialized:
            self.initialize()
            self._initialized = True

    def _build_sample(
        self,
        name: str,
        value: Union[int, float],
        tags: Optional[Mapping[str, str]],
        unit: Optional[str],
    ) -> Dict[str, Any]:
        """Validate inputs and construct the buffered sample payload."""
        if not name or not isinstance(name, str):
            raise ValueError("Metric name must be a non-empty string")
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ValueError(f"Metric value must be numeric, got {type(value)}")
        if tags is not None and not isinstance(tags, Mapping):
            raise ValueError(f"Tags must be a mapping, got {type(tags)}")

        return {
            "name": name,
            "value": float(value),
            "tags": dict(tags or {}),
            "unit": unit or None,
            "timestamp": time.time(),
        }

