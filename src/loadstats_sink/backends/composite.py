"""Composite backend that fans samples out to several backends."""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List

from ..configuration_error import ConfigurationError
from ..export_error import ExportError
from .base import MetricsBackend

__all__ = ["CompositeBackend"]

logger = logging.getLogger(__name__)


class CompositeBackend(MetricsBackend):
    """Forward every flushed batch to a collection of sub-backends."""

    def __init__(
        self,
        name: str = "composite",
        backends: Iterable[MetricsBackend] | None = None,
    ) -> None:
        """Initialise the composite backend with optional sub-backends."""
        super().__init__(name=name)
        self.backends: List[MetricsBackend] = list(backends or [])
        logger.info(
            "Created composite backend with %s sub-backends: %s",
            len(self.backends),
            [backend.name for backend in self.backends],
        )

    def add_backend(self, backend: MetricsBackend) -> None:
        self.backends.append(backend)
        logger.debug("Added %s '%s' to composite backend", backend.__class__.__name__, backend.name)

    def initialize(self) -> None:
        """Initialise all sub-backends, collecting configuration errors."""
        errors: List[str] = []
        for backend in self.backends:
            try:
                if not backend.initialized:
                    backend.initialize()
            except Exception as exc:
                errors.append(f"{backend.name}: {exc}")
                logger.error("Failed to initialise sub-backend %s: %s", backend.name, exc)

        if errors:
            # Release servers and exporters the healthy children already started.
            for backend in self.backends:
                if backend.initialized:
                    try:
                        backend.close()
                    except Exception as exc:  # shutdown is best effort
                        logger.error("Error closing sub-backend %s: %s", backend.name, exc)
            raise ConfigurationError(f"Failed to initialise some sub-backends: {'; '.join(errors)}")

        self._initialized = True
        logger.debug("Initialized all %s sub-backends", len(self.backends))

    def _export_batch(self, samples: List[Dict[str, Any]]) -> None:
        """Deliver the batch to every sub-backend even if some of them fail."""
        errors: List[str] = []
        for backend in self.backends:
            try:
                backend._export_batch(samples)
            except Exception as exc:
                errors.append(f"{backend.name}: {exc}")
                logger.error("Sub-backend %s failed to export metrics: %s", backend.name, exc)

        if errors:
            raise ExportError(f"Some sub-backends failed: {'; '.join(errors)}")

        logger.debug("Exported %s samples to %s sub-backends", len(samples), len(self.backends))

    def close(self) -> None:
        """Close each sub-backend after the composite's own final flush."""
        super().close()
        for backend in self.backends:
            try:
                backend.close()
            except Exception as exc:  # shutdown is best effort
                logger.error("Error closing sub-backend %s: %s", backend.name, exc)
