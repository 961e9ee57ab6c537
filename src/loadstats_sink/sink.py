"""Reporting sink driven by the load-testing host.

The host calls the lifecycle methods in a fixed order::

    init -> start -> (save_realtime_metrics | save_realtime_stats)* ->
    save_final_stats -> stop -> dispose

Each ``save_*`` call flattens one snapshot, records every resulting gauge on
the backend and flushes the backend once. A failing record or flush is logged
and skipped so a backend outage never aborts the load test; only a bad
configuration in :meth:`ReportingSink.init` is fatal.
"""

from __future__ import annotations

import logging
from typing import Any, Iterable, Mapping, Optional, Protocol, Sequence, Union

from .backends import MetricsBackend, create_backend
from .config import CONFIG_SECTION, SinkConfig
from .configuration_error import SinkInitializationError
from .flattener import flatten, flatten_metric_stats, flatten_scenario_stats
from .models import (
    EmissionRecord,
    MetricStats,
    NodeStats,
    OperationType,
    ScenarioStats,
    SessionStartInfo,
    TagContext,
    TestInfo,
)
from .state_error import SinkStateError

__all__ = ["BaseContext", "ReportingSink", "OpenTelemetrySink"]

logger = logging.getLogger(__name__)


class BaseContext(Protocol):
    """Host context handed to :meth:`ReportingSink.init`.

    Hosts may also expose a ``logger`` attribute; when present the sink logs
    through it instead of its module logger.
    """

    test_info: TestInfo


class ReportingSink:
    """Forward load-test statistics to a pluggable metrics backend."""

    sink_name = "ReportingSink"
    config_section = CONFIG_SECTION

    def __init__(
        self,
        backend: Optional[MetricsBackend] = None,
        config: Union[SinkConfig, Mapping[str, Any], None] = None,
    ) -> None:
        self._backend_override = backend
        self._initial_config = config
        self.config: Optional[SinkConfig] = None
        self.backend: Optional[MetricsBackend] = None
        self._context: Optional[BaseContext] = None
        self._logger: Any = logger
        self._disposed = False

    # ------------------------------------------------------------------
    # Host lifecycle
    # ------------------------------------------------------------------

    def init(self, context: BaseContext, infra_config: Optional[Mapping[str, Any]] = None) -> None:
        """Resolve configuration and bring the backend up.

        The ``OpenTelemetrySink`` section of ``infra_config`` replaces the
        configuration given to the constructor. Without either, settings are
        read from the ``OTEL_EXPORTER_OTLP_*`` environment variables.

        Raises:
            SinkInitializationError: If configuration is invalid or the backend
                cannot be initialised.
            SinkStateError: If the sink was already initialised or disposed.
        """
        if self._disposed:
            raise SinkStateError(f"{self.sink_name} has been disposed")
        if self.backend is not None:
            raise SinkStateError(f"{self.sink_name} is already initialised")

        self._logger = getattr(context, "logger", None) or logger
        backend: Optional[MetricsBackend] = None
        try:
            config = self._resolve_config(infra_config)
            backend = self._backend_override or self._build_backend(config)
            backend.initialize()
        except Exception as exc:
            self._logger.error("%s failed to initialise: %s", self.sink_name, exc)
            if backend is not None:
                self._close_quietly(backend)
            raise SinkInitializationError(f"{self.sink_name} failed to initialise: {exc}") from exc

        self._context = context
        self.config = config
        self.backend = backend
        self._logger.info("%s initialised with backend '%s'", self.sink_name, backend.name)

    def start(self, session_info: SessionStartInfo) -> None:
        self._require_backend()
        self._logger.debug(
            "%s started for session %s", self.sink_name, session_info.test_info.session_id
        )

    def save_realtime_metrics(self, metrics: MetricStats) -> None:
        """Record user-defined counters and gauges from a running tick."""
        context = self._tag_context(OperationType.RUNNING)
        self._emit(flatten_metric_stats(metrics, context))

    def save_realtime_stats(self, stats: Sequence[ScenarioStats]) -> None:
        """Record per-step scenario statistics from a running tick."""
        context = self._tag_context(OperationType.RUNNING)
        self._emit(flatten_scenario_stats(stats, context))

    def save_final_stats(self, stats: NodeStats) -> None:
        """Record final scenario statistics and custom metrics."""
        context = self._tag_context(OperationType.COMPLETE, stats.test_info)
        self._emit(flatten(stats.scenario_stats, stats.metrics, context))

    def stop(self) -> None:
        self._logger.debug("%s stopped", self.sink_name)

    def dispose(self) -> None:
        """Flush and release the backend. Safe to call more than once."""
        if self._disposed:
            return
        self._disposed = True

        backend, self.backend = self.backend, None
        self._context = None
        if backend is None:
            return

        try:
            backend.flush()
        except Exception:
            self._logger.exception("%s failed to flush on dispose", self.sink_name)
        self._close_quietly(backend)
        self._logger.info("%s disposed", self.sink_name)

    def _close_quietly(self, backend: MetricsBackend) -> None:
        try:
            backend.close()
        except Exception:
            self._logger.exception("%s failed to close backend '%s'", self.sink_name, backend.name)

    def __enter__(self) -> "ReportingSink":
        return self

    def __exit__(self, exc_type: Any, exc: Any, traceback: Any) -> None:
        self.dispose()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _resolve_config(self, infra_config: Optional[Mapping[str, Any]]) -> SinkConfig:
        section = SinkConfig.from_infra_config(infra_config, section=self.config_section)
        if section is not None:
            return section
        if isinstance(self._initial_config, SinkConfig):
            return self._initial_config
        if self._initial_config is not None:
            return SinkConfig.from_mapping(self._initial_config)
        return SinkConfig.from_env()

    def _build_backend(self, config: SinkConfig) -> MetricsBackend:
        return create_backend(config)

    def _require_backend(self) -> MetricsBackend:
        if self._disposed:
            raise SinkStateError(f"{self.sink_name} has been disposed")
        if self.backend is None:
            raise SinkStateError(f"{self.sink_name} has not been initialised")
        return self.backend

    def _tag_context(
        self,
        operation_type: OperationType,
        test_info: Optional[TestInfo] = None,
    ) -> TagContext:
        self._require_backend()
        if self._context is None:
            raise SinkStateError(f"{self.sink_name} has no host context")
        return TagContext.from_test_info(test_info or self._context.test_info, operation_type)

    def _emit(self, records: Iterable[EmissionRecord]) -> int:
        """Record every gauge, then flush once. Returns the number recorded."""
        backend = self._require_backend()
        recorded = 0
        for record in records:
            try:
                backend.record_gauge(record.name, record.value, record.attributes, record.unit)
                recorded += 1
            except Exception:
                self._logger.exception("Failed to record metric %s", record.name)

        try:
            backend.flush()
        except Exception as exc:
            self._logger.error("%s failed to flush %s metrics: %s", self.sink_name, recorded, exc)
        else:
            self._logger.debug("%s flushed %s metrics", self.sink_name, recorded)
        return recorded


class OpenTelemetrySink(ReportingSink):
    """Reporting sink that always exports over OTLP."""

    sink_name = "OpenTelemetrySink"

    def __init__(self, config: Union[SinkConfig, Mapping[str, Any], None] = None) -> None:
        super().__init__(backend=None, config=config)

    def _build_backend(self, config: SinkConfig) -> MetricsBackend:
        return create_backend(config.model_copy(update={"backend": "opentelemetry"}))
