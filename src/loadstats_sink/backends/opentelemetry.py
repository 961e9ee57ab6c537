"""OpenTelemetry backend exporting gauges over OTLP."""

from __future__ import annotations

import logging
import math
from typing import Any, Dict, List, Mapping, Optional, Tuple

from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import (
    OTLPMetricExporter as GrpcOTLPMetricExporter,
)
from opentelemetry.exporter.otlp.proto.http.metric_exporter import (
    OTLPMetricExporter as HttpOTLPMetricExporter,
)
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import MetricExporter, PeriodicExportingMetricReader
from opentelemetry.sdk.resources import Resource

from ..config import DEFAULT_GRPC_ENDPOINT, PROTOCOL_GRPC, PROTOCOL_HTTP_PROTOBUF
from ..configuration_error import ConfigurationError
from ..export_error import ExportError
from .base import MetricsBackend

__all__ = ["METER_NAME", "OpenTelemetryBackend"]

logger = logging.getLogger(__name__)

METER_NAME = "loadstats_sink"


class OpenTelemetryBackend(MetricsBackend):
    """Record gauges on an SDK meter and push them to an OTLP collector.

    The metric reader never exports on a timer. Data leaves the process only
    when :meth:`flush` forces the meter provider to collect, which keeps export
    in step with the host's reporting ticks.
    """

    def __init__(
        self,
        name: str = "opentelemetry",
        service_name: str = "loadstats-sink",
        endpoint: str = DEFAULT_GRPC_ENDPOINT,
        protocol: str = PROTOCOL_GRPC,
        headers: Optional[Mapping[str, str]] = None,
        timeout_seconds: float = 10.0,
        insecure: Optional[bool] = None,
        exporter: Optional[MetricExporter] = None,
    ) -> None:
        """Create the backend; pass ``exporter`` to bypass OTLP construction."""
        super().__init__(name=name)

        if protocol not in {PROTOCOL_GRPC, PROTOCOL_HTTP_PROTOBUF}:
            raise ConfigurationError(f"Unsupported OTLP protocol: {protocol}")
        if timeout_seconds <= 0:
            raise ConfigurationError("timeout_seconds must be positive")

        self.service_name = service_name
        self.endpoint = endpoint
        self.protocol = protocol
        self.headers: Dict[str, str] = dict(headers or {})
        self.timeout_seconds = timeout_seconds
        self.insecure = insecure
        self.exporter: Optional[MetricExporter] = exporter
        self.metric_reader: Optional[PeriodicExportingMetricReader] = None
        self.meter_provider: Optional[MeterProvider] = None
        self.meter: Optional[Any] = None
        self.instruments: Dict[Tuple[str, str], Any] = {}

        logger.info(
            "Created OpenTelemetry backend for service '%s' to endpoint %s (%s)",
            service_name,
            endpoint,
            protocol,
        )

    def initialize(self) -> None:
        """Create the exporter, reader, meter provider and meter."""
        if self._initialized:
            return
        try:
            if self.exporter is None:
                self.exporter = self._create_exporter()
            self.metric_reader = PeriodicExportingMetricReader(
                exporter=self.exporter,
                export_interval_millis=math.inf,
            )
            self.meter_provider = MeterProvider(
                resource=Resource.create({"service.name": self.service_name}),
                metric_readers=[self.metric_reader],
            )
            self.meter = self.meter_provider.get_meter(METER_NAME)
            self._initialized = True
            logger.info("Initialized OpenTelemetry backend for service '%s'", self.service_name)
        except Exception as exc:
            logger.error("Failed to initialise OpenTelemetry backend: %s", exc)
            raise ConfigurationError(f"Failed to initialise OpenTelemetry backend: {exc}") from exc

    def _create_exporter(self) -> MetricExporter:
        if self.protocol == PROTOCOL_HTTP_PROTOBUF:
            return HttpOTLPMetricExporter(
                endpoint=self.endpoint,
                headers=self.headers or None,
                timeout=self.timeout_seconds,
            )
        return GrpcOTLPMetricExporter(
            endpoint=self.endpoint,
            insecure=self.insecure,
            headers=self.headers or None,
            timeout=self.timeout_seconds,
        )

    def _get_or_create_gauge(self, name: str, unit: Optional[str]) -> Any:
        """Return a cached or newly created synchronous gauge."""
        key = (name, unit or "")
        gauge = self.instruments.get(key)
        if gauge is None:
            if self.meter is None:
                raise ExportError("OpenTelemetry meter has not been initialised")
            gauge = self.meter.create_gauge(name=name, unit=unit or "", description=f"{name} gauge")
            self.instruments[key] = gauge
        return gauge

    def _export_batch(self, samples: List[Dict[str, Any]]) -> None:
        """Record the batch on the meter and force an OTLP export."""
        if self.meter_provider is None:
            raise ExportError("OpenTelemetry meter provider has not been initialised")
        try:
            for sample in samples:
                gauge = self._get_or_create_gauge(sample["name"], sample["unit"])
                gauge.set(sample["value"], attributes=sample["tags"])
            flushed = self.meter_provider.force_flush(timeout_millis=self.timeout_seconds * 1000)
        except Exception as exc:
            logger.error("Failed to export metrics to OpenTelemetry: %s", exc)
            raise ExportError(f"Failed to export metrics to OpenTelemetry: {exc}") from exc

        if flushed is False:
            raise ExportError("OpenTelemetry force flush timed out")
        logger.debug("Exported %s samples to OpenTelemetry", len(samples))

    def close(self) -> None:
        """Flush remaining samples and shut down the meter provider."""
        try:
            super().close()
        finally:
            if self.meter_provider is not None:
                try:
                    self.meter_provider.shutdown()
                    logger.info("Shut down OpenTelemetry meter provider")
                except Exception as exc:  # shutdown is best effort
                    logger.error("Error shutting down OpenTelemetry backend: %s", exc)
            self.meter_provider = None
            self.metric_reader = None
            self.meter = None
            self.instruments.clear()
