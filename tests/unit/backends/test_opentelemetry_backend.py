"""Tests for the OTLP-backed OpenTelemetry backend."""

from __future__ import annotations

import pytest
from opentelemetry.sdk.metrics.export import MetricExporter, MetricExportResult

from loadstats_sink.backends import OpenTelemetryBackend
from loadstats_sink.backends.opentelemetry import GrpcOTLPMetricExporter, HttpOTLPMetricExporter
from loadstats_sink.configuration_error import ConfigurationError
from loadstats_sink.export_error import ExportError


class CapturingExporter(MetricExporter):
    """Metric exporter that keeps every exported batch in memory."""

    def __init__(self, fail: bool = False) -> None:
        super().__init__()
        self.batches = []
        self.fail = fail
        self.shut_down = False

    def export(self, metrics_data, timeout_millis: float = 10_000, **kwargs) -> MetricExportResult:
        if self.fail:
            raise RuntimeError("collector unavailable")
        self.batches.append(metrics_data)
        return MetricExportResult.SUCCESS

    def force_flush(self, timeout_millis: float = 10_000) -> bool:
        return True

    def shutdown(self, timeout_millis: float = 30_000, **kwargs) -> None:
        self.shut_down = True


def _points(exporter: CapturingExporter) -> dict:
    points = {}
    for metrics_data in exporter.batches:
        for resource_metrics in metrics_data.resource_metrics:
            for scope_metrics in resource_metrics.scope_metrics:
                for metric in scope_metrics.metrics:
                    for point in metric.data.data_points:
                        key = (metric.name, tuple(sorted(point.attributes.items())))
                        points[key] = (point.value, metric.unit)
    return points


def test_flush_exports_recorded_gauges_with_tags_and_units() -> None:
    exporter = CapturingExporter()
    backend = OpenTelemetryBackend(service_name="perf", exporter=exporter)
    backend.initialize()
    try:
        backend.record_gauge("ok.request.count", 100, {"scenario": "s", "step": "step_1"})
        backend.record_gauge("my-gauge", 6.5, {"scenario": "s"}, unit="KB")
        backend.flush()

        points = _points(exporter)
        assert points[("ok.request.count", (("scenario", "s"), ("step", "step_1")))] == (100.0, "")
        assert points[("my-gauge", (("scenario", "s"),))] == (6.5, "KB")
        resource = exporter.batches[0].resource_metrics[0].resource
        assert resource.attributes["service.name"] == "perf"
    finally:
        backend.close()


def test_nothing_is_exported_until_flush() -> None:
    exporter = CapturingExporter()
    backend = OpenTelemetryBackend(exporter=exporter)
    backend.initialize()
    try:
        backend.record_gauge("simulation.value", 5)
        assert exporter.batches == []
    finally:
        backend.close()


def test_same_series_keeps_last_value_within_a_tick() -> None:
    exporter = CapturingExporter()
    backend = OpenTelemetryBackend(exporter=exporter)
    backend.initialize()
    try:
        backend.record_gauge("queue", 1, {"scenario": "a"})
        backend.record_gauge("queue", 2, {"scenario": "a"})
        backend.record_gauge("queue", 7, {"scenario": "b"})
        backend.flush()

        points = _points(exporter)
        assert points[("queue", (("scenario", "a"),))][0] == 2.0
        assert points[("queue", (("scenario", "b"),))][0] == 7.0
    finally:
        backend.close()


def _raise_flush(timeout_millis: float = 10_000) -> bool:
    raise RuntimeError("collector unavailable")


@pytest.mark.parametrize("force_flush", [_raise_flush, lambda timeout_millis=10_000: False])
def test_failed_force_flush_surfaces_as_export_error(monkeypatch, force_flush) -> None:
    backend = OpenTelemetryBackend(exporter=CapturingExporter())
    backend.initialize()
    try:
        monkeypatch.setattr(backend.meter_provider, "force_flush", force_flush)
        backend.record_gauge("ok.request.count", 1)
        with pytest.raises(ExportError):
            backend.flush()
        assert backend.samples_buffer == []
    finally:
        monkeypatch.undo()
        backend.close()


def test_close_shuts_down_exporter_and_is_idempotent() -> None:
    exporter = CapturingExporter()
    backend = OpenTelemetryBackend(exporter=exporter)
    backend.initialize()
    backend.record_gauge("ok.request.count", 3)

    backend.close()
    backend.close()

    assert exporter.shut_down is True
    assert backend.closed is True
    assert backend.meter_provider is None
    assert _points(exporter)


@pytest.mark.parametrize(
    ("protocol", "exporter_type"),
    [("grpc", GrpcOTLPMetricExporter), ("http/protobuf", HttpOTLPMetricExporter)],
)
def test_protocol_selects_otlp_exporter(protocol, exporter_type) -> None:
    backend = OpenTelemetryBackend(endpoint="http://localhost:4317", protocol=protocol)

    assert isinstance(backend._create_exporter(), exporter_type)


def test_invalid_settings_are_rejected() -> None:
    with pytest.raises(ConfigurationError):
        OpenTelemetryBackend(protocol="udp")
    with pytest.raises(ConfigurationError):
        OpenTelemetryBackend(timeout_seconds=0)
