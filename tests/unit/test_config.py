"""Tests for sink configuration loading and validation."""

from __future__ import annotations

import pytest

from loadstats_sink.config import (
    DEFAULT_GRPC_ENDPOINT,
    DEFAULT_HTTP_ENDPOINT,
    SinkConfig,
    load_config_file,
)
from loadstats_sink.configuration_error import ConfigurationError


def test_defaults_point_at_local_grpc_collector() -> None:
    config = SinkConfig()

    assert config.backend == "opentelemetry"
    assert config.protocol == "grpc"
    assert config.resolved_endpoint == DEFAULT_GRPC_ENDPOINT


def test_http_protocol_uses_http_default_endpoint() -> None:
    config = SinkConfig.from_mapping({"protocol": "http/protobuf"})

    assert config.resolved_endpoint == DEFAULT_HTTP_ENDPOINT


def test_host_style_keys_are_normalised() -> None:
    config = SinkConfig.from_mapping(
        {
            "Endpoint": "http://collector:4317",
            "Protocol": "HttpProtobuf",
            "Headers": "api-key=secret, tenant=perf",
            "TimeoutMilliseconds": 2500,
        }
    )

    assert config.endpoint == "http://collector:4317"
    assert config.protocol == "http/protobuf"
    assert config.headers == {"api-key": "secret", "tenant": "perf"}
    assert config.timeout_seconds == 2.5


@pytest.mark.parametrize(
    "endpoint",
    ["not a url", "localhost:4317", "ftp://collector:4317", "http://collector:99999", 42],
)
def test_malformed_endpoint_is_rejected(endpoint) -> None:
    with pytest.raises(ConfigurationError):
        SinkConfig.from_mapping({"endpoint": endpoint})


def test_unknown_protocol_and_fields_are_rejected() -> None:
    with pytest.raises(ConfigurationError):
        SinkConfig.from_mapping({"protocol": "carrier-pigeon"})
    with pytest.raises(ConfigurationError):
        SinkConfig.from_mapping({"endpont": "http://collector:4317"})


def test_from_env_reads_otlp_variables() -> None:
    config = SinkConfig.from_env(
        {
            "OTEL_EXPORTER_OTLP_ENDPOINT": "http://otel:4317",
            "OTEL_EXPORTER_OTLP_METRICS_ENDPOINT": "http://metrics-otel:4318/v1/metrics",
            "OTEL_EXPORTER_OTLP_PROTOCOL": "http/protobuf",
            "OTEL_EXPORTER_OTLP_TIMEOUT": "5000",
            "OTEL_SERVICE_NAME": "perf-runner",
        }
    )

    assert config.endpoint == "http://metrics-otel:4318/v1/metrics"
    assert config.protocol == "http/protobuf"
    assert config.timeout_seconds == 5.0
    assert config.service_name == "perf-runner"


HTTP_PROTOBUF = {"OTEL_EXPORTER_OTLP_PROTOCOL": "http/protobuf"}


@pytest.mark.parametrize(
    ("environ", "expected"),
    [
        (
            {**HTTP_PROTOBUF, "OTEL_EXPORTER_OTLP_ENDPOINT": "http://collector:4318"},
            "http://collector:4318/v1/metrics",
        ),
        (
            {**HTTP_PROTOBUF, "OTEL_EXPORTER_OTLP_ENDPOINT": "http://collector:4318/otlp/"},
            "http://collector:4318/otlp/v1/metrics",
        ),
        (
            {**HTTP_PROTOBUF, "OTEL_EXPORTER_OTLP_ENDPOINT": "http://collector:4318/v1/metrics"},
            "http://collector:4318/v1/metrics",
        ),
        ({"OTEL_EXPORTER_OTLP_ENDPOINT": "http://collector:4317"}, "http://collector:4317"),
    ],
)
def test_from_env_base_endpoint_gets_metrics_path_for_http(environ, expected) -> None:
    assert SinkConfig.from_env(environ).resolved_endpoint == expected


def test_from_env_without_variables_returns_defaults() -> None:
    assert SinkConfig.from_env({}) == SinkConfig()


def test_from_infra_config_reads_named_section() -> None:
    infra = {"OpenTelemetrySink": {"Endpoint": "http://collector:4317"}, "Other": {}}

    config = SinkConfig.from_infra_config(infra)

    assert config is not None
    assert config.endpoint == "http://collector:4317"
    assert SinkConfig.from_infra_config({"Other": {}}) is None
    assert SinkConfig.from_infra_config(None) is None


def test_from_infra_config_rejects_non_mapping_section() -> None:
    with pytest.raises(ConfigurationError):
        SinkConfig.from_infra_config({"OpenTelemetrySink": "http://collector:4317"})


def test_composite_children_are_validated() -> None:
    config = SinkConfig.from_mapping(
        {"backend": "composite", "backends": [{"Backend": "Memory"}, {"backend": "logging"}]}
    )

    assert [child.backend for child in config.backends] == ["memory", "logging"]


def test_load_config_file_accepts_section_or_root(tmp_path) -> None:
    nested = tmp_path / "infra.yaml"
    nested.write_text(
        "OpenTelemetrySink:\n  Endpoint: http://collector:4317\n  service_name: perf\n",
        encoding="utf-8",
    )
    flat = tmp_path / "sink.yaml"
    flat.write_text("backend: logging\nlog_level: debug\n", encoding="utf-8")

    assert load_config_file(nested).service_name == "perf"
    assert load_config_file(flat).backend == "logging"


def test_load_config_file_reports_missing_and_invalid_files(tmp_path) -> None:
    with pytest.raises(ConfigurationError):
        load_config_file(tmp_path / "missing.yaml")

    broken = tmp_path / "broken.yaml"
    broken.write_text("- just\n- a list\n", encoding="utf-8")
    with pytest.raises(ConfigurationError):
        load_config_file(broken)


def test_host_exporter_options_without_effect_are_ignored() -> None:
    config = SinkConfig.from_infra_config(
        {
            "OpenTelemetrySink": {
                "Endpoint": "http://collector:4317",
                "ExportProcessorType": "Batch",
                "BatchExportProcessorOptions": {"MaxExportBatchSize": 512},
            }
        }
    )

    assert config is not None
    assert config.endpoint == "http://collector:4317"
