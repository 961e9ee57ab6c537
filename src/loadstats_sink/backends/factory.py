"""Factory helpers for constructing metrics backends from configuration."""

from __future__ import annotations

import logging
from typing import Any, Mapping, Union

from ..config import SinkConfig
from ..configuration_error import ConfigurationError
from .base import MetricsBackend
from .composite import CompositeBackend
from .json_file import JsonFileBackend
from .logging_backend import LoggingBackend
from .memory import InMemoryBackend
from .opentelemetry import OpenTelemetryBackend
from .prometheus import PrometheusBackend

__all__ = ["create_backend"]


def create_backend(config: Union[SinkConfig, Mapping[str, Any]]) -> MetricsBackend:
    """Instantiate the backend described by ``config``."""
    if not isinstance(config, SinkConfig):
        config = SinkConfig.from_mapping(config)

    backend_type = config.backend
    if not backend_type:
        raise ConfigurationError("Backend type not specified in configuration")

    if backend_type in {"opentelemetry", "otlp"}:
        return OpenTelemetryBackend(
            service_name=config.service_name,
            endpoint=config.resolved_endpoint,
            protocol=config.protocol,
            headers=config.headers,
            timeout_seconds=config.timeout_seconds,
            insecure=config.insecure,
        )
    if backend_type == "prometheus":
        return PrometheusBackend(
            endpoint=config.prometheus_path,
            port=config.prometheus_port,
            host=config.prometheus_host,
        )
    if backend_type == "logging":
        return LoggingBackend(log_level=_coerce_log_level(config.log_level))
    if backend_type == "json_file":
        return JsonFileBackend(file_path=config.file_path)
    if backend_type in {"memory", "inmemory"}:
        return InMemoryBackend()
    if backend_type == "composite":
        if not config.backends:
            raise ConfigurationError("Composite backend requires at least one entry in 'backends'")
        return CompositeBackend(backends=[create_backend(child) for child in config.backends])

    raise ConfigurationError(f"Unknown backend type: {backend_type}")


def _coerce_log_level(value: Any) -> int:
    """Translate configuration values into valid logging levels."""
    if isinstance(value, int):
        return value

    if isinstance(value, str):
        level = logging.getLevelName(value.upper())
        if isinstance(level, int):
            return level

    raise ConfigurationError(f"Invalid logging level: {value}")
