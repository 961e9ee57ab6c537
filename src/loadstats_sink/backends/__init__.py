"""Metrics backends the sink can record gauges into."""

from .base import MetricsBackend
from .composite import CompositeBackend
from .factory import create_backend
from .json_file import JsonFileBackend
from .logging_backend import LoggingBackend
from .memory import InMemoryBackend
from .opentelemetry import OpenTelemetryBackend
from .prometheus import PrometheusBackend

__all__ = [
    "MetricsBackend",
    "OpenTelemetryBackend",
    "PrometheusBackend",
    "LoggingBackend",
    "JsonFileBackend",
    "InMemoryBackend",
    "CompositeBackend",
    "create_backend",
]
