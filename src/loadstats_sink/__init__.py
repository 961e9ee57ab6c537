"""Reporting sink that forwards load-test statistics to metrics backends."""

from .config import SinkConfig, load_config_file
from .configuration_error import ConfigurationError, SinkInitializationError
from .export_error import ExportError
from .flattener import flatten, flatten_metric_stats, flatten_scenario_stats
from .models import (
    CounterStats,
    DataTransferStats,
    EmissionRecord,
    GaugeStats,
    LatencyStats,
    LoadSimulationStats,
    MeasurementStats,
    MetricStats,
    NodeStats,
    OperationType,
    RequestStats,
    ScenarioStats,
    SessionStartInfo,
    StatusCodeStats,
    StepStats,
    TagContext,
    TestInfo,
)
from .sink import BaseContext, OpenTelemetrySink, ReportingSink
from .sink_error import SinkError
from .state_error import SinkStateError

__version__ = "0.1.0"

__all__ = [
    "SinkConfig",
    "load_config_file",
    "SinkError",
    "ConfigurationError",
    "SinkInitializationError",
    "ExportError",
    "SinkStateError",
    "flatten",
    "flatten_scenario_stats",
    "flatten_metric_stats",
    "OperationType",
    "RequestStats",
    "LatencyStats",
    "DataTransferStats",
    "StatusCodeStats",
    "MeasurementStats",
    "StepStats",
    "LoadSimulationStats",
    "ScenarioStats",
    "CounterStats",
    "GaugeStats",
    "MetricStats",
    "TestInfo",
    "SessionStartInfo",
    "NodeStats",
    "TagContext",
    "EmissionRecord",
    "BaseContext",
    "ReportingSink",
    "OpenTelemetrySink",
]
