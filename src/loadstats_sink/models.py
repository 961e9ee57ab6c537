"""Statistics snapshot models consumed by the sink.

The load-testing host produces these objects once per reporting tick. They are
frozen so the flattener can never mutate a snapshot it was handed; derived
snapshots (for example the synthetic ``global information`` step) are built
with :func:`dataclasses.replace`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Optional, Tuple

__all__ = [
    "OperationType",
    "RequestStats",
    "LatencyStats",
    "DataTransferStats",
    "StatusCodeStats",
    "MeasurementStats",
    "StepStats",
    "LoadSimulationStats",
    "ScenarioStats",
    "MetricStat",
    "CounterStats",
    "GaugeStats",
    "MetricStats",
    "TestInfo",
    "SessionStartInfo",
    "NodeStats",
    "TagContext",
    "EmissionRecord",
]

Tags = Tuple[Tuple[str, str], ...]


class OperationType(str, Enum):
    """Phase of the test run a snapshot was taken in."""

    RUNNING = "running"
    COMPLETE = "complete"


@dataclass(frozen=True)
class RequestStats:
    count: int = 0
    rps: float = 0.0


@dataclass(frozen=True)
class LatencyStats:
    """Latency distribution in milliseconds."""

    min_ms: float = 0.0
    mean_ms: float = 0.0
    max_ms: float = 0.0
    std_dev: float = 0.0
    percent50: float = 0.0
    percent75: float = 0.0
    percent95: float = 0.0
    percent99: float = 0.0


@dataclass(frozen=True)
class DataTransferStats:
    """Data transfer distribution in bytes."""

    min_bytes: int = 0
    mean_bytes: int = 0
    max_bytes: int = 0
    all_bytes: int = 0
    percent50: int = 0
    percent75: int = 0
    percent95: int = 0
    percent99: int = 0


@dataclass(frozen=True)
class StatusCodeStats:
    status_code: str
    count: int = 0
    is_error: bool = False
    message: str = ""


@dataclass(frozen=True)
class MeasurementStats:
    """Aggregate for a single outcome (ok or fail) of a step or scenario."""

    request: RequestStats = field(default_factory=RequestStats)
    latency: LatencyStats = field(default_factory=LatencyStats)
    data_transfer: DataTransferStats = field(default_factory=DataTransferStats)
    status_codes: Tuple[StatusCodeStats, ...] = ()


@dataclass(frozen=True)
class StepStats:
    step_name: str
    ok: MeasurementStats = field(default_factory=MeasurementStats)
    fail: MeasurementStats = field(default_factory=MeasurementStats)
    sort_index: int = 0


@dataclass(frozen=True)
class LoadSimulationStats:
    simulation_name: str = ""
    value: float = 0.0


@dataclass(frozen=True)
class ScenarioStats:
    """Point-in-time statistics for one scenario and all of its steps."""

    scenario_name: str
    ok: MeasurementStats = field(default_factory=MeasurementStats)
    fail: MeasurementStats = field(default_factory=MeasurementStats)
    step_stats: Tuple[StepStats, ...] = ()
    load_simulation_stats: LoadSimulationStats = field(default_factory=LoadSimulationStats)


@dataclass(frozen=True)
class MetricStat:
    """User-defined metric value owned by a scenario."""

    metric_name: str
    scenario_name: str
    value: float = 0.0
    unit_of_measure: Optional[str] = None


@dataclass(frozen=True)
class CounterStats(MetricStat):
    pass


@dataclass(frozen=True)
class GaugeStats(MetricStat):
    pass


@dataclass(frozen=True)
class MetricStats:
    counters: Tuple[CounterStats, ...] = ()
    gauges: Tuple[GaugeStats, ...] = ()


@dataclass(frozen=True)
class TestInfo:
    test_suite: str
    test_name: str
    session_id: str

    # not a pytest test class
    __test__ = False


@dataclass(frozen=True)
class SessionStartInfo:
    test_info: TestInfo
    scenarios: Tuple[str, ...] = ()


@dataclass(frozen=True)
class NodeStats:
    """Final statistics reported once the run has completed."""

    scenario_stats: Tuple[ScenarioStats, ...] = ()
    metrics: MetricStats = field(default_factory=MetricStats)
    test_info: Optional[TestInfo] = None


@dataclass(frozen=True)
class TagContext:
    """Tags shared by every record emitted in one batch."""

    test_suite: str
    test_name: str
    session_id: str
    operation_type: OperationType

    @classmethod
    def from_test_info(cls, test_info: TestInfo, operation_type: OperationType) -> "TagContext":
        return cls(
            test_suite=test_info.test_suite,
            test_name=test_info.test_name,
            session_id=test_info.session_id,
            operation_type=operation_type,
        )

    def tags(self, *extra: Tuple[str, str]) -> Tags:
        """Return a fresh tag tuple of the shared tags followed by ``extra``.

        Keys in ``extra`` replace shared keys of the same name in place so each
        key appears exactly once.
        """
        merged: Dict[str, str] = {
            "test_suite": self.test_suite,
            "test_name": self.test_name,
            "session_id": self.session_id,
            "operation_type": self.operation_type.value,
        }
        for key, value in extra:
            merged[key] = value
        return tuple(merged.items())


@dataclass(frozen=True)
class EmissionRecord:
    """A single tagged gauge sample produced by the flattener."""

    name: str
    value: float
    tags: Tags = ()
    unit: Optional[str] = None

    @property
    def attributes(self) -> Dict[str, str]:
        return dict(self.tags)

    def tag(self, key: str) -> Optional[str]:
        return self.attributes.get(key)
