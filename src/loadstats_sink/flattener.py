"""Flatten load-test statistics snapshots into tagged gauge records.

Every function in this module is pure: the same snapshot and tag context always
produce the same records in the same order, and no input is modified. Values
are converted to ``float`` and otherwise passed through untouched, so ``NaN`` or
negative counts reported by the load engine reach the backend unchanged.
"""

from __future__ import annotations

from dataclasses import replace
from typing import Dict, Iterable, List, Tuple, Union

from .models import (
    EmissionRecord,
    MeasurementStats,
    MetricStat,
    MetricStats,
    ScenarioStats,
    StepStats,
    TagContext,
)

__all__ = [
    "GLOBAL_INFO_STEP_NAME",
    "STATUS_CODE_METRIC",
    "with_global_info_step",
    "flatten_scenario_stats",
    "flatten_metric_stats",
    "flatten",
]

GLOBAL_INFO_STEP_NAME = "global information"
STATUS_CODE_METRIC = "status_code.count"


def with_global_info_step(stats: ScenarioStats) -> ScenarioStats:
    """Return a copy of ``stats`` with a scenario-level rollup step appended."""
    global_step = StepStats(
        step_name=GLOBAL_INFO_STEP_NAME,
        ok=stats.ok,
        fail=stats.fail,
        sort_index=0,
    )
    return replace(stats, step_stats=(*stats.step_stats, global_step))


def _measurement_values(prefix: str, measurement: MeasurementStats) -> List[Tuple[str, float]]:
    latency = measurement.latency
    transfer = measurement.data_transfer
    return [
        (f"{prefix}.request.count", measurement.request.count),
        (f"{prefix}.request.rps", measurement.request.rps),
        (f"{prefix}.latency.min", latency.min_ms),
        (f"{prefix}.latency.mean", latency.mean_ms),
        (f"{prefix}.latency.max", latency.max_ms),
        (f"{prefix}.latency.stddev", latency.std_dev),
        (f"{prefix}.latency.percent50", latency.percent50),
        (f"{prefix}.latency.percent75", latency.percent75),
        (f"{prefix}.latency.percent95", latency.percent95),
        (f"{prefix}.latency.percent99", latency.percent99),
        (f"{prefix}.datatransfer.min", transfer.min_bytes),
        (f"{prefix}.datatransfer.mean", transfer.mean_bytes),
        (f"{prefix}.datatransfer.max", transfer.max_bytes),
        (f"{prefix}.datatransfer.all", transfer.all_bytes),
        (f"{prefix}.datatransfer.percent50", transfer.percent50),
        (f"{prefix}.datatransfer.percent75", transfer.percent75),
        (f"{prefix}.datatransfer.percent95", transfer.percent95),
        (f"{prefix}.datatransfer.percent99", transfer.percent99),
    ]


def _step_values(scenario: ScenarioStats, step: StepStats) -> List[Tuple[str, float]]:
    values: List[Tuple[str, float]] = [
        ("all.request.count", step.ok.request.count + step.fail.request.count),
        ("all.datatransfer.all", step.ok.data_transfer.all_bytes + step.fail.data_transfer.all_bytes),
    ]
    values.extend(_measurement_values("ok", step.ok))
    values.extend(_measurement_values("fail", step.fail))
    values.append(("simulation.value", scenario.load_simulation_stats.value))
    return values


def _as_sequence(
    scenario_stats: Union[ScenarioStats, Iterable[ScenarioStats]],
) -> Tuple[ScenarioStats, ...]:
    if isinstance(scenario_stats, ScenarioStats):
        return (scenario_stats,)
    return tuple(scenario_stats)


def flatten_scenario_stats(
    scenario_stats: Union[ScenarioStats, Iterable[ScenarioStats]],
    context: TagContext,
) -> Tuple[EmissionRecord, ...]:
    """Flatten per-step statistics and status codes of one or more scenarios.

    Step records for every scenario come first (each scenario extended with its
    ``global information`` step), followed by ``status_code.count`` records for
    every scenario, ok codes before fail codes.
    """
    scenarios = _as_sequence(scenario_stats)
    records: List[EmissionRecord] = []

    for scenario in map(with_global_info_step, scenarios):
        for step in scenario.step_stats:
            tags = context.tags(("scenario", scenario.scenario_name), ("step", step.step_name))
            for name, value in _step_values(scenario, step):
                records.append(EmissionRecord(name=name, value=float(value), tags=tags))

    for scenario in scenarios:
        for status_code, count in _status_code_counts(scenario).items():
            tags = context.tags(("scenario", scenario.scenario_name), ("status_code", status_code))
            records.append(EmissionRecord(name=STATUS_CODE_METRIC, value=count, tags=tags))

    return tuple(records)


def _status_code_counts(scenario: ScenarioStats) -> Dict[str, float]:
    # A code reported under both outcomes is one series; its counts are summed.
    counts: Dict[str, float] = {}
    for code_stats in (*scenario.ok.status_codes, *scenario.fail.status_codes):
        key = str(code_stats.status_code)
        counts[key] = counts.get(key, 0.0) + float(code_stats.count)
    return counts


def _metric_record(stat: MetricStat, context: TagContext) -> EmissionRecord:
    return EmissionRecord(
        name=stat.metric_name,
        value=float(stat.value),
        tags=context.tags(("scenario", stat.scenario_name)),
        unit=stat.unit_of_measure or None,
    )


def flatten_metric_stats(metric_stats: MetricStats, context: TagContext) -> Tuple[EmissionRecord, ...]:
    """Emit one record per user-defined counter, then one per gauge."""
    records = [_metric_record(counter, context) for counter in metric_stats.counters]
    records.extend(_metric_record(gauge, context) for gauge in metric_stats.gauges)
    return tuple(records)


def flatten(
    scenario_stats: Union[ScenarioStats, Iterable[ScenarioStats]],
    metric_stats: MetricStats,
    context: TagContext,
) -> Tuple[EmissionRecord, ...]:
    """Flatten a full snapshot: scenario statistics followed by custom metrics."""
    return flatten_scenario_stats(scenario_stats, context) + flatten_metric_stats(metric_stats, context)
