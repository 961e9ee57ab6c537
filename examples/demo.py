#!/usr/bin/env python3
"""
Reporting sink demo

Drives a full load-test session through the reporting sink with the logging
backend, so every flattened gauge is printed instead of sent to a collector.

    python examples/demo.py
"""

import logging
import sys

# Add src to Python path
sys.path.insert(0, "src")

from loadstats_sink import ReportingSink  # noqa: E402
from loadstats_sink.models import (  # noqa: E402
    CounterStats,
    DataTransferStats,
    GaugeStats,
    LatencyStats,
    LoadSimulationStats,
    MeasurementStats,
    MetricStats,
    NodeStats,
    RequestStats,
    ScenarioStats,
    SessionStartInfo,
    StatusCodeStats,
    StepStats,
    TestInfo,
)


class DemoContext:
    def __init__(self, test_info):
        self.test_info = test_info
        self.logger = logging.getLogger("demo.host")


def build_measurement(count, rps, mean_ms, all_bytes, status_code):
    return MeasurementStats(
        request=RequestStats(count=count, rps=rps),
        latency=LatencyStats(
            min_ms=mean_ms / 2,
            mean_ms=mean_ms,
            max_ms=mean_ms * 3,
            std_dev=mean_ms / 4,
            percent50=mean_ms,
            percent75=mean_ms * 1.2,
            percent95=mean_ms * 2,
            percent99=mean_ms * 2.5,
        ),
        data_transfer=DataTransferStats(
            min_bytes=64,
            mean_bytes=512,
            max_bytes=2048,
            all_bytes=all_bytes,
            percent50=512,
            percent75=768,
            percent95=1536,
            percent99=2000,
        ),
        status_codes=(StatusCodeStats(status_code=status_code, count=count),),
    )


def build_snapshot(tick):
    """Return one scenario with two steps whose totals grow with ``tick``."""
    login_ok = build_measurement(40 * tick, 40.0, 12.0, 20_000 * tick, "200")
    login_fail = build_measurement(tick, 1.0, 250.0, 300 * tick, "503")
    browse_ok = build_measurement(60 * tick, 60.0, 8.0, 90_000 * tick, "200")
    browse_fail = build_measurement(0, 0.0, 0.0, 0, "500")

    total_ok = build_measurement(100 * tick, 100.0, 10.0, 110_000 * tick, "200")
    total_fail = build_measurement(tick, 1.0, 250.0, 300 * tick, "503")

    return ScenarioStats(
        scenario_name="checkout",
        ok=total_ok,
        fail=total_fail,
        step_stats=(
            StepStats(step_name="login", ok=login_ok, fail=login_fail, sort_index=1),
            StepStats(step_name="browse", ok=browse_ok, fail=browse_fail, sort_index=2),
        ),
        load_simulation_stats=LoadSimulationStats(simulation_name="inject", value=100.0),
    )


def build_metrics(tick):
    return MetricStats(
        counters=(CounterStats("cache-misses", "checkout", value=3 * tick),),
        gauges=(GaugeStats("heap-size", "checkout", value=128.0 + tick, unit_of_measure="MB"),),
    )


def main():
    logging.basicConfig(level=logging.INFO, format="%(name)s %(levelname)s %(message)s")

    test_info = TestInfo(test_suite="demo", test_name="checkout-load", session_id="demo-session")
    sink = ReportingSink(config={"backend": "logging"})

    with sink:
        sink.init(DemoContext(test_info))
        sink.start(SessionStartInfo(test_info=test_info, scenarios=("checkout",)))

        for tick in range(1, 3):
            print(f"\n--- realtime tick {tick} ---")
            sink.save_realtime_stats([build_snapshot(tick)])
            sink.save_realtime_metrics(build_metrics(tick))

        print("\n--- final stats ---")
        sink.save_final_stats(NodeStats(scenario_stats=(build_snapshot(3),), metrics=build_metrics(3)))
        sink.stop()

    print("\nDemo complete")


if __name__ == "__main__":
    main()
