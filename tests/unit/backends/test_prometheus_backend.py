"""Tests covering the Prometheus backend scrape endpoint handling."""

from __future__ import annotations

from urllib.error import HTTPError
from urllib.request import urlopen

import pytest

from loadstats_sink.backends import PrometheusBackend
from loadstats_sink.backends.prometheus import sanitize_metric_name


def _read_metrics(url: str) -> str:
    """Fetch and decode the metrics payload from the given URL."""

    with urlopen(url) as response:  # nosec: B310 - local test harness
        return response.read().decode("utf-8")


def test_prometheus_backend_serves_default_endpoint() -> None:
    """Flushed gauges appear under sanitized names on ``/metrics``."""

    backend = PrometheusBackend(name="test-default", port=0, host="127.0.0.1")
    try:
        backend.record_gauge(
            "ok.latency.percent99",
            12.5,
            tags={"scenario": "checkout", "step": "global information"},
        )
        backend.flush()

        payload = _read_metrics(f"http://127.0.0.1:{backend.port}/metrics")
        assert 'ok_latency_percent99{scenario="checkout",step="global information"} 12.5' in payload
    finally:
        backend.close()


def test_prometheus_backend_custom_endpoint() -> None:
    """A custom endpoint returns metrics and the default path 404s."""

    backend = PrometheusBackend(
        name="test-custom",
        port=0,
        host="127.0.0.1",
        endpoint="custom-metrics",
    )
    try:
        backend.record_gauge("simulation.value", 42.0)
        backend.flush()

        payload = _read_metrics(f"http://127.0.0.1:{backend.port}/custom-metrics")
        assert "simulation_value 42.0" in payload

        with pytest.raises(HTTPError):
            _read_metrics(f"http://127.0.0.1:{backend.port}/metrics")
    finally:
        backend.close()


def test_gauge_is_overwritten_by_later_ticks() -> None:
    backend = PrometheusBackend(port=0, host="127.0.0.1")
    try:
        backend.record_gauge("ok.request.count", 1, {"scenario": "s"})
        backend.flush()
        backend.record_gauge("ok.request.count", 9, {"scenario": "s"})
        backend.flush()

        assert backend.registry.get_sample_value("ok_request_count", {"scenario": "s"}) == 9.0
    finally:
        backend.close()


@pytest.mark.parametrize(
    ("name", "expected"),
    [
        ("all.request.count", "all_request_count"),
        ("my-counter-step-1", "my_counter_step_1"),
        ("5xx.rate", "_5xx_rate"),
    ],
)
def test_sanitize_metric_name(name: str, expected: str) -> None:
    assert sanitize_metric_name(name) == expected
