"""Tests for fan-out through the composite backend."""

from __future__ import annotations

import pytest

from loadstats_sink.backends import CompositeBackend, InMemoryBackend
from loadstats_sink.backends.base import MetricsBackend
from loadstats_sink.configuration_error import ConfigurationError
from loadstats_sink.export_error import ExportError


class BrokenBackend(MetricsBackend):
    def __init__(self, fail_initialize: bool = False) -> None:
        super().__init__(name="broken")
        self.fail_initialize = fail_initialize

    def initialize(self) -> None:
        if self.fail_initialize:
            raise RuntimeError("no route to collector")
        self._initialized = True

    def _export_batch(self, samples):
        raise RuntimeError("write failed")


def test_batches_reach_every_sub_backend() -> None:
    first, second = InMemoryBackend(name="first"), InMemoryBackend(name="second")
    composite = CompositeBackend(backends=[first, second])
    composite.initialize()

    composite.record_gauge("ok.request.count", 4, {"scenario": "s"})
    composite.flush()

    assert first.samples == second.samples
    assert first.latest("ok.request.count", scenario="s") == 4.0


def test_failing_sub_backend_does_not_starve_the_others() -> None:
    healthy = InMemoryBackend()
    composite = CompositeBackend(backends=[BrokenBackend(), healthy])
    composite.initialize()

    composite.record_gauge("x", 1)
    with pytest.raises(ExportError):
        composite.flush()

    assert healthy.latest("x") == 1.0


def test_initialisation_errors_are_aggregated() -> None:
    composite = CompositeBackend(backends=[BrokenBackend(fail_initialize=True), InMemoryBackend()])

    with pytest.raises(ConfigurationError, match="broken"):
        composite.initialize()


def test_close_delivers_final_batch_before_closing_children() -> None:
    child = InMemoryBackend()
    composite = CompositeBackend()
    composite.add_backend(child)
    composite.record_gauge("x", 2)

    composite.close()

    assert child.latest("x") == 2.0
    assert child.closed is True


def test_failed_initialisation_closes_children_that_started() -> None:
    started = InMemoryBackend(name="started")
    composite = CompositeBackend(backends=[started, BrokenBackend(fail_initialize=True)])

    with pytest.raises(ConfigurationError):
        composite.initialize()

    assert started.closed is True
    assert composite.initialized is False
