"""Global pytest configuration for the load-test statistics sink.

The module ensures the ``src`` tree is importable regardless of how the
repository is checked out and provides host-context fixtures shared by the
sink tests.
"""

import logging
import sys
from dataclasses import dataclass
from pathlib import Path

import pytest

project_root = Path(__file__).parent.parent
src_dir = project_root / "src"

if str(src_dir) not in sys.path:
    sys.path.insert(0, str(src_dir))

from loadstats_sink.backends import InMemoryBackend  # noqa: E402
from loadstats_sink.models import TestInfo  # noqa: E402
from tests.factories.stats import TEST_INFO  # noqa: E402


@dataclass
class HostContext:
    """Minimal stand-in for the load-testing host's context object."""

    test_info: TestInfo
    logger: logging.Logger


@pytest.fixture
def host_context() -> HostContext:
    return HostContext(test_info=TEST_INFO, logger=logging.getLogger("tests.host"))


@pytest.fixture
def memory_backend() -> InMemoryBackend:
    return InMemoryBackend()
