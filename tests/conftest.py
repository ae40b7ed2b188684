"""Pytest configuration and shared fixtures."""

import pytest

from taskbulk.config import get_settings
from taskbulk.rate_limit import BulkRunner
from taskbulk.simulation import VirtualClock

from .helpers import Recorder


@pytest.fixture
def clock() -> VirtualClock:
    """Virtual clock starting at t=0."""
    return VirtualClock()


@pytest.fixture
def recorder() -> Recorder:
    return Recorder()


@pytest.fixture
def runner(clock: VirtualClock, recorder: Recorder) -> BulkRunner:
    """Canonical runner on the virtual clock, recording all telemetry."""
    return BulkRunner(observers=recorder.observers(), clock=clock.now, sleep=clock.sleep)


@pytest.fixture(autouse=True)
def _clear_settings_cache():
    """Settings are cached per process; isolate tests that change env vars."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
