"""Tests for run metrics and live telemetry."""

import pytest

from taskbulk.core.types import RecoveryStatus
from taskbulk.observability import RecoveryTimer, RequestRateMeter, RunMetrics, RunObservers


class TestRequestRateMeter:
    def test_sliding_window(self, clock):
        meter = RequestRateMeter(clock=clock.now)

        assert [meter.record() for _ in range(3)] == [1, 2, 3]

        clock.advance(0.5)
        assert meter.record() == 4

        clock.advance(0.6)
        # The three requests at t=0 are now older than one second
        assert meter.record() == 2
        assert meter.rate == 2

    def test_window_boundary_is_exclusive(self, clock):
        meter = RequestRateMeter(clock=clock.now)
        meter.record()
        clock.advance(1.0)
        assert meter.rate == 0


class TestRecoveryTimer:
    def test_episode(self, clock):
        timer = RecoveryTimer(clock=clock.now)
        clock.advance(3.0)

        assert timer.hit() == RecoveryStatus(recovering=True, since=3.0)
        assert timer.recovering is True
        assert timer.hit() is None  # Same episode

        clock.advance(2.5)
        assert timer.recovered() == RecoveryStatus(recovering=False, duration=2.5)
        assert timer.last_duration == 2.5
        assert timer.recovered() is None

    def test_success_without_hit(self, clock):
        assert RecoveryTimer(clock=clock.now).recovered() is None


class TestRunObservers:
    def test_missing_observers_are_noops(self):
        observers = RunObservers()
        observers.delay_changed(100)
        observers.idle()

    def test_idle(self, recorder):
        recorder.observers().idle()

        assert recorder.delays == [0]
        assert recorder.thresholds == [None]
        assert recorder.rps == [0]
        assert recorder.recovery == [None]


class TestRunMetrics:
    @pytest.fixture
    def metrics(self):
        metrics = RunMetrics(operation="insert", total_items=4, started_at=10.0)
        for _ in range(6):
            metrics.record_request()
        metrics.record_success()
        metrics.record_success()
        metrics.record_success()
        metrics.record_rate_limit()
        metrics.record_failure("transient")
        metrics.record_sleep("inter_item", 200)
        metrics.record_sleep("inter_item", 200)
        metrics.record_sleep("rate_limit_backoff", 2000)
        metrics.complete(13.0)
        return metrics

    def test_rates(self, metrics):
        assert metrics.processed == 4
        assert metrics.success_rate == 75.0
        assert metrics.duration_seconds == 3.0
        assert metrics.requests_per_second == 2.0
        assert metrics.total_sleep_ms == 2400

    def test_empty_run(self):
        metrics = RunMetrics(operation="move", total_items=0, started_at=0.0)
        assert metrics.success_rate == 0.0
        assert metrics.requests_per_second == 0.0
        assert metrics.duration_seconds == 0.0

    def test_to_dict(self, metrics):
        data = metrics.to_dict()

        assert data["operation"] == "insert"
        assert data["successful"] == 3
        assert data["failed"] == 1
        assert data["sleep_ms"] == {"inter_item": 400, "rate_limit_backoff": 2000}
        assert data["errors_by_class"] == {"transient": 1}

    def test_summary(self, metrics):
        summary = metrics.to_summary()

        assert "Bulk insert complete" in summary
        assert "Success: 3 (75.0%)" in summary
        assert "transient: 1" in summary
        assert "Rate Limit Hits: 1" in summary
        assert "rate_limit_backoff: 2.0s" in summary

    def test_stopped_summary(self):
        metrics = RunMetrics(operation="update", total_items=3, started_at=0.0)
        metrics.complete(1.0, stopped=True)
        assert metrics.to_summary().startswith("Bulk update STOPPED")
