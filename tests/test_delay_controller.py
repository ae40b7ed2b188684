"""Tests for taskbulk/rate_limit/delay.py."""

import random

import pytest

from taskbulk.config import EngineProfile
from taskbulk.core.types import ThresholdsSnapshot, Zone
from taskbulk.rate_limit.delay import DelayController, classify_zone, round_half_up


def controller_with(recorder=None, **overrides) -> DelayController:
    profile = EngineProfile.canonical().with_overrides(**overrides)
    return DelayController(profile, recorder.observers() if recorder else None)


class TestRoundHalfUp:
    @pytest.mark.parametrize(
        "value, expected",
        [(1600.5, 1601), (2.5, 3), (3.5, 4), (1601.0, 1601), (1600.4, 1600), (0.5, 1)],
    )
    def test_half_rounds_up(self, value, expected):
        """Halves always round up, unlike Python's banker's rounding."""
        assert round_half_up(value) == expected


class TestInitialState:
    def test_canonical_state(self):
        controller = DelayController()
        state = controller.state

        assert state.current == 1000
        assert state.floor == 200
        assert state.peak == 3000
        assert state.average == 1600
        assert state.sustainable == 200
        assert controller.zone is Zone.YELLOW

    def test_explicit_sustainable(self):
        controller = controller_with(sustainable_ms=1200)
        assert controller.state.sustainable == 1200
        assert controller.zone is Zone.GREEN

    def test_announce_publishes_without_change(self, recorder):
        controller = controller_with(recorder)
        controller.announce()

        assert recorder.delays == [1000]
        assert recorder.thresholds == [
            ThresholdsSnapshot(peak=3000, average=1600, sustainable=200, floor=200)
        ]


class TestZones:
    @pytest.mark.parametrize(
        "current, expected",
        [(1600, Zone.RED), (2500, Zone.RED), (1599, Zone.YELLOW), (500, Zone.YELLOW), (499, Zone.GREEN)],
    )
    def test_boundaries(self, current, expected):
        """average is red, sustainable is yellow."""
        assert classify_zone(current, average=1600, sustainable=500) is expected


class TestOnSuccess:
    """Tests for speed-up after a successful attempt."""

    def test_yellow_step_clamped_to_floor(self):
        """1000 is yellow: 1000 - 1000 = 0, clamped to the floor."""
        controller = DelayController()
        assert controller.on_success() == 200
        assert controller.state.average == 1600

    def test_red_zone_multiplies(self):
        controller = controller_with(initial_delay_ms=2000)

        assert controller.on_success() == 1600  # red: 2000 * 0.8
        assert controller.on_success() == 1280  # 1600 is still red (>= average)
        assert controller.on_success() == 280  # yellow
        assert controller.on_success() == 200  # yellow, clamped

    def test_red_zone_rounds_half_up(self):
        """1998 * 0.8 = 1598.4 and 2001 * 0.8 = 1600.8."""
        assert controller_with(initial_delay_ms=1998).on_success() == 1598
        assert controller_with(initial_delay_ms=2001).on_success() == 1601

    def test_green_zone_creeps(self):
        controller = controller_with(initial_delay_ms=300, sustainable_ms=500)

        assert controller.zone is Zone.GREEN
        assert controller.on_success() == 299
        assert controller.on_success() == 298

    def test_at_floor_unchanged(self):
        controller = controller_with(initial_delay_ms=200)
        assert controller.on_success() == 200
        assert controller.state.floor == 200

    def test_above_peak_raises_peak(self):
        """A delay above peak becomes the new peak before the zone step."""
        controller = controller_with(initial_delay_ms=4000)

        assert controller.on_success() == 3200
        assert controller.state.peak == 4000
        assert controller.state.average == 2100

    def test_notifies_every_call(self, recorder):
        controller = controller_with(recorder, initial_delay_ms=200)
        controller.on_success()
        controller.on_success()

        assert recorder.delays == [200, 200]
        assert len(recorder.thresholds) == 2


class TestOnRateLimit:
    """Tests for back-off after a rate-limited attempt."""

    def test_single_hit(self):
        controller = DelayController()

        assert controller.on_rate_limit() == 1500
        state = controller.state
        assert state.floor == 201
        assert state.average == 1601  # (3000 + 201) / 2 = 1600.5
        assert state.sustainable == 210

    def test_three_hits(self):
        controller = DelayController()
        delays = [controller.on_rate_limit() for _ in range(3)]

        assert delays == [1500, 2250, 3375]
        state = controller.state
        assert state.floor == 203
        assert state.average == 1602
        assert state.sustainable == 230
        # Peak is a high-water mark only raised by successes
        assert state.peak == 3000

    def test_delay_rounds_up(self):
        """333 * 1.5 = 499.5 rounds up to 500."""
        assert controller_with(initial_delay_ms=333).on_rate_limit() == 500

    def test_floor_capped_by_average(self):
        controller = controller_with(floor_ms=1000, peak_ms=1000, initial_delay_ms=1000)

        controller.on_rate_limit()

        assert controller.state.floor == 1000
        assert controller.state.average == 1000

    def test_then_success_clamps_to_new_floor(self):
        controller = controller_with(initial_delay_ms=200)
        controller.on_rate_limit()  # 300, floor 201
        controller.on_rate_limit()  # 450, floor 202

        assert controller.on_success() == 202
        # 202 sits below the raised sustainable estimate (220)
        assert controller.zone is Zone.GREEN


class TestInvariants:
    @pytest.mark.parametrize("seed", [0, 1, 2, 3, 4])
    def test_random_walk(self, seed):
        """floor <= average <= peak and current >= floor hold throughout."""
        rng = random.Random(seed)
        controller = DelayController()

        for _ in range(500):
            if rng.random() < 0.3:
                controller.on_rate_limit()
            else:
                controller.on_success()

            state = controller.state
            assert state.floor <= state.average <= state.peak
            assert state.current >= state.floor
            assert state.average == round_half_up((state.peak + state.floor) / 2)
