"""Tests for the adaptive scheduler."""

import sys
from pathlib import Path

import pytest

# Add parent to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from scheduler import AdaptiveScheduler, resolve_interval


@pytest.fixture
def ticks():
    return []


@pytest.fixture
def scheduler(loop, activity, ticks):
    return AdaptiveScheduler(loop, lambda: ticks.append(loop.time()), activity)


class TestResolveInterval:
    """Test update-frequency settings."""

    def test_fixed(self):
        assert resolve_interval('fast') == (False, 1000)
        assert resolve_interval('normal') == (False, 3000)
        assert resolve_interval('slow') == (False, 5000)

    def test_custom_clamped(self):
        assert resolve_interval('custom', 250) == (False, 250)
        assert resolve_interval('custom', 10) == (False, 100)
        assert resolve_interval('custom', 120000) == (False, 60000)
        assert resolve_interval('custom', None) == (False, 3000)

    def test_auto_and_unknown(self):
        assert resolve_interval('auto') == (True, 1000)
        assert resolve_interval('whatever') == (True, 1000)


class TestFixedMode:
    """Test fixed intervals."""

    def test_ticks_at_interval(self, loop, scheduler, ticks):
        scheduler.configure('normal')
        scheduler.start()
        loop.advance(10)
        assert ticks == [3, 6, 9]

    def test_fixed_mode_ignores_activity(self, loop, activity, scheduler):
        scheduler.configure('slow')
        scheduler.start()
        assert len(activity.activity) == 0

    def test_reconfigure_rebuilds_timer(self, loop, scheduler, ticks):
        scheduler.configure('slow')
        scheduler.start()
        loop.advance(2)
        scheduler.configure('fast')
        loop.advance(2)
        assert ticks == [3, 4]
        assert loop.pending == 1

    def test_stop_cancels(self, loop, scheduler, ticks):
        scheduler.configure('fast')
        scheduler.start()
        scheduler.stop()
        loop.advance(10)
        assert ticks == []
        assert loop.pending == 0


class TestAdaptiveMode:
    """Test activity-driven intervals."""

    def test_subscribes_only_while_running(self, activity, scheduler):
        scheduler.configure('auto')
        assert len(activity.activity) == 0
        scheduler.start()
        assert len(activity.activity) == 1
        scheduler.stop()
        assert len(activity.activity) == 0

    def test_switch_to_fixed_unsubscribes(self, activity, scheduler):
        scheduler.configure('auto')
        scheduler.start()
        scheduler.configure('fast')
        assert len(activity.activity) == 0

    def test_goes_idle_then_active(self, loop, activity, scheduler, ticks):
        """Test the interval slows after 30 s without input and speeds up again."""
        scheduler.configure('auto')
        scheduler.start()

        loop.advance(29)
        assert scheduler.interval_ms == 1000
        assert len(ticks) == 29

        loop.advance(11)
        assert scheduler.interval_ms == 5000
        assert loop.delays() == [pytest.approx(5.0)]

        activity.notify()
        loop.advance(5)
        assert scheduler.interval_ms == 1000
        assert loop.delays() == [pytest.approx(1.0)]

    def test_single_timer_outstanding(self, loop, activity, scheduler):
        scheduler.configure('auto')
        scheduler.start()
        for _ in range(5):
            activity.notify()
            loop.advance(7)
        assert loop.pending == 1

    def test_tick_exception_keeps_running(self, loop):
        calls = []

        def tick():
            calls.append(loop.time())
            raise ValueError("boom")

        scheduler = AdaptiveScheduler(loop, tick)
        scheduler.configure('fast')
        scheduler.start()
        loop.advance(3)
        assert calls == [1, 2, 3]

    def test_start_twice_is_noop(self, loop, scheduler):
        scheduler.start()
        scheduler.start()
        assert loop.pending == 1


if __name__ == '__main__':
    pytest.main([__file__, '-v'])
