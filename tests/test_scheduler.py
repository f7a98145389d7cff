# Copyright (c) 2025 Luc Vincent. All Rights Reserved.
"""
Tests for the slideshow and refresh timers.
"""

import threading
import time

import pytest


@pytest.fixture
def timers():
    from src.scheduler import TimerManager
    manager = TimerManager()
    yield manager
    manager.stop_all_timers()


class TestTimers:
    """Test one-shot timer behavior."""

    def test_slideshow_timer_fires_once(self, timers):
        fired = threading.Event()
        calls = []

        def callback():
            calls.append(1)
            fired.set()

        timers.start_slideshow_timer(callback, 0.05)
        assert timers.is_slideshow_timer_running()
        assert fired.wait(timeout=5)

        time.sleep(0.15)
        assert calls == [1]
        assert not timers.is_slideshow_timer_running()

    def test_restart_cancels_previous(self, timers):
        first = threading.Event()
        second = threading.Event()

        timers.start_slideshow_timer(first.set, 0.2)
        timers.start_slideshow_timer(second.set, 0.05)

        assert second.wait(timeout=5)
        time.sleep(0.3)
        assert not first.is_set()

    def test_stop_cancels(self, timers):
        fired = threading.Event()
        timers.start_refresh_timer(fired.set, 0.05)
        timers.stop_refresh_timer()

        time.sleep(0.15)
        assert not fired.is_set()
        assert not timers.is_refresh_timer_running()

    @pytest.mark.parametrize("interval", [0, -5])
    def test_refresh_disabled_for_non_positive_interval(self, timers, interval, caplog):
        import logging

        with caplog.at_level(logging.INFO):
            timers.start_refresh_timer(lambda: None, interval)

        assert not timers.is_refresh_timer_running()
        assert "Refresh timer disabled" in caplog.text

    def test_callback_can_rearm(self, timers):
        """A callback re-arming its own timer keeps the cadence going."""
        ticks = []
        done = threading.Event()

        def tick():
            ticks.append(1)
            if len(ticks) < 3:
                timers.start_slideshow_timer(tick, 0.02)
            else:
                done.set()

        timers.start_slideshow_timer(tick, 0.02)
        assert done.wait(timeout=5)
        assert len(ticks) == 3

    def test_stop_all(self, timers):
        timers.start_slideshow_timer(lambda: None, 10)
        timers.start_refresh_timer(lambda: None, 10)
        timers.stop_all_timers()

        assert not timers.is_slideshow_timer_running()
        assert not timers.is_refresh_timer_running()
