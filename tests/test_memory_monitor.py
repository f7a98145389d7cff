# Copyright (c) 2025 Luc Vincent. All Rights Reserved.
"""
Tests for the memory monitor cooldown and callbacks.
"""

import threading
from unittest.mock import MagicMock

import pytest


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


@pytest.fixture
def memory_config():
    from src.config import MemoryConfig
    return MemoryConfig(interval_seconds=60, threshold=0.85, cooldown_seconds=60)


def make_monitor(memory_config, ratio, clock=None):
    from src.memory_monitor import MemoryMonitor, MemorySample

    used = int(ratio * 1000)
    return MemoryMonitor(
        memory_config,
        sampler=lambda: MemorySample(used=used, total=1000),
        clock=clock or FakeClock(),
    )


class TestCooldown:
    """Test threshold and cooldown behavior."""

    def test_below_threshold_does_nothing(self, memory_config):
        monitor = make_monitor(memory_config, ratio=0.5)
        callback = MagicMock()
        monitor.on_pressure(callback)

        sample = monitor.sample()

        assert sample.ratio == 0.5
        callback.assert_not_called()

    def test_second_breach_within_cooldown_is_ignored(self, memory_config):
        clock = FakeClock()
        monitor = make_monitor(memory_config, ratio=0.9, clock=clock)
        callback = MagicMock()
        monitor.on_pressure(callback)

        monitor.sample()
        clock.now += 59
        monitor.sample()

        assert callback.call_count == 1

    def test_breach_after_cooldown_triggers_again(self, memory_config):
        clock = FakeClock()
        monitor = make_monitor(memory_config, ratio=0.9, clock=clock)
        callback = MagicMock()
        monitor.on_pressure(callback)

        monitor.sample()
        clock.now += 60
        monitor.sample()

        assert callback.call_count == 2

    def test_failing_callback_does_not_stop_others(self, memory_config, caplog):
        monitor = make_monitor(memory_config, ratio=0.95)
        broken = MagicMock(side_effect=RuntimeError("boom"))
        healthy = MagicMock()
        monitor.on_pressure(broken)
        monitor.on_pressure(healthy)

        monitor.sample()

        healthy.assert_called_once()
        assert "Cleanup callback error: boom" in caplog.text

    def test_zero_total_is_safe(self, memory_config):
        from src.memory_monitor import MemoryMonitor, MemorySample

        monitor = MemoryMonitor(memory_config, sampler=lambda: MemorySample(used=0, total=0))
        assert monitor.sample().ratio == 0.0


class TestLifecycle:
    """Test start/stop of the sampling thread."""

    def test_start_samples_immediately(self, memory_config):
        from src.memory_monitor import MemoryMonitor, MemorySample

        sampled = threading.Event()

        def sampler():
            sampled.set()
            return MemorySample(used=1, total=10)

        monitor = MemoryMonitor(memory_config, sampler=sampler)
        monitor.start()
        try:
            assert sampled.wait(timeout=5)
            assert monitor.is_running()
        finally:
            monitor.stop()

        assert not monitor.is_running()

    def test_stop_without_start(self, memory_config):
        monitor = make_monitor(memory_config, ratio=0.1)
        monitor.stop()
        assert not monitor.is_running()

    def test_system_sampler_reads_psutil(self):
        from src.memory_monitor import system_memory_sample

        sample = system_memory_sample()
        assert sample.total > 0
        assert 0 <= sample.ratio <= 1
