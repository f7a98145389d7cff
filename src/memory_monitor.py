# Copyright (c) 2025 Luc Vincent. All Rights Reserved.
"""
Memory monitor for SynFrame.
Samples memory usage on an interval and asks registered components
to free resources when usage stays high.
"""

import gc
import logging
import os
import threading
import time
from dataclasses import dataclass
from typing import Callable, List, Optional

import psutil

from .config import MemoryConfig


@dataclass
class MemorySample:
    """One memory reading."""
    used: int   # bytes
    total: int  # bytes

    @property
    def ratio(self) -> float:
        if self.total <= 0:
            return 0.0
        return self.used / self.total


def system_memory_sample() -> MemorySample:
    """Read system memory in use (total minus available) from psutil."""
    vm = psutil.virtual_memory()
    return MemorySample(used=vm.total - vm.available, total=vm.total)


class MemoryMonitor:
    """
    Periodic memory sampler with a pressure callback.

    When the sampled ratio is above the threshold, every registered
    callback runs and then a garbage collection pass is requested.
    Cleanups are at least cooldown_seconds apart.
    """

    def __init__(
        self,
        config: MemoryConfig,
        logger: Optional[logging.Logger] = None,
        sampler: Callable[[], MemorySample] = system_memory_sample,
        clock: Callable[[], float] = time.monotonic
    ):
        """
        Args:
            config: Interval, threshold and cooldown settings.
            logger: Logger to report through.
            sampler: Returns the current MemorySample.
            clock: Monotonic clock in seconds.
        """
        self.interval = config.interval_seconds if config.interval_seconds > 0 else 60.0
        self.threshold = config.threshold
        self.cooldown = config.cooldown_seconds

        self._log = logger or logging.getLogger(__name__)
        self._sampler = sampler
        self._clock = clock

        self._callbacks: List[Callable[[], None]] = []
        self._last_cleanup: Optional[float] = None
        self._last_sample: Optional[MemorySample] = None

        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def on_pressure(self, callback: Callable[[], None]) -> None:
        """Register a callback to run when memory usage is high."""
        self._callbacks.append(callback)

    def start(self) -> None:
        """Start sampling. Takes one sample immediately."""
        if self._thread is not None:
            return

        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run,
            name="memory-monitor",
            daemon=True
        )
        self._thread.start()
        self._log.info("Memory monitor started")

    def _run(self) -> None:
        while not self._stop_event.is_set():
            try:
                self.sample()
            except Exception as e:
                self._log.error(f"Memory check error: {e}")

            if self._stop_event.wait(self.interval):
                break

    def stop(self) -> None:
        """Stop sampling."""
        if self._thread is None:
            return

        self._stop_event.set()
        if self._thread is not threading.current_thread():
            self._thread.join(timeout=5)
        self._thread = None
        self._log.info("Memory monitor stopped")

    def is_running(self) -> bool:
        return self._thread is not None

    def sample(self) -> MemorySample:
        """
        Take one reading and trigger cleanup if needed.

        Returns:
            The reading.
        """
        reading = self._sampler()
        self._last_sample = reading
        ratio = reading.ratio

        self._log.debug(
            f"Memory: {reading.used / 1024 / 1024:.2f}MB / "
            f"{reading.total / 1024 / 1024:.2f}MB ({ratio * 100:.1f}%)"
        )

        if ratio > self.threshold:
            now = self._clock()
            if self._last_cleanup is None or now - self._last_cleanup >= self.cooldown:
                self._log.warning(
                    f"High memory usage detected ({ratio * 100:.1f}%), triggering cleanup"
                )
                self._last_cleanup = now
                self._trigger_cleanup()
            else:
                self._log.debug("High memory usage, cleanup cooling down")

        return reading

    def _trigger_cleanup(self) -> None:
        for callback in list(self._callbacks):
            try:
                callback()
            except Exception as e:
                self._log.error(f"Cleanup callback error: {e}")

        collected = gc.collect()
        self._log.info(f"Garbage collection freed {collected} objects")

    def get_stats(self) -> dict:
        """Current system and process memory in MB."""
        reading = self._sampler()
        rss = psutil.Process(os.getpid()).memory_info().rss
        return {
            "used_mb": round(reading.used / 1024 / 1024),
            "total_mb": round(reading.total / 1024 / 1024),
            "percent": round(reading.ratio * 100, 1),
            "rss_mb": round(rss / 1024 / 1024),
            "threshold": self.threshold,
        }
