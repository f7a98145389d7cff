# Copyright (c) 2025-2026 Luc Vincent. All Rights Reserved.
"""
Timer scheduling for SynFrame.
Manages the slideshow cadence timer and the photo list refresh timer.
"""

import logging
import threading
from datetime import datetime
from typing import Callable, Optional


class TimerManager:
    """
    Two cancellable one-shot timers.

    Timers:
    - Slideshow: advances to the next photo
    - Refresh: re-fetches the photo list

    Starting a timer cancels the previous one of the same kind. A fired
    callback must re-arm its timer if it wants to run again, so a slow
    cycle never overlaps the next one.
    """

    def __init__(self, logger: Optional[logging.Logger] = None):
        self._log = logger or logging.getLogger(__name__)
        self._lock = threading.Lock()
        self._slideshow_timer: Optional[threading.Timer] = None
        self._refresh_timer: Optional[threading.Timer] = None

    def _arm(self, name: str, callback: Callable[[], None], interval: float) -> threading.Timer:
        def fire():
            self._log.info(f"{name.capitalize()} timer triggered at {datetime.now().isoformat()}")
            with self._lock:
                # Fired timer is no longer pending
                if self._slideshow_timer is timer:
                    self._slideshow_timer = None
                elif self._refresh_timer is timer:
                    self._refresh_timer = None
            callback()

        timer = threading.Timer(interval, fire)
        timer.name = f"{name}-timer"
        timer.daemon = True
        return timer

    def stop_slideshow_timer(self) -> None:
        with self._lock:
            timer, self._slideshow_timer = self._slideshow_timer, None
        if timer is not None:
            self._log.info(f"Stopping slideshow timer at {datetime.now().isoformat()}")
            timer.cancel()

    def start_slideshow_timer(self, callback: Callable[[], None], interval: float) -> None:
        """
        Start or restart the slideshow timer.

        Args:
            callback: Called once when the timer fires.
            interval: Delay in seconds.
        """
        self.stop_slideshow_timer()

        self._log.info(
            f"Starting slideshow timer at {datetime.now().isoformat()} "
            f"with interval: {interval:.1f}s"
        )
        timer = self._arm("slideshow", callback, interval)
        with self._lock:
            self._slideshow_timer = timer
        timer.start()

    def stop_refresh_timer(self) -> None:
        with self._lock:
            timer, self._refresh_timer = self._refresh_timer, None
        if timer is not None:
            self._log.info(f"Stopping refresh timer at {datetime.now().isoformat()}")
            timer.cancel()

    def start_refresh_timer(self, callback: Callable[[], None], interval: float) -> None:
        """
        Start or restart the refresh timer.

        Args:
            callback: Called once when the timer fires.
            interval: Delay in seconds. Zero or less disables the timer.
        """
        self.stop_refresh_timer()

        if interval <= 0:
            self._log.info("Refresh timer disabled (interval <= 0)")
            return

        self._log.info(
            f"Starting refresh timer at {datetime.now().isoformat()} "
            f"with interval: {interval:.0f}s ({round(interval / 60)} minutes)"
        )
        timer = self._arm("refresh", callback, interval)
        with self._lock:
            self._refresh_timer = timer
        timer.start()

    def stop_all_timers(self) -> None:
        self.stop_slideshow_timer()
        self.stop_refresh_timer()

    def is_slideshow_timer_running(self) -> bool:
        return self._slideshow_timer is not None

    def is_refresh_timer_running(self) -> bool:
        return self._refresh_timer is not None
