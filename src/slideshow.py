# Copyright (c) 2025 Luc Vincent. All Rights Reserved.
"""
Slideshow controller for SynFrame.
Ties fetching, ordering, caching and display cadence together and reports
to the display layer through a notification callback.
"""

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import asdict
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from .cache_manager import ImageCache
from .config import SynFrameConfig, validate_config
from .image_processor import ImageProcessor
from .memory_monitor import MemoryMonitor
from .photo_client import PhotoItem
from .photo_source import PhotoSource
from .playlist import PlaylistManager, ShownTracker
from .scheduler import TimerManager

# Notifications sent to the display layer
NEEDS_CONFIG = "needs-config"
FILE_LIST = "file-list"
READY = "ready"
DISPLAY_IMAGE = "display-image"

NotifyCallback = Callable[[str, Optional[Dict[str, Any]]], None]


class SlideshowState(Enum):
    """Controller lifecycle state."""
    IDLE = "idle"
    LOADING = "loading"
    READY = "ready"
    DISPLAYING = "displaying"
    RETRY_WAIT = "retry_wait"  # Last load had no photos, retry armed


class SlideshowController:
    """
    Top-level slideshow state machine.

    Flow:
    - initialize() checks config, starts the memory monitor and cache,
      then starts the slideshow after a short delay
    - Every slideshow tick shows the next photo and re-arms the timer
    - Every refresh tick re-fetches the list, keeping the position if it fits
    - An empty list arms a single retry instead of ticking
    """

    START_DELAY = 0.2
    DEFAULT_SPEED_SECONDS = 10.0
    PRELOAD_WORKERS = 2

    def __init__(
        self,
        notify: NotifyCallback,
        config: SynFrameConfig,
        logger: Optional[logging.Logger] = None,
        photo_source: Optional[PhotoSource] = None,
        playlist: Optional[PlaylistManager] = None,
        timers: Optional[TimerManager] = None,
        cache: Optional[ImageCache] = None,
        processor: Optional[ImageProcessor] = None,
        memory_monitor: Optional[MemoryMonitor] = None,
        start_delay: float = START_DELAY
    ):
        """
        Initialize the controller. Collaborators not given are built from config.

        Args:
            notify: Receives (event name, payload) for the display layer.
            config: Full configuration.
            logger: Logger to report through.
            photo_source: Photo list source.
            playlist: Ordering and cursor.
            timers: Slideshow and refresh timers.
            cache: Image cache (built in initialize() when enabled).
            processor: Payload renderer (built in initialize()).
            memory_monitor: Memory monitor (built in initialize() when enabled).
            start_delay: Seconds between initialize() and the first load.
        """
        self.notify = notify
        self.config = config
        self._log = logger or logging.getLogger(__name__)

        self.photo_source = photo_source or PhotoSource(logger=self._log.getChild("source"))
        if playlist is None:
            tracker = ShownTracker(config.slideshow.tracker_path, logger=self._log.getChild("tracker"))
            playlist = PlaylistManager(tracker=tracker, logger=self._log.getChild("playlist"))
        self.playlist = playlist
        self.timers = timers or TimerManager(logger=self._log.getChild("timers"))
        self.cache = cache
        self.processor = processor
        self.memory_monitor = memory_monitor
        self.start_delay = start_delay

        self.state = SlideshowState.IDLE

        # Thread safety
        self._lock = threading.RLock()

        self._retry_pending = False
        self._retry_timer: Optional[threading.Timer] = None
        self._start_timer: Optional[threading.Timer] = None
        self._download_pool = ThreadPoolExecutor(
            max_workers=self.PRELOAD_WORKERS,
            thread_name_prefix="preload-download"
        )

        self._log.info("SlideshowController initialized")

    def _emit(self, event: str, payload: Optional[Dict[str, Any]] = None) -> None:
        try:
            self.notify(event, payload)
        except Exception as e:
            self._log.error(f"Notification handler failed for {event}: {e}")

    @property
    def speed_seconds(self) -> float:
        return self.config.slideshow.speed_seconds or self.DEFAULT_SPEED_SECONDS

    @property
    def refresh_interval_seconds(self) -> float:
        return self.config.slideshow.refresh_interval_minutes * 60

    def initialize(self, start: bool = True) -> bool:
        """
        Set up components and schedule the first load.

        Args:
            start: Schedule start() after start_delay.

        Returns:
            False if the server URL is missing.
        """
        config = self.config

        for error in validate_config(config):
            self._log.warning(f"Config issue: {error}")

        if not config.synology.url:
            self._log.error("Synology URL not configured")
            self._emit(NEEDS_CONFIG)
            return False

        if config.memory.enabled:
            if self.memory_monitor is None:
                self.memory_monitor = MemoryMonitor(config.memory, logger=self._log.getChild("memory"))
            self.memory_monitor.on_pressure(self._on_memory_pressure)
            self.memory_monitor.start()

        if config.cache.enabled and self.cache is None:
            cache = ImageCache(config.cache, logger=self._log.getChild("cache"))
            if cache.initialize():
                self.cache = cache
            else:
                self._log.warning("Image cache unavailable, continuing without it")

        if self.processor is None:
            self.processor = ImageProcessor(
                config.image,
                cache=self.cache,
                cache_enabled=config.cache.enabled,
                logger=self._log.getChild("processor")
            )

        if start:
            self._start_timer = threading.Timer(self.start_delay, self.start)
            self._start_timer.daemon = True
            self._start_timer.start()

        return True

    def start(self) -> None:
        """First load, first photo, and the refresh cadence."""
        try:
            self.gather_image_list(send_ready=True)
            self.get_next_image()
        except Exception as e:
            self._log.error(f"Error starting slideshow: {e}")

        self.timers.start_refresh_timer(self.refresh_image_list, self.refresh_interval_seconds)

    def _on_memory_pressure(self) -> None:
        self._log.info("Running memory cleanup")
        if self.cache is not None:
            self.cache.evict_old_files()

    def _preload_fetch(self, photo: PhotoItem) -> "Future[Optional[str]]":
        """Download one photo for the preloader on the download pool."""
        client = self.photo_source.get_client()
        if client is None or self.processor is None or not photo.url:
            done: "Future[Optional[str]]" = Future()
            done.set_result(None)
            return done
        return self._download_pool.submit(self.processor.fetch_remote, photo.url, client)

    def gather_image_list(self, send_ready: bool = False) -> List[PhotoItem]:
        """
        Fetch and prepare the photo list, then notify the display.

        Args:
            send_ready: Also send the ready notification.

        Returns:
            The prepared playlist.
        """
        config = self.config
        if not config.synology.url:
            self._emit(NEEDS_CONFIG)
            return []

        self._log.info("Gathering image list...")

        with self._lock:
            self.state = SlideshowState.LOADING
            photos = self.photo_source.fetch_photos(config)
            prepared = self.playlist.prepare(photos, config.slideshow)
            self.state = SlideshowState.READY

        if self.cache is not None and config.cache.enabled:
            self.cache.preload(prepared, self._preload_fetch)

        self._emit(FILE_LIST, {"items": [asdict(photo) for photo in prepared]})

        if send_ready:
            self._emit(READY, {"identifier": config.slideshow.identifier})

        return prepared

    def _schedule_retry(self) -> None:
        """Arm the single empty-list retry. No-op if one is already pending."""
        self.state = SlideshowState.RETRY_WAIT
        if self._retry_pending:
            return

        delay = self.config.slideshow.retry_delay_seconds
        self._log.warning(f"No images available, retrying in {delay / 60:g} minutes")
        self._retry_pending = True

        self._retry_timer = threading.Timer(delay, self._retry)
        self._retry_timer.daemon = True
        self._retry_timer.start()

    def _retry(self) -> None:
        with self._lock:
            self._retry_pending = False
            self._retry_timer = None
        try:
            self.get_next_image()
        except Exception as e:
            self._log.error(f"Error retrying image load: {e}")

    def _cancel_retry(self) -> None:
        self._retry_pending = False
        if self._retry_timer is not None:
            self._retry_timer.cancel()
            self._retry_timer = None

    def _display(self, photo: PhotoItem) -> None:
        """Render a photo, send it to the display and re-arm the cadence."""
        data = None
        if self.processor is not None:
            try:
                data = self.processor.render(photo.path, photo.url, self.photo_source.get_client())
            except Exception as e:
                self._log.error(f"Error rendering {photo.path}: {e}")

        payload = {
            "identifier": self.config.slideshow.identifier,
            "path": photo.path,
            "data": data or "",
            "index": self.playlist.index,
            "total": len(self.playlist),
        }
        self._log.debug(f'Sending display-image notification for "{photo.path}"')
        self._emit(DISPLAY_IMAGE, payload)

        self.timers.start_slideshow_timer(self.get_next_image, self.speed_seconds)

    def get_next_image(self) -> Optional[PhotoItem]:
        """
        Show the next photo.

        Returns:
            The photo shown, or None if the list is empty.
        """
        self._log.debug("Getting next image...")
        show_all = self.config.slideshow.show_all_before_restart

        with self._lock:
            if self.playlist.is_empty():
                self._log.debug("Image list empty, loading images...")
                self.gather_image_list()

                if self.playlist.is_empty():
                    self._schedule_retry()
                    return None

            self._cancel_retry()

            photo = self.playlist.next()
            if photo is None:
                self._log.error("Failed to get next image")
                return None

            if show_all and self.playlist.last_wrapped:
                self.playlist.reset_tracker()

            self.state = SlideshowState.DISPLAYING
            self._display(photo)

            if show_all:
                self.playlist.add_shown(photo.path)

            return photo

    def get_previous_image(self) -> Optional[PhotoItem]:
        """Show the photo before the current one."""
        with self._lock:
            if self.playlist.is_empty():
                return self.get_next_image()

            photo = self.playlist.previous()
            if photo is None:
                return None

            self.state = SlideshowState.DISPLAYING
            self._display(photo)

            if self.config.slideshow.show_all_before_restart:
                self.playlist.add_shown(photo.path)

            return photo

    def refresh_image_list(self) -> None:
        """Re-fetch the list, keep the position if it still fits, re-arm the refresh timer."""
        self._log.info("Refreshing image list from Synology...")

        try:
            with self._lock:
                current_index = self.playlist.index
                self.gather_image_list()

                list_length = len(self.playlist)
                if current_index < list_length:
                    self.playlist.index = current_index
                    self._log.info(f"Maintained position at index {current_index}")
                else:
                    self.playlist.reset()
                    self._log.info("Reset to beginning of new image list")
        except Exception as e:
            self._log.error(f"Error refreshing image list: {e}")

        self.timers.start_refresh_timer(self.refresh_image_list, self.refresh_interval_seconds)

    def pause(self) -> None:
        """Stop both timers."""
        self._log.info("Pausing slideshow")
        self.timers.stop_all_timers()

    def play(self) -> None:
        """Re-arm both timers with their configured intervals."""
        self._log.info("Resuming slideshow")
        self.timers.start_slideshow_timer(self.get_next_image, self.speed_seconds)
        self.timers.start_refresh_timer(self.refresh_image_list, self.refresh_interval_seconds)

    def get_status(self) -> Dict[str, Any]:
        """Snapshot of controller state for logging and the CLI."""
        stats = self.cache.stats() if self.cache is not None else None
        return {
            "state": self.state.value,
            "index": self.playlist.index,
            "total": len(self.playlist),
            "retry_pending": self._retry_pending,
            "slideshow_timer": self.timers.is_slideshow_timer_running(),
            "refresh_timer": self.timers.is_refresh_timer_running(),
            "cache": stats.to_dict() if stats is not None else None,
        }

    def shutdown(self) -> None:
        """Stop timers and the memory monitor, and log out."""
        self._log.info("Shutting down slideshow controller")

        if self._start_timer is not None:
            self._start_timer.cancel()
            self._start_timer = None

        with self._lock:
            self._cancel_retry()

        self.timers.stop_all_timers()

        if self.memory_monitor is not None:
            self.memory_monitor.stop()

        try:
            self.photo_source.close()
        except Exception as e:
            self._log.error(f"Error closing photo source: {e}")

        self._download_pool.shutdown(wait=False)
        self.state = SlideshowState.IDLE
