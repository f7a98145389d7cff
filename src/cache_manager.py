# Copyright (c) 2025 Luc Vincent. All Rights Reserved.
"""
Image cache for SynFrame.
Stores ready-to-display image payloads on disk, keeps the total size
bounded, and warms the cache in the background.
"""

import hashlib
import logging
import os
import stat
import tempfile
import threading
import time
from collections import OrderedDict, deque
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Deque, List, Optional

from .config import CacheConfig
from .photo_client import PhotoItem

# Returns a future resolving to the encoded payload (or None on failure)
PreloadFetch = Callable[[PhotoItem], "Future[Optional[str]]"]


@dataclass
class CacheStats:
    """Snapshot of cache state for status reporting."""
    enabled: bool
    max_size_mb: float
    preload_count: int
    current_size_bytes: int
    file_count: int
    is_preloading: bool

    def to_dict(self) -> dict:
        return {
            "enabled": self.enabled,
            "max_size_mb": self.max_size_mb,
            "preload_count": self.preload_count,
            "current_size_bytes": self.current_size_bytes,
            "file_count": self.file_count,
            "is_preloading": self.is_preloading,
        }


@dataclass
class _FileStat:
    path: str
    name: str
    size: int
    mtime: float


class _PresenceMap:
    """
    In-memory "this key is on disk" flags with a time to live.

    Holds booleans only, never payloads. The oldest flag is dropped
    when max_keys is reached.
    """

    def __init__(self, ttl_seconds: float, max_keys: int = 1000, clock: Callable[[], float] = time.monotonic):
        self.ttl = ttl_seconds
        self.max_keys = max_keys
        self._clock = clock
        self._lock = threading.Lock()
        self._expires: "OrderedDict[str, float]" = OrderedDict()

    def get(self, key: str) -> bool:
        with self._lock:
            expires = self._expires.get(key)
            if expires is None:
                return False
            if self.ttl > 0 and self._clock() > expires:
                del self._expires[key]
                return False
            return True

    def set(self, key: str) -> None:
        with self._lock:
            self._expires.pop(key, None)
            if len(self._expires) >= self.max_keys:
                self._expires.popitem(last=False)
            self._expires[key] = self._clock() + self.ttl

    def delete(self, key: str) -> None:
        with self._lock:
            self._expires.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._expires.clear()

    def __len__(self) -> int:
        return len(self._expires)


class ImageCache:
    """
    Disk cache of encoded image payloads.

    Handles:
    - One file per entry, named by the MD5 of the image URL or path
    - A running byte total (the ledger), rebuilt from disk on startup
    - Oldest-first eviction down to 90% of the size limit
    - Background preloading, one item at a time, with a 30s watchdog

    Eviction started by set() runs on a detached thread. The ledger is
    therefore approximate; set() returning does not mean eviction is done.
    """

    EVICTION_TARGET_RATIO = 0.9
    PRELOAD_TIMEOUT = 30
    MAX_PRESENCE_KEYS = 1000
    TEMP_SUFFIX = ".tmp"

    def __init__(
        self,
        config: CacheConfig,
        logger: Optional[logging.Logger] = None,
        stat_workers: int = 8,
        sleep: Callable[[float], None] = time.sleep
    ):
        """
        Initialize the image cache. Call initialize() before use.

        Args:
            config: Cache settings.
            logger: Logger to report through.
            stat_workers: Threads used to stat cache files in parallel.
            sleep: Sleep function used between preloads.
        """
        self.config = config
        self.cache_dir = Path(config.directory)
        self.max_cache_size = int(config.max_size_mb * 1024 * 1024)
        self.preload_delay = max(0, config.preload_delay_ms) / 1000.0
        self.preload_timeout: float = self.PRELOAD_TIMEOUT

        self._log = logger or logging.getLogger(__name__)
        self._stat_workers = max(1, stat_workers)
        self._sleep = sleep

        # Thread safety
        self._lock = threading.RLock()
        self._eviction_lock = threading.Lock()

        self._presence: Optional[_PresenceMap] = None
        self.current_cache_size = 0

        self._preload_queue: Deque[PhotoItem] = deque()
        self.is_preloading = False

        self._eviction_thread: Optional[threading.Thread] = None
        self._preload_thread: Optional[threading.Thread] = None

    @property
    def initialized(self) -> bool:
        return self._presence is not None

    def initialize(self) -> bool:
        """
        Create the cache directory and rebuild the ledger from disk.

        Returns:
            True if the cache is usable.
        """
        try:
            self.cache_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            self._log.error(f"Failed to initialize image cache: {e}")
            return False

        self._presence = _PresenceMap(self.config.entry_ttl_seconds, self.MAX_PRESENCE_KEYS)
        self._calculate_cache_size()

        self._log.info(
            f"Image cache initialized at {self.cache_dir} "
            f"with max size {self.config.max_size_mb}MB"
        )
        return True

    def _stat_entry(self, name: str) -> Optional[_FileStat]:
        path = os.path.join(self.cache_dir, name)
        try:
            st = os.stat(path)
        except OSError:
            # Deleted since listing
            return None
        if not stat.S_ISREG(st.st_mode):
            return None
        return _FileStat(path=path, name=name, size=st.st_size, mtime=st.st_mtime)

    def _stat_files(self) -> List[_FileStat]:
        """Stat every file in the cache directory in parallel."""
        try:
            names = os.listdir(self.cache_dir)
        except FileNotFoundError:
            return []

        # In-flight writes are not cache entries
        names = [name for name in names if not name.endswith(self.TEMP_SUFFIX)]
        if not names:
            return []

        with ThreadPoolExecutor(max_workers=self._stat_workers, thread_name_prefix="cache-stat") as pool:
            results = list(pool.map(self._stat_entry, names))
        return [r for r in results if r is not None]

    def _calculate_cache_size(self) -> None:
        """Recompute the ledger by scanning the cache directory."""
        try:
            total = sum(f.size for f in self._stat_files())
        except OSError as e:
            self._log.error(f"Error calculating cache size: {e}")
            total = 0

        with self._lock:
            self.current_cache_size = total
        self._log.debug(f"Current cache size: {total / 1024 / 1024:.2f}MB")

    def get_cache_key(self, identifier: str) -> str:
        """MD5 hex digest of the image URL or path."""
        return hashlib.md5(identifier.encode('utf-8')).hexdigest()

    def contains(self, identifier: str) -> bool:
        """Check whether an entry exists, without reading it."""
        if self._presence is None:
            return False
        key = self.get_cache_key(identifier)
        return self._presence.get(key) or (self.cache_dir / key).is_file()

    def get(self, identifier: str) -> Optional[str]:
        """
        Read a cached payload.

        Args:
            identifier: Image URL or path.

        Returns:
            The stored payload, or None on a miss or read failure.
        """
        if self._presence is None:
            return None

        key = self.get_cache_key(identifier)
        file_path = self.cache_dir / key

        if self._presence.get(key):
            try:
                data = file_path.read_text(encoding='utf-8')
            except OSError:
                self._presence.delete(key)
                self._log.debug(f"Cache file missing for {identifier}")
                return None
            self._log.debug(f"Cache hit for {identifier}")
            return data

        if not file_path.is_file():
            self._log.debug(f"Cache miss for {identifier}")
            return None

        try:
            data = file_path.read_text(encoding='utf-8')
        except OSError as e:
            self._log.debug(f"Cache miss for {identifier}: {e}")
            return None

        self._presence.set(key)
        self._log.debug(f"Disk cache hit for {identifier}")
        return data

    def set(self, identifier: str, data: str) -> bool:
        """
        Store a payload on disk.

        Starts background eviction when the ledger goes over the limit,
        without waiting for it.

        Args:
            identifier: Image URL or path.
            data: Encoded payload (data URL string).

        Returns:
            True if the write succeeded.
        """
        if self._presence is None:
            return False

        key = self.get_cache_key(identifier)
        file_path = self.cache_dir / key
        encoded = data.encode('utf-8')

        temp_path = None
        try:
            # Write to a unique temp file first, then rename atomically
            fd, temp_path = tempfile.mkstemp(dir=self.cache_dir, prefix=key + ".", suffix=self.TEMP_SUFFIX)
            with os.fdopen(fd, 'wb') as f:
                f.write(encoded)

            # Size lookup, rename and ledger update are one step per writer
            with self._lock:
                try:
                    previous_size = file_path.stat().st_size
                except FileNotFoundError:
                    previous_size = 0
                os.replace(temp_path, file_path)
                temp_path = None
                self.current_cache_size += len(encoded) - previous_size
                over_limit = self.current_cache_size > self.max_cache_size
        except OSError as e:
            self._log.error(f"Error setting cache: {e}")
            return False
        finally:
            if temp_path is not None:
                try:
                    os.unlink(temp_path)
                except OSError as e:
                    self._log.debug(f"Could not remove temp file {temp_path}: {e}")

        self._presence.set(key)

        if over_limit:
            self._start_background_eviction()

        self._log.debug(f"Cached image {identifier} ({len(encoded) / 1024 / 1024:.2f}MB)")
        return True

    def _start_background_eviction(self) -> None:
        thread = threading.Thread(
            target=self._evict_in_background,
            name="cache-evict",
            daemon=True
        )
        self._eviction_thread = thread
        thread.start()

    def _evict_in_background(self) -> None:
        try:
            self.evict_old_files()
        except Exception as e:
            self._log.error(f"Error evicting old files: {e}")

    def wait_for_eviction(self, timeout: Optional[float] = None) -> bool:
        """
        Block until the most recent background eviction finishes.

        Returns:
            True if no eviction is still running.
        """
        thread = self._eviction_thread
        if thread is None:
            return True
        thread.join(timeout)
        return not thread.is_alive()

    def evict_old_files(self) -> None:
        """
        Delete oldest files until the ledger is at 90% of the limit.

        Returns immediately when the ledger is within the limit, so it is
        cheap to call speculatively.
        """
        with self._lock:
            if self._presence is None or self.current_cache_size <= self.max_cache_size:
                return

        if not self._eviction_lock.acquire(blocking=False):
            self._log.debug("Eviction already running")
            return

        try:
            files = self._stat_files()
            files.sort(key=lambda f: f.mtime)

            target_size = self.max_cache_size * self.EVICTION_TARGET_RATIO
            evicted = 0

            for file_stat in files:
                with self._lock:
                    if self.current_cache_size <= target_size:
                        break

                try:
                    os.unlink(file_stat.path)
                except OSError as e:
                    self._log.debug(f"Could not evict {file_stat.name}: {e}")
                    continue

                self._presence.delete(file_stat.name)
                with self._lock:
                    self.current_cache_size = max(0, self.current_cache_size - file_stat.size)
                evicted += 1
                self._log.debug(f"Evicted {file_stat.name} ({file_stat.size / 1024 / 1024:.2f}MB)")

            self._log.info(
                f"Evicted {evicted} cached files, "
                f"cache size now {self.current_cache_size / 1024 / 1024:.2f}MB"
            )
        except OSError as e:
            self._log.error(f"Error evicting files: {e}")
        finally:
            self._eviction_lock.release()

    def preload(self, photos: List[PhotoItem], fetch: PreloadFetch) -> None:
        """
        Warm the cache with the first photos of the playlist in the background.

        Only photos with a remote URL are queued, capped at preload_count.
        A second call while a drain is running replaces the queue instead of
        starting another worker.

        Args:
            photos: Prepared playlist.
            fetch: Returns a future resolving to the payload for a photo.
        """
        if not self.config.enabled or self._presence is None:
            return

        queue = [photo for photo in photos if photo.url][:self.config.preload_count]

        with self._lock:
            self._preload_queue = deque(queue)
            if self.is_preloading:
                self._log.debug(f"Preload running, queue replaced with {len(queue)} images")
                return
            if not queue:
                return
            self.is_preloading = True

        self._log.info(f"Starting background preload of {len(queue)} images")

        thread = threading.Thread(
            target=self._process_preload_queue,
            args=(fetch,),
            name="cache-preload",
            daemon=True
        )
        self._preload_thread = thread
        thread.start()

    def wait_for_preload(self, timeout: Optional[float] = None) -> bool:
        """
        Block until the preload worker finishes.

        Returns:
            True if no preload is still running.
        """
        thread = self._preload_thread
        if thread is None:
            return True
        thread.join(timeout)
        return not thread.is_alive()

    def _process_preload_queue(self, fetch: PreloadFetch) -> None:
        """Drain the preload queue one photo at a time."""
        try:
            while True:
                with self._lock:
                    if not self._preload_queue:
                        self.is_preloading = False
                        break
                    photo = self._preload_queue.popleft()

                identifier = photo.url or photo.path
                if self.contains(identifier):
                    self._log.debug(f"Skipping preload, already cached: {photo.path}")
                    continue

                try:
                    data = fetch(photo).result(timeout=self.preload_timeout)
                except FutureTimeoutError:
                    self._log.error(f"Error preloading image {photo.path}: Preload timeout")
                    continue
                except Exception as e:
                    self._log.error(f"Error preloading image {photo.path}: {e}")
                    continue

                if data:
                    self.set(identifier, data)
                    self._log.debug(f"Preloaded and cached: {photo.path}")

                self._sleep(self.preload_delay)
        except Exception as e:
            self._log.error(f"Error processing preload queue: {e}")
        finally:
            with self._lock:
                self.is_preloading = False

        self._log.info("Background preload complete")

    def clear(self) -> None:
        """Delete every cached file and reset the ledger."""
        if self._presence is None:
            return

        self._presence.clear()

        try:
            names = os.listdir(self.cache_dir)
        except FileNotFoundError:
            names = []
        except OSError as e:
            self._log.error(f"Error clearing cache: {e}")
            return

        for name in names:
            try:
                os.unlink(os.path.join(self.cache_dir, name))
            except FileNotFoundError:
                continue
            except OSError as e:
                self._log.debug(f"Could not remove {name}: {e}")

        with self._lock:
            self.current_cache_size = 0
        self._log.info("Cache cleared")

    def stats(self) -> Optional[CacheStats]:
        """Get cache statistics, or None before initialize()."""
        if self._presence is None:
            return None

        try:
            file_count = len(self._stat_files())
        except OSError as e:
            self._log.error(f"Error getting cache stats: {e}")
            return None

        return CacheStats(
            enabled=self.config.enabled,
            max_size_mb=self.config.max_size_mb,
            preload_count=self.config.preload_count,
            current_size_bytes=self.current_cache_size,
            file_count=file_count,
            is_preloading=self.is_preloading,
        )
