# Copyright (c) 2025 Luc Vincent. All Rights Reserved.
"""
Playlist management for SynFrame.
Orders the fetched photos, walks them as a ring, and remembers which
photos were already shown so every photo is seen once before repeating.
"""

import logging
import os
import random
import threading
from typing import List, Optional, Set

from .config import SlideshowConfig
from .photo_client import PhotoItem


class ShownTracker:
    """
    Persisted set of already shown photo paths.

    Backed by an append-only text file with one path per line. The file
    may hold duplicates across restarts; only set membership matters.
    """

    def __init__(self, path: str, logger: Optional[logging.Logger] = None):
        self.path = path
        self._log = logger or logging.getLogger(__name__)
        self._shown: Set[str] = set()

    @property
    def shown(self) -> Set[str]:
        return self._shown

    def load(self) -> Set[str]:
        """Read the tracker file into memory. A missing file means nothing was shown."""
        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                lines = [line.strip() for line in f.read().splitlines()]
        except FileNotFoundError:
            self._log.info("No tracker file found, starting fresh")
            self._shown = set()
            return self._shown
        except OSError as e:
            self._log.error(f"Error reading tracker file {self.path}: {e}")
            self._shown = set()
            return self._shown

        shown = [line for line in lines if line]
        self._log.info(f"Found {len(shown)} files in tracker")
        self._shown = set(shown)
        return self._shown

    def add(self, photo_path: str) -> None:
        """Record a shown path in memory and append it to the file."""
        self._shown.add(photo_path)
        line = f"{photo_path}\n"
        try:
            if os.path.exists(self.path):
                with open(self.path, 'a', encoding='utf-8') as f:
                    f.write(line)
            else:
                directory = os.path.dirname(self.path)
                if directory:
                    os.makedirs(directory, exist_ok=True)
                try:
                    with open(self.path, 'x', encoding='utf-8') as f:
                        f.write(line)
                except FileExistsError:
                    # Created between the existence check and the open
                    with open(self.path, 'a', encoding='utf-8') as f:
                        f.write(line)
        except OSError as e:
            self._log.error(f"Error updating tracker file {self.path}: {e}")

    def reset(self) -> None:
        """Truncate the tracker file and forget every shown path."""
        try:
            with open(self.path, 'w', encoding='utf-8') as f:
                f.write("")
            self._shown.clear()
            self._log.info("Reset shown images tracker")
        except OSError as e:
            self._log.error(f"Error resetting tracker: {e}")


class PlaylistManager:
    """
    Holds the prepared photo list and a cursor into it.

    The list is a ring: next() wraps to the start instead of running out.
    The cursor always points at the photo that next() will return.
    """

    def __init__(
        self,
        tracker: Optional[ShownTracker] = None,
        logger: Optional[logging.Logger] = None,
        rng: Optional[random.Random] = None
    ):
        """
        Args:
            tracker: Shown-photo tracker used in show-all-before-restart mode.
            logger: Logger to report through.
            rng: Random source for shuffling.
        """
        self._log = logger or logging.getLogger(__name__)
        self.tracker = tracker
        self._rng = rng or random.Random()
        self._lock = threading.RLock()
        self._playlist: List[PhotoItem] = []
        self.index: int = 0
        # True when the most recent next() wrapped around to the start
        self.last_wrapped: bool = False

    def _sort(self, photos: List[PhotoItem], sort_by: str, descending: bool) -> List[PhotoItem]:
        if sort_by == "created":
            self._log.debug("Sorting by created date...")
            ordered = sorted(photos, key=lambda p: p.created)
        elif sort_by == "modified":
            self._log.debug("Sorting by modified date...")
            ordered = sorted(photos, key=lambda p: p.modified)
        else:
            self._log.debug("Sorting by name...")
            ordered = sorted(photos, key=lambda p: p.path.lower())

        if descending:
            self._log.debug("Reversing sort order...")
            ordered.reverse()
        return ordered

    def prepare(self, photos: List[PhotoItem], config: SlideshowConfig) -> List[PhotoItem]:
        """
        Build the playlist from a fresh fetch.

        Already shown photos are dropped first (show-all-before-restart mode),
        then the rest is shuffled or sorted. The cursor returns to the start.

        Args:
            photos: Photos from the latest fetch.
            config: Ordering settings.

        Returns:
            The prepared playlist.
        """
        with self._lock:
            candidates = list(photos)

            if config.show_all_before_restart and self.tracker is not None:
                shown = self.tracker.load()
                candidates = [photo for photo in candidates if photo.path not in shown]
                self._log.info(f"Skipped {len(photos) - len(candidates)} already shown files")

                if not candidates and photos:
                    self._log.info("All photos already shown, starting a new cycle")
                    self.tracker.reset()
                    candidates = list(photos)

            if config.randomize_order:
                self._rng.shuffle(candidates)
            else:
                candidates = self._sort(candidates, config.sort_by, config.sort_descending)

            self._playlist = candidates
            self.index = 0
            self.last_wrapped = False

            self._log.info(f"Final image list contains {len(self._playlist)} files")
            return self._playlist

    def next(self) -> Optional[PhotoItem]:
        """
        Return the photo at the cursor and advance.

        Returns:
            PhotoItem, or None if the playlist is empty.
        """
        with self._lock:
            self.last_wrapped = False
            if not self._playlist:
                return None

            if self.index >= len(self._playlist):
                self._log.info("Reached end of list, looping to beginning")
                self.index = 0
                self.last_wrapped = True

            photo = self._playlist[self.index]
            self.index += 1
            self._log.info(f'Displaying image {self.index}/{len(self._playlist)}: "{photo.path}"')
            return photo

    def previous(self) -> Optional[PhotoItem]:
        """
        Return the photo shown before the current one.

        next() already moved past the current photo, so stepping back
        two positions and calling next() again lands on the previous one.
        """
        with self._lock:
            self.index -= 2
            if self.index < 0:
                self.index = 0
            return self.next()

    def add_shown(self, photo_path: str) -> None:
        """Remember a photo as shown. No-op without a tracker."""
        if self.tracker is not None:
            self.tracker.add(photo_path)

    def reset_tracker(self) -> None:
        """Forget every shown photo. No-op without a tracker."""
        if self.tracker is not None:
            self.tracker.reset()

    def is_empty(self) -> bool:
        return len(self._playlist) == 0

    def get_list(self) -> List[PhotoItem]:
        return self._playlist

    def __len__(self) -> int:
        return len(self._playlist)

    def reset(self) -> None:
        """Move the cursor back to the start."""
        with self._lock:
            self.index = 0
