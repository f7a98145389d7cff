# Copyright (c) 2025 Luc Vincent. All Rights Reserved.
"""
Tests for playlist ordering, ring navigation and the shown tracker.
"""

import logging
import random

import pytest


@pytest.fixture
def slideshow_config():
    from src.config import SlideshowConfig
    return SlideshowConfig()


@pytest.fixture
def playlist():
    from src.playlist import PlaylistManager
    return PlaylistManager()


class TestOrdering:
    """Test sorting and shuffling in prepare()."""

    def test_sort_by_name_case_insensitive(self, playlist, slideshow_config, make_photo):
        photos = [make_photo("b.jpg"), make_photo("C.jpg"), make_photo("a.jpg")]
        result = playlist.prepare(photos, slideshow_config)
        assert [p.path for p in result] == ["a.jpg", "b.jpg", "C.jpg"]

    def test_sort_by_created_descending(self, playlist, slideshow_config, make_photo):
        slideshow_config.sort_by = "created"
        slideshow_config.sort_descending = True
        photos = [make_photo("x", created=2), make_photo("y", created=3), make_photo("z", created=1)]
        result = playlist.prepare(photos, slideshow_config)
        assert [p.path for p in result] == ["y", "x", "z"]

    def test_sort_by_modified(self, playlist, slideshow_config, make_photo):
        slideshow_config.sort_by = "modified"
        photos = [make_photo("x", modified=5), make_photo("y", modified=1)]
        result = playlist.prepare(photos, slideshow_config)
        assert [p.path for p in result] == ["y", "x"]

    def test_shuffle_uses_rng(self, slideshow_config, make_photo):
        from src.playlist import PlaylistManager

        slideshow_config.randomize_order = True
        photos = [make_photo(f"{i}.jpg") for i in range(20)]

        first = PlaylistManager(rng=random.Random(7)).prepare(photos, slideshow_config)
        second = PlaylistManager(rng=random.Random(7)).prepare(photos, slideshow_config)

        assert [p.path for p in first] == [p.path for p in second]
        assert sorted(p.path for p in first) == sorted(p.path for p in photos)

    def test_prepare_resets_cursor(self, playlist, slideshow_config, make_photo):
        playlist.prepare([make_photo("a"), make_photo("b")], slideshow_config)
        playlist.next()
        playlist.prepare([make_photo("a"), make_photo("b")], slideshow_config)
        assert playlist.index == 0


class TestNavigation:
    """Test the ring cursor."""

    def test_empty_playlist(self, playlist):
        assert playlist.is_empty()
        assert playlist.next() is None

    def test_ring_wraps(self, playlist, slideshow_config, make_photo, caplog):
        """N+1 calls to next() return the first photo twice."""
        photos = [make_photo(p) for p in ("a", "b", "c")]
        playlist.prepare(photos, slideshow_config)

        with caplog.at_level(logging.INFO):
            seen = [playlist.next().path for _ in range(4)]

        assert seen == ["a", "b", "c", "a"]
        assert playlist.last_wrapped is True
        assert "Reached end of list" in caplog.text

    def test_previous_after_two_next(self, playlist, slideshow_config, make_photo):
        photos = [make_photo(p) for p in ("a", "b", "c")]
        playlist.prepare(photos, slideshow_config)

        first = playlist.next()
        playlist.next()
        assert playlist.previous() is first

    def test_previous_at_start_floors_at_zero(self, playlist, slideshow_config, make_photo):
        photos = [make_photo(p) for p in ("a", "b")]
        playlist.prepare(photos, slideshow_config)

        playlist.next()
        # index 1 - 2 floors at 0, so the first photo comes back
        assert playlist.previous().path == "a"
        assert playlist.index == 1

    def test_reset(self, playlist, slideshow_config, make_photo):
        playlist.prepare([make_photo("a"), make_photo("b")], slideshow_config)
        playlist.next()
        playlist.reset()
        assert playlist.next().path == "a"


class TestShownTracker:
    """Test show-all-before-restart mode."""

    def test_skips_already_shown(self, temp_dir, slideshow_config, make_photo, caplog):
        from src.playlist import PlaylistManager, ShownTracker

        tracker_path = temp_dir / "tracker.txt"
        tracker_path.write_text("a.jpg\nb.jpg\n")
        slideshow_config.show_all_before_restart = True
        playlist = PlaylistManager(tracker=ShownTracker(str(tracker_path)))

        with caplog.at_level(logging.INFO):
            result = playlist.prepare(
                [make_photo("a.jpg"), make_photo("b.jpg"), make_photo("c.jpg")],
                slideshow_config
            )

        assert [p.path for p in result] == ["c.jpg"]
        assert "Skipped 2 already shown files" in caplog.text

    def test_tracker_ignored_when_mode_off(self, temp_dir, slideshow_config, make_photo):
        from src.playlist import PlaylistManager, ShownTracker

        tracker_path = temp_dir / "tracker.txt"
        tracker_path.write_text("a.jpg\n")
        playlist = PlaylistManager(tracker=ShownTracker(str(tracker_path)))

        result = playlist.prepare([make_photo("a.jpg"), make_photo("b.jpg")], slideshow_config)
        assert len(result) == 2

    def test_all_shown_starts_new_cycle(self, temp_dir, slideshow_config, make_photo):
        from src.playlist import PlaylistManager, ShownTracker

        tracker_path = temp_dir / "tracker.txt"
        tracker_path.write_text("a.jpg\nb.jpg\n")
        slideshow_config.show_all_before_restart = True
        playlist = PlaylistManager(tracker=ShownTracker(str(tracker_path)))

        result = playlist.prepare([make_photo("a.jpg"), make_photo("b.jpg")], slideshow_config)

        assert len(result) == 2
        assert tracker_path.read_text() == ""

    def test_add_creates_and_appends(self, temp_dir):
        from src.playlist import ShownTracker

        tracker_path = temp_dir / "state" / "tracker.txt"
        tracker = ShownTracker(str(tracker_path))
        tracker.add("a.jpg")
        tracker.add("b.jpg")
        tracker.add("a.jpg")

        assert tracker_path.read_text() == "a.jpg\nb.jpg\na.jpg\n"
        assert tracker.shown == {"a.jpg", "b.jpg"}

    def test_load_missing_file(self, temp_dir, caplog):
        from src.playlist import ShownTracker

        tracker = ShownTracker(str(temp_dir / "missing.txt"))
        with caplog.at_level(logging.INFO):
            assert tracker.load() == set()
        assert "No tracker file found" in caplog.text

    def test_reset_truncates(self, temp_dir):
        from src.playlist import ShownTracker

        tracker_path = temp_dir / "tracker.txt"
        tracker = ShownTracker(str(tracker_path))
        tracker.add("a.jpg")
        tracker.reset()

        assert tracker_path.read_text() == ""
        assert tracker.shown == set()

    def test_add_failure_is_logged(self, temp_dir, caplog):
        """An unwritable tracker path does not raise."""
        from src.playlist import ShownTracker

        blocker = temp_dir / "file"
        blocker.write_text("x")
        tracker = ShownTracker(str(blocker / "tracker.txt"))

        tracker.add("a.jpg")
        assert "Error updating tracker file" in caplog.text
