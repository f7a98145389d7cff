#!/usr/bin/env python3
# Copyright (c) 2025 Luc Vincent. All Rights Reserved.
"""
Command-line interface for SynFrame.
Maintenance commands that work on the local install directly.
"""

import argparse
import logging
import sys

from .cache_manager import ImageCache
from .config import describe_config, load_config, validate_config
from .photo_source import PhotoSource
from .playlist import PlaylistManager, ShownTracker


def cmd_list(args, config):
    """Fetch and print the prepared photo list."""
    errors = validate_config(config)
    if errors:
        for error in errors:
            print(f"Error: {error}")
        return 1

    describe_config(config, log=print)

    source = PhotoSource()
    try:
        photos = source.fetch_photos(config)
    finally:
        source.close()

    # Tracker is read only here, never reset
    if config.slideshow.show_all_before_restart:
        shown = ShownTracker(config.slideshow.tracker_path).load()
        remaining = [photo for photo in photos if photo.path not in shown]
        if remaining:
            photos = remaining

    playlist = PlaylistManager().prepare(photos, config.slideshow)

    print(f"\nPhotos ({len(playlist)}):")
    print("-" * 60)
    limit = args.limit if args.limit else len(playlist)
    for position, photo in enumerate(playlist[:limit], start=1):
        print(f"{position:4d}  {photo.path}")
    if limit < len(playlist):
        print(f"... and {len(playlist) - limit} more")
    return 0


def cmd_stats(args, config):
    """Show cache statistics."""
    cache = ImageCache(config.cache)
    if not cache.initialize():
        print(f"Error: cannot open cache directory {config.cache.directory}")
        return 1

    stats = cache.stats()
    if stats is None:
        print("Error: could not read cache statistics")
        return 1

    print("SynFrame Cache")
    print("=" * 40)
    print(f"Directory: {config.cache.directory}")
    print(f"Enabled: {'yes' if stats.enabled else 'no'}")
    print(f"Files: {stats.file_count}")
    print(f"Size: {stats.current_size_bytes / 1024 / 1024:.1f} MB / {stats.max_size_mb} MB")
    print(f"Preload count: {stats.preload_count}")
    return 0


def cmd_clear_cache(args, config):
    """Delete every cached image."""
    cache = ImageCache(config.cache)
    if not cache.initialize():
        print(f"Error: cannot open cache directory {config.cache.directory}")
        return 1

    cache.clear()
    print("Cache cleared")
    return 0


def cmd_reset_tracker(args, config):
    """Forget which photos were already shown."""
    ShownTracker(config.slideshow.tracker_path).reset()
    print("Shown images tracker reset")
    return 0


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="SynFrame - Synology Photos slideshow",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  synframe-cli list             Show the photo list the slideshow would use
  synframe-cli stats            Show cache statistics
  synframe-cli clear-cache      Delete cached images
  synframe-cli reset-tracker    Start a fresh show-all cycle
        """
    )

    parser.add_argument("-c", "--config", help="Path to configuration file")
    parser.add_argument("-v", "--verbose", action="store_true", help="Show log output")

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    list_parser = subparsers.add_parser("list", help="Fetch and print the photo list")
    list_parser.add_argument("--limit", "-n", type=int, default=50, help="Photos to print (0 = all)")

    subparsers.add_parser("stats", help="Show cache statistics")
    subparsers.add_parser("clear-cache", help="Delete cached images")
    subparsers.add_parser("reset-tracker", help="Reset the shown images tracker")

    # Parse and execute
    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        return 0

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    commands = {
        "list": cmd_list,
        "stats": cmd_stats,
        "clear-cache": cmd_clear_cache,
        "reset-tracker": cmd_reset_tracker,
    }

    config = load_config(args.config)
    return commands[args.command](args, config)


if __name__ == "__main__":
    sys.exit(main())
