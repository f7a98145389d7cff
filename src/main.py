#!/usr/bin/env python3
# Copyright (c) 2025 Luc Vincent. All Rights Reserved.
"""
SynFrame - Main Application.
Runs the slideshow controller as a long-lived service.
"""

import argparse
import logging
import os
import signal
import sys
import threading
from pathlib import Path
from typing import Any, Dict, Optional

# Initialize logging early
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[
        logging.StreamHandler(sys.stdout)
    ]
)
logger = logging.getLogger(__name__)


def setup_file_logging(log_dir: str) -> None:
    """Set up file logging in addition to console."""
    log_path = Path(log_dir)
    log_path.mkdir(parents=True, exist_ok=True)

    file_handler = logging.FileHandler(log_path / 'synframe.log')
    file_handler.setFormatter(logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    ))
    logging.getLogger().addHandler(file_handler)


class SynFrame:
    """Main SynFrame application."""

    def __init__(self, config_path: Optional[str] = None):
        """
        Initialize SynFrame.

        Args:
            config_path: Path to configuration file.
        """
        self.config_path = config_path
        self.config = None
        self.controller = None

        self._shutdown_event = threading.Event()

        # Set up signal handlers
        signal.signal(signal.SIGINT, self._signal_handler)
        signal.signal(signal.SIGTERM, self._signal_handler)

    def _signal_handler(self, signum, frame):
        """Handle shutdown signals."""
        logger.info(f"Received signal {signum}, initiating shutdown...")
        self.stop()

    def _load_config(self) -> bool:
        """Load configuration."""
        from .config import describe_config, load_config

        try:
            self.config = load_config(self.config_path)
            logger.info(f"Configuration loaded from: {self.config.config_path or 'defaults'}")
            describe_config(self.config)
            return True

        except Exception as e:
            logger.error(f"Failed to load configuration: {e}")
            return False

    def _on_notification(self, event: str, payload: Optional[Dict[str, Any]]) -> None:
        """Log notifications meant for the display layer."""
        if event == "display-image":
            logger.info(
                f"Display image {payload['index']}/{payload['total']}: {payload['path']} "
                f"({len(payload['data'])} bytes)"
            )
        elif event == "file-list":
            logger.info(f"Photo list ready with {len(payload['items'])} items")
        elif event == "needs-config":
            logger.error("Configuration required: set synology.url in the config file or SYNOLOGY_URL")
        else:
            logger.info(f"Notification: {event} {payload or ''}")

    def run(self) -> int:
        """
        Run until a shutdown signal arrives.

        Returns:
            Exit code (0 for success).
        """
        logger.info("Starting SynFrame...")

        if not self._load_config():
            return 1

        # Set up file logging if configured
        log_dir = os.environ.get('SYNFRAME_LOG_DIR', '/var/log/synframe')
        try:
            setup_file_logging(log_dir)
        except OSError as e:
            logger.warning(f"Could not set up file logging: {e}")

        from .slideshow import SlideshowController

        self.controller = SlideshowController(self._on_notification, self.config)
        if not self.controller.initialize():
            return 1

        logger.info("SynFrame started successfully")

        try:
            self._shutdown_event.wait()
        finally:
            self._cleanup()

        return 0

    def stop(self) -> None:
        """Stop the application."""
        logger.info("Stopping SynFrame...")
        self._shutdown_event.set()

    def _cleanup(self) -> None:
        """Clean up resources."""
        logger.info("Cleaning up...")

        if self.controller:
            try:
                self.controller.shutdown()
            except Exception as e:
                logger.error(f"Error shutting down controller: {e}")

        logger.info("SynFrame stopped")


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="SynFrame - Synology Photos slideshow service",
        formatter_class=argparse.RawDescriptionHelpFormatter
    )

    parser.add_argument(
        '-c', '--config',
        help='Path to configuration file'
    )

    parser.add_argument(
        '-v', '--verbose',
        action='store_true',
        help='Enable verbose logging'
    )

    parser.add_argument(
        '--version',
        action='store_true',
        help='Show version and exit'
    )

    args = parser.parse_args()

    if args.version:
        from . import __version__
        print(f"SynFrame {__version__}")
        return 0

    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    app = SynFrame(config_path=args.config)
    return app.run()


if __name__ == "__main__":
    sys.exit(main())
