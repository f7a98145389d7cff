# Copyright (c) 2025-2026 Luc Vincent. All Rights Reserved.
"""
Pytest configuration and shared fixtures for SynFrame tests.
"""

import tempfile
from pathlib import Path
from unittest.mock import MagicMock

import pytest


@pytest.fixture
def temp_dir():
    """Create a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def sample_config_dict(temp_dir):
    """Return a minimal valid config dictionary."""
    return {
        "synology": {
            "url": "https://nas.example.com:5001",
            "account": "frame",
            "password": "secret",
            "album_name": "Family",
            "max_photos": 500,
            "page_size": 100,
        },
        "slideshow": {
            "identifier": "frame-1",
            "speed_seconds": 15,
            "refresh_interval_minutes": 30,
            "randomize_order": False,
            "sort_by": "created",
            "show_all_before_restart": False,
            "tracker_path": str(temp_dir / "tracker.txt"),
        },
        "cache": {
            "enabled": True,
            "directory": str(temp_dir / "cache"),
            "max_size_mb": 100,
            "preload_count": 5,
            "preload_delay_ms": 0,
        },
        "image": {
            "resize": False,
            "max_width": 1920,
            "max_height": 1080,
        },
        "memory": {
            "enabled": False,
            "interval_seconds": 60,
            "threshold": 0.85,
        },
    }


@pytest.fixture
def sample_config_yaml(temp_dir, sample_config_dict):
    """Create a temporary config.yaml file."""
    import yaml
    config_path = temp_dir / "config.yaml"
    with open(config_path, 'w') as f:
        yaml.dump(sample_config_dict, f)
    return config_path


@pytest.fixture
def synology_config():
    """Return Synology settings for an account login."""
    from src.config import SynologyConfig
    return SynologyConfig(
        url="https://nas.example.com:5001",
        account="frame",
        password="secret",
        page_size=2,
        max_photos=100,
    )


@pytest.fixture
def make_photo():
    """Factory for PhotoItem objects."""
    from src.photo_client import PhotoItem

    def _make(path, created=0, modified=0, url=None, source_id=None, space_id=None):
        return PhotoItem(
            path=path,
            url=url,
            created=created,
            modified=modified,
            source_id=source_id,
            space_id=space_id,
            id=source_id,
        )
    return _make


def _make_response(payload):
    """Build a mock requests response returning payload as JSON."""
    response = MagicMock()
    response.json.return_value = payload
    response.raise_for_status.return_value = None
    return response


def _raw_item(item_id, filename=None, item_type="photo", time=None, indexed_time=None):
    """Build a raw Synology item record."""
    return {
        "id": item_id,
        "filename": filename if filename is not None else f"IMG_{item_id}.jpg",
        "type": item_type,
        "time": time,
        "indexed_time": indexed_time,
        "additional": {"thumbnail": {"cache_key": f"{item_id}_key"}},
    }


@pytest.fixture
def api_response():
    """Factory for mock API responses."""
    return _make_response


@pytest.fixture
def raw_item():
    """Factory for raw Synology item records."""
    return _raw_item


@pytest.fixture
def mock_session():
    """A requests.Session stand-in; set side_effect or return_value on .get."""
    return MagicMock()
