# Copyright (c) 2025 Luc Vincent. All Rights Reserved.
"""
Tests for configuration loading, environment overrides and validation.
"""

import pytest
import yaml


class TestConfigLoading:
    """Test YAML loading and defaults."""

    def test_loads_yaml_values(self, sample_config_yaml):
        """Values from the file end up in the dataclasses."""
        from src.config import load_config

        config = load_config(str(sample_config_yaml), environ={})

        assert config.synology.url == "https://nas.example.com:5001"
        assert config.synology.album_name == "Family"
        assert config.slideshow.speed_seconds == 15
        assert config.slideshow.sort_by == "created"
        assert config.cache.max_size_mb == 100
        assert config.config_path == str(sample_config_yaml)

    def test_missing_file_uses_defaults(self, temp_dir):
        """A missing config file gives a default config."""
        from src.config import load_config

        config = load_config(str(temp_dir / "missing.yaml"), environ={})

        assert config.config_path is None
        assert config.synology.max_photos == 1000
        assert config.slideshow.speed_seconds == 10
        assert config.slideshow.refresh_interval_minutes == 60
        assert config.cache.max_size_mb == 500
        assert config.cache.preload_count == 10
        assert config.cache.preload_delay_ms == 500
        assert config.memory.threshold == 0.85

    def test_unknown_keys_are_ignored(self, temp_dir, sample_config_dict):
        """Unknown keys do not break loading."""
        from src.config import load_config

        sample_config_dict["synology"]["not_a_setting"] = 42
        config_path = temp_dir / "config.yaml"
        with open(config_path, 'w') as f:
            yaml.dump(sample_config_dict, f)

        config = load_config(str(config_path), environ={})
        assert config.synology.url == "https://nas.example.com:5001"

    def test_tag_names_string_is_split(self, temp_dir, sample_config_dict):
        """A comma separated tag string becomes a list."""
        from src.config import load_config

        sample_config_dict["synology"]["tag_names"] = "beach, family"
        config_path = temp_dir / "config.yaml"
        with open(config_path, 'w') as f:
            yaml.dump(sample_config_dict, f)

        config = load_config(str(config_path), environ={})
        assert config.synology.tag_names == ["beach", "family"]


class TestEnvironmentOverrides:
    """Test environment variable overrides."""

    def test_env_overrides_file_values(self, sample_config_yaml):
        """Environment variables win over file values."""
        from src.config import load_config

        environ = {
            "SYNOLOGY_URL": "http://other-nas:5000",
            "SYNOLOGY_TAG_NAMES": "a,b , c",
            "RANDOMIZE_IMAGE_ORDER": "true",
            "IMAGE_CACHE_MAX_SIZE": "250",
        }
        config = load_config(str(sample_config_yaml), environ=environ)

        assert config.synology.url == "http://other-nas:5000"
        assert config.synology.tag_names == ["a", "b", "c"]
        assert config.slideshow.randomize_order is True
        assert config.cache.max_size_mb == 250

    def test_millisecond_values_are_converted(self):
        """Speed and intervals are given in ms in the environment."""
        from src.config import SynFrameConfig, apply_env_overrides

        config = SynFrameConfig()
        applied = apply_env_overrides(config, {
            "SLIDESHOW_SPEED": "5000",
            "REFRESH_IMAGE_LIST_INTERVAL": "1800000",
            "MEMORY_MONITOR_INTERVAL": "30000",
        })

        assert config.slideshow.speed_seconds == 5.0
        assert config.slideshow.refresh_interval_minutes == 30.0
        assert config.memory.interval_seconds == 30.0
        assert set(applied) == {"SLIDESHOW_SPEED", "REFRESH_IMAGE_LIST_INTERVAL", "MEMORY_MONITOR_INTERVAL"}

    def test_boolean_only_true_string(self):
        """Only "true" turns a boolean on."""
        from src.config import SynFrameConfig, apply_env_overrides

        config = SynFrameConfig()
        apply_env_overrides(config, {"ENABLE_IMAGE_CACHE": "yes", "RESIZE_IMAGES": "TRUE"})

        assert config.cache.enabled is False
        assert config.image.resize is True

    def test_invalid_number_is_ignored(self, caplog):
        """A bad numeric value keeps the default and warns."""
        from src.config import SynFrameConfig, apply_env_overrides

        config = SynFrameConfig()
        applied = apply_env_overrides(config, {"MAX_WIDTH": "wide"})

        assert applied == []
        assert config.image.max_width == 1920
        assert "MAX_WIDTH" in caplog.text

    def test_empty_values_are_skipped(self):
        """Empty variables do not clear settings."""
        from src.config import SynFrameConfig, apply_env_overrides

        config = SynFrameConfig()
        config.synology.url = "https://nas"
        apply_env_overrides(config, {"SYNOLOGY_URL": ""})
        assert config.synology.url == "https://nas"


class TestConfigValidation:
    """Test config validation logic."""

    def test_valid_config_passes(self, sample_config_yaml):
        """Valid config should load without errors."""
        from src.config import load_config, validate_config

        config = load_config(str(sample_config_yaml), environ={})
        errors = validate_config(config)

        assert len(errors) == 0, f"Unexpected errors: {errors}"

    def test_missing_url(self):
        """A missing server URL is reported."""
        from src.config import SynFrameConfig, validate_config

        errors = validate_config(SynFrameConfig())
        assert any("synology.url is required" in e for e in errors)

    def test_share_token_is_enough(self):
        """A share token replaces account credentials."""
        from src.config import SynFrameConfig, validate_config

        config = SynFrameConfig()
        config.synology.url = "https://nas"
        config.synology.share_token = "abc"
        assert validate_config(config) == []

    def test_missing_credentials(self):
        """No credentials and no token is an error."""
        from src.config import SynFrameConfig, validate_config

        config = SynFrameConfig()
        config.synology.url = "https://nas"
        errors = validate_config(config)
        assert any("Authentication is required" in e for e in errors)

    @pytest.mark.parametrize("field,value,message", [
        ("sort_by", "size", "sort_by"),
        ("speed_seconds", 0, "speed_seconds"),
    ])
    def test_invalid_slideshow_values(self, field, value, message):
        """Bad slideshow settings are reported."""
        from src.config import SynFrameConfig, validate_config

        config = SynFrameConfig()
        config.synology.url = "https://nas"
        config.synology.share_token = "abc"
        setattr(config.slideshow, field, value)

        errors = validate_config(config)
        assert any(message in e for e in errors)

    def test_invalid_threshold_and_cache_size(self):
        """Threshold must be in (0, 1] and cache size positive."""
        from src.config import SynFrameConfig, validate_config

        config = SynFrameConfig()
        config.synology.url = "ftp://nas"
        config.synology.share_token = "abc"
        config.memory.threshold = 1.5
        config.cache.max_size_mb = 0

        errors = validate_config(config)
        assert any("should start with http" in e for e in errors)
        assert any("memory.threshold" in e for e in errors)
        assert any("cache.max_size_mb" in e for e in errors)
