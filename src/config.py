"""
Configuration management for SynFrame.
Handles loading, environment overrides, validation, and defaults for all settings.
"""

import os
import yaml
from typing import Any, Callable, Dict, List, Optional
from dataclasses import dataclass, field
import logging

logger = logging.getLogger(__name__)

# Default paths
DEFAULT_CONFIG_PATHS = [
    "/etc/synframe/config.yaml",
    os.path.expanduser("~/.config/synframe/config.yaml"),
    "./config.yaml",
]

VALID_SORT_KEYS = ["name", "created", "modified"]


@dataclass
class SynologyConfig:
    """Connection and selection settings for the Synology Photos server."""
    url: str = ""
    account: str = ""
    password: str = ""
    album_name: str = ""
    tag_names: List[str] = field(default_factory=list)
    share_token: str = ""
    max_photos: int = 1000
    page_size: int = 100
    request_timeout_seconds: float = 10.0
    list_timeout_seconds: float = 30.0


@dataclass
class SlideshowConfig:
    """Display cadence and ordering settings."""
    identifier: str = "synframe"
    speed_seconds: float = 10.0
    refresh_interval_minutes: float = 60.0
    retry_delay_seconds: float = 600.0
    randomize_order: bool = False
    sort_by: str = "name"  # name, created, modified
    sort_descending: bool = False
    show_all_before_restart: bool = False
    tracker_path: str = "/var/lib/synframe/shown_tracker.txt"


@dataclass
class CacheConfig:
    """Disk cache settings."""
    enabled: bool = True
    directory: str = "/var/lib/synframe/cache"
    max_size_mb: float = 500
    preload_count: int = 10
    preload_delay_ms: int = 500
    entry_ttl_seconds: int = 7 * 24 * 3600


@dataclass
class ImageConfig:
    """Local image rendering settings."""
    resize: bool = False
    max_width: int = 1920
    max_height: int = 1080
    quality: int = 80


@dataclass
class MemoryConfig:
    """Memory monitor settings."""
    enabled: bool = True
    interval_seconds: float = 60.0
    threshold: float = 0.85
    cooldown_seconds: float = 60.0


@dataclass
class SynFrameConfig:
    """Main configuration class."""
    synology: SynologyConfig = field(default_factory=SynologyConfig)
    slideshow: SlideshowConfig = field(default_factory=SlideshowConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    image: ImageConfig = field(default_factory=ImageConfig)
    memory: MemoryConfig = field(default_factory=MemoryConfig)

    # Runtime state (not persisted)
    config_path: Optional[str] = None


def _dict_to_dataclass(data: Dict[str, Any], cls: type) -> Any:
    """Convert a dictionary to a dataclass instance, ignoring unknown keys."""
    if data is None:
        return cls()

    field_names = set(cls.__dataclass_fields__)
    kwargs = {}

    for key, value in data.items():
        if key not in field_names:
            logger.debug(f"Ignoring unknown config key: {cls.__name__}.{key}")
            continue
        kwargs[key] = value

    return cls(**kwargs)


def _parse_bool(value: str) -> bool:
    return value.strip().lower() == "true"


def _parse_tags(value: str) -> List[str]:
    return [tag.strip() for tag in value.split(",") if tag.strip()]


def _ms_to_seconds(value: str) -> float:
    return int(value) / 1000.0


def _ms_to_minutes(value: str) -> float:
    return int(value) / 60000.0


# env var -> (section, field, converter)
ENV_OVERRIDES: Dict[str, tuple] = {
    "SYNOLOGY_URL": ("synology", "url", str),
    "SYNOLOGY_ACCOUNT": ("synology", "account", str),
    "SYNOLOGY_PASSWORD": ("synology", "password", str),
    "SYNOLOGY_ALBUM_NAME": ("synology", "album_name", str),
    "SYNOLOGY_SHARE_TOKEN": ("synology", "share_token", str),
    "SYNOLOGY_TAG_NAMES": ("synology", "tag_names", _parse_tags),
    "SYNOLOGY_MAX_PHOTOS": ("synology", "max_photos", int),
    "SLIDESHOW_SPEED": ("slideshow", "speed_seconds", _ms_to_seconds),
    "REFRESH_IMAGE_LIST_INTERVAL": ("slideshow", "refresh_interval_minutes", _ms_to_minutes),
    "RANDOMIZE_IMAGE_ORDER": ("slideshow", "randomize_order", _parse_bool),
    "SHOW_ALL_IMAGES_BEFORE_RESTART": ("slideshow", "show_all_before_restart", _parse_bool),
    "ENABLE_IMAGE_CACHE": ("cache", "enabled", _parse_bool),
    "IMAGE_CACHE_MAX_SIZE": ("cache", "max_size_mb", int),
    "IMAGE_CACHE_PRELOAD_COUNT": ("cache", "preload_count", int),
    "IMAGE_CACHE_PRELOAD_DELAY": ("cache", "preload_delay_ms", int),
    "RESIZE_IMAGES": ("image", "resize", _parse_bool),
    "MAX_WIDTH": ("image", "max_width", int),
    "MAX_HEIGHT": ("image", "max_height", int),
    "ENABLE_MEMORY_MONITOR": ("memory", "enabled", _parse_bool),
    "MEMORY_MONITOR_INTERVAL": ("memory", "interval_seconds", _ms_to_seconds),
    "MEMORY_THRESHOLD": ("memory", "threshold", float),
}

# Never log these values
SECRET_ENV_VARS = {"SYNOLOGY_PASSWORD", "SYNOLOGY_SHARE_TOKEN"}


def apply_env_overrides(
    config: SynFrameConfig,
    environ: Optional[Dict[str, str]] = None
) -> List[str]:
    """
    Apply environment variable overrides to a loaded config.

    Environment variables take precedence over file values.

    Args:
        config: Configuration to update in place.
        environ: Mapping to read from. Defaults to os.environ.

    Returns:
        Names of the environment variables that were applied.
    """
    if environ is None:
        environ = os.environ

    applied = []
    for env_key, (section, attr, convert) in ENV_OVERRIDES.items():
        raw = environ.get(env_key)
        if raw is None or raw == "":
            continue
        try:
            value = convert(raw)
        except ValueError:
            shown = "<hidden>" if env_key in SECRET_ENV_VARS else raw
            logger.warning(f"Ignoring invalid value for {env_key}: {shown}")
            continue
        setattr(getattr(config, section), attr, value)
        applied.append(env_key)

    if applied:
        logger.info(f"Using environment variables: {', '.join(applied)}")

    return applied


def load_config(
    config_path: Optional[str] = None,
    environ: Optional[Dict[str, str]] = None
) -> SynFrameConfig:
    """
    Load configuration from a YAML file, then apply environment overrides.

    Args:
        config_path: Path to config file. If None, searches default locations.
        environ: Environment mapping for overrides. Defaults to os.environ.

    Returns:
        SynFrameConfig instance with loaded or default values.
    """
    if config_path:
        paths_to_try = [config_path]
    else:
        paths_to_try = DEFAULT_CONFIG_PATHS

    config_data = {}
    found_path = None

    for path in paths_to_try:
        expanded_path = os.path.expanduser(path)
        if os.path.exists(expanded_path):
            try:
                with open(expanded_path, 'r') as f:
                    config_data = yaml.safe_load(f) or {}
                found_path = expanded_path
                logger.info(f"Loaded config from {expanded_path}")
                break
            except (OSError, yaml.YAMLError) as e:
                logger.warning(f"Failed to load config from {expanded_path}: {e}")

    if not found_path:
        logger.info("No config file found, using defaults")

    config = SynFrameConfig(
        synology=_dict_to_dataclass(config_data.get('synology'), SynologyConfig),
        slideshow=_dict_to_dataclass(config_data.get('slideshow'), SlideshowConfig),
        cache=_dict_to_dataclass(config_data.get('cache'), CacheConfig),
        image=_dict_to_dataclass(config_data.get('image'), ImageConfig),
        memory=_dict_to_dataclass(config_data.get('memory'), MemoryConfig),
        config_path=found_path,
    )

    # A single tag given as a string in YAML
    if isinstance(config.synology.tag_names, str):
        config.synology.tag_names = _parse_tags(config.synology.tag_names)

    apply_env_overrides(config, environ)

    config.cache.directory = os.path.expanduser(config.cache.directory)
    config.slideshow.tracker_path = os.path.expanduser(config.slideshow.tracker_path)

    return config


def validate_config(config: SynFrameConfig) -> List[str]:
    """
    Validate configuration and return list of errors.

    Returns:
        List of error messages. Empty if valid.
    """
    errors = []
    synology = config.synology

    if not synology.url:
        errors.append("synology.url is required (or set SYNOLOGY_URL).")
    elif not synology.url.startswith("http"):
        errors.append("synology.url should start with http:// or https://")

    has_credentials = bool(synology.account and synology.password)
    if not has_credentials and not synology.share_token:
        errors.append(
            "Authentication is required: set synology.account + synology.password "
            "or synology.share_token."
        )

    if synology.max_photos < 1:
        errors.append("synology.max_photos must be at least 1")

    if synology.page_size < 1:
        errors.append("synology.page_size must be at least 1")

    if config.slideshow.sort_by not in VALID_SORT_KEYS:
        errors.append(f"slideshow.sort_by must be one of: {VALID_SORT_KEYS}")

    if config.slideshow.speed_seconds <= 0:
        errors.append("slideshow.speed_seconds must be positive")

    if config.cache.max_size_mb <= 0:
        errors.append("cache.max_size_mb must be positive")

    if config.cache.preload_count < 0:
        errors.append("cache.preload_count cannot be negative")

    if not (0 < config.memory.threshold <= 1):
        errors.append("memory.threshold must be between 0 and 1")

    if config.image.max_width < 1 or config.image.max_height < 1:
        errors.append("image.max_width and image.max_height must be positive")

    return errors


def describe_config(config: SynFrameConfig, log: Callable[[str], None] = logger.info) -> None:
    """Log a short summary of the connection settings without secrets."""
    synology = config.synology
    log(f"  URL: {synology.url}")
    log(f"  Auth: {'Share Token' if synology.share_token else 'Account Credentials'}")
    if synology.album_name:
        log(f"  Album: {synology.album_name}")
    if synology.tag_names:
        log(f"  Tags: {', '.join(synology.tag_names)}")
