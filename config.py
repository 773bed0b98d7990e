#!/usr/bin/env python3
"""
Configuration management for the music hub news pipeline.

This module centralizes all configuration loading, validation, and management.
It handles environment variables, the feeds.yaml source list, and provides a
clean interface for accessing configuration values throughout the application.
"""

from os import environ, path, access, R_OK
from typing import Dict, Any, List
from logging import getLogger, basicConfig, StreamHandler, INFO, DEBUG, WARNING, ERROR
import sys
import yaml
from dotenv import load_dotenv

from models import Category, RelayConfig, SourceConfig


def _setup_global_logger():
    """Setup a single global logger for the entire application.

    Environment Variables:
        LOG_LEVEL: Set log level (DEBUG, INFO, WARNING, ERROR) - defaults to INFO
        LOG_TIMESTAMPS: Enable/disable timestamps in logs (true/false) - defaults to true

    All modules should use get_logger() to create module-specific loggers that inherit this configuration.
    """
    level_str = environ.get("LOG_LEVEL", "INFO").upper()
    level_map = {
        "DEBUG": DEBUG,
        "INFO": INFO,
        "WARNING": WARNING,
        "ERROR": ERROR
    }
    level = level_map.get(level_str, INFO)

    show_timestamps = environ.get("LOG_TIMESTAMPS", "true").lower() != "false"
    if show_timestamps:
        log_format = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    else:
        log_format = '%(name)s - %(levelname)s - %(message)s'

    basicConfig(
        level=level,
        format=log_format,
        handlers=[StreamHandler(sys.stdout)],
        force=True  # Force reconfiguration if already configured
    )

    # aiohttp and charset detection are chatty at DEBUG
    for name in ("aiohttp", "chardet", "charset_normalizer"):
        getLogger(name).setLevel(max(level, WARNING))

    return getLogger("MusicHub")


def get_logger(name: str):
    """Get a module-specific logger with the unified configuration.

    Args:
        name: The logger name (e.g., "fetcher", "aggregator", "cache")

    Returns:
        A logger named "MusicHub.{name}"
    """
    return getLogger(f"MusicHub.{name}")


logger = _setup_global_logger()

DEFAULT_RELAYS = [
    {"url": "https://corsproxy.io/?url={url}", "format": "raw"},
    {"url": "https://api.allorigins.win/get?url={url}", "format": "json"},
]

DEFAULT_THRESHOLDS = {
    "cache_ttl_minutes": 15,
    "regular_cap": 60,
    "total_cap": 48,
    "min_description_length": 100,
    "min_title_length": 10,
    "min_image_width": 600,
    "relay_timeout_seconds": 8,
    "aggregation_timeout_seconds": 25,
}


class Config:
    """Configuration manager for the news pipeline.

    Values are loaded from, in order:
    1. Environment variables
    2. .env file (if present)
    3. feeds.yaml (relays, sources and thresholds)

    Thresholds in feeds.yaml can be overridden by the upper-cased environment
    variable of the same name (e.g. ``CACHE_TTL_MINUTES=5``).
    """

    def __init__(self):
        self._load_environment()
        self._validate_and_set_config()
        self._load_feed_sources()

    def _load_environment(self):
        """Load environment variables from .env file if present."""
        dotenv_path = path.join(path.dirname(path.abspath(__file__)), '.env')
        if path.exists(dotenv_path):
            load_dotenv(dotenv_path)
            logger.info(f"Loaded environment variables from {dotenv_path}")

    def _validate_positive_int(self, env_var: str, default: int, min_val: int = 1) -> int:
        """Validate and parse a positive integer environment variable."""
        try:
            value = int(environ.get(env_var, str(default)))
            if value < min_val:
                logger.warning(f"{env_var} must be at least {min_val}, using default {default}")
                return default
            return value
        except (ValueError, TypeError):
            logger.warning(f"Invalid {env_var} value, using default {default}")
            return default

    def _validate_and_set_config(self):
        """Validate and set all environment-driven configuration values."""
        self.USER_AGENT = environ.get("USER_AGENT", "Mozilla/5.0 (compatible; MusicHubNews/1.0)")

        # SQLite file backing the persisted cache; empty means in-memory only
        self.CACHE_DATABASE_PATH = environ.get("CACHE_DATABASE_PATH", "hub_cache.db")
        self.NEWS_CACHE_KEY = environ.get("NEWS_CACHE_KEY", "hub_live_editorial_v5")
        self.ARTIST_CACHE_KEY = environ.get("ARTIST_CACHE_KEY", "hub_artist_day_v5")

        base_dir = path.dirname(path.abspath(__file__))
        self.FEEDS_CONFIG_PATH = environ.get("FEEDS_CONFIG_PATH", path.join(base_dir, "feeds.yaml"))

    def _safe_read_yaml(self, file_path: str, max_size: int, kind: str) -> Any | None:
        """Safely read a YAML file with consistent validation.

        Returns:
            Parsed YAML (mapping/list/primitive) or None on failure.
        """
        try:
            if not path.isfile(file_path):
                logger.warning(f"{kind.capitalize()} file not found at {file_path}")
                return None
            if not access(file_path, R_OK):
                logger.error(f"No read permission for {kind} file at {file_path}")
                return None
            size = path.getsize(file_path)
            if size > max_size:
                logger.error(f"{kind.capitalize()} file too large: {size} bytes (limit: {max_size} bytes)")
                return None
            with open(file_path, 'r') as f:
                data = yaml.safe_load(f)
            if not data:
                logger.warning(f"Empty or invalid YAML in {kind} file {file_path}")
                return None
            return data
        except yaml.YAMLError as e:
            logger.error(f"Error parsing YAML in {kind} file {file_path}: {e}")
        except OSError as e:
            logger.error(f"Error loading {kind} file {file_path}: {e}")
        return None

    def _load_feed_sources(self) -> None:
        """Populate FEED_SOURCES, RELAYS and thresholds from feeds.yaml.

        Idempotent and resilient: any failure results in an empty source list
        with default relays and thresholds.
        """
        feeds_path = self.FEEDS_CONFIG_PATH
        config_data = self._safe_read_yaml(feeds_path, 5 * 1024 * 1024, 'feeds')
        if not isinstance(config_data, dict):
            config_data = {}

        self.RELAYS = self._parse_relays(config_data.get('relays'), feeds_path)
        self._apply_thresholds(config_data.get('thresholds'))

        feeds_section = config_data.get('feeds')
        if not isinstance(feeds_section, dict):
            logger.warning(f"No valid feeds found in {feeds_path}")
            self.FEED_SOURCES = []
            return

        new_sources: List[SourceConfig] = []
        for feed_slug, feed_cfg in feeds_section.items():
            if not isinstance(feed_cfg, dict) or not isinstance(feed_cfg.get('url'), str):
                logger.warning(f"Skipping invalid feed configuration for '{feed_slug}': {feed_cfg}")
                continue
            category = Category.from_label(feed_cfg.get('category'))
            # All is a filter value and News is assigned by the classifier only
            if category is None or category in (Category.ALL, Category.BREAKING):
                logger.warning(
                    "Category %r is not a valid default for feed %s; using %s",
                    feed_cfg.get('category'),
                    feed_slug,
                    Category.GENERAL.value,
                )
                category = Category.GENERAL
            new_sources.append(SourceConfig(
                slug=str(feed_slug),
                url=feed_cfg['url'].strip(),
                name=str(feed_cfg.get('name') or feed_slug),
                default_category=category,
                feature=bool(feed_cfg.get('feature', False)),
            ))
            logger.debug(f"Loaded feed {feed_slug}: {feed_cfg['url']}")

        self.FEED_SOURCES = new_sources
        logger.info(f"Successfully loaded {len(self.FEED_SOURCES)} feeds from {feeds_path}")

    def _parse_relays(self, relays_section: Any, feeds_path: str) -> List[RelayConfig]:
        """Build the ordered relay list, falling back to the built-in pair."""
        if relays_section is None:
            relays_section = DEFAULT_RELAYS
        if not isinstance(relays_section, list):
            logger.warning(f"Relay configuration in {feeds_path} must be a list; using defaults")
            relays_section = DEFAULT_RELAYS

        relays: List[RelayConfig] = []
        for relay in relays_section:
            if not isinstance(relay, dict) or not isinstance(relay.get('url'), str) or '{url}' not in relay['url']:
                logger.warning(f"Skipping invalid relay entry in {feeds_path}: {relay}")
                continue
            fmt = str(relay.get('format', 'raw')).lower()
            if fmt not in ('raw', 'json'):
                logger.warning(f"Relay format must be 'raw' or 'json' (got {fmt}); treating as raw")
                fmt = 'raw'
            relays.append(RelayConfig(template=relay['url'].strip(), format=fmt))
        return relays

    def _apply_thresholds(self, thresholds_section: Any) -> None:
        """Load pipeline thresholds with safe defaults and env overrides."""
        if not isinstance(thresholds_section, dict):
            thresholds_section = {}
        values: Dict[str, int] = {}
        for key, default in DEFAULT_THRESHOLDS.items():
            raw = thresholds_section.get(key, default)
            try:
                parsed = int(str(raw).strip())
                if parsed < 1:
                    logger.warning(f"{key} must be >=1; keeping default {default} (got {raw})")
                    parsed = default
            except (ValueError, TypeError):
                logger.warning(f"Invalid {key} value '{raw}' in feeds.yaml; using default {default}")
                parsed = default
            # Environment wins over the YAML value
            values[key] = self._validate_positive_int(key.upper(), parsed, 1)

        self.CACHE_TTL_MINUTES = values["cache_ttl_minutes"]
        self.REGULAR_CAP = values["regular_cap"]
        self.TOTAL_CAP = values["total_cap"]
        self.MIN_DESCRIPTION_LENGTH = values["min_description_length"]
        self.MIN_TITLE_LENGTH = values["min_title_length"]
        self.MIN_IMAGE_WIDTH = values["min_image_width"]
        self.RELAY_TIMEOUT = float(values["relay_timeout_seconds"])
        self.AGGREGATION_TIMEOUT = float(values["aggregation_timeout_seconds"])
        logger.info(
            "Loaded thresholds: CACHE_TTL_MINUTES=%s REGULAR_CAP=%s TOTAL_CAP=%s RELAY_TIMEOUT=%ss",
            self.CACHE_TTL_MINUTES,
            self.REGULAR_CAP,
            self.TOTAL_CAP,
            self.RELAY_TIMEOUT,
        )

    @property
    def FEATURE_SOURCES(self) -> List[str]:
        """Display names of sources used for the artist-of-the-day pick."""
        return [source.name for source in self.FEED_SOURCES if source.feature]

    def reload_feed_sources(self):
        """Reload feed sources from configuration file."""
        logger.info("Reloading feed sources configuration")
        self._load_feed_sources()

    def get_config_summary(self) -> Dict[str, Any]:
        """Get a summary of current configuration for logging/debugging."""
        return {
            "feeds_config_path": self.FEEDS_CONFIG_PATH,
            "feed_count": len(self.FEED_SOURCES),
            "relay_count": len(self.RELAYS),
            "cache_database_path": self.CACHE_DATABASE_PATH or "<memory>",
            "cache_ttl_minutes": self.CACHE_TTL_MINUTES,
            "regular_cap": self.REGULAR_CAP,
            "total_cap": self.TOTAL_CAP,
            "relay_timeout": self.RELAY_TIMEOUT,
            "aggregation_timeout": self.AGGREGATION_TIMEOUT,
        }


# Global configuration instance
config = Config()
