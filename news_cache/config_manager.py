"""
Configuration manager for the news cache.
Handles loading and validation of configuration settings.
"""
import copy
import json
import logging
import os
from json.decoder import JSONDecodeError
from typing import Any, Dict, List

from news_cache.models import FeedSource
from news_cache.utils.helpers import determine_language, determine_region, determine_source, validate_url
from news_cache.utils.proxy_utils import validate_proxy_settings

logger = logging.getLogger(__name__)

SETTINGS_FILE = "settings.json"
FEEDS_FILE = "feeds.json"

DEFAULT_SETTINGS = {
    "networking": {
        "timeout_seconds": 30,
        "retry_attempts": 3,
        "backoff_factor": 2.0,
        "max_workers": 4,
        "user_agent": "Mozilla/5.0 (compatible; RegionalNewsCache/1.0)"
    },
    "cache": {
        "expiry_hours": 6,
        "change_threshold": 0.10,
        "health_max_age_hours": 24,
        "digest_limit": 5,
        "digest_timezone": None
    },
    "storage": {
        "base_dir": "./cache",
        "backend": "file"
    },
    "logging": {
        "level": "INFO",
        "log_dir": "./logs"
    },
    "schedule": {
        "enabled": True,
        "refresh_minutes": 30
    },
    "proxy": {
        "enabled": False,
        "host": "localhost",
        "port": 8081,
        "protocol": "http",
        "username": None,
        "password": None
    }
}

DEFAULT_FEEDS = {
    "sources": [
        {"name": "ERR", "url": "https://feeds.err.ee/rss/err_news", "region": "Estonia", "language": "et"},
        {"name": "Postimees", "url": "https://feeds.postimees.ee/rss/pealinn", "region": "Estonia", "language": "et"},
        {"name": "Delfi", "url": "https://feeds.delfi.ee/rss/delfi_news", "region": "Estonia", "language": "et"},
        {"name": "LSM", "url": "https://feeds.lsm.lv/rss/latvia", "region": "Latvia", "language": "lv"},
        {"name": "LRT", "url": "https://feeds.lrt.lt/rss/lithuania", "region": "Lithuania", "language": "lt"},
        {"name": "Yle", "url": "https://feeds.yle.fi/rss/yle_news", "region": "Finland", "language": "fi"}
    ]
}

STORAGE_BACKENDS = ("file", "memory")


def write_default_config(config_dir: str, overwrite: bool = False) -> List[str]:
    """
    Write default settings.json and feeds.json into a directory.

    Args:
        config_dir: Target directory
        overwrite: Replace files that already exist

    Returns:
        Paths of the files written
    """
    os.makedirs(config_dir, exist_ok=True)
    written = []

    for file_name, content in ((SETTINGS_FILE, DEFAULT_SETTINGS), (FEEDS_FILE, DEFAULT_FEEDS)):
        file_path = os.path.join(config_dir, file_name)
        if os.path.exists(file_path) and not overwrite:
            logger.info(f"Keeping existing configuration file: {file_path}")
            continue

        with open(file_path, 'w', encoding='utf-8') as f:
            json.dump(content, f, indent=2)
        written.append(file_path)
        logger.info(f"Wrote default configuration file: {file_path}")

    return written


class ConfigManager:
    """
    Manages configuration loading and feed source extraction.
    """

    def __init__(self, settings_path: str, feeds_path: str):
        """
        Initialize configuration manager.

        Args:
            settings_path: Path to main settings file (settings.json)
            feeds_path: Path to feeds configuration file (feeds.json)

        Raises:
            FileNotFoundError: If either file is missing
            JSONDecodeError: If either file is not valid JSON
            ValueError, TypeError: If validation fails
        """
        self.settings_path = settings_path
        self.feeds_path = feeds_path
        self.settings = None
        self.feeds_config = None

        logger.debug(f"ConfigManager initialized with settings: {settings_path}, feeds: {feeds_path}")

        try:
            self._load_all_configs()
        except FileNotFoundError as e:
            logger.critical(f"Configuration file not found: {e}. Run with --init to create default configuration.")
            raise

    @classmethod
    def from_dir(cls, config_dir: str) -> "ConfigManager":
        return cls(os.path.join(config_dir, SETTINGS_FILE), os.path.join(config_dir, FEEDS_FILE))

    def _load_all_configs(self):
        """Load all configuration files."""
        self.settings = self._load_json_file(self.settings_path, "settings")
        self.feeds_config = self._load_json_file(self.feeds_path, "feeds")

        self._validate_settings()
        self._validate_feeds_config()

    def _load_json_file(self, file_path: str, config_type: str) -> Dict[str, Any]:
        """
        Load a JSON configuration file.

        Args:
            file_path: Path to JSON file
            config_type: Type of config for error messages

        Returns:
            Configuration dictionary
        """
        try:
            with open(file_path, 'r', encoding='utf-8') as f:
                config = json.load(f)

            logger.info(f"Loaded {config_type} configuration from {file_path}")
            return config

        except FileNotFoundError:
            raise
        except JSONDecodeError as e:
            logger.error(f"Invalid JSON in {config_type} configuration file '{file_path}': {e}")
            raise

    def _validate_settings(self):
        """Validate settings configuration."""
        if not isinstance(self.settings, dict):
            raise ValueError("Settings configuration must be a JSON object")

        for section in DEFAULT_SETTINGS:
            if section not in self.settings:
                logger.warning(f"Missing configuration section: '{section}', using defaults")
                self.settings[section] = {}
            elif not isinstance(self.settings[section], dict):
                raise TypeError(f"Invalid type for configuration section '{section}'. Expected dict")

        self._set_default_settings()
        self._validate_specific_settings()

        logger.info("Settings configuration validated")

    def _validate_specific_settings(self):
        """Validate specific key values within settings."""
        networking = self.settings["networking"]
        if not isinstance(networking.get("timeout_seconds"), (int, float)):
            raise TypeError("Invalid type for 'networking.timeout_seconds'. Expected int or float.")
        if not isinstance(networking.get("retry_attempts"), int) or networking["retry_attempts"] < 0:
            raise TypeError("Invalid value for 'networking.retry_attempts'. Expected non-negative int.")
        if not isinstance(networking.get("backoff_factor"), (int, float)):
            raise TypeError("Invalid type for 'networking.backoff_factor'. Expected int or float.")
        if not isinstance(networking.get("max_workers"), int) or networking["max_workers"] < 1:
            raise TypeError("Invalid value for 'networking.max_workers'. Expected positive int.")

        cache = self.settings["cache"]
        if not isinstance(cache.get("expiry_hours"), (int, float)) or cache["expiry_hours"] <= 0:
            raise ValueError("Invalid value for 'cache.expiry_hours'. Expected positive number.")
        threshold = cache.get("change_threshold")
        if not isinstance(threshold, (int, float)) or not 0 <= threshold <= 1:
            raise ValueError("Invalid value for 'cache.change_threshold'. Expected number between 0 and 1.")
        if not isinstance(cache.get("health_max_age_hours"), (int, float)):
            raise TypeError("Invalid type for 'cache.health_max_age_hours'. Expected int or float.")
        if not isinstance(cache.get("digest_limit"), int) or cache["digest_limit"] < 1:
            raise ValueError("Invalid value for 'cache.digest_limit'. Expected positive int.")
        if cache.get("digest_timezone") is not None and not isinstance(cache["digest_timezone"], str):
            raise TypeError("Invalid type for 'cache.digest_timezone'. Expected a string or null.")

        storage = self.settings["storage"]
        if not storage.get("base_dir") or not isinstance(storage.get("base_dir"), str):
            raise TypeError("Missing or invalid type for 'storage.base_dir'. Expected non-empty string.")
        if storage.get("backend") not in STORAGE_BACKENDS:
            raise ValueError(f"Invalid 'storage.backend'. Expected one of: {', '.join(STORAGE_BACKENDS)}")

        schedule = self.settings["schedule"]
        if not isinstance(schedule.get("refresh_minutes"), (int, float)) or schedule["refresh_minutes"] <= 0:
            raise ValueError("Invalid value for 'schedule.refresh_minutes'. Expected positive number.")

        logging_settings = self.settings["logging"]
        if not isinstance(logging_settings.get("level"), str):
            raise TypeError("Invalid type for 'logging.level'. Expected a string.")

        is_valid, error = validate_proxy_settings(self.settings["proxy"])
        if not is_valid:
            raise ValueError(f"Invalid proxy settings: {error}")

    def _validate_feeds_config(self):
        """Validate feeds configuration."""
        if not isinstance(self.feeds_config, dict) or not self.feeds_config:
            raise ValueError("Feeds configuration is empty")

        if "sources" not in self.feeds_config:
            raise ValueError("Missing 'sources' section in feeds configuration")

        sources = self.feeds_config["sources"]
        if not isinstance(sources, list) or len(sources) == 0:
            raise ValueError("Sources must be a non-empty list")

        for i, entry in enumerate(sources):
            if not isinstance(entry, dict):
                raise ValueError(f"Invalid source entry at index {i}: Expected a dictionary.")
            if not validate_url(entry.get("url")):
                raise ValueError(f"Invalid source at index {i}: missing or invalid 'url'")
            for key in ("name", "region", "language"):
                if key in entry and (not isinstance(entry[key], str) or not entry[key].strip()):
                    raise ValueError(f"Invalid source at index {i}: '{key}' must be a non-empty string")

        logger.info("Feeds configuration validated")

    def _set_default_settings(self):
        """Recursively set default values for missing settings."""

        def merge_dicts(source, default):
            """Recursively merges default dict into source dict."""
            for key, value in default.items():
                if key not in source:
                    source[key] = copy.deepcopy(value)
                elif isinstance(value, dict) and isinstance(source[key], dict):
                    merge_dicts(source[key], value)
                # Existing values in source take precedence

        merge_dicts(self.settings, DEFAULT_SETTINGS)

    def get_sources(self) -> List[FeedSource]:
        """
        Build the configured feed sources.

        Name, region and language fall back to values derived from the URL.

        Returns:
            List of FeedSource, duplicates (same URL) removed
        """
        if not self.feeds_config:
            logger.warning("Feeds configuration not loaded, returning no sources.")
            return []

        sources = []
        seen_urls = set()
        for entry in self.feeds_config.get("sources", []):
            url = entry["url"].strip()
            if url in seen_urls:
                logger.warning(f"Skipping duplicate source URL: {url}")
                continue
            seen_urls.add(url)

            sources.append(FeedSource(
                name=entry.get("name") or determine_source(url),
                url=url,
                region=entry.get("region") or determine_region(url),
                language=entry.get("language") or determine_language(url)
            ))

        logger.info(f"Configured {len(sources)} sources across {len({s.region for s in sources})} regions")
        return sources

    def get_config_value(self, key_path: str, default=None):
        """
        Get configuration value using dot notation.

        Args:
            key_path: Dot-separated path to configuration value (e.g., "cache.expiry_hours")
            default: Default value if key not found

        Returns:
            Configuration value or default
        """
        if not self.settings:
            logger.warning(f"Settings configuration not loaded when trying to get value for '{key_path}'. Returning default.")
            return default

        value = self.settings
        for key in key_path.split('.'):
            if isinstance(value, dict) and key in value:
                value = value[key]
            else:
                return default

        return value
