"""
Configuration management using database storage.

Provides access to configuration values with defaults and type conversion.
A few keys may also be supplied through environment variables, which win
over stored values.
"""

import logging
import os
import secrets
from typing import Any, Dict, Optional

from .database import ConfigRepository, Database

# Keys that can be overridden from the environment
ENV_OVERRIDES = {
    "youtube_api_key": "YOUTUBE_API_KEY",
    "external_url": "STAGEPASS_EXTERNAL_URL",
}


class ConfigManager:
    """Manages configuration stored in database."""

    DEFAULTS = {
        "youtube_api_key": None,
        "poll_interval_seconds": "5",  # Song list and participant refresh interval
        "default_max_capacity": "10",
        "search_max_results": "5",  # Suggestions shown while adding a song (max 10)
        "requested_by_placeholder": "Guest",
        "session_secret": None,  # Generated on first start
        "external_url": None,  # Base URL encoded in share QR codes
    }

    def __init__(self, database: Database):
        """
        Initialize ConfigManager.

        Args:
            database: Database instance
        """
        self.database = database
        self.repository = ConfigRepository(database)
        self.logger = logging.getLogger(__name__)
        self.repository.initialize_defaults(self.DEFAULTS)

        if not self.repository.get("session_secret"):
            self.repository.set("session_secret", secrets.token_hex(32))
            self.logger.info("Generated new session secret")

    def get(self, key: str, default: Any = None) -> Optional[str]:
        """
        Get a configuration value.

        Args:
            key: Configuration key
            default: Default value if not found (uses DEFAULTS if None)

        Returns:
            Configuration value as string, or None if not found
        """
        env_name = ENV_OVERRIDES.get(key)
        if env_name and os.environ.get(env_name):
            return os.environ[env_name]

        if default is None:
            default = self.DEFAULTS.get(key)

        entry = self.repository.get(key)
        if entry:
            return entry.value if entry.value else default
        return default

    def get_int(self, key: str, default: Optional[int] = None) -> Optional[int]:
        """Get configuration value as integer."""
        value = self.get(key)
        if value is None or value == "":
            return default
        try:
            return int(value)
        except ValueError:
            self.logger.warning("Invalid integer value for %s: %s", key, value)
            return default

    def get_float(self, key: str, default: Optional[float] = None) -> Optional[float]:
        """Get configuration value as float."""
        value = self.get(key)
        if value is None or value == "":
            return default
        try:
            return float(value)
        except ValueError:
            self.logger.warning("Invalid float value for %s: %s", key, value)
            return default

    def set(self, key: str, value: Any) -> bool:
        """
        Set a configuration value.

        Args:
            key: Configuration key
            value: Value to set (will be converted to string)

        Returns:
            True if successful
        """
        return self.repository.set(key, str(value))

    def get_all(self, include_secrets: bool = False) -> Dict[str, Optional[str]]:
        """
        Get all configuration values merged over the defaults.

        The session secret and API key are masked unless include_secrets is set.
        """
        result = dict(self.DEFAULTS)
        result.update({entry.key: entry.value for entry in self.repository.get_all()})
        if not include_secrets:
            for key in ("session_secret", "youtube_api_key"):
                if result.get(key):
                    result[key] = "********"
        return result
