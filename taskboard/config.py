"""
Configuration management for the taskboard engine.

Loads settings from config.ini with environment variable overrides.
Provides centralized configuration for the database and the move engine.
"""

import configparser
import os
from pathlib import Path
from typing import Any, Callable, Dict, Optional

from taskboard.logging_config import get_logger

logger = get_logger(__name__)

DEFAULT_DATABASE_URL = "sqlite+aiosqlite:///" + str(Path.home() / ".taskboard" / "taskboard.db")


def _env_bool(name: str) -> Optional[bool]:
    """Read a true/false environment variable, None when unset."""
    value = os.getenv(name, '').strip().lower()
    if not value:
        return None
    return value in ('1', 'true', 'yes', 'on')


class Config:
    """Engine configuration manager."""

    def __init__(self, config_path: Optional[Path] = None):
        """
        Initialize configuration manager.

        Args:
            config_path: Path to config file, defaults to ~/.taskboard/config.ini
        """
        self.config_path = config_path or self._default_config_path()
        self._config = configparser.ConfigParser()
        self._load()

    def _default_config_path(self) -> Path:
        """Get default config path."""
        return Path.home() / ".taskboard" / "config.ini"

    def _load(self):
        """Load configuration from file."""
        if self.config_path.exists():
            try:
                self._config.read(self.config_path)
                logger.info(f"Loaded configuration from {self.config_path}")
            except configparser.Error as e:
                logger.warning(f"Failed to read config file: {e}. Using defaults.")
        else:
            logger.debug(f"Config file not found at {self.config_path}. Using defaults.")

    def get_database_config(self) -> Dict[str, Any]:
        """
        Get database configuration with environment overrides.

        Environment variables take precedence over config file:
        - TASKBOARD_DATABASE_URL

        Returns:
            Dictionary with database configuration
        """
        config = {
            'url': os.getenv('TASKBOARD_DATABASE_URL') or
                   self._config.get('database', 'url', fallback=DEFAULT_DATABASE_URL),
        }

        logger.debug(f"Database config: url={config['url']}")

        return config

    def _engine_number(self, env_name: str, key: str, default: str, cast: Callable[[str], Any]) -> Any:
        """Read a numeric engine setting, env first; unparsable values fall back to default."""
        raw = os.getenv(env_name) or self._config.get('engine', key, fallback=default)
        try:
            return cast(raw)
        except ValueError:
            logger.warning(f"Invalid {key}={raw!r}, using {default}")
            return cast(default)

    def get_engine_config(self) -> Dict[str, Any]:
        """
        Get move engine configuration with environment overrides.

        Environment variables take precedence over config file:
        - TASKBOARD_MAX_RETRIES
        - TASKBOARD_RETRY_BASE_DELAY
        - TASKBOARD_AGGREGATION_DEPTH (0 walks every ancestor)
        - TASKBOARD_VERIFY_POSITIONS

        Returns:
            Dictionary with engine configuration
        """
        verify_env = _env_bool('TASKBOARD_VERIFY_POSITIONS')
        verify_positions = (
            verify_env
            if verify_env is not None
            else self._config.getboolean('engine', 'verify_positions', fallback=False)
        )

        config = {
            'max_retries': self._engine_number('TASKBOARD_MAX_RETRIES', 'max_retries', '3', int),
            'retry_base_delay': self._engine_number(
                'TASKBOARD_RETRY_BASE_DELAY', 'retry_base_delay', '0.05', float
            ),
            'aggregation_depth': self._engine_number(
                'TASKBOARD_AGGREGATION_DEPTH', 'aggregation_depth', '0', int
            ),
            'verify_positions': verify_positions,
        }

        if config['max_retries'] < 0:
            logger.warning(f"Negative max_retries={config['max_retries']}, using 0")
            config['max_retries'] = 0
        if config['aggregation_depth'] < 0:
            logger.warning(f"Negative aggregation_depth={config['aggregation_depth']}, using 0")
            config['aggregation_depth'] = 0

        logger.debug(f"Engine config: max_retries={config['max_retries']}, "
                     f"retry_base_delay={config['retry_base_delay']}, "
                     f"aggregation_depth={config['aggregation_depth']}, "
                     f"verify_positions={config['verify_positions']}")

        return config

    def get(self, section: str, key: str, fallback: Any = None) -> Any:
        """
        Get configuration value with fallback.

        Args:
            section: Config section name
            key: Config key name
            fallback: Default value if not found

        Returns:
            Configuration value or fallback
        """
        return self._config.get(section, key, fallback=fallback)

    def get_bool(self, section: str, key: str, fallback: bool = False) -> bool:
        """Get boolean configuration value."""
        return self._config.getboolean(section, key, fallback=fallback)

    def get_int(self, section: str, key: str, fallback: int = 0) -> int:
        """Get integer configuration value."""
        return self._config.getint(section, key, fallback=fallback)

    def has_section(self, section: str) -> bool:
        """
        Check if config section exists.

        Args:
            section: Section name to check

        Returns:
            True if section exists
        """
        return self._config.has_section(section)

    def sections(self) -> list:
        """Get list of all configuration sections."""
        return self._config.sections()
