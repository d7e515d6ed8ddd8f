"""Configuration management using XDG Base Directory Specification.

This module provides centralized configuration management following Linux
standards for config, cache, and data directories.
"""

import configparser
import os
from pathlib import Path
from typing import Optional

from folderplayer.exceptions import ConfigurationError


class Config:
    """
    Configuration manager using XDG Base Directory Specification.

    Follows Linux standards:
    - Config: ~/.config/folderplayer/ (or XDG_CONFIG_HOME)
    - Cache: ~/.cache/folderplayer/ (or XDG_CACHE_HOME)
    - Data: ~/.local/share/folderplayer/ (or XDG_DATA_HOME)
    """

    _instance: Optional['Config'] = None

    def __init__(self) -> None:
        """
        Initialize configuration manager.

        Sets up XDG Base Directory paths and loads or creates configuration.
        """
        # XDG Base Directory paths
        self.config_home = Path(os.getenv('XDG_CONFIG_HOME', Path.home() / '.config'))
        self.cache_home = Path(os.getenv('XDG_CACHE_HOME', Path.home() / '.cache'))
        self.data_home = Path(os.getenv('XDG_DATA_HOME', Path.home() / '.local' / 'share'))

        # Application-specific directories
        self.app_name = 'folderplayer'
        self.config_dir = self.config_home / self.app_name
        self.cache_dir = self.cache_home / self.app_name
        self.data_dir = self.data_home / self.app_name

        self.config_dir.mkdir(parents=True, exist_ok=True)
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        self.data_dir.mkdir(parents=True, exist_ok=True)

        self.config_file = self.config_dir / 'config.ini'
        self.config = configparser.ConfigParser()

        self._load_config()

    @classmethod
    def get_instance(cls) -> 'Config':
        """Get the singleton config instance."""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    def _load_config(self) -> None:
        """Load configuration from file, filling in any missing defaults."""
        self._apply_defaults()
        if self.config_file.exists():
            self.config.read(self.config_file)
        else:
            self.save()

    def _apply_defaults(self) -> None:
        """Default configuration with sensible values."""
        self.config['browser'] = {
            'cache_ttl_minutes': '20',
            'default_sort_field': 'NAME',
            'default_sort_ascending': 'true',
            'local_roots': str(Path.home() / 'Music'),
        }

        self.config['network'] = {
            'request_timeout': '30',
            'max_auth_attempts': '3',
        }

        self.config['playback'] = {
            'progress_interval': '1.0',
            'position_save_threshold_ms': '5000',
        }

        self.config['lyrics'] = {
            'api_url': 'https://api.lrc.cx/lyrics',
        }

    def save(self) -> None:
        """Write current configuration state to the config file."""
        try:
            with open(self.config_file, 'w') as f:
                self.config.write(f)
        except OSError as e:
            from folderplayer.logging import get_logger
            logger = get_logger(__name__)
            logger.error("Failed to save config: %s", e, exc_info=True)

    def get(self, section: str, key: str, fallback: Optional[str] = None) -> Optional[str]:
        """Get a configuration value."""
        return self.config.get(section, key, fallback=fallback)

    def set(self, section: str, key: str, value: str) -> None:
        """
        Set a configuration value.

        Args:
            section: Configuration section name
            key: Configuration key name
            value: Value to set (will be converted to string)
        """
        if section not in self.config:
            self.config.add_section(section)
        self.config.set(section, key, str(value))
        self.save()

    def get_bool(self, section: str, key: str, fallback: bool = False) -> bool:
        """Get a boolean configuration value."""
        try:
            return self.config.getboolean(section, key, fallback=fallback)
        except ValueError as e:
            raise ConfigurationError(f"[{section}] {key}: {e}") from e

    def get_int(self, section: str, key: str, fallback: int = 0) -> int:
        """Get an integer configuration value."""
        try:
            return self.config.getint(section, key, fallback=fallback)
        except ValueError as e:
            raise ConfigurationError(f"[{section}] {key}: {e}") from e

    def get_float(self, section: str, key: str, fallback: float = 0.0) -> float:
        """Get a float configuration value."""
        try:
            return self.config.getfloat(section, key, fallback=fallback)
        except ValueError as e:
            raise ConfigurationError(f"[{section}] {key}: {e}") from e

    def get_list(self, section: str, key: str, separator: str = ':', fallback: Optional[list[str]] = None) -> list[str]:
        """
        Get a list configuration value (colon separated by default).

        Args:
            section: Configuration section name
            key: Configuration key name
            separator: Separator character (default: ':')
            fallback: Default value if not found

        Returns:
            List of strings
        """
        value = self.get(section, key)
        if value:
            return [item.strip() for item in value.split(separator) if item.strip()]
        return fallback or []

    # Convenience properties
    @property
    def cache_ttl_ms(self) -> int:
        """Directory listing cache lifetime in milliseconds."""
        return self.get_int('browser', 'cache_ttl_minutes', 20) * 60 * 1000

    @property
    def default_sort_field(self) -> str:
        return (self.get('browser', 'default_sort_field', 'NAME') or 'NAME').upper()

    @property
    def default_sort_ascending(self) -> bool:
        return self.get_bool('browser', 'default_sort_ascending', True)

    @property
    def local_roots(self) -> list[Path]:
        """Local music roots that exist on this machine."""
        roots = self.get_list('browser', 'local_roots')
        return [Path(r).expanduser() for r in roots if Path(r).expanduser().is_dir()]

    @property
    def request_timeout(self) -> float:
        return self.get_float('network', 'request_timeout', 30.0)

    @property
    def max_auth_attempts(self) -> int:
        return self.get_int('network', 'max_auth_attempts', 3)

    @property
    def progress_interval(self) -> float:
        """Seconds between progress ticks while playing."""
        return self.get_float('playback', 'progress_interval', 1.0)

    @property
    def position_save_threshold_ms(self) -> int:
        return self.get_int('playback', 'position_save_threshold_ms', 5000)

    @property
    def lyric_api_url(self) -> str:
        return self.get('lyrics', 'api_url', 'https://api.lrc.cx/lyrics') or ''

    @property
    def playlists_dir(self) -> Path:
        """Get saved playlists directory."""
        playlists_dir = self.data_dir / 'playlists'
        playlists_dir.mkdir(parents=True, exist_ok=True)
        return playlists_dir

    @property
    def log_dir(self) -> Path:
        """Get log directory."""
        log_dir = self.data_dir / 'logs'
        log_dir.mkdir(parents=True, exist_ok=True)
        return log_dir

    def preferences_file(self, domain: str) -> Path:
        """JSON file backing one preference domain (playback, sources, lyrics)."""
        return self.data_dir / f'{domain}.json'


# Convenience function
def get_config() -> Config:
    """Get the configuration instance."""
    return Config.get_instance()
