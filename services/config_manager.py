from typing import Dict, Any, Optional
import json
import os
import logging
from pathlib import Path

logger = logging.getLogger(__name__)

# Environment variables that override file settings, with their value types
ENV_OVERRIDES = {
    'DB_PATH': ('db_path', str),
    'CHECK_INTERVAL': ('check_interval', int),
    'LOG_LEVEL': ('log_level', str),
    'LOG_CHANNEL_ID': ('log_channel_id', int),
    'ASSETS_BASE_URL': ('assets_base_url', str),
    'MERGE_WINDOW_SECONDS': ('merge_window_seconds', int),
}


class ConfigManager:
    """Manages application configuration"""

    def __init__(self, config_path: str = "config.json"):
        self.config_path = Path(config_path)
        self._config: Dict[str, Any] = {}
        self._load_config()

    def get(self, key: str, default: Any = None) -> Any:
        """Get configuration value"""
        return self._config.get(key, default)

    def set(self, key: str, value: Any) -> None:
        """Set configuration value"""
        self._config[key] = value
        self._save_config()

    def get_platform_credentials(self, platform: str) -> Dict[str, Optional[str]]:
        """Get platform-specific credentials"""
        platform_config = self._config.get('platforms', {}).get(platform, {})

        # Also check environment variables, e.g. TWITCH_CLIENT_ID -> client_id
        env_prefix = platform.upper()
        env_credentials = {
            key.replace(f"{env_prefix}_", '', 1).lower(): value
            for key, value in os.environ.items()
            if key.startswith(f"{env_prefix}_")
        }

        return {**platform_config, **env_credentials}

    def _load_config(self) -> None:
        """Load configuration from file, then apply environment overrides"""
        config = self._get_default_config()
        if self.config_path.exists():
            try:
                with open(self.config_path, 'r') as f:
                    config.update(json.load(f))
            except (OSError, json.JSONDecodeError) as e:
                logger.error(f"Error loading config: {e}")
        else:
            self._config = config
            self._save_config()

        for env_key, (key, cast) in ENV_OVERRIDES.items():
            value = os.getenv(env_key)
            if value in (None, ''):
                continue
            try:
                config[key] = cast(value)
            except ValueError:
                logger.error(f"Ignoring invalid value for {env_key}: {value!r}")

        self._config = config

    def _save_config(self) -> None:
        """Save configuration to file"""
        try:
            with open(self.config_path, 'w') as f:
                json.dump(self._config, f, indent=4)
        except OSError as e:
            logger.error(f"Error saving config: {e}")

    def _get_default_config(self) -> Dict[str, Any]:
        """Get default configuration"""
        return {
            'db_path': 'bot_data.db',
            'check_interval': 60,
            'log_level': 'INFO',
            'log_channel_id': None,
            'assets_base_url': None,
            'merge_window_seconds': 15,
            'claim_timeout_seconds': 300,
            'platforms': {
                'twitch': {},
                'kick': {}
            }
        }
