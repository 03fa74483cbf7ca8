"""
Layered configuration for solverlink.

Precedence: Environment > JSON config file > Defaults

Usage:
    from solverlink.config import get_config

    config = get_config()
    timeout = config.call_timeout
"""

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

logger = logging.getLogger(__name__)


class SolverLinkConfig:
    """
    Hierarchical configuration:
    1. Defaults
    2. JSON config file
    3. Environment variables (highest priority)
    """

    DEFAULTS: Dict[str, Any] = {
        # Backends, queried in this order during federated search
        'connections': [],

        # Transport
        'call_timeout': 30.0,
        'connect_timeout': 5.0,

        # Task execution
        'default_problem_type': 'pathfinding',
        'max_string_prop_length': 40,

        # Playback
        'onion_depth': 5,

        # General
        'debug_mode': False,
    }

    ENV_PREFIX = 'SOLVERLINK_'

    def __init__(self, config_file: Optional[Union[str, Path]] = None):
        self._config: Dict[str, Any] = {}
        self._config_file = config_file or os.getenv('SOLVERLINK_CONFIG')
        self._load_configuration()

    def _load_configuration(self):
        self._config = {key: (list(value) if isinstance(value, list) else value)
                        for key, value in self.DEFAULTS.items()}
        self._load_from_json_config()
        self._load_from_environment()
        self._validate_config()

        if self.debug_mode:
            logger.info("solverlink configuration loaded successfully")

    def _load_from_json_config(self):
        if not self._config_file:
            return

        config_path = Path(self._config_file)
        if not config_path.exists():
            logger.debug(f"No config file found at {config_path}")
            return

        try:
            with open(config_path, 'r', encoding='utf-8') as f:
                json_config = json.load(f)
        except (json.JSONDecodeError, IOError) as e:
            logger.warning(f"Failed to load JSON config from {config_path}: {e}")
            return

        # Filter out comment keys (starting with _)
        filtered_config = {
            k: v for k, v in json_config.items()
            if not k.startswith('_')
        }
        self._config.update(filtered_config)
        logger.debug(f"Loaded JSON config from {config_path}")

    def _load_from_environment(self):
        for key in self._config.keys():
            env_key = f"{self.ENV_PREFIX}{key.upper()}"
            env_value = os.getenv(env_key)

            if env_value is not None:
                converted_value = self._convert_env_value(env_value, self.DEFAULTS.get(key, self._config[key]))
                self._config[key] = converted_value
                logger.debug(f"Loaded environment variable: {env_key} = {converted_value}")

    def _convert_env_value(self, env_value: str, default_value: Any) -> Any:
        """Convert environment variable string to the type of the default."""
        if isinstance(default_value, bool):
            return env_value.lower() in ('true', '1', 'yes', 'on')
        elif isinstance(default_value, int):
            try:
                return int(env_value)
            except ValueError:
                logger.warning(f"Invalid integer value in environment: {env_value}")
                return default_value
        elif isinstance(default_value, float):
            try:
                return float(env_value)
            except ValueError:
                logger.warning(f"Invalid float value in environment: {env_value}")
                return default_value
        elif isinstance(default_value, list):
            # Comma-separated lists
            return [item.strip() for item in env_value.split(',') if item.strip()]
        else:
            return env_value

    def _validate_config(self):
        for key in ('call_timeout', 'connect_timeout'):
            value = self._config.get(key)
            if not isinstance(value, (int, float)) or isinstance(value, bool) or value <= 0:
                logger.warning(f"Invalid {key} {value!r}, using {self.DEFAULTS[key]}")
                self._config[key] = self.DEFAULTS[key]

        for key in ('max_string_prop_length', 'onion_depth'):
            value = self._config.get(key)
            if not isinstance(value, int) or isinstance(value, bool) or value < 1:
                logger.warning(f"Invalid {key} {value!r}, using {self.DEFAULTS[key]}")
                self._config[key] = self.DEFAULTS[key]

        connections = self._config.get('connections')
        if isinstance(connections, str):
            connections = [connections]
        if not isinstance(connections, list):
            logger.warning(f"Invalid connections {connections!r}, using none")
            connections = []
        self._config['connections'] = [str(url) for url in connections]

    def get(self, key: str, default: Any = None) -> Any:
        return self._config.get(key, default)

    def set(self, key: str, value: Any):
        """Set configuration value (runtime only)."""
        self._config[key] = value

    def get_all(self) -> Dict[str, Any]:
        return self._config.copy()

    def reload(self):
        self._load_configuration()

    @property
    def connections(self) -> List[str]:
        return list(self._config.get('connections', []))

    @property
    def call_timeout(self) -> float:
        return float(self._config.get('call_timeout', 30.0))

    @property
    def connect_timeout(self) -> float:
        return float(self._config.get('connect_timeout', 5.0))

    @property
    def default_problem_type(self) -> str:
        return self._config.get('default_problem_type', 'pathfinding')

    @property
    def max_string_prop_length(self) -> int:
        return self._config.get('max_string_prop_length', 40)

    @property
    def onion_depth(self) -> int:
        return self._config.get('onion_depth', 5)

    @property
    def debug_mode(self) -> bool:
        return self._config.get('debug_mode', False)


_config_instance: Optional[SolverLinkConfig] = None


def get_config() -> SolverLinkConfig:
    """Process-wide configuration, created on first use."""
    global _config_instance
    if _config_instance is None:
        _config_instance = SolverLinkConfig()
    return _config_instance


def reset_config() -> None:
    """Drop the cached instance (useful for testing)."""
    global _config_instance
    _config_instance = None


__all__ = ["SolverLinkConfig", "get_config", "reset_config"]
