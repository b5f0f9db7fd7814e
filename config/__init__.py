"""
Configuration Module for the Bill Extraction System.

The bundled settings.yaml holds every default: thresholds, proximity
windows, confidence weights, timeouts. A user file given with --config
only needs the keys it changes; it is merged over the defaults section
by section.
"""

import copy
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

DEFAULTS_PATH = Path(__file__).parent / "settings.yaml"


def _read_yaml(path: Path) -> Dict[str, Any]:
    if not path.exists():
        raise FileNotFoundError(f"Configuration file not found: {path}")
    with open(path, 'r', encoding='utf-8') as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Configuration file {path} must contain a mapping")
    return data


def merge_settings(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """
    Recursively merge two settings trees.

    Mappings are merged key by key; any other value in the override
    (lists included) replaces the base value.

    Example:
        >>> merge_settings({"extraction": {"timeout_seconds": 10, "max_bills": 10}},
        ...                {"extraction": {"timeout_seconds": 30}})
        {'extraction': {'timeout_seconds': 30, 'max_bills': 10}}
    """
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = merge_settings(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


class ConfigurationManager:
    """
    Process-wide settings of the bill extraction system.

    Attributes:
        config_path (Optional[Path]): User settings file merged over the defaults.

    Example:
        >>> config = ConfigurationManager()
        >>> config.get("extraction.confidence_threshold")
        0.2
        >>> config.get_section("positional")["window"]
        {'x': 300, 'y': 30}
    """

    _instance: Optional['ConfigurationManager'] = None
    _config: Dict[str, Any] = {}

    def __new__(cls, config_path: Optional[str] = None) -> 'ConfigurationManager':
        # One instance per process; components read it through get_config()
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._initialized = False
        return cls._instance

    def __init__(self, config_path: Optional[str] = None) -> None:
        """
        Initialize the configuration manager.

        Args:
            config_path: Optional user settings file. Ignored when the
                         instance already exists; use load() to switch.
        """
        if self._initialized:
            return

        self.config_path = Path(config_path) if config_path else None
        self._load_config()
        self._initialized = True

    @classmethod
    def load(cls, config_path: Optional[str] = None) -> 'ConfigurationManager':
        """Replace the process-wide instance with one reading config_path."""
        cls.reset()
        return cls(config_path)

    def _load_config(self) -> None:
        """
        Read the defaults and merge the user file over them.

        Raises:
            FileNotFoundError: If a settings file doesn't exist.
            ValueError: If a settings file is not a mapping.
            yaml.YAMLError: If a settings file is invalid YAML.
        """
        settings = _read_yaml(DEFAULTS_PATH)
        if self.config_path is not None:
            settings = merge_settings(settings, _read_yaml(self.config_path))
        self._config = settings

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get a configuration value using dot notation.

        Args:
            key: Configuration key in dot notation (e.g., "transfer.max_chunks").
            default: Default value if key doesn't exist.

        Returns:
            Configuration value or default.

        Example:
            >>> config.get("languages.default")
            "en"
            >>> config.get("nonexistent.key", "default_value")
            "default_value"
        """
        value = self._config
        for part in key.split('.'):
            if not isinstance(value, dict) or part not in value:
                return default
            value = value[part]
        return value

    def get_section(self, name: str) -> Dict[str, Any]:
        """Copy of a top-level section; empty when absent."""
        section = self._config.get(name)
        return copy.deepcopy(section) if isinstance(section, dict) else {}

    def get_all(self) -> Dict[str, Any]:
        return copy.deepcopy(self._config)

    def reload(self) -> None:
        """Re-read the settings files."""
        self._load_config()

    @classmethod
    def reset(cls) -> None:
        """Forget the process-wide instance."""
        cls._instance = None


def get_config(key: str, default: Any = None) -> Any:
    """
    Convenience function to get configuration values.

    Args:
        key: Configuration key in dot notation.
        default: Default value if key doesn't exist.

    Returns:
        Configuration value or default.
    """
    return ConfigurationManager().get(key, default)


__all__ = ['ConfigurationManager', 'get_config', 'merge_settings']
