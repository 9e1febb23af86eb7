"""
ScanNorm - Configuration Manager

This module provides centralized JSON-based configuration management.
It handles loading, saving and upgrading the settings file, and builds
validated pipeline settings from it.
"""

import copy
import json
import os
from dataclasses import fields
from typing import Any, Final

from scannorm.config import CONFIG_FILE_PATH, DEFAULT_DOWNLOAD_PURPOSE
from scannorm.constants import DEFAULT_RUN_TIMEOUT_SECS, DEFAULT_RUNNER_WORKERS
from scannorm.services.pipeline_config import PipelineConfig
from scannorm.utils.logger import logger

# Default configuration values
DEFAULT_CONFIG: Final[dict[str, Any]] = {
    "version": 1,
    "pipeline": PipelineConfig().to_dict(),
    "runner": {
        "max_workers": DEFAULT_RUNNER_WORKERS,
        "timeout_seconds": DEFAULT_RUN_TIMEOUT_SECS,
    },
    "download": {
        "purpose": DEFAULT_DOWNLOAD_PURPOSE,
        "directory": "",
    },
}


class ConfigManager:
    """Manages application configuration in JSON format.

    This class provides a centralized way to load, save, and access
    configuration settings. Missing keys are filled from the defaults
    when an older settings file is loaded.
    """

    def __init__(self, config_path: str | None = None) -> None:
        """Initialize the configuration manager.

        Args:
            config_path: Optional path to the configuration file.
                        Defaults to CONFIG_FILE_PATH.
        """
        self.config_path = config_path or CONFIG_FILE_PATH
        self._config: dict[str, Any] = {}

        # Ensure config directory exists
        os.makedirs(os.path.dirname(os.path.abspath(self.config_path)), exist_ok=True)

        # Load or create configuration
        self._load_config()

    def _load_config(self) -> None:
        """Load configuration from file or create default."""
        if os.path.exists(self.config_path):
            try:
                with open(self.config_path, encoding="utf-8") as f:
                    self._config = json.load(f)
                if not isinstance(self._config, dict):
                    raise ValueError("top level must be an object")
                logger.info("Configuration loaded from JSON")

                # Upgrade config if needed
                self._upgrade_config()

            except (OSError, ValueError) as e:
                logger.error(f"Error loading config: {e}")
                self._config = self._get_default_config()
        else:
            self._config = self._get_default_config()
            self.save()

    def _get_default_config(self) -> dict[str, Any]:
        """Get a copy of the default configuration.

        Returns:
            Deep copy of default configuration dictionary.
        """
        return copy.deepcopy(DEFAULT_CONFIG)

    def _upgrade_config(self) -> None:
        """Upgrade configuration to latest version if needed."""
        current_version = self._config.get("version", 0)

        if current_version < DEFAULT_CONFIG["version"]:
            # Add any missing keys from default config
            self._merge_defaults(self._config, DEFAULT_CONFIG)
            self._config["version"] = DEFAULT_CONFIG["version"]
            logger.info(f"Configuration upgraded to version {DEFAULT_CONFIG['version']}")

    def _merge_defaults(self, config: dict, defaults: dict) -> None:
        """Merge default values into config for missing keys.

        Args:
            config: Current configuration dictionary.
            defaults: Default configuration dictionary.
        """
        for key, value in defaults.items():
            if key not in config:
                config[key] = copy.deepcopy(value)
            elif isinstance(value, dict) and isinstance(config.get(key), dict):
                self._merge_defaults(config[key], value)

    def save(self) -> bool:
        """Save configuration to file.

        Returns:
            True if save was successful, False otherwise.
        """
        try:
            with open(self.config_path, "w", encoding="utf-8") as f:
                json.dump(self._config, f, indent=2, ensure_ascii=False)
            logger.debug("Configuration saved to JSON")
            return True
        except OSError as e:
            logger.error(f"Error saving config: {e}")
            return False

    def get(self, key_path: str, default: Any = None) -> Any:
        """Get a configuration value by dot-separated path.

        Args:
            key_path: Dot-separated path to the config value (e.g., "pipeline.fill_color")
            default: Default value if key not found

        Returns:
            Configuration value or default
        """
        keys = key_path.split(".")
        value = self._config

        for key in keys:
            if isinstance(value, dict) and key in value:
                value = value[key]
            else:
                return default

        return value

    def set(self, key_path: str, value: Any, save_immediately: bool = True) -> None:
        """Set a configuration value by dot-separated path.

        Args:
            key_path: Dot-separated path to the config value
            value: Value to set
            save_immediately: Whether to save to file immediately
        """
        keys = key_path.split(".")
        config = self._config

        # Navigate to parent key
        for key in keys[:-1]:
            if not isinstance(config.get(key), dict):
                config[key] = {}
            config = config[key]

        # Set the value
        config[keys[-1]] = value

        if save_immediately:
            self.save()

    def pipeline_config(self) -> PipelineConfig:
        """Build validated pipeline settings from the ``pipeline`` section.

        Unknown keys are ignored with a warning.

        Raises:
            ConfigurationError: if a setting is out of range
        """
        section = self.get("pipeline", {})
        if not isinstance(section, dict):
            logger.warning("Ignoring non-object 'pipeline' section")
            section = {}

        known = {f.name for f in fields(PipelineConfig)}
        unknown = sorted(set(section) - known)
        if unknown:
            logger.warning(f"Ignoring unknown pipeline settings: {', '.join(unknown)}")

        return PipelineConfig.from_dict(section)
