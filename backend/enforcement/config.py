"""
Configuration Management

Loads every YAML and JSON file in the config directory into one tree keyed
by file stem's top-level sections, with dot-notation access and runtime
overrides from the environment.
"""

import os
import json
import logging
from pathlib import Path
from typing import Dict, Any, Optional

import yaml

logger = logging.getLogger(__name__)


DEFAULT_PENALTIES: Dict[str, int] = {
    "red_light": 1000,
    "overspeeding": 2000,
    "no_helmet": 1000,
    "wrong_way": 1500,
    "stop_line": 500,
}

DEFAULT_DUE_DAYS = 30
DEFAULT_TIMEZONE = "UTC"
DEFAULT_TIMEOUT_SECONDS = 5.0


class ConfigManager:
    """
    Manage application configuration from YAML and JSON files

    Provides:
    - Load all config files on startup
    - Dot notation access: config.get('enforcement.dueDays')
    - Environment overrides for deployment-specific values
    - Hot reload capability
    """

    # Environment variable -> dot-notation key
    ENV_OVERRIDES = {
        "DATABASE_URL": "database.url",
        "DATABASE_TIMEOUT": "database.timeoutSeconds",
        "ENFORCEMENT_TIMEZONE": "enforcement.timezone",
    }

    def __init__(self, config_dir: Optional[str] = None):
        """
        Initialize configuration manager

        Args:
            config_dir: Path to config directory (default: backend/config)
        """
        if config_dir:
            self.config_dir = Path(config_dir)
        else:
            self.config_dir = Path(__file__).parent.parent / "config"

        self.configs: Dict[str, Any] = {}
        self._load_all_configs()

    def _load_all_configs(self):
        """Load all configuration files from config directory"""
        if not self.config_dir.exists():
            logger.warning("Config directory %s not found, using defaults", self.config_dir)
        else:
            for yaml_file in sorted(self.config_dir.glob("*.yaml")):
                with open(yaml_file, "r") as f:
                    self._merge(yaml.safe_load(f) or {})
                logger.info("Loaded config: %s", yaml_file.name)

            for json_file in sorted(self.config_dir.glob("*.json")):
                with open(json_file, "r") as f:
                    self._merge(json.load(f))
                logger.info("Loaded config: %s", json_file.name)

        self._apply_env_overrides()

    def _merge(self, data: Dict[str, Any]):
        """Merge top-level sections of a loaded file into the tree"""
        for section, values in data.items():
            if isinstance(values, dict) and isinstance(self.configs.get(section), dict):
                self.configs[section].update(values)
            else:
                self.configs[section] = values

    def _apply_env_overrides(self):
        for env_name, key in self.ENV_OVERRIDES.items():
            value = os.getenv(env_name)
            if value:
                self.set(key, value)

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get configuration value by dot notation key

        Examples:
            config.get('enforcement.penalties.stop_line')
            config.get('database.timeoutSeconds', 5.0)

        Returns:
            Configuration value, or default when missing or null
        """
        value = self.configs
        for k in key.split("."):
            if isinstance(value, dict) and k in value:
                value = value[k]
            else:
                return default
        return default if value is None else value

    def set(self, key: str, value: Any):
        """
        Set a configuration value (runtime only, not persisted)

        Args:
            key: Dot-separated key path
            value: Value to set
        """
        keys = key.split(".")
        config = self.configs

        for k in keys[:-1]:
            if not isinstance(config.get(k), dict):
                config[k] = {}
            config = config[k]

        config[keys[-1]] = value

    def reload(self):
        """Reload all configuration files"""
        logger.info("Reloading configuration from %s", self.config_dir)
        self.configs.clear()
        self._load_all_configs()

    # ============================================
    # Section helpers
    # ============================================

    def get_penalty_table(self) -> Dict[str, int]:
        """Penalty amounts keyed by violation type"""
        table = dict(DEFAULT_PENALTIES)
        table.update({k: int(v) for k, v in self.get("enforcement.penalties", {}).items()})
        return table

    def get_due_days(self) -> int:
        return int(self.get("enforcement.dueDays", DEFAULT_DUE_DAYS))

    def get_timezone(self) -> str:
        return str(self.get("enforcement.timezone", DEFAULT_TIMEZONE))

    def get_database_url(self) -> Optional[str]:
        return self.get("database.url")

    def get_store_timeout(self) -> float:
        return float(self.get("database.timeoutSeconds", DEFAULT_TIMEOUT_SECONDS))

    def get_api_config(self) -> Dict[str, Any]:
        return self.configs.get("api", {}) or {}

    def get_telemetry_config(self) -> Dict[str, Any]:
        """Telemetry values that are actually set (nulls dropped)"""
        telemetry = self.configs.get("telemetry", {}) or {}
        return {k: v for k, v in telemetry.items() if v is not None}


# Global configuration instance
config: Optional[ConfigManager] = None


def get_config() -> ConfigManager:
    """Get the global configuration instance"""
    global config
    if config is None:
        config = ConfigManager()
    return config
