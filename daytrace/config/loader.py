"""
Configuration loader
Supports loading configuration from TOML and YAML files, with environment variable override support
"""

import logging
import os
import re
from pathlib import Path
from typing import Any, Dict, Optional

import toml
import yaml

logger = logging.getLogger(__name__)

CONFIG_DIR_ENV = "DAYTRACE_CONFIG_DIR"


def get_config_dir() -> Path:
    """Directory holding config.toml, the database and logs

    ``$DAYTRACE_CONFIG_DIR`` wins over ``~/.config/daytrace``.
    """
    override = os.getenv(CONFIG_DIR_ENV)
    if override:
        return Path(override)
    return Path.home() / ".config" / "daytrace"


class ConfigLoader:
    """Configuration loader class"""

    def __init__(self, config_file: Optional[str] = None):
        self.config_file = config_file or self._get_default_config_file()
        self._config: Dict[str, Any] = {}

    def _get_default_config_file(self) -> str:
        config_file = get_config_dir() / "config.toml"
        logger.info(f"Using configuration file: {config_file}")
        return str(config_file)

    def load(self) -> Dict[str, Any]:
        """Load configuration, create default configuration if it doesn't exist"""
        config_path = Path(self.config_file)

        if not config_path.exists():
            logger.info(f"Configuration file doesn't exist: {self.config_file}")
            self._create_default_config(config_path)

        try:
            with open(self.config_file, "r", encoding="utf-8") as f:
                config_content = f.read()

            config_content = self._replace_env_vars(config_content)

            if self.config_file.endswith(".toml"):
                self._config = toml.loads(config_content)
            else:
                self._config = yaml.safe_load(config_content) or {}

            logger.info(f"Configuration file loaded: {self.config_file}")
            return self._config

        except (yaml.YAMLError, toml.TomlDecodeError) as e:
            logger.error(f"Configuration file parsing error: {e}")
            raise
        except OSError as e:
            logger.error(f"Configuration loading failed: {e}")
            raise

    def _create_default_config(self, config_path: Path) -> None:
        """Create default configuration file"""
        try:
            config_path.parent.mkdir(parents=True, exist_ok=True)
            with open(config_path, "w", encoding="utf-8") as f:
                f.write(self._get_default_config_content(config_path.parent))
            logger.info(f"Default configuration file created: {config_path}")
        except OSError as e:
            logger.error(f"Failed to create default configuration file: {e}")
            raise

    def _get_default_config_content(self, config_dir: Path) -> str:
        """Get default configuration content"""
        return f"""# daytrace configuration file

[database]
path = '{config_dir / "daytrace.db"}'

[logging]
level = "INFO"
logs_dir = '{config_dir / "logs"}'
max_file_size = "10MB"
backup_count = 5

[pipeline]
timezone = "${{DAYTRACE_TIMEZONE:UTC}}"
place_radius_m = 150
place_match_threshold = 0.7
merge_gap_seconds = 300
merge_distance_m = 200
min_dwell_seconds = 300
moving_speed_mps = 1.0
trim_floor_seconds = 60
extension_window_seconds = 60

[place_lookup]
enabled = false
url = "${{DAYTRACE_PLACE_LOOKUP_URL:}}"
api_key = "${{DAYTRACE_PLACE_LOOKUP_KEY:}}"
timeout = 15.0
max_points = 20
"""

    def _replace_env_vars(self, content: str) -> str:
        """Replace environment variable placeholders"""

        def replace_var(match):
            var_name = match.group(1)
            default_value = match.group(2) if match.group(2) else ""
            return os.getenv(var_name, default_value)

        # ${VAR_NAME} or ${VAR_NAME:default_value}
        pattern = r"\$\{([^}:]+)(?::([^}]*))?\}"
        return re.sub(pattern, replace_var, content)

    def get(self, key: str, default: Any = None) -> Any:
        """Get configuration value, supports dot-separated nested keys"""
        value: Any = self._config
        try:
            for k in key.split("."):
                value = value[k]
            return value
        except (KeyError, TypeError):
            return default

    def set(self, key: str, value: Any) -> bool:
        """Set configuration value, supports dot-separated nested keys"""
        keys = key.split(".")
        config = self._config

        for k in keys[:-1]:
            if k not in config:
                config[k] = {}
            config = config[k]

        config[keys[-1]] = value
        return self.save()

    def save(self) -> bool:
        """Save configuration to file"""
        try:
            config_path = Path(self.config_file)
            config_path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.config_file, "w", encoding="utf-8") as f:
                toml.dump(self._config, f)
            logger.info(f"Configuration saved to: {self.config_file}")
            return True
        except OSError as e:
            logger.error(f"Failed to save configuration: {e}")
            return False


def load_config(config_file: Optional[str] = None) -> Dict[str, Any]:
    """Convenience function for loading configuration"""
    loader = get_config(config_file)
    if loader._config:
        return loader._config
    return loader.load()


_config_instance: Optional[ConfigLoader] = None


def get_config(config_file: Optional[str] = None) -> ConfigLoader:
    """Get global configuration instance"""
    global _config_instance
    if config_file is not None:
        _config_instance = ConfigLoader(config_file)
        _config_instance.load()
    elif _config_instance is None:
        _config_instance = ConfigLoader()
        _config_instance.load()
    return _config_instance


def reset_config() -> None:
    """Drop the cached global instance (next get_config() reloads)"""
    global _config_instance
    _config_instance = None
