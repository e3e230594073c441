import os
from pathlib import Path
from string import Template
from typing import Any, Dict, Optional

import structlog
import yaml
from dotenv import load_dotenv
from pydantic import ValidationError

from pretackler.models.config import PretacklerConfig
from pretackler.utils.exceptions import ConfigError

logger = structlog.get_logger()


def deep_merge(base: Dict[str, Any], overrides: Dict[str, Any]) -> Dict[str, Any]:
    """Merge overrides into base; nested dicts merge, None values are ignored."""
    merged = dict(base)
    for key, value in overrides.items():
        if value is None:
            continue
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


class ConfigManager:
    """Loads run configuration from an optional YAML file plus overrides"""

    def __init__(self, config_path: Optional[Path] = None, load_env: bool = True):
        self.config_path = Path(config_path) if config_path else None
        self.load_env = load_env
        self.env_loaded = False

    def read_file(self) -> Dict[str, Any]:
        """Raw settings from the YAML file, with ${VAR} substitution"""
        if self.config_path is None:
            return {}

        if not self.config_path.exists():
            raise ConfigError(f"Configuration file not found: {self.config_path}")

        try:
            raw_content = self.config_path.read_text(encoding="utf-8")
        except OSError as e:
            raise ConfigError(f"Failed to read config file: {e}")

        try:
            template = Template(raw_content)
            substituted_content = template.safe_substitute(os.environ)
            data = yaml.safe_load(substituted_content)
        except yaml.YAMLError as e:
            raise ConfigError(f"Failed to parse YAML or substitute variables: {e}")

        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ConfigError("Config file must contain a mapping at the top level")
        return data

    def load_config(self, overrides: Optional[Dict[str, Any]] = None) -> PretacklerConfig:
        """Load and validate configuration

        Args:
            overrides: Nested settings (e.g. from CLI flags) applied on top of
                the file; None values leave file/default values in place
        """
        if self.load_env and not self.env_loaded:
            load_dotenv()
            self.env_loaded = True

        data = deep_merge(self.read_file(), overrides or {})

        try:
            config = PretacklerConfig(**data)
        except ValidationError as e:
            raise ConfigError(f"Invalid configuration: {e}")

        logger.info(
            "config_loaded",
            source=str(self.config_path) if self.config_path else "defaults",
            version=config.version,
            model=config.api.model,
            long_channel_enabled=config.long_channel.enabled,
            rate_limit_enabled=config.rate_limit.enabled,
        )
        return config
