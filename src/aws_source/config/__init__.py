"""Configuration system for the AWS source."""

from .loader import DEFAULT_CONFIG_PATH, ConfigLoader, load_config
from .schema import Settings, validate_config

__all__ = ["DEFAULT_CONFIG_PATH", "ConfigLoader", "Settings", "load_config", "validate_config"]
