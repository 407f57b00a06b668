"""Configuration loader for the YAML config file, environment and flags."""

import os
from ruamel.yaml import YAML
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union
import logging

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "/etc/srcman/config/source.yaml"

DEFAULTS: Dict[str, Any] = {
    "log": "info",
    "nats_servers": ["nats://localhost:4222", "nats://nats:4222"],
    "nats_name_prefix": "",
    "nats_creds_file": "",
    "nats_nkey_seed_file": "",
    "nats_tls_cert": "",
    "nats_tls_key": "",
    "nats_tls_ca": "",
    "max_parallel": 2000,
    "health_check_port": 8080,
    "honeycomb_api_key": "",
    "sentry_dsn": "",
    "run_mode": "release",
    "aws_access_strategy": "defaults",
    "aws_access_key_id": "",
    "aws_secret_access_key": "",
    "aws_external_id": "",
    "aws_target_role_arn": "",
    "aws_profile": "",
    "aws_regions": [],
    "auto_config": False,
}

# Keys whose env/file values may be given as a comma separated string
LIST_KEYS = {"nats_servers", "aws_regions"}


class ConfigLoader:
    """Handles loading and merging configuration from multiple sources."""

    def load_from_file(self, config_path: Union[str, Path]) -> Dict[str, Any]:
        """Load configuration from a YAML file.

        Keys may use dashes, as the flags do, or underscores.

        Args:
            config_path: Path to YAML configuration file

        Returns:
            Configuration dictionary with underscore keys

        Raises:
            FileNotFoundError: If config file doesn't exist
            ruamel.yaml.YAMLError: If YAML is invalid
        """
        config_path = Path(config_path)

        if not config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        try:
            yaml = YAML(typ='safe')

            with open(config_path, 'r') as f:
                config = yaml.load(f) or {}

            logger.info(f"Using config file: {config_path}")
            return normalise_keys(config)

        except Exception as e:
            logger.error(f"Invalid YAML in {config_path}: {e}")
            raise

    def load_from_env(self, environ: Optional[Mapping[str, str]] = None) -> Dict[str, Any]:
        """Load known settings from environment variables.

        Each setting is read from its upper-cased name, so `aws_regions`
        comes from AWS_REGIONS.
        """
        environ = os.environ if environ is None else environ
        config = {}

        for key in DEFAULTS:
            value = environ.get(key.upper())
            if value is not None and value != "":
                config[key] = value

        return config

    def merge_configs(self, *configs: Dict[str, Any]) -> Dict[str, Any]:
        """Merge multiple configuration dictionaries.

        Args:
            *configs: Configuration dictionaries to merge (lowest precedence first)

        Returns:
            Merged configuration dictionary
        """
        result = {}

        for config in configs:
            if config:
                result = self._deep_merge(result, config)

        return result

    def _deep_merge(self, base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
        """Recursively merge two dictionaries.

        Args:
            base: Base dictionary
            override: Dictionary to merge in (takes precedence)

        Returns:
            Merged dictionary
        """
        result = base.copy()

        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._deep_merge(result[key], value)
            else:
                result[key] = value

        return result


def normalise_keys(config: Dict[str, Any]) -> Dict[str, Any]:
    return {str(key).replace("-", "_"): value for key, value in config.items()}


def split_lists(config: Dict[str, Any]) -> Dict[str, Any]:
    """Turn comma separated strings into lists for list-valued settings."""
    result = dict(config)
    for key in LIST_KEYS:
        value = result.get(key)
        if isinstance(value, str):
            result[key] = [part.strip() for part in value.split(",") if part.strip()]
    return result


def load_config(
    config_path: Optional[Union[str, Path]] = None,
    environ: Optional[Mapping[str, str]] = None,
    **override_values
) -> Dict[str, Any]:
    """Load configuration from multiple sources with precedence.

    Precedence order (highest to lowest):
    1. Explicit override values passed as kwargs, i.e. flags that were set
    2. Environment variables
    3. Config file
    4. Defaults

    Args:
        config_path: Optional path to the YAML config file
        environ: Environment to read, defaults to os.environ
        **override_values: Explicit configuration overrides, None values are ignored

    Returns:
        Merged configuration dictionary
    """
    loader = ConfigLoader()

    file_config = {}
    path = config_path or DEFAULT_CONFIG_PATH
    try:
        file_config = loader.load_from_file(path)
    except FileNotFoundError:
        if config_path and str(config_path) != DEFAULT_CONFIG_PATH:
            logger.warning(f"Config file not found: {path}, using defaults")
        else:
            logger.info(f"No config file at {path}, using defaults")

    env_config = loader.load_from_env(environ)

    explicit_config = {
        key: value for key, value in normalise_keys(override_values).items()
        if value is not None
    }

    final_config = loader.merge_configs(
        DEFAULTS,
        split_lists(file_config),
        split_lists(env_config),
        split_lists(explicit_config),
    )

    logger.debug(f"Loaded configuration keys: {sorted(final_config)}")
    return final_config
