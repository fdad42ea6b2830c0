"""CLI configuration management.

Handles persistent configuration stored in ~/.manualboot/config.yaml.
Supports environment variable overrides and CLI flag precedence.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from .shared.paths import MANUALBOOT_DIR, STORAGE_DIR

# Default values
DEFAULT_DATA_DIR = "/var/lib/manualboot"
DEFAULT_ENVIRON = "manual"
DEFAULT_CONNECT_TIMEOUT = 30
DEFAULT_COMMAND_TIMEOUT = 600
DEFAULT_LOG_LEVEL = "warning"

# Environment variable mappings
ENV_VARS = {
    "data_dir": "MANUALBOOT_DATA_DIR",
    "storage_dir": "MANUALBOOT_STORAGE_DIR",
    "environ": "MANUALBOOT_ENVIRON",
    "ssh_options": "MANUALBOOT_SSH_OPTIONS",
    "connect_timeout": "MANUALBOOT_CONNECT_TIMEOUT",
    "command_timeout": "MANUALBOOT_COMMAND_TIMEOUT",
    "log_level": "MANUALBOOT_LOG_LEVEL",
}

KEYS = list(ENV_VARS)
_INT_KEYS = ("connect_timeout", "command_timeout")


@dataclass
class CLIConfig:
    """CLI configuration."""

    data_dir: str = DEFAULT_DATA_DIR
    storage_dir: str = str(STORAGE_DIR)
    environ: str = DEFAULT_ENVIRON
    ssh_options: list[str] = field(default_factory=list)
    connect_timeout: int = DEFAULT_CONNECT_TIMEOUT
    command_timeout: int = DEFAULT_COMMAND_TIMEOUT
    log_level: str = DEFAULT_LOG_LEVEL

    # Track where each value came from
    _sources: dict[str, str] = field(default_factory=dict)

    def get_source(self, key: str) -> str:
        """Get the source of a config value."""
        return self._sources.get(key, "default")

    def values(self) -> dict[str, Any]:
        return {key: getattr(self, key) for key in KEYS}


def get_config_path() -> Path:
    """Get the CLI config file path.

    Returns:
        Path to ~/.manualboot/config.yaml
    """
    return MANUALBOOT_DIR / "config.yaml"


def _coerce(key: str, value: Any) -> Any:
    if key in _INT_KEYS:
        return int(value)
    if key == "ssh_options":
        if isinstance(value, str):
            return [opt for opt in value.split(",") if opt.strip()]
        return [str(opt) for opt in value]
    return str(value)


def load_config(path: Path | None = None) -> CLIConfig:
    """Load CLI configuration.

    Precedence (highest to lowest):
    1. Environment variables
    2. Config file (~/.manualboot/config.yaml)
    3. Defaults

    Args:
        path: Config file to read instead of the default location

    Returns:
        CLIConfig with values and sources

    Raises:
        ValueError: If the config file is not valid YAML or holds bad values.
    """
    config = CLIConfig()
    sources: dict[str, str] = {key: "default" for key in KEYS}

    config_path = path or get_config_path()
    if config_path.exists():
        try:
            with open(config_path) as f:
                file_config = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ValueError(f"invalid config file {config_path}: {e}") from e
        if not isinstance(file_config, dict):
            raise ValueError(f"invalid config file {config_path}: expected a mapping")

        for key in KEYS:
            if key in file_config:
                try:
                    setattr(config, key, _coerce(key, file_config[key]))
                except (TypeError, ValueError) as e:
                    raise ValueError(f"invalid {key} in {config_path}: {e}") from e
                sources[key] = "config file"

    # Override with environment variables
    for key, env_var in ENV_VARS.items():
        raw = os.environ.get(env_var)
        if not raw:
            continue
        try:
            setattr(config, key, _coerce(key, raw))
        except ValueError:
            continue  # Ignore malformed numbers from the environment
        sources[key] = "environment"

    config._sources = sources
    return config

