"""Configuration — provisioning.yml loading and validation."""

from provisioning.core.config.loader import (
    CONFIG_FILE,
    ConfigError,
    EngineConfig,
    find_config_file,
    load_config,
)

__all__ = [
    "CONFIG_FILE",
    "ConfigError",
    "EngineConfig",
    "find_config_file",
    "load_config",
]
