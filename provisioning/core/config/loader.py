"""
Configuration loader — reads provisioning.yml into an EngineConfig.

Example::

    data_root: .provisioning
    repositories:
      - repo/units.yml
      - /srv/p2/extra-units.yml
    ledger: true
    log_level: INFO

Relative paths are resolved against the directory holding the config
file. ``PROV_DATA_ROOT`` overrides ``data_root``.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

import yaml
from pydantic import BaseModel, Field, ValidationError

logger = logging.getLogger(__name__)

# Default config filename
CONFIG_FILE = "provisioning.yml"
ENV_DATA_ROOT = "PROV_DATA_ROOT"
DEFAULT_DATA_ROOT = ".provisioning"


class ConfigError(Exception):
    """Raised when provisioning configuration is invalid or missing."""


class EngineConfig(BaseModel):
    """Validated provisioning configuration."""

    data_root: Path = Path(DEFAULT_DATA_ROOT)
    repositories: list[Path] = Field(default_factory=list)
    ledger: bool = True
    log_level: str | None = None

    # Where the config came from (None for defaults)
    source: Path | None = None

    @property
    def profiles_dir(self) -> Path:
        return self.data_root / "profiles"

    def resolved(self, base: Path) -> EngineConfig:
        """Copy with relative paths anchored at ``base``."""
        def _anchor(path: Path) -> Path:
            path = path.expanduser()
            return path if path.is_absolute() else (base / path).resolve()

        return self.model_copy(update={
            "data_root": _anchor(self.data_root),
            "repositories": [_anchor(p) for p in self.repositories],
        })


def find_config_file(start_dir: Path | None = None) -> Path | None:
    """Search for provisioning.yml starting from the given directory, walking up.

    Args:
        start_dir: Directory to start searching from (default: cwd).

    Returns:
        Path to provisioning.yml, or None if not found.
    """
    current = (start_dir or Path.cwd()).resolve()

    for _ in range(20):  # safety limit
        candidate = current / CONFIG_FILE
        if candidate.is_file():
            return candidate
        parent = current.parent
        if parent == current:
            break
        current = parent

    return None


def load_config(path: Path | None = None, *, search: bool = True) -> EngineConfig:
    """Load and validate provisioning configuration.

    Without a file (none given, none found) the defaults apply, anchored
    at the working directory.

    Raises:
        ConfigError: If an explicit file is missing, or a file is invalid.
    """
    if path is None and search:
        path = find_config_file()

    if path is None:
        logger.debug("No %s found, using defaults", CONFIG_FILE)
        config = EngineConfig().resolved(Path.cwd())
        return _apply_env(config)

    if not path.is_file():
        raise ConfigError(f"Config file not found: {path}")

    logger.debug("Loading provisioning config from %s", path)

    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e

    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigError(f"Expected a YAML mapping in {path}, got {type(data).__name__}")

    # The YAML may wrap everything under a "provisioning" key or be flat
    data = data.get("provisioning", data)

    try:
        config = EngineConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid provisioning configuration in {path}: {e}") from e

    config = config.resolved(path.parent.resolve()).model_copy(update={"source": path})
    config = _apply_env(config)
    logger.info(
        "Loaded config %s: data root %s, %d repositories",
        path, config.data_root, len(config.repositories),
    )
    return config


def _apply_env(config: EngineConfig) -> EngineConfig:
    override = os.environ.get(ENV_DATA_ROOT)
    if not override:
        return config
    return config.model_copy(update={"data_root": Path(override).expanduser().resolve()})
