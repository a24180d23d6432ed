"""
Unit metadata files — YAML descriptions of installable units.

Format::

    units:
      - id: org.example.editor
        version: 1.2.0
        singleton: true
        requires:
          - name: org.example.runtime
            range: "[1.0.0,2.0.0)"
          - namespace: java.package
            name: org.example.api
            optional: true
        provides:
          - namespace: java.package
            name: org.example.editor.api
            version: 1.2.0
        artifacts: [editor.jar]
        touchpoint:
          install:
            - kind: native.copy_artifact
              params: {artifact: editor.jar, target: plugins/editor.jar}
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from pathlib import Path

import yaml

from provisioning.core.models.unit import InstallableUnit
from provisioning.core.repository.pool import MemoryUnitPool

logger = logging.getLogger(__name__)


class MetadataError(Exception):
    """Raised when a unit metadata file is missing or invalid."""


class MetadataLoader(yaml.SafeLoader):
    """SafeLoader without float resolution.

    An unquoted ``version: 1.10`` is the version 1.10, not the float 1.1.
    Float-looking scalars load as strings; ints and booleans are unchanged.
    """


MetadataLoader.yaml_implicit_resolvers = {
    first: [(tag, regexp) for tag, regexp in resolvers if tag != "tag:yaml.org,2002:float"]
    for first, resolvers in yaml.SafeLoader.yaml_implicit_resolvers.items()
}


def load_units(path: Path) -> list[InstallableUnit]:
    """Read and validate one metadata file.

    Raises:
        MetadataError: If the file is missing, not YAML, or a unit is invalid.
    """
    if not path.is_file():
        raise MetadataError(f"Metadata file not found: {path}")

    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise MetadataError(f"Cannot read {path}: {e}") from e

    try:
        data = yaml.load(raw, Loader=MetadataLoader)
    except yaml.YAMLError as e:
        raise MetadataError(f"Invalid YAML in {path}: {e}") from e

    if data is None:
        return []
    if not isinstance(data, dict) or not isinstance(data.get("units", []), list):
        raise MetadataError(f"Expected a mapping with a 'units' list in {path}")

    units: list[InstallableUnit] = []
    for index, item in enumerate(data.get("units", [])):
        try:
            units.append(InstallableUnit.model_validate(item))
        except Exception as e:
            raise MetadataError(f"Invalid unit #{index} in {path}: {e}") from e

    logger.debug("Loaded %d units from %s", len(units), path)
    return units


def load_pool(paths: Iterable[Path]) -> MemoryUnitPool:
    """Build a pool from several metadata files."""
    units: list[InstallableUnit] = []
    for path in paths:
        units.extend(load_units(path))
    logger.info("Unit pool loaded: %d units", len(units))
    return MemoryUnitPool(units)
