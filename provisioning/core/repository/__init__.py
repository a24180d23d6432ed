"""Candidate unit pools and unit metadata files."""

from provisioning.core.repository.metadata import MetadataError, load_pool, load_units
from provisioning.core.repository.pool import (
    CompositeUnitPool,
    MemoryUnitPool,
    UnitFilter,
    UnitPool,
)

__all__ = [
    "CompositeUnitPool",
    "MemoryUnitPool",
    "MetadataError",
    "UnitFilter",
    "UnitPool",
    "load_pool",
    "load_units",
]
