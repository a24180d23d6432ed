"""
Workspace — the engine stack assembled from configuration.

One workspace per process: the profile store under the data root, the
unit pool from the configured repositories, the transaction ledger, the
event bus, and an engine wired to notify both.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

from provisioning.core.config.loader import EngineConfig, load_config
from provisioning.core.context import set_data_root
from provisioning.core.engine.engine import Engine
from provisioning.core.engine.events import EventBusSink, LedgerSink, NotificationSink, sink_for
from provisioning.core.models.context import ProvisioningContext
from provisioning.core.persistence.audit import TransactionLedger
from provisioning.core.persistence.profile_store import FileProfileStore
from provisioning.core.repository.metadata import load_pool
from provisioning.core.repository.pool import UnitPool
from provisioning.core.services.event_bus import EventBus

logger = logging.getLogger(__name__)


@dataclass
class Workspace:
    """Everything a provisioning command needs."""

    config: EngineConfig
    store: FileProfileStore
    pool: UnitPool
    engine: Engine
    bus: EventBus
    ledger: TransactionLedger | None = None
    artifacts: dict[str, Path] = field(default_factory=dict)

    def context(self) -> ProvisioningContext:
        """Provisioning context exposing the repositories' artifacts."""
        return ProvisioningContext(artifacts=dict(self.artifacts))


def find_artifacts(config: EngineConfig, pool: UnitPool) -> dict[str, Path]:
    """Map artifact keys to files found next to the repository files.

    An artifact ``foo.jar`` of a unit is looked up as ``foo.jar`` and
    ``artifacts/foo.jar`` beside each metadata file, first match wins.
    """
    found: dict[str, Path] = {}
    keys = sorted({a for unit in pool.all_units() for a in unit.artifacts})
    for key in keys:
        for repo in config.repositories:
            for candidate in (repo.parent / key, repo.parent / "artifacts" / key):
                if candidate.is_file():
                    found[key] = candidate
                    break
            if key in found:
                break
    logger.debug("Artifacts found: %d of %d", len(found), len(keys))
    return found


def open_workspace(config_path: Path | None = None, config: EngineConfig | None = None) -> Workspace:
    """Build a workspace from a config file (or an already loaded config).

    Raises:
        ConfigError: The configuration is invalid.
        MetadataError: A repository file is missing or invalid.
    """
    if config is None:
        config = load_config(config_path)
    set_data_root(config.data_root)

    store = FileProfileStore(config.profiles_dir)
    pool = load_pool(config.repositories)
    bus = EventBus()

    sinks: list[NotificationSink] = [EventBusSink(bus)]
    ledger = None
    if config.ledger:
        ledger = TransactionLedger(data_root=config.data_root)
        sinks.append(LedgerSink(ledger))

    engine = Engine(store, sink=sink_for(sinks))
    return Workspace(
        config=config,
        store=store,
        pool=pool,
        engine=engine,
        bus=bus,
        ledger=ledger,
        artifacts=find_artifacts(config, pool),
    )
