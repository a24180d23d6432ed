"""
Shared test fixtures and configuration.
"""

from pathlib import Path

import pytest

from provisioning.actions import ActionRegistry, MockAction
from provisioning.core import context
from provisioning.core.engine.engine import Engine
from provisioning.core.engine.events import RecordingSink
from provisioning.core.persistence import FileProfileStore, MemoryProfileStore


@pytest.fixture(autouse=True)
def _reset_data_root():
    """Keep the process-wide data root from leaking between tests."""
    yield
    context.set_data_root(None)


@pytest.fixture
def store(tmp_path: Path) -> MemoryProfileStore:
    return MemoryProfileStore(scratch_root=tmp_path / "scratch")


@pytest.fixture
def file_store(tmp_path: Path) -> FileProfileStore:
    return FileProfileStore(tmp_path / "profiles")


@pytest.fixture
def mock_action() -> MockAction:
    return MockAction()


@pytest.fixture
def registry(mock_action: MockAction) -> ActionRegistry:
    registry = ActionRegistry.with_defaults()
    registry.register(mock_action)
    return registry


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def engine(store: MemoryProfileStore, registry: ActionRegistry, sink: RecordingSink) -> Engine:
    return Engine(store, registry=registry, sink=sink)
