"""
Shared test fixtures and configuration.
"""

from datetime import datetime
from pathlib import Path

import pytest

from snapctl.adapters.mock import InMemoryStore, MockRunner, RecordingSync
from snapctl.adapters.package_manager import PackageManager
from snapctl.core.services.retention import RetentionPolicy
from snapctl.core.services.snapshot_ops import SnapshotService

FIXED_NOW = datetime(2024, 6, 1, 9, 30, 0)


@pytest.fixture
def runner() -> MockRunner:
    return MockRunner()


@pytest.fixture
def store() -> InMemoryStore:
    """An empty in-memory store."""
    return InMemoryStore()


@pytest.fixture
def sync() -> RecordingSync:
    return RecordingSync()


@pytest.fixture
def service(store: InMemoryStore, sync: RecordingSync, runner: MockRunner) -> SnapshotService:
    """Command surface over the in-memory store with a mocked package manager."""
    return SnapshotService(
        store=store,
        bootloader=sync,
        package_manager=PackageManager(runner),
        policy=RetentionPolicy(number_limit=3, number_limit_important=2),
        now=lambda: FIXED_NOW,
    )


@pytest.fixture
def snapper_configs(tmp_path: Path) -> Path:
    """A directory standing in for /etc/snapper/configs."""
    configs = tmp_path / "snapper-configs"
    configs.mkdir()
    return configs
