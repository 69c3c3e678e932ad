"""
Store base — the contract between the command surface and snapshot tools.

The command surface only talks to snapshot tools through this interface,
never directly. Two variants exist: Snapper-backed and raw Btrfs
subvolumes. Both return structured Snapshot records; any parsing of tool
output stays inside the variant.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from snapctl.adapters.shell.command import CommandRunner
from snapctl.core.models.snapshot import Snapshot


class SnapshotStore(ABC):
    """Abstract base class for snapshot stores.

    Unlike the receipt-returning runner, stores raise the typed errors
    from ``snapctl.core.errors``:

        create         -> InvalidArgument, StoreUnavailable
        list           -> StoreUnavailable (only after every fallback)
        delete         -> NotFound, StoreUnavailable
        set_important  -> NotFound, StoreUnavailable

    To add a new store:
        1. Subclass SnapshotStore
        2. Implement name, is_available, create, list, delete, set_important
        3. Register it in the StoreRegistry
    """

    # Whether the store enforces retention itself (``cleanup``)
    native_cleanup: bool = False

    # Whether set_important changes the snapshot's path on disk, in which
    # case the boot menu must be regenerated afterwards
    modify_changes_paths: bool = False

    def __init__(self, runner: CommandRunner | None = None):
        self.runner = runner or CommandRunner()

    @property
    @abstractmethod
    def name(self) -> str:
        """The store identifier ('snapper', 'btrfs', ...)."""

    @abstractmethod
    def is_available(self) -> bool:
        """Check if the underlying tool is installed. Never raises."""

    @abstractmethod
    def create(self, description: str) -> Snapshot:
        """Create a read-only snapshot and return its full record."""

    @abstractmethod
    def list(self) -> list[Snapshot]:
        """Query the store. Ascending by id, never cached."""

    @abstractmethod
    def delete(self, snapshot_id: int) -> None:
        """Delete one snapshot."""

    @abstractmethod
    def set_important(self, snapshot_id: int, value: bool = True) -> None:
        """Flag or unflag a snapshot as important."""

    def cleanup(self, algorithm: str = "number") -> None:
        """Run the store's own retention cleanup (native stores only)."""
        raise NotImplementedError(f"{self.name} store has no native cleanup")

    def raw_listing(self) -> str:
        """The tool's unformatted native listing, for last-resort display."""
        return ""

    def get(self, snapshot_id: int) -> Snapshot | None:
        """Look up one snapshot by id via a fresh listing."""
        for snap in self.list():
            if snap.id == snapshot_id:
                return snap
        return None

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} name={self.name!r}>"
