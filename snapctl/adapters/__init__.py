"""Adapters — bindings for snapshot stores, bootloader and package manager.

Public re-exports for convenient access.
"""

from snapctl.adapters.base import SnapshotStore
from snapctl.adapters.registry import StoreRegistry
from snapctl.adapters.shell.command import CommandResult, CommandRunner

__all__ = [
    "CommandResult",
    "CommandRunner",
    "SnapshotStore",
    "StoreRegistry",
]
