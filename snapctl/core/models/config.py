"""
Configuration models — the schema of snapctl.yml.

Example::

    backend: snapper
    snapper:
      config: root
    retention:
      number_limit: 10
      number_limit_important: 5
    bootloader:
      mode: command
      command: [update-grub]
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field

from snapctl.adapters.package_manager import DEFAULT_UPGRADE_COMMANDS


class SnapperSettings(BaseModel):
    """Snapper-backed store settings."""

    config: str = "root"
    cleanup_algorithm: str = "number"
    config_dir: str = "/etc/snapper/configs"


class BtrfsSettings(BaseModel):
    """Raw-Btrfs store settings."""

    source: str = "/"
    snapshot_dir: str = "/.snapshots"


class RetentionSettings(BaseModel):
    """Limits used when the store has no retention config of its own."""

    number_limit: int = Field(default=10, ge=0)
    number_limit_important: int = Field(default=5, ge=0)
    number_min_age: int = Field(default=1800, ge=0)


class BootloaderSettings(BaseModel):
    """How the GRUB snapshot menu is regenerated."""

    mode: Literal["command", "daemon", "none"] = "command"
    command: list[str] = Field(default_factory=lambda: ["update-grub"])
    service: str = "grub-btrfsd"


class PackageManagerSettings(BaseModel):
    """Commands ``pre-update`` runs after taking its snapshot."""

    commands: list[list[str]] = Field(
        default_factory=lambda: [list(c) for c in DEFAULT_UPGRADE_COMMANDS]
    )


class SnapctlConfig(BaseModel):
    """Root configuration document."""

    backend: Literal["snapper", "btrfs"] = "snapper"
    use_sudo: bool = True
    snapper: SnapperSettings = Field(default_factory=SnapperSettings)
    btrfs: BtrfsSettings = Field(default_factory=BtrfsSettings)
    retention: RetentionSettings = Field(default_factory=RetentionSettings)
    bootloader: BootloaderSettings = Field(default_factory=BootloaderSettings)
    package_manager: PackageManagerSettings = Field(default_factory=PackageManagerSettings)
