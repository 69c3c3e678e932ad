"""
Bootloader synchronizers — keep the GRUB snapshot submenu in step with the store.

Synchronization is best-effort: ``sync`` raises SyncFailed, and the
command surface reports it as a warning without undoing the create or
delete that triggered it.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod

from snapctl.adapters.shell.command import CommandRunner
from snapctl.core.errors import SyncFailed

logger = logging.getLogger(__name__)


class BootloaderSync(ABC):
    """Regenerates the boot menu's snapshot entries."""

    @property
    @abstractmethod
    def name(self) -> str:
        """The synchronizer mode ('command', 'daemon', 'none')."""

    @abstractmethod
    def sync(self) -> str:
        """Regenerate the menu and return a short status message."""


class CommandSync(BootloaderSync):
    """Run an explicit regeneration command (``update-grub`` by default)."""

    def __init__(self, runner: CommandRunner | None = None, command: list[str] | None = None):
        self.runner = runner or CommandRunner()
        self.command = command or ["update-grub"]

    @property
    def name(self) -> str:
        return "command"

    def sync(self) -> str:
        result = self.runner.run(self.command, sudo=True)
        if not result.ok:
            raise SyncFailed(f"{' '.join(self.command)} failed: {result.message}")
        logger.debug("Boot menu regenerated via %s", " ".join(self.command))
        return "GRUB menu refreshed"


class DaemonSync(BootloaderSync):
    """Rely on the grub-btrfsd watcher, regenerating explicitly if it is down."""

    def __init__(
        self,
        runner: CommandRunner | None = None,
        service: str = "grub-btrfsd",
        fallback: BootloaderSync | None = None,
    ):
        self.runner = runner or CommandRunner()
        self.service = service
        self.fallback = fallback or CommandSync(self.runner)

    @property
    def name(self) -> str:
        return "daemon"

    def sync(self) -> str:
        result = self.runner.run(["systemctl", "is-active", "--quiet", self.service])
        if result.ok:
            return f"{self.service} watcher will refresh the GRUB menu"

        logger.warning("%s is not active, regenerating boot menu directly", self.service)
        return self.fallback.sync()


class NullSync(BootloaderSync):
    """No bootloader integration."""

    @property
    def name(self) -> str:
        return "none"

    def sync(self) -> str:
        return "bootloader sync disabled"
