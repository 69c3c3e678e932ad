"""
Package manager — the upgrade step of ``pre-update``.
"""

from __future__ import annotations

import logging

from snapctl.adapters.shell.command import CommandRunner
from snapctl.core.errors import ExternalCommandFailed

logger = logging.getLogger(__name__)

DEFAULT_UPGRADE_COMMANDS: list[list[str]] = [
    ["apt", "update"],
    ["apt", "upgrade", "-y"],
]


class PackageManager:
    """Runs the configured upgrade commands in order, stopping at the first failure.

    Output is not captured: apt progress goes straight to the terminal.
    """

    def __init__(
        self,
        runner: CommandRunner | None = None,
        commands: list[list[str]] | None = None,
    ):
        self.runner = runner or CommandRunner()
        self.commands = commands if commands is not None else DEFAULT_UPGRADE_COMMANDS

    def upgrade(self) -> None:
        """Raises ExternalCommandFailed on the first nonzero exit."""
        for cmd in self.commands:
            logger.info("Running %s", " ".join(cmd))
            result = self.runner.run(cmd, sudo=True, capture=False)
            if not result.ok:
                raise ExternalCommandFailed(cmd, result.return_code, result.stderr.strip())
