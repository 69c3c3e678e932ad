"""
Shell command runner — the single place external tools are executed.

Every store, synchronizer and package-manager call goes through
``CommandRunner.run``. It never raises: a missing binary or OS error is
returned as a failed CommandResult so callers decide what the failure
means in their own error taxonomy.
"""

from __future__ import annotations

import logging
import os
import shutil
import subprocess
import time

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

# Exit code reported when the executable itself cannot be started
EXIT_NOT_FOUND = 127


class CommandResult(BaseModel):
    """Captured outcome of one external command."""

    command: list[str] = Field(default_factory=list)
    return_code: int = 0
    stdout: str = ""
    stderr: str = ""
    duration_ms: int = 0

    @property
    def ok(self) -> bool:
        return self.return_code == 0

    @property
    def message(self) -> str:
        """Best human-readable failure description."""
        return (
            self.stderr.strip()
            or self.stdout.strip()
            or f"Command exited with code {self.return_code}"
        )


class CommandRunner:
    """Run commands synchronously with optional ``sudo`` elevation.

    There is no timeout: a hung tool hangs the invocation, which is the
    accepted contract for short, manually invoked verbs.
    """

    def __init__(self, use_sudo: bool = True):
        self.use_sudo = use_sudo

    def needs_sudo_prefix(self, sudo: bool) -> bool:
        if not (sudo and self.use_sudo):
            return False
        # Already root, no prefix needed
        return os.geteuid() != 0

    def which(self, name: str) -> str | None:
        """Locate an executable on PATH."""
        return shutil.which(name)

    def run(
        self,
        cmd: list[str],
        *,
        sudo: bool = False,
        input_text: str | None = None,
        capture: bool = True,
    ) -> CommandResult:
        """Run ``cmd`` and return its result.

        Args:
            cmd: Argument list (never passed through a shell).
            sudo: Prefix with ``sudo`` when not already root.
            input_text: Optional text piped to stdin.
            capture: Capture stdout/stderr. When False the command inherits
                the terminal (used for long package upgrades).
        """
        full_cmd = ["sudo", *cmd] if self.needs_sudo_prefix(sudo) else list(cmd)

        logger.debug("Executing: %s", " ".join(full_cmd))
        start = time.monotonic()

        try:
            result = subprocess.run(
                full_cmd,
                capture_output=capture,
                text=True,
                input=input_text,
            )
        except FileNotFoundError:
            return CommandResult(
                command=full_cmd,
                return_code=EXIT_NOT_FOUND,
                stderr=f"{full_cmd[0]}: command not found",
            )
        except OSError as e:
            return CommandResult(
                command=full_cmd,
                return_code=EXIT_NOT_FOUND,
                stderr=f"Command execution error: {e}",
            )

        elapsed_ms = int((time.monotonic() - start) * 1000)
        outcome = CommandResult(
            command=full_cmd,
            return_code=result.returncode,
            stdout=result.stdout or "",
            stderr=result.stderr or "",
            duration_ms=elapsed_ms,
        )
        if not outcome.ok:
            logger.debug(
                "Command failed (rc=%d): %s — %s",
                outcome.return_code, " ".join(full_cmd), outcome.stderr.strip(),
            )
        return outcome
