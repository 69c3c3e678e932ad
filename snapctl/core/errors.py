"""
Error taxonomy — every failure a snapshot operation can surface.

Stores raise these; command services turn them into step receipts;
the CLI maps receipts to status lines and exit codes.
"""

from __future__ import annotations


class SnapctlError(Exception):
    """Base class for all snapctl errors."""


class InvalidArgument(SnapctlError):
    """Empty or malformed description or snapshot id."""


class NotFound(SnapctlError):
    """Operation referenced a snapshot id the store does not have."""

    def __init__(self, snapshot_id: int, message: str | None = None):
        self.snapshot_id = snapshot_id
        super().__init__(message or f"Snapshot {snapshot_id} not found")


class StoreUnavailable(SnapctlError):
    """The backing snapshot tool could not be reached."""


class SyncFailed(SnapctlError):
    """Bootloader menu regeneration failed."""


class ExternalCommandFailed(SnapctlError):
    """A collaborator command (package manager, etc.) exited nonzero."""

    def __init__(self, command: list[str], return_code: int, stderr: str = ""):
        self.command = command
        self.return_code = return_code
        self.stderr = stderr
        detail = f": {stderr}" if stderr else ""
        super().__init__(
            f"'{' '.join(command)}' exited with code {return_code}{detail}"
        )
