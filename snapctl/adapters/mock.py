"""
Mock collaborators — test doubles for runner, store and bootloader.

Used by the test suite to exercise stores and verbs without touching
real snapshot tools. MockRunner scripts command output; InMemoryStore
implements the full store contract in memory; RecordingSync counts
synchronization passes.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timedelta

from snapctl.adapters.base import SnapshotStore
from snapctl.adapters.bootloader import BootloaderSync
from snapctl.adapters.shell.command import EXIT_NOT_FOUND, CommandResult, CommandRunner
from snapctl.core.errors import InvalidArgument, NotFound, SnapctlError, SyncFailed
from snapctl.core.models.snapshot import Snapshot, SnapshotType, sort_snapshots
from snapctl.core.services.retention import RetentionPolicy, select_eligible

Responder = Callable[[list[str]], CommandResult]


class MockRunner(CommandRunner):
    """Command runner that answers from scripted responses.

    Responses are keyed by command prefix; the longest matching prefix
    wins. Unmatched commands succeed with empty output.
    """

    def __init__(self, missing: set[str] | None = None):
        super().__init__(use_sudo=False)
        self._missing = missing or set()
        self._responses: dict[tuple[str, ...], Responder] = {}
        self._call_log: list[list[str]] = []

    @property
    def call_log(self) -> list[list[str]]:
        """Every command this runner has received."""
        return self._call_log

    @property
    def call_count(self) -> int:
        return len(self._call_log)

    def calls_to(self, *prefix: str) -> list[list[str]]:
        """Logged commands starting with ``prefix``."""
        return [cmd for cmd in self._call_log if tuple(cmd[: len(prefix)]) == prefix]

    def which(self, name: str) -> str | None:
        return None if name in self._missing else f"/usr/bin/{name}"

    def set_response(
        self,
        prefix: list[str],
        stdout: str = "",
        stderr: str = "",
        return_code: int = 0,
    ) -> None:
        """Answer commands starting with ``prefix`` with fixed output."""
        def responder(cmd: list[str]) -> CommandResult:
            return CommandResult(
                command=cmd, return_code=return_code, stdout=stdout, stderr=stderr
            )

        self._responses[tuple(prefix)] = responder

    def set_responder(self, prefix: list[str], responder: Responder) -> None:
        """Answer commands starting with ``prefix`` with a callable."""
        self._responses[tuple(prefix)] = responder

    def set_failure(self, prefix: list[str], error: str = "Mock failure", return_code: int = 1) -> None:
        self.set_response(prefix, stderr=error, return_code=return_code)

    def run(
        self,
        cmd: list[str],
        *,
        sudo: bool = False,
        input_text: str | None = None,
        capture: bool = True,
    ) -> CommandResult:
        self._call_log.append(list(cmd))

        if cmd and cmd[0] in self._missing:
            return CommandResult(
                command=cmd,
                return_code=EXIT_NOT_FOUND,
                stderr=f"{cmd[0]}: command not found",
            )

        best: tuple[str, ...] | None = None
        for prefix in self._responses:
            if tuple(cmd[: len(prefix)]) == prefix and (best is None or len(prefix) > len(best)):
                best = prefix
        if best is not None:
            return self._responses[best](list(cmd))
        return CommandResult(command=cmd)

    def reset(self) -> None:
        """Clear call log and scripted responses."""
        self._call_log.clear()
        self._responses.clear()


class InMemoryStore(SnapshotStore):
    """Complete snapshot store kept in a dict.

    Ids start at 1 and are never reused. ``native_cleanup`` can be toggled
    to exercise both cleanup paths of the command surface.
    """

    def __init__(
        self,
        native_cleanup: bool = False,
        policy: RetentionPolicy | None = None,
        require_description: bool = False,
        start: datetime | None = None,
    ):
        super().__init__(MockRunner())
        self.native_cleanup = native_cleanup
        self.policy = policy or RetentionPolicy(number_limit=10, number_limit_important=5)
        self.require_description = require_description
        self._snapshots: dict[int, Snapshot] = {}
        self._next_id = 1
        self._clock = start or datetime(2024, 1, 1, 12, 0, 0)
        self._failures: dict[str, SnapctlError] = {}
        self.operations: list[str] = []

    @property
    def name(self) -> str:
        return "memory"

    def is_available(self) -> bool:
        return True

    def set_failure(self, operation: str, error: SnapctlError) -> None:
        """Make ``operation`` ('create', 'list', 'delete', ...) raise ``error``."""
        self._failures[operation] = error

    def clear_failures(self) -> None:
        self._failures.clear()

    def _check(self, operation: str) -> None:
        self.operations.append(operation)
        if operation in self._failures:
            raise self._failures[operation]

    def add(
        self,
        description: str = "",
        important: bool = False,
        type: SnapshotType = "single",
        created_at: datetime | None = None,
        cleanup: str = "number",
    ) -> Snapshot:
        """Seed a snapshot directly, bypassing create()."""
        self._clock += timedelta(minutes=1)
        snap = Snapshot(
            id=self._next_id,
            description=description,
            created_at=created_at or self._clock,
            important=important,
            type=type,
            cleanup=cleanup,
        )
        self._snapshots[snap.id] = snap
        self._next_id += 1
        return snap

    def create(self, description: str) -> Snapshot:
        self._check("create")
        if self.require_description and not description.strip():
            raise InvalidArgument("A description is required")
        return self.add(description)

    def list(self) -> list[Snapshot]:
        self._check("list")
        return sort_snapshots([s.model_copy() for s in self._snapshots.values()])

    def delete(self, snapshot_id: int) -> None:
        self._check("delete")
        if snapshot_id not in self._snapshots:
            raise NotFound(snapshot_id)
        del self._snapshots[snapshot_id]

    def set_important(self, snapshot_id: int, value: bool = True) -> None:
        self._check("set_important")
        if snapshot_id not in self._snapshots:
            raise NotFound(snapshot_id)
        self._snapshots[snapshot_id] = self._snapshots[snapshot_id].model_copy(
            update={"important": value}
        )

    def cleanup(self, algorithm: str = "number") -> None:
        self._check("cleanup")
        if not self.native_cleanup:
            super().cleanup(algorithm)
        tagged = [s for s in self._snapshots.values() if s.cleanup == algorithm]
        for snap in select_eligible(tagged, self.policy):
            del self._snapshots[snap.id]

    def raw_listing(self) -> str:
        return "\n".join(f"{s.id} {s.description}" for s in self._snapshots.values())


class RecordingSync(BootloaderSync):
    """Bootloader synchronizer that only counts calls."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.count = 0

    @property
    def name(self) -> str:
        return "recording"

    def sync(self) -> str:
        self.count += 1
        if self.fail:
            raise SyncFailed("update-grub failed: mock failure")
        return "GRUB menu refreshed"
