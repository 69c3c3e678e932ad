"""
Raw Btrfs store — read-only subvolume snapshots under a snapshot directory.

There is no metadata store besides the subvolume tree itself:

    /.snapshots/manual-2024-05-01_100000-before_update
    /.snapshots/important-2024-05-01_100000-golden_image

The description is embedded in the name (spaces become underscores,
timestamp prefix) and the important flag is the name prefix. Snapshot
ids are Btrfs subvolume ids, which the kernel never reuses.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable
from datetime import datetime
from pathlib import PurePosixPath

from snapctl.adapters.base import SnapshotStore
from snapctl.adapters.shell.command import EXIT_NOT_FOUND, CommandResult, CommandRunner
from snapctl.core.errors import InvalidArgument, NotFound, StoreUnavailable
from snapctl.core.models.snapshot import Snapshot, sort_snapshots

logger = logging.getLogger(__name__)

PREFIX_MANUAL = "manual"
PREFIX_IMPORTANT = "important"

_TIMESTAMP_FMT = "%Y-%m-%d_%H%M%S"

_NAME_RE = re.compile(
    r"^(?P<prefix>manual|important)-(?P<ts>\d{4}-\d{2}-\d{2}_\d{6})-?(?P<desc>.*)$"
)

# ID 259 gen 31 cgen 31 top level 5 otime 2024-05-01 10:00:00 path .snapshots/x
_LIST_RE = re.compile(
    r"^ID\s+(?P<id>\d+)\s+gen\s+\d+(?:\s+cgen\s+\d+)?\s+top level\s+\d+"
    r"(?:\s+otime\s+(?P<otime>\S+\s+\S+))?\s+path\s+(?P<path>.+)$"
)


def sanitize_description(description: str) -> str:
    """Make a description safe to embed in a subvolume name."""
    return description.strip().replace("/", "-").replace(" ", "_")


def snapshot_name(description: str, created_at: datetime, important: bool = False) -> str:
    prefix = PREFIX_IMPORTANT if important else PREFIX_MANUAL
    return f"{prefix}-{created_at.strftime(_TIMESTAMP_FMT)}-{sanitize_description(description)}"


def parse_snapshot_name(name: str) -> tuple[bool, datetime | None, str]:
    """Split a snapshot name into (important, timestamp, description).

    Names that do not follow the helper's pattern are still listed; their
    whole name becomes the description.
    """
    match = _NAME_RE.match(name)
    if not match:
        important = name.startswith(f"{PREFIX_IMPORTANT}-")
        return important, None, name.replace("_", " ")
    created = datetime.strptime(match.group("ts"), _TIMESTAMP_FMT)
    return (
        match.group("prefix") == PREFIX_IMPORTANT,
        created,
        match.group("desc").replace("_", " "),
    )


def renamed_for_importance(name: str, important: bool) -> str:
    """The subvolume name carrying the requested important flag."""
    match = _NAME_RE.match(name)
    if match:
        prefix = PREFIX_IMPORTANT if important else PREFIX_MANUAL
        return f"{prefix}-{name[len(match.group('prefix')) + 1:]}"
    if important:
        return name if name.startswith(f"{PREFIX_IMPORTANT}-") else f"{PREFIX_IMPORTANT}-{name}"
    return name.removeprefix(f"{PREFIX_IMPORTANT}-")


class BtrfsStore(SnapshotStore):
    """Snapshot store built directly on ``btrfs subvolume`` commands.

    Btrfs has no retention policy of its own; the command surface deletes
    the eligible set explicitly.
    """

    native_cleanup = False
    modify_changes_paths = True

    def __init__(
        self,
        runner: CommandRunner | None = None,
        source: str = "/",
        snapshot_dir: str = "/.snapshots",
        now: Callable[[], datetime] | None = None,
    ):
        super().__init__(runner)
        self.source = source
        self.snapshot_dir = PurePosixPath(snapshot_dir)
        self.now = now or datetime.now

    @property
    def name(self) -> str:
        return "btrfs"

    def is_available(self) -> bool:
        return self.runner.which("btrfs") is not None

    def _btrfs(self, *args: str) -> CommandResult:
        result = self.runner.run(["btrfs", *args], sudo=True)
        if result.return_code == EXIT_NOT_FOUND:
            raise StoreUnavailable(f"btrfs-progs is not installed: {result.message}")
        return result

    def _list_command(self) -> CommandResult:
        return self._btrfs("subvolume", "list", "-o", "-s", str(self.snapshot_dir))

    # ── Queries ─────────────────────────────────────────────────

    def list(self) -> list[Snapshot]:
        result = self._list_command()
        if not result.ok:
            raise StoreUnavailable(
                f"Cannot list subvolumes in {self.snapshot_dir}: {result.message}"
            )
        return sort_snapshots(self.parse_listing(result.stdout))

    def raw_listing(self) -> str:
        result = self._list_command()
        return result.stdout if result.ok else ""

    def parse_listing(self, text: str) -> list[Snapshot]:
        snapshots = []
        for line in text.splitlines():
            match = _LIST_RE.match(line.strip())
            if not match:
                continue
            name = PurePosixPath(match.group("path").strip()).name
            important, stamp, description = parse_snapshot_name(name)

            created_at = stamp
            if match.group("otime"):
                try:
                    created_at = datetime.strptime(match.group("otime"), "%Y-%m-%d %H:%M:%S")
                except ValueError:
                    pass

            snapshots.append(
                Snapshot(
                    id=int(match.group("id")),
                    description=description,
                    created_at=created_at,
                    important=important,
                    type="single",
                    name=name,
                    path=str(self.snapshot_dir / name),
                )
            )
        return snapshots

    # ── Mutations ───────────────────────────────────────────────

    def create(self, description: str) -> Snapshot:
        if not description.strip():
            raise InvalidArgument("A description is required for Btrfs snapshots")

        name = snapshot_name(description, self.now())
        path = self.snapshot_dir / name
        result = self._btrfs("subvolume", "snapshot", "-r", self.source, str(path))
        if not result.ok:
            raise StoreUnavailable(f"btrfs snapshot failed: {result.message}")
        logger.info("Created read-only snapshot %s", path)

        for snap in self.list():
            if snap.name == name:
                return snap
        raise StoreUnavailable(f"Snapshot {path} was created but is not listed")

    def delete(self, snapshot_id: int) -> None:
        snap = self._require(snapshot_id)
        result = self._btrfs("subvolume", "delete", snap.path)
        if not result.ok:
            if "No such file" in result.message or "not a subvolume" in result.message:
                raise NotFound(snapshot_id)
            raise StoreUnavailable(f"btrfs delete failed: {result.message}")
        logger.info("Deleted snapshot %d (%s)", snapshot_id, snap.path)

    def set_important(self, snapshot_id: int, value: bool = True) -> None:
        snap = self._require(snapshot_id)
        target = renamed_for_importance(snap.name, value)
        if target == snap.name:
            return

        # Renaming only touches the writable parent directory, the
        # read-only snapshot content is unchanged
        new_path = str(self.snapshot_dir / target)
        result = self.runner.run(["mv", "-T", snap.path, new_path], sudo=True)
        if not result.ok:
            raise StoreUnavailable(f"Cannot rename {snap.path}: {result.message}")
        logger.info("Renamed snapshot %d to %s", snapshot_id, new_path)

    def _require(self, snapshot_id: int) -> Snapshot:
        if snapshot_id <= 0:
            raise InvalidArgument(f"Invalid snapshot id: {snapshot_id}")
        snap = self.get(snapshot_id)
        if snap is None:
            raise NotFound(snapshot_id)
        return snap
