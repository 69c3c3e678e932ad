"""
Snapshot operations — the command surface behind every verb.

Each verb is a short composition of store, retention and bootloader
steps. Every step yields a Receipt; nothing is rolled back when a later
step fails. Bootloader sync failures are warnings only.

    snapshot        create → sync → recent
    snapshot-list   list (raw native output as last resort)
    snapshot-rm     [confirm → delete → sync] per id
    snapshot-important  set_important (→ sync if paths change)
    snapshot-clean  plan → delete/cleanup → sync → remaining
    pre-update      create → sync → upgrade → recent
    snapshot-rm-apt select pre/post → confirm → delete all → sync
"""

from __future__ import annotations

import logging
import re
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from snapctl.adapters.base import SnapshotStore
from snapctl.adapters.bootloader import BootloaderSync
from snapctl.adapters.package_manager import PackageManager
from snapctl.core.errors import (
    ExternalCommandFailed,
    InvalidArgument,
    NotFound,
    StoreUnavailable,
    SyncFailed,
)
from snapctl.core.models.receipt import Receipt
from snapctl.core.models.snapshot import Snapshot, most_recent
from snapctl.core.services.retention import RetentionPolicy, select_eligible

logger = logging.getLogger(__name__)

RECENT_COUNT = 5

_APT_WORD = re.compile(r"\bapt\b", re.IGNORECASE)


@dataclass
class VerbResult:
    """Everything a verb did, for the CLI to render."""

    verb: str
    receipts: list[Receipt] = field(default_factory=list)
    snapshots: list[Snapshot] = field(default_factory=list)
    eligible: list[Snapshot] = field(default_factory=list)
    raw_listing: str = ""

    def add(self, receipt: Receipt) -> Receipt:
        self.receipts.append(receipt)
        return receipt

    @property
    def failed(self) -> bool:
        return any(r.failed and r.fatal for r in self.receipts)

    @property
    def exit_code(self) -> int:
        for r in self.receipts:
            if r.failed and r.fatal:
                return int(r.metadata.get("exit_code", 1)) or 1
        return 0

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-serializable dictionary."""
        result: dict[str, Any] = {
            "verb": self.verb,
            "ok": not self.failed,
            "steps": [r.model_dump(mode="json") for r in self.receipts],
            "snapshots": [s.to_dict() for s in self.snapshots],
        }
        if self.eligible:
            result["eligible"] = [s.id for s in self.eligible]
        if self.raw_listing:
            result["raw_listing"] = self.raw_listing
        return result


def parse_snapshot_id(raw: str) -> int:
    """Validate a snapshot id argument.

    Raises:
        InvalidArgument: If ``raw`` is not a positive integer.
    """
    text = str(raw).strip()
    if not (text.isascii() and text.isdigit()) or int(text) <= 0:
        raise InvalidArgument(f"Invalid snapshot id: {raw!r}")
    return int(text)


def select_apt_snapshots(
    snapshots: list[Snapshot],
    match_description: bool = False,
) -> list[Snapshot]:
    """Snapshots created around package-manager transactions.

    The structured pre/post type is authoritative. Matching the word
    "apt" in the description is an opt-in legacy fallback for stores
    that only record single snapshots.
    """
    selected = []
    for snap in snapshots:
        if snap.is_transaction:
            selected.append(snap)
        elif match_description and _APT_WORD.search(snap.description):
            selected.append(snap)
    return selected


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)


class SnapshotService:
    """The command surface over one explicitly passed store handle."""

    def __init__(
        self,
        store: SnapshotStore,
        bootloader: BootloaderSync,
        package_manager: PackageManager | None = None,
        policy: RetentionPolicy | None = None,
        cleanup_algorithm: str = "number",
        now: Callable[[], datetime] | None = None,
    ):
        self.store = store
        self.bootloader = bootloader
        self.package_manager = package_manager
        self.policy = policy or RetentionPolicy()
        self.cleanup_algorithm = cleanup_algorithm
        self.now = now or datetime.now

    # ── Shared steps ────────────────────────────────────────────

    def _create(self, result: VerbResult, description: str) -> Snapshot | None:
        start = time.monotonic()
        try:
            snap = self.store.create(description)
        except (InvalidArgument, StoreUnavailable) as e:
            logger.error("Snapshot creation failed: %s", e)
            result.add(Receipt.failure("create", str(e), duration_ms=_elapsed_ms(start)))
            return None

        label = f": {snap.description}" if snap.description else ""
        result.add(Receipt.success(
            "create",
            f"Created snapshot {snap.id}{label}",
            duration_ms=_elapsed_ms(start),
            metadata={"id": snap.id},
        ))
        return snap

    def _sync(self, result: VerbResult) -> None:
        start = time.monotonic()
        try:
            message = self.bootloader.sync()
        except SyncFailed as e:
            # The mutation already happened; the menu stays stale until next sync
            logger.warning("Boot menu not synchronized: %s", e)
            result.add(Receipt.failure(
                "sync", str(e), fatal=False, duration_ms=_elapsed_ms(start)
            ))
            return
        result.add(Receipt.success("sync", message, duration_ms=_elapsed_ms(start)))

    def _list(self, result: VerbResult, fatal: bool) -> list[Snapshot] | None:
        start = time.monotonic()
        try:
            snapshots = self.store.list()
        except StoreUnavailable as e:
            logger.error("Cannot list snapshots: %s", e)
            result.add(Receipt.failure(
                "list", str(e), fatal=fatal, duration_ms=_elapsed_ms(start)
            ))
            return None
        result.add(Receipt.success(
            "list",
            f"{len(snapshots)} snapshot(s)",
            duration_ms=_elapsed_ms(start),
        ))
        return snapshots

    def _show_recent(self, result: VerbResult) -> None:
        snapshots = self._list(result, fatal=False)
        if snapshots is not None:
            result.snapshots = most_recent(snapshots, RECENT_COUNT)

    def _delete(self, result: VerbResult, snapshot_id: int) -> bool | None:
        """Delete one snapshot.

        Returns True when deleted, False when it was already gone, and None
        on a store failure (recorded as fatal).
        """
        start = time.monotonic()
        try:
            self.store.delete(snapshot_id)
        except NotFound as e:
            result.add(Receipt.skip(
                "delete", str(e), metadata={"id": snapshot_id, "not_found": True}
            ))
            return False
        except (StoreUnavailable, InvalidArgument) as e:
            logger.error("Deleting snapshot %d failed: %s", snapshot_id, e)
            result.add(Receipt.failure(
                "delete", str(e), duration_ms=_elapsed_ms(start), metadata={"id": snapshot_id}
            ))
            return None
        result.add(Receipt.success(
            "delete",
            f"Deleted snapshot {snapshot_id}",
            duration_ms=_elapsed_ms(start),
            metadata={"id": snapshot_id},
        ))
        return True

    # ── Verbs ───────────────────────────────────────────────────

    def create_snapshot(self, description: str) -> VerbResult:
        """``snapshot``: create → sync → 5 most recent."""
        result = VerbResult(verb="snapshot")
        if self._create(result, description.strip()) is None:
            return result
        self._sync(result)
        self._show_recent(result)
        return result

    def list_snapshots(self) -> VerbResult:
        """``snapshot-list``: never fails; falls back to the store's raw output."""
        result = VerbResult(verb="snapshot-list")
        snapshots = self._list(result, fatal=False)
        if snapshots is not None:
            result.snapshots = snapshots
            return result

        try:
            result.raw_listing = self.store.raw_listing()
        except StoreUnavailable as e:
            logger.debug("Raw listing unavailable: %s", e)
        return result

    def remove_snapshots(
        self,
        snapshot_ids: list[int],
        confirm: Callable[[Snapshot], bool],
    ) -> VerbResult:
        """``snapshot-rm``: confirm and delete each id, syncing after each deletion.

        Unknown ids and declined prompts are skipped without failing the verb.
        """
        result = VerbResult(verb="snapshot-rm")
        snapshots = self._list(result, fatal=True)
        if snapshots is None:
            return result
        known = {s.id: s for s in snapshots}

        for snapshot_id in snapshot_ids:
            snap = known.get(snapshot_id)
            if snap is None:
                result.add(Receipt.skip(
                    "delete",
                    f"Snapshot {snapshot_id} not found",
                    metadata={"id": snapshot_id, "not_found": True},
                ))
                continue

            if not confirm(snap):
                result.add(Receipt.skip(
                    "delete", f"Skipped {snapshot_id}", metadata={"id": snapshot_id}
                ))
                continue

            deleted = self._delete(result, snapshot_id)
            if deleted is None:
                break
            if deleted:
                self._sync(result)

        return result

    def mark_important(self, snapshot_id: int, value: bool = True) -> VerbResult:
        """``snapshot-important``: flag (or unflag) one snapshot."""
        result = VerbResult(verb="snapshot-important")
        start = time.monotonic()
        try:
            self.store.set_important(snapshot_id, value)
        except (NotFound, InvalidArgument, StoreUnavailable) as e:
            logger.error("Cannot modify snapshot %d: %s", snapshot_id, e)
            result.add(Receipt.failure("modify", str(e), duration_ms=_elapsed_ms(start)))
            return result

        state = "important" if value else "not important"
        result.add(Receipt.success(
            "modify",
            f"Marked snapshot {snapshot_id} as {state}",
            duration_ms=_elapsed_ms(start),
            metadata={"id": snapshot_id, "important": value},
        ))
        if self.store.modify_changes_paths:
            self._sync(result)
        return result

    def clean(self, dry_run: bool = False) -> VerbResult:
        """``snapshot-clean``: enforce the retention policy."""
        result = VerbResult(verb="snapshot-clean")
        before = self._list(result, fatal=True)
        if before is None:
            return result

        candidates = before
        if self.store.native_cleanup:
            # Native cleanup only considers snapshots tagged with its algorithm
            candidates = [s for s in before if s.cleanup == self.cleanup_algorithm]
        eligible = select_eligible(candidates, self.policy, now=self.now())
        result.eligible = eligible
        result.add(Receipt.success(
            "plan",
            f"{len(eligible)} snapshot(s) over the retention limits "
            f"(keep {self.policy.number_limit} + {self.policy.number_limit_important} important)",
            metadata={"ids": [s.id for s in eligible], "policy": self.policy.to_dict()},
        ))

        if dry_run:
            result.snapshots = before
            return result

        if self.store.native_cleanup:
            if not self._native_cleanup(result, before):
                return result
        else:
            for snap in eligible:
                if self._delete(result, snap.id) is None:
                    break

        self._sync(result)
        remaining = self._list(result, fatal=False)
        if remaining is not None:
            result.snapshots = remaining
        return result

    def _native_cleanup(self, result: VerbResult, before: list[Snapshot]) -> bool:
        start = time.monotonic()
        try:
            self.store.cleanup(self.cleanup_algorithm)
        except StoreUnavailable as e:
            logger.error("Store cleanup failed: %s", e)
            result.add(Receipt.failure("cleanup", str(e), duration_ms=_elapsed_ms(start)))
            return False

        output = f"{self.store.name} {self.cleanup_algorithm} cleanup completed"
        metadata: dict[str, Any] = {}
        try:
            after_ids = {s.id for s in self.store.list()}
        except StoreUnavailable as e:
            logger.debug("Cannot compare snapshot sets after cleanup: %s", e)
        else:
            removed = sorted(s.id for s in before if s.id not in after_ids)
            output += f", removed {len(removed)} snapshot(s)"
            metadata["removed"] = removed

        result.add(Receipt.success(
            "cleanup", output, duration_ms=_elapsed_ms(start), metadata=metadata
        ))
        return True

    def pre_update(self) -> VerbResult:
        """``pre-update``: snapshot, then upgrade packages.

        An upgrade failure makes the verb fail but the snapshot is kept.
        """
        result = VerbResult(verb="pre-update")
        stamp = self.now().astimezone().isoformat(timespec="seconds")
        if self._create(result, f"Pre-update {stamp}") is None:
            return result
        self._sync(result)

        if self.package_manager is None:
            result.add(Receipt.skip("upgrade", "No package manager configured"))
        else:
            start = time.monotonic()
            try:
                self.package_manager.upgrade()
            except ExternalCommandFailed as e:
                logger.error("Package upgrade failed: %s", e)
                result.add(Receipt.failure(
                    "upgrade",
                    str(e),
                    duration_ms=_elapsed_ms(start),
                    metadata={"exit_code": e.return_code},
                ))
            else:
                result.add(Receipt.success(
                    "upgrade", "Packages upgraded", duration_ms=_elapsed_ms(start)
                ))

        self._show_recent(result)
        return result

    def remove_apt_snapshots(
        self,
        confirm: Callable[[list[Snapshot]], bool],
        match_description: bool = False,
    ) -> VerbResult:
        """``snapshot-rm-apt``: delete every package-transaction snapshot at once."""
        result = VerbResult(verb="snapshot-rm-apt")
        snapshots = self._list(result, fatal=True)
        if snapshots is None:
            return result

        selected = select_apt_snapshots(snapshots, match_description)
        result.eligible = selected
        if not selected:
            result.add(Receipt.skip("delete", "No apt snapshots found"))
            return result

        if not confirm(selected):
            result.add(Receipt.skip("delete", "Aborted"))
            return result

        deleted_any = False
        for snap in selected:
            deleted = self._delete(result, snap.id)
            if deleted is None:
                break
            deleted_any = deleted_any or deleted

        if deleted_any:
            self._sync(result)
        remaining = self._list(result, fatal=False)
        if remaining is not None:
            result.snapshots = remaining
        return result
