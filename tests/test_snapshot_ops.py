"""
Tests for the command surface — every verb against the in-memory store.
"""

import json
from datetime import datetime

import pytest

from snapctl.adapters.mock import InMemoryStore, MockRunner, RecordingSync
from snapctl.adapters.package_manager import PackageManager
from snapctl.adapters.snapper import SnapperStore
from snapctl.core.errors import InvalidArgument, NotFound, StoreUnavailable
from snapctl.core.models.receipt import Receipt
from snapctl.core.models.snapshot import Snapshot
from snapctl.core.services.retention import RetentionPolicy
from snapctl.core.services.snapshot_ops import (
    SnapshotService,
    VerbResult,
    parse_snapshot_id,
    select_apt_snapshots,
)

FIXED_NOW = datetime(2024, 6, 1, 9, 30, 0)


def _steps(result: VerbResult) -> list[str]:
    return [r.step for r in result.receipts]


def _ids(snapshots: list[Snapshot]) -> list[int]:
    return [s.id for s in snapshots]


def always(_snapshot) -> bool:
    return True


def never(_snapshot) -> bool:
    return False


# ── Argument Tests ───────────────────────────────────────────────────


class TestParseSnapshotId:
    def test_valid(self):
        assert parse_snapshot_id("12") == 12
        assert parse_snapshot_id(" 7 ") == 7

    @pytest.mark.parametrize("raw", ["0", "-1", "abc", "", "1.5", "²", "1²"])
    def test_invalid(self, raw):
        with pytest.raises(InvalidArgument):
            parse_snapshot_id(raw)


class TestVerbResult:
    def test_exit_code_from_first_fatal(self, service):
        result = VerbResult(verb="x")
        assert result.exit_code == 0
        result.add(Receipt.failure("sync", "meh", fatal=False))
        assert result.exit_code == 0
        result.add(Receipt.failure("upgrade", "apt", metadata={"exit_code": 100}))
        result.add(Receipt.failure("list", "down"))
        assert result.exit_code == 100

    def test_to_dict(self, service, store):
        store.add("a")
        data = service.list_snapshots().to_dict()
        assert data["verb"] == "snapshot-list"
        assert data["ok"] is True
        assert data["snapshots"][0]["description"] == "a"


# ── snapshot ─────────────────────────────────────────────────────────


class TestCreateSnapshot:
    def test_create_sync_list(self, service, store, sync):
        result = service.create_snapshot("before update")
        assert _steps(result) == ["create", "sync", "list"]
        assert result.exit_code == 0
        assert sync.count == 1
        assert store.list()[0].description == "before update"
        assert result.receipts[0].metadata["id"] == 1

    def test_shows_five_most_recent(self, service, store):
        for i in range(7):
            store.add(f"s{i}")
        result = service.create_snapshot("newest")
        assert _ids(result.snapshots) == [4, 5, 6, 7, 8]

    def test_create_failure_stops(self, service, store, sync):
        store.set_failure("create", StoreUnavailable("snapper create failed"))
        result = service.create_snapshot("x")
        assert result.failed
        assert result.exit_code == 1
        assert _steps(result) == ["create"]
        assert sync.count == 0

    def test_empty_description_rejected_by_store(self, sync):
        store = InMemoryStore(require_description=True)
        result = SnapshotService(store, sync).create_snapshot("   ")
        assert result.failed
        assert store.list() == []

    def test_sync_failure_is_a_warning(self, store):
        service = SnapshotService(store, RecordingSync(fail=True))
        result = service.create_snapshot("x")
        assert not result.failed
        assert result.exit_code == 0
        sync_receipt = result.receipts[1]
        assert sync_receipt.failed and not sync_receipt.fatal
        assert len(store.list()) == 1


# ── snapshot-list ────────────────────────────────────────────────────


class TestListSnapshots:
    def test_list(self, service, store):
        store.add("a")
        store.add("b", important=True)
        result = service.list_snapshots()
        assert _ids(result.snapshots) == [1, 2]
        assert result.snapshots[1].important

    def test_empty(self, service):
        result = service.list_snapshots()
        assert result.snapshots == []
        assert result.exit_code == 0

    def test_raw_fallback(self, service, store):
        store.add("legacy")
        store.set_failure("list", StoreUnavailable("no json"))
        result = service.list_snapshots()
        assert result.exit_code == 0
        assert "legacy" in result.raw_listing


# ── snapshot-rm ──────────────────────────────────────────────────────


class TestRemoveSnapshots:
    def test_delete_and_sync_each(self, service, store, sync):
        for name in ("a", "b", "c"):
            store.add(name)
        result = service.remove_snapshots([1, 3], always)
        assert _ids(store.list()) == [2]
        assert sync.count == 2
        assert _steps(result) == ["list", "delete", "sync", "delete", "sync"]

    def test_unknown_id_is_skipped(self, service, store, sync):
        store.add("a")
        result = service.remove_snapshots([9], always)
        assert not result.failed
        assert result.receipts[-1].skipped
        assert result.receipts[-1].metadata["not_found"]
        assert sync.count == 0

    def test_second_delete_of_same_id(self, service, store, sync):
        for name in ("a", "b", "c"):
            store.add(name)
        service.remove_snapshots([2], always)
        with pytest.raises(NotFound):
            store.delete(2)
        again = service.remove_snapshots([2], always)
        assert not again.failed
        assert again.receipts[-1].skipped
        assert again.receipts[-1].metadata["not_found"]
        assert _ids(store.list()) == [1, 3]
        assert sync.count == 1

    def test_declined(self, service, store, sync):
        store.add("a")
        result = service.remove_snapshots([1], never)
        assert result.receipts[-1].output == "Skipped 1"
        assert _ids(store.list()) == [1]
        assert sync.count == 0

    def test_confirm_sees_the_record(self, service, store):
        store.add("golden image")
        seen = []
        service.remove_snapshots([1], lambda snap: seen.append(snap.description) or False)
        assert seen == ["golden image"]

    def test_racing_delete(self, service, store, sync):
        store.add("a")
        store.set_failure("delete", NotFound(1))
        result = service.remove_snapshots([1], always)
        assert not result.failed
        assert result.receipts[-1].skipped
        assert sync.count == 0

    def test_store_failure_stops(self, service, store):
        store.add("a")
        store.add("b")
        store.set_failure("delete", StoreUnavailable("busy"))
        result = service.remove_snapshots([1, 2], always)
        assert result.exit_code == 1
        assert store.operations.count("delete") == 1

    def test_list_failure(self, service, store):
        store.set_failure("list", StoreUnavailable("down"))
        result = service.remove_snapshots([1], always)
        assert result.exit_code == 1


# ── snapshot-important ───────────────────────────────────────────────


class TestMarkImportant:
    def test_mark(self, service, store, sync):
        store.add("a")
        result = service.mark_important(1)
        assert result.exit_code == 0
        assert store.list()[0].important
        assert sync.count == 0

    def test_unset(self, service, store):
        store.add("a", important=True)
        service.mark_important(1, value=False)
        assert not store.list()[0].important

    def test_unknown(self, service):
        result = service.mark_important(5)
        assert result.exit_code == 1
        assert "not found" in result.receipts[0].error

    def test_path_changing_store_syncs(self, service, store, sync):
        store.modify_changes_paths = True
        store.add("a")
        result = service.mark_important(1)
        assert _steps(result) == ["modify", "sync"]
        assert sync.count == 1


# ── snapshot-clean ───────────────────────────────────────────────────


class TestClean:
    def test_deletes_oldest(self, service, store, sync):
        for i in range(5):
            store.add(f"s{i}")
        result = service.clean()
        assert _ids(store.list()) == [3, 4, 5]
        assert result.receipts[1].metadata["ids"] == [1, 2]
        assert _ids(result.snapshots) == [3, 4, 5]
        assert sync.count == 1

    def test_important_partition(self, store, sync):
        store.add("keep", important=True)
        for i in range(3):
            store.add(f"s{i}")
        store.add("keep too", important=True)
        policy = RetentionPolicy(number_limit=2, number_limit_important=5)
        service = SnapshotService(store, sync, policy=policy, now=lambda: FIXED_NOW)
        service.clean()
        assert _ids(store.list()) == [1, 3, 4, 5]

    def test_nothing_to_do(self, service, store, sync):
        store.add("a")
        result = service.clean()
        assert result.eligible == []
        assert not result.failed
        assert sync.count == 1

    def test_dry_run(self, service, store, sync):
        for i in range(5):
            store.add(f"s{i}")
        result = service.clean(dry_run=True)
        assert _ids(result.eligible) == [1, 2]
        assert len(store.list()) == 5
        assert sync.count == 0
        assert "delete" not in store.operations

    def test_native_cleanup(self, sync):
        store = InMemoryStore(
            native_cleanup=True,
            policy=RetentionPolicy(number_limit=3, number_limit_important=2),
        )
        for i in range(5):
            store.add(f"s{i}")
        service = SnapshotService(store, sync, policy=store.policy, now=lambda: FIXED_NOW)
        result = service.clean()
        assert "delete" not in store.operations
        cleanup = next(r for r in result.receipts if r.step == "cleanup")
        assert cleanup.metadata["removed"] == [1, 2]
        assert sync.count == 1

    def test_native_plan_ignores_other_algorithms(self, sync):
        runner = MockRunner()
        entries = [
            {"number": n, "type": "single", "date": "2024-05-01 10:00:00",
             "cleanup": "timeline" if n <= 3 else "number", "description": f"s{n}"}
            for n in range(1, 6)
        ]
        runner.set_response(["snapper", "--jsonout"], stdout=json.dumps({"root": entries}))
        policy = RetentionPolicy(number_limit=2, number_limit_important=5)
        service = SnapshotService(SnapperStore(runner), sync, policy=policy, now=lambda: FIXED_NOW)
        result = service.clean(dry_run=True)
        assert result.eligible == []
        assert _ids(result.snapshots) == [1, 2, 3, 4, 5]

    def test_native_cleanup_mixed_algorithms(self, sync):
        store = InMemoryStore(
            native_cleanup=True,
            policy=RetentionPolicy(number_limit=2, number_limit_important=2),
        )
        for i in range(3):
            store.add(f"hourly {i}", cleanup="timeline")
        for i in range(3):
            store.add(f"s{i}")
        service = SnapshotService(store, sync, policy=store.policy, now=lambda: FIXED_NOW)
        result = service.clean()
        assert _ids(result.eligible) == [4]
        assert _ids(store.list()) == [1, 2, 3, 5, 6]

    def test_native_cleanup_failure(self, sync):
        store = InMemoryStore(native_cleanup=True)
        store.add("a")
        store.set_failure("cleanup", StoreUnavailable("snapper cleanup failed"))
        result = SnapshotService(store, sync).clean()
        assert result.exit_code == 1
        assert sync.count == 0

    def test_list_failure(self, service, store):
        store.set_failure("list", StoreUnavailable("down"))
        assert service.clean().exit_code == 1


# ── pre-update ───────────────────────────────────────────────────────


class TestPreUpdate:
    def test_snapshot_then_upgrade(self, service, store, sync, runner):
        result = service.pre_update()
        assert _steps(result) == ["create", "sync", "upgrade", "list"]
        assert result.exit_code == 0
        assert store.list()[0].description.startswith("Pre-update 2024-06-01T09:30:00")
        assert runner.call_log == [["apt", "update"], ["apt", "upgrade", "-y"]]
        assert sync.count == 1

    def test_upgrade_failure_keeps_snapshot(self, service, store, runner):
        runner.set_failure(["apt", "upgrade"], "E: Broken packages", return_code=100)
        result = service.pre_update()
        assert result.exit_code == 100
        assert len(store.list()) == 1

    def test_create_failure_skips_upgrade(self, service, store, runner):
        store.set_failure("create", StoreUnavailable("no space"))
        result = service.pre_update()
        assert result.exit_code == 1
        assert runner.call_count == 0

    def test_without_package_manager(self, store, sync):
        result = SnapshotService(store, sync).pre_update()
        assert result.receipts[2].skipped
        assert result.exit_code == 0


# ── snapshot-rm-apt ──────────────────────────────────────────────────


class TestRemoveAptSnapshots:
    def _seed(self, store):
        store.add("manual")
        store.add("apt", type="pre")
        store.add("apt", type="post")
        store.add("apt install foo")

    def test_removes_pairs(self, service, store, sync):
        self._seed(store)
        result = service.remove_apt_snapshots(always)
        assert _ids(store.list()) == [1, 4]
        assert _ids(result.eligible) == [2, 3]
        assert sync.count == 1

    def test_match_description(self, service, store):
        self._seed(store)
        service.remove_apt_snapshots(always, match_description=True)
        assert _ids(store.list()) == [1]

    def test_none_found(self, service, store, sync):
        store.add("manual")
        result = service.remove_apt_snapshots(always)
        assert result.receipts[-1].output == "No apt snapshots found"
        assert sync.count == 0

    def test_aborted(self, service, store, sync):
        self._seed(store)
        result = service.remove_apt_snapshots(never)
        assert result.receipts[-1].output == "Aborted"
        assert len(store.list()) == 4
        assert sync.count == 0


class TestSelectAptSnapshots:
    def test_word_match_only(self):
        snaps = [
            Snapshot(id=1, description="aptitude tweaks"),
            Snapshot(id=2, description="before apt upgrade"),
        ]
        assert _ids(select_apt_snapshots(snaps, match_description=True)) == [2]
        assert select_apt_snapshots(snaps) == []


def test_service_defaults():
    service = SnapshotService(InMemoryStore(), RecordingSync(), PackageManager(MockRunner()))
    assert service.policy.number_limit == 10
    assert service.cleanup_algorithm == "number"
