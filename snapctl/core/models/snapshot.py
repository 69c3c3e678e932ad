"""
Snapshot model — one point-in-time, read-only copy of the root subvolume.

Records are produced by store adapters only. The command surface never
builds them by hand.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel

SnapshotType = Literal["single", "pre", "post"]


class Snapshot(BaseModel):
    """A snapshot as reported by the backing store."""

    id: int                             # store-assigned, never reused
    description: str = ""
    created_at: datetime | None = None  # None when the store date is unparseable
    important: bool = False
    type: SnapshotType = "single"

    # Snapper-only details
    pre_id: int | None = None
    user: str = ""
    cleanup: str = ""

    # Raw-Btrfs-only details
    name: str = ""
    path: str = ""

    @property
    def is_transaction(self) -> bool:
        """Whether this is one half of a pre/post pair."""
        return self.type in ("pre", "post")

    def to_dict(self) -> dict[str, Any]:
        """JSON-serializable representation."""
        return self.model_dump(mode="json")


def sort_snapshots(snapshots: list[Snapshot]) -> list[Snapshot]:
    """Return snapshots in ascending id order (oldest first)."""
    return sorted(snapshots, key=lambda s: s.id)


def most_recent(snapshots: list[Snapshot], count: int = 5) -> list[Snapshot]:
    """The ``count`` newest snapshots, still in ascending id order."""
    if count <= 0:
        return []
    return sort_snapshots(snapshots)[-count:]
