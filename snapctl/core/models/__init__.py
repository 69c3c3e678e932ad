"""
Domain models — Pydantic types for snapctl.

    from snapctl.core.models import Snapshot, Receipt
"""

from snapctl.core.models.receipt import Receipt
from snapctl.core.models.snapshot import (
    Snapshot,
    SnapshotType,
    most_recent,
    sort_snapshots,
)

__all__ = [
    # receipt.py
    "Receipt",
    # snapshot.py
    "Snapshot",
    "SnapshotType",
    "most_recent",
    "sort_snapshots",
]
