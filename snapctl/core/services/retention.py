"""
Retention policy enforcer — numeric "keep last N" selection.

Snapshots are split into ordinary and important partitions. Within each
partition the oldest ``count - limit`` snapshots (ascending id) are
eligible for deletion. The partitions never count against each other.

A minimum age mirrors Snapper's NUMBER_MIN_AGE: a snapshot younger than
it is never eligible, even when its partition is over the limit.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import UTC, datetime

from snapctl.core.models.snapshot import Snapshot, sort_snapshots

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RetentionPolicy:
    """Numeric limits for one snapshot store."""

    number_limit: int = 10
    number_limit_important: int = 5
    number_min_age: int = 0      # seconds, 0 disables the age rule
    source: str = ""             # where the limits were read from

    def to_dict(self) -> dict:
        return {
            "number_limit": self.number_limit,
            "number_limit_important": self.number_limit_important,
            "number_min_age": self.number_min_age,
            "source": self.source,
        }


def _is_old_enough(snap: Snapshot, min_age: int, now: datetime | None) -> bool:
    if min_age <= 0:
        return True
    if snap.created_at is None:
        # Unknown age is treated as too young to delete
        return False
    created = snap.created_at
    if created.tzinfo is None:
        reference = now.replace(tzinfo=None) if now else datetime.now()
    else:
        reference = now if now and now.tzinfo else datetime.now(UTC)
    return (reference - created).total_seconds() >= min_age


def _surplus(partition: list[Snapshot], limit: int) -> list[Snapshot]:
    ordered = sort_snapshots(partition)
    excess = len(ordered) - max(limit, 0)
    return ordered[:excess] if excess > 0 else []


def select_eligible(
    snapshots: list[Snapshot],
    policy: RetentionPolicy,
    now: datetime | None = None,
) -> list[Snapshot]:
    """Return the snapshots the policy allows deleting, ascending by id.

    Args:
        snapshots: The complete snapshot set.
        policy: Limits to enforce.
        now: Reference time for the minimum-age rule (default: current time).
    """
    ordinary = [s for s in snapshots if not s.important]
    important = [s for s in snapshots if s.important]

    eligible = _surplus(ordinary, policy.number_limit) + _surplus(
        important, policy.number_limit_important
    )
    selected = [s for s in eligible if _is_old_enough(s, policy.number_min_age, now)]

    if len(selected) < len(eligible):
        logger.info(
            "%d snapshot(s) over the limit are younger than %ds and kept",
            len(eligible) - len(selected), policy.number_min_age,
        )
    return sort_snapshots(selected)
