"""
Store registry — select the snapshot store variant by name.

The backend is chosen once, from configuration, and the resulting store
handle is passed explicitly to the command surface.
"""

from __future__ import annotations

import logging

from snapctl.adapters.base import SnapshotStore

logger = logging.getLogger(__name__)


class StoreRegistry:
    """Registry of available snapshot store variants."""

    def __init__(self) -> None:
        self._stores: dict[str, SnapshotStore] = {}

    def register(self, store: SnapshotStore) -> None:
        name = store.name
        if name in self._stores:
            logger.warning("Overwriting existing store: %s", name)
        self._stores[name] = store
        logger.debug("Registered store: %s", name)

    def resolve(self, name: str) -> SnapshotStore:
        """Look up a store, raising KeyError with the valid choices."""
        store = self._stores.get(name)
        if store is None:
            valid = ", ".join(sorted(self._stores)) or "none"
            raise KeyError(f"Unknown snapshot backend '{name}'. Valid: {valid}")
        return store
