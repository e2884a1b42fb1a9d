"""
Retention trimming - keep each kind's stream at or below its cap.
"""

from __future__ import annotations

import logging

from ...db.schema import EventKind
from .ports import EventStore

logger = logging.getLogger(__name__)


class RetentionTrimmer:
    """Deletes the oldest events of a kind once it holds more than `capacity`."""

    def __init__(self, store: EventStore) -> None:
        self._store = store

    async def trim(self, kind: EventKind, capacity: int) -> int:
        """
        Enforce the retention cap for one kind.

        The excess (oldest by timestamp, then id) is removed as a single batch.

        Returns:
            Number of events deleted
        """
        if capacity < 0:
            raise ValueError("capacity must be >= 0")

        count = await self._store.count(kind)
        excess = count - capacity
        if excess <= 0:
            return 0

        deleted = await self._store.delete_oldest(kind, excess)
        logger.info(
            "Retention: trimmed %d %s event(s) (count=%d, cap=%d)",
            deleted, kind.value, count, capacity,
        )
        return deleted

    async def trim_all(self, capacity: int) -> dict[EventKind, int]:
        """Trim every kind; returns deletions per kind."""
        return {kind: await self.trim(kind, capacity) for kind in EventKind}
