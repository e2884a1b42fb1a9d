"""
Sync reader - incremental, watermark-based event reads.

Clients poll with the highest ID they have processed (the watermark). A
missing or zero watermark returns the most recent page for display; a
positive watermark returns everything newer, one bounded page at a time.
Clients keep polling with the highest ID seen until a short page says they
have caught up.
"""

from __future__ import annotations

from typing import AsyncIterator, Optional

from ...db.schema import EventKind
from .ports import EventStore, StoredEvent

DEFAULT_RECENT_PAGE_SIZE = 20
DEFAULT_MAX_PAGE_SIZE = 100


class SyncReader:
    """Answers "events after watermark" queries against an EventStore."""

    def __init__(
        self,
        store: EventStore,
        recent_page_size: int = DEFAULT_RECENT_PAGE_SIZE,
        max_page_size: int = DEFAULT_MAX_PAGE_SIZE,
    ) -> None:
        if recent_page_size < 1 or max_page_size < 1:
            raise ValueError("page sizes must be >= 1")
        self._store = store
        self.recent_page_size = recent_page_size
        self.max_page_size = max_page_size

    async def sync(
        self,
        kind: Optional[EventKind] = None,
        since_id: Optional[int] = None,
    ) -> list[StoredEvent]:
        """
        Return events newer than the watermark, ascending.

        Args:
            kind: Restrict to one kind (None = both, merged by timestamp)
            since_id: Watermark; None, zero or negative means "latest page"
        """
        watermark = max(0, int(since_id or 0))
        if watermark == 0:
            return list(await self._store.latest(kind, self.recent_page_size))
        return list(await self._store.range_after(kind, watermark, self.max_page_size))

    async def follow(
        self,
        kind: Optional[EventKind] = None,
        since_id: int = 0,
    ) -> AsyncIterator[StoredEvent]:
        """
        Yield every event after `since_id`, page by page, until caught up.

        Unlike sync(), a zero watermark here means "from the beginning".
        """
        cursor = max(0, since_id)  # Track highest event ID seen
        while True:
            batch = await self._store.range_after(kind, cursor, self.max_page_size)
            if not batch:
                break
            for ev in batch:
                yield ev
            cursor = max(cursor, max(ev.id for ev in batch))
            if len(batch) < self.max_page_size:
                break
