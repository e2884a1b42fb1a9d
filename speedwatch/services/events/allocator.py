"""
Identity allocators - monotonic integer IDs per stream.

- SQLiteCounterAllocator: atomic counter row, safe under concurrent writers
- SQLiteMaxPlusOneAllocator: MAX(id) + 1, NOT safe under concurrent writers
- MemoryIdAllocator: in-process counter for the volatile store / degraded mode

The counter row is seeded from MAX(id) of existing events on first use, so a
database previously filled by the max+1 strategy never re-issues an ID.

The SQLite allocators also expose next_id_in_transaction(), which runs inside
the caller's transaction. SQLiteEventStore uses it so the ID and the row it
labels commit together: IDs become visible to readers in allocation order.
"""

from __future__ import annotations

import logging

from ...db.connection import DatabaseManager

logger = logging.getLogger(__name__)


class SQLiteCounterAllocator:
    """
    Race-free allocator backed by the `id_counters` table.

    The UPSERT runs first in the transaction, so SQLite takes the write lock
    before the value is read back; concurrent writers (even in other
    processes) serialize on it.
    """

    def __init__(self, db: DatabaseManager) -> None:
        self._db = db

    async def next_id(self, stream: str) -> int:
        async with self._db.transaction(immediate=True):
            return await self.next_id_in_transaction(stream)

    async def next_id_in_transaction(self, stream: str) -> int:
        """Allocate within the caller's open transaction; rolls back with it."""
        await self._db.execute(
            """
            INSERT INTO id_counters (stream, value)
            VALUES (?, (SELECT COALESCE(MAX(id), 0) FROM telemetry_events) + 1)
            ON CONFLICT(stream) DO UPDATE SET value = MAX(
                value + 1,
                (SELECT COALESCE(MAX(id), 0) FROM telemetry_events) + 1
            )
            """,
            (stream,),
        )
        row = await self._db.fetch_one(
            "SELECT value FROM id_counters WHERE stream = ?",
            (stream,),
        )
        return int(row["value"])


class SQLiteMaxPlusOneAllocator:
    """
    Allocator reading the highest stored ID and adding one.

    Two concurrent writers can observe the same maximum and receive the same
    ID; the primary key then rejects the second insert. Use only with a
    single writer.
    """

    def __init__(self, db: DatabaseManager) -> None:
        self._db = db

    async def next_id(self, stream: str) -> int:
        async with self._db.transaction():
            return await self.next_id_in_transaction(stream)

    async def next_id_in_transaction(self, stream: str) -> int:
        row = await self._db.fetch_one(
            "SELECT COALESCE(MAX(id), 0) AS max_id FROM telemetry_events"
        )
        return int(row["max_id"]) + 1


class MemoryIdAllocator:
    """
    In-process counter, one sequence per stream.

    Not durable and not shared across processes: IDs issued here may collide
    with or trail behind IDs issued by a durable allocator once it is back.
    """

    def __init__(self, start: int = 1) -> None:
        if start < 1:
            raise ValueError("start must be >= 1")
        self._start = start
        self._next: dict[str, int] = {}

    def next_id_nowait(self, stream: str) -> int:
        value = self._next.get(stream, self._start)
        self._next[stream] = value + 1
        return value

    async def next_id(self, stream: str) -> int:
        return self.next_id_nowait(stream)

    def peek(self, stream: str) -> int:
        """ID the next call would return."""
        return self._next.get(stream, self._start)


def build_allocator(strategy: str, db: DatabaseManager):
    """Create the durable allocator named by configuration."""
    if strategy == "counter":
        return SQLiteCounterAllocator(db)
    if strategy == "max_plus_one":
        logger.warning(
            "Using max+1 ID allocation: IDs may repeat under concurrent writers"
        )
        return SQLiteMaxPlusOneAllocator(db)
    raise ValueError(f"Unknown ID strategy: {strategy!r}")
