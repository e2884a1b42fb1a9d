"""
Event Store - SQLite and in-memory implementations.

Implements the EventStore port from services/events/ports.py.

- SQLiteEventStore: durable store, IDs allocated in the same transaction as the insert
- MemoryEventStore: volatile ring buffer with a hard ceiling; process-local,
  meant for tests, demos, and degraded mode only
"""

from __future__ import annotations

import json
import logging
from collections import deque
from typing import Any, Callable, Optional

from ...db.connection import DatabaseManager
from ...db.schema import EventKind, now_iso8601
from .allocator import MemoryIdAllocator
from .models import TelemetryEvent
from .ports import TELEMETRY_STREAM, StoredEvent, TransactionalIdAllocator, order_for_display

logger = logging.getLogger(__name__)

# Same ceiling as the legacy in-memory fallback
DEFAULT_MEMORY_CAPACITY = 1000

_COLUMNS = "id, kind, vehicle_name, payload_json, created_at"


class SQLiteEventStore:
    """
    SQLite-backed telemetry event store.

    Features:
    - Application-assigned monotonic IDs (shared across kinds)
    - Store-assigned timestamps (producer clocks are never trusted)
    - Indexed range queries for incremental sync
    - Single-statement batch delete for retention

    Usage:
        store = SQLiteEventStore(db_manager, SQLiteCounterAllocator(db_manager))
        stored = await store.append(SpeedViolation(vehicleName="Car1", speed=80, excess=20))
        page = await store.range_after(None, since_id=0, limit=100)
    """

    name = "sqlite"

    def __init__(
        self,
        db: DatabaseManager,
        allocator: TransactionalIdAllocator,
        clock: Callable[[], str] = now_iso8601,
        stream: str = TELEMETRY_STREAM,
    ) -> None:
        self._db = db
        self._allocator = allocator
        self._clock = clock
        self._stream = stream

    async def append(self, event: TelemetryEvent) -> StoredEvent:
        """Append an event and return the stored record with assigned ID."""
        payload = event.payload()

        # ID and row commit together, so IDs become visible in allocation order
        async with self._db.transaction(immediate=True):
            event_id = await self._allocator.next_id_in_transaction(self._stream)
            created_at = self._clock()
            await self._db.execute(
                """
                INSERT INTO telemetry_events (id, kind, vehicle_name, payload_json, created_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (
                    event_id,
                    event.kind.value,
                    event.vehicle_name,
                    json.dumps(payload, ensure_ascii=False),
                    created_at,
                ),
            )

        return StoredEvent(
            id=event_id,
            kind=event.kind,
            vehicle_name=event.vehicle_name,
            payload=payload,
            created_at_iso=created_at,
        )

    async def range_after(
        self,
        kind: Optional[EventKind],
        since_id: int,
        limit: int,
    ) -> list[StoredEvent]:
        """List events after the given ID for incremental sync."""
        # The page is always cut by id so a watermark never skips an event;
        # merged pages are then reordered by timestamp.
        sql = f"SELECT {_COLUMNS} FROM telemetry_events WHERE id > ?"
        params: list[Any] = [since_id]
        if kind is not None:
            sql += " AND kind = ?"
            params.append(kind.value)
        sql += " ORDER BY id ASC LIMIT ?"
        params.append(limit)

        async with self._db.transaction():
            rows = await self._db.fetch_all(sql, tuple(params))

        return order_for_display([self._row_to_event(r) for r in rows], merged=kind is None)

    async def latest(self, kind: Optional[EventKind], limit: int) -> list[StoredEvent]:
        """Most recent events, oldest first."""
        sql = f"SELECT {_COLUMNS} FROM telemetry_events"
        params: list[Any] = []
        if kind is not None:
            sql += " WHERE kind = ?"
            params.append(kind.value)
        sql += " ORDER BY created_at DESC, id DESC LIMIT ?"
        params.append(limit)

        async with self._db.transaction():
            rows = await self._db.fetch_all(sql, tuple(params))

        events = [self._row_to_event(r) for r in rows]
        events.reverse()
        return events

    async def count(self, kind: Optional[EventKind] = None) -> int:
        async with self._db.transaction():
            if kind is None:
                row = await self._db.fetch_one("SELECT COUNT(*) AS n FROM telemetry_events")
            else:
                row = await self._db.fetch_one(
                    "SELECT COUNT(*) AS n FROM telemetry_events WHERE kind = ?",
                    (kind.value,),
                )
        return int(row["n"]) if row else 0

    async def delete_oldest(self, kind: EventKind, n: int) -> int:
        """Delete the n oldest events of a kind (timestamp, then id). Returns count deleted."""
        if n <= 0:
            return 0
        async with self._db.transaction():
            cursor = await self._db.execute(
                """
                DELETE FROM telemetry_events WHERE id IN (
                    SELECT id FROM telemetry_events
                    WHERE kind = ?
                    ORDER BY created_at ASC, id ASC
                    LIMIT ?
                )
                """,
                (kind.value, n),
            )
            rowcount = cursor.rowcount
        return rowcount

    async def close(self) -> None:
        await self._db.close()

    @staticmethod
    def _row_to_event(row: Any) -> StoredEvent:
        try:
            payload = json.loads(row["payload_json"])
        except (json.JSONDecodeError, TypeError) as e:
            logger.warning(
                "Event id=%s has unreadable payload_json (%s); serving it without kind fields",
                row["id"], e,
            )
            payload = {}
        return StoredEvent(
            id=row["id"],
            kind=EventKind(row["kind"]),
            vehicle_name=row["vehicle_name"],
            payload=payload,
            created_at_iso=row["created_at"],
        )


class MemoryEventStore:
    """
    Volatile telemetry event store.

    A ring buffer holding at most `capacity` events across both kinds; the
    oldest entry is dropped when a new one arrives at the ceiling. Contents
    are lost on restart and are not visible to other processes.
    """

    name = "memory"

    def __init__(
        self,
        capacity: int = DEFAULT_MEMORY_CAPACITY,
        allocator: Optional[MemoryIdAllocator] = None,
        clock: Callable[[], str] = now_iso8601,
        stream: str = TELEMETRY_STREAM,
    ) -> None:
        if capacity < 1:
            raise ValueError("capacity must be >= 1")
        self.capacity = capacity
        self._events: deque[StoredEvent] = deque(maxlen=capacity)
        self._allocator = allocator or MemoryIdAllocator()
        self._clock = clock
        self._stream = stream

    async def append(self, event: TelemetryEvent) -> StoredEvent:
        # No await between allocation and insert: appends stay in id order
        stored = StoredEvent(
            id=self._allocator.next_id_nowait(self._stream),
            kind=event.kind,
            vehicle_name=event.vehicle_name,
            payload=event.payload(),
            created_at_iso=self._clock(),
        )
        if len(self._events) == self.capacity:
            logger.debug("Memory store at capacity %d, dropping id=%d", self.capacity, self._events[0].id)
        self._events.append(stored)
        return stored

    def _select(self, kind: Optional[EventKind]) -> list[StoredEvent]:
        return [e for e in self._events if kind is None or e.kind == kind]

    async def range_after(
        self,
        kind: Optional[EventKind],
        since_id: int,
        limit: int,
    ) -> list[StoredEvent]:
        page = sorted((e for e in self._select(kind) if e.id > since_id), key=lambda e: e.id)
        return order_for_display(page[:limit], merged=kind is None)

    async def latest(self, kind: Optional[EventKind], limit: int) -> list[StoredEvent]:
        if limit <= 0:
            return []
        ordered = sorted(self._select(kind), key=lambda e: (e.created_at_iso, e.id))
        return ordered[-limit:]

    async def count(self, kind: Optional[EventKind] = None) -> int:
        return len(self._select(kind))

    async def delete_oldest(self, kind: EventKind, n: int) -> int:
        if n <= 0:
            return 0
        oldest = sorted(self._select(kind), key=lambda e: (e.created_at_iso, e.id))[:n]
        doomed = {e.id for e in oldest}
        self._events = deque((e for e in self._events if e.id not in doomed), maxlen=self.capacity)
        return len(doomed)

    def issued_through(self) -> int:
        """Highest ID this store has handed out (start - 1 if none)."""
        return self._allocator.peek(self._stream) - 1

    async def close(self) -> None:
        return None
