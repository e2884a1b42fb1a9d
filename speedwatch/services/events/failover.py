"""
Failover event store - durable store with an explicit degraded mode.

When the durable store raises StoreUnavailableError, operations switch to a
process-local MemoryEventStore and a consistency-gap warning is logged. The
durable store is probed again after `recovery_interval_s`; on success the
fallback is dropped and the ID range it issued is logged.

Known gap: IDs issued in degraded mode are never persisted. The fallback
counter starts after the highest durable ID this process has seen, but other
processes (or a cold start) cannot know about them, and the durable counter
may issue the same IDs again after recovery.
"""

from __future__ import annotations

import logging
import time
from typing import Awaitable, Callable, Optional, TypeVar

from ...db.schema import EventKind
from ...errors import StoreUnavailableError
from .allocator import MemoryIdAllocator
from .models import TelemetryEvent
from .ports import EventStore, StoredEvent
from .store import DEFAULT_MEMORY_CAPACITY, MemoryEventStore

logger = logging.getLogger(__name__)

T = TypeVar("T")


class FailoverEventStore:
    """EventStore that degrades to memory while the durable store is down."""

    def __init__(
        self,
        primary: EventStore,
        fallback_capacity: int = DEFAULT_MEMORY_CAPACITY,
        recovery_interval_s: float = 30.0,
        monotonic: Callable[[], float] = time.monotonic,
    ) -> None:
        self._primary = primary
        self._fallback: Optional[MemoryEventStore] = None
        self._fallback_capacity = fallback_capacity
        self._recovery_interval_s = recovery_interval_s
        self._monotonic = monotonic
        self._retry_at = 0.0
        self._high_water = 0  # Highest ID observed from the durable store
        self._degraded_first_id = 0

    @property
    def name(self) -> str:
        if self._fallback is not None:
            return f"{self._primary.name}+memory(degraded)"
        return self._primary.name

    @property
    def degraded(self) -> bool:
        return self._fallback is not None

    async def _run(self, operation: str, call: Callable[[EventStore], Awaitable[T]]) -> T:
        if self._fallback is not None and self._monotonic() < self._retry_at:
            return await call(self._fallback)

        try:
            result = await call(self._primary)
        except StoreUnavailableError as exc:
            fallback = self._enter_degraded(operation, exc)
            return await call(fallback)

        if self._fallback is not None:
            self._leave_degraded()
        return result

    def _enter_degraded(self, operation: str, exc: Exception) -> MemoryEventStore:
        self._retry_at = self._monotonic() + self._recovery_interval_s
        if self._fallback is not None:
            logger.debug("Durable store still unavailable during %s: %s", operation, exc)
            return self._fallback

        first_id = self._high_water + 1
        self._fallback = MemoryEventStore(
            capacity=self._fallback_capacity,
            allocator=MemoryIdAllocator(start=first_id),
        )
        self._degraded_first_id = first_id
        logger.warning(
            "Durable store %s unavailable during %s (%s); switching to degraded in-memory mode. "
            "Consistency gap: events from id %d on are not persisted and their ids may be "
            "re-issued by the durable store after recovery",
            self._primary.name, operation, exc, first_id,
        )
        return self._fallback

    def _leave_degraded(self) -> None:
        fallback = self._fallback
        self._fallback = None
        if fallback is None:
            return
        last_id = fallback.issued_through()
        if last_id >= self._degraded_first_id:
            logger.warning(
                "Durable store %s recovered. Consistency gap: ids %d..%d were issued in "
                "degraded mode and are not persisted",
                self._primary.name, self._degraded_first_id, last_id,
            )
        else:
            logger.warning(
                "Durable store %s recovered; no events were written in degraded mode",
                self._primary.name,
            )

    def _observe(self, events) -> None:
        for ev in events:
            if ev.id > self._high_water:
                self._high_water = ev.id

    async def append(self, event: TelemetryEvent) -> StoredEvent:
        async def _append(store: EventStore) -> StoredEvent:
            stored = await store.append(event)
            if store is self._primary:
                self._observe([stored])
            return stored

        return await self._run("append", _append)

    async def range_after(
        self,
        kind: Optional[EventKind],
        since_id: int,
        limit: int,
    ) -> list[StoredEvent]:
        async def _range(store: EventStore) -> list[StoredEvent]:
            events = list(await store.range_after(kind, since_id, limit))
            if store is self._primary:
                self._observe(events)
            return events

        return await self._run("range_after", _range)

    async def latest(self, kind: Optional[EventKind], limit: int) -> list[StoredEvent]:
        async def _latest(store: EventStore) -> list[StoredEvent]:
            events = list(await store.latest(kind, limit))
            if store is self._primary:
                self._observe(events)
            return events

        return await self._run("latest", _latest)

    async def count(self, kind: Optional[EventKind] = None) -> int:
        return await self._run("count", lambda store: store.count(kind))

    async def delete_oldest(self, kind: EventKind, n: int) -> int:
        return await self._run("delete_oldest", lambda store: store.delete_oldest(kind, n))

    async def close(self) -> None:
        await self._primary.close()
