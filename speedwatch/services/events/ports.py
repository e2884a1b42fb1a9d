"""
Event ports - Interfaces between the ingestion/sync core and storage.

This module defines the boundary interfaces (ports) that decouple the
telemetry core from the backing store.

Interfaces:
- IdAllocator: Monotonic event ID source per stream
- TransactionalIdAllocator: IdAllocator that can run inside a store transaction
- EventStore: Append-only, trimmable, range-queryable event log
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Optional, Protocol, Sequence

from ...db.schema import EventKind
from .models import TelemetryEvent


# Single ID sequence shared by both event kinds
TELEMETRY_STREAM = "telemetry"


@dataclass(frozen=True, slots=True)
class StoredEvent:
    """Persisted telemetry event.

    Attributes:
        id: Monotonically increasing event ID (shared across kinds)
        kind: Event kind
        vehicle_name: Reporting vehicle
        payload: Kind-specific fields, keyed by wire name (e.g. 'speed')
        created_at_iso: Store-assigned ISO8601 timestamp (UTC)
    """

    id: int
    kind: EventKind
    vehicle_name: str
    payload: Mapping[str, Any]
    created_at_iso: str

    def to_dict(self) -> dict[str, Any]:
        """Serialize for the wire (JSON object)."""
        data: dict[str, Any] = {
            "id": self.id,
            "kind": self.kind.value,
            "vehicleName": self.vehicle_name,
            "timestamp": self.created_at_iso,
        }
        data.update(self.payload)
        return data


def as_list(events: Sequence[StoredEvent]) -> list[dict[str, Any]]:
    """Serialize a page of events for a JSON response."""
    return [e.to_dict() for e in events]


class IdAllocator(Protocol):
    """Source of strictly increasing integer IDs."""

    async def next_id(self, stream: str) -> int:
        """Return an ID greater than every ID previously issued for the stream."""
        ...


class TransactionalIdAllocator(IdAllocator, Protocol):
    """Allocator whose increment can join the caller's open transaction."""

    async def next_id_in_transaction(self, stream: str) -> int:
        ...


class EventStore(Protocol):
    """Append-only event store with retention deletes.

    Queries with kind=None span both kinds.
    """

    name: str

    async def append(self, event: TelemetryEvent) -> StoredEvent:
        """Assign ID and timestamp, persist, and return the stored record."""
        ...

    async def range_after(
        self,
        kind: Optional[EventKind],
        since_id: int,
        limit: int,
    ) -> Sequence[StoredEvent]:
        """Events with id > since_id, ascending (merged kinds: by timestamp, id)."""
        ...

    async def latest(self, kind: Optional[EventKind], limit: int) -> Sequence[StoredEvent]:
        """The most recent `limit` events, returned in ascending order."""
        ...

    async def count(self, kind: Optional[EventKind] = None) -> int:
        """Number of stored events."""
        ...

    async def delete_oldest(self, kind: EventKind, n: int) -> int:
        """Delete the n oldest events of a kind as one batch. Returns count deleted."""
        ...

    async def close(self) -> None:
        ...


def order_for_display(events: Sequence[StoredEvent], merged: bool) -> list[StoredEvent]:
    """Sort a page ascending: by id for one kind, by (timestamp, id) when merged."""
    if merged:
        return sorted(events, key=lambda e: (e.created_at_iso, e.id))
    return sorted(events, key=lambda e: e.id)
