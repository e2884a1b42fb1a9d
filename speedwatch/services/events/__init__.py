"""
Telemetry event core: classification, ID allocation, storage, retention, sync.
"""

from .allocator import (
    MemoryIdAllocator,
    SQLiteCounterAllocator,
    SQLiteMaxPlusOneAllocator,
    build_allocator,
)
from .classifier import classify, decode
from .failover import FailoverEventStore
from .ingest import IngestService
from .models import SpeedViolation, TelemetryEvent, TyreChange
from .ports import (
    TELEMETRY_STREAM,
    EventStore,
    IdAllocator,
    StoredEvent,
    TransactionalIdAllocator,
    as_list,
)
from .retention import RetentionTrimmer
from .store import MemoryEventStore, SQLiteEventStore
from .sync import SyncReader

__all__ = [
    "classify",
    "decode",
    "EventStore",
    "FailoverEventStore",
    "IdAllocator",
    "IngestService",
    "MemoryEventStore",
    "MemoryIdAllocator",
    "RetentionTrimmer",
    "SpeedViolation",
    "SQLiteCounterAllocator",
    "SQLiteEventStore",
    "SQLiteMaxPlusOneAllocator",
    "StoredEvent",
    "SyncReader",
    "TELEMETRY_STREAM",
    "TelemetryEvent",
    "TransactionalIdAllocator",
    "TyreChange",
    "as_list",
    "build_allocator",
]
