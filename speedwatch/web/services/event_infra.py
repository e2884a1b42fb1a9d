"""
Event Infrastructure - wiring of the telemetry core.

TelemetryContext owns the long-lived pieces (database handle, store, reader,
ingest service) for one process. It is built once in the FastAPI lifespan,
stored on app.state, and handed to handlers through a dependency.

Design decisions:
- The SQLite connection is opened lazily by the first transaction and rebuilt
  after connection failures (see db/connection.py)
- Backend is chosen by configuration; with fallback enabled the durable
  store is wrapped in FailoverEventStore, which logs every switch
- The memory backend is for tests and demos, never a production default
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from ...db.connection import DatabaseManager
from ...services.events.allocator import build_allocator
from ...services.events.failover import FailoverEventStore
from ...services.events.ingest import IngestService
from ...services.events.ports import EventStore
from ...services.events.retention import RetentionTrimmer
from ...services.events.store import MemoryEventStore, SQLiteEventStore
from ...services.events.sync import SyncReader
from ..config import AppConfig

logger = logging.getLogger(__name__)


@dataclass
class TelemetryContext:
    """Process-wide telemetry wiring."""

    config: AppConfig
    store: EventStore
    reader: SyncReader
    ingest: IngestService
    trimmer: RetentionTrimmer
    db: Optional[DatabaseManager] = None

    @property
    def degraded(self) -> bool:
        return bool(getattr(self.store, "degraded", False))

    async def close(self) -> None:
        await self.store.close()


def build_store(config: AppConfig) -> tuple[EventStore, Optional[DatabaseManager]]:
    """Create the configured event store (and its database handle, if any)."""
    if config.storage_backend == "memory":
        logger.warning(
            "Using volatile in-memory event store (capacity=%d); events are lost on restart",
            config.memory_capacity,
        )
        return MemoryEventStore(capacity=config.memory_capacity), None

    db = DatabaseManager(config.db_path)
    store: EventStore = SQLiteEventStore(db, build_allocator(config.id_strategy, db))
    if config.fallback_to_memory:
        store = FailoverEventStore(
            store,
            fallback_capacity=config.memory_capacity,
            recovery_interval_s=config.recovery_interval_s,
        )
    return store, db


def build_context(config: AppConfig) -> TelemetryContext:
    """Wire store, reader, ingest service and trimmer from configuration."""
    store, db = build_store(config)
    logger.info(
        "Telemetry store: %s (retention_cap=%d, pages=%d/%d)",
        store.name, config.retention_cap, config.recent_page_size, config.max_page_size,
    )
    return TelemetryContext(
        config=config,
        store=store,
        reader=SyncReader(
            store,
            recent_page_size=config.recent_page_size,
            max_page_size=config.max_page_size,
        ),
        ingest=IngestService(store, retention_cap=config.retention_cap),
        trimmer=RetentionTrimmer(store),
        db=db,
    )
