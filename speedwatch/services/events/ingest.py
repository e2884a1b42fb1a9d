"""
Ingest service - the write path.

classify/validate -> append (ID + timestamp assigned by the store) -> trim.

Retention is best-effort: the event is durable once append() returns, and a
failing trim is logged without failing the write.
"""

from __future__ import annotations

import logging
from typing import Any

from .classifier import decode
from .ports import EventStore, StoredEvent
from .retention import RetentionTrimmer

logger = logging.getLogger(__name__)


class IngestService:
    """Accepts raw producer payloads and stores them as telemetry events."""

    def __init__(self, store: EventStore, retention_cap: int) -> None:
        self._store = store
        self._trimmer = RetentionTrimmer(store)
        self.retention_cap = retention_cap

    async def ingest(self, payload: Any) -> StoredEvent:
        """
        Store one event.

        Raises:
            ClassificationError: Payload matches no known kind
            ValidationError: Required field missing or invalid
            StoreUnavailableError: Durable store down and no fallback configured
        """
        event = decode(payload)
        stored = await self._store.append(event)
        logger.debug("Stored %s id=%d vehicle=%s", stored.kind.value, stored.id, stored.vehicle_name)

        try:
            await self._trimmer.trim(stored.kind, self.retention_cap)
        except Exception:
            logger.warning(
                "Retention trim failed for %s after id=%d; will retry on next write",
                stored.kind.value,
                stored.id,
                exc_info=True,
            )

        return stored
