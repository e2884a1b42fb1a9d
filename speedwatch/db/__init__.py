"""
Database module for telemetry event persistence.

Provides SQLite-based storage for:
- Telemetry events (speed violations, tyre changes)
- Atomic ID counters

Usage:
    from speedwatch.db import DatabaseManager

    db = DatabaseManager(Path("data/telemetry.db"))
    async with db.transaction():
        row = await db.fetch_one("SELECT COUNT(*) AS n FROM telemetry_events")
"""

from .connection import DatabaseManager
from .schema import EventKind, MAX_EVENT_ID, SCHEMA_SQL, now_iso8601, parse_iso8601

__all__ = [
    "DatabaseManager",
    "EventKind",
    "MAX_EVENT_ID",
    "SCHEMA_SQL",
    "now_iso8601",
    "parse_iso8601",
]
