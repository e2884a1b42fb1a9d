"""
Database schema definitions for telemetry event persistence.

Uses SQLite with:
- TEXT timestamps (ISO8601 format, UTC, microsecond precision)
- Application-assigned integer event IDs (see services/events/allocator.py)
- One counter row per ID stream for atomic allocation
- Indexes matching the sync and retention queries
"""

from datetime import datetime, timezone
from enum import Enum


# ==================== Enums ====================

class EventKind(str, Enum):
    """Telemetry event kind."""
    SPEED_VIOLATION = "speed_violation"
    TYRE_CHANGE = "tyre_change"

    @property
    def label(self) -> str:
        """Human-readable kind name used in error messages."""
        return "SpeedViolation" if self is EventKind.SPEED_VIOLATION else "TyreChange"


# ==================== SQL DDL ====================

# Largest value an INTEGER column (and so an event id) can hold
MAX_EVENT_ID = 2**63 - 1

SCHEMA_SQL = """
-- Optimize for a small web app workload
PRAGMA journal_mode = WAL;
PRAGMA synchronous = NORMAL;
PRAGMA busy_timeout = 5000;

-- Telemetry events (append-only, trimmed for retention)
CREATE TABLE IF NOT EXISTS telemetry_events (
    id INTEGER PRIMARY KEY,  -- Assigned by the ID allocator, never reused
    kind TEXT NOT NULL CHECK (kind IN ('speed_violation', 'tyre_change')),
    vehicle_name TEXT NOT NULL,
    payload_json TEXT NOT NULL,
    created_at TEXT NOT NULL
);

-- Atomic ID counters, one row per stream
CREATE TABLE IF NOT EXISTS id_counters (
    stream TEXT PRIMARY KEY,
    value INTEGER NOT NULL
) WITHOUT ROWID;

-- Indexes for sync and retention queries
CREATE INDEX IF NOT EXISTS idx_events_kind_id
    ON telemetry_events(kind, id);
CREATE INDEX IF NOT EXISTS idx_events_kind_created_at
    ON telemetry_events(kind, created_at, id);
CREATE INDEX IF NOT EXISTS idx_events_created_at
    ON telemetry_events(created_at, id);
"""


# ==================== Time helpers ====================

ISO8601_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"


def now_iso8601() -> str:
    """Get current UTC timestamp in ISO8601 format."""
    return datetime.now(timezone.utc).strftime(ISO8601_FORMAT)


def parse_iso8601(timestamp: str) -> datetime:
    """Parse ISO8601 timestamp to an aware UTC datetime."""
    return datetime.strptime(timestamp, ISO8601_FORMAT).replace(tzinfo=timezone.utc)
