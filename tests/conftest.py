"""
Shared test helpers.
"""

import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from speedwatch.db.schema import ISO8601_FORMAT  # noqa: E402

BASE_TIME = datetime(2026, 1, 1, tzinfo=timezone.utc)


def iso_at(seconds: float) -> str:
    """ISO8601 timestamp `seconds` after BASE_TIME."""
    return (BASE_TIME + timedelta(seconds=seconds)).strftime(ISO8601_FORMAT)


class TickingClock:
    """Store clock that advances one second per call."""

    def __init__(self) -> None:
        self.calls = 0

    def __call__(self) -> str:
        self.calls += 1
        return iso_at(self.calls)


class ScriptedClock:
    """Store clock returning preset offsets (in seconds) in order."""

    def __init__(self, *offsets: float) -> None:
        self._offsets = list(offsets)

    def __call__(self) -> str:
        return iso_at(self._offsets.pop(0))


@pytest.fixture
def clock() -> TickingClock:
    return TickingClock()


@pytest.fixture
def scripted_clock():
    """Factory: scripted_clock(3, 1, 2) -> clock returning those offsets in order."""
    return ScriptedClock
