"""
Identity allocator tests - monotonic IDs, restart safety, concurrency.

Run with: pytest tests/test_allocator.py
"""

import asyncio

import pytest

from speedwatch.db.connection import DatabaseManager
from speedwatch.services.events.allocator import (
    MemoryIdAllocator,
    SQLiteCounterAllocator,
    SQLiteMaxPlusOneAllocator,
    build_allocator,
)
from speedwatch.services.events.models import SpeedViolation
from speedwatch.services.events.ports import TELEMETRY_STREAM
from speedwatch.services.events.store import SQLiteEventStore


def _speed(vehicle: str = "Car1") -> SpeedViolation:
    return SpeedViolation(vehicleName=vehicle, speed=80, excess=20)


def test_counter_ids_are_strictly_increasing(tmp_path):
    async def scenario():
        db = DatabaseManager(tmp_path / "ids.db")
        allocator = SQLiteCounterAllocator(db)
        try:
            return [await allocator.next_id(TELEMETRY_STREAM) for _ in range(50)]
        finally:
            await db.close()

    ids = asyncio.run(scenario())
    assert ids == list(range(1, 51))


def test_counter_ids_unique_under_concurrent_callers(tmp_path):
    async def scenario():
        db = DatabaseManager(tmp_path / "ids.db")
        allocator = SQLiteCounterAllocator(db)
        try:
            return await asyncio.gather(*(allocator.next_id(TELEMETRY_STREAM) for _ in range(25)))
        finally:
            await db.close()

    ids = asyncio.run(scenario())
    assert sorted(ids) == list(range(1, 26))


def test_counter_survives_restart(tmp_path):
    db_path = tmp_path / "ids.db"

    async def allocate(n):
        db = DatabaseManager(db_path)
        allocator = SQLiteCounterAllocator(db)
        try:
            return [await allocator.next_id(TELEMETRY_STREAM) for _ in range(n)]
        finally:
            await db.close()

    first = asyncio.run(allocate(3))
    second = asyncio.run(allocate(2))
    assert first == [1, 2, 3]
    assert second == [4, 5]


def test_counter_never_reuses_ids_after_newest_events_are_deleted(tmp_path):
    async def scenario():
        db = DatabaseManager(tmp_path / "ids.db")
        counter = SQLiteEventStore(db, SQLiteCounterAllocator(db))
        max_plus_one = SQLiteMaxPlusOneAllocator(db)
        try:
            for _ in range(3):
                await counter.append(_speed())
            async with db.transaction():
                await db.execute("DELETE FROM telemetry_events")
            return (
                await SQLiteCounterAllocator(db).next_id(TELEMETRY_STREAM),
                await max_plus_one.next_id(TELEMETRY_STREAM),
            )
        finally:
            await db.close()

    counter_id, max_plus_one_id = asyncio.run(scenario())
    assert counter_id == 4
    # The max+1 strategy forgets deleted IDs
    assert max_plus_one_id == 1


def test_counter_is_seeded_from_existing_events(tmp_path):
    async def scenario():
        db = DatabaseManager(tmp_path / "ids.db")
        legacy = SQLiteEventStore(db, SQLiteMaxPlusOneAllocator(db))
        try:
            stored = [await legacy.append(_speed()) for _ in range(3)]
            next_id = await SQLiteCounterAllocator(db).next_id(TELEMETRY_STREAM)
            return [s.id for s in stored], next_id
        finally:
            await db.close()

    legacy_ids, next_id = asyncio.run(scenario())
    assert legacy_ids == [1, 2, 3]
    assert next_id == 4


def test_memory_allocator_counts_per_stream():
    allocator = MemoryIdAllocator()
    assert [allocator.next_id_nowait("a") for _ in range(3)] == [1, 2, 3]
    assert allocator.next_id_nowait("b") == 1
    assert allocator.peek("a") == 4


def test_memory_allocator_start_floor():
    allocator = MemoryIdAllocator(start=42)
    assert asyncio.run(allocator.next_id(TELEMETRY_STREAM)) == 42
    with pytest.raises(ValueError):
        MemoryIdAllocator(start=0)


def test_build_allocator_rejects_unknown_strategy(tmp_path):
    db = DatabaseManager(tmp_path / "ids.db")
    assert isinstance(build_allocator("counter", db), SQLiteCounterAllocator)
    assert isinstance(build_allocator("max_plus_one", db), SQLiteMaxPlusOneAllocator)
    with pytest.raises(ValueError):
        build_allocator("uuid", db)
