"""
Database connection manager for SQLite.

Provides:
- Async SQLite connection management using aiosqlite
- Lazy connection on first transaction, rebuilt after connection-level failures
- Concurrent access protection via transaction-scoped locks
- Transaction support with automatic commit/rollback
- Schema initialization
"""

import asyncio
import logging
import sqlite3
import warnings
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

import aiosqlite

from ..errors import StoreUnavailableError
from .schema import SCHEMA_SQL

logger = logging.getLogger(__name__)

# Errors that mean the connection handle (not the statement) is unusable
CONNECTION_ERRORS = (sqlite3.OperationalError, OSError)


class DatabaseManager:
    """
    Manages the SQLite connection used by the durable event store.

    Features:
    - Lazy initialization (first transaction opens the connection)
    - Single shared connection with transaction-level locking
    - Schema auto-initialization
    - Connection discarded on failure and re-established on next use

    All durable state lives in the database file; the connection object is a
    cache and may be torn down at any time.
    """

    def __init__(self, db_path: Path, timeout: float = 5.0):
        """
        Initialize database manager.

        Args:
            db_path: Path to SQLite database file
            timeout: Seconds to wait on a locked database before failing
        """
        self.db_path = Path(db_path)
        self.timeout = timeout
        self._connection: Optional[aiosqlite.Connection] = None
        self._initialized = False

        # Prevent multi-statement transaction interleaving on shared connection
        self._lock = asyncio.Lock()

        # Prevent concurrent init() calls
        self._init_lock = asyncio.Lock()

        # Track active transaction owner to prevent interleaving/reentrancy
        self._transaction_owner: Optional[asyncio.Task] = None

    @property
    def is_connected(self) -> bool:
        return self._initialized and self._connection is not None

    async def init(self):
        """
        Open the connection and apply the schema.

        Safe to call repeatedly, only the first successful call connects.

        Raises:
            StoreUnavailableError: If the database cannot be opened
        """
        if self._initialized:
            return

        async with self._init_lock:
            # Double-check after acquiring lock
            if self._initialized:
                return

            try:
                self.db_path.parent.mkdir(parents=True, exist_ok=True)

                self._connection = await aiosqlite.connect(
                    str(self.db_path),
                    timeout=self.timeout,
                )
                self._connection.row_factory = aiosqlite.Row

                await self._connection.executescript(SCHEMA_SQL)
                await self._connection.commit()

                self._initialized = True
                logger.info("Database connected: %s", self.db_path)

            except (sqlite3.Error, OSError) as e:
                # Cleanup on failure to prevent connection leak
                await self._discard_connection()
                raise StoreUnavailableError(f"cannot open database {self.db_path}: {e}") from e

    async def _discard_connection(self) -> None:
        """Drop the cached connection so the next transaction reconnects."""
        conn = self._connection
        self._connection = None
        self._initialized = False
        if conn is None:
            return
        try:
            await conn.close()
        except (sqlite3.Error, OSError, ValueError):
            logger.warning("Error while closing broken database connection", exc_info=True)

    async def close(self):
        """
        Close database connection.

        Note: Acquires lock to ensure no in-flight transactions.
        """
        async with self._lock:
            if self._connection:
                await self._connection.close()
                self._connection = None
                self._initialized = False
                logger.info("Database connection closed")

    @property
    def connection(self) -> aiosqlite.Connection:
        """
        Get the active connection.

        Raises:
            RuntimeError: If database not initialized
        """
        if not self._initialized or not self._connection:
            raise RuntimeError("Database not initialized. Call init() first.")
        return self._connection

    def _warn_outside_transaction(self, operation: str, reason: str) -> None:
        message = (
            f"{operation} called outside of transaction(): {reason}. "
            "Use 'async with db.transaction()' to ensure isolation."
        )
        warnings.warn(message, RuntimeWarning, stacklevel=3)
        logger.warning(message)

    def _require_transaction(self, operation: str) -> None:
        current_task = asyncio.current_task()
        owner = self._transaction_owner
        if owner is None:
            self._warn_outside_transaction(operation, "no active transaction")
            raise RuntimeError(
                f"{operation} requires an active transaction. "
                "Use 'async with db.transaction()'."
            )
        if owner is not current_task:
            self._warn_outside_transaction(
                operation, "transaction owned by a different task"
            )
            raise RuntimeError(
                f"{operation} must run within the current task's transaction. "
                "Use 'async with db.transaction()' in this task."
            )

    async def execute(self, sql: str, parameters=None) -> aiosqlite.Cursor:
        """
        Execute a single SQL statement.

        Args:
            sql: SQL statement
            parameters: Query parameters (tuple or dict)

        Returns:
            Cursor object
        """
        self._require_transaction("execute")
        return await self.connection.execute(sql, parameters or ())

    async def fetch_one(self, sql: str, parameters=None) -> Optional[aiosqlite.Row]:
        """Execute query and fetch one row."""
        self._require_transaction("fetch_one")
        cursor = await self.execute(sql, parameters)
        try:
            return await cursor.fetchone()
        finally:
            await cursor.close()

    async def fetch_all(self, sql: str, parameters=None) -> list[aiosqlite.Row]:
        """Execute query and fetch all rows."""
        self._require_transaction("fetch_all")
        cursor = await self.execute(sql, parameters)
        try:
            return list(await cursor.fetchall())
        finally:
            await cursor.close()

    async def commit(self):
        """Commit current transaction."""
        await self.connection.commit()

    async def rollback(self):
        """Rollback current transaction."""
        await self.connection.rollback()

    @asynccontextmanager
    async def transaction(self, immediate: bool = False):
        """
        Async context manager for transactions with locking.

        Usage:
            async with db.transaction():
                await db.execute("INSERT INTO ...")
                # Auto-commits on success, rolls back on exception

        Opens the connection on first use. A connection-level failure inside
        the transaction discards the handle and raises StoreUnavailableError;
        the next transaction reconnects.

        With immediate=True the write lock is taken at BEGIN, so writers in
        other processes queue up behind this transaction until it commits.

        **IMPORTANT**: Do NOT nest transactions. asyncio.Lock is not reentrant.
        """
        current_task = asyncio.current_task()
        if self._transaction_owner is current_task:
            self._warn_outside_transaction(
                "transaction()", "nested transaction in the same task"
            )
            raise RuntimeError("Nested transaction() is not allowed.")

        await self.init()

        async with self._lock:
            if self._transaction_owner is not None:
                self._warn_outside_transaction(
                    "transaction()", "transaction already active in another task"
                )
                raise RuntimeError("Another transaction is already active.")
            self._transaction_owner = current_task
            try:
                try:
                    await self.connection.execute(
                        "BEGIN IMMEDIATE TRANSACTION" if immediate else "BEGIN TRANSACTION"
                    )
                    try:
                        yield self
                    except Exception:
                        await self.rollback()
                        raise
                    else:
                        await self.commit()
                except CONNECTION_ERRORS as e:
                    logger.warning("Database error, dropping connection: %s", e)
                    await self._discard_connection()
                    raise StoreUnavailableError(f"database unavailable: {e}") from e
            finally:
                self._transaction_owner = None
