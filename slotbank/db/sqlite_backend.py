"""
Embedded-native storage backend on a SQLite database file.

One connection is opened per backend and shared by every caller. Statements
run in a worker thread so the event loop is never blocked on disk I/O, and a
connection lock keeps statements of different callers from interleaving
inside an open transaction.

A cancelled caller does not get control back while its statement is still
running in the worker thread, so a unit is always rolled back (or committed)
before the connection is handed to the next caller.
"""

import asyncio
import logging
import sqlite3
from pathlib import Path
from typing import Optional, Union

from slotbank.config import DB_TIMEOUT

from .base import (
    AtomicBody,
    Params,
    Row,
    StorageBackend,
    StorageError,
    StorageSession,
    T,
    run_statement,
    translate_sqlite_error,
    wait_in_thread,
)

logger = logging.getLogger(__name__)


class _NativeSession(StorageSession):
    """Session bound to the backend's open ``BEGIN IMMEDIATE`` transaction."""

    def __init__(self, backend: "NativeSQLiteBackend"):
        self._backend = backend
        self.closed = False

    async def _run(self, sql: str, params: Params, fetch: Optional[str]):
        if self.closed:
            raise StorageError("Session used after its atomic unit finished")
        return await self._backend._call(sql, params, fetch)

    async def execute(self, sql: str, params: Params = ()) -> int:
        return await self._run(sql, params, None)

    async def query_one(self, sql: str, params: Params = ()) -> Optional[Row]:
        return await self._run(sql, params, "one")

    async def query_all(self, sql: str, params: Params = ()) -> list[Row]:
        return await self._run(sql, params, "all")


class NativeSQLiteBackend(StorageBackend):
    """
    Storage backend over a SQLite file using native transactions.

    ``run_atomic`` maps to ``BEGIN IMMEDIATE`` / ``COMMIT`` and always issues
    ``ROLLBACK`` when the body or the commit fails. A cancelled caller
    is rolled back too, unless the cancellation arrives once ``COMMIT`` is
    already running; then the unit stays committed.
    """

    name = "native"

    def __init__(self, db_path: Union[str, Path], timeout: float = DB_TIMEOUT):
        """
        Initialize the backend.

        Args:
            db_path: Path to the SQLite database file, or ":memory:"
            timeout: Seconds SQLite waits on a locked database file
        """
        self.db_path = db_path if db_path == ":memory:" else Path(db_path)
        self.timeout = timeout
        self._conn: Optional[sqlite3.Connection] = None
        self._lock = asyncio.Lock()

    @property
    def is_open(self) -> bool:
        return self._conn is not None

    async def open(self) -> None:
        """Open the shared connection."""
        async with self._lock:
            if self._conn is not None:
                return
            self._conn = await wait_in_thread(self._connect)
            logger.debug(f"Opened native SQLite database at {self.db_path}")

    def _connect(self) -> sqlite3.Connection:
        conn = None
        try:
            if isinstance(self.db_path, Path):
                self.db_path.parent.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(
                self.db_path,
                timeout=self.timeout,
                isolation_level=None,  # autocommit, transactions are explicit
                check_same_thread=False,
            )
            conn.row_factory = sqlite3.Row
            # Enable foreign keys
            conn.execute("PRAGMA foreign_keys = ON")
            return conn
        except OSError as e:
            logger.error(f"Failed to create database directory: {e}", exc_info=True)
            raise StorageError(f"Cannot create database directory: {e}") from e
        except sqlite3.Error as e:
            logger.error(f"Failed to open database {self.db_path}: {e}", exc_info=True)
            if conn:
                conn.close()
            raise translate_sqlite_error(e) from e

    async def close(self) -> None:
        async with self._lock:
            if self._conn is None:
                return
            conn, self._conn = self._conn, None
            await wait_in_thread(conn.close)
            logger.debug(f"Closed native SQLite database at {self.db_path}")

    def _require_conn(self) -> sqlite3.Connection:
        if self._conn is None:
            raise StorageError("Native SQLite backend is not open")
        return self._conn

    async def _call(self, sql: str, params: Params = (), fetch: Optional[str] = None):
        """Run one statement in a worker thread. Caller must hold the lock."""
        conn = self._require_conn()
        return await wait_in_thread(run_statement, conn, sql, params, fetch)

    async def execute(self, sql: str, params: Params = ()) -> int:
        async with self._lock:
            return await self._call(sql, params, None)

    async def query_one(self, sql: str, params: Params = ()) -> Optional[Row]:
        async with self._lock:
            return await self._call(sql, params, "one")

    async def query_all(self, sql: str, params: Params = ()) -> list[Row]:
        async with self._lock:
            return await self._call(sql, params, "all")

    async def run_atomic(self, fn: AtomicBody[T]) -> T:
        async with self._lock:
            session = _NativeSession(self)
            try:
                await self._call("BEGIN IMMEDIATE")
                result = await fn(session)
                await self._call("COMMIT")
            except BaseException as e:
                await self._rollback(e)
                raise
            finally:
                session.closed = True
            return result

    async def _rollback(self, cause: BaseException) -> None:
        """Roll back the open transaction, logging (not raising) any failure."""
        conn = self._conn
        if conn is None or not conn.in_transaction:
            return
        try:
            await wait_in_thread(conn.execute, "ROLLBACK")
            logger.debug(f"Rolled back atomic unit after {type(cause).__name__}")
        except sqlite3.Error as e:
            logger.error(f"Rollback failed after {cause!r}: {e}", exc_info=True)
