"""
In-memory storage backend persisted to a flat file.

The database lives in an in-process ``:memory:`` SQLite engine. After every
successful atomic unit the whole image is serialized and written to
``storage_path``; on open the image is loaded back. The engine gives no
isolation between interleaved coroutines on its single connection, so all
operations go through one process-wide queue, and atomicity is provided by
restoring a pre-unit snapshot when a unit fails. A save interrupted by
cancellation is waited out, then memory and the file both go back to the
snapshot.
"""

import asyncio
import logging
import os
import sqlite3
from pathlib import Path
from typing import Optional, Union

from slotbank.config import SQLITE_APPLICATION_ID

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


class _MemorySession(StorageSession):
    """Session over the in-memory connection while the queue is held."""

    def __init__(self, backend: "MemorySQLiteBackend"):
        self._backend = backend
        self.closed = False

    def _run(self, sql: str, params: Params, fetch: Optional[str]):
        if self.closed:
            raise StorageError("Session used after its atomic unit finished")
        return run_statement(self._backend._require_conn(), sql, params, fetch)

    async def execute(self, sql: str, params: Params = ()) -> int:
        return self._run(sql, params, None)

    async def query_one(self, sql: str, params: Params = ()) -> Optional[Row]:
        return self._run(sql, params, "one")

    async def query_all(self, sql: str, params: Params = ()) -> list[Row]:
        return self._run(sql, params, "all")


class MemorySQLiteBackend(StorageBackend):
    """
    Storage backend over an in-process SQLite engine saved to flat storage.

    Args:
        storage_path: File holding the serialized database image. None keeps
            the database purely in memory.
    """

    name = "memory"

    def __init__(self, storage_path: Optional[Union[str, Path]] = None):
        self.storage_path = Path(storage_path) if storage_path else None
        self._conn: Optional[sqlite3.Connection] = None
        self._queue = asyncio.Lock()

    @property
    def is_open(self) -> bool:
        return self._conn is not None

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def open(self) -> None:
        async with self._queue:
            if self._conn is not None:
                return
            image = await wait_in_thread(self._read_image)
            self._conn = self._connect(image)
            if image:
                logger.info(
                    f"Loaded database image ({len(image)} bytes) from {self.storage_path}"
                )
            else:
                logger.debug("Started with an empty in-memory database")

    def _connect(self, image: Optional[bytes]) -> sqlite3.Connection:
        conn = sqlite3.connect(
            ":memory:", isolation_level=None, check_same_thread=False
        )
        conn.row_factory = sqlite3.Row
        try:
            if image:
                conn.deserialize(image)
                # Fails here if the image is not a valid database
                conn.execute("SELECT count(*) FROM sqlite_master").fetchone()
            else:
                # Writes the file header so snapshots are never empty
                conn.execute(f"PRAGMA application_id = {SQLITE_APPLICATION_ID}")
            conn.execute("PRAGMA foreign_keys = ON")
            return conn
        except sqlite3.Error as e:
            conn.close()
            logger.error(f"Unreadable database image: {e}", exc_info=True)
            raise translate_sqlite_error(e) from e

    async def close(self) -> None:
        async with self._queue:
            if self._conn is None:
                return
            conn, self._conn = self._conn, None
            conn.close()

    def _require_conn(self) -> sqlite3.Connection:
        if self._conn is None:
            raise StorageError("Memory SQLite backend is not open")
        return self._conn

    # =========================================================================
    # Flat storage
    # =========================================================================

    def _read_image(self) -> Optional[bytes]:
        if self.storage_path is None or not self.storage_path.exists():
            return None
        try:
            return self.storage_path.read_bytes()
        except OSError as e:
            logger.error(f"Cannot read {self.storage_path}: {e}", exc_info=True)
            raise StorageError(f"Cannot read database image: {e}") from e

    def _write_image(self, image: bytes) -> None:
        """Write the image next to the target, then rename over it."""
        if self.storage_path is None:
            return
        tmp_path = self.storage_path.with_name(self.storage_path.name + ".tmp")
        try:
            self.storage_path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path.write_bytes(image)
            os.replace(tmp_path, self.storage_path)
        except OSError as e:
            raise StorageError(f"Cannot save database image: {e}") from e

    async def _persist(self) -> None:
        image = self._snapshot()
        await wait_in_thread(self._write_image, image)

    async def _put_back(self, image: bytes) -> None:
        """Rewrite flat storage with ``image`` after an interrupted save."""
        try:
            await wait_in_thread(self._write_image, image)
        except StorageError as e:
            logger.error(f"Cannot put back the previous image: {e}", exc_info=True)

    # =========================================================================
    # Snapshots
    # =========================================================================

    def _snapshot(self) -> bytes:
        try:
            return self._require_conn().serialize()
        except sqlite3.Error as e:
            raise translate_sqlite_error(e) from e

    def _restore(self, snapshot: bytes, cause: BaseException) -> None:
        """Put the engine back to ``snapshot``, logging (not raising) failures."""
        conn = self._conn
        if conn is None:
            return
        try:
            conn.deserialize(snapshot)
            conn.execute("PRAGMA foreign_keys = ON")
            logger.debug(f"Restored snapshot after {type(cause).__name__}")
        except sqlite3.Error as e:
            logger.error(f"Snapshot restore failed after {cause!r}: {e}", exc_info=True)

    # =========================================================================
    # Statements
    # =========================================================================

    async def execute(self, sql: str, params: Params = ()) -> int:
        async def single(session: StorageSession) -> int:
            return await session.execute(sql, params)

        return await self.run_atomic(single)

    async def query_one(self, sql: str, params: Params = ()) -> Optional[Row]:
        async with self._queue:
            return run_statement(self._require_conn(), sql, params, "one")

    async def query_all(self, sql: str, params: Params = ()) -> list[Row]:
        async with self._queue:
            return run_statement(self._require_conn(), sql, params, "all")

    async def run_atomic(self, fn: AtomicBody[T]) -> T:
        async with self._queue:
            snapshot = self._snapshot()
            session = _MemorySession(self)
            try:
                result = await fn(session)
            except BaseException as e:
                session.closed = True
                self._restore(snapshot, e)
                raise
            session.closed = True
            try:
                await self._persist()
            except asyncio.CancelledError as e:
                # The write ran to completion, successful or not
                self._restore(snapshot, e)
                await self._put_back(snapshot)
                raise
            except BaseException as e:
                self._restore(snapshot, e)
                raise
            return result
