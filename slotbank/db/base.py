"""
Base storage module with the backend contract shared by all engines.

The ledger is written against ``StorageBackend`` only. A backend executes
parameterized SQL and offers ``run_atomic``, which hands the body a
``StorageSession`` whose statements either all persist or none do.
"""

import asyncio
import logging
import sqlite3
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Optional, Sequence, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

Params = Sequence[Any]
Row = dict[str, Any]


class StorageError(Exception):
    """The storage engine failed to execute a statement or unit."""


class IntegrityViolation(StorageError):
    """A constraint (unique, check, foreign key) rejected a write."""


def translate_sqlite_error(error: sqlite3.Error, sql: str = "") -> StorageError:
    """Wrap a sqlite3 exception in the backend-neutral hierarchy."""
    statement = " ".join(sql.split())[:80]
    if isinstance(error, sqlite3.IntegrityError):
        return IntegrityViolation(f"{error} [{statement}]")
    return StorageError(f"{error} [{statement}]" if statement else str(error))


class StorageSession(ABC):
    """Statement interface scoped to one atomic unit."""

    @abstractmethod
    async def execute(self, sql: str, params: Params = ()) -> int:
        """Run a write statement and return the affected row count."""

    @abstractmethod
    async def query_one(self, sql: str, params: Params = ()) -> Optional[Row]:
        """Run a query and return the first row, or None."""

    @abstractmethod
    async def query_all(self, sql: str, params: Params = ()) -> list[Row]:
        """Run a query and return all rows."""


AtomicBody = Callable[[StorageSession], Awaitable[T]]


class StorageBackend(ABC):
    """
    Contract every storage engine implements.

    ``execute``/``query_one``/``query_all`` outside ``run_atomic`` behave as
    single-statement units. Engine exceptions surface as ``StorageError``.
    """

    name = "abstract"

    @abstractmethod
    async def open(self) -> None:
        """Open the process-wide storage handle. Idempotent."""

    @abstractmethod
    async def close(self) -> None:
        """Release the storage handle. Idempotent."""

    @property
    @abstractmethod
    def is_open(self) -> bool:
        """Whether the handle is open."""

    @abstractmethod
    async def execute(self, sql: str, params: Params = ()) -> int:
        """Run a write statement and return the affected row count."""

    @abstractmethod
    async def query_one(self, sql: str, params: Params = ()) -> Optional[Row]:
        """Run a query and return the first row, or None."""

    @abstractmethod
    async def query_all(self, sql: str, params: Params = ()) -> list[Row]:
        """Run a query and return all rows."""

    @abstractmethod
    async def run_atomic(self, fn: AtomicBody[T]) -> T:
        """
        Run ``fn(session)`` as one all-or-nothing unit.

        Any exception raised by the body (or by committing it) undoes every
        write made through the session and is re-raised.
        """


def run_statement(
    conn: sqlite3.Connection, sql: str, params: Params, fetch: Optional[str]
):
    """
    Execute one statement on a sqlite3 connection.

    Args:
        conn: Open connection
        sql: Statement text
        params: Positional parameters
        fetch: "one", "all", or None for writes

    Returns:
        A row dict, a list of row dicts, or the affected row count
    """
    try:
        cursor = conn.execute(sql, tuple(params))
        if fetch == "one":
            row = cursor.fetchone()
            return dict(row) if row is not None else None
        if fetch == "all":
            return [dict(row) for row in cursor.fetchall()]
        return cursor.rowcount
    except sqlite3.Error as e:
        logger.debug(f"Statement failed: {e}")
        raise translate_sqlite_error(e, sql) from e


async def wait_in_thread(func: Callable[..., T], *args) -> T:
    """
    Run ``func`` in a worker thread and wait for it to return.

    A thread cannot be interrupted, so if the caller is cancelled the wait
    continues until the worker is done and the cancellation is re-raised
    afterwards. Callers never regain control while a statement is in flight.
    """
    worker = asyncio.ensure_future(asyncio.to_thread(func, *args))
    try:
        return await asyncio.shield(worker)
    except asyncio.CancelledError:
        while not worker.done():
            try:
                await asyncio.wait({worker})
            except asyncio.CancelledError:
                continue
        if not worker.cancelled() and worker.exception() is not None:
            logger.debug(
                f"Worker finished with {worker.exception()!r} after caller was cancelled"
            )
        raise
