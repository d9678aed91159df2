"""
Shared fixtures for the ledger tests.

Every ledger test runs against both storage backends. Async code is driven
with ``asyncio.run`` inside each test, one event loop per test.
"""

import asyncio

import pytest

from slotbank.db import (
    LedgerService,
    MemorySQLiteBackend,
    NativeSQLiteBackend,
    StorageBackend,
    StorageError,
    StorageSession,
)


@pytest.fixture
def run():
    """Run a coroutine to completion on a fresh event loop."""
    return asyncio.run


def build_backend(kind: str, tmp_path) -> StorageBackend:
    if kind == "native":
        return NativeSQLiteBackend(tmp_path / "ledger.db")
    return MemorySQLiteBackend(tmp_path / "ledger.img")


@pytest.fixture(params=["native", "memory"])
def backend_kind(request):
    return request.param


@pytest.fixture
def backend(backend_kind, tmp_path):
    return build_backend(backend_kind, tmp_path)


@pytest.fixture
def make_backend(backend_kind, tmp_path):
    """Build fresh backends over the same storage, e.g. to reopen it."""
    return lambda: build_backend(backend_kind, tmp_path)


@pytest.fixture
def ledger(backend):
    """A LedgerService that still needs ``await ledger.init()``."""
    return LedgerService(backend, lock_timeout=5.0)


class _FaultySession(StorageSession):
    def __init__(self, inner: StorageSession, owner: "FaultyBackend"):
        self._inner = inner
        self._owner = owner

    async def execute(self, sql, params=()):
        if self._owner.armed and self._owner.fail_on in sql:
            self._owner.faults += 1
            raise StorageError(f"injected fault on: {self._owner.fail_on}")
        return await self._inner.execute(sql, params)

    async def query_one(self, sql, params=()):
        return await self._inner.query_one(sql, params)

    async def query_all(self, sql, params=()):
        return await self._inner.query_all(sql, params)


class FaultyBackend(StorageBackend):
    """
    Wraps a real backend and fails atomic-unit writes matching ``fail_on``.

    Faults only fire while ``armed`` is True.
    """

    def __init__(self, inner: StorageBackend, fail_on: str):
        self.inner = inner
        self.fail_on = fail_on
        self.armed = False
        self.faults = 0
        self.name = inner.name

    async def open(self):
        await self.inner.open()

    async def close(self):
        await self.inner.close()

    @property
    def is_open(self):
        return self.inner.is_open

    async def execute(self, sql, params=()):
        return await self.inner.execute(sql, params)

    async def query_one(self, sql, params=()):
        return await self.inner.query_one(sql, params)

    async def query_all(self, sql, params=()):
        return await self.inner.query_all(sql, params)

    async def run_atomic(self, fn):
        async def wrapped(session):
            return await fn(_FaultySession(session, self))

        return await self.inner.run_atomic(wrapped)


@pytest.fixture
def faulty_factory(backend):
    """Build a (FaultyBackend, LedgerService) pair for a statement fragment."""

    def factory(fail_on: str):
        faulty = FaultyBackend(backend, fail_on)
        return faulty, LedgerService(faulty, lock_timeout=5.0)

    return factory
