"""
Tests for the storage backends and the run_atomic contract.
"""

import asyncio
import threading
import time

import pytest

from slotbank.db import (
    IntegrityViolation,
    MemorySQLiteBackend,
    NativeSQLiteBackend,
    StorageError,
    create_backend,
)

DDL = "CREATE TABLE IF NOT EXISTS items (id INTEGER PRIMARY KEY, name TEXT UNIQUE NOT NULL)"


class TestAtomicContract:
    """Tests that hold for both backends."""

    def test_commit_persists_all_writes(self, run, backend):
        """Test that a successful unit keeps every write."""

        async def scenario():
            await backend.open()
            await backend.execute(DDL)

            async def body(session):
                await session.execute("INSERT INTO items (name) VALUES (?)", ("a",))
                await session.execute("INSERT INTO items (name) VALUES (?)", ("b",))
                return "done"

            result = await backend.run_atomic(body)
            rows = await backend.query_all("SELECT name FROM items ORDER BY name")
            await backend.close()
            return result, rows

        result, rows = run(scenario())
        assert result == "done"
        assert [r["name"] for r in rows] == ["a", "b"]

    def test_exception_rolls_back_all_writes(self, run, backend):
        """Test that an exception in the body undoes earlier writes."""

        async def scenario():
            await backend.open()
            await backend.execute(DDL)
            await backend.execute("INSERT INTO items (name) VALUES ('keep')")

            async def body(session):
                await session.execute("INSERT INTO items (name) VALUES ('lost')")
                await session.execute("UPDATE items SET name = 'changed' WHERE name = 'keep'")
                raise RuntimeError("boom")

            with pytest.raises(RuntimeError):
                await backend.run_atomic(body)
            rows = await backend.query_all("SELECT name FROM items")
            await backend.close()
            return rows

        assert [r["name"] for r in run(scenario())] == ["keep"]

    def test_constraint_failure_is_integrity_violation(self, run, backend):
        """Test that a UNIQUE failure surfaces as IntegrityViolation."""

        async def scenario():
            await backend.open()
            await backend.execute(DDL)
            await backend.execute("INSERT INTO items (name) VALUES ('dup')")
            try:
                with pytest.raises(IntegrityViolation):
                    await backend.execute("INSERT INTO items (name) VALUES ('dup')")
            finally:
                await backend.close()

        run(scenario())

    def test_sql_error_is_storage_error(self, run, backend):
        """Test that engine errors are wrapped in StorageError."""

        async def scenario():
            await backend.open()
            try:
                with pytest.raises(StorageError):
                    await backend.query_all("SELECT * FROM missing_table")
            finally:
                await backend.close()

        run(scenario())

    def test_units_do_not_interleave(self, run, backend):
        """Test that two concurrent units run one after the other."""
        events = []

        async def scenario():
            await backend.open()

            def body(label):
                async def inner(session):
                    events.append(f"{label}-start")
                    await session.query_one("SELECT 1 AS one")
                    await asyncio.sleep(0.01)
                    await session.query_one("SELECT 1 AS one")
                    events.append(f"{label}-end")

                return inner

            await asyncio.gather(backend.run_atomic(body("a")), backend.run_atomic(body("b")))
            await backend.close()

        run(scenario())
        assert events in (
            ["a-start", "a-end", "b-start", "b-end"],
            ["b-start", "b-end", "a-start", "a-end"],
        )

    def test_session_cannot_outlive_its_unit(self, run, backend):
        """Test that a leaked session refuses further statements."""

        async def scenario():
            await backend.open()
            leaked = {}

            async def body(session):
                leaked["session"] = session

            await backend.run_atomic(body)
            try:
                with pytest.raises(StorageError):
                    await leaked["session"].query_one("SELECT 1")
            finally:
                await backend.close()

        run(scenario())

    def test_statements_require_open_backend(self, run, backend):
        """Test that using a closed backend is a storage error."""
        with pytest.raises(StorageError):
            run(backend.query_one("SELECT 1"))

    def test_open_and_close_are_idempotent(self, run, backend):
        """Test repeated open and close calls."""

        async def scenario():
            await backend.open()
            await backend.open()
            assert backend.is_open
            await backend.close()
            await backend.close()
            assert not backend.is_open

        run(scenario())

    def test_cancelled_unit_is_rolled_back(self, run, backend):
        """Test that cancelling a caller mid-unit undoes its writes."""

        async def scenario():
            await backend.open()
            await backend.execute(DDL)
            written = asyncio.Event()

            async def body(session):
                await session.execute("INSERT INTO items (name) VALUES ('lost')")
                written.set()
                await asyncio.sleep(10)

            task = asyncio.ensure_future(backend.run_atomic(body))
            await written.wait()
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task
            await backend.execute("INSERT INTO items (name) VALUES ('kept')")
            rows = await backend.query_all("SELECT name FROM items")
            await backend.close()
            return rows

        assert run(scenario()) == [{"name": "kept"}]

    @pytest.mark.parametrize("yields", range(6))
    def test_cancellation_at_any_point_leaves_backend_usable(self, run, backend, yields):
        """Test that a unit cancelled early, even during BEGIN, does not wedge the handle."""

        async def scenario():
            await backend.open()
            await backend.execute(DDL)

            async def body(session):
                await session.execute("INSERT INTO items (name) VALUES ('maybe')")
                await session.execute("UPDATE items SET name = 'maybe2' WHERE name = 'maybe'")

            task = asyncio.ensure_future(backend.run_atomic(body))
            for _ in range(yields):
                await asyncio.sleep(0)
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)

            async def follow_up(session):
                await session.execute("INSERT INTO items (name) VALUES ('after')")
                return await session.query_all("SELECT name FROM items ORDER BY id")

            rows = await backend.run_atomic(follow_up)
            await backend.close()
            return task, rows

        task, rows = run(scenario())
        names = [row["name"] for row in rows]
        assert names in (["after"], ["maybe2", "after"])
        if not task.cancelled():
            assert names == ["maybe2", "after"]


class TestNativeBackend:
    """Tests specific to the SQLite file backend."""

    def test_data_survives_reopen(self, run, tmp_path):
        """Test that committed data is on disk."""
        path = tmp_path / "nested" / "native.db"

        async def scenario():
            first = NativeSQLiteBackend(path)
            await first.open()
            await first.execute(DDL)
            await first.execute("INSERT INTO items (name) VALUES ('x')")
            await first.close()

            second = NativeSQLiteBackend(path)
            await second.open()
            row = await second.query_one("SELECT name FROM items")
            await second.close()
            return row

        assert run(scenario()) == {"name": "x"}
        assert path.exists()

    def test_open_on_directory_fails(self, run, tmp_path):
        """Test that an unusable path is reported as a storage error."""
        with pytest.raises(StorageError):
            run(NativeSQLiteBackend(tmp_path).open())

    def test_foreign_keys_enabled(self, run, tmp_path):
        """Test that the connection enforces foreign keys."""

        async def scenario():
            backend = NativeSQLiteBackend(tmp_path / "fk.db")
            await backend.open()
            row = await backend.query_one("PRAGMA foreign_keys")
            await backend.close()
            return row

        assert list(run(scenario()).values()) == [1]


class TestMemoryBackend:
    """Tests specific to the in-memory backend saved to flat storage."""

    def test_image_is_saved_after_each_unit(self, run, tmp_path):
        """Test that a committed unit is written to the image file."""
        path = tmp_path / "memory.img"

        async def scenario():
            first = MemorySQLiteBackend(path)
            await first.open()
            await first.execute(DDL)
            await first.execute("INSERT INTO items (name) VALUES ('saved')")
            await first.close()

            second = MemorySQLiteBackend(path)
            await second.open()
            row = await second.query_one("SELECT name FROM items")
            await second.close()
            return row

        assert run(scenario()) == {"name": "saved"}
        assert path.stat().st_size > 0

    def test_failed_save_restores_snapshot(self, run, tmp_path, monkeypatch):
        """Test that a unit whose image cannot be saved is undone in memory."""
        backend = MemorySQLiteBackend(tmp_path / "memory.img")

        async def scenario():
            await backend.open()
            await backend.execute(DDL)

            def refuse(image):
                raise StorageError("disk full")

            monkeypatch.setattr(backend, "_write_image", refuse)
            with pytest.raises(StorageError):
                await backend.execute("INSERT INTO items (name) VALUES ('lost')")
            rows = await backend.query_all("SELECT name FROM items")
            await backend.close()
            return rows

        assert run(scenario()) == []

    def test_save_interrupted_by_cancel_keeps_memory_and_file_in_step(
        self, run, tmp_path, monkeypatch
    ):
        """Test that cancelling during the image write leaves no half-applied unit."""
        path = tmp_path / "memory.img"
        backend = MemorySQLiteBackend(path)
        real_write = backend._write_image
        writing = threading.Event()

        def slow_write(image):
            writing.set()
            time.sleep(0.05)
            real_write(image)

        async def scenario():
            await backend.open()
            await backend.execute(DDL)
            monkeypatch.setattr(backend, "_write_image", slow_write)

            task = asyncio.ensure_future(
                backend.execute("INSERT INTO items (name) VALUES ('lost')")
            )
            while not writing.is_set():
                await asyncio.sleep(0.001)
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task
            in_memory = await backend.query_all("SELECT name FROM items")
            await backend.close()

            reopened = MemorySQLiteBackend(path)
            await reopened.open()
            on_disk = await reopened.query_all("SELECT name FROM items")
            await reopened.close()
            return in_memory, on_disk

        assert run(scenario()) == ([], [])

    def test_corrupt_image_fails_to_open(self, run, tmp_path):
        """Test that garbage in flat storage is an open error."""
        path = tmp_path / "memory.img"
        path.write_bytes(b"definitely not a database" * 200)
        with pytest.raises(StorageError):
            run(MemorySQLiteBackend(path).open())

    def test_without_storage_path_nothing_is_written(self, run, tmp_path):
        """Test the purely in-memory mode."""

        async def scenario():
            backend = MemorySQLiteBackend()
            await backend.open()
            await backend.execute(DDL)
            await backend.execute("INSERT INTO items (name) VALUES ('ephemeral')")
            rows = await backend.query_all("SELECT name FROM items")
            await backend.close()
            return rows

        assert run(scenario()) == [{"name": "ephemeral"}]
        assert list(tmp_path.iterdir()) == []


class TestCreateBackend:
    """Tests for the backend factory."""

    def test_native(self, tmp_path):
        backend = create_backend("native", tmp_path / "a.db")
        assert isinstance(backend, NativeSQLiteBackend)
        assert backend.name == "native"

    def test_memory(self, tmp_path):
        backend = create_backend("memory", tmp_path / "a.img")
        assert isinstance(backend, MemorySQLiteBackend)
        assert backend.name == "memory"

    def test_from_environment(self, tmp_path, monkeypatch):
        monkeypatch.setenv("SLOTBANK_BACKEND", "memory")
        monkeypatch.setenv("SLOTBANK_DB_PATH", str(tmp_path / "env.img"))
        backend = create_backend()
        assert isinstance(backend, MemorySQLiteBackend)
        assert backend.storage_path == tmp_path / "env.img"

    def test_unknown_kind(self, tmp_path):
        with pytest.raises(ValueError):
            create_backend("postgres", tmp_path / "a.db")
