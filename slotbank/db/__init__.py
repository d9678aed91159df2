"""
Database module for the slotbank balance ledger.

This module provides the storage layer for wallet accounts and their
append-only transaction log.

Structure:
- base.py: Backend contract (StorageBackend, StorageSession) and storage errors
- sqlite_backend.py: Native backend on a SQLite file with real transactions
- memory_backend.py: In-memory SQLite engine persisted to a flat file
- schema.py: Idempotent schema creation
- accounts.py: Account CRUD operations
- locks.py: Per-account lock registry
- transactions.py: Atomic transaction apply and history
- queries.py: Consistency checks and summaries
- repository.py: LedgerService facade that composes all of the above
"""

from .accounts import AccountRepository
from .base import IntegrityViolation, StorageBackend, StorageError, StorageSession
from .locks import AccountLockRegistry
from .memory_backend import MemorySQLiteBackend
from .queries import ConsistencyReport, QueryRepository
from .repository import LedgerService, create_backend, open_ledger
from .schema import SchemaManager
from .sqlite_backend import NativeSQLiteBackend
from .transactions import TransactionLedger

__all__ = [
    # Backends
    "IntegrityViolation",
    "MemorySQLiteBackend",
    "NativeSQLiteBackend",
    "StorageBackend",
    "StorageError",
    "StorageSession",
    "create_backend",
    # Repositories
    "AccountLockRegistry",
    "AccountRepository",
    "ConsistencyReport",
    "QueryRepository",
    "SchemaManager",
    "TransactionLedger",
    # Facade
    "LedgerService",
    "open_ledger",
]
