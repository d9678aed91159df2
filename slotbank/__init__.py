"""
slotbank - Balance ledger for a casino-style wallet

A local, transactional ledger that keeps account balances and an append-only
transaction log on an embedded SQLite store, with a native file backend and
an in-memory backend persisted to flat storage.
"""

from .db import (
    LedgerService,
    MemorySQLiteBackend,
    NativeSQLiteBackend,
    create_backend,
    open_ledger,
)
from .errors import (
    AccountNotFoundError,
    EmailTakenError,
    InsufficientFundsError,
    LedgerError,
    NotInitializedError,
    StorageIOError,
)
from .models import Account, LedgerResult, Transaction, TransactionKind

__version__ = "0.1.0"

__all__ = [
    "Account",
    "AccountNotFoundError",
    "EmailTakenError",
    "InsufficientFundsError",
    "LedgerError",
    "LedgerResult",
    "LedgerService",
    "MemorySQLiteBackend",
    "NativeSQLiteBackend",
    "NotInitializedError",
    "StorageIOError",
    "Transaction",
    "TransactionKind",
    "create_backend",
    "open_ledger",
]
