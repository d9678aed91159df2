"""
Schema manager for the balance ledger.

Creates the ``accounts`` and ``transactions`` tables and their indexes.
Money columns hold integer cents.
"""

import logging

from slotbank.errors import LedgerInitError
from slotbank.models.transaction import TransactionKind, TransactionStatus

from .base import StorageBackend, StorageError, StorageSession

logger = logging.getLogger(__name__)

_KIND_VALUES = ", ".join(f"'{k.value}'" for k in TransactionKind)
_STATUS_VALUES = ", ".join(f"'{s.value}'" for s in TransactionStatus)

TABLES = {
    "accounts": """
        CREATE TABLE IF NOT EXISTS accounts (
            id TEXT PRIMARY KEY,
            name TEXT NOT NULL CHECK(length(name) > 0),
            email TEXT NOT NULL UNIQUE CHECK(length(email) > 0),
            credential TEXT NOT NULL,
            balance INTEGER NOT NULL DEFAULT 0 CHECK(balance >= 0),
            created_at TEXT NOT NULL
        )
    """,
    "transactions": f"""
        CREATE TABLE IF NOT EXISTS transactions (
            id TEXT PRIMARY KEY,
            account_id TEXT NOT NULL
                REFERENCES accounts(id) ON DELETE CASCADE,
            kind TEXT NOT NULL CHECK(kind IN ({_KIND_VALUES})),
            amount INTEGER NOT NULL CHECK(amount > 0),
            description TEXT NOT NULL,
            status TEXT NOT NULL DEFAULT 'completed'
                CHECK(status IN ({_STATUS_VALUES})),
            created_at TEXT NOT NULL
        )
    """,
}

INDEXES = [
    ("idx_accounts_created_at", "accounts", "created_at DESC"),
    ("idx_transactions_account_created", "transactions", "account_id, created_at DESC"),
]


class SchemaManager:
    """Ensures the ledger tables exist. Safe to call any number of times."""

    def __init__(self, backend: StorageBackend):
        self.backend = backend

    async def ensure_schema(self) -> None:
        """
        Create missing tables and indexes in one atomic unit.

        Raises:
            LedgerInitError: If the storage cannot be opened or written
        """
        try:
            if not self.backend.is_open:
                await self.backend.open()
            await self.backend.run_atomic(self._create)
        except StorageError as e:
            logger.error(f"Failed to initialize ledger schema: {e}", exc_info=True)
            raise LedgerInitError(f"Failed to initialize ledger schema: {e}") from e
        logger.debug("Ledger schema initialized successfully")

    async def _create(self, session: StorageSession) -> None:
        for ddl in TABLES.values():
            await session.execute(ddl)
        for index_name, table, columns in INDEXES:
            await session.execute(
                f"CREATE INDEX IF NOT EXISTS {index_name} ON {table}({columns})"
            )

    async def table_names(self) -> list[str]:
        """Names of the user tables currently in the database."""
        rows = await self.backend.query_all(
            "SELECT name FROM sqlite_master WHERE type = 'table' "
            "AND name NOT LIKE 'sqlite_%' ORDER BY name"
        )
        return [row["name"] for row in rows]
