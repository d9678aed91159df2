"""
Ledger facade used by the application screens.

``LedgerService`` composes the schema manager, account store, transaction
ledger and queries over one injected storage backend. Every operation
returns a ``LedgerResult``; only ``init()`` raises, because a ledger whose
storage cannot be opened is unusable.
"""

import asyncio
import logging
import time
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional, TypeVar, Union

from slotbank.config import (
    DEFAULT_HISTORY_LIMIT,
    get_backend_kind,
    get_db_path,
    get_lock_timeout,
)
from slotbank.errors import (
    InternalError,
    LedgerError,
    LedgerInitError,
    NotInitializedError,
    StorageIOError,
)
from slotbank.models import (
    Account,
    LedgerResult,
    Transaction,
    TransactionKind,
    parse_balance,
)
from slotbank.models.money import AmountLike

from .accounts import AccountRepository
from .base import StorageBackend, StorageError, StorageSession
from .memory_backend import MemorySQLiteBackend
from .queries import ConsistencyReport, QueryRepository
from .schema import SchemaManager
from .sqlite_backend import NativeSQLiteBackend
from .transactions import TransactionLedger

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Errors callers are expected to handle; logged quietly
_EXPECTED_ERRORS = {
    "email_taken",
    "account_not_found",
    "insufficient_funds",
    "invalid_amount",
    "invalid_input",
}


def create_backend(
    kind: Optional[str] = None, path: Optional[Union[str, Path]] = None
) -> StorageBackend:
    """
    Build a storage backend.

    Args:
        kind: "native" or "memory"; defaults to the configured backend
        path: Database file (native) or image file (memory); defaults to the
            configured path. For "memory", an explicit ``None`` path is only
            possible by constructing MemorySQLiteBackend directly.
    """
    kind = kind or get_backend_kind()
    path = path or get_db_path()
    if kind == "native":
        return NativeSQLiteBackend(path)
    if kind == "memory":
        return MemorySQLiteBackend(path)
    raise ValueError(f"Unknown backend kind: {kind!r}")


class LedgerService:
    """Stable ledger API for the application screens."""

    def __init__(self, backend: StorageBackend, lock_timeout: Optional[float] = None):
        """
        Initialize the service.

        Args:
            backend: Storage backend, constructed once by the caller
            lock_timeout: Maximum seconds to wait for an account lock;
                defaults to the configured value
        """
        self.backend = backend
        self.schema = SchemaManager(backend)
        self.accounts = AccountRepository(backend)
        self.transactions = TransactionLedger(
            backend,
            self.accounts,
            lock_timeout=lock_timeout if lock_timeout is not None else get_lock_timeout(),
        )
        self.queries = QueryRepository(backend)
        self._initialized = False
        self._init_lock = asyncio.Lock()

    @property
    def backend_name(self) -> str:
        return self.backend.name

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def init(self) -> None:
        """
        Open storage and ensure the schema. Idempotent.

        Raises:
            LedgerInitError: If storage cannot be opened or the schema created
        """
        async with self._init_lock:
            if self._initialized:
                return
            await self.schema.ensure_schema()
            self._initialized = True
            logger.info(f"Ledger initialized on {self.backend_name} backend")

    async def close(self) -> None:
        """Close the storage handle. ``init()`` must be called again to reuse."""
        async with self._init_lock:
            self._initialized = False
            await self.backend.close()

    # =========================================================================
    # Accounts
    # =========================================================================

    async def create_account(
        self, name: str, email: str, credential: str
    ) -> LedgerResult[Account]:
        return await self._run(
            "create_account",
            lambda: self.accounts.create_account(name, email, credential),
        )

    async def find_account_by_email(self, email: str) -> LedgerResult[Account]:
        return await self._run(
            "find_account_by_email", lambda: self.accounts.find_by_email(email)
        )

    async def find_account_by_id(self, account_id: str) -> LedgerResult[Account]:
        return await self._run(
            "find_account_by_id", lambda: self.accounts.find_by_id(account_id)
        )

    async def list_accounts(self) -> LedgerResult[list[Account]]:
        return await self._run("list_accounts", self.accounts.list_all)

    # =========================================================================
    # Transactions
    # =========================================================================

    async def apply_transaction(
        self,
        account_id: str,
        kind: Union[TransactionKind, str],
        amount: AmountLike,
        description: Optional[str] = None,
    ) -> LedgerResult[Transaction]:
        return await self._run(
            "apply_transaction",
            lambda: self.transactions.apply_transaction(
                account_id, kind, amount, description
            ),
        )

    async def list_transactions(
        self,
        account_id: str,
        limit: int = DEFAULT_HISTORY_LIMIT,
        offset: int = 0,
    ) -> LedgerResult[list[Transaction]]:
        return await self._run(
            "list_transactions",
            lambda: self.transactions.list_history(account_id, limit, offset),
        )

    async def set_balance_direct(
        self, account_id: str, balance: AmountLike
    ) -> LedgerResult[Account]:
        """
        Overwrite a balance without recording a transaction.

        Breaks the conservation invariant (balance == credits - debits) for
        the account. Kept for administrative repair only.
        """

        async def overwrite() -> Account:
            new_balance = parse_balance(balance)
            logger.warning(
                f"Direct balance overwrite on account {account_id} to {new_balance}; "
                f"history no longer explains this balance"
            )
            async with self.transactions.locks.hold(account_id):
                await self.accounts.set_balance(account_id, new_balance)
            return await self.accounts.find_by_id(account_id)

        return await self._run("set_balance_direct", overwrite)

    async def clear_all(self) -> LedgerResult[None]:
        """Delete every transaction and account. For tests and resets only."""

        async def wipe(session: StorageSession) -> None:
            await session.execute("DELETE FROM transactions")
            await session.execute("DELETE FROM accounts")

        async def run() -> None:
            try:
                await self.backend.run_atomic(wipe)
            except StorageError as e:
                logger.error(f"Error clearing ledger: {e}", exc_info=True)
                raise StorageIOError(f"Failed to clear ledger: {e}") from e
            logger.warning("Ledger cleared: all accounts and transactions deleted")

        return await self._run("clear_all", run)

    # =========================================================================
    # Diagnostics
    # =========================================================================

    async def verify_account(self, account_id: str) -> LedgerResult[ConsistencyReport]:
        return await self._run(
            "verify_account", lambda: self.queries.verify_account(account_id)
        )

    async def verify_all(self) -> LedgerResult[list[ConsistencyReport]]:
        return await self._run("verify_all", self.queries.verify_all)

    async def account_summary(self, account_id: str) -> LedgerResult[dict[str, Any]]:
        return await self._run(
            "account_summary", lambda: self.queries.get_account_summary(account_id)
        )

    # =========================================================================
    # Helpers
    # =========================================================================

    async def _run(
        self, operation: str, call: Callable[[], Awaitable[T]]
    ) -> LedgerResult[T]:
        """Run ``call`` and fold its outcome into a LedgerResult."""
        started = time.perf_counter()
        try:
            if not self._initialized:
                raise NotInitializedError(f"{operation} called before init()")
            value = await call()
        except LedgerError as e:
            elapsed = (time.perf_counter() - started) * 1000
            if e.code in _EXPECTED_ERRORS:
                logger.debug(f"{operation} rejected: {e}")
            else:
                logger.warning(f"{operation} failed: {e}")
            return LedgerResult.fail(e, elapsed)
        except Exception as e:
            elapsed = (time.perf_counter() - started) * 1000
            logger.error(f"Unexpected error in {operation}: {e}", exc_info=True)
            return LedgerResult.fail(InternalError(f"{operation} failed: {e}"), elapsed)
        return LedgerResult.ok(value, (time.perf_counter() - started) * 1000)


async def open_ledger(
    kind: Optional[str] = None, path: Optional[Union[str, Path]] = None
) -> LedgerService:
    """
    Build the configured backend, wrap it in a LedgerService and initialize it.

    Raises:
        LedgerInitError: If the storage cannot be initialized
    """
    service = LedgerService(create_backend(kind, path))
    try:
        await service.init()
    except LedgerInitError:
        await service.backend.close()
        raise
    return service
