"""
Transaction ledger module.

Applies balance-changing transactions and reads them back:
- Applying a transaction (validate, update balance, append record) atomically
- Reading an account's transaction history, newest first
"""

import logging
from decimal import Decimal
from typing import Optional, Union
from uuid import uuid4

from slotbank.config import (
    DEFAULT_HISTORY_LIMIT,
    DEFAULT_LOCK_TIMEOUT,
    MAX_DESCRIPTION_LENGTH,
    MAX_HISTORY_LIMIT,
)
from slotbank.errors import (
    AccountNotFoundError,
    InsufficientFundsError,
    InvalidInputError,
    StorageIOError,
)
from slotbank.models import (
    Transaction,
    TransactionKind,
    TransactionStatus,
    from_minor,
    parse_amount,
    to_minor,
)
from slotbank.models.money import AmountLike

from .accounts import AccountRepository, format_timestamp, utc_timestamp
from .base import StorageBackend, StorageError, StorageSession
from .locks import AccountLockRegistry

logger = logging.getLogger(__name__)

TRANSACTION_COLUMNS = "id, account_id, kind, amount, description, status, created_at"


class TransactionLedger:
    """
    The core of the ledger: every balance change goes through here.

    ``apply_transaction`` holds the account's lock for the whole
    read-modify-write and runs it as one storage unit, so concurrent applies
    on the same account cannot both read the same starting balance.
    """

    def __init__(
        self,
        backend: StorageBackend,
        accounts: AccountRepository,
        lock_timeout: float = DEFAULT_LOCK_TIMEOUT,
    ):
        """
        Initialize the transaction ledger.

        Args:
            backend: Storage backend
            accounts: Account repository used for the balance write
            lock_timeout: Maximum seconds to wait for an account lock
        """
        self.backend = backend
        self.accounts = accounts
        self.locks = AccountLockRegistry(timeout=lock_timeout)

    # =========================================================================
    # Create Operations
    # =========================================================================

    async def apply_transaction(
        self,
        account_id: str,
        kind: Union[TransactionKind, str],
        amount: AmountLike,
        description: Optional[str] = None,
    ) -> Transaction:
        """
        Apply a transaction to an account.

        This method, atomically:
        1. Reads the current balance
        2. Computes the new balance from the kind's direction
        3. Rejects debits that would make the balance negative
        4. Writes the new balance
        5. Appends a completed transaction record

        Args:
            account_id: Account to change
            kind: Transaction kind (or its string value)
            amount: Positive amount with at most two decimals
            description: Optional note; defaults to a kind-derived text

        Returns:
            The created Transaction

        Raises:
            InvalidInputError: If the kind, amount or description is invalid
            AccountNotFoundError: If the account does not exist
            InsufficientFundsError: If a debit exceeds the balance
            LockTimeoutError: If the account lock could not be acquired in time
            StorageIOError: If the storage failed (nothing was written)
        """
        kind = self._parse_kind(kind)
        amount = parse_amount(amount)
        description = (description or "").strip() or kind.default_description()
        if len(description) > MAX_DESCRIPTION_LENGTH:
            raise InvalidInputError(
                f"Description longer than {MAX_DESCRIPTION_LENGTH} characters"
            )
        if not account_id:
            raise AccountNotFoundError(str(account_id))

        async def apply(session: StorageSession) -> Transaction:
            return await self._apply(session, account_id, kind, amount, description)

        async with self.locks.hold(account_id):
            try:
                transaction = await self.backend.run_atomic(apply)
            except StorageError as e:
                logger.error(
                    f"Error applying {kind.value} to account {account_id}: {e}",
                    exc_info=True,
                )
                raise StorageIOError(f"Failed to apply transaction: {e}") from e

        logger.info(
            f"Applied {kind.value} {amount} to account {account_id} "
            f"(transaction {transaction.id})"
        )
        return transaction

    async def _apply(
        self,
        session: StorageSession,
        account_id: str,
        kind: TransactionKind,
        amount: Decimal,
        description: str,
    ) -> Transaction:
        row = await session.query_one(
            "SELECT balance FROM accounts WHERE id = ?", (account_id,)
        )
        if row is None:
            raise AccountNotFoundError(account_id)

        balance = from_minor(row["balance"])
        new_balance = balance + amount if kind.is_credit else balance - amount
        if new_balance < 0:
            logger.info(
                f"Rejected {kind.value} {amount} on account {account_id}: "
                f"balance is {balance}"
            )
            raise InsufficientFundsError(account_id, balance, amount)

        await self.accounts.set_balance(account_id, new_balance, session=session)

        transaction = Transaction(
            id=uuid4().hex,
            account_id=account_id,
            kind=kind,
            amount=amount,
            description=description,
            status=TransactionStatus.COMPLETED,
            created_at=utc_timestamp(),
        )
        await session.execute(
            f"""
            INSERT INTO transactions ({TRANSACTION_COLUMNS})
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (
                transaction.id,
                transaction.account_id,
                transaction.kind.value,
                to_minor(transaction.amount),
                transaction.description,
                transaction.status.value,
                format_timestamp(transaction.created_at),
            ),
        )
        return transaction

    # =========================================================================
    # Read Operations
    # =========================================================================

    async def list_history(
        self,
        account_id: str,
        limit: int = DEFAULT_HISTORY_LIMIT,
        offset: int = 0,
    ) -> list[Transaction]:
        """
        Get an account's transactions, newest first.

        Args:
            account_id: Account whose history to read
            limit: Maximum number of transactions to return (1..MAX_HISTORY_LIMIT)
            offset: Number of transactions to skip

        Returns:
            List of Transaction objects

        Raises:
            InvalidInputError: If limit or offset is out of range
            AccountNotFoundError: If the account does not exist
        """
        if not isinstance(limit, int) or not 1 <= limit <= MAX_HISTORY_LIMIT:
            raise InvalidInputError(
                f"limit must be between 1 and {MAX_HISTORY_LIMIT}, got {limit!r}"
            )
        if not isinstance(offset, int) or offset < 0:
            raise InvalidInputError(f"offset must be >= 0, got {offset!r}")

        if not await self.accounts.exists(account_id):
            raise AccountNotFoundError(account_id)

        try:
            rows = await self.backend.query_all(
                f"""
                SELECT {TRANSACTION_COLUMNS} FROM transactions
                WHERE account_id = ?
                ORDER BY created_at DESC, rowid DESC
                LIMIT ? OFFSET ?
                """,
                (account_id, limit, offset),
            )
        except StorageError as e:
            logger.error(
                f"Error reading history for account {account_id}: {e}", exc_info=True
            )
            raise StorageIOError(f"Failed to read transactions: {e}") from e

        return [Transaction.from_row(row) for row in rows]

    async def iter_history(self, account_id: str, page_size: int = MAX_HISTORY_LIMIT):
        """Yield every transaction of an account, newest first, page by page."""
        offset = 0
        while True:
            page = await self.list_history(account_id, limit=page_size, offset=offset)
            for transaction in page:
                yield transaction
            if len(page) < page_size:
                return
            offset += page_size

    # =========================================================================
    # Helpers
    # =========================================================================

    @staticmethod
    def _parse_kind(kind: Union[TransactionKind, str]) -> TransactionKind:
        if isinstance(kind, TransactionKind):
            return kind
        try:
            return TransactionKind(str(kind).strip().lower())
        except ValueError:
            raise InvalidInputError(f"Unknown transaction kind: {kind!r}") from None
