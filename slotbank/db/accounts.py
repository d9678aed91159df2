"""
Accounts repository module for account CRUD operations.

Handles all account-related database operations including:
- Creating accounts (unique by email)
- Looking accounts up by email or id
- Listing accounts
- The low-level balance write used by the transaction ledger
"""

import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional, Union
from uuid import uuid4

from slotbank.config import MAX_ACCOUNT_NAME_LENGTH
from slotbank.errors import (
    AccountNotFoundError,
    EmailTakenError,
    InvalidInputError,
    StorageIOError,
)
from slotbank.models import Account, to_minor

from .base import IntegrityViolation, StorageBackend, StorageError, StorageSession

logger = logging.getLogger(__name__)

ACCOUNT_COLUMNS = "id, name, email, credential, balance, created_at"


def utc_timestamp() -> datetime:
    return datetime.now(timezone.utc)


def format_timestamp(value: datetime) -> str:
    """Fixed-width ISO text so stored timestamps sort lexically."""
    return value.isoformat(timespec="microseconds")


class AccountRepository:
    """
    Repository for wallet accounts.

    Balances are only changed through the transaction ledger; ``set_balance``
    is the primitive it uses and bypasses transaction recording.
    """

    def __init__(self, backend: StorageBackend):
        """
        Initialize the account repository.

        Args:
            backend: Storage backend shared with the rest of the ledger
        """
        self.backend = backend

    # =========================================================================
    # Create Operations
    # =========================================================================

    async def create_account(self, name: str, email: str, credential: str) -> Account:
        """
        Create a new account with a zero balance.

        Args:
            name: Display name
            email: Login email, must not already be registered
            credential: Opaque secret stored as-is

        Returns:
            The created Account

        Raises:
            InvalidInputError: If name or email is blank
            EmailTakenError: If the email is already registered
            StorageIOError: If the storage engine fails
        """
        name = (name or "").strip()
        email = (email or "").strip()
        if not name:
            raise InvalidInputError("Account name cannot be empty")
        if len(name) > MAX_ACCOUNT_NAME_LENGTH:
            raise InvalidInputError(
                f"Account name longer than {MAX_ACCOUNT_NAME_LENGTH} characters"
            )
        if not email:
            raise InvalidInputError("Email cannot be empty")
        if credential is None:
            raise InvalidInputError("Credential is required")

        account = Account(
            id=uuid4().hex,
            name=name,
            email=email,
            credential=str(credential),
            balance=Decimal("0.00"),
            created_at=utc_timestamp(),
        )

        async def insert(session: StorageSession) -> Account:
            # Check if email already exists
            existing = await session.query_one(
                "SELECT id FROM accounts WHERE email = ?", (email,)
            )
            if existing:
                raise EmailTakenError(email)

            await session.execute(
                f"""
                INSERT INTO accounts ({ACCOUNT_COLUMNS})
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    account.id,
                    account.name,
                    account.email,
                    account.credential,
                    to_minor(account.balance),
                    format_timestamp(account.created_at),
                ),
            )
            return account

        try:
            await self.backend.run_atomic(insert)
        except IntegrityViolation as e:
            if "accounts.email" in str(e):
                raise EmailTakenError(email) from e
            logger.error(f"Constraint failure creating account: {e}", exc_info=True)
            raise StorageIOError(f"Failed to create account: {e}") from e
        except StorageError as e:
            logger.error(f"Error creating account for {email}: {e}", exc_info=True)
            raise StorageIOError(f"Failed to create account: {e}") from e

        logger.info(f"Created account {account.id} for {email}")
        return account

    # =========================================================================
    # Read Operations
    # =========================================================================

    async def find_by_email(self, email: str) -> Account:
        """
        Get an account by exact email match (input is trimmed, case kept).

        Raises:
            AccountNotFoundError: If no account has this email
        """
        email = (email or "").strip()
        if not email:
            raise AccountNotFoundError(email)
        row = await self._query_one(
            f"SELECT {ACCOUNT_COLUMNS} FROM accounts WHERE email = ?", (email,)
        )
        if row is None:
            raise AccountNotFoundError(email)
        return Account.from_row(row)

    async def find_by_id(
        self, account_id: str, session: Optional[StorageSession] = None
    ) -> Account:
        """
        Get an account by id.

        Raises:
            AccountNotFoundError: If the id does not exist
        """
        row = await self._query_one(
            f"SELECT {ACCOUNT_COLUMNS} FROM accounts WHERE id = ?",
            (account_id,),
            session,
        )
        if row is None:
            raise AccountNotFoundError(account_id)
        return Account.from_row(row)

    async def exists(
        self, account_id: str, session: Optional[StorageSession] = None
    ) -> bool:
        row = await self._query_one(
            "SELECT 1 AS found FROM accounts WHERE id = ?", (account_id,), session
        )
        return row is not None

    async def list_all(self) -> list[Account]:
        """All accounts, newest-created first."""
        try:
            rows = await self.backend.query_all(
                f"""
                SELECT {ACCOUNT_COLUMNS} FROM accounts
                ORDER BY created_at DESC, rowid DESC
                """
            )
        except StorageError as e:
            logger.error(f"Error listing accounts: {e}", exc_info=True)
            raise StorageIOError(f"Failed to list accounts: {e}") from e
        return [Account.from_row(row) for row in rows]

    async def count(self) -> int:
        """Number of accounts."""
        row = await self._query_one("SELECT COUNT(*) AS total FROM accounts", ())
        return row["total"] if row else 0

    # =========================================================================
    # Update Operations
    # =========================================================================

    async def set_balance(
        self,
        account_id: str,
        new_balance: Union[Decimal, int],
        session: Optional[StorageSession] = None,
    ) -> None:
        """
        Overwrite an account balance without recording a transaction.

        Only the transaction ledger should call this, inside its atomic unit.

        Raises:
            AccountNotFoundError: If the id does not exist
            StorageIOError: If the write fails
        """
        target = session or self.backend
        try:
            updated = await target.execute(
                "UPDATE accounts SET balance = ? WHERE id = ?",
                (to_minor(Decimal(new_balance)), account_id),
            )
        except StorageError as e:
            logger.error(
                f"Error updating balance for account {account_id}: {e}", exc_info=True
            )
            raise StorageIOError(f"Failed to update balance: {e}") from e
        if updated == 0:
            raise AccountNotFoundError(account_id)
        logger.debug(f"Balance for account {account_id} set to {new_balance}")

    # =========================================================================
    # Helpers
    # =========================================================================

    async def _query_one(self, sql, params, session: Optional[StorageSession] = None):
        target = session or self.backend
        try:
            return await target.query_one(sql, params)
        except StorageError as e:
            logger.error(f"Error querying accounts: {e}", exc_info=True)
            raise StorageIOError(f"Failed to read accounts: {e}") from e
