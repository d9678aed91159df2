"""
Error taxonomy for the slotbank ledger.

Every error the ledger reports to callers is a ``LedgerError`` carrying a
stable ``code``; the facade turns these into failed ``LedgerResult`` values.
"""

from typing import Optional


class LedgerError(Exception):
    """Base class for all ledger errors."""

    code = "ledger_error"

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.code)
        self.message = message or self.code


class NotInitializedError(LedgerError):
    """An operation was attempted before ``init()`` succeeded."""

    code = "not_initialized"


class EmailTakenError(LedgerError):
    """An account with this email already exists."""

    code = "email_taken"

    def __init__(self, email: str):
        super().__init__(f"Email already registered: {email}")
        self.email = email


class AccountNotFoundError(LedgerError):
    """The referenced account id or email does not exist."""

    code = "account_not_found"

    def __init__(self, key: str):
        super().__init__(f"Account not found: {key}")
        self.key = key


class InsufficientFundsError(LedgerError):
    """A debit would drive the balance below zero."""

    code = "insufficient_funds"

    def __init__(self, account_id: str, balance, amount):
        super().__init__(
            f"Insufficient funds in account {account_id}: "
            f"balance {balance}, requested {amount}"
        )
        self.account_id = account_id
        self.balance = balance
        self.amount = amount


class StorageIOError(LedgerError):
    """The storage engine failed; the in-flight operation was rolled back."""

    code = "storage_io"


class LedgerInitError(StorageIOError):
    """Schema creation or storage open failed."""

    code = "init_failed"


class InvalidInputError(LedgerError, ValueError):
    """A caller-supplied value failed validation."""

    code = "invalid_input"


class InvalidAmountError(InvalidInputError):
    """An amount or balance is not a valid money value."""

    code = "invalid_amount"


class LockTimeoutError(LedgerError, TimeoutError):
    """Waiting for an account lock took longer than the configured timeout."""

    code = "lock_timeout"

    def __init__(self, account_id: str, timeout: float):
        super().__init__(
            f"Timed out after {timeout:.2f}s waiting for account {account_id}"
        )
        self.account_id = account_id
        self.timeout = timeout


class InternalError(LedgerError):
    """An unexpected exception escaped the ledger; details are in the log."""

    code = "internal_error"
