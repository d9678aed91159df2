from .account import Account
from .money import from_minor, parse_amount, parse_balance, to_decimal, to_minor
from .result import LedgerResult
from .transaction import (
    CREDIT_KINDS,
    DEBIT_KINDS,
    EntryDirection,
    Transaction,
    TransactionKind,
    TransactionStatus,
)

__all__ = [
    "Account",
    "CREDIT_KINDS",
    "DEBIT_KINDS",
    "EntryDirection",
    "LedgerResult",
    "Transaction",
    "TransactionKind",
    "TransactionStatus",
    "from_minor",
    "parse_amount",
    "parse_balance",
    "to_decimal",
    "to_minor",
]
