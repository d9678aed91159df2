"""
Transaction models for the balance ledger.

Defines transaction kinds, their balance direction, statuses, and the
immutable Transaction record.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Mapping

from .money import from_minor


class EntryDirection(str, Enum):
    """Which way a transaction moves the balance."""

    CREDIT = "credit"
    DEBIT = "debit"


class TransactionKind(str, Enum):
    """
    Kinds of balance-affecting events.

    Credit-direction kinds increase the balance; debit-direction kinds
    decrease it and are rejected if the balance would go negative.
    """

    CREDIT = "credit"
    DEBIT = "debit"
    DEPOSIT = "deposit"
    WITHDRAW = "withdraw"
    PAYMENT = "payment"
    TRANSFER = "transfer"
    BET = "bet"
    WIN = "win"
    BONUS = "bonus"

    @property
    def direction(self) -> EntryDirection:
        return KIND_DIRECTIONS[self]

    @property
    def is_credit(self) -> bool:
        return self.direction == EntryDirection.CREDIT

    def default_description(self) -> str:
        """Description used when the caller supplies none."""
        return f"{self.value} completed"


KIND_DIRECTIONS = {
    TransactionKind.CREDIT: EntryDirection.CREDIT,
    TransactionKind.DEBIT: EntryDirection.DEBIT,
    TransactionKind.DEPOSIT: EntryDirection.CREDIT,
    TransactionKind.WITHDRAW: EntryDirection.DEBIT,
    TransactionKind.PAYMENT: EntryDirection.DEBIT,
    TransactionKind.TRANSFER: EntryDirection.DEBIT,
    TransactionKind.BET: EntryDirection.DEBIT,
    TransactionKind.WIN: EntryDirection.CREDIT,
    TransactionKind.BONUS: EntryDirection.CREDIT,
}

CREDIT_KINDS = tuple(k.value for k in TransactionKind if k.is_credit)
DEBIT_KINDS = tuple(k.value for k in TransactionKind if not k.is_credit)


class TransactionStatus(str, Enum):
    """
    Transaction status.

    Only COMPLETED is ever written; PENDING and FAILED are kept so stored
    rows stay readable if a settlement workflow is added later.
    """

    COMPLETED = "completed"
    PENDING = "pending"
    FAILED = "failed"


@dataclass(frozen=True)
class Transaction:
    """An immutable record of one balance change."""

    id: str
    account_id: str
    kind: TransactionKind
    amount: Decimal  # always positive, direction comes from kind
    description: str
    status: TransactionStatus
    created_at: datetime

    @property
    def signed_amount(self) -> Decimal:
        """Amount with the sign of its effect on the balance."""
        return self.amount if self.kind.is_credit else -self.amount

    def to_dict(self) -> dict:
        """Convert to dictionary representation."""
        return {
            "id": self.id,
            "account_id": self.account_id,
            "kind": self.kind.value,
            "amount": str(self.amount),
            "description": self.description,
            "status": self.status.value,
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "Transaction":
        """Create a Transaction from a database row."""
        return cls(
            id=row["id"],
            account_id=row["account_id"],
            kind=TransactionKind(row["kind"]),
            amount=from_minor(row["amount"]),
            description=row["description"],
            status=TransactionStatus(row["status"]),
            created_at=datetime.fromisoformat(row["created_at"]),
        )
