"""
Account model for the balance ledger.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Mapping

from .money import from_minor


@dataclass
class Account:
    """
    A wallet holder with a non-negative balance.

    Attributes:
        id: Opaque unique identifier (uuid4 hex)
        name: Display name
        email: Unique login email, case-sensitive as stored
        credential: Opaque secret used by the login screens
        balance: Current balance, never negative after a committed transaction
        created_at: When the account was created (UTC)
    """

    id: str
    name: str
    email: str
    credential: str = field(repr=False)
    balance: Decimal
    created_at: datetime

    def to_dict(self) -> dict:
        """Convert to dictionary representation (without the credential)."""
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "balance": str(self.balance),
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "Account":
        """Create an Account from a database row."""
        return cls(
            id=row["id"],
            name=row["name"],
            email=row["email"],
            credential=row["credential"],
            balance=from_minor(row["balance"]),
            created_at=datetime.fromisoformat(row["created_at"]),
        )
