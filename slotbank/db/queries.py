"""
Queries repository module for balance checks and summaries.

Handles read-only analytics over the ledger:
- Re-deriving a balance from transaction history (conservation check)
- Per-kind counts and totals for an account
"""

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Any

from slotbank.errors import AccountNotFoundError, StorageIOError
from slotbank.models import CREDIT_KINDS, TransactionKind, from_minor

from .base import StorageBackend, StorageError

logger = logging.getLogger(__name__)

_CREDIT_LIST = ", ".join(f"'{kind}'" for kind in CREDIT_KINDS)


@dataclass(frozen=True)
class ConsistencyReport:
    """Stored balance of an account against the balance its history implies."""

    account_id: str
    stored_balance: Decimal
    derived_balance: Decimal
    transaction_count: int

    @property
    def is_consistent(self) -> bool:
        return self.stored_balance == self.derived_balance

    @property
    def drift(self) -> Decimal:
        return self.stored_balance - self.derived_balance

    def to_dict(self) -> dict:
        return {
            "account_id": self.account_id,
            "stored_balance": str(self.stored_balance),
            "derived_balance": str(self.derived_balance),
            "transaction_count": self.transaction_count,
            "consistent": self.is_consistent,
        }


class QueryRepository:
    """
    Repository for consistency checks and summaries.

    Each check is a single statement, so it sees the balance and the
    history from the same committed state.
    """

    def __init__(self, backend: StorageBackend):
        self.backend = backend

    # =========================================================================
    # Balance Queries
    # =========================================================================

    async def verify_account(self, account_id: str) -> ConsistencyReport:
        """
        Compare the stored balance with credits minus debits.

        Raises:
            AccountNotFoundError: If the account does not exist
        """
        rows = await self._query_all(
            f"""
            SELECT
                a.id AS account_id,
                a.balance AS stored,
                COALESCE(SUM(
                    CASE WHEN t.kind IN ({_CREDIT_LIST}) THEN t.amount
                         ELSE -t.amount END
                ), 0) AS derived,
                COUNT(t.id) AS transaction_count
            FROM accounts a
            LEFT JOIN transactions t ON t.account_id = a.id
            WHERE a.id = ?
            GROUP BY a.id
            """,
            (account_id,),
        )
        if not rows:
            raise AccountNotFoundError(account_id)
        report = self._report(rows[0])
        if not report.is_consistent:
            logger.warning(
                f"Account {account_id} balance {report.stored_balance} differs "
                f"from history {report.derived_balance}"
            )
        return report

    async def verify_all(self) -> list[ConsistencyReport]:
        """Consistency reports for every account, newest account first."""
        rows = await self._query_all(
            f"""
            SELECT
                a.id AS account_id,
                a.balance AS stored,
                COALESCE(SUM(
                    CASE WHEN t.kind IN ({_CREDIT_LIST}) THEN t.amount
                         ELSE -t.amount END
                ), 0) AS derived,
                COUNT(t.id) AS transaction_count
            FROM accounts a
            LEFT JOIN transactions t ON t.account_id = a.id
            GROUP BY a.id
            ORDER BY a.created_at DESC, a.rowid DESC
            """,
            (),
        )
        return [self._report(row) for row in rows]

    # =========================================================================
    # Summaries
    # =========================================================================

    async def get_account_summary(self, account_id: str) -> dict[str, Any]:
        """
        Per-kind counts and totals for an account.

        Returns:
            Dictionary with one {count, total} entry per kind, plus
            credits, debits, net and total_transactions
        """
        report = await self.verify_account(account_id)
        rows = await self._query_all(
            """
            SELECT kind, COUNT(*) AS count, SUM(amount) AS total
            FROM transactions
            WHERE account_id = ?
            GROUP BY kind
            """,
            (account_id,),
        )

        by_kind = {
            kind.value: {"count": 0, "total": Decimal("0.00")} for kind in TransactionKind
        }
        for row in rows:
            by_kind[row["kind"]] = {
                "count": row["count"],
                "total": from_minor(row["total"] or 0),
            }

        credits = sum(
            (v["total"] for k, v in by_kind.items() if k in CREDIT_KINDS),
            Decimal("0.00"),
        )
        debits = sum(
            (v["total"] for k, v in by_kind.items() if k not in CREDIT_KINDS),
            Decimal("0.00"),
        )

        return {
            **by_kind,
            "credits": credits,
            "debits": debits,
            "net": credits - debits,
            "balance": report.stored_balance,
            "total_transactions": report.transaction_count,
        }

    # =========================================================================
    # Helpers
    # =========================================================================

    @staticmethod
    def _report(row) -> ConsistencyReport:
        return ConsistencyReport(
            account_id=row["account_id"],
            stored_balance=from_minor(row["stored"]),
            derived_balance=from_minor(row["derived"]),
            transaction_count=row["transaction_count"],
        )

    async def _query_all(self, sql, params):
        try:
            return await self.backend.query_all(sql, params)
        except StorageError as e:
            logger.error(f"Error running ledger query: {e}", exc_info=True)
            raise StorageIOError(f"Failed to query ledger: {e}") from e
