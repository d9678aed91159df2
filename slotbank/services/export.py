"""
Export service for account statements.

Provides functionality to export an account's transaction history to XLSX
and CSV formats.
"""

import csv
import io
from contextlib import aclosing
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import cast

from openpyxl import Workbook
from openpyxl.styles import Alignment, Font, PatternFill
from openpyxl.utils import get_column_letter
from openpyxl.worksheet.worksheet import Worksheet

from slotbank.config import MAX_EXPORT_ENTRIES
from slotbank.db import LedgerService
from slotbank.models import Account, Transaction

HEADERS = [
    "ID",
    "Date",
    "Time",
    "Kind",
    "Direction",
    "Amount",
    "Description",
    "Status",
]


class ExportFormat(str, Enum):
    """Supported export formats."""

    CSV = "csv"
    XLSX = "xlsx"


class ExportService:
    """Service for exporting account statements to various formats."""

    def __init__(self, ledger: LedgerService):
        """
        Initialize the export service.

        Args:
            ledger: Initialized ledger service
        """
        self.ledger = ledger

    async def export_to_csv(self, account_id: str) -> io.BytesIO:
        """
        Export an account's transactions to CSV format.

        Args:
            account_id: Account whose history to export

        Returns:
            BytesIO buffer containing the CSV data
        """
        _, transactions = await self._get_statement(account_id)

        buffer = io.BytesIO()
        text_buffer = io.StringIO()

        writer = csv.writer(text_buffer)
        writer.writerow(HEADERS)

        for txn in transactions:
            writer.writerow(
                [
                    txn.id,
                    txn.created_at.strftime("%Y-%m-%d"),
                    txn.created_at.strftime("%H:%M:%S"),
                    txn.kind.value,
                    txn.kind.direction.value,
                    f"{txn.amount:.2f}",
                    txn.description,
                    txn.status.value,
                ]
            )

        # Convert to bytes
        buffer.write(text_buffer.getvalue().encode("utf-8-sig"))  # BOM for Excel
        buffer.seek(0)

        return buffer

    async def export_to_xlsx(self, account_id: str) -> io.BytesIO:
        """
        Export an account's transactions to XLSX format with formatting.

        Args:
            account_id: Account whose history to export

        Returns:
            BytesIO buffer containing the XLSX data
        """
        account, transactions = await self._get_statement(account_id)

        wb = Workbook()
        ws = cast(Worksheet, wb.active)
        ws.title = "Statement"

        # Define styles
        header_font = Font(bold=True, color="FFFFFF")
        header_fill = PatternFill(
            start_color="4472C4", end_color="4472C4", fill_type="solid"
        )
        credit_fill = PatternFill(
            start_color="C6EFCE", end_color="C6EFCE", fill_type="solid"
        )
        debit_fill = PatternFill(
            start_color="FFC7CE", end_color="FFC7CE", fill_type="solid"
        )

        for col, header in enumerate(HEADERS, 1):
            cell = ws.cell(row=1, column=col, value=header)
            cell.font = header_font
            cell.fill = header_fill
            cell.alignment = Alignment(horizontal="center")

        for row_idx, txn in enumerate(transactions, 2):
            ws.cell(row=row_idx, column=1, value=txn.id)
            ws.cell(row=row_idx, column=2, value=txn.created_at.strftime("%Y-%m-%d"))
            ws.cell(row=row_idx, column=3, value=txn.created_at.strftime("%H:%M:%S"))
            ws.cell(row=row_idx, column=4, value=txn.kind.value)
            ws.cell(row=row_idx, column=5, value=txn.kind.direction.value)
            ws.cell(row=row_idx, column=6, value=float(txn.amount))
            ws.cell(row=row_idx, column=7, value=txn.description)
            ws.cell(row=row_idx, column=8, value=txn.status.value)

            fill = credit_fill if txn.kind.is_credit else debit_fill
            for col in range(1, len(HEADERS) + 1):
                ws.cell(row=row_idx, column=col).fill = fill

        for row in range(2, len(transactions) + 2):
            ws.cell(row=row, column=6).number_format = "#,##0.00"

        column_widths = [34, 12, 10, 10, 10, 15, 40, 12]
        for col, width in enumerate(column_widths, 1):
            ws.column_dimensions[get_column_letter(col)].width = width

        # Freeze header row
        ws.freeze_panes = "A2"

        self._add_summary_sheet(wb, account, transactions)

        buffer = io.BytesIO()
        wb.save(buffer)
        buffer.seek(0)

        return buffer

    def _add_summary_sheet(
        self,
        wb: Workbook,
        account: Account,
        transactions: list[Transaction],
    ):
        """Add a summary sheet to the workbook."""
        ws = wb.create_sheet(title="Summary")

        header_font = Font(bold=True)
        title_font = Font(bold=True, size=14)

        ws.cell(row=1, column=1, value=f"Statement for {account.name}").font = title_font
        ws.cell(row=2, column=1, value=account.email)
        ws.cell(
            row=3,
            column=1,
            value=f"Generated: {datetime.now().strftime('%Y-%m-%d %H:%M')}",
        )

        credits = [t.amount for t in transactions if t.kind.is_credit]
        debits = [t.amount for t in transactions if not t.kind.is_credit]
        total_credits = sum(credits, Decimal("0.00"))
        total_debits = sum(debits, Decimal("0.00"))

        summary_start = 5
        ws.cell(row=summary_start, column=1, value="Category").font = header_font
        ws.cell(row=summary_start, column=2, value="Count").font = header_font
        ws.cell(row=summary_start, column=3, value="Total").font = header_font

        ws.cell(row=summary_start + 1, column=1, value="Credits")
        ws.cell(row=summary_start + 1, column=2, value=len(credits))
        ws.cell(row=summary_start + 1, column=3, value=float(total_credits))

        ws.cell(row=summary_start + 2, column=1, value="Debits")
        ws.cell(row=summary_start + 2, column=2, value=len(debits))
        ws.cell(row=summary_start + 2, column=3, value=float(total_debits))

        ws.cell(row=summary_start + 4, column=1, value="Net").font = header_font
        ws.cell(
            row=summary_start + 4, column=3, value=float(total_credits - total_debits)
        )
        ws.cell(row=summary_start + 5, column=1, value="Balance").font = header_font
        ws.cell(row=summary_start + 5, column=3, value=float(account.balance))

        for row in range(summary_start + 1, summary_start + 6):
            ws.cell(row=row, column=3).number_format = "#,##0.00"

        ws.column_dimensions["A"].width = 15
        ws.column_dimensions["B"].width = 10
        ws.column_dimensions["C"].width = 18

    async def _get_statement(
        self, account_id: str
    ) -> tuple[Account, list[Transaction]]:
        """
        Get the account and up to MAX_EXPORT_ENTRIES of its transactions.

        Raises:
            LedgerError: If the account cannot be read
        """
        account = (await self.ledger.find_account_by_id(account_id)).unwrap()
        transactions: list[Transaction] = []
        history = self.ledger.transactions.iter_history(account_id)
        async with aclosing(history):
            async for txn in history:
                transactions.append(txn)
                if len(transactions) >= MAX_EXPORT_ENTRIES:
                    break
        return account, transactions

    def get_filename(self, account: Account, format: ExportFormat) -> str:
        """
        Generate a filename for the export.

        Args:
            account: Account being exported
            format: Export format

        Returns:
            Suggested filename
        """
        date_str = datetime.now().strftime("%Y%m%d")
        local_part = account.email.split("@", 1)[0]
        safe = "".join(c if c.isalnum() else "_" for c in local_part) or account.id
        return f"slotbank_statement_{safe}_{date_str}.{format.value}"
