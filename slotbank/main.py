"""
Ledger diagnostics script.

Opens the configured ledger, reports which backend is active, lists every
account and checks that each balance matches its transaction history.
"""

import argparse
import asyncio
import logging
import sys
from typing import Optional

from slotbank.config import (
    LOG_DIR,
    LOG_FILE,
    LOG_FORMAT,
    ensure_directories,
    get_log_level,
    load_environment,
)
from slotbank.db import open_ledger
from slotbank.errors import LedgerInitError
from slotbank.services import CurrencyParser

logger = logging.getLogger(__name__)


def configure_logging():
    """Log to stdout and to the log file."""
    ensure_directories()
    logging.basicConfig(
        level=get_log_level(),
        format=LOG_FORMAT,
        handlers=[
            logging.FileHandler(LOG_DIR / LOG_FILE),
            logging.StreamHandler(sys.stdout),
        ],
    )


async def diagnose(backend: Optional[str] = None, path: Optional[str] = None) -> int:
    """Run the checks and return a process exit code."""
    print("=" * 60)
    print("Ledger diagnostics")
    print("=" * 60)

    try:
        ledger = await open_ledger(backend, path)
    except LedgerInitError as e:
        logger.error(f"Ledger initialization failed: {e}")
        print(f"Initialization failed: {e}")
        return 2

    try:
        print(f"Backend:  {ledger.backend_name}")

        accounts = (await ledger.list_accounts()).unwrap()
        print(f"Accounts: {len(accounts)}")

        reports = (await ledger.verify_all()).unwrap()
        by_id = {report.account_id: report for report in reports}
        inconsistent = 0

        for account in accounts:
            # Accounts cleared between the two reads have no report
            report = by_id.get(account.id)
            if report is None:
                status, count = "removed", 0
            else:
                count = report.transaction_count
                status = "ok" if report.is_consistent else f"DRIFT {report.drift}"
                if not report.is_consistent:
                    inconsistent += 1
            print(
                f"  {account.email:<30} {CurrencyParser.format(account.balance):>16}"
                f"  {count:>5} txns  {status}"
            )

        print("-" * 60)
        if inconsistent:
            print(f"{inconsistent} account(s) do not match their history")
            return 1
        print("All balances match their transaction history")
        return 0
    finally:
        await ledger.close()


def main(argv=None):
    parser = argparse.ArgumentParser(description="Check the slotbank ledger")
    parser.add_argument("--backend", choices=["native", "memory"], default=None)
    parser.add_argument("--path", default=None, help="Database or image file")
    args = parser.parse_args(argv)

    load_environment()
    configure_logging()
    sys.exit(asyncio.run(diagnose(args.backend, args.path)))


if __name__ == "__main__":
    main()
