"""
Per-account locks for the transaction ledger.

Each account id maps to its own ``asyncio.Lock`` so that applies on the same
account serialize while applies on different accounts proceed independently.
Locks are created on first use and dropped once nobody holds or waits for
them.
"""

import asyncio
import logging
from contextlib import asynccontextmanager

from slotbank.config import DEFAULT_LOCK_TIMEOUT
from slotbank.errors import LockTimeoutError

logger = logging.getLogger(__name__)


class AccountLockRegistry:
    """Registry of FIFO locks keyed by account id, with a bounded wait."""

    def __init__(self, timeout: float = DEFAULT_LOCK_TIMEOUT):
        self.timeout = timeout
        self._locks: dict[str, asyncio.Lock] = {}
        self._users: dict[str, int] = {}

    def __len__(self) -> int:
        return len(self._locks)

    def is_locked(self, account_id: str) -> bool:
        lock = self._locks.get(account_id)
        return lock is not None and lock.locked()

    @asynccontextmanager
    async def hold(self, account_id: str):
        """
        Hold the lock for ``account_id`` for the duration of the block.

        Raises:
            LockTimeoutError: If the lock is not acquired within ``timeout``
        """
        lock = self._locks.setdefault(account_id, asyncio.Lock())
        self._users[account_id] = self._users.get(account_id, 0) + 1
        try:
            try:
                async with asyncio.timeout(self.timeout):
                    await lock.acquire()
            except TimeoutError:
                logger.warning(
                    f"Lock wait for account {account_id} exceeded {self.timeout}s"
                )
                raise LockTimeoutError(account_id, self.timeout) from None
            try:
                yield
            finally:
                lock.release()
        finally:
            self._users[account_id] -= 1
            if self._users[account_id] == 0:
                del self._users[account_id]
                del self._locks[account_id]
