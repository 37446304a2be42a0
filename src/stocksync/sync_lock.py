"""Short-lived advisory lock guarding overlapping sync runs."""

from __future__ import annotations

import time
from typing import Optional

from stocksync.repositories.base import LedgerRepository

SYNC_LOCK_NAME = "sync_branch_stock"


class SyncLock:
    """
    TTL lock stored in the ledger's lock slot.

    There is no ownership token: any process may release the lock, and
    an expired lock is free to take even if its holder is still running.
    """

    def __init__(
        self,
        repository: LedgerRepository,
        *,
        ttl_sec: int,
        name: str = SYNC_LOCK_NAME,
    ) -> None:
        self._repository = repository
        self._ttl_sec = ttl_sec
        self.name = name

    def is_held(self, *, now: Optional[float] = None) -> bool:
        """Return True while an unexpired lock exists."""
        if now is None:
            now = time.time()
        expires_at = self._repository.get_lock_expiry(self.name)
        if expires_at is None:
            return False
        if expires_at <= now:
            self._repository.delete_lock(self.name)
            return False
        return True

    def acquire(self) -> float:
        """Set (or overwrite) the lock and return its expiry timestamp."""
        expires_at = time.time() + self._ttl_sec
        self._repository.set_lock_expiry(self.name, expires_at)
        return expires_at

    def release(self) -> None:
        self._repository.delete_lock(self.name)
