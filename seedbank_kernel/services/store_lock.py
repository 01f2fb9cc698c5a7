"""
StoreLock -- store-wide mutual exclusion for ledger mutations.

Responsibility:
    Serialises every read-then-write against the record store.  One lock
    covers the whole store, not one lot: concurrent withdrawals against
    different lots also queue behind each other.

Failure modes:
    - ``LockUnavailableError`` when the lock is not acquired within the
      timeout.  The operation is abandoned, not queued or retried.

Scaling note:
    Replacing this with per-lot optimistic concurrency means a
    compare-and-swap on ``last_modified`` inside ``update_lot_fields``;
    the log appends are already order-independent because entries carry
    monotonic timestamps.
"""

from __future__ import annotations

import threading
from collections.abc import Iterator
from contextlib import contextmanager

from seedbank_kernel.exceptions import LockUnavailableError
from seedbank_kernel.logging_config import get_logger

logger = get_logger("services.store_lock")

DEFAULT_LOCK_TIMEOUT_SECONDS = 30.0


class StoreLock:
    """Advisory lock with bounded wait."""

    def __init__(self, timeout_seconds: float = DEFAULT_LOCK_TIMEOUT_SECONDS):
        self.timeout_seconds = timeout_seconds
        self._lock = threading.Lock()

    @contextmanager
    def hold(self, operation: str) -> Iterator[None]:
        if not self._lock.acquire(timeout=self.timeout_seconds):
            logger.warning(
                "lock_unavailable",
                extra={"operation": operation, "timeout_seconds": self.timeout_seconds},
            )
            raise LockUnavailableError(self.timeout_seconds)
        try:
            yield
        finally:
            self._lock.release()

    @property
    def locked(self) -> bool:
        return self._lock.locked()
