"""Services for the seedbank kernel (write side)."""

from seedbank_kernel.services.ledger_service import (
    EditResult,
    LedgerService,
    WithdrawalResult,
)
from seedbank_kernel.services.store_lock import StoreLock

__all__ = [
    "EditResult",
    "LedgerService",
    "StoreLock",
    "WithdrawalResult",
]
