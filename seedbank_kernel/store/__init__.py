"""Record stores behind the ledger (one I/O boundary, several backings)."""

from seedbank_kernel.store.base import (
    EDITS_SHEET,
    LOTS_SHEET,
    WITHDRAWALS_SHEET,
    RecordStore,
    SheetRecordStore,
)
from seedbank_kernel.store.memory import InMemoryRecordStore
from seedbank_kernel.store.workbook import WorkbookRecordStore

__all__ = [
    "EDITS_SHEET",
    "LOTS_SHEET",
    "WITHDRAWALS_SHEET",
    "InMemoryRecordStore",
    "RecordStore",
    "SheetRecordStore",
    "WorkbookRecordStore",
]
