"""In-memory record store: three lists of rows, one per sheet."""

from __future__ import annotations

import threading
from collections.abc import Iterable, Mapping, Sequence
from typing import Any

from seedbank_kernel.domain.lot import SeedLot
from seedbank_kernel.store.base import DEFAULT_HEADERS, SheetRecordStore


class InMemoryRecordStore(SheetRecordStore):
    """
    Record store backed by Python lists.

    Used by tests and by callers that load a snapshot from elsewhere.
    Readers get a copy of the rows, so a read racing a write sees either
    the old or the new row, never a half-written one.
    """

    def __init__(
        self,
        headers: Mapping[str, Sequence[str]] | None = None,
        lots: Iterable[SeedLot] = (),
    ) -> None:
        super().__init__()
        self._rows_lock = threading.Lock()
        self._sheets: dict[str, list[list[Any]]] = {
            sheet: [list((headers or {}).get(sheet, default))]
            for sheet, default in DEFAULT_HEADERS.items()
        }
        for lot in lots:
            self.append_lot(lot)

    def _header_row(self, sheet: str) -> Sequence[Any]:
        with self._rows_lock:
            return list(self._sheets[sheet][0])

    def _data_rows(self, sheet: str) -> list[Sequence[Any]]:
        with self._rows_lock:
            return [list(row) for row in self._sheets[sheet][1:]]

    def _append_row(self, sheet: str, row: Sequence[Any]) -> None:
        with self._rows_lock:
            self._sheets[sheet].append(list(row))

    def _write_cells(self, sheet: str, row_number: int, cells: Mapping[int, Any]) -> None:
        with self._rows_lock:
            row = self._sheets[sheet][row_number - 1]
            width = max(cells, default=-1) + 1
            if len(row) < width:
                row.extend([None] * (width - len(row)))
            for column, value in cells.items():
                row[column] = value

    def raw_rows(self, sheet: str) -> list[list[Any]]:
        """Header plus data rows exactly as stored."""
        with self._rows_lock:
            return [list(row) for row in self._sheets[sheet]]
