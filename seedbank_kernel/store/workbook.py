"""
WorkbookRecordStore -- ``.xlsx`` workbook holding the three sheets.

Responsibility:
    Persist lots, withdrawal logs and edit logs in one workbook using
    openpyxl.  The first row of each sheet is its header row; lot columns
    are found by header text through the store's ``Schema``.

Failure modes:
    - ``HeaderNotFoundError`` if the lot sheet has no Code column.
    - ``OSError`` from ``Workbook.save`` propagates to the caller; the
      ledger treats that as a failed write phase.  The in-memory sheet is
      rolled back first, so a later successful save never persists a row
      or cell whose own save failed.
"""

from __future__ import annotations

import threading
from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import Any

import openpyxl
from openpyxl.workbook import Workbook

from seedbank_kernel.logging_config import get_logger
from seedbank_kernel.store.base import DEFAULT_HEADERS, SheetRecordStore

logger = get_logger("store.workbook")


class WorkbookRecordStore(SheetRecordStore):
    """
    Record store over an openpyxl workbook.

    When ``path`` is given the workbook is loaded from it (or created with
    default headers if the file does not exist) and saved after every
    mutation.  Missing sheets are created with their default headers.
    """

    def __init__(
        self,
        path: Path | str | None = None,
        workbook: Workbook | None = None,
    ) -> None:
        super().__init__()
        self._path = Path(path) if path is not None else None
        self._io_lock = threading.RLock()

        if workbook is not None:
            self._workbook = workbook
        elif self._path is not None and self._path.exists():
            self._workbook = openpyxl.load_workbook(self._path)
            logger.info("workbook_loaded", extra={"path": str(self._path)})
        else:
            self._workbook = Workbook()
            self._workbook.remove(self._workbook.active)

        created = self._ensure_sheets()
        if created and self._path is not None:
            self._save()

    @property
    def workbook(self) -> Workbook:
        return self._workbook

    def _ensure_sheets(self) -> list[str]:
        created = []
        for sheet, headers in DEFAULT_HEADERS.items():
            if sheet not in self._workbook.sheetnames:
                worksheet = self._workbook.create_sheet(sheet)
                worksheet.append(list(headers))
                created.append(sheet)
        if created:
            logger.info("workbook_sheets_created", extra={"sheets": created})
        return created

    def _save(self) -> None:
        if self._path is not None:
            self._workbook.save(self._path)

    def _header_row(self, sheet: str) -> Sequence[Any]:
        with self._io_lock:
            worksheet = self._workbook[sheet]
            return [cell.value for cell in worksheet[1]]

    def _data_rows(self, sheet: str) -> list[Sequence[Any]]:
        with self._io_lock:
            worksheet = self._workbook[sheet]
            return [list(row) for row in worksheet.iter_rows(min_row=2, values_only=True)]

    def _append_row(self, sheet: str, row: Sequence[Any]) -> None:
        with self._io_lock:
            worksheet = self._workbook[sheet]
            worksheet.append(list(row))
            try:
                self._save()
            except Exception:
                worksheet.delete_rows(worksheet.max_row)
                logger.warning("workbook_append_rolled_back", extra={"sheet": sheet})
                raise

    def _write_cells(self, sheet: str, row_number: int, cells: Mapping[int, Any]) -> None:
        with self._io_lock:
            worksheet = self._workbook[sheet]
            previous = {
                column: worksheet.cell(row=row_number, column=column + 1).value
                for column in cells
            }
            for column, value in cells.items():
                worksheet.cell(row=row_number, column=column + 1, value=value)
            try:
                self._save()
            except Exception:
                for column, value in previous.items():
                    worksheet.cell(row=row_number, column=column + 1, value=value)
                logger.warning(
                    "workbook_write_rolled_back",
                    extra={"sheet": sheet, "row_number": row_number},
                )
                raise
