"""
RecordStore -- boundary contract for the tabular store behind the ledger.

Responsibility:
    Declares the read-all / read-by-key / append / update-cells operations
    the ledger and read paths need, and provides ``SheetRecordStore``, which
    implements all of them over three header-keyed sheets given four row
    primitives.  Concrete stores only supply the primitives.

Architecture position:
    Kernel > Store -- the one I/O boundary of the kernel.  Services hold a
    ``RecordStore``; engines never see one.

Invariants enforced:
    - Log sheets are append-only: there is no update or delete for
      withdrawal or edit rows.
    - ``update_lot_fields`` writes either every requested cell or none.
    - Lot columns are located by header text through the store's
      ``Schema``, never by position.

Failure modes:
    - ``update_lot_fields`` returns False (and logs) for an unknown code,
      unknown field key or missing header.
    - ``HeaderNotFoundError`` when the lot sheet lacks the Code column.
    - Primitive I/O errors (e.g. ``OSError`` on save) propagate.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Mapping, Sequence
from typing import Any

from seedbank_kernel.domain.lot import EditLogEntry, SeedLot, WithdrawalEntry
from seedbank_kernel.domain.schema import (
    CODE_HEADER,
    EDIT_LOG_HEADERS,
    LOT_HEADERS,
    WITHDRAWAL_LOG_HEADERS,
    Schema,
    edit_from_row,
    edit_to_row,
    fields_to_record,
    lot_from_record,
    lot_to_record,
    parse_text,
    withdrawal_from_row,
    withdrawal_to_row,
)
from seedbank_kernel.logging_config import get_logger

logger = get_logger("store")

LOTS_SHEET = "Form Responses"
WITHDRAWALS_SHEET = "Withdrawal Logs"
EDITS_SHEET = "Edit Logs"

DEFAULT_HEADERS: Mapping[str, tuple[str, ...]] = {
    LOTS_SHEET: LOT_HEADERS,
    WITHDRAWALS_SHEET: WITHDRAWAL_LOG_HEADERS,
    EDITS_SHEET: EDIT_LOG_HEADERS,
}


class RecordStore(ABC):
    """Abstract record store consumed by the ledger and read paths."""

    @abstractmethod
    def get_all_lots(self) -> list[SeedLot]:
        ...

    @abstractmethod
    def get_lot_by_code(self, code: str) -> SeedLot | None:
        ...

    @abstractmethod
    def append_lot(self, lot: SeedLot) -> None:
        ...

    @abstractmethod
    def update_lot_fields(self, code: str, field_map: Mapping[str, Any]) -> bool:
        ...

    @abstractmethod
    def append_withdrawal_entry(self, entry: WithdrawalEntry) -> None:
        ...

    @abstractmethod
    def get_all_withdrawal_entries(self, lot_code: str | None = None) -> list[WithdrawalEntry]:
        ...

    @abstractmethod
    def append_edit_log_entry(self, entry: EditLogEntry) -> None:
        ...

    @abstractmethod
    def get_all_edit_log_entries(self, lot_code: str | None = None) -> list[EditLogEntry]:
        ...


class SheetRecordStore(RecordStore):
    """
    Record store over three sheets addressed by 1-based row numbers.

    Row 1 of every sheet is its header row.  The lot sheet ``Schema`` is
    built from that header row on construction and rebuilt only by
    ``refresh_schema()``.

    Subclasses implement ``_header_row``, ``_data_rows``, ``_append_row``
    and ``_write_cells``.
    """

    def __init__(self) -> None:
        self._schema: Schema | None = None

    # -- primitives ---------------------------------------------------------

    @abstractmethod
    def _header_row(self, sheet: str) -> Sequence[Any]:
        ...

    @abstractmethod
    def _data_rows(self, sheet: str) -> list[Sequence[Any]]:
        """Rows after the header, in sheet order; row i is sheet row i + 2."""
        ...

    @abstractmethod
    def _append_row(self, sheet: str, row: Sequence[Any]) -> None:
        ...

    @abstractmethod
    def _write_cells(self, sheet: str, row_number: int, cells: Mapping[int, Any]) -> None:
        """Write 0-based column -> value cells on one 1-based row."""
        ...

    # -- schema -------------------------------------------------------------

    @property
    def schema(self) -> Schema:
        if self._schema is None:
            self._schema = self.refresh_schema()
        return self._schema

    def refresh_schema(self) -> Schema:
        self._schema = Schema.from_headers(LOTS_SHEET, self._header_row(LOTS_SHEET))
        self._schema.require([CODE_HEADER])
        return self._schema

    # -- lots ---------------------------------------------------------------

    def _lot_rows(self) -> list[tuple[int, dict[str, Any]]]:
        schema = self.schema
        return [
            (index + 2, schema.row_to_record(row))
            for index, row in enumerate(self._data_rows(LOTS_SHEET))
            if any(cell not in (None, "") for cell in row)
        ]

    def _find_lot_row(self, code: str) -> tuple[int, dict[str, Any]] | None:
        for row_number, record in self._lot_rows():
            if parse_text(record.get(CODE_HEADER)) == code:
                return row_number, record
        return None

    def get_all_lots(self) -> list[SeedLot]:
        return [lot_from_record(record, row_number) for row_number, record in self._lot_rows()]

    def get_lot_by_code(self, code: str) -> SeedLot | None:
        found = self._find_lot_row(code)
        if found is None:
            return None
        row_number, record = found
        return lot_from_record(record, row_number)

    def append_lot(self, lot: SeedLot) -> None:
        self._append_row(LOTS_SHEET, self.schema.record_to_row(lot_to_record(lot)))
        logger.debug("lot_row_appended", extra={"code": lot.code})

    def update_lot_fields(self, code: str, field_map: Mapping[str, Any]) -> bool:
        record = fields_to_record(field_map)
        if record is None:
            logger.error(
                "lot_update_unknown_field",
                extra={"code": code, "fields": sorted(field_map)},
            )
            return False

        schema = self.schema
        missing = [header for header in record if not schema.has(header)]
        if missing:
            logger.error(
                "lot_update_header_not_found",
                extra={"code": code, "sheet": schema.sheet, "headers": missing},
            )
            return False

        found = self._find_lot_row(code)
        if found is None:
            logger.error("lot_update_code_not_found", extra={"code": code})
            return False

        row_number, _ = found
        self._write_cells(
            LOTS_SHEET,
            row_number,
            {schema.index_of(header): value for header, value in record.items()},
        )
        logger.debug(
            "lot_row_updated",
            extra={"code": code, "row_number": row_number, "headers": sorted(record)},
        )
        return True

    # -- logs ---------------------------------------------------------------

    def append_withdrawal_entry(self, entry: WithdrawalEntry) -> None:
        self._append_row(WITHDRAWALS_SHEET, withdrawal_to_row(entry))

    def get_all_withdrawal_entries(self, lot_code: str | None = None) -> list[WithdrawalEntry]:
        entries = [
            withdrawal_from_row(row, index + 2)
            for index, row in enumerate(self._data_rows(WITHDRAWALS_SHEET))
            if any(cell not in (None, "") for cell in row)
        ]
        if lot_code is not None:
            entries = [e for e in entries if e.lot_code == lot_code]
        return entries

    def append_edit_log_entry(self, entry: EditLogEntry) -> None:
        self._append_row(EDITS_SHEET, edit_to_row(entry))

    def get_all_edit_log_entries(self, lot_code: str | None = None) -> list[EditLogEntry]:
        entries = [
            edit_from_row(row, index + 2)
            for index, row in enumerate(self._data_rows(EDITS_SHEET))
            if any(cell not in (None, "") for cell in row)
        ]
        if lot_code is not None:
            entries = [e for e in entries if e.lot_code == lot_code]
        return entries
