"""Tests for the openpyxl-backed record store."""

from datetime import UTC, datetime
from decimal import Decimal

import openpyxl
import pytest

from seedbank_kernel.domain.lot import InventoryType, WithdrawalEntry
from seedbank_kernel.exceptions import LedgerWriteError
from seedbank_kernel.domain.schema import EDIT_LOG_HEADERS, LOT_HEADERS, WITHDRAWAL_LOG_HEADERS
from seedbank_kernel.services.ledger_service import LedgerService
from seedbank_kernel.store.base import EDITS_SHEET, LOTS_SHEET, WITHDRAWALS_SHEET
from seedbank_kernel.store.workbook import WorkbookRecordStore


@pytest.fixture
def workbook_path(tmp_path):
    return tmp_path / "seedbank.xlsx"


class TestWorkbookCreation:

    def test_new_file_gets_three_sheets_with_headers(self, workbook_path):
        WorkbookRecordStore(workbook_path)
        assert workbook_path.exists()

        workbook = openpyxl.load_workbook(workbook_path)
        assert set(workbook.sheetnames) == {LOTS_SHEET, WITHDRAWALS_SHEET, EDITS_SHEET}
        assert tuple(c.value for c in workbook[LOTS_SHEET][1]) == LOT_HEADERS
        assert tuple(c.value for c in workbook[WITHDRAWALS_SHEET][1]) == WITHDRAWAL_LOG_HEADERS
        assert tuple(c.value for c in workbook[EDITS_SHEET][1]) == EDIT_LOG_HEADERS

    def test_missing_sheet_added_to_existing_workbook(self, workbook_path):
        workbook = openpyxl.Workbook()
        workbook.active.title = LOTS_SHEET
        workbook.active.append(["Code", "Crop", "Volume Stored"])
        workbook.active.append(["A", "Okra", 50])
        workbook.save(workbook_path)

        store = WorkbookRecordStore(workbook_path)
        assert WITHDRAWALS_SHEET in store.workbook.sheetnames
        lot = store.get_lot_by_code("A")
        assert lot.crop == "Okra"
        assert lot.available_volume == Decimal("50")

    def test_in_memory_workbook_without_path(self):
        store = WorkbookRecordStore()
        assert store.get_all_lots() == []


class TestWorkbookPersistence:

    def test_lot_and_update_survive_reload(self, workbook_path, lot_factory):
        store = WorkbookRecordStore(workbook_path)
        store.append_lot(lot_factory("A"))
        assert store.update_lot_fields("A", {"current_volume": Decimal("190.5"), "remarks": "dry"})

        reloaded = WorkbookRecordStore(workbook_path)
        lot = reloaded.get_lot_by_code("A")
        assert lot.current_volume == Decimal("190.5")
        assert lot.original_volume == Decimal("250")
        assert lot.remarks == "dry"
        assert lot.inventory_type is InventoryType.SEED_STORAGE
        assert lot.row_number == 2

    def test_withdrawal_log_survives_reload(self, workbook_path):
        store = WorkbookRecordStore(workbook_path)
        store.append_withdrawal_entry(
            WithdrawalEntry(
                timestamp=datetime(2024, 6, 1, 9, 30, tzinfo=UTC),
                lot_code="A",
                amount=Decimal("60"),
                previous_value=Decimal("250"),
                new_value=Decimal("190"),
                reason="Planting",
            )
        )

        entries = WorkbookRecordStore(workbook_path).get_all_withdrawal_entries("A")
        assert len(entries) == 1
        assert entries[0].timestamp == datetime(2024, 6, 1, 9, 30, tzinfo=UTC)
        assert entries[0].is_consistent

    def test_ledger_over_workbook(self, workbook_path, lot_factory, clock):
        store = WorkbookRecordStore(workbook_path)
        ledger = LedgerService(store, clock=clock)
        ledger.register_lot(lot_factory(""))

        code = store.get_all_lots()[0].code
        result = ledger.apply_withdrawal(code, "60", reason="Planting")
        assert result.new_volume == Decimal("190")

        reloaded = WorkbookRecordStore(workbook_path)
        assert reloaded.get_lot_by_code(code).current_volume == Decimal("190")
        assert [e.amount for e in reloaded.get_all_withdrawal_entries(code)] == [Decimal("60")]


def _fail_save_on(store, monkeypatch, *calls):
    """Make the workbook's Nth save calls raise OSError; other saves go through."""
    real_save = store.workbook.save
    count = {"n": 0}

    def save(path):
        count["n"] += 1
        if count["n"] in calls:
            raise OSError("disk full")
        real_save(path)

    monkeypatch.setattr(store.workbook, "save", save)


class TestFailedSaveRollback:

    def test_failed_append_is_not_persisted_by_later_save(self, workbook_path, lot_factory, monkeypatch):
        store = WorkbookRecordStore(workbook_path)
        store.append_lot(lot_factory("A"))
        _fail_save_on(store, monkeypatch, 1)

        with pytest.raises(OSError):
            store.append_withdrawal_entry(
                WithdrawalEntry(
                    timestamp=datetime(2024, 6, 1, 9, 30, tzinfo=UTC),
                    lot_code="A",
                    amount=Decimal("60"),
                    previous_value=Decimal("250"),
                    new_value=Decimal("190"),
                )
            )
        assert store.get_all_withdrawal_entries() == []

        assert store.update_lot_fields("A", {"remarks": "dry"})
        reloaded = WorkbookRecordStore(workbook_path)
        assert reloaded.get_all_withdrawal_entries() == []
        assert reloaded.get_lot_by_code("A").remarks == "dry"

    def test_failed_cell_write_restores_previous_values(self, workbook_path, lot_factory, monkeypatch):
        store = WorkbookRecordStore(workbook_path)
        store.append_lot(lot_factory("A", remarks="original"))
        _fail_save_on(store, monkeypatch, 1)

        with pytest.raises(OSError):
            store.update_lot_fields("A", {"current_volume": Decimal("10"), "remarks": "lost"})

        lot = store.get_lot_by_code("A")
        assert lot.current_volume == Decimal("250")
        assert lot.remarks == "original"

    def test_withdrawal_with_failed_log_save_leaves_no_trace(
        self, workbook_path, lot_factory, clock, monkeypatch
    ):
        store = WorkbookRecordStore(workbook_path)
        store.append_lot(lot_factory("A"))
        ledger = LedgerService(store, clock=clock)
        # save 1 writes the lot row, save 2 is the withdrawal log
        _fail_save_on(store, monkeypatch, 2)

        with pytest.raises(LedgerWriteError) as exc_info:
            ledger.apply_withdrawal("A", "60", reason="Planting")
        assert exc_info.value.compensated is True

        store.update_lot_fields("A", {"remarks": "checked"})
        reloaded = WorkbookRecordStore(workbook_path)
        assert reloaded.get_all_withdrawal_entries() == []
        lot = reloaded.get_lot_by_code("A")
        assert lot.current_volume == Decimal("250")
        assert lot.remarks == "checked"
