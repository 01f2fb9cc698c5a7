"""
Tests for inventory aggregation.

Covers:
- Remaining volume derived from the ledger, not the stored running volume
- Last withdrawal chosen by timestamp, not row order
- Age / expiry / annualised figures
- Diagnostics for unparseable, orphan, negative and duplicate rows
"""

from datetime import UTC, date, datetime, timedelta
from decimal import Decimal

import pytest

from seedbank_engines.aggregation import (
    DUPLICATE_LOT_CODE,
    NEGATIVE_REMAINING,
    ORPHAN_WITHDRAWAL,
    UNPARSEABLE_DATE,
    UNPARSEABLE_LOT,
    UNPARSEABLE_WITHDRAWAL,
    aggregate_inventory,
)
from seedbank_engines.status import Status, StatusPolicy, StatusReason
from seedbank_kernel.domain.lot import FieldParseError, WithdrawalEntry

AS_OF = datetime(2024, 6, 1, 12, 0, tzinfo=UTC)


def _entry(code, amount, at, row_number=None, **overrides):
    values = dict(
        timestamp=at,
        lot_code=code,
        amount=Decimal(amount) if amount is not None else None,
        previous_value=None,
        new_value=None,
        row_number=row_number,
    )
    values.update(overrides)
    return WithdrawalEntry(**values)


class TestAggregateInventory:

    def test_remaining_from_ledger_not_running_volume(self, lot_factory, policy):
        lot = lot_factory("A", current_volume=Decimal("999"))
        entries = [_entry("A", "60", AS_OF - timedelta(days=3)), _entry("A", "40", AS_OF - timedelta(days=1))]

        result = aggregate_inventory([lot], entries, AS_OF, policy)

        view = result.by_code("A")
        assert view.total_withdrawn == Decimal("100")
        assert view.remaining_volume == Decimal("150")
        assert view.withdrawal_count == 2
        assert result.diagnostics == ()

    def test_last_withdrawal_by_timestamp_not_row_order(self, lot_factory, policy):
        late = _entry("A", "5", AS_OF - timedelta(days=1), row_number=2)
        early = _entry("A", "7", AS_OF - timedelta(days=9), row_number=3)

        view = aggregate_inventory([lot_factory("A")], [late, early], AS_OF, policy).by_code("A")

        assert view.last_withdrawal is late
        assert view.days_since_last_withdrawal == 1
        assert view.withdrawals == (early, late)

    def test_date_figures(self, lot_factory, policy):
        lot = lot_factory("A", stored_date=date(2023, 11, 14))
        view = aggregate_inventory([lot], [], AS_OF, policy).by_code("A")

        assert view.days_since_stored == 200
        assert view.days_until_expiry == 1095 - 200
        assert view.days_since_last_withdrawal == 200
        assert view.annualized_withdrawal == Decimal("0")
        assert view.last_withdrawal is None

    def test_status_and_thresholds_attached(self, lot_factory, policy):
        lot = lot_factory("A", crop="Tomato", original_volume=Decimal("30"))
        view = aggregate_inventory([lot], [], AS_OF, policy).by_code("A")
        assert view.thresholds.low == Decimal("40")
        assert view.status is Status.WARNING
        assert view.reasons == (StatusReason.LOW_VOLUME,)

    def test_old_lot_without_withdrawals_ages(self, lot_factory, policy):
        lot = lot_factory("A", stored_date=AS_OF.date() - timedelta(days=400))
        view = aggregate_inventory([lot], [], AS_OF, policy).by_code("A")
        assert view.status is Status.WARNING
        assert StatusReason.AGING in view.reasons

    def test_views_in_input_order(self, lot_factory, policy):
        lots = [lot_factory("B"), lot_factory("A"), lot_factory("C")]
        result = aggregate_inventory(lots, [], AS_OF, policy)
        assert [v.code for v in result.views] == ["B", "A", "C"]

    def test_as_of_date_accepted(self, lot_factory, policy):
        view = aggregate_inventory([lot_factory("A")], [], AS_OF.date(), policy).by_code("A")
        assert view.days_since_stored == 200


class TestDiagnostics:

    def test_unparseable_lot_skipped(self, lot_factory, policy):
        bad = lot_factory(
            "BAD",
            original_volume=None,
            parse_errors=(FieldParseError("original_volume", "n/a", "Not a number"),),
        )
        result = aggregate_inventory([bad, lot_factory("A")], [], AS_OF, policy)

        assert [v.code for v in result.views] == ["A"]
        assert [d.code for d in result.diagnostics] == [UNPARSEABLE_LOT]
        assert "unparseable" in result.diagnostics[0].message

    def test_missing_stored_date(self, lot_factory, policy):
        result = aggregate_inventory([lot_factory("A", stored_date=None)], [], AS_OF, policy)
        view = result.by_code("A")
        assert view.days_since_stored is None
        assert view.days_until_expiry is None
        assert view.annualized_withdrawal is None
        assert result.diagnostics_for("A")[0].code == UNPARSEABLE_DATE

    def test_unparseable_withdrawal_skipped(self, lot_factory, policy):
        broken = _entry(
            "A",
            None,
            AS_OF,
            row_number=4,
            parse_errors=(FieldParseError("amount", "lots", "Not a number"),),
        )
        result = aggregate_inventory([lot_factory("A")], [broken, _entry("A", "10", AS_OF)], AS_OF, policy)

        assert result.by_code("A").total_withdrawn == Decimal("10")
        diagnostic = result.diagnostics[0]
        assert diagnostic.code == UNPARSEABLE_WITHDRAWAL
        assert diagnostic.row_number == 4
        assert "amount" in diagnostic.message

    def test_withdrawal_without_timestamp_skipped(self, lot_factory, policy):
        result = aggregate_inventory([lot_factory("A")], [_entry("A", "10", None)], AS_OF, policy)
        assert result.by_code("A").withdrawal_count == 0
        assert result.diagnostics[0].code == UNPARSEABLE_WITHDRAWAL

    def test_orphan_withdrawal(self, lot_factory, policy):
        result = aggregate_inventory([lot_factory("A")], [_entry("GHOST", "10", AS_OF)], AS_OF, policy)
        assert result.diagnostics[0].code == ORPHAN_WITHDRAWAL
        assert result.diagnostics[0].lot_code == "GHOST"

    def test_negative_remaining_reported_not_clamped(self, lot_factory, policy):
        lot = lot_factory("A", original_volume=Decimal("50"))
        result = aggregate_inventory([lot], [_entry("A", "80", AS_OF)], AS_OF, policy)

        view = result.by_code("A")
        assert view.remaining_volume == Decimal("-30")
        assert view.status is Status.CRITICAL
        assert result.diagnostics_for("A")[0].code == NEGATIVE_REMAINING

    def test_duplicate_codes(self, lot_factory, policy):
        result = aggregate_inventory([lot_factory("A"), lot_factory("A")], [], AS_OF, policy)
        assert [d.code for d in result.diagnostics] == [DUPLICATE_LOT_CODE]
        assert len(result.views) == 2

    def test_diagnostics_logged(self, lot_factory, policy, captured_logs):
        aggregate_inventory([lot_factory("A")], [_entry("GHOST", "1", AS_OF)], AS_OF, policy)
        record = next(r for r in captured_logs() if r["message"] == "aggregation_diagnostics")
        assert record["codes"] == [ORPHAN_WITHDRAWAL]

    def test_traced(self, lot_factory, policy, captured_logs):
        aggregate_inventory([lot_factory("A")], [], AS_OF, policy)
        trace = next(r for r in captured_logs() if r["message"] == "SEEDBANK_ENGINE_TRACE")
        assert trace["engine_name"] == "aggregation"
        assert len(trace["input_fingerprint"]) == 16


@pytest.mark.parametrize("stored_days_ago, expected_expiry", [(0, 1095), (1095, 0), (1200, -105)])
def test_days_until_expiry(lot_factory, stored_days_ago, expected_expiry):
    lot = lot_factory("A", stored_date=AS_OF.date() - timedelta(days=stored_days_ago))
    view = aggregate_inventory([lot], [], AS_OF, StatusPolicy()).by_code("A")
    assert view.days_until_expiry == expected_expiry
