"""
Module: seedbank_engines.aggregation
Responsibility:
    Join the full lot set with the full withdrawal ledger and produce one
    read-only ``AggregatedLotView`` per lot: totals, remaining volume,
    last withdrawal, age / expiry figures and status.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  Callers pass lots,
    entries and the ``as_of`` instant explicitly.

Invariants enforced:
    - ``remaining_volume == original_volume - total_withdrawn`` for every
      view, computed from the ledger, never from the lot's running volume.
    - ``last_withdrawal`` is chosen by timestamp, never by row position.
    - A bad row never aborts aggregation: it is skipped or degraded and a
      ``Diagnostic`` is emitted.
    - Negative remaining volume is reported, not clamped.

Failure modes:
    - None raised for data problems.  Diagnostics:
        UNPARSEABLE_LOT         no usable original volume; lot skipped
        UNPARSEABLE_DATE        no usable stored date; date figures None
        UNPARSEABLE_WITHDRAWAL  no usable amount / timestamp; entry skipped
        ORPHAN_WITHDRAWAL       entry code matches no lot; entry skipped
        NEGATIVE_REMAINING      ledger exceeds the original volume
        DUPLICATE_LOT_CODE      two lots share a code

Audit relevance:
    The view is the figure staff act on; each invocation is traced via
    ``@traced_engine``.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from decimal import Decimal

from seedbank_kernel.domain.lot import InventoryType, SeedLot, WithdrawalEntry
from seedbank_kernel.logging_config import get_logger
from seedbank_engines.status import (
    Status,
    StatusPolicy,
    StatusReason,
    VolumeThresholds,
    annualized_rate,
    classify_status,
    thresholds_for_crop,
)
from seedbank_engines.tracer import traced_engine

logger = get_logger("engines.aggregation")

UNPARSEABLE_LOT = "UNPARSEABLE_LOT"
UNPARSEABLE_DATE = "UNPARSEABLE_DATE"
UNPARSEABLE_WITHDRAWAL = "UNPARSEABLE_WITHDRAWAL"
ORPHAN_WITHDRAWAL = "ORPHAN_WITHDRAWAL"
NEGATIVE_REMAINING = "NEGATIVE_REMAINING"
DUPLICATE_LOT_CODE = "DUPLICATE_LOT_CODE"


@dataclass(frozen=True)
class Diagnostic:
    """A per-row anomaly found while reading; never raised."""

    code: str
    message: str
    lot_code: str | None = None
    row_number: int | None = None


@dataclass(frozen=True)
class AggregatedLotView:
    """
    Derived, never persisted, state of one lot.

    Contract:
        Frozen snapshot computed from one lot and its matched ledger rows.
    Guarantees:
        - ``withdrawals`` is ordered by timestamp.
        - ``withdrawal_count == len(withdrawals)``.
    """

    lot: SeedLot
    total_withdrawn: Decimal
    remaining_volume: Decimal
    last_withdrawal: WithdrawalEntry | None
    withdrawal_count: int
    days_since_stored: int | None
    days_until_expiry: int | None
    days_since_last_withdrawal: int | None
    annualized_withdrawal: Decimal | None
    thresholds: VolumeThresholds
    status: Status
    reasons: tuple[StatusReason, ...] = ()
    withdrawals: tuple[WithdrawalEntry, ...] = field(default=(), repr=False)

    @property
    def code(self) -> str:
        return self.lot.code

    @property
    def inventory_type(self) -> InventoryType | None:
        return self.lot.inventory_type


@dataclass(frozen=True)
class AggregationResult:
    views: tuple[AggregatedLotView, ...]
    diagnostics: tuple[Diagnostic, ...] = ()

    def by_code(self, code: str) -> AggregatedLotView | None:
        for view in self.views:
            if view.code == code:
                return view
        return None

    def diagnostics_for(self, code: str) -> tuple[Diagnostic, ...]:
        return tuple(d for d in self.diagnostics if d.lot_code == code)


def _as_date(as_of: date | datetime) -> date:
    return as_of.date() if isinstance(as_of, datetime) else as_of


def _group_entries(
    entries: Iterable[WithdrawalEntry],
    known_codes: set[str],
    diagnostics: list[Diagnostic],
) -> dict[str, list[WithdrawalEntry]]:
    grouped: dict[str, list[WithdrawalEntry]] = defaultdict(list)
    for entry in entries:
        if entry.amount is None or entry.timestamp is None:
            failed = ", ".join(err.field for err in entry.parse_errors) or "amount/timestamp"
            diagnostics.append(
                Diagnostic(
                    UNPARSEABLE_WITHDRAWAL,
                    f"Withdrawal row skipped: unusable {failed}",
                    lot_code=entry.lot_code or None,
                    row_number=entry.row_number,
                )
            )
            continue
        if entry.lot_code not in known_codes:
            diagnostics.append(
                Diagnostic(
                    ORPHAN_WITHDRAWAL,
                    f"Withdrawal row references unknown lot {entry.lot_code!r}",
                    lot_code=entry.lot_code or None,
                    row_number=entry.row_number,
                )
            )
            continue
        grouped[entry.lot_code].append(entry)
    for matched in grouped.values():
        matched.sort(key=lambda e: e.timestamp)
    return grouped


def build_view(
    lot: SeedLot,
    matched: Sequence[WithdrawalEntry],
    as_of: date | datetime,
    policy: StatusPolicy,
) -> tuple[AggregatedLotView, list[Diagnostic]]:
    """View for one lot whose original volume is known.

    ``matched`` must already be filtered to usable entries for this lot.
    """
    diagnostics: list[Diagnostic] = []
    as_of_date = _as_date(as_of)

    total = sum((e.amount for e in matched), Decimal("0"))
    remaining = lot.original_volume - total
    if remaining < 0:
        diagnostics.append(
            Diagnostic(
                NEGATIVE_REMAINING,
                f"Ledger total {total} exceeds original volume {lot.original_volume}",
                lot_code=lot.code,
                row_number=lot.row_number,
            )
        )

    last = max(matched, key=lambda e: e.timestamp) if matched else None

    days_since_stored = days_until_expiry = None
    if lot.stored_date is None:
        reason = "unparseable" if "stored_date" in lot.failed_fields() else "missing"
        diagnostics.append(
            Diagnostic(
                UNPARSEABLE_DATE,
                f"Stored date is {reason}; age and expiry unknown",
                lot_code=lot.code,
                row_number=lot.row_number,
            )
        )
    else:
        days_since_stored = (as_of_date - lot.stored_date).days
        expiry = lot.stored_date + timedelta(days=policy.shelf_life_days)
        days_until_expiry = (expiry - as_of_date).days

    if last is not None:
        days_since_last = (as_of_date - last.timestamp.date()).days
    else:
        days_since_last = days_since_stored

    annualized = annualized_rate(total, days_since_stored)
    thresholds = thresholds_for_crop(lot.crop, policy)
    assessment = classify_status(
        remaining,
        days_since_last,
        days_until_expiry,
        annualized,
        thresholds,
        policy,
    )

    view = AggregatedLotView(
        lot=lot,
        total_withdrawn=total,
        remaining_volume=remaining,
        last_withdrawal=last,
        withdrawal_count=len(matched),
        days_since_stored=days_since_stored,
        days_until_expiry=days_until_expiry,
        days_since_last_withdrawal=days_since_last,
        annualized_withdrawal=annualized,
        thresholds=thresholds,
        status=assessment.status,
        reasons=assessment.reasons,
        withdrawals=tuple(matched),
    )
    return view, diagnostics


@traced_engine("aggregation", "1.0", fingerprint_fields=("as_of", "policy"))
def aggregate_inventory(
    lots: Sequence[SeedLot],
    entries: Sequence[WithdrawalEntry],
    as_of: date | datetime,
    policy: StatusPolicy,
) -> AggregationResult:
    """
    Aggregate the full lot set against the full ledger.

    Preconditions:
        ``as_of`` is the caller's "now"; the engine never reads a clock.

    Postconditions:
        One view per lot with a usable original volume, in input order.
        Every skipped or degraded row has at least one diagnostic.
    """
    diagnostics: list[Diagnostic] = []

    seen: set[str] = set()
    for lot in lots:
        if lot.code and lot.code in seen:
            diagnostics.append(
                Diagnostic(
                    DUPLICATE_LOT_CODE,
                    f"Lot code {lot.code!r} appears more than once",
                    lot_code=lot.code,
                    row_number=lot.row_number,
                )
            )
        seen.add(lot.code)

    grouped = _group_entries(entries, {lot.code for lot in lots if lot.code}, diagnostics)

    views: list[AggregatedLotView] = []
    for lot in lots:
        if lot.original_volume is None:
            reason = "unparseable" if "original_volume" in lot.failed_fields() else "missing"
            diagnostics.append(
                Diagnostic(
                    UNPARSEABLE_LOT,
                    f"Lot skipped: original volume is {reason}",
                    lot_code=lot.code or None,
                    row_number=lot.row_number,
                )
            )
            continue
        view, lot_diagnostics = build_view(lot, grouped.get(lot.code, ()), as_of, policy)
        views.append(view)
        diagnostics.extend(lot_diagnostics)

    if diagnostics:
        logger.warning(
            "aggregation_diagnostics",
            extra={
                "diagnostic_count": len(diagnostics),
                "codes": sorted({d.code for d in diagnostics}),
            },
        )
    return AggregationResult(views=tuple(views), diagnostics=tuple(diagnostics))
