"""
Module: seedbank_engines.dashboard
Responsibility:
    Dashboard figures derived from aggregated views and ledger rows:
    stock by inventory type, seed class and location, daily and monthly
    withdrawal totals, time-of-day breakdown, release log and alerts.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  Dates and time zones are
    passed in by the caller.

Invariants enforced:
    - Stock figures use ``remaining_volume`` from the views (ledger
      derived), never a lot's stored running volume.
    - Rows without a usable timestamp or amount are ignored here; the
      aggregation diagnostics already report them.
    - Outputs are sorted deterministically.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import date, datetime, tzinfo
from decimal import Decimal

from seedbank_kernel.domain.lot import InventoryType, SeedLot, WithdrawalEntry
from seedbank_engines.aggregation import AggregatedLotView
from seedbank_engines.status import Status
from seedbank_engines.tracer import traced_engine

ZERO = Decimal("0")

UNIT_BY_TYPE: Mapping[InventoryType, str] = {
    InventoryType.SEED_STORAGE: "g",
    InventoryType.PLANTING_MATERIALS: "pcs",
}


@dataclass(frozen=True)
class TypeTotal:
    inventory_type: InventoryType
    value: Decimal
    unit: str


@dataclass(frozen=True)
class SeedClassStock:
    seed_class: str
    volume: Decimal
    count: int
    varieties: tuple[tuple[str, str, Decimal], ...] = ()


@dataclass(frozen=True)
class LocationStock:
    location: str
    total_volume: Decimal
    crops: Mapping[str, Decimal] = field(default_factory=dict)


@dataclass(frozen=True)
class MonthlyWithdrawals:
    month_key: str
    label: str
    total_withdrawal: Decimal
    transaction_count: int


@dataclass(frozen=True)
class DailyTimeOfDay:
    day: date
    morning: Decimal = ZERO
    afternoon: Decimal = ZERO
    evening: Decimal = ZERO

    @property
    def total(self) -> Decimal:
        return self.morning + self.afternoon + self.evening


@dataclass(frozen=True)
class ReleaseLogRow:
    timestamp: datetime
    lot_code: str
    crop: str
    variety: str
    amount: Decimal
    reason: str
    user: str
    inventory_type: InventoryType | None
    previous_value: Decimal | None
    new_value: Decimal | None


@dataclass(frozen=True)
class Alert:
    kind: str
    message: str
    lot_code: str


def _totals_by_type(pairs: Iterable[tuple[InventoryType | None, Decimal]]) -> tuple[TypeTotal, ...]:
    totals = {kind: ZERO for kind in InventoryType}
    for kind, amount in pairs:
        if kind is not None:
            totals[kind] += amount
    return tuple(TypeTotal(kind, totals[kind], UNIT_BY_TYPE[kind]) for kind in InventoryType)


def current_stock_by_type(views: Sequence[AggregatedLotView]) -> tuple[TypeTotal, ...]:
    """Remaining volume per inventory type (g for seed, pcs for planting material)."""
    return _totals_by_type((v.inventory_type, v.remaining_volume) for v in views)


def withdrawals_on_day(views: Sequence[AggregatedLotView], day: date) -> tuple[TypeTotal, ...]:
    """Amount withdrawn on ``day`` per inventory type of the lot."""
    return _totals_by_type(
        (v.inventory_type, e.amount)
        for v in views
        for e in v.withdrawals
        if e.timestamp.date() == day
    )


def low_stock_counts(views: Sequence[AggregatedLotView]) -> Mapping[InventoryType, int]:
    """Number of lots below their crop's low threshold, per inventory type."""
    counts = {kind: 0 for kind in InventoryType}
    for view in views:
        if view.inventory_type is not None and view.remaining_volume < view.thresholds.low:
            counts[view.inventory_type] += 1
    return counts


def stock_by_seed_class(views: Sequence[AggregatedLotView]) -> tuple[SeedClassStock, ...]:
    grouped: dict[str, list[AggregatedLotView]] = defaultdict(list)
    for view in views:
        grouped[view.lot.seed_class or "Unspecified"].append(view)
    return tuple(
        SeedClassStock(
            seed_class=name,
            volume=sum((v.remaining_volume for v in members), ZERO),
            count=len(members),
            varieties=tuple((v.lot.crop, v.lot.variety, v.remaining_volume) for v in members),
        )
        for name, members in sorted(grouped.items())
    )


def stock_by_location(views: Sequence[AggregatedLotView]) -> tuple[LocationStock, ...]:
    crops: dict[str, dict[str, Decimal]] = defaultdict(lambda: defaultdict(lambda: ZERO))
    for view in views:
        crops[view.lot.location or "Unspecified"][view.lot.crop or "Unknown"] += view.remaining_volume
    return tuple(
        LocationStock(
            location=location,
            total_volume=sum(by_crop.values(), ZERO),
            crops=dict(sorted(by_crop.items())),
        )
        for location, by_crop in sorted(crops.items())
    )


def _usable(entries: Iterable[WithdrawalEntry]) -> list[WithdrawalEntry]:
    return [e for e in entries if e.timestamp is not None and e.amount is not None]


def monthly_withdrawal_patterns(entries: Sequence[WithdrawalEntry]) -> tuple[MonthlyWithdrawals, ...]:
    """Per ``YYYY-MM`` withdrawal totals, oldest month first."""
    totals: dict[str, list] = {}
    for entry in _usable(entries):
        key = entry.timestamp.strftime("%Y-%m")
        bucket = totals.setdefault(key, [entry.timestamp.strftime("%b %Y"), ZERO, 0])
        bucket[1] += entry.amount
        bucket[2] += 1
    return tuple(
        MonthlyWithdrawals(month_key=key, label=label, total_withdrawal=total, transaction_count=count)
        for key, (label, total, count) in sorted(totals.items())
    )


def _period(hour: int) -> str:
    if 12 <= hour < 17:
        return "afternoon"
    if hour >= 17 or hour < 5:
        return "evening"
    return "morning"


def withdrawal_time_analysis(
    entries: Sequence[WithdrawalEntry],
    tz: tzinfo | None = None,
) -> tuple[DailyTimeOfDay, ...]:
    """Per-day totals split into morning (5-11), afternoon (12-16) and evening (17-4).

    Hours are read in ``tz`` when given, otherwise in the timestamp's own zone.
    """
    days: dict[date, dict[str, Decimal]] = defaultdict(
        lambda: {"morning": ZERO, "afternoon": ZERO, "evening": ZERO}
    )
    for entry in _usable(entries):
        moment = entry.timestamp.astimezone(tz) if tz is not None else entry.timestamp
        days[moment.date()][_period(moment.hour)] += entry.amount
    return tuple(DailyTimeOfDay(day=day, **periods) for day, periods in sorted(days.items()))


def release_log(
    entries: Sequence[WithdrawalEntry],
    lots: Sequence[SeedLot],
) -> tuple[ReleaseLogRow, ...]:
    """Withdrawal rows joined with crop and variety, oldest first."""
    by_code = {lot.code: lot for lot in lots}
    rows = []
    for entry in sorted(_usable(entries), key=lambda e: e.timestamp):
        lot = by_code.get(entry.lot_code)
        rows.append(
            ReleaseLogRow(
                timestamp=entry.timestamp,
                lot_code=entry.lot_code,
                crop=(lot.crop if lot and lot.crop else "Unknown"),
                variety=(lot.variety if lot and lot.variety else "Unknown"),
                amount=entry.amount,
                reason=entry.reason,
                user=entry.user,
                inventory_type=entry.inventory_type or (lot.inventory_type if lot else None),
                previous_value=entry.previous_value,
                new_value=entry.new_value,
            )
        )
    return tuple(rows)


@traced_engine("system_alerts", "1.0", fingerprint_fields=("limit", "stale_after_days"))
def system_alerts(
    views: Sequence[AggregatedLotView],
    limit: int = 5,
    stale_after_days: int = 30,
) -> tuple[Alert, ...]:
    """
    Alerts for the dashboard panel.

    All critical-volume lots first, then up to three low-stock lots, then up
    to two lots with no withdrawal in ``stale_after_days``; truncated to
    ``limit``.
    """
    alerts: list[Alert] = []

    for view in views:
        if view.remaining_volume < view.thresholds.very_low:
            alerts.append(
                Alert(
                    "critical-stock",
                    f"CRITICAL: {view.lot.crop} ({view.lot.variety}) has only "
                    f"{view.remaining_volume}{view.lot.unit or ''} remaining "
                    f"(threshold: {view.thresholds.very_low})",
                    view.code,
                )
            )

    low = [
        v for v in views
        if v.thresholds.very_low <= v.remaining_volume < v.thresholds.low
    ]
    for view in low[:3]:
        alerts.append(
            Alert(
                "low-stock",
                f"{view.lot.crop} ({view.lot.variety}) is running low with "
                f"{view.remaining_volume}{view.lot.unit or ''} remaining "
                f"(threshold: {view.thresholds.low})",
                view.code,
            )
        )

    stale = [
        v for v in views
        if v.last_withdrawal is None
        or (v.days_since_last_withdrawal is not None and v.days_since_last_withdrawal > stale_after_days)
    ]
    for view in stale[:2]:
        alerts.append(
            Alert(
                "inventory-check",
                f"{view.lot.crop} ({view.lot.variety}) has no recent activity - check inventory",
                view.code,
            )
        )

    return tuple(alerts[:limit])


def status_counts(views: Sequence[AggregatedLotView]) -> Mapping[Status, int]:
    counts = {status: 0 for status in Status}
    for view in views:
        counts[view.status] += 1
    return counts
