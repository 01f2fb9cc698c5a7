"""camelCase dict shapes returned by ``InventoryService`` and the HTTP routes."""

from __future__ import annotations

from typing import Any

from seedbank_kernel.domain.lot import EditLogEntry, SeedLot, WithdrawalEntry
from seedbank_kernel.domain.lot_codes import format_stored_date
from seedbank_engines.aggregation import AggregatedLotView, Diagnostic
from seedbank_engines.dashboard import (
    Alert,
    DailyTimeOfDay,
    LocationStock,
    MonthlyWithdrawals,
    ReleaseLogRow,
    SeedClassStock,
    TypeTotal,
)
from seedbank_engines.reconciliation import VolumeDrift


def _enum(value: Any) -> Any:
    return getattr(value, "value", value)


def lot_to_dict(lot: SeedLot) -> dict[str, Any]:
    return {
        "code": lot.code,
        "crop": lot.crop,
        "variety": lot.variety,
        "lotNumber": lot.lot_number,
        "bagNumber": lot.bag_number,
        "storedDate": lot.stored_date,
        "storedDateLabel": format_stored_date(lot.stored_date),
        "harvestDate": lot.harvest_date,
        "originalVolume": lot.original_volume,
        "currentVolume": lot.available_volume,
        "unit": lot.unit,
        "seedClass": lot.seed_class,
        "location": lot.location,
        "program": lot.program,
        "moistureContent": lot.moisture_content,
        "germinationRate": lot.germination_rate,
        "remarks": lot.remarks,
        "inventoryType": _enum(lot.inventory_type),
        "lastModified": lot.last_modified,
        "archived": lot.archived,
        "seedPhoto": lot.seed_photo,
        "cropPhoto": lot.crop_photo,
        "qrImage": lot.qr_image,
        "qrDocument": lot.qr_document,
        "parseErrors": [
            {"field": err.field, "rawValue": str(err.raw_value), "reason": err.reason}
            for err in lot.parse_errors
        ],
    }


def withdrawal_to_dict(entry: WithdrawalEntry) -> dict[str, Any]:
    return {
        "timestamp": entry.timestamp,
        "lotCode": entry.lot_code,
        "inventoryType": _enum(entry.inventory_type),
        "amount": entry.amount,
        "previousValue": entry.previous_value,
        "newValue": entry.new_value,
        "reason": entry.reason,
        "user": entry.user,
    }


def edit_to_dict(entry: EditLogEntry) -> dict[str, Any]:
    return {
        "timestamp": entry.timestamp,
        "lotCode": entry.lot_code,
        "previousValues": dict(entry.previous_snapshot),
        "newValues": dict(entry.new_snapshot),
        "userRole": entry.user_role,
    }


def diagnostic_to_dict(diagnostic: Diagnostic) -> dict[str, Any]:
    return {
        "code": diagnostic.code,
        "message": diagnostic.message,
        "lotCode": diagnostic.lot_code,
        "rowNumber": diagnostic.row_number,
    }


def view_to_dict(view: AggregatedLotView) -> dict[str, Any]:
    last = view.last_withdrawal
    return {
        **lot_to_dict(view.lot),
        "totalWithdrawn": view.total_withdrawn,
        "remainingVolume": view.remaining_volume,
        "withdrawalCount": view.withdrawal_count,
        "lastWithdrawal": withdrawal_to_dict(last) if last is not None else None,
        "daysSinceStored": view.days_since_stored,
        "daysUntilExpiry": view.days_until_expiry,
        "daysSinceLastWithdrawal": view.days_since_last_withdrawal,
        "annualizedWithdrawal": view.annualized_withdrawal,
        "lowVolumeThreshold": view.thresholds.low,
        "veryLowVolumeThreshold": view.thresholds.very_low,
        "status": view.status.value,
        "reasons": [reason.value for reason in view.reasons],
    }


def type_totals_to_dict(totals: tuple[TypeTotal, ...]) -> dict[str, Any]:
    return {
        _enum(t.inventory_type): {"value": t.value, "unit": t.unit}
        for t in totals
    }


def seed_class_to_dict(stock: SeedClassStock) -> dict[str, Any]:
    return {
        "seedClass": stock.seed_class,
        "volume": stock.volume,
        "count": stock.count,
        "varieties": [
            {"crop": crop, "variety": variety, "volume": volume}
            for crop, variety, volume in stock.varieties
        ],
    }


def location_to_dict(stock: LocationStock) -> dict[str, Any]:
    return {"location": stock.location, "totalVolume": stock.total_volume, "crops": dict(stock.crops)}


def month_to_dict(month: MonthlyWithdrawals) -> dict[str, Any]:
    return {
        "monthKey": month.month_key,
        "month": month.label,
        "totalWithdrawal": month.total_withdrawal,
        "transactionCount": month.transaction_count,
    }


def time_of_day_to_dict(day: DailyTimeOfDay) -> dict[str, Any]:
    return {
        "date": day.day,
        "morning": day.morning,
        "afternoon": day.afternoon,
        "evening": day.evening,
        "total": day.total,
    }


def release_row_to_dict(row: ReleaseLogRow) -> dict[str, Any]:
    return {
        "timestamp": row.timestamp,
        "date": row.timestamp.date(),
        "lotCode": row.lot_code,
        "crop": row.crop,
        "variety": row.variety,
        "volume": row.amount,
        "reason": row.reason,
        "user": row.user,
        "inventoryType": _enum(row.inventory_type),
        "previousValue": row.previous_value,
        "newValue": row.new_value,
    }


def alert_to_dict(alert: Alert) -> dict[str, Any]:
    return {"type": alert.kind, "message": alert.message, "lotCode": alert.lot_code}


def drift_to_dict(drift: VolumeDrift) -> dict[str, Any]:
    return {
        "lotCode": drift.lot_code,
        "recordedVolume": drift.recorded_volume,
        "ledgerVolume": drift.ledger_volume,
        "totalWithdrawn": drift.total_withdrawn,
        "difference": drift.difference,
        "rowNumber": drift.row_number,
    }
