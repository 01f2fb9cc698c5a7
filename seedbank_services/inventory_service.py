"""
InventoryService -- the operation surface callers (HTTP, scripts) use.

Responsibility:
    Shapes requests for ``LedgerService``, resolves staff PINs to roles,
    runs the read-side engines against store snapshots, and turns every
    outcome into a structured camelCase dict.

Architecture position:
    Services -- the outermost Python API.  ``seedbank_services.http_api``
    is a thin FastAPI layer over it.

Invariants enforced:
    - Mutations never raise to the caller: a ``SeedbankError`` becomes
      ``{"success": False, "code": ..., "message": ...}``.
    - Read paths take no lock and degrade to partial results with
      diagnostics when part of the store cannot be read.

Failure modes:
    - ``InvalidValueError`` from ``list_lots`` for an unknown inventory
      type filter.
    - Unexpected (non-``SeedbankError``) exceptions propagate.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from datetime import UTC, date, datetime
from typing import Any

from seedbank_kernel.domain.clock import Clock, SystemClock
from seedbank_kernel.domain.lot import InventoryType, SeedLot
from seedbank_kernel.domain.roles import RoleDirectory
from seedbank_kernel.domain.schema import FIELD_BY_HEADER, FIELD_BY_KEY, lot_from_record
from seedbank_kernel.exceptions import InvalidValueError, SeedbankError, StoreError
from seedbank_kernel.logging_config import LogContext, get_logger
from seedbank_kernel.services.ledger_service import LedgerService
from seedbank_kernel.store.base import RecordStore
from seedbank_engines import dashboard
from seedbank_engines.aggregation import AggregationResult, Diagnostic, aggregate_inventory
from seedbank_engines.status import Status, StatusPolicy

from seedbank_services import serializers
from seedbank_services.reconciliation_service import ReconciliationService

logger = get_logger("services.inventory")

LEDGER_UNAVAILABLE = "LEDGER_UNAVAILABLE"

_NO_TIMESTAMP = datetime.min.replace(tzinfo=UTC)

_CAMEL_BOUNDARY = re.compile(r"(?<!^)(?=[A-Z])")


def normalize_field_name(name: str) -> str:
    """Map a header ("Seed Class"), camelCase ("seedClass") or key to a field key.

    Names that match nothing are returned unchanged so the ledger can
    reject them as unknown.
    """
    if name in FIELD_BY_KEY:
        return name
    spec = FIELD_BY_HEADER.get(name)
    if spec is not None:
        return spec.key
    snake = _CAMEL_BOUNDARY.sub("_", name).lower()
    if snake in FIELD_BY_KEY:
        return snake
    return name


def failure(error: SeedbankError) -> dict[str, Any]:
    return {"success": False, "code": error.code, "message": str(error)}


class InventoryService:
    """
    Facade over the ledger, the read engines and reconciliation.

    Contract:
        Every collaborator is injected; ``build_inventory_service`` wires
        them from configuration.
    """

    def __init__(
        self,
        store: RecordStore,
        ledger: LedgerService,
        roles: RoleDirectory,
        policy: StatusPolicy | None = None,
        clock: Clock | None = None,
        reconciliation: ReconciliationService | None = None,
    ):
        self._store = store
        self._ledger = ledger
        self._roles = roles
        self._policy = policy or StatusPolicy()
        self._clock = clock or SystemClock()
        self._reconciliation = reconciliation or ReconciliationService(store, ledger)

    @property
    def policy(self) -> StatusPolicy:
        return self._policy

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def withdraw(
        self,
        lot_code: str,
        amount: Any,
        reason: str = "",
        inventory_type: str | None = None,
        user: str | None = None,
    ) -> dict[str, Any]:
        try:
            result = self._ledger.apply_withdrawal(
                lot_code, amount, reason=reason, inventory_type=inventory_type, user=user
            )
        except SeedbankError as exc:
            return failure(exc)
        return {
            "success": True,
            "lotCode": result.lot_code,
            "previousVolume": result.previous_volume,
            "newVolume": result.new_volume,
            "amount": result.amount,
            "timestamp": result.timestamp,
        }

    def edit_lot(
        self,
        lot_code: str,
        changed_fields: Mapping[str, Any],
        pin_code: str | int | None,
        snapshot: Mapping[str, Any] | None = None,
    ) -> dict[str, Any]:
        role = self._roles.resolve(pin_code)
        fields = {normalize_field_name(name): value for name, value in changed_fields.items()}
        baseline = (
            {normalize_field_name(name): value for name, value in snapshot.items()}
            if snapshot is not None
            else None
        )
        try:
            result = self._ledger.apply_field_edit(lot_code, fields, role, snapshot=baseline)
        except SeedbankError as exc:
            return failure(exc)
        if not result.applied:
            return {"success": True, "message": "No changes to save", "changedFields": [], "userRole": role}
        return {
            "success": True,
            "message": f"Updated {len(result.changes)} field(s) on {lot_code}",
            "changedFields": sorted(result.changes),
            "userRole": role,
        }

    def register_lot(self, fields: Mapping[str, Any]) -> dict[str, Any]:
        """Register a lot from form-style fields (headers, camelCase or keys)."""
        record: dict[str, Any] = {}
        for name, value in fields.items():
            key = normalize_field_name(name)
            spec = FIELD_BY_KEY.get(key)
            if spec is None:
                return failure(InvalidValueError(name, value, "unknown field"))
            record[spec.header] = value
        lot = lot_from_record(record)
        if lot.parse_errors:
            err = lot.parse_errors[0]
            return failure(InvalidValueError(err.field, err.raw_value, err.reason))
        try:
            registered = self._ledger.register_lot(lot)
        except SeedbankError as exc:
            return failure(exc)
        return {"success": True, "lot": serializers.lot_to_dict(registered)}

    def reconcile(self, apply: bool = False) -> dict[str, Any]:
        try:
            report = self._reconciliation.reconcile(apply=apply)
        except SeedbankError as exc:
            return failure(exc)
        return {
            "success": True,
            "applied": report.applied,
            "drifts": [serializers.drift_to_dict(d) for d in report.drifts],
            "corrected": list(report.corrected),
            "failed": list(report.failed),
        }

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_lot(self, code: str) -> dict[str, Any] | None:
        lot = self._store.get_lot_by_code(code)
        return serializers.lot_to_dict(lot) if lot is not None else None

    def list_lots(self, inventory_type: str | None = None) -> list[dict[str, Any]]:
        try:
            wanted = InventoryType.parse(inventory_type)
        except ValueError as exc:
            raise InvalidValueError("inventory_type", inventory_type, str(exc)) from None
        lots = self._store.get_all_lots()
        if wanted is not None:
            lots = [lot for lot in lots if lot.inventory_type == wanted]
        return [serializers.lot_to_dict(lot) for lot in lots]

    def withdrawal_logs(self, lot_code: str | None = None) -> list[dict[str, Any]]:
        entries = self._store.get_all_withdrawal_entries(lot_code)
        ordered = sorted(
            entries,
            key=lambda e: (e.timestamp is None, e.timestamp or _NO_TIMESTAMP),
        )
        return [serializers.withdrawal_to_dict(e) for e in ordered]

    def edit_logs(self, lot_code: str | None = None) -> list[dict[str, Any]]:
        return [serializers.edit_to_dict(e) for e in self._store.get_all_edit_log_entries(lot_code)]

    def aggregate(self, as_of: datetime | None = None) -> tuple[list[SeedLot], AggregationResult]:
        """Aggregate a store snapshot; a failed ledger read degrades to a diagnostic."""
        moment = as_of or self._clock.now()
        lots = self._store.get_all_lots()
        extra: list[Diagnostic] = []
        try:
            entries = self._store.get_all_withdrawal_entries()
        except (StoreError, OSError) as exc:
            logger.error("withdrawal_log_unreadable", exc_info=True)
            entries = []
            extra.append(
                Diagnostic(LEDGER_UNAVAILABLE, f"Withdrawal log could not be read: {exc}")
            )
        result = aggregate_inventory(lots, entries, moment, self._policy)
        if extra:
            result = AggregationResult(views=result.views, diagnostics=tuple(extra) + result.diagnostics)
        return lots, result

    def inventory_view(
        self,
        as_of: datetime | None = None,
        inventory_type: str | None = None,
    ) -> dict[str, Any]:
        with LogContext.bind(operation="inventory_view"):
            _, result = self.aggregate(as_of)
        views = result.views
        if inventory_type:
            try:
                wanted = InventoryType.parse(inventory_type)
            except ValueError as exc:
                raise InvalidValueError("inventory_type", inventory_type, str(exc)) from None
            views = tuple(v for v in views if v.inventory_type == wanted)
        return {
            "lots": [serializers.view_to_dict(v) for v in views],
            "diagnostics": [serializers.diagnostic_to_dict(d) for d in result.diagnostics],
        }

    def dashboard(self, as_of: datetime | None = None, day: date | None = None) -> dict[str, Any]:
        moment = as_of or self._clock.now()
        with LogContext.bind(operation="dashboard"):
            lots, result = self.aggregate(moment)
        views = result.views
        entries = [e for v in views for e in v.withdrawals]
        counts = dashboard.status_counts(views)
        return {
            "asOf": moment,
            "currentStock": serializers.type_totals_to_dict(dashboard.current_stock_by_type(views)),
            "todaysWithdrawals": serializers.type_totals_to_dict(
                dashboard.withdrawals_on_day(views, day or moment.date())
            ),
            "lowStockCounts": {
                kind.value: count for kind, count in dashboard.low_stock_counts(views).items()
            },
            "statusCounts": {status.value: counts[status] for status in Status},
            "stockBySeedClass": [
                serializers.seed_class_to_dict(s) for s in dashboard.stock_by_seed_class(views)
            ],
            "stockByLocation": [
                serializers.location_to_dict(s) for s in dashboard.stock_by_location(views)
            ],
            "monthlyWithdrawals": [
                serializers.month_to_dict(m) for m in dashboard.monthly_withdrawal_patterns(entries)
            ],
            "withdrawalTimeAnalysis": [
                serializers.time_of_day_to_dict(d) for d in dashboard.withdrawal_time_analysis(entries)
            ],
            "releaseLog": [
                serializers.release_row_to_dict(r) for r in dashboard.release_log(entries, lots)
            ],
            "alerts": [
                serializers.alert_to_dict(a)
                for a in dashboard.system_alerts(
                    views, stale_after_days=self._policy.stale_inventory_days
                )
            ],
            "diagnostics": [serializers.diagnostic_to_dict(d) for d in result.diagnostics],
        }
