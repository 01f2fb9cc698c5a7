"""
ReconciliationService -- recovery procedure for the two-phase ledger write.

Responsibility:
    Recompute every lot's running volume from the append-only withdrawal
    ledger and, when asked, correct the lot rows that drifted.

Architecture position:
    Services -- reads the store, calls the pure ``find_volume_drift``
    engine, writes through the store under the ledger's lock.

Invariants enforced:
    - The withdrawal ledger is never modified; only lot rows are.
    - Every correction appends one ``EditLogEntry`` with user role
      ``RECONCILIATION_ROLE``.
    - Runs under the same ``StoreLock`` as withdrawals, so it never
      races an in-flight two-phase write.

Failure modes:
    - ``LockUnavailableError`` if the lock cannot be acquired.
    - A lot that cannot be corrected is reported in ``failed``; the
      run continues with the next lot.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from seedbank_kernel.domain.lot import EditLogEntry
from seedbank_kernel.exceptions import StoreError
from seedbank_kernel.logging_config import LogContext, get_logger
from seedbank_kernel.services.ledger_service import LedgerService
from seedbank_kernel.store.base import RecordStore
from seedbank_engines.reconciliation import VolumeDrift, find_volume_drift

logger = get_logger("services.reconciliation")

RECONCILIATION_ROLE = "Reconciliation"


@dataclass(frozen=True)
class ReconciliationReport:
    drifts: tuple[VolumeDrift, ...]
    corrected: tuple[str, ...] = ()
    failed: tuple[str, ...] = ()
    applied: bool = False
    timestamp: datetime | None = None

    @property
    def is_clean(self) -> bool:
        return not self.drifts


class ReconciliationService:
    """Detects and repairs lot rows whose volume disagrees with the ledger."""

    def __init__(self, store: RecordStore, ledger: LedgerService):
        self._store = store
        self._ledger = ledger

    def reconcile(self, apply: bool = False) -> ReconciliationReport:
        """Find volume drift; with ``apply=True`` also correct each drifted row."""
        with LogContext.bind(operation="reconcile", actor=RECONCILIATION_ROLE):
            with self._ledger.lock.hold("reconcile"):
                lots = self._store.get_all_lots()
                entries = self._store.get_all_withdrawal_entries()
                drifts = find_volume_drift(lots, entries)
                if not apply or not drifts:
                    logger.info(
                        "reconciliation_checked",
                        extra={"drift_count": len(drifts), "apply": apply},
                    )
                    return ReconciliationReport(drifts=drifts, applied=apply)

                timestamp = self._ledger.next_timestamp()
                corrected: list[str] = []
                failed: list[str] = []
                for drift in drifts:
                    if self._correct(drift, timestamp):
                        corrected.append(drift.lot_code)
                    else:
                        failed.append(drift.lot_code)

        logger.info(
            "reconciliation_applied",
            extra={"corrected": corrected, "failed": failed},
        )
        return ReconciliationReport(
            drifts=drifts,
            corrected=tuple(corrected),
            failed=tuple(failed),
            applied=True,
            timestamp=timestamp,
        )

    def _correct(self, drift: VolumeDrift, timestamp: datetime) -> bool:
        try:
            written = self._store.update_lot_fields(
                drift.lot_code,
                {"current_volume": drift.ledger_volume, "last_modified": timestamp},
            )
            if not written:
                return False
            self._store.append_edit_log_entry(
                EditLogEntry(
                    timestamp=timestamp,
                    lot_code=drift.lot_code,
                    previous_snapshot={"current_volume": drift.recorded_volume},
                    new_snapshot={"current_volume": drift.ledger_volume},
                    user_role=RECONCILIATION_ROLE,
                )
            )
        except (StoreError, OSError):
            logger.error(
                "reconciliation_correction_failed",
                extra={"lot_code": drift.lot_code},
                exc_info=True,
            )
            return False
        logger.info(
            "reconciliation_corrected",
            extra={
                "lot_code": drift.lot_code,
                "recorded_volume": drift.recorded_volume,
                "ledger_volume": drift.ledger_volume,
            },
        )
        return True
