"""
LedgerService -- the only writer of lot volumes and audit logs.

Responsibility:
    Validates and applies withdrawals against a lot's running volume,
    applies non-volume field edits, and registers new lots.  Every
    mutation is paired with exactly one append-only audit row.

Architecture position:
    Kernel > Services -- imperative shell around the ``RecordStore``.
    Callers (``seedbank_services.InventoryService``, tests) own request
    shaping and role resolution.

Invariants enforced:
    - Non-negative stock: a withdrawal larger than the lot's current
      volume is rejected before anything is written.
    - Append-only ledger: one ``WithdrawalEntry`` per successful
      withdrawal, none for a rejected one; existing rows are never touched.
    - Serialised mutations: every read-then-write runs inside
      ``StoreLock.hold``.
    - Monotonic ledger timestamps: each stamp is strictly later than the
      previous one issued by this service.

Two-phase write:
    Phase 1 updates the lot row (volume / fields + ``last_modified``).
    Phase 2 appends the audit row.  The record store offers no
    transaction, so a phase-2 failure triggers a compensating update that
    restores the phase-1 cells.  If compensation also fails the error
    reports ``compensated=False`` and the lot must be repaired by
    ``ReconciliationService`` (which recomputes volumes from the ledger).

Failure modes:
    - ValidationError subclasses: rejected synchronously, nothing written.
    - LockUnavailableError: dropped, nothing written.
    - LedgerWriteError: a write phase failed; see ``phase`` / ``compensated``.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any

from seedbank_kernel.domain.clock import Clock, SystemClock
from seedbank_kernel.domain.lot import EditLogEntry, InventoryType, SeedLot, WithdrawalEntry
from seedbank_kernel.domain.lot_codes import generate_lot_code
from seedbank_kernel.domain.schema import (
    FIELD_BY_KEY,
    PROTECTED_FIELDS,
    VOLUME_DIGITS,
    VOLUME_PLACES,
    fits_volume_cell,
    parse_decimal,
)
from seedbank_kernel.exceptions import (
    DuplicateLotError,
    InsufficientVolumeError,
    InvalidAmountError,
    InvalidValueError,
    LedgerWriteError,
    LotArchivedError,
    LotNotFoundError,
    ProtectedFieldError,
    UnknownFieldError,
)
from seedbank_kernel.logging_config import LogContext, get_logger
from seedbank_kernel.services.store_lock import StoreLock
from seedbank_kernel.store.base import RecordStore

logger = get_logger("services.ledger")


@dataclass(frozen=True)
class WithdrawalResult:
    lot_code: str
    previous_volume: Decimal
    new_volume: Decimal
    amount: Decimal
    timestamp: datetime


@dataclass(frozen=True)
class EditResult:
    """Outcome of a field edit; ``entry`` is None when nothing differed."""

    lot_code: str
    changes: Mapping[str, tuple[Any, Any]] = field(default_factory=dict)
    entry: EditLogEntry | None = None

    @property
    def applied(self) -> bool:
        return self.entry is not None


def coerce_amount(amount: Any) -> Decimal:
    """Convert a requested amount to a positive finite Decimal.

    Raises:
        InvalidAmountError: for non-numeric, NaN, infinite, zero or
            negative amounts, and for amounts a sheet cell cannot hold
            exactly (more than four decimal places or fifteen digits).
    """
    try:
        value = parse_decimal(amount)
    except ValueError:
        raise InvalidAmountError(amount) from None
    if value is None or value <= 0:
        raise InvalidAmountError(amount)
    if not fits_volume_cell(value):
        raise InvalidAmountError(
            amount,
            f"must have at most {VOLUME_PLACES} decimal places and {VOLUME_DIGITS} digits",
        )
    return value


class LedgerService:
    """
    Applies withdrawals, field edits and lot registrations.

    Contract:
        All writes go through the injected ``RecordStore`` while holding
        the injected ``StoreLock``.  Services sharing a store must share
        the lock.

    Guarantees:
        - A rejected request leaves the store unchanged.
        - A successful withdrawal writes ``previous - amount`` to the lot
          and appends an entry with the same previous / new values.

    Non-goals:
        - Does NOT resolve PINs to roles; callers pass the resolved role.
        - Does NOT aggregate; read paths use ``seedbank_engines``.
    """

    def __init__(
        self,
        store: RecordStore,
        clock: Clock | None = None,
        lock: StoreLock | None = None,
    ):
        self._store = store
        self._clock = clock or SystemClock()
        self._lock = lock or StoreLock()
        self._last_stamp: datetime | None = None

    @property
    def lock(self) -> StoreLock:
        return self._lock

    def next_timestamp(self) -> datetime:
        """Monotonic ledger timestamp; caller holds the store lock."""
        now = self._clock.now()
        if self._last_stamp is not None and now <= self._last_stamp:
            now = self._last_stamp + timedelta(microseconds=1)
        self._last_stamp = now
        return now

    # ------------------------------------------------------------------
    # Withdrawals
    # ------------------------------------------------------------------

    def apply_withdrawal(
        self,
        lot_code: str,
        amount: Any,
        reason: str = "",
        inventory_type: InventoryType | str | None = None,
        user: str | None = None,
    ) -> WithdrawalResult:
        """Withdraw ``amount`` from the lot's current volume.

        Preconditions:
            - ``lot_code`` names an existing, non-archived lot.
            - ``amount`` is a positive finite number no larger than the
              lot's current volume.

        Postconditions:
            - Lot row carries ``current_volume = previous - amount`` and a
              fresh ``last_modified``.
            - Exactly one ``WithdrawalEntry`` was appended.

        Raises:
            InvalidAmountError, LotNotFoundError, LotArchivedError,
            InsufficientVolumeError, InvalidValueError (bad inventory type),
            LockUnavailableError, LedgerWriteError.
        """
        try:
            value = coerce_amount(amount)
        except InvalidAmountError:
            logger.info(
                "withdrawal_rejected",
                extra={"lot_code": lot_code, "reason_code": InvalidAmountError.code, "amount": str(amount)},
            )
            raise
        try:
            requested_type = InventoryType.parse(inventory_type)
        except ValueError as exc:
            raise InvalidValueError("inventory_type", inventory_type, str(exc)) from None

        with LogContext.bind(lot_code=lot_code, operation="withdraw", actor=user):
            with self._lock.hold("withdraw"):
                lot = self._store.get_lot_by_code(lot_code)
                if lot is None:
                    self._log_rejection(lot_code, LotNotFoundError.code, value)
                    raise LotNotFoundError(lot_code)
                if lot.archived:
                    self._log_rejection(lot_code, LotArchivedError.code, value)
                    raise LotArchivedError(lot_code)

                current = None if "current_volume" in lot.failed_fields() else lot.available_volume
                if current is None:
                    logger.error(
                        "withdrawal_volume_unreadable",
                        extra={"lot_code": lot_code, "row_number": lot.row_number},
                    )
                    raise LedgerWriteError(lot_code, "read", "current volume is not a number")
                if value > current:
                    self._log_rejection(lot_code, InsufficientVolumeError.code, value, current)
                    raise InsufficientVolumeError(lot_code, value, current)

                new_volume = current - value
                timestamp = self.next_timestamp()

                self._write_lot(
                    lot_code, {"current_volume": new_volume, "last_modified": timestamp}
                )

                entry = WithdrawalEntry(
                    timestamp=timestamp,
                    lot_code=lot_code,
                    amount=value,
                    previous_value=current,
                    new_value=new_volume,
                    inventory_type=requested_type or lot.inventory_type,
                    reason=reason or "",
                    user=user or "",
                )
                try:
                    self._store.append_withdrawal_entry(entry)
                except Exception as exc:
                    compensated = self._compensate(
                        lot_code,
                        {"current_volume": current, "last_modified": lot.last_modified},
                    )
                    logger.error(
                        "ledger_append_failed",
                        extra={"lot_code": lot_code, "compensated": compensated},
                        exc_info=True,
                    )
                    raise LedgerWriteError(lot_code, "append", str(exc), compensated) from exc

        logger.info(
            "withdrawal_applied",
            extra={
                "lot_code": lot_code,
                "amount": value,
                "previous_volume": current,
                "new_volume": new_volume,
            },
        )
        return WithdrawalResult(
            lot_code=lot_code,
            previous_volume=current,
            new_volume=new_volume,
            amount=value,
            timestamp=timestamp,
        )

    # ------------------------------------------------------------------
    # Field edits
    # ------------------------------------------------------------------

    def apply_field_edit(
        self,
        lot_code: str,
        changed_fields: Mapping[str, Any],
        user_role: str,
        snapshot: Mapping[str, Any] | None = None,
    ) -> EditResult:
        """Write the fields whose new value differs from the caller's snapshot.

        ``snapshot`` is what the caller last saw; fields missing from it are
        compared against the stored value.  Volume fields, ``code`` and
        ``last_modified`` are protected.

        Raises:
            UnknownFieldError, ProtectedFieldError, InvalidValueError,
            LotNotFoundError, LockUnavailableError, LedgerWriteError.
        """
        unknown = sorted(key for key in changed_fields if key not in FIELD_BY_KEY)
        if unknown:
            logger.info("field_edit_rejected", extra={"lot_code": lot_code, "unknown_fields": unknown})
            raise UnknownFieldError(unknown)
        protected = sorted(key for key in changed_fields if key in PROTECTED_FIELDS)
        if protected:
            logger.info("field_edit_rejected", extra={"lot_code": lot_code, "protected_fields": protected})
            raise ProtectedFieldError(protected)

        new_values = {key: _parse_field(key, raw) for key, raw in changed_fields.items()}

        with LogContext.bind(lot_code=lot_code, operation="edit", actor=user_role):
            with self._lock.hold("edit"):
                lot = self._store.get_lot_by_code(lot_code)
                if lot is None:
                    raise LotNotFoundError(lot_code)

                changes: dict[str, tuple[Any, Any]] = {}
                for key, new_value in new_values.items():
                    if snapshot is not None and key in snapshot:
                        baseline = _parse_snapshot_value(key, snapshot[key])
                    else:
                        baseline = getattr(lot, key)
                    if new_value != baseline:
                        changes[key] = (baseline, new_value)

                if not changes:
                    logger.info("field_edit_noop", extra={"lot_code": lot_code})
                    return EditResult(lot_code=lot_code)

                timestamp = self.next_timestamp()
                self._write_lot(
                    lot_code,
                    {**{key: new for key, (_, new) in changes.items()}, "last_modified": timestamp},
                )

                entry = EditLogEntry(
                    timestamp=timestamp,
                    lot_code=lot_code,
                    previous_snapshot={key: old for key, (old, _) in changes.items()},
                    new_snapshot={key: new for key, (_, new) in changes.items()},
                    user_role=user_role,
                )
                try:
                    self._store.append_edit_log_entry(entry)
                except Exception as exc:
                    restore = {key: getattr(lot, key) for key in changes}
                    restore["last_modified"] = lot.last_modified
                    compensated = self._compensate(lot_code, restore)
                    logger.error(
                        "edit_log_append_failed",
                        extra={"lot_code": lot_code, "compensated": compensated},
                        exc_info=True,
                    )
                    raise LedgerWriteError(lot_code, "append", str(exc), compensated) from exc

        logger.info(
            "field_edit_applied",
            extra={"lot_code": lot_code, "fields": sorted(changes), "user_role": user_role},
        )
        return EditResult(lot_code=lot_code, changes=changes, entry=entry)

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def register_lot(self, lot: SeedLot) -> SeedLot:
        """Record a new lot, deriving its code when none is given.

        The new lot's current volume starts equal to its original volume.

        Raises:
            InvalidValueError: original volume missing, negative or too
                precise for a sheet cell.
            DuplicateLotError: the code is already recorded.
            LedgerWriteError: the store failed to append the lot row.
        """
        if lot.original_volume is None or lot.original_volume < 0:
            raise InvalidValueError("original_volume", lot.original_volume, "must be a number >= 0")
        if not fits_volume_cell(lot.original_volume):
            raise InvalidValueError(
                "original_volume",
                lot.original_volume,
                f"must have at most {VOLUME_PLACES} decimal places and {VOLUME_DIGITS} digits",
            )

        code = lot.code or generate_lot_code(
            lot.variety, lot.lot_number, lot.bag_number, lot.stored_date, lot.location
        )
        with LogContext.bind(lot_code=code, operation="register"):
            with self._lock.hold("register"):
                if self._store.get_lot_by_code(code) is not None:
                    raise DuplicateLotError(code)
                timestamp = self.next_timestamp()
                registered = replace(
                    lot,
                    code=code,
                    current_volume=lot.original_volume,
                    last_modified=timestamp,
                    timestamp=lot.timestamp or timestamp,
                    parse_errors=(),
                    row_number=None,
                )
                try:
                    self._store.append_lot(registered)
                except Exception as exc:
                    logger.error("lot_register_failed", extra={"lot_code": code}, exc_info=True)
                    raise LedgerWriteError(code, "register", str(exc)) from exc

        logger.info(
            "lot_registered",
            extra={"lot_code": code, "original_volume": registered.original_volume},
        )
        return registered

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _write_lot(self, lot_code: str, field_map: Mapping[str, Any]) -> None:
        try:
            written = self._store.update_lot_fields(lot_code, field_map)
        except Exception as exc:
            logger.error("ledger_update_failed", extra={"lot_code": lot_code}, exc_info=True)
            raise LedgerWriteError(lot_code, "update", str(exc), compensated=False) from exc
        if not written:
            logger.error(
                "ledger_update_rejected",
                extra={"lot_code": lot_code, "fields": sorted(field_map)},
            )
            raise LedgerWriteError(lot_code, "update", "record store rejected the update")

    def _compensate(self, lot_code: str, field_map: Mapping[str, Any]) -> bool:
        try:
            return self._store.update_lot_fields(lot_code, field_map)
        except Exception:
            logger.critical(
                "ledger_compensation_failed",
                extra={"lot_code": lot_code, "fields": sorted(field_map)},
                exc_info=True,
            )
            return False

    def _log_rejection(
        self,
        lot_code: str,
        reason_code: str,
        amount: Decimal,
        available: Decimal | None = None,
    ) -> None:
        logger.info(
            "withdrawal_rejected",
            extra={
                "lot_code": lot_code,
                "reason_code": reason_code,
                "amount": amount,
                "available": available,
            },
        )


def _parse_field(key: str, raw: Any) -> Any:
    try:
        return FIELD_BY_KEY[key].parse(raw)
    except ValueError as exc:
        raise InvalidValueError(key, raw, str(exc)) from None


def _parse_snapshot_value(key: str, raw: Any) -> Any:
    try:
        return FIELD_BY_KEY[key].parse(raw)
    except ValueError:
        return raw
