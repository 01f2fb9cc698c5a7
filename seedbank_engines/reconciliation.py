"""
Volume drift detection -- pure engine behind the reconciliation job.

Compares each lot's recorded running volume with the volume implied by
the append-only ledger (``original_volume - sum(amounts)``).  A two-phase
withdrawal whose compensation failed leaves exactly this kind of drift.

Architecture: seedbank_engines -- pure calculation, zero I/O.  The
service layer reads the store, calls ``find_volume_drift`` and writes the
corrections.

Invariants enforced:
    - The ledger is the source of truth; the lot row is what gets corrected.
    - Lots with no usable original volume are not judged (aggregation
      reports them as UNPARSEABLE_LOT).
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Sequence
from dataclasses import dataclass
from decimal import Decimal

from seedbank_kernel.domain.lot import SeedLot, WithdrawalEntry
from seedbank_kernel.logging_config import get_logger
from seedbank_engines.tracer import traced_engine

logger = get_logger("engines.reconciliation")


@dataclass(frozen=True)
class VolumeDrift:
    """A lot whose running volume disagrees with its ledger."""

    lot_code: str
    recorded_volume: Decimal | None  # None = cell unreadable
    ledger_volume: Decimal
    total_withdrawn: Decimal
    row_number: int | None = None

    @property
    def difference(self) -> Decimal | None:
        if self.recorded_volume is None:
            return None
        return self.recorded_volume - self.ledger_volume


@traced_engine("volume_drift", "1.0")
def find_volume_drift(
    lots: Sequence[SeedLot],
    entries: Sequence[WithdrawalEntry],
) -> tuple[VolumeDrift, ...]:
    """Every lot whose recorded volume differs from its ledger-derived volume."""
    withdrawn: dict[str, Decimal] = defaultdict(lambda: Decimal("0"))
    for entry in entries:
        if entry.amount is not None:
            withdrawn[entry.lot_code] += entry.amount

    drifts: list[VolumeDrift] = []
    for lot in lots:
        if not lot.code or lot.original_volume is None:
            continue
        total = withdrawn.get(lot.code, Decimal("0"))
        expected = lot.original_volume - total
        if "current_volume" in lot.failed_fields():
            recorded = None
        else:
            recorded = lot.available_volume
        if recorded != expected:
            drifts.append(
                VolumeDrift(
                    lot_code=lot.code,
                    recorded_volume=recorded,
                    ledger_volume=expected,
                    total_withdrawn=total,
                    row_number=lot.row_number,
                )
            )

    if drifts:
        logger.warning(
            "volume_drift_detected",
            extra={"drift_count": len(drifts), "lot_codes": [d.lot_code for d in drifts]},
        )
    return tuple(drifts)
