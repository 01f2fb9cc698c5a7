"""
Seed lot and ledger record types.

Responsibility:
    Frozen value objects for the three persisted record kinds (seed lots,
    withdrawal entries, edit log entries) and the per-field parse
    diagnostic attached to rows that did not fully parse.

Architecture position:
    Kernel > Domain -- pure data, zero I/O.  Parsing from and to stored
    rows lives in ``seedbank_kernel.domain.schema``.

Invariants enforced:
    - ``original_volume`` is never written by the ledger; only
      ``current_volume`` moves with withdrawals.
    - ``WithdrawalEntry.new_value == previous_value - amount`` when written
      by ``LedgerService`` (``is_consistent`` checks it on read).
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any


class InventoryType(str, Enum):
    """The two inventories the seed bank keeps."""

    SEED_STORAGE = "Seed Storage"
    PLANTING_MATERIALS = "Planting Materials"

    @classmethod
    def parse(cls, value: Any) -> InventoryType | None:
        """Accept enum members, display names or compact names.

        ``"Seed Storage"``, ``"SeedStorage"`` and ``"seed_storage"`` all map
        to ``SEED_STORAGE``.  Empty values map to None.

        Raises:
            ValueError: for any other non-empty value.
        """
        if value is None or isinstance(value, cls):
            return value
        text = str(value).strip()
        if not text:
            return None
        compact = text.replace(" ", "").replace("_", "").lower()
        for member in cls:
            if compact in (member.value.replace(" ", "").lower(), member.name.replace("_", "").lower()):
                return member
        raise ValueError(f"Unknown inventory type: {value!r}")


@dataclass(frozen=True)
class FieldParseError:
    """A stored cell that could not be converted to its field type."""

    field: str
    raw_value: Any
    reason: str


@dataclass(frozen=True)
class SeedLot:
    """
    One physical storage unit, as read from the lot sheet.

    ``code`` is the natural key shared by the lot row, its withdrawal
    entries and any QR artifact.  Fields that failed to parse are None and
    recorded in ``parse_errors``.
    """

    code: str
    crop: str = ""
    variety: str = ""
    lot_number: str = ""
    bag_number: str = ""
    stored_date: date | None = None
    harvest_date: date | None = None
    original_volume: Decimal | None = None
    current_volume: Decimal | None = None
    unit: str = ""
    seed_class: str = ""
    location: str = ""
    program: str = ""
    moisture_content: Decimal | None = None
    germination_rate: Decimal | None = None
    remarks: str = ""
    inventory_type: InventoryType | None = None
    last_modified: datetime | None = None
    archived: bool = False
    timestamp: datetime | None = None
    email: str = ""
    name: str = ""
    seed_photo: str = ""
    crop_photo: str = ""
    qr_image: str = ""
    qr_document: str = ""
    status: str = ""
    row_number: int | None = None
    parse_errors: tuple[FieldParseError, ...] = ()

    @property
    def available_volume(self) -> Decimal | None:
        """Live running volume; the original volume until first withdrawal."""
        if self.current_volume is not None:
            return self.current_volume
        return self.original_volume

    def failed_fields(self) -> frozenset[str]:
        return frozenset(err.field for err in self.parse_errors)


@dataclass(frozen=True)
class WithdrawalEntry:
    """One immutable audit record of a volume decrement."""

    timestamp: datetime | None
    lot_code: str
    amount: Decimal | None
    previous_value: Decimal | None
    new_value: Decimal | None
    inventory_type: InventoryType | None = None
    reason: str = ""
    user: str = ""
    row_number: int | None = None
    parse_errors: tuple[FieldParseError, ...] = ()

    @property
    def is_consistent(self) -> bool:
        if None in (self.amount, self.previous_value, self.new_value):
            return False
        return self.new_value == self.previous_value - self.amount


@dataclass(frozen=True)
class EditLogEntry:
    """Audit record of a non-volume field change; snapshots hold only changed fields."""

    timestamp: datetime | None
    lot_code: str
    previous_snapshot: Mapping[str, Any] = field(default_factory=dict)
    new_snapshot: Mapping[str, Any] = field(default_factory=dict)
    user_role: str = ""
    row_number: int | None = None
    parse_errors: tuple[FieldParseError, ...] = ()
