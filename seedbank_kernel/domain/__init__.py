"""
Pure domain layer.

Data types, parsing tables and identifier derivation with NO dependencies
on record stores, locks or wall-clock time (except ``SystemClock``).
All domain objects are immutable.
"""

from seedbank_kernel.domain.clock import (
    Clock,
    DeterministicClock,
    SequentialClock,
    SystemClock,
)
from seedbank_kernel.domain.lot import (
    EditLogEntry,
    FieldParseError,
    InventoryType,
    SeedLot,
    WithdrawalEntry,
)
from seedbank_kernel.domain.lot_codes import generate_lot_code, location_abbreviation
from seedbank_kernel.domain.roles import UNKNOWN_ROLE, RoleDirectory
from seedbank_kernel.domain.schema import (
    FIELD_BY_HEADER,
    FIELD_BY_KEY,
    LOT_FIELDS,
    PROTECTED_FIELDS,
    FieldSpec,
    Schema,
)

__all__ = [
    # Time
    "Clock",
    "DeterministicClock",
    "SequentialClock",
    "SystemClock",
    # Records
    "EditLogEntry",
    "FieldParseError",
    "InventoryType",
    "SeedLot",
    "WithdrawalEntry",
    # Identifiers and roles
    "generate_lot_code",
    "location_abbreviation",
    "RoleDirectory",
    "UNKNOWN_ROLE",
    # Schema
    "FIELD_BY_HEADER",
    "FIELD_BY_KEY",
    "LOT_FIELDS",
    "PROTECTED_FIELDS",
    "FieldSpec",
    "Schema",
]
