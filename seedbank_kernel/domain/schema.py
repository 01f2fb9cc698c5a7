"""
Sheet schema -- the single header ↔ field mapping table.

Responsibility:
    Declares, in one table, how every lot-sheet header maps to a
    ``SeedLot`` field and how the cell value is parsed; declares the fixed
    column order of the withdrawal and edit logs; converts rows to records
    and back.

Architecture position:
    Kernel > Domain -- pure, zero I/O.  Record stores hold a ``Schema``
    instance built from the sheet's actual header row; nothing here is
    cached at module level.

Invariants enforced:
    - Header text, not column position, identifies a lot column.
    - Adding a lot field means adding one ``FieldSpec`` row to
      ``LOT_FIELDS``; no per-field branching anywhere else.

Failure modes:
    - ``HeaderNotFoundError`` from ``Schema.index_of`` / ``Schema.require``.
    - Cell parse failures never raise out of ``lot_from_record`` or the log
      row readers; they become ``FieldParseError`` entries on the record.
"""

from __future__ import annotations

import json
from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass
from datetime import date, datetime, timezone
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any

from seedbank_kernel.domain.lot import (
    EditLogEntry,
    FieldParseError,
    InventoryType,
    SeedLot,
    WithdrawalEntry,
)
from seedbank_kernel.exceptions import HeaderNotFoundError

# ---------------------------------------------------------------------------
# Cell parsers
# ---------------------------------------------------------------------------

_DATE_FORMATS = ("%m-%d-%Y", "%m/%d/%Y", "%Y/%m/%d", "%d %b %Y", "%b %d, %Y")
_TIMESTAMP_FORMATS = ("%m/%d/%Y %H:%M:%S", "%m-%d-%Y %H:%M:%S", "%m/%d/%Y %H:%M")

_TRUE_WORDS = frozenset({"true", "yes", "y", "1", "archived"})
_FALSE_WORDS = frozenset({"false", "no", "n", "0"})


def parse_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and value == int(value):
        value = int(value)
    return str(value).strip()


def parse_decimal(value: Any) -> Decimal | None:
    """Parse a numeric cell; blank is None, anything else non-numeric raises ValueError."""
    if value is None:
        return None
    if isinstance(value, bool):
        raise ValueError(f"Not a number: {value!r}")
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, (int, float)):
        result = Decimal(str(value))
    else:
        text = str(value).strip().replace(",", "")
        if not text:
            return None
        try:
            result = Decimal(text)
        except InvalidOperation as exc:
            raise ValueError(f"Not a number: {value!r}") from exc
    if not result.is_finite():
        raise ValueError(f"Not a finite number: {value!r}")
    return result


def parse_date(value: Any) -> date | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    if not text:
        return None
    try:
        return date.fromisoformat(text)
    except ValueError:
        pass
    try:
        return datetime.fromisoformat(text).date()
    except ValueError:
        pass
    for fmt in _DATE_FORMATS + _TIMESTAMP_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    raise ValueError(f"Unrecognised date: {value!r}")


def parse_timestamp(value: Any) -> datetime | None:
    """Parse a timestamp cell; naive values are taken as UTC."""
    if value is None:
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    else:
        text = str(value).strip()
        if not text:
            return None
        parsed = None
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            for fmt in _TIMESTAMP_FORMATS + _DATE_FORMATS:
                try:
                    parsed = datetime.strptime(text, fmt)
                    break
                except ValueError:
                    continue
        if parsed is None:
            raise ValueError(f"Unrecognised timestamp: {value!r}")
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def parse_bool(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return bool(value)
    text = str(value).strip().lower()
    if not text or text in _FALSE_WORDS:
        return False
    if text in _TRUE_WORDS:
        return True
    raise ValueError(f"Not a yes/no value: {value!r}")


VOLUME_PLACES = 4
VOLUME_DIGITS = 15


def fits_volume_cell(value: Decimal) -> bool:
    """True when ``value`` reads back unchanged from a numeric sheet cell.

    Integral values are written as ints.  Anything else is written as a
    float, which holds 15 significant digits exactly.
    """
    _, digits, exponent = value.normalize().as_tuple()
    if exponent >= 0:
        return True
    return exponent >= -VOLUME_PLACES and len(digits) <= VOLUME_DIGITS


def to_cell(value: Any) -> Any:
    """Convert a field value to what a sheet cell stores.

    Timestamps are written as ISO 8601 text since sheet cells carry no
    timezone.
    """
    if value is None:
        return None
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, bool):
        return value
    if isinstance(value, Decimal):
        return int(value) if value == value.to_integral_value() else float(value)
    if isinstance(value, datetime):
        return value.isoformat()
    return value


def _json_default(value: Any) -> Any:
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    return str(value)


# ---------------------------------------------------------------------------
# Field mapping table
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class FieldSpec:
    """One row of the header ↔ field table."""

    header: str
    key: str
    parse: Callable[[Any], Any] = parse_text


LOT_FIELDS: tuple[FieldSpec, ...] = (
    FieldSpec("Timestamp", "timestamp", parse_timestamp),
    FieldSpec("Email Address", "email"),
    FieldSpec("Name (Last Name, First Name, Middle Initial)", "name"),
    FieldSpec("Crop", "crop"),
    FieldSpec("Variety", "variety"),
    FieldSpec("Lot Number", "lot_number"),
    FieldSpec("Bag Number", "bag_number"),
    FieldSpec("Date of Harvest", "harvest_date", parse_date),
    FieldSpec("Date Stored", "stored_date", parse_date),
    FieldSpec("Volume Stored", "original_volume", parse_decimal),
    FieldSpec("Current Volume", "current_volume", parse_decimal),
    FieldSpec("Unit", "unit"),
    FieldSpec("Germination Rate (%)", "germination_rate", parse_decimal),
    FieldSpec("Moisture Content (%)", "moisture_content", parse_decimal),
    FieldSpec("Seed Class", "seed_class"),
    FieldSpec("Seed Photo", "seed_photo"),
    FieldSpec("Standing Crop Photo", "crop_photo"),
    FieldSpec("Program", "program"),
    FieldSpec("Remarks", "remarks"),
    FieldSpec("Inventory", "inventory_type", InventoryType.parse),
    FieldSpec("Location", "location"),
    FieldSpec("Archived", "archived", parse_bool),
    FieldSpec("Last Modified", "last_modified", parse_timestamp),
    FieldSpec("Code", "code"),
    FieldSpec("QR Image", "qr_image"),
    FieldSpec("QR Document", "qr_document"),
    FieldSpec("Status", "status"),
)

FIELD_BY_KEY: Mapping[str, FieldSpec] = {spec.key: spec for spec in LOT_FIELDS}
FIELD_BY_HEADER: Mapping[str, FieldSpec] = {spec.header: spec for spec in LOT_FIELDS}

LOT_HEADERS: tuple[str, ...] = tuple(spec.header for spec in LOT_FIELDS)
CODE_HEADER = FIELD_BY_KEY["code"].header

# Only the ledger writes these.
PROTECTED_FIELDS: frozenset[str] = frozenset(
    {"code", "original_volume", "current_volume", "last_modified"}
)

WITHDRAWAL_LOG_HEADERS: tuple[str, ...] = (
    "Timestamp",
    "Code",
    "Inventory",
    "Amount",
    "Previous Value",
    "New Value",
    "Reason",
    "User",
)

EDIT_LOG_HEADERS: tuple[str, ...] = (
    "Timestamp",
    "Code",
    "Previous Values",
    "New Values",
    "User Role",
)


# ---------------------------------------------------------------------------
# Schema (header -> column map for one sheet)
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Schema:
    """
    Header → 0-based column index map of one sheet.

    Built from the sheet's header row once per session and handed to the
    code that reads or writes that sheet; rebuild it when headers change.
    """

    sheet: str
    columns: Mapping[str, int]

    @classmethod
    def from_headers(cls, sheet: str, headers: Iterable[Any]) -> Schema:
        columns: dict[str, int] = {}
        for index, header in enumerate(headers):
            text = parse_text(header)
            if text and text not in columns:
                columns[text] = index
        return cls(sheet=sheet, columns=columns)

    @property
    def width(self) -> int:
        return max(self.columns.values(), default=-1) + 1

    def has(self, header: str) -> bool:
        return header in self.columns

    def index_of(self, header: str) -> int:
        try:
            return self.columns[header]
        except KeyError:
            raise HeaderNotFoundError(self.sheet, header) from None

    def require(self, headers: Iterable[str]) -> None:
        for header in headers:
            self.index_of(header)

    def row_to_record(self, row: Sequence[Any]) -> dict[str, Any]:
        return {
            header: (row[index] if index < len(row) else None)
            for header, index in self.columns.items()
        }

    def record_to_row(self, record: Mapping[str, Any]) -> list[Any]:
        row: list[Any] = [None] * self.width
        for header, value in record.items():
            if header in self.columns:
                row[self.columns[header]] = value
        return row


# ---------------------------------------------------------------------------
# Record conversion
# ---------------------------------------------------------------------------


def _parse_fields(
    specs: Iterable[tuple[str, str, Callable[[Any], Any]]],
    record: Mapping[str, Any],
) -> tuple[dict[str, Any], tuple[FieldParseError, ...]]:
    values: dict[str, Any] = {}
    errors: list[FieldParseError] = []
    for header, key, parse in specs:
        raw = record.get(header)
        try:
            values[key] = parse(raw)
        except ValueError as exc:
            errors.append(FieldParseError(field=key, raw_value=raw, reason=str(exc)))
    return values, tuple(errors)


def lot_from_record(record: Mapping[str, Any], row_number: int | None = None) -> SeedLot:
    """Build a ``SeedLot`` from a header-keyed record, collecting parse errors."""
    values, errors = _parse_fields(
        ((spec.header, spec.key, spec.parse) for spec in LOT_FIELDS), record
    )
    values["code"] = values.get("code") or ""
    if values.get("current_volume") is None and "current_volume" not in {e.field for e in errors}:
        values["current_volume"] = values.get("original_volume")
    return SeedLot(**values, row_number=row_number, parse_errors=errors)


def lot_to_record(lot: SeedLot) -> dict[str, Any]:
    return {spec.header: to_cell(getattr(lot, spec.key)) for spec in LOT_FIELDS}


def fields_to_record(field_map: Mapping[str, Any]) -> dict[str, Any] | None:
    """Translate internal field keys to headers; None if any key is unknown."""
    record: dict[str, Any] = {}
    for key, value in field_map.items():
        spec = FIELD_BY_KEY.get(key)
        if spec is None:
            return None
        record[spec.header] = to_cell(value)
    return record


_WITHDRAWAL_COLUMNS = (
    ("Timestamp", "timestamp", parse_timestamp),
    ("Code", "lot_code", parse_text),
    ("Inventory", "inventory_type", InventoryType.parse),
    ("Amount", "amount", parse_decimal),
    ("Previous Value", "previous_value", parse_decimal),
    ("New Value", "new_value", parse_decimal),
    ("Reason", "reason", parse_text),
    ("User", "user", parse_text),
)


def withdrawal_to_row(entry: WithdrawalEntry) -> list[Any]:
    return [to_cell(getattr(entry, key)) for _, key, _ in _WITHDRAWAL_COLUMNS]


def withdrawal_from_row(row: Sequence[Any], row_number: int | None = None) -> WithdrawalEntry:
    record = dict(zip(WITHDRAWAL_LOG_HEADERS, row))
    values, errors = _parse_fields(_WITHDRAWAL_COLUMNS, record)
    values.setdefault("timestamp", None)
    values.setdefault("amount", None)
    values.setdefault("previous_value", None)
    values.setdefault("new_value", None)
    values.setdefault("inventory_type", None)
    return WithdrawalEntry(**values, row_number=row_number, parse_errors=errors)


def edit_to_row(entry: EditLogEntry) -> list[Any]:
    return [
        to_cell(entry.timestamp),
        entry.lot_code,
        json.dumps(dict(entry.previous_snapshot), default=_json_default, sort_keys=True),
        json.dumps(dict(entry.new_snapshot), default=_json_default, sort_keys=True),
        entry.user_role,
    ]


def _parse_snapshot(value: Any) -> dict[str, Any]:
    if value is None or value == "":
        return {}
    if isinstance(value, Mapping):
        return dict(value)
    try:
        loaded = json.loads(str(value))
    except json.JSONDecodeError as exc:
        raise ValueError(f"Snapshot is not JSON: {value!r}") from exc
    if not isinstance(loaded, dict):
        raise ValueError(f"Snapshot is not an object: {value!r}")
    return loaded


def edit_from_row(row: Sequence[Any], row_number: int | None = None) -> EditLogEntry:
    record = dict(zip(EDIT_LOG_HEADERS, row))
    values, errors = _parse_fields(
        (
            ("Timestamp", "timestamp", parse_timestamp),
            ("Code", "lot_code", parse_text),
            ("Previous Values", "previous_snapshot", _parse_snapshot),
            ("New Values", "new_snapshot", _parse_snapshot),
            ("User Role", "user_role", parse_text),
        ),
        record,
    )
    values.setdefault("timestamp", None)
    return EditLogEntry(**values, row_number=row_number, parse_errors=errors)
