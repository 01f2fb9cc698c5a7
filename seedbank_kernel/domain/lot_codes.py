"""Lot code derivation: the natural key joining lots, ledger rows and QR artifacts."""

from __future__ import annotations

from datetime import date
from typing import Any

UNKNOWN_SEGMENT = "UNK"

# Case-insensitive substring -> abbreviation, checked in order.
LOCATION_ABBREVIATIONS: tuple[tuple[str, str], ...] = (
    ("conventional", "C"),
    ("organic", "O"),
    ("plant nursery", "PM"),
)


def location_abbreviation(location: str | None) -> str:
    """Abbreviate a storage location.

    Known locations map to their short codes; anything else is cut to its
    first three characters.
    """
    if not location:
        return UNKNOWN_SEGMENT
    lowered = location.lower()
    for needle, abbreviation in LOCATION_ABBREVIATIONS:
        if needle in lowered:
            return abbreviation
    return location if len(location) <= 3 else location[:3]


def format_stored_date(stored_date: date | str | None) -> str:
    """Dates are rendered MM-DD-YYYY; text is passed through unchanged."""
    if stored_date is None:
        return ""
    if isinstance(stored_date, date):
        return stored_date.strftime("%m-%d-%Y")
    return str(stored_date).strip()


def _segment(value: Any) -> str:
    text = "" if value is None else str(value).strip()
    return text or UNKNOWN_SEGMENT


def generate_lot_code(
    variety: str | None,
    lot_number: str | int | None,
    bag_number: str | int | None,
    stored_date: date | str | None,
    location: str | None,
) -> str:
    """
    Build ``VARIETY-LOT-BAG-STORED_DATE-LOCATION``.

    Deterministic: identical inputs always give the identical code, and
    every missing segment becomes ``UNK``.

    >>> generate_lot_code("Diamante", "L1", "3", date(2024, 5, 2), "Organic Farm")
    'Diamante-L1-3-05-02-2024-O'
    """
    return "-".join(
        (
            _segment(variety),
            _segment(lot_number),
            _segment(bag_number),
            _segment(format_stored_date(stored_date)),
            location_abbreviation(location.strip() if location else location),
        )
    )
