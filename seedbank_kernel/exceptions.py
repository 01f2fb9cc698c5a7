"""
Typed exception hierarchy for the seed bank ledger.

Every error has a typed class (catch by type, not by message), a ``code``
class attribute (machine-readable, safe to hand to API callers) and the
context it was raised with stored as attributes (not only in the message).

    SeedbankError (base)
    |
    +-- ValidationError            rejected synchronously, never retried
    |   +-- InvalidAmountError
    |   +-- LotNotFoundError
    |   +-- InsufficientVolumeError
    |   +-- UnknownFieldError
    |   +-- ProtectedFieldError
    |   +-- LotArchivedError
    |   +-- InvalidValueError
    |   +-- DuplicateLotError
    |
    +-- StoreError                 record-store I/O, operation aborted
    |   +-- HeaderNotFoundError
    |   +-- LedgerWriteError
    |
    +-- ConcurrencyError
    |   +-- LockUnavailableError   dropped operation, caller may try again
    |
    +-- FetchError                 auxiliary asset fetches
    |   +-- RateLimitedError       retryable
    |   +-- PermanentFetchError    not retryable
    |   +-- RetriesExhaustedError  terminal
    |
    +-- ConfigError

Handling pattern::

    try:
        ledger.apply_withdrawal(code, amount)
    except InsufficientVolumeError as e:
        respond(code=e.code, available=e.available)
    except ValidationError as e:
        respond(code=e.code, message=str(e))
"""

from decimal import Decimal


class SeedbankError(Exception):
    """
    Base exception for all seed bank errors.

    All subclasses carry a ``code`` class attribute for machine-readable
    error identification.
    """

    code: str = "SEEDBANK_ERROR"


# Validation errors


class ValidationError(SeedbankError):
    """Base exception for rejected requests."""

    code: str = "VALIDATION_ERROR"


class InvalidAmountError(ValidationError):
    """Withdrawal amount is not a positive finite number."""

    code: str = "INVALID_AMOUNT"

    def __init__(self, amount: object, reason: str = "must be a positive finite number"):
        self.amount = amount
        self.reason = reason
        super().__init__(f"Withdrawal amount {reason}, got {amount!r}")


class LotNotFoundError(ValidationError):
    """No seed lot carries the given code."""

    code: str = "LOT_NOT_FOUND"

    def __init__(self, lot_code: str):
        self.lot_code = lot_code
        super().__init__(f"Seed lot not found: {lot_code}")


class InsufficientVolumeError(ValidationError):
    """Withdrawal would take the lot below zero."""

    code: str = "INSUFFICIENT_VOLUME"

    def __init__(self, lot_code: str, requested: Decimal, available: Decimal):
        self.lot_code = lot_code
        self.requested = requested
        self.available = available
        super().__init__(
            f"Insufficient volume in {lot_code}: requested {requested}, "
            f"available {available}"
        )


class UnknownFieldError(ValidationError):
    """Edit names a field that is not part of the lot schema."""

    code: str = "UNKNOWN_FIELD"

    def __init__(self, field_names: list[str]):
        self.field_names = field_names
        super().__init__(f"Unknown lot field(s): {', '.join(field_names)}")


class ProtectedFieldError(ValidationError):
    """Edit targets a field that only the ledger may change."""

    code: str = "PROTECTED_FIELD"

    def __init__(self, field_names: list[str]):
        self.field_names = field_names
        super().__init__(
            f"Field(s) cannot be edited directly: {', '.join(field_names)}"
        )


class LotArchivedError(ValidationError):
    """Archived lots accept no withdrawals."""

    code: str = "LOT_ARCHIVED"

    def __init__(self, lot_code: str):
        self.lot_code = lot_code
        super().__init__(f"Seed lot {lot_code} is archived")


class InvalidValueError(ValidationError):
    """A submitted value cannot be converted to the field's type."""

    code: str = "INVALID_VALUE"

    def __init__(self, field_name: str, value: object, reason: str = ""):
        self.field_name = field_name
        self.value = value
        self.reason = reason
        detail = f": {reason}" if reason else ""
        super().__init__(f"Invalid value {value!r} for {field_name}{detail}")


class DuplicateLotError(ValidationError):
    """A lot with the same code is already recorded."""

    code: str = "DUPLICATE_LOT"

    def __init__(self, lot_code: str):
        self.lot_code = lot_code
        super().__init__(f"Seed lot already exists: {lot_code}")


# Store errors


class StoreError(SeedbankError):
    """Base exception for record-store failures."""

    code: str = "STORE_ERROR"


class HeaderNotFoundError(StoreError):
    """A required column header is missing from a sheet."""

    code: str = "HEADER_NOT_FOUND"

    def __init__(self, sheet: str, header: str):
        self.sheet = sheet
        self.header = header
        super().__init__(f'Header "{header}" not found in sheet "{sheet}"')


class LedgerWriteError(StoreError):
    """
    One phase of a two-phase ledger write failed.

    ``compensated`` is False when the lot row could not be restored and
    must be repaired by reconciliation.
    """

    code: str = "LEDGER_WRITE_FAILED"

    def __init__(self, lot_code: str, phase: str, reason: str, compensated: bool = True):
        self.lot_code = lot_code
        self.phase = phase
        self.reason = reason
        self.compensated = compensated
        suffix = "" if compensated else " (lot row needs reconciliation)"
        super().__init__(
            f"Ledger write failed for {lot_code} during {phase}: {reason}{suffix}"
        )


# Concurrency errors


class ConcurrencyError(SeedbankError):
    """Base exception for concurrency errors."""

    code: str = "CONCURRENCY_ERROR"


class LockUnavailableError(ConcurrencyError):
    """The store-wide mutation lock could not be acquired in time."""

    code: str = "LOCK_UNAVAILABLE"

    def __init__(self, timeout_seconds: float):
        self.timeout_seconds = timeout_seconds
        super().__init__(
            f"Another update is in progress (waited {timeout_seconds}s); try again"
        )


# Fetch errors


class FetchError(SeedbankError):
    """Base exception for auxiliary asset fetches."""

    code: str = "FETCH_ERROR"


class RateLimitedError(FetchError):
    """Remote side asked us to slow down (HTTP 429)."""

    code: str = "RATE_LIMITED"

    def __init__(self, url: str):
        self.url = url
        super().__init__(f"Rate limited fetching {url}")


class PermanentFetchError(FetchError):
    """Fetch failed in a way that retrying will not fix."""

    code: str = "FETCH_FAILED"

    def __init__(self, url: str, reason: str):
        self.url = url
        self.reason = reason
        super().__init__(f"Failed to fetch {url}: {reason}")


class RetriesExhaustedError(FetchError):
    """Every attempt was rate limited."""

    code: str = "RETRIES_EXHAUSTED"

    def __init__(self, url: str, attempts: int):
        self.url = url
        self.attempts = attempts
        super().__init__(f"Failed to fetch {url} after {attempts} attempts")


# Configuration errors


class ConfigError(SeedbankError):
    """Configuration file is structurally invalid."""

    code: str = "CONFIG_INVALID"

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Invalid configuration: {reason}")
