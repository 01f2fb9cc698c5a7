"""
Module: seedbank_engines.status
Responsibility:
    Threshold/status policy: map a lot's remaining volume, age, expiry and
    withdrawal rate to Normal / Warning / Critical.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - Precedence: any Critical rule wins; otherwise any Warning rule;
      otherwise Normal.
    - Monotonic in volume: lowering ``remaining`` with every other input
      fixed never lowers the status.
    - Decimal-only arithmetic for volumes and rates.

Failure modes:
    - ValueError from ``VolumeThresholds`` when very_low > low or either
      is negative.
    - Rules whose input is None (unknown dates) do not fire.

Usage:
    from seedbank_engines.status import StatusPolicy, classify_status, thresholds_for_crop

    policy = StatusPolicy()
    assessment = classify_status(
        remaining=Decimal("90"),
        days_since_last_withdrawal=2,
        days_until_expiry=800,
        annualized_withdrawal=Decimal("300"),
        thresholds=thresholds_for_crop("Okra", policy),
        policy=policy,
    )
    assessment.status  # Status.WARNING
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum

from seedbank_kernel.logging_config import get_logger

logger = get_logger("engines.status")


class Status(str, Enum):
    NORMAL = "Normal"
    WARNING = "Warning"
    CRITICAL = "Critical"

    @property
    def rank(self) -> int:
        return _RANK[self]


_RANK = {Status.NORMAL: 0, Status.WARNING: 1, Status.CRITICAL: 2}


class StatusReason(str, Enum):
    """Rule that fired for a status."""

    VERY_LOW_VOLUME = "very_low_volume"
    CRITICAL_AGING = "critical_aging"
    EXPIRY_IMMINENT = "expiry_imminent"
    LOW_VOLUME = "low_volume"
    AGING = "aging"
    EXPIRY_WARNING = "expiry_warning"
    HIGH_WITHDRAWAL_RATE = "high_withdrawal_rate"


@dataclass(frozen=True)
class VolumeThresholds:
    """(low, very_low) pair; below very_low is Critical, below low is Warning."""

    low: Decimal
    very_low: Decimal

    def __post_init__(self) -> None:
        if self.very_low < 0 or self.low < 0:
            raise ValueError("Volume thresholds cannot be negative")
        if self.very_low > self.low:
            raise ValueError(
                f"very_low threshold {self.very_low} exceeds low threshold {self.low}"
            )


DEFAULT_THRESHOLDS = VolumeThresholds(low=Decimal("100"), very_low=Decimal("50"))

# Grams, commercial-scale lots.
CROP_THRESHOLDS: Mapping[str, VolumeThresholds] = {
    "Tomato": VolumeThresholds(Decimal("40"), Decimal("20")),
    "Eggplant": VolumeThresholds(Decimal("60"), Decimal("30")),
    "Hot Pepper": VolumeThresholds(Decimal("20"), Decimal("10")),
    "Corn": VolumeThresholds(Decimal("60"), Decimal("30")),
    "Peanut": VolumeThresholds(Decimal("80"), Decimal("40")),
    "Bottle Gourd": VolumeThresholds(Decimal("200"), Decimal("100")),
    "Sponge Gourd": VolumeThresholds(Decimal("200"), Decimal("100")),
    "Okra": VolumeThresholds(Decimal("70"), Decimal("35")),
    "Cowpea": VolumeThresholds(Decimal("100"), Decimal("50")),
    "Mungbean": VolumeThresholds(Decimal("70"), Decimal("35")),
    "Soybean": VolumeThresholds(Decimal("70"), Decimal("35")),
    "Bush Sitao": VolumeThresholds(Decimal("100"), Decimal("50")),
    "Pole Sitao": VolumeThresholds(Decimal("100"), Decimal("50")),
    "Winged Bean": VolumeThresholds(Decimal("100"), Decimal("50")),
}


@dataclass(frozen=True)
class StatusPolicy:
    """
    Every constant the status rules and inventory alerts use.

    Day counts are whole days.  ``high_withdrawal_threshold`` is in
    volume units per year.
    """

    shelf_life_days: int = 1095
    aging_threshold_days: int = 365
    critical_aging_threshold_days: int = 1095
    expiry_warning_days: int = 30
    critical_expiry_days: int = 7
    high_withdrawal_threshold: Decimal = Decimal("1000")
    stale_inventory_days: int = 30
    default_thresholds: VolumeThresholds = DEFAULT_THRESHOLDS
    crop_thresholds: Mapping[str, VolumeThresholds] = field(
        default_factory=lambda: dict(CROP_THRESHOLDS)
    )


@dataclass(frozen=True)
class StatusAssessment:
    status: Status
    reasons: tuple[StatusReason, ...] = ()


def thresholds_for_crop(crop: str | None, policy: StatusPolicy) -> VolumeThresholds:
    """Crop-specific thresholds, matched case-insensitively; default if unlisted."""
    if crop:
        wanted = crop.strip().casefold()
        for name, thresholds in policy.crop_thresholds.items():
            if name.casefold() == wanted:
                return thresholds
    return policy.default_thresholds


def annualized_rate(total_withdrawn: Decimal, days_since_stored: int | None) -> Decimal | None:
    """``total / max(days, 1) * 365``; None when the storage age is unknown."""
    if days_since_stored is None:
        return None
    return total_withdrawn / Decimal(max(days_since_stored, 1)) * Decimal(365)


def classify_status(
    remaining: Decimal,
    days_since_last_withdrawal: int | None,
    days_until_expiry: int | None,
    annualized_withdrawal: Decimal | None,
    thresholds: VolumeThresholds,
    policy: StatusPolicy,
) -> StatusAssessment:
    """Classify one lot.  ``reasons`` holds the rules of the winning level."""
    critical: list[StatusReason] = []
    if remaining < thresholds.very_low:
        critical.append(StatusReason.VERY_LOW_VOLUME)
    if (
        days_since_last_withdrawal is not None
        and days_since_last_withdrawal > policy.critical_aging_threshold_days
    ):
        critical.append(StatusReason.CRITICAL_AGING)
    if days_until_expiry is not None and 0 < days_until_expiry < policy.critical_expiry_days:
        critical.append(StatusReason.EXPIRY_IMMINENT)
    if critical:
        return StatusAssessment(Status.CRITICAL, tuple(critical))

    warning: list[StatusReason] = []
    if remaining < thresholds.low:
        warning.append(StatusReason.LOW_VOLUME)
    if (
        days_since_last_withdrawal is not None
        and days_since_last_withdrawal > policy.aging_threshold_days
    ):
        warning.append(StatusReason.AGING)
    if days_until_expiry is not None and days_until_expiry < policy.expiry_warning_days:
        warning.append(StatusReason.EXPIRY_WARNING)
    if (
        annualized_withdrawal is not None
        and annualized_withdrawal > policy.high_withdrawal_threshold
    ):
        warning.append(StatusReason.HIGH_WITHDRAWAL_RATE)
    if warning:
        return StatusAssessment(Status.WARNING, tuple(warning))

    return StatusAssessment(Status.NORMAL)
