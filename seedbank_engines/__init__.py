"""
Module: seedbank_engines
Responsibility:
    Package entrypoint re-exporting the pure calculation engines: status
    policy, inventory aggregation, dashboard figures and volume drift.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May import seedbank_kernel.domain and seedbank_kernel.logging_config.
    MUST NOT import seedbank_services or seedbank_config.

Invariants enforced:
    - Purity: engines never read a clock; ``as_of`` is always passed in.
    - Decimal-only arithmetic for volumes and rates.
    - Determinism: identical inputs always produce identical outputs.

Audit relevance:
    Engine invocations are traced via ``@traced_engine`` (see
    ``seedbank_engines.tracer``), emitting SEEDBANK_ENGINE_TRACE records.
"""

from seedbank_engines.aggregation import (
    AggregatedLotView,
    AggregationResult,
    Diagnostic,
    aggregate_inventory,
)
from seedbank_engines.dashboard import (
    Alert,
    current_stock_by_type,
    low_stock_counts,
    monthly_withdrawal_patterns,
    release_log,
    stock_by_location,
    stock_by_seed_class,
    system_alerts,
    withdrawal_time_analysis,
    withdrawals_on_day,
)
from seedbank_engines.reconciliation import VolumeDrift, find_volume_drift
from seedbank_engines.status import (
    CROP_THRESHOLDS,
    DEFAULT_THRESHOLDS,
    Status,
    StatusAssessment,
    StatusPolicy,
    StatusReason,
    VolumeThresholds,
    classify_status,
    thresholds_for_crop,
)
from seedbank_engines.tracer import traced_engine

__all__ = [
    # Aggregation
    "AggregatedLotView",
    "AggregationResult",
    "Diagnostic",
    "aggregate_inventory",
    # Dashboard
    "Alert",
    "current_stock_by_type",
    "low_stock_counts",
    "monthly_withdrawal_patterns",
    "release_log",
    "stock_by_location",
    "stock_by_seed_class",
    "system_alerts",
    "withdrawal_time_analysis",
    "withdrawals_on_day",
    # Reconciliation
    "VolumeDrift",
    "find_volume_drift",
    # Status
    "CROP_THRESHOLDS",
    "DEFAULT_THRESHOLDS",
    "Status",
    "StatusAssessment",
    "StatusPolicy",
    "StatusReason",
    "VolumeThresholds",
    "classify_status",
    "thresholds_for_crop",
    # Tracing
    "traced_engine",
]
