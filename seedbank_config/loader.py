"""
Configuration Loader (``seedbank_config.loader``).

Responsibility
--------------
Loads a YAML configuration file and parses it into the frozen
``seedbank_config.schema`` dataclasses.  The single public entry point
for runtime config is ``seedbank_config.get_active_config()``.

Invariants enforced
-------------------
* Every parsed object is a frozen dataclass from ``schema.py``.
* Out-of-range values raise ``ConfigError``; missing optional sections
  fall back to the dataclass defaults.
* ``compute_checksum`` produces a deterministic SHA-256 hash of the raw
  document for change detection.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Wrong types or out-of-range values  -> ``ConfigError``.
"""

from __future__ import annotations

import hashlib
import json
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from seedbank_engines.status import CROP_THRESHOLDS, DEFAULT_THRESHOLDS, StatusPolicy, VolumeThresholds
from seedbank_kernel.exceptions import ConfigError

from seedbank_config.schema import (
    FetchConfig,
    LockingConfig,
    LoggingConfig,
    RoleConfig,
    SeedbankConfig,
    StoreConfig,
)

_LOG_LEVELS = frozenset({"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"})


def load_yaml_file(path: Path) -> dict[str, Any]:
    """Load one YAML file; an empty file yields an empty dict."""
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ConfigError(f"{path} must contain a mapping at the top level")
    return data


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization of ``data``."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


def _section(data: dict[str, Any], name: str) -> dict[str, Any]:
    value = data.get(name) or {}
    if not isinstance(value, dict):
        raise ConfigError(f"section '{name}' must be a mapping")
    return value


def _decimal(value: Any, name: str) -> Decimal:
    try:
        result = Decimal(str(value))
    except InvalidOperation:
        raise ConfigError(f"{name} must be a number, got {value!r}") from None
    if not result.is_finite() or result < 0:
        raise ConfigError(f"{name} must be a non-negative number, got {value!r}")
    return result


def _int(value: Any, name: str, minimum: int = 0) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigError(f"{name} must be an integer, got {value!r}")
    if value < minimum:
        raise ConfigError(f"{name} must be >= {minimum}, got {value}")
    return value


def _positive_float(value: Any, name: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
        raise ConfigError(f"{name} must be a positive number, got {value!r}")
    return float(value)


def parse_thresholds(value: Any, name: str) -> VolumeThresholds:
    """``{low: 100, very_low: 50}`` or ``[100, 50]``."""
    if isinstance(value, dict):
        low, very_low = value.get("low"), value.get("very_low")
    elif isinstance(value, (list, tuple)) and len(value) == 2:
        low, very_low = value
    else:
        raise ConfigError(f"{name} must be {{low, very_low}} or a [low, very_low] pair")
    try:
        return VolumeThresholds(low=_decimal(low, f"{name}.low"), very_low=_decimal(very_low, f"{name}.very_low"))
    except ValueError as exc:
        raise ConfigError(f"{name}: {exc}") from None


def parse_status_policy(data: dict[str, Any]) -> StatusPolicy:
    defaults = StatusPolicy()
    crops = data.get("crop_thresholds")
    if crops is None:
        crop_thresholds = dict(CROP_THRESHOLDS)
    elif isinstance(crops, dict):
        crop_thresholds = {
            str(crop): parse_thresholds(pair, f"status.crop_thresholds.{crop}")
            for crop, pair in crops.items()
        }
    else:
        raise ConfigError("status.crop_thresholds must be a mapping")

    policy = StatusPolicy(
        shelf_life_days=_int(data.get("shelf_life_days", defaults.shelf_life_days), "status.shelf_life_days", 1),
        aging_threshold_days=_int(
            data.get("aging_threshold_days", defaults.aging_threshold_days), "status.aging_threshold_days"
        ),
        critical_aging_threshold_days=_int(
            data.get("critical_aging_threshold_days", defaults.critical_aging_threshold_days),
            "status.critical_aging_threshold_days",
        ),
        expiry_warning_days=_int(
            data.get("expiry_warning_days", defaults.expiry_warning_days), "status.expiry_warning_days"
        ),
        critical_expiry_days=_int(
            data.get("critical_expiry_days", defaults.critical_expiry_days), "status.critical_expiry_days"
        ),
        high_withdrawal_threshold=_decimal(
            data.get("high_withdrawal_threshold", defaults.high_withdrawal_threshold),
            "status.high_withdrawal_threshold",
        ),
        stale_inventory_days=_int(
            data.get("stale_inventory_days", defaults.stale_inventory_days), "status.stale_inventory_days"
        ),
        default_thresholds=(
            parse_thresholds(data["default_thresholds"], "status.default_thresholds")
            if "default_thresholds" in data
            else DEFAULT_THRESHOLDS
        ),
        crop_thresholds=crop_thresholds,
    )
    if policy.critical_aging_threshold_days < policy.aging_threshold_days:
        raise ConfigError("status.critical_aging_threshold_days must be >= aging_threshold_days")
    if policy.critical_expiry_days > policy.expiry_warning_days:
        raise ConfigError("status.critical_expiry_days must be <= expiry_warning_days")
    return policy


def parse_roles(data: dict[str, Any]) -> RoleConfig:
    pins = data.get("pins") or {}
    if not isinstance(pins, dict):
        raise ConfigError("roles.pins must be a mapping of PIN to role")
    return RoleConfig(
        pins={str(pin): str(role) for pin, role in pins.items()},
        unknown_role=str(data.get("unknown_role", RoleConfig.unknown_role)),
    )


def parse_config(data: dict[str, Any]) -> SeedbankConfig:
    """Parse a whole configuration document."""
    locking = _section(data, "locking")
    fetch = _section(data, "fetch")
    store = _section(data, "store")
    logging_section = _section(data, "logging")

    level = str(logging_section.get("level", LoggingConfig.level)).upper()
    if level not in _LOG_LEVELS:
        raise ConfigError(f"logging.level must be one of {sorted(_LOG_LEVELS)}, got {level!r}")

    workbook_path = store.get("workbook_path")
    return SeedbankConfig(
        config_id=str(data.get("config_id", "default")),
        version=_int(data.get("version", 1), "version", 1),
        status_policy=parse_status_policy(_section(data, "status")),
        locking=LockingConfig(
            timeout_seconds=_positive_float(
                locking.get("timeout_seconds", LockingConfig.timeout_seconds), "locking.timeout_seconds"
            ),
        ),
        fetch=FetchConfig(
            max_attempts=_int(fetch.get("max_attempts", FetchConfig.max_attempts), "fetch.max_attempts", 1),
            base_delay_seconds=float(
                _decimal(fetch.get("base_delay_seconds", FetchConfig.base_delay_seconds), "fetch.base_delay_seconds")
            ),
            request_timeout_seconds=_positive_float(
                fetch.get("request_timeout_seconds", FetchConfig.request_timeout_seconds),
                "fetch.request_timeout_seconds",
            ),
        ),
        roles=parse_roles(_section(data, "roles")),
        store=StoreConfig(workbook_path=str(workbook_path) if workbook_path else None),
        logging=LoggingConfig(level=level),
        checksum=compute_checksum(data),
    )


def load_config(path: Path) -> SeedbankConfig:
    return parse_config(load_yaml_file(path))
