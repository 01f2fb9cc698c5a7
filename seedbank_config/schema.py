"""
SeedbankConfig schema.

The frozen runtime shape of ``defaults.yaml`` (or an override file).  The
loader parses YAML into these types; nothing downstream reads YAML.

The status section reuses ``seedbank_engines.status.StatusPolicy``
directly, so the engines receive exactly what was configured.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field

from seedbank_engines.status import StatusPolicy


@dataclass(frozen=True)
class LockingConfig:
    """Store-wide mutation lock."""

    timeout_seconds: float = 30.0


@dataclass(frozen=True)
class FetchConfig:
    """Auxiliary asset fetches (QR images, photos)."""

    max_attempts: int = 5
    base_delay_seconds: float = 1.0
    request_timeout_seconds: float = 30.0


@dataclass(frozen=True)
class RoleConfig:
    pins: Mapping[str, str] = field(default_factory=dict)
    unknown_role: str = "Unknown User"


@dataclass(frozen=True)
class StoreConfig:
    workbook_path: str | None = None


@dataclass(frozen=True)
class LoggingConfig:
    level: str = "INFO"


@dataclass(frozen=True)
class SeedbankConfig:
    """Root configuration object returned by ``get_active_config()``."""

    config_id: str
    version: int
    status_policy: StatusPolicy = field(default_factory=StatusPolicy)
    locking: LockingConfig = field(default_factory=LockingConfig)
    fetch: FetchConfig = field(default_factory=FetchConfig)
    roles: RoleConfig = field(default_factory=RoleConfig)
    store: StoreConfig = field(default_factory=StoreConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    checksum: str = ""
