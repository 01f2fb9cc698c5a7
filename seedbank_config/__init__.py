"""
seedbank_config -- single public entrypoint for seed bank configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``.  No other component reads configuration
    files.  YAML loading lives in ``seedbank_config.loader``.

Architecture position:
    Configuration -- sits above ``seedbank_kernel`` / ``seedbank_engines``
    and below ``seedbank_services``.  The kernel MUST NEVER import from
    ``seedbank_config``.

Failure modes:
    - ``FileNotFoundError`` -- the requested file does not exist.
    - ``yaml.YAMLError`` -- the file is not valid YAML.
    - ``ConfigError`` -- values are missing, mistyped or out of range.

Audit relevance:
    Every successful ``get_active_config()`` call emits a
    ``SEEDBANK_CONFIG_TRACE`` log entry with the config id, version and
    checksum, tying every status classification to the thresholds in force.
"""

from __future__ import annotations

from pathlib import Path

from seedbank_kernel.logging_config import get_logger

from seedbank_config.loader import compute_checksum, load_config
from seedbank_config.schema import (
    FetchConfig,
    LockingConfig,
    LoggingConfig,
    RoleConfig,
    SeedbankConfig,
    StoreConfig,
)

_logger = get_logger("config")

DEFAULT_CONFIG_PATH = Path(__file__).parent / "defaults.yaml"


def get_active_config(config_path: Path | str | None = None) -> SeedbankConfig:
    """The ONLY public configuration entrypoint.

    Args:
        config_path: Override file.  Defaults to the packaged
            ``defaults.yaml``.

    Raises:
        FileNotFoundError, yaml.YAMLError, ConfigError.
    """
    path = Path(config_path) if config_path is not None else DEFAULT_CONFIG_PATH
    config = load_config(path)
    _logger.info(
        "SEEDBANK_CONFIG_TRACE",
        extra={
            "trace_type": "SEEDBANK_CONFIG_TRACE",
            "config_id": config.config_id,
            "config_version": config.version,
            "checksum": config.checksum,
            "config_path": str(path),
            "crop_threshold_count": len(config.status_policy.crop_thresholds),
            "role_count": len(config.roles.pins),
        },
    )
    return config


__all__ = [
    "DEFAULT_CONFIG_PATH",
    "FetchConfig",
    "LockingConfig",
    "LoggingConfig",
    "RoleConfig",
    "SeedbankConfig",
    "StoreConfig",
    "compute_checksum",
    "get_active_config",
]
