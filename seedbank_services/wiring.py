"""Builds an ``InventoryService`` and its collaborators from configuration."""

from __future__ import annotations

from pathlib import Path

from seedbank_config import SeedbankConfig, get_active_config
from seedbank_kernel.domain.clock import Clock, SystemClock
from seedbank_kernel.domain.roles import RoleDirectory
from seedbank_kernel.logging_config import configure_logging, get_logger
from seedbank_kernel.services.ledger_service import LedgerService
from seedbank_kernel.services.store_lock import StoreLock
from seedbank_kernel.store.base import RecordStore
from seedbank_kernel.store.memory import InMemoryRecordStore
from seedbank_kernel.store.workbook import WorkbookRecordStore

from seedbank_services.asset_fetcher import AssetFetcher
from seedbank_services.inventory_service import InventoryService
from seedbank_services.reconciliation_service import ReconciliationService

logger = get_logger("services.wiring")


def build_store(config: SeedbankConfig) -> RecordStore:
    """Workbook store when a path is configured, otherwise in-memory."""
    if config.store.workbook_path:
        return WorkbookRecordStore(Path(config.store.workbook_path))
    logger.warning("store_in_memory", extra={"config_id": config.config_id})
    return InMemoryRecordStore()


def build_asset_fetcher(config: SeedbankConfig) -> AssetFetcher:
    return AssetFetcher(
        max_attempts=config.fetch.max_attempts,
        base_delay_seconds=config.fetch.base_delay_seconds,
        timeout_seconds=config.fetch.request_timeout_seconds,
    )


def build_inventory_service(
    config: SeedbankConfig | None = None,
    store: RecordStore | None = None,
    clock: Clock | None = None,
) -> InventoryService:
    config = config or get_active_config()
    configure_logging(level=config.logging.level)
    clock = clock or SystemClock()
    store = store or build_store(config)
    ledger = LedgerService(store, clock=clock, lock=StoreLock(config.locking.timeout_seconds))
    return InventoryService(
        store=store,
        ledger=ledger,
        roles=RoleDirectory(config.roles.pins, config.roles.unknown_role),
        policy=config.status_policy,
        clock=clock,
        reconciliation=ReconciliationService(store, ledger),
    )
