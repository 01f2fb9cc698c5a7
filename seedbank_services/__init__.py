"""
seedbank_services -- Package init and public API.

Responsibility:
    Outer surface of the seed bank ledger: the ``InventoryService``
    facade, its FastAPI routes, reconciliation and the auxiliary asset
    fetcher.  This is the only layer that wires configuration into the
    kernel.

Architecture position:
    Services -- orchestration over engines + kernel + config.

    Dependency direction:
        seedbank_services/ -> seedbank_engines/, seedbank_kernel/, seedbank_config/
        seedbank_engines/  -> seedbank_services/ (FORBIDDEN)
        seedbank_kernel/   -> seedbank_services/ (FORBIDDEN)
"""

from seedbank_services.asset_fetcher import AssetFetcher, FetchedAsset
from seedbank_services.inventory_service import InventoryService
from seedbank_services.reconciliation_service import (
    RECONCILIATION_ROLE,
    ReconciliationReport,
    ReconciliationService,
)

__all__ = [
    "AssetFetcher",
    "FetchedAsset",
    "InventoryService",
    "RECONCILIATION_ROLE",
    "ReconciliationReport",
    "ReconciliationService",
]
