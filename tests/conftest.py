"""
Pytest fixtures for the seed bank ledger test suite.

Provides:
- Structured logging configured for every test, with captured JSON records
- A deterministic clock pinned to 2024-06-01 12:00 UTC
- An in-memory record store seeded with a few lots
- LedgerService / InventoryService wired over that store

No external services are needed: the in-memory store stands in for the
workbook, and the workbook tests write to ``tmp_path``.
"""

import json
import logging
from datetime import UTC, date, datetime, timedelta
from decimal import Decimal
from io import StringIO

import pytest

from seedbank_engines.status import StatusPolicy
from seedbank_kernel.domain.clock import DeterministicClock
from seedbank_kernel.domain.lot import InventoryType, SeedLot
from seedbank_kernel.domain.roles import RoleDirectory
from seedbank_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from seedbank_kernel.services.ledger_service import LedgerService
from seedbank_kernel.services.store_lock import StoreLock
from seedbank_kernel.store.memory import InMemoryRecordStore
from seedbank_services.inventory_service import InventoryService
from seedbank_services.reconciliation_service import ReconciliationService

NOW = datetime(2024, 6, 1, 12, 0, 0, tzinfo=UTC)

TEST_PINS = {
    "1001": "Seed Bank Manager",
    "2002": "Seed Bank Technician",
}


# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------


@pytest.fixture(scope="session", autouse=True)
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG, stream=StringIO())
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture seedbank logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, ledger):
            ledger.apply_withdrawal("LOT-1", 5)
            logs = captured_logs()
            assert any(r["message"] == "withdrawal_applied" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("seedbank")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


# ---------------------------------------------------------------------------
# Domain builders
# ---------------------------------------------------------------------------


def make_lot(code: str = "Diamante-L1-1-11-14-2023-O", **overrides) -> SeedLot:
    """A stored seed lot with sensible defaults; override any field."""
    values = dict(
        code=code,
        crop="Squash",
        variety="Diamante",
        lot_number="L1",
        bag_number="1",
        stored_date=(NOW - timedelta(days=200)).date(),
        harvest_date=date(2023, 10, 1),
        original_volume=Decimal("250"),
        current_volume=Decimal("250"),
        unit="g",
        seed_class="Foundation",
        location="Organic Farm",
        program="Vegetables",
        inventory_type=InventoryType.SEED_STORAGE,
    )
    values.update(overrides)
    return SeedLot(**values)


@pytest.fixture
def lot_factory():
    return make_lot


@pytest.fixture
def clock():
    return DeterministicClock(NOW)


@pytest.fixture
def policy():
    return StatusPolicy()


@pytest.fixture
def roles():
    return RoleDirectory(TEST_PINS)


# ---------------------------------------------------------------------------
# Store and services
# ---------------------------------------------------------------------------


@pytest.fixture
def store():
    """In-memory store with one seed lot, one planting-material lot, one archived lot."""
    return InMemoryRecordStore(
        lots=[
            make_lot(),
            make_lot(
                "Okra-L2-4-01-10-2024-PM",
                crop="Okra",
                variety="Smooth Green",
                lot_number="L2",
                bag_number="4",
                original_volume=Decimal("120"),
                current_volume=Decimal("120"),
                unit="pcs",
                seed_class="Breeder",
                location="Plant Nursery",
                inventory_type=InventoryType.PLANTING_MATERIALS,
            ),
            make_lot(
                "Corn-L3-2-01-10-2021-C",
                crop="Corn",
                variety="Sweet",
                location="Conventional Farm",
                original_volume=Decimal("80"),
                current_volume=Decimal("80"),
                archived=True,
            ),
        ]
    )


@pytest.fixture
def empty_store():
    return InMemoryRecordStore()


@pytest.fixture
def lock():
    return StoreLock(timeout_seconds=5.0)


@pytest.fixture
def ledger(store, clock, lock):
    return LedgerService(store, clock=clock, lock=lock)


@pytest.fixture
def reconciliation(store, ledger):
    return ReconciliationService(store, ledger)


@pytest.fixture
def inventory_service(store, ledger, roles, policy, clock, reconciliation):
    return InventoryService(
        store=store,
        ledger=ledger,
        roles=roles,
        policy=policy,
        clock=clock,
        reconciliation=reconciliation,
    )
