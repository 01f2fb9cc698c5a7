"""
Tests for seedbank_config: packaged defaults, override files, validation,
the config trace, and building services from configuration.
"""

from decimal import Decimal

import pytest
import yaml

from seedbank_config import DEFAULT_CONFIG_PATH, get_active_config
from seedbank_config.loader import compute_checksum, load_config, parse_config, parse_thresholds
from seedbank_engines.status import CROP_THRESHOLDS, VolumeThresholds
from seedbank_kernel.domain.clock import DeterministicClock
from seedbank_kernel.exceptions import ConfigError
from seedbank_kernel.store.memory import InMemoryRecordStore
from seedbank_kernel.store.workbook import WorkbookRecordStore
from seedbank_services.wiring import build_asset_fetcher, build_inventory_service, build_store


def _write(tmp_path, data, name="seedbank.yaml"):
    path = tmp_path / name
    path.write_text(yaml.safe_dump(data))
    return path


class TestDefaults:

    def test_packaged_defaults(self):
        config = get_active_config()

        assert config.config_id == "seedbank-default"
        assert config.version == 1
        assert len(config.checksum) == 64
        policy = config.status_policy
        assert policy.shelf_life_days == 1095
        assert (policy.aging_threshold_days, policy.critical_aging_threshold_days) == (365, 1095)
        assert (policy.expiry_warning_days, policy.critical_expiry_days) == (30, 7)
        assert policy.high_withdrawal_threshold == Decimal("1000")
        assert policy.stale_inventory_days == 30

    def test_crop_thresholds_match_built_in_table(self):
        policy = get_active_config().status_policy
        assert dict(policy.crop_thresholds) == dict(CROP_THRESHOLDS)
        assert policy.default_thresholds == VolumeThresholds(Decimal("100"), Decimal("50"))

    def test_roles_and_operational_sections(self):
        config = get_active_config()
        assert config.roles.pins == {
            "1001": "Seed Bank Manager",
            "2002": "Seed Bank Technician",
            "3003": "Field Staff",
        }
        assert config.roles.unknown_role == "Unknown User"
        assert config.locking.timeout_seconds == 30.0
        assert (config.fetch.max_attempts, config.fetch.base_delay_seconds) == (5, 1.0)
        assert config.store.workbook_path is None
        assert config.logging.level == "INFO"

    def test_config_trace_logged(self, captured_logs):
        config = get_active_config()

        trace = next(r for r in captured_logs() if r["message"] == "SEEDBANK_CONFIG_TRACE")
        assert trace["config_id"] == config.config_id
        assert trace["checksum"] == config.checksum
        assert trace["config_path"] == str(DEFAULT_CONFIG_PATH)
        assert trace["crop_threshold_count"] == 14
        assert trace["role_count"] == 3


class TestOverrideFile:

    def test_override_values(self, tmp_path):
        path = _write(
            tmp_path,
            {
                "config_id": "field-station",
                "version": 3,
                "status": {
                    "aging_threshold_days": 180,
                    "default_thresholds": [30, 10],
                    "crop_thresholds": {"Rice": {"low": 500, "very_low": 250}},
                },
                "locking": {"timeout_seconds": 2.5},
                "store": {"workbook_path": str(tmp_path / "bank.xlsx")},
                "logging": {"level": "debug"},
            },
        )
        config = get_active_config(path)

        assert config.config_id == "field-station"
        assert config.version == 3
        assert config.status_policy.aging_threshold_days == 180
        assert config.status_policy.critical_aging_threshold_days == 1095
        assert config.status_policy.default_thresholds == VolumeThresholds(Decimal("30"), Decimal("10"))
        assert dict(config.status_policy.crop_thresholds) == {
            "Rice": VolumeThresholds(Decimal("500"), Decimal("250"))
        }
        assert config.locking.timeout_seconds == 2.5
        assert config.store.workbook_path == str(tmp_path / "bank.xlsx")
        assert config.logging.level == "DEBUG"

    def test_empty_file_uses_defaults(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")
        config = load_config(path)
        assert config.config_id == "default"
        assert config.status_policy.shelf_life_days == 1095

    def test_checksum_tracks_content(self, tmp_path):
        a = load_config(_write(tmp_path, {"version": 1}, "a.yaml"))
        b = load_config(_write(tmp_path, {"version": 2}, "b.yaml"))
        assert a.checksum != b.checksum
        assert a.checksum == compute_checksum({"version": 1})

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            get_active_config(tmp_path / "absent.yaml")

    def test_top_level_must_be_mapping(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- one\n- two\n")
        with pytest.raises(ConfigError):
            load_config(path)


class TestValidation:

    @pytest.mark.parametrize(
        "data",
        [
            {"status": {"aging_threshold_days": 400, "critical_aging_threshold_days": 300}},
            {"status": {"expiry_warning_days": 5, "critical_expiry_days": 7}},
            {"status": {"shelf_life_days": 0}},
            {"status": {"aging_threshold_days": "a year"}},
            {"status": {"high_withdrawal_threshold": -1}},
            {"status": {"default_thresholds": [10, 20]}},
            {"status": {"crop_thresholds": ["Tomato"]}},
            {"status": ["not", "a", "mapping"]},
            {"locking": {"timeout_seconds": 0}},
            {"fetch": {"max_attempts": 0}},
            {"roles": {"pins": ["1001"]}},
            {"logging": {"level": "LOUD"}},
            {"version": 0},
        ],
    )
    def test_rejected(self, data):
        with pytest.raises(ConfigError):
            parse_config(data)

    def test_error_code(self):
        with pytest.raises(ConfigError) as exc_info:
            parse_config({"logging": {"level": "LOUD"}})
        assert exc_info.value.code == ConfigError.code

    @pytest.mark.parametrize("value", [{"low": 4, "very_low": 2}, [4, 2], (4, 2)])
    def test_threshold_forms(self, value):
        assert parse_thresholds(value, "x") == VolumeThresholds(Decimal("4"), Decimal("2"))

    @pytest.mark.parametrize("value", [4, [4], {"low": "many", "very_low": 2}])
    def test_bad_threshold_forms(self, value):
        with pytest.raises(ConfigError):
            parse_thresholds(value, "x")


class TestWiring:

    def test_build_inventory_service_from_defaults(self, lot_factory):
        store = InMemoryRecordStore(lots=[lot_factory("LOT-1")])
        service = build_inventory_service(store=store, clock=DeterministicClock())

        assert service.policy == get_active_config().status_policy
        result = service.withdraw("LOT-1", "10", reason="Planting", user="tech")
        assert result["success"] is True
        assert result["newVolume"] == Decimal("240")

    def test_roles_come_from_config(self, lot_factory):
        store = InMemoryRecordStore(lots=[lot_factory("LOT-1")])
        service = build_inventory_service(store=store, clock=DeterministicClock())

        result = service.edit_lot("LOT-1", {"Remarks": "re-dried"}, pin_code="3003")
        assert result["userRole"] == "Field Staff"

    def test_build_store_in_memory_without_path(self):
        assert isinstance(build_store(get_active_config()), InMemoryRecordStore)

    def test_build_store_workbook_with_path(self, tmp_path):
        path = _write(tmp_path, {"store": {"workbook_path": str(tmp_path / "bank.xlsx")}})
        store = build_store(get_active_config(path))
        assert isinstance(store, WorkbookRecordStore)
        assert (tmp_path / "bank.xlsx").exists()

    def test_build_asset_fetcher(self, tmp_path):
        path = _write(tmp_path, {"fetch": {"max_attempts": 3, "base_delay_seconds": 0.5}})
        fetcher = build_asset_fetcher(get_active_config(path))
        try:
            assert fetcher.max_attempts == 3
            assert fetcher.base_delay_seconds == 0.5
        finally:
            fetcher.close()
