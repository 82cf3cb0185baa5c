"""
Tests for configuration loading.

Covers:
- Schema types -- defaults and construction-time validation
- Loader -- YAML override merging, unknown keys, checksums
- get_active_config -- end-to-end and the config trace log
"""

from __future__ import annotations

import dataclasses
from decimal import ROUND_HALF_EVEN

import pytest
import yaml

from settlement_config import (
    AgingConfig,
    AmountConfig,
    LockingConfig,
    PaymentConfig,
    SettlementConfig,
    get_active_config,
)
from settlement_config.loader import deep_merge, load_config, parse_config
from settlement_kernel.domain.values import PaymentMode


@pytest.fixture
def write_override(tmp_path):
    def _write(data, name="override.yaml"):
        path = tmp_path / name
        path.write_text(yaml.safe_dump(data))
        return path
    return _write


# =========================================================================
# Schema types
# =========================================================================


class TestSchemaDefaults:

    def test_defaults_match_packaged_yaml(self):
        loaded = load_config()
        built = SettlementConfig()

        assert loaded.amounts == built.amounts
        assert loaded.aging == built.aging
        assert loaded.locking == built.locking
        assert loaded.payments == built.payments

    def test_default_values(self):
        config = load_config()

        assert config.amounts.decimal_places == 2
        assert config.amounts.display_rounding == ROUND_HALF_EVEN
        assert config.aging.bucket_boundaries == (30, 60, 90)
        assert config.aging.overdue_after_days == 30
        assert config.payments.default_mode is PaymentMode.CASH
        assert config.payments.top_outstanding_limit == 10

    def test_frozen(self):
        config = load_config()
        with pytest.raises(dataclasses.FrozenInstanceError):
            config.version = 2


class TestSchemaValidation:

    @pytest.mark.parametrize("bounds", [(30, 60), (60, 30, 90), (30, 30, 90), (-1, 60, 90)])
    def test_bad_bucket_boundaries(self, bounds):
        with pytest.raises(ValueError, match="bucket_boundaries"):
            AgingConfig(bucket_boundaries=bounds)

    def test_negative_overdue_threshold(self):
        with pytest.raises(ValueError, match="overdue_after_days"):
            AgingConfig(overdue_after_days=-1)

    def test_decimal_places_range(self):
        with pytest.raises(ValueError, match="decimal_places"):
            AmountConfig(decimal_places=10)

    def test_unknown_rounding(self):
        with pytest.raises(ValueError, match="display_rounding"):
            AmountConfig(display_rounding="ROUND_SIDEWAYS")

    def test_lock_timeout_positive(self):
        with pytest.raises(ValueError, match="party_lock_timeout_seconds"):
            LockingConfig(party_lock_timeout_seconds=0)

    def test_credit_is_not_a_default_mode(self):
        with pytest.raises(ValueError, match="default_mode"):
            PaymentConfig(default_mode=PaymentMode.CREDIT)

    def test_page_sizes(self):
        with pytest.raises(ValueError, match="max_page_size"):
            PaymentConfig(page_size=100, max_page_size=50)
        with pytest.raises(ValueError, match="top_outstanding_limit"):
            PaymentConfig(top_outstanding_limit=0)


# =========================================================================
# Loader
# =========================================================================


class TestLoader:

    def test_deep_merge_keeps_sibling_keys(self):
        merged = deep_merge(
            {"aging": {"bucket_boundaries": [30, 60, 90], "overdue_after_days": 30}, "version": 1},
            {"aging": {"overdue_after_days": 45}},
        )

        assert merged == {
            "aging": {"bucket_boundaries": [30, 60, 90], "overdue_after_days": 45},
            "version": 1,
        }

    def test_override_file_merged(self, write_override):
        path = write_override({
            "config_id": "branch-7",
            "aging": {"bucket_boundaries": [15, 45, 75]},
            "payments": {"default_mode": "upi"},
        })

        config = load_config(path)

        assert config.config_id == "branch-7"
        assert config.aging.bucket_boundaries == (15, 45, 75)
        assert config.aging.overdue_after_days == 30
        assert config.payments.default_mode is PaymentMode.UPI

    def test_unknown_top_level_key(self):
        with pytest.raises(ValueError, match="unknown configuration key"):
            parse_config({"currency": "INR"})

    def test_unknown_section_key(self, write_override):
        path = write_override({"locking": {"retries": 3}})
        with pytest.raises(ValueError, match="retries"):
            load_config(path)

    def test_unknown_payment_mode(self):
        with pytest.raises(ValueError, match="default_mode"):
            parse_config({"payments": {"default_mode": "barter"}})

    def test_credit_default_mode_rejected(self, write_override):
        path = write_override({"payments": {"default_mode": "credit"}})
        with pytest.raises(ValueError, match="credit"):
            load_config(path)

    def test_section_must_be_mapping(self):
        with pytest.raises(ValueError, match="expected a mapping"):
            parse_config({"aging": [30, 60, 90]})

    def test_non_mapping_document(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- 1\n- 2\n")
        with pytest.raises(ValueError, match="mapping"):
            load_config(path)

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "absent.yaml")

    def test_checksum_stable_and_sensitive(self, write_override):
        baseline = load_config()
        again = load_config()
        changed = load_config(write_override({"payments": {"page_size": 25}}))

        assert baseline.checksum == again.checksum
        assert len(baseline.checksum) == 64
        assert changed.checksum != baseline.checksum


# =========================================================================
# get_active_config
# =========================================================================


class TestGetActiveConfig:

    def test_trace_logged(self, captured_logs):
        config = get_active_config()

        traces = [r for r in captured_logs() if r["message"] == "SETTLEMENT_CONFIG_TRACE"]
        assert len(traces) == 1
        assert traces[0]["checksum"] == config.checksum
        assert traces[0]["config_id"] == "settlement-default"
        assert traces[0]["override_path"] is None

    def test_accepts_string_path(self, write_override, captured_logs):
        path = write_override({"version": 3})

        config = get_active_config(str(path))

        assert config.version == 3
        trace = next(r for r in captured_logs() if r["message"] == "SETTLEMENT_CONFIG_TRACE")
        assert trace["override_path"] == str(path)
