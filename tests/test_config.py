"""
Unit tests for configuration loading and validation.

Tests strict validation and error handling for billing settings.
"""

import os
import tempfile

import pytest
import yaml

from reseller_billing.config.loader import (
    AppConfig,
    BillingConfig,
    UploadConfig,
    load_config
)
from reseller_billing.core.pricing import PriceTable

FULL_PRICING = {
    "limited_1_month": 5000,
    "limited_2_month": 4500,
    "limited_3_month": 4000,
    "limited_4_month": 3800,
    "limited_5_month": 3600,
    "limited_6_month": 3500,
    "unlimited_monthly": 25000,
}


class TestConfigLoading:
    """Test configuration loading and validation."""

    def setup_method(self):
        """Set up test environment."""
        self.temp_dir = tempfile.mkdtemp()

    def teardown_method(self):
        """Clean up test environment."""
        import shutil
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def _write_config(self, config_data, filename: str = "config.yaml") -> str:
        """Write configuration data to temporary file."""
        config_path = os.path.join(self.temp_dir, filename)
        with open(config_path, 'w', encoding='utf-8') as f:
            yaml.dump(config_data, f, allow_unicode=True)
        return config_path

    def test_valid_config_loads_correctly(self):
        """Test that a complete configuration loads correctly."""
        config_data = {
            "storage": {"db_path": "billing.db"},
            "billing": {"due_days": 14},
            "upload": {"max_size_mb": 5},
            "representatives": {
                "ali_vpn": {
                    "full_name": "علی رضایی",
                    "telegram_id": "@ali_vpn",
                    "store_name": "Ali VPN",
                    "pricing": FULL_PRICING
                }
            }
        }

        config = load_config(self._write_config(config_data))

        assert config.storage.db_path == "billing.db"
        assert config.billing.due_days == 14
        assert config.upload.max_size_mb == 5
        assert config.upload.max_bytes == 5 * 1024 * 1024

        ali = config.representatives["ali_vpn"]
        assert ali.admin_username == "ali_vpn"
        assert ali.full_name == "علی رضایی"
        assert ali.telegram_id == "@ali_vpn"
        assert ali.phone_number is None
        assert ali.status == "active"
        assert ali.pricing == PriceTable(**FULL_PRICING)

    def test_minimal_config_uses_defaults(self):
        """Only the billing section is required."""
        config = load_config(self._write_config({"billing": {"due_days": 7}}))

        assert config.storage.db_path == "reseller_billing.db"
        assert config.upload.max_size_mb == 10
        assert config.representatives == {}
        assert config == AppConfig.default()

    def test_partial_pricing_defaults_to_zero(self):
        config_data = {
            "billing": {"due_days": 7},
            "representatives": {
                "sara_network": {
                    "full_name": "Sara",
                    "status": "pending",
                    "pricing": {"limited_1_month": 5000}
                }
            }
        }
        sara = load_config(self._write_config(config_data)).representatives["sara_network"]
        assert sara.pricing.limited_1_month == 5000
        assert sara.pricing.unlimited_monthly == 0
        assert sara.status == "pending"

    def test_missing_file_raises_error(self):
        with pytest.raises(FileNotFoundError, match="Config file not found"):
            load_config("nonexistent.yaml")

    def test_empty_config_raises_error(self):
        with pytest.raises(ValueError, match="Configuration file is empty"):
            load_config(self._write_config({}))

    def test_non_mapping_config_raises_error(self):
        with pytest.raises(ValueError, match="Configuration must be a dictionary"):
            load_config(self._write_config(["billing"]))

    def test_invalid_yaml_raises_error(self):
        config_path = os.path.join(self.temp_dir, "invalid.yaml")
        with open(config_path, 'w') as f:
            f.write("invalid: yaml: content: [")

        with pytest.raises(yaml.YAMLError):
            load_config(config_path)

    def test_unknown_top_level_key(self):
        with pytest.raises(ValueError, match="Unknown keys in configuration"):
            load_config(self._write_config({"billing": {"due_days": 7}, "budget": {}}))

    def test_missing_billing_section(self):
        with pytest.raises(ValueError, match="Missing required 'billing' section"):
            load_config(self._write_config({"storage": {"db_path": "x.db"}}))

    def test_missing_due_days(self):
        with pytest.raises(ValueError, match="Missing required 'due_days' in billing"):
            load_config(self._write_config({"billing": {}, "storage": {}}))

    @pytest.mark.parametrize("due_days", [0, -3, 2.5, "7", True])
    def test_invalid_due_days(self, due_days):
        with pytest.raises(ValueError, match="billing.due_days"):
            load_config(self._write_config({"billing": {"due_days": due_days}}))

    def test_invalid_upload_size(self):
        with pytest.raises(ValueError, match="upload.max_size_mb"):
            load_config(self._write_config({"billing": {"due_days": 7}, "upload": {"max_size_mb": 0}}))

    def test_empty_db_path(self):
        with pytest.raises(ValueError, match="'db_path' in storage"):
            load_config(self._write_config({"billing": {"due_days": 7}, "storage": {"db_path": " "}}))

    def test_section_must_be_mapping(self):
        with pytest.raises(ValueError, match="'upload' must be a dictionary"):
            load_config(self._write_config({"billing": {"due_days": 7}, "upload": [1]}))

    def test_representative_missing_full_name(self):
        config_data = {
            "billing": {"due_days": 7},
            "representatives": {"ali_vpn": {"pricing": FULL_PRICING}}
        }
        with pytest.raises(ValueError, match="Missing required 'full_name' in representatives.ali_vpn"):
            load_config(self._write_config(config_data))

    def test_representative_missing_pricing(self):
        config_data = {
            "billing": {"due_days": 7},
            "representatives": {"ali_vpn": {"full_name": "Ali"}}
        }
        with pytest.raises(ValueError, match="Missing required 'pricing' in representatives.ali_vpn"):
            load_config(self._write_config(config_data))

    def test_representative_unknown_price_field(self):
        config_data = {
            "billing": {"due_days": 7},
            "representatives": {
                "ali_vpn": {"full_name": "Ali", "pricing": {"limited_7_month": 100}}
            }
        }
        with pytest.raises(ValueError, match="Unknown keys in representatives.ali_vpn.pricing"):
            load_config(self._write_config(config_data))

    def test_representative_negative_price(self):
        config_data = {
            "billing": {"due_days": 7},
            "representatives": {
                "ali_vpn": {"full_name": "Ali", "pricing": {"unlimited_monthly": -1}}
            }
        }
        with pytest.raises(ValueError, match="Invalid pricing in representatives.ali_vpn"):
            load_config(self._write_config(config_data))

    def test_representative_invalid_status(self):
        config_data = {
            "billing": {"due_days": 7},
            "representatives": {
                "ali_vpn": {"full_name": "Ali", "status": "banned", "pricing": FULL_PRICING}
            }
        }
        with pytest.raises(ValueError, match="'status' in representatives.ali_vpn"):
            load_config(self._write_config(config_data))

    def test_representative_unknown_key(self):
        config_data = {
            "billing": {"due_days": 7},
            "representatives": {
                "ali_vpn": {"full_name": "Ali", "balance": 10, "pricing": FULL_PRICING}
            }
        }
        with pytest.raises(ValueError, match="Unknown keys in representatives.ali_vpn"):
            load_config(self._write_config(config_data))


class TestConfigDataclasses:
    """Test configuration value validation."""

    def test_billing_due_days_must_be_positive(self):
        with pytest.raises(ValueError, match="due_days must be > 0"):
            BillingConfig(due_days=0)

    def test_upload_size_must_be_positive(self):
        with pytest.raises(ValueError, match="max_size_mb must be > 0"):
            UploadConfig(max_size_mb=0)

    def test_default_config(self):
        config = AppConfig.default()
        assert config.billing.due_days == 7
        assert config.upload.max_bytes == 10 * 1024 * 1024
