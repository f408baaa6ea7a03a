"""
Configuration management and loading.

Handles billing settings and the representative roster.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from reseller_billing.core.pricing import PRICE_FIELDS, PriceTable
from reseller_billing.storage.db import DEFAULT_DB_PATH
from reseller_billing.storage.models import REPRESENTATIVE_STATUSES


@dataclass(frozen=True)
class StorageConfig:
    """Where billing data is stored."""
    db_path: str = DEFAULT_DB_PATH


@dataclass(frozen=True)
class BillingConfig:
    """Invoice issuing settings."""
    due_days: int = 7

    def __post_init__(self):
        """Validate due period is positive."""
        if self.due_days <= 0:
            raise ValueError("due_days must be > 0")


@dataclass(frozen=True)
class UploadConfig:
    """Limits for uploaded usage files."""
    max_size_mb: int = 10

    def __post_init__(self):
        if self.max_size_mb <= 0:
            raise ValueError("max_size_mb must be > 0")

    @property
    def max_bytes(self) -> int:
        return self.max_size_mb * 1024 * 1024


@dataclass(frozen=True)
class RepresentativeConfig:
    """Roster entry for one representative, keyed by account id."""
    admin_username: str
    full_name: str
    pricing: PriceTable
    telegram_id: Optional[str] = None
    phone_number: Optional[str] = None
    store_name: Optional[str] = None
    status: str = "active"


@dataclass(frozen=True)
class AppConfig:
    """Complete application configuration."""
    billing: BillingConfig
    storage: StorageConfig = field(default_factory=StorageConfig)
    upload: UploadConfig = field(default_factory=UploadConfig)
    representatives: Dict[str, RepresentativeConfig] = field(default_factory=dict)

    @classmethod
    def default(cls) -> "AppConfig":
        """Configuration used when no settings file is given."""
        return cls(billing=BillingConfig())


def load_config(path: str) -> AppConfig:
    """Load and validate application configuration from YAML file.

    Unknown keys are rejected so a typo never silently falls back to a
    default price or due date.

    Args:
        path: Path to YAML configuration file

    Returns:
        Validated AppConfig object

    Raises:
        FileNotFoundError: If config file doesn't exist
        yaml.YAMLError: If YAML is invalid
        ValueError: If configuration is invalid
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    with open(config_path, 'r', encoding='utf-8') as f:
        try:
            raw_config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise yaml.YAMLError(f"Invalid YAML in config file {path}: {e}")

    if not raw_config:
        raise ValueError("Configuration file is empty")
    if not isinstance(raw_config, dict):
        raise ValueError("Configuration must be a dictionary")

    _check_keys(raw_config, {'storage', 'billing', 'upload', 'representatives'}, "configuration")

    # Billing is the only required section
    if 'billing' not in raw_config:
        raise ValueError("Missing required 'billing' section")
    billing_data = _section(raw_config, 'billing')
    _check_keys(billing_data, {'due_days'}, "billing")
    if 'due_days' not in billing_data:
        raise ValueError("Missing required 'due_days' in billing")
    billing = BillingConfig(due_days=_positive_int(billing_data['due_days'], "billing.due_days"))

    storage_data = _section(raw_config, 'storage')
    _check_keys(storage_data, {'db_path'}, "storage")
    db_path = storage_data.get('db_path', DEFAULT_DB_PATH)
    if not isinstance(db_path, str) or not db_path.strip():
        raise ValueError("'db_path' in storage must be a non-empty string")
    storage = StorageConfig(db_path=db_path)

    upload_data = _section(raw_config, 'upload')
    _check_keys(upload_data, {'max_size_mb'}, "upload")
    upload = UploadConfig(
        max_size_mb=_positive_int(upload_data.get('max_size_mb', 10), "upload.max_size_mb")
    )

    roster_data = _section(raw_config, 'representatives')
    representatives = {}
    for admin_username, rep_data in roster_data.items():
        if not isinstance(rep_data, dict):
            raise ValueError(f"Representative '{admin_username}' must be a dictionary")
        representatives[str(admin_username)] = _parse_representative(
            str(admin_username), rep_data, f"representatives.{admin_username}"
        )

    return AppConfig(
        billing=billing,
        storage=storage,
        upload=upload,
        representatives=representatives
    )


def _section(raw_config: Dict, name: str) -> Dict:
    data = raw_config.get(name) or {}
    if not isinstance(data, dict):
        raise ValueError(f"'{name}' must be a dictionary")
    return data


def _check_keys(data: Dict, allowed_keys: set, path: str) -> None:
    unknown_keys = set(data.keys()) - allowed_keys
    if unknown_keys:
        raise ValueError(f"Unknown keys in {path}: {unknown_keys}")


def _positive_int(value: Any, path: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ValueError(f"'{path}' must be an integer > 0")
    return value


def _parse_representative(admin_username: str, data: Dict, path: str) -> RepresentativeConfig:
    """Parse and validate one roster entry.

    Args:
        admin_username: Account id the entry is keyed by
        data: Representative configuration data
        path: Path for error messages

    Returns:
        Validated RepresentativeConfig

    Raises:
        ValueError: If configuration is invalid
    """
    allowed_keys = {'full_name', 'telegram_id', 'phone_number', 'store_name', 'status', 'pricing'}
    _check_keys(data, allowed_keys, path)

    full_name = data.get('full_name')
    if not isinstance(full_name, str) or not full_name.strip():
        raise ValueError(f"Missing required 'full_name' in {path}")

    status = data.get('status', 'active')
    if status not in REPRESENTATIVE_STATUSES:
        raise ValueError(f"'status' in {path} must be one of: {list(REPRESENTATIVE_STATUSES)}")

    for key in ('telegram_id', 'phone_number', 'store_name'):
        if data.get(key) is not None and not isinstance(data[key], str):
            raise ValueError(f"'{key}' in {path} must be a string")

    pricing_data = data.get('pricing')
    if not isinstance(pricing_data, dict):
        raise ValueError(f"Missing required 'pricing' in {path}")
    _check_keys(pricing_data, set(PRICE_FIELDS), f"{path}.pricing")
    try:
        pricing = PriceTable(**pricing_data)
    except ValueError as e:
        raise ValueError(f"Invalid pricing in {path}: {e}")

    return RepresentativeConfig(
        admin_username=admin_username,
        full_name=full_name,
        pricing=pricing,
        telegram_id=data.get('telegram_id'),
        phone_number=data.get('phone_number'),
        store_name=data.get('store_name'),
        status=status
    )
