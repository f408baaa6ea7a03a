"""
Data models for storage layer.

Defines the persisted billing entities.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from reseller_billing.core.pricing import PriceTable

REPRESENTATIVE_STATUSES = ("active", "inactive", "pending")
INVOICE_STATUSES = ("pending", "paid", "overdue")
PAYMENT_TYPES = ("full", "partial", "manual")
IMPORT_STATUSES = ("processing", "completed", "failed")


@dataclass(frozen=True)
class Representative:
    """A reseller and the price table used to bill its usage.

    ``admin_username`` is the account identifier found in usage files.
    Balance is in whole currency units.
    """
    id: int
    full_name: str
    admin_username: str
    pricing: PriceTable
    telegram_id: Optional[str] = None
    phone_number: Optional[str] = None
    store_name: Optional[str] = None
    status: str = "active"
    balance: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass(frozen=True)
class Invoice:
    """Invoice issued to a representative; ``data`` holds usage and calculations."""
    id: int
    representative_id: int
    amount: int
    due_date: datetime
    status: str = "pending"
    paid_at: Optional[datetime] = None
    data: Dict[str, Any] = field(default_factory=dict)
    telegram_link: Optional[str] = None
    created_at: Optional[datetime] = None


@dataclass(frozen=True)
class Payment:
    """Money received from a representative, optionally against an invoice."""
    id: int
    representative_id: int
    amount: int
    type: str
    invoice_id: Optional[int] = None
    description: Optional[str] = None
    created_at: Optional[datetime] = None


@dataclass(frozen=True)
class FileImport:
    """Processing record of one uploaded usage file."""
    id: int
    filename: str
    status: str
    processed_rows: int = 0
    generated_invoices: int = 0
    errors: List[str] = field(default_factory=list)
    created_at: Optional[datetime] = None


@dataclass(frozen=True)
class NewInvoice:
    """Invoice to be inserted as part of a batch."""
    representative_id: int
    amount: int
    due_date: datetime
    data: Dict[str, Any] = field(default_factory=dict)
    telegram_id: Optional[str] = None
