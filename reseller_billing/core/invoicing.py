"""
Invoice assembly from usage files.

Matches parsed usage records to representatives, prices them, and hands the
resulting invoices to the billing repository.

Assembly itself is pure; only ``import_usage_file`` touches storage.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Mapping, Optional
from urllib.parse import quote

from reseller_billing.config.loader import AppConfig
from reseller_billing.storage.models import NewInvoice, Representative
from reseller_billing.storage.repository import BillingRepository

from .pricing import InvoiceCalculation, calculate_invoice_amount, invoice_amount
from .spreadsheet import UnsupportedFileError, convert_file_to_csv, validate_file
from .tiers import UsageRecord
from .usage_parser import parse_usage_csv

logger = logging.getLogger(__name__)

TELEGRAM_BASE_URL = "https://t.me"


@dataclass(frozen=True)
class InvoiceDraft:
    """A priced invoice for one representative, not yet persisted."""
    representative: Representative
    record: UsageRecord
    calculation: InvoiceCalculation
    amount: int
    due_date: datetime

    def data(self) -> Dict[str, Any]:
        """Usage and calculation document stored with the invoice."""
        return {
            "limited_usage": _plain_numbers(self.record.limited_usage),
            "unlimited_usage": _plain_numbers(self.record.unlimited_usage),
            "calculations": self.calculation.to_dict(),
        }


@dataclass
class AssemblyResult:
    """Invoice drafts plus the accounts that could not be billed."""
    drafts: List[InvoiceDraft] = field(default_factory=list)
    unmatched_accounts: List[str] = field(default_factory=list)
    inactive_accounts: List[str] = field(default_factory=list)


@dataclass
class ImportSummary:
    """Outcome of importing one usage file."""
    import_id: int
    processed_rows: int
    skipped_rows: int
    invoice_ids: List[int]
    errors: List[str]

    @property
    def generated_invoices(self) -> int:
        return len(self.invoice_ids)


def assemble_invoices(
    records: Iterable[UsageRecord],
    representatives: Mapping[str, Representative],
    due_date: datetime
) -> AssemblyResult:
    """Price each usage record against its representative's price table.

    Args:
        records: Parsed usage records, in file order
        representatives: Representatives keyed by account id (case-sensitive)
        due_date: Due date given to every draft

    Returns:
        AssemblyResult with one draft per billable, active representative
    """
    result = AssemblyResult()
    for record in records:
        representative = representatives.get(record.account_id)
        if representative is None:
            result.unmatched_accounts.append(record.account_id)
            continue
        if representative.status != "active":
            result.inactive_accounts.append(record.account_id)
            continue

        calculation = calculate_invoice_amount(record, representative.pricing)
        result.drafts.append(InvoiceDraft(
            representative=representative,
            record=record,
            calculation=calculation,
            amount=invoice_amount(calculation),
            due_date=due_date
        ))
    return result


def generate_telegram_link(
    telegram_id: Optional[str],
    invoice_id: int,
    amount: int,
    due_date: datetime
) -> str:
    """Build a Telegram deep link carrying the invoice message.

    Returns an empty string when the representative has no Telegram id.
    """
    if not telegram_id:
        return ""

    handle = telegram_id.replace("@", "")
    message = (
        f"🧾 فاکتور جدید شماره {invoice_id}\n"
        f"💰 مبلغ: {amount} تومان\n"
        f"📅 سررسید: {due_date.date().isoformat()}\n"
        f"🔗 برای پرداخت کلیک کنید"
    )
    return f"{TELEGRAM_BASE_URL}/{handle}?text={quote(message, safe='')}"


def import_usage_file(
    filename: str,
    content: bytes,
    repository: BillingRepository,
    settings: AppConfig,
    now: Optional[datetime] = None
) -> ImportSummary:
    """Turn an uploaded usage file into persisted invoices.

    The import is recorded as a file import whose status ends as
    ``completed`` (with row counts and diagnostics) or ``failed``. Invoices
    are persisted in one transaction, so a failed import leaves none behind.

    Args:
        filename: Original upload name
        content: Raw upload bytes
        repository: Billing repository to persist into
        settings: Application configuration
        now: Reference time for due dates (defaults to the current time)

    Returns:
        ImportSummary of the processed file

    Raises:
        UnsupportedFileError: If the upload is invalid or unreadable
        Exception: Any later failure, re-raised after the import is marked failed
    """
    now = now or datetime.now()

    validation = validate_file(filename, len(content), max_bytes=settings.upload.max_bytes)
    if not validation.is_valid:
        raise UnsupportedFileError(validation.error)

    file_import = repository.create_file_import(filename)
    logger.info("Processing usage file %s (import %d)", filename, file_import.id)

    try:
        csv_content = convert_file_to_csv(filename, content)
        parsed = parse_usage_csv(csv_content)
        assembly = assemble_invoices(
            parsed.records,
            repository.representatives_by_admin_username(),
            due_date=now + timedelta(days=settings.billing.due_days)
        )
        invoice_ids = repository.create_invoices(
            [
                NewInvoice(
                    representative_id=draft.representative.id,
                    amount=draft.amount,
                    due_date=draft.due_date,
                    data=draft.data(),
                    telegram_id=draft.representative.telegram_id
                )
                for draft in assembly.drafts
            ],
            created_at=now,
            link_for=lambda new, invoice_id: generate_telegram_link(
                new.telegram_id, invoice_id, new.amount, new.due_date
            )
        )
    except Exception as e:
        logger.error("Import of %s failed: %s", filename, e)
        repository.update_file_import(file_import.id, status="failed", errors=[str(e)])
        raise

    errors = list(parsed.errors)
    errors.extend(f"Unknown representative: {account}" for account in assembly.unmatched_accounts)
    errors.extend(f"Inactive representative: {account}" for account in assembly.inactive_accounts)

    repository.update_file_import(
        file_import.id,
        status="completed",
        processed_rows=parsed.total_rows,
        generated_invoices=len(invoice_ids),
        errors=errors
    )
    logger.info(
        "Imported %s: %d rows, %d invoices, %d issues",
        filename, parsed.total_rows, len(invoice_ids), len(errors)
    )

    return ImportSummary(
        import_id=file_import.id,
        processed_rows=parsed.total_rows,
        skipped_rows=parsed.skipped_rows,
        invoice_ids=invoice_ids,
        errors=errors
    )


def _plain_numbers(usage: Mapping[str, Any]) -> Dict[str, Any]:
    return {tier: quantity if isinstance(quantity, int) else float(quantity)
            for tier, quantity in usage.items()}
