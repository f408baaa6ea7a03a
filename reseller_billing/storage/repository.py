"""
Repository pattern for data access.

Handles database operations and data persistence logic.
"""

import json
import logging
import sqlite3
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Sequence

from reseller_billing.core.pricing import PriceTable

from .db import DEFAULT_DB_PATH, get_connection, transaction
from .models import (
    FileImport,
    IMPORT_STATUSES,
    INVOICE_STATUSES,
    Invoice,
    NewInvoice,
    PAYMENT_TYPES,
    Payment,
    REPRESENTATIVE_STATUSES,
    Representative,
)

logger = logging.getLogger(__name__)

SCHEMA = """
    CREATE TABLE IF NOT EXISTS representative (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        full_name TEXT NOT NULL,
        admin_username TEXT NOT NULL UNIQUE,
        telegram_id TEXT,
        phone_number TEXT,
        store_name TEXT,
        status TEXT NOT NULL DEFAULT 'active',
        balance INTEGER NOT NULL DEFAULT 0,
        pricing TEXT NOT NULL,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    );
    CREATE TABLE IF NOT EXISTS invoice (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        representative_id INTEGER NOT NULL REFERENCES representative(id),
        amount INTEGER NOT NULL,
        status TEXT NOT NULL DEFAULT 'pending',
        due_date TEXT NOT NULL,
        paid_at TEXT,
        data TEXT,
        telegram_link TEXT,
        created_at TEXT NOT NULL
    );
    CREATE TABLE IF NOT EXISTS payment (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        representative_id INTEGER NOT NULL REFERENCES representative(id),
        invoice_id INTEGER REFERENCES invoice(id),
        amount INTEGER NOT NULL,
        type TEXT NOT NULL,
        description TEXT,
        created_at TEXT NOT NULL
    );
    CREATE TABLE IF NOT EXISTS file_import (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        filename TEXT NOT NULL,
        status TEXT NOT NULL,
        processed_rows INTEGER NOT NULL DEFAULT 0,
        generated_invoices INTEGER NOT NULL DEFAULT 0,
        errors TEXT NOT NULL DEFAULT '[]',
        created_at TEXT NOT NULL
    );
"""


def _parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


def _row_to_representative(row: sqlite3.Row) -> Representative:
    return Representative(
        id=row["id"],
        full_name=row["full_name"],
        admin_username=row["admin_username"],
        telegram_id=row["telegram_id"],
        phone_number=row["phone_number"],
        store_name=row["store_name"],
        status=row["status"],
        balance=row["balance"],
        pricing=PriceTable.from_dict(json.loads(row["pricing"])),
        created_at=_parse_timestamp(row["created_at"]),
        updated_at=_parse_timestamp(row["updated_at"])
    )


def _row_to_invoice(row: sqlite3.Row) -> Invoice:
    return Invoice(
        id=row["id"],
        representative_id=row["representative_id"],
        amount=row["amount"],
        status=row["status"],
        due_date=datetime.fromisoformat(row["due_date"]),
        paid_at=_parse_timestamp(row["paid_at"]),
        data=json.loads(row["data"]) if row["data"] else {},
        telegram_link=row["telegram_link"],
        created_at=_parse_timestamp(row["created_at"])
    )


def _row_to_payment(row: sqlite3.Row) -> Payment:
    return Payment(
        id=row["id"],
        representative_id=row["representative_id"],
        invoice_id=row["invoice_id"],
        amount=row["amount"],
        type=row["type"],
        description=row["description"],
        created_at=_parse_timestamp(row["created_at"])
    )


def _row_to_file_import(row: sqlite3.Row) -> FileImport:
    return FileImport(
        id=row["id"],
        filename=row["filename"],
        status=row["status"],
        processed_rows=row["processed_rows"],
        generated_invoices=row["generated_invoices"],
        errors=json.loads(row["errors"]),
        created_at=_parse_timestamp(row["created_at"])
    )


def _check_choice(value: str, allowed, name: str) -> None:
    if value not in allowed:
        raise ValueError(f"{name} must be one of: {list(allowed)}")


def _insert_invoice(
    conn: sqlite3.Connection,
    representative_id: int,
    amount: int,
    due_date: datetime,
    data: Optional[Dict[str, Any]],
    status: str,
    created_at: datetime
) -> int:
    cursor = conn.execute("""
        INSERT INTO invoice
        (representative_id, amount, status, due_date, paid_at, data, created_at)
        VALUES (?, ?, ?, ?, ?, ?, ?)
    """, (
        representative_id,
        amount,
        status,
        due_date.isoformat(),
        created_at.isoformat() if status == "paid" else None,
        json.dumps(data) if data is not None else None,
        created_at.isoformat()
    ))
    return cursor.lastrowid


class BillingRepository:
    """Repository for representatives, invoices, payments and file imports.

    Every method opens its own connection; writes that touch several rows
    run in a single transaction.
    """

    def __init__(self, db_path: str = DEFAULT_DB_PATH):
        """Initialize the repository with a database path.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = db_path

    def initialize_schema(self) -> None:
        """Create the billing tables if they don't exist."""
        conn = get_connection(self.db_path)
        try:
            conn.executescript(SCHEMA)
            conn.commit()
        finally:
            conn.close()

    # Representatives

    def create_representative(
        self,
        full_name: str,
        admin_username: str,
        pricing: PriceTable,
        telegram_id: Optional[str] = None,
        phone_number: Optional[str] = None,
        store_name: Optional[str] = None,
        status: str = "active"
    ) -> Representative:
        """Insert a new representative.

        Raises:
            ValueError: If the status is invalid or the username is taken
        """
        _check_choice(status, REPRESENTATIVE_STATUSES, "status")
        now = datetime.now().isoformat()
        try:
            with transaction(self.db_path) as conn:
                cursor = conn.execute("""
                    INSERT INTO representative
                    (full_name, admin_username, telegram_id, phone_number, store_name,
                     status, balance, pricing, created_at, updated_at)
                    VALUES (?, ?, ?, ?, ?, ?, 0, ?, ?, ?)
                """, (
                    full_name,
                    admin_username,
                    telegram_id,
                    phone_number,
                    store_name,
                    status,
                    json.dumps(pricing.to_dict()),
                    now,
                    now
                ))
                representative_id = cursor.lastrowid
        except sqlite3.IntegrityError:
            raise ValueError(f"Representative already exists: {admin_username}")

        logger.info("Created representative %s (id=%d)", admin_username, representative_id)
        return self.get_representative(representative_id)

    def upsert_representative(
        self,
        full_name: str,
        admin_username: str,
        pricing: PriceTable,
        telegram_id: Optional[str] = None,
        phone_number: Optional[str] = None,
        store_name: Optional[str] = None,
        status: str = "active"
    ) -> Representative:
        """Create a representative or update the profile and pricing of an existing one.

        The balance of an existing representative is left untouched.
        """
        existing = self.get_representative_by_admin_username(admin_username)
        if existing is None:
            return self.create_representative(
                full_name, admin_username, pricing,
                telegram_id=telegram_id,
                phone_number=phone_number,
                store_name=store_name,
                status=status
            )

        _check_choice(status, REPRESENTATIVE_STATUSES, "status")
        with transaction(self.db_path) as conn:
            conn.execute("""
                UPDATE representative
                SET full_name = ?, telegram_id = ?, phone_number = ?, store_name = ?,
                    status = ?, pricing = ?, updated_at = ?
                WHERE id = ?
            """, (
                full_name,
                telegram_id,
                phone_number,
                store_name,
                status,
                json.dumps(pricing.to_dict()),
                datetime.now().isoformat(),
                existing.id
            ))
        return self.get_representative(existing.id)

    def get_representative(self, representative_id: int) -> Representative:
        """Get a representative by id.

        Raises:
            LookupError: If no such representative exists
        """
        conn = get_connection(self.db_path)
        try:
            row = conn.execute(
                "SELECT * FROM representative WHERE id = ?", (representative_id,)
            ).fetchone()
        finally:
            conn.close()
        if row is None:
            raise LookupError(f"Representative not found: {representative_id}")
        return _row_to_representative(row)

    def get_representative_by_admin_username(self, admin_username: str) -> Optional[Representative]:
        """Get a representative by its usage-file account id (case-sensitive)."""
        conn = get_connection(self.db_path)
        try:
            row = conn.execute(
                "SELECT * FROM representative WHERE admin_username = ?", (admin_username,)
            ).fetchone()
        finally:
            conn.close()
        return _row_to_representative(row) if row else None

    def list_representatives(self, status: Optional[str] = None) -> List[Representative]:
        """List representatives ordered by name."""
        conn = get_connection(self.db_path)
        try:
            query = "SELECT * FROM representative"
            params = []
            if status:
                query += " WHERE status = ?"
                params.append(status)
            query += " ORDER BY full_name"
            rows = conn.execute(query, params).fetchall()
        finally:
            conn.close()
        return [_row_to_representative(row) for row in rows]

    def representatives_by_admin_username(self) -> Dict[str, Representative]:
        """All representatives keyed by account id."""
        return {rep.admin_username: rep for rep in self.list_representatives()}

    def delete_representative(self, representative_id: int) -> None:
        """Delete a representative that has no invoices or payments.

        Raises:
            LookupError: If no such representative exists
            ValueError: If invoices or payments still reference it
        """
        try:
            with transaction(self.db_path) as conn:
                cursor = conn.execute(
                    "DELETE FROM representative WHERE id = ?", (representative_id,)
                )
                if cursor.rowcount == 0:
                    raise LookupError(f"Representative not found: {representative_id}")
        except sqlite3.IntegrityError:
            raise ValueError(
                f"Representative {representative_id} has invoices or payments and cannot be deleted"
            )
        logger.info("Deleted representative %d", representative_id)

    # Invoices

    def create_invoice(
        self,
        representative_id: int,
        amount: int,
        due_date: datetime,
        data: Optional[Dict[str, Any]] = None,
        status: str = "pending",
        created_at: Optional[datetime] = None
    ) -> Invoice:
        """Insert an invoice for a representative."""
        _check_choice(status, INVOICE_STATUSES, "status")
        created_at = created_at or datetime.now()
        with transaction(self.db_path) as conn:
            invoice_id = _insert_invoice(
                conn, representative_id, amount, due_date, data, status, created_at
            )
        return self.get_invoice(invoice_id)

    def create_invoices(
        self,
        invoices: Sequence[NewInvoice],
        created_at: Optional[datetime] = None,
        link_for: Optional[Callable[[NewInvoice, int], str]] = None
    ) -> List[int]:
        """Insert a batch of pending invoices in a single transaction.

        Args:
            invoices: Invoices to insert, in order
            created_at: Creation time shared by the batch (defaults to now)
            link_for: Builds the Telegram link of an inserted invoice from its
                new id; an empty link leaves the invoice without one

        Returns:
            Ids of the inserted invoices, in input order

        If any insert or link fails, no invoice of the batch is kept.
        """
        created_at = created_at or datetime.now()
        invoice_ids = []
        with transaction(self.db_path) as conn:
            for new in invoices:
                invoice_id = _insert_invoice(
                    conn, new.representative_id, new.amount, new.due_date,
                    new.data, "pending", created_at
                )
                link = link_for(new, invoice_id) if link_for else ""
                if link:
                    conn.execute(
                        "UPDATE invoice SET telegram_link = ? WHERE id = ?",
                        (link, invoice_id)
                    )
                invoice_ids.append(invoice_id)
        return invoice_ids

    def get_invoice(self, invoice_id: int) -> Invoice:
        """Get an invoice by id.

        Raises:
            LookupError: If no such invoice exists
        """
        conn = get_connection(self.db_path)
        try:
            row = conn.execute("SELECT * FROM invoice WHERE id = ?", (invoice_id,)).fetchone()
        finally:
            conn.close()
        if row is None:
            raise LookupError(f"Invoice not found: {invoice_id}")
        return _row_to_invoice(row)

    def list_invoices(
        self,
        representative_id: Optional[int] = None,
        status: Optional[str] = None
    ) -> List[Invoice]:
        """List invoices, newest first, with optional filters."""
        conn = get_connection(self.db_path)
        try:
            query = "SELECT * FROM invoice"
            params = []
            conditions = []

            if representative_id is not None:
                conditions.append("representative_id = ?")
                params.append(representative_id)
            if status:
                conditions.append("status = ?")
                params.append(status)

            if conditions:
                query += " WHERE " + " AND ".join(conditions)
            query += " ORDER BY created_at DESC, id DESC"

            rows = conn.execute(query, params).fetchall()
        finally:
            conn.close()
        return [_row_to_invoice(row) for row in rows]

    def update_invoice_status(self, invoice_id: int, status: str) -> Invoice:
        """Change an invoice status; marking it paid records the payment time."""
        _check_choice(status, INVOICE_STATUSES, "status")
        paid_at = datetime.now().isoformat() if status == "paid" else None
        with transaction(self.db_path) as conn:
            cursor = conn.execute(
                "UPDATE invoice SET status = ?, paid_at = ? WHERE id = ?",
                (status, paid_at, invoice_id)
            )
            if cursor.rowcount == 0:
                raise LookupError(f"Invoice not found: {invoice_id}")
        return self.get_invoice(invoice_id)

    def set_invoice_telegram_link(self, invoice_id: int, telegram_link: str) -> None:
        with transaction(self.db_path) as conn:
            conn.execute(
                "UPDATE invoice SET telegram_link = ? WHERE id = ?",
                (telegram_link, invoice_id)
            )

    # Payments

    def create_payment(
        self,
        representative_id: int,
        amount: int,
        type: str,
        invoice_id: Optional[int] = None,
        description: Optional[str] = None
    ) -> Payment:
        """Record a payment and credit it to the representative balance atomically.

        Raises:
            ValueError: If the amount is not positive or the type is invalid
            LookupError: If the representative does not exist
        """
        if amount <= 0:
            raise ValueError("amount must be > 0")
        _check_choice(type, PAYMENT_TYPES, "type")
        now = datetime.now().isoformat()

        with transaction(self.db_path) as conn:
            cursor = conn.execute(
                "UPDATE representative SET balance = balance + ?, updated_at = ? WHERE id = ?",
                (amount, now, representative_id)
            )
            if cursor.rowcount == 0:
                raise LookupError(f"Representative not found: {representative_id}")
            cursor = conn.execute("""
                INSERT INTO payment
                (representative_id, invoice_id, amount, type, description, created_at)
                VALUES (?, ?, ?, ?, ?, ?)
            """, (representative_id, invoice_id, amount, type, description, now))
            payment_id = cursor.lastrowid

        logger.info("Recorded %s payment of %d for representative %d", type, amount, representative_id)
        conn = get_connection(self.db_path)
        try:
            row = conn.execute("SELECT * FROM payment WHERE id = ?", (payment_id,)).fetchone()
        finally:
            conn.close()
        return _row_to_payment(row)

    def list_payments(self, representative_id: Optional[int] = None) -> List[Payment]:
        """List payments, newest first."""
        conn = get_connection(self.db_path)
        try:
            query = "SELECT * FROM payment"
            params = []
            if representative_id is not None:
                query += " WHERE representative_id = ?"
                params.append(representative_id)
            query += " ORDER BY created_at DESC, id DESC"
            rows = conn.execute(query, params).fetchall()
        finally:
            conn.close()
        return [_row_to_payment(row) for row in rows]

    # File imports

    def create_file_import(self, filename: str, status: str = "processing") -> FileImport:
        _check_choice(status, IMPORT_STATUSES, "status")
        with transaction(self.db_path) as conn:
            cursor = conn.execute(
                "INSERT INTO file_import (filename, status, created_at) VALUES (?, ?, ?)",
                (filename, status, datetime.now().isoformat())
            )
            import_id = cursor.lastrowid
        return self.get_file_import(import_id)

    def update_file_import(
        self,
        import_id: int,
        status: str,
        processed_rows: Optional[int] = None,
        generated_invoices: Optional[int] = None,
        errors: Optional[List[str]] = None
    ) -> FileImport:
        """Update the status and counters of a file import; omitted fields keep their value."""
        _check_choice(status, IMPORT_STATUSES, "status")
        assignments = ["status = ?"]
        params: List[Any] = [status]
        if processed_rows is not None:
            assignments.append("processed_rows = ?")
            params.append(processed_rows)
        if generated_invoices is not None:
            assignments.append("generated_invoices = ?")
            params.append(generated_invoices)
        if errors is not None:
            assignments.append("errors = ?")
            params.append(json.dumps(errors))
        params.append(import_id)

        with transaction(self.db_path) as conn:
            cursor = conn.execute(
                f"UPDATE file_import SET {', '.join(assignments)} WHERE id = ?", params
            )
            if cursor.rowcount == 0:
                raise LookupError(f"File import not found: {import_id}")
        return self.get_file_import(import_id)

    def get_file_import(self, import_id: int) -> FileImport:
        conn = get_connection(self.db_path)
        try:
            row = conn.execute("SELECT * FROM file_import WHERE id = ?", (import_id,)).fetchone()
        finally:
            conn.close()
        if row is None:
            raise LookupError(f"File import not found: {import_id}")
        return _row_to_file_import(row)

    def list_file_imports(self) -> List[FileImport]:
        """List file imports, newest first."""
        conn = get_connection(self.db_path)
        try:
            rows = conn.execute(
                "SELECT * FROM file_import ORDER BY created_at DESC, id DESC"
            ).fetchall()
        finally:
            conn.close()
        return [_row_to_file_import(row) for row in rows]

    # Dashboard

    def get_dashboard_stats(self, now: Optional[datetime] = None) -> Dict[str, int]:
        """Get headline statistics for the dashboard.

        Args:
            now: Reference time (defaults to the current time)

        Returns:
            Dictionary with representative and invoice counts, the revenue of
            invoices paid this month and the number of overdue invoices
        """
        now = now or datetime.now()
        today = now.replace(hour=0, minute=0, second=0, microsecond=0)
        month_start = today.replace(day=1)

        conn = get_connection(self.db_path)
        try:
            def scalar(query: str, params=()) -> int:
                return conn.execute(query, params).fetchone()[0] or 0

            return {
                "total_representatives": scalar("SELECT COUNT(*) FROM representative"),
                "active_representatives": scalar(
                    "SELECT COUNT(*) FROM representative WHERE status = 'active'"
                ),
                "total_invoices": scalar("SELECT COUNT(*) FROM invoice"),
                "today_invoices": scalar(
                    "SELECT COUNT(*) FROM invoice WHERE created_at >= ? AND created_at < ?",
                    (today.isoformat(), (today + timedelta(days=1)).isoformat())
                ),
                "monthly_revenue": scalar(
                    "SELECT COALESCE(SUM(amount), 0) FROM invoice "
                    "WHERE status = 'paid' AND created_at >= ?",
                    (month_start.isoformat(),)
                ),
                "overdue_invoices": scalar(
                    "SELECT COUNT(*) FROM invoice WHERE status = 'pending' AND due_date <= ?",
                    (today.isoformat(),)
                ),
            }
        finally:
            conn.close()

    def get_weekly_analytics(self, now: Optional[datetime] = None) -> Dict[str, int]:
        """Count invoices and payments created in the seven days up to ``now``.

        Also reports the number of active representatives.
        """
        now = now or datetime.now()
        week_start = (now - timedelta(days=7)).isoformat()
        until = now.isoformat()

        conn = get_connection(self.db_path)
        try:
            def count(query: str, params=()) -> int:
                return conn.execute(query, params).fetchone()[0]

            return {
                "weekly_invoices": count(
                    "SELECT COUNT(*) FROM invoice WHERE created_at >= ? AND created_at <= ?",
                    (week_start, until)
                ),
                "weekly_payments": count(
                    "SELECT COUNT(*) FROM payment WHERE created_at >= ? AND created_at <= ?",
                    (week_start, until)
                ),
                "active_representatives": count(
                    "SELECT COUNT(*) FROM representative WHERE status = 'active'"
                ),
            }
        finally:
            conn.close()


# Global repository instance
_default_repository: Optional[BillingRepository] = None


def get_repository(db_path: str = DEFAULT_DB_PATH) -> BillingRepository:
    """Get a repository instance.

    The instance for the default path is shared; other paths get a fresh
    repository.

    Args:
        db_path: Path to SQLite database file

    Returns:
        An instance of BillingRepository
    """
    global _default_repository
    if db_path != DEFAULT_DB_PATH:
        return BillingRepository(db_path)
    if _default_repository is None:
        _default_repository = BillingRepository(db_path)
    return _default_repository


def initialize_schema(db_path: str = DEFAULT_DB_PATH) -> None:
    """Create the billing tables if they don't exist.

    Args:
        db_path: Path to SQLite database file
    """
    BillingRepository(db_path).initialize_schema()
