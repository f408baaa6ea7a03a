"""
CLI interface for Reseller Billing.

Provides command-line access to usage imports, payments and statistics.
"""

import logging
import sys
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from reseller_billing.config.loader import AppConfig, load_config
from reseller_billing.core.invoicing import import_usage_file
from reseller_billing.core.spreadsheet import convert_file_to_csv
from reseller_billing.core.tiers import TIERS
from reseller_billing.core.usage_parser import ParseResult, parse_usage_csv
from reseller_billing.demo.seed_demo_data import SAMPLE_USAGE_CSV, seed_demo_data
from reseller_billing.storage.db import DEFAULT_DB_PATH
from reseller_billing.storage.repository import get_repository

app = typer.Typer()
console = Console()

EXIT_CODE_PASS = 0
EXIT_CODE_FAIL = 1

DB_OPTION = typer.Option(None, "--db", help="Path to the SQLite database")


def _load_settings(config_path: Optional[str]) -> AppConfig:
    return load_config(config_path) if config_path else AppConfig.default()


def _db_path(db: Optional[str], settings: Optional[AppConfig] = None) -> str:
    if db:
        return db
    return settings.storage.db_path if settings else DEFAULT_DB_PATH


def _fail(error: Exception) -> None:
    console.print(f"[red]Error:[/] {str(error)}")
    sys.exit(EXIT_CODE_FAIL)


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging")
):
    """Reseller Billing CLI."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s"
    )
    if ctx.invoked_subcommand is None:
        console.print("Reseller Billing - Use --help to see available commands")


@app.command()
def init(db: Optional[str] = DB_OPTION):
    """Initialize the billing database."""
    try:
        get_repository(_db_path(db)).initialize_schema()
        console.print("[green]✓[/] Database initialized successfully")
        sys.exit(EXIT_CODE_PASS)
    except Exception as e:
        console.print(f"[red]Error initializing database:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)


@app.command()
def parse(file: Path = typer.Argument(..., exists=True, dir_okay=False, help="Usage file to parse")):
    """
    Parse a usage file and show the extracted usage.

    Read-only: nothing is written to the database.
    """
    try:
        result = parse_usage_csv(convert_file_to_csv(file.name, file.read_bytes()))
    except Exception as e:
        _fail(e)

    _display_parse_result(result)
    sys.exit(EXIT_CODE_PASS)


@app.command("load-representatives")
def load_representatives(
    config: Path = typer.Argument(..., exists=True, dir_okay=False, help="YAML settings file"),
    db: Optional[str] = DB_OPTION
):
    """Create or update representatives from the settings roster."""
    try:
        settings = load_config(str(config))
        repository = get_repository(_db_path(db, settings))
        repository.initialize_schema()
        for rep in settings.representatives.values():
            repository.upsert_representative(
                full_name=rep.full_name,
                admin_username=rep.admin_username,
                pricing=rep.pricing,
                telegram_id=rep.telegram_id,
                phone_number=rep.phone_number,
                store_name=rep.store_name,
                status=rep.status
            )
    except Exception as e:
        _fail(e)

    console.print(f"[green]✓[/] Loaded {len(settings.representatives)} representatives")
    sys.exit(EXIT_CODE_PASS)


@app.command("import")
def import_file(
    file: Path = typer.Argument(..., exists=True, dir_okay=False, help="Usage file to import"),
    config: Optional[str] = typer.Option(None, "--config", "-c", help="YAML settings file"),
    db: Optional[str] = DB_OPTION
):
    """
    Import a usage file and issue invoices.

    Each billable row is matched to a representative by admin_username and
    priced with that representative's price table.
    """
    try:
        settings = _load_settings(config)
        repository = get_repository(_db_path(db, settings))
        repository.initialize_schema()
        summary = import_usage_file(file.name, file.read_bytes(), repository, settings)
    except Exception as e:
        _fail(e)

    console.print(f"\n[bold]Import #{summary.import_id}[/bold] {file.name}")
    console.print(f"Processed rows: {summary.processed_rows}")
    console.print(f"Skipped rows: {summary.skipped_rows}")
    console.print(f"Generated invoices: {summary.generated_invoices}")
    for error in summary.errors:
        console.print(f"[yellow]![/] {error}")
    sys.exit(EXIT_CODE_PASS)


@app.command()
def pay(
    account: str = typer.Argument(..., help="Representative admin_username"),
    amount: int = typer.Argument(..., help="Amount paid in whole currency units"),
    invoice: Optional[int] = typer.Option(None, "--invoice", "-i", help="Invoice being paid"),
    payment_type: str = typer.Option("manual", "--type", "-t", help="full, partial or manual"),
    description: Optional[str] = typer.Option(None, "--description", "-d"),
    db: Optional[str] = DB_OPTION
):
    """Record a payment and credit the representative balance."""
    try:
        repository = get_repository(_db_path(db))
        representative = repository.get_representative_by_admin_username(account)
        if representative is None:
            raise LookupError(f"Representative not found: {account}")
        repository.create_payment(
            representative_id=representative.id,
            amount=amount,
            type=payment_type,
            invoice_id=invoice,
            description=description
        )
        balance = repository.get_representative(representative.id).balance
    except Exception as e:
        _fail(e)

    console.print(f"[green]✓[/] Payment recorded. Balance of {account}: {_format_currency(balance)}")
    sys.exit(EXIT_CODE_PASS)


@app.command()
def stats(db: Optional[str] = DB_OPTION):
    """Show dashboard statistics."""
    try:
        repository = get_repository(_db_path(db))
        dashboard = repository.get_dashboard_stats()
        weekly = repository.get_weekly_analytics()
    except Exception as e:
        _fail(e)

    table = Table(title="Dashboard")
    table.add_column("Metric")
    table.add_column("Value", justify="right")
    table.add_row("Representatives", str(dashboard["total_representatives"]))
    table.add_row("Active representatives", str(dashboard["active_representatives"]))
    table.add_row("Invoices", str(dashboard["total_invoices"]))
    table.add_row("Invoices today", str(dashboard["today_invoices"]))
    table.add_row("Monthly revenue", _format_currency(dashboard["monthly_revenue"]))
    table.add_row("Overdue invoices", str(dashboard["overdue_invoices"]))
    table.add_row("Invoices this week", str(weekly["weekly_invoices"]))
    table.add_row("Payments this week", str(weekly["weekly_payments"]))
    console.print(table)
    sys.exit(EXIT_CODE_PASS)


@app.command()
def demo(db: Optional[str] = DB_OPTION):
    """Seed demo representatives and import the sample usage sheet."""
    try:
        repository = get_repository(_db_path(db))
        representatives = seed_demo_data(repository)
        summary = import_usage_file(
            "demo.csv", SAMPLE_USAGE_CSV.encode("utf-8"), repository, AppConfig.default()
        )
    except Exception as e:
        _fail(e)

    console.print(
        f"[green]✓[/] Seeded {len(representatives)} representatives "
        f"and {summary.generated_invoices} invoices"
    )
    sys.exit(EXIT_CODE_PASS)


def _format_currency(amount) -> str:
    """Format an amount with thousands separators."""
    return f"{amount:,} تومان"


def _format_usage(usage) -> str:
    return ", ".join(f"{tier}: {usage[tier]}" for tier in TIERS if tier in usage) or "-"


def _display_parse_result(result: ParseResult) -> None:
    """Display parsed usage records and parse diagnostics."""
    console.print("\n[bold]Usage File[/bold]")
    console.print("-" * 40)

    if result.records:
        table = Table()
        table.add_column("Account")
        table.add_column("Limited (GB)")
        table.add_column("Unlimited (months)")
        table.add_column("Total limited", justify="right")
        table.add_column("Total unlimited", justify="right")
        for record in result.records:
            table.add_row(
                record.account_id,
                _format_usage(record.limited_usage),
                _format_usage(record.unlimited_usage),
                str(record.total_limited),
                str(record.total_unlimited)
            )
        console.print(table)
    else:
        console.print("\n[dim]No billable usage found.[/]")

    console.print(f"Rows: {result.total_rows}")
    console.print(f"Records: {len(result.records)}")
    console.print(f"Skipped: {result.skipped_rows}")
    for error in result.errors:
        console.print(f"[red]{error}[/]")


if __name__ == "__main__":
    app()
