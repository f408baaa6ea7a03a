"""
Usage file parsing.

Turns the delimited text of an uploaded usage sheet into per-representative
usage records plus parse diagnostics.

Row layout: column 0 is the account identifier (``admin_username``),
the next six columns hold limited usage for each tier in ``TIERS`` order and
the following six hold unlimited usage in the same order.

Scanning stops at the first pair of consecutive blank lines. Rows after
that boundary are never seen: they are not counted, skipped or reported.
This lets a sheet carry trailing notes after a blank separator.
"""

import logging
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Callable, Dict, List, Optional

from .tiers import TIERS, Quantity, UsageRecord, limited_column, unlimited_column

logger = logging.getLogger(__name__)

HEADER_TOKEN = "admin_username"
NULL_ACCOUNT = "null"

# Largest usage value accepted is 10**18 - 1
MAX_QUANTITY_DIGITS = 18


@dataclass
class ParseResult:
    """Records extracted from a usage file with diagnostics."""
    records: List[UsageRecord] = field(default_factory=list)
    total_rows: int = 0
    skipped_rows: int = 0
    errors: List[str] = field(default_factory=list)


def split_csv_line(line: str) -> List[str]:
    """Split one line into stripped fields.
    
    A double quote toggles the quoted state and is dropped; commas inside
    quotes are kept as text. Unbalanced quotes never raise.
    """
    fields = []
    current = []
    in_quotes = False
    for char in line:
        if char == '"':
            in_quotes = not in_quotes
        elif char == ',' and not in_quotes:
            fields.append("".join(current).strip())
            current = []
        else:
            current.append(char)
    fields.append("".join(current).strip())
    return fields


def parse_quantity(raw: Optional[str]) -> Optional[Quantity]:
    """Parse a usage cell, returning None for blank, invalid or non-positive values.
    
    Values with more than ``MAX_QUANTITY_DIGITS`` integer digits and cells
    using ``_`` digit grouping are also treated as no usage.
    """
    if not raw or "_" in raw:
        return None
    try:
        value = Decimal(raw)
    except InvalidOperation:
        return None
    if not value.is_finite() or value <= 0:
        return None
    if value.adjusted() >= MAX_QUANTITY_DIGITS:
        return None
    if value == value.to_integral_value():
        return int(value)
    return value


def _tier_usage(columns: List[str], column_for: Callable[[int], int]) -> Dict[str, Quantity]:
    usage = {}
    for index, tier in enumerate(TIERS):
        column = column_for(index)
        quantity = parse_quantity(columns[column] if column < len(columns) else None)
        if quantity is not None:
            usage[tier] = quantity
    return usage


def _parse_row(columns: List[str]) -> Optional[UsageRecord]:
    """Build a record from one row, or None when the row carries no billable usage."""
    account_id = columns[0].strip() if columns else ""
    if not account_id or account_id.lower() == NULL_ACCOUNT:
        return None
    
    record = UsageRecord(
        account_id=account_id,
        limited_usage=_tier_usage(columns, limited_column),
        unlimited_usage=_tier_usage(columns, unlimited_column),
    )
    return record if record.is_billable else None


def parse_usage_csv(content: str) -> ParseResult:
    """Parse usage CSV content into usage records.
    
    Args:
        content: Full text of the usage file
        
    Returns:
        ParseResult with records in input order. Data problems never raise:
        rows without usage are counted in ``skipped_rows`` and unexpected row
        faults are reported in ``errors`` as ``"Row <line>: <message>"``.
    """
    lines = content.split("\n")
    result = ParseResult()
    
    # Skip header row if present
    start = 1 if HEADER_TOKEN in lines[0] else 0
    
    empty_rows = 0
    for index in range(start, len(lines)):
        line = lines[index].strip()
        
        # Two consecutive blank rows end the data section
        if not line:
            empty_rows += 1
            if empty_rows >= 2:
                logger.debug("Stopped parsing at blank separator on line %d", index + 1)
                break
            continue
        
        empty_rows = 0
        result.total_rows += 1
        
        try:
            columns = split_csv_line(line)
            if not columns:
                result.skipped_rows += 1
                continue
            
            record = _parse_row(columns)
            if record is None:
                result.skipped_rows += 1
            else:
                result.records.append(record)
        except Exception as e:
            logger.warning("Failed to parse usage row %d: %s", index + 1, e)
            result.errors.append(f"Row {index + 1}: {str(e) or 'Parse error'}")
    
    logger.info(
        "Parsed %d usage rows: %d records, %d skipped, %d errors",
        result.total_rows, len(result.records), result.skipped_rows, len(result.errors)
    )
    return result
