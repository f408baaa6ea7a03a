"""
Pricing calculations and price tables.

Turns a representative's usage into billable amounts with a per-tier breakdown.
"""

from dataclasses import dataclass, field
from decimal import Decimal, ROUND_CEILING
from typing import Any, Callable, Dict, Mapping

from .tiers import TIERS, Quantity, UsageRecord

# Price field for each limited tier, in tier order
LIMITED_PRICE_FIELDS = dict(zip(TIERS, (
    "limited_1_month",
    "limited_2_month",
    "limited_3_month",
    "limited_4_month",
    "limited_5_month",
    "limited_6_month",
)))
UNLIMITED_PRICE_FIELD = "unlimited_monthly"
PRICE_FIELDS = tuple(LIMITED_PRICE_FIELDS.values()) + (UNLIMITED_PRICE_FIELD,)

# Key names used by exported price tables (limited1Month, ..., unlimitedMonthly)
_CAMEL_CASE_FIELDS = {
    f"limited{n}Month": name for n, name in enumerate(LIMITED_PRICE_FIELDS.values(), start=1)
}
_CAMEL_CASE_FIELDS["unlimitedMonthly"] = UNLIMITED_PRICE_FIELD


@dataclass(frozen=True)
class PriceTable:
    """Unit prices of a representative in whole currency units.

    Six per-gigabyte prices for limited tiers plus one flat monthly price
    for unlimited subscriptions, regardless of tier.
    """
    limited_1_month: int = 0
    limited_2_month: int = 0
    limited_3_month: int = 0
    limited_4_month: int = 0
    limited_5_month: int = 0
    limited_6_month: int = 0
    unlimited_monthly: int = 0

    def __post_init__(self):
        """Validate prices are non-negative integers."""
        for name in PRICE_FIELDS:
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int):
                raise ValueError(f"{name} must be an integer")
            if value < 0:
                raise ValueError(f"{name} cannot be negative")

    def limited_price(self, tier: str) -> int:
        """Per-gigabyte price for a limited tier, 0 for unknown tiers."""
        name = LIMITED_PRICE_FIELDS.get(tier)
        return getattr(self, name) if name else 0

    def unlimited_price(self, tier: str) -> int:
        """Monthly price for unlimited usage; the same for every tier."""
        return self.unlimited_monthly

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "PriceTable":
        """Build a price table from snake_case or camelCase keys.

        Raises:
            ValueError: On unknown keys or invalid prices
        """
        prices = {}
        for key, value in data.items():
            name = _CAMEL_CASE_FIELDS.get(key, key)
            if name not in PRICE_FIELDS:
                raise ValueError(f"Unknown price field: {key}")
            prices[name] = value
        return cls(**prices)

    def to_dict(self) -> Dict[str, int]:
        return {name: getattr(self, name) for name in PRICE_FIELDS}


@dataclass(frozen=True)
class LineItem:
    """One priced tier; ``line_cost`` is exactly ``quantity * unit_price``."""
    quantity: Quantity
    unit_price: int
    line_cost: Quantity


@dataclass(frozen=True)
class InvoiceBreakdown:
    """Priced lines per tier for both usage categories."""
    limited: Dict[str, LineItem] = field(default_factory=dict)
    unlimited: Dict[str, LineItem] = field(default_factory=dict)


@dataclass(frozen=True)
class InvoiceCalculation:
    """Amounts owed for one usage record."""
    limited_total: Quantity
    unlimited_total: Quantity
    breakdown: InvoiceBreakdown

    @property
    def total(self) -> Quantity:
        return self.limited_total + self.unlimited_total

    def to_dict(self) -> Dict[str, Any]:
        """Serializable form embedded in persisted invoices."""
        return {
            "limited_total": _to_json_number(self.limited_total),
            "unlimited_total": _to_json_number(self.unlimited_total),
            "total": _to_json_number(self.total),
            "breakdown": {
                "limited": _lines_to_dict(self.breakdown.limited),
                "unlimited": _lines_to_dict(self.breakdown.unlimited),
            },
        }


def _price_lines(usage: Mapping[str, Quantity], price_for: Callable[[str], int]) -> Dict[str, LineItem]:
    return {
        tier: LineItem(
            quantity=quantity,
            unit_price=price_for(tier),
            line_cost=quantity * price_for(tier),
        )
        for tier, quantity in usage.items()
    }


def _lines_total(lines: Mapping[str, LineItem]) -> Quantity:
    return sum((line.line_cost for line in lines.values()), 0)


def calculate_invoice_amount(record: UsageRecord, pricing: PriceTable) -> InvoiceCalculation:
    """Calculate the amounts owed for a usage record.

    Limited usage is billed per gigabyte at the tier's price (0 when the
    tier has no price); unlimited usage is billed per month at the flat
    unlimited price. Integer arithmetic is exact at any magnitude.

    Quantities are not validated here; negative values are priced as given.

    Args:
        record: Usage of one representative
        pricing: The representative's price table

    Returns:
        InvoiceCalculation with totals and per-tier breakdown
    """
    limited = _price_lines(record.limited_usage, pricing.limited_price)
    unlimited = _price_lines(record.unlimited_usage, pricing.unlimited_price)

    return InvoiceCalculation(
        limited_total=_lines_total(limited),
        unlimited_total=_lines_total(unlimited),
        breakdown=InvoiceBreakdown(limited=limited, unlimited=unlimited),
    )


def invoice_amount(calculation: InvoiceCalculation) -> int:
    """Whole-currency amount to invoice.

    Fractional totals (from fractional gigabytes) are rounded toward
    positive infinity so an invoice never undercharges.
    """
    total = calculation.total
    if isinstance(total, int):
        return total
    return int(Decimal(total).to_integral_value(rounding=ROUND_CEILING))


def _to_json_number(value: Quantity):
    if isinstance(value, Decimal):
        return float(value)
    return value


def _lines_to_dict(lines: Mapping[str, LineItem]) -> Dict[str, Dict[str, Any]]:
    return {
        tier: {
            "quantity": _to_json_number(line.quantity),
            "unit_price": line.unit_price,
            "line_cost": _to_json_number(line.line_cost),
        }
        for tier, line in lines.items()
    }
