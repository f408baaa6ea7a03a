"""
Plan tiers and per-representative usage records.

Defines the ordered tier list shared by the parser and the calculator.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, Tuple, Union

Quantity = Union[int, Decimal]

# Fixed monthly tiers, in column order
TIERS: Tuple[str, ...] = ("1month", "2month", "3month", "4month", "5month", "6month")


@dataclass(frozen=True)
class UsageRecord:
    """Usage of one representative taken from a single row of a usage file.
    
    Tier mappings only carry tiers with positive usage. Totals are derived
    from the mappings and cannot be set independently.
    """
    account_id: str
    limited_usage: Dict[str, Quantity] = field(default_factory=dict)  # tier -> GB
    unlimited_usage: Dict[str, Quantity] = field(default_factory=dict)  # tier -> months
    
    @property
    def total_limited(self) -> Quantity:
        """Total limited usage in gigabytes."""
        return sum(self.limited_usage.values(), 0)
    
    @property
    def total_unlimited(self) -> Quantity:
        """Total unlimited subscription months."""
        return sum(self.unlimited_usage.values(), 0)
    
    @property
    def is_billable(self) -> bool:
        return self.total_limited > 0 or self.total_unlimited > 0


def limited_column(tier_index: int) -> int:
    """Column holding limited usage for the tier at ``tier_index``."""
    return 1 + tier_index


def unlimited_column(tier_index: int) -> int:
    """Column holding unlimited usage for the tier at ``tier_index``."""
    return 1 + len(TIERS) + tier_index
