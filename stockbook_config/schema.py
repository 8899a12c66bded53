"""
EngineConfig schema.

Typed, frozen configuration for one engine instance. YAML is parsed into
these types by the loader; services receive an EngineConfig and never read
files or environment variables themselves.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum


class InsufficientStockPolicy(str, Enum):
    """What a sale does when requested quantity exceeds available stock."""

    REJECT = "reject"
    PARTIAL = "partial"


@dataclass(frozen=True)
class JournalCategories:
    """Journal category names used by each posting."""

    sales: str = "Sales"
    payments: str = "Payments"
    inventory: str = "Inventory"
    opening_stock_asset: str = "Assets - Opening Stock Inventory"
    owner_capital: str = "Owner Capital - Opening Stock"
    payable_prefix: str = "Accounts Payable"
    receivable_prefix: str = "Accounts Receivable"
    reversals: str = "Payment Reversals"
    corrections: str = "Corrections"

    def payable(self, category: str | None) -> str:
        return f"{self.payable_prefix} - {category}" if category else self.payable_prefix

    def receivable(self, category: str | None) -> str:
        return f"{self.receivable_prefix} - {category}" if category else self.receivable_prefix


@dataclass(frozen=True)
class AgingBucketDef:
    """One aging bucket as declared in configuration."""

    name: str
    min_days: int
    max_days: int | None = None


@dataclass(frozen=True)
class EngineConfig:
    """
    Runtime configuration for a Bookkeeping instance.

    ``checksum`` identifies the source data this config was parsed from.
    """

    currency: str = "PHP"
    insufficient_stock_policy: InsufficientStockPolicy = InsufficientStockPolicy.REJECT
    low_stock_threshold: Decimal = Decimal("10")
    recent_journal_limit: int = 10
    profit_history_months: int = 6
    journal_categories: JournalCategories = JournalCategories()
    aging_buckets: tuple[AgingBucketDef, ...] = (
        AgingBucketDef("Current", 0, 0),
        AgingBucketDef("1-30", 1, 30),
        AgingBucketDef("31-60", 31, 60),
        AgingBucketDef("61-90", 61, 90),
        AgingBucketDef("Over 90", 91, None),
    )
    checksum: str = ""

    @property
    def allows_partial_fill(self) -> bool:
        return self.insufficient_stock_policy == InsufficientStockPolicy.PARTIAL
