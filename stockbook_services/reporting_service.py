"""
stockbook_services.reporting_service -- Read-only dashboards and summaries.

Responsibility:
    Aggregate stored records into dashboard statistics, an inventory
    summary, the opening-capital breakdown, customer listings and profiles,
    and a debt aging report.

Architecture position:
    Services -- read-only. Every method takes one ``store.read()`` view so
    an aggregate never mixes states from before and after a mutation.

Invariants enforced:
    - No method mutates the store.
    - Overdue counts are derived as of the supplied date (default: today
      from the injected clock).
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Any

from stockbook_config.schema import EngineConfig
from stockbook_engines.aging import (
    AgeBucket,
    AgingReport,
    DebtView,
    build_aging_report,
    is_overdue,
    view_debt,
)
from stockbook_kernel.domain.clock import Clock
from stockbook_kernel.domain.records import (
    Debt,
    DebtKind,
    DebtStatus,
    EntryType,
    InventoryBatch,
    JournalEntry,
    Payment,
    SaleRecord,
)
from stockbook_kernel.domain.values import Money
from stockbook_kernel.logging_config import get_logger
from stockbook_services.store import Collection, LedgerStore

logger = get_logger("services.reporting")


@dataclass(frozen=True)
class InventoryLine:
    product_code: str
    product_name: str
    total_quantity: Decimal
    total_value: Money

    @property
    def average_price(self) -> Money:
        if self.total_quantity == 0:
            return Money.zero(self.total_value.currency)
        return Money(
            amount=self.total_value.amount / self.total_quantity,
            currency=self.total_value.currency,
        ).round()

    def to_dict(self) -> dict[str, Any]:
        return {
            "product_code": self.product_code,
            "product_name": self.product_name,
            "total_quantity": str(self.total_quantity),
            "total_value": str(self.total_value.amount),
            "average_price": str(self.average_price.amount),
        }


@dataclass(frozen=True)
class DashboardStats:
    as_of: date
    total_products: int
    total_stock_value: Money
    total_sales: Money
    total_profit: Money
    total_customer_debts: Money
    total_payables: Money
    total_receivables: Money
    overdue_debts: int
    low_stock_items: int
    current_balance: Money
    recent_transactions: tuple[JournalEntry, ...]
    sales_by_category: dict[str, Money]
    profit_by_month: tuple[tuple[str, Money], ...]

    def to_dict(self) -> dict[str, Any]:
        return {
            "as_of": self.as_of.isoformat(),
            "total_products": self.total_products,
            "total_stock_value": str(self.total_stock_value.amount),
            "total_sales": str(self.total_sales.amount),
            "total_profit": str(self.total_profit.amount),
            "total_customer_debts": str(self.total_customer_debts.amount),
            "total_payables": str(self.total_payables.amount),
            "total_receivables": str(self.total_receivables.amount),
            "overdue_debts": self.overdue_debts,
            "low_stock_items": self.low_stock_items,
            "current_balance": str(self.current_balance.amount),
            "recent_transactions": [e.to_dict() for e in self.recent_transactions],
            "sales_by_category": {k: str(v.amount) for k, v in self.sales_by_category.items()},
            "profit_by_month": [
                {"month": month, "profit": str(profit.amount)}
                for month, profit in self.profit_by_month
            ],
        }


@dataclass(frozen=True)
class OpeningCapital:
    total_opening_stock: Money
    entries: tuple[InventoryBatch, ...]

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_opening_stock": str(self.total_opening_stock.amount),
            "opening_stock_entries": [
                {
                    "batch_id": b.batch_id,
                    "arrival_date": b.arrival_date.isoformat(),
                    "product_name": b.product_name,
                    "quantity": str(b.quantity),
                    "unit_price": str(b.unit_price.amount),
                    "total_value": str(b.original_value.amount),
                    "notes": b.notes,
                }
                for b in self.entries
            ],
        }


@dataclass(frozen=True)
class CustomerSummary:
    name: str
    sale_count: int
    total_purchases: Money
    total_paid: Money
    outstanding_balance: Money
    last_sale_date: date | None

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "sale_count": self.sale_count,
            "total_purchases": str(self.total_purchases.amount),
            "total_paid": str(self.total_paid.amount),
            "outstanding_balance": str(self.outstanding_balance.amount),
            "last_sale_date": self.last_sale_date.isoformat() if self.last_sale_date else None,
        }


@dataclass(frozen=True)
class CustomerProfile:
    summary: CustomerSummary
    sales: tuple[SaleRecord, ...]
    debts: tuple[DebtView, ...]
    payments: tuple[Payment, ...]

    def to_dict(self) -> dict[str, Any]:
        return {
            "summary": self.summary.to_dict(),
            "sales": [s.to_dict() for s in self.sales],
            "debts": [d.to_dict() for d in self.debts],
            "payments": [p.to_dict() for p in self.payments],
        }


def _month_start(day: date, months_back: int) -> date:
    index = day.year * 12 + (day.month - 1) - months_back
    return date(index // 12, index % 12 + 1, 1)


def _outstanding(debts: list[Debt], kind: DebtKind, currency: Any) -> Money:
    return Money.total(
        (
            d.remaining_balance for d in debts
            if d.kind == kind and d.status != DebtStatus.CANCELLED
        ),
        currency,
    )


class ReportingService:
    """Read-only aggregates over one store."""

    def __init__(self, store: LedgerStore, clock: Clock, config: EngineConfig):
        self._store = store
        self._clock = clock
        self._config = config

    def inventory_summary(self) -> list[InventoryLine]:
        """Stock on hand per product, from batches with stock remaining."""
        currency = self._store.currency
        with self._store.read():
            batches = self._store.values(Collection.BATCHES)
        grouped: dict[str, list[InventoryBatch]] = defaultdict(list)
        for batch in batches:
            if batch.is_available:
                grouped[batch.product_code].append(batch)
        lines = [
            InventoryLine(
                product_code=code,
                product_name=group[0].product_name,
                total_quantity=sum((b.remaining_quantity for b in group), Decimal("0")),
                total_value=Money.total((b.remaining_value for b in group), currency),
            )
            for code, group in grouped.items()
        ]
        return sorted(lines, key=lambda line: line.product_code)

    def low_stock(self) -> list[InventoryLine]:
        """Products whose on-hand quantity is below the configured threshold."""
        threshold = self._config.low_stock_threshold
        with self._store.read():
            summary = {line.product_code: line for line in self.inventory_summary()}
            products = self._store.values(Collection.PRODUCTS)
        currency = self._store.currency
        result = []
        for product in sorted(products, key=lambda p: p.code):
            line = summary.get(product.code) or InventoryLine(
                product_code=product.code,
                product_name=product.name,
                total_quantity=Decimal("0"),
                total_value=Money.zero(currency),
            )
            if line.total_quantity < threshold:
                result.append(line)
        return result

    def dashboard_stats(self, as_of: date | None = None) -> DashboardStats:
        as_of = as_of or self._clock.today()
        currency = self._store.currency
        with self._store.read():
            products = self._store.values(Collection.PRODUCTS)
            batches = self._store.values(Collection.BATCHES)
            sales = self._store.values(Collection.SALES)
            debts = self._store.values(Collection.DEBTS)
            journal = self._store.journal()
            low_stock = self.low_stock()

        category_of = {p.product_id: p.category for p in products}
        by_category: dict[str, Money] = defaultdict(lambda: Money.zero(currency))
        for sale in sales:
            category = category_of.get(sale.product_id, "Uncategorized")
            by_category[category] = by_category[category] + sale.total_sale

        months = self._config.profit_history_months
        profit_by_month: list[tuple[str, Money]] = []
        for back in range(months - 1, -1, -1):
            start = _month_start(as_of, back)
            profit = Money.total(
                (
                    s.profit for s in sales
                    if s.sale_date.year == start.year and s.sale_date.month == start.month
                ),
                currency,
            )
            profit_by_month.append((start.strftime("%Y-%m"), profit))

        recent = sorted(journal, key=lambda e: (e.entry_date, e.sequence), reverse=True)
        stats = DashboardStats(
            as_of=as_of,
            total_products=len(products),
            total_stock_value=Money.total((b.remaining_value for b in batches), currency),
            total_sales=Money.total((s.total_sale for s in sales), currency),
            total_profit=Money.total((s.profit for s in sales), currency),
            total_customer_debts=_outstanding(debts, DebtKind.SALE, currency),
            total_payables=_outstanding(debts, DebtKind.PAYABLE, currency),
            total_receivables=_outstanding(debts, DebtKind.RECEIVABLE, currency),
            overdue_debts=sum(1 for d in debts if is_overdue(d, as_of)),
            low_stock_items=len(low_stock),
            current_balance=journal[-1].balance if journal else Money.zero(currency),
            recent_transactions=tuple(recent[: self._config.recent_journal_limit]),
            sales_by_category=dict(by_category),
            profit_by_month=tuple(profit_by_month),
        )
        logger.debug("dashboard_stats_built", extra={
            "as_of": as_of.isoformat(),
            "total_products": stats.total_products,
        })
        return stats

    def opening_capital(self) -> OpeningCapital:
        with self._store.read():
            batches = self._store.values(Collection.BATCHES)
        entries = sorted(
            (b for b in batches if b.entry_type == EntryType.OPENING_STOCK),
            key=lambda b: b.fifo_key,
        )
        return OpeningCapital(
            total_opening_stock=Money.total(
                (b.original_value for b in entries), self._store.currency
            ),
            entries=tuple(entries),
        )

    # -- Customers ---------------------------------------------------------

    def list_customers(self) -> list[CustomerSummary]:
        """One summary per distinct customer name (case-insensitive)."""
        with self._store.read():
            sales = self._store.values(Collection.SALES)
            debts = self._store.values(Collection.DEBTS)
        grouped: dict[str, list[SaleRecord]] = defaultdict(list)
        for sale in sales:
            grouped[sale.customer.casefold()].append(sale)
        summaries = [
            self._summarize(group, debts) for group in grouped.values()
        ]
        return sorted(summaries, key=lambda s: s.name.casefold())

    def search_customers(self, term: str) -> list[CustomerSummary]:
        needle = term.strip().casefold()
        return [c for c in self.list_customers() if needle in c.name.casefold()]

    def customer_profile(self, name: str, as_of: date | None = None) -> CustomerProfile | None:
        """Sales, debts and payments of one customer; None if unknown."""
        as_of = as_of or self._clock.today()
        key = name.strip().casefold()
        with self._store.read():
            sales = [s for s in self._store.values(Collection.SALES) if s.customer.casefold() == key]
            debts = [
                d for d in self._store.values(Collection.DEBTS)
                if d.kind == DebtKind.SALE and d.counterparty.casefold() == key
            ]
            debt_ids = {d.debt_id for d in debts}
            payments = [
                p for p in self._store.values(Collection.PAYMENTS) if p.debt_id in debt_ids
            ]
        if not sales:
            return None
        return CustomerProfile(
            summary=self._summarize(sales, debts),
            sales=tuple(sorted(sales, key=lambda s: (s.sale_date, s.created_at), reverse=True)),
            debts=tuple(view_debt(d, as_of) for d in sorted(debts, key=lambda d: d.issue_date)),
            payments=tuple(sorted(payments, key=lambda p: (p.payment_date, p.created_at))),
        )

    def _summarize(self, sales: list[SaleRecord], debts: list[Debt]) -> CustomerSummary:
        currency = self._store.currency
        key = sales[0].customer.casefold()
        own_debts = [
            d for d in debts
            if d.kind == DebtKind.SALE and d.counterparty.casefold() == key
        ]
        outstanding = Money.total((d.remaining_balance for d in own_debts), currency)
        total = Money.total((s.total_sale for s in sales), currency)
        # Paid at the till plus later payments; an overpaid item counts in full.
        paid = Money.total((s.amount_paid for s in sales), currency) + Money.total(
            (d.payment_received for d in own_debts), currency
        )
        return CustomerSummary(
            name=max(sales, key=lambda s: s.created_at).customer,
            sale_count=len(sales),
            total_purchases=total,
            total_paid=paid,
            outstanding_balance=outstanding,
            last_sale_date=max(s.sale_date for s in sales),
        )

    # -- Aging -------------------------------------------------------------

    def aging_report(
        self,
        kind: DebtKind | None = None,
        as_of: date | None = None,
    ) -> AgingReport:
        as_of = as_of or self._clock.today()
        with self._store.read():
            debts = self._store.values(Collection.DEBTS)
        if kind is not None:
            debts = [d for d in debts if d.kind == DebtKind(kind)]
        buckets = [
            AgeBucket(b.name, b.min_days, b.max_days) for b in self._config.aging_buckets
        ]
        return build_aging_report(
            debts=debts,
            as_of=as_of,
            currency=self._store.currency,
            buckets=buckets,
        )
