"""
stockbook_services.sales_service -- Sale transaction processor.

Responsibility:
    Orchestrate a sale: FIFO-cost it, commit batch depletion, compute
    revenue and profit, derive the payment status, post the revenue to the
    journal and open a debt when the customer underpays. Also previews a
    sale's cost and records multi-product sales that share one lump
    payment.

Architecture position:
    Services -- composes FifoCostEngine and AllocationEngine (pure) with
    InventoryService, DebtLedger and JournalLedger (stateful).

Invariants enforced:
    - All or nothing: inputs are validated and the plan checked before any
      mutation, and the whole sale runs in one store transaction.
    - total_sale = quantity x unit_price, profit = total_sale - total_cost,
      both fixed at recording time.
    - Revenue is recognized in full (accrual): the journal credit is
      total_sale regardless of the amount collected.
    - At most one debt per sale, opened only when amount_paid < total_sale.

Failure modes:
    - UnknownProductError for an unknown product code.
    - InsufficientStockError under the ``reject`` policy when available
      stock is short; nothing is mutated.
    - ValidationError for bad quantities, prices, amounts or names.
    - SaleNotFoundError for unknown sale ids.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, replace
from datetime import date
from decimal import Decimal
from typing import Any

from stockbook_config.schema import EngineConfig
from stockbook_engines.allocation import (
    AllocationEngine,
    AllocationMethod,
    AllocationTarget,
)
from stockbook_engines.fifo import CostPlan, FifoCostEngine
from stockbook_engines.settlement import derive_payment_status
from stockbook_kernel.domain.clock import Clock
from stockbook_kernel.domain.records import (
    JournalEntryType,
    PaymentStatus,
    SaleRecord,
)
from stockbook_kernel.domain.values import Money, to_money, to_quantity, to_text
from stockbook_kernel.exceptions import (
    InsufficientStockError,
    SaleNotFoundError,
    ValidationError,
)
from stockbook_kernel.logging_config import get_logger
from stockbook_services.debt_service import DebtLedger
from stockbook_services.inventory_service import InventoryService
from stockbook_services.journal_service import JournalLedger
from stockbook_services.store import Collection, LedgerStore

logger = get_logger("services.sales")


@dataclass(frozen=True)
class SalePreview:
    """Read-only cost and profit preview for a prospective sale."""

    plan: CostPlan
    unit_price: Money
    total_sale: Money
    available_quantity: Decimal

    @property
    def profit(self) -> Money:
        return self.total_sale - self.plan.total_cost

    @property
    def is_complete(self) -> bool:
        return self.plan.is_complete

    def to_dict(self) -> dict[str, Any]:
        data = self.plan.to_dict()
        data.update(
            unit_price=str(self.unit_price.amount),
            total_sale=str(self.total_sale.amount),
            profit=str(self.profit.amount),
            available_quantity=str(self.available_quantity),
            is_complete=self.is_complete,
        )
        return data


@dataclass(frozen=True)
class SaleItem:
    """One line of a multi-product sale."""

    product_code: str
    quantity: Decimal | int | str
    unit_price: Money | Decimal | int | str


@dataclass(frozen=True)
class MultiSaleOutcome:
    sale_group_id: str
    sales: tuple[SaleRecord, ...]
    total_sale: Money
    total_amount_paid: Money

    @property
    def balance_due(self) -> Money:
        return Money.total((s.balance_due for s in self.sales), self.total_sale.currency)

    @property
    def debt_ids(self) -> tuple[str, ...]:
        return tuple(s.debt_id for s in self.sales if s.debt_id is not None)


class SalesService:
    """
    Records sales against FIFO-costed inventory.

    Contract:
        Receives store, clock, collaborating services and config via
        constructor injection.
    Guarantees:
        - A failed ``record_sale`` leaves batches, debts and journal exactly
          as they were.
    """

    def __init__(
        self,
        store: LedgerStore,
        clock: Clock,
        inventory: InventoryService,
        debts: DebtLedger,
        journal: JournalLedger,
        config: EngineConfig,
    ):
        self._store = store
        self._clock = clock
        self._inventory = inventory
        self._debts = debts
        self._journal = journal
        self._config = config
        self._fifo = FifoCostEngine(inventory.list_eligible_batches, store.currency)
        self._allocation = AllocationEngine()

    # =========================================================================
    # Single sale
    # =========================================================================

    def record_sale(
        self,
        product_code: str,
        quantity: Decimal | int | str,
        unit_price: Money | Decimal | int | str,
        amount_paid: Money | Decimal | int | str,
        customer: str,
        due_date: date | None = None,
        sale_date: date | None = None,
        customer_contact: str | None = None,
        notes: str | None = None,
        sale_group_id: str | None = None,
    ) -> SaleRecord:
        """
        Record one sale.

        Steps: plan (FIFO), commit consumption, compute totals, derive
        payment status, credit the sales category with total_sale, and open
        a debt when underpaid.
        """
        currency = self._store.currency
        quantity = to_quantity(quantity)
        price = to_money(unit_price, currency, "unit_price", allow_zero=False)
        paid = to_money(amount_paid, currency, "amount_paid")
        customer = to_text(customer, "customer")
        sold_on = sale_date or self._clock.today()

        with self._store.transaction():
            product = self._inventory.get_product_by_code(product_code)
            plan = self._fifo.cost(product.code, quantity)
            if not plan.is_complete and not self._config.allows_partial_fill:
                logger.warning("sale_rejected_insufficient_stock", extra={
                    "product_code": product.code,
                    "requested": str(quantity),
                    "available": str(plan.filled_quantity),
                })
                raise InsufficientStockError(
                    product_code=product.code,
                    requested=str(quantity),
                    available=str(plan.filled_quantity),
                )

            for line in plan.used_batches:
                self._inventory.consume(line.batch_id, line.quantity_used)

            total_sale = (price * quantity).round()
            status = derive_payment_status(total_sale, paid)
            sale = SaleRecord(
                sale_id=self._store.new_id(),
                product_id=product.product_id,
                product_code=product.code,
                product_name=product.name,
                sale_date=sold_on,
                quantity=quantity,
                unit_price=price,
                total_cost=plan.total_cost,
                total_sale=total_sale,
                profit=total_sale - plan.total_cost,
                amount_paid=paid,
                payment_status=status,
                customer=customer,
                customer_contact=customer_contact,
                due_date=due_date,
                notes=notes,
                cost_lines=plan.used_batches,
                unfilled_quantity=plan.shortfall,
                sale_group_id=sale_group_id,
                created_at=self._clock.now(),
            )

            if total_sale.is_positive:
                self._journal.append(
                    entry_date=sold_on,
                    category=self._config.journal_categories.sales,
                    description=f"Sale: {quantity} {product.unit} {product.name} to {customer}",
                    credit=total_sale,
                    reference=sale.sale_id,
                    entry_type=JournalEntryType.STOCK_OUT,
                )

            if status != PaymentStatus.PAID:
                debt = self._debts.open_sale_debt(sale, due_date, customer_contact)
                sale = replace(sale, debt_id=debt.debt_id)

            self._store.put(Collection.SALES, sale)

        logger.info("sale_recorded", extra={
            "sale_id": sale.sale_id,
            "product_code": sale.product_code,
            "quantity": str(quantity),
            "total_cost": str(sale.total_cost.amount),
            "total_sale": str(sale.total_sale.amount),
            "profit": str(sale.profit.amount),
            "payment_status": status.value,
            "unfilled_quantity": str(sale.unfilled_quantity),
            "debt_id": sale.debt_id,
        })
        return sale

    def preview_sale(
        self,
        product_code: str,
        quantity: Decimal | int | str,
        unit_price: Money | Decimal | int | str,
    ) -> SalePreview:
        """Cost a prospective sale without mutating anything."""
        quantity = to_quantity(quantity)
        price = to_money(unit_price, self._store.currency, "unit_price")
        with self._store.read():
            product = self._inventory.get_product_by_code(product_code)
            plan = self._fifo.cost(product.code, quantity)
            available = self._inventory.available_quantity(product.code)
        return SalePreview(
            plan=plan,
            unit_price=price,
            total_sale=(price * quantity).round(),
            available_quantity=available,
        )

    # =========================================================================
    # Multi-product sale
    # =========================================================================

    def record_multi_product_sale(
        self,
        customer: str,
        items: Sequence[SaleItem],
        total_amount_paid: Money | Decimal | int | str,
        allocation: AllocationMethod = AllocationMethod.PROPORTIONAL,
        manual_amounts: Sequence[Money | Decimal | int | str] | None = None,
        sale_date: date | None = None,
        due_date: date | None = None,
        customer_contact: str | None = None,
        notes: str | None = None,
    ) -> MultiSaleOutcome:
        """
        Record several sales to one customer sharing a lump payment.

        The lump is split across items proportionally to each item's
        total_sale, or by ``manual_amounts`` (one per item, summing to the
        lump). Each item is then recorded as its own sale, with its own
        journal line and, if underpaid, its own debt. Atomic as a group.
        """
        currency = self._store.currency
        if not items:
            raise ValidationError("items", "at least one item is required")
        customer = to_text(customer, "customer")
        lump = to_money(total_amount_paid, currency, "total_amount_paid")
        allocation = AllocationMethod(allocation)

        targets: list[AllocationTarget] = []
        for i, item in enumerate(items):
            quantity = to_quantity(item.quantity, f"items[{i}].quantity")
            price = to_money(item.unit_price, currency, f"items[{i}].unit_price", allow_zero=False)
            targets.append(
                AllocationTarget(target_id=str(i), eligible_amount=(price * quantity).round())
            )
        total_sale = Money.total((t.eligible_amount for t in targets), currency)

        manual: Mapping[str, Money] | None = None
        if allocation == AllocationMethod.MANUAL:
            if manual_amounts is None or len(manual_amounts) != len(items):
                raise ValidationError("manual_amounts", "one amount is required per item")
            manual = {
                str(i): to_money(a, currency, f"manual_amounts[{i}]")
                for i, a in enumerate(manual_amounts)
            }

        if lump.is_zero:
            shares = {t.target_id: Money.zero(currency) for t in targets}
        else:
            result = self._allocation.allocate(
                amount=lump,
                targets=targets,
                method=allocation,
                manual_amounts=manual,
                clamp_to_eligible=False,
            )
            shares = {line.target_id: line.allocated for line in result.lines}

        sold_on = sale_date or self._clock.today()
        group_id = self._store.new_id()
        sales: list[SaleRecord] = []
        with self._store.transaction():
            for i, item in enumerate(items):
                sales.append(
                    self.record_sale(
                        product_code=item.product_code,
                        quantity=item.quantity,
                        unit_price=item.unit_price,
                        amount_paid=shares[str(i)],
                        customer=customer,
                        due_date=due_date,
                        sale_date=sold_on,
                        customer_contact=customer_contact,
                        notes=notes,
                        sale_group_id=group_id,
                    )
                )

        logger.info("multi_product_sale_recorded", extra={
            "sale_group_id": group_id,
            "item_count": len(sales),
            "total_sale": str(total_sale.amount),
            "total_amount_paid": str(lump.amount),
            "allocation": allocation.value,
        })
        return MultiSaleOutcome(
            sale_group_id=group_id,
            sales=tuple(sales),
            total_sale=total_sale,
            total_amount_paid=lump,
        )

    # =========================================================================
    # Reads
    # =========================================================================

    def get_sale(self, sale_id: str) -> SaleRecord:
        with self._store.read():
            sale = self._store.get(Collection.SALES, sale_id)
        if sale is None:
            raise SaleNotFoundError(sale_id)
        return sale

    def list_sales(self, customer: str | None = None) -> list[SaleRecord]:
        """Sales newest first, optionally for one customer (case-insensitive)."""
        with self._store.read():
            sales = self._store.values(Collection.SALES)
        if customer is not None:
            wanted = customer.strip().casefold()
            sales = [s for s in sales if s.customer.casefold() == wanted]
        return sorted(sales, key=lambda s: (s.sale_date, s.created_at), reverse=True)
