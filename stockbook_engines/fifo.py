"""
Module: stockbook_engines.fifo
Responsibility:
    Cost a sale quantity against a product's purchase batches, consuming the
    oldest stock first. Produces a plan; never mutates a batch.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import stockbook_kernel (domain values and records).

Invariants enforced:
    - FIFO order: batches are walked in ascending (arrival_date, sequence)
      order regardless of the order they are supplied in.
    - Depletion bound: a plan never takes more from a batch than its
      remaining quantity.
    - line_cost is quantized to the currency's decimal places and
      total_cost is the exact sum of the line costs.

Failure modes:
    - ValueError when quantity is not positive or a batch belongs to a
      different product.
    - Insufficient stock is NOT an error here: the plan reports
      ``shortfall`` and ``is_complete`` so the caller applies its policy.

Usage:
    from stockbook_engines.fifo import plan_fifo

    plan = plan_fifo(batches=eligible, quantity=Decimal("7"),
                     product_code="RICE-25", currency=Currency("PHP"))
    if not plan.is_complete:
        ...
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass
from decimal import Decimal

from stockbook_engines.tracer import traced_engine
from stockbook_kernel.domain.records import CostLine, InventoryBatch
from stockbook_kernel.domain.values import Currency, Money
from stockbook_kernel.logging_config import get_logger

logger = get_logger("engines.fifo")


@dataclass(frozen=True)
class CostPlan:
    """
    Result of FIFO-costing a quantity.

    Contract:
        Frozen dataclass describing which batches a sale would consume.
    Guarantees:
        - ``filled_quantity + shortfall == requested_quantity``.
        - ``filled_quantity`` equals the summed ``quantity_used`` of
          ``used_batches``.
        - ``used_batches`` are in consumption order.
    """

    product_code: str
    requested_quantity: Decimal
    filled_quantity: Decimal
    shortfall: Decimal
    total_cost: Money
    used_batches: tuple[CostLine, ...]

    @property
    def is_complete(self) -> bool:
        return self.shortfall == 0

    @property
    def average_unit_cost(self) -> Money:
        """Weighted average cost per filled unit, unrounded."""
        if self.filled_quantity == 0:
            return Money.zero(self.total_cost.currency)
        return Money(
            amount=self.total_cost.amount / self.filled_quantity,
            currency=self.total_cost.currency,
        )

    def to_dict(self) -> dict:
        return {
            "product_code": self.product_code,
            "requested_quantity": str(self.requested_quantity),
            "filled_quantity": str(self.filled_quantity),
            "shortfall": str(self.shortfall),
            "total_cost": str(self.total_cost.amount),
            "used_batches": [line.to_dict() for line in self.used_batches],
        }


@traced_engine("fifo", "1.0", fingerprint_fields=("product_code", "quantity"))
def plan_fifo(
    batches: Sequence[InventoryBatch],
    quantity: Decimal,
    product_code: str,
    currency: Currency,
) -> CostPlan:
    """
    Walk ``batches`` oldest-first and take ``min(demand, remaining)`` from
    each until demand is met or stock runs out.

    Preconditions:
        - ``quantity`` > 0.
        - Every batch belongs to ``product_code``.
    Postconditions:
        - No batch contributes more than its remaining quantity.
        - Exhausted batches (remaining 0) are skipped.
    """
    if quantity <= 0:
        raise ValueError(f"FIFO quantity must be positive, got {quantity}")

    ordered = sorted(batches, key=lambda b: b.fifo_key)
    demand = quantity
    lines: list[CostLine] = []

    for batch in ordered:
        if demand <= 0:
            break
        if batch.product_code != product_code:
            raise ValueError(
                f"Batch {batch.batch_id} belongs to {batch.product_code}, not {product_code}"
            )
        if not batch.is_available:
            continue

        take = min(demand, batch.remaining_quantity)
        line_cost = (batch.unit_price * take).round()
        lines.append(
            CostLine(
                batch_id=batch.batch_id,
                quantity_used=take,
                unit_price=batch.unit_price,
                line_cost=line_cost,
            )
        )
        demand -= take

    filled = quantity - demand
    total_cost = Money.total((line.line_cost for line in lines), currency)

    logger.debug("fifo_plan_built", extra={
        "product_code": product_code,
        "requested_quantity": str(quantity),
        "filled_quantity": str(filled),
        "shortfall": str(demand),
        "batches_used": len(lines),
        "total_cost": str(total_cost.amount),
    })

    return CostPlan(
        product_code=product_code,
        requested_quantity=quantity,
        filled_quantity=filled,
        shortfall=demand,
        total_cost=total_cost,
        used_batches=tuple(lines),
    )


class FifoCostEngine:
    """
    FIFO costing bound to a source of eligible batches.

    Contract:
        ``cost()`` reads batches through the injected reader and returns a
        plan. It performs no mutation.
    Non-goals:
        - Does not enforce an insufficient-stock policy; see CostPlan.
    """

    def __init__(
        self,
        batch_reader: Callable[[str], Sequence[InventoryBatch]],
        currency: Currency,
    ):
        self._batch_reader = batch_reader
        self._currency = currency

    def cost(self, product_code: str, quantity: Decimal) -> CostPlan:
        batches = self._batch_reader(product_code)
        return plan_fifo(
            batches=batches,
            quantity=quantity,
            product_code=product_code,
            currency=self._currency,
        )
