"""
stockbook_services.payment_allocator -- Split one payment across several debts.

Responsibility:
    Validate a multi-debt payment, compute per-debt settlement amounts with
    the AllocationEngine (proportional or manual), and apply each positive
    amount through DebtLedger.apply_payment.

Architecture position:
    Services -- composes AllocationEngine (pure) with DebtLedger (stateful).

Invariants enforced:
    - All selected debts exist, are distinct, unsettled, of one kind and
      owed by (or to) one counterparty.
    - 0 < total_amount_paid <= sum of remaining balances.
    - total_applied + unallocated == total_amount_paid; a clamp shortfall is
      returned to the caller as unallocated change, never dropped.
    - One Payment and one journal entry per settled debt, never collapsed,
      all inside one store transaction.

Failure modes:
    - ValidationError for an empty or duplicated selection, mixed debt
      kinds, or a non-positive total.
    - DebtNotFoundError, DebtAlreadySettledError, DebtCancelledError.
    - CrossCustomerAllocationError when counterparties differ.
    - OverallocationError when the total exceeds the outstanding sum.
    - AllocationMismatchError / OverpaymentError for bad manual amounts.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Any

from stockbook_engines.allocation import (
    AllocationEngine,
    AllocationMethod,
    AllocationTarget,
)
from stockbook_kernel.domain.clock import Clock
from stockbook_kernel.domain.records import DebtStatus, Payment, PaymentMethod
from stockbook_kernel.domain.values import Money, to_money
from stockbook_kernel.exceptions import (
    CrossCustomerAllocationError,
    DebtAlreadySettledError,
    DebtCancelledError,
    OverallocationError,
    ValidationError,
)
from stockbook_kernel.logging_config import get_logger
from stockbook_services.debt_service import DebtLedger, same_counterparty
from stockbook_services.store import LedgerStore

logger = get_logger("services.allocator")


@dataclass(frozen=True)
class Settlement:
    """Amount applied to one debt by an allocation."""

    debt_id: str
    amount: Money
    remaining_before: Money
    payment: Payment | None

    @property
    def remaining_after(self) -> Money:
        return self.remaining_before - self.amount


@dataclass(frozen=True)
class AllocationOutcome:
    """
    Result of one multi-debt payment.

    Guarantees:
        - ``total_applied + unallocated == total_amount_paid``.
        - ``settlements`` follow the order of the requested debt ids.
    """

    allocation_id: str
    counterparty: str
    method: AllocationMethod
    total_amount_paid: Money
    settlements: tuple[Settlement, ...]
    total_applied: Money
    unallocated: Money

    @property
    def payments(self) -> tuple[Payment, ...]:
        return tuple(s.payment for s in self.settlements if s.payment is not None)

    def to_dict(self) -> dict[str, Any]:
        return {
            "allocation_id": self.allocation_id,
            "counterparty": self.counterparty,
            "method": self.method.value,
            "total_amount_paid": str(self.total_amount_paid.amount),
            "total_applied": str(self.total_applied.amount),
            "unallocated": str(self.unallocated.amount),
            "settlements": [
                {
                    "debt_id": s.debt_id,
                    "amount": str(s.amount.amount),
                    "remaining_after": str(s.remaining_after.amount),
                    "payment_id": s.payment.payment_id if s.payment else None,
                }
                for s in self.settlements
            ],
        }


class PaymentAllocator:
    """
    Multi-debt payment processor.

    Contract:
        Receives store, clock and DebtLedger via constructor injection.
    Non-goals:
        - Does not choose which debts to pay; the caller selects them.
    """

    def __init__(self, store: LedgerStore, clock: Clock, debts: DebtLedger):
        self._store = store
        self._clock = clock
        self._debts = debts
        self._engine = AllocationEngine()

    def allocate(
        self,
        debt_ids: Sequence[str],
        total_amount_paid: Money | Decimal | int | str,
        method: AllocationMethod = AllocationMethod.PROPORTIONAL,
        payment_date: date | None = None,
        payment_method: PaymentMethod = PaymentMethod.CASH,
        manual_amounts: Mapping[str, Money | Decimal | int | str] | None = None,
        reference: str | None = None,
        notes: str | None = None,
    ) -> AllocationOutcome:
        """Split ``total_amount_paid`` across ``debt_ids`` and apply it."""
        currency = self._store.currency
        method = AllocationMethod(method)
        total = to_money(total_amount_paid, currency, "total_amount_paid", allow_zero=False)
        ids = list(debt_ids)
        if not ids:
            raise ValidationError("debt_ids", "at least one debt is required")
        if len(set(ids)) != len(ids):
            raise ValidationError("debt_ids", "debts must be distinct")

        paid_on = payment_date or self._clock.today()

        with self._store.transaction():
            debts = [self._debts.get_debt(debt_id) for debt_id in ids]
            for debt in debts:
                if debt.status == DebtStatus.CANCELLED:
                    raise DebtCancelledError(debt.debt_id)
                if debt.is_settled:
                    raise DebtAlreadySettledError(debt.debt_id)

            counterparty = debts[0].counterparty
            if any(not same_counterparty(d.counterparty, counterparty) for d in debts):
                names = sorted({d.counterparty for d in debts})
                logger.warning("allocation_cross_customer_rejected", extra={
                    "counterparties": names,
                })
                raise CrossCustomerAllocationError(names)
            if len({d.kind for d in debts}) > 1:
                raise ValidationError("debt_ids", "debts must all be of one kind")

            outstanding = Money.total((d.remaining_balance for d in debts), currency)
            if total > outstanding:
                raise OverallocationError(
                    total_amount_paid=str(total.amount),
                    total_outstanding=str(outstanding.amount),
                )

            manual: dict[str, Money] | None = None
            if method == AllocationMethod.MANUAL:
                if manual_amounts is None:
                    raise ValidationError("manual_amounts", "required for manual allocation")
                manual = {
                    key: to_money(value, currency, f"manual_amounts[{key}]")
                    for key, value in manual_amounts.items()
                }

            result = self._engine.allocate(
                amount=total,
                targets=[
                    AllocationTarget(target_id=d.debt_id, eligible_amount=d.remaining_balance)
                    for d in debts
                ],
                method=method,
                manual_amounts=manual,
            )

            allocation_id = self._store.new_id()
            settlements: list[Settlement] = []
            for debt, line in zip(debts, result.lines):
                payment = None
                if line.allocated.is_positive:
                    payment = self._debts.apply_payment(
                        debt_id=debt.debt_id,
                        amount=line.allocated,
                        payment_date=paid_on,
                        method=payment_method,
                        reference=reference,
                        notes=notes,
                        allocation_id=allocation_id,
                    )
                settlements.append(
                    Settlement(
                        debt_id=debt.debt_id,
                        amount=line.allocated,
                        remaining_before=debt.remaining_balance,
                        payment=payment,
                    )
                )

        outcome = AllocationOutcome(
            allocation_id=allocation_id,
            counterparty=counterparty,
            method=method,
            total_amount_paid=total,
            settlements=tuple(settlements),
            total_applied=result.total_allocated,
            unallocated=result.unallocated,
        )

        if outcome.unallocated.is_positive:
            logger.warning("allocation_left_unallocated", extra={
                "allocation_id": allocation_id,
                "unallocated": str(outcome.unallocated.amount),
            })
        logger.info("payment_allocated", extra={
            "allocation_id": allocation_id,
            "counterparty": counterparty,
            "method": method.value,
            "total_amount_paid": str(total.amount),
            "total_applied": str(outcome.total_applied.amount),
            "debt_count": len(settlements),
        })
        return outcome
