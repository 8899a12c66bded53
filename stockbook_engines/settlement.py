"""
Module: stockbook_engines.settlement
Responsibility:
    Pure settlement arithmetic: derive a sale's payment status, apply a
    payment to a debt and reverse one, producing replacement Debt records.

Architecture position:
    Engines -- pure calculation layer, zero I/O. The DebtLedger service
    checks existence and status, calls these functions and stores the
    returned records.

Invariants enforced:
    - remaining_balance == total - (amount_paid + payment_received).
    - remaining_balance never goes negative and never exceeds total.
    - A payment that brings remaining_balance to zero sets status PAID;
      otherwise the stored status is unchanged.

Failure modes:
    - ValidationError for a non-positive payment amount.
    - OverpaymentError when the amount exceeds remaining_balance.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime

from stockbook_kernel.domain.records import Debt, DebtStatus, PaymentStatus
from stockbook_kernel.domain.values import Money
from stockbook_kernel.exceptions import OverpaymentError, ValidationError


def derive_payment_status(total_sale: Money, amount_paid: Money) -> PaymentStatus:
    """paid if paid >= total, partial if 0 < paid < total, unpaid if paid == 0."""
    if amount_paid >= total_sale:
        return PaymentStatus.PAID
    if amount_paid.is_positive:
        return PaymentStatus.PARTIAL
    return PaymentStatus.UNPAID


def compute_remaining(total: Money, amount_paid: Money, payment_received: Money) -> Money:
    """total - (amount_paid + payment_received), floored at zero."""
    remaining = total - (amount_paid + payment_received)
    if remaining.is_negative:
        return Money.zero(total.currency)
    return remaining


def apply_settlement(debt: Debt, amount: Money, at: datetime) -> Debt:
    """
    Return ``debt`` with ``amount`` added to payment_received.

    Preconditions:
        - 0 < amount <= debt.remaining_balance.
    Postconditions:
        - status is PAID when the new remaining balance is zero.
    """
    if not amount.is_positive:
        raise ValidationError("amount", f"must be positive, got {amount.amount}")
    if amount > debt.remaining_balance:
        raise OverpaymentError(
            debt_id=debt.debt_id,
            amount=str(amount.amount),
            remaining_balance=str(debt.remaining_balance.amount),
        )

    received = debt.payment_received + amount
    remaining = compute_remaining(debt.total, debt.amount_paid, received)
    status = DebtStatus.PAID if remaining.is_zero else debt.status
    return replace(
        debt,
        payment_received=received,
        remaining_balance=remaining,
        status=status,
        updated_at=at,
    )


def reverse_settlement(
    debt: Debt,
    amount: Money,
    prior_status: DebtStatus,
    at: datetime,
) -> Debt:
    """
    Undo a previously applied payment of ``amount``.

    When the debt is PAID and the reversal reopens it, ``prior_status`` (the
    status recorded on the payment) is restored. Any other status is kept.
    """
    received = debt.payment_received - amount
    if received.is_negative:
        received = Money.zero(debt.total.currency)
    remaining = compute_remaining(debt.total, debt.amount_paid, received)
    if remaining > debt.total:
        remaining = debt.total

    status = debt.status
    if debt.status == DebtStatus.PAID and remaining.is_positive:
        status = prior_status if prior_status != DebtStatus.PAID else _open_status(debt)

    return replace(
        debt,
        payment_received=received,
        remaining_balance=remaining,
        status=status,
        updated_at=at,
    )


def _open_status(debt: Debt) -> DebtStatus:
    return DebtStatus.UNPAID if debt.is_sale_debt else DebtStatus.ACTIVE
