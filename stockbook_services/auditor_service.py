"""
stockbook_services.auditor_service -- Re-check every ledger invariant over a store.

Responsibility:
    Recompute the engine's structural invariants from stored records and
    report each violation against the LedgerInvariant it breaks. Used after
    snapshot import and available to hosting layers as a health check.

Architecture position:
    Services -- read-only over LedgerStore. Reports; never repairs.

Checks:
    - FIFO_ORDER: each sale's cost lines follow (arrival_date, sequence).
    - NON_NEGATIVE_STOCK / DEPLETION_BOUND: 0 <= remaining <= quantity, and
      quantity - remaining equals what sales consumed from the batch.
    - DEBT_ARITHMETIC: remaining == total - (amount_paid + payment_received),
      payment_received equals the debt's recorded payments, settled debts
      are marked paid.
    - NON_NEGATIVE_DEBT_BALANCE: 0 <= remaining <= total.
    - APPEND_ONLY_JOURNAL: sequences run 1..n without gaps.
    - RUNNING_BALANCE: every balance equals previous + credit - debit.
    - ATOMIC_MUTATION: every underpaid sale has its debt and every sale
      debt points back at an existing sale.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from decimal import Decimal

from stockbook_kernel.domain.records import (
    DebtKind,
    DebtStatus,
    InventoryBatch,
    PaymentStatus,
)
from stockbook_kernel.domain.values import Money
from stockbook_kernel.invariants import LedgerInvariant
from stockbook_kernel.logging_config import get_logger
from stockbook_services.store import Collection, LedgerStore

logger = get_logger("services.auditor")


@dataclass(frozen=True)
class InvariantViolation:
    invariant: LedgerInvariant
    subject_id: str
    message: str


@dataclass(frozen=True)
class AuditReport:
    violations: tuple[InvariantViolation, ...]
    checked_batches: int
    checked_debts: int
    checked_entries: int

    @property
    def is_clean(self) -> bool:
        return not self.violations

    def by_invariant(self) -> dict[LedgerInvariant, list[InvariantViolation]]:
        grouped: dict[LedgerInvariant, list[InvariantViolation]] = defaultdict(list)
        for violation in self.violations:
            grouped[violation.invariant].append(violation)
        return dict(grouped)


class AuditorService:
    def __init__(self, store: LedgerStore):
        self._store = store

    def audit(self) -> AuditReport:
        with self._store.read():
            batches = {b.batch_id: b for b in self._store.values(Collection.BATCHES)}
            sales = self._store.values(Collection.SALES)
            debts = self._store.values(Collection.DEBTS)
            payments = self._store.values(Collection.PAYMENTS)
            journal = self._store.journal()

        violations: list[InvariantViolation] = []
        violations.extend(self._check_batches(batches, sales))
        violations.extend(self._check_debts(debts, payments))
        violations.extend(self._check_sales(sales, debts))
        violations.extend(self._check_journal(journal))

        for violation in violations:
            logger.error("audit_violation", extra={
                "invariant": violation.invariant.value,
                "subject_id": violation.subject_id,
                "detail": violation.message,
            })
        report = AuditReport(
            violations=tuple(violations),
            checked_batches=len(batches),
            checked_debts=len(debts),
            checked_entries=len(journal),
        )
        logger.info("audit_completed", extra={
            "violation_count": len(violations),
            "checked_batches": report.checked_batches,
            "checked_debts": report.checked_debts,
            "checked_entries": report.checked_entries,
        })
        return report

    def _check_batches(
        self,
        batches: dict[str, InventoryBatch],
        sales: list,
    ) -> list[InvariantViolation]:
        found: list[InvariantViolation] = []
        consumed: dict[str, Decimal] = defaultdict(Decimal)

        for sale in sales:
            keys = []
            for line in sale.cost_lines:
                consumed[line.batch_id] += line.quantity_used
                batch = batches.get(line.batch_id)
                if batch is not None:
                    keys.append(batch.fifo_key)
            if keys != sorted(keys):
                found.append(InvariantViolation(
                    LedgerInvariant.FIFO_ORDER,
                    sale.sale_id,
                    "cost lines are not in (arrival_date, sequence) order",
                ))

        for batch in batches.values():
            if batch.remaining_quantity < 0:
                found.append(InvariantViolation(
                    LedgerInvariant.NON_NEGATIVE_STOCK,
                    batch.batch_id,
                    f"remaining quantity {batch.remaining_quantity} is negative",
                ))
            if batch.remaining_quantity > batch.quantity:
                found.append(InvariantViolation(
                    LedgerInvariant.DEPLETION_BOUND,
                    batch.batch_id,
                    f"remaining {batch.remaining_quantity} exceeds quantity {batch.quantity}",
                ))
            used = batch.quantity - batch.remaining_quantity
            if used != consumed.get(batch.batch_id, Decimal("0")):
                found.append(InvariantViolation(
                    LedgerInvariant.DEPLETION_BOUND,
                    batch.batch_id,
                    f"depleted by {used} but sales consumed "
                    f"{consumed.get(batch.batch_id, Decimal('0'))}",
                ))
        return found

    def _check_debts(self, debts: list, payments: list) -> list[InvariantViolation]:
        found: list[InvariantViolation] = []
        currency = self._store.currency
        received: dict[str, Money] = defaultdict(lambda: Money.zero(currency))
        for payment in payments:
            received[payment.debt_id] = received[payment.debt_id] + payment.amount

        for debt in debts:
            expected = debt.total - (debt.amount_paid + debt.payment_received)
            if expected.is_negative:
                expected = Money.zero(currency)
            if debt.remaining_balance != expected:
                found.append(InvariantViolation(
                    LedgerInvariant.DEBT_ARITHMETIC,
                    debt.debt_id,
                    f"remaining {debt.remaining_balance.amount} != expected {expected.amount}",
                ))
            if debt.payment_received != received[debt.debt_id]:
                found.append(InvariantViolation(
                    LedgerInvariant.DEBT_ARITHMETIC,
                    debt.debt_id,
                    f"payment_received {debt.payment_received.amount} != recorded payments "
                    f"{received[debt.debt_id].amount}",
                ))
            if debt.is_settled and debt.status not in (DebtStatus.PAID, DebtStatus.CANCELLED):
                found.append(InvariantViolation(
                    LedgerInvariant.DEBT_ARITHMETIC,
                    debt.debt_id,
                    f"settled debt has status {debt.status.value}",
                ))
            if debt.remaining_balance.is_negative or debt.remaining_balance > debt.total:
                found.append(InvariantViolation(
                    LedgerInvariant.NON_NEGATIVE_DEBT_BALANCE,
                    debt.debt_id,
                    f"remaining {debt.remaining_balance.amount} outside [0, {debt.total.amount}]",
                ))
        return found

    def _check_sales(self, sales: list, debts: list) -> list[InvariantViolation]:
        found: list[InvariantViolation] = []
        debts_by_id = {d.debt_id: d for d in debts}
        sale_ids = {s.sale_id for s in sales}

        for sale in sales:
            if sale.payment_status == PaymentStatus.PAID:
                continue
            debt = debts_by_id.get(sale.debt_id) if sale.debt_id else None
            if debt is None or debt.sale_id != sale.sale_id:
                found.append(InvariantViolation(
                    LedgerInvariant.ATOMIC_MUTATION,
                    sale.sale_id,
                    "underpaid sale has no matching debt",
                ))

        for debt in debts:
            if debt.kind == DebtKind.SALE and debt.sale_id not in sale_ids:
                found.append(InvariantViolation(
                    LedgerInvariant.ATOMIC_MUTATION,
                    debt.debt_id,
                    "sale debt references a missing sale",
                ))
        return found

    def _check_journal(self, journal: list) -> list[InvariantViolation]:
        found: list[InvariantViolation] = []
        expected = Money.zero(self._store.currency)
        for index, entry in enumerate(journal, start=1):
            if entry.sequence != index:
                found.append(InvariantViolation(
                    LedgerInvariant.APPEND_ONLY_JOURNAL,
                    entry.entry_id,
                    f"sequence {entry.sequence} at position {index}",
                ))
            expected = (expected + entry.credit - entry.debit).round()
            if entry.balance != expected:
                found.append(InvariantViolation(
                    LedgerInvariant.RUNNING_BALANCE,
                    entry.entry_id,
                    f"balance {entry.balance.amount} != expected {expected.amount}",
                ))
                expected = entry.balance
        return found
