"""
stockbook_services.debt_service -- Debt ledger: sale debts, general payables/receivables, payments.

Responsibility:
    Own debt records and reconcile them against payments. Open a debt for
    every underpaid sale, record general payables and receivables, apply
    and reverse payments, and derive overdue state on every read.

Architecture position:
    Services -- the only component that mutates a debt's balance. Only the
    PaymentAllocator and the single-debt payment path request settlement.
    Settlement arithmetic lives in stockbook_engines.settlement; overdue
    derivation in stockbook_engines.aging.

Invariants enforced:
    - remaining_balance == total - (amount_paid + payment_received).
    - remaining_balance is never negative and never above total.
    - Overdue is derived for sale debts, never stored.
    - Every applied payment produces exactly one Payment and one journal
      entry; a reversal produces one mirror entry and never edits history.

Failure modes:
    - DebtNotFoundError / PaymentNotFoundError for unknown ids.
    - ValidationError for non-positive amounts and bad fields.
    - OverpaymentError when a payment exceeds the remaining balance; the
      debt is left unchanged.
    - DebtAlreadySettledError / DebtCancelledError for closed debts.

Audit relevance:
    Payments carry the journal entry id they posted and, for multi-debt
    payments, the allocation id, so each debt's trail is independently
    auditable.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import date
from decimal import Decimal
from typing import Any

from stockbook_config.schema import EngineConfig
from stockbook_engines.aging import DebtView, view_debt
from stockbook_engines.settlement import apply_settlement, reverse_settlement
from stockbook_kernel.domain.clock import Clock
from stockbook_kernel.domain.records import (
    Debt,
    DebtKind,
    DebtPriority,
    DebtStatus,
    JournalEntry,
    JournalEntryType,
    Payment,
    PaymentMethod,
    SaleRecord,
)
from stockbook_kernel.domain.values import Money, to_money, to_text
from stockbook_kernel.exceptions import (
    DebtAlreadySettledError,
    DebtCancelledError,
    DebtNotFoundError,
    PaymentNotFoundError,
    ValidationError,
)
from stockbook_kernel.logging_config import get_logger
from stockbook_services.journal_service import JournalLedger
from stockbook_services.store import Collection, LedgerStore

logger = get_logger("services.debts")

_SETTABLE_STATUSES = frozenset({DebtStatus.ACTIVE, DebtStatus.OVERDUE, DebtStatus.CANCELLED})


def same_counterparty(a: str, b: str) -> bool:
    return a.strip().casefold() == b.strip().casefold()


class DebtLedger:
    """
    Debt records and their payments.

    Contract:
        Receives store, clock, journal and config via constructor injection.
        Mutating methods run inside ``store.transaction()``; callers that
        already hold a transaction (the allocator, the sale processor) join
        it as a savepoint.
    """

    def __init__(
        self,
        store: LedgerStore,
        clock: Clock,
        journal: JournalLedger,
        config: EngineConfig,
    ):
        self._store = store
        self._clock = clock
        self._journal = journal
        self._config = config

    # =========================================================================
    # Creation
    # =========================================================================

    def open_sale_debt(
        self,
        sale: SaleRecord,
        due_date: date | None = None,
        counterparty_contact: str | None = None,
    ) -> Debt:
        """Open the debt for an underpaid sale. Posts nothing to the journal."""
        currency = self._store.currency
        remaining = sale.total_sale - sale.amount_paid
        if not remaining.is_positive:
            raise ValidationError("amount_paid", "sale is fully paid; no debt to open")
        now = self._clock.now()
        debt = Debt(
            debt_id=self._store.new_id(),
            kind=DebtKind.SALE,
            counterparty=sale.customer,
            total=sale.total_sale,
            amount_paid=sale.amount_paid,
            payment_received=Money.zero(currency),
            remaining_balance=remaining,
            status=DebtStatus.UNPAID,
            issue_date=sale.sale_date,
            due_date=due_date,
            counterparty_contact=counterparty_contact,
            sale_id=sale.sale_id,
            product_code=sale.product_code,
            description=f"{sale.quantity} x {sale.product_name}",
            created_at=now,
            updated_at=now,
        )
        with self._store.transaction():
            self._store.put(Collection.DEBTS, debt)

        logger.info("sale_debt_opened", extra={
            "debt_id": debt.debt_id,
            "sale_id": sale.sale_id,
            "counterparty": debt.counterparty,
            "remaining_balance": str(remaining.amount),
        })
        return debt

    def create_general_debt(
        self,
        kind: DebtKind,
        counterparty: str,
        category: str,
        description: str,
        original_amount: Money | Decimal | int | str,
        issue_date: date | None = None,
        due_date: date | None = None,
        priority: DebtPriority = DebtPriority.MEDIUM,
        paid_amount: Money | Decimal | int | str = 0,
        counterparty_contact: str | None = None,
        notes: str | None = None,
        reference: str | None = None,
        is_opening_balance: bool = False,
    ) -> Debt:
        """
        Record a payable (we owe) or receivable (someone owes us).

        Posts ``debt_created`` for the original amount: a debit for a
        payable, a credit for a receivable.
        """
        kind = DebtKind(kind)
        if kind == DebtKind.SALE:
            raise ValidationError("kind", "sale debts are opened by recording a sale")
        currency = self._store.currency
        total = to_money(original_amount, currency, "original_amount", allow_zero=False)
        paid = to_money(paid_amount, currency, "paid_amount")
        if paid > total:
            raise ValidationError("paid_amount", "must not exceed original_amount")
        issue = issue_date or self._clock.today()
        if due_date is not None and due_date < issue:
            raise ValidationError("due_date", "must not be before issue_date")
        counterparty = to_text(counterparty, "counterparty")
        category = to_text(category, "category")
        description = to_text(description, "description")

        remaining = total - paid
        now = self._clock.now()
        debt = Debt(
            debt_id=self._store.new_id(),
            kind=kind,
            counterparty=counterparty,
            total=total,
            amount_paid=paid,
            payment_received=Money.zero(currency),
            remaining_balance=remaining,
            status=DebtStatus.PAID if remaining.is_zero else DebtStatus.ACTIVE,
            issue_date=issue,
            due_date=due_date,
            counterparty_contact=counterparty_contact,
            category=category,
            description=description,
            priority=DebtPriority(priority),
            notes=notes,
            reference=reference,
            is_opening_balance=is_opening_balance,
            created_at=now,
            updated_at=now,
        )

        categories = self._config.journal_categories
        with self._store.transaction():
            self._store.put(Collection.DEBTS, debt)
            if kind == DebtKind.PAYABLE:
                self._journal.append(
                    entry_date=issue,
                    category=categories.payable(category),
                    description=f"Debt created: {description} ({counterparty})",
                    debit=total,
                    reference=debt.debt_id,
                    entry_type=JournalEntryType.DEBT_CREATED,
                )
            else:
                self._journal.append(
                    entry_date=issue,
                    category=categories.receivable(category),
                    description=f"Debt created: {description} ({counterparty})",
                    credit=total,
                    reference=debt.debt_id,
                    entry_type=JournalEntryType.DEBT_CREATED,
                )

        logger.info("general_debt_created", extra={
            "debt_id": debt.debt_id,
            "kind": kind.value,
            "counterparty": counterparty,
            "total": str(total.amount),
            "remaining_balance": str(remaining.amount),
        })
        return debt

    def update_general_debt(
        self,
        debt_id: str,
        *,
        description: str | None = None,
        category: str | None = None,
        due_date: date | None = None,
        priority: DebtPriority | None = None,
        notes: str | None = None,
        counterparty_contact: str | None = None,
        status: DebtStatus | None = None,
    ) -> Debt:
        """Edit descriptive fields or status. Amounts are never edited here."""
        with self._store.transaction():
            debt = self.get_debt(debt_id)
            if debt.is_sale_debt:
                raise ValidationError("debt_id", "sale debts are not editable")
            changes: dict[str, Any] = {}
            if description is not None:
                changes["description"] = to_text(description, "description")
            if category is not None:
                changes["category"] = to_text(category, "category")
            if due_date is not None:
                if due_date < debt.issue_date:
                    raise ValidationError("due_date", "must not be before issue_date")
                changes["due_date"] = due_date
            if priority is not None:
                changes["priority"] = DebtPriority(priority)
            if notes is not None:
                changes["notes"] = notes
            if counterparty_contact is not None:
                changes["counterparty_contact"] = counterparty_contact
            if status is not None:
                status = DebtStatus(status)
                if status not in _SETTABLE_STATUSES:
                    raise ValidationError(
                        "status", f"must be one of {sorted(s.value for s in _SETTABLE_STATUSES)}"
                    )
                if debt.is_settled:
                    raise DebtAlreadySettledError(debt_id)
                changes["status"] = status

            updated = replace(debt, updated_at=self._clock.now(), **changes)
            self._store.put(Collection.DEBTS, updated)

        logger.info("general_debt_updated", extra={
            "debt_id": debt_id,
            "fields": sorted(changes),
        })
        return updated

    # =========================================================================
    # Settlement
    # =========================================================================

    def apply_payment(
        self,
        debt_id: str,
        amount: Money | Decimal | int | str,
        payment_date: date | None = None,
        method: PaymentMethod = PaymentMethod.CASH,
        reference: str | None = None,
        notes: str | None = None,
        allocation_id: str | None = None,
    ) -> Payment:
        """
        Apply one payment to one debt.

        Postconditions:
            - payment_received grows by ``amount``; status becomes PAID when
              nothing remains, otherwise it is unchanged.
            - One journal entry is appended and referenced by the Payment.
        """
        currency = self._store.currency
        amount_money = to_money(amount, currency, "amount", allow_zero=False)
        method = PaymentMethod(method)
        paid_on = payment_date or self._clock.today()

        with self._store.transaction():
            debt = self.get_debt(debt_id)
            if debt.status == DebtStatus.CANCELLED:
                raise DebtCancelledError(debt_id)
            if debt.is_settled:
                raise DebtAlreadySettledError(debt_id)

            try:
                settled = apply_settlement(debt, amount_money, self._clock.now())
            except Exception:
                logger.warning("payment_rejected", extra={
                    "debt_id": debt_id,
                    "amount": str(amount_money.amount),
                    "remaining_balance": str(debt.remaining_balance.amount),
                })
                raise

            entry = self._post_payment(debt, amount_money, paid_on, reversal=False)
            payment = Payment(
                payment_id=self._store.new_id(),
                debt_id=debt_id,
                counterparty=debt.counterparty,
                amount=amount_money,
                payment_date=paid_on,
                method=method,
                prior_status=debt.status,
                journal_entry_id=entry.entry_id,
                reference=reference,
                notes=notes,
                allocation_id=allocation_id,
                created_at=self._clock.now(),
            )
            self._store.put(Collection.DEBTS, settled)
            self._store.put(Collection.PAYMENTS, payment)

        logger.info("payment_applied", extra={
            "payment_id": payment.payment_id,
            "debt_id": debt_id,
            "amount": str(amount_money.amount),
            "remaining_balance": str(settled.remaining_balance.amount),
            "status": settled.status.value,
            "allocation_id": allocation_id,
        })
        return payment

    def reverse_payment(self, payment_id: str, entry_date: date | None = None) -> Payment:
        """
        Delete a payment and undo its effect on the owning debt.

        The journal is not edited: a ``payment_reversed`` entry mirroring
        the original posting is appended.
        """
        with self._store.transaction():
            payment = self.get_payment(payment_id)
            debt = self.get_debt(payment.debt_id)
            restored = reverse_settlement(
                debt, payment.amount, payment.prior_status, self._clock.now()
            )
            self._post_payment(
                debt,
                payment.amount,
                entry_date or self._clock.today(),
                reversal=True,
                reference=payment.payment_id,
            )
            self._store.put(Collection.DEBTS, restored)
            self._store.delete(Collection.PAYMENTS, payment_id)

        logger.info("payment_reversed", extra={
            "payment_id": payment_id,
            "debt_id": debt.debt_id,
            "amount": str(payment.amount.amount),
            "remaining_balance": str(restored.remaining_balance.amount),
            "status": restored.status.value,
        })
        return payment

    def _post_payment(
        self,
        debt: Debt,
        amount: Money,
        entry_date: date,
        reversal: bool,
        reference: str | None = None,
    ) -> JournalEntry:
        """Post a payment (or its reversal) in the direction its debt kind uses.

        Sale debts credit the payments category. Receivable payments debit
        and payable payments credit ``"<prefix> - <category>"``. A reversal
        swaps the side and posts under the reversals category.
        """
        categories = self._config.journal_categories
        if debt.kind == DebtKind.SALE:
            category = categories.payments
            on_credit = True
            entry_type = JournalEntryType.PAYMENT_RECEIVED
            description = f"Payment from {debt.counterparty}"
            if debt.product_code:
                description += f" for {debt.product_code}"
        elif debt.kind == DebtKind.RECEIVABLE:
            category = categories.receivable(debt.category)
            on_credit = False
            entry_type = JournalEntryType.PAYMENT_RECEIVED
            description = f"Payment from {debt.counterparty} for {debt.description}"
        else:
            category = categories.payable(debt.category)
            on_credit = True
            entry_type = JournalEntryType.PAYMENT_MADE
            description = f"Payment to {debt.counterparty} for {debt.description}"

        if reversal:
            on_credit = not on_credit
            category = categories.reversals
            entry_type = JournalEntryType.PAYMENT_REVERSED
            description = f"Reversal of {description[0].lower()}{description[1:]}"

        return self._journal.append(
            entry_date=entry_date,
            category=category,
            description=description,
            debit=0 if on_credit else amount,
            credit=amount if on_credit else 0,
            reference=reference or debt.debt_id,
            entry_type=entry_type,
        )

    # =========================================================================
    # Reads
    # =========================================================================

    def get_debt(self, debt_id: str) -> Debt:
        with self._store.read():
            debt = self._store.get(Collection.DEBTS, debt_id)
        if debt is None:
            raise DebtNotFoundError(debt_id)
        return debt

    def view(self, debt_id: str, as_of: date | None = None) -> DebtView:
        return view_debt(self.get_debt(debt_id), as_of or self._clock.today())

    def is_overdue(self, debt_id: str, as_of: date | None = None) -> bool:
        return self.view(debt_id, as_of).is_overdue

    def list_debts(
        self,
        kind: DebtKind | None = None,
        counterparty: str | None = None,
        include_settled: bool = True,
        as_of: date | None = None,
    ) -> list[DebtView]:
        """Debts with derived overdue state, newest issue date first."""
        as_of = as_of or self._clock.today()
        with self._store.read():
            debts = self._store.values(Collection.DEBTS)
        if kind is not None:
            debts = [d for d in debts if d.kind == DebtKind(kind)]
        if counterparty is not None:
            debts = [d for d in debts if same_counterparty(d.counterparty, counterparty)]
        if not include_settled:
            debts = [d for d in debts if not d.is_settled]
        debts.sort(key=lambda d: (d.issue_date, d.created_at), reverse=True)
        return [view_debt(d, as_of) for d in debts]

    def debts_by_customer(self, name: str, as_of: date | None = None) -> list[DebtView]:
        """Sale debts whose customer name contains ``name`` (case-insensitive)."""
        needle = name.strip().casefold()
        return [
            v for v in self.list_debts(kind=DebtKind.SALE, as_of=as_of)
            if needle in v.debt.counterparty.casefold()
        ]

    def get_payment(self, payment_id: str) -> Payment:
        with self._store.read():
            payment = self._store.get(Collection.PAYMENTS, payment_id)
        if payment is None:
            raise PaymentNotFoundError(payment_id)
        return payment

    def payments_for_debt(self, debt_id: str) -> list[Payment]:
        """A debt's payments in the order they were made."""
        self.get_debt(debt_id)
        with self._store.read():
            payments = [
                p for p in self._store.values(Collection.PAYMENTS) if p.debt_id == debt_id
            ]
        return sorted(payments, key=lambda p: (p.payment_date, p.created_at))

    def list_payments(self) -> list[Payment]:
        """All payments, newest first."""
        with self._store.read():
            payments = self._store.values(Collection.PAYMENTS)
        return sorted(payments, key=lambda p: (p.payment_date, p.created_at), reverse=True)
