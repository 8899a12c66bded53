"""
stockbook_services.journal_service -- Append-only journal with a running balance.

Responsibility:
    Append money-moving events as immutable JournalEntry records, each
    carrying ``balance = previous.balance + credit - debit`` computed over
    append order. Serve newest-first display queries and re-verify the
    running balance on demand.

Architecture position:
    Services -- shared write-only sink for InventoryService, SalesService
    and DebtLedger, plus read-only history for reporting.

Invariants enforced:
    - Append-only: entries are never edited or removed; corrections are
      new mirror entries.
    - Running balance is defined over append (sequence) order, never over
      ``entry_date``.
    - Amounts are quantized to currency precision once, at append.

Failure modes:
    - ValidationError for negative amounts, both amounts zero, or an empty
      category/description.
    - JournalEntryNotFoundError for unknown entry ids.
    - JournalIntegrityError from ``verify_running_balance`` at the first
      entry whose stored balance disagrees with the recomputed one.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal

from stockbook_config.schema import JournalCategories
from stockbook_kernel.domain.clock import Clock
from stockbook_kernel.domain.records import JournalEntry, JournalEntryType
from stockbook_kernel.domain.values import Money, to_money, to_text
from stockbook_kernel.exceptions import (
    JournalEntryNotFoundError,
    JournalIntegrityError,
    ValidationError,
)
from stockbook_kernel.logging_config import get_logger
from stockbook_services.store import LedgerStore

logger = get_logger("services.journal")

JOURNAL_SEQUENCE = "journal"


class JournalLedger:
    """
    The journal of one bookkeeping instance.

    Contract:
        Receives the store, clock and category names via constructor
        injection. Every append runs inside ``store.transaction()``, so an
        append made by another service's operation rolls back with it.
    """

    def __init__(self, store: LedgerStore, clock: Clock, categories: JournalCategories):
        self._store = store
        self._clock = clock
        self._categories = categories

    def append(
        self,
        entry_date: date,
        category: str,
        description: str,
        debit: Money | Decimal | int | str = 0,
        credit: Money | Decimal | int | str = 0,
        reference: str | None = None,
        entry_type: JournalEntryType = JournalEntryType.ADJUSTMENT,
    ) -> JournalEntry:
        """Append one entry and return it with its running balance."""
        currency = self._store.currency
        debit_money = to_money(debit, currency, "debit")
        credit_money = to_money(credit, currency, "credit")
        if debit_money.is_zero and credit_money.is_zero:
            raise ValidationError("amount", "debit or credit must be non-zero")
        if not isinstance(entry_date, date):
            raise ValidationError("entry_date", "must be a date")
        category = to_text(category, "category")
        description = to_text(description, "description")
        entry_type = JournalEntryType(entry_type)

        with self._store.transaction():
            last = self._store.last_journal_entry()
            previous = last.balance if last is not None else Money.zero(currency)
            entry = JournalEntry(
                entry_id=self._store.new_id(),
                sequence=self._store.next_sequence(JOURNAL_SEQUENCE),
                entry_date=entry_date,
                entry_type=entry_type,
                category=category,
                description=description,
                debit=debit_money,
                credit=credit_money,
                balance=(previous + credit_money - debit_money).round(),
                created_at=self._clock.now(),
                reference=reference,
            )
            self._store.append_journal(entry)

        logger.info("journal_entry_appended", extra={
            "entry_id": entry.entry_id,
            "sequence": entry.sequence,
            "entry_type": entry.entry_type.value,
            "category": entry.category,
            "debit": str(entry.debit.amount),
            "credit": str(entry.credit.amount),
            "balance": str(entry.balance.amount),
        })
        return entry

    def post_correction(
        self,
        entry_id: str,
        description: str | None = None,
        entry_date: date | None = None,
    ) -> JournalEntry:
        """Append the mirror of ``entry_id`` (debit and credit swapped)."""
        with self._store.transaction():
            original = self.get_entry(entry_id)
            return self.append(
                entry_date=entry_date or self._clock.today(),
                category=self._categories.corrections,
                description=description
                or f"Correction of entry #{original.sequence}: {original.description}",
                debit=original.credit,
                credit=original.debit,
                reference=original.entry_id,
                entry_type=JournalEntryType.CORRECTION,
            )

    # -- Reads -------------------------------------------------------------

    def entries(self) -> list[JournalEntry]:
        """All entries in append order."""
        with self._store.read():
            return self._store.journal()

    def current_balance(self) -> Money:
        with self._store.read():
            last = self._store.last_journal_entry()
        return last.balance if last is not None else Money.zero(self._store.currency)

    def get_entry(self, entry_id: str) -> JournalEntry:
        with self._store.read():
            for entry in self._store.journal():
                if entry.entry_id == entry_id:
                    return entry
        raise JournalEntryNotFoundError(entry_id)

    def query(
        self,
        limit: int | None = None,
        since_date: date | None = None,
        category: str | None = None,
    ) -> list[JournalEntry]:
        """Entries newest-first by (entry_date, sequence), for display."""
        if limit is not None and limit < 0:
            raise ValidationError("limit", "must not be negative")
        with self._store.read():
            entries = self._store.journal()
        if since_date is not None:
            entries = [e for e in entries if e.entry_date >= since_date]
        if category is not None:
            entries = [e for e in entries if e.category == category]
        entries.sort(key=lambda e: (e.entry_date, e.sequence), reverse=True)
        return entries if limit is None else entries[:limit]

    def verify_running_balance(self) -> int:
        """Recompute every balance from append order; return the entry count.

        Raises:
            JournalIntegrityError: at the first mismatching entry.
        """
        currency = self._store.currency
        with self._store.read():
            entries = self._store.journal()
        expected = Money.zero(currency)
        for entry in entries:
            expected = (expected + entry.credit - entry.debit).round()
            if entry.balance != expected:
                logger.error("journal_balance_mismatch", extra={
                    "sequence": entry.sequence,
                    "expected_balance": str(expected.amount),
                    "stored_balance": str(entry.balance.amount),
                })
                raise JournalIntegrityError(
                    sequence=entry.sequence,
                    expected_balance=str(expected.amount),
                    stored_balance=str(entry.balance.amount),
                )
        return len(entries)
