"""
Ledger Invariants Contract.

These invariants are structural law for the engine. No configuration value
may switch them off.

Enforcement is distributed: InventoryService guards batch quantities,
DebtLedger guards debt balances, JournalLedger guards the running balance,
and the store's transaction() guards atomicity. AuditorService re-checks
all of them over a whole store and reports violations by invariant.
"""

from enum import Enum, unique


@unique
class LedgerInvariant(str, Enum):
    """Non-configurable invariants enforced by the engine."""

    FIFO_ORDER = "fifo_order"
    """Sales consume batches in ascending (arrival_date, sequence) order."""

    NON_NEGATIVE_STOCK = "non_negative_stock"
    """No batch's remaining quantity is ever negative."""

    DEPLETION_BOUND = "depletion_bound"
    """A batch's remaining quantity never exceeds its original quantity."""

    DEBT_ARITHMETIC = "debt_arithmetic"
    """remaining_balance == total - (amount_paid + payment_received), and
    payment_received equals the sum of the debt's recorded payments."""

    NON_NEGATIVE_DEBT_BALANCE = "non_negative_debt_balance"
    """A debt's remaining balance is never negative and never above total."""

    APPEND_ONLY_JOURNAL = "append_only_journal"
    """Journal sequences are contiguous from 1; entries are never edited."""

    RUNNING_BALANCE = "running_balance"
    """Each entry's balance == previous balance + credit - debit, in
    append order."""

    ATOMIC_MUTATION = "atomic_mutation"
    """A failed operation leaves no partial state behind."""


ALL_LEDGER_INVARIANTS: frozenset[LedgerInvariant] = frozenset(LedgerInvariant)
