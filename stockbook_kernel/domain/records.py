"""
Records -- Immutable domain records for products, stock, sales, debts,
payments and journal entries.

Responsibility:
    Define the stored facts of the engine as frozen dataclasses, together
    with a JSON-safe codec (``to_dict`` / ``from_dict``) used for API output
    and for snapshot export/import.

Architecture position:
    Kernel > Domain -- pure, zero I/O. Services own the store that holds
    these records; a "mutation" is the replacement of a record by a new one
    built with ``dataclasses.replace``.

Invariants enforced:
    - InventoryBatch: 0 <= remaining_quantity <= quantity.
    - Debt: remaining_balance is never negative.
    - JournalEntry: debit and credit are non-negative.

Serialization:
    Money is written as its amount string (the currency is recorded once at
    snapshot level), Decimal as str, date/datetime as ISO strings, enums by
    value. ``from_dict`` reverses this using the dataclass type hints.
"""

from __future__ import annotations

import dataclasses
import types
import typing
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, TypeVar

from stockbook_kernel.domain.values import Currency, Money

R = TypeVar("R", bound="Record")


class EntryType(str, Enum):
    """How a batch entered inventory."""

    PURCHASE = "purchase"
    OPENING_STOCK = "opening_stock"


class PaymentStatus(str, Enum):
    """Payment status of a sale at the time it was recorded."""

    PAID = "paid"
    PARTIAL = "partial"
    UNPAID = "unpaid"


class DebtKind(str, Enum):
    """Origin of a debt."""

    SALE = "sale"  # Customer underpaid a sale
    PAYABLE = "payable"  # We owe a creditor
    RECEIVABLE = "receivable"  # Someone owes us, outside of a sale


class DebtStatus(str, Enum):
    """Stored debt status. Overdue is derived for sale debts."""

    UNPAID = "unpaid"
    PAID = "paid"
    OVERDUE = "overdue"
    ACTIVE = "active"
    CANCELLED = "cancelled"


class DebtPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class PaymentMethod(str, Enum):
    CASH = "cash"
    CARD = "card"
    BANK_TRANSFER = "bank_transfer"
    CHECK = "check"
    OTHER = "other"


class JournalEntryType(str, Enum):
    """Kind of money-moving event a journal entry records."""

    STOCK_IN = "stock_in"
    STOCK_OUT = "stock_out"
    OPENING_STOCK = "opening_stock"
    PAYMENT_RECEIVED = "payment_received"
    PAYMENT_MADE = "payment_made"
    DEBT_CREATED = "debt_created"
    PAYMENT_REVERSED = "payment_reversed"
    EXPENSE = "expense"
    ADJUSTMENT = "adjustment"
    CORRECTION = "correction"


# ---------------------------------------------------------------------------
# Codec
# ---------------------------------------------------------------------------


def _encode(value: Any) -> Any:
    if isinstance(value, Record):
        return value.to_dict()
    if isinstance(value, Money):
        return str(value.amount)
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, tuple):
        return [_encode(v) for v in value]
    return value


def _decode(hint: Any, raw: Any, currency: Currency) -> Any:
    if raw is None:
        return None
    origin = typing.get_origin(hint)
    if origin in (typing.Union, types.UnionType):
        inner = [a for a in typing.get_args(hint) if a is not type(None)]
        return _decode(inner[0], raw, currency)
    if origin is tuple:
        item_hint = typing.get_args(hint)[0]
        return tuple(_decode(item_hint, v, currency) for v in raw)
    if hint is Money:
        return Money(amount=Decimal(str(raw)), currency=currency)
    if hint is Decimal:
        return Decimal(str(raw))
    if hint is datetime:
        return datetime.fromisoformat(raw)
    if hint is date:
        return date.fromisoformat(raw)
    if isinstance(hint, type) and issubclass(hint, Enum):
        return hint(raw)
    if isinstance(hint, type) and issubclass(hint, Record):
        return hint.from_dict(raw, currency)
    return raw


class Record:
    """Mixin giving frozen dataclass records a JSON-safe codec."""

    def to_dict(self) -> dict[str, Any]:
        return {
            f.name: _encode(getattr(self, f.name))
            for f in dataclasses.fields(self)  # type: ignore[arg-type]
        }

    @classmethod
    def from_dict(cls: type[R], data: dict[str, Any], currency: Currency) -> R:
        """Rebuild a record from ``to_dict`` output.

        Raises:
            KeyError: a required field is missing.
            ValueError: a field value cannot be parsed.
        """
        hints = typing.get_type_hints(cls)
        kwargs: dict[str, Any] = {}
        for f in dataclasses.fields(cls):  # type: ignore[arg-type]
            if f.name not in data:
                if (
                    f.default is dataclasses.MISSING
                    and f.default_factory is dataclasses.MISSING
                ):
                    raise KeyError(f"{cls.__name__}.{f.name}")
                continue
            kwargs[f.name] = _decode(hints[f.name], data[f.name], currency)
        return cls(**kwargs)


# ---------------------------------------------------------------------------
# Catalog and stock
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Product(Record):
    """A catalog product. ``code`` is globally unique."""

    product_id: str
    code: str
    name: str
    category: str
    unit: str
    created_at: datetime
    updated_at: datetime
    description: str | None = None


@dataclass(frozen=True)
class InventoryBatch(Record):
    """
    One receipt of stock at a specific unit price and arrival date.

    ``sequence`` is assigned by the store at creation and breaks FIFO ties
    between batches that arrive on the same date.
    """

    batch_id: str
    sequence: int
    product_id: str
    product_code: str
    product_name: str
    arrival_date: date
    quantity: Decimal
    unit_price: Money
    remaining_quantity: Decimal
    entry_type: EntryType
    created_at: datetime
    updated_at: datetime
    supplier: str | None = None
    batch_number: str | None = None
    expiry_date: date | None = None
    notes: str | None = None

    def __post_init__(self) -> None:
        if self.quantity <= 0:
            raise ValueError(f"Batch quantity must be positive, got {self.quantity}")
        if self.remaining_quantity < 0:
            raise ValueError(
                f"Batch {self.batch_id} remaining quantity cannot be negative"
            )
        if self.remaining_quantity > self.quantity:
            raise ValueError(
                f"Batch {self.batch_id} remaining quantity exceeds original quantity"
            )

    @property
    def fifo_key(self) -> tuple[date, int]:
        return (self.arrival_date, self.sequence)

    @property
    def is_available(self) -> bool:
        return self.remaining_quantity > 0

    @property
    def is_untouched(self) -> bool:
        return self.remaining_quantity == self.quantity

    @property
    def original_value(self) -> Money:
        return (self.unit_price * self.quantity).round()

    @property
    def remaining_value(self) -> Money:
        return (self.unit_price * self.remaining_quantity).round()


@dataclass(frozen=True)
class CostLine(Record):
    """Quantity taken from one batch by a FIFO plan, at that batch's price."""

    batch_id: str
    quantity_used: Decimal
    unit_price: Money
    line_cost: Money


# ---------------------------------------------------------------------------
# Sales and debts
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SaleRecord(Record):
    """
    A recorded sale. Cost, revenue and profit are fixed at recording time
    and never recomputed.
    """

    sale_id: str
    product_id: str
    product_code: str
    product_name: str
    sale_date: date
    quantity: Decimal
    unit_price: Money
    total_cost: Money
    total_sale: Money
    profit: Money
    amount_paid: Money
    payment_status: PaymentStatus
    customer: str
    cost_lines: tuple[CostLine, ...]
    created_at: datetime
    unfilled_quantity: Decimal = Decimal("0")
    customer_contact: str | None = None
    due_date: date | None = None
    notes: str | None = None
    sale_group_id: str | None = None
    debt_id: str | None = None

    @property
    def balance_due(self) -> Money:
        if self.amount_paid >= self.total_sale:
            return Money.zero(self.total_sale.currency)
        return self.total_sale - self.amount_paid


@dataclass(frozen=True)
class Debt(Record):
    """
    An outstanding obligation: a customer's unpaid sale balance, or a
    general payable/receivable.

    ``remaining_balance == total - (amount_paid + payment_received)``.
    """

    debt_id: str
    kind: DebtKind
    counterparty: str
    total: Money
    amount_paid: Money
    payment_received: Money
    remaining_balance: Money
    status: DebtStatus
    issue_date: date
    created_at: datetime
    updated_at: datetime
    due_date: date | None = None
    counterparty_contact: str | None = None
    sale_id: str | None = None
    product_code: str | None = None
    category: str | None = None
    description: str | None = None
    priority: DebtPriority = DebtPriority.MEDIUM
    notes: str | None = None
    reference: str | None = None
    is_opening_balance: bool = False

    def __post_init__(self) -> None:
        if self.remaining_balance.is_negative:
            raise ValueError(f"Debt {self.debt_id} remaining balance cannot be negative")

    @property
    def is_sale_debt(self) -> bool:
        return self.kind == DebtKind.SALE

    @property
    def is_settled(self) -> bool:
        return not self.remaining_balance.is_positive

    @property
    def total_paid(self) -> Money:
        return self.amount_paid + self.payment_received


@dataclass(frozen=True)
class Payment(Record):
    """
    A payment applied to one debt.

    ``prior_status`` is the debt status just before this payment, so a
    reversal can restore it exactly.
    """

    payment_id: str
    debt_id: str
    counterparty: str
    amount: Money
    payment_date: date
    method: PaymentMethod
    prior_status: DebtStatus
    journal_entry_id: str
    created_at: datetime
    reference: str | None = None
    notes: str | None = None
    allocation_id: str | None = None


# ---------------------------------------------------------------------------
# Journal
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class JournalEntry(Record):
    """
    One immutable journal line with its running balance.

    ``balance`` is previous.balance + credit - debit in append (sequence)
    order; ``entry_date`` is descriptive only.
    """

    entry_id: str
    sequence: int
    entry_date: date
    entry_type: JournalEntryType
    category: str
    description: str
    debit: Money
    credit: Money
    balance: Money
    created_at: datetime
    reference: str | None = None

    def __post_init__(self) -> None:
        if self.debit.is_negative or self.credit.is_negative:
            raise ValueError("Journal debit and credit must be non-negative")

    @property
    def net(self) -> Money:
        """Effect of this entry on the running balance."""
        return self.credit - self.debit
