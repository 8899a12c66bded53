"""
Values -- Immutable, self-validating domain value objects.

Responsibility:
    Provides the value types for every monetary computation in the engine:
    Currency and Money, plus the boundary coercion helpers that turn caller
    input into Decimal amounts and quantities.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.
    Imported by every other domain module.

Invariants enforced:
    - All monetary amounts use Money (Decimal amount paired with a Currency);
      floats are rejected at construction, so binary drift never enters.
    - Rounding precision is derived from the currency's decimal places.

Failure modes:
    - ValueError on construction with invalid amounts or currencies.
    - ValueError when arithmetic mixes different currencies.
    - ValidationError from the ``to_*`` helpers for bad caller input.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from functools import total_ordering
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

from stockbook_kernel.domain.currency import CurrencyRegistry
from stockbook_kernel.exceptions import ValidationError


@dataclass(frozen=True, slots=True)
class Currency:
    """
    ISO 4217 currency code value object.

    Guarantees:
        - Immutable and hashable
        - code is uppercase, stripped and registered in CurrencyRegistry
    """

    code: str

    def __post_init__(self) -> None:
        normalized = self.code.upper().strip() if isinstance(self.code, str) else ""
        if not CurrencyRegistry.is_valid(normalized):
            raise ValueError(f"Invalid ISO 4217 currency code: {self.code}")
        object.__setattr__(self, "code", normalized)

    @property
    def decimal_places(self) -> int:
        return CurrencyRegistry.get_decimal_places(self.code)

    @property
    def quantum(self) -> Decimal:
        """Smallest unit of this currency (0.01 for two decimal places)."""
        return Decimal(1).scaleb(-self.decimal_places)

    def __str__(self) -> str:
        return self.code

    def __repr__(self) -> str:
        return f"Currency({self.code!r})"


@total_ordering
@dataclass(frozen=True, slots=True)
class Money:
    """
    Monetary amount value object.

    Contract:
        Pairs a Decimal amount with its Currency -- they are never separated.

    Guarantees:
        - Immutable and hashable
        - amount is always a Decimal (never float)
        - Arithmetic and comparisons enforce the same-currency constraint

    Non-goals:
        - Does NOT auto-round -- callers call .round() at the points where a
          value becomes a stored fact (record creation, journal append).
    """

    amount: Decimal
    currency: Currency

    def __post_init__(self) -> None:
        if isinstance(self.amount, float):
            raise ValueError(f"Money amount must not be a float: {self.amount!r}")
        if not isinstance(self.amount, Decimal):
            try:
                object.__setattr__(self, "amount", Decimal(str(self.amount)))
            except (InvalidOperation, ValueError) as e:
                raise ValueError(f"Invalid amount: {self.amount}") from e
        if not self.amount.is_finite():
            raise ValueError(f"Money amount must be finite: {self.amount}")

        if isinstance(self.currency, str):
            object.__setattr__(self, "currency", Currency(self.currency))
        elif not isinstance(self.currency, Currency):
            raise TypeError(f"currency must be Currency or str, got {type(self.currency)}")

    @classmethod
    def of(cls, amount: Decimal | str | int, currency: str | Currency) -> Money:
        """Factory method for creating Money."""
        if isinstance(amount, (str, int)) and not isinstance(amount, bool):
            amount = Decimal(str(amount))
        if isinstance(currency, str):
            currency = Currency(currency)
        return cls(amount=amount, currency=currency)

    @classmethod
    def zero(cls, currency: str | Currency) -> Money:
        """Create a zero amount in the given currency."""
        return cls.of(Decimal("0"), currency)

    @classmethod
    def total(cls, values: Iterable[Money], currency: str | Currency) -> Money:
        """Sum Money values, starting from zero in ``currency``."""
        result = cls.zero(currency)
        for value in values:
            result = result + value
        return result

    @property
    def is_zero(self) -> bool:
        return self.amount == Decimal("0")

    @property
    def is_positive(self) -> bool:
        return self.amount > Decimal("0")

    @property
    def is_negative(self) -> bool:
        return self.amount < Decimal("0")

    def round(self, rounding: str = ROUND_HALF_UP) -> Money:
        """Return a new Money quantized to the currency's decimal places."""
        rounded = self.amount.quantize(self.currency.quantum, rounding=rounding)
        return Money(amount=rounded, currency=self.currency)

    def _other_amount(self, other: Money, op: str) -> Decimal:
        """Amount of ``other`` after checking it is in the same currency."""
        if self.currency != other.currency:
            raise ValueError(
                f"Cannot {op} {self.currency} and {other.currency} amounts"
            )
        return other.amount

    def _with(self, amount: Decimal) -> Money:
        return Money(amount=amount, currency=self.currency)

    def __add__(self, other: Money) -> Money:
        if not isinstance(other, Money):
            return NotImplemented
        return self._with(self.amount + self._other_amount(other, "add"))

    def __sub__(self, other: Money) -> Money:
        if not isinstance(other, Money):
            return NotImplemented
        return self._with(self.amount - self._other_amount(other, "subtract"))

    def __neg__(self) -> Money:
        return self._with(-self.amount)

    def __abs__(self) -> Money:
        return self._with(abs(self.amount))

    def __mul__(self, factor: Decimal | int) -> Money:
        # Quantities are Decimal; a unit price times a quantity is a line value.
        if isinstance(factor, bool) or not isinstance(factor, (int, Decimal)):
            return NotImplemented
        return self._with(self.amount * factor)

    __rmul__ = __mul__

    def __lt__(self, other: Money) -> bool:
        if not isinstance(other, Money):
            return NotImplemented
        return self.amount < self._other_amount(other, "compare")

    def __str__(self) -> str:
        return f"{self.amount} {self.currency.code}"

    def __repr__(self) -> str:
        return f"Money({self.amount!r}, {self.currency!r})"


# ---------------------------------------------------------------------------
# Boundary coercion
# ---------------------------------------------------------------------------


def to_decimal(value: Any, field: str) -> Decimal:
    """Coerce caller input (Decimal, int or numeric str) to a finite Decimal.

    Floats are refused: they carry binary representation error that would
    surface as cent drift once summed.
    """
    if isinstance(value, bool) or isinstance(value, float):
        raise ValidationError(field, f"must be Decimal, int or str, got {type(value).__name__}")
    if isinstance(value, Money):
        value = value.amount
    if isinstance(value, int):
        return Decimal(value)
    if isinstance(value, str):
        try:
            value = Decimal(value.strip())
        except InvalidOperation as e:
            raise ValidationError(field, f"not a number: {value!r}") from e
    if not isinstance(value, Decimal):
        raise ValidationError(field, f"must be Decimal, int or str, got {type(value).__name__}")
    if not value.is_finite():
        raise ValidationError(field, "must be finite")
    return value


def to_quantity(value: Any, field: str = "quantity") -> Decimal:
    """Coerce a strictly positive quantity."""
    quantity = to_decimal(value, field)
    if quantity <= 0:
        raise ValidationError(field, f"must be positive, got {quantity}")
    return quantity


def to_money(
    value: Any,
    currency: Currency,
    field: str,
    *,
    allow_zero: bool = True,
) -> Money:
    """Coerce a non-negative amount to Money rounded to currency precision."""
    if isinstance(value, Money) and value.currency != currency:
        raise ValidationError(field, f"currency {value.currency} is not {currency}")
    amount = to_decimal(value, field)
    if amount < 0:
        raise ValidationError(field, f"must not be negative, got {amount}")
    if not allow_zero and amount == 0:
        raise ValidationError(field, "must be positive")
    return Money(amount=amount, currency=currency).round()


def to_text(value: Any, field: str) -> str:
    """Coerce a required label (product code, customer, category) to stripped text."""
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(field, "must be a non-empty string")
    return value.strip()


def to_optional_text(value: Any, field: str) -> str | None:
    """Like ``to_text`` but None and blank strings become None."""
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(field, "must be a string")
    return value.strip() or None
