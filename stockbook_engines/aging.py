"""
Module: stockbook_engines.aging
Responsibility:
    Derive overdue state for debts and classify outstanding debts into
    aging buckets.

Architecture position:
    Engines -- pure calculation layer, zero I/O. The reference date is
    always passed in; this module never reads the clock.

Invariants enforced:
    - Overdue is derived, never stored, for sale debts:
      due_date exists and due_date < as_of and remaining_balance > 0.
    - General debts are overdue only when their stored status says so and
      a balance remains.
    - A settled debt is never overdue.

Failure modes:
    - ValueError when an age matches no configured bucket or buckets are
      malformed.

Usage:
    from stockbook_engines.aging import is_overdue, build_aging_report

    is_overdue(debt, as_of=date(2024, 3, 1))
    report = build_aging_report(debts=open_debts, as_of=date(2024, 3, 1))
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import date

from stockbook_engines.tracer import traced_engine
from stockbook_kernel.domain.records import Debt, DebtStatus
from stockbook_kernel.domain.values import Currency, Money
from stockbook_kernel.logging_config import get_logger

logger = get_logger("engines.aging")


def is_overdue(debt: Debt, as_of: date) -> bool:
    """True when ``debt`` is past due on ``as_of`` with a balance remaining."""
    if not debt.remaining_balance.is_positive:
        return False
    if debt.status == DebtStatus.CANCELLED:
        return False
    if debt.is_sale_debt:
        return debt.due_date is not None and debt.due_date < as_of
    return debt.status == DebtStatus.OVERDUE


def days_past_due(debt: Debt, as_of: date) -> int:
    """Whole days since the due date (0 when not past due or settled)."""
    if debt.due_date is None or not debt.remaining_balance.is_positive:
        return 0
    return max(0, (as_of - debt.due_date).days)


@dataclass(frozen=True)
class DebtView:
    """A stored debt paired with its state derived on ``as_of``."""

    debt: Debt
    as_of: date
    is_overdue: bool
    days_past_due: int

    @property
    def display_status(self) -> str:
        if self.debt.is_settled and self.debt.status != DebtStatus.CANCELLED:
            return DebtStatus.PAID.value
        if self.is_overdue:
            return DebtStatus.OVERDUE.value
        return self.debt.status.value

    def to_dict(self) -> dict:
        data = self.debt.to_dict()
        data["is_overdue"] = self.is_overdue
        data["days_past_due"] = self.days_past_due
        data["display_status"] = self.display_status
        return data


def view_debt(debt: Debt, as_of: date) -> DebtView:
    return DebtView(
        debt=debt,
        as_of=as_of,
        is_overdue=is_overdue(debt, as_of),
        days_past_due=days_past_due(debt, as_of),
    )


# ---------------------------------------------------------------------------
# Aging buckets
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AgeBucket:
    """
    A contiguous range of days past due.

    Guarantees:
        - min_days >= 0 and max_days >= min_days when bounded.
    """

    name: str
    min_days: int
    max_days: int | None  # None = unbounded (e.g. 90+)

    def __post_init__(self) -> None:
        if self.min_days < 0:
            raise ValueError("min_days cannot be negative")
        if self.max_days is not None and self.max_days < self.min_days:
            raise ValueError("max_days cannot be less than min_days")

    def contains(self, age_days: int) -> bool:
        if age_days < self.min_days:
            return False
        return self.max_days is None or age_days <= self.max_days


STANDARD_BUCKETS: tuple[AgeBucket, ...] = (
    AgeBucket("Current", 0, 0),
    AgeBucket("1-30", 1, 30),
    AgeBucket("31-60", 31, 60),
    AgeBucket("61-90", 61, 90),
    AgeBucket("Over 90", 91, None),
)


@dataclass(frozen=True)
class AgedDebt:
    debt_id: str
    counterparty: str
    remaining_balance: Money
    due_date: date | None
    age_days: int
    bucket: AgeBucket


@dataclass(frozen=True)
class AgingReport:
    """
    Outstanding debts grouped by age.

    Guarantees:
        - ``totals_by_bucket`` has an entry for every bucket, in order.
        - ``total`` equals the sum of every item's remaining balance.
    """

    as_of: date
    buckets: tuple[AgeBucket, ...]
    items: tuple[AgedDebt, ...]
    currency: Currency

    @property
    def total(self) -> Money:
        return Money.total((item.remaining_balance for item in self.items), self.currency)

    def totals_by_bucket(self) -> dict[str, Money]:
        totals = {bucket.name: Money.zero(self.currency) for bucket in self.buckets}
        for item in self.items:
            totals[item.bucket.name] = totals[item.bucket.name] + item.remaining_balance
        return totals

    def to_dict(self) -> dict:
        return {
            "as_of": self.as_of.isoformat(),
            "total": str(self.total.amount),
            "buckets": [
                {"name": name, "total": str(total.amount)}
                for name, total in self.totals_by_bucket().items()
            ],
            "items": [
                {
                    "debt_id": item.debt_id,
                    "counterparty": item.counterparty,
                    "remaining_balance": str(item.remaining_balance.amount),
                    "due_date": item.due_date.isoformat() if item.due_date else None,
                    "age_days": item.age_days,
                    "bucket": item.bucket.name,
                }
                for item in self.items
            ],
        }


def classify(age_days: int, buckets: Sequence[AgeBucket]) -> AgeBucket:
    """Return the first bucket containing ``age_days``; negative ages are current."""
    age = max(0, age_days)
    for bucket in buckets:
        if bucket.contains(age):
            return bucket
    raise ValueError(f"No aging bucket covers {age_days} days")


@traced_engine("aging", "1.0", fingerprint_fields=("as_of",))
def build_aging_report(
    debts: Sequence[Debt],
    as_of: date,
    currency: Currency,
    buckets: Sequence[AgeBucket] = STANDARD_BUCKETS,
) -> AgingReport:
    """
    Age every debt that still carries a balance.

    Age is measured from the due date, or from the issue date when a debt
    has no due date. Cancelled and settled debts are skipped.
    """
    items: list[AgedDebt] = []
    for debt in debts:
        if not debt.remaining_balance.is_positive or debt.status == DebtStatus.CANCELLED:
            continue
        anchor = debt.due_date or debt.issue_date
        age = (as_of - anchor).days
        items.append(
            AgedDebt(
                debt_id=debt.debt_id,
                counterparty=debt.counterparty,
                remaining_balance=debt.remaining_balance,
                due_date=debt.due_date,
                age_days=max(0, age),
                bucket=classify(age, buckets),
            )
        )

    logger.info("aging_report_built", extra={
        "as_of": as_of.isoformat(),
        "item_count": len(items),
    })

    return AgingReport(
        as_of=as_of,
        buckets=tuple(buckets),
        items=tuple(items),
        currency=currency,
    )
