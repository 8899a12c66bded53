"""
Tests for multi-debt payment allocation.

Covers:
- Proportional split 500/300/200 with 600 => 300/180/120
- One payment and one journal entry per settled debt
- Manual split validation
- Preconditions: same customer, unsettled, within outstanding total
- Atomicity of the whole allocation
"""

import pytest
from datetime import date
from unittest.mock import patch

from stockbook_engines.allocation import AllocationMethod
from stockbook_kernel.domain.records import DebtStatus, JournalEntryType
from stockbook_kernel.domain.values import Money
from stockbook_kernel.exceptions import (
    AllocationMismatchError,
    CrossCustomerAllocationError,
    DebtAlreadySettledError,
    OverallocationError,
    OverpaymentError,
    ValidationError,
)


def php(amount: str) -> Money:
    return Money.of(amount, "PHP")


@pytest.fixture
def three_debts(books, stocked_product):
    """Three unpaid sales to Ana Cruz leaving 500, 300 and 200 outstanding."""
    stocked_product("RICE", quantity=100, unit_price="1.00")
    ids = []
    for total in ("500.00", "300.00", "200.00"):
        sale = books.sales.record_sale("RICE", 1, total, "0", "Ana Cruz")
        ids.append(sale.debt_id)
    return ids


class TestProportionalAllocation:
    """The lump is split by share of remaining balance."""

    def test_worked_example(self, books, three_debts):
        outcome = books.allocator.allocate(three_debts, "600.00")

        assert [s.amount for s in outcome.settlements] == [
            php("300.00"), php("180.00"), php("120.00"),
        ]
        assert outcome.total_applied == php("600.00")
        assert outcome.unallocated.is_zero
        remaining = [books.debts.get_debt(d).remaining_balance for d in three_debts]
        assert remaining == [php("200.00"), php("120.00"), php("80.00")]

    def test_one_payment_and_entry_per_debt(self, books, three_debts):
        entries_before = len(books.journal.entries())

        outcome = books.allocator.allocate(three_debts, "600.00", reference="OR-1001")

        assert len(outcome.payments) == 3
        assert {p.allocation_id for p in outcome.payments} == {outcome.allocation_id}
        new_entries = books.journal.entries()[entries_before:]
        assert len(new_entries) == 3
        assert all(e.entry_type == JournalEntryType.PAYMENT_RECEIVED for e in new_entries)
        assert [e.credit for e in new_entries] == [s.amount for s in outcome.settlements]

    def test_paying_everything_settles_all(self, books, three_debts):
        books.allocator.allocate(three_debts, "1000.00")
        assert all(
            books.debts.get_debt(d).status == DebtStatus.PAID for d in three_debts
        )

    def test_outcome_serializes(self, books, three_debts):
        data = books.allocator.allocate(three_debts, "600.00").to_dict()
        assert data["method"] == "proportional"
        assert data["settlements"][1]["remaining_after"] == "120.00"

    def test_tiny_debt_does_not_return_change(self, books, stocked_product):
        stocked_product("SOAP", quantity=20, unit_price="0.01")
        ids = [
            books.sales.record_sale("SOAP", 1, total, "0", "Ana Cruz").debt_id
            for total in ["1.00"] * 9 + ["0.01"]
        ]

        outcome = books.allocator.allocate(ids, "4.54")

        assert outcome.total_applied == php("4.54")
        assert outcome.unallocated.is_zero
        assert outcome.settlements[-1].amount == php("0.01")
        assert books.debts.get_debt(ids[-1]).status == DebtStatus.PAID


class TestManualAllocation:
    """Caller-specified per-debt amounts."""

    def test_manual_amounts_applied(self, books, three_debts):
        d1, d2, d3 = three_debts
        outcome = books.allocator.allocate(
            three_debts,
            "400.00",
            method=AllocationMethod.MANUAL,
            manual_amounts={d1: "100.00", d2: "300.00", d3: "0"},
        )

        assert len(outcome.payments) == 2
        assert books.debts.get_debt(d2).status == DebtStatus.PAID
        assert books.debts.get_debt(d3).remaining_balance == php("200.00")

    def test_mismatched_total_rejected(self, books, three_debts):
        d1, d2, d3 = three_debts
        with pytest.raises(AllocationMismatchError):
            books.allocator.allocate(
                three_debts,
                "400.00",
                method=AllocationMethod.MANUAL,
                manual_amounts={d1: "100.00", d2: "100.00", d3: "100.00"},
            )

    def test_amount_above_remaining_rejected(self, books, three_debts):
        d1, d2, d3 = three_debts
        with pytest.raises(OverpaymentError):
            books.allocator.allocate(
                three_debts,
                "400.00",
                method=AllocationMethod.MANUAL,
                manual_amounts={d1: "0", d2: "0", d3: "400.00"},
            )

    def test_manual_requires_amounts(self, books, three_debts):
        with pytest.raises(ValidationError):
            books.allocator.allocate(three_debts, "100.00", method=AllocationMethod.MANUAL)


class TestPreconditions:
    """Selections the allocator refuses."""

    def test_total_above_outstanding_rejected(self, books, three_debts):
        with pytest.raises(OverallocationError) as exc_info:
            books.allocator.allocate(three_debts, "1000.01")
        assert exc_info.value.total_outstanding == "1000.00"

    def test_cross_customer_rejected(self, books, three_debts):
        other = books.sales.record_sale("RICE", 1, "50.00", "0", "Ben Reyes")
        with pytest.raises(CrossCustomerAllocationError):
            books.allocator.allocate([three_debts[0], other.debt_id], "100.00")

    def test_customer_name_matching_ignores_case(self, books, three_debts):
        other = books.sales.record_sale("RICE", 1, "50.00", "0", "  ana cruz ")
        outcome = books.allocator.allocate([three_debts[0], other.debt_id], "110.00")
        assert outcome.total_applied == php("110.00")

    def test_settled_debt_rejected(self, books, three_debts):
        books.debts.apply_payment(three_debts[2], "200.00")
        with pytest.raises(DebtAlreadySettledError):
            books.allocator.allocate(three_debts, "100.00")

    def test_duplicate_ids_rejected(self, books, three_debts):
        with pytest.raises(ValidationError):
            books.allocator.allocate([three_debts[0], three_debts[0]], "100.00")

    def test_empty_selection_rejected(self, books):
        with pytest.raises(ValidationError):
            books.allocator.allocate([], "100.00")

    def test_zero_total_rejected(self, books, three_debts):
        with pytest.raises(ValidationError):
            books.allocator.allocate(three_debts, "0")


class TestAllocationAtomicity:
    """A failure mid-allocation leaves every debt unchanged."""

    def test_failure_on_last_debt_rolls_back(self, books, three_debts):
        before = [books.debts.get_debt(d) for d in three_debts]
        entries_before = books.journal.entries()
        real_apply = books.debts.apply_payment
        calls = []

        def flaky_apply(**kwargs):
            calls.append(kwargs["debt_id"])
            if len(calls) == 3:
                raise RuntimeError("disk full")
            return real_apply(**kwargs)

        with patch.object(books.debts, "apply_payment", side_effect=flaky_apply):
            with pytest.raises(RuntimeError):
                books.allocator.allocate(three_debts, "600.00", payment_date=date(2024, 3, 15))

        assert [books.debts.get_debt(d) for d in three_debts] == before
        assert books.journal.entries() == entries_before
        assert books.debts.list_payments() == []
