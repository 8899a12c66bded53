"""
Unit tests for domain records and the clock.

Covers:
- InventoryBatch bounds and FIFO key
- Debt and JournalEntry construction guards
- to_dict / from_dict for records with nested cost lines
- DeterministicClock
"""

import json
import pytest
from dataclasses import replace
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

from stockbook_kernel.domain.clock import DeterministicClock
from stockbook_kernel.domain.records import (
    CostLine,
    Debt,
    DebtKind,
    DebtStatus,
    EntryType,
    InventoryBatch,
    JournalEntry,
    JournalEntryType,
    PaymentStatus,
    SaleRecord,
)
from stockbook_kernel.domain.values import Currency, Money

PHP = Currency("PHP")
NOW = datetime(2024, 3, 15, 12, 0, tzinfo=timezone.utc)


def _batch(**overrides) -> InventoryBatch:
    fields = dict(
        batch_id="b-1",
        sequence=1,
        product_id="p-1",
        product_code="RICE",
        product_name="Rice 1kg",
        arrival_date=date(2024, 3, 1),
        quantity=Decimal("5"),
        unit_price=Money.of("8.00", PHP),
        remaining_quantity=Decimal("5"),
        entry_type=EntryType.PURCHASE,
        created_at=NOW,
        updated_at=NOW,
    )
    fields.update(overrides)
    return InventoryBatch(**fields)


def _debt(**overrides) -> Debt:
    fields = dict(
        debt_id="d-1",
        kind=DebtKind.SALE,
        counterparty="Ana Cruz",
        total=Money.of("100.00", PHP),
        amount_paid=Money.of("40.00", PHP),
        payment_received=Money.zero(PHP),
        remaining_balance=Money.of("60.00", PHP),
        status=DebtStatus.UNPAID,
        issue_date=date(2024, 3, 1),
        created_at=NOW,
        updated_at=NOW,
    )
    fields.update(overrides)
    return Debt(**fields)


class TestInventoryBatch:
    """Batch construction guards and derived values."""

    def test_remaining_above_quantity_rejected(self):
        with pytest.raises(ValueError, match="exceeds"):
            _batch(remaining_quantity=Decimal("6"))

    def test_negative_remaining_rejected(self):
        with pytest.raises(ValueError, match="negative"):
            _batch(remaining_quantity=Decimal("-1"))

    def test_zero_quantity_rejected(self):
        with pytest.raises(ValueError):
            _batch(quantity=Decimal("0"), remaining_quantity=Decimal("0"))

    def test_fifo_key_is_arrival_then_sequence(self):
        batch = _batch(sequence=7)
        assert batch.fifo_key == (date(2024, 3, 1), 7)

    def test_values(self):
        batch = _batch(remaining_quantity=Decimal("2"))
        assert batch.original_value == Money.of("40.00", PHP)
        assert batch.remaining_value == Money.of("16.00", PHP)
        assert batch.is_available
        assert not batch.is_untouched

    def test_replace_keeps_guards(self):
        with pytest.raises(ValueError):
            replace(_batch(), remaining_quantity=Decimal("9"))


class TestDebtRecord:
    """Debt derived properties."""

    def test_negative_remaining_rejected(self):
        with pytest.raises(ValueError):
            _debt(remaining_balance=Money.of("-1.00", PHP))

    def test_total_paid(self):
        debt = _debt(payment_received=Money.of("10.00", PHP),
                     remaining_balance=Money.of("50.00", PHP))
        assert debt.total_paid == Money.of("50.00", PHP)

    def test_settled(self):
        assert _debt(remaining_balance=Money.zero(PHP), status=DebtStatus.PAID).is_settled
        assert not _debt().is_settled
        assert _debt().is_sale_debt


class TestJournalEntryRecord:
    """Journal entries never carry negative sides."""

    def test_negative_debit_rejected(self):
        with pytest.raises(ValueError):
            JournalEntry(
                entry_id="e-1",
                sequence=1,
                entry_date=date(2024, 3, 1),
                entry_type=JournalEntryType.ADJUSTMENT,
                category="Sales",
                description="bad",
                debit=Money.of("-1.00", PHP),
                credit=Money.zero(PHP),
                balance=Money.of("1.00", PHP),
                created_at=NOW,
            )


class TestRecordCodec:
    """to_dict output is JSON-safe and from_dict restores the record."""

    def test_sale_with_cost_lines(self):
        sale = SaleRecord(
            sale_id="s-1",
            product_id="p-1",
            product_code="RICE",
            product_name="Rice 1kg",
            sale_date=date(2024, 3, 10),
            quantity=Decimal("7"),
            unit_price=Money.of("12.00", PHP),
            total_cost=Money.of("60.00", PHP),
            total_sale=Money.of("84.00", PHP),
            profit=Money.of("24.00", PHP),
            amount_paid=Money.of("84.00", PHP),
            payment_status=PaymentStatus.PAID,
            customer="Ana Cruz",
            cost_lines=(
                CostLine("b-1", Decimal("5"), Money.of("8.00", PHP), Money.of("40.00", PHP)),
                CostLine("b-2", Decimal("2"), Money.of("10.00", PHP), Money.of("20.00", PHP)),
            ),
            created_at=NOW,
        )
        data = sale.to_dict()
        json.dumps(data)
        assert data["total_cost"] == "60.00"
        assert data["payment_status"] == "paid"
        assert data["cost_lines"][1]["batch_id"] == "b-2"

        restored = SaleRecord.from_dict(data, PHP)
        assert restored == sale
        assert restored.balance_due.is_zero

    def test_missing_required_field(self):
        data = _batch().to_dict()
        del data["arrival_date"]
        with pytest.raises(KeyError):
            InventoryBatch.from_dict(data, PHP)

    def test_optional_fields_default(self):
        data = _debt().to_dict()
        del data["priority"]
        assert Debt.from_dict(data, PHP).priority == _debt().priority


class TestDeterministicClock:
    """Tests for the injectable test clock."""

    def test_default_time(self):
        assert DeterministicClock().now() == datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)

    def test_advance_days(self):
        clock = DeterministicClock(NOW)
        clock.advance_days(3)
        assert clock.today() == date(2024, 3, 18)

    def test_advance_seconds(self):
        clock = DeterministicClock(NOW)
        clock.advance(90)
        assert clock.now() == NOW + timedelta(seconds=90)

    def test_set_date(self):
        clock = DeterministicClock(NOW)
        clock.set_date(date(2024, 5, 1))
        assert clock.today() == date(2024, 5, 1)
