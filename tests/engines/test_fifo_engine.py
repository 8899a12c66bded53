"""
Tests for the FIFO cost engine.

Covers:
- Worked example: B1 5@8, B2 5@10, sell 7 => 40 + 20 = 60
- Tie-break on equal arrival dates by sequence
- Exhausted batches skipped
- Shortfall reporting
- Purity: inputs untouched
"""

import pytest
from datetime import date, datetime, timezone
from decimal import Decimal

from stockbook_engines.fifo import FifoCostEngine, plan_fifo
from stockbook_kernel.domain.records import EntryType, InventoryBatch
from stockbook_kernel.domain.values import Currency, Money

PHP = Currency("PHP")
NOW = datetime(2024, 3, 15, 12, 0, tzinfo=timezone.utc)


def make_batch(
    batch_id: str,
    quantity: str,
    price: str,
    arrival: date,
    sequence: int,
    remaining: str | None = None,
    product_code: str = "RICE",
) -> InventoryBatch:
    return InventoryBatch(
        batch_id=batch_id,
        sequence=sequence,
        product_id="p-1",
        product_code=product_code,
        product_name="Rice 1kg",
        arrival_date=arrival,
        quantity=Decimal(quantity),
        unit_price=Money.of(price, PHP),
        remaining_quantity=Decimal(remaining if remaining is not None else quantity),
        entry_type=EntryType.PURCHASE,
        created_at=NOW,
        updated_at=NOW,
    )


class TestFifoOrder:
    """Oldest batches are consumed first."""

    def test_worked_example(self):
        b1 = make_batch("B1", "5", "8.00", date(2024, 3, 1), 1)
        b2 = make_batch("B2", "5", "10.00", date(2024, 3, 2), 2)

        plan = plan_fifo(batches=[b2, b1], quantity=Decimal("7"), product_code="RICE", currency=PHP)

        assert [(l.batch_id, l.quantity_used, l.line_cost) for l in plan.used_batches] == [
            ("B1", Decimal("5"), Money.of("40.00", PHP)),
            ("B2", Decimal("2"), Money.of("20.00", PHP)),
        ]
        assert plan.total_cost == Money.of("60.00", PHP)
        assert plan.is_complete
        assert plan.shortfall == 0

    def test_same_arrival_date_ordered_by_sequence(self):
        later = make_batch("late", "5", "10.00", date(2024, 3, 1), 2)
        earlier = make_batch("early", "5", "8.00", date(2024, 3, 1), 1)

        plan = plan_fifo(batches=[later, earlier], quantity=Decimal("3"), product_code="RICE", currency=PHP)

        assert [l.batch_id for l in plan.used_batches] == ["early"]
        assert plan.total_cost == Money.of("24.00", PHP)

    def test_exhausted_batches_skipped(self):
        empty = make_batch("old", "5", "1.00", date(2024, 2, 1), 1, remaining="0")
        fresh = make_batch("new", "5", "9.00", date(2024, 3, 1), 2)

        plan = plan_fifo(batches=[empty, fresh], quantity=Decimal("2"), product_code="RICE", currency=PHP)

        assert [l.batch_id for l in plan.used_batches] == ["new"]

    def test_partially_consumed_batch_uses_remaining(self):
        b1 = make_batch("B1", "5", "8.00", date(2024, 3, 1), 1, remaining="1")
        b2 = make_batch("B2", "5", "10.00", date(2024, 3, 2), 2)

        plan = plan_fifo(batches=[b1, b2], quantity=Decimal("3"), product_code="RICE", currency=PHP)

        assert [(l.batch_id, l.quantity_used) for l in plan.used_batches] == [
            ("B1", Decimal("1")),
            ("B2", Decimal("2")),
        ]
        assert plan.total_cost == Money.of("28.00", PHP)


class TestShortfall:
    """Insufficient stock is reported, never hidden."""

    def test_shortfall_reported(self):
        b1 = make_batch("B1", "5", "8.00", date(2024, 3, 1), 1)

        plan = plan_fifo(batches=[b1], quantity=Decimal("8"), product_code="RICE", currency=PHP)

        assert not plan.is_complete
        assert plan.filled_quantity == Decimal("5")
        assert plan.shortfall == Decimal("3")
        assert plan.total_cost == Money.of("40.00", PHP)

    def test_no_stock_at_all(self):
        plan = plan_fifo(batches=[], quantity=Decimal("1"), product_code="RICE", currency=PHP)
        assert plan.used_batches == ()
        assert plan.total_cost.is_zero
        assert plan.average_unit_cost.is_zero


class TestValidationAndPurity:
    """Preconditions and the no-mutation guarantee."""

    def test_non_positive_quantity_rejected(self):
        with pytest.raises(ValueError):
            plan_fifo(batches=[], quantity=Decimal("0"), product_code="RICE", currency=PHP)

    def test_foreign_product_batch_rejected(self):
        other = make_batch("X", "5", "8.00", date(2024, 3, 1), 1, product_code="SUGAR")
        with pytest.raises(ValueError, match="SUGAR"):
            plan_fifo(batches=[other], quantity=Decimal("1"), product_code="RICE", currency=PHP)

    def test_inputs_not_mutated(self):
        b1 = make_batch("B1", "5", "8.00", date(2024, 3, 1), 1)
        plan_fifo(batches=[b1], quantity=Decimal("5"), product_code="RICE", currency=PHP)
        assert b1.remaining_quantity == Decimal("5")

    def test_fractional_quantities(self):
        b1 = make_batch("B1", "2.5", "40.00", date(2024, 3, 1), 1)
        plan = plan_fifo(batches=[b1], quantity=Decimal("1.25"), product_code="RICE", currency=PHP)
        assert plan.total_cost == Money.of("50.00", PHP)


class TestFifoCostEngine:
    """The engine binds plan_fifo to a batch reader."""

    def test_reads_batches_for_product(self):
        calls = []
        batches = [make_batch("B1", "5", "8.00", date(2024, 3, 1), 1)]

        def reader(code):
            calls.append(code)
            return batches

        plan = FifoCostEngine(reader, PHP).cost("RICE", Decimal("2"))

        assert calls == ["RICE"]
        assert plan.total_cost == Money.of("16.00", PHP)
        assert plan.to_dict()["used_batches"][0]["batch_id"] == "B1"
