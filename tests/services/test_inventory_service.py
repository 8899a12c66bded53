"""
Tests for the product catalog and inventory batch store.

Covers:
- Product code uniqueness and immutability once referenced
- stock_in journal postings (purchase vs opening stock)
- Eligible batch ordering and consumption bounds
"""

import pytest
from datetime import date
from decimal import Decimal

from stockbook_kernel.domain.records import EntryType, JournalEntryType
from stockbook_kernel.domain.values import Money
from stockbook_kernel.exceptions import (
    BatchNotFoundError,
    DuplicateProductCodeError,
    InvalidConsumptionError,
    ProductNotFoundError,
    UnknownProductError,
    ValidationError,
)


def php(amount: str) -> Money:
    return Money.of(amount, "PHP")


class TestCatalog:
    """Product CRUD rules."""

    def test_add_product_strips_code(self, books):
        product = books.inventory.add_product("  RICE ", "Rice 1kg", "Grains", "kg")
        assert product.code == "RICE"
        assert books.inventory.get_product_by_code("RICE") == product

    def test_duplicate_code_rejected(self, books):
        books.inventory.add_product("RICE", "Rice 1kg", "Grains", "kg")
        with pytest.raises(DuplicateProductCodeError) as exc_info:
            books.inventory.add_product("RICE", "Other rice", "Grains", "kg")
        assert exc_info.value.existing_name == "Rice 1kg"

    def test_blank_name_rejected(self, books):
        with pytest.raises(ValidationError):
            books.inventory.add_product("RICE", "  ", "Grains", "kg")

    def test_code_editable_until_referenced(self, books):
        product = books.inventory.add_product("RICE", "Rice 1kg", "Grains", "kg")
        renamed = books.inventory.update_product(product.product_id, code="RICE-1")
        assert renamed.code == "RICE-1"

        books.inventory.stock_in("RICE-1", 5, "8.00")
        with pytest.raises(ValidationError, match="code"):
            books.inventory.update_product(product.product_id, code="RICE-2")

    def test_descriptive_fields_editable_when_referenced(self, books, rice):
        updated = books.inventory.update_product(rice.product_id, name="Jasmine rice 1kg")
        assert updated.name == "Jasmine rice 1kg"
        assert updated.code == "RICE"

    def test_referenced_product_cannot_be_removed(self, books, rice):
        with pytest.raises(ValidationError):
            books.inventory.remove_product(rice.product_id)

    def test_remove_unreferenced_product(self, books):
        product = books.inventory.add_product("SALT", "Salt", "Condiments", "pack")
        books.inventory.remove_product(product.product_id)
        with pytest.raises(ProductNotFoundError):
            books.inventory.get_product(product.product_id)

    def test_list_products_sorted_by_code(self, books):
        books.inventory.add_product("SUGAR", "Sugar", "Baking", "kg")
        books.inventory.add_product("FLOUR", "Flour", "Baking", "kg")
        assert [p.code for p in books.inventory.list_products()] == ["FLOUR", "SUGAR"]


class TestStockIn:
    """Receiving batches and their journal postings."""

    def test_purchase_posts_inventory_debit(self, books):
        books.inventory.add_product("RICE", "Rice 1kg", "Grains", "kg")
        batch = books.inventory.stock_in("RICE", 5, "8.00", arrival_date=date(2024, 3, 1))

        assert batch.remaining_quantity == Decimal("5")
        assert batch.sequence == 1
        entries = books.journal.entries()
        assert len(entries) == 1
        assert entries[0].entry_type == JournalEntryType.STOCK_IN
        assert entries[0].category == "Inventory"
        assert entries[0].debit == php("40.00")
        assert entries[0].balance == php("-40.00")
        assert entries[0].reference == batch.batch_id

    def test_opening_stock_posts_asset_and_capital(self, books):
        books.inventory.add_product("RICE", "Rice 1kg", "Grains", "kg")
        books.inventory.stock_in("RICE", 10, "5.00", entry_type=EntryType.OPENING_STOCK)

        entries = books.journal.entries()
        assert [e.category for e in entries] == [
            "Assets - Opening Stock Inventory",
            "Owner Capital - Opening Stock",
        ]
        assert entries[0].debit == php("50.00")
        assert entries[1].credit == php("50.00")
        assert books.journal.current_balance().is_zero

    def test_zero_price_batch_posts_nothing(self, books):
        books.inventory.add_product("FREEBIE", "Sample", "Promo", "pc")
        books.inventory.stock_in("FREEBIE", 3, "0")
        assert books.journal.entries() == []

    def test_unknown_product_rejected(self, books):
        with pytest.raises(UnknownProductError):
            books.inventory.stock_in("NOPE", 1, "1.00")

    def test_float_quantity_rejected(self, books, rice):
        with pytest.raises(ValidationError):
            books.inventory.stock_in("RICE", 1.5, "1.00")

    def test_expiry_before_arrival_rejected(self, books, rice):
        with pytest.raises(ValidationError, match="expiry_date"):
            books.inventory.stock_in(
                "RICE", 1, "1.00",
                arrival_date=date(2024, 3, 10), expiry_date=date(2024, 3, 9),
            )


class TestBatchStore:
    """Eligible batches, consumption and removal."""

    def test_eligible_batches_in_fifo_order(self, books, rice):
        books.inventory.stock_in("RICE", 2, "9.00", arrival_date=date(2024, 2, 28))
        eligible = books.inventory.list_eligible_batches("RICE")
        assert [b.arrival_date for b in eligible] == [
            date(2024, 2, 28), date(2024, 3, 1), date(2024, 3, 2),
        ]

    def test_list_batches_newest_first(self, books, rice):
        batches = books.inventory.list_batches("RICE")
        assert [b.arrival_date for b in batches] == [date(2024, 3, 2), date(2024, 3, 1)]

    def test_consume_within_remaining(self, books, rice):
        first = books.inventory.list_eligible_batches("RICE")[0]
        updated = books.inventory.consume(first.batch_id, 3)
        assert updated.remaining_quantity == Decimal("2")
        assert books.inventory.available_quantity("RICE") == Decimal("7")

    def test_consume_beyond_remaining_rejected(self, books, rice):
        first = books.inventory.list_eligible_batches("RICE")[0]
        with pytest.raises(InvalidConsumptionError):
            books.inventory.consume(first.batch_id, 6)
        assert books.inventory.get_batch(first.batch_id).remaining_quantity == Decimal("5")

    def test_consume_unknown_batch(self, books):
        with pytest.raises(BatchNotFoundError):
            books.inventory.consume("missing", 1)

    def test_exhausted_batches_not_eligible(self, books, rice):
        first = books.inventory.list_eligible_batches("RICE")[0]
        books.inventory.consume(first.batch_id, 5)
        assert [b.batch_id for b in books.inventory.list_eligible_batches("RICE")] != [first.batch_id]
        assert len(books.inventory.list_eligible_batches("RICE")) == 1

    def test_remove_untouched_batch(self, books, rice):
        last = books.inventory.list_batches("RICE")[0]
        books.inventory.remove_batch(last.batch_id)
        assert books.inventory.available_quantity("RICE") == Decimal("5")

    def test_remove_consumed_batch_rejected(self, books, rice):
        first = books.inventory.list_eligible_batches("RICE")[0]
        books.inventory.consume(first.batch_id, 1)
        with pytest.raises(ValidationError):
            books.inventory.remove_batch(first.batch_id)
