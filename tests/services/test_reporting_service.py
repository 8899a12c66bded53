"""
Tests for read-only reporting.

Covers:
- Inventory summary and low-stock detection
- Dashboard statistics
- Opening capital
- Customer list, search and profile
- Aging report over stored debts
"""

import pytest
from datetime import date
from decimal import Decimal

from stockbook_kernel.domain.records import DebtKind, DebtStatus, EntryType
from stockbook_kernel.domain.values import Money
from stockbook_services import SaleItem


def php(amount: str) -> Money:
    return Money.of(amount, "PHP")


class TestInventoryReports:
    """Stock on hand per product."""

    def test_inventory_summary(self, books, rice):
        books.sales.record_sale("RICE", 7, "12.00", "84.00", "Ana Cruz")

        (line,) = books.reporting.inventory_summary()
        assert line.product_code == "RICE"
        assert line.total_quantity == Decimal("3")
        assert line.total_value == php("30.00")
        assert line.average_price == php("10.00")

    def test_low_stock_includes_empty_products(self, books, rice):
        books.sales.record_sale("RICE", 1, "12.00", "12.00", "Ana Cruz")
        books.inventory.add_product("SALT", "Salt", "Condiments", "pack")
        books.inventory.add_product("SUGAR", "Sugar", "Baking", "kg")
        books.inventory.stock_in("SUGAR", 50, "2.00")

        low = books.reporting.low_stock()
        assert [line.product_code for line in low] == ["RICE", "SALT"]
        assert low[1].total_quantity == Decimal("0")


class TestDashboard:
    """Headline figures."""

    def test_dashboard_stats(self, books, rice, deterministic_clock):
        books.sales.record_sale("RICE", 7, "12.00", "50.00", "Ana Cruz", due_date=date(2024, 3, 10))
        books.debts.create_general_debt(
            kind=DebtKind.PAYABLE, counterparty="Mill Supply Co", category="Suppliers",
            description="Delivery", original_amount="200.00",
        )

        stats = books.reporting.dashboard_stats()

        assert stats.total_products == 1
        assert stats.total_stock_value == php("30.00")
        assert stats.total_sales == php("84.00")
        assert stats.total_profit == php("24.00")
        assert stats.total_customer_debts == php("34.00")
        assert stats.total_payables == php("200.00")
        assert stats.total_receivables.is_zero
        assert stats.overdue_debts == 1
        assert stats.low_stock_items == 1
        assert stats.current_balance == books.journal.current_balance()
        assert stats.sales_by_category == {"Grains": php("84.00")}
        assert stats.profit_by_month[-1] == ("2024-03", php("24.00"))
        assert len(stats.profit_by_month) == 6
        assert stats.recent_transactions[0].entry_type.value == "debt_created"
        assert stats.to_dict()["total_sales"] == "84.00"

    def test_cancelled_debts_excluded(self, books):
        debt = books.debts.create_general_debt(
            kind=DebtKind.RECEIVABLE, counterparty="Barangay Store", category="Loans",
            description="Loan", original_amount="300.00",
        )
        books.debts.update_general_debt(debt.debt_id, status=DebtStatus.CANCELLED)
        assert books.reporting.dashboard_stats().total_receivables.is_zero


class TestOpeningCapital:
    """Opening stock contributed by the owner."""

    def test_opening_capital(self, books):
        books.inventory.add_product("RICE", "Rice 1kg", "Grains", "kg")
        books.inventory.stock_in("RICE", 10, "5.00", entry_type=EntryType.OPENING_STOCK)
        books.inventory.stock_in("RICE", 10, "6.00")

        capital = books.reporting.opening_capital()
        assert capital.total_opening_stock == php("50.00")
        assert len(capital.entries) == 1
        assert capital.to_dict()["opening_stock_entries"][0]["total_value"] == "50.00"


class TestCustomers:
    """Customer summaries derived from sales."""

    def test_list_and_search(self, books, stocked_product):
        stocked_product("SOAP", quantity=50, unit_price="5.00")
        books.sales.record_sale("SOAP", 2, "10.00", "20.00", "Ana Cruz")
        books.sales.record_sale("SOAP", 3, "10.00", "10.00", "ana cruz")
        books.sales.record_sale("SOAP", 1, "10.00", "10.00", "Ben Reyes")

        customers = books.reporting.list_customers()
        assert [c.sale_count for c in customers] == [2, 1]
        ana = customers[0]
        assert ana.total_purchases == php("50.00")
        assert ana.outstanding_balance == php("20.00")
        assert ana.total_paid == php("30.00")
        assert [c.name for c in books.reporting.search_customers("REY")] == ["Ben Reyes"]

    def test_profile(self, books, stocked_product):
        stocked_product("SOAP", quantity=50, unit_price="5.00")
        sale = books.sales.record_sale("SOAP", 3, "10.00", "10.00", "Ana Cruz")
        books.debts.apply_payment(sale.debt_id, "5.00")

        profile = books.reporting.customer_profile("ana cruz")
        assert profile is not None
        assert len(profile.sales) == 1
        assert profile.debts[0].debt.remaining_balance == php("15.00")
        assert len(profile.payments) == 1
        assert profile.to_dict()["summary"]["outstanding_balance"] == "15.00"
        assert profile.summary.total_paid == php("15.00")

    def test_overpaid_items_count_in_full(self, books, stocked_product):
        stocked_product("SOAP", quantity=50, unit_price="5.00")
        stocked_product("RICE", quantity=50, unit_price="5.00")
        books.sales.record_multi_product_sale(
            "Ana Cruz",
            [SaleItem("SOAP", 2, "10.00"), SaleItem("RICE", 1, "10.00")],
            "45.00",
        )

        (ana,) = books.reporting.list_customers()
        assert ana.total_purchases == php("30.00")
        assert ana.outstanding_balance.is_zero
        assert ana.total_paid == php("45.00")

    def test_unknown_customer(self, books):
        assert books.reporting.customer_profile("Nobody") is None


class TestAgingReport:
    """Aging uses the configured buckets."""

    def test_aging_by_kind(self, books, rice):
        books.sales.record_sale("RICE", 2, "20.00", "0", "Ana Cruz", due_date=date(2024, 2, 1))
        books.debts.create_general_debt(
            kind=DebtKind.PAYABLE, counterparty="Mill Supply Co", category="Suppliers",
            description="Delivery", original_amount="200.00",
        )

        report = books.reporting.aging_report(kind=DebtKind.SALE)
        assert len(report.items) == 1
        assert report.items[0].bucket.name == "31-60"
        assert report.total == php("40.00")
        assert books.reporting.aging_report().total == php("240.00")
