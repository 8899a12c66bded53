"""
Tests for snapshot export and import.

Covers:
- Round-trip into a fresh store preserves records, balances and sequences
- Appends after import continue the journal sequence
- Malformed payloads and mismatched schema or currency are rejected
- An import that breaks a ledger invariant is rolled back
"""

import json
import pytest
from datetime import date
from decimal import Decimal

from stockbook_kernel.domain.records import DebtKind
from stockbook_kernel.domain.values import Money
from stockbook_kernel.exceptions import SnapshotFormatError
from stockbook_services import Bookkeeping, InMemoryLedgerStore


def php(amount: str) -> Money:
    return Money.of(amount, "PHP")


@pytest.fixture
def populated(books, rice):
    sale = books.sales.record_sale("RICE", 7, "12.00", "20.00", "Ana Cruz", due_date=date(2024, 4, 1))
    books.debts.apply_payment(sale.debt_id, "14.00")
    books.debts.create_general_debt(
        kind=DebtKind.RECEIVABLE, counterparty="Barangay Store", category="Loans",
        description="Loan", original_amount="75.00",
    )
    return books


@pytest.fixture
def fresh_books(config, deterministic_clock):
    return Bookkeeping(config=config, clock=deterministic_clock)


class TestRoundTrip:
    """Exported state imports into an empty store unchanged."""

    def test_export_is_json_safe(self, populated):
        data = populated.export_snapshot()
        encoded = json.dumps(data)
        assert json.loads(encoded)["schema_version"] == 1
        assert data["currency"] == "PHP"
        assert data["exported_at"].startswith("2024-03-15")

    def test_round_trip_preserves_state(self, populated, fresh_books):
        data = json.loads(json.dumps(populated.export_snapshot()))

        report = fresh_books.import_snapshot(data)

        assert report.is_clean
        assert fresh_books.journal.entries() == populated.journal.entries()
        assert fresh_books.journal.current_balance() == populated.journal.current_balance()
        assert fresh_books.debts.list_debts() == populated.debts.list_debts()
        assert fresh_books.inventory.available_quantity("RICE") == Decimal("3")
        assert fresh_books.sales.list_sales() == populated.sales.list_sales()

    def test_sequences_continue_after_import(self, populated, fresh_books):
        last_sequence = populated.journal.entries()[-1].sequence
        fresh_books.import_snapshot(populated.export_snapshot())

        entry = fresh_books.journal.append(date(2024, 3, 15), "Sales", "Walk-in", credit="5")
        batch = fresh_books.inventory.stock_in("RICE", 1, "9.00")

        assert entry.sequence == last_sequence + 1
        assert batch.sequence == 3
        assert fresh_books.verify().is_clean

    def test_missing_sequences_are_rebuilt(self, populated, fresh_books):
        data = populated.export_snapshot()
        data["sequences"] = {}
        fresh_books.import_snapshot(data)

        entry = fresh_books.journal.append(date(2024, 3, 15), "Sales", "Walk-in", credit="5")
        assert entry.sequence == len(populated.journal.entries()) + 1


class TestRejectedImports:
    """Invalid payloads leave the target untouched."""

    def test_wrong_schema_version(self, populated, fresh_books):
        data = populated.export_snapshot()
        data["schema_version"] = 99
        with pytest.raises(SnapshotFormatError):
            fresh_books.import_snapshot(data)

    def test_wrong_currency(self, populated):
        data = populated.export_snapshot()
        usd_store = InMemoryLedgerStore("USD")
        with pytest.raises(SnapshotFormatError):
            usd_store.import_snapshot(data)

    def test_not_a_mapping(self, fresh_books):
        with pytest.raises(SnapshotFormatError):
            fresh_books.import_snapshot(["not", "a", "dict"])

    @pytest.mark.parametrize("mutate", [
        lambda d: d["batches"][0].pop("quantity"),
        lambda d: d["journal"][0].update(credit="lots"),
        lambda d: d["debts"][0].update(status="forgiven"),
        lambda d: d["journal"][0].update(entry_date="yesterday"),
    ])
    def test_malformed_record(self, populated, fresh_books, mutate):
        data = populated.export_snapshot()
        mutate(data)
        with pytest.raises(SnapshotFormatError):
            fresh_books.import_snapshot(data)
        assert fresh_books.journal.entries() == []

    def test_inconsistent_state_rolled_back(self, populated, books):
        before = populated.export_snapshot()
        data = populated.export_snapshot()
        data["journal"][-1]["balance"] = "123456.00"

        with pytest.raises(SnapshotFormatError, match="running_balance"):
            books.import_snapshot(data)

        assert books.export_snapshot() == before
        assert books.verify().is_clean

    def test_debt_payments_must_match(self, populated, fresh_books):
        data = populated.export_snapshot()
        data["payments"] = []
        with pytest.raises(SnapshotFormatError, match="debt_arithmetic"):
            fresh_books.import_snapshot(data)
        assert fresh_books.debts.list_debts() == []
