"""
Pytest fixtures for the stockbook test suite.

Provides:
- Structured logging configured once per session, LogContext cleared per test
- A deterministic clock, default configuration and a fresh in-memory store
- A wired Bookkeeping facade, plus small builders for products and stock
"""

import json
import logging
from datetime import date, datetime, timezone
from io import StringIO

import pytest

from stockbook_config import EngineConfig, InsufficientStockPolicy
from stockbook_kernel.domain.clock import DeterministicClock
from stockbook_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from stockbook_services import Bookkeeping, InMemoryLedgerStore

TODAY = date(2024, 3, 15)


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture stockbook logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, books):
            books.sales.record_sale(...)
            logs = captured_logs()
            assert any(r["message"] == "sale_recorded" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("stockbook")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


# =============================================================================
# Core fixtures
# =============================================================================


@pytest.fixture
def deterministic_clock():
    """A clock fixed at noon UTC on TODAY."""
    return DeterministicClock(datetime(2024, 3, 15, 12, 0, 0, tzinfo=timezone.utc))


@pytest.fixture
def config():
    return EngineConfig()


@pytest.fixture
def partial_config():
    return EngineConfig(insufficient_stock_policy=InsufficientStockPolicy.PARTIAL)


@pytest.fixture
def store(config):
    return InMemoryLedgerStore(config.currency)


@pytest.fixture
def books(config, deterministic_clock, store):
    """A fully wired Bookkeeping instance over a fresh store."""
    return Bookkeeping(config=config, clock=deterministic_clock, store=store)


@pytest.fixture
def partial_books(partial_config, deterministic_clock):
    return Bookkeeping(config=partial_config, clock=deterministic_clock)


# =============================================================================
# Builders
# =============================================================================


@pytest.fixture
def rice(books):
    """Product RICE with two batches: 5 @ 8.00 (Mar 1) and 5 @ 10.00 (Mar 2)."""
    product = books.inventory.add_product("RICE", "Rice 1kg", "Grains", "kg")
    books.inventory.stock_in("RICE", 5, "8.00", arrival_date=date(2024, 3, 1))
    books.inventory.stock_in("RICE", 5, "10.00", arrival_date=date(2024, 3, 2))
    return product


@pytest.fixture
def stocked_product(books):
    """
    Factory: create a product and one batch.

    Usage::

        stocked_product("SOAP", quantity=20, unit_price="12.50")
    """

    def _make(
        code: str,
        quantity=100,
        unit_price="10.00",
        category: str = "General",
        arrival_date: date = date(2024, 3, 1),
    ):
        product = books.inventory.add_product(code, f"{code} item", category, "pc")
        books.inventory.stock_in(code, quantity, unit_price, arrival_date=arrival_date)
        return product

    return _make
