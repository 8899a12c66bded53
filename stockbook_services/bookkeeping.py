"""
stockbook_services.bookkeeping -- Facade wiring one complete bookkeeping instance.

Responsibility:
    Construct the store, configuration, clock and every service of one
    instance, and expose snapshot export/import for the hosting layer's
    persistence.

Architecture position:
    Services -- the single object a request-handling layer constructs.
    Holds no state of its own beyond its collaborators.

Failure modes:
    - ValueError when an injected store's currency differs from the
      configured currency.
    - SnapshotFormatError when an imported snapshot is malformed or its
      state fails the audit; the previous state is restored.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any
from uuid import uuid4

from stockbook_config import EngineConfig, get_active_config
from stockbook_kernel.domain.clock import Clock, SystemClock
from stockbook_kernel.exceptions import SnapshotFormatError
from stockbook_kernel.logging_config import LogContext, get_logger
from stockbook_services.auditor_service import AuditorService, AuditReport
from stockbook_services.debt_service import DebtLedger
from stockbook_services.inventory_service import InventoryService
from stockbook_services.journal_service import JournalLedger
from stockbook_services.payment_allocator import PaymentAllocator
from stockbook_services.reporting_service import ReportingService
from stockbook_services.sales_service import SalesService
from stockbook_services.store import InMemoryLedgerStore, LedgerStore

logger = get_logger("services.bookkeeping")


class Bookkeeping:
    """
    One bookkeeping instance.

    Usage:
        books = Bookkeeping(clock=DeterministicClock())
        books.inventory.add_product("RICE-25", "Rice 25kg", "Grains", "sack")
        books.inventory.stock_in("RICE-25", 10, "1150.00")
        sale = books.sales.record_sale("RICE-25", 2, "1300.00", "1000.00", "Ana Cruz")
        snapshot = books.export_snapshot()
    """

    def __init__(
        self,
        config: EngineConfig | None = None,
        clock: Clock | None = None,
        store: LedgerStore | None = None,
    ):
        self.config = config or get_active_config()
        self.clock = clock or SystemClock()
        self.store = store or InMemoryLedgerStore(self.config.currency)
        if self.store.currency.code != self.config.currency:
            raise ValueError(
                f"Store currency {self.store.currency.code} does not match "
                f"configured currency {self.config.currency}"
            )

        self.journal = JournalLedger(self.store, self.clock, self.config.journal_categories)
        self.inventory = InventoryService(self.store, self.clock, self.journal, self.config)
        self.debts = DebtLedger(self.store, self.clock, self.journal, self.config)
        self.sales = SalesService(
            self.store, self.clock, self.inventory, self.debts, self.journal, self.config
        )
        self.allocator = PaymentAllocator(self.store, self.clock, self.debts)
        self.reporting = ReportingService(self.store, self.clock, self.config)
        self.auditor = AuditorService(self.store)

        logger.info("bookkeeping_initialized", extra={
            "currency": self.config.currency,
            "config_checksum": self.config.checksum,
            "insufficient_stock_policy": self.config.insufficient_stock_policy.value,
        })

    @contextmanager
    def operation(
        self,
        name: str,
        actor_id: str | None = None,
        correlation_id: str | None = None,
    ) -> Iterator[str]:
        """Bind log context for one hosting-layer request; yields the correlation id."""
        correlation_id = correlation_id or str(uuid4())
        with LogContext.bind(
            operation=name,
            actor_id=actor_id,
            correlation_id=correlation_id,
        ):
            yield correlation_id

    def export_snapshot(self) -> dict[str, Any]:
        return self.store.export_snapshot(self.clock.now())

    def import_snapshot(self, data: dict[str, Any]) -> AuditReport:
        """Replace all state with ``data`` and audit it.

        Raises:
            SnapshotFormatError: malformed data, or the imported state
                violates a ledger invariant. State is left as it was.
        """
        # Import and audit under one transaction: no other caller sees the
        # unaudited state, and raising restores the savepoint.
        with self.store.transaction():
            self.store.import_snapshot(data)
            report = self.auditor.audit()
            if not report.is_clean:
                invariants = sorted({v.invariant.value for v in report.violations})
                logger.error("snapshot_import_rejected", extra={
                    "violation_count": len(report.violations),
                    "invariants": invariants,
                })
                raise SnapshotFormatError(
                    f"imported state violates {', '.join(invariants)}"
                )
        return report

    def verify(self) -> AuditReport:
        return self.auditor.audit()
