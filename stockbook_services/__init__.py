"""
stockbook_services -- Stateful orchestration over an injected LedgerStore.

Services compose the pure engines with the store. Every mutating operation
runs inside ``store.transaction()``; reads run inside ``store.read()``.
``Bookkeeping`` wires a complete instance.
"""

from stockbook_services.auditor_service import AuditorService, AuditReport, InvariantViolation
from stockbook_services.bookkeeping import Bookkeeping
from stockbook_services.debt_service import DebtLedger
from stockbook_services.inventory_service import InventoryService
from stockbook_services.journal_service import JournalLedger
from stockbook_services.payment_allocator import AllocationOutcome, PaymentAllocator, Settlement
from stockbook_services.reporting_service import ReportingService
from stockbook_services.sales_service import (
    MultiSaleOutcome,
    SaleItem,
    SalePreview,
    SalesService,
)
from stockbook_services.store import Collection, InMemoryLedgerStore, LedgerStore

__all__ = [
    "AllocationOutcome",
    "AuditReport",
    "AuditorService",
    "Bookkeeping",
    "Collection",
    "DebtLedger",
    "InMemoryLedgerStore",
    "InvariantViolation",
    "InventoryService",
    "JournalLedger",
    "LedgerStore",
    "MultiSaleOutcome",
    "PaymentAllocator",
    "ReportingService",
    "SaleItem",
    "SalePreview",
    "SalesService",
    "Settlement",
]
