"""
Typed Exception Hierarchy for the Stockbook Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers of the engine (an HTTP layer, a CLI, a test) must be able to react to
a failure without parsing its message:

    try:
        ledger.apply_payment(debt_id, amount, payment_date, method)
    except OverpaymentError as e:
        return {"code": e.code, "remaining": str(e.remaining_balance)}

Every exception therefore:
  1. Has its own class (catch by type, not by message)
  2. Has a ``code`` class attribute (machine-readable, API-safe)
  3. Carries structured attributes (not just a message string)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    StockbookError (base)
    |
    +-- ValidationError
    |   +-- AllocationMismatchError
    |
    +-- NotFoundError
    |   +-- UnknownProductError
    |   +-- ProductNotFoundError
    |   +-- BatchNotFoundError
    |   +-- SaleNotFoundError
    |   +-- DebtNotFoundError
    |   +-- PaymentNotFoundError
    |   +-- JournalEntryNotFoundError
    |
    +-- CatalogError
    |   +-- DuplicateProductCodeError
    |
    +-- InventoryError
    |   +-- InvalidConsumptionError
    |   +-- InsufficientStockError
    |
    +-- SettlementError
    |   +-- OverpaymentError
    |   +-- OverallocationError
    |   +-- CrossCustomerAllocationError
    |   +-- DebtAlreadySettledError
    |   +-- DebtCancelledError
    |
    +-- JournalError
    |   +-- JournalIntegrityError
    |
    +-- SnapshotError
        +-- SnapshotFormatError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category    | Code                       | When Raised
------------|----------------------------|--------------------------------------------
Validation  | VALIDATION_ERROR           | Bad input shape or range
            | ALLOCATION_MISMATCH        | Manual allocation does not sum to payment
------------|----------------------------|--------------------------------------------
Not found   | UNKNOWN_PRODUCT            | Product code not in the catalog
            | PRODUCT_NOT_FOUND          | Product id doesn't exist
            | BATCH_NOT_FOUND            | Batch id doesn't exist
            | SALE_NOT_FOUND             | Sale id doesn't exist
            | DEBT_NOT_FOUND             | Debt id doesn't exist
            | PAYMENT_NOT_FOUND          | Payment id doesn't exist
            | JOURNAL_ENTRY_NOT_FOUND    | Journal entry id doesn't exist
------------|----------------------------|--------------------------------------------
Catalog     | DUPLICATE_PRODUCT_CODE     | Product code already used by another product
------------|----------------------------|--------------------------------------------
Inventory   | INVALID_CONSUMPTION        | Consuming more than a batch has left
            | INSUFFICIENT_STOCK         | Sale exceeds all eligible stock (reject policy)
------------|----------------------------|--------------------------------------------
Settlement  | OVERPAYMENT                | Payment exceeds a debt's remaining balance
            | OVERALLOCATION             | Lump payment exceeds selected debts' total
            | CROSS_CUSTOMER_ALLOCATION  | Selected debts belong to different parties
            | DEBT_ALREADY_SETTLED       | Paying a debt with nothing remaining
            | DEBT_CANCELLED             | Paying a cancelled debt
------------|----------------------------|--------------------------------------------
Journal     | JOURNAL_INTEGRITY          | Running balance does not recompute
------------|----------------------------|--------------------------------------------
Snapshot    | SNAPSHOT_FORMAT            | Imported snapshot is malformed

===============================================================================
DESIGN DECISIONS
===============================================================================

1. WHY INHERIT FROM Exception (not ValueError, etc.)?
   Domain errors should be catchable as a group without also catching
   programming errors.

2. WHY A code CLASS ATTRIBUTE?
   Codes are static per exception type, so they can be documented and
   mapped to API responses without instantiation.

3. WHY error_response()?
   The hosting layer needs one stable {code, message} pair per failure and
   must never leak tracebacks or internal state for unexpected errors.
===============================================================================
"""

from __future__ import annotations

from typing import Any


class StockbookError(Exception):
    """
    Base exception for all stockbook errors.

    All subclasses must have a ``code`` class attribute for
    machine-readable error identification.
    """

    code: str = "STOCKBOOK_ERROR"


# Validation


class ValidationError(StockbookError):
    """Input has the wrong shape or is out of range."""

    code: str = "VALIDATION_ERROR"

    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__(f"Invalid {field}: {reason}")


class AllocationMismatchError(ValidationError):
    """Manual per-debt amounts do not add up to the lump payment."""

    code: str = "ALLOCATION_MISMATCH"

    def __init__(self, expected_total: str, allocated_total: str):
        self.expected_total = expected_total
        self.allocated_total = allocated_total
        super().__init__(
            "manual_amounts",
            f"allocations sum to {allocated_total}, payment is {expected_total}",
        )


# Lookups


class NotFoundError(StockbookError):
    """Base exception for unknown identifiers."""

    code: str = "NOT_FOUND"


class UnknownProductError(NotFoundError):
    """Product code is not in the catalog."""

    code: str = "UNKNOWN_PRODUCT"

    def __init__(self, product_code: str):
        self.product_code = product_code
        super().__init__(f"Unknown product code: {product_code}")


class ProductNotFoundError(NotFoundError):
    """Product with given ID was not found."""

    code: str = "PRODUCT_NOT_FOUND"

    def __init__(self, product_id: str):
        self.product_id = product_id
        super().__init__(f"Product not found: {product_id}")


class BatchNotFoundError(NotFoundError):
    """Inventory batch with given ID was not found."""

    code: str = "BATCH_NOT_FOUND"

    def __init__(self, batch_id: str):
        self.batch_id = batch_id
        super().__init__(f"Batch not found: {batch_id}")


class SaleNotFoundError(NotFoundError):
    """Sale with given ID was not found."""

    code: str = "SALE_NOT_FOUND"

    def __init__(self, sale_id: str):
        self.sale_id = sale_id
        super().__init__(f"Sale not found: {sale_id}")


class DebtNotFoundError(NotFoundError):
    """Debt with given ID was not found."""

    code: str = "DEBT_NOT_FOUND"

    def __init__(self, debt_id: str):
        self.debt_id = debt_id
        super().__init__(f"Debt not found: {debt_id}")


class PaymentNotFoundError(NotFoundError):
    """Payment with given ID was not found."""

    code: str = "PAYMENT_NOT_FOUND"

    def __init__(self, payment_id: str):
        self.payment_id = payment_id
        super().__init__(f"Payment not found: {payment_id}")


class JournalEntryNotFoundError(NotFoundError):
    """Journal entry with given ID was not found."""

    code: str = "JOURNAL_ENTRY_NOT_FOUND"

    def __init__(self, entry_id: str):
        self.entry_id = entry_id
        super().__init__(f"Journal entry not found: {entry_id}")


# Catalog


class CatalogError(StockbookError):
    """Base exception for product catalog errors."""

    code: str = "CATALOG_ERROR"


class DuplicateProductCodeError(CatalogError):
    """Product code is already used by another product."""

    code: str = "DUPLICATE_PRODUCT_CODE"

    def __init__(self, product_code: str, existing_name: str):
        self.product_code = product_code
        self.existing_name = existing_name
        super().__init__(
            f'Product code "{product_code}" is already in use by "{existing_name}"'
        )


# Inventory


class InventoryError(StockbookError):
    """Base exception for batch and stock errors."""

    code: str = "INVENTORY_ERROR"


class InvalidConsumptionError(InventoryError):
    """
    Requested consumption exceeds a batch's remaining quantity.

    Cannot happen when a FIFO plan is committed as computed; it means a
    caller bypassed the cost engine.
    """

    code: str = "INVALID_CONSUMPTION"

    def __init__(self, batch_id: str, requested: str, remaining: str):
        self.batch_id = batch_id
        self.requested = requested
        self.remaining = remaining
        super().__init__(
            f"Cannot consume {requested} from batch {batch_id}: "
            f"only {remaining} remaining"
        )


class InsufficientStockError(InventoryError):
    """Sale quantity exceeds all eligible stock for the product."""

    code: str = "INSUFFICIENT_STOCK"

    def __init__(self, product_code: str, requested: str, available: str):
        self.product_code = product_code
        self.requested = requested
        self.available = available
        super().__init__(
            f"Insufficient stock for {product_code}: "
            f"requested {requested}, available {available}"
        )


# Settlement


class SettlementError(StockbookError):
    """Base exception for debt settlement errors."""

    code: str = "SETTLEMENT_ERROR"


class OverpaymentError(SettlementError):
    """Payment exceeds the debt's remaining balance."""

    code: str = "OVERPAYMENT"

    def __init__(self, debt_id: str, amount: str, remaining_balance: str):
        self.debt_id = debt_id
        self.amount = amount
        self.remaining_balance = remaining_balance
        super().__init__(
            f"Payment of {amount} exceeds remaining balance "
            f"{remaining_balance} on debt {debt_id}"
        )


class OverallocationError(SettlementError):
    """Lump payment exceeds the total outstanding on the selected debts."""

    code: str = "OVERALLOCATION"

    def __init__(self, total_amount_paid: str, total_outstanding: str):
        self.total_amount_paid = total_amount_paid
        self.total_outstanding = total_outstanding
        super().__init__(
            f"Payment of {total_amount_paid} exceeds outstanding "
            f"{total_outstanding} on the selected debts"
        )


class CrossCustomerAllocationError(SettlementError):
    """Selected debts belong to more than one counterparty."""

    code: str = "CROSS_CUSTOMER_ALLOCATION"

    def __init__(self, counterparties: list[str]):
        self.counterparties = sorted(counterparties)
        super().__init__(
            "Selected debts belong to different counterparties: "
            + ", ".join(self.counterparties)
        )


class DebtAlreadySettledError(SettlementError):
    """Debt has no remaining balance to settle."""

    code: str = "DEBT_ALREADY_SETTLED"

    def __init__(self, debt_id: str):
        self.debt_id = debt_id
        super().__init__(f"Debt {debt_id} is already settled")


class DebtCancelledError(SettlementError):
    """Debt was cancelled and accepts no payments."""

    code: str = "DEBT_CANCELLED"

    def __init__(self, debt_id: str):
        self.debt_id = debt_id
        super().__init__(f"Debt {debt_id} is cancelled")


# Journal


class JournalError(StockbookError):
    """Base exception for journal errors."""

    code: str = "JOURNAL_ERROR"


class JournalIntegrityError(JournalError):
    """A stored running balance does not match its recomputation."""

    code: str = "JOURNAL_INTEGRITY"

    def __init__(self, sequence: int, expected_balance: str, stored_balance: str):
        self.sequence = sequence
        self.expected_balance = expected_balance
        self.stored_balance = stored_balance
        super().__init__(
            f"Journal balance broken at entry #{sequence}: "
            f"expected {expected_balance}, stored {stored_balance}"
        )


# Snapshot


class SnapshotError(StockbookError):
    """Base exception for snapshot export/import errors."""

    code: str = "SNAPSHOT_ERROR"


class SnapshotFormatError(SnapshotError):
    """Snapshot payload is malformed or from an unsupported schema."""

    code: str = "SNAPSHOT_FORMAT"

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Invalid snapshot: {reason}")


# Boundary mapping

INTERNAL_ERROR_CODE = "INTERNAL_ERROR"
INTERNAL_ERROR_MESSAGE = "An internal error occurred"


def error_response(exc: BaseException) -> dict[str, Any]:
    """Map an exception to the stable ``{code, message}`` pair for API responses.

    Domain errors keep their code and human-readable message. Anything else
    is reported as INTERNAL_ERROR with a generic message.
    """
    if isinstance(exc, StockbookError):
        return {"code": exc.code, "message": str(exc)}
    return {"code": INTERNAL_ERROR_CODE, "message": INTERNAL_ERROR_MESSAGE}
