"""
stockbook_services.inventory_service -- Product catalog and inventory batch store.

Responsibility:
    Own the product catalog and the per-product purchase batches. Create
    batches on stock-in (posting the purchase to the journal), list the
    batches eligible for FIFO consumption, and apply consumption requested
    by the sale processor.

Architecture position:
    Services -- stateful orchestration over the injected LedgerStore.
    The only component that mutates a batch's remaining quantity.

Invariants enforced:
    - Product codes are globally unique (DuplicateProductCodeError).
    - A product's code is immutable once any batch references it, and a
      referenced product cannot be removed.
    - 0 <= remaining_quantity <= quantity for every batch, and remaining
      never increases.
    - Eligible batches are ordered by (arrival_date, sequence).

Failure modes:
    - UnknownProductError for an unknown product code.
    - ProductNotFoundError / BatchNotFoundError for unknown ids.
    - InvalidConsumptionError when a consumption exceeds a batch's remaining.
    - ValidationError for bad quantities, prices or text fields.

Audit relevance:
    Every stock-in posts a journal debit (purchases) or a debit/credit pair
    (opening stock) referencing the batch id.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import date
from decimal import Decimal
from typing import Any

from stockbook_config.schema import EngineConfig
from stockbook_kernel.domain.clock import Clock
from stockbook_kernel.domain.records import (
    EntryType,
    InventoryBatch,
    JournalEntryType,
    Product,
)
from stockbook_kernel.domain.values import (
    Money,
    to_money,
    to_optional_text,
    to_quantity,
    to_text,
)
from stockbook_kernel.exceptions import (
    BatchNotFoundError,
    DuplicateProductCodeError,
    InvalidConsumptionError,
    ProductNotFoundError,
    UnknownProductError,
    ValidationError,
)
from stockbook_kernel.logging_config import get_logger
from stockbook_services.journal_service import JournalLedger
from stockbook_services.store import Collection, LedgerStore

logger = get_logger("services.inventory")

BATCH_SEQUENCE = "batch"
class InventoryService:
    """
    Product catalog and FIFO batch store.

    Contract:
        Receives store, clock, journal and config via constructor injection.
        Mutating methods run inside ``store.transaction()``.
    Non-goals:
        - Does not cost sales; see FifoCostEngine.
        - Does not know about money beyond posting stock receipts.
    """

    def __init__(
        self,
        store: LedgerStore,
        clock: Clock,
        journal: JournalLedger,
        config: EngineConfig,
    ):
        self._store = store
        self._clock = clock
        self._journal = journal
        self._config = config

    # =========================================================================
    # Catalog
    # =========================================================================

    def add_product(
        self,
        code: str,
        name: str,
        category: str,
        unit: str,
        description: str | None = None,
    ) -> Product:
        code = to_text(code, "code")
        now = self._clock.now()
        with self._store.transaction():
            existing = self._find_by_code(code)
            if existing is not None:
                raise DuplicateProductCodeError(code, existing.name)
            product = Product(
                product_id=self._store.new_id(),
                code=code,
                name=to_text(name, "name"),
                category=to_text(category, "category"),
                unit=to_text(unit, "unit"),
                description=to_optional_text(description, "description"),
                created_at=now,
                updated_at=now,
            )
            self._store.put(Collection.PRODUCTS, product)

        logger.info("product_added", extra={
            "product_id": product.product_id,
            "product_code": product.code,
        })
        return product

    def update_product(
        self,
        product_id: str,
        *,
        code: str | None = None,
        name: str | None = None,
        category: str | None = None,
        unit: str | None = None,
        description: str | None = None,
    ) -> Product:
        """Update descriptive fields; ``code`` only while no batch references it."""
        with self._store.transaction():
            product = self.get_product(product_id)
            changes: dict[str, Any] = {}
            if code is not None:
                new_code = to_text(code, "code")
                if new_code != product.code:
                    if self._is_referenced(product):
                        raise ValidationError(
                            "code", "cannot change once inventory references the product"
                        )
                    existing = self._find_by_code(new_code)
                    if existing is not None:
                        raise DuplicateProductCodeError(new_code, existing.name)
                    changes["code"] = new_code
            if name is not None:
                changes["name"] = to_text(name, "name")
            if category is not None:
                changes["category"] = to_text(category, "category")
            if unit is not None:
                changes["unit"] = to_text(unit, "unit")
            if description is not None:
                changes["description"] = to_optional_text(description, "description")

            updated = replace(product, updated_at=self._clock.now(), **changes)
            self._store.put(Collection.PRODUCTS, updated)

        logger.info("product_updated", extra={
            "product_id": product_id,
            "fields": sorted(changes),
        })
        return updated

    def remove_product(self, product_id: str) -> Product:
        with self._store.transaction():
            product = self.get_product(product_id)
            if self._is_referenced(product):
                raise ValidationError(
                    "product_id", "cannot remove a product that inventory references"
                )
            self._store.delete(Collection.PRODUCTS, product_id)

        logger.info("product_removed", extra={
            "product_id": product_id,
            "product_code": product.code,
        })
        return product

    def get_product(self, product_id: str) -> Product:
        with self._store.read():
            product = self._store.get(Collection.PRODUCTS, product_id)
        if product is None:
            raise ProductNotFoundError(product_id)
        return product

    def get_product_by_code(self, product_code: str) -> Product:
        with self._store.read():
            product = self._find_by_code(product_code)
        if product is None:
            raise UnknownProductError(product_code)
        return product

    def list_products(self) -> list[Product]:
        with self._store.read():
            products = self._store.values(Collection.PRODUCTS)
        return sorted(products, key=lambda p: p.code)

    def _find_by_code(self, product_code: str) -> Product | None:
        code = product_code.strip() if isinstance(product_code, str) else product_code
        for product in self._store.values(Collection.PRODUCTS):
            if product.code == code:
                return product
        return None

    def _is_referenced(self, product: Product) -> bool:
        return any(
            b.product_id == product.product_id
            for b in self._store.values(Collection.BATCHES)
        )

    # =========================================================================
    # Stock in
    # =========================================================================

    def stock_in(
        self,
        product_code: str,
        quantity: Decimal | int | str,
        unit_price: Money | Decimal | int | str,
        arrival_date: date | None = None,
        entry_type: EntryType = EntryType.PURCHASE,
        supplier: str | None = None,
        batch_number: str | None = None,
        expiry_date: date | None = None,
        notes: str | None = None,
    ) -> InventoryBatch:
        """
        Receive a batch and post it to the journal.

        Purchases debit the inventory category. Opening stock debits the
        opening-stock asset category and credits owner capital, so the
        running balance is unchanged.
        """
        quantity = to_quantity(quantity)
        price = to_money(unit_price, self._store.currency, "unit_price")
        entry_type = EntryType(entry_type)
        arrival = arrival_date or self._clock.today()
        if expiry_date is not None and expiry_date < arrival:
            raise ValidationError("expiry_date", "must not be before arrival_date")
        categories = self._config.journal_categories

        with self._store.transaction():
            product = self.get_product_by_code(product_code)
            now = self._clock.now()
            batch = InventoryBatch(
                batch_id=self._store.new_id(),
                sequence=self._store.next_sequence(BATCH_SEQUENCE),
                product_id=product.product_id,
                product_code=product.code,
                product_name=product.name,
                arrival_date=arrival,
                quantity=quantity,
                unit_price=price,
                remaining_quantity=quantity,
                entry_type=entry_type,
                supplier=to_optional_text(supplier, "supplier"),
                batch_number=to_optional_text(batch_number, "batch_number"),
                expiry_date=expiry_date,
                notes=to_optional_text(notes, "notes"),
                created_at=now,
                updated_at=now,
            )
            self._store.put(Collection.BATCHES, batch)

            value = batch.original_value
            if value.is_positive:
                label = f"{quantity} {product.unit} {product.name} @ {price.amount}"
                if entry_type == EntryType.OPENING_STOCK:
                    self._journal.append(
                        entry_date=arrival,
                        category=categories.opening_stock_asset,
                        description=f"Opening stock: {label}",
                        debit=value,
                        reference=batch.batch_id,
                        entry_type=JournalEntryType.OPENING_STOCK,
                    )
                    self._journal.append(
                        entry_date=arrival,
                        category=categories.owner_capital,
                        description=f"Owner capital contributed as opening stock: {label}",
                        credit=value,
                        reference=batch.batch_id,
                        entry_type=JournalEntryType.OPENING_STOCK,
                    )
                else:
                    self._journal.append(
                        entry_date=arrival,
                        category=categories.inventory,
                        description=f"Stock purchase: {label}",
                        debit=value,
                        reference=batch.batch_id,
                        entry_type=JournalEntryType.STOCK_IN,
                    )

        logger.info("stock_received", extra={
            "batch_id": batch.batch_id,
            "product_code": batch.product_code,
            "quantity": str(quantity),
            "unit_price": str(price.amount),
            "entry_type": entry_type.value,
            "sequence": batch.sequence,
        })
        return batch

    def remove_batch(self, batch_id: str) -> InventoryBatch:
        """Administrative removal of a batch nothing has been consumed from."""
        with self._store.transaction():
            batch = self.get_batch(batch_id)
            if not batch.is_untouched:
                raise ValidationError("batch_id", "cannot remove a partially consumed batch")
            self._store.delete(Collection.BATCHES, batch_id)

        logger.warning("batch_removed", extra={
            "batch_id": batch_id,
            "product_code": batch.product_code,
            "quantity": str(batch.quantity),
        })
        return batch

    # =========================================================================
    # Batch queries and consumption
    # =========================================================================

    def get_batch(self, batch_id: str) -> InventoryBatch:
        with self._store.read():
            batch = self._store.get(Collection.BATCHES, batch_id)
        if batch is None:
            raise BatchNotFoundError(batch_id)
        return batch

    def list_batches(self, product_code: str | None = None) -> list[InventoryBatch]:
        """All batches, newest first (for display)."""
        with self._store.read():
            batches = self._store.values(Collection.BATCHES)
        if product_code is not None:
            batches = [b for b in batches if b.product_code == product_code]
        return sorted(batches, key=lambda b: b.fifo_key, reverse=True)

    def list_eligible_batches(self, product_code: str) -> list[InventoryBatch]:
        """Batches with stock left, oldest first by (arrival_date, sequence)."""
        with self._store.read():
            product = self._find_by_code(product_code)
            if product is None:
                raise UnknownProductError(product_code)
            batches = [
                b for b in self._store.values(Collection.BATCHES)
                if b.product_id == product.product_id and b.is_available
            ]
        return sorted(batches, key=lambda b: b.fifo_key)

    def available_quantity(self, product_code: str) -> Decimal:
        return sum(
            (b.remaining_quantity for b in self.list_eligible_batches(product_code)),
            Decimal("0"),
        )

    def consume(self, batch_id: str, quantity: Decimal | int | str) -> InventoryBatch:
        """Decrement a batch's remaining quantity.

        Raises:
            ValidationError: quantity is not positive.
            BatchNotFoundError: unknown batch.
            InvalidConsumptionError: quantity exceeds the remaining quantity.
        """
        quantity = to_quantity(quantity)
        with self._store.transaction():
            batch = self.get_batch(batch_id)
            if quantity > batch.remaining_quantity:
                logger.error("batch_overconsumption_rejected", extra={
                    "batch_id": batch_id,
                    "requested": str(quantity),
                    "remaining": str(batch.remaining_quantity),
                })
                raise InvalidConsumptionError(
                    batch_id=batch_id,
                    requested=str(quantity),
                    remaining=str(batch.remaining_quantity),
                )
            updated = replace(
                batch,
                remaining_quantity=batch.remaining_quantity - quantity,
                updated_at=self._clock.now(),
            )
            self._store.put(Collection.BATCHES, updated)

        logger.debug("batch_consumed", extra={
            "batch_id": batch_id,
            "quantity": str(quantity),
            "remaining": str(updated.remaining_quantity),
        })
        return updated
