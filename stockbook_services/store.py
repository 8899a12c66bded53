"""
stockbook_services.store -- Ledger state store with atomic transactions and snapshots.

Responsibility:
    Hold every entity of one bookkeeping instance (products, batches, sales,
    debts, payments, journal entries) behind an explicit interface that is
    injected into each service. Provide serialized, all-or-nothing
    mutation, torn-write-free reads, and whole-state snapshot export/import
    for the hosting layer's persistence.

Architecture position:
    Services -- the single stateful collaborator shared by all services.
    Performs no I/O; durability is the caller's concern via
    ``export_snapshot()``.

Invariants enforced:
    - Atomic mutation: ``transaction()`` restores the pre-transaction state
      if the block raises. Nested transactions act as savepoints.
    - Serialized access: mutations and reads hold one re-entrant lock.
    - Journal is append-only through this interface: there is no method
      that edits or removes an entry.
    - Sequences (batch creation order, journal append order) are strictly
      increasing and survive snapshot round-trips.

Failure modes:
    - SnapshotFormatError from ``import_snapshot`` for malformed data or a
      currency that differs from the store's; state is left untouched.
    - KeyError is never raised for lookups: ``get`` returns None and callers
      raise the typed NotFoundError.
"""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime
from enum import Enum
from typing import Any
from uuid import uuid4

from stockbook_kernel.domain.records import (
    Debt,
    InventoryBatch,
    JournalEntry,
    Payment,
    Product,
    Record,
    SaleRecord,
)
from stockbook_kernel.domain.values import Currency
from stockbook_kernel.exceptions import SnapshotFormatError
from stockbook_kernel.logging_config import get_logger

logger = get_logger("services.store")

SNAPSHOT_SCHEMA_VERSION = 1


class Collection(str, Enum):
    """Keyed entity collections held by a store."""

    PRODUCTS = "products"
    BATCHES = "batches"
    SALES = "sales"
    DEBTS = "debts"
    PAYMENTS = "payments"


_RECORD_TYPES: dict[Collection, type[Record]] = {
    Collection.PRODUCTS: Product,
    Collection.BATCHES: InventoryBatch,
    Collection.SALES: SaleRecord,
    Collection.DEBTS: Debt,
    Collection.PAYMENTS: Payment,
}

_ID_FIELDS: dict[Collection, str] = {
    Collection.PRODUCTS: "product_id",
    Collection.BATCHES: "batch_id",
    Collection.SALES: "sale_id",
    Collection.DEBTS: "debt_id",
    Collection.PAYMENTS: "payment_id",
}


def record_id(collection: Collection, record: Any) -> str:
    return getattr(record, _ID_FIELDS[collection])


class LedgerStore(ABC):
    """
    Storage interface injected into every service.

    Contract:
        - Every mutating service operation runs inside ``transaction()``.
        - Read-only operations run inside ``read()``.
        - Records are immutable; ``put`` replaces by id.
    """

    @property
    @abstractmethod
    def currency(self) -> Currency:
        """The single currency all stored amounts are in."""

    @abstractmethod
    def transaction(self) -> Any:
        """Context manager: serialize and make the block all-or-nothing."""

    @abstractmethod
    def read(self) -> Any:
        """Context manager: consistent read view."""

    @abstractmethod
    def new_id(self) -> str: ...

    @abstractmethod
    def next_sequence(self, name: str) -> int: ...

    @abstractmethod
    def get(self, collection: Collection, key: str) -> Any | None: ...

    @abstractmethod
    def put(self, collection: Collection, record: Any) -> None: ...

    @abstractmethod
    def delete(self, collection: Collection, key: str) -> None: ...

    @abstractmethod
    def values(self, collection: Collection) -> list[Any]: ...

    @abstractmethod
    def append_journal(self, entry: JournalEntry) -> None: ...

    @abstractmethod
    def journal(self) -> list[JournalEntry]:
        """Journal entries in append order."""

    @abstractmethod
    def last_journal_entry(self) -> JournalEntry | None: ...

    @abstractmethod
    def export_snapshot(self, exported_at: datetime) -> dict[str, Any]: ...

    @abstractmethod
    def import_snapshot(self, data: dict[str, Any]) -> None: ...


class InMemoryLedgerStore(LedgerStore):
    """
    Process-local store over dicts, guarded by a re-entrant lock.

    Transactions snapshot shallow copies of every collection on entry;
    records are frozen, so a shallow copy is a full savepoint.
    """

    def __init__(self, currency: Currency | str):
        self._currency = currency if isinstance(currency, Currency) else Currency(currency)
        self._lock = threading.RLock()
        self._collections: dict[Collection, dict[str, Any]] = {c: {} for c in Collection}
        self._journal: list[JournalEntry] = []
        self._sequences: dict[str, int] = {}

    @property
    def currency(self) -> Currency:
        return self._currency

    # -- Concurrency -------------------------------------------------------

    @contextmanager
    def transaction(self) -> Iterator[InMemoryLedgerStore]:
        with self._lock:
            savepoint = self._capture()
            try:
                yield self
            except Exception as exc:
                self._restore(savepoint)
                logger.warning("store_transaction_rolled_back", extra={
                    "error_type": type(exc).__name__,
                    "error_code": getattr(exc, "code", None),
                })
                raise

    @contextmanager
    def read(self) -> Iterator[InMemoryLedgerStore]:
        with self._lock:
            yield self

    def _capture(self) -> tuple[dict[Collection, dict[str, Any]], list[JournalEntry], dict[str, int]]:
        return (
            {c: dict(records) for c, records in self._collections.items()},
            list(self._journal),
            dict(self._sequences),
        )

    def _restore(
        self,
        savepoint: tuple[dict[Collection, dict[str, Any]], list[JournalEntry], dict[str, int]],
    ) -> None:
        collections, journal, sequences = savepoint
        self._collections = collections
        self._journal = journal
        self._sequences = sequences

    # -- Identity ----------------------------------------------------------

    def new_id(self) -> str:
        return str(uuid4())

    def next_sequence(self, name: str) -> int:
        with self._lock:
            value = self._sequences.get(name, 0) + 1
            self._sequences[name] = value
            return value

    # -- Keyed collections -------------------------------------------------

    def get(self, collection: Collection, key: str) -> Any | None:
        return self._collections[collection].get(key)

    def put(self, collection: Collection, record: Any) -> None:
        self._collections[collection][record_id(collection, record)] = record

    def delete(self, collection: Collection, key: str) -> None:
        self._collections[collection].pop(key, None)

    def values(self, collection: Collection) -> list[Any]:
        return list(self._collections[collection].values())

    # -- Journal -----------------------------------------------------------

    def append_journal(self, entry: JournalEntry) -> None:
        self._journal.append(entry)

    def journal(self) -> list[JournalEntry]:
        return list(self._journal)

    def last_journal_entry(self) -> JournalEntry | None:
        return self._journal[-1] if self._journal else None

    # -- Snapshots ---------------------------------------------------------

    def export_snapshot(self, exported_at: datetime) -> dict[str, Any]:
        """Return the whole state as a JSON-safe dict."""
        with self._lock:
            data: dict[str, Any] = {
                "schema_version": SNAPSHOT_SCHEMA_VERSION,
                "currency": self._currency.code,
                "exported_at": exported_at.isoformat(),
                "sequences": dict(self._sequences),
            }
            for collection in Collection:
                data[collection.value] = [
                    record.to_dict() for record in self._collections[collection].values()
                ]
            data["journal"] = [entry.to_dict() for entry in self._journal]

        logger.info("store_snapshot_exported", extra={
            "products": len(data[Collection.PRODUCTS.value]),
            "batches": len(data[Collection.BATCHES.value]),
            "journal_entries": len(data["journal"]),
        })
        return data

    def import_snapshot(self, data: dict[str, Any]) -> None:
        """Replace all state with ``data``. Nothing changes if parsing fails."""
        if not isinstance(data, dict):
            raise SnapshotFormatError("snapshot must be a mapping")
        version = data.get("schema_version")
        if version != SNAPSHOT_SCHEMA_VERSION:
            raise SnapshotFormatError(f"unsupported schema_version {version!r}")
        if data.get("currency") != self._currency.code:
            raise SnapshotFormatError(
                f"snapshot currency {data.get('currency')!r} does not match store "
                f"currency {self._currency.code}"
            )

        collections: dict[Collection, dict[str, Any]] = {}
        try:
            for collection, record_type in _RECORD_TYPES.items():
                parsed = [
                    record_type.from_dict(raw, self._currency)
                    for raw in data.get(collection.value, [])
                ]
                collections[collection] = {record_id(collection, r): r for r in parsed}
            journal = [
                JournalEntry.from_dict(raw, self._currency) for raw in data.get("journal", [])
            ]
            sequences = {str(k): int(v) for k, v in (data.get("sequences") or {}).items()}
        except (KeyError, TypeError, ValueError, ArithmeticError, AttributeError) as e:
            logger.error("store_snapshot_rejected", extra={"error": str(e)})
            raise SnapshotFormatError(f"malformed record: {e}") from e

        journal.sort(key=lambda entry: entry.sequence)
        sequences["batch"] = max(
            [sequences.get("batch", 0)]
            + [b.sequence for b in collections[Collection.BATCHES].values()]
        )
        sequences["journal"] = max(
            [sequences.get("journal", 0)] + [entry.sequence for entry in journal]
        )

        with self._lock:
            self._collections = collections
            self._journal = journal
            self._sequences = sequences

        logger.info("store_snapshot_imported", extra={
            "products": len(collections[Collection.PRODUCTS]),
            "batches": len(collections[Collection.BATCHES]),
            "journal_entries": len(journal),
        })
