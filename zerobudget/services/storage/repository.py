"""
Typed Ledger Store

DESIGN DECISION: Documents are validated against their pydantic model
at the storage boundary, in both directions. Services only ever see
typed entities; malformed stored documents surface as StorageError
instead of leaking half-parsed dicts into the ledger.
"""

from contextlib import asynccontextmanager
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Any, AsyncIterator, Generic, Optional, Type, TypeVar

import pydantic

from zerobudget.models import (
    Account,
    Assignment,
    Bill,
    Carryover,
    Category,
    CategoryGroup,
    Document,
    Goal,
    IncomeEntry,
    PayPeriod,
    Reconciliation,
    Transaction,
)
from zerobudget.services.storage.interface import DocumentStore, StorageError
from zerobudget.services.storage.unit_of_work import UnitOfWork


T = TypeVar("T", bound=Document)


def _filter_value(value: Any) -> Any:
    """Convert a Python filter value to its stored JSON form."""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, Decimal):
        return str(value)
    return value


class Collection(Generic[T]):
    """One named collection bound to its entity model."""

    def __init__(self, store: DocumentStore, name: str, model: Type[T]):
        self._store = store
        self.name = name
        self.model = model

    def _parse(self, document: dict[str, Any]) -> T:
        try:
            return self.model.model_validate(document)
        except pydantic.ValidationError as e:
            raise StorageError(
                f"Malformed {self.name} document {document.get('key')!r}: {e}"
            )

    async def get(self, key: str) -> Optional[T]:
        document = await self._store.get(self.name, key)
        return self._parse(document) if document is not None else None

    async def find(self, **filters: Any) -> list[T]:
        """All entities whose fields equal the given values."""
        documents = await self._store.query(
            self.name,
            {field: _filter_value(value) for field, value in filters.items()},
        )
        return [self._parse(document) for document in documents]

    async def save(self, entity: T, expected_version: Optional[int] = None) -> T:
        stored = await self._store.upsert(
            self.name,
            entity.model_dump(mode="json"),
            expected_version=expected_version,
        )
        return self._parse(stored)

    async def delete(self, key: str) -> bool:
        return await self._store.delete(self.name, key)


class LedgerStore:
    """
    Typed access to every collection the ledger and budget engine use.

    Usage:
        account = await ledger.accounts.get(key)
        async with ledger.unit_of_work() as uow:
            await uow.transactions.save(withdrawal)
            await uow.transactions.save(deposit)
    """

    def __init__(self, store: DocumentStore, activity_logger=None):
        self.store = store
        self._activity = activity_logger

        # Ledger
        self.accounts = Collection(store, "accounts", Account)
        self.transactions = Collection(store, "transactions", Transaction)
        self.reconciliations = Collection(store, "reconciliations", Reconciliation)

        # Budget
        self.category_groups = Collection(store, "category_groups", CategoryGroup)
        self.categories = Collection(store, "categories", Category)
        self.pay_periods = Collection(store, "pay_periods", PayPeriod)
        self.assignments = Collection(store, "assignments", Assignment)
        self.carryovers = Collection(store, "carryovers", Carryover)
        self.income_entries = Collection(store, "income_entries", IncomeEntry)
        self.bills = Collection(store, "bills", Bill)
        self.goals = Collection(store, "goals", Goal)

    @asynccontextmanager
    async def unit_of_work(self) -> AsyncIterator["LedgerStore"]:
        """
        Group writes so a failure compensates all of them.

        Nested calls join the outermost unit of work.
        """
        if isinstance(self.store, UnitOfWork):
            yield self
            return

        async with UnitOfWork(self.store, activity_logger=self._activity) as uow:
            yield LedgerStore(uow, self._activity)
