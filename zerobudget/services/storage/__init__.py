"""
Storage Services Package

Provides the abstract document store, its in-memory and Google Sheets
implementations, and the typed LedgerStore the services work against.
"""

from zerobudget.services.storage.interface import (
    ConflictError,
    ConnectionError,
    DocumentNotFoundError,
    DocumentStore,
    StorageError,
)
from zerobudget.services.storage.memory import InMemoryDocumentStore
from zerobudget.services.storage.google_sheets import (
    GoogleSheetsClient,
    GoogleSheetsDocumentStore,
)
from zerobudget.services.storage.unit_of_work import UnitOfWork
from zerobudget.services.storage.repository import Collection, LedgerStore

__all__ = [
    # Interfaces
    "DocumentStore",
    # Exceptions
    "ConflictError",
    "ConnectionError",
    "DocumentNotFoundError",
    "StorageError",
    # Implementations
    "GoogleSheetsClient",
    "GoogleSheetsDocumentStore",
    "InMemoryDocumentStore",
    # Typed access
    "Collection",
    "LedgerStore",
    "UnitOfWork",
]
