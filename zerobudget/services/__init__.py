"""Services package."""

from zerobudget.services.storage import (
    Collection,
    ConflictError,
    ConnectionError,
    DocumentNotFoundError,
    DocumentStore,
    InMemoryDocumentStore,
    LedgerStore,
    StorageError,
    UnitOfWork,
)

__all__ = [
    "Collection",
    "ConflictError",
    "ConnectionError",
    "DocumentNotFoundError",
    "DocumentStore",
    "InMemoryDocumentStore",
    "LedgerStore",
    "StorageError",
    "UnitOfWork",
]
