"""
Abstract Document Store Interface

DESIGN DECISION: The ledger talks to persistence through four operations
over named collections of JSON-compatible documents. This allows us to:
1. Use in-memory storage for tests and local runs
2. Use Google Sheets so the data stays visible to non-technical users
3. Swap in a real document database later without touching the ledger

Every stored document has a string `key` and a store-managed integer
`version`. Passing `expected_version` to upsert turns it into a
compare-and-set; the store raises ConflictError on mismatch.

The interface is intentionally simple - we're not building a full ORM.
Filtering is plain field equality; ordering is the caller's job.
"""

from abc import ABC, abstractmethod
from typing import Any, Optional


class DocumentStore(ABC):
    """
    Abstract interface for document storage.

    Any storage implementation (in-memory, Google Sheets, etc.)
    must implement these methods.
    """

    @abstractmethod
    async def get(self, collection: str, key: str) -> Optional[dict[str, Any]]:
        """
        Retrieve a document by key.

        Args:
            collection: Collection name (e.g., 'transactions')
            key: The document's identity key

        Returns:
            A copy of the stored document, or None if it doesn't exist
        """
        pass

    @abstractmethod
    async def query(
        self,
        collection: str,
        filters: Optional[dict[str, Any]] = None,
    ) -> list[dict[str, Any]]:
        """
        List documents whose fields equal every filter value.

        Args:
            collection: Collection name
            filters: Field name -> required value. None or {} returns everything.

        Returns:
            Copies of the matching documents, in no particular order
        """
        pass

    @abstractmethod
    async def upsert(
        self,
        collection: str,
        document: dict[str, Any],
        expected_version: Optional[int] = None,
    ) -> dict[str, Any]:
        """
        Insert or replace a document.

        Args:
            collection: Collection name
            document: The document to store; must contain a non-empty 'key'
            expected_version: If given, the currently stored version must equal
                this value (0 meaning "must not exist yet")

        Returns:
            The stored document with its new version

        Raises:
            ConflictError: If expected_version doesn't match
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    async def delete(self, collection: str, key: str) -> bool:
        """
        Delete a document by key.

        Returns:
            True if a document was deleted, False if it didn't exist
        """
        pass


def matches(document: dict[str, Any], filters: Optional[dict[str, Any]]) -> bool:
    """Equality filter shared by the store implementations."""
    if not filters:
        return True
    return all(document.get(field) == value for field, value in filters.items())


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class DocumentNotFoundError(StorageError):
    """Document not found in storage."""
    pass


class ConflictError(StorageError):
    """Optimistic version check failed."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass
