"""
In-Memory Storage Implementation

Used by the test suite and for local runs without Google credentials.
Documents are deep-copied on the way in and out so callers can never
mutate stored state by accident.
"""

import copy
from typing import Any, Optional

from zerobudget.services.storage.interface import (
    ConflictError,
    DocumentStore,
    StorageError,
    matches,
)


class InMemoryDocumentStore(DocumentStore):
    """Dictionary-backed document store with per-document versioning."""

    def __init__(self):
        self._collections: dict[str, dict[str, dict[str, Any]]] = {}

    def _collection(self, name: str) -> dict[str, dict[str, Any]]:
        return self._collections.setdefault(name, {})

    async def get(self, collection: str, key: str) -> Optional[dict[str, Any]]:
        document = self._collection(collection).get(key)
        return copy.deepcopy(document) if document is not None else None

    async def query(
        self,
        collection: str,
        filters: Optional[dict[str, Any]] = None,
    ) -> list[dict[str, Any]]:
        return [
            copy.deepcopy(document)
            for document in self._collection(collection).values()
            if matches(document, filters)
        ]

    async def upsert(
        self,
        collection: str,
        document: dict[str, Any],
        expected_version: Optional[int] = None,
    ) -> dict[str, Any]:
        key = document.get("key")
        if not key:
            raise StorageError(f"Cannot store a document without a key in {collection}")

        documents = self._collection(collection)
        current = documents.get(key)
        current_version = current["version"] if current else 0

        if expected_version is not None and expected_version != current_version:
            raise ConflictError(
                f"{collection}/{key} is at version {current_version}, "
                f"expected {expected_version}"
            )

        stored = copy.deepcopy(document)
        stored["version"] = current_version + 1
        documents[key] = stored
        return copy.deepcopy(stored)

    async def delete(self, collection: str, key: str) -> bool:
        return self._collection(collection).pop(key, None) is not None

    def count(self, collection: str) -> int:
        """Number of documents in a collection (test helper)."""
        return len(self._collection(collection))
