"""
Unit of Work with Compensating Writes

DESIGN DECISION: Neither Google Sheets nor a plain key-value store gives
us multi-document transactions. Sequences that must land together
(a transfer pair, a carryover regeneration, a write followed by a
balance recompute) run inside a UnitOfWork instead.

The unit of work is itself a DocumentStore. Before every write or delete
it snapshots the previous document. If the block raises, it replays the
journal in reverse: restoring each snapshot, or deleting documents that
did not exist before. The original exception always propagates.

Compensation is best-effort: a restore that fails is logged and the
remaining restores still run.
"""

from typing import Any, Optional
from uuid import UUID, uuid4

import structlog

from zerobudget.services.storage.interface import DocumentStore


class UnitOfWork(DocumentStore):
    """Journaling wrapper around a DocumentStore."""

    def __init__(
        self,
        store: DocumentStore,
        activity_logger=None,
        correlation_id: Optional[UUID] = None,
    ):
        self._store = store
        self._activity = activity_logger
        self._journal: list[tuple[str, str, Optional[dict[str, Any]]]] = []
        self._logger = structlog.get_logger(__name__)
        self.correlation_id = correlation_id or uuid4()

    @property
    def pending_writes(self) -> int:
        return len(self._journal)

    async def get(self, collection: str, key: str) -> Optional[dict[str, Any]]:
        return await self._store.get(collection, key)

    async def query(
        self,
        collection: str,
        filters: Optional[dict[str, Any]] = None,
    ) -> list[dict[str, Any]]:
        return await self._store.query(collection, filters)

    async def upsert(
        self,
        collection: str,
        document: dict[str, Any],
        expected_version: Optional[int] = None,
    ) -> dict[str, Any]:
        key = document.get("key")
        previous = await self._store.get(collection, key) if key else None
        stored = await self._store.upsert(collection, document, expected_version)
        self._journal.append((collection, key, previous))
        return stored

    async def delete(self, collection: str, key: str) -> bool:
        previous = await self._store.get(collection, key)
        deleted = await self._store.delete(collection, key)
        if deleted:
            self._journal.append((collection, key, previous))
        return deleted

    def commit(self) -> None:
        """Forget the journal; the writes are final."""
        self._journal.clear()

    async def rollback(self) -> int:
        """
        Undo journaled writes, newest first.

        Returns:
            Number of compensating writes attempted
        """
        steps = len(self._journal)
        while self._journal:
            collection, key, previous = self._journal.pop()
            try:
                if previous is None:
                    await self._store.delete(collection, key)
                else:
                    await self._store.upsert(collection, previous)
            except Exception as e:
                if self._activity:
                    await self._activity.log_compensation_failed(
                        collection, key, e, correlation_id=self.correlation_id,
                    )
                else:
                    self._logger.error(
                        "compensation_failed",
                        collection=collection,
                        key=key,
                        error=str(e),
                    )
        return steps

    async def __aenter__(self) -> "UnitOfWork":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        if exc is None:
            self.commit()
            return False

        steps = await self.rollback()
        if steps and self._activity:
            await self._activity.log_writes_compensated(
                steps, exc, correlation_id=self.correlation_id,
            )
        return False
