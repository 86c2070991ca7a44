"""Tests for compensating multi-document writes."""

import pytest

from zerobudget.models import ActivityEventType
from zerobudget.services.storage import InMemoryDocumentStore, StorageError, UnitOfWork


class FlakyDeleteStore(InMemoryDocumentStore):
    """Store whose deletes fail, to exercise failed compensation."""

    async def delete(self, collection, key):
        raise StorageError("sheet unavailable")


class TestUnitOfWork:
    """Tests for the journaling unit of work."""

    async def test_commit_keeps_writes(self):
        store = InMemoryDocumentStore()
        async with UnitOfWork(store) as uow:
            await uow.upsert("accounts", {"key": "a1"})
            assert uow.pending_writes == 1
        assert uow.pending_writes == 0
        assert await store.get("accounts", "a1") is not None

    async def test_rollback_restores_previous_documents(self):
        """Updated documents get their old contents back; new ones disappear."""
        store = InMemoryDocumentStore()
        await store.upsert("accounts", {"key": "a1", "name": "Before"})

        with pytest.raises(ValueError):
            async with UnitOfWork(store) as uow:
                await uow.upsert("accounts", {"key": "a1", "name": "After"})
                await uow.upsert("accounts", {"key": "a2", "name": "New"})
                raise ValueError("fail")

        assert (await store.get("accounts", "a1"))["name"] == "Before"
        assert await store.get("accounts", "a2") is None

    async def test_rollback_restores_deleted_documents(self):
        store = InMemoryDocumentStore()
        await store.upsert("carryovers", {"key": "c1", "carryover": "10.00"})

        with pytest.raises(ValueError):
            async with UnitOfWork(store) as uow:
                await uow.delete("carryovers", "c1")
                raise ValueError("fail")

        assert (await store.get("carryovers", "c1"))["carryover"] == "10.00"

    async def test_compensation_is_logged(self, activity):
        store = InMemoryDocumentStore()
        with pytest.raises(ValueError):
            async with UnitOfWork(store, activity_logger=activity) as uow:
                await uow.upsert("accounts", {"key": "a1"})
                raise ValueError("fail")

        events = activity.of_type(ActivityEventType.WRITES_COMPENSATED)
        assert len(events) == 1
        assert events[0].error_message == "fail"

    async def test_failed_compensation_keeps_original_error(self, activity):
        """The original exception propagates even when a restore fails."""
        store = FlakyDeleteStore()
        with pytest.raises(ValueError, match="original"):
            async with UnitOfWork(store, activity_logger=activity) as uow:
                await uow.upsert("accounts", {"key": "a1"})
                raise ValueError("original")

        failed = activity.of_type(ActivityEventType.COMPENSATION_FAILED)
        assert len(failed) == 1
        assert failed[0].entity_key == "a1"

    async def test_no_writes_nothing_logged(self, activity):
        with pytest.raises(ValueError):
            async with UnitOfWork(InMemoryDocumentStore(), activity_logger=activity):
                raise ValueError("fail")
        assert activity.of_type(ActivityEventType.WRITES_COMPENSATED) == []
