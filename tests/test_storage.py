"""Tests for the document stores and the typed LedgerStore."""

import pytest
from datetime import date
from decimal import Decimal

from zerobudget.models import Account, PayPeriod, Transaction
from zerobudget.services.storage import (
    ConflictError,
    GoogleSheetsDocumentStore,
    InMemoryDocumentStore,
    LedgerStore,
    StorageError,
)


class FakeWorksheet:
    """Just enough of gspread.Worksheet for the document store."""

    def __init__(self):
        self.rows = [["key", "version", "updated_at", "document_json"]]

    def get_all_values(self):
        return [list(row) for row in self.rows]

    def append_row(self, row, value_input_option=None):
        self.rows.append(list(row))

    def update(self, range_name=None, values=None, value_input_option=None):
        row_number = int(range_name.split(":")[0][1:])
        self.rows[row_number - 1] = list(values[0])

    def delete_rows(self, row_number):
        del self.rows[row_number - 1]


class FakeSheetsClient:
    def __init__(self):
        self.worksheets = {}

    def get_worksheet(self, collection):
        return self.worksheets.setdefault(collection, FakeWorksheet())


@pytest.fixture(params=["memory", "sheets"])
def document_store(request):
    """Both store implementations must behave identically."""
    if request.param == "memory":
        return InMemoryDocumentStore()
    return GoogleSheetsDocumentStore(FakeSheetsClient())


class TestDocumentStore:
    """Contract tests run against every store implementation."""

    async def test_get_missing_returns_none(self, document_store):
        assert await document_store.get("accounts", "nope") is None

    async def test_upsert_assigns_versions(self, document_store):
        first = await document_store.upsert("accounts", {"key": "a1", "name": "Checking"})
        second = await document_store.upsert("accounts", {"key": "a1", "name": "Main"})
        assert first["version"] == 1
        assert second["version"] == 2
        stored = await document_store.get("accounts", "a1")
        assert stored["name"] == "Main"
        assert stored["version"] == 2

    async def test_expected_version_zero_means_create(self, document_store):
        await document_store.upsert("accounts", {"key": "a1"}, expected_version=0)
        with pytest.raises(ConflictError):
            await document_store.upsert("accounts", {"key": "a1"}, expected_version=0)

    async def test_stale_version_conflicts(self, document_store):
        await document_store.upsert("accounts", {"key": "a1"})
        await document_store.upsert("accounts", {"key": "a1"})
        with pytest.raises(ConflictError):
            await document_store.upsert("accounts", {"key": "a1"}, expected_version=1)

    async def test_document_without_key_rejected(self, document_store):
        with pytest.raises(StorageError):
            await document_store.upsert("accounts", {"name": "nameless"})

    async def test_query_filters_by_equality(self, document_store):
        await document_store.upsert("transactions", {"key": "t1", "account_key": "a1"})
        await document_store.upsert("transactions", {"key": "t2", "account_key": "a2"})
        await document_store.upsert("transactions", {"key": "t3", "account_key": "a1"})

        found = await document_store.query("transactions", {"account_key": "a1"})
        assert sorted(d["key"] for d in found) == ["t1", "t3"]
        assert len(await document_store.query("transactions")) == 3

    async def test_delete(self, document_store):
        await document_store.upsert("accounts", {"key": "a1"})
        assert await document_store.delete("accounts", "a1") is True
        assert await document_store.delete("accounts", "a1") is False
        assert await document_store.get("accounts", "a1") is None


class TestInMemoryIsolation:
    """Callers can never mutate stored state through returned documents."""

    async def test_returned_documents_are_copies(self):
        store = InMemoryDocumentStore()
        stored = await store.upsert("accounts", {"key": "a1", "tags": ["x"]})
        stored["tags"].append("y")
        fetched = await store.get("accounts", "a1")
        assert fetched["tags"] == ["x"]


class TestLedgerStore:
    """Tests for typed collections."""

    async def test_round_trips_typed_entities(self, ledger):
        account = await ledger.accounts.save(Account(name="Checking", opening_balance="10"))
        fetched = await ledger.accounts.get(account.key)
        assert fetched.opening_balance == Decimal("10.00")
        assert fetched.version == 1

    async def test_find_converts_dates_and_enums(self, ledger):
        """Filter values are compared in their stored JSON form."""
        await ledger.transactions.save(Transaction(
            account_key="a1", amount="-5", transaction_date=date(2024, 1, 3),
        ))
        found = await ledger.transactions.find(transaction_date=date(2024, 1, 3))
        assert len(found) == 1

    async def test_malformed_document_is_storage_error(self, ledger, store):
        await store.upsert("pay_periods", {"key": "broken", "name": "x"})
        with pytest.raises(StorageError, match="Malformed pay_periods"):
            await ledger.pay_periods.get("broken")

    async def test_unit_of_work_rolls_back_on_error(self, ledger, store):
        period = PayPeriod(name="Jan", start_date=date(2024, 1, 1), end_date=date(2024, 1, 14))

        with pytest.raises(RuntimeError):
            async with ledger.unit_of_work() as uow:
                await uow.pay_periods.save(period)
                raise RuntimeError("boom")

        assert store.count("pay_periods") == 0

    async def test_nested_unit_of_work_joins_outer(self, ledger, store):
        """A failure in the outer block undoes writes made in the inner one."""
        period = PayPeriod(name="Jan", start_date=date(2024, 1, 1), end_date=date(2024, 1, 14))

        with pytest.raises(RuntimeError):
            async with ledger.unit_of_work() as outer:
                async with outer.unit_of_work() as inner:
                    await inner.pay_periods.save(period)
                raise RuntimeError("boom")

        assert store.count("pay_periods") == 0
